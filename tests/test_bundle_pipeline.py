from __future__ import annotations

import json
import plistlib
import zipfile
from pathlib import Path

import pytest
from structlog.testing import capture_logs

from lnos_utm.bundle.errors import ArtifactError, PreflightError
from lnos_utm.bundle.pipeline import BundlePipeline


def _pipeline(config, client, applications_dir, identifier_factory, platform="darwin") -> BundlePipeline:
    return BundlePipeline(
        config,
        client=client,
        identifier_factory=identifier_factory,
        applications_dir=applications_dir,
        host_platform=platform,
    )


def test_wrong_platform_writes_nothing(make_config, online_client, applications_dir, identifier_factory) -> None:
    config = make_config()

    with pytest.raises(PreflightError):
        _pipeline(config, online_client, applications_dir, identifier_factory, platform="linux").build()

    assert not config.output_dir.exists()


def test_build_produces_complete_bundle(
    make_config, online_client, applications_dir, identifier_factory, no_host_tools
) -> None:
    config = make_config()

    result = _pipeline(config, online_client, applications_dir, identifier_factory).build()

    bundle = config.bundle_dir
    assert result.bundle_dir == bundle
    assert result.archive_path is None
    assert result.disk_image.placeholder
    assert not result.installer_image.placeholder
    with (bundle / "config.plist").open("rb") as handle:
        document = plistlib.load(handle)
    assert document["System"]["Boot"]["BootOrder"] == [drive["Identifier"] for drive in document["Drives"]]
    assert document["SharedDirectories"][0]["DirectoryURL"] == config.scripts_dir.resolve().as_uri()
    metadata = json.loads((bundle / "Data" / "build-metadata.json").read_text(encoding="utf-8"))
    assert metadata["vm_config"]["utm_version"] == "4.6.4"
    assert metadata["vm_config"]["configuration_version"] == 4
    assert metadata["artifacts"]["asahi_iso"] == "Images/asahi-installer.iso"
    assert (config.scripts_dir / "LnOS-installer.sh").is_file()


def test_offline_interactive_build_succeeds_with_placeholders(
    make_config, offline_client, applications_dir, identifier_factory, no_host_tools
) -> None:
    config = make_config()

    with capture_logs() as logs:
        result = _pipeline(config, offline_client, applications_dir, identifier_factory).build()

    assert config.installer_image_path.stat().st_size == 0
    assert result.installer_image.placeholder
    assert "installer ISO placeholder" in result.warnings
    metadata = json.loads((config.data_dir / "build-metadata.json").read_text(encoding="utf-8"))
    assert metadata["artifacts"]["asahi_iso"] == "Images/asahi-installer.iso"
    warnings = [entry["event"] for entry in logs if entry["log_level"] == "warning"]
    assert "Asahi Linux installer ISO not included." in warnings


def test_offline_ci_build_fails(make_config, offline_client, applications_dir, identifier_factory, no_host_tools) -> None:
    config = make_config(ci=True)

    with pytest.raises(ArtifactError):
        _pipeline(config, offline_client, applications_dir, identifier_factory).build()


def test_ci_build_without_installer_script_fails(
    make_config, client_factory, applications_dir, identifier_factory, no_host_tools
) -> None:
    config = make_config(ci=True)
    client = client_factory({str(config.installer_url): b"iso"})

    with pytest.raises(ArtifactError, match="LnOS installer script"):
        _pipeline(config, client, applications_dir, identifier_factory).build()


def test_ci_build_archives_and_tolerates_missing_utm(
    tmp_path: Path, make_config, online_client, identifier_factory, no_host_tools
) -> None:
    config = make_config(ci=True)

    result = _pipeline(config, online_client, tmp_path / "NoApps", identifier_factory).build()

    assert result.utm_available is False
    assert result.archive_path == config.output_dir / "lnos-test-ci.zip"
    with zipfile.ZipFile(result.archive_path) as handle:
        names = handle.namelist()
    assert "lnos-test.utm/config.plist" in names
    assert "lnos-test.utm/Data/lnos-scripts/ci-validation.sh" in names
    assert result.outputs()["distribution_zip"] == result.archive_path


def test_interactive_zip_flag(make_config, online_client, applications_dir, identifier_factory, no_host_tools) -> None:
    config = make_config(archive=True)

    result = _pipeline(config, online_client, applications_dir, identifier_factory).build()

    assert result.archive_path == config.output_dir / "lnos-test.zip"


def test_rebuild_is_idempotent(make_config, online_client, applications_dir, identifier_factory, no_host_tools) -> None:
    config = make_config()
    pipeline = _pipeline(config, online_client, applications_dir, identifier_factory)

    pipeline.build()
    first = sorted(str(path.relative_to(config.bundle_dir)) for path in config.bundle_dir.rglob("*"))
    pipeline.build()

    assert sorted(str(path.relative_to(config.bundle_dir)) for path in config.bundle_dir.rglob("*")) == first


def test_manual_bundle_uses_minimal_template(
    make_config, online_client, applications_dir, identifier_factory, no_host_tools
) -> None:
    config = make_config()
    pipeline = _pipeline(config, online_client, applications_dir, identifier_factory)
    pipeline.build()

    manual_dir = pipeline.build_manual()

    assert manual_dir == config.output_dir / "lnos-test-manual.utm"
    assert (manual_dir / "Images" / "disk0.qcow2").exists()
    assert (manual_dir / "Images" / "asahi-installer.iso").stat().st_size > 0
    with (manual_dir / "config.plist").open("rb") as handle:
        document = plistlib.load(handle)
    assert document["ConfigurationVersion"] == 1
    assert len(document["Drives"]) == 1


def test_manual_bundle_requires_existing_build(make_config, applications_dir, no_host_tools) -> None:
    pipeline = BundlePipeline(make_config(), applications_dir=applications_dir)

    with pytest.raises(ArtifactError, match="Disk image not found"):
        pipeline.build_manual()


def test_guide_lists_steps(make_config, online_client, applications_dir, identifier_factory, no_host_tools) -> None:
    config = make_config()
    pipeline = _pipeline(config, online_client, applications_dir, identifier_factory)
    pipeline.build()

    with capture_logs() as logs:
        steps = pipeline.guide()

    assert any(str(config.disk_image_path) in step for step in steps)
    step_events = [entry for entry in logs if entry.get("step")]
    assert len(step_events) == len(steps)
    assert step_events[0]["event"].startswith("Step 1: ")
