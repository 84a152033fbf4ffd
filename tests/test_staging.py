from __future__ import annotations

import os
from pathlib import Path

from lnos_utm.bundle.staging import PayloadStager, installer_version


def _snapshot(root: Path) -> dict[str, bytes]:
    return {
        str(path.relative_to(root)): path.read_bytes()
        for path in sorted(root.rglob("*"))
        if path.is_file() and path.name != "VERSION.txt"
    }


def test_stage_with_local_project(make_config, offline_client) -> None:
    config = make_config()
    scripts = config.project_dir / "scripts"
    (scripts / "pacman_packages").mkdir(parents=True)
    (scripts / "LnOS-installer.sh").write_text("#!/bin/bash\n# @date 2024-05-01\n", encoding="utf-8")
    (scripts / "pacman_packages" / "CSE_packages.txt").write_text("git\n", encoding="utf-8")

    payload = PayloadStager(config, client=offline_client).stage()

    staged = config.scripts_dir
    assert payload.warnings == []
    assert payload.installer_version == "2024-05-01"
    assert (staged / "pacman_packages" / "CSE_packages.txt").read_text(encoding="utf-8") == "git\n"
    for name in ("LnOS-installer.sh", "asahi-bootstrap.py", "utm-autostart.sh"):
        assert os.access(staged / name, os.X_OK), name
    assert (staged / "SETUP_INSTRUCTIONS.md").exists()
    assert not (staged / "ci-validation.sh").exists()
    assert (config.bundle_dir / "README.txt").exists()
    version = (staged / "VERSION.txt").read_text(encoding="utf-8")
    assert "Installer Version: 2024-05-01" in version
    assert "CSE_packages.txt (4 bytes)" in version


def test_stage_downloads_installer_when_missing(make_config, online_client) -> None:
    config = make_config()

    payload = PayloadStager(config, client=online_client).stage()

    assert payload.installer_script == config.scripts_dir / "LnOS-installer.sh"
    assert payload.installer_version == "2024-05-01"


def test_stage_offline_degrades_to_warnings(make_config, offline_client) -> None:
    config = make_config(ci=True)

    payload = PayloadStager(config, client=offline_client).stage()

    assert payload.installer_script is None
    assert payload.installer_version == "Unknown"
    assert payload.warnings == ["Failed to download LnOS installer"]
    packages = config.scripts_dir / "pacman_packages" / "CSE_packages.txt"
    assert packages.read_text(encoding="utf-8").splitlines()[0] == "bat"
    assert payload.validation_script == config.scripts_dir / "ci-validation.sh"
    assert "Installer Version: Unknown" in (config.scripts_dir / "VERSION.txt").read_text(encoding="utf-8")


def test_stage_is_idempotent(make_config, online_client) -> None:
    config = make_config()
    stager = PayloadStager(config, client=online_client)

    stager.stage()
    first = _snapshot(config.bundle_dir)
    stager.stage()

    assert _snapshot(config.bundle_dir) == first


def test_installer_version_reads_first_date_header(tmp_path: Path) -> None:
    script = tmp_path / "installer.sh"
    script.write_text("#!/bin/bash\n# @date   v2.1 2024\n# @date later\n", encoding="utf-8")

    assert installer_version(script) == "v2.1 2024"
    assert installer_version(tmp_path / "missing.sh") == "Unknown"


def test_offline_restage_keeps_installer(make_config, online_client, offline_client) -> None:
    config = make_config(ci=True)
    PayloadStager(config, client=online_client).stage()
    staged = config.scripts_dir / "LnOS-installer.sh"
    original = staged.read_bytes()

    payload = PayloadStager(config, client=offline_client).stage()

    assert payload.installer_script == staged
    assert staged.read_bytes() == original
    assert payload.installer_version == "2024-05-01"
    assert not (config.scripts_dir / "LnOS-installer.sh.part").exists()
