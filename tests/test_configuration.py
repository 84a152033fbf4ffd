from __future__ import annotations

import plistlib
from pathlib import Path

import pytest

from lnos_utm.bundle.configuration import (
    build_substitutions,
    generate_identifiers,
    validate_document,
    write_config_document,
)
from lnos_utm.bundle.errors import ConfigurationError
from lnos_utm.bundle.templates import FULL_TEMPLATE, MINIMAL_TEMPLATE, SHARED_DIR_TOKEN


def test_full_document_is_referentially_consistent(tmp_path: Path, make_config, identifier_factory) -> None:
    config = make_config(cpu_cores=6, memory_mb=8192)
    config.bundle_dir.mkdir(parents=True)
    shared = config.scripts_dir
    shared.mkdir(parents=True)

    document = write_config_document(config, config.bundle_dir, shared_dir=shared, factory=identifier_factory)

    assert document.path == config.bundle_dir / "config.plist"
    assert document.configuration_version == 4
    with document.path.open("rb") as handle:
        payload = plistlib.load(handle)
    drive_ids = [drive["Identifier"] for drive in payload["Drives"]]
    assert payload["System"]["Boot"]["BootOrder"] == drive_ids
    assert payload["Information"]["UUID"] == document.identifiers["main"]
    assert len(set(document.identifiers.values())) == 3
    assert payload["System"]["CPU"]["CoreCount"] == 6
    assert payload["System"]["Memory"]["MemorySize"] == 8192
    assert payload["SharedDirectories"][0]["DirectoryURL"] == shared.resolve().as_uri()
    assert "PLACEHOLDER_" not in document.path.read_text(encoding="utf-8")


def test_minimal_document_ignores_shared_dir(tmp_path: Path, make_config, identifier_factory) -> None:
    config = make_config(template="minimal")
    config.bundle_dir.mkdir(parents=True)

    document = write_config_document(
        config, config.bundle_dir, shared_dir=tmp_path / "unused", factory=identifier_factory
    )

    assert document.template == "minimal"
    assert set(document.identifiers) == {"main", "drive"}
    with document.path.open("rb") as handle:
        payload = plistlib.load(handle)
    assert "SharedDirectories" not in payload


def test_generate_identifiers_only_for_present_tokens(identifier_factory) -> None:
    assert set(generate_identifiers(FULL_TEMPLATE, identifier_factory)) == {"main", "drive", "cdrom"}
    assert set(generate_identifiers(MINIMAL_TEMPLATE, identifier_factory)) == {"main", "drive"}


def test_substitutions_order_and_shared_dir_uri(tmp_path: Path, make_config) -> None:
    shared = tmp_path / "lnos scripts"
    table = build_substitutions(make_config(cpu_cores=2), {"main": "M", "drive": "D"}, shared)

    assert [token for token, _ in table][:2] == ["PLACEHOLDER_UUID", "PLACEHOLDER_DRIVE_UUID"]
    values = dict(table)
    assert values["PLACEHOLDER_CPU_CORES"] == "2"
    assert values[SHARED_DIR_TOKEN] == shared.resolve().as_uri()
    assert "%20" in values[SHARED_DIR_TOKEN]


def test_full_template_without_shared_dir_fails(make_config, identifier_factory) -> None:
    config = make_config()
    config.bundle_dir.mkdir(parents=True)

    with pytest.raises(ConfigurationError, match="PLACEHOLDER_SHARED_DIR"):
        write_config_document(config, config.bundle_dir, factory=identifier_factory)


def test_validate_document_rejects_dangling_boot_order() -> None:
    payload = plistlib.dumps(
        {
            "Information": {"UUID": "M"},
            "System": {"Boot": {"BootOrder": ["D", "X"]}},
            "Drives": [{"Identifier": "D"}],
        }
    )

    with pytest.raises(ConfigurationError, match="X"):
        validate_document(payload)


def test_validate_document_rejects_duplicate_drives() -> None:
    payload = plistlib.dumps({"Drives": [{"Identifier": "D"}, {"Identifier": "D"}]})

    with pytest.raises(ConfigurationError, match="unique"):
        validate_document(payload)


def test_validate_document_rejects_garbage() -> None:
    with pytest.raises(ConfigurationError):
        validate_document(b"<plist><dict><key>broken")
