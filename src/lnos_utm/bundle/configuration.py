"""Render and validate the UTM ``config.plist`` for a bundle."""

from __future__ import annotations

import plistlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional
from xml.parsers.expat import ExpatError
from xml.sax.saxutils import escape

import structlog

from .config import BundleConfig
from .errors import ConfigurationError
from .identifiers import IdentifierFactory
from .templates import (
    CDROM_UUID_TOKEN,
    CPU_CORES_TOKEN,
    DRIVE_UUID_TOKEN,
    MAIN_UUID_TOKEN,
    MEMORY_SIZE_TOKEN,
    SHARED_DIR_TOKEN,
    TEMPLATES,
    TemplateRenderError,
    render_template,
)

LOGGER = structlog.get_logger("lnos_utm.bundle.configuration")

CONFIG_FILE_NAME = "config.plist"


@dataclass
class ConfigDocument:
    path: Path
    template: str
    configuration_version: int
    identifiers: dict[str, str] = field(default_factory=dict)


def generate_identifiers(template: str, factory: IdentifierFactory) -> dict[str, str]:
    """Generate one identifier per identifier-bearing token in ``template``."""

    identifiers = {"main": factory.next()}
    for name, token in (("drive", DRIVE_UUID_TOKEN), ("cdrom", CDROM_UUID_TOKEN)):
        if token in template:
            identifiers[name] = factory.next()
    return identifiers


def build_substitutions(
    config: BundleConfig,
    identifiers: dict[str, str],
    shared_dir: Optional[Path] = None,
) -> list[tuple[str, str]]:
    """Ordered ``(token, value)`` table for :func:`render_template`.

    Values are XML-escaped; the shared directory is rendered as a ``file://`` URI.
    """

    table: list[tuple[str, str]] = [(MAIN_UUID_TOKEN, identifiers["main"])]
    if "drive" in identifiers:
        table.append((DRIVE_UUID_TOKEN, identifiers["drive"]))
    if "cdrom" in identifiers:
        table.append((CDROM_UUID_TOKEN, identifiers["cdrom"]))
    table.append((CPU_CORES_TOKEN, str(config.cpu_cores)))
    table.append((MEMORY_SIZE_TOKEN, str(config.memory_mb)))
    if shared_dir is not None:
        table.append((SHARED_DIR_TOKEN, shared_dir.resolve().as_uri()))
    return [(token, escape(value)) for token, value in table]


def validate_document(payload: bytes) -> dict[str, Any]:
    """Parse a rendered document and check boot-order references."""

    try:
        document = plistlib.loads(payload)
    except (ValueError, ExpatError) as exc:
        raise ConfigurationError(f"rendered configuration is not a valid property list: {exc}") from exc

    drive_ids = [drive.get("Identifier") for drive in document.get("Drives", [])]
    if len(set(drive_ids)) != len(drive_ids):
        raise ConfigurationError("drive identifiers are not unique")
    boot_order = document.get("System", {}).get("Boot", {}).get("BootOrder", [])
    missing = [entry for entry in boot_order if entry not in drive_ids]
    if missing:
        raise ConfigurationError(f"boot order references undefined drives: {', '.join(missing)}")
    main_id = document.get("Information", {}).get("UUID")
    if main_id in drive_ids:
        raise ConfigurationError("document identifier collides with a drive identifier")
    return document


def write_config_document(
    config: BundleConfig,
    bundle_dir: Path,
    *,
    template: Optional[str] = None,
    shared_dir: Optional[Path] = None,
    factory: Optional[IdentifierFactory] = None,
) -> ConfigDocument:
    template_name = template or config.template
    source = TEMPLATES[template_name]
    identifiers = generate_identifiers(source, factory or IdentifierFactory())
    if SHARED_DIR_TOKEN not in source:
        shared_dir = None
    substitutions = build_substitutions(config, identifiers, shared_dir)

    try:
        rendered = render_template(source, substitutions)
    except TemplateRenderError as exc:
        raise ConfigurationError(str(exc)) from exc

    payload = rendered.encode("utf-8")
    document = validate_document(payload)

    path = bundle_dir / CONFIG_FILE_NAME
    path.write_bytes(payload)
    LOGGER.info("UTM configuration written", path=str(path), template=template_name)
    return ConfigDocument(
        path=path,
        template=template_name,
        configuration_version=int(document.get("ConfigurationVersion", 0)),
        identifiers=identifiers,
    )
