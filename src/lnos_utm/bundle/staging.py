"""Stage guest scripts, package lists and documentation into a bundle."""

from __future__ import annotations

import re
import shutil
import socket
import stat
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional

import httpx
import structlog

from ..guest import bootstrap as guest_bootstrap
from .config import BundleConfig
from .payloads import (
    AUTOSTART_SCRIPT,
    CI_VALIDATION_SCRIPT,
    DEFAULT_PACKAGE_LIST_NAME,
    README_TEXT,
    SETUP_INSTRUCTIONS,
    default_package_list,
)
from .sources import DownloadSource, LocalFileSource, fetch_first

LOGGER = structlog.get_logger("lnos_utm.bundle.staging")

INSTALLER_SCRIPT_NAME = "LnOS-installer.sh"
PACKAGES_DIR_NAME = "pacman_packages"
BOOTSTRAP_NAME = "asahi-bootstrap.py"
AUTOSTART_NAME = "utm-autostart.sh"
CI_VALIDATION_NAME = "ci-validation.sh"
SETUP_INSTRUCTIONS_NAME = "SETUP_INSTRUCTIONS.md"
VERSION_NAME = "VERSION.txt"
README_NAME = "README.txt"
UNKNOWN_VERSION = "Unknown"

VERSION_MARKER = re.compile(r"^# @date\s+(.+)$")
EXECUTABLE_SUFFIXES = {".sh", ".py"}


@dataclass
class StagedPayload:
    scripts_dir: Path
    installer_script: Optional[Path] = None
    packages_dir: Optional[Path] = None
    bootstrap: Optional[Path] = None
    autostart: Optional[Path] = None
    validation_script: Optional[Path] = None
    installer_version: str = UNKNOWN_VERSION
    warnings: list[str] = field(default_factory=list)


def installer_version(script: Optional[Path]) -> str:
    """Return the text after the first ``# @date`` header line, or ``Unknown``."""

    if script is None or not script.is_file():
        return UNKNOWN_VERSION
    try:
        with script.open(encoding="utf-8", errors="replace") as handle:
            for line in handle:
                match = VERSION_MARKER.match(line.rstrip("\n"))
                if match:
                    return match.group(1).strip() or UNKNOWN_VERSION
    except OSError:
        return UNKNOWN_VERSION
    return UNKNOWN_VERSION


def make_executable(path: Path) -> None:
    mode = path.stat().st_mode
    path.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


class PayloadStager:
    """Populates ``Data/lnos-scripts``; every step degrades to a warning."""

    def __init__(self, config: BundleConfig, *, client: Optional[httpx.Client] = None) -> None:
        self.config = config
        self.scripts_dir = config.scripts_dir
        self._client = client

    def stage(self) -> StagedPayload:
        LOGGER.info("Creating LnOS startup scripts...")
        self.scripts_dir.mkdir(parents=True, exist_ok=True)
        payload = StagedPayload(scripts_dir=self.scripts_dir)

        payload.installer_script = self._stage_installer_script(payload)
        payload.packages_dir = self._stage_packages()
        payload.bootstrap = self._stage_bootstrap(payload)
        payload.autostart = self._write(AUTOSTART_NAME, AUTOSTART_SCRIPT)
        if self.config.ci:
            payload.validation_script = self._write(CI_VALIDATION_NAME, CI_VALIDATION_SCRIPT)
        self._mark_scripts_executable()

        self._write(SETUP_INSTRUCTIONS_NAME, SETUP_INSTRUCTIONS)
        (self.config.bundle_dir / README_NAME).write_text(README_TEXT, encoding="utf-8")
        payload.installer_version = installer_version(payload.installer_script)
        self._write(VERSION_NAME, self.version_text(payload.installer_version, payload.packages_dir))
        return payload

    def _write(self, name: str, content: str) -> Path:
        path = self.scripts_dir / name
        path.write_text(content, encoding="utf-8")
        return path

    def _stage_installer_script(self, payload: StagedPayload) -> Optional[Path]:
        destination = self.scripts_dir / INSTALLER_SCRIPT_NAME
        local = self.config.project_dir / "scripts" / INSTALLER_SCRIPT_NAME
        if not local.is_file():
            LOGGER.warning(f"{INSTALLER_SCRIPT_NAME} not found, downloading from GitHub...")
        sources = [
            LocalFileSource(local, label="local"),
            DownloadSource(
                str(self.config.installer_script_url),
                client=self._client,
                timeout=self.config.download_timeout,
            ),
        ]
        if fetch_first(sources, destination) is None:
            message = "Failed to download LnOS installer"
            LOGGER.warning(message)
            payload.warnings.append(message)
            if destination.is_file() and destination.stat().st_size > 0:
                LOGGER.warning("Keeping previously staged installer", path=str(destination))
                return destination
            return None
        return destination

    def _stage_packages(self) -> Path:
        destination = self.scripts_dir / PACKAGES_DIR_NAME
        source = self.config.project_dir / "scripts" / PACKAGES_DIR_NAME
        if source.is_dir():
            shutil.copytree(source, destination, dirs_exist_ok=True)
            return destination

        LOGGER.warning("Package lists not found, creating basic CSE package list...")
        destination.mkdir(parents=True, exist_ok=True)
        (destination / DEFAULT_PACKAGE_LIST_NAME).write_text(default_package_list(), encoding="utf-8")
        return destination

    def _stage_bootstrap(self, payload: StagedPayload) -> Optional[Path]:
        destination = self.scripts_dir / BOOTSTRAP_NAME
        try:
            shutil.copyfile(Path(guest_bootstrap.__file__), destination)
        except OSError:
            message = "Bootstrap script not found - will need manual setup"
            LOGGER.warning(message)
            payload.warnings.append(message)
            return None
        return destination

    def _mark_scripts_executable(self) -> None:
        for path in self.scripts_dir.iterdir():
            if path.is_file() and path.suffix in EXECUTABLE_SUFFIXES:
                make_executable(path)

    def version_text(self, version: str, packages_dir: Optional[Path]) -> str:
        config = self.config
        if packages_dir is not None and packages_dir.is_dir():
            entries = sorted(packages_dir.iterdir())
            listing = "\n".join(f"  {entry.name} ({entry.stat().st_size} bytes)" for entry in entries if entry.is_file())
        else:
            listing = ""
        lines = [
            "LnOS UTM Distribution for Apple Silicon",
            f"Build Date: {datetime.now().astimezone():%a %b %d %H:%M:%S %Z %Y}",
            f"Build Host: {socket.gethostname()}",
            "Architecture: aarch64 (Apple Silicon)",
            "Base System: Asahi Linux",
            "UTM Version: Compatible with UTM 4.0+",
            "macOS Requirement: 12.0+ (Monterey or later)",
            "",
            f"Installer Version: {version}",
            "",
            "Package Lists:",
            listing or "  No package lists found",
            "",
            "Build Configuration:",
            f"- Disk Size: {config.disk_size_gb}GB",
            f"- Memory: {config.memory_mb}MB",
            f"- CPU Cores: {config.cpu_cores}",
            f"- Template: {config.template}",
            "- Rosetta: Enabled" if config.template == "full" else "- Rosetta: Disabled",
            "- Clipboard Sharing: Enabled" if config.template == "full" else "- Clipboard Sharing: Disabled",
            "- Shared Directory: Enabled" if config.template == "full" else "- Shared Directory: Disabled",
        ]
        return "\n".join(lines) + "\n"
