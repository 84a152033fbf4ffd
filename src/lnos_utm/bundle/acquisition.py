"""Disk image and installer ISO acquisition."""

from __future__ import annotations

import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

import httpx
import structlog

from .config import ASAHI_MANUAL_DOWNLOAD_URL, INSTALLER_IMAGE_NAME, BundleConfig
from .errors import ArtifactError
from .sources import ArtifactSource, DownloadSource, LocalFileSource, fetch_first

LOGGER = structlog.get_logger("lnos_utm.bundle.acquisition")

DISK_FORMAT = "qcow2"

REMEDIATION_LINES = (
    "Asahi Linux installer ISO not found locally.",
    "Please download the latest Asahi Linux installer ISO from:",
    ASAHI_MANUAL_DOWNLOAD_URL,
    f"And place it as '{INSTALLER_IMAGE_NAME}' in this directory",
    "",
    "For now, creating a placeholder. You'll need to:",
    "1. Download the Asahi installer ISO",
    "2. Add it to the UTM VM as a CD/DVD drive",
    "3. Boot from the ISO to install Asahi Linux",
)


@dataclass
class DiskImage:
    path: Path
    format: str
    size_gb: int
    placeholder: bool


@dataclass
class InstallerImage:
    path: Path
    size: int
    source: str

    @property
    def placeholder(self) -> bool:
        return self.size == 0


def create_disk_image(path: Path, size_gb: int) -> DiskImage:
    """Allocate a sparse qcow2 image, or a zero-byte placeholder without ``qemu-img``."""

    path.parent.mkdir(parents=True, exist_ok=True)
    LOGGER.info(f"Creating main disk image ({size_gb}GB)", path=str(path))
    qemu_img = shutil.which("qemu-img")
    if qemu_img is None:
        LOGGER.warning("qemu-img not found, creating placeholder disk image; UTM will create the actual disk")
        path.touch()
        return DiskImage(path=path, format=DISK_FORMAT, size_gb=size_gb, placeholder=True)

    result = subprocess.run(
        [qemu_img, "create", "-f", DISK_FORMAT, str(path), f"{size_gb}G"],
        capture_output=True,
        text=True,
        check=False,
    )
    if result.returncode != 0:
        raise ArtifactError(
            f"qemu-img create failed with exit code {result.returncode}: {result.stderr.strip()}"
        )
    LOGGER.info("Disk image created successfully")
    return DiskImage(path=path, format=DISK_FORMAT, size_gb=size_gb, placeholder=False)


def installer_sources(config: BundleConfig, client: Optional[httpx.Client] = None) -> list[ArtifactSource]:
    cache_path = config.output_dir / INSTALLER_IMAGE_NAME
    return [
        LocalFileSource(config.project_dir / INSTALLER_IMAGE_NAME, label="local"),
        LocalFileSource(cache_path, label="cached"),
        DownloadSource(
            str(config.installer_url),
            client=client,
            cache_path=cache_path,
            timeout=config.download_timeout,
        ),
    ]


def acquire_installer_image(
    config: BundleConfig,
    sources: Optional[Sequence[ArtifactSource]] = None,
    *,
    client: Optional[httpx.Client] = None,
) -> InstallerImage:
    destination = config.installer_image_path
    destination.parent.mkdir(parents=True, exist_ok=True)
    LOGGER.info("Preparing Asahi Linux installer...")

    label = fetch_first(sources if sources is not None else installer_sources(config, client), destination)
    if label is not None:
        return InstallerImage(path=destination, size=destination.stat().st_size, source=label)
    if destination.is_file() and destination.stat().st_size > 0:
        LOGGER.warning("Keeping installer ISO from a previous build", path=str(destination))
        return InstallerImage(path=destination, size=destination.stat().st_size, source="existing")

    if config.ci:
        destination.touch()
        raise ArtifactError("Failed to obtain the Asahi installer ISO (missing or empty download)")

    for line in REMEDIATION_LINES:
        LOGGER.warning(line)
    destination.touch()
    return InstallerImage(path=destination, size=0, source="placeholder")
