"""UTM bundle build pipeline."""

from __future__ import annotations

import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import httpx
import structlog

from .acquisition import DiskImage, InstallerImage, acquire_installer_image, create_disk_image
from .archive import create_archive
from .config import ASAHI_MANUAL_DOWNLOAD_URL, DISK_IMAGE_NAME, INSTALLER_IMAGE_NAME, BundleConfig
from .configuration import ConfigDocument, write_config_document
from .errors import ArtifactError, PreflightError
from .identifiers import IdentifierFactory
from .metadata import build_metadata, write_build_metadata
from .preflight import (
    APPLICATIONS_DIR,
    check_host_platform,
    detect_utm_version,
    ensure_utm,
    utm_installed,
    utm_release,
)
from .staging import PayloadStager, StagedPayload

LOGGER = structlog.get_logger("lnos_utm.bundle.pipeline")


@dataclass
class BuildResult:
    bundle_dir: Path
    config_document: ConfigDocument
    disk_image: DiskImage
    installer_image: InstallerImage
    payload: Optional[StagedPayload] = None
    metadata_path: Optional[Path] = None
    archive_path: Optional[Path] = None
    utm_available: bool = True
    warnings: list[str] = field(default_factory=list)

    def outputs(self) -> dict[str, Optional[Path]]:
        return {
            "utm_bundle": self.bundle_dir,
            "distribution_zip": self.archive_path,
            "disk_image": self.disk_image.path,
            "asahi_iso": self.installer_image.path,
        }


class BundlePipeline:
    def __init__(
        self,
        config: BundleConfig,
        *,
        client: Optional[httpx.Client] = None,
        identifier_factory: Optional[IdentifierFactory] = None,
        applications_dir: Path = APPLICATIONS_DIR,
        host_platform: Optional[str] = None,
    ) -> None:
        self.config = config
        self._client = client
        self._identifier_factory = identifier_factory
        self._applications_dir = applications_dir
        self._host_platform = host_platform

    @property
    def utm_app_dir(self) -> Path:
        return self._applications_dir / "UTM.app"

    def build(self) -> BuildResult:
        config = self.config
        check_host_platform(current=self._host_platform)
        utm_available = ensure_utm(config, client=self._client, applications_dir=self._applications_dir)
        release = utm_release(self.utm_app_dir)
        configuration_version = detect_utm_version(self.utm_app_dir, release)

        LOGGER.info("Building LnOS UTM Virtual Machine with Asahi Linux...", ci=config.ci)
        LOGGER.info("Creating UTM bundle structure...", path=str(config.bundle_dir))
        for directory in (config.bundle_dir, config.data_dir, config.images_dir):
            directory.mkdir(parents=True, exist_ok=True)

        disk_image = create_disk_image(config.disk_image_path, config.disk_size_gb)
        installer_image = acquire_installer_image(config, client=self._client)

        LOGGER.info("Creating UTM configuration...")
        document = write_config_document(
            config,
            config.bundle_dir,
            shared_dir=config.scripts_dir,
            factory=self._identifier_factory,
        )

        payload = PayloadStager(config, client=self._client).stage()
        metadata = build_metadata(
            config,
            configuration_version=configuration_version,
            utm_release=release,
            disk_image=disk_image.path,
            installer_image=installer_image.path,
            scripts_dir=payload.scripts_dir,
            validation_script=payload.validation_script,
            utm_available=utm_available,
        )
        metadata_path = write_build_metadata(config, metadata)

        result = BuildResult(
            bundle_dir=config.bundle_dir,
            config_document=document,
            disk_image=disk_image,
            installer_image=installer_image,
            payload=payload,
            metadata_path=metadata_path,
            utm_available=utm_available,
            warnings=list(payload.warnings),
        )
        if config.ci:
            self._validate(result)

        if config.archive or config.ci:
            result.archive_path = create_archive(config.bundle_dir, config.archive_path())

        if installer_image.placeholder:
            for line in (
                "Asahi Linux installer ISO not included.",
                f"Download from: {ASAHI_MANUAL_DOWNLOAD_URL}",
                "Then add it to the VM as a CD/DVD drive in UTM settings.",
            ):
                LOGGER.warning(line)
            result.warnings.append("installer ISO placeholder")

        if not config.ci and config.open_after_build:
            self._open_in_utm(config.bundle_dir)
        LOGGER.info("UTM virtual machine created successfully!", location=str(config.bundle_dir))
        return result

    def _validate(self, result: BuildResult) -> None:
        LOGGER.info("Validating build artifacts...")
        checks = (
            ("UTM configuration", result.config_document.path.is_file()),
            ("Disk image", result.disk_image.path.is_file()),
            ("Asahi installer ISO", result.installer_image.path.is_file() and result.installer_image.size > 0),
            (
                "LnOS installer script",
                result.payload is not None
                and result.payload.installer_script is not None
                and result.payload.installer_script.is_file(),
            ),
        )
        for label, ok in checks:
            if not ok:
                raise ArtifactError(f"{label} missing or empty")
            LOGGER.info(f"{label} present")

    def _open_in_utm(self, bundle_dir: Path) -> None:
        if not self.utm_app_dir.is_dir():
            LOGGER.info(f"UTM not found in Applications. Please install UTM and open {bundle_dir.name} manually")
            return
        LOGGER.info("Opening UTM...")
        subprocess.run(["open", str(bundle_dir)], check=False)

    def _require_existing_bundle(self) -> tuple[Path, Path]:
        if not utm_installed(self.utm_app_dir):
            raise PreflightError("UTM is not installed. Please install UTM first.")
        disk = self.config.disk_image_path
        iso = self.config.installer_image_path
        if not disk.is_file():
            raise ArtifactError("Disk image not found. Please run `lnos-utm build` first.")
        if not iso.is_file():
            raise ArtifactError("Asahi installer ISO not found. Please run `lnos-utm build` first.")
        return disk, iso

    def build_manual(self) -> Path:
        """Create ``<name>-manual.utm`` with the minimal template for manual import."""

        disk, iso = self._require_existing_bundle()
        LOGGER.info("Creating minimal configuration for manual import...")
        manual_dir = self.config.manual_bundle_dir
        images_dir = manual_dir / "Images"
        images_dir.mkdir(parents=True, exist_ok=True)
        shutil.copy2(disk, images_dir / DISK_IMAGE_NAME)
        shutil.copy2(iso, images_dir / INSTALLER_IMAGE_NAME)
        write_config_document(
            self.config,
            manual_dir,
            template="minimal",
            factory=self._identifier_factory,
        )
        LOGGER.info("Minimal configuration created!", location=str(manual_dir))
        return manual_dir

    def guide(self) -> list[str]:
        """Log the steps for creating the VM by hand in UTM and return them."""

        disk, iso = self._require_existing_bundle()
        config = self.config
        steps = [
            "Open UTM from Applications or Spotlight",
            "Click 'Create a New Virtual Machine' or the '+' button",
            "Select 'Linux' as the operating system",
            "Select 'Other Linux (64-bit ARM)' / aarch64 as the architecture",
            f"Set memory to {config.memory_mb}MB and CPU cores to {config.cpu_cores}",
            f"Use an existing disk image: {disk}",
            "Select 'Shared Network'",
            "Select 'VirtIO-GPU' display at 1280x1024",
            "Name the VM 'LnOS Asahi Linux' and save",
            f"Add a removable CD/DVD drive with: {iso}",
            "Set the CD/DVD drive to boot first",
            "Start the VM and install Asahi Linux to /dev/vda",
            "After first boot run: sudo python3 /media/lnos-scripts/asahi-bootstrap.py",
        ]
        LOGGER.info("LnOS Manual UTM VM Creation Guide")
        for number, step in enumerate(steps, start=1):
            LOGGER.info(f"Step {number}: {step}", step=True)
        if shutil.which("utmctl"):
            LOGGER.info("Once created, control the VM with: utmctl start 'LnOS Asahi Linux'")
        return steps
