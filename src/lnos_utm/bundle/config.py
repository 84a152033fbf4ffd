"""Configuration model for a UTM bundle build."""

from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field, HttpUrl, field_validator

from ..common.settings import DEFAULT_INSTALLER_URL, BuildSettings

INSTALLER_SCRIPT_URL = "https://raw.githubusercontent.com/uta-lug-nuts/LnOS/main/scripts/LnOS-installer.sh"
BOOTSTRAP_SCRIPT_URL = "https://raw.githubusercontent.com/uta-lug-nuts/LnOS/main/utm-templates/asahi-bootstrap.sh"
UTM_DOWNLOAD_URL = "https://github.com/utmapp/UTM/releases/latest/download/UTM.dmg"
ASAHI_MANUAL_DOWNLOAD_URL = "https://asahilinux.org/fedora/"

DISK_IMAGE_NAME = "disk0.qcow2"
INSTALLER_IMAGE_NAME = "asahi-installer.iso"
SHARED_DIR_NAME = "lnos-scripts"
VM_DISPLAY_NAME = "LnOS Asahi Linux"
GUEST_ARCHITECTURE = "aarch64"


def default_bundle_name(today: Optional[date] = None) -> str:
    today = today or date.today()
    return f"lnos-asahi-{today:%Y.%m.%d}"


class BundleConfig(BaseModel):
    name: str = Field(default_factory=default_bundle_name)
    output_dir: Path = Field(default_factory=lambda: Path.cwd() / "out")
    project_dir: Path = Field(default_factory=Path.cwd)
    disk_size_gb: int = Field(default=20, ge=1)
    memory_mb: int = 4096
    cpu_cores: int = 4
    template: Literal["full", "minimal"] = "full"
    installer_url: HttpUrl = Field(default=DEFAULT_INSTALLER_URL, validate_default=True)
    installer_script_url: HttpUrl = Field(default=INSTALLER_SCRIPT_URL, validate_default=True)
    utm_download_url: HttpUrl = Field(default=UTM_DOWNLOAD_URL, validate_default=True)
    download_timeout: float = Field(default=60.0, gt=0)
    archive: bool = False
    ci: bool = False
    github_actions: bool = False
    github_output: Optional[Path] = None
    auto_install: bool = True
    open_after_build: bool = True

    @field_validator("cpu_cores")
    @classmethod
    def _positive_cores(cls, value: int) -> int:
        if value < 1:
            raise ValueError("cpu_cores must be a positive integer")
        return value

    @field_validator("memory_mb")
    @classmethod
    def _minimum_memory(cls, value: int) -> int:
        if value < 1024:
            raise ValueError("memory_mb must be at least 1024 MiB")
        return value

    @field_validator("name")
    @classmethod
    def _plain_name(cls, value: str) -> str:
        if not value or "/" in value or value in {".", ".."}:
            raise ValueError("name must be a non-empty file name")
        return value

    @classmethod
    def from_settings(cls, settings: BuildSettings, **overrides) -> "BundleConfig":
        data: dict = {
            "ci": settings.ci,
            "github_actions": settings.github_actions,
            "github_output": settings.github_output,
            "installer_url": settings.installer_url,
            "download_timeout": settings.download_timeout,
        }
        if settings.output_dir is not None:
            data["output_dir"] = settings.output_dir
        data.update({key: value for key, value in overrides.items() if value is not None})
        return cls.model_validate(data)

    @property
    def bundle_dir(self) -> Path:
        return self.output_dir / f"{self.name}.utm"

    @property
    def images_dir(self) -> Path:
        return self.bundle_dir / "Images"

    @property
    def data_dir(self) -> Path:
        return self.bundle_dir / "Data"

    @property
    def scripts_dir(self) -> Path:
        return self.data_dir / SHARED_DIR_NAME

    @property
    def disk_image_path(self) -> Path:
        return self.images_dir / DISK_IMAGE_NAME

    @property
    def installer_image_path(self) -> Path:
        return self.images_dir / INSTALLER_IMAGE_NAME

    @property
    def manual_bundle_dir(self) -> Path:
        return self.output_dir / f"{self.name}-manual.utm"

    def archive_path(self) -> Path:
        suffix = "-ci" if self.ci else ""
        return self.output_dir / f"{self.name}{suffix}.zip"
