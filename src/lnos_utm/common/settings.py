"""Environment-driven settings shared by the lnos-utm commands."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_INSTALLER_URL = "https://cdn.asahilinux.org/os/installer/latest/asahi-installer.iso"


def env_field(default, env_name: str):
    return Field(default, validation_alias=env_name)


class BuildSettings(BaseSettings):
    """Process environment consumed by a bundle build.

    Read once at CLI start-up and folded into ``BundleConfig``; nothing else
    in the package looks at ``os.environ``.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    ci: bool = env_field(False, "CI")
    github_actions: bool = env_field(False, "GITHUB_ACTIONS")
    github_output: Optional[Path] = env_field(None, "GITHUB_OUTPUT")
    output_dir: Optional[Path] = env_field(None, "LNOS_UTM_OUTPUT_DIR")
    installer_url: HttpUrl = env_field(DEFAULT_INSTALLER_URL, "LNOS_UTM_INSTALLER_URL")
    download_timeout: float = env_field(60.0, "LNOS_UTM_DOWNLOAD_TIMEOUT")
    log_level: str = env_field("INFO", "LNOS_UTM_LOG_LEVEL")
    log_json: bool = env_field(False, "LNOS_UTM_LOG_JSON")

    @field_validator("ci", "github_actions", "log_json", mode="before")
    @classmethod
    def _parse_flag(cls, value):
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "yes", "on"}
        return value

    @field_validator("github_output", "output_dir", mode="before")
    @classmethod
    def _blank_path_is_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value
