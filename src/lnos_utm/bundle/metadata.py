"""Build metadata and machine-readable CI result lines."""

from __future__ import annotations

import json
import platform
import socket
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from .config import GUEST_ARCHITECTURE, VM_DISPLAY_NAME, BundleConfig

METADATA_FILE_NAME = "build-metadata.json"


def _relative(path: Optional[Path], base: Path) -> Optional[str]:
    if path is None:
        return None
    try:
        relative = path.relative_to(base)
    except ValueError:
        return str(path)
    suffix = "/" if path.is_dir() else ""
    return f"{relative.as_posix()}{suffix}"


def build_metadata(
    config: BundleConfig,
    *,
    configuration_version: int,
    utm_release: Optional[str] = None,
    disk_image: Path,
    installer_image: Path,
    scripts_dir: Path,
    validation_script: Optional[Path] = None,
    utm_available: bool = True,
) -> dict[str, Any]:
    base = config.bundle_dir
    artifacts: dict[str, Any] = {
        "disk_image": _relative(disk_image, base),
        "asahi_iso": _relative(installer_image, base),
        "lnos_scripts": _relative(scripts_dir, base),
    }
    if validation_script is not None:
        artifacts["validation_script"] = _relative(validation_script, base)
    return {
        "build_info": {
            "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "hostname": socket.gethostname(),
            "architecture": platform.machine(),
            "os": platform.system(),
            "ci_environment": config.ci,
            "github_actions": config.github_actions,
            "utm_available": utm_available,
        },
        "vm_config": {
            "name": VM_DISPLAY_NAME,
            "architecture": GUEST_ARCHITECTURE,
            "memory_mb": config.memory_mb,
            "cpu_cores": config.cpu_cores,
            "disk_size_gb": config.disk_size_gb,
            "template": config.template,
            "utm_version": utm_release,
            "configuration_version": configuration_version,
        },
        "artifacts": artifacts,
    }


def write_build_metadata(config: BundleConfig, metadata: dict[str, Any]) -> Path:
    path = config.data_dir / METADATA_FILE_NAME
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(metadata, indent=2), encoding="utf-8")
    return path


def result_lines(outputs: dict[str, Optional[Path]]) -> list[str]:
    return [f"{key}={value}" for key, value in outputs.items() if value is not None]


def publish_results(outputs: dict[str, Optional[Path]], github_output: Optional[Path] = None) -> list[str]:
    """Return ``key=value`` lines, appending them to ``$GITHUB_OUTPUT`` when given."""

    lines = result_lines(outputs)
    if github_output is not None:
        with github_output.open("a", encoding="utf-8") as handle:
            for line in lines:
                handle.write(f"{line}\n")
    return lines
