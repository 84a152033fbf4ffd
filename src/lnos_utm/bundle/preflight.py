"""Host checks run before anything is written to disk."""

from __future__ import annotations

import plistlib
import shutil
import subprocess
import sys
from pathlib import Path
from typing import Optional
from xml.parsers.expat import ExpatError

import httpx
import structlog

from .config import BundleConfig
from .errors import PreflightError
from .sources import download_file

LOGGER = structlog.get_logger("lnos_utm.bundle.preflight")

REQUIRED_PLATFORM = "darwin"
APPLICATIONS_DIR = Path("/Applications")
UTM_APP_DIR = APPLICATIONS_DIR / "UTM.app"
UTM_MANUAL_INSTALL_HINT = "Please install UTM manually from https://mac.getutm.app/ or Mac App Store"
DEFAULT_CONFIGURATION_VERSION = 3


def check_host_platform(required: str = REQUIRED_PLATFORM, current: Optional[str] = None) -> None:
    current = current or sys.platform
    if not current.startswith(required):
        raise PreflightError("This tool is designed to run on macOS only")


def utm_installed(app_dir: Path = UTM_APP_DIR) -> bool:
    return shutil.which("utmctl") is not None or app_dir.is_dir()


def _install_with_homebrew(brew: str) -> None:
    LOGGER.info("Installing UTM via Homebrew...")
    result = subprocess.run([brew, "install", "--cask", "utm"], check=False)
    if result.returncode != 0:
        raise PreflightError(f"Failed to install UTM via Homebrew. {UTM_MANUAL_INSTALL_HINT}")
    LOGGER.info("UTM installed successfully via Homebrew!")


def _mount_point(attach_output: bytes) -> Optional[Path]:
    try:
        payload = plistlib.loads(attach_output)
    except (ValueError, ExpatError):
        return None
    for entity in payload.get("system-entities", []):
        mount_point = entity.get("mount-point")
        if mount_point:
            return Path(mount_point)
    return None


def _detach(mount_point: Path) -> None:
    subprocess.run(["hdiutil", "detach", str(mount_point), "-quiet"], check=False)


def _remove(path: Path) -> None:
    try:
        path.unlink()
    except OSError:
        pass


def _install_from_dmg(config: BundleConfig, client: Optional[httpx.Client], applications_dir: Path) -> None:
    LOGGER.info("Homebrew not found. Downloading UTM from GitHub releases...")
    dmg_path = config.output_dir / "UTM.dmg"
    try:
        if client is not None:
            download_file(client, str(config.utm_download_url), dmg_path, timeout=config.download_timeout)
        else:
            with httpx.Client(follow_redirects=True) as http:
                download_file(http, str(config.utm_download_url), dmg_path, timeout=config.download_timeout)
    except (httpx.HTTPError, OSError) as exc:
        _remove(dmg_path)
        raise PreflightError(f"Failed to download UTM: {exc}. {UTM_MANUAL_INSTALL_HINT}") from exc

    LOGGER.info("UTM downloaded successfully. Installing...")
    attach = subprocess.run(
        ["hdiutil", "attach", str(dmg_path), "-nobrowse", "-plist"],
        capture_output=True,
        check=False,
    )
    mount_point = _mount_point(attach.stdout) if attach.returncode == 0 else None
    if mount_point is None or not mount_point.is_dir():
        _remove(dmg_path)
        raise PreflightError("Failed to mount UTM DMG")

    try:
        shutil.copytree(mount_point / "UTM.app", applications_dir / "UTM.app", symlinks=True, dirs_exist_ok=True)
    except OSError as exc:
        raise PreflightError(f"Failed to copy UTM to Applications: {exc}") from exc
    finally:
        _detach(mount_point)
        _remove(dmg_path)
    LOGGER.info("UTM installed successfully!")


def ensure_utm(
    config: BundleConfig,
    *,
    client: Optional[httpx.Client] = None,
    applications_dir: Path = APPLICATIONS_DIR,
) -> bool:
    """Make sure UTM is present, installing it once if allowed.

    Returns ``False`` only in CI mode, where a missing UTM is tolerated and
    only the bundle artifacts are produced.
    """

    app_dir = applications_dir / "UTM.app"
    if utm_installed(app_dir):
        return True
    if config.ci:
        LOGGER.warning("UTM not installed in CI environment. Creating artifacts only.")
        return False
    if not config.auto_install:
        raise PreflightError(f"UTM is not installed. {UTM_MANUAL_INSTALL_HINT}")

    LOGGER.warning("UTM is not installed. Attempting to install UTM automatically...")
    brew = shutil.which("brew")
    if brew is not None:
        _install_with_homebrew(brew)
    else:
        config.output_dir.mkdir(parents=True, exist_ok=True)
        _install_from_dmg(config, client, applications_dir)

    if not utm_installed(app_dir):
        raise PreflightError(f"UTM installation verification failed. {UTM_MANUAL_INSTALL_HINT}")
    return True


def utm_release(app_dir: Path = UTM_APP_DIR) -> Optional[str]:
    """Return ``CFBundleShortVersionString`` of the installed UTM, if readable."""

    info_plist = app_dir / "Contents" / "Info.plist"
    try:
        with info_plist.open("rb") as handle:
            info = plistlib.load(handle)
    except (OSError, ValueError, ExpatError):
        return None
    return str(info.get("CFBundleShortVersionString", "")) or None


def detect_utm_version(app_dir: Path = UTM_APP_DIR, release: Optional[str] = None) -> int:
    """Map the installed UTM release to the configuration format it reads."""

    version = release or utm_release(app_dir)
    if not version:
        return DEFAULT_CONFIGURATION_VERSION
    LOGGER.info("Detected UTM version", version=version)
    major = version.split(".", 1)[0]
    if major in {"4", "5", "6"}:
        return 4
    if major in {"2", "3"}:
        return int(major)
    return DEFAULT_CONFIGURATION_VERSION
