#!/usr/bin/env python3
"""Prepare an Asahi Linux guest to run the LnOS installer.

Copied into the bundle as ``asahi-bootstrap.py`` and executed inside the guest,
where only the Python standard library is available.
"""

from __future__ import annotations

import argparse
import platform
import shutil
import subprocess
import sys
import time
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Sequence

INSTALLER_URL = "https://raw.githubusercontent.com/uta-lug-nuts/LnOS/main/scripts/LnOS-installer.sh"
GUM_RPM_URL = "https://github.com/charmbracelet/gum/releases/latest/download/gum-0.14.5-1.aarch64.rpm"
GUM_DEB_URL = "https://github.com/charmbracelet/gum/releases/latest/download/gum_0.14.5_arm64.deb"

INSTALL_DIR = Path("/root/LnOS/scripts")
SHARED_MOUNTS = (Path("/mnt/lnos-scripts"), Path("/media/lnos-scripts"))
SYSTEMD_UNIT_PATH = Path("/etc/systemd/system/lnos-autostart.service")
BASHRC_PATH = Path("/root/.bashrc")
START_SCRIPT_PATH = Path("/root/start-lnos.sh")
AUTOSTART_MARKER = "# LnOS Auto-start"

ASAHI_PACKAGES = """\
# CSE packages for Asahi Linux (Apple Silicon)
bat
openssh
code
neovim
gcc
gdb
cmake
python
git
curl
wget
htop
tree
vim
nano
"""

SYSTEMD_UNIT = f"""\
[Unit]
Description=LnOS Auto-start
After=network.target
Wants=network.target

[Service]
Type=oneshot
ExecStart={INSTALL_DIR}/LnOS-installer.sh --target=aarch64
StandardInput=tty
StandardOutput=tty
StandardError=tty
TTYPath=/dev/tty1
TTYReset=yes
TTYVHangup=yes
RemainAfterExit=yes
User=root

[Install]
WantedBy=multi-user.target
"""

BASHRC_BLOCK = f"""
{AUTOSTART_MARKER}
if [[ $(tty) == "/dev/tty1" ]] && [[ ! -f /tmp/lnos-autostart-run ]]; then
    touch /tmp/lnos-autostart-run
    echo "Starting LnOS installer..."
    cd {INSTALL_DIR}
    ./LnOS-installer.sh --target=aarch64
fi
"""

START_SCRIPT = f"""\
#!/bin/bash
echo "Starting LnOS installer for Apple Silicon..."
cd {INSTALL_DIR}
./LnOS-installer.sh --target=aarch64
"""

GREEN = "\033[0;32m"
YELLOW = "\033[1;33m"
RED = "\033[0;31m"
RESET = "\033[0m"


def _say(label: str, color: str, message: str) -> None:
    if sys.stdout.isatty():
        print(f"{color}[{label}]{RESET} {message}")
    else:
        print(f"[{label}] {message}")


def info(message: str) -> None:
    _say("INFO", GREEN, message)


def warning(message: str) -> None:
    _say("WARNING", YELLOW, message)


def error(message: str) -> None:
    _say("ERROR", RED, message)


@dataclass
class Command:
    argv: list[str]
    # Best-effort commands (gum packages) may fail without stopping the bootstrap.
    optional: bool = False


@dataclass
class PackagePlan:
    manager: str
    commands: list[Command] = field(default_factory=list)


def detect_package_plan(which=shutil.which) -> Optional[PackagePlan]:
    """Pick the update/install commands for the guest's package manager."""

    if which("pacman"):
        return PackagePlan(
            "pacman",
            [
                Command(["pacman", "-Syu", "--noconfirm"]),
                Command(["pacman", "-S", "--noconfirm", "--needed", "gum", "base-devel", "git", "wget", "curl"]),
            ],
        )
    if which("dnf"):
        return PackagePlan(
            "dnf",
            [
                Command(["dnf", "update", "-y"]),
                Command(["dnf", "install", "-y", "git", "wget", "curl", "gcc", "make"]),
                Command(["wget", "-O", "/tmp/gum.rpm", GUM_RPM_URL], optional=True),
                Command(["rpm", "-i", "/tmp/gum.rpm"], optional=True),
            ],
        )
    if which("apt"):
        return PackagePlan(
            "apt",
            [
                Command(["apt", "update"]),
                Command(["apt", "install", "-y", "git", "wget", "curl", "build-essential"]),
                Command(["wget", "-O", "/tmp/gum.deb", GUM_DEB_URL], optional=True),
                Command(["dpkg", "-i", "/tmp/gum.deb"], optional=True),
                Command(["apt-get", "install", "-f", "-y"], optional=True),
            ],
        )
    return None


class Bootstrapper:
    def __init__(
        self,
        *,
        install_dir: Path = INSTALL_DIR,
        shared_mounts: Sequence[Path] = SHARED_MOUNTS,
        systemd_unit_path: Path = SYSTEMD_UNIT_PATH,
        bashrc_path: Path = BASHRC_PATH,
        start_script_path: Path = START_SCRIPT_PATH,
        dry_run: bool = False,
        which=shutil.which,
    ) -> None:
        self.install_dir = install_dir
        self.shared_mounts = tuple(shared_mounts)
        self.systemd_unit_path = systemd_unit_path
        self.bashrc_path = bashrc_path
        self.start_script_path = start_script_path
        self.dry_run = dry_run
        self._which = which

    @property
    def installer_path(self) -> Path:
        return self.install_dir / "LnOS-installer.sh"

    def run(self, argv: list[str], *, optional: bool = False) -> bool:
        if self.dry_run:
            print("+ " + " ".join(argv))
            return True
        result = subprocess.run(argv, check=False)
        if result.returncode != 0:
            if optional:
                return False
            raise subprocess.CalledProcessError(result.returncode, argv)
        return True

    def write(self, path: Path, content: str, *, append: bool = False, mode: Optional[int] = None) -> None:
        if self.dry_run:
            print(f"+ {'append to' if append else 'write'} {path}")
            return
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a" if append else "w", encoding="utf-8") as handle:
            handle.write(content)
        if mode is not None:
            path.chmod(mode)

    def install_packages(self) -> Optional[str]:
        plan = detect_package_plan(self._which)
        if plan is None:
            warning("No supported package manager found (pacman, dnf, apt); skipping package installation")
            return None
        info(f"Updating system packages with {plan.manager}...")
        for command in plan.commands:
            self.run(command.argv, optional=command.optional)
        return plan.manager

    def shared_mount(self) -> Optional[Path]:
        for mount in self.shared_mounts:
            if mount.is_dir():
                return mount
        return None

    def stage_installer(self) -> bool:
        info("Setting up LnOS directory structure...")
        packages_dir = self.install_dir / "pacman_packages"
        if self.dry_run:
            print(f"+ mkdir -p {packages_dir}")
        else:
            packages_dir.mkdir(parents=True, exist_ok=True)

        mount = self.shared_mount()
        if mount is not None:
            info(f"Copying LnOS installer from UTM share {mount}...")
            shared_installer = mount / "LnOS-installer.sh"
            shared_packages = mount / "pacman_packages"
            if self.dry_run:
                print(f"+ cp {shared_installer} {self.installer_path}")
                print(f"+ cp -r {shared_packages} {packages_dir}")
                if shared_installer.is_file():
                    return True
            else:
                if shared_installer.is_file():
                    shutil.copy2(shared_installer, self.installer_path)
                if shared_packages.is_dir():
                    shutil.copytree(shared_packages, packages_dir, dirs_exist_ok=True)

        if not self.installer_path.is_file():
            info("Downloading LnOS installer from GitHub...")
            if self.dry_run:
                print(f"+ download {INSTALLER_URL} {self.installer_path}")
                return False
            try:
                with urllib.request.urlopen(INSTALLER_URL, timeout=60) as response:
                    self.installer_path.write_bytes(response.read())
            except (urllib.error.URLError, OSError) as exc:
                warning(f"Failed to download installer - please install manually ({exc})")

        if self.installer_path.is_file():
            if self.dry_run:
                print(f"+ chmod 755 {self.installer_path}")
            else:
                self.installer_path.chmod(0o755)
            return True
        return False

    def write_package_list(self) -> Path:
        info("Creating Asahi Linux package list...")
        path = self.install_dir / "pacman_packages" / "CSE_packages.txt"
        self.write(path, ASAHI_PACKAGES)
        return path

    def install_autostart(self) -> None:
        info("Setting up auto-start mechanism...")
        if self._which("systemctl"):
            self.write(self.systemd_unit_path, SYSTEMD_UNIT)
            self.run(["systemctl", "enable", self.systemd_unit_path.name])

        existing = self.bashrc_path.read_text(encoding="utf-8") if self.bashrc_path.exists() else ""
        if "LnOS-installer" not in existing:
            info("Adding to root bashrc as backup...")
            self.write(self.bashrc_path, BASHRC_BLOCK, append=True)

        self.write(self.start_script_path, START_SCRIPT, mode=0o755)


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Set up the LnOS installer inside an Asahi Linux guest")
    parser.add_argument("--dry-run", action="store_true", help="Print commands and file writes without applying them")
    parser.add_argument("--no-reboot", action="store_true", help="Do not reboot when setup completes")
    parser.add_argument("--reboot-delay", type=int, default=10, help="Seconds to wait before rebooting")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None, *, machine: Optional[str] = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    info("Setting up LnOS on Asahi Linux...")

    machine = machine or platform.machine()
    if machine != "aarch64":
        error("This script requires Apple Silicon (aarch64) architecture")
        return 1

    bootstrapper = Bootstrapper(dry_run=args.dry_run)
    try:
        bootstrapper.install_packages()
    except subprocess.CalledProcessError as exc:
        error(f"Package installation failed: {' '.join(exc.cmd)} exited with {exc.returncode}")
        return 1
    bootstrapper.stage_installer()
    bootstrapper.write_package_list()
    bootstrapper.install_autostart()

    info("LnOS setup completed!")
    info("The installer will start automatically on next boot.")
    info(f"Or run manually with: sudo {START_SCRIPT_PATH}")
    if args.no_reboot or args.dry_run:
        return 0
    info(f"Rebooting in {args.reboot_delay} seconds...")
    time.sleep(args.reboot_delay)
    bootstrapper.run(["reboot"])
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
