"""Literal files staged into the bundle's shared ``lnos-scripts`` directory."""

from __future__ import annotations

from .config import BOOTSTRAP_SCRIPT_URL, INSTALLER_SCRIPT_URL

DEFAULT_PACKAGES: tuple[str, ...] = (
    "bat",
    "openssh",
    "code",
    "neovim",
    "gcc",
    "gdb",
    "cmake",
    "python",
    "git",
    "curl",
    "wget",
    "htop",
    "tree",
    "vim",
    "nano",
)
DEFAULT_PACKAGE_LIST_NAME = "CSE_packages.txt"

GUEST_MOUNT_POINTS: tuple[str, ...] = ("/media/lnos-scripts", "/mnt/lnos-scripts")
GUEST_INSTALL_DIR = "/root/LnOS/scripts"


def default_package_list() -> str:
    return "\n".join(DEFAULT_PACKAGES) + "\n"


AUTOSTART_SCRIPT = f"""\
#!/bin/bash

# Launches the LnOS installer when the Asahi Linux guest starts.

echo "=========================================="
echo "    Welcome to LnOS on Apple Silicon"
echo "       Running on Asahi Linux"
echo "=========================================="
echo ""

sleep 3

ARCH=$(uname -m)
echo "Detected architecture: $ARCH"
echo ""

SHARED_DIR=""
for candidate in {" ".join(GUEST_MOUNT_POINTS)}; do
    if [[ -d "$candidate" ]]; then
        SHARED_DIR="$candidate"
        break
    fi
done

INSTALL_DIR="{GUEST_INSTALL_DIR}"
INSTALLER="$INSTALL_DIR/LnOS-installer.sh"

if [[ ! -f "$INSTALLER" ]]; then
    echo "Setting up LnOS installer..."
    mkdir -p "$INSTALL_DIR/pacman_packages"

    if [[ -n "$SHARED_DIR" && -f "$SHARED_DIR/LnOS-installer.sh" ]]; then
        cp "$SHARED_DIR/LnOS-installer.sh" "$INSTALL_DIR/"
        cp -r "$SHARED_DIR/pacman_packages"/* "$INSTALL_DIR/pacman_packages/" 2>/dev/null || true
    else
        echo "Downloading LnOS installer..."
        curl -fsSL -o "$INSTALLER" "{INSTALLER_SCRIPT_URL}" || \\
            wget -O "$INSTALLER" "{INSTALLER_SCRIPT_URL}" || \\
            echo "Failed to download installer"

        if [[ ! -f "$INSTALL_DIR/pacman_packages/{DEFAULT_PACKAGE_LIST_NAME}" ]]; then
            cat > "$INSTALL_DIR/pacman_packages/{DEFAULT_PACKAGE_LIST_NAME}" << 'PKGEOF'
{default_package_list()}PKGEOF
        fi
    fi

    chmod +x "$INSTALLER" 2>/dev/null || true
fi

if [[ ! -f "$INSTALLER" ]]; then
    echo "ERROR: LnOS installer not found!"
    echo "Available files in $INSTALL_DIR:"
    ls -la "$INSTALL_DIR" 2>/dev/null || echo "Directory not found"
    echo ""
    echo "Please ensure the installer is available or check network connectivity"
    echo "You can run the bootstrap script manually:"
    echo "  curl -sL {BOOTSTRAP_SCRIPT_URL} | bash"
    echo ""
    echo "Dropping to shell..."
    exec /bin/bash
fi

echo "Starting LnOS installer for Apple Silicon (Asahi Linux)..."
echo ""

cd "$INSTALL_DIR"
exec ./LnOS-installer.sh --target=aarch64
"""

CI_VALIDATION_SCRIPT = f"""\
#!/bin/bash

# Reports the guest environment when the bundle is exercised by a pipeline.

set -e

echo "=== LnOS UTM CI Validation ==="
echo "Timestamp: $(date)"
echo "Host: $(hostname)"
echo "Architecture: $(uname -m)"
echo ""

if [[ -f "/proc/cpuinfo" ]]; then
    echo "CPU Info:"
    grep -E "model name|Hardware" /proc/cpuinfo | head -1 || true
fi

echo ""
echo "Disk Usage:"
df -h /

echo ""
echo "Memory Usage:"
free -h 2>/dev/null || echo "Memory info not available"

echo ""
echo "Network Connectivity:"
if ping -c 1 8.8.8.8 >/dev/null 2>&1; then
    echo "OK   internet connectivity"
else
    echo "FAIL internet connectivity"
fi

echo ""
echo "LnOS Installer Check:"
if [[ -f "{GUEST_INSTALL_DIR}/LnOS-installer.sh" ]]; then
    echo "OK   LnOS installer found"
    chmod +x "{GUEST_INSTALL_DIR}/LnOS-installer.sh"
else
    echo "FAIL LnOS installer not found"
fi

echo ""
echo "Package Lists Check:"
if [[ -d "{GUEST_INSTALL_DIR}/pacman_packages" ]]; then
    echo "OK   package lists directory found"
    ls -la "{GUEST_INSTALL_DIR}/pacman_packages/"
else
    echo "FAIL package lists directory not found"
fi

echo ""
echo "=== CI Validation Complete ==="
"""

SETUP_INSTRUCTIONS = f"""\
# LnOS UTM Setup Instructions for Apple Silicon

## Prerequisites
1. macOS 12.0 (Monterey) or later
2. Apple Silicon Mac (M1, M2, M3, etc.)
3. UTM installed from the Mac App Store or https://mac.getutm.app/
4. At least 8GB free disk space
5. Internet connection for downloading packages

## Quick Start

### Method 1: Automated Setup (Recommended)
1. Double-click the .utm file to open it in UTM
2. Start the VM and boot from the Asahi installer ISO
3. Install Asahi Linux to the main disk
4. Boot into the installed Asahi Linux
5. Run the bootstrap script from the shared folder:
   ```bash
   sudo python3 /media/lnos-scripts/asahi-bootstrap.py
   ```
   or fetch the upstream shell version:
   ```bash
   curl -sL {BOOTSTRAP_SCRIPT_URL} | sudo bash
   ```
6. Reboot; the LnOS installer starts automatically

### Method 2: Manual Setup
1. Install Asahi Linux using the standard installer
2. Copy the LnOS scripts into the VM:
   ```bash
   sudo mkdir -p {GUEST_INSTALL_DIR}
   sudo cp -r /media/lnos-scripts/* {GUEST_INSTALL_DIR}/
   sudo chmod +x {GUEST_INSTALL_DIR}/*.sh
   ```
3. Enable auto-start:
   ```bash
   echo '{GUEST_INSTALL_DIR}/utm-autostart.sh' | sudo tee -a /root/.bashrc
   ```
4. Reboot the VM

## Installation Steps

### Step 1: Boot and Install Asahi Linux
1. Start the VM; it boots from the Asahi installer ISO
2. Follow the Asahi Linux installation wizard:
   - Select "Install Asahi Linux"
   - Choose the disk (/dev/vda)
   - Set up the user account and passwords
   - Wait for the base system installation

### Step 2: Configure LnOS
1. Log in as your user
2. Run `sudo python3 /media/lnos-scripts/asahi-bootstrap.py`
3. Or copy the scripts manually and set up autostart

### Step 3: Complete the LnOS Installation
The LnOS installer offers:
- Desktop environments: Gnome, KDE, Hyprland, DWM, or TTY only
- Package profiles: CSE (Computer Science Education) or Custom
- Automatic package installation and system configuration

## Troubleshooting

### Installer Won't Start
- Check that `{GUEST_INSTALL_DIR}/LnOS-installer.sh` exists and is executable
- Run it manually: `sudo /root/start-lnos.sh`
- Check network connectivity for downloads

### Asahi Installation Issues
- Make sure there is enough disk space (8GB minimum)
- Use a stable internet connection
- Check the UTM console for error messages

### Package Installation Errors
- Verify internet connectivity inside the VM
- Update package databases: `sudo pacman -Syu` (Arch-based Asahi)
- Check available disk space

### Performance Issues
- Allocate more RAM in UTM settings (4GB+ recommended)
- Increase the CPU core count if available
- Enable Rosetta for x86_64 compatibility

## Package Customization
Edit `{GUEST_INSTALL_DIR}/pacman_packages/{DEFAULT_PACKAGE_LIST_NAME}`, one package per line.

## Support
- GitHub Issues: https://github.com/uta-lug-nuts/LnOS/issues
"""

README_TEXT = """\
LnOS for Apple Silicon Macs (UTM Virtual Machine)

This UTM virtual machine provides the same LnOS installation experience
as the x86_64 ISO and Raspberry Pi images on Apple Silicon Macs.

QUICK START:
1. Double-click this .utm file to open it in UTM
2. Start the VM and install Asahi Linux when prompted
3. After installation, run the bootstrap script or set up LnOS manually
4. The LnOS installer starts automatically on the next boot

REQUIREMENTS:
- macOS 12.0+ (Monterey or later)
- Apple Silicon Mac (M1/M2/M3/M4)
- UTM virtualization app
- 8GB+ free disk space
- Internet connection

WHAT'S INCLUDED:
- Pre-configured UTM virtual machine
- Asahi Linux installer ISO (when it could be obtained at build time)
- LnOS installer script with aarch64 support
- Auto-start script and guest bootstrap
- Shared folder with setup scripts and package lists

For detailed setup instructions, see:
Data/lnos-scripts/SETUP_INSTRUCTIONS.md

Visit https://github.com/uta-lug-nuts/LnOS for more information.
"""
