"""UTM ``config.plist`` templates and placeholder substitution."""

from __future__ import annotations

import re
from typing import Iterable

TOKEN_PATTERN = re.compile(r"PLACEHOLDER_[A-Z_]+")

MAIN_UUID_TOKEN = "PLACEHOLDER_UUID"
DRIVE_UUID_TOKEN = "PLACEHOLDER_DRIVE_UUID"
CDROM_UUID_TOKEN = "PLACEHOLDER_CDROM_UUID"
CPU_CORES_TOKEN = "PLACEHOLDER_CPU_CORES"
MEMORY_SIZE_TOKEN = "PLACEHOLDER_MEMORY_SIZE"
SHARED_DIR_TOKEN = "file://PLACEHOLDER_SHARED_DIR"


class TemplateRenderError(ValueError):
    """Raised when a rendered template still contains placeholder tokens."""

    def __init__(self, tokens: list[str]) -> None:
        super().__init__(f"unsubstituted placeholder tokens: {', '.join(tokens)}")
        self.tokens = tokens


FULL_TEMPLATE = """\
<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE plist PUBLIC "-//Apple//DTD PLIST 1.0//EN" "http://www.apple.com/DTDs/PropertyList-1.0.dtd">
<plist version="1.0">
<dict>
    <key>Backend</key>
    <string>Apple</string>
    <key>ConfigurationVersion</key>
    <integer>4</integer>
    <key>Information</key>
    <dict>
        <key>IconURL</key>
        <string></string>
        <key>Name</key>
        <string>LnOS Asahi Linux</string>
        <key>Notes</key>
        <string>LnOS custom Arch Linux installer for Apple Silicon Macs</string>
        <key>UUID</key>
        <string>PLACEHOLDER_UUID</string>
    </dict>
    <key>System</key>
    <dict>
        <key>Architecture</key>
        <string>aarch64</string>
        <key>Boot</key>
        <dict>
            <key>BootOrder</key>
            <array>
                <string>PLACEHOLDER_DRIVE_UUID</string>
                <string>PLACEHOLDER_CDROM_UUID</string>
            </array>
        </dict>
        <key>CPU</key>
        <dict>
            <key>CoreCount</key>
            <integer>PLACEHOLDER_CPU_CORES</integer>
        </dict>
        <key>Memory</key>
        <dict>
            <key>MemorySize</key>
            <integer>PLACEHOLDER_MEMORY_SIZE</integer>
        </dict>
    </dict>
    <key>Virtualization</key>
    <dict>
        <key>Keyboard</key>
        <dict>
            <key>IsEnabled</key>
            <true/>
        </dict>
        <key>PointingDevice</key>
        <dict>
            <key>IsEnabled</key>
            <true/>
        </dict>
        <key>Rosetta</key>
        <dict>
            <key>IsEnabled</key>
            <true/>
        </dict>
        <key>Clipboard</key>
        <dict>
            <key>IsEnabled</key>
            <true/>
        </dict>
    </dict>
    <key>Drives</key>
    <array>
        <dict>
            <key>Identifier</key>
            <string>PLACEHOLDER_DRIVE_UUID</string>
            <key>ImageName</key>
            <string>disk0.qcow2</string>
            <key>ImageType</key>
            <string>Disk</string>
            <key>Interface</key>
            <string>VirtIO</string>
            <key>Removable</key>
            <false/>
        </dict>
        <dict>
            <key>Identifier</key>
            <string>PLACEHOLDER_CDROM_UUID</string>
            <key>ImageName</key>
            <string>asahi-installer.iso</string>
            <key>ImageType</key>
            <string>CD</string>
            <key>Interface</key>
            <string>USB</string>
            <key>Removable</key>
            <true/>
        </dict>
    </array>
    <key>Networks</key>
    <array>
        <dict>
            <key>Enabled</key>
            <true/>
            <key>Mode</key>
            <string>Shared</string>
        </dict>
    </array>
    <key>Displays</key>
    <array>
        <dict>
            <key>Hardware</key>
            <string>VirtIO-GPU</string>
            <key>PixelsHigh</key>
            <integer>1024</integer>
            <key>PixelsWide</key>
            <integer>1280</integer>
        </dict>
    </array>
    <key>SharedDirectories</key>
    <array>
        <dict>
            <key>DirectoryURL</key>
            <string>file://PLACEHOLDER_SHARED_DIR</string>
            <key>Name</key>
            <string>lnos-scripts</string>
            <key>ReadOnly</key>
            <true/>
        </dict>
    </array>
</dict>
</plist>
"""

MINIMAL_TEMPLATE = """\
<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE plist PUBLIC "-//Apple//DTD PLIST 1.0//EN" "http://www.apple.com/DTDs/PropertyList-1.0.dtd">
<plist version="1.0">
<dict>
    <key>Backend</key>
    <string>Apple</string>
    <key>ConfigurationVersion</key>
    <integer>1</integer>
    <key>Information</key>
    <dict>
        <key>Name</key>
        <string>LnOS Asahi Linux</string>
        <key>UUID</key>
        <string>PLACEHOLDER_UUID</string>
    </dict>
    <key>System</key>
    <dict>
        <key>Architecture</key>
        <string>aarch64</string>
        <key>CPU</key>
        <dict>
            <key>CoreCount</key>
            <integer>PLACEHOLDER_CPU_CORES</integer>
        </dict>
        <key>Memory</key>
        <dict>
            <key>MemorySize</key>
            <integer>PLACEHOLDER_MEMORY_SIZE</integer>
        </dict>
    </dict>
    <key>Drives</key>
    <array>
        <dict>
            <key>Identifier</key>
            <string>PLACEHOLDER_DRIVE_UUID</string>
            <key>ImageName</key>
            <string>disk0.qcow2</string>
            <key>ImageType</key>
            <string>Disk</string>
        </dict>
    </array>
    <key>Networks</key>
    <array>
        <dict>
            <key>Enabled</key>
            <true/>
        </dict>
    </array>
    <key>Displays</key>
    <array>
        <dict>
            <key>PixelsHigh</key>
            <integer>1024</integer>
            <key>PixelsWide</key>
            <integer>1280</integer>
        </dict>
    </array>
</dict>
</plist>
"""

TEMPLATES: dict[str, str] = {
    "full": FULL_TEMPLATE,
    "minimal": MINIMAL_TEMPLATE,
}


def placeholder_tokens(text: str) -> list[str]:
    """Return the distinct placeholder tokens left in ``text``, in order of appearance."""

    seen: dict[str, None] = {}
    for match in TOKEN_PATTERN.finditer(text):
        seen.setdefault(match.group(0), None)
    return list(seen)


def render_template(template: str, substitutions: Iterable[tuple[str, str]]) -> str:
    """Replace each token with its value, literally and in the given order."""

    rendered = template
    for token, value in substitutions:
        rendered = rendered.replace(token, value)
    remaining = placeholder_tokens(rendered)
    if remaining:
        raise TemplateRenderError(remaining)
    return rendered
