"""Distribution archive for a finished bundle."""

from __future__ import annotations

import shutil
from pathlib import Path

import structlog

LOGGER = structlog.get_logger("lnos_utm.bundle.archive")


def create_archive(bundle_dir: Path, archive_path: Path) -> Path:
    """Zip ``bundle_dir`` so the archive unpacks to ``<name>.utm/``."""

    LOGGER.info("Creating distribution ZIP...", bundle=str(bundle_dir))
    if archive_path.exists():
        archive_path.unlink()
    base_name = archive_path.with_suffix("")
    created = shutil.make_archive(
        str(base_name),
        "zip",
        root_dir=bundle_dir.parent,
        base_dir=bundle_dir.name,
    )
    LOGGER.info("Distribution ZIP created", path=created)
    return Path(created)
