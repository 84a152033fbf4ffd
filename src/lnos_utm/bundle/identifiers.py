"""Unique identifier generation for UTM configuration entries."""

from __future__ import annotations

import shutil
import subprocess
from datetime import date
from pathlib import Path
from typing import Callable, Optional, Sequence

import structlog

LOGGER = structlog.get_logger("lnos_utm.bundle.identifiers")

KERNEL_UUID_PATH = Path("/proc/sys/kernel/random/uuid")
FALLBACK_PREFIX = "550E8400-E29B-41D4-A716-44665544"

IdentifierProvider = Callable[[int], Optional[str]]


def uuidgen_identifier(_ordinal: int) -> Optional[str]:
    """Ask the host ``uuidgen`` binary for a random UUID."""

    binary = shutil.which("uuidgen")
    if binary is None:
        return None
    try:
        result = subprocess.run([binary], capture_output=True, text=True, check=True, timeout=5)
    except (OSError, subprocess.SubprocessError):
        return None
    return result.stdout.strip() or None


def kernel_identifier(_ordinal: int, path: Path = KERNEL_UUID_PATH) -> Optional[str]:
    try:
        value = path.read_text(encoding="utf-8").strip()
    except OSError:
        return None
    return value or None


def dated_identifier(ordinal: int, today: Optional[date] = None) -> str:
    """Fixed-prefix identifier derived from the ordinal and the day of month.

    Only unique within a single document; two builds on the same day produce
    the same values.
    """

    today = today or date.today()
    return f"{FALLBACK_PREFIX}{ordinal % 10}{today.day:03d}"


DEFAULT_PROVIDERS: tuple[IdentifierProvider, ...] = (uuidgen_identifier, kernel_identifier)


class IdentifierFactory:
    """Hands out identifiers for one configuration document."""

    def __init__(
        self,
        providers: Sequence[IdentifierProvider] = DEFAULT_PROVIDERS,
        *,
        today: Optional[date] = None,
    ) -> None:
        self._providers = tuple(providers)
        self._today = today
        self._ordinal = 0
        self._issued: set[str] = set()

    def next(self) -> str:
        ordinal = self._ordinal
        self._ordinal += 1
        for provider in self._providers:
            value = provider(ordinal)
            if value and value.upper() not in self._issued:
                return self._issue(value)
        LOGGER.debug("Falling back to dated identifier", ordinal=ordinal)
        return self._issue(dated_identifier(ordinal, self._today))

    def _issue(self, value: str) -> str:
        value = value.upper()
        self._issued.add(value)
        return value
