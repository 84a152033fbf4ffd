"""Logging setup for lnos-utm commands."""

from __future__ import annotations

import logging
import sys
from typing import Any, Optional

import structlog
from structlog.contextvars import bind_contextvars


_logging_configured = False

RESET = "\033[0m"
LEVEL_STYLES: dict[str, tuple[str, str]] = {
    "debug": ("DEBUG", "\033[0;36m"),
    "info": ("INFO", "\033[0;32m"),
    "warning": ("WARNING", "\033[1;33m"),
    "error": ("ERROR", "\033[0;31m"),
    "critical": ("ERROR", "\033[0;31m"),
}
STEP_STYLE = ("STEP", "\033[0;34m")

# Keys that structlog or our own processors add and that should not be echoed
# back as ``key=value`` pairs on console lines.
_HIDDEN_KEYS = {"level", "timestamp", "service", "step"}


def _log_level(level: str | int | None) -> int:
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        normalized = level.strip().upper()
        numeric = logging.getLevelName(normalized)
        if isinstance(numeric, int):
            return numeric
    return logging.INFO


class PrefixedConsoleRenderer:
    """Render events as ``[LEVEL] message key=value`` lines.

    Events carrying ``step=True`` are rendered with a ``[STEP]`` prefix.
    """

    def __init__(self, colors: bool = True) -> None:
        self._colors = colors

    def __call__(self, _logger: Any, method_name: str, event_dict: dict[str, Any]) -> str:
        event = str(event_dict.pop("event", ""))
        if event_dict.get("step"):
            label, color = STEP_STYLE
        else:
            label, color = LEVEL_STYLES.get(method_name, (method_name.upper(), ""))
        extras = " ".join(
            f"{key}={value}" for key, value in event_dict.items() if key not in _HIDDEN_KEYS
        )
        prefix = f"{color}[{label}]{RESET}" if self._colors and color else f"[{label}]"
        line = f"{prefix} {event}" if event else prefix
        if extras:
            line = f"{line} {extras}"
        return line


def configure_logging(
    service_name: str,
    level: str | int | None = None,
    *,
    json_logs: bool = False,
    colors: Optional[bool] = None,
) -> None:
    """Configure structlog for console (or JSON) output on stdout."""

    global _logging_configured
    numeric_level = _log_level(level)
    if not _logging_configured:
        logging.basicConfig(level=numeric_level, format="%(message)s", stream=sys.stdout)
        _logging_configured = True
    else:
        logging.getLogger().setLevel(numeric_level)

    if colors is None:
        colors = sys.stdout.isatty()

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
    ]
    if json_logs:
        processors.extend(
            [
                structlog.processors.TimeStamper(fmt="iso", utc=True),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.dict_tracebacks,
                structlog.processors.EventRenamer("message"),
                structlog.processors.JSONRenderer(),
            ]
        )
    else:
        processors.append(PrefixedConsoleRenderer(colors=colors))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )
    bind_contextvars(service=service_name)
