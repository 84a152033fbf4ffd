"""Exceptions raised while assembling a UTM bundle."""

from __future__ import annotations


class BuildError(RuntimeError):
    """Base class for failures that abort a bundle build."""


class PreflightError(BuildError):
    """Raised when the host cannot build a bundle (wrong platform, UTM missing)."""


class ArtifactError(BuildError):
    """Raised when a required artifact cannot be produced."""


class ConfigurationError(BuildError):
    """Raised when the rendered UTM configuration is invalid."""
