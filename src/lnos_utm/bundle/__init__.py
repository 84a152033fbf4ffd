"""UTM bundle construction for the LnOS installer."""

from .config import BundleConfig
from .errors import ArtifactError, BuildError, ConfigurationError, PreflightError
from .pipeline import BuildResult, BundlePipeline

__all__ = [
    "BundleConfig",
    "BundlePipeline",
    "BuildResult",
    "BuildError",
    "PreflightError",
    "ArtifactError",
    "ConfigurationError",
]
