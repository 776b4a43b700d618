"""Resilient build-time asset acquisition.

Optional build plugins are resolved through ordered candidates and degrade to
lightweight fallbacks that fetch remote assets once into a cache directory and
mirror them into the build's public directory.
"""

from __future__ import annotations

from .errors import (
    ArchiveError,
    CapabilityUnavailable,
    ConfigurationError,
    DownloadFailure,
    StageAssetsError,
    UserConfigError,
)
from .fallbacks import FallbackFactory, FallbackOptions
from .host import BuildHost, HostConfig, load_manifest
from .io import extract_zip
from .plugins import (
    CapabilityRequest,
    ModuleCandidate,
    PathCandidate,
    ResolvedCapability,
    load_optional_plugin,
    resolve_capability,
    resolve_default_capabilities,
)
from .settings import StageAssetsSettings, load_settings

__version__ = "0.1.0"

__all__ = [
    "ArchiveError",
    "BuildHost",
    "CapabilityRequest",
    "CapabilityUnavailable",
    "ConfigurationError",
    "DownloadFailure",
    "FallbackFactory",
    "FallbackOptions",
    "HostConfig",
    "ModuleCandidate",
    "PathCandidate",
    "ResolvedCapability",
    "StageAssetsError",
    "StageAssetsSettings",
    "UserConfigError",
    "__version__",
    "extract_zip",
    "load_manifest",
    "load_optional_plugin",
    "load_settings",
    "resolve_capability",
    "resolve_default_capabilities",
]
