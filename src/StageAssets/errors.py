# === NAVMAP v1 ===
# {
#   "module": "StageAssets.errors",
#   "purpose": "Define the exception hierarchy used across capability resolution, fetching, and extraction",
#   "sections": [
#     {"id": "base", "name": "Base Exceptions", "anchor": "BAS", "kind": "api"},
#     {"id": "capability", "name": "Capability Errors", "anchor": "CAP", "kind": "api"},
#     {"id": "download", "name": "Download & Archive Errors", "anchor": "DLA", "kind": "api"},
#     {"id": "configuration", "name": "Configuration Errors", "anchor": "CFG", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Exception hierarchy shared across capability resolution, fetching, and extraction.

Asset acquisition spans optional plugin loading, HTTP retrieval, archive
materialisation, and publishing into the host's public directory. Only a
missing capability is recovered locally; every other category is fatal to the
enclosing build step because a missing asset makes the build output wrong.
Filesystem failures are deliberately not wrapped and surface as ``OSError``.
"""

from __future__ import annotations

from typing import Optional

__all__ = [
    "StageAssetsError",
    "CapabilityUnavailable",
    "DownloadFailure",
    "ArchiveError",
    "ConfigurationError",
    "UserConfigError",
    "ConfigError",
]


class StageAssetsError(RuntimeError):
    """Base exception for asset resolution, download, or extraction failures."""


class CapabilityUnavailable(StageAssetsError):
    """Raised by a candidate that cannot provide the requested capability."""

    def __init__(self, message: str, *, source: Optional[str] = None) -> None:
        super().__init__(message)
        self.source = source


class DownloadFailure(StageAssetsError):
    """Raised when an HTTP download attempt fails."""

    def __init__(
        self,
        message: str,
        *,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code
        self.reason = reason


class ArchiveError(StageAssetsError):
    """Raised when an archive is corrupt or one of its entries cannot be written."""

    def __init__(self, message: str, *, entry: Optional[str] = None) -> None:
        super().__init__(message)
        self.entry = entry


class ConfigurationError(StageAssetsError):
    """Raised when settings or manifests fail validation."""


class UserConfigError(RuntimeError):
    """Raised when CLI arguments or YAML configuration inputs are invalid."""


# Backwards compatibility alias used throughout the package.
ConfigError = UserConfigError
