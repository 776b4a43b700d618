"""Build host boundary: the finalized configuration and the plugin setup loop.

The real build host is external; this module models only what the asset
plugins rely on. A host resolves its configuration (project root plus cache and
public directories), then awaits each plugin's ``config_resolved`` hook in list
order. The asset list itself is data, loaded from a YAML manifest.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Optional, Protocol, Sequence

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from .errors import ConfigurationError, UserConfigError
from .settings import (
    DOWNLOAD_CAPABILITY,
    SDK_BUNDLE_CAPABILITY,
    StageAssetsSettings,
    relative_posix,
    single_component,
)

__all__ = [
    "HostConfig",
    "HostPlugin",
    "BuildHost",
    "DownloadEntry",
    "SdkBundleEntry",
    "AssetManifest",
    "load_manifest",
    "build_plugins",
]

LOGGER = logging.getLogger("StageAssets.host")


@dataclass(frozen=True)
class HostConfig:
    """Finalized host configuration handed to ``config_resolved`` hooks."""

    root: Path
    cache_dir: Path
    public_dir: Path

    @classmethod
    def from_root(
        cls, root: Path, settings: Optional[StageAssetsSettings] = None
    ) -> "HostConfig":
        layout = (settings or StageAssetsSettings()).layout
        resolved = Path(root).expanduser().resolve()
        return cls(
            root=resolved,
            cache_dir=resolved / layout.cache_dirname,
            public_dir=resolved / layout.public_dirname,
        )


class HostPlugin(Protocol):
    name: str

    async def config_resolved(self, config: HostConfig) -> None: ...


class BuildHost:
    """Iterates plugins during setup the way a build tool would."""

    def __init__(self, plugins: Iterable[HostPlugin]) -> None:
        self.plugins: List[HostPlugin] = list(plugins)

    async def run(self, config: HostConfig) -> None:
        for plugin in self.plugins:
            hook = getattr(plugin, "config_resolved", None)
            if hook is None:
                continue
            LOGGER.debug("running plugin hook", extra={"stage": "setup", "source": plugin.name})
            await hook(config)


class DownloadEntry(BaseModel):
    url: str
    filename: str
    destination: str = Field(default="")

    @field_validator("filename", mode="before")
    @classmethod
    def _check_filename(cls, value: Any) -> str:
        return single_component(value)

    @field_validator("destination", mode="before")
    @classmethod
    def _check_destination(cls, value: Any) -> str:
        return relative_posix(value)


class SdkBundleEntry(BaseModel):
    source: Optional[str] = Field(default=None)


class AssetManifest(BaseModel):
    """Assets a build needs, one plugin per entry."""

    downloads: List[DownloadEntry] = Field(default_factory=list)
    sdk_bundles: List[SdkBundleEntry] = Field(default_factory=list)


def load_manifest(path: Path) -> AssetManifest:
    """Load an :class:`AssetManifest` from YAML."""

    manifest_path = Path(path).expanduser()
    if not manifest_path.exists():
        raise UserConfigError(f"Manifest not found: {manifest_path}")
    try:
        with manifest_path.open("r", encoding="utf-8") as handle:
            raw = yaml.safe_load(handle)
    except yaml.YAMLError as exc:
        raise UserConfigError(f"Manifest '{manifest_path}' contains invalid YAML") from exc
    if raw is None:
        raw = {}
    if not isinstance(raw, Mapping):
        raise UserConfigError("Manifest must contain a mapping at the root")
    try:
        return AssetManifest.model_validate(raw)
    except PydanticValidationError as exc:
        raise ConfigurationError(f"Invalid manifest '{manifest_path}': {exc}") from exc


def build_plugins(
    manifest: AssetManifest, capabilities: Mapping[str, Any]
) -> Sequence[HostPlugin]:
    """Instantiate plugins for ``manifest`` through the resolved capabilities.

    SDK bundles come first, matching the order the assets are consumed in.
    """

    plugins: List[HostPlugin] = []
    sdk_factory = capabilities[SDK_BUNDLE_CAPABILITY]
    download_factory = capabilities[DOWNLOAD_CAPABILITY]
    for bundle in manifest.sdk_bundles:
        options = {"source": bundle.source} if bundle.source else None
        plugins.append(sdk_factory(options))
    for entry in manifest.downloads:
        plugins.append(download_factory(entry.url, entry.filename, entry.destination))
    return plugins
