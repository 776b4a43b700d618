# === NAVMAP v1 ===
# {
#   "module": "StageAssets.fallbacks",
#   "purpose": "Synthesize lightweight implementations of the asset capabilities",
#   "sections": [
#     {"id": "plugins", "name": "Fallback plugins", "anchor": "PLG", "kind": "api"},
#     {"id": "factory", "name": "Fallback factory", "anchor": "FAC", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Fallback implementations used when the primary asset plugins are unavailable.

Each capability is a factory returning a plugin object with a ``name`` and an
async ``config_resolved`` hook. The hook runs once the host configuration is
final: it fetches into the cache directory on a miss, then mirrors into the
public directory when the public copy is absent.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any, Callable, Dict, Mapping, Optional

import httpx

from .errors import ConfigurationError
from .host import HostConfig
from .io.extraction import extract_zip
from .io.filesystem import ensure_cached, ensure_published, path_exists
from .net import fetch_bytes
from .settings import (
    DOWNLOAD_CAPABILITY,
    SDK_BUNDLE_CAPABILITY,
    ExtractionSettings,
    HttpSettings,
    SdkBundleSettings,
    StageAssetsSettings,
    relative_posix,
    single_component,
)

__all__ = [
    "FallbackOptions",
    "FallbackFactory",
    "DownloadFilePlugin",
    "SdkBundlePlugin",
    "NoopPlugin",
    "noop_factory",
]

LOGGER = logging.getLogger("StageAssets.fallbacks")

ClientFactory = Callable[[], httpx.AsyncClient]


def _subpath(base: Path, relative: str) -> Path:
    parts = [part for part in PurePosixPath(relative.replace("\\", "/")).parts if part != "/"]
    return base.joinpath(*parts)


@dataclass(frozen=True)
class FallbackOptions:
    """Construction-time configuration for :class:`FallbackFactory`."""

    sdk_bundle: SdkBundleSettings = field(default_factory=SdkBundleSettings)
    http: HttpSettings = field(default_factory=HttpSettings)
    extraction: ExtractionSettings = field(default_factory=ExtractionSettings)

    @classmethod
    def from_settings(cls, settings: StageAssetsSettings) -> "FallbackOptions":
        return cls(
            sdk_bundle=settings.sdk_bundle,
            http=settings.http,
            extraction=settings.extraction,
        )


class _FetchingPlugin:
    def __init__(self, options: FallbackOptions, client_factory: Optional[ClientFactory]) -> None:
        self._options = options
        self._client_factory = client_factory

    async def _fetch(self, url: str) -> bytes:
        if self._client_factory is None:
            return await fetch_bytes(url, settings=self._options.http)
        async with self._client_factory() as http:
            return await fetch_bytes(url, client=http)


class DownloadFilePlugin(_FetchingPlugin):
    """Fetch a single file into the cache and mirror it into the public directory."""

    def __init__(
        self,
        url: str,
        filename: str,
        destination: str,
        *,
        options: FallbackOptions,
        client_factory: Optional[ClientFactory] = None,
    ) -> None:
        super().__init__(options, client_factory)
        try:
            self.filename = single_component(filename)
            self.destination = relative_posix(destination)
        except ValueError as exc:
            raise ConfigurationError(f"Invalid download target for {url}: {exc}") from exc
        self.url = url
        self.name = f"fallback-download:{filename}"

    def paths(self, config: HostConfig) -> tuple[Path, Path]:
        cache_path = _subpath(config.cache_dir, self.destination) / self.filename
        public_path = _subpath(config.public_dir, self.destination) / self.filename
        return cache_path, public_path

    async def config_resolved(self, config: HostConfig) -> None:
        cache_path, public_path = self.paths(config)
        await ensure_cached(
            self.url, cache_path, fetch=lambda: self._fetch(self.url), logger=LOGGER
        )
        await ensure_published(cache_path, public_path)


class SdkBundlePlugin(_FetchingPlugin):
    """Fetch and extract the SDK archive, then mirror its marker file."""

    name = "fallback-download-sdk-bundle"

    def __init__(
        self,
        source: Optional[str] = None,
        *,
        options: FallbackOptions,
        client_factory: Optional[ClientFactory] = None,
    ) -> None:
        super().__init__(options, client_factory)
        self.source = source or options.sdk_bundle.source_url

    def paths(self, config: HostConfig) -> tuple[Path, Path, Path]:
        bundle = self._options.sdk_bundle
        extract_root = _subpath(config.cache_dir, bundle.assets_subpath)
        cache_marker = _subpath(extract_root / bundle.bundle_dir, bundle.marker)
        public_marker = _subpath(
            _subpath(config.public_dir, bundle.assets_subpath) / bundle.bundle_dir,
            bundle.marker,
        )
        return extract_root, cache_marker, public_marker

    async def config_resolved(self, config: HostConfig) -> None:
        extract_root, cache_marker, public_marker = self.paths(config)

        if not await path_exists(cache_marker):
            LOGGER.info(
                "downloading SDK bundle from %s",
                self.source,
                extra={"stage": "fetch", "url": self.source},
            )
            payload = await self._fetch(self.source)
            try:
                await extract_zip(
                    payload,
                    extract_root,
                    max_parallel_writes=self._options.extraction.max_parallel_writes,
                    logger=LOGGER,
                )
            except BaseException:
                # the marker gates the cache check; keep it absent for a partial bundle
                cache_marker.unlink(missing_ok=True)
                raise

        await ensure_published(cache_marker, public_marker)


class NoopPlugin:
    """Valid to run, performs no work, named for diagnostics."""

    def __init__(self, name: str) -> None:
        self.name = name

    async def config_resolved(self, config: HostConfig) -> None:
        return None

    def __repr__(self) -> str:
        return f"NoopPlugin({self.name!r})"


def noop_factory(identifier: str) -> Callable[..., NoopPlugin]:
    """Return a factory producing :class:`NoopPlugin` instances for ``identifier``."""

    def _factory(*args: Any, **kwargs: Any) -> NoopPlugin:
        return NoopPlugin(f"noop:{identifier}")

    _factory.__qualname__ = f"noop_factory.<{identifier}>"
    return _factory


def _source_option(options: Any) -> Optional[str]:
    if options is None:
        return None
    if isinstance(options, Mapping):
        return options.get("source") or options.get("from")
    return getattr(options, "source", None)


class FallbackFactory:
    """Builds the synthetic capabilities from construction-time options."""

    def __init__(
        self,
        options: Optional[FallbackOptions] = None,
        *,
        client_factory: Optional[ClientFactory] = None,
    ) -> None:
        self.options = options or FallbackOptions()
        self.client_factory = client_factory
        self._builders: Dict[str, Callable[[], Callable[..., Any]]] = {
            DOWNLOAD_CAPABILITY: self._download,
            SDK_BUNDLE_CAPABILITY: self._download_sdk_bundle,
        }

    @classmethod
    def from_settings(
        cls,
        settings: StageAssetsSettings,
        *,
        client_factory: Optional[ClientFactory] = None,
    ) -> "FallbackFactory":
        return cls(FallbackOptions.from_settings(settings), client_factory=client_factory)

    def supports(self, identifier: str) -> bool:
        return identifier in self._builders

    def create(self, identifier: str) -> Optional[Callable[..., Any]]:
        """Return the fallback capability for ``identifier`` or ``None``."""

        builder = self._builders.get(identifier)
        return builder() if builder is not None else None

    def _download(self) -> Callable[..., DownloadFilePlugin]:
        def Download(url: str, filename: str, destination: str) -> DownloadFilePlugin:
            return DownloadFilePlugin(
                url,
                filename,
                destination,
                options=self.options,
                client_factory=self.client_factory,
            )

        return Download

    def _download_sdk_bundle(self) -> Callable[..., SdkBundlePlugin]:
        def DownloadSdkBundle(options: Any = None) -> SdkBundlePlugin:
            return SdkBundlePlugin(
                _source_option(options),
                options=self.options,
                client_factory=self.client_factory,
            )

        return DownloadSdkBundle
