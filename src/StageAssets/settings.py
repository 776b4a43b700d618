# === NAVMAP v1 ===
# {
#   "module": "StageAssets.settings",
#   "purpose": "Pydantic settings models, YAML loading, and environment overrides",
#   "sections": [
#     {"id": "models", "name": "Settings Models", "anchor": "MOD", "kind": "api"},
#     {"id": "environment", "name": "Environment Overrides", "anchor": "ENV", "kind": "helpers"},
#     {"id": "loading", "name": "Loading & Caching", "anchor": "LOA", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Configuration models for the asset acquisition subsystem.

Settings are plain Pydantic v2 models so they can be loaded from YAML, dumped
for diagnostics, and overridden from ``STAGEASSETS_*`` environment variables
through :mod:`pydantic_settings`. Default source URLs for the fallback
capabilities live here rather than in the capability code so tests can inject
their own endpoints.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path, PurePosixPath
from typing import Any, Dict, Mapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import UserConfigError

__all__ = [
    "DOWNLOAD_CAPABILITY",
    "SDK_BUNDLE_CAPABILITY",
    "HttpSettings",
    "LayoutSettings",
    "SdkBundleSettings",
    "ExtractionSettings",
    "CapabilitySettings",
    "LoggingSettings",
    "StageAssetsSettings",
    "EnvironmentOverrides",
    "load_raw_yaml",
    "build_settings",
    "load_settings",
    "get_default_config",
    "invalidate_default_config",
    "relative_posix",
    "single_component",
]

DOWNLOAD_CAPABILITY = "download"
SDK_BUNDLE_CAPABILITY = "download-sdk-bundle"

_DEFAULT_CONFIG_LOCK = threading.Lock()
_DEFAULT_CONFIG_CACHE: Optional["StageAssetsSettings"] = None


def relative_posix(value: Any) -> str:
    """Normalize ``value`` to a relative POSIX path, rejecting ``..`` segments."""

    normalized = str(value).replace("\\", "/").strip("/")
    path = PurePosixPath(normalized)
    if any(part == ".." for part in path.parts):
        raise ValueError(f"path must stay inside its root: {value!r}")
    return normalized


def single_component(value: Any) -> str:
    """Normalize ``value`` to one non-empty path component such as a file name."""

    normalized = relative_posix(value)
    if not normalized or "/" in normalized or normalized == ".":
        raise ValueError(f"expected a single file name: {value!r}")
    return normalized


class HttpSettings(BaseModel):
    """HTTP client settings for asset downloads."""

    model_config = ConfigDict(frozen=True, validate_assignment=False)

    timeout_connect: float = Field(default=10.0, gt=0.0, le=120.0)
    timeout_read: float = Field(default=120.0, gt=0.0, le=3600.0)
    follow_redirects: bool = Field(default=True)
    trust_env: bool = Field(
        default=True,
        description="Honor HTTP(S)_PROXY and NO_PROXY environment variables",
    )
    user_agent: str = Field(default="StageAssets/0.1 (+build-time asset fetch)")


class LayoutSettings(BaseModel):
    """Names of the cache and public directories beneath the project root."""

    cache_dirname: str = Field(default=".cache")
    public_dirname: str = Field(default="public")

    @field_validator("cache_dirname", "public_dirname", mode="before")
    @classmethod
    def _reject_escapes(cls, value: Any) -> str:
        return relative_posix(value)


class SdkBundleSettings(BaseModel):
    """Where the SDK bundle comes from and which file proves it was extracted."""

    source_url: str = Field(
        default="https://cubism.live2d.com/sdk-web/bin/CubismSdkForWeb-5-r.3.zip",
        description="Archive fetched when a plugin does not name its own source",
    )
    assets_subpath: str = Field(default="assets/js")
    bundle_dir: str = Field(default="CubismSdkForWeb-5-r.3")
    marker: str = Field(default="Core/live2dcubismcore.min.js")

    @field_validator("assets_subpath", "bundle_dir", "marker", mode="before")
    @classmethod
    def _reject_escapes(cls, value: Any) -> str:
        return relative_posix(value)


class ExtractionSettings(BaseModel):
    """Archive extraction tuning."""

    max_parallel_writes: int = Field(default=8, ge=1, le=64)


class CapabilitySettings(BaseModel):
    """Candidate sources consulted for each optional capability."""

    modules: Dict[str, str] = Field(
        default_factory=lambda: {
            DOWNLOAD_CAPABILITY: "stage_assets_fetch.build",
            SDK_BUNDLE_CAPABILITY: "stage_assets_sdk.build",
        }
    )
    exports: Dict[str, str] = Field(
        default_factory=lambda: {
            DOWNLOAD_CAPABILITY: "Download",
            SDK_BUNDLE_CAPABILITY: "DownloadSdkBundle",
        }
    )
    fallback_paths: Dict[str, Path] = Field(default_factory=dict)
    entry_point_group: Optional[str] = Field(default=None)


class LoggingSettings(BaseModel):
    """Logging configuration consumed by :func:`StageAssets.logging_utils.setup_logging`."""

    level: str = Field(default="INFO")
    json_output: bool = Field(default=False)
    log_dir: Optional[Path] = Field(default=None)
    max_log_size_mb: int = Field(default=20, ge=1, le=1024)

    @field_validator("level", mode="before")
    @classmethod
    def _normalize_level(cls, value: Any) -> str:
        level = str(value).upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level: {value!r}")
        return level


class StageAssetsSettings(BaseModel):
    """Top-level settings aggregate."""

    http: HttpSettings = Field(default_factory=HttpSettings)
    layout: LayoutSettings = Field(default_factory=LayoutSettings)
    sdk_bundle: SdkBundleSettings = Field(default_factory=SdkBundleSettings)
    extraction: ExtractionSettings = Field(default_factory=ExtractionSettings)
    capabilities: CapabilitySettings = Field(default_factory=CapabilitySettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


# --- Environment overrides -------------------------------------------------------


class EnvironmentOverrides(BaseSettings):
    """Pydantic settings model exposing environment-derived overrides."""

    log_level: Optional[str] = Field(default=None, alias="STAGEASSETS_LOG_LEVEL")
    sdk_source: Optional[str] = Field(default=None, alias="STAGEASSETS_SDK_SOURCE")
    max_parallel_writes: Optional[int] = Field(
        default=None, alias="STAGEASSETS_MAX_PARALLEL_WRITES"
    )
    cache_dirname: Optional[str] = Field(default=None, alias="STAGEASSETS_CACHE_DIRNAME")
    public_dirname: Optional[str] = Field(default=None, alias="STAGEASSETS_PUBLIC_DIRNAME")

    model_config = SettingsConfigDict(
        env_prefix="STAGEASSETS_", case_sensitive=False, extra="ignore"
    )


def _apply_env_overrides(settings: StageAssetsSettings) -> StageAssetsSettings:
    env = EnvironmentOverrides()
    logger = logging.getLogger("StageAssets.settings")
    data = settings.model_dump()

    if env.log_level is not None:
        data["logging"]["level"] = env.log_level
        logger.info("Config overridden: log_level=%s", env.log_level, extra={"stage": "config"})
    if env.sdk_source is not None:
        data["sdk_bundle"]["source_url"] = env.sdk_source
        logger.info("Config overridden: sdk_source=%s", env.sdk_source, extra={"stage": "config"})
    if env.max_parallel_writes is not None:
        data["extraction"]["max_parallel_writes"] = env.max_parallel_writes
        logger.info(
            "Config overridden: max_parallel_writes=%s",
            env.max_parallel_writes,
            extra={"stage": "config"},
        )
    if env.cache_dirname is not None:
        data["layout"]["cache_dirname"] = env.cache_dirname
    if env.public_dirname is not None:
        data["layout"]["public_dirname"] = env.public_dirname
    return _validate(data)


# --- Loading & caching -----------------------------------------------------------


def _validate(raw: Mapping[str, object]) -> StageAssetsSettings:
    try:
        return StageAssetsSettings.model_validate(raw)
    except PydanticValidationError as exc:
        messages = []
        for error in exc.errors():
            location = " -> ".join(str(part) for part in error["loc"])
            messages.append(f"{location}: {error['msg']}")
        raise UserConfigError(
            "Configuration validation failed:\n  " + "\n  ".join(messages)
        ) from exc


def load_raw_yaml(config_path: Path) -> Mapping[str, object]:
    """Read a YAML configuration file and return its top-level mapping."""

    path = Path(config_path).expanduser()
    if not path.exists():
        raise UserConfigError(f"Configuration file not found: {path}")

    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except yaml.YAMLError as exc:
        raise UserConfigError(f"Configuration file '{path}' contains invalid YAML") from exc

    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise UserConfigError("Configuration file must contain a mapping at the root")
    return data


def build_settings(raw: Mapping[str, object]) -> StageAssetsSettings:
    """Validate ``raw`` and apply environment overrides."""

    return _apply_env_overrides(_validate(raw))


def load_settings(config_path: Optional[Path] = None) -> StageAssetsSettings:
    """Load settings from ``config_path`` (or defaults when omitted)."""

    if config_path is None:
        return build_settings({})
    return build_settings(load_raw_yaml(config_path))


def get_default_config(*, copy: bool = False) -> StageAssetsSettings:
    """Return memoised settings constructed from defaults and the environment."""

    global _DEFAULT_CONFIG_CACHE  # noqa: PLW0603

    with _DEFAULT_CONFIG_LOCK:
        if _DEFAULT_CONFIG_CACHE is None:
            _DEFAULT_CONFIG_CACHE = load_settings()
        cached = _DEFAULT_CONFIG_CACHE
    if copy:
        return cached.model_copy(deep=True)
    return cached


def invalidate_default_config() -> None:
    """Invalidate the cached default configuration."""

    global _DEFAULT_CONFIG_CACHE  # noqa: PLW0603

    with _DEFAULT_CONFIG_LOCK:
        _DEFAULT_CONFIG_CACHE = None
