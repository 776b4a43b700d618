# === NAVMAP v1 ===
# {
#   "module": "StageAssets.plugins",
#   "purpose": "Resolve optional build capabilities through ordered candidates with fallback",
#   "sections": [
#     {"id": "candidates", "name": "Candidate providers", "anchor": "CND", "kind": "api"},
#     {"id": "results", "name": "Resolution results", "anchor": "RES", "kind": "api"},
#     {"id": "resolver", "name": "Resolver", "anchor": "RSV", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Capability resolution for optional build plugins.

A capability is a named factory (for example ``Download``) that a primary
package may or may not provide. Resolution walks an ordered list of candidate
providers, returns the first one exposing a callable of the expected name, and
otherwise substitutes the synthetic implementation from
:class:`StageAssets.fallbacks.FallbackFactory` (or a named no-op). Resolution
never raises: a missing optional capability must not abort the build host's
setup, so the only trace of a fallback is one warning.
"""

from __future__ import annotations

import hashlib
import importlib
import importlib.util
import logging
from dataclasses import dataclass, field
from importlib import metadata
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Protocol, Tuple

from .errors import CapabilityUnavailable
from .fallbacks import FallbackFactory, noop_factory
from .settings import (
    DOWNLOAD_CAPABILITY,
    SDK_BUNDLE_CAPABILITY,
    StageAssetsSettings,
    get_default_config,
)

__all__ = [
    "Candidate",
    "ModuleCandidate",
    "PathCandidate",
    "EntryPointCandidate",
    "CapabilityRequest",
    "ResolutionAttempt",
    "ResolvedCapability",
    "resolve_capability",
    "build_request",
    "load_optional_plugin",
    "resolve_default_capabilities",
]

LOGGER = logging.getLogger("StageAssets.plugins")

FALLBACK_SOURCE = "fallback"
NOOP_SOURCE = "noop"


# --- Candidate providers ---------------------------------------------------------


class Candidate(Protocol):
    """A source that may provide a capability module."""

    def describe(self) -> str: ...

    def load(self) -> Any: ...


@dataclass(frozen=True)
class ModuleCandidate:
    """An installed module referenced by dotted name."""

    module_name: str

    def describe(self) -> str:
        return self.module_name

    def load(self) -> Any:
        return importlib.import_module(self.module_name)


@dataclass(frozen=True)
class PathCandidate:
    """A pre-built module loaded straight from a file path."""

    path: Path

    def describe(self) -> str:
        return self.path.as_uri() if self.path.is_absolute() else str(self.path)

    def load(self) -> Any:
        if not self.path.is_file():
            raise CapabilityUnavailable(
                f"Cannot find module '{self.path}'", source=self.describe()
            )
        digest = hashlib.sha1(str(self.path).encode("utf-8")).hexdigest()[:12]
        module_name = f"_stageassets_prebuilt_{self.path.stem}_{digest}"
        spec = importlib.util.spec_from_file_location(module_name, self.path)
        if spec is None or spec.loader is None:
            raise CapabilityUnavailable(
                f"Cannot load module from '{self.path}'", source=self.describe()
            )
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
        return module


@dataclass(frozen=True)
class EntryPointCandidate:
    """A capability advertised by an installed distribution's entry point."""

    group: str
    name: str

    def describe(self) -> str:
        return f"entry-point:{self.group}:{self.name}"

    def load(self) -> Any:
        matches = list(metadata.entry_points().select(group=self.group, name=self.name))
        if not matches:
            raise CapabilityUnavailable(
                f"No entry point '{self.name}' in group '{self.group}'",
                source=self.describe(),
            )
        return matches[0].load()


# --- Resolution results ----------------------------------------------------------


@dataclass(frozen=True)
class CapabilityRequest:
    """Identifier, expected export, and ordered candidates for one capability."""

    identifier: str
    export_name: str
    candidates: Tuple[Candidate, ...]

    def __post_init__(self) -> None:
        if not self.candidates:
            raise ValueError(f"capability '{self.identifier}' needs at least one candidate")


@dataclass(frozen=True)
class ResolutionAttempt:
    source: str
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class ResolvedCapability:
    """The factory that satisfied a capability and where it came from."""

    identifier: str
    factory: Callable[..., Any]
    source: str
    attempts: Tuple[ResolutionAttempt, ...] = field(default_factory=tuple)

    @property
    def is_fallback(self) -> bool:
        return self.source in {FALLBACK_SOURCE, NOOP_SOURCE}

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        return self.factory(*args, **kwargs)


# --- Resolver --------------------------------------------------------------------


def _attempt(candidate: Candidate, export_name: str) -> Tuple[Optional[Callable[..., Any]], str]:
    """Return ``(factory, "")`` on success or ``(None, reason)`` on failure."""

    label = candidate.describe()
    try:
        module = candidate.load()
        resolver = getattr(module, export_name, None)
    except Exception as exc:  # pylint: disable=broad-except
        return None, str(exc) or exc.__class__.__name__
    if callable(resolver):
        return resolver, ""
    return None, f'Export "{export_name}" is not a function on module "{label}".'


def _fallback_for(
    identifier: str, factory: FallbackFactory, log: logging.Logger
) -> Tuple[Callable[..., Any], str]:
    try:
        synthesized = factory.create(identifier)
    except Exception:  # pylint: disable=broad-except
        log.exception(
            "fallback construction failed",
            extra={"stage": "resolve", "capability": identifier},
        )
        synthesized = None
    if synthesized is None:
        return noop_factory(identifier), NOOP_SOURCE
    return synthesized, FALLBACK_SOURCE


def resolve_capability(
    request: CapabilityRequest,
    *,
    factory: Optional[FallbackFactory] = None,
    logger: Optional[logging.Logger] = None,
) -> ResolvedCapability:
    """Resolve ``request`` to the first candidate exposing a callable export.

    Candidates are tried in order and the first success short-circuits. When
    all of them fail a single warning carrying the aggregated reasons is logged
    and the fallback (or no-op) capability is returned instead of raising.
    """

    log = logger or LOGGER
    attempts: list[ResolutionAttempt] = []
    for candidate in request.candidates:
        resolver, reason = _attempt(candidate, request.export_name)
        if resolver is not None:
            attempts.append(ResolutionAttempt(source=candidate.describe()))
            log.debug(
                "capability resolved",
                extra={
                    "stage": "resolve",
                    "capability": request.identifier,
                    "source": candidate.describe(),
                },
            )
            return ResolvedCapability(
                identifier=request.identifier,
                factory=resolver,
                source=candidate.describe(),
                attempts=tuple(attempts),
            )
        attempts.append(ResolutionAttempt(source=candidate.describe(), error=reason))

    details = "; ".join(f"{attempt.source}: {attempt.error}" for attempt in attempts)
    synthesized, source = _fallback_for(
        request.identifier, factory or FallbackFactory(), log
    )
    implementation = (
        "lightweight fallback implementation" if source == FALLBACK_SOURCE else "no-op stub"
    )
    log.warning(
        'Optional plugin "%s" unavailable (%s). Using %s.',
        request.identifier,
        details,
        implementation,
        extra={
            "stage": "resolve",
            "capability": request.identifier,
            "source": source,
            "error": attempts[-1].error,
        },
    )
    return ResolvedCapability(
        identifier=request.identifier,
        factory=synthesized,
        source=source,
        attempts=tuple(attempts),
    )


def build_request(
    identifier: str,
    export_name: Optional[str] = None,
    *,
    settings: Optional[StageAssetsSettings] = None,
) -> CapabilityRequest:
    """Assemble the candidate list for ``identifier`` from ``settings``."""

    cfg = (settings or get_default_config()).capabilities
    export = export_name or cfg.exports.get(identifier, identifier)
    candidates: list[Candidate] = [ModuleCandidate(cfg.modules.get(identifier, identifier))]
    prebuilt = cfg.fallback_paths.get(identifier)
    if prebuilt is not None:
        candidates.append(PathCandidate(Path(prebuilt).expanduser().resolve()))
    if cfg.entry_point_group:
        candidates.append(EntryPointCandidate(cfg.entry_point_group, identifier))
    return CapabilityRequest(identifier=identifier, export_name=export, candidates=tuple(candidates))


def load_optional_plugin(
    identifier: str,
    export_name: Optional[str] = None,
    *,
    settings: Optional[StageAssetsSettings] = None,
    factory: Optional[FallbackFactory] = None,
    logger: Optional[logging.Logger] = None,
) -> ResolvedCapability:
    """Resolve a well-known capability, falling back when it is unavailable."""

    cfg = settings or get_default_config()
    request = build_request(identifier, export_name, settings=cfg)
    return resolve_capability(
        request,
        factory=factory or FallbackFactory.from_settings(cfg),
        logger=logger,
    )


def resolve_default_capabilities(
    settings: Optional[StageAssetsSettings] = None,
    *,
    factory: Optional[FallbackFactory] = None,
    logger: Optional[logging.Logger] = None,
) -> Dict[str, ResolvedCapability]:
    """Resolve the download and SDK bundle capabilities used by the build host."""

    cfg = settings or get_default_config()
    shared = factory or FallbackFactory.from_settings(cfg)
    return {
        identifier: load_optional_plugin(identifier, settings=cfg, factory=shared, logger=logger)
        for identifier in (DOWNLOAD_CAPABILITY, SDK_BUNDLE_CAPABILITY)
    }
