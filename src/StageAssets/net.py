# === NAVMAP v1 ===
# {
#   "module": "StageAssets.net",
#   "purpose": "Build HTTPX async clients and fetch asset bodies with descriptive failures",
#   "sections": [
#     {"id": "globals", "name": "Transport override", "anchor": "GLB", "kind": "constants"},
#     {"id": "helpers", "name": "Client construction helpers", "anchor": "HELP", "kind": "helpers"},
#     {"id": "api", "name": "Public API", "anchor": "API", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""HTTPX networking used by the cache-or-fetch store.

Requests are plain GETs without authentication. Clients are short lived and
bound to the running event loop, so callers either pass their own
:class:`httpx.AsyncClient` or let :func:`fetch_bytes` open one per call. Tests
swap the transport through :func:`configure_transport` (see
:func:`StageAssets.testing.use_mock_transport`).
"""

from __future__ import annotations

import contextlib
import logging
import threading
from typing import AsyncIterator, Optional

import httpx

from .errors import DownloadFailure
from .settings import HttpSettings

__all__ = [
    "build_async_client",
    "open_client",
    "fetch_bytes",
    "configure_transport",
    "reset_transport",
]

LOGGER = logging.getLogger("StageAssets.net")

# --- Transport override ----------------------------------------------------------

_TRANSPORT_LOCK = threading.Lock()
_TRANSPORT_OVERRIDE: Optional[httpx.AsyncBaseTransport] = None


def configure_transport(transport: Optional[httpx.AsyncBaseTransport]) -> None:
    """Route every client built by this module through ``transport``."""

    global _TRANSPORT_OVERRIDE  # noqa: PLW0603

    with _TRANSPORT_LOCK:
        _TRANSPORT_OVERRIDE = transport


def reset_transport() -> None:
    """Drop any transport installed with :func:`configure_transport`."""

    configure_transport(None)


# --- Client construction helpers -------------------------------------------------


def _timeout(settings: HttpSettings) -> httpx.Timeout:
    return httpx.Timeout(
        settings.timeout_read,
        connect=settings.timeout_connect,
    )


def build_async_client(settings: Optional[HttpSettings] = None) -> httpx.AsyncClient:
    """Return a new :class:`httpx.AsyncClient` configured from ``settings``."""

    cfg = settings or HttpSettings()
    with _TRANSPORT_LOCK:
        transport = _TRANSPORT_OVERRIDE
    return httpx.AsyncClient(
        timeout=_timeout(cfg),
        follow_redirects=cfg.follow_redirects,
        trust_env=cfg.trust_env,
        headers={"User-Agent": cfg.user_agent},
        transport=transport,
    )


@contextlib.asynccontextmanager
async def open_client(
    client: Optional[httpx.AsyncClient] = None,
    settings: Optional[HttpSettings] = None,
) -> AsyncIterator[httpx.AsyncClient]:
    """Yield ``client`` unchanged, or a fresh client closed on exit."""

    if client is not None:
        yield client
        return
    async with build_async_client(settings) as owned:
        yield owned


# --- Public API ------------------------------------------------------------------


async def fetch_bytes(
    url: str,
    *,
    client: Optional[httpx.AsyncClient] = None,
    settings: Optional[HttpSettings] = None,
) -> bytes:
    """GET ``url`` and return the fully buffered body.

    Raises:
        DownloadFailure: On connection errors or any non-2xx response. The
            message embeds the URL, the status code and the reason phrase.
    """

    async with open_client(client, settings) as http:
        try:
            response = await http.get(url)
        except httpx.HTTPError as exc:
            raise DownloadFailure(f'Failed to download "{url}" ({exc})', url=url) from exc

        if not response.is_success:
            reason = response.reason_phrase
            raise DownloadFailure(
                f'Failed to download "{url}" ({response.status_code} {reason})',
                url=url,
                status_code=response.status_code,
                reason=reason,
            )
        LOGGER.debug(
            "download complete",
            extra={"stage": "fetch", "url": url, "bytes": len(response.content)},
        )
        return response.content
