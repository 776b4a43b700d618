# === NAVMAP v1 ===
# {
#   "module": "StageAssets.io.filesystem",
#   "purpose": "Existence checks, atomic cache writes, and the cache/publish primitives",
#   "sections": [
#     {"id": "helpers", "name": "Path helpers", "anchor": "HLP", "kind": "helpers"},
#     {"id": "cache", "name": "Cache-or-fetch store", "anchor": "CAC", "kind": "api"},
#     {"id": "publish", "name": "Publish mirror", "anchor": "PUB", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Filesystem primitives for build-time assets.

Both primitives are idempotent: the cache and public directories are
append-only from this package's point of view, so an existing file is never
overwritten. Only a missing path is a recoverable condition; permission and
disk errors propagate unchanged.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
from pathlib import Path
from typing import Awaitable, Callable, Optional

__all__ = [
    "path_exists",
    "write_bytes_atomic",
    "ensure_cached",
    "ensure_published",
    "temp_sibling",
]

LOGGER = logging.getLogger("StageAssets.io.filesystem")

Fetcher = Callable[[], Awaitable[bytes]]


def _stat_exists(target: Path) -> bool:
    try:
        target.stat()
    except FileNotFoundError:
        return False
    return True


async def path_exists(target: Path) -> bool:
    """Return whether ``target`` exists.

    ``FileNotFoundError`` maps to ``False``; any other ``OSError`` (permission
    denied, I/O error, a file used as a directory component) is raised.
    """

    return await asyncio.to_thread(_stat_exists, Path(target))


def temp_sibling(path: Path) -> Path:
    """Return the temp path next to ``path`` that is renamed over it once complete."""

    return path.with_name(path.name + f".tmp-{os.getpid()}")


def write_bytes_atomic(path: Path, data: bytes) -> None:
    """Write ``data`` to ``path`` through a sibling temp file and ``os.replace``."""

    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = temp_sibling(path)
    try:
        with open(tmp, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise
    os.replace(tmp, path)


def _copy_file(source: Path, destination: Path) -> None:
    destination.parent.mkdir(parents=True, exist_ok=True)
    tmp = temp_sibling(destination)
    try:
        shutil.copyfile(source, tmp)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise
    os.replace(tmp, destination)


async def ensure_cached(
    url: str,
    cache_path: Path,
    *,
    fetch: Fetcher,
    logger: Optional[logging.Logger] = None,
) -> bool:
    """Fetch ``url`` into ``cache_path`` unless it is already present.

    Returns:
        ``True`` when a network fetch happened, ``False`` on a cache hit.
    """

    if await path_exists(cache_path):
        return False

    log = logger or LOGGER
    log.info(
        "downloading %s from %s",
        cache_path.name,
        url,
        extra={"stage": "fetch", "url": url, "path": str(cache_path)},
    )
    payload = await fetch()
    await asyncio.to_thread(write_bytes_atomic, cache_path, payload)
    return True


async def ensure_published(source: Path, public_path: Path) -> bool:
    """Copy ``source`` to ``public_path`` unless the public copy already exists.

    Returns:
        ``True`` when a copy was made.
    """

    if await path_exists(public_path):
        return False
    await asyncio.to_thread(_copy_file, source, public_path)
    LOGGER.debug(
        "published asset",
        extra={"stage": "publish", "path": str(public_path)},
    )
    return True
