# === NAVMAP v1 ===
# {
#   "module": "StageAssets.io.extraction",
#   "purpose": "Stream an in-memory ZIP archive into a directory tree with concurrent entry writes",
#   "sections": [
#     {"id": "job", "name": "Extraction job bookkeeping", "anchor": "JOB", "kind": "helpers"},
#     {"id": "paths", "name": "Member path validation", "anchor": "PTH", "kind": "helpers"},
#     {"id": "api", "name": "Archive extraction", "anchor": "API", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Archive extraction for downloaded SDK bundles.

The archive is opened once from the buffered download and its entries are
advanced one at a time. Directory entries are created inline. Each file entry
has its parent created and its compressed stream opened on the event loop, then
the copy into the output file runs as its own task in a worker thread, so many
writes can be in flight while the next entry is read. ``max_parallel_writes``
bounds that set; with a bound of one the next entry is requested only after
the previous file has been written.

An :class:`ExtractionJob` tracks the in-flight writes. The job settles when the
archive has reported its last entry and no write is pending, or as soon as any
entry fails. Both conditions are re-checked after every counter change and
after the end-of-entries signal because either may happen last. The first
failure wins; writes that were already in flight are drained and their errors
ignored. Each file is written to a sibling temp file and renamed into place
only once complete, so a failed entry never leaves a partial file at its final
path.
Files written before a failure are left in place.
"""

from __future__ import annotations

import asyncio
import io
import logging
import os
import shutil
import zipfile
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import IO, List, Optional

from ..errors import ArchiveError
from .filesystem import temp_sibling

__all__ = ["ExtractionJob", "ExtractionResult", "extract_zip"]

LOGGER = logging.getLogger("StageAssets.io.extraction")


# --- Extraction job bookkeeping --------------------------------------------------


@dataclass
class ExtractionResult:
    """Paths produced by a successful extraction.

    ``files`` is in write-completion order, which is not archive order.
    """

    files: List[Path]
    directories: List[Path]


@dataclass
class ExtractionJob:
    """Pending-write counter plus the end-of-entries flag for one extraction."""

    destination: Path
    pending: int = 0
    read_complete: bool = False
    error: Optional[BaseException] = None
    files: List[Path] = field(default_factory=list)
    directories: List[Path] = field(default_factory=list)
    _settled: asyncio.Event = field(default_factory=asyncio.Event, repr=False)

    @property
    def completed(self) -> bool:
        return self.error is None and self.read_complete and self.pending == 0

    def begin_write(self) -> None:
        self.pending += 1

    def end_write(self) -> None:
        self.pending -= 1
        self._evaluate()

    def mark_read_complete(self) -> None:
        self.read_complete = True
        self._evaluate()

    def fail(self, exc: BaseException) -> None:
        if self.error is None:
            self.error = exc
        self._evaluate()

    def raise_if_failed(self) -> None:
        if self.error is not None:
            raise self.error

    async def wait(self) -> None:
        await self._settled.wait()
        self.raise_if_failed()

    def _evaluate(self) -> None:
        if self.error is not None or (self.read_complete and self.pending == 0):
            self._settled.set()


# --- Member path validation ------------------------------------------------------


def _member_target(destination: Path, member_name: str) -> Path:
    normalized = member_name.replace("\\", "/")
    relative = PurePosixPath(normalized)
    if relative.is_absolute():
        raise ArchiveError(f"Unsafe absolute path in archive: {member_name}", entry=member_name)
    parts = [part for part in relative.parts if part not in {"", "."}]
    if not parts:
        raise ArchiveError(f"Empty path in archive: {member_name}", entry=member_name)
    if ".." in parts:
        raise ArchiveError(f"Unsafe path in archive: {member_name}", entry=member_name)
    return destination.joinpath(*parts)


# --- Archive extraction ----------------------------------------------------------


def _copy_stream(stream: IO[bytes], target: Path) -> None:
    tmp = temp_sibling(target)
    with stream:
        try:
            with tmp.open("wb") as output:
                shutil.copyfileobj(stream, output)
        except BaseException:
            tmp.unlink(missing_ok=True)
            raise
    os.replace(tmp, target)


async def _write_entry(
    job: ExtractionJob,
    limiter: asyncio.Semaphore,
    name: str,
    stream: IO[bytes],
    target: Path,
) -> None:
    try:
        await asyncio.to_thread(_copy_stream, stream, target)
    except Exception as exc:
        failure = ArchiveError(
            f'Failed to write archive entry "{name}" to {target}: {exc}', entry=name
        )
        failure.__cause__ = exc
        job.fail(failure)
    else:
        job.files.append(target)
    finally:
        limiter.release()
        job.end_write()


async def extract_zip(
    buffer: bytes,
    destination: Path,
    *,
    max_parallel_writes: int = 8,
    logger: Optional[logging.Logger] = None,
) -> ExtractionResult:
    """Extract the ZIP archive held in ``buffer`` beneath ``destination``.

    Args:
        buffer: Complete archive bytes.
        destination: Directory receiving the extracted tree (created if needed).
        max_parallel_writes: Upper bound on concurrently running file writes.
        logger: Optional logger for the completion record.

    Returns:
        ExtractionResult listing the written files and created directories.

    Raises:
        ArchiveError: If the archive is corrupt, contains an unsafe member
            path, or any entry cannot be opened or written.
    """

    if max_parallel_writes < 1:
        raise ValueError("max_parallel_writes must be at least 1")

    destination = Path(destination)
    try:
        archive = zipfile.ZipFile(io.BytesIO(buffer))
    except (zipfile.BadZipFile, ValueError, EOFError) as exc:
        raise ArchiveError(f"Failed to open archive: {exc}") from exc

    job = ExtractionJob(destination=destination)
    limiter = asyncio.Semaphore(max_parallel_writes)
    tasks: List[asyncio.Task] = []
    try:
        destination.mkdir(parents=True, exist_ok=True)
        entries = iter(archive.infolist())
        while True:
            job.raise_if_failed()
            entry = next(entries, None)
            if entry is None:
                break

            target = _member_target(destination, entry.filename)
            if entry.is_dir():
                target.mkdir(parents=True, exist_ok=True)
                job.directories.append(target)
                continue

            target.parent.mkdir(parents=True, exist_ok=True)
            await limiter.acquire()
            job.raise_if_failed()
            job.begin_write()
            try:
                stream = archive.open(entry)
            except Exception as exc:
                limiter.release()
                job.end_write()
                raise ArchiveError(
                    f'Failed to open archive entry "{entry.filename}": {exc}',
                    entry=entry.filename,
                ) from exc
            tasks.append(
                asyncio.create_task(_write_entry(job, limiter, entry.filename, stream, target))
            )

        job.mark_read_complete()
        await job.wait()
    finally:
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        archive.close()

    (logger or LOGGER).info(
        "extracted zip archive",
        extra={
            "stage": "extract",
            "path": str(destination),
            "files": len(job.files),
            "directories": len(job.directories),
        },
    )
    return ExtractionResult(files=list(job.files), directories=list(job.directories))
