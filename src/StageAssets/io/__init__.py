"""Filesystem and archive primitives for build-time assets."""

from .extraction import ExtractionJob, ExtractionResult, extract_zip
from .filesystem import ensure_cached, ensure_published, path_exists, write_bytes_atomic

__all__ = [
    "ExtractionJob",
    "ExtractionResult",
    "extract_zip",
    "ensure_cached",
    "ensure_published",
    "path_exists",
    "write_bytes_atomic",
]
