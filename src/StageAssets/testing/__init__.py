"""Testing helpers for exercising asset downloads without network access.

:class:`MockAssetServer` records every request and serves canned responses
through :class:`httpx.MockTransport`; :func:`use_mock_transport` installs any
transport for the clients built by :mod:`StageAssets.net`.
"""

from __future__ import annotations

import contextlib
import io
import zipfile
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Mapping, Optional, Union

import httpx

from .. import net

__all__ = [
    "RecordedRequest",
    "MockAssetServer",
    "use_mock_transport",
    "build_zip",
    "corrupt_entry",
]


@dataclass(frozen=True)
class RecordedRequest:
    method: str
    url: str
    headers: Dict[str, str]


@dataclass
class MockAssetServer:
    """In-memory HTTP endpoint keyed by absolute URL."""

    routes: Dict[str, httpx.Response] = field(default_factory=dict)
    requests: List[RecordedRequest] = field(default_factory=list)

    def add(
        self,
        url: str,
        content: bytes = b"",
        *,
        status: int = 200,
        headers: Optional[Mapping[str, str]] = None,
    ) -> str:
        self.routes[url] = httpx.Response(status, content=content, headers=dict(headers or {}))
        return url

    def count(self, url: Optional[str] = None) -> int:
        if url is None:
            return len(self.requests)
        return sum(1 for request in self.requests if request.url == url)

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append(
            RecordedRequest(method=request.method, url=url, headers=dict(request.headers))
        )
        template = self.routes.get(url)
        if template is None:
            return httpx.Response(404, request=request)
        return httpx.Response(
            template.status_code,
            content=template.content,
            headers=template.headers,
            request=request,
        )

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@contextlib.contextmanager
def use_mock_transport(
    transport: Union[httpx.AsyncBaseTransport, MockAssetServer],
) -> Iterator[httpx.AsyncBaseTransport]:
    """Route clients built by :mod:`StageAssets.net` through ``transport``."""

    resolved = transport.transport() if isinstance(transport, MockAssetServer) else transport
    net.configure_transport(resolved)
    try:
        yield resolved
    finally:
        net.reset_transport()


def build_zip(
    entries: Mapping[str, Optional[bytes]], *, compression: int = zipfile.ZIP_DEFLATED
) -> bytes:
    """Build a ZIP archive in memory; ``None`` values create directory entries."""

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=compression) as archive:
        for name, payload in entries.items():
            if payload is None:
                archive.writestr(zipfile.ZipInfo(name if name.endswith("/") else name + "/"), b"")
            else:
                archive.writestr(name, payload)
    return buffer.getvalue()


def corrupt_entry(archive: bytes, payload: bytes) -> bytes:
    """Flip the first byte of ``payload`` inside a stored archive so its CRC check fails."""

    if archive.count(payload) != 1:
        raise ValueError("payload must occur exactly once in the archive")
    return archive.replace(payload, bytes([payload[0] ^ 0xFF]) + payload[1:], 1)
