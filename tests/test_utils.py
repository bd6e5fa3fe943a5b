"""
Shared helpers for the chromium_fetcher tests: an in-memory transport and
builders for snapshot-like zip archives.
"""

import asyncio
import io
import stat
import zipfile
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Iterable, List, Optional

from chromium_fetcher.archive_locator import ArchiveLocator
from chromium_fetcher.archive_models import Platform, PlatformTable, Revision
from chromium_fetcher.fetcher_exceptions import NetworkError

LINUX_X64 = Platform.parse("linux-x64")
EXECUTABLE_BODY = b"#!/bin/sh\necho chromium\n"

_DECLARED_FROM_BODY = object()


class FakeResponse:
    """
    Canned response of the fake transport.

    content_length defaults to len(body); pass a larger value to simulate a
    connection that closes early, or None for an undeclared length.
    fail_after raises NetworkError once that many bytes have been sent.
    """

    def __init__(
        self,
        body: bytes = b"",
        status: int = 200,
        content_length=_DECLARED_FROM_BODY,
        fail_after: Optional[int] = None,
        chunk_size: int = 1024,
        delay: float = 0.0,
    ):
        self.body = body
        self.status = status
        self.content_length = len(body) if content_length is _DECLARED_FROM_BODY else content_length
        self.fail_after = fail_after
        self.chunk_size = chunk_size
        self.delay = delay


class FakeByteStream:
    def __init__(self, response: FakeResponse):
        self._response = response
        self.status = response.status
        self.content_length = response.content_length

    async def iter_chunks(self) -> AsyncIterator[bytes]:
        body = self._response.body
        sent = 0
        for start in range(0, len(body), self._response.chunk_size):
            if self._response.fail_after is not None and sent >= self._response.fail_after:
                raise NetworkError("Connection reset by peer", self.status)
            if self._response.delay:
                await asyncio.sleep(self._response.delay)
            chunk = body[start:start + self._response.chunk_size]
            sent += len(chunk)
            yield chunk


class FakeTransport:
    """
    Transport serving canned responses by URL. Unknown URLs answer 404.
    """

    def __init__(self):
        self.responses: Dict[str, FakeResponse] = {}
        self.opened: List[str] = []
        self.open_streams = 0
        self.closed = False

    def add(self, url: str, body: bytes = b"", **kwargs) -> FakeResponse:
        response = FakeResponse(body, **kwargs)
        self.responses[url] = response
        return response

    def open_count(self, url: str) -> int:
        return self.opened.count(url)

    @asynccontextmanager
    async def open(self, url: str, timeout: float) -> AsyncIterator[FakeByteStream]:
        self.opened.append(url)
        response = self.responses.get(url) or FakeResponse(b"Not Found", status=404)
        self.open_streams += 1
        try:
            yield FakeByteStream(response)
        finally:
            self.open_streams -= 1

    async def aclose(self) -> None:
        self.closed = True


class StaticCatalog:
    """Catalog always answering the same revision."""

    def __init__(self, revision: str):
        self.revision = revision
        self.calls = 0

    async def latest_revision(self, platform: Platform) -> str:
        self.calls += 1
        return self.revision


def zip_file_entry(name: str, data: bytes, mode: int = 0o644) -> tuple:
    info = zipfile.ZipInfo(name)
    info.external_attr = (stat.S_IFREG | mode) << 16
    info.compress_type = zipfile.ZIP_DEFLATED
    return info, data


def zip_symlink_entry(name: str, link: str) -> tuple:
    info = zipfile.ZipInfo(name)
    info.external_attr = (stat.S_IFLNK | 0o777) << 16
    return info, link.encode("utf-8")


def build_zip(entries: Iterable[tuple]) -> bytes:
    """Build a zip from (ZipInfo, data) pairs."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for info, data in entries:
            archive.writestr(info, data)
    return buffer.getvalue()


def build_linux_archive(executable_mode: int = 0o755, include_executable: bool = True, padding: int = 0) -> bytes:
    """
    A small archive laid out like the linux snapshot, chrome-linux/chrome included.
    padding prepends a chrome-linux/padding.bin entry of that many zero bytes.
    """
    entries = [zip_file_entry("chrome-linux/padding.bin", b"\0" * padding)] if padding else []
    entries += [
        zip_file_entry("chrome-linux/resources.pak", b"resources" * 100),
        zip_file_entry("chrome-linux/locales/en-US.pak", b"locale"),
    ]
    if include_executable:
        entries.append(zip_file_entry("chrome-linux/chrome", EXECUTABLE_BODY, executable_mode))
    return build_zip(entries)


def create_locator(host: str = "https://storage.googleapis.com") -> ArchiveLocator:
    return ArchiveLocator(PlatformTable.load(), host)


def archive_url(revision: str, platform: Platform = LINUX_X64) -> str:
    return create_locator().locate(platform, Revision(value=revision)).url


def catalog_url(platform: Platform = LINUX_X64) -> str:
    return create_locator().catalog_url(platform)
