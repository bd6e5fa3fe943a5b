"""
Tests for streaming archives into temporary files.
"""

import asyncio

import pytest

from chromium_fetcher.archive_downloader import Downloader
from chromium_fetcher.archive_models import Revision
from chromium_fetcher.fetcher_exceptions import ErrorKind, NetworkError, TruncatedDownload
from tests.test_utils import LINUX_X64, FakeTransport, create_locator


class TestDownloader:
    """Tests for Downloader.download."""

    @pytest.fixture
    def transport(self):
        return FakeTransport()

    @pytest.fixture
    def downloader(self, transport):
        return Downloader(transport, timeout=5)

    @pytest.fixture
    def descriptor(self):
        return create_locator().locate(LINUX_X64, Revision(value="1000"))

    @pytest.mark.asyncio
    async def test_download_success(self, transport, downloader, descriptor, tmp_path):
        body = bytes(range(256)) * 50
        transport.add(descriptor.url, body, chunk_size=1000)

        path = await downloader.download(descriptor, tmp_path)

        assert path.parent == tmp_path
        assert path.name.endswith("chrome-linux.zip.part")
        assert path.read_bytes() == body
        assert transport.open_streams == 0

    @pytest.mark.asyncio
    async def test_creates_destination_directory(self, transport, downloader, descriptor, tmp_path):
        transport.add(descriptor.url, b"data")
        dest = tmp_path / "a" / "b"
        path = await downloader.download(descriptor, dest)
        assert path.parent == dest

    @pytest.mark.asyncio
    async def test_unknown_length_is_accepted(self, transport, downloader, descriptor, tmp_path):
        transport.add(descriptor.url, b"x" * 5000, content_length=None)
        path = await downloader.download(descriptor, tmp_path)
        assert path.stat().st_size == 5000

    @pytest.mark.asyncio
    async def test_truncated_download(self, transport, downloader, descriptor, tmp_path):
        transport.add(descriptor.url, b"x" * 500, content_length=1000)

        with pytest.raises(TruncatedDownload) as exc_info:
            await downloader.download(descriptor, tmp_path)

        assert exc_info.value.expected == 1000
        assert exc_info.value.received == 500
        assert exc_info.value.kind == ErrorKind.TRUNCATED_DOWNLOAD
        assert list(tmp_path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_http_error_status(self, downloader, descriptor, tmp_path):
        with pytest.raises(NetworkError) as exc_info:
            await downloader.download(descriptor, tmp_path)
        assert exc_info.value.status_code == 404
        assert list(tmp_path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_connection_drop_mid_stream(self, transport, downloader, descriptor, tmp_path):
        transport.add(descriptor.url, b"x" * 10000, chunk_size=1000, fail_after=3000)

        with pytest.raises(NetworkError):
            await downloader.download(descriptor, tmp_path)

        assert list(tmp_path.iterdir()) == []
        assert transport.open_streams == 0

    @pytest.mark.asyncio
    async def test_cancellation_leaves_no_partial_file(self, transport, downloader, descriptor, tmp_path):
        transport.add(descriptor.url, b"x" * 100000, chunk_size=1000, delay=0.01)

        task = asyncio.create_task(downloader.download(descriptor, tmp_path))
        await asyncio.sleep(0.1)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert list(tmp_path.iterdir()) == []
        assert transport.open_streams == 0
