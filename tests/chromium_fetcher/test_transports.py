"""
Tests for the httpx and aiohttp transport backends.
"""

import asyncio

import httpx
import pytest
from aiohttp import web

from chromium_fetcher.archive_downloader import Downloader, create_transport
from chromium_fetcher.archive_downloader import transport as transport_module
from chromium_fetcher.archive_downloader.transport import declared_content_length
from chromium_fetcher.archive_downloader.transport_aiohttp import AiohttpTransport
from chromium_fetcher.archive_downloader.transport_httpx import HttpxTransport
from chromium_fetcher.archive_models import Revision
from chromium_fetcher.fetcher_config import FetcherConfig, TransportBackend
from chromium_fetcher.fetcher_exceptions import DownloadTimeout, FetcherException, NetworkError, TruncatedDownload
from tests.test_utils import LINUX_X64, create_locator

BODY = bytes(range(256)) * 40


async def read_all(stream) -> bytes:
    data = b""
    async for chunk in stream.iter_chunks():
        data += chunk
    return data


class TestDeclaredContentLength:
    def test_plain_length(self):
        assert declared_content_length({"content-length": "12"}) == 12

    def test_missing_or_invalid(self):
        assert declared_content_length({}) is None
        assert declared_content_length({"content-length": "twelve"}) is None
        assert declared_content_length({"content-length": "-1"}) is None

    def test_encoded_body_has_no_comparable_length(self):
        assert declared_content_length({"content-length": "12", "content-encoding": "gzip"}) is None


class TestHttpxTransport:
    """Tests for HttpxTransport over httpx.MockTransport."""

    @staticmethod
    def make_transport(handler) -> HttpxTransport:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return HttpxTransport(client=client, chunk_size=1000)

    @pytest.mark.asyncio
    async def test_stream_body(self):
        requested = []

        def handler(request: httpx.Request) -> httpx.Response:
            requested.append(str(request.url))
            return httpx.Response(200, content=BODY)

        transport = self.make_transport(handler)
        async with transport.open("https://example.test/archive.zip", timeout=5) as stream:
            assert stream.status == 200
            assert stream.content_length == len(BODY)
            assert await read_all(stream) == BODY

        assert requested == ["https://example.test/archive.zip"]

    @pytest.mark.asyncio
    async def test_error_status_is_reported_not_raised(self):
        transport = self.make_transport(lambda request: httpx.Response(404, content=b"missing"))
        async with transport.open("https://example.test/missing", timeout=5) as stream:
            assert stream.status == 404

    @pytest.mark.asyncio
    async def test_connect_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(NetworkError):
            async with self.make_transport(handler).open("https://example.test/a", timeout=5):
                pass

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(DownloadTimeout):
            async with self.make_transport(handler).open("https://example.test/a", timeout=5):
                pass

    @pytest.mark.asyncio
    async def test_injected_client_stays_open(self):
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200)))
        transport = HttpxTransport(client=client)
        await transport.aclose()
        assert not client.is_closed
        await client.aclose()

    @pytest.mark.asyncio
    async def test_owned_client_is_closed(self):
        transport = HttpxTransport()
        await transport.aclose()
        assert transport._client.is_closed


class TestAiohttpTransport:
    """Tests for AiohttpTransport against a local aiohttp server."""

    @pytest.fixture
    def app(self):
        async def archive(request):
            return web.Response(body=BODY)

        async def missing(request):
            return web.Response(status=404, text="missing")

        app = web.Application()
        app.router.add_get("/archive.zip", archive)
        app.router.add_get("/missing", missing)
        return app

    @staticmethod
    async def start(app):
        runner = web.AppRunner(app)
        await runner.setup()
        site = web.TCPSite(runner, "127.0.0.1", 0)
        await site.start()
        host, port = runner.addresses[0][:2]
        return runner, f"http://{host}:{port}"

    @pytest.mark.asyncio
    async def test_stream_body(self, app):
        runner, base_url = await self.start(app)
        transport = AiohttpTransport(chunk_size=1000)
        try:
            async with transport.open(f"{base_url}/archive.zip", timeout=5) as stream:
                assert stream.status == 200
                assert stream.content_length == len(BODY)
                assert await read_all(stream) == BODY

            async with transport.open(f"{base_url}/missing", timeout=5) as stream:
                assert stream.status == 404
        finally:
            await transport.aclose()
            await runner.cleanup()

        assert transport._session.closed

    @pytest.mark.asyncio
    async def test_connection_refused(self, app):
        runner, base_url = await self.start(app)
        await runner.cleanup()

        transport = AiohttpTransport()
        try:
            with pytest.raises(NetworkError):
                async with transport.open(f"{base_url}/archive.zip", timeout=5):
                    pass
        finally:
            await transport.aclose()


class TestCreateTransport:
    def test_default_backend_is_httpx(self):
        assert isinstance(create_transport(FetcherConfig()), HttpxTransport)

    def test_aiohttp_backend(self):
        transport = create_transport(FetcherConfig(transport_backend="aiohttp", chunk_size=123))
        assert isinstance(transport, AiohttpTransport)
        assert transport.chunk_size == 123

    def test_missing_backend_library(self, monkeypatch):
        monkeypatch.setitem(
            transport_module.TRANSPORT_BACKENDS,
            TransportBackend.AIOHTTP,
            ("chromium_fetcher.archive_downloader.transport_missing", "MissingTransport"),
        )
        with pytest.raises(FetcherException):
            create_transport(FetcherConfig(transport_backend=TransportBackend.AIOHTTP))


class TestShortResponseBody:
    """Both backends report a connection closed before Content-Length as a truncation."""

    @staticmethod
    async def start_short_server():
        async def handle(reader, writer):
            await reader.readuntil(b"\r\n\r\n")
            writer.write(
                b"HTTP/1.1 200 OK\r\n"
                b"Content-Type: application/zip\r\n"
                b"Content-Length: 1000\r\n"
                b"\r\n" + b"x" * 10
            )
            await writer.drain()
            writer.close()

        server = await asyncio.start_server(handle, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        return server, f"http://127.0.0.1:{port}"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("transport_class", [HttpxTransport, AiohttpTransport])
    async def test_download_reports_truncation(self, transport_class, tmp_path):
        server, host = await self.start_short_server()
        transport = transport_class()
        descriptor = create_locator(host).locate(LINUX_X64, Revision(value="1000"))
        try:
            with pytest.raises(TruncatedDownload) as exc_info:
                await Downloader(transport, timeout=5).download(descriptor, tmp_path)
        finally:
            await transport.aclose()
            server.close()
            await server.wait_closed()

        assert exc_info.value.expected == 1000
        assert exc_info.value.received < 1000
        assert list(tmp_path.iterdir()) == []
