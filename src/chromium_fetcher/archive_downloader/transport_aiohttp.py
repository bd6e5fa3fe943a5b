"""
Transport backend built on aiohttp.ClientSession.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import aiohttp

from chromium_fetcher.archive_downloader.transport import USER_AGENT, declared_content_length, incomplete_body
from chromium_fetcher.fetcher_config import DEFAULT_CHUNK_SIZE
from chromium_fetcher.fetcher_exceptions import DownloadTimeout, NetworkError
from chromium_fetcher.fetcher_logger import FetcherLogger


class AiohttpByteStream:
    def __init__(self, response: aiohttp.ClientResponse, url: str, timeout: float, chunk_size: int):
        self._response = response
        self._url = url
        self._timeout = timeout
        self._chunk_size = chunk_size
        self.status = response.status
        self.content_length = declared_content_length(response.headers)

    async def iter_chunks(self) -> AsyncIterator[bytes]:
        received = 0
        try:
            async for chunk in self._response.content.iter_chunked(self._chunk_size):
                received += len(chunk)
                yield chunk
        except asyncio.TimeoutError as e:
            raise DownloadTimeout(f"Timed out after {self._timeout}s reading {self._url}") from e
        except aiohttp.ClientPayloadError as e:
            # wraps ContentLengthError when the peer closes before the declared length
            if self.content_length is not None and received < self.content_length:
                raise incomplete_body(self._url, self.content_length, received) from e
            raise NetworkError(f"Error reading {self._url}: {e}", self.status) from e
        except aiohttp.ClientError as e:
            raise NetworkError(f"Error reading {self._url}: {e}", self.status) from e


class AiohttpTransport:
    """
    Streams GET requests with aiohttp. The session is created lazily so the
    transport can be constructed outside a running event loop.
    """

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        logger: Optional[FetcherLogger] = None,
    ):
        self._session = session
        self._owns_session = session is None
        self.chunk_size = chunk_size
        self.logger = logger or FetcherLogger()

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(headers={"User-Agent": USER_AGENT})
            self._owns_session = True
        return self._session

    @asynccontextmanager
    async def open(self, url: str, timeout: float) -> AsyncIterator[AiohttpByteStream]:
        session = await self._get_session()
        # connect and sock_read bound each wait, matching httpx.Timeout semantics
        client_timeout = aiohttp.ClientTimeout(total=None, connect=timeout, sock_read=timeout)
        try:
            response = await session.get(url, timeout=client_timeout)
        except asyncio.TimeoutError as e:
            raise DownloadTimeout(f"Timed out after {timeout}s requesting {url}") from e
        except aiohttp.ClientError as e:
            raise NetworkError(f"Request to {url} failed: {e}") from e

        self.logger.log(f"GET {url} -> HTTP {response.status}", logging.DEBUG)
        try:
            yield AiohttpByteStream(response, url, timeout, self.chunk_size)
        finally:
            response.close()

    async def aclose(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
