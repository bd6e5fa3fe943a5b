"""
Transport backend built on httpx.AsyncClient.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx

from chromium_fetcher.archive_downloader.transport import USER_AGENT, declared_content_length, incomplete_body
from chromium_fetcher.fetcher_config import DEFAULT_CHUNK_SIZE
from chromium_fetcher.fetcher_exceptions import DownloadTimeout, NetworkError
from chromium_fetcher.fetcher_logger import FetcherLogger


class HttpxByteStream:
    def __init__(self, response: httpx.Response, url: str, timeout: float, chunk_size: int):
        self._response = response
        self._url = url
        self._timeout = timeout
        self._chunk_size = chunk_size
        self.status = response.status_code
        self.content_length = declared_content_length(response.headers)

    async def iter_chunks(self) -> AsyncIterator[bytes]:
        received = 0
        try:
            async for chunk in self._response.aiter_bytes(chunk_size=self._chunk_size):
                received += len(chunk)
                yield chunk
        except httpx.TimeoutException as e:
            raise DownloadTimeout(f"Timed out after {self._timeout}s reading {self._url}") from e
        except httpx.RemoteProtocolError as e:
            # raised when the peer closes before the declared Content-Length
            if self.content_length is not None and received < self.content_length:
                raise incomplete_body(self._url, self.content_length, received) from e
            raise NetworkError(f"Error reading {self._url}: {e}", self.status) from e
        except httpx.HTTPError as e:
            raise NetworkError(f"Error reading {self._url}: {e}", self.status) from e


class HttpxTransport:
    """
    Streams GET requests with httpx. Redirects are followed.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        logger: Optional[FetcherLogger] = None,
    ):
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
        )
        self.chunk_size = chunk_size
        self.logger = logger or FetcherLogger()

    @asynccontextmanager
    async def open(self, url: str, timeout: float) -> AsyncIterator[HttpxByteStream]:
        try:
            request = self._client.build_request("GET", url, timeout=httpx.Timeout(timeout))
            response = await self._client.send(request, stream=True)
        except httpx.TimeoutException as e:
            raise DownloadTimeout(f"Timed out after {timeout}s requesting {url}") from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise NetworkError(f"Request to {url} failed: {e}") from e

        self.logger.log(f"GET {url} -> HTTP {response.status_code}", logging.DEBUG)
        try:
            yield HttpxByteStream(response, url, timeout, self.chunk_size)
        finally:
            await response.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
