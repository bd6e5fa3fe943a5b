"""
Transport abstraction over the asynchronous HTTP stack.

The rest of the pipeline is written against the Transport and ByteStream
protocols only. Exactly one backend is selected per fetcher through
FetcherConfig.transport_backend, and only that backend's module (and HTTP
library) is imported.
"""

import importlib
from typing import AsyncContextManager, AsyncIterator, Dict, Mapping, Optional, Protocol, Tuple

from chromium_fetcher.fetcher_config import FetcherConfig, TransportBackend
from chromium_fetcher.fetcher_exceptions import FetcherException, TruncatedDownload
from chromium_fetcher.fetcher_logger import FetcherLogger

USER_AGENT = "chromium-fetcher/0.1"

TRANSPORT_BACKENDS: Dict[TransportBackend, Tuple[str, str]] = {
    TransportBackend.HTTPX: ("chromium_fetcher.archive_downloader.transport_httpx", "HttpxTransport"),
    TransportBackend.AIOHTTP: ("chromium_fetcher.archive_downloader.transport_aiohttp", "AiohttpTransport"),
}


class ByteStream(Protocol):
    """An open streaming GET response."""

    status: int
    content_length: Optional[int]

    def iter_chunks(self) -> AsyncIterator[bytes]:
        """
        Yield the body in chunks. Raises NetworkError (or DownloadTimeout) on failure,
        and TruncatedDownload when the peer closes before the declared length.
        """
        ...


class Transport(Protocol):
    """Port for streaming HTTP GET requests."""

    def open(self, url: str, timeout: float) -> AsyncContextManager[ByteStream]:
        """
        Issue a streaming GET. Leaving the context closes the response, also
        when the awaiting task is cancelled mid-stream.
        """
        ...

    async def aclose(self) -> None:
        """Release the underlying client."""
        ...


def declared_content_length(headers: Mapping[str, str]) -> Optional[int]:
    """
    Content-Length of a response when it can be compared with the bytes a
    backend yields. Encoded bodies are decoded by the backends, so their
    declared length is not comparable and None is returned.
    """
    encoding = (headers.get("content-encoding") or "identity").strip().lower()
    if encoding != "identity":
        return None

    raw = headers.get("content-length")
    if raw is None:
        return None
    try:
        length = int(raw)
    except ValueError:
        return None
    return length if length >= 0 else None


def incomplete_body(url: str, expected: int, received: int) -> TruncatedDownload:
    """Error for a connection closed before the declared Content-Length was read."""
    return TruncatedDownload(
        f"Stream from {url} ended after {received} of {expected} bytes",
        expected=expected,
        received=received,
    )


def create_transport(config: FetcherConfig, logger: Optional[FetcherLogger] = None) -> Transport:
    """
    Build the transport selected by the configuration.

    Raises:
        FetcherException: If the selected backend's HTTP library is not installed
    """
    backend = config.transport_backend
    module_name, class_name = TRANSPORT_BACKENDS[backend]
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise FetcherException(
            f"Transport backend '{backend}' is unavailable; install chromium-fetcher[{backend}]: {e}"
        ) from e

    transport_class = getattr(module, class_name)
    return transport_class(chunk_size=config.chunk_size, logger=logger)
