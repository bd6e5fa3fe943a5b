"""
Archive downloader implementation.

Streams archive bytes from a Transport into a temporary file.
"""

import logging
import pathlib
import uuid
from typing import Optional

import aiofiles
import aiofiles.os

from chromium_fetcher.archive_downloader.transport import Transport
from chromium_fetcher.archive_models import ArchiveDescriptor
from chromium_fetcher.fetcher_config import DEFAULT_TIMEOUT
from chromium_fetcher.fetcher_exceptions import FetcherIOError, NetworkError, TruncatedDownload
from chromium_fetcher.fetcher_logger import FetcherLogger
from chromium_fetcher.fetcher_utils import FileUtils

PROGRESS_LOG_EVERY_CHUNKS = 256


class Downloader:
    """
    Downloads snapshot archives.

    The temporary file is created inside the destination directory so that it
    shares a filesystem with the cache. No partial file survives a failed or
    cancelled call.
    """

    def __init__(
        self,
        transport: Transport,
        timeout: float = DEFAULT_TIMEOUT,
        logger: Optional[FetcherLogger] = None,
    ):
        """
        Initialize the downloader.

        Args:
            transport: Transport used to issue the streaming GET
            timeout: Seconds to wait for a connection or the next chunk
            logger: Logger for progress and error messages
        """
        self.transport = transport
        self.timeout = timeout
        self.logger = logger or FetcherLogger()

    async def download(self, descriptor: ArchiveDescriptor, dest_dir: pathlib.Path) -> pathlib.Path:
        """
        Download the archive of a descriptor.

        Args:
            descriptor: The archive to download
            dest_dir: Directory receiving the temporary file

        Returns:
            Path of the complete temporary archive file, owned by the caller

        Raises:
            NetworkError: On transport failures or a non-2xx status
            TruncatedDownload: If the stream ended before the declared length
            FetcherIOError: If the temporary file could not be written
        """
        try:
            await aiofiles.os.makedirs(dest_dir, exist_ok=True)
        except OSError as e:
            raise FetcherIOError(f"Cannot create download directory {dest_dir}: {e}") from e

        temp_path = dest_dir / f".{descriptor.revision}-{uuid.uuid4().hex}-{descriptor.archive_filename}.part"
        self.logger.log(f"Downloading {descriptor.url} to {temp_path}", logging.INFO)

        try:
            written = await self._stream_to_file(descriptor, temp_path)
        except BaseException:
            FileUtils.remove_path(self.logger, temp_path)
            raise

        self.logger.log(f"Downloaded {written} bytes from {descriptor.url}", logging.INFO)
        return temp_path

    async def _stream_to_file(self, descriptor: ArchiveDescriptor, temp_path: pathlib.Path) -> int:
        url = descriptor.url
        async with self.transport.open(url, timeout=self.timeout) as stream:
            if not 200 <= stream.status < 300:
                raise NetworkError(f"HTTP {stream.status} downloading {url}", stream.status)

            expected = stream.content_length
            if expected is not None:
                self.logger.log(f"Archive size: {expected} bytes", logging.INFO)

            written = 0
            chunks = 0
            # transport failures arrive as NetworkError; OSError here is always local
            try:
                async with aiofiles.open(temp_path, "wb") as f:
                    async for chunk in stream.iter_chunks():
                        if not chunk:
                            continue
                        await f.write(chunk)
                        written += len(chunk)
                        chunks += 1
                        if chunks % PROGRESS_LOG_EVERY_CHUNKS == 0:
                            self.logger.log(f"Downloaded {written}/{expected or '?'} bytes", logging.DEBUG)
            except OSError as e:
                raise FetcherIOError(f"Failed writing {temp_path}: {e}") from e

        if expected is not None and written < expected:
            raise TruncatedDownload(
                f"Stream from {url} ended after {written} of {expected} bytes",
                expected=expected,
                received=written,
            )
        if expected is not None and written > expected:
            self.logger.log(
                f"Received {written} bytes from {url}, more than the declared {expected}",
                logging.WARNING,
            )
        return written
