"""
This module contains the exceptions raised by the chromium_fetcher pipeline.

Every failure that an external condition can trigger (network drop, malformed
archive, missing file) surfaces as one of these typed exceptions.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Kinds of failure a fetch can end in."""

    UNSUPPORTED_PLATFORM = "unsupported_platform"
    INVALID_REVISION = "invalid_revision"
    CATALOG_UNAVAILABLE = "catalog_unavailable"
    NETWORK_ERROR = "network_error"
    TRUNCATED_DOWNLOAD = "truncated_download"
    ARCHIVE_CORRUPT = "archive_corrupt"
    UNSAFE_ARCHIVE_ENTRY = "unsafe_archive_entry"
    EXECUTABLE_NOT_FOUND = "executable_not_found"
    IO_ERROR = "io_error"
    CACHE_RACE_LOST = "cache_race_lost"


class FetcherException(Exception):
    """
    Base exception for chromium_fetcher.

    A recoverable exception means the whole fetch call may simply be retried.
    """

    kind: ErrorKind = ErrorKind.IO_ERROR
    recoverable: bool = True

    def __init__(self, message: str):
        """
        Initializes the exception with the given message.
        """
        super().__init__(message)
        self.message = message


class UnsupportedPlatform(FetcherException):
    """Raised when no snapshot build exists for the detected OS/arch pair."""

    kind = ErrorKind.UNSUPPORTED_PLATFORM
    recoverable = False


class InvalidRevision(FetcherException):
    """Raised when a revision token could not be used to build cache paths."""

    kind = ErrorKind.INVALID_REVISION
    recoverable = False


class CatalogUnavailable(FetcherException):
    kind = ErrorKind.CATALOG_UNAVAILABLE


class NetworkError(FetcherException):
    """Raised on transport failures and non-2xx responses."""

    kind = ErrorKind.NETWORK_ERROR

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class DownloadTimeout(NetworkError):
    """Raised when a connect or read wait exceeds the configured timeout."""


class TruncatedDownload(FetcherException):
    kind = ErrorKind.TRUNCATED_DOWNLOAD

    def __init__(self, message: str, expected: int, received: int):
        super().__init__(message)
        self.expected = expected
        self.received = received


class ArchiveCorrupt(FetcherException):
    kind = ErrorKind.ARCHIVE_CORRUPT


class UnsafeArchiveEntry(FetcherException):
    """Raised when an archive entry would be written outside its staging directory."""

    kind = ErrorKind.UNSAFE_ARCHIVE_ENTRY

    def __init__(self, message: str, entry_name: str):
        super().__init__(message)
        self.entry_name = entry_name


class ExecutableNotFound(FetcherException):
    kind = ErrorKind.EXECUTABLE_NOT_FOUND


class FetcherIOError(FetcherException):
    """Raised on local filesystem failures (temp file writes, renames)."""

    kind = ErrorKind.IO_ERROR


class CacheRaceLost(FetcherException):
    """
    Raised internally when a concurrent fetch already promoted the same slot.

    The cache store resolves it by returning the winning entry; callers of
    fetch never see it.
    """

    kind = ErrorKind.CACHE_RACE_LOST
