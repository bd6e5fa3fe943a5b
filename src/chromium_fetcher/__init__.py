"""
chromium_fetcher downloads Chromium snapshot builds for the running platform,
unpacks them into a local cache and returns the path of the browser executable.
"""

from chromium_fetcher.archive_models import FetchResult, FetchState, Platform, Revision
from chromium_fetcher.browser_fetcher import BrowserFetcher, fetch, fetch_sync
from chromium_fetcher.fetcher_config import FetcherConfig, TransportBackend
from chromium_fetcher.fetcher_exceptions import (
    ArchiveCorrupt,
    CatalogUnavailable,
    DownloadTimeout,
    ErrorKind,
    ExecutableNotFound,
    FetcherException,
    FetcherIOError,
    InvalidRevision,
    NetworkError,
    TruncatedDownload,
    UnsafeArchiveEntry,
    UnsupportedPlatform,
)

__all__ = [
    "BrowserFetcher",
    "fetch",
    "fetch_sync",
    "FetcherConfig",
    "TransportBackend",
    "FetchResult",
    "FetchState",
    "Platform",
    "Revision",
    "ErrorKind",
    "FetcherException",
    "UnsupportedPlatform",
    "InvalidRevision",
    "CatalogUnavailable",
    "NetworkError",
    "DownloadTimeout",
    "TruncatedDownload",
    "ArchiveCorrupt",
    "UnsafeArchiveEntry",
    "ExecutableNotFound",
    "FetcherIOError",
]
