"""
Provides the BrowserFetcher class, the single entry point of chromium_fetcher.

A fetch resolves the revision, checks the cache and, on a miss, downloads,
extracts and commits the snapshot archive before returning the executable path.
"""

import asyncio
import logging
import pathlib
from typing import Callable, List, Optional

from chromium_fetcher.archive_downloader import Downloader, Extractor, Transport, create_transport
from chromium_fetcher.archive_locator import (
    ArchiveLocator,
    RevisionCatalog,
    RevisionResolver,
    RevisionToken,
    SnapshotCatalog,
)
from chromium_fetcher.archive_models import (
    ArchiveDescriptor,
    CacheEntry,
    CacheEntryState,
    FetchResult,
    FetchState,
    Platform,
    PlatformTable,
    Revision,
)
from chromium_fetcher.cache_store import CacheStore
from chromium_fetcher.fetcher_config import FetcherConfig
from chromium_fetcher.fetcher_exceptions import ErrorKind, FetcherException, UnsupportedPlatform
from chromium_fetcher.fetcher_logger import FetcherLogger
from chromium_fetcher.fetcher_settings import FetcherSettings
from chromium_fetcher.fetcher_utils import FileUtils, PlatformResolver

StateObserver = Callable[[FetchState], None]


class FetchRun:
    """
    Tracks the state of a single fetch call.
    """

    def __init__(self, logger: FetcherLogger, observer: Optional[StateObserver] = None):
        self.logger = logger
        self.observer = observer
        self.state = FetchState.IDLE
        self.error_kind: Optional[ErrorKind] = None

    def transition(self, state: FetchState) -> None:
        self.logger.log(f"Fetch state {self.state.value} -> {state.value}", logging.DEBUG)
        self.state = state
        if self.observer is not None:
            self.observer(state)

    def fail(self, error: FetcherException) -> None:
        self.error_kind = error.kind
        self.logger.log(
            f"Fetch failed while {self.state.value}: {error.kind.value}: {error}",
            logging.ERROR,
        )
        self.transition(FetchState.FAILED)

    def cancel(self) -> None:
        self.logger.log(f"Fetch cancelled while {self.state.value}", logging.WARNING)
        self.transition(FetchState.FAILED)


class BrowserFetcher:
    """
    Fetches Chromium snapshot builds into a local cache.

    No retries are performed. Every FetcherException tells through its
    `recoverable` flag whether calling fetch again may succeed; a retried
    call starts with a cache lookup and so never repeats a completed download.

    Example usage:
    ```python
    async with BrowserFetcher(FetcherConfig(cache_root="/tmp/chromium")) as fetcher:
        result = await fetcher.fetch("latest")
        print(result.executable_path)
    ```
    """

    def __init__(
        self,
        config: Optional[FetcherConfig] = None,
        logger: Optional[FetcherLogger] = None,
        transport: Optional[Transport] = None,
        catalog: Optional[RevisionCatalog] = None,
        platform: Optional[Platform] = None,
        table: Optional[PlatformTable] = None,
    ):
        """
        Creates a fetcher. Collaborators not given are built from the configuration.

        Args:
            config: Fetcher configuration
            logger: Logger shared by all stages
            transport: Transport to use instead of the configured backend
            catalog: Catalog resolving "latest", defaults to the snapshot bucket
            platform: Platform to fetch for, defaults to config.platform or the running machine
            table: Platform table, defaults to the bundled one

        Raises:
            FetcherException: If the configuration is invalid
        """
        self.config = config or FetcherConfig()
        is_valid, error_msg = self.config.validate()
        if not is_valid:
            raise FetcherException(error_msg)

        self.logger = logger or FetcherLogger()
        self.table = table or PlatformTable.load()
        self.locator = ArchiveLocator(self.table, self.config.host)

        self._owns_transport = transport is None
        self.transport = transport or create_transport(self.config, self.logger)

        self.revision_resolver = RevisionResolver(
            catalog or SnapshotCatalog(self.transport, self.locator, self.config.timeout, self.logger),
            self.logger,
        )
        self.downloader = Downloader(self.transport, self.config.timeout, self.logger)
        self.extractor = Extractor(self.config.chunk_size, self.logger)

        cache_root = self.config.cache_root or FetcherSettings.get_cache_root_directory()
        self.cache = CacheStore(pathlib.Path(cache_root), self.locator, self.logger)

        self._platform = platform
        self._platform_error: Optional[str] = None

    async def __aenter__(self) -> "BrowserFetcher":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the transport if this fetcher created it."""
        if self._owns_transport:
            await self.transport.aclose()

    @property
    def platform(self) -> Platform:
        """
        The platform this fetcher downloads for. Detected once; an unsupported
        platform stays unsupported for the lifetime of the fetcher.
        """
        if self._platform is not None:
            return self._platform
        if self._platform_error is not None:
            raise UnsupportedPlatform(self._platform_error)

        resolver = PlatformResolver(self.table)
        try:
            if self.config.platform:
                platform = resolver.check(Platform.parse(self.config.platform))
            else:
                platform = resolver.resolve()
        except UnsupportedPlatform as e:
            self._platform_error = e.message
            raise

        self.logger.log(f"Fetching builds for platform {platform.identifier}", logging.INFO)
        self._platform = platform
        return platform

    async def fetch(
        self,
        revision_token: Optional[RevisionToken] = None,
        observer: Optional[StateObserver] = None,
    ) -> FetchResult:
        """
        Make a snapshot build available locally.

        Args:
            revision_token: "latest", an explicit revision, or None for config.revision
            observer: Optional callback receiving each FetchState of this call
                (a cancelled call ends in FAILED with no error kind)

        Returns:
            FetchResult with the revision used and the executable path

        Raises:
            FetcherException: A subclass naming the stage that failed
        """
        run = FetchRun(self.logger, observer)
        token = self.config.revision if revision_token is None else revision_token
        try:
            run.transition(FetchState.RESOLVING)
            platform = self.platform
            revision = await self.revision_resolver.resolve(token, platform)

            run.transition(FetchState.LOCATING)
            descriptor = self.locator.locate(platform, revision)
            entry = await self.cache.inspect(platform, revision)
            if entry is not None and entry.state == CacheEntryState.VALID:
                run.transition(FetchState.CACHE_HIT)
                self.logger.log(f"Cache hit for {platform.identifier} revision {revision}", logging.INFO)
                return self._to_result(entry, cache_hit=True)
            if entry is not None:
                self.logger.log(f"Cache entry {entry.root_dir} is incomplete; fetching again", logging.WARNING)

            entry = await self._install(run, descriptor)
            run.transition(FetchState.SUCCESS)
            return self._to_result(entry, cache_hit=False)
        except FetcherException as e:
            run.fail(e)
            raise
        except asyncio.CancelledError:
            run.cancel()
            raise

    async def local_revisions(self) -> List[Revision]:
        """Revisions already cached for this fetcher's platform."""
        return await self.cache.local_revisions(self.platform)

    async def _install(self, run: FetchRun, descriptor: ArchiveDescriptor) -> CacheEntry:
        platform, revision = descriptor.platform, descriptor.revision
        platform_dir = await self.cache.ensure_platform_dir(platform)

        run.transition(FetchState.DOWNLOADING)
        archive_path = await self.downloader.download(descriptor, platform_dir)

        staging_dir = None
        try:
            run.transition(FetchState.EXTRACTING)
            staging_dir = await self.cache.create_staging_dir(platform, revision)
            staged = await self.extractor.extract(archive_path, staging_dir, descriptor)

            run.transition(FetchState.COMMITTING)
            entry = await self.cache.commit(staged, platform, revision)
            staging_dir = None
            return entry
        except BaseException:
            # synchronous removal still runs when the task is being cancelled
            if staging_dir is not None:
                FileUtils.remove_path(self.logger, staging_dir)
            raise
        finally:
            FileUtils.remove_path(self.logger, archive_path)

    @staticmethod
    def _to_result(entry: CacheEntry, cache_hit: bool) -> FetchResult:
        return FetchResult(
            revision_used=entry.revision,
            executable_path=entry.executable_path,
            folder_path=entry.root_dir,
            cache_hit=cache_hit,
        )


async def fetch(
    revision_token: Optional[RevisionToken] = None,
    config: Optional[FetcherConfig] = None,
) -> FetchResult:
    """
    Fetch a snapshot build with a short-lived BrowserFetcher.
    """
    async with BrowserFetcher(config) as fetcher:
        return await fetcher.fetch(revision_token)


def fetch_sync(
    revision_token: Optional[RevisionToken] = None,
    config: Optional[FetcherConfig] = None,
) -> FetchResult:
    """
    Synchronous variant of fetch for callers without a running event loop.
    """
    return asyncio.run(fetch(revision_token, config))
