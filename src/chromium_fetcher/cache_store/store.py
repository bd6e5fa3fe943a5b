"""
On-disk cache of extracted snapshot builds.

Layout: <root>/<os>-<arch>/<revision>/ holds one extracted archive. Staging
and evicted directories are hidden siblings in the same platform directory,
so every promotion is a same-filesystem rename.
"""

import asyncio
import errno
import logging
import pathlib
import uuid
from pathlib import PurePosixPath
from typing import List, Optional

import aiofiles.os

from chromium_fetcher.archive_locator import ArchiveLocator
from chromium_fetcher.archive_models import CacheEntry, CacheEntryState, Platform, Revision, StagedTree
from chromium_fetcher.fetcher_exceptions import CacheRaceLost, FetcherIOError
from chromium_fetcher.fetcher_logger import FetcherLogger
from chromium_fetcher.fetcher_utils import FileUtils

STAGING_PREFIX = ".staging-"
EVICTED_PREFIX = ".evicted-"
MAX_PROMOTION_ATTEMPTS = 3

# rename(2) reports an occupied directory target with either of these
SLOT_OCCUPIED_ERRNOS = {errno.EEXIST, errno.ENOTEMPTY}


class CacheStore:
    """
    Owns the cache layout keyed by (platform, revision).

    At most one valid entry exists per slot. A slot only becomes visible
    through an atomic rename of a completed staging directory; a commit that
    finds the slot already valid is discarded in favour of the existing entry.
    """

    def __init__(
        self,
        root: pathlib.Path,
        locator: ArchiveLocator,
        logger: Optional[FetcherLogger] = None,
    ):
        """
        Initialize the cache store.

        Args:
            root: Cache root directory, created on demand
            locator: Locator used to derive each slot's expected executable
            logger: Logger for cache decisions
        """
        self.root = pathlib.Path(root)
        self.locator = locator
        self.logger = logger or FetcherLogger()

    def platform_dir(self, platform: Platform) -> pathlib.Path:
        return self.root / platform.identifier

    def slot_path(self, platform: Platform, revision: Revision) -> pathlib.Path:
        """Canonical directory of a (platform, revision) pair. Pure; never scans."""
        return self.platform_dir(platform) / revision.value

    def executable_path(self, platform: Platform, revision: Revision) -> pathlib.Path:
        relpath = self.locator.executable_relpath(platform, revision)
        return self.slot_path(platform, revision).joinpath(*PurePosixPath(relpath).parts)

    async def ensure_platform_dir(self, platform: Platform) -> pathlib.Path:
        """
        Create the root and platform directories if absent. Concurrent callers are fine.
        """
        platform_dir = self.platform_dir(platform)
        try:
            await aiofiles.os.makedirs(platform_dir, exist_ok=True)
        except OSError as e:
            raise FetcherIOError(f"Cannot create cache directory {platform_dir}: {e}") from e
        return platform_dir

    async def create_staging_dir(self, platform: Platform, revision: Revision) -> pathlib.Path:
        platform_dir = await self.ensure_platform_dir(platform)
        staging_dir = platform_dir / f"{STAGING_PREFIX}{revision.value}-{uuid.uuid4().hex}"
        try:
            await aiofiles.os.mkdir(staging_dir)
        except OSError as e:
            raise FetcherIOError(f"Cannot create staging directory {staging_dir}: {e}") from e
        return staging_dir

    async def inspect(self, platform: Platform, revision: Revision) -> Optional[CacheEntry]:
        """
        Report the state of a slot: None if the directory does not exist, otherwise
        a valid or invalid entry.
        """
        slot = self.slot_path(platform, revision)
        if not await aiofiles.os.path.isdir(slot):
            return None

        executable = self.executable_path(platform, revision)
        is_valid = await asyncio.to_thread(self._is_complete, slot, executable)
        return CacheEntry(
            platform=platform,
            revision=revision,
            root_dir=slot,
            executable_path=executable,
            state=CacheEntryState.VALID if is_valid else CacheEntryState.INVALID,
        )

    async def lookup(self, platform: Platform, revision: Revision) -> Optional[CacheEntry]:
        """
        Return the valid entry of a slot, or None. A broken slot (empty, missing
        executable) is reported as absent so the caller re-fetches.
        """
        entry = await self.inspect(platform, revision)
        if entry is None or not entry.is_valid():
            return None
        return entry

    async def commit(self, staged: StagedTree, platform: Platform, revision: Revision) -> CacheEntry:
        """
        Atomically promote a staged tree into its canonical slot.

        Returns:
            The valid entry now occupying the slot, which is the existing one
            when a concurrent fetch got there first

        Raises:
            FetcherIOError: If the staging directory could not be promoted
        """
        slot = self.slot_path(platform, revision)

        for _ in range(MAX_PROMOTION_ATTEMPTS):
            try:
                await self._promote(staged.root_dir, slot)
            except CacheRaceLost:
                existing = await self.lookup(platform, revision)
                if existing is not None:
                    self.logger.log(
                        f"Slot {slot} was filled by a concurrent fetch; discarding {staged.root_dir.name}",
                        logging.INFO,
                    )
                    await self.discard(staged.root_dir)
                    return existing
                self.logger.log(f"Replacing broken cache entry at {slot}", logging.WARNING)
                await self._evict_if_broken(platform, revision)
                continue
            except FetcherIOError:
                await self.discard(staged.root_dir)
                raise

            self.logger.log(f"Committed {platform.identifier} revision {revision} to {slot}", logging.INFO)
            return CacheEntry(
                platform=platform,
                revision=revision,
                root_dir=slot,
                executable_path=self.executable_path(platform, revision),
                state=CacheEntryState.VALID,
            )

        await self.discard(staged.root_dir)
        raise FetcherIOError(f"Could not promote {staged.root_dir} to {slot}")

    async def evict(self, platform: Platform, revision: Revision) -> None:
        """
        Remove a slot. The directory is first renamed aside so that no reader
        ever sees it half-deleted.
        """
        graveyard = await self._move_aside(platform, revision)
        if graveyard is not None:
            await self.discard(graveyard)

    async def _evict_if_broken(self, platform: Platform, revision: Revision) -> None:
        """
        Evict a slot previously seen as broken. A concurrent commit may have
        replaced it with a complete tree in the meantime; such a tree is put back.
        """
        graveyard = await self._move_aside(platform, revision)
        if graveyard is None:
            return

        relpath = self.locator.executable_relpath(platform, revision)
        executable = graveyard.joinpath(*PurePosixPath(relpath).parts)
        if await asyncio.to_thread(self._is_complete, graveyard, executable):
            slot = self.slot_path(platform, revision)
            try:
                await aiofiles.os.rename(graveyard, slot)
                self.logger.log(f"Restored cache entry {slot} committed by a concurrent fetch", logging.INFO)
                return
            except OSError as e:
                self.logger.log(f"Could not restore cache entry {slot}: {e}", logging.WARNING)
        await self.discard(graveyard)

    async def _move_aside(self, platform: Platform, revision: Revision) -> Optional[pathlib.Path]:
        slot = self.slot_path(platform, revision)
        graveyard = self.platform_dir(platform) / f"{EVICTED_PREFIX}{revision.value}-{uuid.uuid4().hex}"
        try:
            await aiofiles.os.rename(slot, graveyard)
        except FileNotFoundError:
            return None
        except OSError as e:
            raise FetcherIOError(f"Cannot evict cache entry {slot}: {e}") from e
        return graveyard

    async def discard(self, path: pathlib.Path) -> None:
        """Remove a staging or evicted directory, or a temporary file."""
        await asyncio.to_thread(FileUtils.remove_path, self.logger, path)

    async def local_revisions(self, platform: Platform) -> List[Revision]:
        """
        Revisions with a valid entry for the platform, numeric ones first in ascending order.
        """
        platform_dir = self.platform_dir(platform)
        if not await aiofiles.os.path.isdir(platform_dir):
            return []

        revisions = []
        for name in await aiofiles.os.listdir(platform_dir):
            if name.startswith("."):
                continue
            revision = Revision(value=name)
            if await self.lookup(platform, revision) is not None:
                revisions.append(revision)

        return sorted(revisions, key=lambda r: (r.number is None, r.number or 0, r.value))

    async def _promote(self, source: pathlib.Path, slot: pathlib.Path) -> None:
        try:
            await aiofiles.os.rename(source, slot)
        except FileExistsError as e:
            raise CacheRaceLost(f"Cache slot {slot} already exists") from e
        except OSError as e:
            if e.errno in SLOT_OCCUPIED_ERRNOS:
                raise CacheRaceLost(f"Cache slot {slot} already exists") from e
            raise FetcherIOError(f"Cannot move {source} to {slot}: {e}") from e

    @staticmethod
    def _is_complete(slot: pathlib.Path, executable: pathlib.Path) -> bool:
        if not any(slot.iterdir()):
            return False
        return FileUtils.is_executable(executable)
