"""
Archive extractor implementation.

Unpacks a downloaded zip into a staging directory and locates the executable.
"""

import asyncio
import logging
import os
import pathlib
import re
import stat
import threading
import zipfile
import zlib
from pathlib import PurePosixPath
from typing import List, Optional, Tuple

from chromium_fetcher.archive_models import ArchiveDescriptor, StagedTree
from chromium_fetcher.fetcher_config import DEFAULT_CHUNK_SIZE
from chromium_fetcher.fetcher_exceptions import (
    ArchiveCorrupt,
    ExecutableNotFound,
    FetcherIOError,
    UnsafeArchiveEntry,
)
from chromium_fetcher.fetcher_logger import FetcherLogger
from chromium_fetcher.fetcher_utils import FileUtils

DRIVE_PREFIX = re.compile(r"^[A-Za-z]:")

# errors zipfile and zlib raise on malformed input
ZIP_FORMAT_ERRORS = (zipfile.BadZipFile, zlib.error, EOFError, NotImplementedError, RuntimeError)


class _ExtractionAborted(Exception):
    """Raised in the worker thread when the awaiting task was cancelled."""


class Extractor:
    """
    Extracts zip archives.

    Every entry name is validated before anything is written. Entries are then
    streamed to disk in a worker thread, restoring unix permission bits and
    symlinks stored in the archive.
    """

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE, logger: Optional[FetcherLogger] = None):
        self.chunk_size = chunk_size
        self.logger = logger or FetcherLogger()

    async def extract(
        self,
        archive_path: pathlib.Path,
        staging_dir: pathlib.Path,
        descriptor: ArchiveDescriptor,
    ) -> StagedTree:
        """
        Extract an archive and verify the descriptor's executable.

        Args:
            archive_path: The downloaded zip
            staging_dir: Existing, empty directory receiving the tree
            descriptor: Descriptor naming the expected executable

        Returns:
            StagedTree rooted at staging_dir

        Raises:
            UnsafeArchiveEntry: If an entry would land outside staging_dir
            ArchiveCorrupt: If the archive cannot be parsed or an entry's size mismatches
            ExecutableNotFound: If the expected executable is missing or not executable
            FetcherIOError: On local write failures
        """
        self.logger.log(f"Extracting {archive_path.name} into {staging_dir}", logging.INFO)

        abort = threading.Event()
        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(None, self._extract_all, archive_path, staging_dir, abort)
        try:
            count = await asyncio.shield(future)
        except asyncio.CancelledError:
            # the worker keeps writing until it sees the flag; wait so cleanup sees a settled tree
            abort.set()
            await asyncio.wait({future})
            if not future.cancelled():
                future.exception()
            raise

        self.logger.log(f"Extracted {count} entries from {archive_path.name}", logging.INFO)

        executable_path = staging_dir.joinpath(*PurePosixPath(descriptor.expected_executable_relpath).parts)
        if not FileUtils.is_executable(executable_path):
            raise ExecutableNotFound(
                f"Expected executable {descriptor.expected_executable_relpath} not found "
                f"or not executable in {archive_path.name}"
            )

        return StagedTree(descriptor=descriptor, root_dir=staging_dir, executable_path=executable_path)

    def _extract_all(self, archive_path: pathlib.Path, staging_dir: pathlib.Path, abort: threading.Event) -> int:
        staging_root = staging_dir.resolve()
        try:
            with zipfile.ZipFile(archive_path) as archive:
                planned = self._plan(archive, staging_dir)
                for info, target in planned:
                    if abort.is_set():
                        raise _ExtractionAborted()
                    self._extract_member(archive, info, target, staging_root, abort)
                return len(planned)
        except ZIP_FORMAT_ERRORS as e:
            raise ArchiveCorrupt(f"Cannot read archive {archive_path.name}: {e}") from e
        except OSError as e:
            raise FetcherIOError(f"Failed extracting {archive_path.name}: {e}") from e

    def _plan(self, archive: zipfile.ZipFile, staging_dir: pathlib.Path) -> List[Tuple[zipfile.ZipInfo, pathlib.Path]]:
        """Validate all entry names up front; nothing is written if any is unsafe."""
        planned = []
        for info in archive.infolist():
            target = self._member_target(staging_dir, info.filename)
            if target is not None:
                planned.append((info, target))
        return planned

    @staticmethod
    def _member_target(staging_dir: pathlib.Path, member_name: str) -> Optional[pathlib.Path]:
        normalized = member_name.replace("\\", "/")
        relative = PurePosixPath(normalized)
        if relative.is_absolute() or DRIVE_PREFIX.match(normalized):
            raise UnsafeArchiveEntry(f"Absolute path in archive: {member_name}", member_name)

        parts = [part for part in relative.parts if part not in ("", ".")]
        if ".." in parts:
            raise UnsafeArchiveEntry(f"Parent directory reference in archive: {member_name}", member_name)
        if not parts:
            return None
        return staging_dir.joinpath(*parts)

    @staticmethod
    def _ensure_inside(path: pathlib.Path, staging_root: pathlib.Path, member_name: str) -> None:
        if not path.resolve().is_relative_to(staging_root):
            raise UnsafeArchiveEntry(f"Archive entry escapes the staging directory: {member_name}", member_name)

    def _extract_member(
        self,
        archive: zipfile.ZipFile,
        info: zipfile.ZipInfo,
        target: pathlib.Path,
        staging_root: pathlib.Path,
        abort: threading.Event,
    ) -> None:
        mode = (info.external_attr >> 16) & 0xFFFF

        if info.is_dir():
            self._ensure_inside(target, staging_root, info.filename)
            target.mkdir(parents=True, exist_ok=True)
            return

        self._ensure_inside(target.parent, staging_root, info.filename)
        target.parent.mkdir(parents=True, exist_ok=True)
        if target.is_symlink():
            target.unlink()

        if stat.S_ISLNK(mode):
            try:
                link = archive.read(info).decode("utf-8")
            except UnicodeDecodeError as e:
                raise ArchiveCorrupt(f"Symlink {info.filename} has an undecodable target") from e
            if not link or "\x00" in link:
                raise ArchiveCorrupt(f"Symlink {info.filename} has an invalid target {link!r}")
            if PurePosixPath(link).is_absolute() or DRIVE_PREFIX.match(link):
                raise UnsafeArchiveEntry(f"Absolute symlink in archive: {info.filename} -> {link}", info.filename)
            self._ensure_inside(target.parent / link, staging_root, info.filename)
            os.symlink(link, target)
            return

        copied = 0
        with archive.open(info) as source, open(target, "wb") as sink:
            while True:
                if abort.is_set():
                    raise _ExtractionAborted()
                chunk = source.read(self.chunk_size)
                if not chunk:
                    break
                sink.write(chunk)
                copied += len(chunk)

        if copied != info.file_size:
            raise ArchiveCorrupt(
                f"Entry {info.filename} declares {info.file_size} bytes but {copied} were read"
            )

        permissions = stat.S_IMODE(mode)
        if permissions and os.name != "nt":
            os.chmod(target, permissions)
