"""
This file contains various utility functions like platform detection and file helpers
"""

import logging
import os
import pathlib
import platform
import shutil
from typing import Optional

from chromium_fetcher.archive_models import Arch, OsKind, Platform, PlatformTable
from chromium_fetcher.fetcher_exceptions import UnsupportedPlatform
from chromium_fetcher.fetcher_logger import FetcherLogger

SYSTEM_MAP = {
    "Windows": OsKind.WINDOWS,
    "Darwin": OsKind.MACOS,
    "Linux": OsKind.LINUX,
}

MACHINE_MAP = {
    "AMD64": Arch.X64,
    "x86_64": Arch.X64,
    "x64": Arch.X64,
    "i386": Arch.X86,
    "i686": Arch.X86,
    "x86": Arch.X86,
    "aarch64": Arch.ARM64,
    "arm64": Arch.ARM64,
    "ARM64": Arch.ARM64,
}


class PlatformResolver:
    """
    Maps the running operating system and CPU architecture to a Platform known to the platform table.
    """

    def __init__(self, table: Optional[PlatformTable] = None):
        self.table = table or PlatformTable.load()

    def resolve(self) -> Platform:
        """
        Detect the platform of the running machine.

        Raises:
            UnsupportedPlatform: If the OS/arch pair is unknown or has no snapshot builds
        """
        system = platform.system()
        machine = platform.machine()
        if system not in SYSTEM_MAP or machine not in MACHINE_MAP:
            raise UnsupportedPlatform(f"Unknown platform: {system} {machine}")

        detected = Platform(os=SYSTEM_MAP[system], arch=MACHINE_MAP[machine])
        return self.check(detected)

    def check(self, candidate: Platform) -> Platform:
        """
        Raises UnsupportedPlatform if the table has no entry for the candidate.
        """
        if not self.table.supports(candidate):
            raise UnsupportedPlatform(f"No snapshot builds are published for {candidate.identifier}")
        return candidate


class FileUtils:
    """
    Utility functions for files and directories
    """

    @staticmethod
    def is_executable(path: pathlib.Path) -> bool:
        """
        True if path is a regular file the current user may execute. Windows has
        no execute bit, so existence is enough there.
        """
        if not path.is_file():
            return False
        if os.name == "nt":
            return True
        return os.access(path, os.X_OK)

    @staticmethod
    def remove_path(logger: FetcherLogger, path: pathlib.Path) -> None:
        """
        Remove a file or directory tree if it exists. Failures are logged, not raised,
        so cleanup never masks the error that triggered it.
        """
        try:
            if path.is_symlink() or path.is_file():
                path.unlink()
            elif path.is_dir():
                shutil.rmtree(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.log(f"Failed to remove {path}: {e}", logging.WARNING)
