"""
Pydantic data models shared by the stages of the fetch pipeline.
"""

import pathlib
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from chromium_fetcher.fetcher_exceptions import UnsupportedPlatform


class OsKind(str, Enum):
    LINUX = "linux"
    MACOS = "macos"
    WINDOWS = "windows"


class Arch(str, Enum):
    X64 = "x64"
    X86 = "x86"
    ARM64 = "arm64"


class Platform(BaseModel):
    """
    The (operating system, CPU architecture) pair a build targets.
    """

    os: OsKind
    arch: Arch

    model_config = ConfigDict(frozen=True)

    @property
    def identifier(self) -> str:
        """Canonical identifier, also used as the platform directory name in the cache."""
        return f"{self.os.value}-{self.arch.value}"

    @classmethod
    def parse(cls, identifier: str) -> "Platform":
        """
        Parse an identifier such as "linux-x64" or "macos-arm64".

        Raises:
            UnsupportedPlatform: If the identifier does not name a known OS and architecture
        """
        os_name, sep, arch = (identifier or "").strip().lower().partition("-")
        try:
            if not sep:
                raise ValueError(identifier)
            return cls(os=OsKind(os_name), arch=Arch(arch))
        except ValueError:
            raise UnsupportedPlatform(f"Unknown platform identifier: {identifier!r}")

    def __str__(self) -> str:
        return self.identifier


class Revision(BaseModel):
    """
    A concrete, resolved snapshot revision. Opaque apart from an optional numeric reading.
    """

    value: str

    model_config = ConfigDict(frozen=True)

    @property
    def number(self) -> Optional[int]:
        return int(self.value) if self.value.isdigit() else None

    def __str__(self) -> str:
        return self.value


class ArchiveDescriptor(BaseModel):
    """
    Everything needed to download a snapshot archive and find its executable.
    """

    platform: Platform
    revision: Revision
    url: str
    archive_filename: str
    expected_executable_relpath: str = Field(..., description="POSIX path relative to the extracted tree")

    model_config = ConfigDict(frozen=True)


class CacheEntryState(str, Enum):
    STAGING = "staging"
    VALID = "valid"
    INVALID = "invalid"


class CacheEntry(BaseModel):
    """
    A (platform, revision) slot of the cache.
    """

    platform: Platform
    revision: Revision
    root_dir: pathlib.Path
    executable_path: pathlib.Path
    state: CacheEntryState

    model_config = ConfigDict(frozen=True)

    def is_valid(self) -> bool:
        return self.state == CacheEntryState.VALID


class StagedTree(BaseModel):
    """
    An extracted archive sitting in a staging directory, not yet visible in the cache.
    """

    descriptor: ArchiveDescriptor
    root_dir: pathlib.Path
    executable_path: pathlib.Path

    model_config = ConfigDict(frozen=True)


class FetchState(str, Enum):
    """States a single fetch call moves through."""

    IDLE = "idle"
    RESOLVING = "resolving"
    LOCATING = "locating"
    CACHE_HIT = "cache_hit"
    DOWNLOADING = "downloading"
    EXTRACTING = "extracting"
    COMMITTING = "committing"
    SUCCESS = "success"
    FAILED = "failed"


class FetchResult(BaseModel):
    """
    Returned to the caller of fetch. The fetcher manages no further lifecycle for it.
    """

    revision_used: Revision
    executable_path: pathlib.Path
    folder_path: pathlib.Path
    cache_hit: bool = False

    model_config = ConfigDict(frozen=True)
