"""
Data models for the chromium fetch pipeline.

This package provides Pydantic data models for platforms, revisions, archive
descriptors and cache entries, plus the static platform table loaded from
platforms.json.
"""

from .fetch_models import (
    Arch,
    ArchiveDescriptor,
    CacheEntry,
    CacheEntryState,
    FetchResult,
    FetchState,
    OsKind,
    Platform,
    Revision,
    StagedTree,
)
from .platform_table import PlatformArchive, PlatformTable

__all__ = [
    # Fetch pipeline
    "Arch",
    "ArchiveDescriptor",
    "CacheEntry",
    "CacheEntryState",
    "FetchResult",
    "FetchState",
    "OsKind",
    "Platform",
    "Revision",
    "StagedTree",
    # Platform table
    "PlatformArchive",
    "PlatformTable",
]
