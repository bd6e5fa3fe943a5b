"""
Archive location and revision resolution.

This package handles:
1. Resolving "latest" and explicit revision tokens
2. Building download URLs from the static platform table
3. Deriving where the executable sits inside an extracted archive
"""

from .locator import ArchiveLocator
from .revision_resolver import (
    LATEST,
    RevisionCatalog,
    RevisionResolver,
    RevisionToken,
    SnapshotCatalog,
    validate_revision,
)

__all__ = [
    "ArchiveLocator",
    "LATEST",
    "RevisionCatalog",
    "RevisionResolver",
    "RevisionToken",
    "SnapshotCatalog",
    "validate_revision",
]
