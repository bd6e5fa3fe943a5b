"""
Archive locator implementation.

Builds download URLs and expected executable paths from the static platform table.
"""

from typing import Optional

from chromium_fetcher.archive_models import (
    ArchiveDescriptor,
    Platform,
    PlatformArchive,
    PlatformTable,
    Revision,
)
from chromium_fetcher.fetcher_config import DEFAULT_HOST
from chromium_fetcher.fetcher_exceptions import UnsupportedPlatform


class ArchiveLocator:
    """
    Deterministically maps (platform, revision) to an ArchiveDescriptor.

    Purely computational: no filesystem or network access.
    """

    def __init__(self, table: Optional[PlatformTable] = None, host: str = DEFAULT_HOST):
        """
        Initialize the locator.

        Args:
            table: Platform table, defaults to the bundled platforms.json
            host: Scheme and host of the snapshot bucket
        """
        self.table = table or PlatformTable.load()
        self.host = host.rstrip("/")

    def locate(self, platform: Platform, revision: Revision) -> ArchiveDescriptor:
        """
        Build the descriptor of the archive for a platform and revision.

        Raises:
            UnsupportedPlatform: If the table has no entry for the platform
        """
        archive = self._get_archive(platform)
        archive_name = archive.archive_name_for(revision)
        url = self.table.url_template.format(
            host=self.host,
            folder=archive.folder,
            revision=revision.value,
            archive_name=archive_name,
        )

        return ArchiveDescriptor(
            platform=platform,
            revision=revision,
            url=url,
            archive_filename=f"{archive_name}.zip",
            expected_executable_relpath=archive.executable_relpath_for(revision),
        )

    def executable_relpath(self, platform: Platform, revision: Revision) -> str:
        return self._get_archive(platform).executable_relpath_for(revision)

    def catalog_url(self, platform: Platform) -> str:
        """
        URL of the document naming the newest snapshot revision for a platform.
        """
        archive = self._get_archive(platform)
        return self.table.catalog_template.format(host=self.host, folder=archive.folder)

    def _get_archive(self, platform: Platform) -> PlatformArchive:
        archive = self.table.get_archive(platform)
        if archive is None:
            raise UnsupportedPlatform(f"No archive template for platform {platform.identifier}")
        return archive
