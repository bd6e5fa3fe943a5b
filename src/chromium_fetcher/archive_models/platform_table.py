"""
Pydantic data models for platforms.json, the static table describing where the
snapshot archive of each platform lives and what it contains.
"""

import json
import pathlib
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from chromium_fetcher.archive_models.fetch_models import Platform, Revision

PLATFORM_TABLE_PATH = pathlib.Path(__file__).parent / "platforms.json"


class PlatformArchive(BaseModel):
    """
    Archive layout for a single platform.
    """

    folder: str = Field(..., description="Folder of the platform in the snapshot bucket")
    archive_name: str = Field(..., alias="archiveName", description="Archive file stem and top-level folder")
    executable: str = Field(..., description="Executable path relative to the top-level folder")
    legacy_archive_name: Optional[str] = Field(None, alias="legacyArchiveName")
    legacy_max_revision: Optional[int] = Field(None, alias="legacyMaxRevision")

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def archive_name_for(self, revision: Revision) -> str:
        """
        Archive stem used for the given revision. Old Windows snapshots were
        published under a different name.
        """
        if (
            self.legacy_archive_name is not None
            and self.legacy_max_revision is not None
            and revision.number is not None
            and revision.number <= self.legacy_max_revision
        ):
            return self.legacy_archive_name
        return self.archive_name

    def executable_relpath_for(self, revision: Revision) -> str:
        return f"{self.archive_name_for(revision)}/{self.executable}"


class PlatformTable(BaseModel):
    """
    Complete platform table.

    Structure:
    {
      "_description": "...",
      "urlTemplate": "{host}/.../{folder}/{revision}/{archive_name}.zip",
      "catalogTemplate": "{host}/.../{folder}/LAST_CHANGE",
      "platforms": {
        "linux-x64": {folder, archiveName, executable, ...},
        ...
      }
    }
    """

    description: Optional[str] = Field(None, alias="_description")
    url_template: str = Field(..., alias="urlTemplate")
    catalog_template: str = Field(..., alias="catalogTemplate")
    platforms: Dict[str, PlatformArchive] = Field(default_factory=dict)

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def get_archive(self, platform: Platform) -> Optional[PlatformArchive]:
        return self.platforms.get(platform.identifier)

    def supports(self, platform: Platform) -> bool:
        return platform.identifier in self.platforms

    @classmethod
    def load(cls, path: Optional[pathlib.Path] = None) -> "PlatformTable":
        """
        Load the platform table from JSON. Defaults to the bundled platforms.json.
        """
        with open(path or PLATFORM_TABLE_PATH, "r") as f:
            return cls(**json.load(f))
