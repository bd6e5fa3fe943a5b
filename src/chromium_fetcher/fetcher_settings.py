"""
Defines the default on-disk locations used by chromium_fetcher
"""

import os
import pathlib
import platform

APP_DIRECTORY_NAME = "chromium-fetcher"


class FetcherSettings:
    """
    Provides the various settings for chromium_fetcher
    """

    @staticmethod
    def get_data_local_directory() -> str:
        """
        Returns the per-user local data directory conventional for the running OS
        """
        system = platform.system()
        home = pathlib.Path.home()
        if system == "Windows":
            local_app_data = os.environ.get("LOCALAPPDATA")
            if local_app_data:
                return local_app_data
            return str(home / "AppData" / "Local")
        if system == "Darwin":
            return str(home / "Library" / "Application Support")

        xdg_data_home = os.environ.get("XDG_DATA_HOME")
        if xdg_data_home:
            return xdg_data_home
        return str(home / ".local" / "share")

    @staticmethod
    def get_cache_root_directory() -> str:
        """
        Returns the default directory under which snapshot builds are cached.
        The directory is not created here; the cache store creates it on first commit.
        """
        return str(pathlib.Path(FetcherSettings.get_data_local_directory(), APP_DIRECTORY_NAME))
