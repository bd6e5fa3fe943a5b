"""
Configuration parameters for chromium_fetcher.
"""

import inspect
import os
import tomllib
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from chromium_fetcher.fetcher_exceptions import FetcherException

DEFAULT_HOST = "https://storage.googleapis.com"
DEFAULT_REVISION = "1045629"
DEFAULT_TIMEOUT = 60.0
DEFAULT_CHUNK_SIZE = 64 * 1024

FETCHER_TOML_SCHEMA = """
# chromium_fetcher configuration

[fetcher]
# Directory under which snapshot builds are cached (optional, defaults to the
# per-user local data directory)
# cache_root = "/var/cache/chromium-fetcher"

# Seconds to wait for a connection or for the next chunk of data
timeout = 60

# HTTP stack used for downloads: "httpx" or "aiohttp"
transport_backend = "httpx"

# Revision used when fetch() is called without a token ("latest" or a number)
# revision = "latest"

# Platform to download for, when it differs from the running machine
# platform = "linux-x64"
"""


class TransportBackend(str, Enum):
    """
    Asynchronous HTTP stacks a fetcher can be built on.
    """

    HTTPX = "httpx"
    AIOHTTP = "aiohttp"

    def __str__(self) -> str:
        return self.value


@dataclass
class FetcherConfig:
    """
    Configuration parameters
    """

    cache_root: Optional[str] = None
    timeout: float = DEFAULT_TIMEOUT
    transport_backend: TransportBackend = TransportBackend.HTTPX
    host: str = DEFAULT_HOST
    revision: str = DEFAULT_REVISION
    platform: Optional[str] = None
    chunk_size: int = DEFAULT_CHUNK_SIZE

    def __post_init__(self):
        if not isinstance(self.transport_backend, TransportBackend):
            try:
                self.transport_backend = TransportBackend(str(self.transport_backend).lower())
            except ValueError:
                raise FetcherException(f"Unsupported transport backend: {self.transport_backend}")
        self.revision = str(self.revision)

    def validate(self) -> Tuple[bool, Optional[str]]:
        """
        Validate the fetcher configuration.

        Returns:
            Tuple of (is_valid, error_message)
        """
        if isinstance(self.timeout, bool) or not isinstance(self.timeout, (int, float)):
            return False, f"Timeout must be a number, got {self.timeout!r}"
        if self.timeout <= 0:
            return False, f"Timeout must be positive, got {self.timeout}"

        if self.chunk_size <= 0:
            return False, f"Chunk size must be positive, got {self.chunk_size}"

        if not self.host.startswith(("http://", "https://")):
            return False, f"Host must be an http(s) URL: {self.host}"

        return True, None

    @classmethod
    def from_dict(cls, env: Dict[str, Any]) -> "FetcherConfig":
        """
        Create a FetcherConfig instance from a dictionary. Unknown keys are ignored.
        """
        return cls(**{k: v for k, v in env.items() if k in inspect.signature(cls).parameters})

    @classmethod
    def from_toml(cls, path: str) -> "FetcherConfig":
        """
        Create a FetcherConfig from the [fetcher] table of a TOML file.

        Raises:
            FetcherException: If the file cannot be read or is invalid
        """
        try:
            with open(path, "rb") as f:
                toml_dict = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            raise FetcherException(f"Failed to load fetcher configuration from {path}: {e}") from e

        config = cls.from_dict(toml_dict.get("fetcher", {}))
        is_valid, error_msg = config.validate()
        if not is_valid:
            raise FetcherException(error_msg)
        return config

    @classmethod
    def from_env(cls, **overrides: Any) -> "FetcherConfig":
        """
        Build config from CHROMIUM_FETCHER_* environment variables plus explicit overrides.

        Environment variables (all optional):
            CHROMIUM_FETCHER_CACHE_ROOT:  Cache root directory.
            CHROMIUM_FETCHER_TIMEOUT:     Connect/read timeout in seconds.
            CHROMIUM_FETCHER_BACKEND:     "httpx" (default) or "aiohttp".
            CHROMIUM_FETCHER_HOST:        Snapshot host.
            CHROMIUM_FETCHER_REVISION:    Default revision token.
            CHROMIUM_FETCHER_PLATFORM:    Platform identifier, e.g. "linux-x64".
        """
        raw_timeout = os.environ.get("CHROMIUM_FETCHER_TIMEOUT")
        try:
            timeout = DEFAULT_TIMEOUT if raw_timeout is None else float(raw_timeout)
        except ValueError as e:
            raise FetcherException(f"Invalid CHROMIUM_FETCHER_TIMEOUT: {raw_timeout!r}") from e

        values: Dict[str, Any] = {
            "cache_root": os.environ.get("CHROMIUM_FETCHER_CACHE_ROOT"),
            "timeout": timeout,
            "transport_backend": os.environ.get("CHROMIUM_FETCHER_BACKEND", TransportBackend.HTTPX.value),
            "host": os.environ.get("CHROMIUM_FETCHER_HOST", DEFAULT_HOST),
            "revision": os.environ.get("CHROMIUM_FETCHER_REVISION", DEFAULT_REVISION),
            "platform": os.environ.get("CHROMIUM_FETCHER_PLATFORM"),
        }
        values.update(overrides)
        return cls.from_dict(values)

    def to_dict(self) -> Dict[str, Any]:
        """Convert FetcherConfig to dictionary representation."""
        out = asdict(self)
        out["transport_backend"] = self.transport_backend.value
        return out
