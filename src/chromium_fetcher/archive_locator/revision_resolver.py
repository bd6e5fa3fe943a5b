"""
Revision resolution.

Turns a caller-supplied revision token into a concrete Revision, consulting the
snapshot catalog for the "latest" token.
"""

import logging
from typing import Optional, Protocol, Union

from chromium_fetcher.archive_downloader.transport import Transport
from chromium_fetcher.archive_locator.locator import ArchiveLocator
from chromium_fetcher.archive_models import Platform, Revision
from chromium_fetcher.fetcher_config import DEFAULT_TIMEOUT
from chromium_fetcher.fetcher_exceptions import CatalogUnavailable, InvalidRevision, NetworkError, TruncatedDownload
from chromium_fetcher.fetcher_logger import FetcherLogger

LATEST = "latest"

# LAST_CHANGE holds a single number; anything much larger is not a catalog response
MAX_CATALOG_RESPONSE_BYTES = 1024

RevisionToken = Union[str, int, Revision]


class RevisionCatalog(Protocol):
    """Port for the service mapping "latest" to a concrete revision."""

    async def latest_revision(self, platform: Platform) -> str:
        """Return the newest published revision for the platform."""
        ...


def validate_revision(value: str) -> str:
    """
    Check that a revision string is safe to use as a directory name.

    Raises:
        InvalidRevision: If the value is empty, padded with whitespace or contains
            path components or NUL characters
    """
    if not value.strip():
        raise InvalidRevision("Revision must not be empty")
    if value != value.strip():
        raise InvalidRevision(f"Revision must not start or end with whitespace: {value!r}")
    if "\x00" in value:
        raise InvalidRevision(f"Revision must not contain NUL characters: {value!r}")
    if "/" in value or "\\" in value or value in (".", ".."):
        raise InvalidRevision(f"Revision must not contain path components: {value!r}")
    if value.startswith(".staging-") or value.startswith(".evicted-"):
        raise InvalidRevision(f"Revision collides with cache bookkeeping names: {value!r}")
    return value


class SnapshotCatalog:
    """
    Reads the LAST_CHANGE document of the snapshot bucket through a Transport.
    """

    def __init__(
        self,
        transport: Transport,
        locator: ArchiveLocator,
        timeout: float = DEFAULT_TIMEOUT,
        logger: Optional[FetcherLogger] = None,
    ):
        self.transport = transport
        self.locator = locator
        self.timeout = timeout
        self.logger = logger or FetcherLogger()

    async def latest_revision(self, platform: Platform) -> str:
        url = self.locator.catalog_url(platform)
        self.logger.log(f"Querying latest revision from {url}", logging.INFO)

        body = b""
        try:
            async with self.transport.open(url, timeout=self.timeout) as stream:
                if not 200 <= stream.status < 300:
                    raise CatalogUnavailable(f"Catalog returned HTTP {stream.status} for {url}")
                async for chunk in stream.iter_chunks():
                    body += chunk
                    if len(body) > MAX_CATALOG_RESPONSE_BYTES:
                        raise CatalogUnavailable(f"Catalog response from {url} is too large")
        except (NetworkError, TruncatedDownload) as e:
            raise CatalogUnavailable(f"Catalog request to {url} failed: {e}") from e

        try:
            value = body.decode("ascii").strip()
        except UnicodeDecodeError as e:
            raise CatalogUnavailable(f"Catalog response from {url} is not text") from e

        if not value.isdigit():
            raise CatalogUnavailable(f"Malformed catalog response from {url}: {value[:40]!r}")
        return value


class RevisionResolver:
    """
    Resolves revision tokens. Results are not cached: callers wanting the same
    revision across a session should pin the value returned by the first call.
    """

    def __init__(self, catalog: Optional[RevisionCatalog] = None, logger: Optional[FetcherLogger] = None):
        self.catalog = catalog
        self.logger = logger or FetcherLogger()

    async def resolve(self, token: RevisionToken, platform: Platform) -> Revision:
        """
        Resolve a token to a concrete revision.

        Args:
            token: "latest" (any case), an explicit revision string or number, or a Revision
            platform: Platform the revision is resolved for

        Raises:
            InvalidRevision: If an explicit token is malformed
            CatalogUnavailable: If "latest" could not be resolved
        """
        if isinstance(token, Revision):
            return Revision(value=validate_revision(token.value))

        if isinstance(token, bool) or not isinstance(token, (str, int)):
            raise InvalidRevision(f"Unsupported revision token: {token!r}")

        value = str(token)
        if value.strip().lower() != LATEST:
            return Revision(value=validate_revision(value))

        if self.catalog is None:
            raise CatalogUnavailable("No revision catalog configured to resolve 'latest'")

        latest = await self.catalog.latest_revision(platform)
        try:
            revision = Revision(value=validate_revision(latest))
        except InvalidRevision as e:
            raise CatalogUnavailable(f"Catalog returned an unusable revision: {latest!r}") from e

        self.logger.log(f"Resolved latest revision for {platform.identifier} to {revision}", logging.INFO)
        return revision
