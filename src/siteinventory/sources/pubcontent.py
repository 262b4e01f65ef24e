"""PublishedContent listing source: recursive walk of the page-instruction tree.

Each listed ``PageInstructions`` file is one page on the site. The walk
starts at the root, maps files to page URLs, and recurses into every
sub-directory in parallel. Recursion is bounded twice: a visited set on the
normalized path (so ``..`` or repeated entries cannot loop) and
``max_depth``.
"""

from __future__ import annotations

import asyncio
import posixpath
from typing import TYPE_CHECKING, Any

import httpx

from siteinventory import __version__
from siteinventory.config import PubContentSourceConfig, validate_stage_config
from siteinventory.errors import ErrorCode, SourceError
from siteinventory.listing import PublishedContentListing
from siteinventory.sources import merge_urls

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from siteinventory.errors import ConfigError
    from siteinventory.protocols import ListingProtocol

PAGE_INSTRUCTIONS = "PageInstructions"
_INSTRUCTIONS_PREFIX = f"/PublishedContent/{PAGE_INSTRUCTIONS}"
_INSTRUCTIONS_SUFFIX = ".xml"


def normalize_path(path: list[str]) -> str:
    """``['a', '', 'b', '..', 'c']`` → ``'/a/c'``."""
    return posixpath.normpath("/" + "/".join(path)).replace("//", "/")


class PubContentListSource:
    def __init__(
        self,
        log: FilteringBoundLogger,
        listing: ListingProtocol,
        config: PubContentSourceConfig,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._log = log
        self._listing = listing
        self._config = config
        self._client = client  # Closed on end/abort when this source built it
        self._visited: set[str] = set()

    async def begin(self) -> None:
        return

    def file_url(self, full_web_path: str) -> str:
        """``/PublishedContent/PageInstructions/about/faq.xml`` → ``https://<host>/about/faq``"""
        path = full_web_path.replace(_INSTRUCTIONS_PREFIX, "", 1)
        if path.endswith(_INSTRUCTIONS_SUFFIX):
            path = path[: -len(_INSTRUCTIONS_SUFFIX)]
        return f"https://{self._config.hostname}{path}"

    async def get_records(self) -> list[str]:
        self._visited = set()
        urls = await self._fetch_recursive([])
        records = merge_urls(urls, self._config.additional_urls, self._config.ignore_urls)
        self._log.info(
            "listing_records_ready",
            hostname=self._config.hostname,
            directories=len(self._visited),
            discovered=len(urls),
            records=len(records),
        )
        return records

    async def _fetch_recursive(self, path: list[str]) -> list[str]:
        key = normalize_path(path)
        if key in self._visited:
            self._log.warning("listing_path_revisited", path=key)
            return []

        depth = 0 if key == "/" else key.count("/")
        if depth > self._config.max_depth:
            raise SourceError(
                ErrorCode.SOURCE_TOO_DEEP,
                f"Listing path {key} exceeds max_depth={self._config.max_depth}",
            )
        self._visited.add(key)

        result = await self._listing.get_items_for_path(PAGE_INSTRUCTIONS, path)
        urls = [self.file_url(f.full_web_path) for f in result.files]

        if result.directories:
            children = await asyncio.gather(
                *(self._fetch_recursive([*path, directory]) for directory in result.directories)
            )
            for child_urls in children:
                urls.extend(child_urls)

        return urls

    async def end(self) -> None:
        if self._client is not None:
            await self._client.aclose()

    async def abort(self) -> None:
        if self._client is not None:
            await self._client.aclose()

    @staticmethod
    def validate_config(config: dict[str, Any]) -> list[ConfigError]:
        return validate_stage_config(PubContentSourceConfig, config)

    @classmethod
    async def get_instance(
        cls, log: FilteringBoundLogger, config: dict[str, Any]
    ) -> PubContentListSource:
        settings = PubContentSourceConfig.model_validate(config)
        client = httpx.AsyncClient(
            timeout=httpx.Timeout(settings.timeout_seconds),
            headers={"User-Agent": f"siteinventory/{__version__}"},
            limits=httpx.Limits(
                max_connections=settings.max_connections,
                max_keepalive_connections=settings.max_connections,
            ),
        )
        listing = PublishedContentListing(client, settings.hostname)
        return cls(log, listing, settings, client=client)
