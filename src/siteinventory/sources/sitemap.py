"""Sitemap source: one sitemap document, flat URL list.

A ``<sitemapindex>`` document is followed one level deep; nested indexes
below that are ignored.
"""

from __future__ import annotations

import asyncio
import xml.etree.ElementTree as ET
from typing import TYPE_CHECKING, Any

import httpx

from siteinventory import __version__
from siteinventory.config import SitemapSourceConfig, validate_stage_config
from siteinventory.errors import ErrorCode, SourceError
from siteinventory.sources import merge_urls

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from siteinventory.errors import ConfigError


def _local_name(tag: str) -> str:
    """Strip the XML namespace: ``'{http://...}loc'`` → ``'loc'``."""
    return tag.rsplit("}", 1)[-1]


def parse_sitemap_xml(content: bytes | str) -> tuple[list[str], list[str]]:
    """Parse a sitemap document.

    Returns ``(page_urls, child_sitemap_urls)``; exactly one of the two is
    populated depending on whether the root is ``<urlset>`` or
    ``<sitemapindex>``. Works with and without the sitemaps.org namespace.
    Raises ``ET.ParseError`` on malformed XML.
    """
    root = ET.fromstring(content)
    root_name = _local_name(root.tag)
    entry_name = "sitemap" if root_name == "sitemapindex" else "url"

    locs: list[str] = []
    for entry in root:
        if _local_name(entry.tag) != entry_name:
            continue
        for child in entry:
            if _local_name(child.tag) == "loc" and child.text and child.text.strip():
                locs.append(child.text.strip())
                break

    if root_name == "sitemapindex":
        return [], locs
    return locs, []


class SitemapSource:
    def __init__(
        self,
        log: FilteringBoundLogger,
        client: httpx.AsyncClient,
        config: SitemapSourceConfig,
        *,
        owns_client: bool = False,
    ) -> None:
        self._log = log
        self._client = client
        self._config = config
        self._owns_client = owns_client

    async def begin(self) -> None:
        return

    async def get_records(self) -> list[str]:
        urls = await self._fetch_sitemap(self._config.sitemap_url, follow_index=True)
        records = merge_urls(urls, self._config.additional_urls, self._config.ignore_urls)
        self._log.info(
            "sitemap_records_ready",
            sitemap_url=self._config.sitemap_url,
            discovered=len(urls),
            records=len(records),
        )
        return records

    async def _fetch_sitemap(self, url: str, *, follow_index: bool) -> list[str]:
        try:
            response = await self._client.get(url, timeout=self._config.timeout_seconds)
        except httpx.HTTPError as exc:
            raise SourceError(
                ErrorCode.SOURCE_FETCH_FAILED, f"Network error fetching sitemap {url}: {exc}"
            ) from exc

        if not response.is_success:
            raise SourceError(
                ErrorCode.SOURCE_FETCH_FAILED,
                f"HTTP {response.status_code} fetching sitemap {url}",
            )

        try:
            urls, children = parse_sitemap_xml(response.content)
        except ET.ParseError as exc:
            raise SourceError(
                ErrorCode.SOURCE_PARSE_FAILED, f"XML parse error in sitemap {url}: {exc}"
            ) from exc

        if children:
            if not follow_index:
                self._log.warning("sitemap_nested_index_skipped", sitemap_url=url)
                return urls
            self._log.info("sitemap_index_found", sitemap_url=url, children=len(children))
            results = await asyncio.gather(
                *(self._fetch_sitemap(child, follow_index=False) for child in children)
            )
            for child_urls in results:
                urls.extend(child_urls)

        return urls

    async def end(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def abort(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    @staticmethod
    def validate_config(config: dict[str, Any]) -> list[ConfigError]:
        return validate_stage_config(SitemapSourceConfig, config)

    @classmethod
    async def get_instance(cls, log: FilteringBoundLogger, config: dict[str, Any]) -> SitemapSource:
        settings = SitemapSourceConfig.model_validate(config)
        client = httpx.AsyncClient(
            follow_redirects=True,
            timeout=httpx.Timeout(settings.timeout_seconds),
            headers={"User-Agent": f"siteinventory/{__version__}"},
        )
        return cls(log, client, settings, owns_client=True)
