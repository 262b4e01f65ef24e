"""Caching page fetcher stage.

Every URL the pipeline feeds through ``PageFetcher.transform`` is served
from the on-disk cache when fresh, otherwise fetched over a shared, pooled
httpx client. Logical concurrency (however many URLs are in flight) is
decoupled from physical I/O: file operations are capped by the admission
queue, sockets by the client's connection pool.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING, Any

import httpx
import structlog

from siteinventory import __version__
from siteinventory.cache import PageCache
from siteinventory.config import FetcherConfig, validate_stage_config
from siteinventory.errors import ErrorCode, FetchError
from siteinventory.io_queue import AdmissionQueue
from siteinventory.models.page import FetchedPage

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from siteinventory.errors import ConfigError

# Connection-reset class failures. Retried with backoff; every other
# transport error is fatal.
RESET_ERRORS: tuple[type[httpx.HTTPError], ...] = (
    httpx.ReadError,
    httpx.WriteError,
    httpx.RemoteProtocolError,
)


def build_http_client(max_connections: int = 40, timeout_seconds: float = 30.0) -> httpx.AsyncClient:
    """Create the pooled keep-alive client shared by all page fetches."""
    return httpx.AsyncClient(
        follow_redirects=True,
        timeout=httpx.Timeout(timeout_seconds),
        headers={"User-Agent": f"siteinventory/{__version__}"},
        limits=httpx.Limits(
            max_connections=max_connections,
            max_keepalive_connections=max_connections,
        ),
    )


def is_html(response: httpx.Response) -> bool:
    """True when the response media type is ``text/html`` (parameters ignored)."""
    media_type = response.headers.get("content-type", "").split(";", 1)[0]
    return media_type.strip().lower() == "text/html"


class PageFetcher:
    """Transformer: URL → ``FetchedPage``, or ``None`` when the page is skipped."""

    def __init__(
        self,
        log: FilteringBoundLogger,
        client: httpx.AsyncClient,
        cache: PageCache,
        *,
        max_attempts: int = 3,
        retry_backoff_seconds: float = 10.0,
        owns_client: bool = False,
    ) -> None:
        self._log = log
        self._client = client
        self._cache = cache
        self._max_attempts = max_attempts
        self._retry_backoff_seconds = retry_backoff_seconds
        self._owns_client = owns_client

    async def begin(self) -> None:
        return

    async def transform(self, url: str) -> FetchedPage | None:
        cached = await self._cache.get(url)
        if cached is not None:
            self._log.debug("cache_hit", url=url)
            return FetchedPage(url=url, content=cached)

        self._log.debug("cache_miss_fetching", url=url)
        content = await self._fetch(url)
        if content is None:
            return None

        await self._cache.set(url, content)
        return FetchedPage(url=url, content=content)

    async def _fetch(self, url: str) -> str | None:
        """GET ``url`` with bounded retry on connection resets.

        Returns the HTML body, or ``None`` for a non-200 or non-HTML response.
        Raises FetchError when retries are exhausted or on any other
        transport error.
        """
        delay = self._retry_backoff_seconds

        for attempt in range(1, self._max_attempts + 1):
            try:
                response = await self._client.get(url)
            except RESET_ERRORS as exc:
                if attempt == self._max_attempts:
                    self._log.error("fetch_retries_exhausted", url=url, attempts=attempt)
                    raise FetchError(
                        ErrorCode.RETRIES_EXHAUSTED,
                        f"Connection reset fetching {url} after {attempt} attempts: {exc}",
                        url=url,
                    ) from exc
                self._log.warning(
                    "fetch_retry",
                    url=url,
                    attempt=attempt,
                    delay_seconds=delay,
                    error=repr(exc),
                )
                await asyncio.sleep(delay)
                delay *= 2
                continue
            except httpx.HTTPError as exc:
                self._log.error("fetch_failed", url=url, error=repr(exc))
                raise FetchError(
                    ErrorCode.PAGE_FETCH_FAILED,
                    f"Network error fetching {url}: {exc}",
                    url=url,
                ) from exc

            return self._read_response(url, response)

        # Unreachable but satisfies the type checker
        raise FetchError(ErrorCode.RETRIES_EXHAUSTED, f"No attempts made for {url}", url=url)

    def _read_response(self, url: str, response: httpx.Response) -> str | None:
        if response.status_code != 200:
            self._log.warning("fetch_bad_status", url=url, status_code=response.status_code)
            return None

        if not is_html(response):
            self._log.info(
                "fetch_not_html",
                url=url,
                content_type=response.headers.get("content-type", ""),
            )
            return None

        self._log.info(
            "fetch_complete",
            url=url,
            status_code=response.status_code,
            content_length=len(response.text),
        )
        return response.text

    async def end(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def abort(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    @staticmethod
    def validate_config(config: dict[str, Any]) -> list[ConfigError]:
        return validate_stage_config(FetcherConfig, config)

    @classmethod
    async def get_instance(cls, log: FilteringBoundLogger, config: dict[str, Any]) -> PageFetcher:
        settings = FetcherConfig.model_validate(config)
        queue = AdmissionQueue(
            max_in_flight=settings.max_open_files,
            poll_interval=settings.poll_interval,
        )
        cache = PageCache(Path(settings.cache_dir).expanduser(), queue, ttl_hours=settings.ttl_hours)
        client = build_http_client(settings.max_connections, settings.timeout_seconds)
        return cls(
            log,
            client,
            cache,
            max_attempts=settings.max_attempts,
            retry_backoff_seconds=settings.retry_backoff_seconds,
            owns_client=True,
        )
