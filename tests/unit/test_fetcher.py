"""Unit tests for siteinventory.fetcher."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any
from unittest.mock import AsyncMock, patch

import httpx
import pytest
import respx

from siteinventory.errors import ErrorCode, FetchError
from siteinventory.fetcher import PageFetcher, build_http_client, is_html
from siteinventory.models.page import FetchedPage

if TYPE_CHECKING:
    from siteinventory.cache import PageCache

URL = "https://www.example.gov/about"
HTML_HEADERS = {"content-type": "text/html; charset=utf-8"}


@pytest.fixture()
async def client() -> Any:
    client = build_http_client()
    yield client
    await client.aclose()


@pytest.fixture()
def fetcher(log: Any, client: httpx.AsyncClient, page_cache: PageCache) -> PageFetcher:
    return PageFetcher(log, client, page_cache, max_attempts=3, retry_backoff_seconds=0)


# ---------------------------------------------------------------------------
# build_http_client / is_html
# ---------------------------------------------------------------------------


class TestBuildHttpClient:
    async def test_client_configuration(self) -> None:
        client = build_http_client()
        assert isinstance(client, httpx.AsyncClient)
        assert client.follow_redirects is True
        assert client.headers["User-Agent"].startswith("siteinventory/")
        await client.aclose()


class TestIsHtml:
    @pytest.mark.parametrize(
        ("content_type", "expected"),
        [
            ("text/html", True),
            ("text/html; charset=utf-8", True),
            ("TEXT/HTML", True),
            ("image/png", False),
            ("application/xhtml+xml", False),
            ("", False),
        ],
    )
    def test_media_type(self, content_type: str, expected: bool) -> None:
        response = httpx.Response(200, headers={"content-type": content_type})
        assert is_html(response) is expected


# ---------------------------------------------------------------------------
# PageFetcher
# ---------------------------------------------------------------------------


class TestPageFetcher:
    async def test_fresh_cache_entry_skips_network(
        self, fetcher: PageFetcher, page_cache: PageCache
    ) -> None:
        await page_cache.set(URL, "<html>cached</html>")
        with respx.mock(assert_all_called=False) as router:
            route = router.get(URL).mock(return_value=httpx.Response(500))
            page = await fetcher.transform(URL)
            assert route.call_count == 0

        assert page == FetchedPage(url=URL, content="<html>cached</html>")

    async def test_miss_fetches_once_and_writes_cache(
        self, fetcher: PageFetcher, page_cache: PageCache
    ) -> None:
        with respx.mock:
            route = respx.get(URL).mock(
                return_value=httpx.Response(200, text="<html>live</html>", headers=HTML_HEADERS)
            )
            page = await fetcher.transform(URL)
            assert route.call_count == 1

        assert page is not None
        assert page.content == "<html>live</html>"
        assert await page_cache.get(URL) == "<html>live</html>"

    async def test_non_html_is_skipped_and_not_cached(
        self, fetcher: PageFetcher, page_cache: PageCache
    ) -> None:
        with respx.mock:
            respx.get(URL).mock(
                return_value=httpx.Response(200, content=b"\x89PNG", headers={"content-type": "image/png"})
            )
            assert await fetcher.transform(URL) is None

        assert await page_cache.get(URL) is None

    @pytest.mark.parametrize("status", [301, 404, 500])
    async def test_non_200_is_skipped(self, fetcher: PageFetcher, status: int) -> None:
        with respx.mock:
            respx.get(URL).mock(return_value=httpx.Response(status, headers=HTML_HEADERS))
            assert await fetcher.transform(URL) is None

    async def test_redirect_followed(self, fetcher: PageFetcher) -> None:
        target = "https://www.example.gov/about-us"
        with respx.mock:
            respx.get(URL).mock(return_value=httpx.Response(301, headers={"location": target}))
            respx.get(target).mock(
                return_value=httpx.Response(200, text="<html>moved</html>", headers=HTML_HEADERS)
            )
            page = await fetcher.transform(URL)

        assert page is not None
        assert page.url == URL
        assert page.content == "<html>moved</html>"

    async def test_connection_reset_is_retried(self, fetcher: PageFetcher) -> None:
        with respx.mock:
            route = respx.get(URL).mock(
                side_effect=[
                    httpx.ReadError("connection reset by peer"),
                    httpx.RemoteProtocolError("peer closed connection"),
                    httpx.Response(200, text="<html>ok</html>", headers=HTML_HEADERS),
                ]
            )
            page = await fetcher.transform(URL)
            assert route.call_count == 3

        assert page is not None
        assert page.content == "<html>ok</html>"

    async def test_retries_exhausted_is_fatal(self, fetcher: PageFetcher) -> None:
        with respx.mock:
            route = respx.get(URL).mock(side_effect=httpx.ReadError("connection reset by peer"))
            with pytest.raises(FetchError) as exc_info:
                await fetcher.transform(URL)
            assert route.call_count == 3

        assert exc_info.value.code == ErrorCode.RETRIES_EXHAUSTED
        assert exc_info.value.url == URL

    async def test_backoff_doubles(
        self, log: Any, client: httpx.AsyncClient, page_cache: PageCache
    ) -> None:
        fetcher = PageFetcher(log, client, page_cache, max_attempts=4, retry_backoff_seconds=10)
        sleep = AsyncMock()
        with respx.mock, patch("siteinventory.fetcher.asyncio.sleep", sleep):
            respx.get(URL).mock(side_effect=httpx.ReadError("reset"))
            with pytest.raises(FetchError):
                await fetcher.transform(URL)

        assert [call.args[0] for call in sleep.await_args_list] == [10, 20, 40]

    async def test_other_transport_errors_are_not_retried(self, fetcher: PageFetcher) -> None:
        with respx.mock:
            route = respx.get(URL).mock(side_effect=httpx.ConnectError("name resolution failed"))
            with pytest.raises(FetchError) as exc_info:
                await fetcher.transform(URL)
            assert route.call_count == 1

        assert exc_info.value.code == ErrorCode.PAGE_FETCH_FAILED


class TestPageFetcherLifecycle:
    async def test_owned_client_closed_on_end(self, log: Any, page_cache: PageCache) -> None:
        client = build_http_client()
        fetcher = PageFetcher(log, client, page_cache, owns_client=True)
        await fetcher.begin()
        await fetcher.end()
        assert client.is_closed

    async def test_borrowed_client_left_open(
        self, fetcher: PageFetcher, client: httpx.AsyncClient
    ) -> None:
        await fetcher.abort()
        assert not client.is_closed

    def test_validate_config(self) -> None:
        assert PageFetcher.validate_config({}) == []
        errors = PageFetcher.validate_config({"max_attempts": 0})
        assert [e.field for e in errors] == ["max_attempts"]

    async def test_get_instance(self, log: Any, tmp_path: Any) -> None:
        fetcher = await PageFetcher.get_instance(log, {"cache_dir": str(tmp_path), "ttl_hours": 1})
        assert isinstance(fetcher, PageFetcher)
        await fetcher.end()
