"""Client for the PublishedContent listing service.

The service lists the files and sub-directories stored under a path of a
published-content root (``PageInstructions`` for pages). The client
receives an httpx.AsyncClient via constructor injection; whoever builds it
owns its lifecycle.
"""

from __future__ import annotations

import httpx
import structlog
from pydantic import ValidationError

from siteinventory.errors import ErrorCode, SourceError
from siteinventory.models.listing import ListingResult

log = structlog.get_logger()

LISTING_ENDPOINT = "/PublishedContent/List"


def listing_path(path: list[str]) -> str:
    """``['about-cancer', 'treatment']`` → ``'/about-cancer/treatment'``; ``[]`` → ``'/'``."""
    return "/" + "/".join(segment.strip("/") for segment in path)


class PublishedContentListing:
    def __init__(self, client: httpx.AsyncClient, hostname: str) -> None:
        self._client = client
        self._hostname = hostname

    async def get_items_for_path(self, kind: str, path: list[str]) -> ListingResult:
        """List files and directories under ``path`` of the ``kind`` root.

        Raises SourceError on network errors, non-2xx responses and
        malformed listings.
        """
        url = f"https://{self._hostname}{LISTING_ENDPOINT}"
        params = {"root": kind, "path": listing_path(path), "fmt": "json"}

        try:
            response = await self._client.get(url, params=params)
        except httpx.HTTPError as exc:
            raise SourceError(
                ErrorCode.SOURCE_FETCH_FAILED,
                f"Network error listing {kind}:{params['path']}: {exc}",
            ) from exc

        if not response.is_success:
            raise SourceError(
                ErrorCode.SOURCE_FETCH_FAILED,
                f"HTTP {response.status_code} listing {kind}:{params['path']}",
            )

        try:
            result = ListingResult.model_validate_json(response.content)
        except ValidationError as exc:
            raise SourceError(
                ErrorCode.SOURCE_PARSE_FAILED,
                f"Malformed listing for {kind}:{params['path']}: {exc}",
            ) from exc

        log.debug(
            "listing_complete",
            kind=kind,
            path=params["path"],
            files=len(result.files),
            directories=len(result.directories),
        )
        return result
