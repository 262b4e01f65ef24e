"""On-disk page cache with time-based expiry.

One file per URL under the cache directory. An entry is fresh while its
modification time is younger than the TTL; a stale entry reads exactly like
a missing one.

All stat/read/write calls go through the shared ``AdmissionQueue``. Cache
operations degrade gracefully: read failures return ``None`` (treated as a
cache miss by callers), write failures are logged and ignored (fetched
content is still returned). Errors are logged with ``exc_info=True`` so they
remain observable.
"""

from __future__ import annotations

import hashlib
import os
import re
import secrets
import time
from datetime import timedelta
from pathlib import Path
from typing import TYPE_CHECKING
from urllib.parse import urlparse

import structlog

if TYPE_CHECKING:
    from siteinventory.io_queue import AdmissionQueue

log = structlog.get_logger()

CACHE_FILE_EXTENSION = ".html"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")
_MAX_READABLE = 100
_DIGEST_CHARS = 16


def cache_key(url: str) -> str:
    """Derive the cache file name for ``url``.

    Host, path and query flattened to safe characters and capped at 100
    chars, followed by a digest of the full URL.

    ``'https://www.example.gov/about/faq'`` → ``'www.example.gov_about_faq_<16 hex>.html'``
    """
    parsed = urlparse(url)
    path = parsed.path.strip("/") or "index"
    readable = f"{parsed.netloc}/{path}"
    if parsed.query:
        readable = f"{readable}?{parsed.query}"
    readable = _UNSAFE_CHARS.sub("_", readable).strip("_")[:_MAX_READABLE]
    digest = hashlib.sha256(url.encode("utf-8")).hexdigest()[:_DIGEST_CHARS]
    return f"{readable}_{digest}{CACHE_FILE_EXTENSION}"


def _write_atomic(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f".{path.name}.{secrets.token_hex(4)}.tmp")
    try:
        tmp_path.write_text(content, encoding="utf-8")
        os.replace(tmp_path, path)
    except OSError:
        tmp_path.unlink(missing_ok=True)
        raise


class PageCache:
    """File-backed HTML cache shared by all concurrent fetches."""

    def __init__(self, cache_dir: Path, queue: AdmissionQueue, ttl_hours: float = 24) -> None:
        self._cache_dir = cache_dir
        self._queue = queue
        self._ttl = timedelta(hours=ttl_hours)

    @property
    def cache_dir(self) -> Path:
        return self._cache_dir

    def path_for(self, url: str) -> Path:
        return self._cache_dir / cache_key(url)

    async def get(self, url: str) -> str | None:
        """Return cached HTML for ``url``. ``None`` on miss, stale entry or read failure."""
        path = self.path_for(url)
        try:
            stat = await self._queue.run(path.stat)
        except FileNotFoundError:
            return None
        except OSError:
            log.warning("cache_read_error", url=url, path=str(path), exc_info=True)
            return None

        age_seconds = time.time() - stat.st_mtime
        if age_seconds >= self._ttl.total_seconds():
            log.debug("cache_stale", url=url, age_seconds=round(age_seconds))
            return None

        try:
            return await self._queue.run(path.read_text, encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            log.warning("cache_read_error", url=url, path=str(path), exc_info=True)
            return None

    async def set(self, url: str, content: str) -> None:
        """Write an entry. Non-fatal on failure."""
        path = self.path_for(url)
        try:
            await self._queue.run(_write_atomic, path, content)
        except OSError:
            log.warning("cache_write_error", url=url, path=str(path), exc_info=True)
