"""URL discovery sources.

Both variants finish the same way: ``(discovered ∪ additional) − ignore``,
materialized as a list. Output order is not stable across runs.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable


def merge_urls(
    discovered: Iterable[str],
    additional: Iterable[str] = (),
    ignore: Iterable[str] = (),
) -> list[str]:
    return list((set(discovered) | set(additional)) - set(ignore))
