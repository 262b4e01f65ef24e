from __future__ import annotations

from siteinventory.models.index import BulkResult
from siteinventory.models.listing import ListingFile, ListingResult
from siteinventory.models.page import ExtractedDocument, FetchedPage, MetaTag

__all__ = [
    # pages
    "FetchedPage",
    "ExtractedDocument",
    "MetaTag",
    # listing
    "ListingFile",
    "ListingResult",
    # index
    "BulkResult",
]
