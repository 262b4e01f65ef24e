from __future__ import annotations

from enum import StrEnum


class ErrorCode(StrEnum):
    INVALID_CONFIG = "INVALID_CONFIG"
    UNKNOWN_STAGE_TYPE = "UNKNOWN_STAGE_TYPE"
    SOURCE_FETCH_FAILED = "SOURCE_FETCH_FAILED"
    SOURCE_PARSE_FAILED = "SOURCE_PARSE_FAILED"
    SOURCE_TOO_DEEP = "SOURCE_TOO_DEEP"
    PAGE_FETCH_FAILED = "PAGE_FETCH_FAILED"
    RETRIES_EXHAUSTED = "RETRIES_EXHAUSTED"
    DUPLICATE_DOCUMENT = "DUPLICATE_DOCUMENT"
    BULK_INDEX_FAILED = "BULK_INDEX_FAILED"
    INDEX_LIFECYCLE_FAILED = "INDEX_LIFECYCLE_FAILED"


class SiteInventoryError(Exception):
    """Base class for every expected failure in a run.

    Stages raise subclasses of this error for fatal conditions. Skip
    conditions (non-HTML pages, non-200 responses, absent records) are
    never raised; they travel through the pipeline as ``None``.
    """

    def __init__(self, code: ErrorCode, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


class ConfigError(SiteInventoryError):
    """A single configuration problem, or a summary of several.

    ``validate_config`` returns these as a list; the pipeline raises one
    aggregate instance (with ``errors`` populated) before any stage is built.
    """

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        errors: list[ConfigError] | None = None,
        code: ErrorCode = ErrorCode.INVALID_CONFIG,
    ) -> None:
        super().__init__(code, message)
        self.field = field
        self.errors = errors or []


class SourceError(SiteInventoryError):
    pass


class FetchError(SiteInventoryError):
    def __init__(self, code: ErrorCode, message: str, *, url: str) -> None:
        super().__init__(code, message)
        self.url = url


class LoaderError(SiteInventoryError):
    pass


class DuplicateDocumentError(LoaderError):
    def __init__(self, updated: list[str]) -> None:
        super().__init__(
            ErrorCode.DUPLICATE_DOCUMENT,
            f"Bulk index updated {len(updated)} existing document(s): {', '.join(updated[:10])}",
        )
        self.updated = updated


class BulkIndexError(LoaderError):
    def __init__(self, errors: list[dict]) -> None:
        super().__init__(
            ErrorCode.BULK_INDEX_FAILED,
            f"Bulk index reported {len(errors)} error(s)",
        )
        self.errors = errors


class IndexLifecycleError(LoaderError):
    def __init__(self, message: str) -> None:
        super().__init__(ErrorCode.INDEX_LIFECYCLE_FAILED, message)
