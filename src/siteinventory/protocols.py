"""Protocol interfaces for pipeline stages and their collaborators.

The pipeline processor references these protocols, not the concrete stage
classes. Stage variants are independent classes selected by configuration
(see ``siteinventory.pipeline.STAGE_TYPES``); tests substitute lightweight
in-memory collaborators for Elasticsearch and the listing service.

Every stage class additionally exposes two class-level entry points used by
the processor before any instance exists:

    validate_config(config: dict) -> list[ConfigError]
    async get_instance(log, config: dict) -> <stage>
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from siteinventory.models.index import BulkResult
    from siteinventory.models.listing import ListingResult


class Stage(Protocol):
    """Lifecycle shared by every stage kind."""

    async def begin(self) -> None: ...

    async def end(self) -> None: ...

    async def abort(self) -> None: ...


class RecordSource(Stage, Protocol):
    async def get_records(self) -> list[str]: ...


class RecordTransformer(Stage, Protocol):
    async def transform(self, data: Any) -> Any: ...


class RecordLoader(Stage, Protocol):
    async def load_record(self, record: Any) -> None: ...


class IndexManagerProtocol(Protocol):
    """Interface for the search-index lifecycle primitives."""

    async def create_timestamped_index(
        self, alias: str, mapping: dict[str, Any], settings: dict[str, Any]
    ) -> str: ...

    async def index_document_bulk(
        self, index_name: str, documents: list[tuple[str, dict[str, Any]]]
    ) -> BulkResult: ...

    async def optimize_index(self, index_name: str) -> None: ...

    async def set_alias_to_single_index(self, alias: str, index_name: str) -> None: ...

    async def cleanup_old_indices(
        self, alias: str, days_to_keep: int, min_indexes_to_keep: int
    ) -> list[str]: ...

    async def delete_index(self, index_name: str) -> None: ...

    async def close(self) -> None: ...


class ListingProtocol(Protocol):
    """Interface for the remote path-listing service."""

    async def get_items_for_path(self, kind: str, path: list[str]) -> ListingResult: ...
