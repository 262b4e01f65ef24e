"""Elasticsearch index lifecycle for the inventory loader.

Every run writes into a fresh index named ``<alias>_<YYYYMMDD_HHMMSS>``.
After loading, the index is force-merged, the alias is moved onto it in a
single atomic ``update_aliases`` call, and old indices of the same family
are pruned. All client failures are re-raised as ``LoaderError`` subclasses.
"""

from __future__ import annotations

import re
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

import structlog
from elasticsearch import ApiError, AsyncElasticsearch, NotFoundError, TransportError

from siteinventory.errors import ErrorCode, IndexLifecycleError, LoaderError
from siteinventory.models.index import BulkResult

if TYPE_CHECKING:
    from collections.abc import Callable

log = structlog.get_logger()

INDEX_TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"

_ES_ERRORS = (ApiError, TransportError)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def build_es_client(hosts: list[str]) -> AsyncElasticsearch:
    """Create the Elasticsearch client. Called once per loader."""
    return AsyncElasticsearch(
        hosts,
        request_timeout=120,
        max_retries=3,
        retry_on_timeout=True,
    )


def index_name_pattern(alias: str) -> re.Pattern[str]:
    """Pattern matching the timestamped indices of one alias family."""
    return re.compile(rf"^{re.escape(alias)}_\d{{8}}_\d{{6}}$")


class ElasticIndexManager:
    """Index-management primitives implementing IndexManagerProtocol."""

    def __init__(
        self,
        es: AsyncElasticsearch,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._es = es
        self._clock = clock

    async def create_timestamped_index(
        self, alias: str, mapping: dict[str, Any], settings: dict[str, Any]
    ) -> str:
        index_name = f"{alias}_{self._clock().strftime(INDEX_TIMESTAMP_FORMAT)}"
        try:
            await self._es.indices.create(index=index_name, mappings=mapping, settings=settings)
        except _ES_ERRORS as exc:
            raise IndexLifecycleError(f"Could not create index {index_name}: {exc}") from exc
        log.info("index_created", index=index_name, alias=alias)
        return index_name

    async def index_document_bulk(
        self, index_name: str, documents: list[tuple[str, dict[str, Any]]]
    ) -> BulkResult:
        """Submit ``(id, document)`` pairs as one bulk request of ``index`` actions.

        Per-document outcomes are sorted into created / updated / errors; the
        caller decides what an ``updated`` entry means.
        """
        result = BulkResult()
        if not documents:
            return result

        operations: list[dict[str, Any]] = []
        for doc_id, doc in documents:
            operations.append({"index": {"_index": index_name, "_id": doc_id}})
            operations.append(doc)

        try:
            response = await self._es.bulk(operations=operations)
        except _ES_ERRORS as exc:
            raise LoaderError(
                ErrorCode.BULK_INDEX_FAILED,
                f"Bulk request to {index_name} failed: {exc}",
            ) from exc

        for item in response["items"]:
            # One key per item, named after the action type.
            outcome = next(iter(item.values()))
            doc_id = outcome.get("_id", "")
            if "error" in outcome:
                result.errors.append(
                    {"id": doc_id, "status": outcome.get("status"), "error": outcome["error"]}
                )
            elif outcome.get("result") == "updated":
                result.updated.append(doc_id)
            else:
                result.created.append(doc_id)
        return result

    async def optimize_index(self, index_name: str) -> None:
        try:
            await self._es.indices.forcemerge(index=index_name, max_num_segments=1)
        except _ES_ERRORS as exc:
            raise IndexLifecycleError(f"Could not optimize index {index_name}: {exc}") from exc
        log.info("index_optimized", index=index_name)

    async def set_alias_to_single_index(self, alias: str, index_name: str) -> None:
        """Point ``alias`` at ``index_name`` only, in one atomic alias update."""
        try:
            try:
                current = await self._es.indices.get_alias(name=alias)
                current_indices = [name for name in current if name != index_name]
            except NotFoundError:
                current_indices = []

            actions: list[dict[str, Any]] = [
                {"remove": {"index": name, "alias": alias}} for name in current_indices
            ]
            actions.append({"add": {"index": index_name, "alias": alias}})
            await self._es.indices.update_aliases(actions=actions)
        except _ES_ERRORS as exc:
            raise IndexLifecycleError(f"Could not set alias {alias} to {index_name}: {exc}") from exc
        log.info("alias_swapped", alias=alias, index=index_name, previous=current_indices)

    async def cleanup_old_indices(
        self, alias: str, days_to_keep: int, min_indexes_to_keep: int
    ) -> list[str]:
        """Delete indices of this alias family older than ``days_to_keep``.

        The ``min_indexes_to_keep`` newest indices are kept regardless of age,
        and the index the alias currently points to is never deleted.
        Returns the names of deleted indices.
        """
        pattern = index_name_pattern(alias)
        try:
            try:
                response = await self._es.indices.get(index=f"{alias}_*")
            except NotFoundError:
                return []

            candidates: list[tuple[str, datetime, bool]] = []
            for name, info in response.items():
                if not pattern.match(name):
                    continue
                created_ms = int(info["settings"]["index"]["creation_date"])
                created = datetime.fromtimestamp(created_ms / 1000, tz=UTC)
                aliased = alias in (info.get("aliases") or {})
                candidates.append((name, created, aliased))

            candidates.sort(key=lambda c: c[1], reverse=True)
            cutoff = self._clock() - timedelta(days=days_to_keep)
            to_delete = [
                name
                for name, created, aliased in candidates[min_indexes_to_keep:]
                if created < cutoff and not aliased
            ]

            if to_delete:
                await self._es.indices.delete(index=",".join(to_delete))
        except _ES_ERRORS as exc:
            raise IndexLifecycleError(f"Could not clean up indices for {alias}: {exc}") from exc

        log.info(
            "indices_cleaned_up",
            alias=alias,
            examined=len(candidates),
            deleted=to_delete,
        )
        return to_delete

    async def delete_index(self, index_name: str) -> None:
        try:
            await self._es.indices.delete(index=index_name)
        except NotFoundError:
            log.warning("index_delete_missing", index=index_name)
            return
        except _ES_ERRORS as exc:
            raise IndexLifecycleError(f"Could not delete index {index_name}: {exc}") from exc
        log.info("index_deleted", index=index_name)

    async def close(self) -> None:
        await self._es.close()
