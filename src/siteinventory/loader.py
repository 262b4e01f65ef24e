"""Inventory loader stage: buffered bulk loading into a rotating index.

Lifecycle::

    begin()          create <alias>_<timestamp> from the mapping/settings files
    load_record()*   buffer; flush every ``buffer_size`` records
    end()            flush remainder, optimize, swap alias, prune old indices
    abort()          delete the index created by begin() unless already aliased

A flush swaps the buffer for a fresh list before awaiting the bulk request,
so records arriving while a flush is in flight land in the next batch and
are never sent twice. Any ``updated`` or ``errors`` entry in a bulk
response is fatal: a new index cannot legitimately contain an id twice.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING, Any

from siteinventory.config import LoaderConfig, validate_stage_config
from siteinventory.errors import (
    BulkIndexError,
    DuplicateDocumentError,
    IndexLifecycleError,
)
from siteinventory.indexing import ElasticIndexManager, build_es_client

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from siteinventory.errors import ConfigError
    from siteinventory.models.page import ExtractedDocument
    from siteinventory.protocols import IndexManagerProtocol


def load_index_document(path: Path, key: str) -> dict[str, Any]:
    """Read a mapping or settings JSON file.

    Accepts either the bare body or one wrapped in ``{"mappings": ...}`` /
    ``{"settings": ...}`` as exported by ``GET <index>``.
    """
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict) and set(data) == {key}:
        return data[key]
    return data


class InventoryLoader:
    def __init__(
        self,
        log: FilteringBoundLogger,
        index_manager: IndexManagerProtocol,
        config: LoaderConfig,
    ) -> None:
        self._log = log
        self._index_manager = index_manager
        self._config = config

        self._buffer: list[ExtractedDocument] = []
        self.index_name: str | None = None
        self._aliased = False
        self._closed = False

        self.processed = 0
        self.skipped = 0
        self.indexed = 0
        self.flushes = 0

    @property
    def buffer(self) -> list[ExtractedDocument]:
        return self._buffer

    async def begin(self) -> None:
        mapping = load_index_document(self._config.mapping_path, "mappings")
        settings = load_index_document(self._config.settings_path, "settings")
        self.index_name = await self._index_manager.create_timestamped_index(
            self._config.alias_name, mapping, settings
        )
        self._log.info("loader_begin", index=self.index_name, alias=self._config.alias_name)

    async def load_record(self, record: ExtractedDocument | None) -> None:
        self.processed += 1

        if not record:
            self.skipped += 1
            return

        self._buffer.append(record)
        if len(self._buffer) >= self._config.buffer_size:
            await self._flush()

    async def _flush(self) -> None:
        if not self._buffer:
            return
        if self.index_name is None:
            raise IndexLifecycleError("Cannot flush records before begin() created an index")

        batch, self._buffer = self._buffer, []

        documents = [(doc.url, doc.to_index_document()) for doc in batch]
        result = await self._index_manager.index_document_bulk(self.index_name, documents)

        if result.updated:
            self._log.error("bulk_duplicates_detected", index=self.index_name, ids=result.updated)
            raise DuplicateDocumentError(result.updated)
        if result.errors:
            self._log.error(
                "bulk_errors_detected",
                index=self.index_name,
                count=len(result.errors),
                first_error=result.errors[0],
            )
            raise BulkIndexError(result.errors)

        self.indexed += len(batch)
        self.flushes += 1
        self._log.info(
            "bulk_flush_complete",
            index=self.index_name,
            batch_size=len(batch),
            indexed=self.indexed,
        )

    async def end(self) -> None:
        await self._flush()

        if self.index_name is None:
            raise IndexLifecycleError("end() called before begin() created an index")

        alias = self._config.alias_name
        await self._index_manager.optimize_index(self.index_name)
        await self._index_manager.set_alias_to_single_index(alias, self.index_name)
        self._aliased = True

        self._log.info(
            "loader_end",
            index=self.index_name,
            alias=alias,
            processed=self.processed,
            skipped=self.skipped,
            indexed=self.indexed,
            flushes=self.flushes,
        )

        # The alias swap above stands even if pruning fails.
        try:
            await self._index_manager.cleanup_old_indices(
                alias, self._config.days_to_keep, self._config.min_indexes_to_keep
            )
        except Exception:
            self._log.error("index_cleanup_failed", alias=alias, exc_info=True)
            raise
        finally:
            await self._close_manager()

    async def abort(self) -> None:
        """Delete the partially built index so it cannot be aliased later."""
        try:
            if self.index_name is not None and not self._aliased:
                self._log.warning("loader_abort_deleting_index", index=self.index_name)
                await self._index_manager.delete_index(self.index_name)
            self._buffer = []
        finally:
            await self._close_manager()

    async def _close_manager(self) -> None:
        if not self._closed:
            self._closed = True
            await self._index_manager.close()

    @staticmethod
    def validate_config(config: dict[str, Any]) -> list[ConfigError]:
        return validate_stage_config(LoaderConfig, config)

    @classmethod
    async def get_instance(cls, log: FilteringBoundLogger, config: dict[str, Any]) -> InventoryLoader:
        settings = LoaderConfig.model_validate(config)
        manager = ElasticIndexManager(build_es_client(settings.eshosts))
        return cls(log, manager, settings)
