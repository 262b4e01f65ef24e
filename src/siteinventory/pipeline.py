"""Pipeline processor: composes Source → Transformer(s) → Loader.

Stage classes are looked up by the ``type`` name in their settings block.
Every stage config is validated before any stage is built; construction
failures and run failures surface as separate phases so the CLI can map
them to distinct exit codes.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from siteinventory.errors import ConfigError, ErrorCode
from siteinventory.extractor import DomExtractor
from siteinventory.fetcher import PageFetcher
from siteinventory.loader import InventoryLoader
from siteinventory.sources.pubcontent import PubContentListSource
from siteinventory.sources.sitemap import SitemapSource

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from siteinventory.config import PipelineSettings, StageSettings
    from siteinventory.protocols import RecordLoader, RecordSource, RecordTransformer, Stage

SOURCE_TYPES: dict[str, Any] = {
    "sitemap_source": SitemapSource,
    "pubcontent_list_source": PubContentListSource,
}
TRANSFORMER_TYPES: dict[str, Any] = {
    "page_fetcher": PageFetcher,
    "dom_extractor": DomExtractor,
}
LOADER_TYPES: dict[str, Any] = {
    "inventory_loader": InventoryLoader,
}
STAGE_TYPES: dict[str, Any] = {**SOURCE_TYPES, **TRANSFORMER_TYPES, **LOADER_TYPES}


@dataclass
class RunSummary:
    records: int = 0


class PipelineProcessor:
    def __init__(self, log: FilteringBoundLogger, settings: PipelineSettings) -> None:
        self._log = log
        self._settings = settings
        self.source: RecordSource | None = None
        self.transformers: list[RecordTransformer] = []
        self.loader: RecordLoader | None = None

    def _stage_blocks(self) -> list[tuple[str, StageSettings, dict[str, Any]]]:
        blocks = [("source", self._settings.source, SOURCE_TYPES)]
        blocks.extend(
            (f"transformers[{i}]", stage, TRANSFORMER_TYPES)
            for i, stage in enumerate(self._settings.transformers)
        )
        blocks.append(("loader", self._settings.loader, LOADER_TYPES))
        return blocks

    def validate(self) -> None:
        """Raise one ConfigError listing every problem in every stage block."""
        errors: list[ConfigError] = []
        for role, stage, registry in self._stage_blocks():
            stage_cls = registry.get(stage.type)
            if stage_cls is None:
                errors.append(
                    ConfigError(
                        f"{role}: unknown stage type {stage.type!r} "
                        f"(expected one of {', '.join(sorted(registry))})",
                        field=role,
                        code=ErrorCode.UNKNOWN_STAGE_TYPE,
                    )
                )
                continue
            for err in stage_cls.validate_config(stage.config):
                errors.append(ConfigError(f"{role} ({stage.type}): {err.message}", field=role))

        if errors:
            for err in errors:
                self._log.error("config_error", message=err.message)
            raise ConfigError(f"{len(errors)} configuration error(s)", errors=errors)

    async def build(self) -> None:
        """Validate all configs, then build every stage through its factory."""
        self.validate()

        built: list[Any] = []
        try:
            for _role, stage, registry in self._stage_blocks():
                stage_log = self._log.bind(stage=stage.type)
                built.append(await registry[stage.type].get_instance(stage_log, stage.config))
        except Exception:
            # Release clients held by the stages built so far.
            await self._abort_all(built)
            raise

        self.source = built[0]
        self.transformers = built[1:-1]
        self.loader = built[-1]

    @property
    def stages(self) -> list[Stage]:
        return [s for s in (self.source, *self.transformers, self.loader) if s is not None]

    async def run(self) -> RunSummary:
        if self.source is None or self.loader is None:
            await self.build()
        assert self.source is not None and self.loader is not None

        summary = RunSummary()
        try:
            for stage in self.stages:
                await stage.begin()

            urls = await self.source.get_records()
            summary.records = len(urls)
            self._log.info("records_discovered", count=len(urls))

            await self._process_all(urls)

            for stage in self.stages:
                await stage.end()
        except Exception:
            self._log.error("pipeline_failed", exc_info=True)
            await self._abort_all(self.stages)
            raise

        self._log.info("pipeline_complete", records=summary.records)
        return summary

    async def _process_all(self, urls: list[str]) -> None:
        semaphore = asyncio.Semaphore(self._settings.concurrency)

        async def process(url: str) -> None:
            async with semaphore:
                data: Any = url
                for transformer in self.transformers:
                    data = await transformer.transform(data)
                await self.loader.load_record(data)

        # TaskGroup cancels in-flight records as soon as one fails.
        try:
            async with asyncio.TaskGroup() as tg:
                for url in urls:
                    tg.create_task(process(url))
        except ExceptionGroup as eg:
            raise eg.exceptions[0] from eg

    async def _abort_all(self, stages: list[Any]) -> None:
        for stage in stages:
            try:
                await stage.abort()
            except Exception:
                self._log.error("stage_abort_failed", stage=type(stage).__name__, exc_info=True)
