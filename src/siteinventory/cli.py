"""Command-line entrypoint.

Responsibilities (and nothing more):
- Load Settings
- Configure structlog
- Build and run the pipeline processor
- Map the outcome to an exit code
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from typing import TYPE_CHECKING

import structlog
from pydantic import ValidationError

from siteinventory import __version__
from siteinventory.config import LoggingSettings, Settings
from siteinventory.errors import ConfigError
from siteinventory.pipeline import PipelineProcessor

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

log = structlog.get_logger()

EXIT_OK = 0
EXIT_CONSTRUCTION_FAILED = 1
EXIT_RUN_FAILED = 2


def _setup_logging(settings: LoggingSettings) -> None:
    """Configure structlog. Called once at startup before any log statements."""
    log_level = logging.getLevelNamesMapping()[settings.level]

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if settings.format == "json":
        processors = [*shared_processors, structlog.processors.JSONRenderer()]
    else:
        processors = [*shared_processors, structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


async def run_pipeline(processor: PipelineProcessor, logger: FilteringBoundLogger) -> int:
    """Build then run ``processor``, returning the process exit code."""
    try:
        await processor.build()
    except ConfigError as exc:
        logger.error("pipeline_invalid", message=exc.message, errors=len(exc.errors))
        return EXIT_CONSTRUCTION_FAILED
    except Exception:
        logger.error("pipeline_construction_failed", exc_info=True)
        return EXIT_CONSTRUCTION_FAILED

    try:
        summary = await processor.run()
    except Exception:
        logger.error("pipeline_run_failed", exc_info=True)
        return EXIT_RUN_FAILED

    logger.info("processing_complete", records=summary.records)
    return EXIT_OK


def main() -> None:
    try:
        settings = Settings()
    except ValidationError as exc:
        _setup_logging(LoggingSettings())
        for error in exc.errors():
            field = ".".join(str(p) for p in error["loc"])
            log.error("settings_invalid", field=field, message=error["msg"])
        sys.exit(EXIT_CONSTRUCTION_FAILED)

    _setup_logging(settings.logging)
    log.info("process_starting", pid=os.getpid(), version=__version__)

    processor = PipelineProcessor(log, settings.pipeline)
    sys.exit(asyncio.run(run_pipeline(processor, log)))


if __name__ == "__main__":
    main()
