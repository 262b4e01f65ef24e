"""Shared test fixtures for the siteinventory test suite."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any
from unittest.mock import AsyncMock

import pytest
import structlog

from siteinventory.cache import PageCache
from siteinventory.config import LoaderConfig
from siteinventory.io_queue import AdmissionQueue
from siteinventory.models.index import BulkResult

if TYPE_CHECKING:
    from pathlib import Path

SAMPLE_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
  <title>  Treatment   Options </title>
  <meta charset="utf-8">
  <meta name="description" content="How cancer is treated">
  <meta property="og:title" content="Treatment">
  <meta http-equiv="X-UA-Compatible" content="IE=edge">
  <link rel="stylesheet" href="/styles/site.css">
  <link rel="icon" href="/favicon.ico">
  <script src="https://cdn.example.gov/jquery-1.12.4.min.js"></script>
  <script src=""></script>
  <script>var pageName = "treatment"; trackPage(pageName, 'it\\'s\\x20here');</script>
</head>
<body data-cde-contentid="1234" data-cde-contenttype="cgvArticle" data-cde-pagetemplate="default">
  <div id="main" class="row feature-card" data-module="hero">
    <p class="row intro">Intro</p>
    <span class="feature-card" data-module="text" data-track="yes">x</span>
  </div>
  <script>var broken = "unterminated;</script>
</body>
</html>
"""


@pytest.fixture()
def log() -> Any:
    return structlog.get_logger()


@pytest.fixture()
def queue() -> AdmissionQueue:
    return AdmissionQueue(max_in_flight=4, poll_interval=0.001)


@pytest.fixture()
def page_cache(tmp_path: Path, queue: AdmissionQueue) -> PageCache:
    return PageCache(tmp_path / "pages", queue, ttl_hours=24)


@pytest.fixture()
def index_files(tmp_path: Path) -> tuple[Path, Path]:
    """Mapping and settings files in the shape ``GET <index>`` exports them."""
    mapping_path = tmp_path / "mapping.json"
    settings_path = tmp_path / "settings.json"
    mapping_path.write_text(
        json.dumps({"mappings": {"properties": {"url": {"type": "keyword"}}}}),
        encoding="utf-8",
    )
    settings_path.write_text(json.dumps({"index": {"number_of_shards": 1}}), encoding="utf-8")
    return mapping_path, settings_path


@pytest.fixture()
def loader_config_dict(index_files: tuple[Path, Path]) -> dict[str, Any]:
    mapping_path, settings_path = index_files
    return {
        "eshosts": ["http://localhost:9200"],
        "alias_name": "inventory",
        "mapping_path": str(mapping_path),
        "settings_path": str(settings_path),
        "buffer_size": 2,
    }


@pytest.fixture()
def loader_config(loader_config_dict: dict[str, Any]) -> LoaderConfig:
    return LoaderConfig.model_validate(loader_config_dict)


def _created(index_name: str, documents: list[tuple[str, dict]]) -> BulkResult:
    return BulkResult(created=[doc_id for doc_id, _ in documents])


@pytest.fixture()
def index_manager() -> AsyncMock:
    """In-memory stand-in for ElasticIndexManager; every bulk call succeeds."""
    manager = AsyncMock()
    manager.create_timestamped_index.return_value = "inventory_20260101_000000"
    manager.index_document_bulk.side_effect = _created
    manager.cleanup_old_indices.return_value = []
    return manager


@pytest.fixture()
def sample_html() -> str:
    return SAMPLE_HTML
