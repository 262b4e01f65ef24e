"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Environment variables  (SITEINVENTORY__PIPELINE__CONCURRENCY=10)
  2. siteinventory.yaml     (searched in cwd, then platform config dir)
  3. Hardcoded defaults

Each pipeline stage carries a free-form ``config`` mapping. The stage class
validates it against one of the ``*Config`` models below, so a typo in a
stage block is reported by ``validate_config`` rather than at run time.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal
from urllib.parse import urlparse

import platformdirs
from pydantic import BaseModel, ConfigDict, Field, FilePath, ValidationError, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from siteinventory.errors import ConfigError

_DEFAULT_CACHE_DIR = str(Path(platformdirs.user_cache_dir("siteinventory")) / "pages")


def _find_config_file() -> str | None:
    """Return the path of the first siteinventory.yaml found, or None."""
    candidates = [
        Path("siteinventory.yaml"),
        Path(platformdirs.user_config_dir("siteinventory")) / "siteinventory.yaml",
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


# ---------------------------------------------------------------------------
# Stage configuration models
# ---------------------------------------------------------------------------


class _StageConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")


class _UrlListConfig(_StageConfig):
    additional_urls: list[str] = []
    ignore_urls: list[str] = []


class SitemapSourceConfig(_UrlListConfig):
    sitemap_url: str = Field(min_length=1)
    timeout_seconds: float = Field(120.0, gt=0)

    @field_validator("sitemap_url")
    @classmethod
    def validate_sitemap_url(cls, v: str) -> str:
        if urlparse(v).scheme not in ("http", "https"):
            raise ValueError(f"sitemap_url must be an http(s) URL, got {v!r}")
        return v


class PubContentSourceConfig(_UrlListConfig):
    hostname: str = Field(min_length=1)
    max_depth: int = Field(32, ge=1)
    max_connections: int = Field(40, ge=1)
    timeout_seconds: float = Field(30.0, gt=0)


class FetcherConfig(_StageConfig):
    cache_dir: str = _DEFAULT_CACHE_DIR
    ttl_hours: float = Field(24.0, gt=0)
    max_open_files: int = Field(50, ge=1)
    poll_interval: float = Field(0.05, gt=0)
    max_connections: int = Field(40, ge=1)
    timeout_seconds: float = Field(30.0, gt=0)
    max_attempts: int = Field(3, ge=1)
    retry_backoff_seconds: float = Field(10.0, ge=0)


class ExtractorConfig(_StageConfig):
    pass


class LoaderConfig(_StageConfig):
    eshosts: list[str] = Field(min_length=1)
    alias_name: str = Field(min_length=1)
    mapping_path: FilePath
    settings_path: FilePath
    buffer_size: int = Field(100, ge=1)
    days_to_keep: int = Field(10, ge=0)
    min_indexes_to_keep: int = Field(2, ge=0)

    @field_validator("alias_name")
    @classmethod
    def validate_alias_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("alias_name must not be blank")
        return v.strip()

    @field_validator("eshosts")
    @classmethod
    def validate_eshosts(cls, v: list[str]) -> list[str]:
        for host in v:
            parsed = urlparse(host)
            if parsed.scheme not in ("http", "https") or not parsed.hostname:
                raise ValueError(f"Invalid Elasticsearch host: {host!r}")
        return v


def validate_stage_config(model: type[BaseModel], config: dict[str, Any] | None) -> list[ConfigError]:
    """Validate ``config`` against ``model`` and return the problems found.

    Never raises for invalid input; an empty list means the config is usable.
    """
    if config is None:
        return [ConfigError("Config must be supplied")]
    try:
        model.model_validate(config)
    except ValidationError as exc:
        errors: list[ConfigError] = []
        for err in exc.errors():
            field = ".".join(str(part) for part in err["loc"])
            errors.append(ConfigError(f"{field}: {err['msg']}", field=field or None))
        return errors
    return []


# ---------------------------------------------------------------------------
# Top-level settings
# ---------------------------------------------------------------------------


class StageSettings(BaseModel):
    type: str
    config: dict[str, Any] = {}


class PipelineSettings(BaseModel):
    concurrency: int = Field(20, ge=1)
    source: StageSettings = StageSettings(type="sitemap_source")
    transformers: list[StageSettings] = [
        StageSettings(type="page_fetcher"),
        StageSettings(type="dom_extractor"),
    ]
    loader: StageSettings = StageSettings(type="inventory_loader")


class LoggingSettings(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "json"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: SITEINVENTORY__LOGGING__LEVEL=DEBUG
        env_prefix="SITEINVENTORY__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
    )

    logging: LoggingSettings = LoggingSettings()
    pipeline: PipelineSettings = PipelineSettings()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
        **kwargs: Any,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,  # Constructor args (highest priority)
            env_settings,  # Environment variables
            YamlConfigSettingsSource(settings_cls),  # YAML file
            # dotenv and file secrets intentionally excluded
        )
