from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class FetchedPage(BaseModel):
    """Raw HTML for one URL, as returned by the page fetcher."""

    url: str
    content: str


class MetaTag(BaseModel):
    name: str
    content: str
    type: Literal["property", "http", "name"]


class ExtractedDocument(BaseModel):
    """Structured record for one page; one document in the target index.

    Attribute names are snake_case; the indexed JSON uses camelCase
    (``model_dump(by_alias=True)``).
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    url: str
    title: str = ""
    content_id: str | None = None
    content_type: str | None = None
    template: str | None = None
    ids: list[str] = Field(default_factory=list)
    metadata: list[MetaTag] = Field(default_factory=list)
    classes: list[str] = Field(default_factory=list)  # Deduplicated, first-seen order
    scripts: list[str] = Field(default_factory=list)
    stylesheets: list[str] = Field(default_factory=list)
    script_blocks: list[str] = Field(default_factory=list)
    script_identifiers: list[str] = Field(default_factory=list)  # Unique across all blocks
    script_strings: list[str] = Field(default_factory=list)  # Decoded literal values
    data_attributes: list[str] = Field(default_factory=list)  # Deduplicated, first-seen order

    def to_index_document(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)
