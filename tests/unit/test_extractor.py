"""Unit tests for siteinventory.extractor."""

from __future__ import annotations

from typing import Any
from unittest.mock import MagicMock

import pytest
from bs4 import BeautifulSoup

from siteinventory.extractor import (
    DomExtractor,
    extract_classes,
    extract_data_attributes,
    extract_metadata,
    extract_title,
)
from siteinventory.models.page import ExtractedDocument, FetchedPage, MetaTag

URL = "https://www.example.gov/treatment"


def _soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "lxml")


@pytest.fixture()
def extractor(log: Any) -> DomExtractor:
    return DomExtractor(log)


@pytest.fixture()
def document(extractor: DomExtractor, sample_html: str) -> ExtractedDocument:
    return extractor.extract(FetchedPage(url=URL, content=sample_html))


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestExtractClasses:
    def test_each_token_once_in_first_seen_order(self) -> None:
        soup = _soup('<div class="b a"><p class="a c b"></p><span class="c d"></span></div>')
        assert extract_classes(soup) == ["b", "a", "c", "d"]

    def test_no_classes(self) -> None:
        assert extract_classes(_soup("<p>plain</p>")) == []


class TestExtractMetadata:
    def test_kinds(self) -> None:
        soup = _soup(
            '<meta property="og:type" content="article">'
            '<meta http-equiv="refresh" content="30">'
            '<meta name="robots" content="noindex">'
            '<meta charset="utf-8">'
        )
        assert extract_metadata(soup) == [
            MetaTag(name="og:type", content="article", type="property"),
            MetaTag(name="refresh", content="30", type="http"),
            MetaTag(name="robots", content="noindex", type="name"),
        ]

    def test_property_wins_over_name(self) -> None:
        soup = _soup('<meta property="og:title" name="title" content="T">')
        assert extract_metadata(soup)[0].type == "property"

    def test_missing_content_is_empty(self) -> None:
        assert extract_metadata(_soup('<meta name="keywords">'))[0].content == ""


class TestExtractDataAttributes:
    def test_deduplicated_in_first_seen_order(self) -> None:
        soup = _soup('<div data-x="1" data-y="2"><p data-y="3" data-z="4" title="t"></p></div>')
        assert extract_data_attributes(soup) == ["data-x", "data-y", "data-z"]


class TestExtractTitle:
    def test_whitespace_collapsed(self) -> None:
        assert extract_title(_soup("<title>\n  A \n  B </title>")) == "A B"

    def test_missing_title(self) -> None:
        assert extract_title(_soup("<p>no title</p>")) == ""


# ---------------------------------------------------------------------------
# DomExtractor
# ---------------------------------------------------------------------------


class TestDomExtractor:
    def test_document_fields(self, document: ExtractedDocument) -> None:
        assert document.url == URL
        assert document.title == "Treatment Options"
        assert document.content_id == "1234"
        assert document.content_type == "cgvArticle"
        assert document.template == "default"
        assert document.ids == ["main"]
        assert document.classes == ["row", "feature-card", "intro"]
        assert document.data_attributes == [
            "data-cde-contentid",
            "data-cde-contenttype",
            "data-cde-pagetemplate",
            "data-module",
            "data-track",
        ]

    def test_metadata(self, document: ExtractedDocument) -> None:
        assert [(m.name, m.type) for m in document.metadata] == [
            ("description", "name"),
            ("og:title", "property"),
            ("X-UA-Compatible", "http"),
        ]

    def test_external_resources(self, document: ExtractedDocument) -> None:
        assert document.scripts == ["https://cdn.example.gov/jquery-1.12.4.min.js"]
        assert document.stylesheets == ["/styles/site.css"]

    def test_only_exact_stylesheet_rel_counted(self, extractor: DomExtractor) -> None:
        html = (
            "<html><head>"
            '<link rel="stylesheet" href="/main.css">'
            '<link rel="alternate stylesheet" href="/contrast.css">'
            '<link rel="Stylesheet" href="/print.css">'
            '<link rel="stylesheet">'
            "</head><body></body></html>"
        )
        doc = extractor.extract(FetchedPage(url=URL, content=html))
        assert doc.stylesheets == ["/main.css", "/print.css"]

    def test_inline_scripts(self, document: ExtractedDocument) -> None:
        assert len(document.script_blocks) == 2
        assert document.script_blocks[0].startswith('var pageName = "treatment"')
        assert document.script_identifiers == ["pageName", "trackPage"]
        assert document.script_strings == ["treatment", "it's here"]

    def test_failed_script_blocks_logged(self, sample_html: str) -> None:
        log = MagicMock()
        DomExtractor(log).extract(FetchedPage(url=URL, content=sample_html))

        log.warning.assert_called_once()
        assert log.warning.call_args.args == ("script_tokenize_failed",)
        log.debug.assert_called_once_with(
            "page_extracted", url=URL, script_blocks=2, failed_blocks=1
        )

    def test_body_attributes_absent(self, extractor: DomExtractor) -> None:
        doc = extractor.extract(FetchedPage(url=URL, content="<html><body><p>x</p></body></html>"))
        assert doc.content_id is None
        assert doc.content_type is None
        assert doc.template is None

    def test_index_document_uses_camel_case(self, document: ExtractedDocument) -> None:
        body = document.to_index_document()
        assert body["contentId"] == "1234"
        assert body["scriptIdentifiers"] == ["pageName", "trackPage"]
        assert body["dataAttributes"][0] == "data-cde-contentid"
        assert body["metadata"][0] == {"name": "description", "content": "How cancer is treated", "type": "name"}
        assert "content_id" not in body

    async def test_transform(self, extractor: DomExtractor, sample_html: str) -> None:
        doc = await extractor.transform(FetchedPage(url=URL, content=sample_html))
        assert isinstance(doc, ExtractedDocument)

    async def test_transform_passes_none_through(self, extractor: DomExtractor) -> None:
        assert await extractor.transform(None) is None

    def test_validate_config(self) -> None:
        assert DomExtractor.validate_config({}) == []
        assert [e.field for e in DomExtractor.validate_config({"unexpected": 1})] == ["unexpected"]
