"""DOM extractor stage.

Parses a fetched page and records its structure: metadata, element ids,
class tokens, data attributes, script and stylesheet references, and the
identifiers and string literals found in inline scripts.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from bs4 import BeautifulSoup

from siteinventory.config import ExtractorConfig, validate_stage_config
from siteinventory.jstokens import EsprimaError, ScriptAnalysis, StringLiteralError
from siteinventory.models.page import ExtractedDocument, FetchedPage, MetaTag

if TYPE_CHECKING:
    from bs4 import Tag
    from structlog.typing import FilteringBoundLogger

    from siteinventory.errors import ConfigError

# Body data attributes carrying document-level information.
CONTENT_ID_ATTR = "data-cde-contentid"
CONTENT_TYPE_ATTR = "data-cde-contenttype"
TEMPLATE_ATTR = "data-cde-pagetemplate"

_DATA_ATTR_PREFIX = "data-"


def _attr(tag: Tag, name: str) -> str:
    """Return an attribute as a single string ("" when missing)."""
    value = tag.get(name)
    if value is None:
        return ""
    if isinstance(value, list):
        return " ".join(value)
    return value


def extract_metadata(soup: BeautifulSoup) -> list[MetaTag]:
    metadata: list[MetaTag] = []
    for el in soup.find_all("meta"):
        content = _attr(el, "content")
        if el.has_attr("property"):
            metadata.append(MetaTag(name=_attr(el, "property"), content=content, type="property"))
        elif _attr(el, "http-equiv"):
            metadata.append(MetaTag(name=_attr(el, "http-equiv"), content=content, type="http"))
        elif _attr(el, "name"):
            metadata.append(MetaTag(name=_attr(el, "name"), content=content, type="name"))
    return metadata


def extract_ids(soup: BeautifulSoup) -> list[str]:
    return [_attr(el, "id") for el in soup.find_all(id=True) if _attr(el, "id")]


def extract_classes(soup: BeautifulSoup) -> list[str]:
    """Class tokens of every element, deduplicated in first-seen order."""
    seen: dict[str, None] = {}
    for el in soup.find_all(class_=True):
        classes = el.get("class") or []
        if isinstance(classes, str):
            classes = classes.split()
        for cls in classes:
            seen.setdefault(cls, None)
    return list(seen)


def extract_data_attributes(soup: BeautifulSoup) -> list[str]:
    """``data-*`` attribute names used anywhere in the document, first-seen order."""
    seen: dict[str, None] = {}
    for el in soup.find_all(True):
        for name in el.attrs:
            if name.startswith(_DATA_ATTR_PREFIX):
                seen.setdefault(name, None)
    return list(seen)


def extract_title(soup: BeautifulSoup) -> str:
    if soup.title is None:
        return ""
    return " ".join(soup.title.get_text().split())


class DomExtractor:
    """Transformer: ``FetchedPage`` → ``ExtractedDocument``; ``None`` passes through."""

    def __init__(self, log: FilteringBoundLogger) -> None:
        self._log = log

    async def begin(self) -> None:
        return

    async def transform(self, data: FetchedPage | None) -> ExtractedDocument | None:
        # Pages skipped upstream arrive as None and stay None.
        if not data:
            return data
        return self.extract(data)

    def extract(self, page: FetchedPage) -> ExtractedDocument:
        soup = BeautifulSoup(page.content, "lxml")

        scripts: list[str] = []
        script_blocks: list[str] = []
        for el in soup.find_all("script"):
            if el.has_attr("src"):
                if _attr(el, "src"):
                    scripts.append(_attr(el, "src"))
                continue
            script_blocks.append(str(el.string or ""))

        analysis = self._analyse_scripts(page.url, script_blocks)

        stylesheets = [
            _attr(el, "href")
            for el in soup.find_all("link")
            if _attr(el, "rel").lower() == "stylesheet" and _attr(el, "href")
        ]
        self._log.debug(
            "page_extracted",
            url=page.url,
            script_blocks=len(script_blocks),
            failed_blocks=analysis.failed_blocks,
        )

        body = soup.body
        return ExtractedDocument(
            url=page.url,
            title=extract_title(soup),
            content_id=body.get(CONTENT_ID_ATTR) if body is not None else None,
            content_type=body.get(CONTENT_TYPE_ATTR) if body is not None else None,
            template=body.get(TEMPLATE_ATTR) if body is not None else None,
            ids=extract_ids(soup),
            metadata=extract_metadata(soup),
            classes=extract_classes(soup),
            scripts=scripts,
            stylesheets=stylesheets,
            script_blocks=script_blocks,
            script_identifiers=analysis.identifiers,
            script_strings=analysis.strings,
            data_attributes=extract_data_attributes(soup),
        )

    def _analyse_scripts(self, url: str, blocks: list[str]) -> ScriptAnalysis:
        analysis = ScriptAnalysis()
        for index, block in enumerate(blocks):
            try:
                analysis.add_block(block)
            except (EsprimaError, StringLiteralError) as exc:
                analysis.failed_blocks += 1
                self._log.warning(
                    "script_tokenize_failed",
                    url=url,
                    block_index=index,
                    error=str(exc),
                )
        return analysis

    async def end(self) -> None:
        return

    async def abort(self) -> None:
        return

    @staticmethod
    def validate_config(config: dict[str, Any]) -> list[ConfigError]:
        return validate_stage_config(ExtractorConfig, config)

    @classmethod
    async def get_instance(cls, log: FilteringBoundLogger, config: dict[str, Any]) -> DomExtractor:
        return cls(log)
