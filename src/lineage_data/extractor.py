"""
Row extraction for one loaded catalog page.

The catalog renders each entry as a ``div.has-option.tablerow`` holding a
``button.btn-item`` trigger (name and thumbnail) followed by ``div.tablecell``
columns. Cell positions differ between the monster and item listings; the
indexes below are the contract with the site.
"""

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TypeVar

from lineage_data.document import DocumentSource, Element
from lineage_data.exceptions import ExtractionError
from lineage_data.types import WaitResult

log = logging.getLogger(__name__)

ROW_SELECTOR = "div.has-option.tablerow"
TRIGGER_SELECTOR = "button.btn-item"
NAME_SELECTOR = "strong.name"
THUMBNAIL_SELECTOR = "button.btn-item > img.thumb"
CELL_SELECTOR = "div.tablecell"
DETAIL_ITEM_LINK_SELECTOR = 'div.gameinfo-detail a[href*="detail=item"]'

MONSTER_LEVEL_CELL = 1
MONSTER_DROP_CELL = 5
ITEM_DESCRIPTION_CELL = 3

_LEADING_INT = re.compile(r"\s*(\d+)")

T = TypeVar("T")


@dataclass
class CatalogRow:
    name: str = ""
    image_url: str = ""
    trigger: Element | None = None
    description: str | None = None
    level: int | None = None
    drop_mentions: list[str] = field(default_factory=list)


def clean_name(name: str) -> str:
    return re.sub(r"\s+", " ", name).strip()


def split_drop_text(text: str) -> list[str]:
    tokens = (clean_name(token) for token in text.split(","))
    return [token for token in tokens if token]


def parse_level(text: str) -> int:
    match = _LEADING_INT.match(text)
    if not match:
        log.debug("Unparseable level '%s', using 0", text)
        return 0
    return int(match.group(1))


def _guarded(read: Callable[[], T], default: T, what: str) -> T:
    try:
        return read()
    except ExtractionError as e:
        log.warning("Could not read %s: %s", what, e)
        return default


class PageExtractor:
    def __init__(self, list_timeout: float):
        self._list_timeout = list_timeout

    def wait_for_rows(self, source: DocumentSource) -> WaitResult:
        result = source.wait_for(ROW_SELECTOR, self._list_timeout)
        if result.timed_out:
            log.error("Selector %s not found within %.0fs", ROW_SELECTOR, self._list_timeout)
        return result

    def _rows(self, source: DocumentSource, row_limit: int | None) -> list[Element]:
        rows = source.query_all(ROW_SELECTOR)
        if row_limit is not None:
            rows = rows[:row_limit]
        return rows

    def _cell_text(self, row: Element, index: int) -> str | None:
        cells = row.query_all(CELL_SELECTOR)
        if index >= len(cells):
            return None
        return cells[index].text()

    def _base_row(self, row: Element) -> CatalogRow:
        trigger = _guarded(lambda: row.query(TRIGGER_SELECTOR), None, "row trigger")
        if trigger is None:
            log.warning("Row has no %s; emitting it without name or id", TRIGGER_SELECTOR)
            return CatalogRow()

        name_el = _guarded(lambda: trigger.query(NAME_SELECTOR), None, "row name")
        name = _guarded(lambda: clean_name(name_el.text()), "", "row name") if name_el else ""

        thumbs = _guarded(lambda: row.query_all(THUMBNAIL_SELECTOR), [], "thumbnail")
        image_url = ""
        if thumbs:
            image_url = _guarded(lambda: thumbs[0].attribute("src"), None, "thumbnail") or ""

        return CatalogRow(name=name, image_url=image_url, trigger=trigger)

    def extract_monster_rows(
        self, source: DocumentSource, row_limit: int | None = None
    ) -> list[CatalogRow]:
        extracted = []
        for row in self._rows(source, row_limit):
            catalog_row = self._base_row(row)

            drop_text = _guarded(lambda: self._cell_text(row, MONSTER_DROP_CELL), None, "drops")
            if drop_text is not None:
                catalog_row.drop_mentions = split_drop_text(drop_text)

            level_text = _guarded(lambda: self._cell_text(row, MONSTER_LEVEL_CELL), None, "level")
            if level_text is not None:
                catalog_row.level = parse_level(level_text)

            extracted.append(catalog_row)
        return extracted

    def extract_item_rows(
        self, source: DocumentSource, row_limit: int | None = None
    ) -> list[CatalogRow]:
        extracted = []
        for row in self._rows(source, row_limit):
            catalog_row = self._base_row(row)
            catalog_row.description = _guarded(
                lambda: self._cell_text(row, ITEM_DESCRIPTION_CELL), None, "description"
            )
            extracted.append(catalog_row)
        return extracted

    def extract_detail_mentions(self, source: DocumentSource) -> list[str]:
        mentions: list[str] = []
        for link in source.query_all(DETAIL_ITEM_LINK_SELECTOR):
            text = _guarded(lambda: clean_name(link.text()), "", "detail link")
            if text and text not in mentions:
                mentions.append(text)
        return mentions
