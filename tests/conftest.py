"""In-memory catalog standing in for the browser during tests."""

from collections.abc import Callable
from pathlib import Path

import pytest

from lineage_data.extractor import (
    CELL_SELECTOR,
    DETAIL_ITEM_LINK_SELECTOR,
    NAME_SELECTOR,
    ROW_SELECTOR,
    THUMBNAIL_SELECTOR,
    TRIGGER_SELECTOR,
)
from lineage_data.identity import DETAIL_CLOSE_SELECTOR
from lineage_data.store import Store
from lineage_data.types import WaitResult

BASE_URL = "https://lineageclassic.plaync.com/zh-tw/info"


class FakeElement:
    def __init__(
        self,
        text: str = "",
        attrs: dict[str, str] | None = None,
        children: dict[str, list["FakeElement"]] | None = None,
        on_click: Callable[[], None] | None = None,
    ):
        self._text = text
        self._attrs = attrs or {}
        self._children = children or {}
        self._on_click = on_click
        self.clicks = 0

    def query(self, selector: str) -> "FakeElement | None":
        found = self._children.get(selector, [])
        return found[0] if found else None

    def query_all(self, selector: str) -> list["FakeElement"]:
        return list(self._children.get(selector, []))

    def text(self) -> str:
        return self._text.strip()

    def attribute(self, name: str) -> str | None:
        return self._attrs.get(name)

    def click(self) -> None:
        self.clicks += 1
        if self._on_click:
            self._on_click()


class FakeDocumentSource:
    def __init__(self):
        self.pages: dict[str, list[FakeElement]] = {}
        self.url = "about:blank"
        self.visited: list[str] = []
        self.open_detail: list[str] | None = None
        self.closed = False
        self.panel_sticks = False

    # --- catalog building ---

    def add_row(
        self,
        kind: str,
        page: int,
        name: str | None,
        cells: list[str],
        *,
        detail_id: str | None = None,
        detail_links: list[str] | None = None,
        thumb: str | None = None,
    ) -> FakeElement:
        page_url = f"{BASE_URL}/{kind}?page={page}"
        links = detail_links or []

        def open_panel() -> None:
            if detail_id is None:
                return
            self.url = f"{page_url}&detail={kind}{detail_id}"
            self.open_detail = links

        children: dict[str, list[FakeElement]] = {
            CELL_SELECTOR: [FakeElement(text=cell) for cell in cells],
        }
        if name is not None:
            trigger = FakeElement(
                children={NAME_SELECTOR: [FakeElement(text=name)]}, on_click=open_panel
            )
            children[TRIGGER_SELECTOR] = [trigger]
            if thumb is not None:
                children[THUMBNAIL_SELECTOR] = [FakeElement(attrs={"src": thumb})]

        row = FakeElement(children=children)
        self.pages.setdefault(page_url, []).append(row)
        return row

    def _close_panel(self) -> None:
        if self.panel_sticks:
            return
        self.open_detail = None
        self.url = self.url.split("&detail=")[0]

    # --- DocumentSource ---

    def goto(self, url: str) -> None:
        self.visited.append(url)
        self.url = url
        self.open_detail = None

    def wait_for(self, selector: str, timeout: float, *, hidden: bool = False) -> WaitResult:
        if selector == ROW_SELECTOR:
            present = bool(self.pages.get(self.url))
        elif selector == DETAIL_CLOSE_SELECTOR:
            present = self.open_detail is not None
        else:
            present = bool(self.query_all(selector))
        return WaitResult(selector=selector, found=(not present) if hidden else present)

    def query(self, selector: str) -> FakeElement | None:
        found = self.query_all(selector)
        return found[0] if found else None

    def query_all(self, selector: str) -> list[FakeElement]:
        if selector == ROW_SELECTOR:
            return list(self.pages.get(self.url, []))
        if selector == DETAIL_CLOSE_SELECTOR and self.open_detail is not None:
            return [FakeElement(on_click=self._close_panel)]
        if selector == DETAIL_ITEM_LINK_SELECTOR and self.open_detail is not None:
            return [FakeElement(text=text) for text in self.open_detail]
        return []

    def current_url(self) -> str:
        return self.url

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_source() -> FakeDocumentSource:
    return FakeDocumentSource()


@pytest.fixture
def store(tmp_path: Path):
    db = Store(tmp_path / "db" / "lineage.db", read_only=False)
    yield db
    db.close()
