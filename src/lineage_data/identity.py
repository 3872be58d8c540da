"""
External identity for catalog rows.

Clicking a catalog row opens a detail panel and rewrites the location to
something like ``...?page=2&detail=monster12345``. The text after the
``detail=<kind>`` marker is the row's external id. A panel that never opens
leaves the id empty; the row is still recorded.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from lineage_data.document import DocumentSource, Element
from lineage_data.types import Identity

log = logging.getLogger(__name__)

MONSTER_MARKER = "detail=monster"
ITEM_MARKER = "detail=item"
DETAIL_CLOSE_SELECTOR = "div.gameinfo-detail__title>button.btn-close"


def extract_external_id(url: str, marker: str) -> str:
    _, found, rest = url.partition(marker)
    if not found:
        return ""
    return rest


class IdentityResolver:
    def __init__(self, source: DocumentSource, timeout: float):
        self._source = source
        self._timeout = timeout

    def open_detail(self, trigger: Element, marker: str) -> Identity:
        trigger.click()
        opened = self._source.wait_for(DETAIL_CLOSE_SELECTOR, self._timeout)
        if opened.timed_out:
            log.info("Detail panel not found within %.1fs", self._timeout)

        link = self._source.current_url()
        external_id = extract_external_id(link, marker)
        if not external_id:
            log.warning("No '%s' id in location %s", marker, link)
        return Identity(id=external_id, link=link)

    def close_detail(self) -> None:
        close_button = self._source.query(DETAIL_CLOSE_SELECTOR)
        if close_button is None:
            return
        close_button.click()
        closed = self._source.wait_for(DETAIL_CLOSE_SELECTOR, self._timeout, hidden=True)
        if closed.timed_out:
            log.info("Detail panel did not close within %.1fs", self._timeout)

    @contextmanager
    def detail(self, trigger: Element, marker: str) -> Iterator[Identity]:
        """Open a row's detail panel for the duration of the block, then close it."""
        identity = self.open_detail(trigger, marker)
        try:
            yield identity
        finally:
            self.close_detail()
