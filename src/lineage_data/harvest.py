"""
Harvest pipeline: catalog pages to database.

Walks the item catalog, then the monster catalog, one page and one row at a
time. Each row's detail panel is opened to learn its external id (and, for
monsters, the items linked from the panel) and closed again before the next
row. Nothing is written until both catalogs are scraped; the write is a
single transaction covering items, monsters and drop relationships.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from lineage_data.config import Settings
from lineage_data.document import DocumentSource, PlaywrightDocumentSource, launch_options
from lineage_data.exceptions import ExtractionError, HarvestError
from lineage_data.extractor import CatalogRow, PageExtractor
from lineage_data.identity import ITEM_MARKER, MONSTER_MARKER, IdentityResolver
from lineage_data.models import (
    Item,
    KeyedRecords,
    ScrapedMonster,
    item_records,
    monster_records,
)
from lineage_data.reconciler import DropReconciler, load_item_name_overrides
from lineage_data.store import Store
from lineage_data.types import Identity, StoreCounts

log = logging.getLogger(__name__)

SourceFactory = Callable[[dict[str, Any]], DocumentSource]


class HarvestState(Enum):
    NOT_STARTED = "not_started"
    PAGE_LOADING = "page_loading"
    ROW_EXTRACTING = "row_extracting"
    DETAIL_OPENING = "detail_opening"
    DETAIL_CLOSING = "detail_closing"
    PAGE_ADVANCE = "page_advance"
    DONE = "done"


@dataclass(frozen=True)
class HarvestBounds:
    pages: int
    rows: int | None = None

    @classmethod
    def for_monsters(cls, settings: Settings) -> "HarvestBounds":
        return cls(pages=settings.monster_pages, rows=settings.monster_rows)

    @classmethod
    def for_items(cls, settings: Settings) -> "HarvestBounds":
        return cls(pages=settings.item_pages, rows=settings.item_rows)


@dataclass
class HarvestReport:
    items: int
    monsters: int
    relationships: int
    unknown_mentions: list[str] = field(default_factory=list)
    counts: StoreCounts | None = None

    def summary(self) -> str:
        lines = [
            "Database update complete",
            f"Items: {self.items}",
            f"Monsters: {self.monsters}",
            f"Drop relationships: {self.relationships}",
        ]
        if self.unknown_mentions:
            lines.append(f"Unknown drop mentions: {len(self.unknown_mentions)}")
        return "\n".join(lines)


class Harvester:
    def __init__(
        self,
        store: Store,
        settings: Settings,
        *,
        source_factory: SourceFactory = PlaywrightDocumentSource.launch,
        overrides: dict[str, str] | None = None,
    ):
        self._store = store
        self._settings = settings
        self._source_factory = source_factory
        self._overrides = (
            overrides if overrides is not None else load_item_name_overrides(settings.overrides_path)
        )
        self._extractor = PageExtractor(settings.list_timeout)
        self.state = HarvestState.NOT_STARTED

    def _enter(self, state: HarvestState) -> None:
        log.debug("Harvest state: %s -> %s", self.state.value, state.value)
        self.state = state

    def _page_url(self, kind: str, page: int) -> str:
        return f"{self._settings.base_url.rstrip('/')}/{kind}?page={page}"

    def _load_page(self, source: DocumentSource, kind: str, page: int) -> None:
        self._enter(HarvestState.PAGE_LOADING)
        source.goto(self._page_url(kind, page))
        self._extractor.wait_for_rows(source)
        self._enter(HarvestState.ROW_EXTRACTING)

    def _visit_detail(
        self,
        source: DocumentSource,
        row: CatalogRow,
        marker: str,
        *,
        collect_mentions: bool = False,
    ) -> tuple[Identity, list[str]]:
        identity = Identity(id="", link="")
        mentions: list[str] = []
        if row.trigger is None:
            return identity, mentions

        resolver = IdentityResolver(source, self._settings.detail_timeout)
        self._enter(HarvestState.DETAIL_OPENING)
        try:
            with resolver.detail(row.trigger, marker) as identity:
                if collect_mentions:
                    mentions = self._extractor.extract_detail_mentions(source)
                self._enter(HarvestState.DETAIL_CLOSING)
        except ExtractionError as e:
            log.warning("Detail panel for '%s' failed: %s", row.name, e)
        return identity, mentions

    def scrape_items(self, source: DocumentSource) -> KeyedRecords[Item]:
        bounds = HarvestBounds.for_items(self._settings)
        items = item_records()
        for page in range(1, bounds.pages + 1):
            self._load_page(source, "item", page)
            for index, row in enumerate(self._extractor.extract_item_rows(source, bounds.rows)):
                log.info("Item page %d, row %d loading...", page, index)
                identity, _ = self._visit_detail(source, row, ITEM_MARKER)
                items.add(
                    Item(
                        id=identity.id,
                        name=row.name,
                        description=row.description,
                        image_url=row.image_url or None,
                        link=identity.link or None,
                    )
                )
            self._enter(HarvestState.PAGE_ADVANCE)

        self._enter(HarvestState.DONE)
        log.info("Scraped %d items", len(items))
        return items

    def scrape_monsters(self, source: DocumentSource) -> KeyedRecords[ScrapedMonster]:
        bounds = HarvestBounds.for_monsters(self._settings)
        from_detail = self._settings.drop_source == "detail"
        monsters = monster_records()
        for page in range(1, bounds.pages + 1):
            self._load_page(source, "monster", page)
            for index, row in enumerate(self._extractor.extract_monster_rows(source, bounds.rows)):
                log.info("Monster page %d, row %d loading...", page, index)
                identity, detail_mentions = self._visit_detail(
                    source, row, MONSTER_MARKER, collect_mentions=from_detail
                )
                monsters.add(
                    ScrapedMonster(
                        id=identity.id,
                        name=row.name,
                        image_url=row.image_url or None,
                        link=identity.link or None,
                        level=row.level,
                        drop_mentions=detail_mentions if from_detail else row.drop_mentions,
                    )
                )
            self._enter(HarvestState.PAGE_ADVANCE)

        self._enter(HarvestState.DONE)
        log.info("Scraped %d monsters", len(monsters))
        return monsters

    def write(
        self, items: KeyedRecords[Item], monsters: KeyedRecords[ScrapedMonster]
    ) -> HarvestReport:
        """
        Persist one harvest as a single transaction.

        Items go first so drop mentions can be cross-referenced against them
        inside the same transaction. In full-catalog mode every drop
        relationship is replaced; otherwise only those of the monsters seen.
        On failure the batch is rolled back, the store is closed and a
        HarvestError is raised from the cause.
        """
        report = HarvestReport(items=len(items), monsters=len(monsters), relationships=0)
        try:
            with self._store.transaction():
                for item in items:
                    self._store.upsert_item(item)
                log.info("Wrote %d items", len(items))

                for monster in monsters:
                    self._store.upsert_monster(monster)
                log.info("Wrote %d monsters", len(monsters))

                if self._settings.drop_source == "none":
                    log.info("Drop cross-referencing disabled; raw mentions kept in memory only")
                else:
                    self._replace_drops(monsters, report)
        except Exception as e:
            self._store.close()
            message = f"Database update failed: {e}"
            log.error(message)
            raise HarvestError(message) from e

        report.counts = self._store.counts()
        log.info(report.summary())
        return report

    def _replace_drops(self, monsters: KeyedRecords[ScrapedMonster], report: HarvestReport) -> None:
        if self._settings.full_catalog:
            deleted = self._store.delete_drop_relationships()
        else:
            deleted = self._store.delete_drop_relationships(monsters.keys())
        log.info("Cleared %d drop relationships", deleted)

        reconciler = DropReconciler(self._store, self._overrides)
        unknown: list[str] = []
        for monster in monsters:
            result = reconciler.reconcile(monster.id, monster.drop_mentions)
            report.relationships += len(result.linked)
            unknown.extend(name for name in result.unknown if name not in unknown)
        report.unknown_mentions = unknown
        log.info("Linked %d drop relationships", report.relationships)

    def scrape(self) -> tuple[KeyedRecords[Item], KeyedRecords[ScrapedMonster]]:
        options = launch_options(self._settings)
        try:
            source = self._source_factory(options)
        except Exception as e:
            raise HarvestError(f"Failed to start document source: {e}") from e

        try:
            items = self.scrape_items(source)
            monsters = self.scrape_monsters(source)
        except Exception as e:
            raise HarvestError(f"Harvest failed while scraping: {e}") from e
        finally:
            source.close()
        return items, monsters

    def run(self) -> HarvestReport:
        log.info("Starting harvest into %s", self._store.db_path)
        items, monsters = self.scrape()
        return self.write(items, monsters)
