"""Tests for the harvest pipeline, driven by the in-memory catalog."""

from pathlib import Path

import pytest
from playwright.sync_api import Error as PlaywrightError

from lineage_data.config import Settings
from lineage_data.document import PlaywrightDocumentSource
from lineage_data.exceptions import ExtractionError, HarvestError, UnsupportedEnvironmentError
from lineage_data.extractor import DETAIL_ITEM_LINK_SELECTOR, CatalogRow
from lineage_data.harvest import HarvestBounds, Harvester, HarvestState
from lineage_data.identity import MONSTER_MARKER
from lineage_data.models import Item, Monster
from lineage_data.store import Store

from conftest import BASE_URL, FakeElement


def _settings(tmp_path: Path, **overrides) -> Settings:
    values = {
        "db_path": tmp_path / "db" / "lineage.db",
        "base_url": BASE_URL,
        "monster_pages": 1,
        "monster_rows": None,
        "item_pages": 1,
        "item_rows": None,
        "full_catalog": True,
        "drop_source": "detail",
        "overrides_path": tmp_path / "none.yaml",
    }
    values.update(overrides)
    return Settings(**values)


def _monster_cells(level: str, drops: str) -> list[str]:
    return ["", level, "", "", "", drops]


def _item_cells(description: str) -> list[str]:
    return ["", "", "", description]


@pytest.fixture(autouse=True)
def _any_platform(mocker):
    mocker.patch("lineage_data.harvest.launch_options", return_value={"headless": True})


def _harvester(store: Store, settings: Settings, source) -> Harvester:
    return Harvester(store, settings, source_factory=lambda options: source, overrides={})


class TestScenarios:
    def test_single_row_without_cross_reference(self, tmp_path, store, fake_source):
        settings = _settings(
            tmp_path, monster_rows=1, item_pages=0, drop_source="none", full_catalog=False
        )
        fake_source.add_row("monster", 1, "哥布林", _monster_cells("3", "短劍, 木盾"), detail_id="7")
        fake_source.add_row("monster", 1, "不會被讀到", _monster_cells("9", "長劍"), detail_id="8")
        harvester = _harvester(store, settings, fake_source)

        items, monsters = harvester.scrape()
        report = harvester.write(items, monsters)

        assert [m.name for m in monsters] == ["哥布林"]
        assert monsters.get("7").drop_mentions == ["短劍", "木盾"]
        assert store.counts() == {"monster": 1, "item": 0, "monster_drops": 0}
        assert report.relationships == 0
        assert fake_source.closed

    def test_blessed_detail_mention_links_item(self, tmp_path, store, fake_source):
        settings = _settings(tmp_path)
        fake_source.add_row("item", 1, "長劍", _item_cells("單手劍"), detail_id="100")
        fake_source.add_row(
            "monster",
            1,
            "妖魔",
            _monster_cells("5", "長劍"),
            detail_id="m1",
            detail_links=["祝福的 長劍", "詛咒的 短刀"],
        )

        report = _harvester(store, settings, fake_source).run()

        [relationship] = store.find_drop_relationships("m1")
        assert relationship.item_id == "100"
        assert relationship.is_blessed is True
        assert relationship.is_cursed is False
        assert report.unknown_mentions == ["短刀"]
        assert report.counts == {"monster": 1, "item": 1, "monster_drops": 1}

    def test_cell_drop_source(self, tmp_path, store, fake_source):
        settings = _settings(tmp_path, drop_source="cell")
        fake_source.add_row("item", 1, "短劍", _item_cells(""), detail_id="1")
        fake_source.add_row("item", 1, "木盾", _item_cells(""), detail_id="2")
        fake_source.add_row(
            "monster", 1, "妖魔", _monster_cells("5", "木盾, 短劍"), detail_id="m1"
        )

        _harvester(store, settings, fake_source).run()

        rows = store.find_monster_drops_fuzzy("妖")
        assert [r.monster_name for r in rows] == ["妖魔", "妖魔"]
        assert [r.item_name for r in rows] == sorted(["木盾", "短劍"])


class TestPaging:
    def test_visits_every_page_within_bounds(self, tmp_path, store, fake_source):
        settings = _settings(tmp_path, monster_pages=3, item_pages=2, item_rows=1)
        fake_source.add_row("item", 1, "長劍", _item_cells(""), detail_id="1")
        fake_source.add_row("item", 1, "短劍", _item_cells(""), detail_id="2")
        fake_source.add_row("item", 2, "木盾", _item_cells(""), detail_id="3")

        items, monsters = _harvester(store, settings, fake_source).scrape()

        assert fake_source.visited == [
            f"{BASE_URL}/item?page=1",
            f"{BASE_URL}/item?page=2",
            f"{BASE_URL}/monster?page=1",
            f"{BASE_URL}/monster?page=2",
            f"{BASE_URL}/monster?page=3",
        ]
        assert items.keys() == ["長劍", "木盾"]
        assert len(monsters) == 0

    def test_ends_in_done_state(self, tmp_path, store, fake_source):
        harvester = _harvester(store, _settings(tmp_path), fake_source)
        assert harvester.state is HarvestState.NOT_STARTED

        harvester.scrape()

        assert harvester.state is HarvestState.DONE

    def test_bounds_from_settings(self, tmp_path):
        settings = _settings(tmp_path, monster_pages=5, monster_rows=30, item_pages=14)

        assert HarvestBounds.for_monsters(settings) == HarvestBounds(pages=5, rows=30)
        assert HarvestBounds.for_items(settings) == HarvestBounds(pages=14, rows=None)


class TestSoftFailures:
    def test_missing_navigation_records_row_with_empty_id(self, tmp_path, store, fake_source):
        fake_source.add_row("item", 1, "長劍", _item_cells(""), detail_id=None)
        fake_source.add_row("monster", 1, "妖魔", _monster_cells("5", ""), detail_id=None)

        items, monsters = _harvester(store, _settings(tmp_path), fake_source).scrape()

        assert items.get("長劍").id == ""
        assert items.get("長劍").link == f"{BASE_URL}/item?page=1"
        assert monsters.get("").name == "妖魔"

    def test_key_collisions_are_tracked(self, tmp_path, store, fake_source):
        fake_source.add_row("monster", 1, "甲", _monster_cells("1", ""), detail_id=None)
        fake_source.add_row("monster", 1, "乙", _monster_cells("2", ""), detail_id=None)

        _, monsters = _harvester(store, _settings(tmp_path), fake_source).scrape()

        assert len(monsters) == 1
        assert monsters.get("").name == "乙"
        assert monsters.collisions == [""]

    def test_empty_page_is_skipped(self, tmp_path, store, fake_source):
        settings = _settings(tmp_path, item_pages=2)
        fake_source.add_row("item", 2, "長劍", _item_cells(""), detail_id="1")

        items, _ = _harvester(store, settings, fake_source).scrape()

        assert items.keys() == ["長劍"]

    def test_browser_error_in_detail_panel_keeps_identity(self, tmp_path, store, mocker):
        page = mocker.MagicMock()
        page.url = f"{BASE_URL}/monster?page=1&detail=monster42"
        page.query_selector_all.side_effect = PlaywrightError("Execution context was destroyed")
        source = PlaywrightDocumentSource(mocker.MagicMock(), mocker.MagicMock(), page)
        row = CatalogRow(name="妖魔", trigger=FakeElement())
        harvester = _harvester(store, _settings(tmp_path), source)

        identity, mentions = harvester._visit_detail(
            source, row, MONSTER_MARKER, collect_mentions=True
        )

        assert identity.id == "42"
        assert mentions == []

    def test_detail_panel_error_only_affects_its_monster(
        self, tmp_path, store, fake_source, mocker
    ):
        fake_source.add_row("item", 1, "短劍", _item_cells(""), detail_id="1")
        fake_source.add_row(
            "monster", 1, "妖魔", _monster_cells("5", ""), detail_id="m1", detail_links=["短劍"]
        )
        fake_source.add_row(
            "monster", 1, "哥布林", _monster_cells("3", ""), detail_id="m2", detail_links=["短劍"]
        )
        real_query_all = fake_source.query_all

        def failing_query_all(selector: str):
            if selector == DETAIL_ITEM_LINK_SELECTOR and fake_source.url.endswith("monsterm1"):
                raise ExtractionError("Execution context was destroyed")
            return real_query_all(selector)

        mocker.patch.object(fake_source, "query_all", side_effect=failing_query_all)

        report = _harvester(store, _settings(tmp_path), fake_source).run()

        assert report.monsters == 2
        assert store.find_drop_relationships("m1") == []
        assert [r.item_id for r in store.find_drop_relationships("m2")] == ["1"]
        assert fake_source.open_detail is None


class TestWritePhase:
    def _seed(self, store: Store) -> None:
        store.upsert_item(Item(id="1", name="長劍"))
        store.upsert_item(Item(id="2", name="短劍"))
        store.upsert_monster(Monster(id="m1", name="妖魔", level=5))
        store.upsert_monster(Monster(id="m2", name="哥布林", level=3))
        store.upsert_drop_relationship("m1", "1", False, False)
        store.upsert_drop_relationship("m2", "2", False, False)

    def test_full_catalog_replaces_all_drops(self, tmp_path, store, fake_source):
        self._seed(store)
        fake_source.add_row("item", 1, "短劍", _item_cells(""), detail_id="2")
        fake_source.add_row(
            "monster", 1, "妖魔", _monster_cells("5", ""), detail_id="m1", detail_links=["短劍"]
        )

        _harvester(store, _settings(tmp_path, full_catalog=True), fake_source).run()

        assert store.find_drop_relationships("m1")[0].item_id == "2"
        assert store.find_drop_relationships("m2") == []
        assert store.counts()["monster"] == 2

    def test_partial_run_keeps_unseen_monster_drops(self, tmp_path, store, fake_source):
        self._seed(store)
        fake_source.add_row("item", 1, "短劍", _item_cells(""), detail_id="2")
        fake_source.add_row(
            "monster", 1, "妖魔", _monster_cells("5", ""), detail_id="m1", detail_links=["短劍"]
        )

        _harvester(store, _settings(tmp_path, full_catalog=False), fake_source).run()

        assert [r.item_id for r in store.find_drop_relationships("m1")] == ["2"]
        assert [r.item_id for r in store.find_drop_relationships("m2")] == ["2"]

    def test_failure_before_drop_writes_rolls_back_everything(
        self, tmp_path, store, fake_source, mocker
    ):
        self._seed(store)
        fake_source.add_row("item", 1, "木盾", _item_cells("盾"), detail_id="3")
        fake_source.add_row(
            "monster", 1, "妖魔王", _monster_cells("50", ""), detail_id="m9", detail_links=["木盾"]
        )
        harvester = _harvester(store, _settings(tmp_path), fake_source)
        items, monsters = harvester.scrape()
        mocker.patch.object(
            store, "delete_drop_relationships", side_effect=RuntimeError("disk full")
        )

        with pytest.raises(HarvestError, match="disk full") as exc_info:
            harvester.write(items, monsters)

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert not store.is_open
        with Store(tmp_path / "db" / "lineage.db", read_only=True) as reader:
            assert reader.counts() == {"monster": 2, "item": 2, "monster_drops": 2}
            assert reader.find_monster_drops_exact("妖魔王") == []


class TestRunFailures:
    def test_unsupported_environment_aborts_before_io(self, tmp_path, store, mocker):
        mocker.patch(
            "lineage_data.harvest.launch_options",
            side_effect=UnsupportedEnvironmentError("Plan9", "mips"),
        )
        factory = mocker.Mock()

        with pytest.raises(UnsupportedEnvironmentError):
            Harvester(store, _settings(tmp_path), source_factory=factory, overrides={}).run()

        factory.assert_not_called()
        assert store.counts() == {"monster": 0, "item": 0, "monster_drops": 0}

    def test_source_closed_when_scrape_fails(self, tmp_path, store, fake_source, mocker):
        mocker.patch.object(fake_source, "goto", side_effect=RuntimeError("net down"))

        with pytest.raises(HarvestError, match="net down") as exc_info:
            _harvester(store, _settings(tmp_path), fake_source).run()

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert fake_source.closed
        assert store.counts() == {"monster": 0, "item": 0, "monster_drops": 0}

    def test_source_start_failure_is_wrapped(self, tmp_path, store):
        def failing_factory(options):
            raise RuntimeError("no chromium")

        harvester = Harvester(
            store, _settings(tmp_path), source_factory=failing_factory, overrides={}
        )

        with pytest.raises(HarvestError, match="no chromium"):
            harvester.run()

    def test_loads_overrides_from_settings(self, tmp_path, store, fake_source):
        overrides_path = tmp_path / "overrides.yaml"
        overrides_path.write_text("古老的長劍: 長劍\n", encoding="utf-8")
        settings = _settings(tmp_path, overrides_path=overrides_path)
        fake_source.add_row("item", 1, "長劍", _item_cells(""), detail_id="1")
        fake_source.add_row(
            "monster", 1, "妖魔", _monster_cells("5", ""), detail_id="m1",
            detail_links=["古老的長劍"],
        )

        Harvester(store, settings, source_factory=lambda options: fake_source).run()

        assert [r.item_id for r in store.find_drop_relationships("m1")] == ["1"]
