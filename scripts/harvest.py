"""
CLI script for harvesting the Lineage Classic catalog into the database.

Orchestrates the harvest pipeline:
1. Scrape item catalog pages (name, thumbnail, description, external id)
2. Scrape monster catalog pages (name, thumbnail, level, drop mentions, external id)
3. Write items, monsters and cross-referenced drops in one transaction

A full run visits every configured page and takes several minutes.
"""

import argparse
import logging
import sys
from typing import Any

from pydantic import ValidationError

from lineage_data import terminal
from lineage_data.config import Settings, get_settings
from lineage_data.exceptions import HarvestError, StoreError, UnsupportedEnvironmentError
from lineage_data.harvest import Harvester, HarvestReport
from lineage_data.store import Store

log = logging.getLogger(__name__)


def build_settings(args: argparse.Namespace, base: Settings) -> Settings:
    update: dict[str, Any] = {}
    if args.db is not None:
        update["db_path"] = args.db
    if args.sample:
        update.update(monster_pages=1, monster_rows=1, item_pages=1, item_rows=1)
    for field_name in ("monster_pages", "monster_rows", "item_pages", "item_rows"):
        value = getattr(args, field_name)
        if value is not None:
            update[field_name] = value
    if args.drop_source is not None:
        update["drop_source"] = args.drop_source
    if args.partial or args.sample:
        update["full_catalog"] = False
    return Settings.model_validate({**base.model_dump(), **update})


def print_report(report: HarvestReport) -> None:
    terminal.section_header("Harvest complete")
    terminal.key_value("Items scraped", str(report.items), indent=2)
    terminal.key_value("Monsters scraped", str(report.monsters), indent=2)
    terminal.key_value("Drop relationships linked", str(report.relationships), indent=2)
    if report.counts:
        for table, count in report.counts.items():
            terminal.key_value(f"Rows in {table}", str(count), indent=2)
    if report.unknown_mentions:
        terminal.warning(f"{len(report.unknown_mentions)} drop mention(s) matched no item:")
        for name in report.unknown_mentions:
            terminal.bullet(name, indent=4)
    terminal.success(report.summary().splitlines()[0])


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Scrape the Lineage Classic catalog and rebuild the drop database"
    )
    parser.add_argument("--db", help="Database file (default: LINEAGE_DB_PATH)")
    parser.add_argument("--monster-pages", type=int, help="Monster catalog pages to visit")
    parser.add_argument("--monster-rows", type=int, help="Rows per monster page")
    parser.add_argument("--item-pages", type=int, help="Item catalog pages to visit")
    parser.add_argument("--item-rows", type=int, help="Rows per item page")
    parser.add_argument(
        "--drop-source",
        choices=["detail", "cell", "none"],
        help="Read drop mentions from the detail panel, the drop column, or skip linking",
    )
    parser.add_argument(
        "--partial",
        action="store_true",
        help="Only replace drops of monsters seen in this run",
    )
    parser.add_argument(
        "--sample", action="store_true", help="Scrape one row of one page of each catalog"
    )
    args = parser.parse_args()

    try:
        settings = build_settings(args, get_settings())
    except ValidationError as e:
        terminal.error_with_context("Invalid harvest options", context={"Details": str(e)})
        sys.exit(1)

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    try:
        store = Store(settings.db_path, read_only=False)
    except StoreError as e:
        terminal.error_with_context(str(e), context={"Database": str(settings.db_path)})
        sys.exit(1)

    try:
        report = Harvester(store, settings).run()
    except UnsupportedEnvironmentError as e:
        terminal.error_with_context(
            str(e),
            suggestions=["Set LINEAGE_BROWSER_EXECUTABLE to a system Chromium build"],
        )
        sys.exit(1)
    except HarvestError as e:
        cause = e.__cause__
        terminal.error_with_context(
            str(e),
            context={"Cause": repr(cause)} if cause else None,
            suggestions=["Re-run with --sample to check the catalog selectors"],
        )
        sys.exit(1)
    finally:
        store.close()

    print_report(report)


if __name__ == "__main__":
    main()
