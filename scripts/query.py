import argparse
import logging
import sys

from lineage_data import terminal
from lineage_data.config import get_settings
from lineage_data.exceptions import StoreError
from lineage_data.query import QueryService
from lineage_data.store import Store


def main() -> None:
    parser = argparse.ArgumentParser(description="Look up drops in the Lineage Classic database")
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--item", action="store_true", help="Which monsters drop this item")
    group.add_argument("--monster", action="store_true", help="Which items this monster drops")
    parser.add_argument("name", help="Item or monster name (exact, then substring)")
    parser.add_argument("--db", help="Database file (default: LINEAGE_DB_PATH)")
    args = parser.parse_args()

    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(message)s",
    )

    db_path = args.db or settings.db_path
    try:
        store = Store(db_path, read_only=True)
    except StoreError as e:
        terminal.error(str(e))
        sys.exit(1)

    with store:
        service = QueryService(store)
        if args.item:
            terminal.section_header(f"Drops of item: {args.name}")
            lines = [terminal.item_drop_line(row) for row in service.item_drops(args.name)]
        else:
            terminal.section_header(f"Drops of monster: {args.name}")
            lines = [terminal.monster_drop_line(row) for row in service.monster_drops(args.name)]

    if not lines:
        terminal.warning("No results")
        return
    for line in lines:
        terminal.bullet(line)


if __name__ == "__main__":
    main()
