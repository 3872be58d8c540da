"""
SQLite store for monsters, items and their drop relationships.

A Store is opened explicitly by its owner and passed to whatever needs it.
Harvest opens it read-write, which bootstraps and migrates the schema; the
chat query path opens it read-only with query_only enforced so queries can
run while a harvest is writing.
"""

import logging
import sqlite3
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from lineage_data.exceptions import ReadOnlyStoreError, StoreError, StoreNotInitializedError
from lineage_data.models import DropRelationship, Item, ItemDropResult, Monster, MonsterDropResult
from lineage_data.types import StoreCounts

log = logging.getLogger(__name__)

QUERY_LIMIT = 100

_TABLES = ("monster", "item", "monster_drops")

_MONSTER_TABLE = """
CREATE TABLE monster (
    id       TEXT PRIMARY KEY,
    name     TEXT NOT NULL,
    imageUrl TEXT,
    link     TEXT,
    level    INTEGER
);
"""

_MONSTER_INDEXES = """
CREATE INDEX IF NOT EXISTS idx_monster_name ON monster(name);
CREATE INDEX IF NOT EXISTS idx_monster_level_name ON monster(level, name);
"""

_ITEM_TABLE = """
CREATE TABLE item (
    id          TEXT PRIMARY KEY,
    name        TEXT NOT NULL,
    description TEXT,
    imageUrl    TEXT,
    link        TEXT
);
"""

_ITEM_INDEXES = """
CREATE INDEX IF NOT EXISTS idx_item_name ON item(name);
"""

_DROPS_TABLE = """
CREATE TABLE monster_drops (
    monster_id TEXT,
    item_id    TEXT,
    is_blessed INTEGER NOT NULL DEFAULT 0,
    is_cursed  INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (monster_id, item_id, is_blessed, is_cursed),
    FOREIGN KEY (monster_id) REFERENCES monster (id) ON UPDATE CASCADE ON DELETE CASCADE,
    FOREIGN KEY (item_id) REFERENCES item (id) ON UPDATE CASCADE ON DELETE CASCADE,
    CHECK (NOT (is_blessed AND is_cursed))
);
"""

_DROPS_INDEXES = """
CREATE INDEX IF NOT EXISTS idx_monster_drops_item_id ON monster_drops(item_id, monster_id);
"""

_ITEM_DROP_SELECT = """
    item.name AS item_name,
    item.imageUrl AS item_image_url,
    item.link AS item_link,
    monster.name AS monster_name,
    monster.imageUrl AS monster_image_url,
    monster.link AS monster_link,
    monster.level AS monster_level,
    monster_drops.is_blessed,
    monster_drops.is_cursed
FROM item
JOIN monster_drops ON item.id = monster_drops.item_id
JOIN monster ON monster_drops.monster_id = monster.id
"""

_MONSTER_DROP_SELECT = """
    monster.name AS monster_name,
    monster.imageUrl AS monster_image_url,
    monster.link AS monster_link,
    monster.level AS monster_level,
    item.name AS item_name,
    item.imageUrl AS item_image_url,
    item.link AS item_link,
    item.description AS item_description,
    monster_drops.is_blessed,
    monster_drops.is_cursed
FROM monster
JOIN monster_drops ON monster.id = monster_drops.monster_id
JOIN item ON monster_drops.item_id = item.id
"""


def _like_pattern(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class Store:
    def __init__(self, db_path: Path, *, read_only: bool = True):
        self.db_path = Path(db_path)
        self.read_only = read_only
        self._conn: sqlite3.Connection | None = None
        self._open()

    def _open(self) -> None:
        if not self.read_only and not self.db_path.parent.exists():
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            log.info("Created database directory: %s", self.db_path.parent)

        mode = "read-only" if self.read_only else "read-write"
        log.info("Opening %s database at %s", mode, self.db_path)
        try:
            if self.read_only:
                uri = f"{self.db_path.resolve().as_uri()}?mode=ro"
                conn = sqlite3.connect(uri, uri=True, isolation_level=None)
            else:
                conn = sqlite3.connect(self.db_path, isolation_level=None)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
            if self.read_only:
                conn.execute("PRAGMA query_only = ON")
        except sqlite3.Error as e:
            raise StoreError(f"Failed to open database {self.db_path}: {e}") from e

        self._conn = conn
        if not self.read_only:
            try:
                self._bootstrap_schema()
            except sqlite3.Error as e:
                self.close()
                raise StoreError(f"Failed to initialize schema in {self.db_path}: {e}") from e

        log.info("Database initialized successfully")

    # --- Lifecycle ---

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            log.info("Database connection closed")

    def __enter__(self) -> "Store":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _connection(self, operation: str) -> sqlite3.Connection:
        if self._conn is None:
            raise StoreNotInitializedError(operation)
        return self._conn

    def _writable_connection(self, operation: str) -> sqlite3.Connection:
        conn = self._connection(operation)
        if self.read_only:
            raise ReadOnlyStoreError(operation)
        return conn

    def _execute(
        self, conn: sqlite3.Connection, sql: str, params: Iterable[Any] = ()
    ) -> sqlite3.Cursor:
        try:
            return conn.execute(sql, tuple(params))
        except sqlite3.Error as e:
            raise StoreError(f"Database error: {e}") from e

    # --- Schema ---

    def _existing_tables(self) -> set[str]:
        conn = self._connection("inspect schema")
        placeholders = ", ".join("?" for _ in _TABLES)
        rows = conn.execute(
            f"SELECT name FROM sqlite_master WHERE type='table' AND name IN ({placeholders})",
            _TABLES,
        ).fetchall()
        return {row["name"] for row in rows}

    def _table_columns(self, table: str) -> dict[str, int]:
        conn = self._connection("inspect schema")
        rows = conn.execute(f"PRAGMA table_info({table})").fetchall()
        return {row["name"]: row["pk"] for row in rows}

    def _drops_table_is_current(self) -> bool:
        columns = self._table_columns("monster_drops")
        return all(columns.get(name, 0) > 0 for name in ("is_blessed", "is_cursed"))

    def _bootstrap_schema(self) -> None:
        conn = self._connection("bootstrap schema")
        existing = self._existing_tables()

        if "monster_drops" in existing and not self._drops_table_is_current():
            log.warning(
                "monster_drops table predates blessed/cursed keys; dropping it. "
                "Drop relationships are lost until the next harvest."
            )
            conn.execute("DROP TABLE IF EXISTS monster_drops")
            existing.discard("monster_drops")

        if "monster" not in existing:
            log.info("Creating table: monster")
            conn.executescript(_MONSTER_TABLE)
        elif "level" not in self._table_columns("monster"):
            log.info("Adding column monster.level")
            conn.execute("ALTER TABLE monster ADD COLUMN level INTEGER")
        conn.executescript(_MONSTER_INDEXES)

        if "item" not in existing:
            log.info("Creating table: item")
            conn.executescript(_ITEM_TABLE)
        conn.executescript(_ITEM_INDEXES)

        if "monster_drops" not in existing:
            log.info("Creating table: monster_drops")
            conn.executescript(_DROPS_TABLE)
        conn.executescript(_DROPS_INDEXES)

    # --- Transactions ---

    @contextmanager
    def transaction(self) -> Iterator["Store"]:
        """
        Run a block of writes atomically.

        Commits when the block completes and rolls back on any exception,
        which is re-raised unchanged. A nested call joins the outer
        transaction.
        """
        conn = self._writable_connection("start a transaction")
        if conn.in_transaction:
            yield self
            return

        self._execute(conn, "BEGIN")
        try:
            yield self
        except BaseException:
            log.error("Transaction failed, rolling back")
            conn.rollback()
            raise
        else:
            self._execute(conn, "COMMIT")

    # --- Writes ---

    def upsert_item(self, item: Item) -> None:
        conn = self._writable_connection("upsert an item")
        self._execute(
            conn,
            """
            INSERT INTO item (id, name, description, imageUrl, link)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                name=excluded.name,
                description=excluded.description,
                imageUrl=excluded.imageUrl,
                link=excluded.link
            """,
            (item.id, item.name, item.description, item.image_url, item.link),
        )

    def upsert_monster(self, monster: Monster) -> None:
        conn = self._writable_connection("upsert a monster")
        self._execute(
            conn,
            """
            INSERT INTO monster (id, name, imageUrl, link, level)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                name=excluded.name,
                imageUrl=excluded.imageUrl,
                link=excluded.link,
                level=excluded.level
            """,
            (monster.id, monster.name, monster.image_url, monster.link, monster.level),
        )

    def upsert_drop_relationship(
        self, monster_id: str, item_id: str, is_blessed: bool, is_cursed: bool
    ) -> DropRelationship:
        relationship = DropRelationship(
            monster_id=monster_id,
            item_id=item_id,
            is_blessed=is_blessed,
            is_cursed=is_cursed,
        )
        conn = self._writable_connection("upsert a drop relationship")
        self._execute(
            conn,
            """
            INSERT INTO monster_drops (monster_id, item_id, is_blessed, is_cursed)
            VALUES (?, ?, ?, ?)
            ON CONFLICT DO NOTHING
            """,
            (
                relationship.monster_id,
                relationship.item_id,
                1 if relationship.is_blessed else 0,
                1 if relationship.is_cursed else 0,
            ),
        )
        return relationship

    def delete_drop_relationships(self, monster_ids: Iterable[str] | None = None) -> int:
        conn = self._writable_connection("delete drop relationships")
        if monster_ids is None:
            return self._execute(conn, "DELETE FROM monster_drops").rowcount

        deleted = 0
        for monster_id in monster_ids:
            cursor = self._execute(
                conn, "DELETE FROM monster_drops WHERE monster_id = ?", (monster_id,)
            )
            deleted += cursor.rowcount
        return deleted

    # --- Reads ---

    def find_items_by_exact_name(self, name: str) -> list[Item]:
        conn = self._connection("look up items")
        rows = self._execute(
            conn,
            """
            SELECT id, name, description, imageUrl, link
            FROM item
            WHERE name = ?
            ORDER BY rowid
            """,
            (name,),
        ).fetchall()
        return [Item.model_validate(dict(row)) for row in rows]

    def find_drop_relationships(self, monster_id: str) -> list[DropRelationship]:
        conn = self._connection("look up drop relationships")
        rows = self._execute(
            conn,
            """
            SELECT monster_id, item_id, is_blessed, is_cursed
            FROM monster_drops
            WHERE monster_id = ?
            ORDER BY item_id, is_blessed, is_cursed
            """,
            (monster_id,),
        ).fetchall()
        return [DropRelationship.model_validate(dict(row)) for row in rows]

    def find_item_drops_exact(self, item_name: str) -> list[ItemDropResult]:
        conn = self._connection("query item drops")
        rows = self._execute(
            conn,
            f"""
            SELECT {_ITEM_DROP_SELECT}
            WHERE item.name = ?
            ORDER BY monster.level ASC, monster.name ASC
            LIMIT {QUERY_LIMIT}
            """,
            (item_name,),
        ).fetchall()
        return [ItemDropResult.model_validate(dict(row)) for row in rows]

    def find_item_drops_fuzzy(self, item_name: str) -> list[ItemDropResult]:
        conn = self._connection("query item drops")
        rows = self._execute(
            conn,
            f"""
            SELECT {_ITEM_DROP_SELECT}
            WHERE item.name LIKE ? ESCAPE '\\'
            ORDER BY item.name ASC, monster.level ASC, monster.name ASC
            LIMIT {QUERY_LIMIT}
            """,
            (_like_pattern(item_name),),
        ).fetchall()
        return [ItemDropResult.model_validate(dict(row)) for row in rows]

    def find_monster_drops_exact(self, monster_name: str) -> list[MonsterDropResult]:
        conn = self._connection("query monster drops")
        rows = self._execute(
            conn,
            f"""
            SELECT {_MONSTER_DROP_SELECT}
            WHERE monster.name = ?
            ORDER BY item.name ASC
            LIMIT {QUERY_LIMIT}
            """,
            (monster_name,),
        ).fetchall()
        return [MonsterDropResult.model_validate(dict(row)) for row in rows]

    def find_monster_drops_fuzzy(self, monster_name: str) -> list[MonsterDropResult]:
        conn = self._connection("query monster drops")
        rows = self._execute(
            conn,
            f"""
            SELECT {_MONSTER_DROP_SELECT}
            WHERE monster.name LIKE ? ESCAPE '\\'
            ORDER BY monster.name ASC, item.name ASC
            LIMIT {QUERY_LIMIT}
            """,
            (_like_pattern(monster_name),),
        ).fetchall()
        return [MonsterDropResult.model_validate(dict(row)) for row in rows]

    def counts(self) -> StoreCounts:
        conn = self._connection("count rows")
        return StoreCounts(
            monster=self._execute(conn, "SELECT COUNT(*) FROM monster").fetchone()[0],
            item=self._execute(conn, "SELECT COUNT(*) FROM item").fetchone()[0],
            monster_drops=self._execute(conn, "SELECT COUNT(*) FROM monster_drops").fetchone()[0],
        )
