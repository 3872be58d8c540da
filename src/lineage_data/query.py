"""
Read path used by the chat bot.

Lookups try an exact name first and fall back to a substring search when the
exact match finds nothing. Failures never escape: they are logged and the
caller gets an empty result to format.
"""

import logging
from collections.abc import Callable
from typing import TypeVar

from lineage_data.models import ItemDropResult, MonsterDropResult
from lineage_data.store import Store

log = logging.getLogger(__name__)

R = TypeVar("R")


class QueryService:
    def __init__(self, store: Store):
        self._store = store

    def _lookup(
        self,
        kind: str,
        query: str,
        exact: Callable[[str], list[R]],
        fuzzy: Callable[[str], list[R]],
    ) -> list[R]:
        name = query.strip()
        if not name:
            return []
        try:
            results = exact(name)
            if not results:
                log.debug("No exact %s match for '%s', trying fuzzy search", kind, name)
                results = fuzzy(name)
        except Exception:
            log.exception("Error querying %s drops for '%s'", kind, name)
            return []
        log.info("%s query '%s': %d result(s)", kind.capitalize(), name, len(results))
        return results

    def item_drops(self, item_name: str) -> list[ItemDropResult]:
        return self._lookup(
            "item",
            item_name,
            self._store.find_item_drops_exact,
            self._store.find_item_drops_fuzzy,
        )

    def monster_drops(self, monster_name: str) -> list[MonsterDropResult]:
        return self._lookup(
            "monster",
            monster_name,
            self._store.find_monster_drops_exact,
            self._store.find_monster_drops_fuzzy,
        )
