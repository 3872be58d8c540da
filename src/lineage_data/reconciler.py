import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from lineage_data.extractor import clean_name
from lineage_data.models import DropRelationship
from lineage_data.store import Store
from lineage_data.types import DropMention

log = logging.getLogger(__name__)

BLESSED_PREFIX = re.compile(r"^祝福的\s*")
CURSED_PREFIX = re.compile(r"^詛咒的\s*")


@dataclass
class ReconcileResult:
    linked: list[DropRelationship] = field(default_factory=list)
    unknown: list[str] = field(default_factory=list)


def parse_drop_mention(text: str) -> DropMention | None:
    remainder = clean_name(text)
    is_blessed = False
    is_cursed = False

    stripped = BLESSED_PREFIX.sub("", remainder, count=1)
    if stripped != remainder:
        is_blessed = True
    else:
        stripped = CURSED_PREFIX.sub("", remainder, count=1)
        is_cursed = stripped != remainder

    name = stripped.strip()
    if not name:
        return None
    return DropMention(name=name, is_blessed=is_blessed, is_cursed=is_cursed)


def load_item_name_overrides(path: Path) -> dict[str, str]:
    if not path.exists():
        return {}

    with path.open(encoding="utf-8") as f:
        overrides = yaml.safe_load(f) or {}

    if not isinstance(overrides, dict):
        raise ValueError(f"Item name overrides in {path} must be a mapping of mention to name")
    return {clean_name(str(k)): clean_name(str(v)) for k, v in overrides.items()}


class DropReconciler:
    """
    Links a monster's drop mentions to stored items.

    Each mention loses its blessed/cursed prefix and is looked up by exact
    item name. Unknown names are logged and skipped so one bad mention never
    stops the rest. When duplicate item names exist the first stored row wins.
    """

    def __init__(self, store: Store, overrides: dict[str, str] | None = None):
        self._store = store
        self._overrides = overrides or {}

    def reconcile(self, monster_id: str, mentions: Iterable[str]) -> ReconcileResult:
        result = ReconcileResult()
        for text in mentions:
            mention = parse_drop_mention(text)
            if mention is None:
                continue

            item_name = self._overrides.get(mention.name, mention.name)
            items = self._store.find_items_by_exact_name(item_name)
            if not items:
                log.warning("Monster %s drops unknown item '%s'", monster_id, item_name)
                result.unknown.append(item_name)
                continue

            if len(items) > 1:
                log.info(
                    "Item name '%s' matches %d items; using %s",
                    item_name,
                    len(items),
                    items[0].id,
                )

            relationship = self._store.upsert_drop_relationship(
                monster_id, items[0].id, mention.is_blessed, mention.is_cursed
            )
            result.linked.append(relationship)
        return result
