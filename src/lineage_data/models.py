"""Pydantic models for monsters, items, drop relationships and query rows."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import Generic, TypeVar

from pydantic import BaseModel, Field, model_validator

log = logging.getLogger(__name__)

# --- Stored entities ---


class Item(BaseModel):
    id: str
    name: str
    description: str | None = None
    image_url: str | None = Field(default=None, alias="imageUrl")
    link: str | None = None

    model_config = {"populate_by_name": True}


class Monster(BaseModel):
    id: str
    name: str
    image_url: str | None = Field(default=None, alias="imageUrl")
    link: str | None = None
    level: int | None = None

    model_config = {"populate_by_name": True}


class DropRelationship(BaseModel):
    monster_id: str = Field(alias="monsterId")
    item_id: str = Field(alias="itemId")
    is_blessed: bool = Field(default=False, alias="isBlessed")
    is_cursed: bool = Field(default=False, alias="isCursed")

    model_config = {"populate_by_name": True, "frozen": True}

    @model_validator(mode="after")
    def _validate_modifiers(self) -> DropRelationship:
        if self.is_blessed and self.is_cursed:
            raise ValueError("A drop cannot be both blessed and cursed")
        return self


# --- Scraped records ---


class ScrapedMonster(Monster):
    drop_mentions: list[str] = Field(default_factory=list, alias="dropMentions")


# --- Query rows ---


class ItemDropResult(BaseModel):
    item_name: str
    item_image_url: str | None = None
    item_link: str | None = None
    monster_name: str
    monster_image_url: str | None = None
    monster_link: str | None = None
    monster_level: int | None = None
    is_blessed: bool = False
    is_cursed: bool = False


class MonsterDropResult(BaseModel):
    monster_name: str
    monster_image_url: str | None = None
    monster_link: str | None = None
    monster_level: int | None = None
    item_name: str
    item_image_url: str | None = None
    item_link: str | None = None
    item_description: str | None = None
    is_blessed: bool = False
    is_cursed: bool = False


# --- Keyed containers ---

T = TypeVar("T", bound=BaseModel)


class KeyedRecords(Generic[T]):
    """
    Ordered records of one entity type, keyed by an explicit identity field.

    Monsters are keyed by external id and items by name. A colliding key
    replaces the earlier record, and the replacement is logged.
    """

    def __init__(self, kind: str, key_field: str):
        self.kind = kind
        self.key_field = key_field
        self._records: dict[str, T] = {}
        self.collisions: list[str] = []

    def add(self, record: T) -> None:
        key = getattr(record, self.key_field)
        if key in self._records:
            log.warning(
                "%s %s '%s' seen twice; keeping the later record",
                self.kind,
                self.key_field,
                key,
            )
            self.collisions.append(key)
        self._records[key] = record

    def get(self, key: str) -> T | None:
        return self._records.get(key)

    def keys(self) -> list[str]:
        return list(self._records)

    def __contains__(self, key: object) -> bool:
        return key in self._records

    def __iter__(self) -> Iterator[T]:
        return iter(self._records.values())

    def __len__(self) -> int:
        return len(self._records)


def monster_records() -> KeyedRecords[ScrapedMonster]:
    return KeyedRecords("Monster", "id")


def item_records() -> KeyedRecords[Item]:
    return KeyedRecords("Item", "name")
