"""
Small value types shared between the browser-facing modules and the store.

A bounded wait returns a WaitResult instead of raising on timeout; callers
decide whether a missing selector matters.
"""

from typing import NamedTuple, TypedDict


class WaitResult(NamedTuple):
    selector: str
    found: bool

    @property
    def timed_out(self) -> bool:
        return not self.found


class Identity(NamedTuple):
    id: str
    link: str


class DropMention(NamedTuple):
    name: str
    is_blessed: bool
    is_cursed: bool


class StoreCounts(TypedDict):
    monster: int
    item: int
    monster_drops: int
