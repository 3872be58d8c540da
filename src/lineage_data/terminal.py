"""
Terminal output helpers for the harvest and query scripts.

Colors are only emitted when stdout is a TTY so piped output stays plain.
"""

import sys
from enum import Enum

from lineage_data.models import ItemDropResult, MonsterDropResult


class Color(Enum):
    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    BRIGHT_BLACK = "\033[90m"
    BRIGHT_RED = "\033[91m"
    BRIGHT_GREEN = "\033[92m"
    BRIGHT_YELLOW = "\033[93m"
    BRIGHT_BLUE = "\033[94m"
    BRIGHT_MAGENTA = "\033[95m"
    BRIGHT_CYAN = "\033[96m"
    BRIGHT_WHITE = "\033[97m"


def _supports_color() -> bool:
    return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


def colorize(text: str, *colors: Color) -> str:
    if not _supports_color():
        return text
    prefix = "".join(c.value for c in colors)
    return f"{prefix}{text}{Color.RESET.value}"


def info(message: str) -> None:
    print(message)


def success(message: str) -> None:
    print(colorize(message, Color.BRIGHT_GREEN))


def warning(message: str) -> None:
    print(colorize(f"⚠ {message}", Color.BRIGHT_YELLOW))


def error(message: str) -> None:
    print(colorize(f"✗ {message}", Color.BRIGHT_RED), file=sys.stderr)


def section_header(title: str) -> None:
    separator = "=" * 60
    print(f"\n{colorize(separator, Color.BRIGHT_BLUE)}")
    print(colorize(title, Color.BOLD, Color.BRIGHT_CYAN))
    print(colorize(separator, Color.BRIGHT_BLUE))


def key_value(key: str, value: str, indent: int = 0) -> None:
    spaces = " " * indent
    print(f"{spaces}{colorize(f'{key}:', Color.BRIGHT_WHITE)} {value}")


def bullet(message: str, indent: int = 2, symbol: str = "•") -> None:
    spaces = " " * indent
    print(f"{spaces}{colorize(symbol, Color.BRIGHT_BLUE)} {message}")


def modifier_tag(is_blessed: bool, is_cursed: bool) -> str:
    if is_blessed:
        return colorize("[祝福]", Color.BRIGHT_YELLOW)
    if is_cursed:
        return colorize("[詛咒]", Color.BRIGHT_MAGENTA)
    return ""


def _level(level: int | None) -> str:
    return colorize(f"Lv.{level}", Color.DIM) if level is not None else ""


def item_drop_line(row: ItemDropResult) -> str:
    parts = [
        modifier_tag(row.is_blessed, row.is_cursed),
        row.item_name,
        colorize("←", Color.BRIGHT_BLACK),
        row.monster_name,
        _level(row.monster_level),
    ]
    return " ".join(part for part in parts if part)


def monster_drop_line(row: MonsterDropResult) -> str:
    parts = [
        row.monster_name,
        _level(row.monster_level),
        colorize("→", Color.BRIGHT_BLACK),
        modifier_tag(row.is_blessed, row.is_cursed),
        row.item_name,
    ]
    return " ".join(part for part in parts if part)


def error_with_context(
    error_msg: str,
    context: dict[str, str] | None = None,
    suggestions: list[str] | None = None,
) -> None:
    error(error_msg)

    if context:
        print()
        for key, value in context.items():
            key_value(key, value, indent=2)

    if suggestions:
        print()
        print(colorize("Suggestions:", Color.BRIGHT_YELLOW))
        for suggestion in suggestions:
            bullet(suggestion, indent=2, symbol="→")
