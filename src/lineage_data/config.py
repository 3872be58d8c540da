"""
Configuration management for the Lineage Classic drop database.

Loads settings from environment variables and a .env file, with defaults
matching a full production harvest of the public catalog.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DropSource = Literal["detail", "cell", "none"]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="LINEAGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    db_path: Path = Field(
        default_factory=lambda: Path("db/lineage-classic.db"),
        description="SQLite database file",
    )
    base_url: str = Field(
        default="https://lineageclassic.plaync.com/zh-tw/info",
        description="Catalog root; pages live at {base_url}/{monster,item}?page=N",
    )
    monster_pages: int = Field(default=5, ge=0, description="Monster catalog pages to visit")
    monster_rows: int | None = Field(
        default=None, ge=0, description="Rows per monster page (None = all)"
    )
    item_pages: int = Field(default=14, ge=0, description="Item catalog pages to visit")
    item_rows: int | None = Field(default=None, ge=0, description="Rows per item page (None = all)")
    full_catalog: bool = Field(
        default=True, description="Replace every drop relationship instead of only those seen"
    )
    drop_source: DropSource = Field(
        default="detail", description="Where drop mentions are read from"
    )
    list_timeout: float = Field(default=30.0, description="Seconds to wait for catalog rows")
    detail_timeout: float = Field(
        default=5.0, description="Seconds to wait for a detail panel to open or close"
    )
    headless: bool = Field(default=True, description="Run the browser without a window")
    browser_executable: str = Field(
        default="/usr/bin/chromium-browser",
        description="System Chromium used on ARM Linux where no bundled build exists",
    )
    overrides_path: Path = Field(
        default_factory=lambda: Path("data/item_name_overrides.yaml"),
        description="Drop mention to item name overrides",
    )
    log_level: str = Field(default="INFO", description="Logging level")


_settings: Settings | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    global _settings
    _settings = Settings()
    return _settings
