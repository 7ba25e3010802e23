"""Environment-driven configuration for the bookshop ledger.

Every tunable the application reads lives on ``AppSettings``. Values come from
the process environment or from ``.env`` / ``.env.local`` files next to the
working directory, so the tool boots with sensible defaults on a fresh machine.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from zoneinfo import ZoneInfo

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """Environment-driven application configuration."""

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    APP_NAME: str = "Bookshop Ledger"
    DATA_DIR: Path = Field(default_factory=lambda: Path.cwd() / "data")
    DB_URL: str | None = Field(default=None, validation_alias=AliasChoices("DATABASE_URL", "DB_URL"))
    # ``TZ`` is left alone on purpose: many hosts export values ZoneInfo cannot read.
    TIMEZONE: str = Field(default="Asia/Kolkata", validation_alias=AliasChoices("BOOKSHOP_TZ", "TIMEZONE"))

    API_KEY: str = ""

    SALES_HISTORY_LIMIT: int = 50

    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    HOST: str = "127.0.0.1"
    PORT: int = 8090

    @property
    def database_url(self) -> str:
        return self.DB_URL or f"sqlite:///{self.DATA_DIR / 'bookshop.db'}"

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.TIMEZONE)


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    settings = AppSettings()
    if settings.DB_URL is None:
        settings.DATA_DIR.mkdir(parents=True, exist_ok=True)
    return settings


__all__ = ["AppSettings", "get_settings"]
