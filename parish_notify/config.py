"""
Parish Notify — Centralized configuration.

Loads all settings from .env and validates them at import time.
This module is the foundation for every other module in the project.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

# Load .env from project root (one level up from parish_notify/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)

EXPO_PUSH_URL = "https://exp.host/--/api/v2/push/send"


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Document store (SQLite file)
    DATABASE_PATH: str = "data/parish.db"

    # All "local time" in the scheduling engine means this zone
    TIMEZONE: str = "Europe/Skopje"

    # Push relay (Expo-compatible batch endpoint)
    PUSH_RELAY_URL: str = EXPO_PUSH_URL
    PUSH_RELAY_ACCESS_TOKEN: str = ""
    PUSH_RELAY_TIMEOUT_SECONDS: float = 10.0

    # Retention
    HISTORY_RETENTION_DAYS: int = 30
    SCHEDULE_LOG_RETENTION_DAYS: int = 30

    LOG_LEVEL: str = "INFO"

    @field_validator("TIMEZONE")
    @classmethod
    def check_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone: {v!r}") from exc
        return v

    @field_validator("HISTORY_RETENTION_DAYS", "SCHEDULE_LOG_RETENTION_DAYS", mode="before")
    @classmethod
    def parse_days(cls, v: str | int) -> int:
        days = int(v)
        if days < 1:
            raise ValueError("retention must be at least one day")
        return days

    @field_validator("LOG_LEVEL")
    @classmethod
    def normalize_level(cls, v: str) -> str:
        return v.strip().upper() or "INFO"


class NotificationDefaults(BaseModel):
    """The global reminder switches an admin can flip.

    Replaces the loose settings dict of the mobile app: fixed fields,
    explicit defaults, unknown keys rejected.
    """

    model_config = ConfigDict(extra="forbid")

    enabled: bool = True
    week_before: bool = False
    day_before: bool = True
    hour_before: bool = True


def _load_settings() -> Settings:
    """Load settings from environment, validating every key."""
    try:
        return Settings(
            DATABASE_PATH=os.getenv("DATABASE_PATH", "data/parish.db"),
            TIMEZONE=os.getenv("TIMEZONE", "Europe/Skopje"),
            PUSH_RELAY_URL=os.getenv("PUSH_RELAY_URL", EXPO_PUSH_URL),
            PUSH_RELAY_ACCESS_TOKEN=os.getenv("PUSH_RELAY_ACCESS_TOKEN", ""),
            PUSH_RELAY_TIMEOUT_SECONDS=os.getenv("PUSH_RELAY_TIMEOUT_SECONDS", "10"),
            HISTORY_RETENTION_DAYS=os.getenv("HISTORY_RETENTION_DAYS", "30"),
            SCHEDULE_LOG_RETENTION_DAYS=os.getenv("SCHEDULE_LOG_RETENTION_DAYS", "30"),
            LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
        )
    except ValidationError as exc:
        print(f"ERROR: invalid configuration in .env: {exc}", file=sys.stderr)
        sys.exit(1)


# Singleton, imported by all other modules as:
#   from parish_notify.config import settings
settings = _load_settings()
