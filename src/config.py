"""
Household Rotation Engine — Centralized configuration.

Loads all settings from .env and validates them.
This module is the foundation for every other module in the project.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv
from pydantic import BaseModel, ValidationError, field_validator

# Load .env from project root (two levels up from src/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # SQLite
    DATABASE_PATH: str = "data/household.db"

    # All "local midnight" / "local noon" math happens in this zone
    TIMEZONE: str = "UTC"

    # Telegram (only the job runner needs it)
    TELEGRAM_BOT_TOKEN: str = ""

    # Periodic jobs
    ROTATION_SWEEP_HOUR: int = 0
    ABSENCE_SWEEP_HOUR: int = 1
    REMINDER_HOUR: int = 9
    REMINDER_POLL_MINUTES: int = 15

    @field_validator("TIMEZONE")
    @classmethod
    def check_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"unknown timezone {v!r}") from exc
        return v

    @field_validator(
        "ROTATION_SWEEP_HOUR", "ABSENCE_SWEEP_HOUR", "REMINDER_HOUR", mode="before",
    )
    @classmethod
    def parse_hour(cls, v: str | int) -> int:
        hour = int(v)
        if not 0 <= hour <= 23:
            raise ValueError(f"hour out of range: {hour}")
        return hour

    @field_validator("REMINDER_POLL_MINUTES", mode="before")
    @classmethod
    def parse_minutes(cls, v: str | int) -> int:
        minutes = int(v)
        if minutes < 1:
            raise ValueError("REMINDER_POLL_MINUTES must be at least 1")
        return minutes


def _load_settings() -> Settings:
    """Load settings from environment, validating every key."""
    try:
        return Settings(
            DATABASE_PATH=os.getenv("DATABASE_PATH", "data/household.db"),
            TIMEZONE=os.getenv("TIMEZONE", "UTC"),
            TELEGRAM_BOT_TOKEN=os.getenv("TELEGRAM_BOT_TOKEN", ""),
            ROTATION_SWEEP_HOUR=os.getenv("ROTATION_SWEEP_HOUR", "0"),
            ABSENCE_SWEEP_HOUR=os.getenv("ABSENCE_SWEEP_HOUR", "1"),
            REMINDER_HOUR=os.getenv("REMINDER_HOUR", "9"),
            REMINDER_POLL_MINUTES=os.getenv("REMINDER_POLL_MINUTES", "15"),
        )
    except ValidationError as exc:
        print(f"ERROR: invalid configuration in .env:\n{exc}", file=sys.stderr)
        sys.exit(1)


# Singleton, imported by all other modules as:
#   from src.config import settings
settings = _load_settings()
