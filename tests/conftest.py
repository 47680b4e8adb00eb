"""Shared test fixtures and configuration.

Sets up environment variables before any src imports and provides a temp
HouseholdDB plus a small household builder.
"""

import os

# Patch env vars BEFORE any src imports
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("TIMEZONE", "UTC")
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "fake-token-for-tests")
os.environ.setdefault("REMINDER_HOUR", "9")

from datetime import datetime

import pytest

HOUSEHOLD = 1
# Wednesday
NOW = datetime(2026, 3, 4, 10, 0)


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path."""
    return str(tmp_path / "test_household.db")


@pytest.fixture
def household_db(tmp_db_path):
    """Return a HouseholdDB instance backed by a temp file."""
    from src.data.db import HouseholdDB
    return HouseholdDB(db_path=tmp_db_path)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_member(household_db):
    """Factory: make_member("Alice", "ADULT") -> Member in HOUSEHOLD."""
    def _make(name, member_type="ADULT", household_id=HOUSEHOLD, **kwargs):
        return household_db.add_member(household_id, name, member_type, **kwargs)
    return _make


@pytest.fixture
def make_task(household_db):
    """Factory: make_task("Dishes", "WEEKLY", min_age=12) -> Task in HOUSEHOLD."""
    def _make(name, frequency="WEEKLY", household_id=HOUSEHOLD, **kwargs):
        return household_db.add_task(household_id, name, frequency, **kwargs)
    return _make
