"""Default points engine — pure business logic.

base = weight x frequency multiplier x 10, plus 20 % of base when the work
was on time and 10 % of base once the member's streak reaches 3 days.

No I/O apart from calculate_streak, which reads completion days from storage.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import TYPE_CHECKING

from src.data.models import TaskFrequency

if TYPE_CHECKING:
    from src.data.db import HouseholdDB

logger = logging.getLogger(__name__)

BASE_MULTIPLIER = 10
ON_TIME_BONUS = 0.2
STREAK_BONUS = 0.1
STREAK_THRESHOLD = 3

FREQUENCY_MULTIPLIER: dict[TaskFrequency, float] = {
    TaskFrequency.DAILY: 0.5,
    TaskFrequency.WEEKLY: 1.0,
    TaskFrequency.BIWEEKLY: 1.5,
    TaskFrequency.MONTHLY: 2.0,
    TaskFrequency.ONCE: 1.0,
}


def calculate_points(
    weight: int,
    frequency: TaskFrequency,
    is_on_time: bool,
    streak_days: int,
) -> int:
    """Points earned for one completed assignment (rounded half up)."""
    base = weight * FREQUENCY_MULTIPLIER.get(TaskFrequency(frequency), 1.0) * BASE_MULTIPLIER
    total = base
    if is_on_time:
        total += base * ON_TIME_BONUS
    if streak_days >= STREAK_THRESHOLD:
        total += base * STREAK_BONUS
    return int(total + 0.5)


def streak_from_days(days: set[date], today: date) -> int:
    """Consecutive completion days counted back from today.

    Nothing done yet today does not break the streak; counting starts from
    yesterday instead.
    """
    current = today
    if current not in days:
        current = today - timedelta(days=1)
    streak = 0
    while current in days:
        streak += 1
        current -= timedelta(days=1)
    return streak


def calculate_streak(db: HouseholdDB, member_id: int, today: date) -> int:
    return streak_from_days(db.completion_days(member_id), today)


class DefaultPointsEngine:
    """PointsEnginePort implementation backed by calculate_points."""

    def calculate_points(
        self,
        weight: int,
        frequency: TaskFrequency,
        is_on_time: bool,
        streak_days: int,
    ) -> int:
        return calculate_points(weight, frequency, is_on_time, streak_days)
