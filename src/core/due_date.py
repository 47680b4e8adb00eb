"""Due-date calculator — pure date math.

Two conventions live here and must stay distinct:

- assignment due dates land at the END of a day (23:59:59.999);
- rotation schedule dates land at local NOON (12:00:00).

Both use the same per-frequency step table. No I/O apart from reading the
configured timezone in local_now().
"""

from __future__ import annotations

import calendar
import logging
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from src.data.models import TaskFrequency

logger = logging.getLogger(__name__)

END_OF_DAY = time(23, 59, 59, 999000)
NOON = time(12, 0)

_DAY_STEPS: dict[TaskFrequency, int] = {
    TaskFrequency.DAILY: 1,
    TaskFrequency.WEEKLY: 7,
    TaskFrequency.BIWEEKLY: 14,
    TaskFrequency.ONCE: 0,
}


def local_now() -> datetime:
    """Current wall-clock time in the configured timezone, as a naive datetime."""
    from src.config import settings

    return datetime.now(ZoneInfo(settings.TIMEZONE)).replace(tzinfo=None)


def end_of_day(day: date | datetime) -> datetime:
    if isinstance(day, datetime):
        day = day.date()
    return datetime.combine(day, END_OF_DAY)


def start_of_day(day: date | datetime) -> datetime:
    if isinstance(day, datetime):
        day = day.date()
    return datetime.combine(day, time.min)


def add_months(day: date, months: int) -> date:
    """Shift by calendar months, clamping the day (Jan 31 + 1 month -> Feb 28/29)."""
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def _coerce_frequency(frequency: TaskFrequency | str) -> TaskFrequency | None:
    try:
        return TaskFrequency(frequency)
    except ValueError:
        return None


def _step(frequency: TaskFrequency | None, day: date, *, for_due_date: bool) -> date:
    if frequency is TaskFrequency.MONTHLY:
        return add_months(day, 1)
    if frequency is TaskFrequency.DAILY and for_due_date:
        # A daily task is due by the end of the day it was created on
        return day
    if frequency is None:
        return day + timedelta(days=7)
    return day + timedelta(days=_DAY_STEPS[frequency])


def compute_due_date(
    frequency: TaskFrequency | str,
    from_dt: datetime | date | None = None,
    plan_end: datetime | date | None = None,
) -> datetime:
    """Return the end-of-day instant an assignment created at ``from_dt`` is due.

    DAILY and ONCE are due the same day; WEEKLY +7 days; BIWEEKLY +14 days;
    MONTHLY +1 calendar month. An unrecognized frequency uses the weekly rule.
    When ``plan_end`` is given the result never goes past the end of that day.
    """
    if from_dt is None:
        from_dt = local_now()
    day = from_dt.date() if isinstance(from_dt, datetime) else from_dt

    freq = _coerce_frequency(frequency)
    if freq is None:
        logger.warning("Unknown frequency %r, using the weekly rule", frequency)

    due = end_of_day(_step(freq, day, for_due_date=True))

    if plan_end is not None:
        cap = end_of_day(plan_end)
        if due > cap:
            return cap
    return due


def advance_rotation_date(
    frequency: TaskFrequency | str,
    from_dt: datetime | date,
) -> datetime:
    """Next rotation date after ``from_dt``, anchored at local noon.

    ONCE (which should never have a rotation) does not move.
    """
    day = from_dt.date() if isinstance(from_dt, datetime) else from_dt
    freq = _coerce_frequency(frequency)
    if freq is None:
        logger.warning("Unknown rotation frequency %r, using the weekly rule", frequency)
    return datetime.combine(_step(freq, day, for_due_date=False), NOON)
