"""Rotation sweeper — periodic job that spawns occurrences of recurring tasks.

Each run is stateless: it reads due rotations, generates one assignment per
rotation and moves the rotation forward. Because next_due_date advances past
"now" on success, a second run in the same window generates nothing.
"""

from __future__ import annotations

import logging
from datetime import datetime, time, timedelta
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from src.core.due_date import advance_rotation_date, local_now
from src.core.errors import DuplicateAssignmentError, NotFoundError
from src.core.scoring import best_assignee
from src.data.models import ReminderType

if TYPE_CHECKING:
    from src.data.db import HouseholdDB
    from src.data.models import TaskRotation

logger = logging.getLogger(__name__)


class RotationSweepReport(BaseModel):
    processed: int = 0
    generated: int = 0
    errors: list[str] = Field(default_factory=list)


def plan_reminders(
    due_date: datetime,
    now: datetime,
    reminder_hour: int = 9,
) -> list[tuple[ReminderType, datetime]]:
    """DUE_SOON the morning before and DUE_TODAY the morning of, if still ahead of now."""
    at = time(reminder_hour, 0)
    candidates = [
        (ReminderType.DUE_SOON, datetime.combine(due_date.date() - timedelta(days=1), at)),
        (ReminderType.DUE_TODAY, datetime.combine(due_date.date(), at)),
    ]
    return [(kind, when) for kind, when in candidates if when > now]


def _sweep_one(
    db: HouseholdDB,
    rotation: TaskRotation,
    now: datetime,
    reminder_hour: int,
    report: RotationSweepReport,
) -> None:
    task = db.get_task(rotation.task_id)
    if task is None:
        raise NotFoundError(f"Task {rotation.task_id} not found")
    task_name = task.name
    if not task.is_active:
        report.errors.append(f"Task {task_name} is inactive; pause rotation {rotation.id}")
        return
    due_date = rotation.next_due_date
    next_due = advance_rotation_date(rotation.frequency, due_date)

    winner = best_assignee(db, rotation.task_id, due_date, now=now)
    if winner is None:
        report.errors.append(f"No eligible member for task {task_name}")
        return

    try:
        assignment = db.generate_rotation_occurrence(
            rotation,
            winner.member_id,
            now=now,
            next_due_date=next_due,
            reminders=plan_reminders(due_date, now, reminder_hour),
        )
    except DuplicateAssignmentError:
        # Someone else (e.g. the completion hook) already spawned this occurrence
        db.advance_rotation(rotation.id, last_generated=now, next_due_date=next_due)
        logger.info(
            "Rotation #%d: task '%s' already has an open assignment, advanced to %s",
            rotation.id, task_name, next_due,
        )
        return

    report.generated += 1
    logger.info(
        "Rotation #%d: assignment #%d for '%s' -> %s, next due %s",
        rotation.id, assignment.id, task_name, winner.member_name, next_due,
    )


def run_rotation_sweep(
    db: HouseholdDB,
    now: datetime | None = None,
    reminder_hour: int | None = None,
) -> RotationSweepReport:
    """Generate assignments for every active rotation whose next_due_date <= now.

    Failures are recorded per rotation and never stop the batch.
    """
    if reminder_hour is None:
        from src.config import settings
        reminder_hour = settings.REMINDER_HOUR
    now = now or local_now()

    rotations = db.due_rotations(now)
    report = RotationSweepReport(processed=len(rotations))

    for rotation in rotations:
        try:
            _sweep_one(db, rotation, now, reminder_hour, report)
        except Exception as exc:
            logger.error("Rotation #%d failed: %s", rotation.id, exc)
            report.errors.append(f"Error processing rotation {rotation.id}: {exc}")

    logger.info(
        "Rotation sweep: %d processed, %d generated, %d errors",
        report.processed, report.generated, len(report.errors),
    )
    return report
