"""Completion hook — what happens when an assignment is marked done.

1. price the work through the points engine;
2. mark it COMPLETED and credit the member's XP in one transaction;
3. for recurring tasks, allocate the next occurrence right away.

Step 3 can race the rotation sweeper. The storage layer refuses a second open
assignment for the same task, and that refusal is treated as "already
scheduled", not as a failure.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from src.core.allocator import allocate
from src.core.due_date import compute_due_date, local_now
from src.core.errors import (
    DuplicateAssignmentError,
    EligibilityError,
    InvalidTransitionError,
    NotFoundError,
)
from src.core.points import DefaultPointsEngine, calculate_streak
from src.data.models import Assignment, AssignmentStatus, TaskFrequency

if TYPE_CHECKING:
    from src.data.db import HouseholdDB
    from src.ports.points_port import PointsEnginePort

logger = logging.getLogger(__name__)


@dataclass
class CompletionResult:
    assignment: Assignment
    points_earned: int
    new_xp: int
    new_level: int
    leveled_up: bool
    next_assignment: Assignment | None = None


def complete_assignment(
    db: HouseholdDB,
    assignment_id: int,
    points_engine: PointsEnginePort | None = None,
    now: datetime | None = None,
    notes: str | None = None,
) -> CompletionResult:
    """Complete an open assignment and spawn the next one for recurring tasks.

    Raises:
        NotFoundError: unknown assignment or task.
        InvalidTransitionError: assignment already finished or cancelled.
    """
    now = now or local_now()
    points_engine = points_engine or DefaultPointsEngine()

    assignment = db.get_assignment(assignment_id)
    if assignment is None:
        raise NotFoundError(f"Assignment {assignment_id} not found")
    if not assignment.is_open:
        raise InvalidTransitionError(
            f"Assignment {assignment_id} is {assignment.status.value}, cannot complete"
        )
    task = db.get_task(assignment.task_id)
    if task is None:
        raise NotFoundError(f"Task {assignment.task_id} not found")

    points = points_engine.calculate_points(
        weight=task.weight,
        frequency=task.frequency,
        is_on_time=now <= assignment.due_date,
        streak_days=calculate_streak(db, assignment.member_id, now.date()),
    )

    try:
        completed, level, previous_level = db.record_completion(
            assignment_id, completed_at=now, points=points, notes=notes,
        )
    except NotFoundError as exc:
        # Lost a race with another completion or a cancel
        raise InvalidTransitionError(str(exc)) from exc

    result = CompletionResult(
        assignment=completed,
        points_earned=points,
        new_xp=level.xp,
        new_level=level.level,
        leveled_up=level.level > previous_level,
    )

    if task.frequency is not TaskFrequency.ONCE:
        result.next_assignment = _spawn_next(db, completed, task.frequency, now)

    return result


def _spawn_next(
    db: HouseholdDB,
    completed: Assignment,
    frequency: TaskFrequency,
    now: datetime,
) -> Assignment | None:
    next_due = compute_due_date(frequency, now)
    try:
        return allocate(db, completed.household_id, completed.task_id, next_due, now=now)
    except DuplicateAssignmentError:
        logger.info("Task #%d already has its next occurrence", completed.task_id)
    except (EligibilityError, NotFoundError) as exc:
        logger.warning("Next occurrence of task #%d not created: %s", completed.task_id, exc)
    return None


def start_assignment(db: HouseholdDB, assignment_id: int) -> None:
    """PENDING -> IN_PROGRESS."""
    assignment = db.get_assignment(assignment_id)
    if assignment is None:
        raise NotFoundError(f"Assignment {assignment_id} not found")
    if assignment.status is not AssignmentStatus.PENDING:
        raise InvalidTransitionError(
            f"Assignment {assignment_id} is {assignment.status.value}, cannot start"
        )
    db.set_status(assignment_id, AssignmentStatus.IN_PROGRESS)


def verify_assignment(db: HouseholdDB, assignment_id: int) -> None:
    """COMPLETED -> VERIFIED (a parent confirms the work)."""
    assignment = db.get_assignment(assignment_id)
    if assignment is None:
        raise NotFoundError(f"Assignment {assignment_id} not found")
    if assignment.status is not AssignmentStatus.COMPLETED:
        raise InvalidTransitionError(
            f"Assignment {assignment_id} is {assignment.status.value}, cannot verify"
        )
    db.set_status(assignment_id, AssignmentStatus.VERIFIED)


def cancel_assignment(db: HouseholdDB, assignment_id: int) -> None:
    """Open assignment -> CANCELLED, freeing the task for a new occurrence."""
    assignment = db.get_assignment(assignment_id)
    if assignment is None:
        raise NotFoundError(f"Assignment {assignment_id} not found")
    if not assignment.is_open:
        raise InvalidTransitionError(
            f"Assignment {assignment_id} is {assignment.status.value}, cannot cancel"
        )
    db.set_status(assignment_id, AssignmentStatus.CANCELLED)
