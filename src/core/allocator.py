"""Assignment allocator — turn a ranking into a stored assignment.

allocate() handles one task; allocate_all() sweeps every active task of a
household, skipping tasks that already have an open assignment and
recording (not raising) per-task failures.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from src.core.due_date import compute_due_date, local_now
from src.core.errors import DuplicateAssignmentError, EligibilityError, NotFoundError
from src.core.scoring import MemberScore, best_assignee

if TYPE_CHECKING:
    from src.data.db import HouseholdDB
    from src.data.models import Assignment
    from src.ports.planner_port import PlannerPort

logger = logging.getLogger(__name__)


class AllocationDetail(BaseModel):
    task_id: int | None = None
    task_name: str
    member_id: int | None = None
    member_name: str
    assignment_id: int | None = None
    score: int | None = None


class SkippedTask(BaseModel):
    task_id: int
    task_name: str
    reason: str


class AllocationReport(BaseModel):
    """Outcome of allocate_all for one household."""

    assignments_created: int = 0
    method: str = "algorithm"          # "planner" | "algorithm"
    details: list[AllocationDetail] = Field(default_factory=list)
    skipped: list[SkippedTask] = Field(default_factory=list)


def allocate_with_score(
    db: HouseholdDB,
    household_id: int,
    task_id: int,
    due_date: datetime,
    now: datetime | None = None,
) -> tuple[Assignment, MemberScore]:
    """Assign ``task_id`` to its best candidate, returning the winning score too."""
    task = db.get_task(task_id)
    if task is None or task.household_id != household_id:
        raise NotFoundError(f"Task {task_id} not found in household {household_id}")

    # Absence exclusion is evaluated on the day the work is due
    winner = best_assignee(db, task_id, due_date, now=now)
    if winner is None:
        raise EligibilityError(f"No eligible members for task '{task.name}'", task_id=task_id)

    assignment = db.create_assignment(task_id, winner.member_id, household_id, due_date)
    logger.info(
        "Task '%s' allocated to %s (score %d: %s)",
        task.name, winner.member_name, winner.score, ", ".join(winner.reasons) or "base",
    )
    return assignment, winner


def allocate(
    db: HouseholdDB,
    household_id: int,
    task_id: int,
    due_date: datetime,
    now: datetime | None = None,
) -> Assignment:
    """Create a PENDING assignment for the top-ranked member.

    Raises:
        NotFoundError: task missing or in another household.
        EligibilityError: nobody survives the filters, even adults only.
        DuplicateAssignmentError: the task already has an open assignment.
    """
    assignment, _ = allocate_with_score(db, household_id, task_id, due_date, now=now)
    return assignment


def _try_planner(planner: PlannerPort, household_id: int) -> AllocationReport | None:
    try:
        result = planner.generate_and_apply(household_id)
    except Exception as exc:
        logger.warning("Planner failed for household %d, falling back: %s", household_id, exc)
        return None
    if not result.success:
        logger.info("Planner declined household %d, falling back to algorithm", household_id)
        return None
    return AllocationReport(
        assignments_created=result.assignments_created,
        method="planner",
        details=[
            AllocationDetail(task_name=d.get("task_name", ""), member_name=d.get("member_name", ""))
            for d in result.details
        ],
    )


def allocate_all(
    db: HouseholdDB,
    household_id: int,
    planner: PlannerPort | None = None,
    now: datetime | None = None,
) -> AllocationReport:
    """Allocate every active task in the household that has no open assignment.

    Each task's due date is computed from ``now`` with its own frequency.
    Per-task failures land in ``skipped``; the whole list is always processed.
    """
    if planner is not None:
        report = _try_planner(planner, household_id)
        if report is not None:
            return report

    now = now or local_now()
    report = AllocationReport()

    for task in db.list_tasks(household_id):
        existing = db.open_assignment_for_task(task.id)
        if existing is not None:
            report.skipped.append(SkippedTask(
                task_id=task.id,
                task_name=task.name,
                reason=f"already has open assignment #{existing.id}",
            ))
            continue

        due_date = compute_due_date(task.frequency, now)
        try:
            assignment, winner = allocate_with_score(db, household_id, task.id, due_date, now=now)
        except (EligibilityError, DuplicateAssignmentError) as exc:
            logger.warning("Could not allocate task '%s': %s", task.name, exc)
            report.skipped.append(SkippedTask(task_id=task.id, task_name=task.name, reason=str(exc)))
            continue

        report.details.append(AllocationDetail(
            task_id=task.id,
            task_name=task.name,
            member_id=winner.member_id,
            member_name=winner.member_name,
            assignment_id=assignment.id,
            score=winner.score,
        ))

    report.assignments_created = len(report.details)
    logger.info(
        "Household %d: %d assignments created, %d tasks skipped",
        household_id, report.assignments_created, len(report.skipped),
    )
    return report
