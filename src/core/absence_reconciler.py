"""Absence reconciler — periodic job that moves work away from absent members.

For every absence active today, each of the member's PENDING assignments due
inside the absence window is handled by the absence's policy:

- POSTPONE: push the due date to the end of the day after the absence;
- SPECIFIC: hand it to the named cover member;
- AUTO: re-score the task and hand it to the winner, or to a random other
  active member when scoring cannot produce someone else.
"""

from __future__ import annotations

import logging
import random
from datetime import date, timedelta
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from src.core.due_date import end_of_day, local_now, start_of_day
from src.core.errors import EligibilityError, PolicyConfigError
from src.core.scoring import best_assignee
from src.data.models import AbsencePolicy

if TYPE_CHECKING:
    from src.data.db import HouseholdDB
    from src.data.models import Assignment, Member, MemberAbsence

logger = logging.getLogger(__name__)


class ReconciliationReport(BaseModel):
    processed_absences: int = 0
    reassigned: int = 0
    postponed: int = 0
    errors: list[str] = Field(default_factory=list)


def _postpone(db: HouseholdDB, absence: MemberAbsence, assignment: Assignment) -> None:
    new_due = end_of_day(absence.end_date + timedelta(days=1))
    db.set_due_date(assignment.id, new_due)


def _reassign_specific(db: HouseholdDB, absence: MemberAbsence, assignment: Assignment) -> None:
    if absence.assign_to_member_id is None:
        raise PolicyConfigError(
            f"Absence {absence.id} has policy SPECIFIC but no assign_to_member_id"
        )
    db.reassign(assignment.id, absence.assign_to_member_id)


def _reassign_auto(
    db: HouseholdDB,
    absent: Member,
    assignment: Assignment,
    rng: random.Random,
) -> None:
    others = [m for m in db.list_members(absent.household_id) if m.id != absent.id]
    if not others:
        raise EligibilityError(
            f"No other member to take over assignment {assignment.id}",
            task_id=assignment.task_id,
        )

    best = best_assignee(db, assignment.task_id, assignment.due_date)
    if best is not None and best.member_id != absent.id:
        db.reassign(assignment.id, best.member_id)
        return

    # Scoring gave nobody usable: pick anyone else at random
    target = rng.choice(others)
    logger.info(
        "Assignment #%d: no scored candidate, randomly reassigned to member #%d",
        assignment.id, target.id,
    )
    db.reassign(assignment.id, target.id)


def run_absence_reconciliation(
    db: HouseholdDB,
    today: date | None = None,
    rng: random.Random | None = None,
) -> ReconciliationReport:
    """Apply every active absence's policy to the absent member's pending work.

    Per-assignment failures are recorded in ``errors`` and never abort the run.
    """
    today = today or local_now().date()
    rng = rng or random.Random()

    absences = db.absences_on(today)
    report = ReconciliationReport(processed_absences=len(absences))

    for absence in absences:
        member = db.get_member(absence.member_id)
        if member is None:
            report.errors.append(f"Absence {absence.id}: member {absence.member_id} not found")
            continue

        affected = db.pending_assignments_between(
            member.id, start_of_day(absence.start_date), end_of_day(absence.end_date),
        )
        for assignment in affected:
            try:
                if absence.policy is AbsencePolicy.POSTPONE:
                    _postpone(db, absence, assignment)
                    report.postponed += 1
                elif absence.policy is AbsencePolicy.SPECIFIC:
                    _reassign_specific(db, absence, assignment)
                    report.reassigned += 1
                else:
                    _reassign_auto(db, member, assignment, rng)
                    report.reassigned += 1
            except Exception as exc:
                logger.warning(
                    "Absence %d, assignment %d not reconciled: %s",
                    absence.id, assignment.id, exc,
                )
                report.errors.append(f"Assignment {assignment.id}: {exc}")

    logger.info(
        "Absence reconciliation: %d absences, %d reassigned, %d postponed, %d errors",
        report.processed_absences, report.reassigned, report.postponed, len(report.errors),
    )
    return report
