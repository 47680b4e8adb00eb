"""Eligibility & scoring — who should take a task next.

The pure part (score_candidates) takes fully loaded candidate profiles and
returns a ranked list; the storage-backed wrappers (score_task,
best_assignee) build those profiles from HouseholdDB.

Score for a surviving candidate:

    (100 + preference + recency - 5 * open_assignments) * capacity

rounded to an integer. Absent members and members below the task's minimum
age are removed before scoring, never merely penalized.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import TYPE_CHECKING

from src.core.errors import NotFoundError
from src.data.models import (
    Member,
    MemberAbsence,
    MemberType,
    PreferenceLevel,
    Task,
)

if TYPE_CHECKING:
    from src.data.db import HouseholdDB

logger = logging.getLogger(__name__)

BASE_SCORE = 100
PREFERENCE_BONUS = 20
LOAD_PENALTY = 5
RECENCY_CAP_DAYS = 14


@dataclass(frozen=True)
class MemberTypeProfile:
    """Capacity multiplier and the age we assume for a member type."""

    capacity: float
    assumed_age: int


# Assumed ages stand in for real birthdates.
MEMBER_TYPE_PROFILES: dict[MemberType, MemberTypeProfile] = {
    MemberType.ADULT: MemberTypeProfile(capacity=1.0, assumed_age=25),
    MemberType.TEEN: MemberTypeProfile(capacity=0.6, assumed_age=15),
    MemberType.CHILD: MemberTypeProfile(capacity=0.3, assumed_age=10),
}


@dataclass
class Candidate:
    """Everything scoring needs to know about one member for one task."""

    member: Member
    preference: PreferenceLevel | None = None
    open_assignments: int = 0
    last_completed_at: datetime | None = None
    absences: list[MemberAbsence] = field(default_factory=list)


@dataclass
class MemberScore:
    member_id: int
    member_name: str
    score: int
    reasons: list[str] = field(default_factory=list)


def round_half_up(value: float) -> int:
    """Round .5 upwards (Python's round() is banker's rounding)."""
    return math.floor(value + 0.5)


def is_absent_on(absences: list[MemberAbsence], target: date | datetime) -> bool:
    day = target.date() if isinstance(target, datetime) else target
    return any(a.covers(day) for a in absences)


def is_old_enough(member_type: MemberType, min_age: int | None) -> bool:
    if min_age is None:
        return True
    return MEMBER_TYPE_PROFILES[member_type].assumed_age >= min_age


def recency_bonus(last_completed_at: datetime | None, now: datetime) -> int:
    """Whole days since the member last did this task, capped; never done = cap."""
    if last_completed_at is None:
        return RECENCY_CAP_DAYS
    days_since = (now - last_completed_at).days
    return max(0, min(days_since, RECENCY_CAP_DAYS))


def _score_one(candidate: Candidate, now: datetime) -> MemberScore:
    member = candidate.member
    reasons: list[str] = []
    subtotal = BASE_SCORE

    if candidate.preference is PreferenceLevel.PREFERRED:
        subtotal += PREFERENCE_BONUS
        reasons.append(f"+{PREFERENCE_BONUS} preferred task")
    elif candidate.preference is PreferenceLevel.DISLIKED:
        subtotal -= PREFERENCE_BONUS
        reasons.append(f"-{PREFERENCE_BONUS} disliked task")

    load = candidate.open_assignments * LOAD_PENALTY
    if load:
        subtotal -= load
        reasons.append(f"-{load} for {candidate.open_assignments} open assignments")

    bonus = recency_bonus(candidate.last_completed_at, now)
    subtotal += bonus
    if candidate.last_completed_at is None:
        reasons.append(f"+{bonus} never did this task")
    elif bonus:
        reasons.append(f"+{bonus} days since last time")

    capacity = MEMBER_TYPE_PROFILES[member.member_type].capacity
    if capacity < 1:
        reasons.append(f"x{capacity} {member.member_type.value.lower()} capacity")

    return MemberScore(
        member_id=member.id,
        member_name=member.name,
        score=round_half_up(subtotal * capacity),
        reasons=reasons,
    )


def score_candidates(
    task: Task,
    candidates: list[Candidate],
    target_date: date | datetime,
    now: datetime,
) -> list[MemberScore]:
    """Rank candidates for ``task`` on ``target_date``.

    Absent and under-age members are dropped. The result is ordered by score
    descending, then by member id ascending so equal scores always resolve
    the same way.
    """
    scores: list[MemberScore] = []
    for candidate in candidates:
        member = candidate.member
        if is_absent_on(candidate.absences, target_date):
            logger.debug("Member #%d absent on %s, excluded", member.id, target_date)
            continue
        if not is_old_enough(member.member_type, task.min_age):
            logger.debug(
                "Member #%d too young for task #%d (min age %s), excluded",
                member.id, task.id, task.min_age,
            )
            continue
        scores.append(_score_one(candidate, now))

    scores.sort(key=lambda s: (-s.score, s.member_id))
    return scores


# ---------------------------------------------------------------------------
# Storage-backed wrappers
# ---------------------------------------------------------------------------


def load_candidates(
    db: HouseholdDB,
    task: Task,
    target_date: date | datetime,
    only_adults: bool = False,
) -> list[Candidate]:
    """Build a Candidate for every active member of the task's household."""
    day = target_date.date() if isinstance(target_date, datetime) else target_date
    members = db.list_members(
        task.household_id,
        member_type=MemberType.ADULT if only_adults else None,
    )
    preferences = db.preferences_for_task(task.id)
    open_counts = db.open_assignment_counts(task.household_id)
    last_done = db.last_completions(task.id)

    absences: dict[int, list[MemberAbsence]] = {}
    for absence in db.absences_on(day, household_id=task.household_id):
        absences.setdefault(absence.member_id, []).append(absence)

    return [
        Candidate(
            member=m,
            preference=preferences.get(m.id),
            open_assignments=open_counts.get(m.id, 0),
            last_completed_at=last_done.get(m.id),
            absences=absences.get(m.id, []),
        )
        for m in members
    ]


def score_task(
    db: HouseholdDB,
    task_id: int,
    target_date: date | datetime | None = None,
    only_adults: bool = False,
    now: datetime | None = None,
) -> list[MemberScore]:
    """Ranked candidates for a stored task. Raises NotFoundError for unknown ids."""
    from src.core.due_date import local_now

    now = now or local_now()
    target_date = target_date or now
    task = db.get_task(task_id)
    if task is None:
        raise NotFoundError(f"Task {task_id} not found")
    candidates = load_candidates(db, task, target_date, only_adults=only_adults)
    return score_candidates(task, candidates, target_date, now)


def best_assignee(
    db: HouseholdDB,
    task_id: int,
    target_date: date | datetime | None = None,
    now: datetime | None = None,
) -> MemberScore | None:
    """Top candidate, falling back to adults only when the age filter empties the pool.

    Returns None when nobody is eligible; callers decide whether that is an
    error or a skip.
    """
    scores = score_task(db, task_id, target_date, now=now)
    if not scores:
        task = db.get_task(task_id)
        if task is not None and task.min_age is not None:
            logger.info("No eligible member for task #%d, retrying with adults only", task_id)
            scores = score_task(db, task_id, target_date, only_adults=True, now=now)
    if not scores:
        return None
    return scores[0]
