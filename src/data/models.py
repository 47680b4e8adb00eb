"""
Household Rotation Engine — Data Models.

Plain records for everything the engine reads and writes. Timestamps are
naive local datetimes (see src.core.due_date.local_now); absence bounds are
whole days.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum


class MemberType(str, Enum):
    ADULT = "ADULT"
    TEEN = "TEEN"
    CHILD = "CHILD"


class TaskFrequency(str, Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    BIWEEKLY = "BIWEEKLY"
    MONTHLY = "MONTHLY"
    ONCE = "ONCE"


class AssignmentStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    VERIFIED = "VERIFIED"
    CANCELLED = "CANCELLED"


# At most one assignment per task may be in one of these at a time
OPEN_STATUSES = (AssignmentStatus.PENDING, AssignmentStatus.IN_PROGRESS)
DONE_STATUSES = (AssignmentStatus.COMPLETED, AssignmentStatus.VERIFIED)


class PreferenceLevel(str, Enum):
    PREFERRED = "PREFERRED"
    NEUTRAL = "NEUTRAL"
    DISLIKED = "DISLIKED"


class AbsencePolicy(str, Enum):
    AUTO = "AUTO"
    SPECIFIC = "SPECIFIC"
    POSTPONE = "POSTPONE"


class ReminderType(str, Enum):
    DUE_SOON = "DUE_SOON"
    DUE_TODAY = "DUE_TODAY"
    OVERDUE = "OVERDUE"


@dataclass
class Member:
    """A person in a household who can take on tasks."""

    id: int
    household_id: int
    name: str
    member_type: MemberType
    is_active: bool = True
    telegram_user_id: int | None = None   # where reminders are delivered


@dataclass
class Task:
    """A unit of household work, possibly recurring."""

    id: int
    household_id: int
    name: str                      # e.g. "Lavar platos"
    frequency: TaskFrequency
    weight: int = 1                # difficulty, >= 1
    min_age: int | None = None
    is_active: bool = True


@dataclass
class Assignment:
    id: int
    task_id: int
    member_id: int
    household_id: int
    due_date: datetime
    status: AssignmentStatus = AssignmentStatus.PENDING
    completed_at: datetime | None = None
    points_earned: int | None = None
    notes: str | None = None

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES


@dataclass
class MemberPreference:
    member_id: int
    task_id: int
    preference: PreferenceLevel


@dataclass
class MemberAbsence:
    """A window of days (both ends inclusive) in which a member is away."""

    id: int
    member_id: int
    start_date: date
    end_date: date
    reason: str | None = None
    policy: AbsencePolicy = AbsencePolicy.AUTO
    assign_to_member_id: int | None = None

    def covers(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date


@dataclass
class TaskRotation:
    """Standing schedule that spawns a new assignment for a recurring task."""

    id: int
    task_id: int
    household_id: int
    frequency: TaskFrequency
    next_due_date: datetime
    last_generated: datetime | None = None
    is_active: bool = True


@dataclass
class TaskReminder:
    id: int
    assignment_id: int
    member_id: int
    reminder_type: ReminderType
    scheduled_for: datetime
    sent_at: datetime | None = None


@dataclass
class MemberLevel:
    member_id: int
    xp: int = 0
    level: int = 1
