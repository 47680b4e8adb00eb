"""
Household Rotation Engine — Input contracts.

Validated shapes for the writes collaborators send in (absences, rotations).
Storage builds one of these before touching the database, so malformed
input is rejected with a pydantic ValidationError.
"""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, Field, model_validator

from src.data.models import AbsencePolicy, TaskFrequency


class AbsenceRequest(BaseModel):
    """A member's announced unavailability.

    JSON example:
    {
        "member_id": 3,
        "start_date": "2026-03-02",
        "end_date": "2026-03-04",
        "reason": "School trip",
        "policy": "SPECIFIC",
        "assign_to_member_id": 1
    }
    """
    member_id: int
    start_date: date
    end_date: date
    reason: str | None = Field(default=None, max_length=200)
    policy: AbsencePolicy = AbsencePolicy.AUTO
    assign_to_member_id: int | None = None

    @model_validator(mode="after")
    def check_window(self) -> AbsenceRequest:
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        if self.assign_to_member_id == self.member_id:
            raise ValueError("an absent member cannot cover their own absence")
        return self


class RotationRequest(BaseModel):
    """A standing schedule for a recurring task (ONCE is not allowed)."""
    task_id: int
    frequency: TaskFrequency
    next_due_date: datetime | None = None

    @model_validator(mode="after")
    def check_frequency(self) -> RotationRequest:
        if self.frequency is TaskFrequency.ONCE:
            raise ValueError("one-off tasks cannot rotate")
        return self
