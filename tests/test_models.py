"""Tests for src.data.models and src.data.requests."""

from dataclasses import asdict
from datetime import date, datetime

import pytest
from pydantic import ValidationError

from src.data.models import (
    AbsencePolicy,
    Assignment,
    AssignmentStatus,
    MemberAbsence,
    TaskFrequency,
)
from src.data.requests import AbsenceRequest, RotationRequest


def test_assignment_defaults():
    assignment = Assignment(id=1, task_id=2, member_id=3, household_id=1, due_date=datetime(2026, 3, 4))
    assert assignment.status is AssignmentStatus.PENDING
    assert assignment.completed_at is None
    assert assignment.points_earned is None
    assert assignment.is_open


@pytest.mark.parametrize("status,is_open", [
    (AssignmentStatus.PENDING, True),
    (AssignmentStatus.IN_PROGRESS, True),
    (AssignmentStatus.COMPLETED, False),
    (AssignmentStatus.VERIFIED, False),
    (AssignmentStatus.CANCELLED, False),
])
def test_assignment_is_open(status, is_open):
    assignment = Assignment(
        id=1, task_id=2, member_id=3, household_id=1, due_date=datetime(2026, 3, 4), status=status,
    )
    assert assignment.is_open is is_open


def test_absence_covers_both_ends():
    absence = MemberAbsence(id=1, member_id=1, start_date=date(2026, 3, 2), end_date=date(2026, 3, 4))
    assert absence.covers(date(2026, 3, 2))
    assert absence.covers(date(2026, 3, 4))
    assert not absence.covers(date(2026, 3, 1))
    assert not absence.covers(date(2026, 3, 5))


def test_enums_serialize_as_strings():
    absence = MemberAbsence(
        id=1, member_id=1, start_date=date(2026, 3, 2), end_date=date(2026, 3, 4),
        policy=AbsencePolicy.POSTPONE,
    )
    assert asdict(absence)["policy"] == "POSTPONE"


class TestAbsenceRequest:
    def test_parses_iso_strings(self):
        request = AbsenceRequest(member_id=1, start_date="2026-03-02", end_date="2026-03-04")
        assert request.start_date == date(2026, 3, 2)
        assert request.policy is AbsencePolicy.AUTO

    def test_unknown_policy_rejected(self):
        with pytest.raises(ValidationError):
            AbsenceRequest(member_id=1, start_date="2026-03-02", end_date="2026-03-04", policy="MAYBE")


class TestRotationRequest:
    def test_recurring_frequency_accepted(self):
        request = RotationRequest(task_id=1, frequency="BIWEEKLY")
        assert request.frequency is TaskFrequency.BIWEEKLY
        assert request.next_due_date is None

    def test_once_rejected(self):
        with pytest.raises(ValidationError):
            RotationRequest(task_id=1, frequency="ONCE")
