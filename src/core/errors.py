"""Error types raised by the assignment engine and its storage layer."""

from __future__ import annotations


class HouseholdError(Exception):
    """Base class for every engine error."""


class NotFoundError(HouseholdError):
    """A task, member, assignment or rotation does not exist."""


class EligibilityError(HouseholdError):
    """No candidate survives the eligibility filters, even after fallback."""

    def __init__(self, message: str = "no eligible members", task_id: int | None = None) -> None:
        super().__init__(message)
        self.task_id = task_id


class PolicyConfigError(HouseholdError):
    """An absence policy is missing data it needs (SPECIFIC without a target)."""


class DuplicateAssignmentError(HouseholdError):
    """The task already has a PENDING or IN_PROGRESS assignment."""

    def __init__(self, task_id: int) -> None:
        super().__init__(f"Task {task_id} already has an open assignment")
        self.task_id = task_id


class InvalidTransitionError(HouseholdError):
    """An assignment cannot move to the requested status."""


class AbsenceConflictError(HouseholdError):
    """A new absence overlaps one the member already has."""
