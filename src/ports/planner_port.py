"""Planner port — an alternative, non-deterministic allocation strategy.

allocate_all tries a planner first when one is supplied and falls back to
the deterministic scoring algorithm on any failure or unsuccessful result.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol


@dataclass
class PlanResult:
    """What a planner reports after applying its own plan."""

    success: bool
    assignments_created: int = 0
    details: list[dict] = field(default_factory=list)   # {"task_name", "member_name"}


class PlannerPort(Protocol):
    """Abstract household planner (e.g. an LLM-backed one)."""

    def generate_and_apply(self, household_id: int) -> PlanResult: ...
