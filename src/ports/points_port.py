"""Points port — the external engine that prices a completed assignment.

The completion hook depends on this protocol, never on a specific formula.
"""

from __future__ import annotations

from typing import Protocol

from src.data.models import TaskFrequency


class PointsEnginePort(Protocol):
    """Abstract points calculator used by the completion hook."""

    def calculate_points(
        self,
        weight: int,
        frequency: TaskFrequency,
        is_on_time: bool,
        streak_days: int,
    ) -> int: ...
