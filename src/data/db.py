"""
Household Rotation Engine — Household Database.

SQLite storage for members, tasks, assignments, preferences, absences,
rotations, reminders and member levels.

The "one open assignment per task" rule is enforced here with a partial
unique index, so two writers racing to create the same occurrence cannot both
succeed; the loser gets DuplicateAssignmentError.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Iterable, Iterator

from src.core.errors import (
    AbsenceConflictError,
    DuplicateAssignmentError,
    NotFoundError,
    PolicyConfigError,
)
from src.data.models import (
    DONE_STATUSES,
    OPEN_STATUSES,
    AbsencePolicy,
    Assignment,
    AssignmentStatus,
    Member,
    MemberAbsence,
    MemberLevel,
    MemberPreference,
    MemberType,
    PreferenceLevel,
    ReminderType,
    Task,
    TaskFrequency,
    TaskReminder,
    TaskRotation,
)
from src.data.requests import AbsenceRequest, RotationRequest

logger = logging.getLogger(__name__)

XP_PER_LEVEL = 100

_SCHEMA = """
CREATE TABLE IF NOT EXISTS members (
    id                INTEGER PRIMARY KEY AUTOINCREMENT,
    household_id      INTEGER NOT NULL,
    name              TEXT    NOT NULL,
    member_type       TEXT    NOT NULL,
    is_active         INTEGER NOT NULL DEFAULT 1,
    telegram_user_id  INTEGER
);

CREATE TABLE IF NOT EXISTS tasks (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    household_id  INTEGER NOT NULL,
    name          TEXT    NOT NULL,
    frequency     TEXT    NOT NULL,
    weight        INTEGER NOT NULL DEFAULT 1 CHECK (weight >= 1),
    min_age       INTEGER,
    is_active     INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS assignments (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    task_id        INTEGER NOT NULL REFERENCES tasks(id),
    member_id      INTEGER NOT NULL REFERENCES members(id),
    household_id   INTEGER NOT NULL,
    due_date       TEXT    NOT NULL,
    status         TEXT    NOT NULL DEFAULT 'PENDING',
    completed_at   TEXT,
    points_earned  INTEGER,
    notes          TEXT
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_assignments_one_open_per_task
    ON assignments (task_id)
    WHERE status IN ('PENDING', 'IN_PROGRESS');

CREATE TABLE IF NOT EXISTS member_preferences (
    member_id   INTEGER NOT NULL REFERENCES members(id),
    task_id     INTEGER NOT NULL REFERENCES tasks(id),
    preference  TEXT    NOT NULL,
    PRIMARY KEY (member_id, task_id)
);

CREATE TABLE IF NOT EXISTS member_absences (
    id                   INTEGER PRIMARY KEY AUTOINCREMENT,
    member_id            INTEGER NOT NULL REFERENCES members(id),
    start_date           TEXT    NOT NULL,
    end_date             TEXT    NOT NULL,
    reason               TEXT,
    policy               TEXT    NOT NULL DEFAULT 'AUTO',
    assign_to_member_id  INTEGER REFERENCES members(id)
);

CREATE TABLE IF NOT EXISTS task_rotations (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    task_id         INTEGER NOT NULL UNIQUE REFERENCES tasks(id),
    household_id    INTEGER NOT NULL,
    frequency       TEXT    NOT NULL,
    next_due_date   TEXT    NOT NULL,
    last_generated  TEXT,
    is_active       INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS task_reminders (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    assignment_id  INTEGER NOT NULL REFERENCES assignments(id),
    member_id      INTEGER NOT NULL REFERENCES members(id),
    reminder_type  TEXT    NOT NULL,
    scheduled_for  TEXT    NOT NULL,
    sent_at        TEXT
);

CREATE TABLE IF NOT EXISTS member_levels (
    member_id  INTEGER PRIMARY KEY REFERENCES members(id),
    xp         INTEGER NOT NULL DEFAULT 0,
    level      INTEGER NOT NULL DEFAULT 1
);
"""


def _ts(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat(timespec="microseconds")


def _parse_ts(raw: str | None) -> datetime | None:
    if raw is None:
        return None
    return datetime.fromisoformat(raw)


def _placeholders(values: Iterable) -> str:
    return ", ".join("?" for _ in values)


_OPEN = tuple(s.value for s in OPEN_STATUSES)
_DONE = tuple(s.value for s in DONE_STATUSES)


class HouseholdDB:
    """SQLite-backed storage for one or more households."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from src.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """One connection per unit of work; commits on success, rolls back on error."""
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def _init_db(self) -> None:
        """Create tables and indexes if they don't exist."""
        with self._connect() as conn:
            conn.executescript(_SCHEMA)
        logger.debug("Household tables initialized at %s", self._db_path)

    # ------------------------------------------------------------------
    # Row mappers
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_member(row: sqlite3.Row) -> Member:
        return Member(
            id=row["id"],
            household_id=row["household_id"],
            name=row["name"],
            member_type=MemberType(row["member_type"]),
            is_active=bool(row["is_active"]),
            telegram_user_id=row["telegram_user_id"],
        )

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> Task:
        return Task(
            id=row["id"],
            household_id=row["household_id"],
            name=row["name"],
            frequency=TaskFrequency(row["frequency"]),
            weight=row["weight"],
            min_age=row["min_age"],
            is_active=bool(row["is_active"]),
        )

    @staticmethod
    def _row_to_assignment(row: sqlite3.Row) -> Assignment:
        return Assignment(
            id=row["id"],
            task_id=row["task_id"],
            member_id=row["member_id"],
            household_id=row["household_id"],
            due_date=_parse_ts(row["due_date"]),
            status=AssignmentStatus(row["status"]),
            completed_at=_parse_ts(row["completed_at"]),
            points_earned=row["points_earned"],
            notes=row["notes"],
        )

    @staticmethod
    def _row_to_absence(row: sqlite3.Row) -> MemberAbsence:
        return MemberAbsence(
            id=row["id"],
            member_id=row["member_id"],
            start_date=date.fromisoformat(row["start_date"]),
            end_date=date.fromisoformat(row["end_date"]),
            reason=row["reason"],
            policy=AbsencePolicy(row["policy"]),
            assign_to_member_id=row["assign_to_member_id"],
        )

    @staticmethod
    def _row_to_rotation(row: sqlite3.Row) -> TaskRotation:
        return TaskRotation(
            id=row["id"],
            task_id=row["task_id"],
            household_id=row["household_id"],
            frequency=TaskFrequency(row["frequency"]),
            next_due_date=_parse_ts(row["next_due_date"]),
            last_generated=_parse_ts(row["last_generated"]),
            is_active=bool(row["is_active"]),
        )

    @staticmethod
    def _row_to_reminder(row: sqlite3.Row) -> TaskReminder:
        return TaskReminder(
            id=row["id"],
            assignment_id=row["assignment_id"],
            member_id=row["member_id"],
            reminder_type=ReminderType(row["reminder_type"]),
            scheduled_for=_parse_ts(row["scheduled_for"]),
            sent_at=_parse_ts(row["sent_at"]),
        )

    # ------------------------------------------------------------------
    # Members
    # ------------------------------------------------------------------

    def add_member(
        self,
        household_id: int,
        name: str,
        member_type: MemberType | str = MemberType.ADULT,
        telegram_user_id: int | None = None,
    ) -> Member:
        member_type = MemberType(member_type)
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO members (household_id, name, member_type, is_active, telegram_user_id)
                VALUES (?, ?, ?, 1, ?)
                """,
                (household_id, name, member_type.value, telegram_user_id),
            )
            member_id = cursor.lastrowid
        logger.info("Member added: #%d '%s' (%s)", member_id, name, member_type.value)
        return Member(
            id=member_id,
            household_id=household_id,
            name=name,
            member_type=member_type,
            telegram_user_id=telegram_user_id,
        )

    def get_member(self, member_id: int) -> Member | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM members WHERE id = ?", (member_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_member(row)

    def list_members(
        self,
        household_id: int,
        active_only: bool = True,
        member_type: MemberType | None = None,
    ) -> list[Member]:
        """Members of a household ordered by id."""
        query = "SELECT * FROM members WHERE household_id = ?"
        params: list = [household_id]
        if active_only:
            query += " AND is_active = 1"
        if member_type is not None:
            query += " AND member_type = ?"
            params.append(MemberType(member_type).value)
        query += " ORDER BY id"
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_member(r) for r in rows]

    def deactivate_member(self, member_id: int) -> bool:
        """Soft-delete: members are never removed while assignments reference them."""
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE members SET is_active = 0 WHERE id = ? AND is_active = 1",
                (member_id,),
            )
        deactivated = cursor.rowcount > 0
        if deactivated:
            logger.info("Member #%d deactivated", member_id)
        return deactivated

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def add_task(
        self,
        household_id: int,
        name: str,
        frequency: TaskFrequency | str = TaskFrequency.WEEKLY,
        weight: int = 1,
        min_age: int | None = None,
    ) -> Task:
        frequency = TaskFrequency(frequency)
        if weight < 1:
            raise ValueError(f"Task weight must be >= 1, got {weight}")
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO tasks (household_id, name, frequency, weight, min_age, is_active)
                VALUES (?, ?, ?, ?, ?, 1)
                """,
                (household_id, name, frequency.value, weight, min_age),
            )
            task_id = cursor.lastrowid
        logger.info("Task added: #%d '%s' %s", task_id, name, frequency.value)
        return Task(
            id=task_id,
            household_id=household_id,
            name=name,
            frequency=frequency,
            weight=weight,
            min_age=min_age,
        )

    def get_task(self, task_id: int) -> Task | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_task(row)

    def list_tasks(self, household_id: int, active_only: bool = True) -> list[Task]:
        query = "SELECT * FROM tasks WHERE household_id = ?"
        if active_only:
            query += " AND is_active = 1"
        query += " ORDER BY id"
        with self._connect() as conn:
            rows = conn.execute(query, (household_id,)).fetchall()
        return [self._row_to_task(r) for r in rows]

    def deactivate_task(self, task_id: int) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE tasks SET is_active = 0 WHERE id = ? AND is_active = 1",
                (task_id,),
            )
        return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Preferences
    # ------------------------------------------------------------------

    def set_preference(
        self, member_id: int, task_id: int, preference: PreferenceLevel | str,
    ) -> MemberPreference:
        """Insert or replace the single preference row for (member, task)."""
        preference = PreferenceLevel(preference)
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO member_preferences (member_id, task_id, preference)
                VALUES (?, ?, ?)
                ON CONFLICT (member_id, task_id) DO UPDATE SET preference = excluded.preference
                """,
                (member_id, task_id, preference.value),
            )
        logger.info(
            "Preference set: member #%d task #%d -> %s", member_id, task_id, preference.value,
        )
        return MemberPreference(member_id=member_id, task_id=task_id, preference=preference)

    def list_preferences(self, task_id: int) -> list[MemberPreference]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM member_preferences WHERE task_id = ? ORDER BY member_id",
                (task_id,),
            ).fetchall()
        return [
            MemberPreference(
                member_id=r["member_id"],
                task_id=r["task_id"],
                preference=PreferenceLevel(r["preference"]),
            )
            for r in rows
        ]

    def preferences_for_task(self, task_id: int) -> dict[int, PreferenceLevel]:
        """member_id -> preference, the lookup scoring uses."""
        return {p.member_id: p.preference for p in self.list_preferences(task_id)}

    # ------------------------------------------------------------------
    # Absences
    # ------------------------------------------------------------------

    def add_absence(
        self,
        member_id: int,
        start_date: date | str,
        end_date: date | str,
        reason: str | None = None,
        policy: AbsencePolicy | str = AbsencePolicy.AUTO,
        assign_to_member_id: int | None = None,
    ) -> MemberAbsence:
        """Record an absence after validating policy, target and overlap.

        Raises:
            pydantic.ValidationError: malformed window or reason.
            PolicyConfigError: SPECIFIC without a usable cover member.
            AbsenceConflictError: overlaps an existing absence of the member.
            NotFoundError: unknown member.
        """
        request = AbsenceRequest(
            member_id=member_id,
            start_date=start_date,
            end_date=end_date,
            reason=reason,
            policy=policy,
            assign_to_member_id=assign_to_member_id,
        )
        member = self.get_member(request.member_id)
        if member is None:
            raise NotFoundError(f"Member {request.member_id} not found")

        if request.policy is AbsencePolicy.SPECIFIC:
            if request.assign_to_member_id is None:
                raise PolicyConfigError("SPECIFIC absence policy requires assign_to_member_id")
            target = self.get_member(request.assign_to_member_id)
            if target is None or not target.is_active or target.household_id != member.household_id:
                raise PolicyConfigError(
                    f"Member {request.assign_to_member_id} cannot cover this absence"
                )
        else:
            # the cover member only means something for SPECIFIC
            request.assign_to_member_id = None

        with self._connect() as conn:
            clash = conn.execute(
                """
                SELECT id FROM member_absences
                WHERE member_id = ? AND start_date <= ? AND end_date >= ?
                """,
                (request.member_id, request.end_date.isoformat(), request.start_date.isoformat()),
            ).fetchone()
            if clash is not None:
                raise AbsenceConflictError(
                    f"Absence overlaps existing absence #{clash['id']}"
                )
            cursor = conn.execute(
                """
                INSERT INTO member_absences
                    (member_id, start_date, end_date, reason, policy, assign_to_member_id)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    request.member_id,
                    request.start_date.isoformat(),
                    request.end_date.isoformat(),
                    request.reason,
                    request.policy.value,
                    request.assign_to_member_id,
                ),
            )
            absence_id = cursor.lastrowid

        logger.info(
            "Absence added: #%d member #%d %s..%s (%s)",
            absence_id, request.member_id, request.start_date, request.end_date,
            request.policy.value,
        )
        return MemberAbsence(
            id=absence_id,
            member_id=request.member_id,
            start_date=request.start_date,
            end_date=request.end_date,
            reason=request.reason,
            policy=request.policy,
            assign_to_member_id=request.assign_to_member_id,
        )

    def delete_absence(self, absence_id: int) -> bool:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM member_absences WHERE id = ?", (absence_id,))
        return cursor.rowcount > 0

    def list_absences(self, member_id: int) -> list[MemberAbsence]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM member_absences WHERE member_id = ? ORDER BY start_date",
                (member_id,),
            ).fetchall()
        return [self._row_to_absence(r) for r in rows]

    def absences_on(self, day: date, household_id: int | None = None) -> list[MemberAbsence]:
        """Absences whose inclusive window contains ``day``."""
        query = """
            SELECT a.* FROM member_absences a
            JOIN members m ON m.id = a.member_id
            WHERE a.start_date <= ? AND a.end_date >= ?
        """
        params: list = [day.isoformat(), day.isoformat()]
        if household_id is not None:
            query += " AND m.household_id = ?"
            params.append(household_id)
        query += " ORDER BY a.id"
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_absence(r) for r in rows]

    # ------------------------------------------------------------------
    # Assignments
    # ------------------------------------------------------------------

    @staticmethod
    def _insert_assignment(
        conn: sqlite3.Connection,
        task_id: int,
        member_id: int,
        household_id: int,
        due_date: datetime,
    ) -> int:
        try:
            cursor = conn.execute(
                """
                INSERT INTO assignments (task_id, member_id, household_id, due_date, status)
                VALUES (?, ?, ?, ?, ?)
                """,
                (task_id, member_id, household_id, _ts(due_date), AssignmentStatus.PENDING.value),
            )
        except sqlite3.IntegrityError as exc:
            if "assignments.task_id" in str(exc):
                raise DuplicateAssignmentError(task_id) from exc
            raise
        return cursor.lastrowid

    def create_assignment(
        self,
        task_id: int,
        member_id: int,
        household_id: int,
        due_date: datetime,
    ) -> Assignment:
        """Insert a PENDING assignment.

        Raises DuplicateAssignmentError if the task already has an open one.
        """
        with self._connect() as conn:
            assignment_id = self._insert_assignment(
                conn, task_id, member_id, household_id, due_date,
            )
        logger.info(
            "Assignment #%d created: task #%d -> member #%d, due %s",
            assignment_id, task_id, member_id, due_date,
        )
        return Assignment(
            id=assignment_id,
            task_id=task_id,
            member_id=member_id,
            household_id=household_id,
            due_date=due_date,
        )

    def get_assignment(self, assignment_id: int) -> Assignment | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM assignments WHERE id = ?", (assignment_id,)
            ).fetchone()
        if row is None:
            return None
        return self._row_to_assignment(row)

    def list_assignments(
        self,
        household_id: int,
        task_id: int | None = None,
        statuses: Iterable[AssignmentStatus] | None = None,
    ) -> list[Assignment]:
        query = "SELECT * FROM assignments WHERE household_id = ?"
        params: list = [household_id]
        if task_id is not None:
            query += " AND task_id = ?"
            params.append(task_id)
        if statuses is not None:
            values = [AssignmentStatus(s).value for s in statuses]
            query += f" AND status IN ({_placeholders(values)})"
            params.extend(values)
        query += " ORDER BY due_date, id"
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_assignment(r) for r in rows]

    def open_assignment_for_task(self, task_id: int) -> Assignment | None:
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT * FROM assignments WHERE task_id = ? AND status IN ({_placeholders(_OPEN)})",
                (task_id, *_OPEN),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_assignment(row)

    def open_assignment_counts(self, household_id: int) -> dict[int, int]:
        """member_id -> number of PENDING/IN_PROGRESS assignments (any task)."""
        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT member_id, COUNT(*) AS n FROM assignments
                WHERE household_id = ? AND status IN ({_placeholders(_OPEN)})
                GROUP BY member_id
                """,
                (household_id, *_OPEN),
            ).fetchall()
        return {r["member_id"]: r["n"] for r in rows}

    def last_completions(self, task_id: int) -> dict[int, datetime]:
        """member_id -> most recent completion of this task."""
        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT member_id, MAX(completed_at) AS last_done FROM assignments
                WHERE task_id = ? AND completed_at IS NOT NULL
                  AND status IN ({_placeholders(_DONE)})
                GROUP BY member_id
                """,
                (task_id, *_DONE),
            ).fetchall()
        return {r["member_id"]: _parse_ts(r["last_done"]) for r in rows}

    def completion_days(self, member_id: int) -> set[date]:
        """Distinct days on which the member completed anything."""
        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT completed_at FROM assignments
                WHERE member_id = ? AND completed_at IS NOT NULL
                  AND status IN ({_placeholders(_DONE)})
                """,
                (member_id, *_DONE),
            ).fetchall()
        return {_parse_ts(r["completed_at"]).date() for r in rows}

    def pending_assignments_between(
        self, member_id: int, start: datetime, end: datetime,
    ) -> list[Assignment]:
        """The member's PENDING assignments with start <= due_date <= end."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM assignments
                WHERE member_id = ? AND status = ? AND due_date >= ? AND due_date <= ?
                ORDER BY due_date, id
                """,
                (member_id, AssignmentStatus.PENDING.value, _ts(start), _ts(end)),
            ).fetchall()
        return [self._row_to_assignment(r) for r in rows]

    def reassign(self, assignment_id: int, member_id: int) -> None:
        """Hand an assignment to another member; queued reminders follow it."""
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE assignments SET member_id = ? WHERE id = ?",
                (member_id, assignment_id),
            )
            if cursor.rowcount == 0:
                raise NotFoundError(f"Assignment {assignment_id} not found")
            conn.execute(
                "UPDATE task_reminders SET member_id = ? WHERE assignment_id = ? AND sent_at IS NULL",
                (member_id, assignment_id),
            )
        logger.info("Assignment #%d reassigned to member #%d", assignment_id, member_id)

    def set_due_date(self, assignment_id: int, due_date: datetime) -> None:
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE assignments SET due_date = ? WHERE id = ?",
                (_ts(due_date), assignment_id),
            )
        if cursor.rowcount == 0:
            raise NotFoundError(f"Assignment {assignment_id} not found")
        logger.info("Assignment #%d due date moved to %s", assignment_id, due_date)

    def set_status(self, assignment_id: int, status: AssignmentStatus | str) -> None:
        """Plain status change (start work, verify, cancel).

        Reopening a finished assignment can trip the one-open-per-task index.
        """
        status = AssignmentStatus(status)
        with self._connect() as conn:
            try:
                cursor = conn.execute(
                    "UPDATE assignments SET status = ? WHERE id = ?",
                    (status.value, assignment_id),
                )
            except sqlite3.IntegrityError as exc:
                row = conn.execute(
                    "SELECT task_id FROM assignments WHERE id = ?", (assignment_id,)
                ).fetchone()
                raise DuplicateAssignmentError(row["task_id"]) from exc
        if cursor.rowcount == 0:
            raise NotFoundError(f"Assignment {assignment_id} not found")

    def record_completion(
        self,
        assignment_id: int,
        completed_at: datetime,
        points: int,
        notes: str | None = None,
    ) -> tuple[Assignment, MemberLevel, int]:
        """Mark an assignment COMPLETED and credit the member's XP atomically.

        Only an open assignment can be completed; the status guard in the
        UPDATE makes a concurrent second completion a no-op.

        Returns (assignment, new_level, previous_level_number).
        """
        with self._connect() as conn:
            cursor = conn.execute(
                f"""
                UPDATE assignments
                SET status = ?, completed_at = ?, points_earned = ?, notes = COALESCE(?, notes)
                WHERE id = ? AND status IN ({_placeholders(_OPEN)})
                """,
                (
                    AssignmentStatus.COMPLETED.value, _ts(completed_at), points, notes,
                    assignment_id, *_OPEN,
                ),
            )
            if cursor.rowcount == 0:
                raise NotFoundError(f"Open assignment {assignment_id} not found")

            row = conn.execute(
                "SELECT * FROM assignments WHERE id = ?", (assignment_id,)
            ).fetchone()
            assignment = self._row_to_assignment(row)

            level_row = conn.execute(
                "SELECT xp, level FROM member_levels WHERE member_id = ?",
                (assignment.member_id,),
            ).fetchone()
            previous_xp = level_row["xp"] if level_row else 0
            previous_level = level_row["level"] if level_row else 1
            new_xp = previous_xp + points
            new_level = new_xp // XP_PER_LEVEL + 1
            conn.execute(
                """
                INSERT INTO member_levels (member_id, xp, level) VALUES (?, ?, ?)
                ON CONFLICT (member_id) DO UPDATE SET xp = excluded.xp, level = excluded.level
                """,
                (assignment.member_id, new_xp, new_level),
            )

        logger.info(
            "Assignment #%d completed by member #%d: +%d points (xp %d, level %d)",
            assignment_id, assignment.member_id, points, new_xp, new_level,
        )
        return (
            assignment,
            MemberLevel(member_id=assignment.member_id, xp=new_xp, level=new_level),
            previous_level,
        )

    def get_level(self, member_id: int) -> MemberLevel:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT xp, level FROM member_levels WHERE member_id = ?", (member_id,)
            ).fetchone()
        if row is None:
            return MemberLevel(member_id=member_id)
        return MemberLevel(member_id=member_id, xp=row["xp"], level=row["level"])

    # ------------------------------------------------------------------
    # Rotations
    # ------------------------------------------------------------------

    def add_rotation(
        self,
        task_id: int,
        frequency: TaskFrequency | str,
        next_due_date: datetime | None = None,
    ) -> TaskRotation:
        """Create the (single) rotation of a recurring task.

        next_due_date defaults to local noon today, the same anchor every later
        occurrence uses.
        """
        request = RotationRequest(task_id=task_id, frequency=frequency, next_due_date=next_due_date)
        task = self.get_task(request.task_id)
        if task is None:
            raise NotFoundError(f"Task {request.task_id} not found")
        if request.next_due_date is None:
            from src.core.due_date import NOON, local_now
            request.next_due_date = datetime.combine(local_now().date(), NOON)

        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO task_rotations
                    (task_id, household_id, frequency, next_due_date, last_generated, is_active)
                VALUES (?, ?, ?, ?, NULL, 1)
                """,
                (
                    task.id, task.household_id, request.frequency.value,
                    _ts(request.next_due_date),
                ),
            )
            rotation_id = cursor.lastrowid
        logger.info(
            "Rotation #%d added for task #%d (%s), next due %s",
            rotation_id, task.id, request.frequency.value, request.next_due_date,
        )
        return TaskRotation(
            id=rotation_id,
            task_id=task.id,
            household_id=task.household_id,
            frequency=request.frequency,
            next_due_date=request.next_due_date,
        )

    def get_rotation(self, rotation_id: int) -> TaskRotation | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM task_rotations WHERE id = ?", (rotation_id,)
            ).fetchone()
        if row is None:
            return None
        return self._row_to_rotation(row)

    def list_rotations(self, household_id: int) -> list[TaskRotation]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM task_rotations WHERE household_id = ? ORDER BY next_due_date",
                (household_id,),
            ).fetchall()
        return [self._row_to_rotation(r) for r in rows]

    def update_rotation(
        self,
        rotation_id: int,
        frequency: TaskFrequency | str | None = None,
        is_active: bool | None = None,
        next_due_date: datetime | None = None,
    ) -> TaskRotation:
        """Change frequency, pause/resume, or reschedule a rotation."""
        rotation = self.get_rotation(rotation_id)
        if rotation is None:
            raise NotFoundError(f"Rotation {rotation_id} not found")

        if frequency is not None:
            rotation.frequency = RotationRequest(
                task_id=rotation.task_id, frequency=frequency,
            ).frequency
        if is_active is not None:
            rotation.is_active = is_active
        if next_due_date is not None:
            rotation.next_due_date = next_due_date

        with self._connect() as conn:
            conn.execute(
                """
                UPDATE task_rotations SET frequency = ?, is_active = ?, next_due_date = ?
                WHERE id = ?
                """,
                (
                    rotation.frequency.value, int(rotation.is_active),
                    _ts(rotation.next_due_date), rotation_id,
                ),
            )
        logger.info("Rotation #%d updated", rotation_id)
        return rotation

    def due_rotations(self, now: datetime) -> list[TaskRotation]:
        """Active rotations whose next_due_date has arrived."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM task_rotations
                WHERE is_active = 1 AND next_due_date <= ?
                ORDER BY next_due_date, id
                """,
                (_ts(now),),
            ).fetchall()
        return [self._row_to_rotation(r) for r in rows]

    def advance_rotation(
        self, rotation_id: int, last_generated: datetime, next_due_date: datetime,
    ) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE task_rotations SET last_generated = ?, next_due_date = ? WHERE id = ?",
                (_ts(last_generated), _ts(next_due_date), rotation_id),
            )

    def generate_rotation_occurrence(
        self,
        rotation: TaskRotation,
        member_id: int,
        now: datetime,
        next_due_date: datetime,
        reminders: list[tuple[ReminderType, datetime]],
    ) -> Assignment:
        """Create the occurrence, advance the rotation and queue reminders in one transaction.

        Raises DuplicateAssignmentError (and writes nothing) if the task
        already has an open assignment.
        """
        due_date = rotation.next_due_date
        with self._connect() as conn:
            assignment_id = self._insert_assignment(
                conn, rotation.task_id, member_id, rotation.household_id, due_date,
            )
            conn.execute(
                "UPDATE task_rotations SET last_generated = ?, next_due_date = ? WHERE id = ?",
                (_ts(now), _ts(next_due_date), rotation.id),
            )
            conn.executemany(
                """
                INSERT INTO task_reminders (assignment_id, member_id, reminder_type, scheduled_for)
                VALUES (?, ?, ?, ?)
                """,
                [
                    (assignment_id, member_id, kind.value, _ts(when))
                    for kind, when in reminders
                ],
            )
        return Assignment(
            id=assignment_id,
            task_id=rotation.task_id,
            member_id=member_id,
            household_id=rotation.household_id,
            due_date=due_date,
        )

    # ------------------------------------------------------------------
    # Reminders
    # ------------------------------------------------------------------

    def list_reminders(self, assignment_id: int) -> list[TaskReminder]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM task_reminders WHERE assignment_id = ? ORDER BY scheduled_for",
                (assignment_id,),
            ).fetchall()
        return [self._row_to_reminder(r) for r in rows]

    def due_unsent_reminders(self, now: datetime) -> list[TaskReminder]:
        """Unsent reminders whose time has come, for assignments that are still open.

        The recipient is the assignment's current member.
        """
        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT r.id, r.assignment_id, a.member_id, r.reminder_type,
                       r.scheduled_for, r.sent_at
                FROM task_reminders r
                JOIN assignments a ON a.id = r.assignment_id
                WHERE r.sent_at IS NULL AND r.scheduled_for <= ?
                  AND a.status IN ({_placeholders(_OPEN)})
                ORDER BY r.scheduled_for, r.id
                """,
                (_ts(now), *_OPEN),
            ).fetchall()
        return [self._row_to_reminder(r) for r in rows]

    def mark_reminders_sent(self, reminder_ids: list[int], sent_at: datetime) -> int:
        if not reminder_ids:
            return 0
        with self._connect() as conn:
            cursor = conn.execute(
                f"""
                UPDATE task_reminders SET sent_at = ?
                WHERE sent_at IS NULL AND id IN ({_placeholders(reminder_ids)})
                """,
                (_ts(sent_at), *reminder_ids),
            )
        return cursor.rowcount


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")

    db = HouseholdDB(db_path="data/test_household.db")
    alice = db.add_member(1, "Alice", MemberType.ADULT)
    bob = db.add_member(1, "Bob", MemberType.TEEN)
    dishes = db.add_task(1, "Lavar platos", TaskFrequency.DAILY, weight=2)
    db.set_preference(bob.id, dishes.id, PreferenceLevel.PREFERRED)

    print(f"Members: {db.list_members(1)}")
    print(f"Tasks: {db.list_tasks(1)}")
    print(f"Preferences for dishes: {db.preferences_for_task(dishes.id)}")
