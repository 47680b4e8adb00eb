"""Tests for src.core.scoring — eligibility filters and the score formula."""

from datetime import date, datetime, timedelta

import pytest

from src.core.errors import NotFoundError
from src.core.scoring import (
    MEMBER_TYPE_PROFILES,
    Candidate,
    best_assignee,
    recency_bonus,
    round_half_up,
    score_candidates,
    score_task,
)
from src.data.models import (
    AbsencePolicy,
    Member,
    MemberAbsence,
    MemberType,
    PreferenceLevel,
    Task,
    TaskFrequency,
)

NOW = datetime(2026, 3, 4, 10, 0)


def _member(member_id, member_type=MemberType.ADULT, name=None):
    return Member(
        id=member_id,
        household_id=1,
        name=name or f"m{member_id}",
        member_type=member_type,
    )


def _task(min_age=None):
    return Task(id=1, household_id=1, name="Lavar platos", frequency=TaskFrequency.WEEKLY, min_age=min_age)


def _absence(member_id, start, end):
    return MemberAbsence(id=1, member_id=member_id, start_date=start, end_date=end, policy=AbsencePolicy.AUTO)


# ---------------------------------------------------------------------------
# Pure scoring
# ---------------------------------------------------------------------------


class TestScoreFormula:
    def test_adult_vs_loaded_teen(self):
        alice = Candidate(member=_member(1, name="Alice"))
        bob = Candidate(member=_member(2, MemberType.TEEN, name="Bob"), open_assignments=2)

        scores = score_candidates(_task(), [bob, alice], NOW, NOW)

        assert [(s.member_name, s.score) for s in scores] == [("Alice", 114), ("Bob", 62)]

    def test_preferred_adds_twenty(self):
        [s] = score_candidates(
            _task(), [Candidate(member=_member(1), preference=PreferenceLevel.PREFERRED)], NOW, NOW,
        )
        assert s.score == 134
        assert "+20 preferred task" in s.reasons

    def test_disliked_subtracts_twenty(self):
        [s] = score_candidates(
            _task(), [Candidate(member=_member(1), preference=PreferenceLevel.DISLIKED)], NOW, NOW,
        )
        assert s.score == 94

    def test_neutral_has_no_effect(self):
        [s] = score_candidates(
            _task(), [Candidate(member=_member(1), preference=PreferenceLevel.NEUTRAL)], NOW, NOW,
        )
        assert s.score == 114

    def test_load_penalty_per_open_assignment(self):
        [s] = score_candidates(_task(), [Candidate(member=_member(1), open_assignments=3)], NOW, NOW)
        assert s.score == 100 - 15 + 14

    def test_recent_completion_lowers_bonus(self):
        [s] = score_candidates(
            _task(),
            [Candidate(member=_member(1), last_completed_at=NOW - timedelta(days=3, hours=2))],
            NOW, NOW,
        )
        assert s.score == 103

    def test_capacity_reason_listed_for_child(self):
        [s] = score_candidates(_task(), [Candidate(member=_member(1, MemberType.CHILD))], NOW, NOW)
        assert s.score == 34
        assert any("child capacity" in r for r in s.reasons)


class TestCapacityOrdering:
    @pytest.mark.parametrize("preference,load", [
        (None, 0),
        (PreferenceLevel.PREFERRED, 1),
        (PreferenceLevel.DISLIKED, 4),
    ])
    def test_adult_beats_teen_beats_child(self, preference, load):
        candidates = [
            Candidate(member=_member(i, t), preference=preference, open_assignments=load)
            for i, t in enumerate([MemberType.CHILD, MemberType.TEEN, MemberType.ADULT], start=1)
        ]
        scores = {s.member_id: s.score for s in score_candidates(_task(), candidates, NOW, NOW)}
        assert scores[3] > scores[2] > scores[1]

    def test_profiles_table(self):
        assert MEMBER_TYPE_PROFILES[MemberType.ADULT].capacity == 1.0
        assert MEMBER_TYPE_PROFILES[MemberType.TEEN].capacity == 0.6
        assert MEMBER_TYPE_PROFILES[MemberType.CHILD].capacity == 0.3

    @pytest.mark.parametrize("value,expected", [(7.5, 8), (-7.5, -7), (2.4, 2), (0.5, 1)])
    def test_half_rounds_up(self, value, expected):
        assert round_half_up(value) == expected


class TestRecencyBonus:
    def test_never_done_gets_cap(self):
        assert recency_bonus(None, NOW) == 14

    @pytest.mark.parametrize("days,expected", [(0, 0), (1, 1), (13, 13), (14, 14), (400, 14)])
    def test_capped_days_since(self, days, expected):
        assert recency_bonus(NOW - timedelta(days=days), NOW) == expected

    def test_completion_in_future_is_not_negative(self):
        assert recency_bonus(NOW + timedelta(days=2), NOW) == 0


class TestExclusions:
    def test_absent_member_removed(self):
        away = Candidate(
            member=_member(1),
            absences=[_absence(1, date(2026, 3, 2), date(2026, 3, 4))],
        )
        home = Candidate(member=_member(2))
        scores = score_candidates(_task(), [away, home], datetime(2026, 3, 4, 23, 59), NOW)
        assert [s.member_id for s in scores] == [2]

    def test_absence_bounds_are_inclusive(self):
        away = Candidate(
            member=_member(1),
            absences=[_absence(1, date(2026, 3, 2), date(2026, 3, 4))],
        )
        assert score_candidates(_task(), [away], datetime(2026, 3, 2, 0, 0), NOW) == []
        assert score_candidates(_task(), [away], datetime(2026, 3, 5, 0, 0), NOW) != []

    def test_min_age_excludes_child_keeps_teen(self):
        child = Candidate(member=_member(1, MemberType.CHILD))
        teen = Candidate(member=_member(2, MemberType.TEEN), open_assignments=10)
        scores = score_candidates(_task(min_age=12), [child, teen], NOW, NOW)
        assert [s.member_id for s in scores] == [2]

    def test_min_age_above_adult_excludes_everyone(self):
        scores = score_candidates(_task(min_age=30), [Candidate(member=_member(1))], NOW, NOW)
        assert scores == []


class TestTieBreak:
    def test_equal_scores_ordered_by_member_id(self):
        candidates = [Candidate(member=_member(7)), Candidate(member=_member(3)), Candidate(member=_member(5))]
        scores = score_candidates(_task(), candidates, NOW, NOW)
        assert [s.member_id for s in scores] == [3, 5, 7]


# ---------------------------------------------------------------------------
# Storage-backed scoring
# ---------------------------------------------------------------------------


class TestScoreTask:
    def test_reads_preferences_and_load(self, household_db, make_member, make_task):
        alice = make_member("Alice")
        bob = make_member("Bob")
        dishes = make_task("Dishes")
        trash = make_task("Trash")
        household_db.set_preference(bob.id, dishes.id, PreferenceLevel.PREFERRED)
        household_db.create_assignment(trash.id, bob.id, 1, NOW)

        scores = score_task(household_db, dishes.id, NOW, now=NOW)

        assert [(s.member_id, s.score) for s in scores] == [(bob.id, 129), (alice.id, 114)]

    def test_inactive_members_not_candidates(self, household_db, make_member, make_task):
        alice = make_member("Alice")
        bob = make_member("Bob")
        household_db.deactivate_member(alice.id)
        task = make_task("Dishes")
        assert [s.member_id for s in score_task(household_db, task.id, NOW, now=NOW)] == [bob.id]

    def test_other_households_not_candidates(self, household_db, make_member, make_task):
        make_member("Stranger", household_id=2)
        alice = make_member("Alice")
        task = make_task("Dishes")
        assert [s.member_id for s in score_task(household_db, task.id, NOW, now=NOW)] == [alice.id]

    def test_absent_on_target_date_never_listed(self, household_db, make_member, make_task):
        alice = make_member("Alice")
        bob = make_member("Bob")
        household_db.add_absence(alice.id, date(2026, 3, 2), date(2026, 3, 6))
        task = make_task("Dishes")
        for day in range(2, 7):
            scores = score_task(household_db, task.id, datetime(2026, 3, day, 18, 0), now=NOW)
            assert [s.member_id for s in scores] == [bob.id]

    def test_only_adults(self, household_db, make_member, make_task):
        make_member("Kid", "CHILD")
        adult = make_member("Parent")
        task = make_task("Dishes")
        scores = score_task(household_db, task.id, NOW, only_adults=True, now=NOW)
        assert [s.member_id for s in scores] == [adult.id]

    def test_unknown_task(self, household_db):
        with pytest.raises(NotFoundError):
            score_task(household_db, 999, NOW, now=NOW)


class TestBestAssignee:
    def test_teen_is_sole_survivor(self, household_db, make_member, make_task):
        make_member("Kid", "CHILD")
        teen = make_member("Teen", "TEEN")
        task = make_task("Mow lawn", min_age=12)
        best = best_assignee(household_db, task.id, NOW, now=NOW)
        assert best.member_id == teen.id

    def test_only_child_and_min_age_gives_none(self, household_db, make_member, make_task):
        make_member("Kid", "CHILD")
        task = make_task("Mow lawn", min_age=12)
        assert best_assignee(household_db, task.id, NOW, now=NOW) is None

    def test_empty_household_gives_none(self, household_db, make_task):
        task = make_task("Dishes")
        assert best_assignee(household_db, task.id, NOW, now=NOW) is None
