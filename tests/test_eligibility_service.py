"""Tests for EligibilityReconciler - state plus append-only history.

Tests verify:
1. First-ever upsert establishes state without a transition
2. Exactly one transition per actual change, none for repeated checks
3. last_checked_ts moves on every call; effective_ts only on change
4. Failures roll back the whole unit
5. Concurrent upserts for one employee log a toggle once
"""

from __future__ import annotations

import threading
from datetime import timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session, sessionmaker

from access_compliance.clock import as_utc
from access_compliance.errors import EligibilityUpsertError, InvalidEligibilityInputError
from access_compliance.models import Eligibility, Person
from access_compliance.services import (
    EligibilityQueries,
    EligibilityReconciler,
    PersonLockRegistry,
    UpsertOutcome,
)


@pytest.fixture
def reconciler(session_factory, clock, locks) -> EligibilityReconciler:
    return EligibilityReconciler(session_factory, clock=clock, locks=locks)


@pytest.fixture
def queries(session_factory) -> EligibilityQueries:
    return EligibilityQueries(session_factory)


def _count(session_factory: sessionmaker[Session], model) -> int:
    with session_factory() as session:
        return session.scalar(select(func.count()).select_from(model))


class TestFirstEstablishment:
    """First upsert for an unseen employee."""

    def test_creates_person_and_state_without_transition(
        self, reconciler, queries, session_factory, history_rows, clock
    ):
        """upsert("E200", False) creates Person + state, zero transitions."""
        reconciler.upsert("E200", False, "policy change")

        assert reconciler.last_outcome is UpsertOutcome.ESTABLISHED
        assert _count(session_factory, Person) == 1
        state = queries.get_state("E200")
        assert state is not None
        assert state.eligible is False
        assert state.effective_ts == clock.readings[0]
        assert state.last_checked_ts == clock.readings[0]
        assert history_rows() == []

    def test_person_created_ts_not_after_state(self, reconciler, session_factory):
        """State timestamps never precede person creation."""
        reconciler.upsert("E201", True)

        with session_factory() as session:
            person = session.scalar(select(Person).where(Person.employee_id == "E201"))
            state = session.get(Eligibility, person.person_id)
            assert as_utc(state.effective_ts) >= as_utc(person.created_ts)
            assert as_utc(state.last_checked_ts) >= as_utc(person.created_ts)

    def test_employee_id_is_trimmed(self, reconciler, queries):
        """Surrounding whitespace does not create a second person."""
        reconciler.upsert("  E202 ", True)
        reconciler.upsert("E202", True)

        assert queries.get_state("E202") is not None
        assert reconciler.last_outcome is UpsertOutcome.UNCHANGED


class TestTransitionDiscipline:
    """History gets one row per real change, never per no-op check."""

    def test_toggle_sequence_logs_two_transitions(self, reconciler, history_rows):
        """true, false, true -> exactly two transitions."""
        reconciler.upsert("E1", True)
        reconciler.upsert("E1", False, "training lapsed")
        reconciler.upsert("E1", True, "training renewed")

        rows = history_rows()
        assert [(r.old_eligible, r.new_eligible) for r in rows] == [
            (True, False),
            (False, True),
        ]
        assert [r.reason for r in rows] == ["training lapsed", "training renewed"]

    def test_repeated_same_value_logs_nothing(self, reconciler, queries, history_rows, clock):
        """Same value five times: zero transitions, last_checked_ts moves each time."""
        checked = []
        for _ in range(5):
            reconciler.upsert("E2", True)
            checked.append(queries.get_state("E2").last_checked_ts)

        assert history_rows() == []
        assert checked == sorted(checked)
        assert len(set(checked)) == 5
        state = queries.get_state("E2")
        assert state.effective_ts == clock.readings[0]
        assert state.last_checked_ts == clock.readings[-1]
        assert reconciler.last_outcome is UpsertOutcome.UNCHANGED

    def test_change_updates_all_timestamps(self, reconciler, queries, clock):
        """A change moves effective_ts and last_checked_ts together."""
        reconciler.upsert("E3", True)
        reconciler.upsert("E3", True)
        reconciler.upsert("E3", False)

        state = queries.get_state("E3")
        assert state.eligible is False
        assert state.effective_ts == clock.readings[-1]
        assert state.last_checked_ts == clock.readings[-1]
        assert reconciler.last_outcome is UpsertOutcome.CHANGED

    def test_end_to_end_remediation(self, reconciler, queries):
        """E200: false on first sight, then remediated to true."""
        reconciler.upsert("E200", False, "policy change")
        reconciler.upsert("E200", True, "remediated")

        history = queries.get_history("E200")
        assert len(history) == 1
        assert history[0].old_eligible is False
        assert history[0].new_eligible is True
        assert history[0].reason == "remediated"
        assert queries.get_state("E200").eligible is True

    def test_reason_ignored_when_unchanged(self, reconciler, queries):
        """A reason on a no-op check is not recorded anywhere."""
        reconciler.upsert("E4", True)
        reconciler.upsert("E4", True, "re-evaluated")

        assert queries.get_history("E4") == []

    def test_history_is_per_person(self, reconciler, queries):
        """Transitions are scoped to their own person."""
        reconciler.upsert("E5", True)
        reconciler.upsert("E6", True)
        reconciler.upsert("E5", False)

        assert len(queries.get_history("E5")) == 1
        assert queries.get_history("E6") == []
        assert queries.get_history("unknown") == []

    def test_lagging_clock_never_stamps_before_effective(
        self, session_factory, locks, queries, make_clock
    ):
        """A clock that goes backwards is clamped to stored timestamps."""
        clock = make_clock(step=timedelta(seconds=-10))
        reconciler = EligibilityReconciler(session_factory, clock=clock, locks=locks)

        reconciler.upsert("E7", True)
        reconciler.upsert("E7", False)

        state = queries.get_state("E7")
        assert state.effective_ts == clock.readings[0]
        assert state.last_checked_ts >= state.effective_ts
        assert queries.get_history("E7")[0].changed_ts == clock.readings[0]


class TestInputValidation:
    """Bad arguments are rejected before anything is written."""

    @pytest.mark.parametrize("employee_id", ["", "   ", None, 42])
    def test_rejects_empty_employee_id(self, reconciler, session_factory, employee_id):
        with pytest.raises(InvalidEligibilityInputError, match="employee_id"):
            reconciler.upsert(employee_id, True)
        assert _count(session_factory, Person) == 0

    def test_rejects_non_bool_flag(self, reconciler):
        with pytest.raises(InvalidEligibilityInputError, match="bool"):
            reconciler.upsert("E8", 1)

    def test_rejects_long_reason(self, reconciler):
        with pytest.raises(InvalidEligibilityInputError, match="reason"):
            reconciler.upsert("E8", True, "x" * 401)

    def test_input_error_is_value_error(self, reconciler):
        with pytest.raises(ValueError):
            reconciler.upsert("", True)


class TestAtomicity:
    """A failing unit leaves no partial effects."""

    def test_failed_history_insert_rolls_back_state(
        self, reconciler, engine, queries, history_rows, statement_failure
    ):
        """If logging the transition fails, eligibility keeps its old value."""
        reconciler.upsert("E9", True)
        before = queries.get_state("E9")

        with statement_failure(engine, "INSERT INTO eligibility_history") as failure:
            with pytest.raises(EligibilityUpsertError) as exc_info:
                reconciler.upsert("E9", False, "should not stick")

        assert failure.triggered
        assert exc_info.value.code == 51010
        assert exc_info.value.location == "upsert"
        assert exc_info.value.retryable is True
        assert isinstance(exc_info.value.__cause__, Exception)
        assert queries.get_state("E9") == before
        assert history_rows() == []

    def test_failed_first_upsert_creates_no_person(
        self, reconciler, engine, session_factory, statement_failure
    ):
        """Person creation is undone when the state insert fails."""
        with statement_failure(engine, "INSERT INTO eligibility (") as failure:
            with pytest.raises(EligibilityUpsertError):
                reconciler.upsert("E10", True)

        assert failure.triggered
        assert _count(session_factory, Person) == 0
        assert _count(session_factory, Eligibility) == 0

    def test_lock_released_after_failure(
        self, reconciler, engine, locks, queries, statement_failure
    ):
        """A failed call does not leave the person lock held."""
        with statement_failure(engine, "INSERT INTO person"):
            with pytest.raises(EligibilityUpsertError):
                reconciler.upsert("E11", True)

        assert locks.active_keys() == set()
        reconciler.upsert("E11", True)
        assert queries.get_state("E11").eligible is True


class TestConcurrency:
    """Concurrent callers for the same employee are serialized."""

    def test_concurrent_same_toggle_logged_once(self, session_factory, history_rows, queries):
        """Eight racing false-upserts after a true produce one transition."""
        shared_locks = PersonLockRegistry()
        EligibilityReconciler(session_factory, locks=shared_locks).upsert("E300", True)

        barrier = threading.Barrier(8)
        errors: list[BaseException] = []

        def worker() -> None:
            reconciler = EligibilityReconciler(session_factory, locks=shared_locks)
            barrier.wait()
            try:
                reconciler.upsert("E300", False, "revoked")
            except BaseException as e:
                errors.append(e)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        rows = history_rows()
        assert len(rows) == 1
        assert (rows[0].old_eligible, rows[0].new_eligible) == (True, False)
        assert queries.get_state("E300").eligible is False
        assert shared_locks.active_keys() == set()

    def test_concurrent_different_employees(self, session_factory, queries):
        """Different employees all get established."""
        shared_locks = PersonLockRegistry()
        errors: list[BaseException] = []

        def worker(n: int) -> None:
            try:
                EligibilityReconciler(session_factory, locks=shared_locks).upsert(
                    f"E4{n:02d}", n % 2 == 0
                )
            except BaseException as e:
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        for n in range(6):
            assert queries.get_state(f"E4{n:02d}").eligible is (n % 2 == 0)
