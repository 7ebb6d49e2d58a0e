"""Eligibility reconciler - current state plus append-only history.

upsert() guarantees:
- exactly one history row per actual change of ``eligible``
- no history row for first-ever establishment of state
- no history row (only last_checked_ts moves) for repeated same-value checks
- the read-compare-write runs inside a per-person critical section and a
  single transaction, so concurrent callers for one employee cannot both
  log the same toggle or lose an update
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from access_compliance.clock import Clock, as_utc, utcnow
from access_compliance.database import acquire_person_xact_lock, session_scope
from access_compliance.errors import EligibilityUpsertError, InvalidEligibilityInputError
from access_compliance.models import Eligibility, EligibilityHistory, Person
from access_compliance.models.person import EMPLOYEE_ID_MAX, REASON_MAX
from access_compliance.services.locking_service import (
    PersonLockRegistry,
    default_person_locks,
)

logger = logging.getLogger(__name__)


class UpsertOutcome(str, Enum):
    """Which branch an upsert took."""

    ESTABLISHED = "established"
    CHANGED = "changed"
    UNCHANGED = "unchanged"


class EligibilityReconciler:
    """Maintains eligibility state and its transition log."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        clock: Clock = utcnow,
        locks: PersonLockRegistry | None = None,
    ):
        self.session_factory = session_factory
        self.clock = clock
        self.locks = locks or default_person_locks
        self.last_outcome: UpsertOutcome | None = None

    def upsert(self, employee_id: str, new_eligible: bool, reason: str | None = None) -> None:
        """Record an eligibility evaluation for ``employee_id``.

        Raises:
            InvalidEligibilityInputError: bad arguments; nothing was touched
            EligibilityUpsertError: the unit failed and was rolled back
        """
        employee_id = _validate_inputs(employee_id, new_eligible, reason)

        with self.locks.hold(employee_id):
            try:
                with session_scope(self.session_factory) as session:
                    outcome = self._upsert_locked(session, employee_id, new_eligible, reason)
            except Exception as e:
                logger.exception("Eligibility upsert for %s rolled back", employee_id)
                raise EligibilityUpsertError.wrap(
                    e, f"Eligibility upsert for {employee_id} failed", location="upsert"
                ) from e

        self.last_outcome = outcome
        logger.info(
            "Eligibility %s for %s (eligible=%s)", outcome.value, employee_id, new_eligible
        )

    def _upsert_locked(
        self,
        session: Session,
        employee_id: str,
        new_eligible: bool,
        reason: str | None,
    ) -> UpsertOutcome:
        acquire_person_xact_lock(session, employee_id)

        person = session.scalar(select(Person).where(Person.employee_id == employee_id))
        now = as_utc(self.clock())

        if person is None:
            person = Person(employee_id=employee_id, created_ts=now)
            session.add(person)
            session.flush()
            logger.debug("Created person %s for %s", person.person_id, employee_id)
            state = None
        else:
            state = session.scalar(
                select(Eligibility)
                .where(Eligibility.person_id == person.person_id)
                .with_for_update()
            )
            # The clock may lag stored timestamps; never stamp before them.
            floors = [person.created_ts]
            if state is not None:
                floors.append(state.effective_ts)
            now = max([now, *(as_utc(ts) for ts in floors)])

        if state is None:
            session.add(
                Eligibility(
                    person_id=person.person_id,
                    eligible=new_eligible,
                    effective_ts=now,
                    last_checked_ts=now,
                )
            )
            return UpsertOutcome.ESTABLISHED

        if state.eligible != new_eligible:
            session.add(
                EligibilityHistory(
                    person_id=person.person_id,
                    old_eligible=state.eligible,
                    new_eligible=new_eligible,
                    changed_ts=now,
                    reason=reason,
                )
            )
            state.eligible = new_eligible
            state.effective_ts = now
            state.last_checked_ts = now
            return UpsertOutcome.CHANGED

        state.last_checked_ts = now
        return UpsertOutcome.UNCHANGED


@dataclass(frozen=True)
class EligibilitySnapshot:
    """Read model of a person's current eligibility."""

    employee_id: str
    card_number: str | None
    eligible: bool
    effective_ts: datetime
    last_checked_ts: datetime


@dataclass(frozen=True)
class TransitionRecord:
    """Read model of one history row."""

    eligibility_history_id: int
    employee_id: str
    old_eligible: bool
    new_eligible: bool
    changed_ts: datetime
    reason: str | None


class EligibilityQueries:
    """Read-only access to eligibility state and history."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self.session_factory = session_factory

    def get_state(self, employee_id: str) -> EligibilitySnapshot | None:
        with self.session_factory() as session:
            row = session.execute(
                select(Person, Eligibility)
                .join(Eligibility, Eligibility.person_id == Person.person_id)
                .where(Person.employee_id == employee_id)
            ).first()
            if row is None:
                return None
            person, state = row
            return EligibilitySnapshot(
                employee_id=person.employee_id,
                card_number=person.card_number,
                eligible=state.eligible,
                effective_ts=as_utc(state.effective_ts),
                last_checked_ts=as_utc(state.last_checked_ts),
            )

    def get_history(self, employee_id: str) -> list[TransitionRecord]:
        """Transitions for one employee, oldest first."""
        with self.session_factory() as session:
            rows = session.scalars(
                select(EligibilityHistory)
                .join(Person, Person.person_id == EligibilityHistory.person_id)
                .where(Person.employee_id == employee_id)
                .order_by(
                    EligibilityHistory.changed_ts,
                    EligibilityHistory.eligibility_history_id,
                )
            ).all()
            return [
                TransitionRecord(
                    eligibility_history_id=h.eligibility_history_id,
                    employee_id=employee_id,
                    old_eligible=h.old_eligible,
                    new_eligible=h.new_eligible,
                    changed_ts=as_utc(h.changed_ts),
                    reason=h.reason,
                )
                for h in rows
            ]


def _validate_inputs(employee_id: str, new_eligible: bool, reason: str | None) -> str:
    if not isinstance(employee_id, str) or not employee_id.strip():
        raise InvalidEligibilityInputError("employee_id must be a non-empty string")
    employee_id = employee_id.strip()
    if len(employee_id) > EMPLOYEE_ID_MAX:
        raise InvalidEligibilityInputError(
            f"employee_id exceeds {EMPLOYEE_ID_MAX} characters"
        )
    if not isinstance(new_eligible, bool):
        raise InvalidEligibilityInputError("new_eligible must be a bool")
    if reason is not None and len(reason) > REASON_MAX:
        raise InvalidEligibilityInputError(f"reason exceeds {REASON_MAX} characters")
    return employee_id
