"""Access delta recompute - idempotent replace of RESTRICT rows.

A run goes through explicit phases, each its own method:

1. validate_preconditions() - source and target exist; no mutation
2. aggregate()              - facts -> one RESTRICT candidate per employee/card
3. validate_candidates()    - staged rows honor the table's invariants
4. apply()                  - one transaction: delete matching RESTRICT rows,
                              insert candidates under a shared run_ts

Re-running with an unchanged source leaves the same set of
(employee_id, card_number, action_type, reason) rows; only run_ts moves.
Only one recompute may be in flight at a time; that is enforced by the
scheduler, not here.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable

from sqlalchemy import and_, delete, func, insert, inspect, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from access_compliance.clock import Clock, as_utc, utcnow
from access_compliance.database import session_scope
from access_compliance.errors import (
    DELTA_TABLE_MISSING,
    SOURCE_UNAVAILABLE,
    PreconditionFailedError,
    RecomputeFailedError,
    StagingValidationError,
)
from access_compliance.models import AccessAction, AccessDelta
from access_compliance.models.person import CARD_NUMBER_MAX, EMPLOYEE_ID_MAX, REASON_MAX
from access_compliance.services.state_machine import RecomputeState, RecomputeStateMachine
from access_compliance.sources.base import ComplianceSource, NonComplianceFact

logger = logging.getLogger(__name__)

REASON_PREFIX = "Non-compliant requirement(s): "
REASON_DELIMITER = ", "

# Keeps each DELETE's OR-list bounded.
DELETE_BATCH_SIZE = 500

# Smallest increment every supported backend stores distinctly
RUN_TS_STEP = timedelta(microseconds=1)


@dataclass(frozen=True)
class DeltaCandidate:
    """A staged access delta row, not yet persisted."""

    employee_id: str
    card_number: str
    action_type: str
    reason: str

    @property
    def key(self) -> tuple[str, str]:
        return (self.employee_id, self.card_number)


@dataclass
class RecomputeSummary:
    """What one recompute run did."""

    run_ts: datetime | None = None
    facts_read: int = 0
    facts_discarded: int = 0
    rows_deleted: int = 0
    rows_inserted: int = 0
    final_state: RecomputeState = RecomputeState.IDLE
    path: list[RecomputeState] = field(default_factory=list)

    @property
    def was_empty(self) -> bool:
        """True when compliance was universally satisfied."""
        return self.facts_read - self.facts_discarded == 0


def build_reason(requirement_codes: Iterable[str]) -> str:
    """Human-readable summary listing each distinct code once, sorted."""
    return REASON_PREFIX + REASON_DELIMITER.join(sorted(set(requirement_codes)))


class AccessDeltaRecomputer:
    """Recomputes RESTRICT rows in access_delta from a compliance source."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        source: ComplianceSource | None,
        *,
        clock: Clock = utcnow,
    ):
        self.session_factory = session_factory
        self.source = source
        self.clock = clock
        self.machine = RecomputeStateMachine()
        self.last_summary: RecomputeSummary | None = None

    @property
    def state(self) -> RecomputeState:
        return self.machine.state

    def recompute(self) -> None:
        """Run one full recompute.

        Raises:
            PreconditionFailedError: source or table missing; nothing touched
            StagingValidationError: candidates break an invariant; nothing touched
            RecomputeFailedError: apply failed and was fully rolled back
        """
        summary = RecomputeSummary()
        self.last_summary = summary
        self.machine.begin_run()

        try:
            self.validate_preconditions()
        except PreconditionFailedError:
            self._finish(summary, RecomputeState.FAILED)
            raise

        self.machine.advance(RecomputeState.AGGREGATING)
        try:
            facts = list(self.source.fetch_facts())
        except Exception as e:
            self._finish(summary, RecomputeState.FAILED)
            logger.exception("Reading compliance source %s failed", self.source.source_name)
            raise RecomputeFailedError.wrap(
                e, "Reading compliance source failed", location="aggregate"
            ) from e

        candidates = self.aggregate(facts, summary)
        try:
            self.validate_candidates(candidates)
        except StagingValidationError:
            self._finish(summary, RecomputeState.FAILED)
            raise

        if not candidates:
            logger.info("No non-compliant facts; access delta left untouched")
            self._finish(summary, RecomputeState.IDLE)
            return

        self.machine.advance(RecomputeState.APPLYING)
        try:
            run_ts = self.next_run_ts()
            deleted, inserted = self.apply(candidates, run_ts)
        except Exception as e:
            self.machine.advance(RecomputeState.FAILED)
            self._finish(summary, RecomputeState.ROLLED_BACK)
            logger.exception("Access delta apply failed; transaction rolled back")
            raise RecomputeFailedError.wrap(
                e, "Access delta recompute failed", location="apply"
            ) from e

        summary.run_ts = run_ts
        summary.rows_deleted = deleted
        summary.rows_inserted = inserted
        self._finish(summary, RecomputeState.IDLE)
        logger.info(
            "Access delta recomputed at %s: %d deleted, %d inserted",
            summary.run_ts.isoformat(),
            deleted,
            inserted,
        )

    def validate_preconditions(self) -> None:
        """Fail fast if the source or the target table is missing."""
        if self.source is None:
            raise PreconditionFailedError(
                "No compliance source configured. Cannot recompute access delta.",
                code=SOURCE_UNAVAILABLE,
                collaborator="compliance_source",
            )
        if not self.source.is_available():
            raise PreconditionFailedError(
                f"Compliance source {self.source.source_name!r} is unavailable. "
                "Cannot recompute access delta.",
                code=SOURCE_UNAVAILABLE,
                collaborator="compliance_source",
            )

        try:
            with self.session_factory() as session:
                has_table = inspect(session.connection()).has_table(AccessDelta.__tablename__)
        except SQLAlchemyError as e:
            raise PreconditionFailedError(
                f"Access delta store is unreachable: {e}",
                code=DELTA_TABLE_MISSING,
                collaborator="access_delta",
            ) from e
        if not has_table:
            raise PreconditionFailedError(
                f"Required table {AccessDelta.__tablename__} does not exist. "
                "Cannot recompute access delta.",
                code=DELTA_TABLE_MISSING,
                collaborator="access_delta",
            )

    def aggregate(
        self,
        facts: Iterable[NonComplianceFact],
        summary: RecomputeSummary | None = None,
    ) -> list[DeltaCandidate]:
        """Group complete facts by employee/card into RESTRICT candidates."""
        groups: dict[tuple[str, str], set[str]] = defaultdict(set)
        read = discarded = 0
        for fact in facts:
            read += 1
            if not fact.is_complete:
                discarded += 1
                continue
            # Fixed-width (CHAR/NCHAR) view columns arrive padded
            key = (str(fact.employee_id).strip(), str(fact.card_number).strip())
            groups[key].add(str(fact.requirement_code).strip())

        if summary is not None:
            summary.facts_read = read
            summary.facts_discarded = discarded
        if discarded:
            logger.debug("Discarded %d incomplete non-compliance facts", discarded)

        return [
            DeltaCandidate(
                employee_id=employee_id,
                card_number=card_number,
                action_type=AccessAction.RESTRICT.value,
                reason=build_reason(codes),
            )
            for (employee_id, card_number), codes in sorted(groups.items())
        ]

    def validate_candidates(self, candidates: list[DeltaCandidate]) -> None:
        """Check staged rows before any transaction is opened."""
        known = {action.value for action in AccessAction}
        seen: dict[tuple[str, str], str] = {}
        collisions: list[tuple[str, ...]] = []
        too_long: list[tuple[str, ...]] = []

        for c in candidates:
            if c.action_type not in known:
                raise StagingValidationError(
                    f"Unknown action type {c.action_type!r} for {c.employee_id}",
                    offending=[c.key],
                )
            key = (c.employee_id, c.action_type)
            if key in seen:
                collisions.append((c.employee_id, seen[key], c.card_number))
            else:
                seen[key] = c.card_number
            if (
                len(c.employee_id) > EMPLOYEE_ID_MAX
                or len(c.card_number) > CARD_NUMBER_MAX
                or len(c.reason) > REASON_MAX
            ):
                too_long.append(c.key)

        if collisions:
            raise StagingValidationError(
                f"{len(collisions)} employee(s) would receive more than one "
                "RESTRICT row in a single run (multiple card numbers)",
                offending=collisions,
            )
        if too_long:
            raise StagingValidationError(
                f"{len(too_long)} candidate(s) exceed access_delta column lengths",
                offending=too_long,
            )

    def next_run_ts(self) -> datetime:
        """Clock reading, moved past the newest stored run_ts if it lags.

        A reused run_ts would collide with an older row on
        (run_ts, employee_id, action_type) when that row is not replaced,
        for example after the employee's card number changed.
        """
        run_ts = as_utc(self.clock())
        with self.session_factory() as session:
            latest = session.scalar(select(func.max(AccessDelta.run_ts)))
        if latest is not None and as_utc(latest) >= run_ts:
            run_ts = as_utc(latest) + RUN_TS_STEP
            logger.warning("Clock behind last run; run_ts advanced to %s", run_ts.isoformat())
        return run_ts

    def apply(self, candidates: list[DeltaCandidate], run_ts: datetime) -> tuple[int, int]:
        """Replace RESTRICT rows for the candidates' keys in one transaction.

        Returns (rows deleted, rows inserted).
        """
        keys = sorted({c.key for c in candidates})
        deleted = 0
        with session_scope(self.session_factory) as session:
            for start in range(0, len(keys), DELETE_BATCH_SIZE):
                batch = keys[start:start + DELETE_BATCH_SIZE]
                result = session.execute(
                    delete(AccessDelta)
                    .where(AccessDelta.action_type == AccessAction.RESTRICT.value)
                    .where(
                        or_(
                            *(
                                and_(
                                    AccessDelta.employee_id == employee_id,
                                    AccessDelta.card_number == card_number,
                                )
                                for employee_id, card_number in batch
                            )
                        )
                    )
                    .execution_options(synchronize_session=False)
                )
                deleted += result.rowcount or 0

            session.execute(
                insert(AccessDelta),
                [
                    {
                        "run_ts": run_ts,
                        "employee_id": c.employee_id,
                        "card_number": c.card_number,
                        "action_type": c.action_type,
                        "reason": c.reason,
                    }
                    for c in candidates
                ],
            )
        return deleted, len(candidates)

    def _finish(self, summary: RecomputeSummary, final: RecomputeState) -> None:
        if self.machine.state != final:
            self.machine.advance(final)
        summary.final_state = final
        summary.path = list(self.machine.visited)


@dataclass(frozen=True)
class AccessDeltaRecord:
    """Read model of one access_delta row."""

    run_ts: datetime
    employee_id: str
    card_number: str | None
    action_type: str
    reason: str | None


class AccessDeltaQueries:
    """Read-only access to access_delta for reporting consumers."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self.session_factory = session_factory

    def list_rows(
        self,
        *,
        employee_id: str | None = None,
        run_from: datetime | None = None,
        run_to: datetime | None = None,
    ) -> list[AccessDeltaRecord]:
        """Rows filtered by employee and/or inclusive run_ts range."""
        stmt = select(AccessDelta)
        if employee_id is not None:
            stmt = stmt.where(AccessDelta.employee_id == employee_id)
        if run_from is not None:
            stmt = stmt.where(AccessDelta.run_ts >= as_utc(run_from))
        if run_to is not None:
            stmt = stmt.where(AccessDelta.run_ts <= as_utc(run_to))
        stmt = stmt.order_by(AccessDelta.run_ts, AccessDelta.employee_id, AccessDelta.card_number)

        with self.session_factory() as session:
            return [
                AccessDeltaRecord(
                    run_ts=as_utc(row.run_ts),
                    employee_id=row.employee_id,
                    card_number=row.card_number,
                    action_type=row.action_type,
                    reason=row.reason,
                )
                for row in session.scalars(stmt)
            ]
