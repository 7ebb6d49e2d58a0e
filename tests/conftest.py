"""Pytest fixtures for access compliance tests."""

from __future__ import annotations

from collections.abc import Generator
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import event, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from access_compliance.database import create_schema, get_engine, make_session_factory
from access_compliance.models import AccessDelta, EligibilityHistory
from access_compliance.services.locking_service import PersonLockRegistry
from access_compliance.sources import StaticComplianceSource


class FakeClock:
    """Deterministic clock that advances a fixed step per reading."""

    def __init__(
        self,
        start: datetime = datetime(2026, 1, 23, 8, 0, tzinfo=timezone.utc),
        step: timedelta = timedelta(seconds=1),
    ):
        self.current = start
        self.step = step
        self.readings: list[datetime] = []

    def __call__(self) -> datetime:
        value = self.current
        self.current = value + self.step
        self.readings.append(value)
        return value


class StatementFailure:
    """Raises on the first SQL statement that starts with ``prefix``.

    Used to simulate a write failure partway through a transaction.
    """

    def __init__(self, engine: Engine, prefix: str):
        self.engine = engine
        self.prefix = prefix.upper()
        self.statements: list[str] = []
        self.triggered = False

    def __enter__(self) -> StatementFailure:
        event.listen(self.engine, "before_cursor_execute", self._hook)
        return self

    def __exit__(self, *exc_info) -> None:
        event.remove(self.engine, "before_cursor_execute", self._hook)

    def _hook(self, conn, cursor, statement, parameters, context, executemany):
        normalized = " ".join(statement.split()).upper()
        self.statements.append(normalized)
        if normalized.startswith(self.prefix):
            self.triggered = True
            raise RuntimeError(f"simulated write failure on: {self.prefix}")


@pytest.fixture
def database_url(tmp_path) -> str:
    """File-backed SQLite so separate sessions and threads see commits."""
    return f"sqlite:///{tmp_path / 'access_compliance.db'}"


@pytest.fixture
def bare_engine(database_url: str) -> Generator[Engine, None, None]:
    """Engine with no tables created."""
    engine = get_engine(database_url, echo=False)
    yield engine
    engine.dispose()


@pytest.fixture
def engine(bare_engine: Engine) -> Engine:
    """Engine with schema and vocabulary in place."""
    create_schema(bare_engine)
    return bare_engine


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return make_session_factory(engine)


@pytest.fixture
def make_clock():
    """Factory for clocks with a custom start or step."""
    return FakeClock


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def locks() -> PersonLockRegistry:
    return PersonLockRegistry()


@pytest.fixture
def source() -> StaticComplianceSource:
    return StaticComplianceSource()


@pytest.fixture
def statement_failure():
    """Factory for StatementFailure hooks."""
    return StatementFailure


@pytest.fixture
def delta_rows(session_factory: sessionmaker[Session]):
    """Snapshot of access_delta as comparable tuples."""

    def snapshot(*, with_run_ts: bool = False) -> list[tuple]:
        with session_factory() as session:
            rows = session.scalars(
                select(AccessDelta).order_by(
                    AccessDelta.employee_id, AccessDelta.card_number, AccessDelta.action_type
                )
            ).all()
            if with_run_ts:
                return [
                    (r.run_ts, r.employee_id, r.card_number, r.action_type, r.reason)
                    for r in rows
                ]
            return [(r.employee_id, r.card_number, r.action_type, r.reason) for r in rows]

    return snapshot


@pytest.fixture
def history_rows(session_factory: sessionmaker[Session]):
    """All eligibility history rows in insertion order."""

    def snapshot() -> list[EligibilityHistory]:
        with session_factory() as session:
            return list(
                session.scalars(
                    select(EligibilityHistory).order_by(EligibilityHistory.eligibility_history_id)
                )
            )

    return snapshot
