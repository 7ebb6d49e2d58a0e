"""Database connection, session and transaction management."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Generator

from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.orm import Session, sessionmaker

from access_compliance.config import get_settings

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)

# Keeps person lock keys apart from other advisory lock users on the database
PERSON_LOCK_SEED = 51010


def get_engine(database_url: str | None = None, *, echo: bool | None = None) -> Engine:
    """Create a database engine.

    SQLite connections get foreign key enforcement and a busy timeout so
    concurrent writers wait instead of failing immediately.
    """
    settings = get_settings()
    url = database_url or settings.database_url
    if echo is None:
        echo = settings.sql_echo

    if url.startswith("sqlite"):
        engine = create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    return create_engine(
        url,
        echo=echo,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )


def _enable_sqlite_foreign_keys(dbapi_connection: Any, connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def make_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Build the session factory used by services."""
    return sessionmaker(engine, expire_on_commit=False, autoflush=False)


# Global engine and session factory
_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def init_db(database_url: str | None = None) -> tuple[Engine, sessionmaker[Session]]:
    """Initialize the process-wide engine and session factory."""
    global _engine, _session_factory
    if _engine is None:
        _engine = get_engine(database_url)
        _session_factory = make_session_factory(_engine)
    return _engine, _session_factory


@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    """Run a block as one transaction: commit on success, roll back on error."""
    with factory() as session:
        try:
            yield session
            session.commit()
        except BaseException:
            session.rollback()
            raise


def create_schema(engine: Engine) -> None:
    """Create all tables and seed the access action vocabulary."""
    from access_compliance.models import Base
    from access_compliance.models.reference import seed_action_types

    Base.metadata.create_all(engine)
    with session_scope(make_session_factory(engine)) as session:
        inserted = seed_action_types(session)
    logger.info("Schema ready (%d action types seeded)", inserted)


def missing_tables(engine: Engine, required: list[str]) -> list[str]:
    """Return the required tables that do not exist."""
    inspector = inspect(engine)
    return [name for name in required if not inspector.has_table(name)]


def acquire_person_xact_lock(session: Session, employee_id: str) -> None:
    """Take a transaction-scoped advisory lock for one employee.

    Released automatically at commit/rollback. The key is a 64-bit hash of
    the employee ID seeded with PERSON_LOCK_SEED, so distinct employees only
    share a lock on a hash collision, which delays but never corrupts an
    upsert. Needs PostgreSQL 11+ for hashtextextended(). Elsewhere the
    in-process person lock is the guard.
    """
    if session.get_bind().dialect.name != "postgresql":
        return
    session.execute(
        text("SELECT pg_advisory_xact_lock(hashtextextended(:employee_id, :seed))"),
        {"employee_id": employee_id, "seed": PERSON_LOCK_SEED},
    )
