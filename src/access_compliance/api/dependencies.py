"""FastAPI dependencies for dependency injection."""

from collections.abc import Generator
from typing import Annotated

from fastapi import Depends
from sqlalchemy.orm import Session, sessionmaker

from access_compliance.config import get_settings
from access_compliance.database import init_db
from access_compliance.sources import ComplianceSource, SqlViewComplianceSource


def get_session_factory() -> sessionmaker[Session]:
    """Get the process-wide session factory."""
    _, factory = init_db()
    return factory


def get_db_session(
    factory: Annotated[sessionmaker[Session], Depends(get_session_factory)],
) -> Generator[Session, None, None]:
    """Get database session dependency."""
    with factory() as session:
        yield session


def get_compliance_source(
    factory: Annotated[sessionmaker[Session], Depends(get_session_factory)],
) -> ComplianceSource:
    """Compliance source backed by the configured view."""
    return SqlViewComplianceSource(factory.kw["bind"], get_settings().compliance_source_view)


# Type aliases for cleaner dependency injection
SessionFactory = Annotated[sessionmaker[Session], Depends(get_session_factory)]
DbSession = Annotated[Session, Depends(get_db_session)]
Source = Annotated[ComplianceSource, Depends(get_compliance_source)]
