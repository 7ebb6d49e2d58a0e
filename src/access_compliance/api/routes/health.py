"""Health check endpoints.

/health reports database reachability, whether the schema is in place and
whether the compliance source can be read, so a scheduler can tell a
broken deployment from a transient outage before triggering a recompute.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Response, status
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from access_compliance.api.dependencies import DbSession, SessionFactory, Source
from access_compliance.database import missing_tables
from access_compliance.models import Base

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    timestamp: datetime
    database: str
    missing_tables: list[str]
    compliance_source: str


class ReadinessResponse(BaseModel):
    status: str
    missing_tables: list[str] = []


def _missing(factory) -> list[str]:
    return missing_tables(factory.kw["bind"], sorted(Base.metadata.tables))


@router.get("/health", response_model=HealthResponse)
def health_check(db: DbSession, factory: SessionFactory, source: Source) -> HealthResponse:
    """Check database, schema and compliance source."""
    try:
        db.execute(text("SELECT 1"))
        database = "healthy"
        missing = _missing(factory)
    except SQLAlchemyError:
        logger.warning("Database health probe failed", exc_info=True)
        database = "unhealthy"
        missing = []

    source_status = "available" if source.is_available() else "unavailable"
    healthy = database == "healthy" and not missing and source_status == "available"

    return HealthResponse(
        status="healthy" if healthy else "degraded",
        timestamp=datetime.now(timezone.utc),
        database=database,
        missing_tables=missing,
        compliance_source=source_status,
    )


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    responses={503: {"model": ReadinessResponse}},
)
def readiness_check(factory: SessionFactory, response: Response) -> ReadinessResponse:
    """Ready once every table exists."""
    try:
        missing = _missing(factory)
    except SQLAlchemyError:
        logger.warning("Readiness probe could not inspect schema", exc_info=True)
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return ReadinessResponse(status="unreachable")
    if missing:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return ReadinessResponse(status="not_ready", missing_tables=missing)
    return ReadinessResponse(status="ready")


@router.get("/live")
def liveness_check() -> dict[str, str]:
    """Process is up; no dependencies checked."""
    return {"status": "alive"}
