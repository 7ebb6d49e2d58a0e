"""Access delta API endpoints."""

from datetime import datetime

from fastapi import APIRouter, status

from access_compliance.api.dependencies import SessionFactory, Source
from access_compliance.api.schemas import (
    AccessDeltaListResponse,
    AccessDeltaRowResponse,
    ErrorResponse,
    RecomputeResponse,
)
from access_compliance.services import AccessDeltaQueries, AccessDeltaRecomputer

router = APIRouter(prefix="/access-delta", tags=["access-delta"])


@router.post(
    "/recompute",
    response_model=RecomputeResponse,
    status_code=status.HTTP_200_OK,
    responses={
        422: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
def recompute_access_delta(factory: SessionFactory, source: Source) -> RecomputeResponse:
    """Recompute RESTRICT rows from the compliance source."""
    recomputer = AccessDeltaRecomputer(factory, source)
    recomputer.recompute()
    summary = recomputer.last_summary
    return RecomputeResponse(
        run_ts=summary.run_ts,
        facts_read=summary.facts_read,
        facts_discarded=summary.facts_discarded,
        rows_deleted=summary.rows_deleted,
        rows_inserted=summary.rows_inserted,
        final_state=summary.final_state.value,
        was_empty=summary.was_empty,
    )


@router.get("", response_model=AccessDeltaListResponse)
def list_access_delta(
    factory: SessionFactory,
    employee_id: str | None = None,
    run_from: datetime | None = None,
    run_to: datetime | None = None,
) -> AccessDeltaListResponse:
    """List access delta rows by employee and/or run timestamp range."""
    rows = AccessDeltaQueries(factory).list_rows(
        employee_id=employee_id,
        run_from=run_from,
        run_to=run_to,
    )
    return AccessDeltaListResponse(
        items=[AccessDeltaRowResponse.model_validate(r) for r in rows],
        total=len(rows),
    )
