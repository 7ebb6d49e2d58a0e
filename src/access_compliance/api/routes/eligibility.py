"""Eligibility API endpoints."""

from typing import Annotated

from fastapi import APIRouter, HTTPException, Path, Response, status

from access_compliance.api.dependencies import SessionFactory
from access_compliance.api.schemas import (
    EligibilityHistoryResponse,
    EligibilityResponse,
    EligibilityUpdate,
    ErrorResponse,
    TransitionResponse,
)
from access_compliance.services import EligibilityQueries, EligibilityReconciler

router = APIRouter(prefix="/eligibility", tags=["eligibility"])

EmployeeId = Annotated[str, Path(min_length=1, max_length=50)]


@router.put(
    "/{employee_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={422: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
def upsert_eligibility(
    factory: SessionFactory,
    employee_id: EmployeeId,
    payload: EligibilityUpdate,
) -> Response:
    """Record an eligibility evaluation; logs a transition only on change."""
    EligibilityReconciler(factory).upsert(employee_id, payload.eligible, payload.reason)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/{employee_id}",
    response_model=EligibilityResponse,
    responses={404: {"model": ErrorResponse}},
)
def get_eligibility(factory: SessionFactory, employee_id: EmployeeId) -> EligibilityResponse:
    """Get current eligibility for an employee."""
    state = EligibilityQueries(factory).get_state(employee_id)
    if state is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No eligibility recorded for {employee_id}",
        )
    return EligibilityResponse.model_validate(state)


@router.get(
    "/{employee_id}/history",
    response_model=EligibilityHistoryResponse,
)
def get_eligibility_history(
    factory: SessionFactory,
    employee_id: EmployeeId,
) -> EligibilityHistoryResponse:
    """List eligibility transitions, oldest first."""
    transitions = EligibilityQueries(factory).get_history(employee_id)
    return EligibilityHistoryResponse(
        employee_id=employee_id,
        items=[TransitionResponse.model_validate(t) for t in transitions],
        total=len(transitions),
    )
