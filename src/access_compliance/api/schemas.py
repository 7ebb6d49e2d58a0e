"""Pydantic schemas for API request/response models."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Eligibility schemas
# ============================================================================


class EligibilityUpdate(BaseModel):
    """Schema for recording an eligibility evaluation."""

    eligible: bool
    reason: str | None = Field(default=None, max_length=400)


class EligibilityResponse(BaseModel):
    """Current eligibility for one employee."""

    model_config = ConfigDict(from_attributes=True)

    employee_id: str
    card_number: str | None = None
    eligible: bool
    effective_ts: datetime
    last_checked_ts: datetime


class TransitionResponse(BaseModel):
    """One eligibility history entry."""

    model_config = ConfigDict(from_attributes=True)

    eligibility_history_id: int
    old_eligible: bool
    new_eligible: bool
    changed_ts: datetime
    reason: str | None = None


class EligibilityHistoryResponse(BaseModel):
    """Eligibility history for one employee, oldest first."""

    employee_id: str
    items: list[TransitionResponse]
    total: int


# ============================================================================
# Access delta schemas
# ============================================================================


class AccessDeltaRowResponse(BaseModel):
    """One access delta row."""

    model_config = ConfigDict(from_attributes=True)

    run_ts: datetime
    employee_id: str
    card_number: str | None = None
    action_type: str
    reason: str | None = None


class AccessDeltaListResponse(BaseModel):
    """Access delta rows."""

    items: list[AccessDeltaRowResponse]
    total: int


class RecomputeResponse(BaseModel):
    """Outcome of a recompute run."""

    model_config = ConfigDict(from_attributes=True)

    run_ts: datetime | None = None
    facts_read: int
    facts_discarded: int
    rows_deleted: int
    rows_inserted: int
    final_state: str
    was_empty: bool


# ============================================================================
# Error schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
    code: str | int | None = None
