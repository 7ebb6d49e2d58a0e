"""Access compliance services."""

from access_compliance.services.access_delta_service import (
    AccessDeltaQueries,
    AccessDeltaRecomputer,
    DeltaCandidate,
    RecomputeSummary,
)
from access_compliance.services.eligibility_service import (
    EligibilityQueries,
    EligibilityReconciler,
    UpsertOutcome,
)
from access_compliance.services.locking_service import PersonLockRegistry
from access_compliance.services.state_machine import (
    InvalidTransitionError,
    RecomputeState,
    RecomputeStateMachine,
)

__all__ = [
    "AccessDeltaQueries",
    "AccessDeltaRecomputer",
    "DeltaCandidate",
    "EligibilityQueries",
    "EligibilityReconciler",
    "InvalidTransitionError",
    "PersonLockRegistry",
    "RecomputeState",
    "RecomputeStateMachine",
    "RecomputeSummary",
    "UpsertOutcome",
]
