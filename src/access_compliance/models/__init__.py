"""ORM models for the access compliance engine."""

from access_compliance.models.access_delta import AccessDelta
from access_compliance.models.base import Base, CreatedTimestampMixin
from access_compliance.models.person import Eligibility, EligibilityHistory, Person
from access_compliance.models.reference import (
    AccessAction,
    AccessActionType,
    seed_action_types,
)

__all__ = [
    "AccessAction",
    "AccessActionType",
    "AccessDelta",
    "Base",
    "CreatedTimestampMixin",
    "Eligibility",
    "EligibilityHistory",
    "Person",
    "seed_action_types",
]
