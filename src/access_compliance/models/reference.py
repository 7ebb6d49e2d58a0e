"""Reference vocabulary for access delta actions."""

from __future__ import annotations

from enum import Enum

from sqlalchemy import Boolean, String, select
from sqlalchemy.orm import Mapped, Session, mapped_column

from access_compliance.models.base import Base


class AccessAction(str, Enum):
    """Known access delta action codes."""

    RESTRICT = "RESTRICT"
    GRANT = "GRANT"
    REVOKE = "REVOKE"
    NOCHANGE = "NOCHANGE"


ACTION_TYPE_NAMES: dict[AccessAction, str] = {
    AccessAction.RESTRICT: "Restrict Access",
    AccessAction.GRANT: "Grant Access",
    AccessAction.REVOKE: "Revoke Access",
    AccessAction.NOCHANGE: "No Change",
}


class AccessActionType(Base):
    """Row of the action vocabulary; access_delta.action_type references it."""

    __tablename__ = "access_action_type"

    action_type_code: Mapped[str] = mapped_column(String(40), primary_key=True)
    action_type_name: Mapped[str] = mapped_column(String(80), nullable=False, unique=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


def seed_action_types(session: Session) -> int:
    """Insert any missing vocabulary rows. Returns count inserted."""
    existing = set(session.scalars(select(AccessActionType.action_type_code)))
    inserted = 0
    for action, name in ACTION_TYPE_NAMES.items():
        if action.value in existing:
            continue
        session.add(AccessActionType(action_type_code=action.value, action_type_name=name))
        inserted += 1
    session.flush()
    return inserted
