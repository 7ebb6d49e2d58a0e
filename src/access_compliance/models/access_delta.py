"""Access delta reporting table."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from access_compliance.models.base import Base
from access_compliance.models.person import CARD_NUMBER_MAX, EMPLOYEE_ID_MAX, REASON_MAX


class AccessDelta(Base):
    """Computed access action for one employee in one recompute run.

    Keyed by business identifiers rather than person_id so downstream
    consumers can address rows by EmployeeID/CardNumber.
    """

    __tablename__ = "access_delta"

    access_delta_id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )
    run_ts: Mapped[datetime] = mapped_column(nullable=False)
    employee_id: Mapped[str] = mapped_column(String(EMPLOYEE_ID_MAX), nullable=False)
    card_number: Mapped[str | None] = mapped_column(String(CARD_NUMBER_MAX), nullable=True)
    action_type: Mapped[str] = mapped_column(
        String(40),
        ForeignKey("access_action_type.action_type_code"),
        nullable=False,
    )
    reason: Mapped[str | None] = mapped_column(String(REASON_MAX), nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "run_ts",
            "employee_id",
            "action_type",
            name="access_delta_run_employee_action_unique",
        ),
        Index("ix_access_delta_employee_run", "employee_id", "run_ts"),
    )
