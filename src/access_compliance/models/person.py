"""Person, eligibility state and eligibility history models."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from access_compliance.models.base import Base, CreatedTimestampMixin

EMPLOYEE_ID_MAX = 50
CARD_NUMBER_MAX = 50
REASON_MAX = 400


class Person(Base, CreatedTimestampMixin):
    """Identity record keyed by the business EmployeeID."""

    __tablename__ = "person"

    person_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    employee_id: Mapped[str] = mapped_column(
        String(EMPLOYEE_ID_MAX), nullable=False, unique=True, index=True
    )
    card_number: Mapped[str | None] = mapped_column(String(CARD_NUMBER_MAX), nullable=True)

    # Relationships
    eligibility: Mapped[Eligibility | None] = relationship(
        back_populates="person", uselist=False
    )
    history: Mapped[list[EligibilityHistory]] = relationship(
        back_populates="person",
        order_by="EligibilityHistory.eligibility_history_id",
    )


class Eligibility(Base):
    """Current eligibility for one person.

    effective_ts moves only when the value changes; last_checked_ts moves on
    every evaluation.
    """

    __tablename__ = "eligibility"

    person_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("person.person_id"),
        primary_key=True,
    )
    eligible: Mapped[bool] = mapped_column(Boolean, nullable=False)
    effective_ts: Mapped[datetime] = mapped_column(nullable=False)
    last_checked_ts: Mapped[datetime] = mapped_column(nullable=False)

    __table_args__ = (
        CheckConstraint(
            "effective_ts <= last_checked_ts",
            name="eligibility_effective_before_checked",
        ),
    )

    person: Mapped[Person] = relationship(back_populates="eligibility")


class EligibilityHistory(Base):
    """Append-only record of an actual eligibility change."""

    __tablename__ = "eligibility_history"

    eligibility_history_id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )
    person_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("person.person_id"),
        nullable=False,
    )
    old_eligible: Mapped[bool] = mapped_column(Boolean, nullable=False)
    new_eligible: Mapped[bool] = mapped_column(Boolean, nullable=False)
    changed_ts: Mapped[datetime] = mapped_column(nullable=False)
    reason: Mapped[str | None] = mapped_column(String(REASON_MAX), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "old_eligible <> new_eligible",
            name="eligibility_history_is_change",
        ),
        Index("ix_eligibility_history_person_changed", "person_id", "changed_ts"),
    )

    person: Mapped[Person] = relationship(back_populates="history")
