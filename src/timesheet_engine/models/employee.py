"""Employee, service context and rate history models."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, Date, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from timesheet_engine.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from timesheet_engine.models.timesheet import LeaveLedgerEntry, TimeEntry


class Employee(Base, TimestampMixin):
    """Employee record."""

    __tablename__ = "employee"

    employee_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False, default="")
    employment_type: Mapped[str] = mapped_column(String, nullable=False)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    employment_scope: Mapped[Decimal | None] = mapped_column(Numeric(6, 4), nullable=True)
    annual_leave_days: Mapped[Decimal] = mapped_column(Numeric(8, 3), nullable=False, default=Decimal("0"))
    # Comma-separated weekday tokens, e.g. "SUN,MON,TUE,WED,THU"
    working_days: Mapped[str | None] = mapped_column(String, nullable=True)
    leave_pay_method: Mapped[str | None] = mapped_column(String, nullable=True)
    leave_fixed_day_rate: Mapped[Decimal | None] = mapped_column(Numeric(14, 4), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "employment_type IN ('hourly', 'global', 'instructor')",
            name="employee_employment_type_check",
        ),
    )

    # Relationships
    rate_records: Mapped[list[RateRecord]] = relationship(back_populates="employee")
    time_entries: Mapped[list[TimeEntry]] = relationship(back_populates="employee")
    leave_ledger_entries: Mapped[list[LeaveLedgerEntry]] = relationship(back_populates="employee")


class ServiceContext(Base, TimestampMixin):
    """Billable activity for per-session employees."""

    __tablename__ = "service_context"

    service_context_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=60)
    payment_model: Mapped[str] = mapped_column(String, nullable=False, default="per_meeting")

    __table_args__ = (
        CheckConstraint(
            "payment_model IN ('per_meeting', 'per_student')",
            name="service_context_payment_model_check",
        ),
    )


class RateRecord(Base, TimestampMixin):
    """Effective-dated rate. Rows are never updated; corrections are new rows.

    `service_context_id` is not a foreign key: hourly and global rates use
    the all-zero generic context, which has no service row.
    """

    __tablename__ = "rate_record"

    rate_record_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    service_context_id: Mapped[UUID] = mapped_column(nullable=False)
    effective_date: Mapped[date] = mapped_column(Date, nullable=False)
    rate: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    # Write order within one effective date; higher wins
    revision: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint("rate >= 0", name="rate_record_rate_check"),
        Index("rate_record_lookup_idx", "employee_id", "service_context_id", "effective_date"),
    )

    employee: Mapped[Employee] = relationship(back_populates="rate_records")
