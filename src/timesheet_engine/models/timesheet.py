"""Time entry and leave ledger models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from timesheet_engine.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from timesheet_engine.models.employee import Employee


class TimeEntry(Base, TimestampMixin):
    """Hours, session, adjustment or leave entry."""

    __tablename__ = "time_entry"

    time_entry_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    entry_date: Mapped[date] = mapped_column(Date, nullable=False)
    kind: Mapped[str] = mapped_column(String, nullable=False)
    hours: Mapped[Decimal | None] = mapped_column(Numeric(12, 4), nullable=True)
    sessions_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    students_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    service_context_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("service_context.service_context_id"),
        nullable=True,
    )
    leave_subtype: Mapped[str | None] = mapped_column(String, nullable=True)
    leave_fraction: Mapped[Decimal] = mapped_column(Numeric(4, 2), nullable=False, default=Decimal("1"))
    adjustment_amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    leave_value_override: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    rate_used: Mapped[Decimal | None] = mapped_column(Numeric(14, 4), nullable=True)
    total_payment: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    payable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="active")
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # employee_id:date:entry_type, shared by every row of one saved group
    idempotency_key: Mapped[str] = mapped_column(String, nullable=False)
    group_fingerprint: Mapped[str] = mapped_column(String, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "kind IN ('hours', 'session', 'adjustment', 'leave')",
            name="time_entry_kind_check",
        ),
        CheckConstraint("status IN ('active', 'trashed')", name="time_entry_status_check"),
        Index("time_entry_employee_date_idx", "employee_id", "entry_date"),
        Index("time_entry_idempotency_idx", "idempotency_key"),
    )

    employee: Mapped[Employee] = relationship(back_populates="time_entries")


class LeaveLedgerEntry(Base, TimestampMixin):
    """Append-only signed-days delta."""

    __tablename__ = "leave_ledger_entry"

    leave_ledger_entry_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    effective_date: Mapped[date] = mapped_column(Date, nullable=False)
    delta: Mapped[Decimal] = mapped_column(Numeric(8, 3), nullable=False)
    kind: Mapped[str] = mapped_column(String, nullable=False)
    time_entry_id: Mapped[UUID | None] = mapped_column(nullable=True)
    idempotency_key: Mapped[str | None] = mapped_column(String, nullable=True, unique=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (Index("leave_ledger_employee_date_idx", "employee_id", "effective_date"),)

    employee: Mapped[Employee] = relationship(back_populates="leave_ledger_entries")
