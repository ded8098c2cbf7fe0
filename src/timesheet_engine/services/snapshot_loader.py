"""Build an EngineSnapshot from persisted rows."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from timesheet_engine.calculators.types import (
    DEFAULT_WORKING_DAYS,
    Employee,
    EngineSnapshot,
    EmploymentType,
    EntryKind,
    EntryStatus,
    LeaveLedgerEntry,
    LeaveSubtype,
    LedgerEntryKind,
    PaymentModel,
    RateRecord,
    ServiceContext,
    TimeEntry,
)
from timesheet_engine.models import employee as employee_models
from timesheet_engine.models import timesheet as timesheet_models

logger = logging.getLogger(__name__)


def parse_working_days(value: str | None) -> tuple[str, ...]:
    """Parse a comma-separated weekday list; empty means the default week."""
    if not value:
        return DEFAULT_WORKING_DAYS
    tokens = tuple(t.strip().upper()[:3] for t in value.split(",") if t.strip())
    return tokens or DEFAULT_WORKING_DAYS


def employee_from_row(row: employee_models.Employee) -> Employee:
    return Employee(
        employee_id=row.employee_id,
        employment_type=EmploymentType(row.employment_type),
        start_date=row.start_date,
        is_active=row.is_active,
        employment_scope=row.employment_scope,
        annual_leave_days=row.annual_leave_days or Decimal("0"),
        name=row.name or "",
        working_days=parse_working_days(row.working_days),
        leave_pay_method=row.leave_pay_method,
        leave_fixed_day_rate=row.leave_fixed_day_rate,
    )


def service_from_row(row: employee_models.ServiceContext) -> ServiceContext:
    return ServiceContext(
        service_context_id=row.service_context_id,
        name=row.name,
        duration_minutes=row.duration_minutes,
        payment_model=PaymentModel(row.payment_model),
    )


def entry_from_row(row: timesheet_models.TimeEntry) -> TimeEntry:
    return TimeEntry(
        entry_id=row.time_entry_id,
        employee_id=row.employee_id,
        entry_date=row.entry_date,
        kind=EntryKind(row.kind),
        hours=row.hours,
        sessions_count=row.sessions_count,
        students_count=row.students_count,
        service_context_id=row.service_context_id,
        leave_subtype=LeaveSubtype(row.leave_subtype) if row.leave_subtype else None,
        leave_fraction=row.leave_fraction,
        adjustment_amount=row.adjustment_amount,
        leave_value_override=row.leave_value_override,
        rate_used=row.rate_used,
        total_payment=row.total_payment,
        payable=row.payable,
        notes=row.notes,
        status=EntryStatus(row.status),
        deleted_at=row.deleted_at,
    )


def ledger_from_row(row: timesheet_models.LeaveLedgerEntry) -> LeaveLedgerEntry:
    return LeaveLedgerEntry(
        employee_id=row.employee_id,
        effective_date=row.effective_date,
        delta=row.delta,
        kind=LedgerEntryKind(row.kind),
        entry_id=row.leave_ledger_entry_id,
        time_entry_id=row.time_entry_id,
        idempotency_key=row.idempotency_key,
        notes=row.notes,
    )


def rates_from_rows(rows: Iterable[employee_models.RateRecord]) -> tuple[RateRecord, ...]:
    """Convert rate rows already sorted in write order.

    The position in that order becomes the record's sequence, so the later
    of two same-day records wins.
    """
    return tuple(
        RateRecord(
            employee_id=row.employee_id,
            service_context_id=row.service_context_id,
            effective_date=row.effective_date,
            rate=row.rate,
            notes=row.notes,
            sequence=position,
            created_at=row.created_at,
        )
        for position, row in enumerate(rows)
    )


class SnapshotLoader:
    """Reads everything one engine call needs in a single pass."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def load(self, employee_ids: Iterable[UUID] | None = None) -> EngineSnapshot:
        """Load a snapshot, optionally restricted to some employees.

        Trashed entries are loaded too; the engine filters them.
        """
        ids = list(employee_ids) if employee_ids is not None else None

        emp_query = select(employee_models.Employee)
        rate_query = select(employee_models.RateRecord).order_by(
            employee_models.RateRecord.effective_date,
            employee_models.RateRecord.revision,
            employee_models.RateRecord.created_at,
        )
        entry_query = select(timesheet_models.TimeEntry).order_by(
            timesheet_models.TimeEntry.entry_date,
            timesheet_models.TimeEntry.created_at,
        )
        ledger_query = select(timesheet_models.LeaveLedgerEntry).order_by(
            timesheet_models.LeaveLedgerEntry.effective_date,
            timesheet_models.LeaveLedgerEntry.created_at,
        )
        if ids is not None:
            emp_query = emp_query.where(employee_models.Employee.employee_id.in_(ids))
            rate_query = rate_query.where(employee_models.RateRecord.employee_id.in_(ids))
            entry_query = entry_query.where(timesheet_models.TimeEntry.employee_id.in_(ids))
            ledger_query = ledger_query.where(timesheet_models.LeaveLedgerEntry.employee_id.in_(ids))

        employees = (await self.session.execute(emp_query)).scalars().all()
        services = (await self.session.execute(select(employee_models.ServiceContext))).scalars().all()
        rates = (await self.session.execute(rate_query)).scalars().all()
        entries = (await self.session.execute(entry_query)).scalars().all()
        ledger = (await self.session.execute(ledger_query)).scalars().all()

        snapshot = EngineSnapshot(
            employees={row.employee_id: employee_from_row(row) for row in employees},
            services={row.service_context_id: service_from_row(row) for row in services},
            rates=rates_from_rows(rates),
            entries=tuple(entry_from_row(row) for row in entries),
            ledger=tuple(ledger_from_row(row) for row in ledger),
        )
        logger.debug("Loaded snapshot %s", snapshot.to_summary())
        return snapshot
