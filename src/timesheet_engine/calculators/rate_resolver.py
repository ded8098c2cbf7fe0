"""Effective-dated pay rate resolution."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from timesheet_engine.calculators.types import (
    GENERIC_SERVICE_CONTEXT_ID,
    Employee,
    RateReason,
    RateRecord,
)


@dataclass(frozen=True)
class RateResolution:
    """Outcome of a rate lookup.

    A resolved rate carries its effective date; a degraded one has rate 0
    and a reason.
    """

    rate: Decimal
    effective_date: date | None = None
    reason: RateReason | None = None
    service_context_id: UUID | None = None

    @property
    def is_resolved(self) -> bool:
        return self.reason is None and self.rate > 0

    @classmethod
    def unresolved(cls, reason: RateReason, service_context_id: UUID | None = None) -> RateResolution:
        return cls(rate=Decimal("0"), reason=reason, service_context_id=service_context_id)


class RateHistory:
    """Append-only store of effective-dated rate records.

    Records are grouped per (employee_id, service_context_id) and kept in
    write order, so a later record for the same effective date supersedes
    an earlier one.
    """

    def __init__(self, records: Iterable[RateRecord] = ()):
        self._tracks: dict[tuple[UUID, UUID], list[tuple[int, RateRecord]]] = {}
        self._written = 0
        for record in records:
            self.append(record)

    def append(self, record: RateRecord) -> None:
        """Record a rate. Existing records are never modified."""
        key = (record.employee_id, record.service_context_id)
        self._tracks.setdefault(key, []).append((self._written, record))
        self._written += 1

    def __len__(self) -> int:
        return self._written

    def records_for(self, employee_id: UUID, service_context_id: UUID) -> list[RateRecord]:
        """All records of one track in write order."""
        return [record for _, record in self._tracks.get((employee_id, service_context_id), [])]

    def latest_on_or_before(
        self,
        employee_id: UUID,
        service_context_id: UUID,
        as_of_date: date,
    ) -> RateRecord | None:
        """The record with the latest effective_date <= as_of_date.

        Ties on effective_date go to the most recently written record
        (explicit `sequence` first, then write order).
        """
        best: RateRecord | None = None
        best_key: tuple[date, int, int] | None = None

        for written, record in self._tracks.get((employee_id, service_context_id), []):
            if record.effective_date > as_of_date:
                continue
            key = (record.effective_date, record.sequence, written)
            if best_key is None or key > best_key:
                best = record
                best_key = key

        return best


class RateResolver:
    """Resolves the rate that applies to an employee on a date.

    Resolution order:
    1. Unknown employee -> UNKNOWN_EMPLOYEE
    2. Date before start_date -> NOT_YET_EMPLOYED (no history lookup)
    3. Hourly and global employees always use the generic service context
    4. Latest record with effective_date <= date
    5. Nothing found -> NO_RATE_DEFINED
    """

    def __init__(self, history: RateHistory, employees: dict[UUID, Employee]):
        self.history = history
        self.employees = employees

    def resolve(
        self,
        employee_id: UUID,
        as_of_date: date,
        service_context_id: UUID | None = None,
    ) -> RateResolution:
        employee = self.employees.get(employee_id)
        if employee is None:
            return RateResolution.unresolved(RateReason.UNKNOWN_EMPLOYEE)
        return self.resolve_for_employee(employee, as_of_date, service_context_id)

    def resolve_for_employee(
        self,
        employee: Employee,
        as_of_date: date,
        service_context_id: UUID | None = None,
    ) -> RateResolution:
        if employee.is_before_start(as_of_date):
            return RateResolution.unresolved(RateReason.NOT_YET_EMPLOYED)

        context_id = self.effective_context(employee, service_context_id)

        record = self.history.latest_on_or_before(employee.employee_id, context_id, as_of_date)
        if record is None:
            return RateResolution.unresolved(RateReason.NO_RATE_DEFINED, context_id)

        return RateResolution(
            rate=record.rate,
            effective_date=record.effective_date,
            service_context_id=context_id,
        )

    @staticmethod
    def effective_context(employee: Employee, service_context_id: UUID | None) -> UUID:
        """The service context a lookup actually uses for this employee."""
        if employee.employment_type.uses_generic_rate or service_context_id is None:
            return GENERIC_SERVICE_CONTEXT_ID
        return service_context_id
