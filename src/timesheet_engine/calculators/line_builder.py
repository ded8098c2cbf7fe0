"""Money rounding, idempotency keys and deterministic entry fingerprints."""

from __future__ import annotations

import hashlib
import json
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable
from uuid import UUID

from timesheet_engine.calculators.types import LeaveLedgerEntry, TimeEntry


class EntryLineBuilder:
    """Builds commit-ready values with deterministic hashing for idempotency.

    Rounding:
    - Currency to 2 decimals at persistence and report boundaries
    - Internal compute at full Decimal precision
    - Leave days to 3 decimals
    """

    OUTPUT_PRECISION = Decimal("0.01")
    DAYS_PRECISION = Decimal("0.001")

    @staticmethod
    def round_to_cents(amount: Decimal) -> Decimal:
        """Round amount to 2 decimal places (cents)."""
        return amount.quantize(EntryLineBuilder.OUTPUT_PRECISION, rounding=ROUND_HALF_UP)

    @staticmethod
    def round_days(days: Decimal) -> Decimal:
        """Round a leave-day quantity to 3 decimal places."""
        return days.quantize(EntryLineBuilder.DAYS_PRECISION, rounding=ROUND_HALF_UP)

    @staticmethod
    def idempotency_key(employee_id: UUID, entry_date: date, entry_type: str) -> str:
        """Key identifying one committed entry group per kind per day."""
        return f"{employee_id}:{entry_date.isoformat()}:{entry_type}"

    @staticmethod
    def ledger_key(time_entry_id: UUID, kind: str) -> str:
        """Idempotency key of the ledger entry paired with a time entry."""
        return f"ledger:{time_entry_id}:{kind}"

    @staticmethod
    def entry_canonical_dict(entry: TimeEntry) -> dict[str, Any]:
        """Canonical dict of an entry's defining fields (ids excluded)."""

        def _s(value: Any) -> str | None:
            return None if value is None else str(value)

        return {
            "employee_id": str(entry.employee_id),
            "entry_date": entry.entry_date.isoformat(),
            "kind": entry.kind.value,
            "hours": _s(entry.hours),
            "sessions_count": _s(entry.sessions_count),
            "students_count": _s(entry.students_count),
            "service_context_id": _s(entry.service_context_id),
            "leave_subtype": entry.leave_subtype.value if entry.leave_subtype else None,
            "leave_fraction": str(entry.leave_fraction),
            "adjustment_amount": _s(entry.adjustment_amount),
            "leave_value_override": _s(entry.leave_value_override),
            "rate_used": _s(entry.rate_used),
            "total_payment": _s(entry.total_payment),
            "payable": entry.payable,
        }

    @staticmethod
    def compute_group_fingerprint(entries: Iterable[TimeEntry]) -> str:
        """Deterministic hash of an entry group, independent of entry order.

        Identical payloads produce identical fingerprints, so a retried save
        can be recognized as a no-op.
        """
        canonical = sorted(
            (EntryLineBuilder.entry_canonical_dict(e) for e in entries),
            key=lambda d: json.dumps(d, sort_keys=True),
        )
        json_str = json.dumps(canonical, sort_keys=True)
        return hashlib.sha256(json_str.encode()).hexdigest()[:32]

    @staticmethod
    def sum_ledger_deltas(entries: Iterable[LeaveLedgerEntry]) -> Decimal:
        total = Decimal("0")
        for entry in entries:
            total += entry.delta
        return total
