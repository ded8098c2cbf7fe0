"""Leave and leave-pay policy objects.

Policies are supplied by the settings store as loose JSON documents.
`from_mapping` normalizes them into frozen, validated dataclasses; every
field has an explicit default so an empty document is a valid policy.

Pattern:
    policy = LeavePolicy.from_mapping(settings_row["leave_policy"])
    pay_policy = LeavePayPolicy.from_mapping(settings_row["leave_pay_policy"])
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any, Mapping

from timesheet_engine.calculators.types import LeaveSubtype


class LeavePayMethod(str, Enum):
    """How a paid leave day is valued."""

    LEGAL = "legal"
    AVERAGE = "average"
    FIXED = "fixed"


_METHOD_TOKENS: dict[str, LeavePayMethod] = {
    "legal": LeavePayMethod.LEGAL,
    "average": LeavePayMethod.AVERAGE,
    "avg_hourly_x_avg_day_hours": LeavePayMethod.AVERAGE,
    "fixed": LeavePayMethod.FIXED,
    "fixed_rate": LeavePayMethod.FIXED,
}

_HOLIDAY_TYPE_SUBTYPES: dict[str, LeaveSubtype | None] = {
    "employee_paid": LeaveSubtype.EMPLOYEE_FUNDED,
    "half_day": LeaveSubtype.EMPLOYEE_FUNDED,
    "system_paid": LeaveSubtype.SYSTEM_FUNDED,
    "holiday_unpaid": LeaveSubtype.UNPAID,
    "vacation_unpaid": LeaveSubtype.UNPAID,
    "unpaid": LeaveSubtype.UNPAID,
    "mixed": None,
}


def parse_leave_pay_method(value: Any) -> LeavePayMethod | None:
    """Return the method for a stored token, or None when unrecognized."""
    if isinstance(value, LeavePayMethod):
        return value
    if not isinstance(value, str):
        return None
    return _METHOD_TOKENS.get(value.strip().lower())


def _to_decimal(value: Any) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    return result if result.is_finite() else None


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)


def _load(value: Any) -> Mapping[str, Any]:
    if not value:
        return {}
    if isinstance(value, str):
        parsed = json.loads(value)
        if not isinstance(parsed, dict):
            raise ValueError("Policy JSON must be an object")
        return parsed
    return value


@dataclass(frozen=True)
class HolidayRule:
    """A dated (optionally yearly-recurring) leave day rule."""

    name: str
    leave_type: str
    start_date: date
    end_date: date
    recurrence: str | None = None
    half_day: bool = False

    def __post_init__(self) -> None:
        if self.end_date < self.start_date:
            raise ValueError(f"Holiday rule '{self.name}' ends before it starts")
        if self.recurrence not in (None, "yearly"):
            raise ValueError(f"Unsupported holiday recurrence: {self.recurrence}")

    @property
    def leave_subtype(self) -> LeaveSubtype | None:
        return _HOLIDAY_TYPE_SUBTYPES.get(self.leave_type)

    def matches(self, day: date) -> bool:
        if self.recurrence == "yearly":
            start = (self.start_date.month, self.start_date.day)
            end = (self.end_date.month, self.end_date.day)
            return start <= (day.month, day.day) <= end
        return self.start_date <= day <= self.end_date

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> HolidayRule:
        start = raw.get("start_date") or raw.get("date")
        end = raw.get("end_date") or raw.get("date") or start
        if not start:
            raise ValueError("Holiday rule requires a start_date")
        leave_type = raw.get("type") or "employee_paid"
        return cls(
            name=raw.get("name") or "",
            leave_type=leave_type,
            start_date=date.fromisoformat(str(start)[:10]),
            end_date=date.fromisoformat(str(end)[:10]),
            recurrence=raw.get("recurrence") or None,
            half_day=_to_bool(raw.get("half_day")) or leave_type == "half_day",
        )


@dataclass(frozen=True)
class LeavePolicy:
    """
    Leave balance rules.

    Attributes:
        allow_half_day: Half-day leave requests are accepted. Default False.
        allow_negative_balance: Balance may drop below zero down to the
            floor. Default False.
        negative_floor_days: Lowest permitted balance. Always read as a
            non-positive number (5 and -5 both mean -5). Default 0.
        carryover_enabled: Unused balance rolls into the next year.
        carryover_max_days: Cap on the rolled-over amount. Default 0.
        holiday_rules: Dated leave rules. Default empty.
    """

    allow_half_day: bool = False
    allow_negative_balance: bool = False
    negative_floor_days: Decimal = Decimal("0")
    carryover_enabled: bool = False
    carryover_max_days: Decimal = Decimal("0")
    holiday_rules: tuple[HolidayRule, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if self.carryover_max_days < 0:
            raise ValueError("carryover_max_days cannot be negative")

    @property
    def negative_floor(self) -> Decimal:
        """The floor as a non-positive number of days."""
        return -abs(self.negative_floor_days)

    def find_holiday(self, day: date) -> HolidayRule | None:
        """Return the first holiday rule covering `day`."""
        for rule in self.holiday_rules:
            if rule.matches(day):
                return rule
        return None

    @classmethod
    def from_mapping(cls, value: Mapping[str, Any] | str | None) -> LeavePolicy:
        raw = _load(value)
        rules = raw.get("holiday_rules") or []
        return cls(
            allow_half_day=_to_bool(raw.get("allow_half_day")),
            allow_negative_balance=_to_bool(raw.get("allow_negative_balance")),
            negative_floor_days=_to_decimal(raw.get("negative_floor_days")) or Decimal("0"),
            carryover_enabled=_to_bool(raw.get("carryover_enabled")),
            carryover_max_days=max(
                Decimal("0"), _to_decimal(raw.get("carryover_max_days")) or Decimal("0")
            ),
            holiday_rules=tuple(HolidayRule.from_mapping(r) for r in rules if r),
        )


@dataclass(frozen=True)
class LeavePayPolicy:
    """
    Leave day valuation rules.

    Attributes:
        default_method: Valuation method when the employee has no override.
        lookback_months: Length of the trailing history window. Must be at
            least 1. Default 3.
        legal_allow_12m_if_better: Under the legal method, also compute the
            12-month average and keep the larger value.
        fixed_rate_default: Day value for the fixed method.
        confirm_fallback: When a leave day can only be valued from the
            current rate, saving requires an explicit override amount.
    """

    default_method: LeavePayMethod = LeavePayMethod.LEGAL
    lookback_months: int = 3
    legal_allow_12m_if_better: bool = False
    fixed_rate_default: Decimal | None = None
    confirm_fallback: bool = True

    def __post_init__(self) -> None:
        if self.lookback_months < 1:
            raise ValueError("lookback_months must be at least 1")
        if self.fixed_rate_default is not None and self.fixed_rate_default < 0:
            raise ValueError("fixed_rate_default cannot be negative")

    def method_for(self, employee_method: str | None) -> LeavePayMethod:
        """Employee override when valid, policy default otherwise."""
        return parse_leave_pay_method(employee_method) or self.default_method

    @classmethod
    def from_mapping(cls, value: Mapping[str, Any] | str | None) -> LeavePayPolicy:
        raw = _load(value)
        lookback = _to_decimal(raw.get("lookback_months"))
        fixed = _to_decimal(raw.get("fixed_rate_default"))
        confirm = raw.get("confirm_fallback")
        return cls(
            default_method=parse_leave_pay_method(raw.get("default_method")) or LeavePayMethod.LEGAL,
            lookback_months=(
                max(1, int(lookback.quantize(Decimal("1"), rounding=ROUND_HALF_UP)))
                if lookback and lookback > 0
                else 3
            ),
            legal_allow_12m_if_better=_to_bool(raw.get("legal_allow_12m_if_better")),
            fixed_rate_default=fixed if fixed is not None and fixed >= 0 else None,
            confirm_fallback=True if confirm is None else _to_bool(confirm),
        )


DEFAULT_LEAVE_POLICY = LeavePolicy()
DEFAULT_LEAVE_PAY_POLICY = LeavePayPolicy()
