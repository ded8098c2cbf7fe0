"""Timesheet valuation calculators."""

from timesheet_engine.calculators.line_builder import EntryLineBuilder
from timesheet_engine.calculators.payment_calculator import EntryAmount, PaymentCalculator
from timesheet_engine.calculators.rate_resolver import RateHistory, RateResolution, RateResolver

__all__ = [
    "EntryAmount",
    "EntryLineBuilder",
    "PaymentCalculator",
    "RateHistory",
    "RateResolution",
    "RateResolver",
]
