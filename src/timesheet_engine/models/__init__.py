"""ORM models."""

from timesheet_engine.models.base import Base, TimestampMixin
from timesheet_engine.models.employee import Employee, RateRecord, ServiceContext
from timesheet_engine.models.timesheet import LeaveLedgerEntry, TimeEntry

__all__ = [
    "Base",
    "TimestampMixin",
    "Employee",
    "RateRecord",
    "ServiceContext",
    "LeaveLedgerEntry",
    "TimeEntry",
]
