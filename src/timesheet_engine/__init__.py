"""Timesheet valuation and leave accounting engine."""

__version__ = "0.1.0"
