"""Timesheet engine services."""

from timesheet_engine.services.state_machine import InvalidTransitionError, SaveStateMachine, SaveStatus
from timesheet_engine.services.leave_ledger import LeaveLedger, PostResult

__all__ = [
    "SaveStateMachine",
    "SaveStatus",
    "InvalidTransitionError",
    "LeaveLedger",
    "PostResult",
]
