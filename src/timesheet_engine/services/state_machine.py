"""Save attempt state machine with transition validation."""

from __future__ import annotations

from enum import Enum


class SaveStatus(str, Enum):
    """Status of one (employee, date) write attempt."""

    DRAFT = "draft"
    VALIDATED = "validated"
    COMMITTED = "committed"
    REJECTED = "rejected"


class InvalidTransitionError(Exception):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class SaveStateMachine:
    """State machine for save attempts.

    Allowed transitions:
    - draft → validated
    - draft → rejected
    - validated → committed
    - validated → rejected
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        SaveStatus.DRAFT: [SaveStatus.VALIDATED, SaveStatus.REJECTED],
        SaveStatus.VALIDATED: [SaveStatus.COMMITTED, SaveStatus.REJECTED],
        SaveStatus.COMMITTED: [],
        SaveStatus.REJECTED: [],
    }

    TERMINAL = {SaveStatus.COMMITTED, SaveStatus.REJECTED}

    def __init__(self, status: SaveStatus = SaveStatus.DRAFT):
        self.status = status
        self.history: list[SaveStatus] = [status]

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status, to_status)

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        return status in cls.TERMINAL

    def advance(self, to_status: SaveStatus) -> SaveStatus:
        """Move to `to_status`, recording the step."""
        self.validate_transition(self.status, to_status)
        self.status = to_status
        self.history.append(to_status)
        return to_status
