"""Error taxonomy for the scheduling core.

Only local, fail-closed conditions are exceptions. Remote calendar failures
and missing external accounts are ordinary values (see
``coachsync.scheduling.models.SyncStatus`` and
``coachsync.scheduling.calendar.CallStatus``) and are never raised.
"""

from __future__ import annotations

from typing import Any


class SchedulingError(Exception):
    """Base error for scheduling operations."""


class ValidationError(SchedulingError, ValueError):
    """Raised for malformed input, before any write happens."""


class NotFoundError(SchedulingError):
    """Raised when an assignment, template or athlete does not exist."""

    def __init__(self, kind: str, identifier: Any) -> None:
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} {identifier!r} not found")


class InvalidTransitionError(SchedulingError):
    """Raised when a status change violates the assignment lifecycle."""

    def __init__(self, current: str, requested: str) -> None:
        self.current = current
        self.requested = requested
        super().__init__(f"cannot transition assignment from {current!r} to {requested!r}")


class ConcurrencyConflictError(SchedulingError):
    """Raised when a row was changed or removed between read and write."""

    def __init__(self, assignment_id: int, message: str | None = None) -> None:
        self.assignment_id = assignment_id
        super().__init__(
            message or f"assignment {assignment_id} was modified concurrently; retry the request"
        )
