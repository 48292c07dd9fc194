"""Workout assignment scheduling with a best-effort remote calendar mirror."""

from coachsync.scheduling.cache import ReadCache, cache_key
from coachsync.scheduling.calendar import CalendarAdapter, IntervalsCalendarAdapter
from coachsync.scheduling.coordinator import SyncCoordinator
from coachsync.scheduling.errors import (
    ConcurrencyConflictError,
    InvalidTransitionError,
    NotFoundError,
    SchedulingError,
    ValidationError,
)
from coachsync.scheduling.models import (
    AssignmentStatus,
    AssignResult,
    SyncState,
    SyncStatus,
    UnassignResult,
    WorkoutAssignment,
)
from coachsync.scheduling.store import (
    AssignmentStore,
    InMemoryAssignmentStore,
    PostgresAssignmentStore,
)

__all__ = [
    "AssignResult",
    "AssignmentStatus",
    "AssignmentStore",
    "CalendarAdapter",
    "ConcurrencyConflictError",
    "InMemoryAssignmentStore",
    "IntervalsCalendarAdapter",
    "InvalidTransitionError",
    "NotFoundError",
    "PostgresAssignmentStore",
    "ReadCache",
    "SchedulingError",
    "SyncCoordinator",
    "SyncState",
    "SyncStatus",
    "UnassignResult",
    "ValidationError",
    "WorkoutAssignment",
    "cache_key",
]
