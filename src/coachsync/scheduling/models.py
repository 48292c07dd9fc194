"""Domain models for workout assignments and their calendar mirror state."""

from __future__ import annotations

from datetime import date, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator

from coachsync.scheduling.dates import parse_calendar_date
from coachsync.scheduling.errors import InvalidTransitionError

MIN_ADJUSTMENT = 0.5
MAX_ADJUSTMENT = 2.0
DEFAULT_EVENT_TYPE = "Ride"


class AssignmentStatus(StrEnum):
    """Lifecycle status of an assignment."""

    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return not ALLOWED_TRANSITIONS[self]


ALLOWED_TRANSITIONS: dict[AssignmentStatus, frozenset[AssignmentStatus]] = {
    AssignmentStatus.ASSIGNED: frozenset(
        {AssignmentStatus.IN_PROGRESS, AssignmentStatus.SKIPPED, AssignmentStatus.CANCELLED}
    ),
    AssignmentStatus.IN_PROGRESS: frozenset(
        {AssignmentStatus.COMPLETED, AssignmentStatus.CANCELLED}
    ),
    AssignmentStatus.COMPLETED: frozenset(),
    AssignmentStatus.SKIPPED: frozenset(),
    AssignmentStatus.CANCELLED: frozenset(),
}


def check_transition(current: AssignmentStatus | str, requested: AssignmentStatus | str) -> None:
    """Raise ``InvalidTransitionError`` unless *current* may move to *requested*."""
    current_status = AssignmentStatus(current)
    try:
        requested_status = AssignmentStatus(requested)
    except ValueError:
        raise InvalidTransitionError(str(current_status), str(requested)) from None
    if requested_status not in ALLOWED_TRANSITIONS[current_status]:
        raise InvalidTransitionError(str(current_status), str(requested_status))


class AssignmentPriority(StrEnum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


class SyncStatus(StrEnum):
    """Mirror state of an assignment in the remote calendar."""

    NOT_CONFIGURED = "not_configured"
    PENDING = "pending"
    SYNCED = "synced"
    SYNC_FAILED = "sync_failed"
    DELETE_FAILED = "delete_failed"


class SyncState(BaseModel):
    """Embedded sync state of an assignment row.

    ``synced`` always carries the remote ``external_id``; the two failure
    states always carry a ``reason``. A ``sync_failed`` state may keep the
    ``external_id`` of an event that exists remotely but could not be updated.
    """

    model_config = ConfigDict(frozen=True)

    status: SyncStatus
    external_id: str | None = None
    reason: str | None = None

    @model_validator(mode="after")
    def _check_payload(self) -> SyncState:
        if self.status == SyncStatus.SYNCED and not self.external_id:
            raise ValueError("synced state requires an external_id")
        if self.status in (SyncStatus.SYNC_FAILED, SyncStatus.DELETE_FAILED) and not self.reason:
            raise ValueError(f"{self.status} state requires a reason")
        if self.status in (SyncStatus.NOT_CONFIGURED, SyncStatus.PENDING) and self.external_id:
            raise ValueError(f"{self.status} state cannot carry an external_id")
        return self

    @classmethod
    def not_configured(cls) -> SyncState:
        return cls(status=SyncStatus.NOT_CONFIGURED)

    @classmethod
    def pending(cls) -> SyncState:
        return cls(status=SyncStatus.PENDING)

    @classmethod
    def synced(cls, external_id: str) -> SyncState:
        return cls(status=SyncStatus.SYNCED, external_id=external_id)

    @classmethod
    def sync_failed(cls, reason: str, *, external_id: str | None = None) -> SyncState:
        return cls(status=SyncStatus.SYNC_FAILED, reason=reason, external_id=external_id)

    @classmethod
    def delete_failed(cls, reason: str, *, external_id: str | None = None) -> SyncState:
        return cls(status=SyncStatus.DELETE_FAILED, reason=reason, external_id=external_id)


class AssignmentRequest(BaseModel):
    """Validated input for creating an assignment."""

    model_config = ConfigDict(extra="forbid")

    workout_template_id: int = Field(gt=0)
    assigned_to_athlete_id: int = Field(gt=0)
    assigned_by_id: int = Field(gt=0)
    scheduled_date: date
    priority: AssignmentPriority = AssignmentPriority.NORMAL
    intensity_adjustment: float = Field(default=1.0, ge=MIN_ADJUSTMENT, le=MAX_ADJUSTMENT)
    duration_adjustment: float = Field(default=1.0, ge=MIN_ADJUSTMENT, le=MAX_ADJUSTMENT)
    custom_notes: str | None = None

    @field_validator("scheduled_date", mode="before")
    @classmethod
    def _normalize_date(cls, value: Any) -> date:
        return parse_calendar_date(value)


class WorkoutAssignment(BaseModel):
    """A stored assignment row."""

    id: int
    workout_template_id: int
    assigned_to_athlete_id: int
    assigned_by_id: int
    scheduled_date: date
    status: AssignmentStatus = AssignmentStatus.ASSIGNED
    priority: AssignmentPriority = AssignmentPriority.NORMAL
    intensity_adjustment: float = 1.0
    duration_adjustment: float = 1.0
    custom_notes: str | None = None
    completion_notes: str | None = None
    completed_at: datetime | None = None
    sync_state: SyncState = Field(default_factory=SyncState.pending)
    created_at: datetime
    updated_at: datetime

    @field_validator("scheduled_date", mode="before")
    @classmethod
    def _normalize_date(cls, value: Any) -> date:
        return parse_calendar_date(value)


class WorkoutTemplate(BaseModel):
    """Catalog entry used to build the remote event payload."""

    id: int
    name: str
    description: str | None = None
    training_type: str | None = None
    estimated_duration_minutes: int | None = None

    @property
    def event_type(self) -> str:
        return self.training_type or DEFAULT_EVENT_TYPE


class Athlete(BaseModel):
    """Directory entry for an athlete."""

    id: int
    external_account_id: str | None = None

    @field_validator("external_account_id", mode="before")
    @classmethod
    def _blank_is_unset(cls, value: Any) -> str | None:
        if value is None:
            return None
        normalized = str(value).strip()
        return normalized or None


class SyncOutcome(BaseModel):
    """Caller-visible result of mirroring an assignment."""

    status: SyncStatus
    external_id: str | None = None
    reason: str | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def synced(self) -> bool:
        return self.status == SyncStatus.SYNCED

    @classmethod
    def from_state(cls, state: SyncState) -> SyncOutcome:
        return cls(status=state.status, external_id=state.external_id, reason=state.reason)


class AssignResult(BaseModel):
    assignment_id: int
    sync_outcome: SyncOutcome


class UnassignReason(StrEnum):
    NOT_FOUND = "not_found"


class RemoteDeleteStatus(StrEnum):
    """What happened to the remote mirror during ``unassign``."""

    DELETED = "deleted"
    DELETE_FAILED = "delete_failed"
    NOT_CONFIGURED = "not_configured"
    SKIPPED = "skipped"


class RemoteDeleteOutcome(BaseModel):
    status: RemoteDeleteStatus
    external_id: str | None = None
    reason: str | None = None


class UnassignResult(BaseModel):
    deleted: bool
    reason: UnassignReason | None = None
    remote_outcome: RemoteDeleteOutcome | None = None
