"""Shared Pydantic response/request models for the scheduling API.

Provides the generic ``ApiResponse`` wrapper, the error envelope, and the
request bodies accepted by the assignment endpoints.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from coachsync.scheduling.models import AssignmentPriority

# ---------------------------------------------------------------------------
# Base response wrappers
# ---------------------------------------------------------------------------


class ApiMeta(BaseModel):
    """Extensible metadata bag attached to every API response."""

    model_config = {"extra": "allow"}


class ApiResponse[T](BaseModel):
    """Generic API response wrapper.

    All successful responses follow ``{"data": T, "meta": {...}}``.
    """

    data: T
    meta: ApiMeta = Field(default_factory=ApiMeta)


class ErrorDetail(BaseModel):
    """Structured error payload."""

    code: str
    message: str
    details: dict | list | None = None


class ErrorResponse(BaseModel):
    """Standard error response envelope."""

    error: ErrorDetail


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------


class AssignmentCreate(BaseModel):
    """Body of ``POST /api/assignments``.

    ``scheduled_date`` stays a string here; calendar-date normalization is
    done once by the coordinator.
    """

    model_config = ConfigDict(extra="forbid")

    workout_template_id: int
    assigned_to_user_id: int
    assigned_by_user_id: int
    scheduled_date: str
    priority: AssignmentPriority | None = None
    intensity_adjustment: float | None = None
    duration_adjustment: float | None = None
    custom_notes: str | None = None


class StatusUpdate(BaseModel):
    """Body of ``PATCH /api/assignments/{id}/status``."""

    status: str
    notes: str | None = None


class RescheduleRequest(BaseModel):
    """Body of ``PUT /api/assignments/{id}/date``."""

    scheduled_date: str


__all__ = [
    "ApiMeta",
    "ApiResponse",
    "AssignmentCreate",
    "ErrorDetail",
    "ErrorResponse",
    "RescheduleRequest",
    "StatusUpdate",
]
