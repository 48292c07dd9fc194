"""Workout assignment endpoints.

Provides:

- ``router`` — assignment endpoints at ``/api/assignments``

Mutations go through the ``SyncCoordinator`` and then invalidate the
assignment list cache. Reads go through the ``ReadCache`` in front of the
store's date-range query, so concurrent identical list requests share a
single database round trip.
"""

from __future__ import annotations

import logging
from datetime import date

from fastapi import APIRouter, Depends, Query

from coachsync.api.deps import get_coordinator, get_read_cache, get_store
from coachsync.api.models import (
    ApiResponse,
    AssignmentCreate,
    RescheduleRequest,
    StatusUpdate,
)
from coachsync.scheduling.cache import ReadCache, cache_key
from coachsync.scheduling.coordinator import SyncCoordinator
from coachsync.scheduling.dates import parse_calendar_date
from coachsync.scheduling.errors import ValidationError
from coachsync.scheduling.models import AssignResult, UnassignResult, WorkoutAssignment
from coachsync.scheduling.store import AssignmentStore

logger = logging.getLogger(__name__)

ASSIGNMENTS_PATH = "/api/assignments"

router = APIRouter(prefix=ASSIGNMENTS_PATH, tags=["assignments"])


def _invalidate_lists(cache: ReadCache) -> None:
    cache.invalidate_prefix(f"GET {ASSIGNMENTS_PATH} ")


def _query_date(value: str, field: str) -> date:
    try:
        return parse_calendar_date(value)
    except ValueError as exc:
        raise ValidationError(f"{field}: {exc}") from exc


# ---------------------------------------------------------------------------
# GET /api/assignments — list an athlete's assignments in a date range
# ---------------------------------------------------------------------------


@router.get("", response_model=ApiResponse[list[WorkoutAssignment]])
async def list_assignments(
    athlete_id: int = Query(..., gt=0),
    start_date: str = Query(..., description="YYYY-MM-DD"),
    end_date: str = Query(..., description="YYYY-MM-DD"),
    store: AssignmentStore = Depends(get_store),
    cache: ReadCache = Depends(get_read_cache),
) -> ApiResponse[list[WorkoutAssignment]]:
    """Return assignments scheduled within ``[start_date, end_date]``, inclusive."""
    start = _query_date(start_date, "start_date")
    end = _query_date(end_date, "end_date")
    key = cache_key(
        "GET",
        ASSIGNMENTS_PATH,
        {
            "athlete_id": athlete_id,
            "start_date": start.isoformat(),
            "end_date": end.isoformat(),
        },
    )
    assignments = await cache.get(
        key,
        lambda: store.list_by_athlete_and_range(athlete_id, start, end),
    )
    return ApiResponse[list[WorkoutAssignment]](data=assignments)


# ---------------------------------------------------------------------------
# POST /api/assignments — assign a workout
# ---------------------------------------------------------------------------


@router.post("", response_model=ApiResponse[AssignResult], status_code=201)
async def create_assignment(
    body: AssignmentCreate,
    coordinator: SyncCoordinator = Depends(get_coordinator),
    cache: ReadCache = Depends(get_read_cache),
) -> ApiResponse[AssignResult]:
    """Create an assignment and mirror it to the athlete's remote calendar."""
    result = await coordinator.assign(
        body.workout_template_id,
        body.assigned_to_user_id,
        body.assigned_by_user_id,
        body.scheduled_date,
        priority=body.priority,
        intensity_adjustment=body.intensity_adjustment,
        duration_adjustment=body.duration_adjustment,
        custom_notes=body.custom_notes,
    )
    _invalidate_lists(cache)
    return ApiResponse[AssignResult](data=result)


# ---------------------------------------------------------------------------
# DELETE /api/assignments/{assignment_id} — unassign
# ---------------------------------------------------------------------------


@router.delete("/{assignment_id}", response_model=ApiResponse[UnassignResult])
async def delete_assignment(
    assignment_id: int,
    coordinator: SyncCoordinator = Depends(get_coordinator),
    cache: ReadCache = Depends(get_read_cache),
) -> ApiResponse[UnassignResult]:
    """Remove an assignment. Deleting an already-absent id is not an error."""
    result = await coordinator.unassign(assignment_id)
    _invalidate_lists(cache)
    return ApiResponse[UnassignResult](data=result)


# ---------------------------------------------------------------------------
# PATCH /api/assignments/{assignment_id}/status — lifecycle transition
# ---------------------------------------------------------------------------


@router.patch("/{assignment_id}/status", response_model=ApiResponse[WorkoutAssignment])
async def update_assignment_status(
    assignment_id: int,
    body: StatusUpdate,
    coordinator: SyncCoordinator = Depends(get_coordinator),
    cache: ReadCache = Depends(get_read_cache),
) -> ApiResponse[WorkoutAssignment]:
    updated = await coordinator.update_status(assignment_id, body.status, body.notes)
    _invalidate_lists(cache)
    return ApiResponse[WorkoutAssignment](data=updated)


# ---------------------------------------------------------------------------
# PUT /api/assignments/{assignment_id}/date — reschedule
# ---------------------------------------------------------------------------


@router.put("/{assignment_id}/date", response_model=ApiResponse[AssignResult])
async def reschedule_assignment(
    assignment_id: int,
    body: RescheduleRequest,
    coordinator: SyncCoordinator = Depends(get_coordinator),
    cache: ReadCache = Depends(get_read_cache),
) -> ApiResponse[AssignResult]:
    """Move an assignment to another day, updating its remote event when mirrored."""
    result = await coordinator.reschedule(assignment_id, body.scheduled_date)
    _invalidate_lists(cache)
    logger.info(
        "Assignment %s rescheduled to %s (sync=%s)",
        assignment_id,
        body.scheduled_date,
        result.sync_outcome.status,
    )
    return ApiResponse[AssignResult](data=result)
