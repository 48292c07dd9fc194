"""Synchronization Coordinator — ordered dual writes to the store and the calendar.

The local row is the source of truth. ``assign`` writes locally first and
mirrors afterwards; ``unassign`` deletes remotely first only because the
external id lives on the row, and then deletes locally no matter what the
remote said. Store errors propagate (fail-closed). Calendar failures are
recorded on the row and returned to the caller (fail-open).
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any

import pydantic

from coachsync.scheduling.calendar import CalendarAdapter, ListEventsResult
from coachsync.scheduling.dates import parse_calendar_date
from coachsync.scheduling.directory import AthleteDirectory, TemplateCatalog
from coachsync.scheduling.errors import NotFoundError, ValidationError
from coachsync.scheduling.metrics import record_sync_outcome
from coachsync.scheduling.models import (
    AssignmentRequest,
    AssignmentStatus,
    AssignResult,
    RemoteDeleteOutcome,
    RemoteDeleteStatus,
    SyncOutcome,
    SyncState,
    UnassignReason,
    UnassignResult,
    WorkoutAssignment,
    WorkoutTemplate,
)
from coachsync.scheduling.store import AssignmentStore

logger = logging.getLogger(__name__)


def _describe_validation_error(exc: pydantic.ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ())) or "input"
        parts.append(f"{location}: {error.get('msg', 'invalid value')}")
    return "; ".join(parts)


def build_assignment_request(**fields: Any) -> AssignmentRequest:
    """Validate raw assignment fields, raising the scheduling ``ValidationError``."""
    try:
        return AssignmentRequest(**{k: v for k, v in fields.items() if v is not None})
    except pydantic.ValidationError as exc:
        raise ValidationError(_describe_validation_error(exc)) from exc


def _event_description(template: WorkoutTemplate, request: AssignmentRequest) -> str:
    lines = [template.description or ""]
    if request.custom_notes:
        lines.append(f"Coach notes: {request.custom_notes}")
    return "\n\n".join(line for line in lines if line)


class SyncCoordinator:
    """Orchestrates assignment mutations across the store and the remote calendar."""

    def __init__(
        self,
        store: AssignmentStore,
        calendar: CalendarAdapter,
        athletes: AthleteDirectory,
        templates: TemplateCatalog,
    ) -> None:
        self._store = store
        self._calendar = calendar
        self._athletes = athletes
        self._templates = templates

    async def assign(
        self,
        template_id: int,
        athlete_id: int,
        coach_id: int,
        scheduled_date: date | str,
        **adjustments: Any,
    ) -> AssignResult:
        """Create an assignment and mirror it to the athlete's calendar.

        ``adjustments`` accepts ``priority``, ``intensity_adjustment``,
        ``duration_adjustment`` and ``custom_notes``.

        Raises
        ------
        ValidationError
            Malformed input; nothing is written.
            A template with a blank name is rejected here as well.
        NotFoundError
            Unknown template or athlete; nothing is written.
        """
        request = build_assignment_request(
            workout_template_id=template_id,
            assigned_to_athlete_id=athlete_id,
            assigned_by_id=coach_id,
            scheduled_date=scheduled_date,
            **adjustments,
        )
        template = await self._templates.get_template(request.workout_template_id)
        if not template.name.strip():
            raise ValidationError(f"workout template {template.id} has no name")
        account_id = await self._athletes.external_account_id(request.assigned_to_athlete_id)

        assignment_id = await self._store.create(request, SyncState.pending())

        if account_id is None:
            state = SyncState.not_configured()
            await self._store.update_sync_state(assignment_id, state)
            logger.info(
                "Assignment %s saved locally; athlete %s has no external calendar account",
                assignment_id,
                request.assigned_to_athlete_id,
            )
            record_sync_outcome("assign", state.status)
            return AssignResult(
                assignment_id=assignment_id,
                sync_outcome=SyncOutcome.from_state(state),
            )

        result = await self._calendar.create_event(
            account_id,
            template.name,
            _event_description(template, request),
            request.scheduled_date,
            template.event_type,
        )
        if result.ok and result.external_id:
            state = SyncState.synced(result.external_id)
        else:
            state = SyncState.sync_failed(result.reason or "calendar sync failed")
            logger.warning(
                "Assignment %s saved locally but calendar sync failed: %s",
                assignment_id,
                state.reason,
            )
        await self._store.update_sync_state(assignment_id, state)
        record_sync_outcome("assign", state.status)
        return AssignResult(
            assignment_id=assignment_id,
            sync_outcome=SyncOutcome.from_state(state),
        )

    async def unassign(self, assignment_id: int) -> UnassignResult:
        """Remove an assignment, attempting remote deletion first.

        Calling this for an id that no longer exists is not an error.
        """
        try:
            assignment = await self._store.get_by_id(assignment_id)
        except NotFoundError:
            logger.info("unassign: assignment %s already absent", assignment_id)
            return UnassignResult(deleted=False, reason=UnassignReason.NOT_FOUND)

        remote_outcome = await self._delete_remote_event(assignment)

        deleted = await self._store.delete(assignment_id)
        if not deleted:
            # Removed concurrently between the read and the delete.
            logger.info("unassign: assignment %s removed concurrently", assignment_id)
            return UnassignResult(
                deleted=False,
                reason=UnassignReason.NOT_FOUND,
                remote_outcome=remote_outcome,
            )
        if remote_outcome.status == RemoteDeleteStatus.DELETE_FAILED:
            logger.warning(
                "Assignment %s deleted locally; remote event %s may remain: %s",
                assignment_id,
                remote_outcome.external_id,
                remote_outcome.reason,
            )
        record_sync_outcome("unassign", remote_outcome.status)
        return UnassignResult(deleted=True, remote_outcome=remote_outcome)

    async def _delete_remote_event(self, assignment: WorkoutAssignment) -> RemoteDeleteOutcome:
        external_id = assignment.sync_state.external_id
        if external_id is None:
            return RemoteDeleteOutcome(status=RemoteDeleteStatus.SKIPPED)

        try:
            account_id = await self._athletes.external_account_id(
                assignment.assigned_to_athlete_id
            )
        except NotFoundError:
            account_id = None
        if account_id is None:
            return RemoteDeleteOutcome(
                status=RemoteDeleteStatus.NOT_CONFIGURED,
                external_id=external_id,
            )

        result = await self._calendar.delete_event(account_id, external_id)
        if result.ok:
            return RemoteDeleteOutcome(status=RemoteDeleteStatus.DELETED, external_id=external_id)
        if result.not_configured:
            return RemoteDeleteOutcome(
                status=RemoteDeleteStatus.NOT_CONFIGURED,
                external_id=external_id,
            )
        return RemoteDeleteOutcome(
            status=RemoteDeleteStatus.DELETE_FAILED,
            external_id=external_id,
            reason=result.reason or "calendar delete failed",
        )

    async def reschedule(self, assignment_id: int, scheduled_date: date | str) -> AssignResult:
        """Move an assignment to another day, then move its mirrored event."""
        try:
            new_date = parse_calendar_date(scheduled_date)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc

        assignment = await self._store.update_scheduled_date(assignment_id, new_date)
        state = assignment.sync_state
        external_id = state.external_id
        if external_id is None:
            return AssignResult(
                assignment_id=assignment_id,
                sync_outcome=SyncOutcome.from_state(state),
            )

        try:
            account_id = await self._athletes.external_account_id(
                assignment.assigned_to_athlete_id
            )
        except NotFoundError:
            account_id = None
        result = await self._calendar.update_event(
            account_id,
            external_id,
            scheduled_date=new_date,
        )
        if result.ok:
            new_state = SyncState.synced(external_id)
        elif result.not_configured:
            new_state = SyncState.sync_failed(
                result.reason or "athlete has no external calendar account",
                external_id=external_id,
            )
        else:
            new_state = SyncState.sync_failed(
                result.reason or "calendar update failed",
                external_id=external_id,
            )
            logger.warning(
                "Assignment %s moved locally to %s but calendar update failed: %s",
                assignment_id,
                new_date.isoformat(),
                new_state.reason,
            )
        if new_state != state:
            await self._store.update_sync_state(assignment_id, new_state)
        record_sync_outcome("reschedule", new_state.status)
        return AssignResult(
            assignment_id=assignment_id,
            sync_outcome=SyncOutcome.from_state(new_state),
        )

    async def update_status(
        self,
        assignment_id: int,
        new_status: AssignmentStatus | str,
        notes: str | None = None,
    ) -> WorkoutAssignment:
        """Advance the assignment lifecycle. The calendar mirror is not involved."""
        try:
            status = AssignmentStatus(new_status)
        except ValueError as exc:
            raise ValidationError(f"unknown assignment status {new_status!r}") from exc
        return await self._store.update_status(assignment_id, status, notes)

    async def remote_events(
        self,
        athlete_id: int,
        start_date: date | str,
        end_date: date | str,
    ) -> ListEventsResult:
        """List the events mirrored on an athlete's remote calendar."""
        try:
            start = parse_calendar_date(start_date)
            end = parse_calendar_date(end_date)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        if start > end:
            raise ValidationError("start_date must not be after end_date")
        account_id = await self._athletes.external_account_id(athlete_id)
        return await self._calendar.list_events(account_id, start, end)
