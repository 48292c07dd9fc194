"""Assignment Store — canonical local schedule rows.

Provides the ``AssignmentStore`` contract and two implementations:

- ``PostgresAssignmentStore``: asyncpg-backed rows in ``workout_assignments``.
  Every mutation is a single statement, which gives per-row atomicity;
  status changes are a compare-and-set on the prior status.
- ``InMemoryAssignmentStore``: process-local rows for development and tests.

Scheduled dates are stored in a ``DATE`` column and compared as calendar
dates only.
"""

from __future__ import annotations

import abc
import itertools
import logging
from collections.abc import Callable, Mapping
from datetime import UTC, date, datetime
from typing import Any

import asyncpg

from coachsync.scheduling.dates import parse_calendar_date
from coachsync.scheduling.errors import ConcurrencyConflictError, NotFoundError, ValidationError
from coachsync.scheduling.models import (
    AssignmentRequest,
    AssignmentStatus,
    SyncState,
    SyncStatus,
    WorkoutAssignment,
    check_transition,
)

logger = logging.getLogger(__name__)

_ASSIGNMENT_COLUMNS = """
    id, workout_template_id, assigned_to_athlete_id, assigned_by_id, scheduled_date,
    status, priority, intensity_adjustment, duration_adjustment, custom_notes,
    completion_notes, completed_at, sync_status, external_event_id, sync_error,
    created_at, updated_at
"""


class AssignmentStore(abc.ABC):
    """Persistence contract for workout assignments."""

    @abc.abstractmethod
    async def create(
        self,
        assignment: AssignmentRequest,
        sync_state: SyncState | None = None,
    ) -> int:
        """Insert a new row and return its id."""
        ...

    @abc.abstractmethod
    async def get_by_id(self, assignment_id: int) -> WorkoutAssignment:
        """Return the row, or raise ``NotFoundError``."""
        ...

    @abc.abstractmethod
    async def list_by_athlete_and_range(
        self,
        athlete_id: int,
        start_date: date,
        end_date: date,
    ) -> list[WorkoutAssignment]:
        """Return an athlete's rows scheduled within ``[start_date, end_date]``."""
        ...

    @abc.abstractmethod
    async def update_status(
        self,
        assignment_id: int,
        new_status: AssignmentStatus,
        notes: str | None = None,
    ) -> WorkoutAssignment:
        """Move the row to *new_status* following the lifecycle state machine."""
        ...

    @abc.abstractmethod
    async def update_sync_state(self, assignment_id: int, state: SyncState) -> None:
        """Replace the row's embedded sync state."""
        ...

    @abc.abstractmethod
    async def update_scheduled_date(
        self,
        assignment_id: int,
        scheduled_date: date,
    ) -> WorkoutAssignment:
        """Move the row to another calendar date."""
        ...

    @abc.abstractmethod
    async def delete(self, assignment_id: int) -> bool:
        """Remove the row. Returns ``False`` when it was already absent."""
        ...


def _check_range(start_date: Any, end_date: Any) -> tuple[date, date]:
    try:
        start = parse_calendar_date(start_date)
        end = parse_calendar_date(end_date)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc
    if start > end:
        raise ValidationError(
            f"start_date {start.isoformat()} is after end_date {end.isoformat()}"
        )
    return start, end


def sync_state_from_columns(
    status: str | None,
    external_id: str | None,
    reason: str | None,
) -> SyncState:
    """Rebuild the embedded sync state from its three storage columns."""
    return SyncState(
        status=SyncStatus(status or SyncStatus.PENDING),
        external_id=external_id,
        reason=reason,
    )


def _row_to_assignment(row: Mapping[str, Any]) -> WorkoutAssignment:
    return WorkoutAssignment(
        id=row["id"],
        workout_template_id=row["workout_template_id"],
        assigned_to_athlete_id=row["assigned_to_athlete_id"],
        assigned_by_id=row["assigned_by_id"],
        scheduled_date=row["scheduled_date"],
        status=row["status"],
        priority=row["priority"],
        intensity_adjustment=row["intensity_adjustment"],
        duration_adjustment=row["duration_adjustment"],
        custom_notes=row["custom_notes"],
        completion_notes=row["completion_notes"],
        completed_at=row["completed_at"],
        sync_state=sync_state_from_columns(
            row["sync_status"], row["external_event_id"], row["sync_error"]
        ),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _affected_rows(command_status: str) -> int:
    """Parse the row count out of an asyncpg command tag such as ``DELETE 1``."""
    try:
        return int(command_status.rsplit(" ", 1)[-1])
    except (ValueError, AttributeError):
        return 0


class PostgresAssignmentStore(AssignmentStore):
    """Assignment rows in PostgreSQL, accessed through an asyncpg pool."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def create(
        self,
        assignment: AssignmentRequest,
        sync_state: SyncState | None = None,
    ) -> int:
        state = sync_state or SyncState.pending()
        assignment_id: int = await self._pool.fetchval(
            """
            INSERT INTO workout_assignments (
                workout_template_id, assigned_to_athlete_id, assigned_by_id,
                scheduled_date, status, priority, intensity_adjustment,
                duration_adjustment, custom_notes, sync_status,
                external_event_id, sync_error
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12)
            RETURNING id
            """,
            assignment.workout_template_id,
            assignment.assigned_to_athlete_id,
            assignment.assigned_by_id,
            assignment.scheduled_date,
            str(AssignmentStatus.ASSIGNED),
            str(assignment.priority),
            assignment.intensity_adjustment,
            assignment.duration_adjustment,
            assignment.custom_notes,
            str(state.status),
            state.external_id,
            state.reason,
        )
        logger.info(
            "Created assignment %s (template=%s athlete=%s date=%s)",
            assignment_id,
            assignment.workout_template_id,
            assignment.assigned_to_athlete_id,
            assignment.scheduled_date.isoformat(),
        )
        return assignment_id

    async def get_by_id(self, assignment_id: int) -> WorkoutAssignment:
        row = await self._pool.fetchrow(
            f"SELECT {_ASSIGNMENT_COLUMNS} FROM workout_assignments WHERE id = $1",
            assignment_id,
        )
        if row is None:
            raise NotFoundError("assignment", assignment_id)
        return _row_to_assignment(row)

    async def list_by_athlete_and_range(
        self,
        athlete_id: int,
        start_date: date,
        end_date: date,
    ) -> list[WorkoutAssignment]:
        start, end = _check_range(start_date, end_date)
        rows = await self._pool.fetch(
            f"""
            SELECT {_ASSIGNMENT_COLUMNS}
            FROM workout_assignments
            WHERE assigned_to_athlete_id = $1
              AND scheduled_date BETWEEN $2 AND $3
            ORDER BY scheduled_date, id
            """,
            athlete_id,
            start,
            end,
        )
        return [_row_to_assignment(row) for row in rows]

    async def update_status(
        self,
        assignment_id: int,
        new_status: AssignmentStatus,
        notes: str | None = None,
    ) -> WorkoutAssignment:
        current = await self.get_by_id(assignment_id)
        check_transition(current.status, new_status)

        row = await self._pool.fetchrow(
            f"""
            UPDATE workout_assignments
            SET status = $3,
                completion_notes = COALESCE($4, completion_notes),
                completed_at = CASE WHEN $3::text = 'completed' THEN now() ELSE completed_at END,
                updated_at = now()
            WHERE id = $1 AND status = $2
            RETURNING {_ASSIGNMENT_COLUMNS}
            """,
            assignment_id,
            str(current.status),
            str(AssignmentStatus(new_status)),
            notes,
        )
        if row is None:
            # The row vanished or changed status after it was read.
            raise ConcurrencyConflictError(assignment_id)
        return _row_to_assignment(row)

    async def update_sync_state(self, assignment_id: int, state: SyncState) -> None:
        result = await self._pool.execute(
            """
            UPDATE workout_assignments
            SET sync_status = $2,
                external_event_id = $3,
                sync_error = $4,
                updated_at = now()
            WHERE id = $1
            """,
            assignment_id,
            str(state.status),
            state.external_id,
            state.reason,
        )
        if _affected_rows(result) == 0:
            raise NotFoundError("assignment", assignment_id)

    async def update_scheduled_date(
        self,
        assignment_id: int,
        scheduled_date: date,
    ) -> WorkoutAssignment:
        try:
            normalized = parse_calendar_date(scheduled_date)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        row = await self._pool.fetchrow(
            f"""
            UPDATE workout_assignments
            SET scheduled_date = $2, updated_at = now()
            WHERE id = $1
            RETURNING {_ASSIGNMENT_COLUMNS}
            """,
            assignment_id,
            normalized,
        )
        if row is None:
            raise NotFoundError("assignment", assignment_id)
        return _row_to_assignment(row)

    async def delete(self, assignment_id: int) -> bool:
        result = await self._pool.execute(
            "DELETE FROM workout_assignments WHERE id = $1",
            assignment_id,
        )
        deleted = _affected_rows(result) > 0
        if deleted:
            logger.info("Deleted assignment %s", assignment_id)
        else:
            logger.debug("delete: assignment %s already absent", assignment_id)
        return deleted


class InMemoryAssignmentStore(AssignmentStore):
    """Process-local assignment rows.

    Mutations never suspend between read and write, so each one is atomic
    with respect to other tasks on the same event loop.
    """

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._rows: dict[int, WorkoutAssignment] = {}
        self._ids = itertools.count(1)
        self._clock = clock or (lambda: datetime.now(UTC))

    async def create(
        self,
        assignment: AssignmentRequest,
        sync_state: SyncState | None = None,
    ) -> int:
        assignment_id = next(self._ids)
        now = self._clock()
        self._rows[assignment_id] = WorkoutAssignment(
            id=assignment_id,
            workout_template_id=assignment.workout_template_id,
            assigned_to_athlete_id=assignment.assigned_to_athlete_id,
            assigned_by_id=assignment.assigned_by_id,
            scheduled_date=assignment.scheduled_date,
            priority=assignment.priority,
            intensity_adjustment=assignment.intensity_adjustment,
            duration_adjustment=assignment.duration_adjustment,
            custom_notes=assignment.custom_notes,
            sync_state=sync_state or SyncState.pending(),
            created_at=now,
            updated_at=now,
        )
        return assignment_id

    async def get_by_id(self, assignment_id: int) -> WorkoutAssignment:
        row = self._rows.get(assignment_id)
        if row is None:
            raise NotFoundError("assignment", assignment_id)
        return row

    async def list_by_athlete_and_range(
        self,
        athlete_id: int,
        start_date: date,
        end_date: date,
    ) -> list[WorkoutAssignment]:
        start, end = _check_range(start_date, end_date)
        matches = [
            row
            for row in self._rows.values()
            if row.assigned_to_athlete_id == athlete_id and start <= row.scheduled_date <= end
        ]
        return sorted(matches, key=lambda row: (row.scheduled_date, row.id))

    async def update_status(
        self,
        assignment_id: int,
        new_status: AssignmentStatus,
        notes: str | None = None,
    ) -> WorkoutAssignment:
        current = await self.get_by_id(assignment_id)
        check_transition(current.status, new_status)
        status = AssignmentStatus(new_status)
        now = self._clock()
        changes: dict[str, Any] = {"status": status, "updated_at": now}
        if notes is not None:
            changes["completion_notes"] = notes
        if status == AssignmentStatus.COMPLETED:
            changes["completed_at"] = now
        updated = current.model_copy(update=changes)
        self._rows[assignment_id] = updated
        return updated

    async def update_sync_state(self, assignment_id: int, state: SyncState) -> None:
        current = await self.get_by_id(assignment_id)
        self._rows[assignment_id] = current.model_copy(
            update={"sync_state": state, "updated_at": self._clock()}
        )

    async def update_scheduled_date(
        self,
        assignment_id: int,
        scheduled_date: date,
    ) -> WorkoutAssignment:
        try:
            normalized = parse_calendar_date(scheduled_date)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        current = await self.get_by_id(assignment_id)
        updated = current.model_copy(
            update={"scheduled_date": normalized, "updated_at": self._clock()}
        )
        self._rows[assignment_id] = updated
        return updated

    async def delete(self, assignment_id: int) -> bool:
        return self._rows.pop(assignment_id, None) is not None
