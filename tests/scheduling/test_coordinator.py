"""Tests for SyncCoordinator — ordered dual writes and their outcomes."""

from __future__ import annotations

from datetime import date
from unittest.mock import AsyncMock

import pytest

from coachsync.scheduling.calendar import (
    CalendarResult,
    CreateEventResult,
    ListEventsResult,
    RemoteEvent,
)
from coachsync.scheduling.coordinator import SyncCoordinator
from coachsync.scheduling.errors import InvalidTransitionError, NotFoundError, ValidationError
from coachsync.scheduling.models import (
    AssignmentStatus,
    RemoteDeleteStatus,
    SyncState,
    SyncStatus,
    UnassignReason,
    WorkoutTemplate,
)
from coachsync.scheduling.store import InMemoryAssignmentStore

pytestmark = pytest.mark.unit

TEMPLATE_ID = 42
SYNCED_ATHLETE_ID = 7
UNLINKED_ATHLETE_ID = 8
COACH_ID = 3


async def _assign(coordinator: SyncCoordinator, athlete_id: int = SYNCED_ATHLETE_ID, **kwargs):
    return await coordinator.assign(TEMPLATE_ID, athlete_id, COACH_ID, "2025-09-01", **kwargs)


# ---------------------------------------------------------------------------
# assign
# ---------------------------------------------------------------------------


class TestAssign:
    async def test_synced_scenario(self, coordinator, store, calendar):
        result = await _assign(coordinator)

        assert result.sync_outcome.synced is True
        assert result.sync_outcome.external_id == "evt_123"
        row = await store.get_by_id(result.assignment_id)
        assert row.scheduled_date == date(2025, 9, 1)
        assert row.sync_state == SyncState.synced("evt_123")
        calendar.create_event.assert_awaited_once_with(
            "ath_9",
            "Sweet Spot 3x15",
            "3 x 15 min @ 88-93% FTP, 5 min easy between",
            date(2025, 9, 1),
            "Ride",
        )

    async def test_remote_503_keeps_local_row(self, coordinator, store, calendar):
        calendar.create_event.return_value = CreateEventResult.failure(
            "503 Service Unavailable: maintenance"
        )

        result = await _assign(coordinator)

        assert result.sync_outcome.synced is False
        assert result.sync_outcome.reason.startswith("503")
        row = await store.get_by_id(result.assignment_id)
        assert row.sync_state.status == SyncStatus.SYNC_FAILED
        assert row.sync_state.reason == "503 Service Unavailable: maintenance"

    async def test_timeout_keeps_local_row(self, coordinator, store, calendar):
        calendar.create_event.return_value = CreateEventResult.failure("timeout after 10s")
        result = await _assign(coordinator)
        row = await store.get_by_id(result.assignment_id)
        assert row.sync_state == SyncState.sync_failed("timeout after 10s")

    async def test_no_external_account_never_calls_calendar(self, coordinator, store, calendar):
        result = await _assign(coordinator, UNLINKED_ATHLETE_ID)

        assert result.sync_outcome.status == SyncStatus.NOT_CONFIGURED
        assert result.sync_outcome.synced is False
        calendar.create_event.assert_not_awaited()
        row = await store.get_by_id(result.assignment_id)
        assert row.sync_state == SyncState.not_configured()

    async def test_local_row_written_before_remote_call(self, coordinator, store, calendar):
        seen_rows = []

        async def create_event(*args, **kwargs):
            seen_rows.extend(await store.list_by_athlete_and_range(7, "2025-09-01", "2025-09-01"))
            return CreateEventResult.success(external_id="evt_9")

        calendar.create_event.side_effect = create_event
        await _assign(coordinator)

        assert len(seen_rows) == 1
        assert seen_rows[0].sync_state == SyncState.pending()

    async def test_custom_notes_are_appended_to_description(self, coordinator, calendar):
        await _assign(coordinator, custom_notes="Keep cadence above 90")
        description = calendar.create_event.await_args.args[2]
        assert description.endswith("Coach notes: Keep cadence above 90")

    async def test_adjustments_are_stored(self, coordinator, store):
        result = await _assign(
            coordinator, priority="high", intensity_adjustment=1.1, duration_adjustment=0.75
        )
        row = await store.get_by_id(result.assignment_id)
        assert row.priority == "high"
        assert row.intensity_adjustment == 1.1
        assert row.duration_adjustment == 0.75

    async def test_invalid_input_writes_nothing(self, coordinator, store, calendar):
        with pytest.raises(ValidationError, match="intensity_adjustment"):
            await _assign(coordinator, intensity_adjustment=3.0)
        with pytest.raises(ValidationError, match="scheduled_date"):
            await coordinator.assign(TEMPLATE_ID, SYNCED_ATHLETE_ID, COACH_ID, "2025-09-01T08:00")
        assert await store.list_by_athlete_and_range(7, "2025-01-01", "2025-12-31") == []
        calendar.create_event.assert_not_awaited()

    async def test_unknown_template_writes_nothing(self, coordinator, store):
        with pytest.raises(NotFoundError):
            await coordinator.assign(999, SYNCED_ATHLETE_ID, COACH_ID, "2025-09-01")
        assert await store.list_by_athlete_and_range(7, "2025-01-01", "2025-12-31") == []

    async def test_blank_template_name_writes_nothing(
        self, coordinator, store, calendar, templates
    ):
        templates.add(WorkoutTemplate(id=43, name="  "))

        with pytest.raises(ValidationError, match="workout template 43 has no name"):
            await coordinator.assign(43, SYNCED_ATHLETE_ID, COACH_ID, "2025-09-01")

        assert await store.list_by_athlete_and_range(7, "2025-01-01", "2025-12-31") == []
        calendar.create_event.assert_not_awaited()

    async def test_unknown_athlete_writes_nothing(self, coordinator, store):
        with pytest.raises(NotFoundError):
            await coordinator.assign(TEMPLATE_ID, 404, COACH_ID, "2025-09-01")

    async def test_store_failure_aborts_before_remote_call(self, calendar, athletes, templates):
        store = AsyncMock(spec=InMemoryAssignmentStore)
        store.create.side_effect = ConnectionError("database unavailable")
        coordinator = SyncCoordinator(store, calendar, athletes, templates)

        with pytest.raises(ConnectionError):
            await _assign(coordinator)
        calendar.create_event.assert_not_awaited()

    async def test_repeated_assign_is_not_deduplicated(self, coordinator, store):
        first = await _assign(coordinator)
        second = await _assign(coordinator)
        assert first.assignment_id != second.assignment_id


# ---------------------------------------------------------------------------
# unassign
# ---------------------------------------------------------------------------


class TestUnassign:
    async def test_deletes_remote_then_local(self, coordinator, store, calendar):
        assigned = await _assign(coordinator)

        result = await coordinator.unassign(assigned.assignment_id)

        assert result.deleted is True
        assert result.remote_outcome.status == RemoteDeleteStatus.DELETED
        calendar.delete_event.assert_awaited_once_with("ath_9", "evt_123")
        with pytest.raises(NotFoundError):
            await store.get_by_id(assigned.assignment_id)

    async def test_remote_failure_still_deletes_local(self, coordinator, store, calendar):
        assigned = await _assign(coordinator)
        calendar.delete_event.return_value = CalendarResult.failure("timeout after 10s")

        result = await coordinator.unassign(assigned.assignment_id)

        assert result.deleted is True
        assert result.remote_outcome.status == RemoteDeleteStatus.DELETE_FAILED
        assert result.remote_outcome.reason == "timeout after 10s"
        assert result.remote_outcome.external_id == "evt_123"
        assert await store.delete(assigned.assignment_id) is False

    async def test_second_unassign_reports_not_found(self, coordinator):
        assigned = await _assign(coordinator)

        first = await coordinator.unassign(assigned.assignment_id)
        second = await coordinator.unassign(assigned.assignment_id)

        assert first.deleted is True
        assert second.deleted is False
        assert second.reason == UnassignReason.NOT_FOUND

    async def test_unmirrored_row_skips_remote(self, coordinator, calendar):
        assigned = await _assign(coordinator, UNLINKED_ATHLETE_ID)
        result = await coordinator.unassign(assigned.assignment_id)
        assert result.deleted is True
        assert result.remote_outcome.status == RemoteDeleteStatus.SKIPPED
        calendar.delete_event.assert_not_awaited()

    async def test_failed_sync_without_event_skips_remote(self, coordinator, calendar):
        calendar.create_event.return_value = CreateEventResult.failure("503 Service Unavailable")
        assigned = await _assign(coordinator)
        result = await coordinator.unassign(assigned.assignment_id)
        assert result.remote_outcome.status == RemoteDeleteStatus.SKIPPED
        calendar.delete_event.assert_not_awaited()

    async def test_unlinked_account_reports_not_configured(
        self, coordinator, store, athletes, calendar
    ):
        assigned = await _assign(coordinator)
        athletes.add(SYNCED_ATHLETE_ID, None)

        result = await coordinator.unassign(assigned.assignment_id)

        assert result.deleted is True
        assert result.remote_outcome.status == RemoteDeleteStatus.NOT_CONFIGURED
        calendar.delete_event.assert_not_awaited()


# ---------------------------------------------------------------------------
# reschedule / update_status / remote_events
# ---------------------------------------------------------------------------


class TestReschedule:
    async def test_moves_local_and_remote(self, coordinator, store, calendar):
        assigned = await _assign(coordinator)

        result = await coordinator.reschedule(assigned.assignment_id, "2025-09-03")

        assert result.sync_outcome.synced is True
        row = await store.get_by_id(assigned.assignment_id)
        assert row.scheduled_date == date(2025, 9, 3)
        calendar.update_event.assert_awaited_once_with(
            "ath_9", "evt_123", scheduled_date=date(2025, 9, 3)
        )

    async def test_remote_failure_retains_external_id(self, coordinator, store, calendar):
        assigned = await _assign(coordinator)
        calendar.update_event.return_value = CalendarResult.failure("502 Bad Gateway: upstream")

        result = await coordinator.reschedule(assigned.assignment_id, "2025-09-03")

        assert result.sync_outcome.status == SyncStatus.SYNC_FAILED
        row = await store.get_by_id(assigned.assignment_id)
        assert row.scheduled_date == date(2025, 9, 3)
        assert row.sync_state.external_id == "evt_123"

        await coordinator.unassign(assigned.assignment_id)
        calendar.delete_event.assert_awaited_once_with("ath_9", "evt_123")

    async def test_unmirrored_row_only_moves_locally(self, coordinator, calendar):
        assigned = await _assign(coordinator, UNLINKED_ATHLETE_ID)
        result = await coordinator.reschedule(assigned.assignment_id, "2025-09-03")
        assert result.sync_outcome.status == SyncStatus.NOT_CONFIGURED
        calendar.update_event.assert_not_awaited()

    async def test_invalid_date(self, coordinator):
        assigned = await _assign(coordinator)
        with pytest.raises(ValidationError):
            await coordinator.reschedule(assigned.assignment_id, "soon")

    async def test_missing_assignment(self, coordinator):
        with pytest.raises(NotFoundError):
            await coordinator.reschedule(999, "2025-09-03")


class TestUpdateStatus:
    async def test_transition_does_not_touch_calendar(self, coordinator, calendar):
        assigned = await _assign(coordinator)
        row = await coordinator.update_status(assigned.assignment_id, "in_progress")
        assert row.status == AssignmentStatus.IN_PROGRESS
        calendar.update_event.assert_not_awaited()
        calendar.delete_event.assert_not_awaited()

    async def test_allowed_while_sync_failed(self, coordinator, calendar):
        calendar.create_event.return_value = CreateEventResult.failure("503 Service Unavailable")
        assigned = await _assign(coordinator)
        row = await coordinator.update_status(assigned.assignment_id, "skipped")
        assert row.status == AssignmentStatus.SKIPPED

    async def test_invalid_transition(self, coordinator):
        assigned = await _assign(coordinator)
        with pytest.raises(InvalidTransitionError):
            await coordinator.update_status(assigned.assignment_id, "completed")

    async def test_unknown_status(self, coordinator):
        assigned = await _assign(coordinator)
        with pytest.raises(ValidationError, match="unknown assignment status"):
            await coordinator.update_status(assigned.assignment_id, "archived")


class TestRemoteEvents:
    async def test_lists_for_athlete_account(self, coordinator, calendar):
        event = RemoteEvent(external_id="evt_1", name="Z2", scheduled_date=date(2025, 9, 1))
        calendar.list_events.return_value = ListEventsResult.success(events=[event])

        result = await coordinator.remote_events(SYNCED_ATHLETE_ID, "2025-09-01", "2025-09-30")

        assert result.events == [event]
        calendar.list_events.assert_awaited_once_with(
            "ath_9", date(2025, 9, 1), date(2025, 9, 30)
        )

    async def test_inverted_range(self, coordinator):
        with pytest.raises(ValidationError):
            await coordinator.remote_events(SYNCED_ATHLETE_ID, "2025-09-30", "2025-09-01")
