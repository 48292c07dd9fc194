"""Shared fixtures for the coachsync test suite.

Provides in-memory collaborators seeded with the athletes and templates used
across the scheduling tests, plus a calendar adapter double built with
``AsyncMock(spec=CalendarAdapter)`` whose results can be swapped per test.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from coachsync.scheduling.calendar import (
    CalendarAdapter,
    CalendarResult,
    CreateEventResult,
    ListEventsResult,
)
from coachsync.scheduling.coordinator import SyncCoordinator
from coachsync.scheduling.directory import InMemoryAthleteDirectory, InMemoryTemplateCatalog
from coachsync.scheduling.models import WorkoutTemplate
from coachsync.scheduling.store import InMemoryAssignmentStore

SYNCED_ATHLETE_ID = 7
SYNCED_ATHLETE_ACCOUNT = "ath_9"
UNLINKED_ATHLETE_ID = 8
COACH_ID = 3
TEMPLATE_ID = 42


@pytest.fixture
def athletes() -> InMemoryAthleteDirectory:
    directory = InMemoryAthleteDirectory()
    directory.add(SYNCED_ATHLETE_ID, SYNCED_ATHLETE_ACCOUNT)
    directory.add(UNLINKED_ATHLETE_ID, None)
    directory.add(COACH_ID, None)
    return directory


@pytest.fixture
def templates() -> InMemoryTemplateCatalog:
    catalog = InMemoryTemplateCatalog()
    catalog.add(
        WorkoutTemplate(
            id=TEMPLATE_ID,
            name="Sweet Spot 3x15",
            description="3 x 15 min @ 88-93% FTP, 5 min easy between",
            training_type="Ride",
            estimated_duration_minutes=75,
        )
    )
    return catalog


@pytest.fixture
def store() -> InMemoryAssignmentStore:
    return InMemoryAssignmentStore()


@pytest.fixture
def calendar() -> AsyncMock:
    """Calendar adapter double whose calls all succeed by default."""
    adapter = AsyncMock(spec=CalendarAdapter)
    adapter.create_event.return_value = CreateEventResult.success(external_id="evt_123")
    adapter.update_event.return_value = CalendarResult.success()
    adapter.delete_event.return_value = CalendarResult.success()
    adapter.list_events.return_value = ListEventsResult.success(events=[])
    return adapter


@pytest.fixture
def coordinator(store, calendar, athletes, templates) -> SyncCoordinator:
    return SyncCoordinator(store, calendar, athletes, templates)
