"""Service wiring and FastAPI dependencies for the scheduling API.

Provides:
- ``SchedulingServices``: the store, calendar adapter, coordinator and read
  cache shared by every request.
- ``build_services()`` / ``build_in_memory_services()``: construct the
  PostgreSQL-backed or process-local variants.
- ``init_services()`` / ``shutdown_services()``: manage the module-level
  singleton from the app lifespan.
- FastAPI dependency functions injecting those services into route handlers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from coachsync.config import ServiceConfig
from coachsync.db import Database
from coachsync.scheduling.cache import ReadCache
from coachsync.scheduling.calendar import CalendarAdapter, IntervalsCalendarAdapter
from coachsync.scheduling.coordinator import SyncCoordinator
from coachsync.scheduling.directory import (
    AthleteDirectory,
    InMemoryAthleteDirectory,
    InMemoryTemplateCatalog,
    PostgresAthleteDirectory,
    PostgresTemplateCatalog,
    TemplateCatalog,
)
from coachsync.scheduling.store import (
    AssignmentStore,
    InMemoryAssignmentStore,
    PostgresAssignmentStore,
)

logger = logging.getLogger(__name__)


@dataclass
class SchedulingServices:
    """Everything a request handler needs, built once per process."""

    store: AssignmentStore
    athletes: AthleteDirectory
    templates: TemplateCatalog
    calendar: CalendarAdapter
    coordinator: SyncCoordinator
    cache: ReadCache
    database: Database | None = None

    async def close(self) -> None:
        await self.calendar.shutdown()
        if self.database is not None:
            await self.database.close()


def _assemble(
    store: AssignmentStore,
    athletes: AthleteDirectory,
    templates: TemplateCatalog,
    calendar: CalendarAdapter,
    cache: ReadCache,
    database: Database | None = None,
) -> SchedulingServices:
    return SchedulingServices(
        store=store,
        athletes=athletes,
        templates=templates,
        calendar=calendar,
        coordinator=SyncCoordinator(store, calendar, athletes, templates),
        cache=cache,
        database=database,
    )


async def build_services(config: ServiceConfig) -> SchedulingServices:
    """Connect to PostgreSQL and build the production service graph."""
    database = Database.from_config(config.database)
    pool = await database.connect()
    return _assemble(
        store=PostgresAssignmentStore(pool),
        athletes=PostgresAthleteDirectory(pool),
        templates=PostgresTemplateCatalog(pool),
        calendar=IntervalsCalendarAdapter(config.calendar),
        cache=ReadCache(config.cache.ttl_seconds),
        database=database,
    )


def build_in_memory_services(
    config: ServiceConfig | None = None,
    *,
    calendar: CalendarAdapter | None = None,
    athletes: InMemoryAthleteDirectory | None = None,
    templates: InMemoryTemplateCatalog | None = None,
) -> SchedulingServices:
    """Build a process-local service graph (no database)."""
    config = config or ServiceConfig()
    return _assemble(
        store=InMemoryAssignmentStore(),
        athletes=athletes or InMemoryAthleteDirectory(),
        templates=templates or InMemoryTemplateCatalog(),
        calendar=calendar or IntervalsCalendarAdapter(config.calendar),
        cache=ReadCache(config.cache.ttl_seconds),
    )


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

_services: SchedulingServices | None = None


async def init_services(
    config: ServiceConfig,
    services: SchedulingServices | None = None,
) -> SchedulingServices:
    """Initialize the module-level services. Called from the app lifespan."""
    global _services  # noqa: PLW0603

    _services = services or await build_services(config)
    logger.info(
        "Scheduling services initialized (store=%s, cache_ttl=%.1fs)",
        type(_services.store).__name__,
        _services.cache.ttl_seconds,
    )
    return _services


async def shutdown_services() -> None:
    """Close the module-level services. Called during app shutdown."""
    global _services  # noqa: PLW0603

    if _services is not None:
        await _services.close()
        _services = None


def get_services() -> SchedulingServices:
    if _services is None:
        raise RuntimeError("Scheduling services not initialized — call init_services() first")
    return _services


def get_coordinator() -> SyncCoordinator:
    """FastAPI dependency: provides the ``SyncCoordinator``."""
    return get_services().coordinator


def get_store() -> AssignmentStore:
    """FastAPI dependency: provides the ``AssignmentStore`` backing cached reads."""
    return get_services().store


def get_read_cache() -> ReadCache:
    """FastAPI dependency: provides the assignment list ``ReadCache``."""
    return get_services().cache
