"""Collaborators consumed by the coordinator: athlete directory and template catalog.

Both are owned by other parts of the platform. The PostgreSQL readers query
the shared ``users`` and ``workout_library`` tables; the in-memory variants
back local development and tests.
"""

from __future__ import annotations

import abc
from collections.abc import Iterable

import asyncpg

from coachsync.scheduling.errors import NotFoundError
from coachsync.scheduling.models import Athlete, WorkoutTemplate


class AthleteDirectory(abc.ABC):
    """Lookup of athletes and their external calendar account ids."""

    @abc.abstractmethod
    async def get_athlete(self, athlete_id: int) -> Athlete:
        """Return the athlete, or raise ``NotFoundError``."""
        ...

    async def external_account_id(self, athlete_id: int) -> str | None:
        """Return the athlete's external account id, or ``None`` when unset."""
        athlete = await self.get_athlete(athlete_id)
        return athlete.external_account_id


class TemplateCatalog(abc.ABC):
    """Lookup of workout templates."""

    @abc.abstractmethod
    async def get_template(self, template_id: int) -> WorkoutTemplate:
        """Return the template, or raise ``NotFoundError``."""
        ...


class PostgresAthleteDirectory(AthleteDirectory):
    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def get_athlete(self, athlete_id: int) -> Athlete:
        row = await self._pool.fetchrow(
            "SELECT id, intervals_icu_id FROM users WHERE id = $1",
            athlete_id,
        )
        if row is None:
            raise NotFoundError("athlete", athlete_id)
        return Athlete(
            id=row["id"],
            external_account_id=row["intervals_icu_id"],
        )


class PostgresTemplateCatalog(TemplateCatalog):
    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def get_template(self, template_id: int) -> WorkoutTemplate:
        row = await self._pool.fetchrow(
            """
            SELECT id, name, description, training_type, estimated_duration_minutes
            FROM workout_library
            WHERE id = $1
            """,
            template_id,
        )
        if row is None:
            raise NotFoundError("workout template", template_id)
        return WorkoutTemplate(**dict(row))


class InMemoryAthleteDirectory(AthleteDirectory):
    def __init__(self, athletes: Iterable[Athlete] = ()) -> None:
        self._athletes = {athlete.id: athlete for athlete in athletes}

    def add(self, athlete_id: int, external_account_id: str | None = None) -> Athlete:
        athlete = Athlete(
            id=athlete_id,
            external_account_id=external_account_id,
        )
        self._athletes[athlete_id] = athlete
        return athlete

    async def get_athlete(self, athlete_id: int) -> Athlete:
        athlete = self._athletes.get(athlete_id)
        if athlete is None:
            raise NotFoundError("athlete", athlete_id)
        return athlete


class InMemoryTemplateCatalog(TemplateCatalog):
    def __init__(self, templates: Iterable[WorkoutTemplate] = ()) -> None:
        self._templates = {template.id: template for template in templates}

    def add(self, template: WorkoutTemplate) -> WorkoutTemplate:
        self._templates[template.id] = template
        return template

    async def get_template(self, template_id: int) -> WorkoutTemplate:
        template = self._templates.get(template_id)
        if template is None:
            raise NotFoundError("workout template", template_id)
        return template
