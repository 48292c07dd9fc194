"""CLI for coachsync — run the scheduling API and maintain its database."""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

import click

from coachsync.config import ConfigError, ServiceConfig, load_config
from coachsync.core.logging import configure_logging
from coachsync.db import Database
from coachsync.scheduling.calendar import ListEventsResult
from coachsync.scheduling.errors import SchedulingError

logger = logging.getLogger(__name__)


def _load(config_path: Path | None) -> ServiceConfig:
    try:
        config = load_config(config_path)
    except ConfigError as exc:
        click.echo(f"Configuration error: {exc}", err=True)
        sys.exit(1)
    configure_logging(level=config.logging.level, fmt=config.logging.format)
    return config


_config_option = click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Path to coachsync.toml (defaults to $COACHSYNC_CONFIG, then ./coachsync.toml)",
)


@click.group()
@click.version_option(version="0.1.0")
def cli() -> None:
    """coachsync — workout scheduling with an intervals.icu calendar mirror."""


@cli.command()
@_config_option
@click.option("--host", default=None, help="Bind address (overrides [api].host)")
@click.option("--port", type=int, default=None, help="Bind port (overrides [api].port)")
@click.option(
    "--in-memory",
    is_flag=True,
    help="Serve from process-local stores instead of PostgreSQL (development only)",
)
def serve(config_path: Path | None, host: str | None, port: int | None, in_memory: bool) -> None:
    """Run the scheduling HTTP API."""
    import uvicorn

    from coachsync.api.app import create_app
    from coachsync.api.deps import build_in_memory_services

    config = _load(config_path)
    services = build_in_memory_services(config) if in_memory else None
    app = create_app(config, services)
    bind_host = host or config.api.host
    bind_port = port or config.api.port
    logger.info("Starting coachsync API on %s:%d (in_memory=%s)", bind_host, bind_port, in_memory)
    uvicorn.run(app, host=bind_host, port=bind_port, log_config=None)


@cli.command()
@_config_option
@click.option("--revision", default="head", show_default=True, help="Target revision")
def migrate(config_path: Path | None, revision: str) -> None:
    """Apply database migrations."""
    from coachsync.migrations import run_migrations

    config = _load(config_path)
    database = Database.from_config(config.database)
    asyncio.run(run_migrations(database.dsn, revision))
    click.echo(f"Database {config.database.db_name} migrated to {revision}")


@cli.command("remote-events")
@_config_option
@click.argument("athlete_id", type=int)
@click.argument("start_date")
@click.argument("end_date")
def remote_events(config_path: Path | None, athlete_id: int, start_date: str, end_date: str) -> None:
    """List an athlete's events on the remote calendar between two dates (inclusive)."""
    config = _load(config_path)
    try:
        result = asyncio.run(_fetch_remote_events(config, athlete_id, start_date, end_date))
    except SchedulingError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    if result.not_configured:
        click.echo(f"Athlete {athlete_id} has no external calendar account")
        return
    if not result.ok:
        click.echo(f"Remote calendar request failed: {result.reason}", err=True)
        sys.exit(2)
    if not result.events:
        click.echo("No remote events in range")
        return
    for event in result.events:
        click.echo(
            f"{event.scheduled_date.isoformat()}  {event.external_id:<12}  "
            f"{event.event_type or '-':<8}  {event.name or ''}"
        )


async def _fetch_remote_events(
    config: ServiceConfig,
    athlete_id: int,
    start_date: str,
    end_date: str,
) -> ListEventsResult:
    from coachsync.api.deps import build_services

    services = await build_services(config)
    try:
        return await services.coordinator.remote_events(athlete_id, start_date, end_date)
    finally:
        await services.close()


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
