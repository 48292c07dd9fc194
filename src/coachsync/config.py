"""Service configuration loading and validation.

Reads ``coachsync.toml``, resolves ``${VAR_NAME}`` environment references,
and returns a validated ``ServiceConfig`` dataclass. Every section is
optional; database connection defaults come from ``DATABASE_URL`` /
``POSTGRES_*`` environment variables.
"""

from __future__ import annotations

import os
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from coachsync.db import db_params_from_env

DEFAULT_CONFIG_FILENAME = "coachsync.toml"
CONFIG_PATH_ENV = "COACHSYNC_CONFIG"
INTERVALS_API_BASE_URL = "https://intervals.icu/api/v1"

# Pattern matching ${VAR_NAME} — supports alphanumeric + underscore variable names.
_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")
_VALID_LOG_FORMATS = ("text", "json")


class ConfigError(Exception):
    """Raised when service configuration is malformed or invalid."""


@dataclass
class LoggingConfig:
    """Logging configuration from the [logging] section."""

    level: str = "INFO"
    format: str = "text"  # "text" or "json"


@dataclass
class DatabaseConfig:
    """PostgreSQL connection settings from the [database] section."""

    host: str = "localhost"
    port: int = 5432
    user: str = "coachsync"
    password: str = "coachsync"
    db_name: str = "coachsync"
    ssl: str | None = None
    min_pool_size: int = 1
    max_pool_size: int = 10


@dataclass
class CalendarConfig:
    """intervals.icu adapter settings from the [calendar] section.

    ``timeout_seconds`` bounds a whole adapter call including rate-limit
    retries; a timed-out call is reported as a failed sync.
    """

    base_url: str = INTERVALS_API_BASE_URL
    api_key: str | None = None
    timeout_seconds: float = 10.0
    max_retries: int = 2
    backoff_seconds: float = 1.0
    default_event_type: str = "Ride"


@dataclass
class CacheConfig:
    """Read cache settings from the [cache] section."""

    ttl_seconds: float = 30.0


@dataclass
class ApiConfig:
    """HTTP API settings from the [api] section."""

    host: str = "127.0.0.1"
    port: int = 8000
    cors_origins: list[str] = field(default_factory=lambda: ["http://localhost:3000"])


@dataclass
class ServiceConfig:
    """Parsed and validated service configuration."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    calendar: CalendarConfig = field(default_factory=CalendarConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    api: ApiConfig = field(default_factory=ApiConfig)


def resolve_env_vars(value: Any) -> Any:
    """Recursively resolve ``${VAR_NAME}`` references in config values.

    Walks dicts, lists, and strings. Non-string leaf values are returned
    unchanged.

    Raises
    ------
    ConfigError
        If a referenced environment variable is not set.
    """
    if isinstance(value, dict):
        return {k: resolve_env_vars(v) for k, v in value.items()}

    if isinstance(value, list):
        return [resolve_env_vars(item) for item in value]

    if isinstance(value, str):
        return _resolve_string(value)

    return value


def _resolve_string(s: str) -> str:
    """Replace all ``${VAR_NAME}`` occurrences in *s* with env var values.

    Collects all missing variable names and reports them in a single error.
    """
    missing: list[str] = []

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        env_value = os.environ.get(var_name)
        if env_value is None:
            missing.append(var_name)
            return match.group(0)
        return env_value

    result = _ENV_VAR_PATTERN.sub(_replace, s)

    if missing:
        vars_str = ", ".join(missing)
        raise ConfigError(f"Unresolved environment variable(s) in config value: {vars_str}")

    return result


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name, {})
    if not isinstance(section, dict):
        raise ConfigError(f"[{name}] must be a table")
    return section


def _number(section: dict[str, Any], key: str, default: float, *, path: str) -> float:
    raw = section.get(key, default)
    if isinstance(raw, bool) or not isinstance(raw, int | float):
        raise ConfigError(f"{path}.{key} must be a number, got {raw!r}")
    if raw < 0:
        raise ConfigError(f"{path}.{key} must not be negative")
    return float(raw)


def _parse_database(section: dict[str, Any]) -> DatabaseConfig:
    params = db_params_from_env()
    try:
        return DatabaseConfig(
            host=str(section.get("host", params["host"])),
            port=int(section.get("port", params["port"])),
            user=str(section.get("user", params["user"])),
            password=str(section.get("password", params["password"])),
            db_name=str(section.get("name", params["database"])),
            ssl=section.get("ssl", params["ssl"]),
            min_pool_size=int(section.get("min_pool_size", 1)),
            max_pool_size=int(section.get("max_pool_size", 10)),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid [database] section: {exc}") from exc


def _parse_calendar(section: dict[str, Any]) -> CalendarConfig:
    api_key = section.get("api_key")
    if api_key is not None and not isinstance(api_key, str):
        raise ConfigError("calendar.api_key must be a string when set")
    timeout = _number(section, "timeout_seconds", 10.0, path="calendar")
    if timeout == 0:
        raise ConfigError("calendar.timeout_seconds must be greater than zero")
    max_retries = section.get("max_retries", 2)
    if isinstance(max_retries, bool) or not isinstance(max_retries, int) or max_retries < 0:
        raise ConfigError("calendar.max_retries must be a non-negative integer")
    return CalendarConfig(
        base_url=str(section.get("base_url", INTERVALS_API_BASE_URL)),
        api_key=(api_key or "").strip() or None,
        timeout_seconds=timeout,
        max_retries=max_retries,
        backoff_seconds=_number(section, "backoff_seconds", 1.0, path="calendar"),
        default_event_type=str(section.get("default_event_type", "Ride")),
    )


def _parse_logging(section: dict[str, Any]) -> LoggingConfig:
    level = str(section.get("level", "INFO")).upper()
    fmt = str(section.get("format", "text")).lower()
    if fmt not in _VALID_LOG_FORMATS:
        raise ConfigError(f"logging.format must be one of {_VALID_LOG_FORMATS}, got {fmt!r}")
    return LoggingConfig(level=level, format=fmt)


def _parse_api(section: dict[str, Any]) -> ApiConfig:
    origins = section.get("cors_origins", ["http://localhost:3000"])
    if not isinstance(origins, list) or not all(isinstance(o, str) for o in origins):
        raise ConfigError("api.cors_origins must be a list of strings")
    return ApiConfig(
        host=str(section.get("host", "127.0.0.1")),
        port=int(section.get("port", 8000)),
        cors_origins=origins,
    )


def parse_config(data: dict[str, Any]) -> ServiceConfig:
    """Build a ``ServiceConfig`` from already-decoded TOML data."""
    data = resolve_env_vars(data)
    return ServiceConfig(
        database=_parse_database(_section(data, "database")),
        calendar=_parse_calendar(_section(data, "calendar")),
        cache=CacheConfig(
            ttl_seconds=_number(_section(data, "cache"), "ttl_seconds", 30.0, path="cache")
        ),
        logging=_parse_logging(_section(data, "logging")),
        api=_parse_api(_section(data, "api")),
    )


def load_config(path: Path | None = None) -> ServiceConfig:
    """Load and validate the service configuration.

    Parameters
    ----------
    path:
        Path to a TOML file. Defaults to ``$COACHSYNC_CONFIG`` and then to
        ``coachsync.toml`` in the working directory. A missing default file
        yields an all-defaults configuration; a missing explicit file is an
        error.

    Raises
    ------
    ConfigError
        If the file is missing (when explicit), contains invalid TOML, or
        holds invalid values.
    """
    explicit = path is not None or CONFIG_PATH_ENV in os.environ
    toml_path = Path(path or os.environ.get(CONFIG_PATH_ENV, DEFAULT_CONFIG_FILENAME))

    if not toml_path.exists():
        if explicit:
            raise ConfigError(f"Config file not found: {toml_path}")
        return parse_config({})

    try:
        data = tomllib.loads(toml_path.read_bytes().decode())
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {toml_path}: {exc}") from exc

    return parse_config(data)
