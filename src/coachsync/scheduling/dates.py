"""Calendar-date normalization for scheduled workouts.

A scheduled workout lives on a calendar day, not at an instant. Every value
entering the scheduling core is normalized exactly once into a plain
``datetime.date`` here, and every value leaving for the remote calendar is
rendered as a local date-time with an explicit midnight suffix so the remote
service has nothing to reinterpret.

Nothing in this module performs timezone arithmetic.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any

_CALENDAR_DATE_PATTERN = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
# Remote payloads may carry a time part and an offset; only the date prefix is read.
_REMOTE_DATE_PREFIX_PATTERN = re.compile(r"^(\d{4})-(\d{2})-(\d{2})(?:[T ].*)?$")

WIRE_LOCAL_MIDNIGHT = "T00:00:00"


def parse_calendar_date(value: Any) -> date:
    """Return *value* as a calendar date.

    Accepts a ``date`` or a ``YYYY-MM-DD`` string. ``datetime`` values are
    rejected because they describe an instant, not a day.

    Raises
    ------
    ValueError
        If *value* is not a calendar date.
    """
    if isinstance(value, datetime):
        raise ValueError(
            "scheduled dates must be calendar dates, not datetimes "
            f"(got {value.isoformat()!r})"
        )
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise ValueError(f"calendar date must be a YYYY-MM-DD string, got {type(value).__name__}")

    match = _CALENDAR_DATE_PATTERN.match(value.strip())
    if match is None:
        raise ValueError(f"calendar date must be formatted YYYY-MM-DD, got {value!r}")
    return _build_date(match, value)


def calendar_date_from_remote(value: Any) -> date:
    """Read the calendar date out of a remote ``start_date_local`` value.

    The date prefix is taken verbatim. A trailing offset or ``Z`` is ignored
    rather than applied, so ``2025-08-06T00:00:00Z`` is still August 6th.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise ValueError(f"remote date must be a string, got {type(value).__name__}")

    match = _REMOTE_DATE_PREFIX_PATTERN.match(value.strip())
    if match is None:
        raise ValueError(f"remote date is not ISO formatted: {value!r}")
    return _build_date(match, value)


def format_calendar_date(value: date) -> str:
    """Render a calendar date as ``YYYY-MM-DD``."""
    return parse_calendar_date(value).isoformat()


def to_wire_local_datetime(value: date) -> str:
    """Render a calendar date as the remote local date-time ``YYYY-MM-DDT00:00:00``."""
    return f"{format_calendar_date(value)}{WIRE_LOCAL_MIDNIGHT}"


def _build_date(match: re.Match[str], raw: str) -> date:
    year, month, day = (int(part) for part in match.groups())
    try:
        return date(year, month, day)
    except ValueError as exc:
        raise ValueError(f"invalid calendar date {raw!r}: {exc}") from exc
