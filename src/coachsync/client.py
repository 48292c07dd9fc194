"""Async client for the coachsync scheduling API.

GET requests are served through a ``ReadCache`` keyed on method, path and
query parameters; every mutation invalidates the cached assignment lists
once the server has answered.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date
from typing import Any

import httpx

from coachsync.scheduling.cache import ReadCache, cache_key
from coachsync.scheduling.dates import format_calendar_date, parse_calendar_date
from coachsync.scheduling.models import AssignResult, UnassignResult, WorkoutAssignment

logger = logging.getLogger(__name__)

ASSIGNMENTS_PATH = "/api/assignments"
DEFAULT_CACHE_TTL_SECONDS = 30.0


class SchedulingApiError(Exception):
    """Raised when the scheduling API answers with an error envelope."""

    def __init__(self, status_code: int, code: str, message: str) -> None:
        self.status_code = status_code
        self.code = code
        self.message = message
        super().__init__(f"{status_code} {code}: {message}")


def _raise_for_error(response: httpx.Response) -> None:
    if response.is_success:
        return
    code = "HTTP_ERROR"
    message = response.text.strip() or response.reason_phrase
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
        code = str(payload["error"].get("code", code))
        message = str(payload["error"].get("message", message))
    raise SchedulingApiError(response.status_code, code, message)


class SchedulingClient:
    """Thin client over ``/api/assignments`` with a per-instance read cache.

    Parameters
    ----------
    base_url:
        Root URL of the scheduling API (e.g. ``http://localhost:8000``).
    http_client:
        Optional pre-configured ``httpx.AsyncClient``; its ``base_url`` is used
        as-is. The client is closed by ``aclose()`` only when created here.
    cache_ttl_seconds / clock:
        Passed to the ``ReadCache``.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        *,
        http_client: httpx.AsyncClient | None = None,
        cache_ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._owns_http_client = http_client is None
        self._http = http_client or httpx.AsyncClient(base_url=base_url, timeout=10.0)
        cache_kwargs: dict[str, Any] = {"clock": clock} if clock is not None else {}
        self.cache = ReadCache(cache_ttl_seconds, **cache_kwargs)

    async def __aenter__(self) -> SchedulingClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self._http.aclose()

    async def _get(self, path: str, params: dict[str, Any]) -> Any:
        async def load() -> Any:
            response = await self._http.get(path, params=params)
            _raise_for_error(response)
            return response.json()["data"]

        return await self.cache.get(cache_key("GET", path, params), load)

    async def _mutate(self, method: str, path: str, body: dict[str, Any] | None = None) -> Any:
        response = await self._http.request(method, path, json=body)
        _raise_for_error(response)
        self.invalidate_assignments()
        return response.json()["data"]

    def invalidate_assignments(self) -> None:
        """Drop every cached assignment list."""
        self.cache.invalidate_prefix(f"GET {ASSIGNMENTS_PATH} ")

    async def list_assignments(
        self,
        athlete_id: int,
        start_date: date | str,
        end_date: date | str,
    ) -> list[WorkoutAssignment]:
        params = {
            "athlete_id": athlete_id,
            "start_date": format_calendar_date(parse_calendar_date(start_date)),
            "end_date": format_calendar_date(parse_calendar_date(end_date)),
        }
        data = await self._get(ASSIGNMENTS_PATH, params)
        return [WorkoutAssignment.model_validate(item) for item in data]

    async def assign(
        self,
        template_id: int,
        athlete_id: int,
        coach_id: int,
        scheduled_date: date | str,
        **adjustments: Any,
    ) -> AssignResult:
        body = {
            "workout_template_id": template_id,
            "assigned_to_user_id": athlete_id,
            "assigned_by_user_id": coach_id,
            "scheduled_date": format_calendar_date(parse_calendar_date(scheduled_date)),
            **{key: value for key, value in adjustments.items() if value is not None},
        }
        data = await self._mutate("POST", ASSIGNMENTS_PATH, body)
        result = AssignResult.model_validate(data)
        if not result.sync_outcome.synced:
            logger.info(
                "Assignment %s saved; calendar mirror %s",
                result.assignment_id,
                result.sync_outcome.status,
            )
        return result

    async def unassign(self, assignment_id: int) -> UnassignResult:
        data = await self._mutate("DELETE", f"{ASSIGNMENTS_PATH}/{assignment_id}")
        return UnassignResult.model_validate(data)

    async def update_status(
        self,
        assignment_id: int,
        status: str,
        notes: str | None = None,
    ) -> WorkoutAssignment:
        body: dict[str, Any] = {"status": status}
        if notes is not None:
            body["notes"] = notes
        data = await self._mutate("PATCH", f"{ASSIGNMENTS_PATH}/{assignment_id}/status", body)
        return WorkoutAssignment.model_validate(data)

    async def reschedule(self, assignment_id: int, scheduled_date: date | str) -> AssignResult:
        body = {"scheduled_date": format_calendar_date(parse_calendar_date(scheduled_date))}
        data = await self._mutate("PUT", f"{ASSIGNMENTS_PATH}/{assignment_id}/date", body)
        return AssignResult.model_validate(data)
