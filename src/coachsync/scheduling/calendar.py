"""External Calendar Adapter — intervals.icu events for athlete calendars.

This module defines:
- ``CalendarAdapter``: the adapter contract consumed by the coordinator
- ``IntervalsCalendarAdapter``: httpx-based client for the intervals.icu API
- result values (``CreateEventResult``, ``CalendarResult``, ``ListEventsResult``)

Every operation returns a result value. Network errors, timeouts, non-2xx
responses and malformed payloads are all normalized into a ``failed`` result
with a short reason; an athlete without an external account yields a
``not_configured`` result without any network call. Exceptions are raised
only for malformed arguments.
"""

from __future__ import annotations

import abc
import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from datetime import date
from enum import StrEnum
from typing import Any, Self
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ConfigDict, Field

from coachsync.config import CalendarConfig
from coachsync.scheduling.dates import (
    calendar_date_from_remote,
    format_calendar_date,
    parse_calendar_date,
    to_wire_local_datetime,
)
from coachsync.scheduling.metrics import CalendarMetrics

logger = logging.getLogger(__name__)

API_KEY_USERNAME = "API_KEY"
EVENT_CATEGORY_WORKOUT = "WORKOUT"
API_KEY_MISSING_REASON = "calendar API key not configured"
PROVIDER_NAME = "intervals_icu"

# Retry on 429 Too Many Requests and 503 Service Unavailable with exponential backoff.
RATE_LIMIT_RETRY_STATUS_CODES = {429, 503}
_MAX_REASON_LENGTH = 200


class CallStatus(StrEnum):
    OK = "ok"
    FAILED = "failed"
    NOT_CONFIGURED = "not_configured"


class RemoteEvent(BaseModel):
    """An event as listed by the remote calendar."""

    external_id: str
    name: str | None = None
    description: str | None = None
    event_type: str | None = None
    category: str | None = None
    scheduled_date: date


class CalendarResult(BaseModel):
    """Outcome of a calendar call that returns no payload."""

    model_config = ConfigDict(frozen=True)

    status: CallStatus
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == CallStatus.OK

    @property
    def not_configured(self) -> bool:
        return self.status == CallStatus.NOT_CONFIGURED

    @classmethod
    def success(cls, **payload: Any) -> Self:
        return cls(status=CallStatus.OK, **payload)

    @classmethod
    def failure(cls, reason: str) -> Self:
        return cls(status=CallStatus.FAILED, reason=reason)

    @classmethod
    def unconfigured(cls) -> Self:
        return cls(
            status=CallStatus.NOT_CONFIGURED,
            reason="athlete has no external calendar account",
        )


class CreateEventResult(CalendarResult):
    external_id: str | None = None


class ListEventsResult(CalendarResult):
    events: list[RemoteEvent] = Field(default_factory=list)


class _RemoteCallFailed(Exception):
    """Internal signal unwinding a failed remote call into a result value."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


def _normalize_reason(message: str) -> str:
    return " ".join(message.split())[:_MAX_REASON_LENGTH]


def _safe_error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None

    if isinstance(payload, dict):
        for key in ("error", "message", "detail"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return _normalize_reason(value)

    raw_text = response.text.strip()
    if raw_text:
        return _normalize_reason(raw_text)
    return "request failed without an error payload"


def _require_text(value: str, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{field} must be a non-empty string")
    return value.strip()


def _coerce_external_id(value: Any) -> str | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int | str):
        normalized = str(value).strip()
        return normalized or None
    return None


def _remote_event_from_payload(payload: Any) -> RemoteEvent:
    if not isinstance(payload, dict):
        raise _RemoteCallFailed("malformed response: event entry is not an object")
    external_id = _coerce_external_id(payload.get("id"))
    if external_id is None:
        raise _RemoteCallFailed("malformed response: event is missing an id")
    try:
        scheduled_date = calendar_date_from_remote(payload.get("start_date_local"))
    except ValueError as exc:
        raise _RemoteCallFailed(f"malformed response: event {external_id}: {exc}") from exc
    return RemoteEvent(
        external_id=external_id,
        name=payload.get("name") if isinstance(payload.get("name"), str) else None,
        description=(
            payload.get("description") if isinstance(payload.get("description"), str) else None
        ),
        event_type=payload.get("type") if isinstance(payload.get("type"), str) else None,
        category=payload.get("category") if isinstance(payload.get("category"), str) else None,
        scheduled_date=scheduled_date,
    )


class CalendarAdapter(abc.ABC):
    """Remote calendar operations scoped to an athlete's external account."""

    @abc.abstractmethod
    async def create_event(
        self,
        account_id: str | None,
        name: str,
        description: str | None,
        scheduled_date: date,
        event_type: str | None = None,
    ) -> CreateEventResult:
        """Create a workout event on the athlete's calendar."""
        ...

    @abc.abstractmethod
    async def update_event(
        self,
        account_id: str | None,
        external_id: str,
        *,
        name: str | None = None,
        description: str | None = None,
        scheduled_date: date | None = None,
    ) -> CalendarResult:
        """Patch an existing event."""
        ...

    @abc.abstractmethod
    async def delete_event(self, account_id: str | None, external_id: str) -> CalendarResult:
        """Delete an event. An event that is already gone counts as deleted."""
        ...

    @abc.abstractmethod
    async def list_events(
        self,
        account_id: str | None,
        start_date: date,
        end_date: date,
    ) -> ListEventsResult:
        """List events scheduled within ``[start_date, end_date]``."""
        ...

    @abc.abstractmethod
    async def shutdown(self) -> None:
        """Release adapter resources."""
        ...


class IntervalsCalendarAdapter(CalendarAdapter):
    """intervals.icu adapter with Basic auth, bounded calls and rate-limit retry."""

    def __init__(
        self,
        config: CalendarConfig,
        http_client: httpx.AsyncClient | None = None,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._config = config
        self._owns_http_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(timeout=config.timeout_seconds)
        self._sleep = sleep
        self._metrics = CalendarMetrics(PROVIDER_NAME)
        self._auth =httpx.BasicAuth(API_KEY_USERNAME, config.api_key) if config.api_key else None
        if self._auth is None:
            logger.warning("intervals.icu API key not configured; calendar sync will fail")

    @property
    def is_configured(self) -> bool:
        return self._auth is not None

    async def create_event(
        self,
        account_id: str | None,
        name: str,
        description: str | None,
        scheduled_date: date,
        event_type: str | None = None,
    ) -> CreateEventResult:
        normalized_name = _require_text(name, "name")
        day = parse_calendar_date(scheduled_date)
        if not account_id:
            return CreateEventResult.unconfigured()

        body = {
            "category": EVENT_CATEGORY_WORKOUT,
            "type": event_type or self._config.default_event_type,
            "start_date_local": to_wire_local_datetime(day),
            "name": normalized_name,
            "description": description or "",
        }
        try:
            payload = await self._call("POST", self._events_path(account_id), json_body=body)
            if not isinstance(payload, dict):
                raise _RemoteCallFailed("malformed response: expected an event object")
            external_id = _coerce_external_id(payload.get("id"))
            if external_id is None:
                raise _RemoteCallFailed("malformed response: created event is missing an id")
        except _RemoteCallFailed as exc:
            logger.warning(
                "intervals.icu create_event failed for account %s on %s: %s",
                account_id,
                day.isoformat(),
                exc.reason,
            )
            return CreateEventResult.failure(exc.reason)

        logger.info(
            "intervals.icu event %s created for account %s on %s",
            external_id,
            account_id,
            day.isoformat(),
        )
        return CreateEventResult.success(external_id=external_id)

    async def update_event(
        self,
        account_id: str | None,
        external_id: str,
        *,
        name: str | None = None,
        description: str | None = None,
        scheduled_date: date | None = None,
    ) -> CalendarResult:
        normalized_id = _require_text(external_id, "external_id")
        body: dict[str, Any] = {}
        if name is not None:
            body["name"] = _require_text(name, "name")
        if description is not None:
            body["description"] = description
        if scheduled_date is not None:
            body["start_date_local"] = to_wire_local_datetime(parse_calendar_date(scheduled_date))
        if not body:
            raise ValueError("update_event requires at least one field to change")
        if not account_id:
            return CalendarResult.unconfigured()

        try:
            await self._call(
                "PUT",
                self._event_path(account_id, normalized_id),
                json_body=body,
            )
        except _RemoteCallFailed as exc:
            logger.warning(
                "intervals.icu update_event %s failed for account %s: %s",
                normalized_id,
                account_id,
                exc.reason,
            )
            return CalendarResult.failure(exc.reason)
        return CalendarResult.success()

    async def delete_event(self, account_id: str | None, external_id: str) -> CalendarResult:
        normalized_id = _require_text(external_id, "external_id")
        if not account_id:
            return CalendarResult.unconfigured()

        try:
            await self._call(
                "DELETE",
                self._event_path(account_id, normalized_id),
                allow_not_found=True,
            )
        except _RemoteCallFailed as exc:
            logger.warning(
                "intervals.icu delete_event %s failed for account %s: %s",
                normalized_id,
                account_id,
                exc.reason,
            )
            return CalendarResult.failure(exc.reason)
        return CalendarResult.success()

    async def list_events(
        self,
        account_id: str | None,
        start_date: date,
        end_date: date,
    ) -> ListEventsResult:
        oldest = parse_calendar_date(start_date)
        newest = parse_calendar_date(end_date)
        if oldest > newest:
            raise ValueError("start_date must not be after end_date")
        if not account_id:
            return ListEventsResult.unconfigured()

        try:
            payload = await self._call(
                "GET",
                self._events_path(account_id),
                params={
                    "oldest": format_calendar_date(oldest),
                    "newest": format_calendar_date(newest),
                },
            )
            if not isinstance(payload, list):
                raise _RemoteCallFailed("malformed response: expected a list of events")
            events = [_remote_event_from_payload(item) for item in payload]
        except _RemoteCallFailed as exc:
            logger.warning(
                "intervals.icu list_events failed for account %s: %s",
                account_id,
                exc.reason,
            )
            return ListEventsResult.failure(exc.reason)
        return ListEventsResult.success(events=events)

    async def shutdown(self) -> None:
        if self._owns_http_client:
            await self._http_client.aclose()

    # ------------------------------------------------------------------
    # Request helpers
    # ------------------------------------------------------------------

    def _events_path(self, account_id: str) -> str:
        return f"/athlete/{quote(account_id, safe='')}/events"

    def _event_path(self, account_id: str, external_id: str) -> str:
        return f"{self._events_path(account_id)}/{quote(external_id, safe='')}"

    async def _call(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
        allow_not_found: bool = False,
    ) -> Any:
        if self._auth is None:
            raise _RemoteCallFailed(API_KEY_MISSING_REASON)

        start_time = time.perf_counter()
        status = "error"
        try:
            payload = await self._send(
                method,
                path,
                params=params,
                json_body=json_body,
                allow_not_found=allow_not_found,
            )
        except _RemoteCallFailed as exc:
            if exc.reason.startswith("timeout"):
                status = "timeout"
            raise
        else:
            status = "success"
            return payload
        finally:
            self._metrics.record_api_call(method, status, time.perf_counter() - start_time)

    async def _send(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None,
        json_body: dict[str, Any] | None,
        allow_not_found: bool,
    ) -> Any:
        url =f"{self._config.base_url.rstrip('/')}{path}"
        timeout = self._config.timeout_seconds
        try:
            async with asyncio.timeout(timeout):
                response = await self._request_with_retry(
                    method, url, params=params, json_body=json_body
                )
        except TimeoutError as exc:
            raise _RemoteCallFailed(f"timeout after {timeout:g}s") from exc
        except httpx.TimeoutException as exc:
            raise _RemoteCallFailed(f"timeout: {exc}") from exc
        except httpx.HTTPError as exc:
            raise _RemoteCallFailed(_normalize_reason(f"network error: {exc}")) from exc

        if allow_not_found and response.status_code == 404:
            logger.debug("%s %s returned 404; treating as already gone", method, path)
            return None

        if response.status_code < 200 or response.status_code >= 300:
            raise _RemoteCallFailed(
                f"{response.status_code} {response.reason_phrase}: "
                f"{_safe_error_message(response)}"
            )

        if response.status_code == 204 or not response.content:
            return {}

        try:
            return response.json()
        except ValueError as exc:
            raise _RemoteCallFailed("malformed response: invalid JSON") from exc

    async def _request_with_retry(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None,
        json_body: dict[str, Any] | None,
    ) -> httpx.Response:
        response = await self._request_once(method, url, params=params, json_body=json_body)

        # Rate-limit retry: honour Retry-After on 429, exponential backoff otherwise.
        retry = 0
        max_retries = self._config.max_retries
        while response.status_code in RATE_LIMIT_RETRY_STATUS_CODES and retry < max_retries:
            backoff = self._config.backoff_seconds * (2**retry)
            if response.status_code == 429:
                retry_after_header = response.headers.get("Retry-After")
                if retry_after_header is not None:
                    try:
                        backoff = float(retry_after_header)
                    except ValueError:
                        pass
            logger.warning(
                "intervals.icu rate-limited (status=%d), retrying in %.1fs (attempt %d/%d)",
                response.status_code,
                backoff,
                retry + 1,
                max_retries,
            )
            self._metrics.record_rate_limit_retry(response.status_code)
            await self._sleep(backoff)
            response = await self._request_once(method, url, params=params, json_body=json_body)
            retry += 1

        return response

    async def _request_once(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None,
        json_body: dict[str, Any] | None,
    ) -> httpx.Response:
        return await self._http_client.request(
            method,
            url,
            params=params,
            json=json_body,
            headers={"Accept": "application/json"},
            auth=self._auth,
        )
