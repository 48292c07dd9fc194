"""Prometheus metrics for the calendar mirror.

Metrics exported:
- coachsync_calendar_api_calls_total: Counter of remote calendar API calls
- coachsync_calendar_api_latency_seconds: Histogram of remote call latency,
  including rate-limit retries
- coachsync_calendar_rate_limit_retries_total: Counter of 429/503 retries
- coachsync_sync_outcomes_total: Counter of coordinator mirror outcomes

Calendar metrics carry a ``provider`` label (``intervals_icu``).
"""

from __future__ import annotations

from prometheus_client import Counter, Histogram

calendar_api_calls_total = Counter(
    "coachsync_calendar_api_calls_total",
    "Total number of remote calendar API calls",
    labelnames=["provider", "api_method", "status"],
)

calendar_api_latency_seconds = Histogram(
    "coachsync_calendar_api_latency_seconds",
    "Latency of remote calendar API calls in seconds",
    labelnames=["provider", "api_method", "status"],
    buckets=(0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

calendar_rate_limit_retries_total = Counter(
    "coachsync_calendar_rate_limit_retries_total",
    "Total number of calendar requests retried after a rate-limit response",
    labelnames=["provider", "status_code"],
)

sync_outcomes_total = Counter(
    "coachsync_sync_outcomes_total",
    "Mirror outcomes reported by assignment mutations",
    labelnames=["operation", "outcome"],
)


class CalendarMetrics:
    """Metrics collector for one calendar provider."""

    def __init__(self, provider: str) -> None:
        self._provider = provider

    def record_api_call(self, api_method: str, status: str, latency: float | None = None) -> None:
        """Record a remote call.

        Args:
            api_method: HTTP method of the call (e.g. "POST", "DELETE")
            status: "success", "error" or "timeout"
            latency: Optional latency in seconds
        """
        calendar_api_calls_total.labels(
            provider=self._provider,
            api_method=api_method,
            status=status,
        ).inc()

        if latency is not None:
            calendar_api_latency_seconds.labels(
                provider=self._provider,
                api_method=api_method,
                status=status,
            ).observe(latency)

    def record_rate_limit_retry(self, status_code: int) -> None:
        calendar_rate_limit_retries_total.labels(
            provider=self._provider,
            status_code=str(status_code),
        ).inc()


def record_sync_outcome(operation: str, outcome: str) -> None:
    """Count the mirror outcome of an ``assign``, ``reschedule`` or ``unassign``."""
    sync_outcomes_total.labels(operation=operation, outcome=outcome).inc()
