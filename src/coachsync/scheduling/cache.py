"""Client Read Cache — TTL cache with request coalescing.

Sits in front of read paths that list assignments by athlete and date range.
Concurrent reads of one key share a single in-flight load; a failed load is
observed identically by every waiter and is never cached. Writes do not
invalidate anything automatically: callers invalidate after a mutation.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

Loader = Callable[[], Awaitable[Any]]


def cache_key(method: str, path: str, params: Mapping[str, Any] | None = None) -> str:
    """Derive a cache key from the request method, path and serialized filter."""
    serialized = json.dumps(dict(params or {}), sort_keys=True, default=str)
    return f"{method.upper()} {path} {serialized}"


def _retrieve_exception(task: asyncio.Future[Any]) -> None:
    # Every waiter may have been cancelled before a failed load finished.
    if not task.cancelled():
        task.exception()


@dataclass(frozen=True)
class _Entry:
    value: Any
    stored_at: float


@dataclass
class CacheStats:
    hits: int = 0
    loads: int = 0
    coalesced: int = 0
    failures: int = 0


class ReadCache:
    """Per-instance TTL cache; TTL and clock are injected.

    Parameters
    ----------
    ttl_seconds:
        Entries younger than this are served without calling the loader.
    clock:
        Monotonic time source in seconds. Defaults to ``time.monotonic``.
    """

    def __init__(
        self,
        ttl_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds < 0:
            raise ValueError("ttl_seconds must not be negative")
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._in_flight: dict[str, asyncio.Future[Any]] = {}
        self.stats = CacheStats()

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def __len__(self) -> int:
        return len(self._entries)

    def _fresh(self, key: str) -> _Entry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.stored_at < self._ttl:
            return entry
        del self._entries[key]
        return None

    async def get(self, key: str, loader: Loader) -> Any:
        """Return the cached value for *key*, loading it at most once at a time."""
        entry = self._fresh(key)
        if entry is not None:
            self.stats.hits += 1
            return entry.value

        pending = self._in_flight.get(key)
        if pending is None:
            self.stats.loads += 1
            pending = asyncio.ensure_future(self._load(key, loader))
            pending.add_done_callback(_retrieve_exception)
            self._in_flight[key] = pending
        else:
            self.stats.coalesced += 1

        # Shield so a cancelled caller does not cancel the load shared by others.
        return await asyncio.shield(pending)

    async def _load(self, key: str, loader: Loader) -> Any:
        task = asyncio.current_task()
        try:
            value = await loader()
        except BaseException:
            self.stats.failures += 1
            logger.debug("Read cache load failed for %s; not caching", key)
            raise
        else:
            # An invalidate() during the load detaches this task; its result is stale.
            if self._in_flight.get(key) is task:
                self._entries[key] = _Entry(value=value, stored_at=self._clock())
            return value
        finally:
            if self._in_flight.get(key) is task:
                del self._in_flight[key]

    def invalidate(self, key: str | None = None) -> None:
        """Drop one entry, or every entry when *key* is None.

        In-flight loads for the dropped keys keep running for their current
        waiters, but their results are not stored and new callers start a
        fresh load.
        """
        if key is None:
            self._entries.clear()
            self._in_flight.clear()
            logger.debug("Read cache cleared")
            return
        self._entries.pop(key, None)
        self._in_flight.pop(key, None)

    def invalidate_prefix(self, prefix: str) -> None:
        """Drop every entry whose key starts with *prefix*."""
        for key in [k for k in self._entries if k.startswith(prefix)]:
            del self._entries[key]
        for key in [k for k in self._in_flight if k.startswith(prefix)]:
            del self._in_flight[key]
