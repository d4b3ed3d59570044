"""Per-key fixed-window rate limiter with a pluggable record store."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

from gas_relay.errors import RateLimitError
from gas_relay.interfaces.store import RateLimitStore
from gas_relay.models.records import RateDecision, RateLimitRecord

log = logging.getLogger(__name__)


class InMemoryRateLimitStore:
    """Process-local RateLimitStore.

    Unbounded, and a restart clears every record.
    """

    def __init__(self) -> None:
        self._records: dict[str, RateLimitRecord] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> RateLimitRecord | None:
        async with self._lock:
            return self._records.get(key)

    async def put(self, key: str, record: RateLimitRecord) -> None:
        async with self._lock:
            self._records[key] = record

    def __len__(self) -> int:
        return len(self._records)


class RateLimiter:
    """Allows at most ``max_requests`` per key per window.

    The first admission (or the first after ``window_reset_at``) starts a new
    window with count=1. Later admissions increment until the maximum, after
    which requests are denied without touching the counter.

    Read-modify-write on a key is serialized with a per-key lock, so two
    concurrent checks can never both take the last slot.
    """

    def __init__(
        self,
        store: RateLimitStore,
        max_requests: int,
        window_seconds: float,
        name: str = "default",
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")
        self._store = store
        self._max = max_requests
        self._window = window_seconds
        self._name = name
        self._clock = clock
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def max_requests(self) -> int:
        return self._max

    @property
    def window_seconds(self) -> float:
        return self._window

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    async def check(self, key: str) -> RateDecision:
        """Admit-and-count ``key`` atomically, returning the full decision."""
        key = key.lower()
        async with self._lock_for(key):
            now = self._clock()
            record = await self._store.get(key)

            if record is None or now > record.window_reset_at:
                record = RateLimitRecord(key=key, count=1, window_reset_at=now + self._window)
                await self._store.put(key, record)
                return RateDecision(True, key, record.count, record.window_reset_at)

            if record.count >= self._max:
                retry_after = max(0.0, record.window_reset_at - now)
                log.info(
                    "Rate limit [%s] hit for %s (%d/%d, resets in %.0fs)",
                    self._name, key, record.count, self._max, retry_after,
                )
                return RateDecision(
                    False, key, record.count, record.window_reset_at, retry_after,
                )

            record = RateLimitRecord(
                key=key, count=record.count + 1, window_reset_at=record.window_reset_at,
            )
            await self._store.put(key, record)
            return RateDecision(True, key, record.count, record.window_reset_at)

    async def admit(self, key: str) -> bool:
        return (await self.check(key)).allowed

    async def enforce(self, key: str) -> RateDecision:
        """Like check(), but raises RateLimitError when denied."""
        decision = await self.check(key)
        if not decision.allowed:
            raise RateLimitError(key, decision.retry_after)
        return decision
