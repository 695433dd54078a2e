"""
Processed-event ledger: a short dedupe window keyed by processor event id.

Reconciliation is idempotent on its own; the ledger only saves repeated work
on redeliveries. An id is marked after a successful reconcile, never before,
so a failed attempt is always retried.
"""

from __future__ import annotations

import time
from typing import Callable, Protocol

import redis.asyncio as redis
import structlog
from redis.exceptions import RedisError

log = structlog.get_logger()

KEY_PREFIX = "billing:webhook_event:"


class EventLedger(Protocol):
    async def seen(self, event_id: str) -> bool:
        ...

    async def mark(self, event_id: str) -> None:
        ...


class MemoryEventLedger:
    """Per-process ledger with TTL expiry."""

    def __init__(self, ttl_seconds: int, clock: Callable[[], float] = time.monotonic):
        self._ttl = ttl_seconds
        self._clock = clock
        self._expires: dict[str, float] = {}

    def _purge(self) -> None:
        now = self._clock()
        for event_id in [k for k, exp in self._expires.items() if exp <= now]:
            del self._expires[event_id]

    async def seen(self, event_id: str) -> bool:
        self._purge()
        return event_id in self._expires

    async def mark(self, event_id: str) -> None:
        self._expires[event_id] = self._clock() + self._ttl

    def __len__(self) -> int:
        self._purge()
        return len(self._expires)


class RedisEventLedger:
    """Ledger shared by all workers through Redis keys with an expiry."""

    def __init__(self, client: redis.Redis, ttl_seconds: int):
        self._redis = client
        self._ttl = ttl_seconds

    async def seen(self, event_id: str) -> bool:
        try:
            return await self._redis.exists(f"{KEY_PREFIX}{event_id}") > 0
        except RedisError as exc:
            # Fail open: reprocessing is safe, refusing the event is not.
            log.warning("ledger.lookup_failed", event_id=event_id, error=type(exc).__name__)
            return False

    async def mark(self, event_id: str) -> None:
        try:
            await self._redis.set(f"{KEY_PREFIX}{event_id}", "1", ex=self._ttl)
        except RedisError as exc:
            log.warning("ledger.mark_failed", event_id=event_id, error=type(exc).__name__)
