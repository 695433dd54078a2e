"""
Subscription change notifications.

Every applied subscriber write is published once on the change bus:
in-process listeners are awaited in registration order, and when Redis is
configured the change is also published as JSON on
``billing:subscriber_changes`` for other services.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Awaitable, Callable, Optional

import redis.asyncio as redis
import structlog
from pydantic import BaseModel, ConfigDict
from redis.exceptions import RedisError

from billing_sync.schemas.common import SubscriptionStatus

log = structlog.get_logger()

REDIS_CHANNEL = "billing:subscriber_changes"


class SubscriptionChange(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: uuid.UUID
    previous_status: Optional[SubscriptionStatus] = None
    status: SubscriptionStatus
    event_id: str
    event_kind: str
    occurred_at: datetime


Listener = Callable[[SubscriptionChange], Awaitable[None]]


class SubscriptionChangeBus:
    """Publish/subscribe channel for subscriber status changes."""

    def __init__(self, client: Optional[redis.Redis] = None):
        self._redis = client
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener. Returns a callable that unsubscribes it."""
        self._listeners.append(listener)
        return lambda: self.unsubscribe(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def publish(self, change: SubscriptionChange) -> None:
        # The write is already durable; a failing listener must not turn
        # the webhook into a retry.
        for listener in list(self._listeners):
            try:
                await listener(change)
            except Exception:
                log.exception("changes.listener_failed", user_id=str(change.user_id))

        if self._redis is not None:
            try:
                await self._redis.publish(REDIS_CHANNEL, change.model_dump_json())
            except RedisError as exc:
                log.warning("changes.publish_failed", user_id=str(change.user_id), error=type(exc).__name__)

    def close(self) -> None:
        self._listeners.clear()
