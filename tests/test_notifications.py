"""
Subscription change bus tests.
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from billing_sync.schemas.common import SubscriptionStatus
from billing_sync.services.notifications import REDIS_CHANNEL, SubscriptionChange, SubscriptionChangeBus


def _change() -> SubscriptionChange:
    return SubscriptionChange(
        user_id=uuid.uuid4(),
        previous_status=SubscriptionStatus.TRIALING,
        status=SubscriptionStatus.ACTIVE,
        event_id="evt_1",
        event_kind="invoice.payment_succeeded",
        occurred_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
    )


class FakeRedis:
    def __init__(self, fail: bool = False):
        self.published: list[tuple[str, str]] = []
        self.fail = fail

    async def publish(self, channel, message):
        if self.fail:
            raise RedisConnectionError("redis down")
        self.published.append((channel, message))


class TestSubscriptionChangeBus:
    @pytest.mark.asyncio
    async def test_listeners_in_order(self):
        bus = SubscriptionChangeBus()
        calls = []

        async def first(change):
            calls.append("first")

        async def second(change):
            calls.append("second")

        bus.subscribe(first)
        bus.subscribe(second)
        await bus.publish(_change())
        assert calls == ["first", "second"]

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        bus = SubscriptionChangeBus()
        calls = []

        async def listener(change):
            calls.append(change)

        unsubscribe = bus.subscribe(listener)
        unsubscribe()
        await bus.publish(_change())
        assert calls == []

    @pytest.mark.asyncio
    async def test_failing_listener_is_isolated(self):
        bus = SubscriptionChangeBus()
        calls = []

        async def broken(change):
            raise RuntimeError("listener bug")

        async def healthy(change):
            calls.append(change.event_id)

        bus.subscribe(broken)
        bus.subscribe(healthy)
        await bus.publish(_change())
        assert calls == ["evt_1"]

    @pytest.mark.asyncio
    async def test_redis_publish(self):
        client = FakeRedis()
        bus = SubscriptionChangeBus(client)
        change = _change()
        await bus.publish(change)

        channel, message = client.published[0]
        assert channel == REDIS_CHANNEL
        payload = json.loads(message)
        assert payload["user_id"] == str(change.user_id)
        assert payload["status"] == "active"
        assert payload["previous_status"] == "trialing"

    @pytest.mark.asyncio
    async def test_redis_failure_is_logged_not_raised(self):
        bus = SubscriptionChangeBus(FakeRedis(fail=True))
        await bus.publish(_change())
