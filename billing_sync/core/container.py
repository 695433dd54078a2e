"""
Service wiring for one application instance.

Everything stateful (engine, Redis client, ledger, change bus, locks,
metrics) is created here and handed to the services that need it, so
startup order and teardown are explicit.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import redis.asyncio as redis
import structlog

from billing_sync.core.config import Settings
from billing_sync.core.database import Database
from billing_sync.core.metrics import MetricsCollector
from billing_sync.core.redis import close_redis, create_redis
from billing_sync.services.decoder import EventDecoder
from billing_sync.services.event_ledger import EventLedger, MemoryEventLedger, RedisEventLedger
from billing_sync.services.notifications import SubscriptionChangeBus
from billing_sync.services.reconciler import Reconciler, SubscriberLocks
from billing_sync.services.stripe_client import StripeSubscriptionFetcher, SubscriptionFetcher
from billing_sync.services.subscribers import SqlSubscriberRepository, SubscriberRepository
from billing_sync.services.webhooks import WebhookProcessor

log = structlog.get_logger()


@dataclass
class ServiceContainer:
    settings: Settings
    database: Database
    redis_client: Optional[redis.Redis]
    repository: SubscriberRepository
    ledger: EventLedger
    bus: SubscriptionChangeBus
    locks: SubscriberLocks
    metrics: MetricsCollector
    processor: WebhookProcessor

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        fetcher: Optional[SubscriptionFetcher] = None,
        repository: Optional[SubscriberRepository] = None,
    ) -> "ServiceContainer":
        database = Database(settings.database_url, echo=settings.debug)
        client = create_redis(settings.redis_url) if settings.redis_url else None

        ledger: EventLedger
        if client is not None:
            ledger = RedisEventLedger(client, settings.dedupe_ttl_seconds)
        else:
            ledger = MemoryEventLedger(settings.dedupe_ttl_seconds)

        if fetcher is None and settings.stripe_api_key:
            fetcher = StripeSubscriptionFetcher(settings.stripe_api_key)

        if repository is None:
            repository = SqlSubscriberRepository(database)
        bus = SubscriptionChangeBus(client)
        locks = SubscriberLocks()
        metrics = MetricsCollector()
        reconciler = Reconciler(repository, bus=bus, locks=locks)
        processor = WebhookProcessor(
            secret=settings.stripe_webhook_secret,
            tolerance_seconds=settings.signature_tolerance_seconds,
            decoder=EventDecoder(settings.correlation_metadata_keys, fetcher=fetcher),
            reconciler=reconciler,
            ledger=ledger,
            metrics=metrics,
        )
        return cls(
            settings=settings,
            database=database,
            redis_client=client,
            repository=repository,
            ledger=ledger,
            bus=bus,
            locks=locks,
            metrics=metrics,
            processor=processor,
        )

    async def close(self) -> None:
        self.bus.close()
        await close_redis(self.redis_client)
        await self.database.dispose()
        log.info("container.closed")
