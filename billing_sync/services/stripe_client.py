"""
Read-only access to the processor's subscription objects.

Invoices and checkout sessions reference their subscription by id; when the
correlation metadata or trial information is not embedded in the event, the
decoder asks the processor for the authoritative subscription.
"""

from __future__ import annotations

import asyncio
from typing import Any, Protocol

import stripe
import structlog

from billing_sync.core.errors import StorageError

log = structlog.get_logger()


class SubscriptionFetcher(Protocol):
    async def retrieve(self, subscription_id: str) -> dict[str, Any]:
        ...


def _plain(value: Any) -> Any:
    # StripeObject subclasses dict; flatten to builtins so downstream code
    # never holds onto SDK objects.
    if isinstance(value, dict):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_plain(item) for item in value]
    return value


class StripeSubscriptionFetcher:
    """Fetches subscriptions through the Stripe SDK in a worker thread."""

    def __init__(self, api_key: str):
        self._api_key = api_key

    async def retrieve(self, subscription_id: str) -> dict[str, Any]:
        try:
            subscription = await asyncio.to_thread(
                stripe.Subscription.retrieve,
                subscription_id,
                api_key=self._api_key,
            )
        except stripe.StripeError as exc:
            log.warning(
                "stripe.subscription_fetch_failed",
                subscription_id=subscription_id,
                error=type(exc).__name__,
            )
            raise StorageError(f"Could not retrieve subscription {subscription_id}") from exc
        return _plain(subscription)
