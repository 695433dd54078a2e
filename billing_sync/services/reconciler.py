"""
Subscription reconciler: the only writer of subscriber subscription state.

Handles:
- Routing each event kind to its transition (exhaustive, checked at import)
- Last-write-wins projections derived from the event's own content
- Ordering guard: events older than the subscriber's ``last_event_at`` are
  rejected as stale, under a per-subscriber lock and again in the UPDATE
- Change notification for every applied write

Transitions:
    SubscriptionCreated / CheckoutSessionCompleted   free|unknown → trialing|active (mapped)
    InvoicePaymentSucceeded                          trialing|active → active
    InvoicePaymentFailed                             none (processor dunning decides)
    SubscriptionUpdated                              any → mapped from event status
    SubscriptionDeleted                              any → canceled
    SubscriptionTrialWillEnd                         none (informational)
"""

from __future__ import annotations

import asyncio
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, AsyncIterator, Callable, Optional, Union

import structlog

from billing_sync.schemas.common import SubscriptionStatus
from billing_sync.schemas.events import (
    EVENT_CLASSES,
    BillingEvent,
    CheckoutSessionCompleted,
    InvoicePaymentFailed,
    InvoicePaymentSucceeded,
    SubscriptionCreated,
    SubscriptionDeleted,
    SubscriptionSnapshot,
    SubscriptionTrialWillEnd,
    SubscriptionUpdated,
    UnknownEvent,
)
from billing_sync.schemas.subscribers import SubscriberRecord
from billing_sync.services.notifications import SubscriptionChange, SubscriptionChangeBus
from billing_sync.services.status_mapper import has_trial_end_in_future, map_status
from billing_sync.services.subscribers import SubscriberRepository, UpdateOutcome

log = structlog.get_logger()

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReconcileOutcome(str, Enum):
    APPLIED = "applied"
    NOOP = "noop"
    STALE = "stale"
    NOT_APPLICABLE = "not_applicable"
    NOT_FOUND = "not_found"
    UNKNOWN_KIND = "unknown_kind"
    DUPLICATE = "duplicate"
    UNATTRIBUTABLE = "unattributable"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class ReconcileResult:
    outcome: ReconcileOutcome
    status: Optional[SubscriptionStatus] = None
    previous_status: Optional[SubscriptionStatus] = None


@dataclass(frozen=True)
class _Decision:
    outcome: ReconcileOutcome
    fields: dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Per-subscriber serialization
# ---------------------------------------------------------------------------


class SubscriberLocks:
    """One asyncio.Lock per subscriber, dropped once nobody holds or waits on it."""

    def __init__(self) -> None:
        self._locks: dict[uuid.UUID, asyncio.Lock] = {}
        self._refs: dict[uuid.UUID, int] = {}

    @asynccontextmanager
    async def hold(self, user_id: uuid.UUID) -> AsyncIterator[None]:
        lock = self._locks.setdefault(user_id, asyncio.Lock())
        self._refs[user_id] = self._refs.get(user_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._refs[user_id] -= 1
            if self._refs[user_id] == 0:
                del self._refs[user_id]
                del self._locks[user_id]

    def __len__(self) -> int:
        return len(self._locks)


# ---------------------------------------------------------------------------
# Reconciler
# ---------------------------------------------------------------------------


class Reconciler:
    """Applies billing events to subscriber records."""

    def __init__(
        self,
        repository: SubscriberRepository,
        *,
        bus: Optional[SubscriptionChangeBus] = None,
        locks: Optional[SubscriberLocks] = None,
        clock: Clock = _utcnow,
    ):
        self._repo = repository
        self._bus = bus
        self._locks = locks if locks is not None else SubscriberLocks()
        self._clock = clock

    async def apply(self, event: BillingEvent) -> ReconcileResult:
        if isinstance(event, UnknownEvent):
            log.info("event.unhandled_type", event_type=event.event_type)
            return ReconcileResult(ReconcileOutcome.UNKNOWN_KIND)

        handler = _HANDLERS[type(event)]
        user_id = event.internal_user_id

        async with self._locks.hold(user_id):
            record = await self._repo.get(user_id)
            if record is None:
                log.warning("subscriber.not_found", user_id=str(user_id), event_kind=event.kind)
                return ReconcileResult(ReconcileOutcome.NOT_FOUND)

            previous = record.subscription_status
            decision = handler(self, event, record)
            if decision.outcome is not ReconcileOutcome.APPLIED:
                return ReconcileResult(decision.outcome, previous, previous)

            if record.last_event_at is not None and event.occurred_at < record.last_event_at:
                log.info(
                    "subscriber.stale_event",
                    user_id=str(user_id),
                    event_kind=event.kind,
                    occurred_at=event.occurred_at.isoformat(),
                    last_event_at=record.last_event_at.isoformat(),
                )
                return ReconcileResult(ReconcileOutcome.STALE, previous, previous)

            fields = decision.fields
            if all(getattr(record, name) == value for name, value in fields.items()):
                return ReconcileResult(ReconcileOutcome.NOOP, previous, previous)

            written = await self._repo.update(user_id, fields, not_before=event.occurred_at)
            if written is UpdateOutcome.NOT_FOUND:
                return ReconcileResult(ReconcileOutcome.NOT_FOUND)
            if written is UpdateOutcome.STALE:
                log.info("subscriber.stale_event", user_id=str(user_id), event_kind=event.kind, raced=True)
                return ReconcileResult(ReconcileOutcome.STALE, previous, previous)

            status = fields.get("subscription_status", previous)
            log.info(
                "subscriber.updated",
                user_id=str(user_id),
                event_kind=event.kind,
                previous_status=previous.value,
                status=SubscriptionStatus(status).value,
            )
            if self._bus is not None:
                await self._bus.publish(
                    SubscriptionChange(
                        user_id=user_id,
                        previous_status=previous,
                        status=status,
                        event_id=event.id,
                        event_kind=event.kind,
                        occurred_at=event.occurred_at,
                    )
                )
            return ReconcileResult(ReconcileOutcome.APPLIED, SubscriptionStatus(status), previous)

    # --- projection helpers ---

    def _canceled_at(self, record: SubscriberRecord) -> datetime:
        # Keep the first cancellation time so redeliveries write identical state.
        if (
            record.subscription_status is SubscriptionStatus.CANCELED
            and record.subscription_canceled_at is not None
        ):
            return record.subscription_canceled_at
        return self._clock()

    def _status_projection(
        self, snapshot: SubscriptionSnapshot, record: SubscriberRecord
    ) -> dict[str, Any]:
        trial_in_future = has_trial_end_in_future(snapshot.trial_end, self._clock())
        status = map_status(snapshot.status, trial_in_future)
        return {
            "subscription_status": status,
            "trial_end_date": snapshot.trial_end,
            "subscription_canceled_at": (
                self._canceled_at(record) if status is SubscriptionStatus.CANCELED else None
            ),
        }

    @staticmethod
    def _identity(event: BillingEvent) -> dict[str, Any]:
        fields: dict[str, Any] = {"last_event_at": event.occurred_at}
        if event.foreign_customer_id:
            fields["stripe_customer_id"] = event.foreign_customer_id
        if event.foreign_subscription_id:
            fields["stripe_subscription_id"] = event.foreign_subscription_id
        return fields

    # --- transitions ---

    def _on_subscription_started(
        self,
        event: Union[SubscriptionCreated, CheckoutSessionCompleted],
        record: SubscriberRecord,
    ) -> _Decision:
        snapshot = event.subscription
        if snapshot is None:
            # Checkout without a subscription view (not expanded, no fetcher):
            # the status arrives with customer.subscription.created instead.
            log.info(
                "checkout.without_subscription",
                user_id=str(event.internal_user_id),
                session_status=getattr(event, "session_status", None),
            )
            return _Decision(ReconcileOutcome.NOT_APPLICABLE)

        fields = self._status_projection(snapshot, record)
        fields["subscription_created_at"] = snapshot.created or event.occurred_at
        fields.update(self._identity(event))
        return _Decision(ReconcileOutcome.APPLIED, fields)

    def _on_invoice_paid(self, event: InvoicePaymentSucceeded, record: SubscriberRecord) -> _Decision:
        if record.subscription_status not in (SubscriptionStatus.TRIALING, SubscriptionStatus.ACTIVE):
            log.info(
                "invoice.paid_without_subscription",
                user_id=str(event.internal_user_id),
                status=record.subscription_status.value,
            )
            return _Decision(ReconcileOutcome.NOT_APPLICABLE)

        if record.subscription_status is SubscriptionStatus.TRIALING and event.amount_paid == 0:
            # Trial-start invoices are paid with nothing charged.
            return _Decision(ReconcileOutcome.NOOP)

        fields: dict[str, Any] = {"subscription_status": SubscriptionStatus.ACTIVE}
        fields.update(self._identity(event))
        return _Decision(ReconcileOutcome.APPLIED, fields)

    def _on_invoice_failed(self, event: InvoicePaymentFailed, record: SubscriberRecord) -> _Decision:
        log.warning(
            "invoice.payment_failed",
            user_id=str(event.internal_user_id),
            attempt_count=event.attempt_count,
            status=record.subscription_status.value,
        )
        return _Decision(ReconcileOutcome.NOOP)

    def _on_subscription_updated(self, event: SubscriptionUpdated, record: SubscriberRecord) -> _Decision:
        fields = self._status_projection(event.subscription, record)
        fields.update(self._identity(event))
        return _Decision(ReconcileOutcome.APPLIED, fields)

    def _on_subscription_deleted(self, event: SubscriptionDeleted, record: SubscriberRecord) -> _Decision:
        fields: dict[str, Any] = {
            "subscription_status": SubscriptionStatus.CANCELED,
            "subscription_canceled_at": self._canceled_at(record),
        }
        fields.update(self._identity(event))
        return _Decision(ReconcileOutcome.APPLIED, fields)

    def _on_trial_will_end(self, event: SubscriptionTrialWillEnd, record: SubscriberRecord) -> _Decision:
        trial_end = event.subscription.trial_end
        log.info(
            "trial.will_end",
            user_id=str(event.internal_user_id),
            trial_end=trial_end.isoformat() if trial_end else None,
        )
        return _Decision(ReconcileOutcome.NOOP)


_HANDLERS: dict[type, Callable[[Reconciler, Any, SubscriberRecord], _Decision]] = {
    SubscriptionCreated: Reconciler._on_subscription_started,
    CheckoutSessionCompleted: Reconciler._on_subscription_started,
    InvoicePaymentSucceeded: Reconciler._on_invoice_paid,
    InvoicePaymentFailed: Reconciler._on_invoice_failed,
    SubscriptionUpdated: Reconciler._on_subscription_updated,
    SubscriptionDeleted: Reconciler._on_subscription_deleted,
    SubscriptionTrialWillEnd: Reconciler._on_trial_will_end,
}


def unrouted_event_classes() -> list[str]:
    """Names of BillingEvent members with no transition (UnknownEvent excepted)."""
    return [
        cls.__name__
        for cls in EVENT_CLASSES
        if cls is not UnknownEvent and cls not in _HANDLERS
    ]


_missing = unrouted_event_classes()
if _missing:
    raise RuntimeError(f"Billing events without a reconciler transition: {', '.join(_missing)}")
