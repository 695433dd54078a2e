"""
Typed billing events.

Every verified webhook decodes into exactly one member of the closed
``BillingEvent`` union. Kinds the service does not route decode into
``UnknownEvent`` and are acknowledged as no-ops.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Annotated, Any, Literal, Optional, Union, get_args

from pydantic import BaseModel, ConfigDict, Field


class SubscriptionSnapshot(BaseModel):
    """The processor's self-reported subscription state at event time."""

    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    status: Optional[str] = None
    trial_end: Optional[datetime] = None
    created: Optional[datetime] = None
    canceled_at: Optional[datetime] = None


class _InboundEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    occurred_at: datetime
    foreign_subscription_id: Optional[str] = None
    foreign_customer_id: Optional[str] = None
    payload: dict[str, Any] = Field(default_factory=dict, repr=False)


class _AttributedEvent(_InboundEvent):
    internal_user_id: uuid.UUID


# ---------------------------------------------------------------------------
# Subscription lifecycle
# ---------------------------------------------------------------------------

class SubscriptionCreated(_AttributedEvent):
    kind: Literal["customer.subscription.created"] = "customer.subscription.created"
    subscription: SubscriptionSnapshot


class SubscriptionUpdated(_AttributedEvent):
    kind: Literal["customer.subscription.updated"] = "customer.subscription.updated"
    subscription: SubscriptionSnapshot


class SubscriptionDeleted(_AttributedEvent):
    kind: Literal["customer.subscription.deleted"] = "customer.subscription.deleted"
    subscription: SubscriptionSnapshot


class SubscriptionTrialWillEnd(_AttributedEvent):
    kind: Literal["customer.subscription.trial_will_end"] = "customer.subscription.trial_will_end"
    subscription: SubscriptionSnapshot


# ---------------------------------------------------------------------------
# Invoices
# ---------------------------------------------------------------------------

class InvoicePaymentSucceeded(_AttributedEvent):
    kind: Literal["invoice.payment_succeeded"] = "invoice.payment_succeeded"
    amount_paid: int = 0
    billing_reason: Optional[str] = None


class InvoicePaymentFailed(_AttributedEvent):
    kind: Literal["invoice.payment_failed"] = "invoice.payment_failed"
    amount_due: int = 0
    attempt_count: int = 0


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------

class CheckoutSessionCompleted(_AttributedEvent):
    kind: Literal["checkout.session.completed"] = "checkout.session.completed"
    subscription: Optional[SubscriptionSnapshot] = None
    session_status: Optional[str] = None
    payment_status: Optional[str] = None


# ---------------------------------------------------------------------------
# Forward compatibility
# ---------------------------------------------------------------------------

class UnknownEvent(_InboundEvent):
    kind: Literal["unknown"] = "unknown"
    event_type: str


BillingEvent = Annotated[
    Union[
        SubscriptionCreated,
        SubscriptionUpdated,
        SubscriptionDeleted,
        SubscriptionTrialWillEnd,
        InvoicePaymentSucceeded,
        InvoicePaymentFailed,
        CheckoutSessionCompleted,
        UnknownEvent,
    ],
    Field(discriminator="kind"),
]

EVENT_CLASSES: tuple[type[BaseModel], ...] = get_args(get_args(BillingEvent)[0])

# Processor event type → model, for every routed kind
KNOWN_EVENT_TYPES: dict[str, type[_AttributedEvent]] = {
    cls.model_fields["kind"].default: cls
    for cls in EVENT_CLASSES
    if cls is not UnknownEvent
}
