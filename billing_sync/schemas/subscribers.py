"""Subscriber read models."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from .common import SubscriptionStatus


class SubscriberRecord(BaseModel):
    """Read-only snapshot of a subscriber's stored subscription state."""

    model_config = ConfigDict(frozen=True)

    internal_user_id: uuid.UUID
    subscription_status: SubscriptionStatus = SubscriptionStatus.FREE
    trial_end_date: Optional[datetime] = None
    subscription_created_at: Optional[datetime] = None
    subscription_canceled_at: Optional[datetime] = None
    last_event_at: Optional[datetime] = None
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None


class SubscriptionSummary(BaseModel):
    """What downstream consumers need to gate features."""

    status: SubscriptionStatus
    trial_end_date: Optional[datetime] = None
    stripe_customer_id: Optional[str] = None
    has_pro_access: bool
    trial_days_remaining: Optional[int] = None
