"""
Read-side helpers for consumers that gate features on subscription state.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Optional

from billing_sync.schemas.common import PRO_STATUSES, SubscriptionStatus
from billing_sync.schemas.subscribers import SubscriberRecord, SubscriptionSummary

SECONDS_PER_DAY = 86400


def has_pro_access(status: SubscriptionStatus) -> bool:
    return status in PRO_STATUSES


def trial_days_remaining(record: SubscriberRecord, now: Optional[datetime] = None) -> Optional[int]:
    """Whole days left in the trial, rounded up; None when not trialing."""
    if record.subscription_status is not SubscriptionStatus.TRIALING or record.trial_end_date is None:
        return None
    now = now or datetime.now(timezone.utc)
    remaining = (record.trial_end_date - now).total_seconds()
    return max(0, math.ceil(remaining / SECONDS_PER_DAY))


def build_summary(record: SubscriberRecord, now: Optional[datetime] = None) -> SubscriptionSummary:
    return SubscriptionSummary(
        status=record.subscription_status,
        trial_end_date=record.trial_end_date,
        stripe_customer_id=record.stripe_customer_id,
        has_pro_access=has_pro_access(record.subscription_status),
        trial_days_remaining=trial_days_remaining(record, now),
    )
