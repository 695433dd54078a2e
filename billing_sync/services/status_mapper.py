"""
Translation of the processor's subscription status vocabulary into the
internal four-state lifecycle.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from billing_sync.schemas.common import SubscriptionStatus

# Processor-side payment retries keep the subscriber active until dunning
# gives up and the processor itself reports the subscription canceled.
GRACE_STATUSES = frozenset({"past_due", "unpaid"})
CANCELED_STATUSES = frozenset({"canceled", "incomplete_expired"})


def has_trial_end_in_future(trial_end: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """True when a trial end is set and still ahead of ``now``."""
    if trial_end is None:
        return False
    now = now or datetime.now(timezone.utc)
    if trial_end.tzinfo is None:
        trial_end = trial_end.replace(tzinfo=timezone.utc)
    return trial_end > now


def map_status(foreign_status: Any, trial_in_future: bool) -> SubscriptionStatus:
    """Map a processor status to the internal lifecycle. Never raises.

    >>> map_status("active", False)
    <SubscriptionStatus.ACTIVE: 'active'>
    >>> map_status("active", True)
    <SubscriptionStatus.TRIALING: 'trialing'>
    >>> map_status("incomplete", False)
    <SubscriptionStatus.FREE: 'free'>
    """
    if not isinstance(foreign_status, str):
        return SubscriptionStatus.FREE

    status = foreign_status.strip().lower()
    if status in ("active", "trialing"):
        if trial_in_future or status == "trialing":
            return SubscriptionStatus.TRIALING
        return SubscriptionStatus.ACTIVE
    if status in GRACE_STATUSES:
        return SubscriptionStatus.ACTIVE
    if status in CANCELED_STATUSES:
        return SubscriptionStatus.CANCELED
    return SubscriptionStatus.FREE
