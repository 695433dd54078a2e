"""User model carrying the subscription projection."""

from datetime import datetime
from typing import Optional

from sqlmodel import Field

from .base import TimestampMixin, UUIDMixin, moment_field


class User(UUIDMixin, TimestampMixin, table=True):
    __tablename__ = "users"

    email: Optional[str] = Field(default=None, unique=True, index=True)

    # Written only by the reconciler; read by everything else.
    subscription_status: str = Field(default="free", nullable=False)  # free | trialing | active | canceled
    trial_end_date: Optional[datetime] = moment_field()
    subscription_created_at: Optional[datetime] = moment_field()
    subscription_canceled_at: Optional[datetime] = moment_field()
    # Processor time of the newest applied event; older deliveries are stale.
    last_event_at: Optional[datetime] = moment_field()
    stripe_customer_id: Optional[str] = Field(default=None, index=True)
    stripe_subscription_id: Optional[str] = Field(default=None)
