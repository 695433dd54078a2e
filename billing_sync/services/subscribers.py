"""
Subscriber persistence gateway.

Column-level partial writes keyed by internal user id. The reconciler is the
only caller of ``update``; everything else reads through ``get``.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Optional, Protocol

import structlog
from sqlalchemy import or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select

from billing_sync.core.database import Database
from billing_sync.core.errors import StorageError
from billing_sync.models.user import User
from billing_sync.schemas.common import SubscriptionStatus
from billing_sync.schemas.subscribers import SubscriberRecord

log = structlog.get_logger()

WRITABLE_FIELDS = frozenset({
    "subscription_status",
    "trial_end_date",
    "subscription_created_at",
    "subscription_canceled_at",
    "last_event_at",
    "stripe_customer_id",
    "stripe_subscription_id",
})


class UpdateOutcome(str, Enum):
    APPLIED = "applied"
    NOT_FOUND = "not_found"
    STALE = "stale"


class SubscriberRepository(Protocol):
    async def get(self, user_id: uuid.UUID) -> Optional[SubscriberRecord]:
        ...

    async def update(
        self,
        user_id: uuid.UUID,
        fields: Mapping[str, Any],
        *,
        not_before: Optional[datetime] = None,
    ) -> UpdateOutcome:
        ...


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes read back from stores without tz support."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_record(user: User) -> SubscriberRecord:
    try:
        status = SubscriptionStatus(user.subscription_status)
    except ValueError:
        # Rows written outside the reconciler may hold legacy values.
        status = SubscriptionStatus.FREE
    return SubscriberRecord(
        internal_user_id=user.id,
        subscription_status=status,
        trial_end_date=as_utc(user.trial_end_date),
        subscription_created_at=as_utc(user.subscription_created_at),
        subscription_canceled_at=as_utc(user.subscription_canceled_at),
        last_event_at=as_utc(user.last_event_at),
        stripe_customer_id=user.stripe_customer_id,
        stripe_subscription_id=user.stripe_subscription_id,
    )


def _column_values(fields: Mapping[str, Any]) -> dict[str, Any]:
    unknown = set(fields) - WRITABLE_FIELDS
    if unknown:
        raise ValueError(f"Not writable subscriber fields: {sorted(unknown)}")
    values = dict(fields)
    if "subscription_status" in values:
        values["subscription_status"] = SubscriptionStatus(values["subscription_status"]).value
    return values


class SqlSubscriberRepository:
    """SubscriberRepository over the ``users`` table."""

    def __init__(self, database: Database):
        self._db = database

    async def get(self, user_id: uuid.UUID) -> Optional[SubscriberRecord]:
        try:
            async with self._db.session() as session:
                user = await session.get(User, user_id)
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to load subscriber {user_id}") from exc
        return _to_record(user) if user is not None else None

    async def update(
        self,
        user_id: uuid.UUID,
        fields: Mapping[str, Any],
        *,
        not_before: Optional[datetime] = None,
    ) -> UpdateOutcome:
        """Write only the given columns.

        With ``not_before`` the write is skipped (STALE) when the stored
        ``last_event_at`` is newer, checked atomically in the UPDATE itself.
        """
        values = _column_values(fields)
        if not values:
            return UpdateOutcome.APPLIED

        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if not_before is not None:
            stmt = stmt.where(
                or_(User.last_event_at.is_(None), User.last_event_at <= not_before)
            )

        try:
            async with self._db.session() as session:
                result = await session.execute(stmt)
                if result.rowcount == 0:
                    existing = await session.execute(select(User.id).where(User.id == user_id))
                    if existing.scalar_one_or_none() is None:
                        return UpdateOutcome.NOT_FOUND
                    return UpdateOutcome.STALE
        except SQLAlchemyError as exc:
            log.error("subscriber.write_failed", user_id=str(user_id), error=type(exc).__name__)
            raise StorageError(f"Failed to update subscriber {user_id}") from exc

        return UpdateOutcome.APPLIED
