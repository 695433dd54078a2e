"""
Decoding of verified webhook bodies into typed billing events.

Resolves the correlation key (the internal user id stored in the processor
object's metadata) and the subscription snapshot each event kind needs.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Iterable, Optional, Sequence

import structlog
from pydantic import BaseModel, ValidationError

from billing_sync.core.errors import MalformedEventError, UnattributableEventError
from billing_sync.schemas.events import (
    KNOWN_EVENT_TYPES,
    BillingEvent,
    CheckoutSessionCompleted,
    InvoicePaymentFailed,
    InvoicePaymentSucceeded,
    SubscriptionSnapshot,
    UnknownEvent,
)
from billing_sync.services.stripe_client import SubscriptionFetcher

log = structlog.get_logger()

DEFAULT_CORRELATION_KEYS = ("supabase_user_id", "user_id")


class _EnvelopeData(BaseModel):
    object: dict[str, Any]


class _Envelope(BaseModel):
    id: str
    type: str
    created: int
    data: _EnvelopeData


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------

def _epoch(value: Any) -> Optional[datetime]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


def _ref_id(value: Any) -> Optional[str]:
    """Stripe references are either an id string or an expanded object."""
    if isinstance(value, str) and value:
        return value
    if isinstance(value, dict):
        ref = value.get("id")
        return ref if isinstance(ref, str) and ref else None
    return None


def _dig(obj: Any, *path: str) -> Any:
    for key in path:
        if not isinstance(obj, dict):
            return None
        obj = obj.get(key)
    return obj


def snapshot_from(subscription: dict[str, Any]) -> SubscriptionSnapshot:
    return SubscriptionSnapshot(
        id=_ref_id(subscription.get("id")),
        status=subscription.get("status") if isinstance(subscription.get("status"), str) else None,
        trial_end=_epoch(subscription.get("trial_end")),
        created=_epoch(subscription.get("created")),
        canceled_at=_epoch(subscription.get("canceled_at")),
    )


# ---------------------------------------------------------------------------
# Decoder
# ---------------------------------------------------------------------------

class EventDecoder:
    """Turns a verified webhook body into one member of ``BillingEvent``."""

    def __init__(
        self,
        correlation_keys: Sequence[str] = DEFAULT_CORRELATION_KEYS,
        fetcher: Optional[SubscriptionFetcher] = None,
    ):
        self._keys = tuple(correlation_keys)
        self._fetcher = fetcher

    def _user_id_from(self, metadata_sources: Iterable[Any]) -> Optional[str]:
        for metadata in metadata_sources:
            if not isinstance(metadata, dict):
                continue
            for key in self._keys:
                value = metadata.get(key)
                if isinstance(value, str) and value.strip():
                    return value.strip()
        return None

    @staticmethod
    def _invoice_metadata(invoice: dict[str, Any]) -> list[Any]:
        sources = [
            _dig(invoice, "subscription_details", "metadata"),
            _dig(invoice, "parent", "subscription_details", "metadata"),
        ]
        lines = _dig(invoice, "lines", "data")
        if isinstance(lines, list):
            sources.extend(_dig(line, "metadata") for line in lines)
        return sources

    async def _fetch(self, subscription_id: Optional[str]) -> Optional[dict[str, Any]]:
        if self._fetcher is None or not subscription_id:
            return None
        return await self._fetcher.retrieve(subscription_id)

    async def decode(self, raw_body: bytes) -> BillingEvent:
        """Decode a verified body.

        Raises MalformedEventError when the body is not a processor event and
        UnattributableEventError when no internal user id can be resolved.
        """
        try:
            envelope = _Envelope.model_validate_json(raw_body)
        except ValidationError as exc:
            raise MalformedEventError(f"Undecodable webhook body: {exc.error_count()} errors") from exc

        # Field types and timestamp ranges inside the object are only known
        # once the event model is built.
        try:
            return await self._from_envelope(envelope)
        except (ValidationError, ValueError, OverflowError, OSError) as exc:
            raise MalformedEventError(
                f"Undecodable {envelope.type} event {envelope.id}: {type(exc).__name__}"
            ) from exc

    async def _from_envelope(self, envelope: _Envelope) -> BillingEvent:
        occurred_at = datetime.fromtimestamp(envelope.created, tz=timezone.utc)
        obj = envelope.data.object

        event_cls = KNOWN_EVENT_TYPES.get(envelope.type)
        if event_cls is None:
            return UnknownEvent(
                id=envelope.id,
                event_type=envelope.type,
                occurred_at=occurred_at,
                payload=obj,
            )

        fields: dict[str, Any] = {
            "id": envelope.id,
            "occurred_at": occurred_at,
            "foreign_customer_id": _ref_id(obj.get("customer")),
            "payload": obj,
        }

        if envelope.type.startswith("customer.subscription."):
            raw_user_id = self._user_id_from([obj.get("metadata")])
            fields["foreign_subscription_id"] = _ref_id(obj.get("id"))
            fields["subscription"] = snapshot_from(obj)

        elif event_cls in (InvoicePaymentSucceeded, InvoicePaymentFailed):
            subscription_id = _ref_id(obj.get("subscription")) or _ref_id(
                _dig(obj, "parent", "subscription_details", "subscription")
            )
            fields["foreign_subscription_id"] = subscription_id
            raw_user_id = self._user_id_from(self._invoice_metadata(obj))
            if raw_user_id is None:
                fetched = await self._fetch(subscription_id)
                if fetched is not None:
                    raw_user_id = self._user_id_from([fetched.get("metadata")])
            if event_cls is InvoicePaymentSucceeded:
                fields["amount_paid"] = obj.get("amount_paid") or 0
                fields["billing_reason"] = obj.get("billing_reason")
            else:
                fields["amount_due"] = obj.get("amount_due") or 0
                fields["attempt_count"] = obj.get("attempt_count") or 0

        elif event_cls is CheckoutSessionCompleted:
            subscription_ref = obj.get("subscription")
            subscription_id = _ref_id(subscription_ref)
            fields["foreign_subscription_id"] = subscription_id
            fields["session_status"] = obj.get("status")
            fields["payment_status"] = obj.get("payment_status")

            subscription = subscription_ref if isinstance(subscription_ref, dict) else None
            if subscription is None:
                subscription = await self._fetch(subscription_id)
            if subscription is not None:
                fields["subscription"] = snapshot_from(subscription)

            raw_user_id = self._user_id_from([
                obj.get("metadata"),
                subscription.get("metadata") if subscription else None,
            ])
            client_reference = obj.get("client_reference_id")
            if raw_user_id is None and isinstance(client_reference, str) and client_reference.strip():
                raw_user_id = client_reference.strip()

        else:  # pragma: no cover - guarded by KNOWN_EVENT_TYPES
            raise MalformedEventError(f"No decoder for {envelope.type}")

        internal_user_id = self._parse_user_id(raw_user_id)
        if internal_user_id is None:
            raise UnattributableEventError(envelope.id, envelope.type)

        return event_cls(internal_user_id=internal_user_id, **fields)

    @staticmethod
    def _parse_user_id(raw: Optional[str]) -> Optional[uuid.UUID]:
        if raw is None:
            return None
        try:
            return uuid.UUID(raw)
        except ValueError:
            log.warning("event.invalid_user_id", value_length=len(raw))
            return None
