"""
Webhook signature verification: the only trust boundary.

Stripe signs ``"{timestamp}.{body}"`` with HMAC-SHA256 and sends
``Stripe-Signature: t=<unix>,v1=<hex>[,v1=<hex>...]``. Nothing downstream
may act on a body that has not passed through ``verify_signature``.
"""

from __future__ import annotations

import time
from typing import Optional

import stripe

from billing_sync.core.errors import AuthenticationError

SIGNATURE_HEADER = "Stripe-Signature"
DEFAULT_TOLERANCE_SECONDS = 300


def _header_timestamp(signature_header: str) -> Optional[int]:
    for part in signature_header.split(","):
        key, _, value = part.strip().partition("=")
        if key == "t":
            try:
                return int(value)
            except ValueError:
                return None
    return None


def verify_signature(
    raw_body: bytes,
    signature_header: Optional[str],
    secret: Optional[str],
    tolerance_seconds: int = DEFAULT_TOLERANCE_SECONDS,
    *,
    now: Optional[float] = None,
) -> bytes:
    """Verify the webhook signature and timestamp. Returns the body unchanged.

    Raises AuthenticationError with one of the reasons ``missing_signature``,
    ``missing_secret``, ``signature_mismatch`` or ``timestamp_out_of_tolerance``.
    """
    if not signature_header:
        raise AuthenticationError("missing_signature", "Missing Stripe-Signature header")
    if not secret:
        raise AuthenticationError("missing_secret", "Webhook signing secret is not configured")

    # Stripe only rejects old timestamps; reject ones too far ahead as well.
    timestamp = _header_timestamp(signature_header)
    current = time.time() if now is None else now
    if timestamp is not None and timestamp > current + tolerance_seconds:
        raise AuthenticationError("timestamp_out_of_tolerance", "Timestamp is too far in the future")

    try:
        stripe.WebhookSignature.verify_header(raw_body, signature_header, secret, tolerance_seconds)
    except stripe.SignatureVerificationError as exc:
        message = str(exc)
        reason = "timestamp_out_of_tolerance" if "tolerance" in message.lower() else "signature_mismatch"
        raise AuthenticationError(reason, message) from exc

    return raw_body
