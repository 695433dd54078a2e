"""
Error taxonomy for webhook processing.

Each class maps to exactly one acknowledgment policy:
- AuthenticationError        → 400, nothing processed
- UnattributableEventError   → 200, logged and dropped
- MalformedEventError        → 200, logged and dropped
- StorageError               → 500, processor retries the delivery
"""

from __future__ import annotations


class BillingSyncError(Exception):
    """Base class for all billing sync errors."""


class AuthenticationError(BillingSyncError):
    """Webhook failed signature or timestamp verification."""

    def __init__(self, reason: str, message: str | None = None):
        self.reason = reason
        super().__init__(message or reason)


class MalformedEventError(BillingSyncError):
    """Verified body is not a decodable processor event."""


class UnattributableEventError(BillingSyncError):
    """Event carries no correlation key for an internal user."""

    def __init__(self, event_id: str, event_type: str):
        self.event_id = event_id
        self.event_type = event_type
        super().__init__(f"Event {event_id} ({event_type}) has no internal user id")


class StorageError(BillingSyncError):
    """Transient failure reading or writing durable state."""
