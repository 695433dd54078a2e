"""
Webhook processing pipeline: verify → decode → dedupe → reconcile.

Returns an outcome for every delivery the processor should consider handled.
Raises only for the two cases that must not be acknowledged:
AuthenticationError (reject) and StorageError (retry).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import structlog

from billing_sync.core.errors import (
    AuthenticationError,
    MalformedEventError,
    StorageError,
    UnattributableEventError,
)
from billing_sync.core.metrics import MetricsCollector
from billing_sync.schemas.events import UnknownEvent
from billing_sync.services.decoder import EventDecoder
from billing_sync.services.event_ledger import EventLedger
from billing_sync.services.reconciler import ReconcileOutcome, Reconciler
from billing_sync.services.signature import DEFAULT_TOLERANCE_SECONDS, verify_signature

log = structlog.get_logger()

_OUTCOME_COUNTERS = {
    ReconcileOutcome.APPLIED: "events_applied_total",
    ReconcileOutcome.NOOP: "events_noop_total",
    ReconcileOutcome.NOT_APPLICABLE: "events_noop_total",
    ReconcileOutcome.STALE: "events_stale_total",
    ReconcileOutcome.NOT_FOUND: "events_unattributable_total",
    ReconcileOutcome.UNKNOWN_KIND: "events_unknown_total",
}


@dataclass(frozen=True)
class ProcessResult:
    outcome: ReconcileOutcome
    event_id: Optional[str] = None
    event_type: Optional[str] = None


class WebhookProcessor:
    def __init__(
        self,
        *,
        secret: Optional[str],
        decoder: EventDecoder,
        reconciler: Reconciler,
        ledger: EventLedger,
        metrics: Optional[MetricsCollector] = None,
        tolerance_seconds: int = DEFAULT_TOLERANCE_SECONDS,
    ):
        self._secret = secret
        self._tolerance = tolerance_seconds
        self._decoder = decoder
        self._reconciler = reconciler
        self._ledger = ledger
        self._metrics = metrics if metrics is not None else MetricsCollector()

    async def process(self, raw_body: bytes, signature_header: Optional[str]) -> ProcessResult:
        self._metrics.inc("webhooks_received_total")

        try:
            verify_signature(raw_body, signature_header, self._secret, self._tolerance)
        except AuthenticationError as exc:
            self._metrics.inc("webhooks_rejected_total")
            log.warning("webhook.signature_rejected", reason=exc.reason)
            raise

        try:
            event = await self._decoder.decode(raw_body)
        except MalformedEventError as exc:
            self._metrics.inc("events_unattributable_total")
            log.warning("event.malformed", error=str(exc))
            return ProcessResult(ReconcileOutcome.MALFORMED)
        except UnattributableEventError as exc:
            self._metrics.inc("events_unattributable_total")
            log.warning("event.unattributable", event_id=exc.event_id, event_type=exc.event_type)
            return ProcessResult(ReconcileOutcome.UNATTRIBUTABLE, exc.event_id, exc.event_type)
        except StorageError:
            self._metrics.inc("storage_errors_total")
            log.error("webhook.subscription_lookup_failed")
            raise

        event_type = event.event_type if isinstance(event, UnknownEvent) else event.kind

        with structlog.contextvars.bound_contextvars(event_id=event.id, event_type=event_type):
            log.info("webhook.received")

            if await self._ledger.seen(event.id):
                self._metrics.inc("events_duplicate_total")
                log.info("event.duplicate")
                return ProcessResult(ReconcileOutcome.DUPLICATE, event.id, event_type)

            try:
                result = await self._reconciler.apply(event)
            except StorageError:
                self._metrics.inc("storage_errors_total")
                log.error("webhook.storage_failed")
                raise

            await self._ledger.mark(event.id)
            self._metrics.inc(_OUTCOME_COUNTERS[result.outcome])
            return ProcessResult(result.outcome, event.id, event_type)
