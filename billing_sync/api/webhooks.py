"""
Stripe webhook receiver.

Acknowledgment policy:
- 200 for every delivery the processor should not resend (applied, no-op,
  stale, duplicate, unknown kind, unattributable, malformed)
- 400 when the signature cannot be verified
- 500 for storage failures, timeouts and unexpected errors, so Stripe retries
"""

from __future__ import annotations

import asyncio
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Header, Request
from starlette.responses import JSONResponse

from billing_sync.api.deps import get_container
from billing_sync.core.container import ServiceContainer
from billing_sync.core.errors import AuthenticationError, StorageError
from billing_sync.schemas.common import ErrorBody, ErrorResponse, WebhookAck

router = APIRouter()
log = structlog.get_logger()


def _error(code: str, message: str, status_code: int) -> JSONResponse:
    body = ErrorResponse(error=ErrorBody(code=code, message=message, status=status_code))
    return JSONResponse(status_code=status_code, content=body.model_dump())


@router.post(
    "/stripe",
    response_model=WebhookAck,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def receive_stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(default=None, alias="Stripe-Signature"),
    container: ServiceContainer = Depends(get_container),
):
    # Signatures are computed over the exact bytes; never re-serialize.
    raw_body = await request.body()
    timeout = container.settings.processing_timeout_seconds

    try:
        result = await asyncio.wait_for(
            container.processor.process(raw_body, stripe_signature),
            timeout=timeout,
        )
    except AuthenticationError:
        return _error(
            "SIGNATURE_VERIFICATION_FAILED",
            "Webhook signature verification failed.",
            400,
        )
    except StorageError:
        return _error("WEBHOOK_HANDLER_FAILED", "Webhook could not be processed.", 500)
    except asyncio.TimeoutError:
        log.error("webhook.timeout", timeout_seconds=timeout)
        return _error("WEBHOOK_HANDLER_FAILED", "Webhook could not be processed.", 500)
    except Exception:
        log.exception("webhook.unexpected_error")
        return _error("WEBHOOK_HANDLER_FAILED", "Webhook could not be processed.", 500)

    log.info(
        "webhook.acknowledged",
        event_id=result.event_id,
        event_type=result.event_type,
        outcome=result.outcome.value,
    )
    return WebhookAck()
