"""
Subscriber read endpoints: current subscription summary for feature gating.
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, status

from billing_sync.api.deps import get_container, require_service_token
from billing_sync.core.container import ServiceContainer
from billing_sync.core.errors import StorageError
from billing_sync.schemas.subscribers import SubscriptionSummary
from billing_sync.services.access import build_summary

router = APIRouter(dependencies=[Depends(require_service_token)])


@router.get("/{userId}/subscription", response_model=SubscriptionSummary)
async def get_subscription(
    userId: uuid.UUID,
    container: ServiceContainer = Depends(get_container),
):
    try:
        record = await container.repository.get(userId)
    except StorageError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Subscriber store unavailable",
        )
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Subscriber not found")
    return build_summary(record)
