from enum import Enum

from pydantic import BaseModel


class SubscriptionStatus(str, Enum):
    FREE = "free"
    TRIALING = "trialing"
    ACTIVE = "active"
    CANCELED = "canceled"


# Statuses that unlock paid features for downstream consumers
PRO_STATUSES: frozenset["SubscriptionStatus"] = frozenset({
    SubscriptionStatus.TRIALING,
    SubscriptionStatus.ACTIVE,
})


class ErrorBody(BaseModel):
    code: str
    message: str
    status: int


class ErrorResponse(BaseModel):
    error: ErrorBody


class WebhookAck(BaseModel):
    received: bool = True
