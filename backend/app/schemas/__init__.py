"""Public schema exports shared across API route modules."""

from app.schemas.common import NonEmptyStr, OkResponse
from app.schemas.customer_requests import (
    CustomerRequestCreate,
    CustomerRequestMetadata,
    CustomerRequestPage,
    CustomerRequestRead,
    CustomerRequestUpdate,
)
from app.schemas.webhooks import LinearWebhookEvent, WebhookAck

__all__ = [
    "CustomerRequestCreate",
    "CustomerRequestMetadata",
    "CustomerRequestPage",
    "CustomerRequestRead",
    "CustomerRequestUpdate",
    "LinearWebhookEvent",
    "NonEmptyStr",
    "OkResponse",
    "WebhookAck",
]
