"""
Pydantic Schemas
================

Request/response schemas for API validation.
"""

from merchant_billing.schemas.common import (
    ErrorDetail,
    ErrorResponse,
    WebhookAck,
)
from merchant_billing.schemas.polar import (
    IgnoredEvent,
    PolarEvent,
    PolarWebhookEnvelope,
    SubscriptionEvent,
    SubscriptionEventKind,
    SubscriptionPayload,
)

__all__ = [
    "ErrorDetail",
    "ErrorResponse",
    "WebhookAck",
    "IgnoredEvent",
    "PolarEvent",
    "PolarWebhookEnvelope",
    "SubscriptionEvent",
    "SubscriptionEventKind",
    "SubscriptionPayload",
]
