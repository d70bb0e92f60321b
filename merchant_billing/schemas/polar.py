"""
Polar Webhook Schemas
=====================

Pydantic models for Polar webhook payloads.

Polar posts ``{"type": "<event name>", "data": {...}}``. Event names are
parsed into a tagged variant:

- ``SubscriptionEvent``: one of the subscription lifecycle kinds, carrying a
  validated ``SubscriptionPayload``.
- ``IgnoredEvent``: checkout/order/customer events (recognized) and any other
  event type (unrecognized). Neither touches storage.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


# ─── Event Types ─────────────────────────────────────────────────────────────


class SubscriptionEventKind(str, Enum):
    """Subscription lifecycle events that update merchant state."""

    CREATED = "subscription.created"
    ACTIVE = "subscription.active"
    UPDATED = "subscription.updated"
    CANCELED = "subscription.canceled"
    REVOKED = "subscription.revoked"
    UNCANCELED = "subscription.uncanceled"


# Event families that are acknowledged and logged but never persisted.
INFORMATIONAL_EVENT_PREFIXES = ("checkout.", "order.", "customer.")


# ─── Payloads ────────────────────────────────────────────────────────────────


class PolarProduct(BaseModel):
    """Product attached to a subscription."""

    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    name: Optional[str] = None


class SubscriptionPayload(BaseModel):
    """
    The ``data`` object of a Polar ``subscription.*`` event.

    Only the fields the reconciler reads are declared; everything else Polar
    sends is kept as extra data.
    """

    model_config = ConfigDict(extra="allow")

    id: str = Field(min_length=1, description="Polar subscription ID")
    customer_id: Optional[str] = None
    status: Optional[str] = None
    product: Optional[PolarProduct] = None
    started_at: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    metadata: Optional[dict[str, Any]] = None

    @property
    def merchant_ref(self) -> Optional[str]:
        """``metadata.merchantId`` set when the checkout session was created."""
        if not self.metadata:
            return None
        value = self.metadata.get("merchantId")
        if value is None or value == "":
            return None
        return str(value)

    @property
    def plan_name(self) -> Optional[str]:
        """Product name, if Polar sent one."""
        if self.product is None:
            return None
        return self.product.name or None


class PolarWebhookEnvelope(BaseModel):
    """Top-level webhook body."""

    type: str = Field(min_length=1)
    data: dict[str, Any]


# ─── Parsed Events ───────────────────────────────────────────────────────────


class SubscriptionEvent(BaseModel):
    """A subscription lifecycle event with its typed payload."""

    kind: SubscriptionEventKind
    data: SubscriptionPayload
    raw_data: dict[str, Any] = Field(default_factory=dict)

    @property
    def event_type(self) -> str:
        return self.kind.value


class IgnoredEvent(BaseModel):
    """An event that is acknowledged without any persisted side effect."""

    type: str
    data_id: Optional[str] = None
    recognized: bool = False

    @property
    def event_type(self) -> str:
        return self.type


PolarEvent = Union[SubscriptionEvent, IgnoredEvent]
