"""
Subscription Event Reconciler
=============================

Applies Polar subscription lifecycle events to merchant records.

Flow per event:
1. ``parse_event`` turns the webhook body into a ``SubscriptionEvent`` or an
   ``IgnoredEvent``.
2. For subscription events the owning merchant is resolved: first by the
   stored ``polar_customer_id``, then by the ``metadata.merchantId`` set at
   checkout time.
3. All subscription fields are written in one update. The status is forced
   for every kind except ``subscription.updated``, which stores Polar's
   status verbatim.

A merchant that cannot be resolved is not an error: checkout-time events
without a known merchant are expected and are only logged.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError

from merchant_billing.core.errors import MalformedEventError
from merchant_billing.models.merchant import SubscriptionStatus, UNKNOWN_PLAN
from merchant_billing.schemas.polar import (
    INFORMATIONAL_EVENT_PREFIXES,
    IgnoredEvent,
    PolarEvent,
    PolarWebhookEnvelope,
    SubscriptionEvent,
    SubscriptionEventKind,
    SubscriptionPayload,
)
from merchant_billing.services.merchant_repository import MerchantRepository
from merchant_billing.utils.helpers import utc_now

logger = logging.getLogger(__name__)


# Status written for each kind; None keeps Polar's status as sent.
FORCED_STATUS: dict[SubscriptionEventKind, Optional[SubscriptionStatus]] = {
    SubscriptionEventKind.CREATED: SubscriptionStatus.ACTIVE,
    SubscriptionEventKind.ACTIVE: SubscriptionStatus.ACTIVE,
    SubscriptionEventKind.UPDATED: None,
    SubscriptionEventKind.CANCELED: SubscriptionStatus.CANCELED,
    SubscriptionEventKind.REVOKED: SubscriptionStatus.REVOKED,
    SubscriptionEventKind.UNCANCELED: SubscriptionStatus.ACTIVE,
}


class ReconcileOutcome(str, Enum):
    """Result of reconciling a single event."""
    UPDATED = "updated"
    UNRESOLVED = "unresolved"
    IGNORED = "ignored"


def _error_field(exc: PydanticValidationError, prefix: str) -> Optional[str]:
    errors = exc.errors()
    if not errors:
        return None
    loc = ".".join(str(part) for part in errors[0].get("loc", ()))
    return f"{prefix}.{loc}" if loc else prefix


def parse_event(payload: Any) -> PolarEvent:
    """
    Parse a decoded webhook body into a typed event.

    Raises:
        MalformedEventError: if the envelope or a subscription payload does
            not have the expected shape.
    """
    if not isinstance(payload, dict):
        raise MalformedEventError("Webhook body must be a JSON object")

    try:
        envelope = PolarWebhookEnvelope.model_validate(payload)
    except PydanticValidationError as exc:
        field = _error_field(exc, "body")
        raise MalformedEventError("Invalid webhook envelope", field=field) from exc

    data_id = envelope.data.get("id")
    data_id = str(data_id) if data_id is not None else None

    try:
        kind = SubscriptionEventKind(envelope.type)
    except ValueError:
        recognized = envelope.type.startswith(INFORMATIONAL_EVENT_PREFIXES)
        return IgnoredEvent(type=envelope.type, data_id=data_id, recognized=recognized)

    try:
        data = SubscriptionPayload.model_validate(envelope.data)
    except PydanticValidationError as exc:
        field = _error_field(exc, "data")
        raise MalformedEventError(
            f"Invalid payload for {envelope.type}", field=field
        ) from exc

    return SubscriptionEvent(kind=kind, data=data, raw_data=envelope.data)


async def resolve_merchant(
    repository: MerchantRepository,
    customer_id: Optional[str],
    merchant_ref: Optional[str],
) -> Optional[str]:
    """
    Find the merchant an event belongs to.

    The Polar customer ID wins once a subscription is linked; on first
    activation Polar may not echo a customer we know yet, so the checkout
    metadata is the fallback.

    Returns:
        Merchant ID, or None when neither key matches.
    """
    if customer_id:
        merchant_id = await repository.find_id_by_customer_id(customer_id)
        if merchant_id:
            return merchant_id

    if merchant_ref:
        merchant_id = await repository.find_id_by_merchant_id(merchant_ref)
        if merchant_id:
            return merchant_id

    return None


def build_subscription_update(
    kind: SubscriptionEventKind,
    data: SubscriptionPayload,
    now: datetime,
) -> dict[str, Any]:
    """
    Build the column values for a merchant subscription write.

    Fields Polar left out of the payload are not written, so the stored
    value survives; the plan and ``updated_at`` are always set.
    """
    forced = FORCED_STATUS[kind]
    status = forced.value if forced is not None else data.status

    plan_name = data.plan_name
    candidate = {
        "polar_subscription_id": data.id,
        "polar_customer_id": data.customer_id,
        "subscription_status": status,
        "subscription_started_at": data.started_at,
        "subscription_expires_at": data.current_period_end,
    }

    values = {column: value for column, value in candidate.items() if value is not None}
    values["subscription_plan"] = plan_name.lower() if plan_name else UNKNOWN_PLAN
    values["updated_at"] = now
    return values


class SubscriptionReconciler:
    """Applies parsed Polar events through an injected repository."""

    def __init__(self, repository: MerchantRepository):
        self.repository = repository

    async def reconcile(self, event: PolarEvent) -> ReconcileOutcome:
        """
        Apply one event.

        Storage errors propagate to the caller, which owns the transaction.
        """
        if isinstance(event, IgnoredEvent):
            if event.recognized:
                logger.info("Polar event %s: %s (no-op)", event.type, event.data_id)
            else:
                logger.info("Unhandled Polar event type: %s (%s)", event.type, event.data_id)
            return ReconcileOutcome.IGNORED

        data = event.data
        logger.info("Polar %s: subscription=%s", event.event_type, data.id)

        merchant_id = await resolve_merchant(
            self.repository,
            data.customer_id,
            data.merchant_ref,
        )
        if merchant_id is None:
            logger.warning(
                "Could not find merchant for subscription %s (customer=%s, merchantId=%s)",
                data.id,
                data.customer_id,
                data.merchant_ref,
            )
            return ReconcileOutcome.UNRESOLVED

        values = build_subscription_update(event.kind, data, utc_now())
        await self.repository.update_subscription(
            merchant_id,
            values,
            event_type=event.event_type,
            event_data=event.raw_data,
        )

        logger.info(
            "Updated merchant %s subscription: status=%s plan=%s",
            merchant_id,
            values.get("subscription_status"),
            values["subscription_plan"],
        )
        return ReconcileOutcome.UPDATED
