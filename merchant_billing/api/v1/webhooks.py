"""
Webhooks API Endpoints
======================

Handles webhooks from external services (Polar).

Authentication:
    Polar signs each delivery with the Standard Webhooks scheme. We verify
    the ``webhook-signature`` header against POLAR_WEBHOOK_SECRET.

Idempotency:
    Each Polar delivery carries a unique ``webhook-id`` that stays the same
    across retries. We store processed delivery IDs in Redis (with TTL) so a
    retried delivery that already succeeded is not applied twice.
"""

import json
import logging

import newrelic.agent
from fastapi import APIRouter, Request

from merchant_billing.config import settings
from merchant_billing.core.errors import (
    AuthenticationError,
    MalformedEventError,
    ValidationError,
    WebhookProcessingError,
)
from merchant_billing.dependencies import Merchants, PolarWebhooks
from merchant_billing.schemas.common import ErrorResponse, WebhookAck
from merchant_billing.services.cache import CacheKeys, get_redis
from merchant_billing.services.reconciler import SubscriptionReconciler, parse_event

logger = logging.getLogger(__name__)

router = APIRouter()


async def _is_delivery_processed(delivery_id: str) -> bool:
    """Check if a webhook delivery has already been processed."""
    try:
        client = await get_redis()
        return await client.exists(CacheKeys.polar_delivery(delivery_id)) > 0
    except Exception as exc:
        logger.warning("Redis idempotency check failed: %s", exc)
        return False


async def _mark_delivery_processed(delivery_id: str) -> None:
    """Mark a webhook delivery as processed in Redis."""
    try:
        client = await get_redis()
        await client.setex(
            CacheKeys.polar_delivery(delivery_id),
            settings.WEBHOOK_IDEMPOTENCY_TTL_SECONDS,
            "1",
        )
    except Exception as exc:
        logger.warning("Redis idempotency set failed: %s", exc)


@router.post(
    "/polar-webhook",
    response_model=WebhookAck,
    response_model_exclude_none=True,
    responses={
        400: {"model": ErrorResponse, "description": "Malformed payload"},
        401: {"model": ErrorResponse, "description": "Invalid webhook signature"},
        500: {"model": ErrorResponse, "description": "Webhook processing failed"},
    },
)
async def polar_webhook(
    request: Request,
    merchants: Merchants,
    polar: PolarWebhooks,
):
    """
    Handle Polar webhook events.

    Subscription events update the owning merchant:
    - subscription.created / subscription.active -> active
    - subscription.updated -> status as sent by Polar
    - subscription.canceled -> canceled
    - subscription.revoked -> revoked
    - subscription.uncanceled -> active

    checkout.*, order.*, customer.* and unknown events are acknowledged
    without any write. Events whose merchant cannot be resolved are
    acknowledged too.

    Returns 200 as quickly as possible; a 500 lets Polar retry delivery.
    """
    body = await request.body()

    # ── Verify signature ──────────────────────────────────────────────────
    if not polar.verify_signature(body, request.headers):
        logger.warning("Unauthorized Polar webhook attempt")
        raise AuthenticationError(message="Invalid webhook signature")

    # ── Parse payload ─────────────────────────────────────────────────────
    try:
        payload = json.loads(body.decode("utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.error("Invalid webhook payload: %s", e)
        raise ValidationError(message="Invalid JSON payload")

    try:
        event = parse_event(payload)
    except MalformedEventError as e:
        logger.warning("Malformed Polar webhook: %s (field=%s)", e.message, e.field)
        raise ValidationError(message=e.message, field=e.field)

    delivery_id = request.headers.get("webhook-id")
    event_type = event.event_type

    logger.info(
        "Received Polar webhook: type=%s delivery=%s",
        event_type,
        delivery_id,
    )
    if newrelic.agent.current_transaction():
        newrelic.agent.add_custom_attribute("polar.event_type", event_type)

    # ── Idempotency check ─────────────────────────────────────────────────
    if delivery_id and await _is_delivery_processed(delivery_id):
        logger.info("Duplicate Polar delivery %s, skipping", delivery_id)
        return {"received": True, "duplicate": True}

    # ── Process event ─────────────────────────────────────────────────────
    try:
        outcome = await SubscriptionReconciler(merchants).reconcile(event)

        # Commit the transaction
        await merchants.commit()
    except Exception:
        logger.exception(
            "Webhook processing error: type=%s delivery=%s",
            event_type,
            delivery_id,
        )
        await merchants.rollback()
        # Return 500 so Polar will retry
        raise WebhookProcessingError()

    # Mark delivery as processed (after successful commit)
    if delivery_id:
        await _mark_delivery_processed(delivery_id)

    logger.info(
        "Webhook processed: type=%s outcome=%s delivery=%s",
        event_type,
        outcome.value,
        delivery_id,
    )

    return {"received": True}
