"""
Polar Webhook Endpoint Tests
============================

Tests for POST /api/polar-webhook: signature checks, payload validation,
delivery idempotency and the status codes Polar sees.
"""

import json

import pytest

from conftest import MERCHANT_A, MERCHANT_B, signed_headers, subscription_data
from merchant_billing.config import settings
from merchant_billing.services.cache import CacheKeys
from merchant_billing.services.polar import PolarWebhookService
from merchant_billing.dependencies import get_polar_webhook_service
from merchant_billing.main import app

WEBHOOK_URL = "/api/polar-webhook"


def _encode(body) -> bytes:
    return json.dumps(body).encode("utf-8")


async def _post(client, body, **header_kwargs):
    raw = body if isinstance(body, bytes) else _encode(body)
    return await client.post(WEBHOOK_URL, content=raw, headers=signed_headers(raw, **header_kwargs))


class TestSubscriptionEvents:
    """Subscription events reach the merchant record."""

    @pytest.mark.asyncio
    async def test_created_updates_merchant(self, client, merchant_repo):
        merchant_repo.add_merchant(MERCHANT_A, polar_customer_id="cus_1")

        response = await _post(client, {
            "type": "subscription.created",
            "data": subscription_data(),
        })

        assert response.status_code == 200
        assert response.json() == {"received": True}

        merchant = merchant_repo.merchants[MERCHANT_A]
        assert merchant["subscription_plan"] == "pro"
        assert merchant["subscription_status"] == "active"
        assert merchant["polar_subscription_id"] == "sub_1"
        assert merchant_repo.commits == 1

    @pytest.mark.asyncio
    async def test_metadata_fallback_on_first_activation(self, client, merchant_repo):
        merchant_repo.add_merchant(MERCHANT_B)

        response = await _post(client, {
            "type": "subscription.active",
            "data": subscription_data(customer_id="cus_new", merchant_ref=MERCHANT_B),
        })

        assert response.status_code == 200
        assert merchant_repo.merchants[MERCHANT_B]["polar_customer_id"] == "cus_new"

    @pytest.mark.asyncio
    async def test_null_metadata_resolves_by_customer(self, client, merchant_repo):
        merchant_repo.add_merchant(MERCHANT_A, polar_customer_id="cus_1")

        response = await _post(client, {
            "type": "subscription.canceled",
            "data": subscription_data(metadata=None),
        })

        assert response.status_code == 200
        assert merchant_repo.merchants[MERCHANT_A]["subscription_status"] == "canceled"

    @pytest.mark.asyncio
    async def test_unresolved_merchant_is_acknowledged(self, client, merchant_repo):
        merchant_repo.add_merchant(MERCHANT_A, polar_customer_id="cus_1")
        before = merchant_repo.snapshot()

        response = await _post(client, {
            "type": "subscription.updated",
            "data": subscription_data(customer_id="cus_unknown"),
        })

        assert response.status_code == 200
        assert response.json() == {"received": True}
        assert merchant_repo.write_calls == []
        assert merchant_repo.snapshot() == before


class TestIgnoredEvents:
    """Non-subscription events are acknowledged without storage access."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("event_type", ["checkout.created", "order.paid", "benefit.granted"])
    async def test_no_repository_calls(self, client, merchant_repo, event_type):
        merchant_repo.add_merchant(MERCHANT_A, polar_customer_id="cus_1")

        response = await _post(client, {
            "type": event_type,
            "data": {"id": "chk_1", "customer_id": "cus_1"},
        })

        assert response.status_code == 200
        assert response.json() == {"received": True}
        assert merchant_repo.calls == []


class TestStorageFailure:
    """Storage errors become a 500 so Polar retries."""

    @pytest.mark.asyncio
    async def test_returns_500_and_rolls_back(self, client, merchant_repo, fake_redis):
        merchant_repo.add_merchant(MERCHANT_A, polar_customer_id="cus_1")
        merchant_repo.fail_on_update = RuntimeError("connection reset")
        before = merchant_repo.snapshot()

        response = await _post(client, {
            "type": "subscription.canceled",
            "data": subscription_data(),
        }, msg_id="msg_fail")

        assert response.status_code == 500
        error = response.json()["error"]
        assert error["code"] == "WEBHOOK_001"
        assert error["message"] == "Webhook processing failed"
        assert merchant_repo.rollbacks == 1
        assert merchant_repo.commits == 0
        assert merchant_repo.snapshot() == before
        # Not marked processed, so the retry is applied
        assert CacheKeys.polar_delivery("msg_fail") not in fake_redis.store


class TestSignature:
    """Deliveries must carry a valid Standard Webhooks signature."""

    @pytest.mark.asyncio
    async def test_missing_signature_headers(self, client, merchant_repo):
        response = await client.post(
            WEBHOOK_URL,
            content=_encode({"type": "subscription.created", "data": subscription_data()}),
            headers={"content-type": "application/json"},
        )

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "WEBHOOK_002"
        assert merchant_repo.calls == []

    @pytest.mark.asyncio
    async def test_wrong_secret(self, client, merchant_repo):
        response = await _post(
            client,
            {"type": "subscription.created", "data": subscription_data()},
            secret="some_other_secret",
        )

        assert response.status_code == 401
        assert merchant_repo.calls == []

    @pytest.mark.asyncio
    async def test_tampered_body(self, client, merchant_repo):
        raw = _encode({"type": "subscription.created", "data": subscription_data()})
        headers = signed_headers(raw)
        tampered = _encode({"type": "subscription.revoked", "data": subscription_data()})

        response = await client.post(WEBHOOK_URL, content=tampered, headers=headers)

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_unsigned_accepted_without_secret_in_development(
        self, client, merchant_repo, monkeypatch
    ):
        monkeypatch.setattr(settings, "ENVIRONMENT", "development")
        app.dependency_overrides[get_polar_webhook_service] = (
            lambda: PolarWebhookService(webhook_secret="")
        )

        response = await client.post(
            WEBHOOK_URL,
            content=_encode({"type": "checkout.created", "data": {"id": "chk_1"}}),
            headers={"content-type": "application/json"},
        )

        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_unsigned_rejected_without_secret_in_production(
        self, client, merchant_repo, monkeypatch
    ):
        monkeypatch.setattr(settings, "ENVIRONMENT", "production")
        app.dependency_overrides[get_polar_webhook_service] = (
            lambda: PolarWebhookService(webhook_secret="")
        )

        response = await client.post(
            WEBHOOK_URL,
            content=_encode({"type": "checkout.created", "data": {"id": "chk_1"}}),
            headers={"content-type": "application/json"},
        )

        assert response.status_code == 401


class TestMalformedPayload:
    """Bodies that are not Polar events are rejected with 400."""

    @pytest.mark.asyncio
    async def test_invalid_json(self, client, merchant_repo):
        response = await _post(client, b"{not json")

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert error["message"] == "Invalid JSON payload"
        assert merchant_repo.calls == []

    @pytest.mark.asyncio
    async def test_signed_non_utf8_body(self, client, merchant_repo):
        response = await _post(client, b'{"type": "subscription.active", "data": "\xff"}')

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "WEBHOOK_002"
        assert merchant_repo.calls == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [
            {"data": {"id": "sub_1"}},
            {"type": "subscription.created"},
            ["subscription.created"],
        ],
    )
    async def test_missing_envelope_fields(self, client, merchant_repo, body):
        response = await _post(client, body)

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"
        assert merchant_repo.calls == []

    @pytest.mark.asyncio
    async def test_subscription_without_id(self, client, merchant_repo):
        data = subscription_data()
        del data["id"]

        response = await _post(client, {"type": "subscription.active", "data": data})

        assert response.status_code == 400
        assert response.json()["error"]["field"] == "data.id"
        assert merchant_repo.calls == []


class TestDeliveryIdempotency:
    """A delivery that already succeeded is not applied again."""

    @pytest.mark.asyncio
    async def test_successful_delivery_is_marked(self, client, merchant_repo, fake_redis):
        merchant_repo.add_merchant(MERCHANT_A, polar_customer_id="cus_1")

        await _post(client, {
            "type": "subscription.created",
            "data": subscription_data(),
        }, msg_id="msg_1")

        key = CacheKeys.polar_delivery("msg_1")
        assert key in fake_redis.store
        assert fake_redis.ttls[key] == settings.WEBHOOK_IDEMPOTENCY_TTL_SECONDS

    @pytest.mark.asyncio
    async def test_duplicate_delivery_is_skipped(self, client, merchant_repo, fake_redis):
        merchant_repo.add_merchant(MERCHANT_A, polar_customer_id="cus_1")
        fake_redis.store[CacheKeys.polar_delivery("msg_dup")] = "1"

        response = await _post(client, {
            "type": "subscription.revoked",
            "data": subscription_data(),
        }, msg_id="msg_dup")

        assert response.status_code == 200
        assert response.json() == {"received": True, "duplicate": True}
        assert merchant_repo.calls == []
        assert merchant_repo.merchants[MERCHANT_A]["subscription_status"] is None
