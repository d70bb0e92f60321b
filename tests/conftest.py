"""
Shared Test Fixtures
====================

- ``FakeMerchantRepository``: in-memory ``MerchantRepository`` with
  transaction semantics (writes land on commit, vanish on rollback).
- ``client``: ``httpx.AsyncClient`` bound to the FastAPI app with the
  repository and Polar verifier dependencies overridden.
- ``fake_redis``: in-memory stand-in for the idempotency store.
"""

import base64
import copy
import hashlib
import hmac
import uuid
from datetime import datetime, timezone
from typing import Any, Optional
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from merchant_billing.dependencies import get_merchant_repository, get_polar_webhook_service
from merchant_billing.main import app
from merchant_billing.services.polar import PolarWebhookService

TEST_WEBHOOK_SECRET = "polar_whs_test_secret_for_unit_tests"

MERCHANT_A = str(uuid.UUID("11111111-1111-1111-1111-111111111111"))
MERCHANT_B = str(uuid.UUID("22222222-2222-2222-2222-222222222222"))


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class FakeMerchantRepository:
    """In-memory merchant storage that records every call."""

    def __init__(self, merchants: Optional[dict[str, dict[str, Any]]] = None):
        self.merchants: dict[str, dict[str, Any]] = merchants or {}
        self.calls: list[tuple] = []
        self.history: list[dict[str, Any]] = []
        self._pending: list[tuple[str, dict[str, Any], dict[str, Any]]] = []
        self.fail_on_update: Optional[Exception] = None
        self.commits = 0
        self.rollbacks = 0

    def add_merchant(self, merchant_id: str, **fields) -> None:
        record = {
            "polar_customer_id": None,
            "polar_subscription_id": None,
            "subscription_plan": None,
            "subscription_status": None,
            "subscription_started_at": None,
            "subscription_expires_at": None,
            "updated_at": None,
        }
        record.update(fields)
        self.merchants[merchant_id] = record

    @property
    def lookup_calls(self) -> list[tuple]:
        return [c for c in self.calls if c[0].startswith("find_")]

    @property
    def write_calls(self) -> list[tuple]:
        return [c for c in self.calls if c[0] == "update_subscription"]

    async def find_id_by_customer_id(self, customer_id: str) -> Optional[str]:
        self.calls.append(("find_id_by_customer_id", customer_id))
        matches = [
            merchant_id
            for merchant_id, record in self.merchants.items()
            if record["polar_customer_id"] == customer_id
        ]
        return matches[0] if len(matches) == 1 else None

    async def find_id_by_merchant_id(self, merchant_id: str) -> Optional[str]:
        self.calls.append(("find_id_by_merchant_id", merchant_id))
        return merchant_id if merchant_id in self.merchants else None

    async def update_subscription(
        self,
        merchant_id: str,
        values: dict[str, Any],
        *,
        event_type: str,
        event_data: Optional[dict[str, Any]] = None,
    ) -> None:
        self.calls.append(("update_subscription", merchant_id, dict(values)))
        if self.fail_on_update is not None:
            raise self.fail_on_update
        self._pending.append((merchant_id, dict(values), {
            "merchant_id": merchant_id,
            "event_type": event_type,
            "event_data": event_data,
        }))

    async def commit(self) -> None:
        self.commits += 1
        for merchant_id, values, history in self._pending:
            self.merchants[merchant_id].update(values)
            self.history.append(history)
        self._pending = []

    async def rollback(self) -> None:
        self.rollbacks += 1
        self._pending = []

    def snapshot(self) -> dict[str, dict[str, Any]]:
        return copy.deepcopy(self.merchants)


class FakeRedis:
    """Just enough of ``redis.asyncio.Redis`` for delivery idempotency."""

    def __init__(self):
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int] = {}

    async def exists(self, key: str) -> int:
        return 1 if key in self.store else 0

    async def setex(self, key: str, ttl: int, value: str) -> bool:
        self.store[key] = value
        self.ttls[key] = ttl
        return True


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def signed_headers(
    body: bytes,
    *,
    secret: str = TEST_WEBHOOK_SECRET,
    msg_id: Optional[str] = None,
) -> dict[str, str]:
    """Build Standard Webhooks headers the way Polar signs a delivery.

    The HMAC is computed over the raw bytes so bodies that are not valid
    UTF-8 can still carry a correct signature.
    """
    msg_id = msg_id or f"msg_{uuid.uuid4().hex}"
    timestamp = str(int(datetime.now(timezone.utc).timestamp()))
    to_sign = msg_id.encode("utf-8") + b"." + timestamp.encode("utf-8") + b"." + body
    digest = hmac.new(secret.encode("utf-8"), to_sign, hashlib.sha256).digest()
    return {
        "content-type": "application/json",
        "webhook-id": msg_id,
        "webhook-timestamp": timestamp,
        "webhook-signature": "v1," + base64.b64encode(digest).decode("utf-8"),
    }


def subscription_data(
    *,
    sub_id: str = "sub_1",
    customer_id: Optional[str] = "cus_1",
    status: Optional[str] = "active",
    product_name: Optional[str] = "Pro",
    merchant_ref: Optional[str] = None,
    **extra,
) -> dict[str, Any]:
    """Minimal Polar subscription ``data`` object."""
    data: dict[str, Any] = {
        "id": sub_id,
        "started_at": "2024-01-01T00:00:00Z",
        "current_period_end": "2024-02-01T00:00:00Z",
    }
    if customer_id is not None:
        data["customer_id"] = customer_id
    if status is not None:
        data["status"] = status
    if product_name is not None:
        data["product"] = {"id": "prod_1", "name": product_name}
    if merchant_ref is not None:
        data["metadata"] = {"merchantId": merchant_ref}
    data.update(extra)
    return data


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def merchant_repo() -> FakeMerchantRepository:
    return FakeMerchantRepository()


@pytest.fixture
def fake_redis():
    redis_client = FakeRedis()
    with patch(
        "merchant_billing.api.v1.webhooks.get_redis",
        new=AsyncMock(return_value=redis_client),
    ):
        yield redis_client


@pytest.fixture
def polar_service() -> PolarWebhookService:
    return PolarWebhookService(webhook_secret=TEST_WEBHOOK_SECRET)


@pytest_asyncio.fixture
async def client(merchant_repo, fake_redis, polar_service):
    app.dependency_overrides[get_merchant_repository] = lambda: merchant_repo
    app.dependency_overrides[get_polar_webhook_service] = lambda: polar_service
    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
        ) as ac:
            yield ac
    finally:
        app.dependency_overrides = {}
