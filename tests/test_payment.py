"""Tests for payment initiation and checkout verification.

The gateway HTTP call is patched out; signature checks use the real HMAC.
"""

from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest
import redis.asyncio as aioredis
from httpx import AsyncClient, Response

from middlesman.config import settings
from middlesman.models.user import User
from middlesman.services.payment import compute_signature, to_minor_units
from tests.conftest import BEARER, create_transaction, login_as, make_milestone

ORDER = {"id": "order_abc123", "amount": 50000, "currency": "USD", "status": "created"}


@pytest.fixture
def gateway() -> None:
    object.__setattr__(settings, "payment_key_id", "rzp_test_key")
    object.__setattr__(settings, "payment_key_secret", "rzp_test_secret")


async def _initiate(client: AsyncClient, txn_id: int) -> tuple[Response, AsyncMock]:
    with patch(
        "middlesman.services.payment.create_order", new=AsyncMock(return_value=ORDER)
    ) as mock_order:
        resp = await client.post(f"/api/transactions/{txn_id}/create-payment")
    return resp, mock_order


async def _verify(client: AsyncClient, txn_id: int, payment_id: str = "pay_xyz") -> Response:
    return await client.post(
        f"/api/transactions/{txn_id}/verify-payment",
        json={
            "orderId": ORDER["id"],
            "paymentId": payment_id,
            "signature": compute_signature(ORDER["id"], payment_id),
        },
    )


async def _actions(client: AsyncClient, txn_id: int) -> list[str]:
    logs = await client.get(f"/api/marketplace/transactions/{txn_id}/logs", headers=BEARER)
    return [e["action"] for e in logs.json()]


def test_to_minor_units() -> None:
    assert to_minor_units(Decimal("500.00")) == 50000
    assert to_minor_units(Decimal("19.99")) == 1999


@pytest.mark.asyncio
async def test_create_payment(
    client: AsyncClient, parties: tuple[User, User], redis_client: aioredis.Redis, gateway: None
) -> None:
    """The buyer gets the gateway order plus the public key id."""
    buyer, seller = parties
    txn = await create_transaction(client, buyer.id, seller.id, amount="500.00")

    await login_as(client, redis_client, buyer)
    resp, mock_order = await _initiate(client, txn["id"])
    assert resp.status_code == 200
    assert resp.json() == {**ORDER, "keyId": "rzp_test_key"}
    mock_order.assert_awaited_once_with(50000, "USD", f"txn_{txn['id']}")

    body = (await client.get(f"/api/transactions/{txn['id']}")).json()
    assert body["paymentStatus"] == "processing"
    assert body["paymentId"] == "order_abc123"
    assert body["status"] == "pending"


@pytest.mark.asyncio
async def test_only_buyer_can_pay(
    client: AsyncClient, parties: tuple[User, User], redis_client: aioredis.Redis, gateway: None
) -> None:
    buyer, seller = parties
    txn = await create_transaction(client, buyer.id, seller.id)

    await login_as(client, redis_client, seller)
    resp, mock_order = await _initiate(client, txn["id"])
    assert resp.status_code == 403
    mock_order.assert_not_awaited()


@pytest.mark.asyncio
async def test_cannot_pay_completed_transaction(
    client: AsyncClient, parties: tuple[User, User], redis_client: aioredis.Redis, gateway: None
) -> None:
    buyer, seller = parties
    txn = await create_transaction(client, buyer.id, seller.id)
    await client.post(f"/api/marketplace/transactions/{txn['id']}/release", headers=BEARER)

    await login_as(client, redis_client, buyer)
    resp, mock_order = await _initiate(client, txn["id"])
    assert resp.status_code == 400
    mock_order.assert_not_awaited()


@pytest.mark.asyncio
async def test_gateway_not_configured(
    client: AsyncClient, parties: tuple[User, User], redis_client: aioredis.Redis
) -> None:
    """Without gateway credentials the endpoint is unavailable and nothing changes."""
    buyer, seller = parties
    txn = await create_transaction(client, buyer.id, seller.id)

    await login_as(client, redis_client, buyer)
    resp = await client.post(f"/api/transactions/{txn['id']}/create-payment")
    assert resp.status_code == 503

    body = (await client.get(f"/api/transactions/{txn['id']}")).json()
    assert body["paymentStatus"] == "unpaid"


@pytest.mark.asyncio
async def test_verify_payment_funds_escrow(
    client: AsyncClient, parties: tuple[User, User], redis_client: aioredis.Redis, gateway: None
) -> None:
    """A good signature activates the transaction and funds every milestone."""
    buyer, seller = parties
    txn = await create_transaction(
        client, buyer.id, seller.id, amount="500.00",
        milestones=[make_milestone("250.00"), make_milestone("250.00")],
    )
    await login_as(client, redis_client, buyer)
    await _initiate(client, txn["id"])

    resp = await _verify(client, txn["id"])
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "active"
    assert body["escrowStatus"] == "funded"
    assert body["paymentStatus"] == "paid"
    assert {m["escrowStatus"] for m in body["milestones"]} == {"funded"}

    assert await _actions(client, txn["id"]) == [
        "created", "payment_initiated", "payment_confirmed",
    ]


@pytest.mark.asyncio
async def test_verify_payment_after_dispute_records_payment(
    client: AsyncClient, parties: tuple[User, User], redis_client: aioredis.Redis, gateway: None
) -> None:
    """A dispute raised mid-checkout keeps the transaction disputed but still records the payment."""
    buyer, seller = parties
    txn = await create_transaction(client, buyer.id, seller.id, amount="500.00")
    await login_as(client, redis_client, buyer)
    await _initiate(client, txn["id"])

    resp = await client.post(
        f"/api/marketplace/transactions/{txn['id']}/dispute",
        json={"title": "Scope changed", "description": "Seller changed the deliverable", "raisedById": buyer.id},
        headers=BEARER,
    )
    assert resp.status_code == 201

    resp = await _verify(client, txn["id"])
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "disputed"
    assert body["escrowStatus"] == "funded"
    assert body["paymentStatus"] == "paid"

    assert await _actions(client, txn["id"]) == [
        "created", "payment_initiated", "dispute_raised", "payment_confirmed",
    ]


@pytest.mark.asyncio
async def test_verify_payment_bad_signature(
    client: AsyncClient, parties: tuple[User, User], redis_client: aioredis.Redis, gateway: None
) -> None:
    """A forged signature marks the payment failed and leaves escrow unfunded."""
    buyer, seller = parties
    txn = await create_transaction(client, buyer.id, seller.id)
    await login_as(client, redis_client, buyer)
    await _initiate(client, txn["id"])

    resp = await client.post(
        f"/api/transactions/{txn['id']}/verify-payment",
        json={"orderId": ORDER["id"], "paymentId": "pay_xyz", "signature": "0" * 64},
    )
    assert resp.status_code == 400

    body = (await client.get(f"/api/transactions/{txn['id']}")).json()
    assert body["paymentStatus"] == "failed"
    assert body["status"] == "pending"
    assert body["escrowStatus"] == "awaiting_payment"


@pytest.mark.asyncio
async def test_verify_payment_wrong_order(
    client: AsyncClient, parties: tuple[User, User], redis_client: aioredis.Redis, gateway: None
) -> None:
    buyer, seller = parties
    txn = await create_transaction(client, buyer.id, seller.id)
    await login_as(client, redis_client, buyer)
    await _initiate(client, txn["id"])

    resp = await client.post(
        f"/api/transactions/{txn['id']}/verify-payment",
        json={
            "orderId": "order_other",
            "paymentId": "pay_xyz",
            "signature": compute_signature("order_other", "pay_xyz"),
        },
    )
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_verify_without_initiation(
    client: AsyncClient, parties: tuple[User, User], redis_client: aioredis.Redis, gateway: None
) -> None:
    buyer, seller = parties
    txn = await create_transaction(client, buyer.id, seller.id)
    await login_as(client, redis_client, buyer)

    resp = await _verify(client, txn["id"])
    assert resp.status_code == 400
