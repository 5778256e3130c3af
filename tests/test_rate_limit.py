"""Tests for rate limiting (middlesman/auth/rate_limit.py)."""

import pytest
import redis.asyncio as aioredis
from httpx import AsyncClient

from middlesman.auth.rate_limit import _get_rate_config
from middlesman.config import settings
from middlesman.models.user import User
from tests.conftest import BEARER, create_transaction, login_as


@pytest.mark.asyncio
async def test_rate_limit_headers_present(client: AsyncClient, parties: tuple[User, User]) -> None:
    buyer, seller = parties
    txn = await create_transaction(client, buyer.id, seller.id)

    resp = await client.get(f"/api/marketplace/transactions/{txn['id']}", headers=BEARER)
    assert resp.status_code == 200
    assert resp.headers["x-ratelimit-limit"] == str(settings.rate_limit_read_capacity)
    assert "x-ratelimit-remaining" in resp.headers


@pytest.mark.asyncio
async def test_rate_limit_exceeded_returns_429(client: AsyncClient) -> None:
    object.__setattr__(settings, "rate_limit_read_capacity", 2)
    object.__setattr__(settings, "rate_limit_read_refill_per_min", 0)

    for _ in range(5):
        resp = await client.get("/api/marketplace/transactions/9999", headers=BEARER)
        if resp.status_code == 429:
            break
    assert resp.status_code == 429
    assert resp.json()["detail"] == "Rate limit exceeded"
    assert int(resp.headers["retry-after"]) > 0


@pytest.mark.asyncio
async def test_buckets_are_per_caller(
    client: AsyncClient, parties: tuple[User, User], redis_client: aioredis.Redis
) -> None:
    """Each caller drains their own bucket."""
    buyer, _ = parties
    object.__setattr__(settings, "rate_limit_read_capacity", 1)
    object.__setattr__(settings, "rate_limit_read_refill_per_min", 0)

    assert (await client.get("/api/marketplace/transactions/9999", headers=BEARER)).status_code == 404
    assert (await client.get("/api/marketplace/transactions/9999", headers=BEARER)).status_code == 429

    # A session-authenticated caller draws from its own bucket
    await login_as(client, redis_client, buyer)
    assert (await client.get("/api/transactions")).status_code == 200


@pytest.mark.asyncio
async def test_login_is_limited_separately(client: AsyncClient) -> None:
    object.__setattr__(settings, "rate_limit_auth_capacity", 1)
    object.__setattr__(settings, "rate_limit_auth_refill_per_min", 0)

    creds = {"username": "nobody", "password": "secret123"}
    assert (await client.post("/api/auth/login", json=creds)).status_code == 401
    assert (await client.post("/api/auth/login", json=creds)).status_code == 429


@pytest.mark.parametrize(
    ("method", "path", "category"),
    [
        ("POST", "/api/auth/login", "auth"),
        ("POST", "/api/auth/register", "auth"),
        ("GET", "/api/auth/me", "read"),
        ("GET", "/api/admin/users", "admin"),
        ("PATCH", "/api/admin/disputes/3", "admin"),
        ("POST", "/api/marketplace/transactions", "write"),
        ("POST", "/api/marketplace/transactions/1/release", "lifecycle"),
        ("POST", "/api/marketplace/transactions/1/refund", "lifecycle"),
        ("POST", "/api/marketplace/transactions/1/dispute", "lifecycle"),
        ("PATCH", "/api/transactions/1/milestones/2/approve", "lifecycle"),
        ("POST", "/api/transactions/1/create-payment", "lifecycle"),
        ("POST", "/api/transactions/1/verify-payment", "lifecycle"),
        ("POST", "/api/disputes/1/evidence", "write"),
        ("POST", "/api/disputes/12/evidence/", "write"),
        ("POST", "/api/transactions/1/milestones/2/submit", "lifecycle"),
        ("POST", "/api/transactions/7/release-notes", "write"),
        ("POST", "/api/transactions", "write"),
        ("GET", "/api/marketplace/transactions/1/logs", "read"),
    ],
)
def test_rate_config_categories(method: str, path: str, category: str) -> None:
    """Lifecycle buckets match whole path segments, not substrings."""
    assert _get_rate_config(method, path)[2] == category


def test_lifecycle_bucket_is_tighter_than_write() -> None:
    life_cap, _, _ = _get_rate_config("POST", "/api/marketplace/transactions/1/release")
    write_cap, _, _ = _get_rate_config("POST", "/api/marketplace/transactions")
    assert life_cap < write_cap
