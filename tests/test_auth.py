"""Tests for session auth: register, login, logout, me, and bearer tokens."""

import pytest
import redis.asyncio as aioredis
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from middlesman.config import settings
from middlesman.models.user import User
from tests.conftest import BEARER, create_user, make_transaction_data


@pytest.mark.asyncio
async def test_register_starts_session(client: AsyncClient) -> None:
    resp = await client.post("/api/auth/register", json={"username": "alice", "password": "hunter22"})
    assert resp.status_code == 201
    body = resp.json()
    assert body["username"] == "alice"
    assert body["role"] == "user"
    assert body["isActive"] is True
    assert "passwordHash" not in body

    resp = await client.get("/api/auth/me")
    assert resp.status_code == 200
    assert resp.json()["username"] == "alice"


@pytest.mark.asyncio
async def test_register_duplicate_username(client: AsyncClient) -> None:
    data = {"username": "alice", "password": "hunter22"}
    assert (await client.post("/api/auth/register", json=data)).status_code == 201
    resp = await client.post("/api/auth/register", json=data)
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_register_validation(client: AsyncClient) -> None:
    resp = await client.post("/api/auth/register", json={"username": "al", "password": "123"})
    assert resp.status_code == 400
    body = resp.json()
    assert body["detail"] == "Validation error"
    fields = {tuple(e["loc"])[-1] for e in body["errors"]}
    assert {"username", "password"} <= fields


@pytest.mark.asyncio
async def test_login_and_logout(
    client: AsyncClient,
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """Login starts a session and logout ends it."""
    await create_user(session_factory, "bob", password="correct-horse")

    resp = await client.post("/api/auth/login", json={"username": "bob", "password": "wrong"})
    assert resp.status_code == 401

    resp = await client.post("/api/auth/login", json={"username": "bob", "password": "correct-horse"})
    assert resp.status_code == 200
    assert settings.session_cookie_name in resp.cookies

    assert (await client.get("/api/auth/me")).status_code == 200

    resp = await client.post("/api/auth/logout")
    assert resp.status_code == 200
    client.cookies.clear()
    assert (await client.get("/api/auth/me")).status_code == 401


@pytest.mark.asyncio
async def test_logout_deletes_server_side_session(
    client: AsyncClient,
    session_factory: async_sessionmaker[AsyncSession],
    redis_client: aioredis.Redis,
) -> None:
    """Logout removes the session from Redis, not just the cookie."""
    await create_user(session_factory, "carol", password="password1")
    await client.post("/api/auth/login", json={"username": "carol", "password": "password1"})
    assert [k async for k in redis_client.scan_iter("session:*")]

    await client.post("/api/auth/logout")
    assert [k async for k in redis_client.scan_iter("session:*")] == []


@pytest.mark.asyncio
async def test_disabled_user_cannot_login(
    client: AsyncClient,
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """Disabled accounts are refused at login."""
    user = await create_user(session_factory, "dave", password="password1")
    async with session_factory() as session:
        stored = await session.get(type(user), user.id)
        stored.is_active = False
        await session.commit()

    resp = await client.post("/api/auth/login", json={"username": "dave", "password": "password1"})
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_me_without_session(client: AsyncClient) -> None:
    assert (await client.get("/api/auth/me")).status_code == 401


@pytest.mark.asyncio
async def test_me_with_unknown_session(client: AsyncClient) -> None:
    client.cookies.set(settings.session_cookie_name, "not-a-session")
    assert (await client.get("/api/auth/me")).status_code == 401


# --- Bearer tokens on the marketplace API ---


@pytest.mark.asyncio
async def test_marketplace_requires_bearer(client: AsyncClient) -> None:
    resp = await client.get("/api/marketplace/transactions/1")
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Missing or invalid OAuth token"

    resp = await client.get(
        "/api/marketplace/transactions/1", headers={"Authorization": "Basic abc"}
    )
    assert resp.status_code == 401

    resp = await client.get("/api/marketplace/transactions/1", headers={"Authorization": "Bearer "})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_marketplace_token_allow_list(
    client: AsyncClient,
    parties: tuple[User, User],
) -> None:
    """With an allow list configured only listed tokens pass."""
    buyer, seller = parties
    object.__setattr__(settings, "marketplace_api_tokens", ["platform-a"])
    data = make_transaction_data(buyer.id, seller.id)

    resp = await client.post("/api/marketplace/transactions", json=data, headers=BEARER)
    assert resp.status_code == 401

    resp = await client.post(
        "/api/marketplace/transactions",
        json=data,
        headers={"Authorization": "Bearer platform-a"},
    )
    assert resp.status_code == 201
