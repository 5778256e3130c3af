"""Tests for application middleware (body size limit, security headers)."""

import pytest
from httpx import AsyncClient

from middlesman.models.user import User
from tests.conftest import BEARER, make_transaction_data

OVERSIZED = {"Content-Length": "2000000", "Content-Type": "application/json"}


@pytest.mark.asyncio
async def test_security_headers_present(client: AsyncClient) -> None:
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.headers["strict-transport-security"] == "max-age=63072000; includeSubDomains"
    assert resp.headers["x-content-type-options"] == "nosniff"
    assert resp.headers["x-frame-options"] == "DENY"
    assert resp.headers["referrer-policy"] == "strict-origin-when-cross-origin"
    assert resp.headers["cache-control"] == "no-store"


@pytest.mark.asyncio
async def test_security_headers_on_error_response(client: AsyncClient) -> None:
    resp = await client.get("/api/marketplace/transactions/9999", headers=BEARER)
    assert resp.status_code == 404
    assert resp.headers["x-content-type-options"] == "nosniff"
    assert resp.headers["x-frame-options"] == "DENY"


@pytest.mark.asyncio
async def test_security_headers_on_post_response(
    client: AsyncClient,
    parties: tuple[User, User],
) -> None:
    buyer, seller = parties
    resp = await client.post(
        "/api/marketplace/transactions",
        json=make_transaction_data(buyer.id, seller.id),
        headers=BEARER,
    )
    assert resp.status_code == 201
    assert resp.headers["strict-transport-security"] == "max-age=63072000; includeSubDomains"


@pytest.mark.asyncio
async def test_body_size_limit_exceeded(client: AsyncClient) -> None:
    resp = await client.post(
        "/api/marketplace/transactions",
        content=b"x",
        headers={**BEARER, **OVERSIZED},
    )
    assert resp.status_code == 413


@pytest.mark.asyncio
async def test_body_size_limit_patch_checked(client: AsyncClient) -> None:
    resp = await client.patch("/api/admin/disputes/1", content=b"x", headers=OVERSIZED)
    assert resp.status_code == 413


@pytest.mark.asyncio
async def test_body_size_limit_exact_boundary(client: AsyncClient) -> None:
    resp = await client.post(
        "/api/marketplace/transactions",
        content=b"x",
        headers={**BEARER, "Content-Length": "1048576", "Content-Type": "application/json"},
    )
    # Passes the size check; fails later on the malformed body
    assert resp.status_code != 413


@pytest.mark.asyncio
async def test_invalid_content_length(client: AsyncClient) -> None:
    resp = await client.post(
        "/api/auth/login",
        content=b"{}",
        headers={"Content-Length": "lots", "Content-Type": "application/json"},
    )
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Invalid Content-Length"


@pytest.mark.asyncio
async def test_body_size_limit_get_not_checked(client: AsyncClient) -> None:
    resp = await client.get("/health")
    assert resp.status_code == 200
