"""Test configuration and fixtures.

Each test gets a fresh in-memory SQLite database and a fakeredis instance,
so the suite runs without Postgres or Redis.
"""

import secrets
from collections.abc import AsyncGenerator, Awaitable, Callable
from decimal import Decimal

import fakeredis.aioredis
import pytest
import pytest_asyncio
import redis.asyncio as aioredis
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from werkzeug.security import generate_password_hash

from middlesman.auth.session import SESSION_PREFIX
from middlesman.config import settings
from middlesman.database import Database, get_db
from middlesman.main import app
from middlesman.models.user import User, UserRole
from middlesman.redis import get_redis

BEARER = {"Authorization": "Bearer test-platform-token"}

AdminLogin = Callable[[], Awaitable[None]]


# ---------------------------------------------------------------------------
# Per-test fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _isolate_settings() -> None:
    """Snapshot settings before each test and restore after to prevent mutation bleed."""
    original = settings.model_dump()
    object.__setattr__(settings, "marketplace_api_tokens", [])
    object.__setattr__(settings, "commission_tiers", [])
    object.__setattr__(settings, "payment_key_id", "")
    object.__setattr__(settings, "payment_key_secret", "")
    yield  # type: ignore[misc]
    for key, value in original.items():
        object.__setattr__(settings, key, value)


@pytest_asyncio.fixture
async def database() -> AsyncGenerator[Database, None]:
    db = Database(settings.test_database_url)
    await db.create_all()
    yield db
    await db.dispose()


@pytest.fixture
def session_factory(database: Database) -> async_sessionmaker[AsyncSession]:
    return database.session_factory


@pytest_asyncio.fixture
async def redis_client() -> AsyncGenerator[aioredis.Redis, None]:
    client = fakeredis.aioredis.FakeRedis()
    yield client
    await client.flushall()
    await client.aclose()


@pytest_asyncio.fixture
async def client(
    database: Database,
    redis_client: aioredis.Redis,
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP test client with overridden DB and Redis dependencies."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with database.session_factory() as session:
            yield session

    async def override_get_redis() -> AsyncGenerator[aioredis.Redis, None]:
        yield redis_client

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    app.state.database = database

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def create_user(
    session_factory: async_sessionmaker[AsyncSession],
    username: str,
    password: str = "secret123",
    role: UserRole = UserRole.USER,
) -> User:
    async with session_factory() as session:
        user = User(
            username=username,
            password_hash=generate_password_hash(password),
            role=role,
        )
        session.add(user)
        await session.commit()
        await session.refresh(user)
        return user


async def login_as(client: AsyncClient, redis_client: aioredis.Redis, user: User) -> None:
    """Start a session for the user directly in Redis and point the client at it."""
    session_id = secrets.token_urlsafe(16)
    await redis_client.set(f"{SESSION_PREFIX}{session_id}", str(user.id))
    client.cookies.set(settings.session_cookie_name, session_id)


def make_transaction_data(
    buyer_id: int,
    seller_id: int,
    amount: str = "1000.00",
    milestones: list[dict] | None = None,
    **overrides: object,
) -> dict:
    """Factory for the marketplace create-transaction payload."""
    data: dict = {
        "title": "Logo design",
        "description": "Brand logo with three revisions",
        "amount": amount,
        "type": "service",
        "currency": "USD",
        "buyerId": buyer_id,
        "sellerId": seller_id,
    }
    if milestones is not None:
        data["milestones"] = milestones
    data.update(overrides)
    return data


def make_milestone(amount: str, title: str = "Milestone") -> dict:
    return {
        "title": title,
        "description": "Deliverable for this stage",
        "amount": amount,
        "dueDate": "2030-01-01T00:00:00Z",
    }


async def create_transaction(
    client: AsyncClient,
    buyer_id: int,
    seller_id: int,
    amount: str = "1000.00",
    milestones: list[dict] | None = None,
    **overrides: object,
) -> dict:
    resp = await client.post(
        "/api/marketplace/transactions",
        json=make_transaction_data(buyer_id, seller_id, amount, milestones, **overrides),
        headers=BEARER,
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


@pytest_asyncio.fixture
async def parties(session_factory: async_sessionmaker[AsyncSession]) -> tuple[User, User]:
    """A buyer and a seller."""
    buyer = await create_user(session_factory, "buyer")
    seller = await create_user(session_factory, "seller")
    return buyer, seller


@pytest_asyncio.fixture
async def admin_user(session_factory: async_sessionmaker[AsyncSession]) -> User:
    return await create_user(session_factory, "admin", role=UserRole.ADMIN)


def money(value: str | int | float) -> Decimal:
    return Decimal(str(value))


@pytest.fixture
def as_admin(client: AsyncClient, redis_client: aioredis.Redis, admin_user: User) -> AdminLogin:
    """Callable that signs the test client in as the admin user."""
    async def _login() -> None:
        await login_as(client, redis_client, admin_user)
    return _login
