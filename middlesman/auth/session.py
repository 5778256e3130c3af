"""Server-side sessions stored in Redis, identified by an HTTP-only cookie."""

import logging
import secrets

import redis.asyncio as aioredis
from fastapi import Depends, HTTPException, Request, Response
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from middlesman.config import settings
from middlesman.database import get_db
from middlesman.models.user import User
from middlesman.redis import get_redis

logger = logging.getLogger(__name__)

SESSION_PREFIX = "session:"


def _session_key(session_id: str) -> str:
    return f"{SESSION_PREFIX}{session_id}"


async def create_session(redis: aioredis.Redis, response: Response, user: User) -> str:
    """Store a new session for the user and set the cookie on the response."""
    session_id = secrets.token_urlsafe(32)
    await redis.set(_session_key(session_id), str(user.id), ex=settings.session_ttl_seconds)
    response.set_cookie(
        settings.session_cookie_name,
        session_id,
        max_age=settings.session_ttl_seconds,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
    )
    return session_id


async def destroy_session(redis: aioredis.Redis, request: Request, response: Response) -> None:
    session_id = request.cookies.get(settings.session_cookie_name)
    if session_id:
        await redis.delete(_session_key(session_id))
    response.delete_cookie(settings.session_cookie_name)


async def current_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
    redis: aioredis.Redis = Depends(get_redis),
) -> User:
    """Resolve the logged-in user from the session cookie."""
    session_id = request.cookies.get(settings.session_cookie_name)
    if not session_id:
        raise HTTPException(status_code=401, detail="Not authenticated")

    raw = await redis.get(_session_key(session_id))
    if raw is None:
        raise HTTPException(status_code=401, detail="Session expired")

    result = await db.execute(select(User).where(User.id == int(raw)))
    user = result.scalar_one_or_none()
    if user is None or not user.is_active:
        await redis.delete(_session_key(session_id))
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user


async def require_admin(user: User = Depends(current_user)) -> User:
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user
