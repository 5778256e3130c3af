"""Auth endpoints: register, login, logout, current user."""

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from middlesman.auth.rate_limit import check_rate_limit
from middlesman.auth.session import create_session, current_user, destroy_session
from middlesman.database import get_db
from middlesman.models.user import User
from middlesman.redis import get_redis
from middlesman.schemas.user import LoginRequest, RegisterRequest, UserResponse
from middlesman.services import user as user_service

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post(
    "/register",
    response_model=UserResponse,
    status_code=201,
    dependencies=[Depends(check_rate_limit)],
)
async def register(
    data: RegisterRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
    redis: aioredis.Redis = Depends(get_redis),
) -> UserResponse:
    """Create an account and start a session for it."""
    user = await user_service.register_user(db, data)
    await create_session(redis, response, user)
    return UserResponse.model_validate(user)


@router.post("/login", response_model=UserResponse, dependencies=[Depends(check_rate_limit)])
async def login(
    data: LoginRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
    redis: aioredis.Redis = Depends(get_redis),
) -> UserResponse:
    user = await user_service.authenticate(db, data.username, data.password)
    await create_session(redis, response, user)
    return UserResponse.model_validate(user)


@router.post("/logout", dependencies=[Depends(check_rate_limit)])
async def logout(
    request: Request,
    response: Response,
    redis: aioredis.Redis = Depends(get_redis),
) -> dict[str, str]:
    await destroy_session(redis, request, response)
    return {"status": "ok"}


@router.get("/me", response_model=UserResponse, dependencies=[Depends(check_rate_limit)])
async def me(user: User = Depends(current_user)) -> UserResponse:
    return UserResponse.model_validate(user)
