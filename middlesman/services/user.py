"""User accounts: registration, credential checks, admin management."""

import logging

from fastapi import HTTPException
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from werkzeug.security import check_password_hash, generate_password_hash

from middlesman.models.user import User, UserRole
from middlesman.schemas.user import RegisterRequest, UserUpdate

logger = logging.getLogger(__name__)


async def get_user(db: AsyncSession, user_id: int) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user


async def require_user(db: AsyncSession, user_id: int, label: str) -> User:
    """Resolve a referenced user id, failing with '<label> not found'."""
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return user


async def find_by_username(db: AsyncSession, username: str) -> User | None:
    result = await db.execute(select(User).where(User.username == username))
    return result.scalar_one_or_none()


async def register_user(
    db: AsyncSession, data: RegisterRequest, role: UserRole = UserRole.USER
) -> User:
    if await find_by_username(db, data.username) is not None:
        raise HTTPException(status_code=409, detail="Username already exists")

    user = User(
        username=data.username,
        password_hash=generate_password_hash(data.password),
        role=role,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    logger.info("Registered user %s (%s)", user.id, user.role.value)
    return user


async def authenticate(db: AsyncSession, username: str, password: str) -> User:
    user = await find_by_username(db, username)
    if user is None or not check_password_hash(user.password_hash, password):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="Account is disabled")
    return user


async def list_users(
    db: AsyncSession, search: str | None, page: int, limit: int
) -> tuple[list[User], int]:
    query = select(User)
    if search:
        query = query.where(User.username.ilike(f"%{search}%"))

    total = await db.scalar(select(func.count()).select_from(query.subquery()))
    result = await db.execute(
        query.order_by(User.id.desc()).limit(limit).offset((page - 1) * limit)
    )
    return list(result.scalars().all()), total or 0


async def update_user(db: AsyncSession, user_id: int, data: UserUpdate) -> User:
    user = await get_user(db, user_id)

    if data.username is not None and data.username != user.username:
        clash = await db.execute(select(User).where(User.username == data.username))
        if clash.scalar_one_or_none() is not None:
            raise HTTPException(status_code=409, detail="Username already exists")
        user.username = data.username
    if data.is_active is not None:
        user.is_active = data.is_active
    if data.role is not None:
        user.role = data.role

    await db.commit()
    await db.refresh(user)
    return user
