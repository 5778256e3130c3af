"""Pydantic v2 schemas for users and auth."""

from datetime import datetime

from pydantic import Field, field_validator

from middlesman.models.user import UserRole
from middlesman.schemas.base import CamelModel, Pagination, enum_value


class RegisterRequest(CamelModel):
    username: str = Field(..., min_length=3, max_length=128)
    password: str = Field(..., min_length=6, max_length=256)


class LoginRequest(CamelModel):
    username: str = Field(..., min_length=1, max_length=128)
    password: str = Field(..., min_length=1, max_length=256)


class UserSummary(CamelModel):
    id: int
    username: str


class UserSearchResult(UserSummary):
    created_at: datetime


class UserResponse(CamelModel):
    id: int
    username: str
    role: str
    is_active: bool
    created_at: datetime

    @field_validator("role", mode="before")
    @classmethod
    def serialize_role(cls, v: object) -> object:
        return enum_value(v)


class UserUpdate(CamelModel):
    """Admin-side profile edit."""
    username: str | None = Field(None, min_length=3, max_length=128)
    is_active: bool | None = None
    role: UserRole | None = None


class UserList(CamelModel):
    users: list[UserResponse]
    pagination: Pagination
