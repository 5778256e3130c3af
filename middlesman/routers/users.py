"""User directory lookups for signed-in users."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from middlesman.auth.rate_limit import check_rate_limit
from middlesman.auth.session import current_user
from middlesman.database import get_db
from middlesman.schemas.user import UserSearchResult
from middlesman.services import user as user_service

SEARCH_LIMIT = 10

router = APIRouter(
    prefix="/api/users",
    tags=["users"],
    dependencies=[Depends(current_user), Depends(check_rate_limit)],
)


@router.get("/search", response_model=list[UserSearchResult])
async def search_users(
    query: str = Query(..., min_length=1, max_length=128),
    db: AsyncSession = Depends(get_db),
) -> list[UserSearchResult]:
    """Usernames containing ``query``, for picking a counterparty."""
    users, _ = await user_service.list_users(db, query, page=1, limit=SEARCH_LIMIT)
    return [UserSearchResult.model_validate(u) for u in users]
