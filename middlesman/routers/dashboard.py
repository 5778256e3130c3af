"""Dashboard endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from middlesman.auth.rate_limit import check_rate_limit
from middlesman.auth.session import current_user
from middlesman.database import get_db
from middlesman.models.user import User
from middlesman.schemas.report import EarningsResponse
from middlesman.services import reports as report_service
from middlesman.services.fees import get_commission_schedule

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


@router.get(
    "/earnings",
    response_model=EarningsResponse,
    dependencies=[Depends(check_rate_limit)],
)
async def earnings(
    user: User = Depends(current_user),
    db: AsyncSession = Depends(get_db),
) -> EarningsResponse:
    """Commission totals for the caller's transactions."""
    return await report_service.earnings_for_user(db, user.id)


@router.get("/commission", dependencies=[Depends(check_rate_limit)])
async def commission_schedule(user: User = Depends(current_user)) -> dict:
    return get_commission_schedule()
