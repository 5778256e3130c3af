"""Admin endpoints: user management, transaction oversight, disputes, reports."""

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from middlesman.auth.rate_limit import check_rate_limit
from middlesman.auth.session import require_admin
from middlesman.database import get_db
from middlesman.models.dispute import DisputeStatus
from middlesman.models.transaction import TransactionStatus
from middlesman.models.user import User
from middlesman.schemas.base import Pagination
from middlesman.schemas.dispute import DisputeDetail, DisputeList, DisputeUpdate
from middlesman.schemas.report import DisputeReport, TransactionReport, UserReport
from middlesman.schemas.transaction import TransactionList, TransactionResponse
from middlesman.schemas.user import UserList, UserResponse, UserUpdate
from middlesman.services import dispute as dispute_service
from middlesman.services import reports as report_service
from middlesman.services import transaction as transaction_service
from middlesman.services import user as user_service

router = APIRouter(
    prefix="/api/admin",
    tags=["admin"],
    dependencies=[Depends(check_rate_limit)],
)


def _check_range(start_date: date | None, end_date: date | None) -> None:
    if start_date and end_date and start_date > end_date:
        raise HTTPException(status_code=400, detail="startDate must not be after endDate")


# --- Users ---


@router.get("/users", response_model=UserList)
async def list_users(
    search: str | None = Query(None, max_length=128),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> UserList:
    users, total = await user_service.list_users(db, search, page, limit)
    return UserList(
        users=[UserResponse.model_validate(u) for u in users],
        pagination=Pagination(total=total, page=page, limit=limit),
    )


@router.get("/users/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    return UserResponse.model_validate(await user_service.get_user(db, user_id))


@router.patch("/users/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: int,
    data: UserUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    user = await user_service.update_user(db, user_id, data)
    return UserResponse.model_validate(user)


# --- Transactions ---


@router.get("/transactions", response_model=TransactionList)
async def list_transactions(
    status: TransactionStatus | None = Query(None),
    buyer_id: int | None = Query(None, alias="buyerId", gt=0),
    seller_id: int | None = Query(None, alias="sellerId", gt=0),
    search: str | None = Query(None, max_length=255),
    start_date: date | None = Query(None, alias="startDate"),
    end_date: date | None = Query(None, alias="endDate"),
    sort: str = Query("createdAt", pattern="^(createdAt|amount|dueDate)$"),
    order: str = Query("desc", pattern="^(asc|desc)$"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> TransactionList:
    """Search all transactions with filters, sorting and pagination."""
    _check_range(start_date, end_date)
    transactions, total = await transaction_service.search_transactions(
        db,
        status=status,
        buyer_id=buyer_id,
        seller_id=seller_id,
        search=search,
        start_date=transaction_service.start_of_day(start_date) if start_date else None,
        end_date=transaction_service.end_of_day(end_date) if end_date else None,
        sort=sort,
        order=order,
        page=page,
        limit=limit,
    )
    return TransactionList(
        transactions=[TransactionResponse.model_validate(t) for t in transactions],
        pagination=Pagination(total=total, page=page, limit=limit),
    )


@router.get("/transactions/{transaction_id}", response_model=TransactionResponse)
async def get_transaction(
    transaction_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> TransactionResponse:
    txn = await transaction_service.get_transaction(db, transaction_id)
    return TransactionResponse.model_validate(txn)


# --- Disputes ---


@router.get("/disputes", response_model=DisputeList)
async def list_disputes(
    status: DisputeStatus | None = Query(None),
    transaction_id: int | None = Query(None, alias="transactionId", gt=0),
    assigned_to: str | None = Query(None, alias="assignedToId", max_length=32),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> DisputeList:
    """``assignedToId`` accepts a user id or ``unassigned``."""
    disputes, total = await dispute_service.search_disputes(
        db,
        status=status,
        transaction_id=transaction_id,
        assigned_to=assigned_to,
        page=page,
        limit=limit,
    )
    return DisputeList(
        disputes=[DisputeDetail.model_validate(d) for d in disputes],
        pagination=Pagination(total=total, page=page, limit=limit),
    )


@router.get("/disputes/{dispute_id}", response_model=DisputeDetail)
async def get_dispute(
    dispute_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> DisputeDetail:
    dispute = await dispute_service.get_dispute(db, dispute_id)
    return DisputeDetail.model_validate(dispute)


@router.patch("/disputes/{dispute_id}", response_model=DisputeDetail)
async def update_dispute(
    dispute_id: int,
    data: DisputeUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> DisputeDetail:
    """Update or resolve a dispute. Resolution cascades to escrow state."""
    dispute = await dispute_service.update_dispute(db, dispute_id, data, admin_id=admin.id)
    return DisputeDetail.model_validate(dispute)


# --- Reports ---


@router.get("/reports/transactions", response_model=TransactionReport)
async def transaction_report(
    start_date: date | None = Query(None, alias="startDate"),
    end_date: date | None = Query(None, alias="endDate"),
    type: str | None = Query(None, max_length=50),
    status: TransactionStatus | None = Query(None),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> TransactionReport:
    _check_range(start_date, end_date)
    return await report_service.transaction_report(db, start_date, end_date, type, status)


@router.get("/reports/users", response_model=UserReport)
async def user_report(
    start_date: date | None = Query(None, alias="startDate"),
    end_date: date | None = Query(None, alias="endDate"),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> UserReport:
    _check_range(start_date, end_date)
    return await report_service.user_report(db, start_date, end_date)


@router.get("/reports/disputes", response_model=DisputeReport)
async def dispute_report(
    start_date: date | None = Query(None, alias="startDate"),
    end_date: date | None = Query(None, alias="endDate"),
    status: DisputeStatus | None = Query(None),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> DisputeReport:
    _check_range(start_date, end_date)
    return await report_service.dispute_report(db, start_date, end_date, status)
