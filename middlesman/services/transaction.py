"""Transaction creation, lookup and the shared lifecycle guards."""

import logging
from datetime import UTC, date, datetime, time

from fastapi import HTTPException
from sqlalchemy import Numeric, cast, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from middlesman.models.log import LogAction
from middlesman.models.transaction import (
    MILESTONE_TRANSITIONS,
    VALID_TRANSITIONS,
    EscrowStatus,
    Milestone,
    MilestoneEscrowStatus,
    MilestoneStatus,
    PaymentStatus,
    Transaction,
    TransactionStatus,
)
from middlesman.models.user import User
from middlesman.schemas.transaction import PartyTransactionCreate, TransactionCreate
from middlesman.services.audit import log_action
from middlesman.services.user import find_by_username, require_user

logger = logging.getLogger(__name__)


def assert_transition(current: TransactionStatus, target: TransactionStatus) -> None:
    """Raise 400 if the transaction status transition is not valid."""
    if target not in VALID_TRANSITIONS.get(current, set()):
        raise HTTPException(
            status_code=400,
            detail=f"Cannot transition transaction from {current.value} to {target.value}",
        )


def assert_milestone_transition(current: MilestoneStatus, target: MilestoneStatus) -> None:
    if target not in MILESTONE_TRANSITIONS.get(current, set()):
        raise HTTPException(
            status_code=400,
            detail=f"Cannot transition milestone from {current.value} to {target.value}",
        )


def assert_party(txn: Transaction, user_id: int, allowed: str = "both") -> None:
    """Ensure user is a party to the transaction. allowed: 'buyer', 'seller', 'both'."""
    is_buyer = txn.buyer_id == user_id
    is_seller = txn.seller_id == user_id
    if allowed == "buyer" and not is_buyer:
        raise HTTPException(status_code=403, detail="Only the buyer can perform this action")
    if allowed == "seller" and not is_seller:
        raise HTTPException(status_code=403, detail="Only the seller can perform this action")
    if allowed == "both" and not (is_buyer or is_seller):
        raise HTTPException(status_code=403, detail="Not a party to this transaction")


def touch(txn: Transaction) -> None:
    """Mark the parent row dirty so the version check runs on commit even when
    only child rows changed."""
    txn.updated_at = datetime.now(UTC)


async def commit_lifecycle(db: AsyncSession) -> None:
    """Commit a lifecycle mutation; a lost optimistic-lock race becomes 409."""
    try:
        await db.commit()
    except StaleDataError:
        await db.rollback()
        logger.warning("Concurrent modification detected, rolled back")
        raise HTTPException(
            status_code=409,
            detail="Transaction was modified concurrently, retry the request",
        )


async def get_transaction(db: AsyncSession, transaction_id: int) -> Transaction:
    result = await db.execute(
        select(Transaction)
        .where(Transaction.id == transaction_id)
        .execution_options(populate_existing=True)
    )
    txn = result.scalar_one_or_none()
    if txn is None:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return txn


async def lock_transaction(db: AsyncSession, transaction_id: int) -> Transaction:
    """Load a transaction with a row lock held until the session commits.

    Every mutation of a transaction or its milestones goes through here, so
    writers on the same transaction are serialized.
    """
    result = await db.execute(
        select(Transaction)
        .where(Transaction.id == transaction_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    txn = result.scalar_one_or_none()
    if txn is None:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return txn


def find_milestone(txn: Transaction, milestone_id: int) -> Milestone:
    for milestone in txn.milestones:
        if milestone.id == milestone_id:
            return milestone
    raise HTTPException(status_code=404, detail="Milestone not found")


async def create_transaction(
    db: AsyncSession, data: TransactionCreate, actor_id: int | None = None
) -> Transaction:
    """Create a transaction awaiting payment, with optional milestones."""
    await require_user(db, data.buyer_id, "Buyer")
    await require_user(db, data.seller_id, "Seller")
    if data.admin_id is not None:
        await require_user(db, data.admin_id, "Broker")

    txn = Transaction(
        title=data.title,
        description=data.description,
        type=data.type,
        amount=data.amount,
        currency=data.currency,
        due_date=data.due_date,
        status=TransactionStatus.PENDING,
        escrow_status=EscrowStatus.AWAITING_PAYMENT,
        payment_method=data.payment_method,
        payment_status=PaymentStatus.UNPAID,
        buyer_id=data.buyer_id,
        seller_id=data.seller_id,
        admin_id=data.admin_id,
        milestones=[
            Milestone(
                title=m.title,
                description=m.description,
                amount=m.amount,
                due_date=m.due_date,
                status=MilestoneStatus.PENDING,
                escrow_status=MilestoneEscrowStatus.AWAITING_FUNDING,
            )
            for m in (data.milestones or [])
        ],
    )
    db.add(txn)
    await db.flush()

    milestone_total = sum((m.amount for m in txn.milestones), start=0)
    if txn.milestones and milestone_total != txn.amount:
        logger.warning(
            "Transaction %s milestone total %s differs from amount %s",
            txn.id, milestone_total, txn.amount,
        )

    log_action(
        db, txn.id, LogAction.CREATED, user_id=actor_id,
        details={
            "amount": str(txn.amount),
            "currency": txn.currency,
            "milestones": len(txn.milestones),
        },
    )
    await db.commit()
    logger.info("Created transaction %s (%s %s)", txn.id, txn.amount, txn.currency)
    return await get_transaction(db, txn.id)


async def create_party_transaction(
    db: AsyncSession, buyer: User, data: PartyTransactionCreate
) -> Transaction:
    """Create a transaction with the caller as buyer and the seller looked up by username."""
    seller = await find_by_username(db, data.seller_username)
    if seller is None:
        raise HTTPException(status_code=404, detail="Seller not found")
    if seller.id == buyer.id:
        raise HTTPException(status_code=400, detail="Buyer and seller must be different users")

    terms = data.model_dump(exclude={"seller_username"})
    return await create_transaction(
        db,
        TransactionCreate(**terms, buyer_id=buyer.id, seller_id=seller.id),
        actor_id=buyer.id,
    )


async def list_user_transactions(db: AsyncSession, user_id: int) -> list[Transaction]:
    """Transactions where the user is buyer or seller, newest first."""
    result = await db.execute(
        select(Transaction)
        .where(or_(Transaction.buyer_id == user_id, Transaction.seller_id == user_id))
        .order_by(Transaction.created_at.desc(), Transaction.id.desc())
    )
    return list(result.scalars().all())


async def get_user_transaction(db: AsyncSession, transaction_id: int, user_id: int) -> Transaction:
    """Party-scoped lookup. Non-parties get 404 so ids are not enumerable."""
    txn = await get_transaction(db, transaction_id)
    if user_id not in (txn.buyer_id, txn.seller_id):
        raise HTTPException(status_code=404, detail="Transaction not found")
    return txn


_SORT_COLUMNS = {
    "createdAt": Transaction.created_at,
    "amount": cast(Transaction.amount, Numeric(12, 2)),
    "dueDate": Transaction.due_date,
}


async def search_transactions(
    db: AsyncSession,
    *,
    status: TransactionStatus | None = None,
    buyer_id: int | None = None,
    seller_id: int | None = None,
    search: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    sort: str = "createdAt",
    order: str = "desc",
    page: int = 1,
    limit: int = 10,
) -> tuple[list[Transaction], int]:
    """Admin oversight query with filters, sorting and pagination."""
    query = select(Transaction)
    if status is not None:
        query = query.where(Transaction.status == status)
    if buyer_id is not None:
        query = query.where(Transaction.buyer_id == buyer_id)
    if seller_id is not None:
        query = query.where(Transaction.seller_id == seller_id)
    if search:
        pattern = f"%{search}%"
        query = query.where(
            or_(Transaction.title.ilike(pattern), Transaction.description.ilike(pattern))
        )
    if start_date is not None:
        query = query.where(Transaction.created_at >= start_date)
    if end_date is not None:
        query = query.where(Transaction.created_at <= end_date)

    total = await db.scalar(select(func.count()).select_from(query.subquery()))

    column = _SORT_COLUMNS.get(sort, Transaction.created_at)
    ordering = column.asc() if order == "asc" else column.desc()
    result = await db.execute(
        query.order_by(ordering, Transaction.id.desc())
        .limit(limit)
        .offset((page - 1) * limit)
    )
    return list(result.scalars().all()), total or 0


def end_of_day(d: date) -> datetime:
    """Inclusive upper bound for a date filter."""
    return datetime.combine(d, time.max, tzinfo=UTC)


def start_of_day(d: date) -> datetime:
    return datetime.combine(d, time.min, tzinfo=UTC)
