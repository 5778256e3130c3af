"""Read-side aggregations for the earnings dashboard and admin reports.

Grouping is done in Python so the same code runs on Postgres and SQLite.
Nothing is cached; every call re-aggregates current state.
"""

from collections import Counter, defaultdict
from datetime import UTC, date, datetime
from decimal import Decimal

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import InstrumentedAttribute

from middlesman.models.dispute import Dispute, DisputeStatus
from middlesman.models.transaction import Transaction, TransactionStatus
from middlesman.models.user import User
from middlesman.schemas.report import (
    ActiveUser,
    CountBucket,
    DisputeReport,
    DisputeReportSummary,
    EarningsResponse,
    MonthBucket,
    MonthCount,
    StatusBucket,
    TransactionReport,
    TransactionReportSummary,
    UserReport,
    UserReportSummary,
)
from middlesman.schemas.user import UserSummary
from middlesman.services.fees import calculate_commission
from middlesman.services.transaction import end_of_day, start_of_day

_PENDING_STATUSES = (TransactionStatus.PENDING, TransactionStatus.ACTIVE)
_ZERO = Decimal("0.00")


def month_key(dt: datetime) -> str:
    return dt.strftime("%Y-%m")


def _previous_month(today: date) -> tuple[int, int]:
    if today.month == 1:
        return today.year - 1, 12
    return today.year, today.month - 1


def _date_filters(
    column: InstrumentedAttribute, start_date: date | None, end_date: date | None
) -> list:
    filters = []
    if start_date is not None:
        filters.append(column >= start_of_day(start_date))
    if end_date is not None:
        filters.append(column <= end_of_day(end_date))
    return filters


async def earnings_for_user(
    db: AsyncSession, user_id: int, today: date | None = None
) -> EarningsResponse:
    """Commission earned on every transaction the user brokers or is party to."""
    today = today or datetime.now(UTC).date()
    last_year, last_month = _previous_month(today)

    result = await db.execute(
        select(Transaction).where(
            or_(
                Transaction.admin_id == user_id,
                Transaction.buyer_id == user_id,
                Transaction.seller_id == user_id,
            )
        )
    )
    transactions = list(result.scalars().all())

    total = pending = this_month = previous = _ZERO
    for txn in transactions:
        commission = calculate_commission(txn.amount)
        total += commission
        if txn.status in _PENDING_STATUSES:
            pending += commission
        created = txn.created_at
        if (created.year, created.month) == (today.year, today.month):
            this_month += commission
        elif (created.year, created.month) == (last_year, last_month):
            previous += commission

    return EarningsResponse(
        total=total,
        pending=pending,
        this_month=this_month,
        last_month=previous,
        transaction_count=len(transactions),
    )


async def transaction_report(
    db: AsyncSession,
    start_date: date | None = None,
    end_date: date | None = None,
    type: str | None = None,
    status: TransactionStatus | None = None,
) -> TransactionReport:
    query = select(Transaction.status, Transaction.amount, Transaction.created_at)
    for clause in _date_filters(Transaction.created_at, start_date, end_date):
        query = query.where(clause)
    if type:
        query = query.where(Transaction.type == type)
    if status is not None:
        query = query.where(Transaction.status == status)
    rows = (await db.execute(query)).all()

    by_status: dict[str, list] = defaultdict(lambda: [0, _ZERO])
    by_month: dict[str, list] = defaultdict(lambda: [0, _ZERO])
    total_amount = _ZERO
    for row_status, amount, created_at in rows:
        total_amount += amount
        bucket = by_status[row_status.value]
        bucket[0] += 1
        bucket[1] += amount
        bucket = by_month[month_key(created_at)]
        bucket[0] += 1
        bucket[1] += amount

    return TransactionReport(
        summary=TransactionReportSummary(total_transactions=len(rows), total_amount=total_amount),
        by_status=[
            StatusBucket(status=key, count=count, total_amount=amount)
            for key, (count, amount) in sorted(by_status.items())
        ],
        by_month=[
            MonthBucket(month=key, count=count, total_amount=amount)
            for key, (count, amount) in sorted(by_month.items())
        ],
    )


async def _most_active(
    db: AsyncSession, column: InstrumentedAttribute, limit: int = 5
) -> list[ActiveUser]:
    count = func.count().label("transaction_count")
    rows = (
        await db.execute(
            select(column, count).group_by(column).order_by(count.desc(), column).limit(limit)
        )
    ).all()
    if not rows:
        return []
    user_ids = [user_id for user_id, _ in rows]
    users = {
        u.id: u for u in (await db.execute(select(User).where(User.id.in_(user_ids)))).scalars()
    }
    return [
        ActiveUser(
            user_id=user_id,
            transaction_count=n,
            user=UserSummary.model_validate(users[user_id]) if user_id in users else None,
        )
        for user_id, n in rows
    ]


async def user_report(
    db: AsyncSession, start_date: date | None = None, end_date: date | None = None
) -> UserReport:
    total_users = await db.scalar(select(func.count()).select_from(User)) or 0
    new_query = select(func.count()).select_from(User)
    for clause in _date_filters(User.created_at, start_date, end_date):
        new_query = new_query.where(clause)
    new_users = await db.scalar(new_query) or 0

    signups = Counter(
        month_key(created_at)
        for created_at in (await db.execute(select(User.created_at))).scalars()
    )

    return UserReport(
        summary=UserReportSummary(total_users=total_users, new_users=new_users),
        monthly_signups=[MonthCount(month=k, count=v) for k, v in sorted(signups.items())],
        most_active_buyers=await _most_active(db, Transaction.buyer_id),
        most_active_sellers=await _most_active(db, Transaction.seller_id),
    )


async def dispute_report(
    db: AsyncSession,
    start_date: date | None = None,
    end_date: date | None = None,
    status: DisputeStatus | None = None,
) -> DisputeReport:
    query = select(Dispute)
    for clause in _date_filters(Dispute.created_at, start_date, end_date):
        query = query.where(clause)
    if status is not None:
        query = query.where(Dispute.status == status)
    disputes = list((await db.execute(query)).scalars().all())

    resolution_days = [
        (d.updated_at - d.created_at).total_seconds() / 86400
        for d in disputes
        if d.status == DisputeStatus.RESOLVED
    ]
    average = sum(resolution_days) / len(resolution_days) if resolution_days else 0.0

    by_status = Counter(d.status.value for d in disputes)
    by_resolution = Counter(d.resolution_type.value for d in disputes if d.resolution_type is not None)
    by_month = Counter(month_key(d.created_at) for d in disputes)

    return DisputeReport(
        summary=DisputeReportSummary(total_disputes=len(disputes), average_resolution_time=average),
        by_status=[CountBucket(key=k, count=v) for k, v in sorted(by_status.items())],
        by_resolution_type=[CountBucket(key=k, count=v) for k, v in sorted(by_resolution.items())],
        by_month=[MonthCount(month=k, count=v) for k, v in sorted(by_month.items())],
    )
