"""Transaction audit trail."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from middlesman.models.log import LogAction, TransactionLog


def log_action(
    db: AsyncSession,
    transaction_id: int,
    action: LogAction,
    user_id: int | None = None,
    milestone_id: int | None = None,
    details: dict | None = None,
) -> TransactionLog:
    """Append to the immutable audit log. Flushed with the caller's commit."""
    entry = TransactionLog(
        transaction_id=transaction_id,
        milestone_id=milestone_id,
        user_id=user_id,
        action=action,
        details=details or {},
    )
    db.add(entry)
    return entry


async def list_logs(db: AsyncSession, transaction_id: int) -> list[TransactionLog]:
    result = await db.execute(
        select(TransactionLog)
        .where(TransactionLog.transaction_id == transaction_id)
        .order_by(TransactionLog.id)
    )
    return list(result.scalars().all())
