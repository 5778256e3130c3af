"""Escrow fund disposition: release and refund, whole or per milestone.

Every operation locks the parent transaction row first and commits once, so
concurrent release/refund/dispute writes on the same transaction serialize.
"""

import logging
from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from middlesman.config import settings
from middlesman.models.log import LogAction
from middlesman.models.transaction import (
    SETTLED_MILESTONE_STATUSES,
    EscrowStatus,
    MilestoneEscrowStatus,
    MilestoneStatus,
    Transaction,
    TransactionStatus,
)
from middlesman.services.audit import log_action
from middlesman.services.transaction import (
    assert_milestone_transition,
    assert_transition,
    commit_lifecycle,
    find_milestone,
    get_transaction,
    lock_transaction,
    touch,
)

logger = logging.getLogger(__name__)

DEFAULT_REFUND_REASON = "Refunded via API"


def _keep_settled(current: MilestoneStatus, target: MilestoneStatus) -> bool:
    """Whether a whole-transaction settlement should leave this milestone alone."""
    return (
        settings.preserve_settled_milestones
        and current in SETTLED_MILESTONE_STATUSES
        and current != target
    )


async def release_funds(
    db: AsyncSession,
    transaction_id: int,
    milestone_id: int | None = None,
    actor_id: int | None = None,
    activate_pending: bool = False,
) -> Transaction:
    """Release escrowed funds to the seller.

    Without a milestone the whole transaction completes. With one, only that
    milestone completes, and the parent is promoted once every milestone is
    completed. ``activate_pending`` moves a still-pending parent to active
    when it is not promoted (buyer milestone approval).
    """
    txn = await lock_transaction(db, transaction_id)
    now = datetime.now(UTC)

    if milestone_id is None:
        assert_transition(txn.status, TransactionStatus.COMPLETED)
        txn.status = TransactionStatus.COMPLETED
        txn.escrow_status = EscrowStatus.RELEASED
        released = []
        for milestone in txn.milestones:
            if _keep_settled(milestone.status, MilestoneStatus.COMPLETED):
                continue
            if milestone.status != MilestoneStatus.COMPLETED:
                milestone.completed_at = now
                released.append(milestone.id)
            milestone.status = MilestoneStatus.COMPLETED
            milestone.escrow_status = MilestoneEscrowStatus.RELEASED
        details = {"scope": "transaction", "amount": str(txn.amount), "milestones": released}
    else:
        milestone = find_milestone(txn, milestone_id)
        # The parent must still be able to complete, otherwise funds would be
        # released out of an already refunded or cancelled escrow.
        assert_transition(txn.status, TransactionStatus.COMPLETED)
        assert_milestone_transition(milestone.status, MilestoneStatus.COMPLETED)
        if milestone.status != MilestoneStatus.COMPLETED:
            milestone.completed_at = now
        milestone.status = MilestoneStatus.COMPLETED
        milestone.escrow_status = MilestoneEscrowStatus.RELEASED

        promoted = all(m.status == MilestoneStatus.COMPLETED for m in txn.milestones)
        if promoted:
            txn.status = TransactionStatus.COMPLETED
            txn.escrow_status = EscrowStatus.RELEASED
        elif activate_pending and txn.status == TransactionStatus.PENDING:
            txn.status = TransactionStatus.ACTIVE
        details = {
            "scope": "milestone",
            "amount": str(milestone.amount),
            "transaction_completed": promoted,
        }

    touch(txn)
    if settings.audit_release_refund:
        log_action(
            db, txn.id, LogAction.RELEASED,
            user_id=actor_id, milestone_id=milestone_id, details=details,
        )
    await commit_lifecycle(db)
    logger.info("Released funds for transaction %s (milestone=%s)", transaction_id, milestone_id)
    return await get_transaction(db, transaction_id)


async def refund(
    db: AsyncSession,
    transaction_id: int,
    milestone_id: int | None = None,
    reason: str | None = None,
    actor_id: int | None = None,
) -> Transaction:
    """Return escrowed funds to the buyer.

    A single-milestone refund leaves the parent untouched unless the
    ``refund_promotes_parent`` policy is on and every milestone is refunded.
    """
    txn = await lock_transaction(db, transaction_id)
    reason = reason or DEFAULT_REFUND_REASON

    if milestone_id is None:
        assert_transition(txn.status, TransactionStatus.REFUNDED)
        txn.status = TransactionStatus.REFUNDED
        txn.escrow_status = EscrowStatus.REFUNDED
        refunded = []
        for milestone in txn.milestones:
            if _keep_settled(milestone.status, MilestoneStatus.REFUNDED):
                continue
            milestone.status = MilestoneStatus.REFUNDED
            milestone.escrow_status = MilestoneEscrowStatus.REFUNDED
            milestone.rejection_reason = reason
            refunded.append(milestone.id)
        details = {"scope": "transaction", "amount": str(txn.amount), "reason": reason, "milestones": refunded}
    else:
        milestone = find_milestone(txn, milestone_id)
        assert_transition(txn.status, TransactionStatus.REFUNDED)
        assert_milestone_transition(milestone.status, MilestoneStatus.REFUNDED)
        milestone.status = MilestoneStatus.REFUNDED
        milestone.escrow_status = MilestoneEscrowStatus.REFUNDED
        milestone.rejection_reason = reason

        promoted = False
        if settings.refund_promotes_parent and all(
            m.status == MilestoneStatus.REFUNDED for m in txn.milestones
        ):
            txn.status = TransactionStatus.REFUNDED
            txn.escrow_status = EscrowStatus.REFUNDED
            promoted = True
        details = {
            "scope": "milestone",
            "amount": str(milestone.amount),
            "reason": reason,
            "transaction_refunded": promoted,
        }

    touch(txn)
    if settings.audit_release_refund:
        log_action(
            db, txn.id, LogAction.REFUNDED,
            user_id=actor_id, milestone_id=milestone_id, details=details,
        )
    await commit_lifecycle(db)
    logger.info("Refunded transaction %s (milestone=%s)", transaction_id, milestone_id)
    return await get_transaction(db, transaction_id)
