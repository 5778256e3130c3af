"""Seller/buyer milestone workflow: submit, approve, reject."""

import logging

from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from middlesman.models.log import LogAction
from middlesman.models.transaction import (
    TERMINAL_STATUSES,
    MilestoneStatus,
    Transaction,
    TransactionStatus,
)
from middlesman.models.user import User
from middlesman.schemas.transaction import MilestoneReject, MilestoneSubmit
from middlesman.services import escrow as escrow_service
from middlesman.services.audit import log_action
from middlesman.services.transaction import (
    assert_milestone_transition,
    assert_party,
    commit_lifecycle,
    find_milestone,
    get_transaction,
    lock_transaction,
    touch,
)

logger = logging.getLogger(__name__)


def _assert_open(txn: Transaction) -> None:
    if txn.status in TERMINAL_STATUSES or txn.status == TransactionStatus.DISPUTED:
        raise HTTPException(
            status_code=400,
            detail=f"Cannot change milestones of a {txn.status.value} transaction",
        )


async def submit_milestone(
    db: AsyncSession, transaction_id: int, milestone_id: int, user: User, data: MilestoneSubmit
) -> Transaction:
    txn = await lock_transaction(db, transaction_id)
    assert_party(txn, user.id, "seller")
    _assert_open(txn)
    milestone = find_milestone(txn, milestone_id)
    if milestone.status == MilestoneStatus.SUBMITTED:
        raise HTTPException(status_code=400, detail="Milestone is already submitted")
    assert_milestone_transition(milestone.status, MilestoneStatus.SUBMITTED)

    milestone.status = MilestoneStatus.SUBMITTED
    milestone.completion_proof = data.completion_proof
    milestone.rejection_reason = None
    touch(txn)
    log_action(
        db, txn.id, LogAction.MILESTONE_SUBMITTED,
        user_id=user.id, milestone_id=milestone.id,
    )
    await commit_lifecycle(db)
    logger.info("Milestone %s of transaction %s submitted", milestone.id, txn.id)
    return await get_transaction(db, transaction_id)


async def approve_milestone(
    db: AsyncSession, transaction_id: int, milestone_id: int, user: User
) -> Transaction:
    """Buyer approval releases the milestone's funds. A pending parent that is
    not yet fully complete becomes active."""
    txn = await get_transaction(db, transaction_id)
    assert_party(txn, user.id, "buyer")
    _assert_open(txn)
    find_milestone(txn, milestone_id)

    return await escrow_service.release_funds(
        db, transaction_id, milestone_id=milestone_id, actor_id=user.id, activate_pending=True
    )


async def reject_milestone(
    db: AsyncSession, transaction_id: int, milestone_id: int, user: User, data: MilestoneReject
) -> Transaction:
    txn = await lock_transaction(db, transaction_id)
    assert_party(txn, user.id, "buyer")
    _assert_open(txn)
    milestone = find_milestone(txn, milestone_id)
    if milestone.status != MilestoneStatus.SUBMITTED:
        raise HTTPException(
            status_code=400,
            detail=f"Only submitted milestones can be rejected (milestone is {milestone.status.value})",
        )

    milestone.status = MilestoneStatus.REJECTED
    milestone.rejection_reason = data.reason
    touch(txn)
    log_action(
        db, txn.id, LogAction.MILESTONE_REJECTED,
        user_id=user.id, milestone_id=milestone.id, details={"reason": data.reason},
    )
    await commit_lifecycle(db)
    logger.info("Milestone %s of transaction %s rejected", milestone.id, txn.id)
    return await get_transaction(db, transaction_id)
