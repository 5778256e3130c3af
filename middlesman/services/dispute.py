"""Dispute raising, admin resolution with cascading escrow effects, evidence."""

import logging

from fastapi import HTTPException
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from middlesman.models.dispute import (
    DISPUTE_TRANSITIONS,
    MILESTONE_RESOLUTION_OUTCOMES,
    RESOLUTION_OUTCOMES,
    Dispute,
    DisputeEvidence,
    DisputeStatus,
)
from middlesman.models.log import LogAction
from middlesman.models.transaction import (
    TERMINAL_STATUSES,
    MilestoneStatus,
    TransactionStatus,
)
from middlesman.models.user import User
from middlesman.schemas.dispute import DisputeCreate, DisputeUpdate, EvidenceCreate
from middlesman.services.audit import log_action
from middlesman.services.transaction import (
    assert_milestone_transition,
    assert_transition,
    commit_lifecycle,
    find_milestone,
    lock_transaction,
    touch,
)
from middlesman.services.user import require_user

logger = logging.getLogger(__name__)


async def get_dispute(db: AsyncSession, dispute_id: int) -> Dispute:
    result = await db.execute(
        select(Dispute)
        .where(Dispute.id == dispute_id)
        .execution_options(populate_existing=True)
    )
    dispute = result.scalar_one_or_none()
    if dispute is None:
        raise HTTPException(status_code=404, detail="Dispute not found")
    return dispute


async def raise_dispute(
    db: AsyncSession, transaction_id: int, data: DisputeCreate
) -> Dispute:
    """Open a dispute and mark the transaction (and milestone, if scoped) disputed."""
    txn = await lock_transaction(db, transaction_id)
    await require_user(db, data.raised_by_id, "User")

    assert_transition(txn.status, TransactionStatus.DISPUTED)
    milestone = None
    if data.milestone_id is not None:
        milestone = find_milestone(txn, data.milestone_id)
        assert_milestone_transition(milestone.status, MilestoneStatus.DISPUTED)

    dispute = Dispute(
        title=data.title,
        description=data.description,
        status=DisputeStatus.OPEN,
        transaction_id=txn.id,
        milestone_id=data.milestone_id,
        raised_by_id=data.raised_by_id,
    )
    db.add(dispute)

    txn.status = TransactionStatus.DISPUTED
    if milestone is not None:
        milestone.status = MilestoneStatus.DISPUTED
    touch(txn)
    await db.flush()

    log_action(
        db, txn.id, LogAction.DISPUTE_RAISED,
        user_id=data.raised_by_id, milestone_id=data.milestone_id,
        details={"dispute_id": dispute.id, "title": dispute.title},
    )
    await commit_lifecycle(db)
    logger.info("Dispute %s raised on transaction %s", dispute.id, txn.id)
    return await get_dispute(db, dispute.id)


def _assert_dispute_transition(current: DisputeStatus, target: DisputeStatus) -> None:
    if target == current:
        return
    if target not in DISPUTE_TRANSITIONS.get(current, set()):
        raise HTTPException(
            status_code=400,
            detail=f"Cannot transition dispute from {current.value} to {target.value}",
        )


async def update_dispute(
    db: AsyncSession, dispute_id: int, data: DisputeUpdate, admin_id: int | None = None
) -> Dispute:
    """Admin update. Resolving with a resolution type cascades onto the
    transaction and, for milestone-scoped disputes, that milestone only."""
    dispute = await get_dispute(db, dispute_id)
    # Lock the parent before touching anything so resolution serializes with
    # release/refund on the same transaction.
    txn = await lock_transaction(db, dispute.transaction_id)

    if data.status is not None:
        _assert_dispute_transition(dispute.status, data.status)
    if data.assigned_to_id is not None:
        await require_user(db, data.assigned_to_id, "Assignee")

    resolving = data.status == DisputeStatus.RESOLVED and dispute.status != DisputeStatus.RESOLVED
    resolution_type = data.resolution_type or dispute.resolution_type
    if resolving and resolution_type is not None and txn.status in TERMINAL_STATUSES:
        raise HTTPException(
            status_code=400,
            detail=f"Cannot resolve dispute: transaction is already {txn.status.value}",
        )
    changes = data.model_dump(exclude_none=True, mode="json")

    if data.status is not None:
        dispute.status = data.status
    if data.resolution is not None:
        dispute.resolution = data.resolution
    if data.resolution_type is not None:
        dispute.resolution_type = data.resolution_type
    if data.assigned_to_id is not None:
        dispute.assigned_to_id = data.assigned_to_id

    log_action(
        db, txn.id, LogAction.DISPUTE_UPDATED,
        user_id=admin_id, milestone_id=dispute.milestone_id,
        details={"dispute_id": dispute.id, "changes": changes},
    )

    if resolving and resolution_type is not None:
        status, escrow_status = RESOLUTION_OUTCOMES[resolution_type]
        # Resolution may force the pair from any non-terminal state.
        txn.status = status
        txn.escrow_status = escrow_status

        if dispute.milestone_id is not None:
            milestone = find_milestone(txn, dispute.milestone_id)
            m_status, m_escrow = MILESTONE_RESOLUTION_OUTCOMES[resolution_type]
            milestone.status = m_status
            milestone.escrow_status = m_escrow

        log_action(
            db, txn.id, LogAction.DISPUTE_RESOLVED,
            user_id=admin_id, milestone_id=dispute.milestone_id,
            details={
                "dispute_id": dispute.id,
                "resolution_type": resolution_type.value,
                "status": status.value,
                "escrow_status": escrow_status.value,
            },
        )
        logger.info(
            "Dispute %s resolved (%s): transaction %s → %s/%s",
            dispute.id, resolution_type.value, txn.id, status.value, escrow_status.value,
        )

    touch(txn)
    await commit_lifecycle(db)
    return await get_dispute(db, dispute.id)


async def search_disputes(
    db: AsyncSession,
    *,
    status: DisputeStatus | None = None,
    transaction_id: int | None = None,
    assigned_to: str | None = None,
    page: int = 1,
    limit: int = 10,
) -> tuple[list[Dispute], int]:
    """Admin listing. ``assigned_to`` is a user id or the literal 'unassigned'."""
    query = select(Dispute)
    if status is not None:
        query = query.where(Dispute.status == status)
    if transaction_id is not None:
        query = query.where(Dispute.transaction_id == transaction_id)
    if assigned_to == "unassigned":
        query = query.where(Dispute.assigned_to_id.is_(None))
    elif assigned_to:
        try:
            assignee_id = int(assigned_to)
        except ValueError:
            raise HTTPException(status_code=400, detail="assignedToId must be a user id or 'unassigned'")
        query = query.where(Dispute.assigned_to_id == assignee_id)

    total = await db.scalar(select(func.count()).select_from(query.subquery()))
    result = await db.execute(
        query.order_by(Dispute.created_at.desc(), Dispute.id.desc())
        .limit(limit)
        .offset((page - 1) * limit)
    )
    return list(result.scalars().all()), total or 0


def _assert_can_view(dispute: Dispute, user: User) -> None:
    if user.is_admin:
        return
    txn = dispute.transaction
    if user.id not in (txn.buyer_id, txn.seller_id, dispute.raised_by_id):
        raise HTTPException(status_code=403, detail="Not a party to this dispute")


async def add_evidence(
    db: AsyncSession, dispute_id: int, user: User, data: EvidenceCreate
) -> DisputeEvidence:
    dispute = await get_dispute(db, dispute_id)
    _assert_can_view(dispute, user)
    if dispute.status in (DisputeStatus.RESOLVED, DisputeStatus.CLOSED):
        raise HTTPException(
            status_code=400,
            detail=f"Cannot add evidence to a {dispute.status.value} dispute",
        )

    evidence = DisputeEvidence(
        title=data.title,
        description=data.description,
        file_url=data.file_url,
        file_type=data.file_type,
        dispute_id=dispute.id,
        submitted_by_id=user.id,
    )
    db.add(evidence)
    await db.commit()
    await db.refresh(evidence)
    return evidence


async def list_evidence(db: AsyncSession, dispute_id: int, user: User) -> list[DisputeEvidence]:
    dispute = await get_dispute(db, dispute_id)
    _assert_can_view(dispute, user)
    result = await db.execute(
        select(DisputeEvidence)
        .where(DisputeEvidence.dispute_id == dispute_id)
        .order_by(DisputeEvidence.id)
    )
    return list(result.scalars().all())
