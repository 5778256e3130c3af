"""Marketplace API: transaction lifecycle for external platforms (bearer auth)."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from middlesman.auth.bearer import require_bearer_token
from middlesman.auth.rate_limit import check_rate_limit
from middlesman.database import get_db
from middlesman.schemas.dispute import DisputeCreate, DisputeResponse
from middlesman.schemas.transaction import (
    RefundRequest,
    ReleaseRequest,
    TransactionCreate,
    TransactionLogResponse,
    TransactionResponse,
)
from middlesman.services import audit as audit_service
from middlesman.services import dispute as dispute_service
from middlesman.services import escrow as escrow_service
from middlesman.services import transaction as transaction_service

router = APIRouter(
    prefix="/api/marketplace/transactions",
    tags=["marketplace"],
    dependencies=[Depends(require_bearer_token), Depends(check_rate_limit)],
)


@router.post("", response_model=TransactionResponse, status_code=201)
async def create_transaction(
    data: TransactionCreate,
    db: AsyncSession = Depends(get_db),
) -> TransactionResponse:
    """Create a transaction awaiting payment, optionally split into milestones."""
    txn = await transaction_service.create_transaction(db, data)
    return TransactionResponse.model_validate(txn)


@router.get("/{transaction_id}", response_model=TransactionResponse)
async def get_transaction(
    transaction_id: int,
    db: AsyncSession = Depends(get_db),
) -> TransactionResponse:
    txn = await transaction_service.get_transaction(db, transaction_id)
    return TransactionResponse.model_validate(txn)


@router.get("/{transaction_id}/logs", response_model=list[TransactionLogResponse])
async def list_logs(
    transaction_id: int,
    db: AsyncSession = Depends(get_db),
) -> list[TransactionLogResponse]:
    """Audit trail, oldest first."""
    await transaction_service.get_transaction(db, transaction_id)
    logs = await audit_service.list_logs(db, transaction_id)
    return [TransactionLogResponse.model_validate(entry) for entry in logs]


@router.post("/{transaction_id}/release", response_model=TransactionResponse)
async def release(
    transaction_id: int,
    data: ReleaseRequest | None = None,
    db: AsyncSession = Depends(get_db),
) -> TransactionResponse:
    """Release funds for the whole transaction or a single milestone."""
    milestone_id = data.milestone_id if data else None
    txn = await escrow_service.release_funds(db, transaction_id, milestone_id=milestone_id)
    return TransactionResponse.model_validate(txn)


@router.post("/{transaction_id}/refund", response_model=TransactionResponse)
async def refund(
    transaction_id: int,
    data: RefundRequest | None = None,
    db: AsyncSession = Depends(get_db),
) -> TransactionResponse:
    txn = await escrow_service.refund(
        db,
        transaction_id,
        milestone_id=data.milestone_id if data else None,
        reason=data.reason if data else None,
    )
    return TransactionResponse.model_validate(txn)


@router.post("/{transaction_id}/dispute", response_model=DisputeResponse, status_code=201)
async def raise_dispute(
    transaction_id: int,
    data: DisputeCreate,
    db: AsyncSession = Depends(get_db),
) -> DisputeResponse:
    dispute = await dispute_service.raise_dispute(db, transaction_id, data)
    return DisputeResponse.model_validate(dispute)
