"""Session-authenticated transaction endpoints: my transactions, payment, milestones."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from middlesman.auth.rate_limit import check_rate_limit
from middlesman.auth.session import current_user
from middlesman.database import get_db
from middlesman.models.user import User
from middlesman.schemas.transaction import (
    MilestoneReject,
    MilestoneSubmit,
    PartyTransactionCreate,
    TransactionResponse,
    VerifyPaymentRequest,
)
from middlesman.services import milestone as milestone_service
from middlesman.services import payment as payment_service
from middlesman.services import transaction as transaction_service

router = APIRouter(
    prefix="/api/transactions",
    tags=["transactions"],
    dependencies=[Depends(check_rate_limit)],
)


@router.get("", response_model=list[TransactionResponse])
async def list_my_transactions(
    user: User = Depends(current_user),
    db: AsyncSession = Depends(get_db),
) -> list[TransactionResponse]:
    """Transactions where the caller is buyer or seller, newest first."""
    transactions = await transaction_service.list_user_transactions(db, user.id)
    return [TransactionResponse.model_validate(t) for t in transactions]


@router.post("", response_model=TransactionResponse, status_code=201)
async def create_my_transaction(
    data: PartyTransactionCreate,
    user: User = Depends(current_user),
    db: AsyncSession = Depends(get_db),
) -> TransactionResponse:
    """Open a transaction as buyer with the seller named by username."""
    txn = await transaction_service.create_party_transaction(db, user, data)
    return TransactionResponse.model_validate(txn)

@router.get("/{transaction_id}", response_model=TransactionResponse)
async def get_my_transaction(
    transaction_id: int,
    user: User = Depends(current_user),
    db: AsyncSession = Depends(get_db),
) -> TransactionResponse:
    txn = await transaction_service.get_user_transaction(db, transaction_id, user.id)
    return TransactionResponse.model_validate(txn)


@router.post("/{transaction_id}/create-payment")
async def create_payment(
    transaction_id: int,
    user: User = Depends(current_user),
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Create a gateway order for the buyer to pay into escrow.

    Returns the gateway order payload with the public ``keyId`` the checkout
    widget needs.
    """
    result = await payment_service.initiate_payment(db, transaction_id, user)
    return {**result["order"], "keyId": result["key_id"]}


@router.post("/{transaction_id}/verify-payment", response_model=TransactionResponse)
async def verify_payment(
    transaction_id: int,
    data: VerifyPaymentRequest,
    user: User = Depends(current_user),
    db: AsyncSession = Depends(get_db),
) -> TransactionResponse:
    txn = await payment_service.verify_payment(db, transaction_id, user, data)
    return TransactionResponse.model_validate(txn)


@router.post(
    "/{transaction_id}/milestones/{milestone_id}/submit",
    response_model=TransactionResponse,
)
async def submit_milestone(
    transaction_id: int,
    milestone_id: int,
    data: MilestoneSubmit,
    user: User = Depends(current_user),
    db: AsyncSession = Depends(get_db),
) -> TransactionResponse:
    """Seller submits completion proof for review."""
    txn = await milestone_service.submit_milestone(db, transaction_id, milestone_id, user, data)
    return TransactionResponse.model_validate(txn)


@router.patch(
    "/{transaction_id}/milestones/{milestone_id}/approve",
    response_model=TransactionResponse,
)
async def approve_milestone(
    transaction_id: int,
    milestone_id: int,
    user: User = Depends(current_user),
    db: AsyncSession = Depends(get_db),
) -> TransactionResponse:
    """Buyer approves; the milestone's funds are released."""
    txn = await milestone_service.approve_milestone(db, transaction_id, milestone_id, user)
    return TransactionResponse.model_validate(txn)


@router.post(
    "/{transaction_id}/milestones/{milestone_id}/reject",
    response_model=TransactionResponse,
)
async def reject_milestone(
    transaction_id: int,
    milestone_id: int,
    data: MilestoneReject,
    user: User = Depends(current_user),
    db: AsyncSession = Depends(get_db),
) -> TransactionResponse:
    txn = await milestone_service.reject_milestone(db, transaction_id, milestone_id, user, data)
    return TransactionResponse.model_validate(txn)
