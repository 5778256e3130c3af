"""Payment gateway integration (Razorpay-compatible orders API).

The buyer funds escrow in two steps: ``initiate_payment`` creates a gateway
order for the transaction amount, and ``verify_payment`` checks the
signature the checkout widget hands back before marking escrow funded.
"""

import hashlib
import hmac
import logging
from decimal import Decimal

import httpx
from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from middlesman.config import settings
from middlesman.models.log import LogAction
from middlesman.models.transaction import (
    EscrowStatus,
    MilestoneEscrowStatus,
    PaymentStatus,
    Transaction,
    TransactionStatus,
)
from middlesman.models.user import User
from middlesman.schemas.transaction import VerifyPaymentRequest
from middlesman.services.audit import log_action
from middlesman.services.transaction import (
    assert_party,
    commit_lifecycle,
    get_transaction,
    lock_transaction,
    touch,
)

logger = logging.getLogger(__name__)


def _require_gateway() -> None:
    if not settings.payment_gateway_configured:
        raise HTTPException(
            status_code=503,
            detail="Payment gateway is not configured on this server",
        )


def to_minor_units(amount: Decimal) -> int:
    return int((amount * 100).quantize(Decimal("1")))


async def create_order(amount_minor: int, currency: str, receipt: str) -> dict:
    """Create a gateway order. Raises 503 when unconfigured, 502 on failure."""
    _require_gateway()

    async with httpx.AsyncClient(timeout=settings.payment_timeout_seconds) as client:
        try:
            resp = await client.post(
                f"{settings.payment_gateway_url}/orders",
                auth=(settings.payment_key_id, settings.payment_key_secret),
                json={"amount": amount_minor, "currency": currency, "receipt": receipt},
            )
        except httpx.TimeoutException:
            logger.error("Payment gateway timed out creating order %s", receipt)
            raise HTTPException(status_code=502, detail="Payment gateway timed out")
        except httpx.RequestError as e:
            logger.error("Payment gateway request failed: %s", e)
            raise HTTPException(status_code=502, detail="Failed to reach payment gateway")

    if resp.status_code not in (200, 201):
        logger.error("Payment gateway returned %d: %s", resp.status_code, resp.text[:500])
        raise HTTPException(
            status_code=502,
            detail=f"Payment gateway rejected the order (status {resp.status_code})",
        )
    return resp.json()


def compute_signature(order_id: str, payment_id: str) -> str:
    message = f"{order_id}|{payment_id}"
    return hmac.new(
        settings.payment_key_secret.encode(), message.encode(), hashlib.sha256
    ).hexdigest()


async def initiate_payment(db: AsyncSession, transaction_id: int, user: User) -> dict:
    txn = await lock_transaction(db, transaction_id)
    assert_party(txn, user.id, "buyer")
    if txn.status != TransactionStatus.PENDING or txn.escrow_status != EscrowStatus.AWAITING_PAYMENT:
        raise HTTPException(
            status_code=400,
            detail=f"Cannot initiate payment: transaction is {txn.status.value}/{txn.escrow_status.value}",
        )
    if txn.payment_status == PaymentStatus.PAID:
        raise HTTPException(status_code=400, detail="Transaction is already paid")

    order = await create_order(to_minor_units(txn.amount), txn.currency, f"txn_{txn.id}")

    txn.payment_id = str(order.get("id", ""))
    txn.payment_status = PaymentStatus.PROCESSING
    txn.payment_details = {"order": order}
    touch(txn)
    log_action(
        db, txn.id, LogAction.PAYMENT_INITIATED, user_id=user.id,
        details={"order_id": txn.payment_id, "amount": str(txn.amount), "currency": txn.currency},
    )
    await commit_lifecycle(db)
    logger.info("Payment order %s created for transaction %s", txn.payment_id, txn.id)
    return {"order": order, "key_id": settings.payment_key_id}


async def verify_payment(
    db: AsyncSession, transaction_id: int, user: User, data: VerifyPaymentRequest
) -> Transaction:
    """Confirm a checkout. A good signature records the payment, funding escrow
    and activating the transaction where it still awaits them; a bad one marks
    the payment failed."""
    _require_gateway()
    txn = await lock_transaction(db, transaction_id)
    assert_party(txn, user.id, "buyer")
    if txn.payment_status != PaymentStatus.PROCESSING:
        raise HTTPException(
            status_code=400,
            detail=f"No payment in progress (payment status is {txn.payment_status.value})",
        )
    if txn.payment_id != data.order_id:
        raise HTTPException(status_code=400, detail="Order does not belong to this transaction")

    expected = compute_signature(data.order_id, data.payment_id)
    if not hmac.compare_digest(expected, data.signature):
        txn.payment_status = PaymentStatus.FAILED
        touch(txn)
        log_action(
            db, txn.id, LogAction.PAYMENT_FAILED, user_id=user.id,
            details={"order_id": data.order_id, "payment_id": data.payment_id},
        )
        await commit_lifecycle(db)
        logger.warning("Signature mismatch for transaction %s order %s", txn.id, data.order_id)
        raise HTTPException(status_code=400, detail="Invalid payment signature")

    # A captured payment is always recorded.
    # Lifecycle fields only advance if nothing moved them during checkout.
    txn.payment_status = PaymentStatus.PAID
    txn.payment_details = {**(txn.payment_details or {}), "payment_id": data.payment_id}
    if txn.status == TransactionStatus.PENDING:
        txn.status = TransactionStatus.ACTIVE
    funded = txn.escrow_status == EscrowStatus.AWAITING_PAYMENT
    if funded:
        txn.escrow_status = EscrowStatus.FUNDED
        for milestone in txn.milestones:
            if milestone.escrow_status == MilestoneEscrowStatus.AWAITING_FUNDING:
                milestone.escrow_status = MilestoneEscrowStatus.FUNDED
    touch(txn)
    log_action(
        db, txn.id, LogAction.PAYMENT_CONFIRMED, user_id=user.id,
        details={
            "order_id": data.order_id,
            "payment_id": data.payment_id,
            "status": txn.status.value,
            "escrow_funded": funded,
        },
    )
    await commit_lifecycle(db)
    logger.info("Payment confirmed for transaction %s (escrow funded=%s)", txn.id, funded)
    return await get_transaction(db, transaction_id)
