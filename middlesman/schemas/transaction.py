"""Pydantic v2 schemas for transactions, milestones and lifecycle actions."""

from datetime import datetime
from decimal import Decimal

from pydantic import Field, field_validator, model_validator

from middlesman.schemas.base import CamelModel, Pagination, enum_value
from middlesman.schemas.user import UserSummary

_MAX_AMOUNT = Decimal("10000000")


class MilestoneCreate(CamelModel):
    title: str = Field(..., min_length=3, max_length=255)
    description: str = Field(..., min_length=10, max_length=8192)
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    due_date: datetime


class TransactionTerms(CamelModel):
    """What is being sold and for how much, independent of who the parties are."""
    title: str = Field(..., min_length=3, max_length=255)
    description: str = Field(..., min_length=10, max_length=8192)
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    type: str = Field(..., min_length=1, max_length=50)
    currency: str = Field("USD", min_length=3, max_length=3, pattern=r"^[A-Za-z]{3}$")
    due_date: datetime | None = None
    payment_method: str | None = Field(None, max_length=50)
    milestones: list[MilestoneCreate] | None = Field(None, max_length=100)

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: Decimal) -> Decimal:
        if v > _MAX_AMOUNT:
            raise ValueError("Maximum transaction amount is 10,000,000")
        return v

    @field_validator("currency")
    @classmethod
    def normalize_currency(cls, v: str) -> str:
        return v.upper()


class TransactionCreate(TransactionTerms):
    """Marketplace-side creation: the platform names both parties by id."""
    buyer_id: int = Field(..., gt=0)
    seller_id: int = Field(..., gt=0)
    admin_id: int | None = Field(None, gt=0)

    @model_validator(mode="after")
    def buyer_is_not_seller(self) -> "TransactionCreate":
        if self.buyer_id == self.seller_id:
            raise ValueError("Buyer and seller must be different users")
        return self


class PartyTransactionCreate(TransactionTerms):
    """Session-side creation: the caller buys from the named seller."""
    seller_username: str = Field(..., min_length=1, max_length=128)


class ReleaseRequest(CamelModel):
    milestone_id: int | None = Field(None, gt=0)


class RefundRequest(CamelModel):
    milestone_id: int | None = Field(None, gt=0)
    reason: str | None = Field(None, max_length=2048)


class MilestoneSubmit(CamelModel):
    completion_proof: str = Field(..., min_length=1, max_length=8192)


class MilestoneReject(CamelModel):
    reason: str = Field(..., min_length=3, max_length=2048)


class MilestoneResponse(CamelModel):
    id: int
    title: str
    description: str
    amount: Decimal
    due_date: datetime
    completed_at: datetime | None
    status: str
    escrow_status: str
    completion_proof: str | None = None
    rejection_reason: str | None = None
    transaction_id: int
    created_at: datetime
    updated_at: datetime

    @field_validator("status", "escrow_status", mode="before")
    @classmethod
    def serialize_status(cls, v: object) -> object:
        return enum_value(v)


class TransactionResponse(CamelModel):
    id: int
    title: str
    description: str
    type: str
    amount: Decimal
    currency: str
    due_date: datetime | None
    status: str
    escrow_status: str
    payment_method: str | None
    payment_status: str
    payment_id: str | None
    buyer_id: int
    seller_id: int
    admin_id: int | None
    buyer: UserSummary | None = None
    seller: UserSummary | None = None
    milestones: list[MilestoneResponse] = []
    created_at: datetime
    updated_at: datetime

    @field_validator("status", "escrow_status", "payment_status", mode="before")
    @classmethod
    def serialize_status(cls, v: object) -> object:
        return enum_value(v)


class TransactionList(CamelModel):
    transactions: list[TransactionResponse]
    pagination: Pagination


class TransactionLogResponse(CamelModel):
    id: int
    transaction_id: int
    milestone_id: int | None
    user_id: int | None
    action: str
    details: dict | None
    created_at: datetime

    @field_validator("action", mode="before")
    @classmethod
    def serialize_action(cls, v: object) -> object:
        return enum_value(v)


class VerifyPaymentRequest(CamelModel):
    """Fields returned to the browser by the gateway checkout widget."""
    order_id: str = Field(..., min_length=1, max_length=128)
    payment_id: str = Field(..., min_length=1, max_length=128)
    signature: str = Field(..., min_length=1, max_length=256)
