"""Transaction and Milestone SQLAlchemy models: escrow lifecycle entities."""

import enum
from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, DateTime, Enum, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from middlesman.database import Base, JSONType


def _enum_column(enum_cls: type[enum.Enum]) -> Enum:
    return Enum(enum_cls, values_callable=lambda x: [e.value for e in x])


class TransactionStatus(enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DISPUTED = "disputed"
    REFUNDED = "refunded"
    PARTIALLY_COMPLETED = "partially_completed"


class EscrowStatus(enum.Enum):
    AWAITING_PAYMENT = "awaiting_payment"
    FUNDED = "funded"
    RELEASED = "released"
    REFUNDED = "refunded"
    PARTIALLY_RELEASED = "partially_released"
    DISPUTE_RESOLUTION = "dispute_resolution"
    CANCELLED = "cancelled"


class PaymentStatus(enum.Enum):
    UNPAID = "unpaid"
    PROCESSING = "processing"
    PAID = "paid"
    FAILED = "failed"


class MilestoneStatus(enum.Enum):
    PENDING = "pending"
    SUBMITTED = "submitted"
    COMPLETED = "completed"
    REJECTED = "rejected"
    DISPUTED = "disputed"
    REFUNDED = "refunded"
    # Only reachable through dispute resolution on a milestone-scoped dispute
    PARTIALLY_COMPLETED = "partially_completed"
    CANCELLED = "cancelled"


class MilestoneEscrowStatus(enum.Enum):
    AWAITING_FUNDING = "awaiting_funding"
    FUNDED = "funded"
    RELEASED = "released"
    REFUNDED = "refunded"
    PARTIALLY_RELEASED = "partially_released"
    DISPUTE_RESOLUTION = "dispute_resolution"
    CANCELLED = "cancelled"


# Valid state transitions. Self-loops on completed/refunded make a repeated
# release or refund a no-op instead of an error.
VALID_TRANSITIONS: dict[TransactionStatus, set[TransactionStatus]] = {
    TransactionStatus.PENDING: {
        TransactionStatus.ACTIVE,
        TransactionStatus.IN_PROGRESS,
        TransactionStatus.COMPLETED,
        TransactionStatus.REFUNDED,
        TransactionStatus.DISPUTED,
        TransactionStatus.CANCELLED,
    },
    TransactionStatus.ACTIVE: {
        TransactionStatus.IN_PROGRESS,
        TransactionStatus.COMPLETED,
        TransactionStatus.REFUNDED,
        TransactionStatus.DISPUTED,
        TransactionStatus.CANCELLED,
    },
    TransactionStatus.IN_PROGRESS: {
        TransactionStatus.COMPLETED,
        TransactionStatus.REFUNDED,
        TransactionStatus.DISPUTED,
    },
    TransactionStatus.DISPUTED: {
        TransactionStatus.DISPUTED,
        TransactionStatus.COMPLETED,
        TransactionStatus.REFUNDED,
        TransactionStatus.PARTIALLY_COMPLETED,
        TransactionStatus.CANCELLED,
    },
    TransactionStatus.PARTIALLY_COMPLETED: {
        TransactionStatus.COMPLETED,
        TransactionStatus.REFUNDED,
        TransactionStatus.DISPUTED,
    },
    TransactionStatus.COMPLETED: {TransactionStatus.COMPLETED},
    TransactionStatus.REFUNDED: {TransactionStatus.REFUNDED},
    TransactionStatus.CANCELLED: set(),
}

TERMINAL_STATUSES = frozenset({
    TransactionStatus.COMPLETED,
    TransactionStatus.REFUNDED,
    TransactionStatus.CANCELLED,
})

MILESTONE_TRANSITIONS: dict[MilestoneStatus, set[MilestoneStatus]] = {
    MilestoneStatus.PENDING: {
        MilestoneStatus.SUBMITTED,
        MilestoneStatus.COMPLETED,
        MilestoneStatus.REFUNDED,
        MilestoneStatus.DISPUTED,
    },
    MilestoneStatus.SUBMITTED: {
        MilestoneStatus.COMPLETED,
        MilestoneStatus.REJECTED,
        MilestoneStatus.REFUNDED,
        MilestoneStatus.DISPUTED,
    },
    MilestoneStatus.REJECTED: {
        MilestoneStatus.SUBMITTED,
        MilestoneStatus.COMPLETED,
        MilestoneStatus.REFUNDED,
        MilestoneStatus.DISPUTED,
    },
    MilestoneStatus.DISPUTED: {
        MilestoneStatus.DISPUTED,
        MilestoneStatus.COMPLETED,
        MilestoneStatus.REFUNDED,
    },
    MilestoneStatus.PARTIALLY_COMPLETED: {
        MilestoneStatus.COMPLETED,
        MilestoneStatus.REFUNDED,
        MilestoneStatus.DISPUTED,
    },
    MilestoneStatus.COMPLETED: {MilestoneStatus.COMPLETED},
    MilestoneStatus.REFUNDED: {MilestoneStatus.REFUNDED},
    MilestoneStatus.CANCELLED: set(),
}

# Milestones whose funds have already left escrow
SETTLED_MILESTONE_STATUSES = frozenset({
    MilestoneStatus.COMPLETED,
    MilestoneStatus.REFUNDED,
    MilestoneStatus.CANCELLED,
})


class Transaction(Base):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    due_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    status: Mapped[TransactionStatus] = mapped_column(
        _enum_column(TransactionStatus),
        nullable=False,
        default=TransactionStatus.PENDING,
    )
    escrow_status: Mapped[EscrowStatus] = mapped_column(
        _enum_column(EscrowStatus),
        nullable=False,
        default=EscrowStatus.AWAITING_PAYMENT,
    )
    payment_method: Mapped[str | None] = mapped_column(String(50), nullable=True)
    payment_status: Mapped[PaymentStatus] = mapped_column(
        _enum_column(PaymentStatus),
        nullable=False,
        default=PaymentStatus.UNPAID,
    )
    payment_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    payment_details: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    buyer_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False
    )
    seller_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False
    )
    admin_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    # Optimistic concurrency guard: every UPDATE checks and bumps it.
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    __table_args__ = (
        CheckConstraint("buyer_id <> seller_id", name="ck_transactions_distinct_parties"),
    )
    __mapper_args__ = {"version_id_col": version}

    buyer = relationship("User", foreign_keys=[buyer_id], lazy="selectin")
    seller = relationship("User", foreign_keys=[seller_id], lazy="selectin")
    admin = relationship("User", foreign_keys=[admin_id], lazy="selectin")
    milestones: Mapped[list["Milestone"]] = relationship(
        "Milestone",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="Milestone.id",
    )


class Milestone(Base):
    __tablename__ = "milestones"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    due_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    status: Mapped[MilestoneStatus] = mapped_column(
        _enum_column(MilestoneStatus),
        nullable=False,
        default=MilestoneStatus.PENDING,
    )
    escrow_status: Mapped[MilestoneEscrowStatus] = mapped_column(
        _enum_column(MilestoneEscrowStatus),
        nullable=False,
        default=MilestoneEscrowStatus.AWAITING_FUNDING,
    )
    completion_proof: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    transaction_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("transactions.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )
