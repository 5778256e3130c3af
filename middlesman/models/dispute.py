"""Dispute and evidence models."""

import enum
from datetime import UTC, datetime

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from middlesman.database import Base
from middlesman.models.transaction import EscrowStatus, MilestoneEscrowStatus, MilestoneStatus, TransactionStatus


class DisputeStatus(enum.Enum):
    OPEN = "open"
    UNDER_REVIEW = "under_review"
    REVIEWING = "reviewing"
    RESOLVED = "resolved"
    CLOSED = "closed"
    ESCALATED = "escalated"


class ResolutionType(enum.Enum):
    REFUND = "refund"
    RELEASE = "release"
    PARTIAL = "partial"
    CANCELLED = "cancelled"


_REVIEW_STATES = {
    DisputeStatus.REVIEWING,
    DisputeStatus.UNDER_REVIEW,
    DisputeStatus.ESCALATED,
    DisputeStatus.RESOLVED,
    DisputeStatus.CLOSED,
}

DISPUTE_TRANSITIONS: dict[DisputeStatus, set[DisputeStatus]] = {
    DisputeStatus.OPEN: set(_REVIEW_STATES),
    DisputeStatus.REVIEWING: set(_REVIEW_STATES),
    DisputeStatus.UNDER_REVIEW: set(_REVIEW_STATES),
    DisputeStatus.ESCALATED: _REVIEW_STATES - {DisputeStatus.ESCALATED},
    DisputeStatus.RESOLVED: {DisputeStatus.CLOSED},
    DisputeStatus.CLOSED: set(),
}

# resolution type → (transaction status, escrow status)
RESOLUTION_OUTCOMES: dict[ResolutionType, tuple[TransactionStatus, EscrowStatus]] = {
    ResolutionType.REFUND: (TransactionStatus.REFUNDED, EscrowStatus.REFUNDED),
    ResolutionType.RELEASE: (TransactionStatus.COMPLETED, EscrowStatus.RELEASED),
    ResolutionType.PARTIAL: (TransactionStatus.PARTIALLY_COMPLETED, EscrowStatus.PARTIALLY_RELEASED),
    ResolutionType.CANCELLED: (TransactionStatus.CANCELLED, EscrowStatus.CANCELLED),
}

# Same outcome expressed in the milestone vocabulary
MILESTONE_RESOLUTION_OUTCOMES: dict[ResolutionType, tuple[MilestoneStatus, MilestoneEscrowStatus]] = {
    ResolutionType.REFUND: (MilestoneStatus.REFUNDED, MilestoneEscrowStatus.REFUNDED),
    ResolutionType.RELEASE: (MilestoneStatus.COMPLETED, MilestoneEscrowStatus.RELEASED),
    ResolutionType.PARTIAL: (MilestoneStatus.PARTIALLY_COMPLETED, MilestoneEscrowStatus.PARTIALLY_RELEASED),
    ResolutionType.CANCELLED: (MilestoneStatus.CANCELLED, MilestoneEscrowStatus.CANCELLED),
}


class Dispute(Base):
    __tablename__ = "disputes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[DisputeStatus] = mapped_column(
        Enum(DisputeStatus, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=DisputeStatus.OPEN,
    )
    resolution: Mapped[str | None] = mapped_column(Text, nullable=True)
    resolution_type: Mapped[ResolutionType | None] = mapped_column(
        Enum(ResolutionType, values_callable=lambda x: [e.value for e in x]),
        nullable=True,
    )
    transaction_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("transactions.id", ondelete="CASCADE"), nullable=False
    )
    milestone_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("milestones.id", ondelete="SET NULL"), nullable=True
    )
    raised_by_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False
    )
    assigned_to_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    transaction = relationship("Transaction", lazy="selectin")
    raised_by = relationship("User", foreign_keys=[raised_by_id], lazy="selectin")
    assigned_to = relationship("User", foreign_keys=[assigned_to_id], lazy="selectin")
    evidence: Mapped[list["DisputeEvidence"]] = relationship(
        "DisputeEvidence",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="DisputeEvidence.id",
    )


class DisputeEvidence(Base):
    """Append-only. Evidence is never edited once submitted."""
    __tablename__ = "dispute_evidence"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    file_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    file_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    dispute_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("disputes.id", ondelete="CASCADE"), nullable=False
    )
    submitted_by_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )
