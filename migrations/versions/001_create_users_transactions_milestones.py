"""Create users, transactions and milestones tables.

Revision ID: 001
Revises:
Create Date: 2026-10-18
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

TRANSACTION_STATUSES = (
    "pending", "active", "in_progress", "completed", "cancelled",
    "disputed", "refunded", "partially_completed",
)
ESCROW_STATUSES = (
    "awaiting_payment", "funded", "released", "refunded",
    "partially_released", "dispute_resolution", "cancelled",
)
MILESTONE_STATUSES = (
    "pending", "submitted", "completed", "rejected", "disputed",
    "refunded", "partially_completed", "cancelled",
)
MILESTONE_ESCROW_STATUSES = (
    "awaiting_funding", "funded", "released", "refunded",
    "partially_released", "dispute_resolution", "cancelled",
)


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("username", sa.String(128), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(256), nullable=False),
        sa.Column("role", sa.Enum("user", "admin", name="userrole"), nullable=False, server_default="user"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("type", sa.String(50), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="USD"),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "status",
            sa.Enum(*TRANSACTION_STATUSES, name="transactionstatus"),
            nullable=False,
            server_default="pending",
        ),
        sa.Column(
            "escrow_status",
            sa.Enum(*ESCROW_STATUSES, name="escrowstatus"),
            nullable=False,
            server_default="awaiting_payment",
        ),
        sa.Column("payment_method", sa.String(50), nullable=True),
        sa.Column(
            "payment_status",
            sa.Enum("unpaid", "processing", "paid", "failed", name="paymentstatus"),
            nullable=False,
            server_default="unpaid",
        ),
        sa.Column("payment_id", sa.String(128), nullable=True),
        sa.Column("payment_details", JSONB, nullable=True),
        sa.Column("buyer_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("seller_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("admin_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("buyer_id <> seller_id", name="ck_transactions_distinct_parties"),
    )
    op.create_index("ix_transactions_buyer_id", "transactions", ["buyer_id"])
    op.create_index("ix_transactions_seller_id", "transactions", ["seller_id"])
    op.create_index("ix_transactions_status", "transactions", ["status"])

    op.create_table(
        "milestones",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "status",
            sa.Enum(*MILESTONE_STATUSES, name="milestonestatus"),
            nullable=False,
            server_default="pending",
        ),
        sa.Column(
            "escrow_status",
            sa.Enum(*MILESTONE_ESCROW_STATUSES, name="milestoneescrowstatus"),
            nullable=False,
            server_default="awaiting_funding",
        ),
        sa.Column("completion_proof", sa.Text(), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column(
            "transaction_id",
            sa.Integer(),
            sa.ForeignKey("transactions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_milestones_transaction_id", "milestones", ["transaction_id"])


def downgrade() -> None:
    op.drop_table("milestones")
    op.drop_table("transactions")
    op.drop_table("users")
    for enum_name in (
        "milestoneescrowstatus", "milestonestatus", "paymentstatus",
        "escrowstatus", "transactionstatus", "userrole",
    ):
        op.execute(f"DROP TYPE IF EXISTS {enum_name}")
