"""Add check constraint: a transaction's buyer and seller differ.

Revision ID: 003
"""

from alembic import op

revision = "003"
down_revision = "002"


def upgrade() -> None:
    op.create_check_constraint(
        "ck_transactions_distinct_parties",
        "transactions",
        "buyer_id <> seller_id",
    )


def downgrade() -> None:
    op.drop_constraint("ck_transactions_distinct_parties", "transactions", type_="check")
