"""Create payment_transactions table.

Revision ID: 001_payment_transactions
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

from alembic import op

revision: str = "001_payment_transactions"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto")
    op.create_table(
        "payment_transactions",
        sa.Column(
            "id", UUID(as_uuid=True), server_default=sa.text("gen_random_uuid()"), primary_key=True
        ),
        sa.Column("order_id", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column("user_id", sa.Text(), nullable=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("gateway_response", sa.Text(), nullable=False),
        sa.Column("client_request_id", sa.Text(), nullable=False, unique=True),
        sa.Column("ip_address", sa.Text(), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column(
            "webhook_received", sa.Boolean(), nullable=False, server_default=sa.text("FALSE")
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
    )
    op.create_index("idx_payment_transactions_order_id", "payment_transactions", ["order_id"])
    op.create_index("idx_payment_transactions_created", "payment_transactions", ["created_at"])


def downgrade() -> None:
    op.drop_index("idx_payment_transactions_created", table_name="payment_transactions")
    op.drop_index("idx_payment_transactions_order_id", table_name="payment_transactions")
    op.drop_table("payment_transactions")
