"""Create webhook_events table.

Revision ID: 002_webhook_events
Revises: 001_payment_transactions
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

from alembic import op

revision: str = "002_webhook_events"
down_revision: str | None = "001_payment_transactions"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "webhook_events",
        sa.Column(
            "id", UUID(as_uuid=True), server_default=sa.text("gen_random_uuid()"), primary_key=True
        ),
        sa.Column("event_type", sa.Text(), nullable=False),
        sa.Column("payload", sa.Text(), nullable=False),
        sa.Column("related_transaction_id", UUID(as_uuid=True), nullable=True),
        sa.Column("processed", sa.Boolean(), nullable=False, server_default=sa.text("FALSE")),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
    )
    op.create_index("idx_webhook_events_related", "webhook_events", ["related_transaction_id"])
    op.create_index("idx_webhook_events_time", "webhook_events", ["created_at"])


def downgrade() -> None:
    op.drop_index("idx_webhook_events_time", table_name="webhook_events")
    op.drop_index("idx_webhook_events_related", table_name="webhook_events")
    op.drop_table("webhook_events")
