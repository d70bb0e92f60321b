"""Add merchant subscription columns and subscription history

Revision ID: 3f9c2a7d1b84
Revises:
Create Date: 2026-10-18 09:00:00.000000+00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "3f9c2a7d1b84"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


# (column, type) pairs added to the storefront-owned merchants table
SUBSCRIPTION_COLUMNS = (
    ("polar_customer_id", "TEXT"),
    ("polar_subscription_id", "TEXT"),
    ("subscription_plan", "TEXT"),
    ("subscription_status", "TEXT"),
    ("subscription_started_at", "TIMESTAMPTZ"),
    ("subscription_expires_at", "TIMESTAMPTZ"),
    ("updated_at", "TIMESTAMPTZ NOT NULL DEFAULT now()"),
)


def upgrade() -> None:
    """Upgrade database schema."""

    # ------------------------------------------------------------------
    # 1. Subscription columns on merchants
    #    The table is created by the storefront app, so columns may
    #    already exist there.
    # ------------------------------------------------------------------
    for column, column_type in SUBSCRIPTION_COLUMNS:
        op.execute(
            f"ALTER TABLE merchants ADD COLUMN IF NOT EXISTS {column} {column_type}"
        )
    op.execute(
        "CREATE INDEX IF NOT EXISTS ix_merchants_polar_customer_id "
        "ON merchants (polar_customer_id)"
    )

    # ------------------------------------------------------------------
    # 2. Subscription history
    # ------------------------------------------------------------------
    op.create_table(
        "merchant_subscription_history",
        sa.Column("history_id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "merchant_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("merchants.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("event_type", sa.String(length=64), nullable=False),
        sa.Column("polar_subscription_id", sa.Text(), nullable=True),
        sa.Column("previous_status", sa.Text(), nullable=True),
        sa.Column("new_status", sa.Text(), nullable=True),
        sa.Column("previous_plan", sa.Text(), nullable=True),
        sa.Column("new_plan", sa.Text(), nullable=True),
        sa.Column("event_data", postgresql.JSONB(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index(
        "idx_merchant_sub_history_merchant",
        "merchant_subscription_history",
        ["merchant_id", "created_at"],
    )
    op.create_index(
        "idx_merchant_sub_history_event",
        "merchant_subscription_history",
        ["event_type", "created_at"],
    )


def downgrade() -> None:
    """Downgrade database schema.

    Only the history table is dropped; the merchant columns hold data the
    storefront admin displays and are left in place.
    """
    op.drop_index("idx_merchant_sub_history_event", table_name="merchant_subscription_history")
    op.drop_index("idx_merchant_sub_history_merchant", table_name="merchant_subscription_history")
    op.drop_table("merchant_subscription_history")
