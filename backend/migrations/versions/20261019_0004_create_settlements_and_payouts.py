"""Create settlements and payouts

Revision ID: 20261019_0004
Revises: 20261019_0003
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "20261019_0004"
down_revision = "20261019_0003"
branch_labels = None
depends_on = None


def upgrade() -> None:
    # One row per challenge; the unique constraint is what makes settle run once
    op.create_table(
        "settlements",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("challenge_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False),
        sa.Column("pool_at_settlement", sa.Numeric(12, 2), nullable=False),
        sa.Column("platform_fee", sa.Numeric(12, 2), nullable=False),
        sa.Column("distributed", sa.Numeric(12, 2), nullable=False),
        sa.Column("forfeited", sa.Numeric(12, 2), nullable=False),
        sa.Column("winners", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("challenge_id", name="uq_settlement_once_per_challenge"),
        sa.CheckConstraint(
            "pool_at_settlement = platform_fee + distributed + forfeited", name="ck_settlements_conservation"
        ),
    )

    op.create_table(
        "payouts",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("challenge_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("accounts.id"), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("rank", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("completed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.UniqueConstraint("challenge_id", "rank", name="uq_payout_rank_per_challenge"),
        sa.CheckConstraint("amount > 0", name="ck_payouts_amount_positive"),
        sa.CheckConstraint("status IN ('pending','completed')", name="ck_payouts_status"),
    )
    op.create_index("ix_payouts_challenge_id", "payouts", ["challenge_id"])
    op.create_index("ix_payouts_user_id", "payouts", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_payouts_user_id", table_name="payouts")
    op.drop_index("ix_payouts_challenge_id", table_name="payouts")
    op.drop_table("payouts")
    op.drop_table("settlements")
