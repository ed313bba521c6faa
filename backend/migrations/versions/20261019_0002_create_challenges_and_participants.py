"""Create challenges and challenge_participants

Revision ID: 20261019_0002
Revises: 20261019_0001
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "20261019_0002"
down_revision = "20261019_0001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "challenges",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("title", sa.String(length=120), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", sa.String(length=32), nullable=True),
        sa.Column("entry_fee", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("prize_pool", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("participants_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="active"),
        sa.Column("starts_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("ends_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("max_participants", sa.Integer(), nullable=True),
        sa.Column("prize_distribution", sa.String(length=24), nullable=False, server_default="top_3_split"),
        sa.Column("scoring_method", sa.String(length=32), nullable=False, server_default="form_and_reps"),
        sa.Column("video_duration_limit", sa.Integer(), nullable=False, server_default="60"),
        sa.Column("created_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint("entry_fee >= 0", name="ck_challenges_entry_fee_nonneg"),
        sa.CheckConstraint("prize_pool >= 0", name="ck_challenges_prize_pool_nonneg"),
        sa.CheckConstraint("ends_at > starts_at", name="ck_challenges_window"),
        sa.CheckConstraint(
            "status IN ('draft','scheduled','active','completed','cancelled')", name="ck_challenges_status"
        ),
        sa.CheckConstraint(
            "prize_distribution IN ('winner_takes_all','top_3_split','top_5_split')",
            name="ck_challenges_prize_distribution",
        ),
    )

    op.create_table(
        "challenge_participants",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("challenge_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("accounts.id"), nullable=False),
        sa.Column("payment_status", sa.String(length=16), nullable=False, server_default="completed"),
        sa.Column("amount_paid", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("platform_fee", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("pool_contribution", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("joined_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("challenge_id", "user_id", name="uq_participant_once_per_challenge"),
        sa.CheckConstraint("amount_paid = platform_fee + pool_contribution", name="ck_participant_fee_split"),
    )
    op.create_index("ix_challenge_participants_challenge_id", "challenge_participants", ["challenge_id"])
    op.create_index("ix_challenge_participants_user_id", "challenge_participants", ["user_id"])

    op.create_foreign_key(
        "fk_transactions_challenge_id", "transactions", "challenges",
        ["challenge_id"], ["id"], ondelete="SET NULL",
    )


def downgrade() -> None:
    op.drop_constraint("fk_transactions_challenge_id", "transactions", type_="foreignkey")
    op.drop_index("ix_challenge_participants_user_id", table_name="challenge_participants")
    op.drop_index("ix_challenge_participants_challenge_id", table_name="challenge_participants")
    op.drop_table("challenge_participants")
    op.drop_table("challenges")
