"""Create submissions and the leaderboard projection

Revision ID: 20261019_0003
Revises: 20261019_0002
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "20261019_0003"
down_revision = "20261019_0002"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "submissions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("challenge_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("accounts.id"), nullable=False),
        sa.Column("video_ref", sa.Text(), nullable=False),
        sa.Column("video_duration_seconds", sa.Integer(), nullable=True),
        sa.Column("declared_score", sa.Integer(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("form_score", sa.Numeric(5, 2), nullable=True),
        sa.Column("rep_count", sa.Integer(), nullable=True),
        sa.Column("final_score", sa.Numeric(8, 2), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("validation_notes", sa.Text(), nullable=True),
        sa.Column("submitted_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("reviewed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.CheckConstraint("status IN ('pending','approved','rejected')", name="ck_submissions_status"),
        sa.CheckConstraint("form_score IS NULL OR (form_score >= 0 AND form_score <= 100)", name="ck_submissions_form_score"),
        sa.CheckConstraint("rep_count IS NULL OR rep_count >= 0", name="ck_submissions_rep_count"),
    )
    op.create_index("ix_submissions_challenge_id", "submissions", ["challenge_id"])
    op.create_index("ix_submissions_user_id", "submissions", ["user_id"])
    # One live (pending/approved) submission per user per challenge; rejected ones free the slot
    op.create_index(
        "uq_submission_active_per_user", "submissions", ["challenge_id", "user_id"],
        unique=True, postgresql_where=sa.text("status <> 'rejected'"),
    )

    op.create_table(
        "challenge_leaderboards",
        sa.Column("challenge_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("challenges.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("submission_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("submissions.id", ondelete="CASCADE"), nullable=False),
        sa.Column("score", sa.Numeric(8, 2), nullable=False),
        sa.Column("rank", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("challenge_leaderboards")
    op.drop_index("uq_submission_active_per_user", table_name="submissions")
    op.drop_index("ix_submissions_user_id", table_name="submissions")
    op.drop_index("ix_submissions_challenge_id", table_name="submissions")
    op.drop_table("submissions")
