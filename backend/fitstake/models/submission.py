from __future__ import annotations
import uuid
from datetime import datetime
from decimal import Decimal
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import ForeignKey, Index, Integer, Numeric, String, Text, Uuid, text
from fitstake.db import Base, UTCDateTime, utcnow


class Submission(Base):
    __tablename__ = "submissions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    challenge_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("challenges.id", ondelete="CASCADE"), index=True, nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("accounts.id"), index=True, nullable=False)

    video_ref: Mapped[str] = mapped_column(Text(), nullable=False)  # opaque reference from media storage
    video_duration_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    declared_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text(), nullable=True)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")  # pending|approved|rejected
    form_score: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)
    rep_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    final_score: Mapped[Decimal | None] = mapped_column(Numeric(8, 2), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text(), nullable=True)
    validation_notes: Mapped[str | None] = mapped_column(Text(), nullable=True)

    submitted_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    reviewed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    __table_args__ = (
        # A rejected attempt frees the slot for a new one
        Index(
            "uq_submission_active_per_user",
            "challenge_id", "user_id",
            unique=True,
            postgresql_where=text("status <> 'rejected'"),
            sqlite_where=text("status <> 'rejected'"),
        ),
    )


class LeaderboardEntry(Base):
    """Read projection of approved submissions, rebuilt on every approval and at settlement."""
    __tablename__ = "challenge_leaderboards"

    challenge_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("challenges.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    submission_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("submissions.id", ondelete="CASCADE"), nullable=False)
    score: Mapped[Decimal] = mapped_column(Numeric(8, 2), nullable=False)
    rank: Mapped[int] = mapped_column(Integer, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
