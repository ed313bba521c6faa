from __future__ import annotations
import uuid
from datetime import datetime
from decimal import Decimal
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import CheckConstraint, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint, Uuid
from fitstake.db import Base, UTCDateTime, utcnow

class Challenge(Base):
    __tablename__ = "challenges"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[str | None] = mapped_column(Text())
    category: Mapped[str | None] = mapped_column(String(32))
    entry_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    prize_pool: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    participants_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="active")  # draft|scheduled|active|completed|cancelled
    starts_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    ends_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    max_participants: Mapped[int | None] = mapped_column(Integer)
    prize_distribution: Mapped[str] = mapped_column(String(24), nullable=False, default="top_3_split")
    scoring_method: Mapped[str] = mapped_column(String(32), nullable=False, default="form_and_reps")
    video_duration_limit: Mapped[int] = mapped_column(Integer, nullable=False, default=60)  # seconds
    created_by: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("entry_fee >= 0", name="ck_challenges_entry_fee_nonneg"),
        CheckConstraint("prize_pool >= 0", name="ck_challenges_prize_pool_nonneg"),
        CheckConstraint("ends_at > starts_at", name="ck_challenges_window"),
    )

class Participant(Base):
    """Paid seat in a challenge; the fee split is frozen at join time."""
    __tablename__ = "challenge_participants"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    challenge_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("challenges.id", ondelete="CASCADE"), index=True, nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("accounts.id"), index=True, nullable=False)
    payment_status: Mapped[str] = mapped_column(String(16), nullable=False, default="completed")  # completed|refunded
    amount_paid: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    platform_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    pool_contribution: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    joined_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("challenge_id", "user_id", name="uq_participant_once_per_challenge"),
    )
