from __future__ import annotations
from pydantic import BaseModel, Field, ConfigDict, model_validator
from typing import Literal
from uuid import UUID
from datetime import datetime
from decimal import Decimal

ChallengeStatus = Literal["draft", "scheduled", "active", "completed", "cancelled"]
PrizeDistribution = Literal["winner_takes_all", "top_3_split", "top_5_split"]
PaymentStatus = Literal["completed", "refunded"]

class ChallengeCreate(BaseModel):
    title: str = Field(min_length=3, max_length=120)
    description: str | None = None
    category: str | None = Field(default=None, max_length=32)
    entry_fee: Decimal = Field(ge=0, max_digits=12, decimal_places=2, default=Decimal("0"))
    starts_at: datetime
    ends_at: datetime
    status: ChallengeStatus = "active"
    max_participants: int | None = Field(default=None, ge=1)
    prize_distribution: PrizeDistribution = "top_3_split"
    scoring_method: str = Field(default="form_and_reps", max_length=32)
    video_duration_limit: int = Field(default=60, gt=0, description="Seconds")

    @model_validator(mode="after")
    def window_is_forward(self):
        if self.ends_at <= self.starts_at:
            raise ValueError("ends_at must be after starts_at")
        if self.status in ("completed", "cancelled"):
            raise ValueError("a new challenge cannot start closed")
        return self

class ChallengePublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    description: str | None
    category: str | None
    entry_fee: Decimal
    prize_pool: Decimal
    participants_count: int
    status: ChallengeStatus
    starts_at: datetime
    ends_at: datetime
    max_participants: int | None
    prize_distribution: PrizeDistribution
    scoring_method: str
    video_duration_limit: int
    created_by: UUID | None
    created_at: datetime

class ParticipantPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    challenge_id: UUID
    user_id: UUID
    payment_status: PaymentStatus
    amount_paid: Decimal
    platform_fee: Decimal
    pool_contribution: Decimal
    joined_at: datetime
