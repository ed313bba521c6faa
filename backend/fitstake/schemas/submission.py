from __future__ import annotations
from pydantic import BaseModel, Field, ConfigDict
from typing import Literal
from uuid import UUID
from datetime import datetime
from decimal import Decimal


class SubmissionCreate(BaseModel):
    video_ref: str = Field(min_length=1, max_length=2048, description="Opaque reference from media storage")
    video_duration_seconds: int | None = Field(default=None, ge=0)
    declared_score: int | None = Field(default=None, ge=0)
    notes: str | None = Field(default=None, max_length=2000)


class ValidateRequest(BaseModel):
    decision: Literal["approve", "reject"] = "approve"
    form_score: Decimal = Field(ge=0, le=100)
    rep_count: int = Field(ge=0)
    notes: str | None = Field(default=None, max_length=2000)
    rejection_reason: str | None = Field(default=None, max_length=2000)


class SubmissionPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    challenge_id: UUID
    user_id: UUID
    video_ref: str
    video_duration_seconds: int | None = None
    declared_score: int | None = None
    notes: str | None = None
    status: str
    form_score: Decimal | None = None
    rep_count: int | None = None
    final_score: Decimal | None = None
    rejection_reason: str | None = None
    validation_notes: str | None = None
    submitted_at: datetime
    reviewed_at: datetime | None = None


class LeaderboardRow(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    rank: int
    user_id: UUID
    submission_id: UUID
    score: Decimal
    updated_at: datetime
