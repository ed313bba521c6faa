from __future__ import annotations
from pydantic import BaseModel, ConfigDict
from uuid import UUID
from datetime import datetime
from decimal import Decimal


class PayoutPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    challenge_id: UUID
    user_id: UUID
    rank: int
    amount: Decimal
    status: str
    created_at: datetime
    completed_at: datetime | None = None


class SettlementPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    challenge_id: UUID
    pool_at_settlement: Decimal
    platform_fee: Decimal
    distributed: Decimal
    forfeited: Decimal
    winners: int
    created_at: datetime


class SettleResponse(BaseModel):
    settlement: SettlementPublic
    payouts: list[PayoutPublic]
    payout_job_enqueued: bool = False
