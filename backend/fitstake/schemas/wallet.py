from __future__ import annotations
from pydantic import BaseModel, Field, AnyHttpUrl, ConfigDict
from uuid import UUID
from datetime import datetime
from decimal import Decimal

class TransactionPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    kind: str
    amount: Decimal
    status: str
    challenge_id: UUID | None = None
    external_id: str | None = None
    note: str | None = None
    created_at: datetime

class WalletSnapshot(BaseModel):
    account_id: UUID
    balance: Decimal
    currency: str
    transactions: list[TransactionPublic]

class CreateDepositRequest(BaseModel):
    amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2, description="Amount to add, in major units")
    success_url: AnyHttpUrl
    cancel_url: AnyHttpUrl

class CreateDepositResponse(BaseModel):
    checkout_url: str
    session_id: str

class WithdrawRequest(BaseModel):
    amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    note: str | None = Field(default=None, max_length=255)

class WithdrawResponse(BaseModel):
    transaction: TransactionPublic
    balance: Decimal
