from __future__ import annotations
from datetime import timedelta
from decimal import Decimal
import stripe
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fitstake.config import settings
from fitstake.db import get_session, utcnow
from fitstake.auth_deps import get_current_account
from fitstake.models.wallet import Account, Transaction
from fitstake.schemas.wallet import (
    CreateDepositRequest, CreateDepositResponse, TransactionPublic, WalletSnapshot, WithdrawRequest, WithdrawResponse,
)
from fitstake.services.wallet import get_balance, list_transactions, withdraw

router = APIRouter(prefix="/wallet", tags=["wallet"])

@router.get("", response_model=WalletSnapshot)
async def get_wallet(limit: int = 50, session: AsyncSession = Depends(get_session), account: Account = Depends(get_current_account)):
    balance = await get_balance(session, account.id)
    rows = await list_transactions(session, account.id, limit=max(1, min(limit, 200)))
    return WalletSnapshot(
        account_id=account.id,
        balance=balance,
        currency=account.currency,
        transactions=[TransactionPublic.model_validate(r) for r in rows],
    )

@router.post("/withdraw", response_model=WithdrawResponse)
async def withdraw_funds(payload: WithdrawRequest, session: AsyncSession = Depends(get_session), account: Account = Depends(get_current_account)):
    """Move money out of the wallet; the payout rail picks up completed withdrawals."""
    tx = await withdraw(session, account.id, payload.amount, note=payload.note or "withdrawal")
    return WithdrawResponse(transaction=TransactionPublic.model_validate(tx), balance=await get_balance(session, account.id))

@router.post("/deposit/checkout", response_model=CreateDepositResponse)
async def create_deposit_checkout(payload: CreateDepositRequest, session: AsyncSession = Depends(get_session), account: Account = Depends(get_current_account)):
    if not settings.stripe_secret_key:
        raise HTTPException(status_code=500, detail="Stripe not configured")

    # Daily deposit limit check
    day_ago = utcnow() - timedelta(days=1)
    deposited_today = await session.scalar(
        select(func.coalesce(func.sum(Transaction.amount), 0))
        .where(Transaction.account_id == account.id, Transaction.kind == "deposit",
               Transaction.status == "completed", Transaction.created_at >= day_ago)
    ) or 0
    if Decimal(deposited_today) + payload.amount > settings.max_deposit_per_day:
        raise HTTPException(status_code=400, detail="Daily deposit limit exceeded")

    amount_minor = int((payload.amount * 100).to_integral_value())
    stripe.api_key = settings.stripe_secret_key

    checkout = stripe.checkout.Session.create(
        mode="payment",
        client_reference_id=str(account.id),  # read back in the webhook
        line_items=[{
            "price_data": {
                "currency": settings.currency,
                "product_data": {"name": f"{settings.app_display_name} wallet top-up"},
                "unit_amount": amount_minor,
            },
            "quantity": 1,
        }],
        payment_intent_data={"metadata": {"account_id": str(account.id)}},
        success_url=str(payload.success_url) + "?session_id={CHECKOUT_SESSION_ID}",
        cancel_url=str(payload.cancel_url),
    )

    return CreateDepositResponse(checkout_url=checkout["url"], session_id=checkout["id"])
