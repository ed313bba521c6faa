from __future__ import annotations
from decimal import Decimal
from uuid import UUID
import stripe
import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession
from fitstake.config import settings
from fitstake.db import get_session
from fitstake.services.wallet import deposit

router = APIRouter(tags=["stripe"])
log = structlog.get_logger()

async def _credit(db: AsyncSession, account_id: str | None, payment_intent: str | None, amount_minor: int) -> bool:
    if not (account_id and payment_intent and amount_minor > 0):
        return False
    try:
        account_uuid = UUID(account_id)
    except ValueError:
        # acknowledge anyway, a retry would carry the same metadata
        log.warning("stripe_bad_account_id", account_id=account_id, payment_intent=payment_intent)
        return False
    tx = await deposit(
        db,
        account_uuid,
        Decimal(amount_minor) / 100,
        external_id=payment_intent,
        note="stripe_deposit",
    )
    return tx is not None

@router.post("/stripe/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: str | None = Header(None, alias="Stripe-Signature"),
    db: AsyncSession = Depends(get_session),
):
    if not settings.stripe_webhook_secret or not settings.stripe_secret_key:
        raise HTTPException(status_code=500, detail="Stripe not configured")

    payload = await request.body()
    try:
        event = stripe.Webhook.construct_event(
            payload=payload.decode("utf-8"),
            sig_header=stripe_signature or "",
            secret=settings.stripe_webhook_secret,
        )
    except (ValueError, stripe.SignatureVerificationError) as e:
        raise HTTPException(status_code=400, detail=f"Invalid webhook: {e}")

    # Both paths are keyed by the payment_intent id, so whichever lands second is a no-op.
    if event["type"] == "checkout.session.completed":
        sess = event["data"]["object"]
        if sess.get("payment_status") == "paid":
            account_id = sess.get("client_reference_id") or (sess.get("metadata") or {}).get("account_id")
            created = await _credit(db, account_id, sess.get("payment_intent"), int(sess.get("amount_total") or 0))
            log.info("stripe_checkout_completed", account_id=account_id, credited=created)
        return {"ok": True}

    if event["type"] == "payment_intent.succeeded":
        pi = event["data"]["object"]
        if pi.get("status") == "succeeded":
            account_id = (pi.get("metadata") or {}).get("account_id")
            amount_minor = int(pi.get("amount_received") or pi.get("amount") or 0)
            created = await _credit(db, account_id, pi.get("id"), amount_minor)
            log.info("stripe_payment_succeeded", account_id=account_id, credited=created)
        return {"ok": True}

    # Ignore other events
    return {"ignored": event["type"]}
