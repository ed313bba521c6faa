from __future__ import annotations
from uuid import UUID
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from fitstake.db import get_session
from fitstake.auth_deps import get_current_account, require_admin
from fitstake.jobs.process_payouts import enqueue_payouts
from fitstake.models.wallet import Account
from fitstake.schemas.settlement import PayoutPublic, SettlementPublic, SettleResponse
from fitstake.schemas.wallet import TransactionPublic
from fitstake.services.entry import load_challenge
from fitstake.services.settlement import list_payouts, process_payout, settle

router = APIRouter(tags=["settlement"])

@router.post("/challenges/{challenge_id}/settle", response_model=SettleResponse)
async def settle_challenge(challenge_id: UUID, session: AsyncSession = Depends(get_session), admin: Account = Depends(require_admin)):
    st = await settle(session, challenge_id)
    payouts = await list_payouts(session, challenge_id)
    enqueued = enqueue_payouts(challenge_id) if payouts else False
    return SettleResponse(
        settlement=SettlementPublic.model_validate(st),
        payouts=[PayoutPublic.model_validate(p) for p in payouts],
        payout_job_enqueued=enqueued,
    )

@router.get("/challenges/{challenge_id}/payouts", response_model=list[PayoutPublic])
async def payouts(challenge_id: UUID, session: AsyncSession = Depends(get_session), account: Account = Depends(get_current_account)):
    await load_challenge(session, challenge_id)
    return [PayoutPublic.model_validate(p) for p in await list_payouts(session, challenge_id)]

@router.post("/payouts/{payout_id}/process", response_model=TransactionPublic)
async def process(payout_id: UUID, session: AsyncSession = Depends(get_session), admin: Account = Depends(require_admin)):
    tx = await process_payout(session, payout_id)
    return TransactionPublic.model_validate(tx)
