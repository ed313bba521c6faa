from __future__ import annotations
from uuid import UUID
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from fitstake.db import get_session
from fitstake.auth_deps import get_current_account, require_admin
from fitstake.models.wallet import Account
from fitstake.schemas.challenge import ChallengeCreate, ChallengePublic, ParticipantPublic
from fitstake.schemas.submission import LeaderboardRow, SubmissionCreate, SubmissionPublic
from fitstake.schemas.wallet import TransactionPublic
from fitstake.services.entry import (
    cancel_challenge, create_challenge, join_challenge, list_challenges, list_participants, load_challenge,
)
from fitstake.services.scoring import list_submissions, submit
from fitstake.services.settlement import get_leaderboard

router = APIRouter(prefix="/challenges", tags=["challenges"])

@router.post("", response_model=ChallengePublic, status_code=201)
async def create(payload: ChallengeCreate, session: AsyncSession = Depends(get_session), admin: Account = Depends(require_admin)):
    ch = await create_challenge(session, payload, created_by=admin.id)
    return ChallengePublic.model_validate(ch)

@router.get("", response_model=list[ChallengePublic])
async def browse(status: str | None = None, limit: int = 50, session: AsyncSession = Depends(get_session), account: Account = Depends(get_current_account)):
    rows = await list_challenges(session, status=status, limit=max(1, min(limit, 200)))
    return [ChallengePublic.model_validate(ch) for ch in rows]

@router.get("/{challenge_id}", response_model=ChallengePublic)
async def get_challenge(challenge_id: UUID, session: AsyncSession = Depends(get_session), account: Account = Depends(get_current_account)):
    return ChallengePublic.model_validate(await load_challenge(session, challenge_id))

@router.post("/{challenge_id}/join", response_model=ParticipantPublic, status_code=201)
async def join(challenge_id: UUID, session: AsyncSession = Depends(get_session), account: Account = Depends(get_current_account)):
    p = await join_challenge(session, challenge_id, account.id)
    return ParticipantPublic.model_validate(p)

@router.get("/{challenge_id}/participants", response_model=list[ParticipantPublic])
async def participants(challenge_id: UUID, session: AsyncSession = Depends(get_session), account: Account = Depends(get_current_account)):
    await load_challenge(session, challenge_id)
    return [ParticipantPublic.model_validate(p) for p in await list_participants(session, challenge_id)]

@router.post("/{challenge_id}/cancel", response_model=list[TransactionPublic])
async def cancel(challenge_id: UUID, session: AsyncSession = Depends(get_session), admin: Account = Depends(require_admin)):
    refunds = await cancel_challenge(session, challenge_id)
    return [TransactionPublic.model_validate(t) for t in refunds]

@router.post("/{challenge_id}/submissions", response_model=SubmissionPublic, status_code=201)
async def create_submission(
    challenge_id: UUID,
    payload: SubmissionCreate,
    session: AsyncSession = Depends(get_session),
    account: Account = Depends(get_current_account),
):
    s = await submit(
        session, challenge_id, account.id, payload.video_ref,
        declared_score=payload.declared_score,
        notes=payload.notes,
        video_duration_seconds=payload.video_duration_seconds,
    )
    return SubmissionPublic.model_validate(s)

@router.get("/{challenge_id}/leaderboard", response_model=list[LeaderboardRow])
async def leaderboard(challenge_id: UUID, limit: int = 100, session: AsyncSession = Depends(get_session), account: Account = Depends(get_current_account)):
    rows = await get_leaderboard(session, challenge_id, limit=max(1, min(limit, 500)))
    return [LeaderboardRow.model_validate(r) for r in rows]

@router.get("/{challenge_id}/submissions", response_model=list[SubmissionPublic])
async def review_queue(
    challenge_id: UUID,
    status: str | None = "pending",
    limit: int = 100,
    session: AsyncSession = Depends(get_session),
    admin: Account = Depends(require_admin),
):
    rows = await list_submissions(session, challenge_id, status=status, limit=max(1, min(limit, 500)))
    return [SubmissionPublic.model_validate(s) for s in rows]
