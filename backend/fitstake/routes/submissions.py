from __future__ import annotations
from uuid import UUID
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from fitstake.db import get_session
from fitstake.auth_deps import get_current_account, require_admin
from fitstake.models.wallet import Account
from fitstake.schemas.submission import SubmissionPublic, ValidateRequest
from fitstake.services.scoring import get_submission, list_user_submissions, validate

router = APIRouter(prefix="/submissions", tags=["submissions"])

@router.get("/mine", response_model=list[SubmissionPublic])
async def my_submissions(status: str | None = None, session: AsyncSession = Depends(get_session), account: Account = Depends(get_current_account)):
    rows = await list_user_submissions(session, account.id, status=status)
    return [SubmissionPublic.model_validate(s) for s in rows]

@router.get("/{submission_id}", response_model=SubmissionPublic)
async def read_submission(submission_id: UUID, session: AsyncSession = Depends(get_session), account: Account = Depends(get_current_account)):
    s = await get_submission(session, submission_id)
    # 🔒 only the owner sees their own submission here; reviewers use the admin tooling
    if s.user_id != account.id:
        raise HTTPException(status_code=404, detail="Submission not found")
    return SubmissionPublic.model_validate(s)

@router.post("/{submission_id}/validate", response_model=SubmissionPublic)
async def validate_submission(
    submission_id: UUID,
    payload: ValidateRequest,
    session: AsyncSession = Depends(get_session),
    admin: Account = Depends(require_admin),
):
    s = await validate(
        session, submission_id, payload.form_score, payload.rep_count,
        notes=payload.notes,
        decision=payload.decision,
        rejection_reason=payload.rejection_reason,
    )
    return SubmissionPublic.model_validate(s)
