from __future__ import annotations
from datetime import datetime
from decimal import Decimal, InvalidOperation
from uuid import UUID
import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from fitstake.db import atomic, utcnow
from fitstake.errors import (
    AlreadyReviewed, AlreadySettled, ChallengeEnded, DuplicateSubmission, InvalidScore, NotAParticipant,
    SubmissionNotFound, ValidationFailed, VideoTooLong,
)
from fitstake.models.challenge import Participant
from fitstake.models.submission import Submission
from fitstake.services.entry import is_closed, load_challenge
from fitstake.services.policy import (
    CENT, FORM_SCORE_MAX, FORM_SCORE_WEIGHT, REP_COUNT_WEIGHT, SUBMISSION_DECISIONS, SUBMISSION_STATUSES,
)
from fitstake.services.settlement import get_settlement, recompute_leaderboard

log = structlog.get_logger()


def final_score(form_score, rep_count) -> Decimal:
    """form * 0.6 + reps * 0.4, e.g. (80, 20) -> 56.00."""
    form, reps = _checked_scores(form_score, rep_count)
    return (form * FORM_SCORE_WEIGHT + Decimal(reps) * REP_COUNT_WEIGHT).quantize(CENT)


def _checked_scores(form_score, rep_count) -> tuple[Decimal, int]:
    try:
        form = Decimal(str(form_score))
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidScore(f"form score is not a number: {form_score!r}")
    if not form.is_finite() or form < 0 or form > FORM_SCORE_MAX:
        raise InvalidScore("form score must be between 0 and 100")
    if isinstance(rep_count, bool) or not isinstance(rep_count, int) or rep_count < 0:
        raise InvalidScore("rep count must be a non-negative integer")
    return form, rep_count


async def user_has_active_submission(session: AsyncSession, challenge_id: UUID, user_id: UUID) -> bool:
    """True while the user holds a pending or approved submission for the challenge."""
    found = await session.scalar(
        select(Submission.id).where(
            Submission.challenge_id == challenge_id,
            Submission.user_id == user_id,
            Submission.status != "rejected",
        ).limit(1)
    )
    return found is not None


async def submit(
    session: AsyncSession,
    challenge_id: UUID,
    user_id: UUID,
    video_ref: str,
    declared_score: int | None = None,
    notes: str | None = None,
    *,
    video_duration_seconds: int | None = None,
    now: datetime | None = None,
) -> Submission:
    if not video_ref or not video_ref.strip():
        raise ValidationFailed("video_ref is required")
    now = now or utcnow()
    try:
        async with atomic(session):
            ch = await load_challenge(session, challenge_id)
            if is_closed(ch, now):
                raise ChallengeEnded("challenge has ended")
            paid = await session.scalar(
                select(Participant.id).where(
                    Participant.challenge_id == ch.id,
                    Participant.user_id == user_id,
                    Participant.payment_status == "completed",
                )
            )
            if not paid:
                raise NotAParticipant("join the challenge before submitting")
            if video_duration_seconds is not None and video_duration_seconds > ch.video_duration_limit:
                raise VideoTooLong(f"video is {video_duration_seconds}s, limit is {ch.video_duration_limit}s")
            if await user_has_active_submission(session, ch.id, user_id):
                raise DuplicateSubmission("a submission is already pending or approved")

            s = Submission(
                challenge_id=ch.id,
                user_id=user_id,
                video_ref=video_ref.strip(),
                video_duration_seconds=video_duration_seconds,
                declared_score=declared_score,
                notes=notes,
                status="pending",
                submitted_at=now,
            )
            session.add(s)
            await session.flush()
    except IntegrityError:
        raise DuplicateSubmission("a submission is already pending or approved")

    log.info("submission_received", submission_id=str(s.id), challenge_id=str(challenge_id), user_id=str(user_id))
    return s


async def get_submission(session: AsyncSession, submission_id: UUID) -> Submission:
    s = await session.get(Submission, submission_id)
    if not s:
        raise SubmissionNotFound(f"submission {submission_id} not found")
    return s


def _checked_status(status: str | None) -> str | None:
    status = status or None
    if status is not None and status not in SUBMISSION_STATUSES:
        raise ValidationFailed(f"status must be one of {', '.join(SUBMISSION_STATUSES)}")
    return status


async def list_submissions(
    session: AsyncSession, challenge_id: UUID, status: str | None = None, limit: int = 100,
) -> list[Submission]:
    """Review queue for one challenge, oldest first."""
    status = _checked_status(status)
    await load_challenge(session, challenge_id)
    q = select(Submission).where(Submission.challenge_id == challenge_id)
    if status:
        q = q.where(Submission.status == status)
    q = q.order_by(Submission.submitted_at.asc(), Submission.id.asc()).limit(limit)
    return (await session.execute(q)).scalars().all()


async def list_user_submissions(
    session: AsyncSession, user_id: UUID, status: str | None = None, limit: int = 50,
) -> list[Submission]:
    status = _checked_status(status)
    q = select(Submission).where(Submission.user_id == user_id)
    if status:
        q = q.where(Submission.status == status)
    q = q.order_by(Submission.submitted_at.desc()).limit(limit)
    return (await session.execute(q)).scalars().all()


async def validate(
    session: AsyncSession,
    submission_id: UUID,
    form_score,
    rep_count: int,
    notes: str | None = None,
    decision: str = "approve",
    *,
    rejection_reason: str | None = None,
    now: datetime | None = None,
) -> Submission:
    """
    Review a pending submission. The status flip is a conditional UPDATE on
    status = 'pending', so of two racing reviewers exactly one wins.
    Approval rebuilds the challenge leaderboard in the same unit and is
    refused once the challenge has settled, so the standings keep matching
    the payouts. Rejections are still accepted to clear the queue.
    """
    if decision not in SUBMISSION_DECISIONS:
        raise ValidationFailed(f"decision must be one of {', '.join(SUBMISSION_DECISIONS)}")
    form, reps = _checked_scores(form_score, rep_count)
    score = final_score(form, reps)
    now = now or utcnow()
    status = "approved" if decision == "approve" else "rejected"

    async with atomic(session):
        s = await get_submission(session, submission_id)
        if status == "approved":
            ch = await load_challenge(session, s.challenge_id, for_update=True)
            if ch.status == "completed" or await get_settlement(session, ch.id):
                raise AlreadySettled("challenge already settled")
        res = await session.execute(
            update(Submission)
            .where(Submission.id == submission_id, Submission.status == "pending")
            .values(
                status=status,
                form_score=form,
                rep_count=reps,
                final_score=score,
                validation_notes=notes,
                rejection_reason=rejection_reason if status == "rejected" else None,
                reviewed_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        s = await session.get(Submission, submission_id, populate_existing=True)
        if res.rowcount != 1:
            raise AlreadyReviewed(f"submission already {s.status}")
        if status == "approved":
            await recompute_leaderboard(session, s.challenge_id)

    log.info("submission_validated", submission_id=str(submission_id), challenge_id=str(s.challenge_id),
             decision=decision, final_score=str(score))
    return s
