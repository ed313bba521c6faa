from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from uuid import UUID
import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from fitstake.db import atomic, utcnow
from fitstake.errors import (
    AccountNotFound, AlreadyCancelled, AlreadyJoined, AlreadySettled, ChallengeEnded, ChallengeFull,
    ChallengeNotFound, ChallengeNotOpen, ValidationFailed,
)
from fitstake.models.challenge import Challenge, Participant
from fitstake.models.settlement import Settlement
from fitstake.models.wallet import Account, Transaction
from fitstake.schemas.challenge import ChallengeCreate
from fitstake.services.policy import CHALLENGE_STATUSES, CLOSED_CHALLENGE_STATUSES, entry_platform_fee, to_money
from fitstake.services.wallet import apply_debit, record

log = structlog.get_logger()


async def load_challenge(session: AsyncSession, challenge_id: UUID, *, for_update: bool = False) -> Challenge:
    ch = await session.get(Challenge, challenge_id, with_for_update=for_update, populate_existing=for_update)
    if not ch:
        raise ChallengeNotFound(f"challenge {challenge_id} not found")
    return ch


def is_closed(ch: Challenge, now: datetime) -> bool:
    return ch.status in CLOSED_CHALLENGE_STATUSES or now >= ch.ends_at


async def create_challenge(session: AsyncSession, data: ChallengeCreate, *, created_by: UUID | None = None) -> Challenge:
    if data.ends_at <= data.starts_at:
        raise ValidationFailed("ends_at must be after starts_at")
    async with atomic(session):
        ch = Challenge(
            title=data.title,
            description=data.description,
            category=data.category,
            entry_fee=to_money(data.entry_fee),
            prize_pool=Decimal("0.00"),
            participants_count=0,
            status=data.status,
            starts_at=data.starts_at,
            ends_at=data.ends_at,
            max_participants=data.max_participants,
            prize_distribution=data.prize_distribution,
            scoring_method=data.scoring_method,
            video_duration_limit=data.video_duration_limit,
            created_by=created_by,
        )
        session.add(ch)
    log.info("challenge_created", challenge_id=str(ch.id), entry_fee=str(ch.entry_fee),
             prize_distribution=ch.prize_distribution, created_by=str(created_by) if created_by else None)
    return ch


async def list_challenges(session: AsyncSession, status: str | None = None, limit: int = 50) -> list[Challenge]:
    """Newest first; optionally only one status."""
    if status is not None and status not in CHALLENGE_STATUSES:
        raise ValidationFailed(f"status must be one of {', '.join(CHALLENGE_STATUSES)}")
    q = select(Challenge)
    if status:
        q = q.where(Challenge.status == status)
    q = q.order_by(Challenge.starts_at.desc(), Challenge.created_at.desc()).limit(limit)
    return (await session.execute(q)).scalars().all()


async def join_challenge(
    session: AsyncSession,
    challenge_id: UUID,
    user_id: UUID,
    *,
    now: datetime | None = None,
) -> Participant:
    """
    Pay the entry fee and take a seat, as one unit:
      debit (gross fee) -> pool += fee - 10% platform fee -> count += 1 -> participant row.
    Any failure rolls back all of it, including the debit.
    """
    now = now or utcnow()
    try:
        async with atomic(session):
            ch = await load_challenge(session, challenge_id, for_update=True)
            if is_closed(ch, now):
                raise ChallengeEnded("challenge has ended")
            if ch.status == "draft":
                raise ChallengeNotOpen("challenge is not open for entries yet")
            if ch.max_participants is not None and ch.participants_count >= ch.max_participants:
                raise ChallengeFull("challenge is full")

            if await get_participant(session, ch.id, user_id):
                raise AlreadyJoined("already joined this challenge")

            fee = to_money(ch.entry_fee)
            platform_fee = Decimal("0.00")
            if fee > 0:
                await apply_debit(session, user_id, fee, kind="entry_fee", challenge_id=ch.id,
                                  note=f"entry:{ch.id}")
                platform_fee = to_money(entry_platform_fee(fee))
            elif not await session.get(Account, user_id):
                raise AccountNotFound(f"account {user_id} not found")
            net = fee - platform_fee

            ch.prize_pool = to_money(ch.prize_pool) + net
            ch.participants_count = ch.participants_count + 1

            p = Participant(
                challenge_id=ch.id,
                user_id=user_id,
                payment_status="completed",
                amount_paid=fee,
                platform_fee=platform_fee,
                pool_contribution=net,
                joined_at=now,
            )
            session.add(p)
            await session.flush()
    except IntegrityError:
        # lost the race against a concurrent join of the same user
        log.info("challenge_join_conflict", challenge_id=str(challenge_id), user_id=str(user_id))
        raise AlreadyJoined("already joined this challenge")

    log.info("challenge_joined", challenge_id=str(challenge_id), user_id=str(user_id),
             amount_paid=str(p.amount_paid), platform_fee=str(p.platform_fee), pool=str(ch.prize_pool))
    return p


async def list_participants(session: AsyncSession, challenge_id: UUID) -> list[Participant]:
    return (await session.execute(
        select(Participant).where(Participant.challenge_id == challenge_id).order_by(Participant.joined_at.asc())
    )).scalars().all()


async def get_participant(session: AsyncSession, challenge_id: UUID, user_id: UUID) -> Participant | None:
    return await session.scalar(
        select(Participant).where(Participant.challenge_id == challenge_id, Participant.user_id == user_id)
    )


async def cancel_challenge(session: AsyncSession, challenge_id: UUID) -> list[Transaction]:
    """Call off an unsettled challenge and refund every paid entry in full."""
    async with atomic(session):
        ch = await load_challenge(session, challenge_id, for_update=True)
        if ch.status == "cancelled":
            raise AlreadyCancelled("challenge already cancelled")
        settled = await session.scalar(select(Settlement.id).where(Settlement.challenge_id == ch.id))
        if ch.status == "completed" or settled:
            raise AlreadySettled("challenge already settled")

        refunds: list[Transaction] = []
        for p in await list_participants(session, ch.id):
            if p.payment_status != "completed":
                continue
            if to_money(p.amount_paid) > 0:
                refunds.append(await record(session, p.user_id, "refund", p.amount_paid,
                                            challenge_id=ch.id, note=f"cancelled:{ch.id}"))
            p.payment_status = "refunded"

        ch.prize_pool = Decimal("0.00")
        ch.status = "cancelled"
        await session.flush()

    log.info("challenge_cancelled", challenge_id=str(challenge_id), refunds=len(refunds))
    return refunds
