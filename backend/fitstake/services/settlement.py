from __future__ import annotations
from datetime import datetime
from decimal import Decimal, ROUND_DOWN
from typing import Sequence
from uuid import UUID
import structlog
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from fitstake.db import atomic, utcnow
from fitstake.errors import (
    AlreadyProcessed, AlreadySettled, LedgerIntegrityError, NotEnded, PayoutNotFound, ValidationFailed,
)
from fitstake.models.settlement import Payout, Settlement
from fitstake.models.submission import LeaderboardEntry, Submission
from fitstake.models.wallet import Transaction
from fitstake.services.entry import load_challenge
from fitstake.services.policy import CENT, PRIZE_DISTRIBUTIONS, SETTLEMENT_PLATFORM_FEE_RATE, to_money
from fitstake.services.wallet import record

log = structlog.get_logger()

# ---------- leaderboard ----------

def rank_submissions(submissions: Sequence[Submission]) -> list[Submission]:
    """Highest final score first; ties go to the earliest submission, then to the lower id."""
    return sorted(submissions, key=lambda s: (-Decimal(s.final_score or 0), s.submitted_at, str(s.id)))


async def recompute_leaderboard(session: AsyncSession, challenge_id: UUID) -> list[LeaderboardEntry]:
    """Replace the challenge's leaderboard projection. Runs inside the caller's unit."""
    approved = (await session.execute(
        select(Submission).where(Submission.challenge_id == challenge_id, Submission.status == "approved")
    )).scalars().all()

    await session.execute(delete(LeaderboardEntry).where(LeaderboardEntry.challenge_id == challenge_id))
    now = utcnow()
    rows = [
        LeaderboardEntry(
            challenge_id=challenge_id,
            user_id=s.user_id,
            submission_id=s.id,
            score=s.final_score,
            rank=rank,
            updated_at=now,
        )
        for rank, s in enumerate(rank_submissions(approved), start=1)
    ]
    session.add_all(rows)
    await session.flush()
    return rows


async def get_leaderboard(session: AsyncSession, challenge_id: UUID, limit: int | None = None) -> list[LeaderboardEntry]:
    await load_challenge(session, challenge_id)
    q = (select(LeaderboardEntry)
         .where(LeaderboardEntry.challenge_id == challenge_id)
         .order_by(LeaderboardEntry.rank.asc()))
    if limit:
        q = q.limit(limit)
    return (await session.execute(q)).scalars().all()

# ---------- payout math ----------

def compute_payout_amounts(pool, policy: str, winners: int) -> tuple[Decimal, list[Decimal]]:
    """
    Split a settled pool:
      platform_fee = pool * 20%
      share_i      = (pool - platform_fee) * table[i]   for the first min(K, winners) ranks
    Shares are cut down to whole cents; when every rank is filled the leftover
    cents go to rank 1 so the table pays out exactly. Unfilled ranks are not paid.
    """
    table = PRIZE_DISTRIBUTIONS.get(policy)
    if table is None:
        raise ValidationFailed(f"unknown prize distribution: {policy}")
    if winners < 0:
        raise ValidationFailed("winners must be >= 0")
    pool = to_money(pool)
    platform_fee = (pool * SETTLEMENT_PLATFORM_FEE_RATE).quantize(CENT)
    remaining = pool - platform_fee

    paid_ranks = min(len(table), winners)
    shares = [(remaining * pct).quantize(CENT, rounding=ROUND_DOWN) for pct in table[:paid_ranks]]
    if shares and paid_ranks == len(table):
        shares[0] += remaining - sum(shares, Decimal("0.00"))
    return platform_fee, shares

# ---------- settle ----------

async def get_settlement(session: AsyncSession, challenge_id: UUID) -> Settlement | None:
    return await session.scalar(select(Settlement).where(Settlement.challenge_id == challenge_id))


async def list_payouts(session: AsyncSession, challenge_id: UUID) -> list[Payout]:
    return (await session.execute(
        select(Payout).where(Payout.challenge_id == challenge_id).order_by(Payout.rank.asc())
    )).scalars().all()


async def settle(session: AsyncSession, challenge_id: UUID, *, now: datetime | None = None) -> Settlement:
    """
    Close out an ended challenge exactly once:
      - rank approved submissions, create one pending payout per paid rank
      - nobody approved => the whole pool is forfeited to the platform, no payouts
      - prize_pool drops by the payout total; status -> completed
    The settlements row (unique per challenge) is the guard against a second run.
    """
    now = now or utcnow()
    try:
        async with atomic(session):
            ch = await load_challenge(session, challenge_id, for_update=True)
            if ch.status == "cancelled":
                raise NotEnded("challenge was cancelled")
            if await get_settlement(session, ch.id):
                raise AlreadySettled("challenge already settled")
            if ch.status != "completed" and now < ch.ends_at:
                raise NotEnded("challenge is still running")

            board = await recompute_leaderboard(session, ch.id)
            pool = to_money(ch.prize_pool)

            if board:
                platform_fee, shares = compute_payout_amounts(pool, ch.prize_distribution, len(board))
            else:
                platform_fee, shares = Decimal("0.00"), []
            distributed = sum(shares, Decimal("0.00"))
            if distributed + platform_fee > pool:
                log.critical("payout_exceeds_pool", challenge_id=str(ch.id), pool=str(pool),
                             distributed=str(distributed), platform_fee=str(platform_fee))
                raise LedgerIntegrityError(f"payouts {distributed} + fee {platform_fee} exceed pool {pool}")

            paid = 0
            for entry, amount in zip(board, shares):
                if amount <= 0:
                    continue
                paid += 1
                session.add(Payout(
                    challenge_id=ch.id,
                    user_id=entry.user_id,
                    amount=amount,
                    rank=entry.rank,
                    status="pending",
                    created_at=now,
                ))

            st = Settlement(
                challenge_id=ch.id,
                pool_at_settlement=pool,
                platform_fee=platform_fee,
                distributed=distributed,
                forfeited=pool - platform_fee - distributed,
                winners=paid,
                created_at=now,
            )
            session.add(st)
            ch.prize_pool = pool - distributed
            ch.status = "completed"
            await session.flush()
    except IntegrityError as e:
        if await get_settlement(session, challenge_id):
            # a concurrent settle committed first
            log.info("settle_conflict", challenge_id=str(challenge_id))
            raise AlreadySettled("challenge already settled")
        log.critical("settlement_rejected_by_store", challenge_id=str(challenge_id), error=str(e.orig))
        raise LedgerIntegrityError(f"settlement of {challenge_id} violated a store constraint") from e

    log.info("challenge_settled", challenge_id=str(challenge_id), pool=str(st.pool_at_settlement),
             platform_fee=str(st.platform_fee), distributed=str(st.distributed), forfeited=str(st.forfeited),
             winners=st.winners)
    return st

# ---------- payouts ----------

async def process_payout(session: AsyncSession, payout_id: UUID, *, now: datetime | None = None) -> Transaction:
    """Post the prize to the winner's wallet and mark the payout completed, atomically."""
    now = now or utcnow()
    async with atomic(session):
        payout = await session.get(Payout, payout_id)
        if not payout:
            raise PayoutNotFound(f"payout {payout_id} not found")
        res = await session.execute(
            update(Payout)
            .where(Payout.id == payout_id, Payout.status == "pending")
            .values(status="completed", completed_at=now)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            raise AlreadyProcessed("payout already processed")
        tx = await record(session, payout.user_id, "prize", payout.amount,
                          challenge_id=payout.challenge_id, note=f"payout:rank{payout.rank}")
        await session.refresh(payout)

    log.info("payout_processed", payout_id=str(payout_id), challenge_id=str(payout.challenge_id),
             user_id=str(payout.user_id), amount=str(payout.amount), rank=payout.rank)
    return tx


async def process_pending_payouts(session: AsyncSession, challenge_id: UUID) -> int:
    """Retry every pending payout of a challenge; returns how many were posted now."""
    pending = (await session.execute(
        select(Payout.id)
        .where(Payout.challenge_id == challenge_id, Payout.status == "pending")
        .order_by(Payout.rank.asc())
    )).scalars().all()
    processed = 0
    for payout_id in pending:
        try:
            await process_payout(session, payout_id)
        except AlreadyProcessed:
            # posted by another worker in the meantime
            continue
        processed += 1
    return processed
