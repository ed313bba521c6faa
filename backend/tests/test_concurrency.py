"""Racing callers, each on its own session, against a file-backed database."""
import asyncio
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest
import pytest_asyncio
from sqlalchemy import event, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import fitstake.services.entry as entry_service
import fitstake.services.settlement as settlement_service
from fitstake.db import Base
from fitstake.errors import AlreadyJoined, AlreadyProcessed, AlreadyReviewed, AlreadySettled, LedgerIntegrityError
from fitstake.models.challenge import Challenge, Participant
from fitstake.models.settlement import Payout, Settlement
from fitstake.models.wallet import Transaction
from fitstake.schemas.challenge import ChallengeCreate
from fitstake.services.entry import create_challenge, join_challenge
from fitstake.services.scoring import submit, validate
from fitstake.services.settlement import list_payouts, process_payout, settle
from fitstake.services.wallet import deposit, get_balance, open_account

RACERS = 5


def _now():
    return datetime.now(timezone.utc)


@pytest_asyncio.fixture
async def file_factory(tmp_path):
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'race.db'}")

    # take the write lock when the transaction opens so racing units queue up
    @event.listens_for(eng.sync_engine, "connect")
    def _no_implicit_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(eng.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(eng, class_=AsyncSession, expire_on_commit=False)
    await eng.dispose()


async def _own_session(factory, fn, *args, **kwargs):
    async with factory() as s:
        return await fn(s, *args, **kwargs)


async def _race(factory, fn, *args, **kwargs):
    return await asyncio.gather(
        *(_own_session(factory, fn, *args, **kwargs) for _ in range(RACERS)),
        return_exceptions=True,
    )


async def _wallet(s, amount) -> uuid.UUID:
    account_id = uuid.uuid4()
    await open_account(s, account_id)
    await deposit(s, account_id, Decimal(amount), external_id=f"seed_{account_id.hex}")
    return account_id


async def _challenge(s, **overrides):
    start = _now() - timedelta(hours=1)
    data = {
        "title": "Plank Hold",
        "entry_fee": Decimal("100"),
        "starts_at": start,
        "ends_at": start + timedelta(days=1),
        "prize_distribution": "winner_takes_all",
    }
    data.update(overrides)
    return await create_challenge(s, ChallengeCreate(**data))


@pytest.mark.asyncio
async def test_racing_joins_take_one_seat_and_debit_once(file_factory):
    async with file_factory() as s:
        ch_id = (await _challenge(s)).id
        user = await _wallet(s, "500")

    results = await _race(file_factory, join_challenge, ch_id, user)

    joined = [r for r in results if isinstance(r, Participant)]
    assert len(joined) == 1
    assert sum(isinstance(r, AlreadyJoined) for r in results) == RACERS - 1

    async with file_factory() as s:
        assert await s.scalar(select(func.count()).select_from(Participant)) == 1
        debits = await s.scalar(
            select(func.count()).select_from(Transaction).where(Transaction.kind == "entry_fee")
        )
        assert debits == 1
        assert await get_balance(s, user) == Decimal("400.00")
        ch = await s.get(Challenge, ch_id)
        assert ch.participants_count == 1
        assert ch.prize_pool == Decimal("90.00")


@pytest.mark.asyncio
async def test_racing_settles_settle_once(file_factory):
    async with file_factory() as s:
        ch = await _challenge(s)
        ch_id, ends_at = ch.id, ch.ends_at
        user = await _wallet(s, "100")
        await join_challenge(s, ch_id, user)
        sub = await submit(s, ch_id, user, "videos/plank.mp4")
        await validate(s, sub.id, 80, 20)

    results = await _race(file_factory, settle, ch_id, now=ends_at)

    assert sum(isinstance(r, Settlement) for r in results) == 1
    assert sum(isinstance(r, AlreadySettled) for r in results) == RACERS - 1
    async with file_factory() as s:
        assert await s.scalar(select(func.count()).select_from(Settlement)) == 1
        payouts = await list_payouts(s, ch_id)
        assert [(p.user_id, p.amount) for p in payouts] == [(user, Decimal("72.00"))]


@pytest.mark.asyncio
async def test_racing_reviews_have_one_winner(file_factory):
    async with file_factory() as s:
        ch_id = (await _challenge(s)).id
        user = await _wallet(s, "100")
        await join_challenge(s, ch_id, user)
        sid = (await submit(s, ch_id, user, "videos/plank.mp4")).id

    results = await _race(file_factory, validate, sid, 80, 20)

    reviewed = [r for r in results if not isinstance(r, Exception)]
    assert len(reviewed) == 1
    assert sum(isinstance(r, AlreadyReviewed) for r in results) == RACERS - 1
    assert reviewed[0].final_score == Decimal("56.00")


@pytest.mark.asyncio
async def test_racing_payout_workers_post_the_prize_once(file_factory):
    async with file_factory() as s:
        ch = await _challenge(s)
        ch_id, ends_at = ch.id, ch.ends_at
        user = await _wallet(s, "100")
        await join_challenge(s, ch_id, user)
        sub = await submit(s, ch_id, user, "videos/plank.mp4")
        await validate(s, sub.id, 80, 20)
        await settle(s, ch_id, now=ends_at)
        (payout,) = await list_payouts(s, ch_id)
        payout_id = payout.id

    results = await _race(file_factory, process_payout, payout_id)

    assert sum(isinstance(r, Transaction) for r in results) == 1
    assert sum(isinstance(r, AlreadyProcessed) for r in results) == RACERS - 1
    async with file_factory() as s:
        prizes = await s.scalar(select(func.count()).select_from(Transaction).where(Transaction.kind == "prize"))
        assert prizes == 1
        assert await get_balance(s, user) == Decimal("72.00")


@pytest.mark.asyncio
async def test_join_that_misses_the_existing_seat_is_stopped_by_the_unique_row(
    session, funded, make_challenge, monkeypatch,
):
    ch = await make_challenge(entry_fee=Decimal("100"))
    ch_id = ch.id
    user = await funded("300")
    await join_challenge(session, ch_id, user)

    async def seat_not_visible_yet(session, challenge_id, user_id):
        return None

    monkeypatch.setattr(entry_service, "get_participant", seat_not_visible_yet)
    with pytest.raises(AlreadyJoined):
        await join_challenge(session, ch_id, user)

    # the second debit was rolled back with the failed insert
    assert await get_balance(session, user) == Decimal("200.00")
    debits = await session.scalar(
        select(func.count()).select_from(Transaction).where(Transaction.kind == "entry_fee")
    )
    assert debits == 1
    refreshed = await session.get(Challenge, ch_id, populate_existing=True)
    assert refreshed.participants_count == 1
    assert refreshed.prize_pool == Decimal("90.00")


@pytest.mark.asyncio
async def test_settle_that_misses_the_existing_settlement_is_already_settled(
    session, funded, make_challenge, monkeypatch,
):
    ch = await make_challenge(entry_fee=Decimal("100"), prize_distribution="winner_takes_all")
    ch_id, ends_at = ch.id, ch.ends_at
    user = await funded("100")
    await join_challenge(session, ch_id, user)
    sub = await submit(session, ch_id, user, "videos/1.mp4")
    await validate(session, sub.id, 80, 20)
    await settle(session, ch_id, now=ends_at)
    tx_count = await session.scalar(select(func.count()).select_from(Transaction))

    real_get_settlement = settlement_service.get_settlement
    lookups = []

    async def stale_first_lookup(session, challenge_id):
        lookups.append(challenge_id)
        if len(lookups) == 1:
            return None
        return await real_get_settlement(session, challenge_id)

    monkeypatch.setattr(settlement_service, "get_settlement", stale_first_lookup)
    with pytest.raises(AlreadySettled):
        await settle(session, ch_id, now=ends_at)

    assert len(lookups) == 2
    assert await session.scalar(select(func.count()).select_from(Settlement)) == 1
    assert await session.scalar(select(func.count()).select_from(Payout)) == 1
    assert await session.scalar(select(func.count()).select_from(Transaction)) == tx_count
    refreshed = await session.get(Challenge, ch_id, populate_existing=True)
    assert refreshed.prize_pool == Decimal("18.00")


@pytest.mark.asyncio
async def test_store_constraint_failure_during_settle_is_an_integrity_error(
    session, funded, make_challenge, monkeypatch,
):
    ch = await make_challenge(entry_fee=Decimal("100"), prize_distribution="top_3_split")
    ch_id, ends_at = ch.id, ch.ends_at
    users = []
    for _ in range(2):
        users.append(await funded("100"))
        await join_challenge(session, ch_id, users[-1])

    async def board_with_a_shared_rank(session, challenge_id):
        return [SimpleNamespace(user_id=u, rank=1) for u in users]

    monkeypatch.setattr(settlement_service, "recompute_leaderboard", board_with_a_shared_rank)
    with pytest.raises(LedgerIntegrityError):
        await settle(session, ch_id, now=ends_at)

    assert await session.scalar(select(func.count()).select_from(Settlement)) == 0
    assert await session.scalar(select(func.count()).select_from(Payout)) == 0
    refreshed = await session.get(Challenge, ch_id, populate_existing=True)
    assert refreshed.status == "active"
    assert refreshed.prize_pool == Decimal("180.00")
