"""Pytest configuration and fixtures."""
import os
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

# The app reads its settings at import time: point it at SQLite and keep Redis out of the way.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["PAYOUT_QUEUE_ENABLED"] = "0"
os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from fitstake.db import Base, get_session
from fitstake.models import challenge, settlement, submission, wallet  # noqa: F401  register tables
from fitstake.schemas.challenge import ChallengeCreate
from fitstake.security import make_access_token
from fitstake.services.entry import create_challenge
from fitstake.services.wallet import deposit, open_account


def _now() -> datetime:
    return datetime.now(timezone.utc)


@pytest_asyncio.fixture
async def engine():
    """Fresh in-memory database per test."""
    eng = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


@pytest_asyncio.fixture
async def client(session_factory):
    from fitstake.main import app

    async def override_get_session():
        async with session_factory() as s:
            yield s

    app.dependency_overrides[get_session] = override_get_session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def auth():
    def _headers(account_id: uuid.UUID, *, admin: bool = False) -> dict[str, str]:
        token = make_access_token(str(account_id), role="admin" if admin else None)
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture
def funded(session):
    """Open a wallet and credit it; returns the account id."""
    async def _funded(amount="0") -> uuid.UUID:
        account_id = uuid.uuid4()
        await open_account(session, account_id)
        if Decimal(str(amount)) > 0:
            await deposit(session, account_id, Decimal(str(amount)), external_id=f"seed_{account_id.hex}")
        return account_id
    return _funded


@pytest.fixture
def make_challenge(session):
    async def _make(**overrides):
        start = _now() - timedelta(hours=1)
        data = {
            "title": "Pushup Sprint",
            "description": "Max clean pushups in 60 seconds",
            "category": "strength",
            "entry_fee": Decimal("100"),
            "starts_at": start,
            "ends_at": start + timedelta(days=7),
            "prize_distribution": "top_3_split",
            "video_duration_limit": 60,
        }
        data.update(overrides)
        return await create_challenge(session, ChallengeCreate(**data), created_by=None)
    return _make
