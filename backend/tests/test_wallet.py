import random
import uuid
from decimal import Decimal

import pytest
from sqlalchemy import update

from fitstake.errors import (
    AccountDisabled, AccountNotFound, InsufficientFunds, InvalidAmount, LedgerIntegrityError,
)
from fitstake.models.wallet import Account, Transaction
from fitstake.services.wallet import (
    apply_debit, deposit, get_balance, list_transactions, open_account, reconcile, record, withdraw,
)


@pytest.mark.asyncio
async def test_open_account_is_get_or_create(session):
    account_id = uuid.uuid4()
    a = await open_account(session, account_id)
    b = await open_account(session, account_id)
    assert a.id == b.id == account_id
    assert await get_balance(session, account_id) == Decimal("0.00")


@pytest.mark.asyncio
async def test_get_balance_unknown_account(session):
    with pytest.raises(AccountNotFound):
        await get_balance(session, uuid.uuid4())


@pytest.mark.asyncio
async def test_deposit_is_idempotent_by_external_id(session, funded):
    acct = await funded()
    first = await deposit(session, acct, Decimal("250.00"), external_id="pi_123")
    again = await deposit(session, acct, Decimal("250.00"), external_id="pi_123")
    assert first is not None
    assert again is None
    assert await get_balance(session, acct) == Decimal("250.00")


@pytest.mark.asyncio
async def test_record_rejects_non_positive_and_unknown_kind(session, funded):
    acct = await funded()
    with pytest.raises(InvalidAmount):
        await record(session, acct, "deposit", Decimal("0"))
    with pytest.raises(InvalidAmount):
        await record(session, acct, "deposit", Decimal("-5"))
    with pytest.raises(InvalidAmount):
        await record(session, acct, "bonus", Decimal("5"))


@pytest.mark.asyncio
async def test_pending_record_does_not_move_balance(session, funded):
    acct = await funded("40")
    await record(session, acct, "prize", Decimal("10"), status="pending")
    await session.commit()
    assert await get_balance(session, acct) == Decimal("40.00")
    assert await reconcile(session, acct) == Decimal("40.00")


@pytest.mark.asyncio
async def test_apply_debit_insufficient_funds_leaves_no_trace(session, funded):
    acct = await funded("50")
    with pytest.raises(InsufficientFunds):
        await withdraw(session, acct, Decimal("100"))
    assert await get_balance(session, acct) == Decimal("50.00")
    rows = await list_transactions(session, acct)
    assert [t.kind for t in rows] == ["deposit"]


@pytest.mark.asyncio
async def test_apply_debit_unknown_and_disabled_accounts(session, funded):
    with pytest.raises(AccountNotFound):
        await apply_debit(session, uuid.uuid4(), Decimal("1"))
    await session.rollback()

    acct = await funded("10")
    await session.execute(update(Account).where(Account.id == acct).values(disabled=True))
    await session.commit()
    with pytest.raises(AccountDisabled):
        await withdraw(session, acct, Decimal("1"))


@pytest.mark.asyncio
async def test_balance_equals_signed_sum_after_random_operations(session, funded):
    rng = random.Random(7)
    acct = await funded()
    for i in range(40):
        op = rng.choice(["deposit", "withdraw", "prize", "refund"])
        amount = Decimal(rng.randint(1, 5000)) / 100
        if op == "deposit":
            await deposit(session, acct, amount, external_id=f"pi_{i}")
        elif op == "withdraw":
            try:
                await withdraw(session, acct, amount)
            except InsufficientFunds:
                pass
        else:
            await record(session, acct, op, amount)
            await session.commit()

        rows = (await session.execute(
            Transaction.__table__.select().where(Transaction.account_id == acct, Transaction.status == "completed")
        )).all()
        expected = sum(
            (r.amount if r.kind in ("deposit", "prize", "refund") else -r.amount for r in rows),
            Decimal("0"),
        )
        assert await get_balance(session, acct) == expected.quantize(Decimal("0.01"))
        assert await reconcile(session, acct) == expected.quantize(Decimal("0.01"))


@pytest.mark.asyncio
async def test_reconcile_flags_a_tampered_cache(session, funded):
    acct = await funded("30")
    await session.execute(update(Account).where(Account.id == acct).values(balance=Decimal("31.00")))
    await session.commit()
    with pytest.raises(LedgerIntegrityError):
        await reconcile(session, acct)
