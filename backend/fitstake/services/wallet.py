from __future__ import annotations
from decimal import Decimal
from uuid import UUID
import structlog
from sqlalchemy import case, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from fitstake.db import atomic
from fitstake.errors import (
    AccountDisabled, AccountNotFound, InsufficientFunds, InvalidAmount, LedgerIntegrityError, ValidationFailed,
)
from fitstake.models.wallet import Account, Transaction
from fitstake.services.policy import CREDIT_KINDS, TRANSACTION_KINDS, TRANSACTION_STATUSES, signed, to_money

log = structlog.get_logger()


def _positive_amount(amount) -> Decimal:
    try:
        value = to_money(amount)
    except (ArithmeticError, TypeError, ValueError):
        raise InvalidAmount(f"not a money amount: {amount!r}")
    if not value.is_finite() or value <= 0:
        raise InvalidAmount("amount must be > 0")
    return value


async def open_account(session: AsyncSession, account_id: UUID) -> Account:
    """Get-or-create the wallet for an authenticated user."""
    acct = await session.get(Account, account_id)
    if acct:
        return acct
    try:
        async with atomic(session):
            acct = Account(id=account_id, balance=Decimal("0.00"))
            session.add(acct)
    except IntegrityError:
        # opened concurrently by another request
        return await _require_account(session, account_id)
    log.info("account_opened", account_id=str(account_id))
    return acct


async def _require_account(session: AsyncSession, account_id: UUID) -> Account:
    acct = await session.get(Account, account_id)
    if not acct:
        raise AccountNotFound(f"account {account_id} not found")
    return acct


async def get_balance(session: AsyncSession, account_id: UUID) -> Decimal:
    """Signed sum of completed transactions, read from the log rather than the cache."""
    await _require_account(session, account_id)
    total = await session.scalar(
        select(func.coalesce(func.sum(
            case((Transaction.kind.in_(CREDIT_KINDS), Transaction.amount), else_=-Transaction.amount)
        ), 0)).where(Transaction.account_id == account_id, Transaction.status == "completed")
    )
    return to_money(total or 0)


async def list_transactions(session: AsyncSession, account_id: UUID, limit: int = 50) -> list[Transaction]:
    return (await session.execute(
        select(Transaction)
        .where(Transaction.account_id == account_id)
        .order_by(Transaction.created_at.desc(), Transaction.id.desc())
        .limit(limit)
    )).scalars().all()


async def record(
    session: AsyncSession,
    account_id: UUID,
    kind: str,
    amount,
    *,
    challenge_id: UUID | None = None,
    status: str = "completed",
    external_id: str | None = None,
    note: str | None = None,
) -> Transaction:
    """
    Append one transaction and, when it is completed, move the cached balance with it.
    No sufficiency check: debits that must not overdraw go through apply_debit.
    Runs inside the caller's unit of work (flushes, never commits).
    """
    if kind not in TRANSACTION_KINDS:
        raise InvalidAmount(f"unknown transaction kind: {kind}")
    if status not in TRANSACTION_STATUSES:
        raise ValidationFailed(f"unknown transaction status: {status}")
    value = _positive_amount(amount)

    if status == "completed":
        res = await session.execute(
            update(Account)
            .where(Account.id == account_id)
            .values(balance=Account.balance + signed(kind, value))
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            raise AccountNotFound(f"account {account_id} not found")

    tx = Transaction(
        account_id=account_id,
        challenge_id=challenge_id,
        kind=kind,
        amount=value,
        status=status,
        external_id=external_id,
        note=note,
    )
    session.add(tx)
    await session.flush()
    log.info("transaction_recorded", account_id=str(account_id), kind=kind, amount=str(value), status=status,
             challenge_id=str(challenge_id) if challenge_id else None)
    return tx


async def apply_debit(
    session: AsyncSession,
    account_id: UUID,
    amount,
    *,
    kind: str = "withdrawal",
    challenge_id: UUID | None = None,
    note: str | None = None,
) -> Transaction:
    """
    Checked debit: the sufficiency test and the decrement are one conditional UPDATE,
    so two concurrent debits can never both pass against the same stale balance.
    """
    if kind in CREDIT_KINDS:
        raise InvalidAmount(f"{kind} is not a debit")
    value = _positive_amount(amount)

    res = await session.execute(
        update(Account)
        .where(Account.id == account_id, Account.disabled.is_(False), Account.balance >= value)
        .values(balance=Account.balance - value)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        acct = await session.get(Account, account_id, populate_existing=True)
        if not acct:
            raise AccountNotFound(f"account {account_id} not found")
        if acct.disabled:
            raise AccountDisabled("account is disabled")
        raise InsufficientFunds(f"need {value}, have {to_money(acct.balance)}")

    tx = Transaction(account_id=account_id, challenge_id=challenge_id, kind=kind, amount=value,
                     status="completed", note=note)
    session.add(tx)
    await session.flush()
    log.info("transaction_recorded", account_id=str(account_id), kind=kind, amount=str(value), status="completed",
             challenge_id=str(challenge_id) if challenge_id else None)
    return tx


async def deposit(
    session: AsyncSession,
    account_id: UUID,
    amount,
    *,
    external_id: str | None = None,
    note: str | None = None,
) -> Transaction | None:
    """
    Credit money received by the payment collaborator. Idempotent by external_id.
    Returns the new transaction, or None if this external_id was already credited.
    """
    value = _positive_amount(amount)
    if external_id:
        exists = await session.scalar(select(Transaction).where(Transaction.external_id == external_id))
        if exists:
            log.info("deposit_duplicate", account_id=str(account_id), external_id=external_id)
            return None
    await open_account(session, account_id)
    try:
        async with atomic(session):
            tx = await record(session, account_id, "deposit", value, external_id=external_id, note=note)
    except IntegrityError:
        if not external_id:
            raise
        log.info("deposit_duplicate", account_id=str(account_id), external_id=external_id)
        return None
    return tx


async def withdraw(session: AsyncSession, account_id: UUID, amount, *, note: str | None = None) -> Transaction:
    async with atomic(session):
        tx = await apply_debit(session, account_id, amount, kind="withdrawal", note=note)
    return tx


async def reconcile(session: AsyncSession, account_id: UUID) -> Decimal:
    """Compare the cached balance with the log. A mismatch is fatal and is never patched here."""
    acct = await session.get(Account, account_id, populate_existing=True)
    if not acct:
        raise AccountNotFound(f"account {account_id} not found")
    from_log = await get_balance(session, account_id)
    cached = to_money(acct.balance)
    if cached != from_log:
        log.critical("ledger_mismatch", account_id=str(account_id), cached=str(cached), from_log=str(from_log))
        raise LedgerIntegrityError(f"cached balance {cached} != ledger {from_log}")
    return from_log
