from __future__ import annotations
import uuid
from datetime import datetime
from decimal import Decimal
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Numeric, String, Uuid
from fitstake.db import Base, UTCDateTime, utcnow
from fitstake.config import settings


class Account(Base):
    """
    One wallet per user; the id is the user id handed over by the identity layer.
    `balance` is a cache of the transaction log, only moved by the ledger service
    in the same unit of work as the row that justifies it.
    """
    __tablename__ = "accounts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    balance: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    currency: Mapped[str] = mapped_column(String(8), nullable=False, default=lambda: settings.currency)
    disabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_accounts_balance_nonneg"),
    )


class Transaction(Base):
    """
    Append-only money log.
    Sign convention (amount is always > 0, kind carries the sign):
      - prize, refund, deposit  => credit
      - entry_fee, withdrawal   => debit
    Idempotency: external_id is unique (e.g. Stripe payment_intent id).
    """
    __tablename__ = "transactions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    account_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("accounts.id"), index=True, nullable=False)
    challenge_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("challenges.id", ondelete="SET NULL"), index=True, nullable=True
    )

    kind: Mapped[str] = mapped_column(String(16), nullable=False)    # entry_fee|prize|refund|deposit|withdrawal
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="completed")  # pending|completed|failed

    external_id: Mapped[str | None] = mapped_column(String(64), nullable=True, unique=True)  # pi_..., cs_...
    note: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False, index=True)

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_transactions_amount_positive"),
        CheckConstraint(
            "kind IN ('entry_fee','prize','refund','deposit','withdrawal')", name="ck_transactions_kind"
        ),
        CheckConstraint("status IN ('pending','completed','failed')", name="ck_transactions_status"),
    )
