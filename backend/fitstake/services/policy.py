"""
Fixed money and scoring policy.

These are product rules, not deployment knobs: changing any of them changes
how existing challenges settle, so they are constants rather than settings.
"""
from __future__ import annotations
from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal("0.01")
WHOLE = Decimal("1")

# Taken from each entry fee before it reaches the pool (whole currency units).
ENTRY_PLATFORM_FEE_RATE = Decimal("0.10")
# Taken again from the pool when the challenge settles.
SETTLEMENT_PLATFORM_FEE_RATE = Decimal("0.20")

FORM_SCORE_WEIGHT = Decimal("0.6")
REP_COUNT_WEIGHT = Decimal("0.4")
FORM_SCORE_MAX = Decimal("100")

PRIZE_DISTRIBUTIONS: dict[str, tuple[Decimal, ...]] = {
    "winner_takes_all": (Decimal("1.00"),),
    "top_3_split": (Decimal("0.50"), Decimal("0.30"), Decimal("0.20")),
    "top_5_split": (Decimal("0.40"), Decimal("0.25"), Decimal("0.15"), Decimal("0.10"), Decimal("0.10")),
}

# Transaction kinds: amounts are always positive, the kind carries the sign.
CREDIT_KINDS = ("prize", "refund", "deposit")
DEBIT_KINDS = ("entry_fee", "withdrawal")
TRANSACTION_KINDS = CREDIT_KINDS + DEBIT_KINDS
TRANSACTION_STATUSES = ("pending", "completed", "failed")

CHALLENGE_STATUSES = ("draft", "scheduled", "active", "completed", "cancelled")
CLOSED_CHALLENGE_STATUSES = ("completed", "cancelled")
SUBMISSION_STATUSES = ("pending", "approved", "rejected")
SUBMISSION_DECISIONS = ("approve", "reject")


def to_money(value) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def entry_platform_fee(entry_fee: Decimal) -> Decimal:
    """10% of the entry fee, half-up to a whole unit (100 -> 10, 25 -> 3)."""
    return (Decimal(entry_fee) * ENTRY_PLATFORM_FEE_RATE).quantize(WHOLE, rounding=ROUND_HALF_UP)


def signed(kind: str, amount: Decimal) -> Decimal:
    return amount if kind in CREDIT_KINDS else -amount
