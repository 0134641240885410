"""
Monetary Primitives -- percentage application and the single rounding point.

Pure functions with no I/O.

Every stored amount (a line's pre-tax amount, one breakdown amount, one
document-level tax amount) goes through ``round_amount`` exactly once.
Running bases and intermediate sums are never rounded, so compounding taxes
do not accumulate rounding drift. Re-running the same inputs in the same rule
order always yields identical Decimals.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from billing_kernel.domain.values import Money

PERCENT = Decimal("100")
ROUNDING = ROUND_HALF_UP


def apply_percentage(base: Money, rate: Decimal) -> Money:
    """
    Full-precision ``base * rate / 100``.

    ``rate`` is a percentage: 19 means 19%. The result is NOT rounded.
    """
    return Money(amount=base.amount * rate / PERCENT, currency=base.currency)


def round_amount(amount: Money) -> Money:
    """Round to the currency precision, ties away from zero."""
    return amount.round(ROUNDING)


def signed(amount: Money, reversal: bool) -> Money:
    """Return ``amount`` negated when computing a reversal (credit note)."""
    return -amount if reversal else amount
