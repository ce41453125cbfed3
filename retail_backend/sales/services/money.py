# sales/services/money.py

"""
MONEY / ROUNDING HELPERS

Purpose:
- Every ledger amount is a Decimal quantized to 0.01 (never float).
- Splitting a total into N slices always follows the
  "remainder goes to the last slice" rule, so slices sum to the total exactly.
"""

from __future__ import annotations

from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal

from sales.services.exceptions import LedgerValidationError

TWOPLACES = Decimal("0.01")
CENT = TWOPLACES
ZERO = Decimal("0.00")


def to_money(v) -> Decimal:
    if v is None or v == "":
        return ZERO
    return Decimal(str(v)).quantize(TWOPLACES, rounding=ROUND_HALF_UP)


def round_currency(v) -> Decimal:
    return to_money(v)


def ceil_div(amount, unit) -> int:
    """Number of `unit`-sized slices needed to cover `amount` (at least 0)."""
    amount = to_money(amount)
    unit = to_money(unit)
    if unit <= ZERO:
        raise LedgerValidationError("Slice amount must be greater than zero.")
    if amount <= ZERO:
        return 0
    whole, rest = divmod(amount, unit)
    return int(whole) + (1 if rest > ZERO else 0)


def clamp_slice_count(total, n: int) -> int:
    """
    Cap `n` so that no slice can be smaller than one cent.

    A total of 0.05 can be split into at most 5 slices.
    """
    total = to_money(total)
    n = max(int(n or 1), 1)
    max_slices = int(total / CENT) if total > ZERO else 1
    return max(min(n, max_slices), 1)


def split_evenly(total, n: int) -> list[Decimal]:
    total = to_money(total)
    n = int(n)

    if n < 1:
        raise LedgerValidationError(
            "Installment count must be at least 1.",
            details={"installments": n},
        )
    if total < CENT * n:
        raise LedgerValidationError(
            f"Cannot split {total} into {n} installments of at least {CENT}.",
            details={"total": str(total), "installments": n},
        )

    base = (total / n).quantize(TWOPLACES, rounding=ROUND_DOWN)
    slices = [base] * (n - 1)
    slices.append(total - base * (n - 1))
    return slices


def fixed_slices(total, unit) -> list[Decimal]:
    """
    Slices of a fixed operator-chosen `unit`; the last one takes what is left.

    fixed_slices(200, 75) -> [75, 75, 50]
    """
    total = to_money(total)
    unit = to_money(unit)
    count = ceil_div(total, unit)
    if count == 0:
        return []
    slices = [unit] * (count - 1)
    slices.append(total - unit * (count - 1))
    return slices
