# sales/services/schedule.py

"""
INSTALLMENT SCHEDULE GENERATOR

Purpose:
- Turn a new sale's open balance into an ordered list of installment slices.
- Pure: no database writes. The sale service persists the slices as Receivables.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sales.services.due_dates import compute_due_date
from sales.services.exceptions import LedgerValidationError
from sales.services.money import (
    ZERO,
    ceil_div,
    clamp_slice_count,
    fixed_slices,
    split_evenly,
    to_money,
)


@dataclass(frozen=True)
class InstallmentSlice:
    installment: int
    amount: Decimal
    due_date: date


def ensure_installment_limit(count: int, limit: int | None, *, source: str) -> None:
    """Reject a derived installment count above the configured ceiling."""
    if limit and count > limit:
        raise LedgerValidationError(
            f"{source} would create {count} installments; the limit is {limit}.",
            code="TOO_MANY_INSTALLMENTS",
            details={"installments": count, "limit": limit, "source": source},
        )


def build_schedule(
    *,
    open_balance,
    installment_count: int | None,
    payment_day: int,
    reference_date: date,
    start_month: int | None = None,
    start_year: int | None = None,
    fixed_installment_amount=None,
    max_installments: int | None = None,
) -> list[InstallmentSlice]:
    balance = to_money(open_balance)
    if balance <= ZERO:
        return []

    fixed = to_money(fixed_installment_amount) if fixed_installment_amount else None

    if fixed is not None and fixed > ZERO and not installment_count:
        ensure_installment_limit(
            ceil_div(balance, fixed), max_installments, source="fixed_installment_amount"
        )
        amounts = fixed_slices(balance, fixed)
    else:
        n = int(installment_count or 1)
        if n < 1:
            n = 1
        amounts = split_evenly(balance, clamp_slice_count(balance, n))

    return [
        InstallmentSlice(
            installment=i + 1,
            amount=amount,
            due_date=compute_due_date(
                reference_date=reference_date,
                payment_day=payment_day,
                index=i,
                start_month=start_month,
                start_year=start_year,
            ),
        )
        for i, amount in enumerate(amounts)
    ]
