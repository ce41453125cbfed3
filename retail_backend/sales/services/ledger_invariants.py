# sales/services/ledger_invariants.py

"""
LEDGER CONSISTENCY CHECKS

Checked inside the mutating transaction, after rows are written:
- sale.paid_amount == sale.down_payment_amount + sum(receivable.paid_amount)
- sale.total_amount - sale.paid_amount == sum(open amount - paid) for a live sale
  (CANCELLED receivables keep what they absorbed but owe nothing)
- every receivable: 0 <= paid_amount <= amount

Any failure raises ConsistencyViolation, which rolls the transaction back.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from django.db.models import Sum

from sales.models import Sale
from sales.services.exceptions import ConsistencyViolation
from sales.services.money import ZERO, to_money

logger = logging.getLogger("sales.ledger")


def derive_paid_amount(sale: Sale) -> Decimal:
    """Money received so far: down payment plus what receivables have absorbed."""
    received = sale.receivables.aggregate(total=Sum("paid_amount")).get("total")
    return to_money(sale.down_payment_amount) + to_money(received)


def assert_schedule_balanced(*, expected_total, receivables) -> None:
    """The receivables of a fresh schedule must add up to the open balance."""
    expected = to_money(expected_total)
    actual = sum((to_money(r.amount) for r in receivables), ZERO)
    if actual != expected:
        raise ConsistencyViolation(
            f"Schedule sums to {actual}, expected {expected}.",
            details={"actual": str(actual), "expected": str(expected)},
        )


def assert_ledger_consistent(sale: Sale) -> None:
    rows = list(sale.receivables.all())

    for r in rows:
        if to_money(r.paid_amount) < ZERO or to_money(r.paid_amount) > to_money(r.amount):
            raise ConsistencyViolation(
                f"Receivable #{r.installment} has paid {r.paid_amount} of {r.amount}.",
                details={"sale_id": str(sale.id), "installment": r.installment},
            )

    paid = to_money(sale.down_payment_amount) + sum(
        (to_money(r.paid_amount) for r in rows), ZERO
    )
    if to_money(sale.paid_amount) != paid:
        raise ConsistencyViolation(
            f"Sale paid amount {sale.paid_amount} does not match received {paid}.",
            details={"sale_id": str(sale.id)},
        )

    if sale.status == Sale.STATUS_CANCELLED:
        return

    open_balance = sum(
        (to_money(r.amount) - to_money(r.paid_amount) for r in rows if r.is_open),
        ZERO,
    )
    expected = to_money(sale.total_amount) - to_money(sale.paid_amount)
    if open_balance != expected:
        logger.error(
            "Ledger open balance mismatch",
            extra={
                "sale_id": str(sale.id),
                "open_balance": str(open_balance),
                "expected": str(expected),
            },
        )
        raise ConsistencyViolation(
            f"Open receivables total {open_balance}, expected {expected}.",
            details={"sale_id": str(sale.id)},
        )
