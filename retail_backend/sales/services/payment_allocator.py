# sales/services/payment_allocator.py

"""
PAYMENT ALLOCATOR

Two entry points:
- pay_receivable         pay one named installment
- register_sale_payment  sweep a lump amount over the open installments,
                         lowest installment number first

Both, inside one transaction:
- append a Payment audit row (method / fee metadata)
- add SELLER-absorbed fees to sale.total_fees
- re-derive sale.paid_amount from the receivables (never a running counter)
- flip the sale to COMPLETED iff every non-cancelled installment is PAID

Amounts are exact Decimals: a payment above the remaining balance is refused,
never rounded away.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from django.db import transaction
from django.utils import timezone

from sales.models import Payment, Receivable, Sale
from sales.services.due_dates import due_date_after
from sales.services.exceptions import LedgerValidationError, PreconditionError
from sales.services.money import ZERO, to_money
from sales.services.sale_lifecycle import (
    require_pending_sale,
    validate_receivable_transition,
    validate_transition,
)
from sales.services.sale_locking import finish_mutation, lock_sale

logger = logging.getLogger("sales.payments")

MAX_CARD_INSTALLMENTS = 12


@dataclass
class PaymentResult:
    sale: Sale
    payment: Payment
    receivables: list = field(default_factory=list)


# ============================================================
# PURE HELPERS
# ============================================================


def apply_payment_to_receivable(receivable: Receivable, amount, *, paid_at: datetime) -> Decimal:
    """
    Apply `amount` to one installment in memory (no save).

    PENDING -> PARTIAL -> PAID; paid_at is kept only while PAID.
    """
    amount = to_money(amount)
    if amount <= ZERO:
        raise LedgerValidationError("Payment amount must be greater than zero.")

    if not receivable.is_open:
        raise PreconditionError(
            f"Installment {receivable.installment} is {receivable.status}.",
            code="RECEIVABLE_CLOSED",
            details={"installment": receivable.installment, "status": receivable.status},
        )

    remaining = receivable.remaining_amount
    if amount > remaining:
        raise PreconditionError(
            f"Payment exceeds remaining balance of {remaining}.",
            code="PAYMENT_EXCEEDS_BALANCE",
            details={"remaining": str(remaining), "amount": str(amount)},
        )

    new_paid = to_money(receivable.paid_amount) + amount
    if new_paid >= to_money(receivable.amount):
        target = Receivable.STATUS_PAID
    else:
        target = Receivable.STATUS_PARTIAL

    validate_receivable_transition(receivable=receivable, target_status=target)

    receivable.paid_amount = new_paid
    receivable.status = target
    receivable.paid_at = paid_at if target == Receivable.STATUS_PAID else None
    return amount


def plan_sweep(receivables, amount) -> list[tuple[Receivable, Decimal]]:
    """
    Split `amount` over open installments, lowest installment first.

    Returns (receivable, slice) pairs; stops when the amount or the
    installments run out.
    """
    remaining = to_money(amount)
    plan = []
    for r in sorted(receivables, key=lambda x: x.installment):
        if remaining <= ZERO:
            break
        if not r.is_open:
            continue
        slice_ = min(remaining, r.remaining_amount)
        if slice_ <= ZERO:
            continue
        plan.append((r, slice_))
        remaining -= slice_
    return plan


# ============================================================
# PAYMENT RECORD
# ============================================================


def _validate_payment_meta(*, method, fee_percent, fee_absorber, card_installments):
    if method not in dict(Payment.METHOD_CHOICES):
        raise LedgerValidationError(
            f"Invalid payment method '{method}'.",
            details={"allowed": [m for m, _ in Payment.METHOD_CHOICES]},
        )
    if fee_absorber not in dict(Payment.ABSORBER_CHOICES):
        raise LedgerValidationError(f"Invalid fee absorber '{fee_absorber}'.")

    pct = to_money(fee_percent)
    if pct < ZERO or pct > Decimal("100.00"):
        raise LedgerValidationError("fee_percent must be between 0 and 100.")

    n = int(card_installments or 1)
    if n < 1 or n > MAX_CARD_INSTALLMENTS:
        raise LedgerValidationError(
            f"card_installments must be between 1 and {MAX_CARD_INSTALLMENTS}."
        )
    return pct, n


def record_payment(
    *,
    sale: Sale,
    amount,
    method: str,
    fee_percent=ZERO,
    fee_absorber: str = Payment.ABSORBER_SELLER,
    card_installments: int = 1,
    paid_at: datetime | None = None,
) -> Payment:
    """Append the audit row and fold a SELLER fee into the sale (caller saves the sale)."""
    amount = to_money(amount)
    if amount <= ZERO:
        raise LedgerValidationError("Payment amount must be greater than zero.")

    pct, n = _validate_payment_meta(
        method=method,
        fee_percent=fee_percent,
        fee_absorber=fee_absorber,
        card_installments=card_installments,
    )
    fee_amount = to_money(amount * pct / Decimal("100"))

    payment = Payment.objects.create(
        sale=sale,
        method=method,
        amount=amount,
        fee_percent=pct,
        fee_amount=fee_amount,
        fee_absorber=fee_absorber,
        card_installments=n,
        paid_at=paid_at or timezone.now(),
    )

    if fee_absorber == Payment.ABSORBER_SELLER and fee_amount > ZERO:
        sale.total_fees = to_money(sale.total_fees) + fee_amount

    return payment


def _save_receivable(r: Receivable) -> None:
    r.save(update_fields=["paid_amount", "status", "paid_at", "updated_at"])


def _complete_if_settled(sale: Sale) -> None:
    statuses = list(
        sale.receivables.exclude(status=Receivable.STATUS_CANCELLED).values_list(
            "status", flat=True
        )
    )
    if statuses and all(s == Receivable.STATUS_PAID for s in statuses):
        validate_transition(sale=sale, target_status=Sale.STATUS_COMPLETED)
        sale.status = Sale.STATUS_COMPLETED


# ============================================================
# ENTRY POINTS
# ============================================================


@transaction.atomic
def pay_receivable(
    *,
    receivable_id,
    amount,
    method: str,
    fee_percent=ZERO,
    fee_absorber: str = Payment.ABSORBER_SELLER,
    card_installments: int = 1,
    paid_at: datetime | None = None,
    expected_version: int | None = None,
) -> PaymentResult:
    _validate_payment_meta(
        method=method,
        fee_percent=fee_percent,
        fee_absorber=fee_absorber,
        card_installments=card_installments,
    )
    sale_id = Receivable.objects.values_list("sale_id", flat=True).get(pk=receivable_id)

    # Sale first, then the installment: same lock order as every other mutation.
    sale = lock_sale(sale_id, expected_version=expected_version)
    require_pending_sale(sale, action="register payment")

    receivable = Receivable.objects.select_for_update().get(pk=receivable_id)
    paid_at = paid_at or timezone.now()

    applied = apply_payment_to_receivable(receivable, amount, paid_at=paid_at)
    _save_receivable(receivable)

    payment = record_payment(
        sale=sale,
        amount=applied,
        method=method,
        fee_percent=fee_percent,
        fee_absorber=fee_absorber,
        card_installments=card_installments,
        paid_at=paid_at,
    )

    _complete_if_settled(sale)
    finish_mutation(sale)

    logger.info(
        "Installment payment registered",
        extra={
            "sale_id": str(sale.id),
            "installment": receivable.installment,
            "amount": str(applied),
            "receivable_status": receivable.status,
            "sale_status": sale.status,
        },
    )
    return PaymentResult(sale=sale, payment=payment, receivables=[receivable])


def _ensure_open_receivable(sale: Sale, receivables: list) -> list:
    """A PENDING sale with money owed but no open installment gets one for the balance."""
    if any(r.is_open for r in receivables):
        return receivables

    owed = to_money(sale.total_amount) - to_money(sale.paid_amount)
    if owed <= ZERO:
        return receivables

    last = max(receivables, key=lambda r: r.installment) if receivables else None
    anchor = last.due_date if last else timezone.localdate()
    created = Receivable.objects.create(
        sale=sale,
        installment=(last.installment + 1) if last else 1,
        amount=owed,
        due_date=due_date_after(anchor, months=1, payment_day=sale.payment_day),
    )
    sale.installment_plan = created.installment

    logger.warning(
        "Created missing receivable for open balance",
        extra={"sale_id": str(sale.id), "amount": str(owed)},
    )
    return receivables + [created]


@transaction.atomic
def register_sale_payment(
    *,
    sale_id,
    amount,
    method: str,
    fee_percent=ZERO,
    fee_absorber: str = Payment.ABSORBER_SELLER,
    card_installments: int = 1,
    paid_at: datetime | None = None,
    expected_version: int | None = None,
) -> PaymentResult:
    _validate_payment_meta(
        method=method,
        fee_percent=fee_percent,
        fee_absorber=fee_absorber,
        card_installments=card_installments,
    )
    amount = to_money(amount)
    if amount <= ZERO:
        raise LedgerValidationError("Payment amount must be greater than zero.")

    sale = lock_sale(sale_id, expected_version=expected_version)
    require_pending_sale(sale, action="register payment")

    receivables = list(sale.receivables.select_for_update().order_by("installment"))
    receivables = _ensure_open_receivable(sale, receivables)

    outstanding = sum((r.remaining_amount for r in receivables if r.is_open), ZERO)
    if amount > outstanding:
        raise PreconditionError(
            f"Payment exceeds remaining balance of {outstanding}.",
            code="PAYMENT_EXCEEDS_BALANCE",
            details={"remaining": str(outstanding), "amount": str(amount)},
        )

    paid_at = paid_at or timezone.now()
    touched = []
    for receivable, slice_ in plan_sweep(receivables, amount):
        apply_payment_to_receivable(receivable, slice_, paid_at=paid_at)
        _save_receivable(receivable)
        touched.append(receivable)

    payment = record_payment(
        sale=sale,
        amount=amount,
        method=method,
        fee_percent=fee_percent,
        fee_absorber=fee_absorber,
        card_installments=card_installments,
        paid_at=paid_at,
    )

    _complete_if_settled(sale)
    finish_mutation(sale)

    logger.info(
        "Sale payment distributed",
        extra={
            "sale_id": str(sale.id),
            "amount": str(amount),
            "installments": [r.installment for r in touched],
            "sale_status": sale.status,
        },
    )
    return PaymentResult(sale=sale, payment=payment, receivables=touched)
