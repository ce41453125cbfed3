# sales/services/sale_service.py

"""
CORE SALES DOMAIN SERVICE

SINGLE SOURCE OF TRUTH for:
- Sale creation (checkout) + initial installment schedule
- Adding items to an open sale (amendment engine)
- Rescheduling open installments (due dates only)
- Cancelling a sale (open installments cancelled, stock restored)

GUARANTEES:
- One transaction per call; the sale row is locked before anything is read
- Stock moves only through products.services.stock
- Money values are computed server-side from product prices
- Every call ends in finish_mutation (version bump + invariant check)
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from clients.models import Client
from products.models import Product
from products.services.stock import (
    InsufficientStockError,
    deduct_stock,
    restore_stock_for_sale,
)
from sales.models import Receivable, Sale, SaleItem
from sales.services.amendment import build_amend_mode, plan_amendment
from sales.services.due_dates import compute_due_date
from sales.services.exceptions import LedgerValidationError, PreconditionError, StockConflictError
from sales.services.ledger_invariants import assert_schedule_balanced
from sales.services.money import ZERO, to_money
from sales.services.payment_allocator import record_payment
from sales.services.sale_lifecycle import (
    require_pending_sale,
    validate_receivable_transition,
    validate_transition,
)
from sales.services.sale_locking import finish_mutation, lock_sale
from sales.services.schedule import build_schedule

logger = logging.getLogger("sales.ledger")

HUNDRED = Decimal("100")


# ============================================================
# INPUT NORMALIZATION
# ============================================================


def _to_int_qty(value) -> int:
    if isinstance(value, bool):
        raise LedgerValidationError("quantity must be a whole integer unit")
    try:
        qty = int(value)
    except (TypeError, ValueError) as exc:
        raise LedgerValidationError("quantity must be a whole integer unit") from exc
    if qty < 1:
        raise LedgerValidationError("quantity must be at least 1")
    return qty


def _normalize_items(items) -> list[dict]:
    if not items:
        raise LedgerValidationError("At least one item is required.", code="EMPTY_ITEMS")

    lines = []
    for idx, item in enumerate(items):
        product_id = item.get("product_id")
        if not product_id:
            raise LedgerValidationError(f"product_id is required at index {idx}.")
        lines.append({"product_id": product_id, "quantity": _to_int_qty(item.get("quantity"))})

    ids = {str(line["product_id"]) for line in lines}
    products = {str(p.pk): p for p in Product.objects.filter(pk__in=ids)}
    missing = sorted(ids - set(products))
    if missing:
        raise LedgerValidationError(
            "Unknown product(s).",
            code="PRODUCT_NOT_FOUND",
            details={"product_ids": missing},
        )

    for line in lines:
        line["product"] = products[str(line["product_id"])]
    return lines


def _normalize_percent(value, *, name: str) -> Decimal:
    pct = to_money(value)
    if pct < ZERO or pct > HUNDRED:
        raise LedgerValidationError(f"{name} must be between 0 and 100.")
    return pct


def _validate_installment_count(value) -> int | None:
    if value in (None, ""):
        return None
    n = int(value)
    limit = settings.LEDGER_MAX_INSTALLMENTS
    if n < 1 or n > limit:
        raise LedgerValidationError(
            f"installment_plan must be between 1 and {limit}.",
            details={"installment_plan": value},
        )
    return n


def _sell_lines(*, sale: Sale, lines: list[dict], user) -> Decimal:
    """Create SaleItem rows and take stock. Returns the added subtotal."""
    subtotal = ZERO
    for line in lines:
        product = line["product"]
        try:
            deduct_stock(product=product, quantity=line["quantity"], user=user, sale=sale)
        except InsufficientStockError as exc:
            raise StockConflictError(
                str(exc),
                details={
                    "product_id": str(product.pk),
                    "requested": exc.requested,
                    "available": exc.available,
                },
            ) from exc

        item = SaleItem.objects.create(
            sale=sale,
            product=product,
            quantity=line["quantity"],
            unit_price=product.sale_price,
            cost_price=product.cost_price,
        )
        subtotal += to_money(item.total_price)
    return subtotal


# ============================================================
# CHECKOUT
# ============================================================


@transaction.atomic
def create_sale(
    *,
    user,
    items,
    client_id=None,
    discount_percent=None,
    payments=None,
    installment_plan=None,
    fixed_installment_amount=None,
    payment_day=None,
    start_month=None,
    start_year=None,
    notes: str = "",
    reference_date: date | None = None,
) -> Sale:
    """
    Checkout: items + up-front payments; whatever stays open becomes
    the installment schedule (fiado). A fiado sale must name a client.
    """
    lines = _normalize_items(items)
    payments = list(payments or [])
    count = _validate_installment_count(installment_plan)
    fixed = to_money(fixed_installment_amount) if fixed_installment_amount else None
    if fixed is not None and fixed <= ZERO:
        raise LedgerValidationError("fixed_installment_amount must be greater than zero.")

    client = None
    if client_id:
        client = Client.objects.filter(pk=client_id, is_active=True).first()
        if client is None:
            raise LedgerValidationError(
                "Unknown or inactive client.", code="CLIENT_NOT_FOUND"
            )

    if discount_percent in (None, ""):
        discount_percent = client.discount_percent if client else ZERO
    pct = _normalize_percent(discount_percent, name="discount_percent")

    subtotal = sum(
        (to_money(line["product"].sale_price) * line["quantity"] for line in lines), ZERO
    )
    discount_amount = to_money(subtotal * pct / HUNDRED)
    total = subtotal - discount_amount

    upfront = sum((to_money(p.get("amount")) for p in payments), ZERO)
    if any(to_money(p.get("amount")) <= ZERO for p in payments):
        raise LedgerValidationError("Payment amounts must be greater than zero.")
    if upfront > total:
        raise LedgerValidationError(
            f"Payments ({upfront}) exceed the sale total ({total}).",
            code="OVERPAYMENT",
        )

    open_balance = total - upfront
    if open_balance > ZERO and client is None:
        raise LedgerValidationError(
            "A client is required for a sale with an open balance.",
            code="CLIENT_REQUIRED",
        )

    day = None
    if open_balance > ZERO:
        day = int(payment_day or settings.LEDGER_DEFAULT_PAYMENT_DAY)

    sale = Sale.objects.create(
        user=user,
        client=client,
        status=Sale.STATUS_PENDING,
        subtotal_amount=subtotal,
        discount_percent=pct,
        discount_amount=discount_amount,
        total_amount=total,
        net_total=total,
        fixed_installment_amount=fixed,
        payment_day=day,
        notes=notes or "",
        version=0,
    )

    _sell_lines(sale=sale, lines=lines, user=user)

    paid_at = timezone.now()
    for p in payments:
        record_payment(
            sale=sale,
            amount=p.get("amount"),
            method=p.get("method"),
            fee_percent=p.get("fee_percent") or ZERO,
            fee_absorber=p.get("fee_absorber") or "SELLER",
            card_installments=p.get("card_installments") or 1,
            paid_at=paid_at,
        )
    sale.down_payment_amount = upfront

    slices = []
    if open_balance > ZERO:
        slices = build_schedule(
            open_balance=open_balance,
            installment_count=count,
            payment_day=day,
            reference_date=reference_date or timezone.localdate(),
            start_month=start_month,
            start_year=start_year,
            fixed_installment_amount=fixed,
            max_installments=settings.LEDGER_MAX_INSTALLMENTS,
        )
        assert_schedule_balanced(expected_total=open_balance, receivables=slices)
        Receivable.objects.bulk_create(
            [
                Receivable(
                    sale=sale,
                    installment=s.installment,
                    amount=s.amount,
                    due_date=s.due_date,
                )
                for s in slices
            ]
        )
        sale.installment_plan = len(slices)
    else:
        sale.installment_plan = 0
        validate_transition(sale=sale, target_status=Sale.STATUS_COMPLETED)
        sale.status = Sale.STATUS_COMPLETED

    finish_mutation(sale)

    logger.info(
        "Sale created",
        extra={
            "sale_id": str(sale.id),
            "total": str(total),
            "down_payment": str(upfront),
            "installments": len(slices),
            "status": sale.status,
        },
    )
    return sale


# ============================================================
# ADD ITEMS (AMENDMENT)
# ============================================================


@transaction.atomic
def add_items_to_sale(
    *,
    sale_id,
    items,
    mode: str,
    mode_params: dict | None = None,
    user=None,
    expected_version: int | None = None,
    reference_date: date | None = None,
) -> Sale:
    amend_mode = build_amend_mode(mode, **(mode_params or {}))
    lines = _normalize_items(items)

    sale = lock_sale(sale_id, expected_version=expected_version)
    require_pending_sale(sale, action="add items")

    added_subtotal = _sell_lines(sale=sale, lines=lines, user=user)
    added_discount = to_money(added_subtotal * to_money(sale.discount_percent) / HUNDRED)
    added_total = added_subtotal - added_discount

    receivables = list(sale.receivables.select_for_update().order_by("installment"))
    plan = plan_amendment(
        receivables=receivables,
        added_amount=added_total,
        mode=amend_mode,
        fixed_installment_amount=sale.fixed_installment_amount,
        payment_day=sale.payment_day,
        reference_date=reference_date or timezone.localdate(),
        max_installments=settings.LEDGER_MAX_INSTALLMENTS,
    )

    # Delete before create: replaced installment numbers are reused.
    if plan.deleted_ids:
        Receivable.objects.filter(sale=sale, pk__in=plan.deleted_ids).delete()

    for r in receivables:
        if r.pk in plan.amount_updates:
            r.amount = plan.amount_updates[r.pk]
            r.save(update_fields=["amount", "updated_at"])

    Receivable.objects.bulk_create(
        [
            Receivable(
                sale=sale,
                installment=s.installment,
                amount=s.amount,
                due_date=s.due_date,
            )
            for s in plan.new_slices
        ]
    )

    sale.subtotal_amount = to_money(sale.subtotal_amount) + added_subtotal
    sale.discount_amount = to_money(sale.discount_amount) + added_discount
    sale.total_amount = to_money(sale.total_amount) + added_total
    sale.installment_plan = plan.updated_plan_count
    sale.fixed_installment_amount = plan.updated_fixed_amount
    finish_mutation(sale)

    logger.info(
        "Items added to open sale",
        extra={
            "sale_id": str(sale.id),
            "mode": mode,
            "added_total": str(added_total),
            "created_count": len(plan.new_slices),
            "updated_count": len(plan.amount_updates),
            "deleted_count": len(plan.deleted_ids),
            "installment_plan": sale.installment_plan,
        },
    )
    return sale


# ============================================================
# RESCHEDULE
# ============================================================


@transaction.atomic
def reschedule_sale(
    *,
    sale_id,
    payment_day=None,
    start_month=None,
    start_year=None,
    expected_version: int | None = None,
    reference_date: date | None = None,
) -> Sale:
    """Move the due dates of every open installment; amounts stay as they are."""
    sale = lock_sale(sale_id, expected_version=expected_version)
    require_pending_sale(sale, action="reschedule")

    open_rows = list(
        sale.receivables.select_for_update()
        .filter(status__in=Receivable.OPEN_STATUSES)
        .order_by("installment")
    )
    if not open_rows:
        raise PreconditionError(
            "There are no open installments to reschedule.",
            code="NO_RECEIVABLES",
        )

    day = int(payment_day or sale.payment_day or settings.LEDGER_DEFAULT_PAYMENT_DAY)
    today = reference_date or timezone.localdate()

    for i, r in enumerate(open_rows):
        r.due_date = compute_due_date(
            reference_date=today,
            payment_day=day,
            index=i,
            start_month=start_month,
            start_year=start_year,
        )
        r.save(update_fields=["due_date", "updated_at"])

    sale.payment_day = day
    finish_mutation(sale)

    logger.info(
        "Sale rescheduled",
        extra={"sale_id": str(sale.id), "payment_day": day, "installments": len(open_rows)},
    )
    return sale


# ============================================================
# CANCEL
# ============================================================


@transaction.atomic
def cancel_sale(
    *,
    sale_id,
    user=None,
    reason: str = "",
    expected_version: int | None = None,
) -> Sale:
    sale = lock_sale(sale_id, expected_version=expected_version)
    validate_transition(sale=sale, target_status=Sale.STATUS_CANCELLED)

    open_rows = list(
        sale.receivables.select_for_update().filter(status__in=Receivable.OPEN_STATUSES)
    )
    for r in open_rows:
        validate_receivable_transition(receivable=r, target_status=Receivable.STATUS_CANCELLED)
        r.status = Receivable.STATUS_CANCELLED
        r.save(update_fields=["status", "updated_at"])

    restore_stock_for_sale(sale=sale, user=user)

    sale.status = Sale.STATUS_CANCELLED
    if reason:
        sale.notes = f"{sale.notes}\nCancelled: {reason}".strip()
    finish_mutation(sale)

    logger.info(
        "Sale cancelled",
        extra={"sale_id": str(sale.id), "cancelled_receivables": len(open_rows)},
    )
    return sale
