# products/services/stock.py

"""
STOCK ENGINE

Purpose:
- Deduct on-hand stock for sale lines (row-locked, audited).
- Restore stock from a sale's movements when the sale is cancelled.
- Integer-only quantities (StockMovement.quantity is PositiveIntegerField).

Callers run these inside their own transaction (checkout, add items,
cancellation) so stock and ledger rows commit or roll back together.
"""

from __future__ import annotations

import logging
from collections import defaultdict

from django.db import transaction

from products.models import Product, StockMovement

logger = logging.getLogger("products.stock")


# ============================================================
# DOMAIN ERRORS
# ============================================================


class InsufficientStockError(Exception):
    def __init__(self, message: str, *, product=None, requested: int = 0, available: int = 0):
        super().__init__(message)
        self.product = product
        self.requested = requested
        self.available = available


class StockRestorationError(Exception):
    pass


def _to_int_qty(value) -> int:
    """
    Quantity normalizer.
    HARD RULE: quantities are integer units in this system.
    """
    if value is None or value == "":
        return 0

    if isinstance(value, bool):
        raise ValueError("quantity must be a whole integer unit")

    if isinstance(value, int):
        return value

    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())

    raise ValueError("quantity must be a whole integer unit")


# ============================================================
# DEDUCT
# ============================================================


@transaction.atomic
def deduct_stock(*, product, quantity, user=None, sale=None, notes: str = "") -> StockMovement:
    qty = _to_int_qty(quantity)
    if qty <= 0:
        raise ValueError("quantity must be at least 1")

    locked = Product.objects.select_for_update().get(pk=product.pk)

    if not locked.is_active:
        raise InsufficientStockError(
            f"{locked.name} is not available for sale.",
            product=locked,
            requested=qty,
            available=0,
        )

    if locked.stock < qty:
        logger.warning(
            "Insufficient stock",
            extra={"product_id": str(locked.id), "requested": qty, "available": locked.stock},
        )
        raise InsufficientStockError(
            f"Insufficient stock for {locked.name}. Available: {locked.stock}, requested: {qty}.",
            product=locked,
            requested=qty,
            available=locked.stock,
        )

    previous = locked.stock
    locked.stock = previous - qty
    locked.save(update_fields=["stock", "updated_at"])

    return StockMovement.objects.create(
        product=locked,
        movement_type=StockMovement.MovementType.OUT,
        reason=StockMovement.Reason.SALE,
        quantity=qty,
        previous_stock=previous,
        new_stock=locked.stock,
        performed_by=user,
        sale=sale,
        notes=notes,
    )


# ============================================================
# RESTORE
# ============================================================


@transaction.atomic
def restore_stock_for_sale(*, sale, user=None) -> list[StockMovement]:
    """
    Put back every unit the sale took that has not been restored yet.

    Safe to call twice: the second call finds nothing left to restore.
    """
    if sale is None:
        raise StockRestorationError("sale is required")

    balance = defaultdict(int)
    for m in StockMovement.objects.filter(sale=sale).only(
        "product_id", "reason", "quantity"
    ):
        if m.reason == StockMovement.Reason.SALE:
            balance[m.product_id] += int(m.quantity)
        elif m.reason == StockMovement.Reason.CANCELLATION:
            balance[m.product_id] -= int(m.quantity)

    restored = []
    for product_id in sorted(balance, key=str):
        qty = balance[product_id]
        if qty <= 0:
            continue

        locked = Product.objects.select_for_update().get(pk=product_id)
        previous = locked.stock
        locked.stock = previous + qty
        locked.save(update_fields=["stock", "updated_at"])

        restored.append(
            StockMovement.objects.create(
                product=locked,
                movement_type=StockMovement.MovementType.IN,
                reason=StockMovement.Reason.CANCELLATION,
                quantity=qty,
                previous_stock=previous,
                new_stock=locked.stock,
                performed_by=user,
                sale=sale,
                notes=f"Cancellation of {sale.invoice_no}",
            )
        )

    logger.info(
        "Stock restored for sale",
        extra={"sale_id": str(sale.id), "movements": len(restored)},
    )
    return restored
