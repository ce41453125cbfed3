# sales/services/sale_locking.py

"""
SALE ROW LOCK + OPTIMISTIC VERSION

Every ledger mutation starts here:
- the sale row is locked with select_for_update (one writer per sale)
- an optional expected_version from the client must match the stored one
- finish_mutation bumps the version, re-derives paid_amount, checks the
  invariants and schedules cache invalidation after commit
"""

from __future__ import annotations

from django.db import transaction

from sales.models import Sale
from sales.services.dashboard_cache import invalidate_ledger_caches
from sales.services.exceptions import PreconditionError
from sales.services.ledger_invariants import assert_ledger_consistent, derive_paid_amount
from sales.services.money import to_money


def lock_sale(sale_id, *, expected_version: int | None = None) -> Sale:
    sale = Sale.objects.select_for_update().get(pk=sale_id)

    if expected_version is not None and int(expected_version) != sale.version:
        raise PreconditionError(
            f"Sale {sale.invoice_no} was changed by another operation "
            f"(version {sale.version}, expected {expected_version}). Reload and retry.",
            code="STALE_VERSION",
            details={"current_version": sale.version, "expected_version": expected_version},
        )

    return sale


def finish_mutation(sale: Sale) -> Sale:
    """Persist the sale's derived totals and verify the ledger. Call inside the transaction."""
    sale.paid_amount = derive_paid_amount(sale)
    sale.net_total = to_money(sale.total_amount) - to_money(sale.total_fees)
    sale.version = int(sale.version or 0) + 1
    sale.save()

    assert_ledger_consistent(sale)
    transaction.on_commit(invalidate_ledger_caches)
    return sale
