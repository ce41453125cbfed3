# sales/services/receivable_queries.py

"""
RECEIVABLE READ MODELS

Read-only queries over the installment ledger:
- filtered receivable listing (used by the API FilterSet as its base queryset)
- pending / overdue shortcuts
- per-client summary
- dashboard summary (cached; see dashboard_cache)

No writes here. Amounts are summed in the database and quantized on the way out.
"""

from __future__ import annotations

from datetime import date

from django.db.models import Count, F, Sum
from django.utils import timezone

from sales.models import Receivable
from sales.services.dashboard_cache import get_or_compute
from sales.services.money import to_money

NEXT_DUE_LIMIT = 5


def base_queryset():
    return Receivable.objects.select_related("sale", "sale__client").order_by(
        "due_date", "installment"
    )


def list_receivables(
    *,
    sale_id=None,
    client_id=None,
    status: str | None = None,
    due_from: date | None = None,
    due_to: date | None = None,
):
    qs = base_queryset()
    if sale_id:
        qs = qs.filter(sale_id=sale_id)
    if client_id:
        qs = qs.filter(sale__client_id=client_id)
    if status:
        qs = qs.filter(status=status)
    if due_from:
        qs = qs.filter(due_date__gte=due_from)
    if due_to:
        qs = qs.filter(due_date__lte=due_to)
    return qs


def list_pending(*, client_id=None):
    return list_receivables(client_id=client_id).filter(status__in=Receivable.OPEN_STATUSES)


def list_overdue(*, client_id=None, today: date | None = None):
    today = today or timezone.localdate()
    return list_pending(client_id=client_id).filter(due_date__lt=today)


def _open_totals(qs) -> dict:
    agg = qs.aggregate(
        owed=Sum(F("amount") - F("paid_amount")),
        count=Count("id"),
    )
    return {"amount": to_money(agg["owed"]), "count": int(agg["count"] or 0)}


def _row(r: Receivable) -> dict:
    return {
        "id": str(r.id),
        "sale_id": str(r.sale_id),
        "invoice_no": r.sale.invoice_no,
        "client": r.sale.client.name if r.sale.client_id else None,
        "installment": r.installment,
        "amount": str(to_money(r.amount)),
        "remaining_amount": str(to_money(r.remaining_amount)),
        "due_date": r.due_date.isoformat(),
        "status": r.status,
    }


def client_summary(client_id, *, today: date | None = None) -> dict:
    today = today or timezone.localdate()

    def compute():
        pending = _open_totals(list_pending(client_id=client_id))
        overdue = _open_totals(list_overdue(client_id=client_id, today=today))
        paid = Receivable.objects.filter(
            sale__client_id=client_id,
        ).aggregate(total=Sum("paid_amount"))["total"]
        return {
            "client_id": str(client_id),
            "total_due": str(pending["amount"]),
            "pending_count": pending["count"],
            "total_overdue": str(overdue["amount"]),
            "overdue_count": overdue["count"],
            "total_paid": str(to_money(paid)),
        }

    return get_or_compute("client_summary", compute, client_id, today.isoformat())


def dashboard_summary(*, today: date | None = None) -> dict:
    today = today or timezone.localdate()

    def compute():
        pending_qs = list_pending()
        pending = _open_totals(pending_qs)
        overdue = _open_totals(pending_qs.filter(due_date__lt=today))
        due_today = _open_totals(pending_qs.filter(due_date=today))
        clients_with_debt = (
            pending_qs.exclude(sale__client__isnull=True)
            .order_by()
            .values("sale__client_id")
            .distinct()
            .count()
        )
        upcoming = pending_qs.filter(due_date__gte=today)[:NEXT_DUE_LIMIT]
        return {
            "total_due": str(pending["amount"]),
            "pending_count": pending["count"],
            "total_overdue": str(overdue["amount"]),
            "overdue_count": overdue["count"],
            "due_today": str(due_today["amount"]),
            "clients_with_debt": clients_with_debt,
            "next_receivables": [_row(r) for r in upcoming],
        }

    return get_or_compute("dashboard", compute, today.isoformat())
