# sales/api/viewsets/receivable.py

"""
======================================================
PATH: sales/api/viewsets/receivable.py
======================================================
RECEIVABLE VIEWSET (STAFF)

- GET  /api/sales/receivables/            filter: sale, client, status,
                                          due_from, due_to, pending, overdue
- GET  /api/sales/receivables/:id/
- POST /api/sales/receivables/:id/pay/    pay one installment
- GET  /api/sales/receivables/summary/    dashboard totals (cached)
- GET  /api/sales/receivables/summary/?client_id=...  per-client totals
======================================================
"""

from __future__ import annotations

import django_filters
from django.utils import timezone
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from sales.api.errors import ledger_error_response
from sales.models import Receivable
from sales.serializers import SalePaymentInputSerializer, ReceivableSerializer, SaleSerializer
from sales.services.exceptions import LedgerError
from sales.services.payment_allocator import pay_receivable
from sales.services.receivable_queries import base_queryset, client_summary, dashboard_summary


class ReceivableFilter(django_filters.FilterSet):
    sale = django_filters.UUIDFilter(field_name="sale_id")
    client = django_filters.UUIDFilter(field_name="sale__client_id")
    status = django_filters.ChoiceFilter(choices=Receivable.STATUS_CHOICES)
    due_from = django_filters.DateFilter(field_name="due_date", lookup_expr="gte")
    due_to = django_filters.DateFilter(field_name="due_date", lookup_expr="lte")
    pending = django_filters.BooleanFilter(method="filter_pending")
    overdue = django_filters.BooleanFilter(method="filter_overdue")

    class Meta:
        model = Receivable
        fields = ["sale", "client", "status", "due_from", "due_to", "pending", "overdue"]

    def filter_pending(self, queryset, name, value):
        if value:
            return queryset.filter(status__in=Receivable.OPEN_STATUSES)
        return queryset

    def filter_overdue(self, queryset, name, value):
        if value:
            return queryset.filter(
                status__in=Receivable.OPEN_STATUSES,
                due_date__lt=timezone.localdate(),
            )
        return queryset


class ReceivableViewSet(viewsets.ReadOnlyModelViewSet):
    serializer_class = ReceivableSerializer
    permission_classes = [IsAuthenticated]
    filterset_class = ReceivableFilter

    def get_queryset(self):
        return base_queryset()

    @extend_schema(
        request=SalePaymentInputSerializer,
        responses={201: SaleSerializer},
        description="Pay one installment. Amount may not exceed its remaining balance.",
    )
    @action(detail=True, methods=["post"], url_path="pay")
    def pay(self, request, pk=None):
        receivable = self.get_object()
        ser = SalePaymentInputSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data

        try:
            result = pay_receivable(
                receivable_id=receivable.pk,
                amount=data["amount"],
                method=data["method"],
                fee_percent=data.get("fee_percent") or 0,
                fee_absorber=data.get("fee_absorber"),
                card_installments=data.get("card_installments") or 1,
                paid_at=data.get("paid_at"),
                expected_version=data.get("expected_version"),
            )
        except LedgerError as exc:
            return ledger_error_response(exc)

        return Response(SaleSerializer(result.sale).data, status=status.HTTP_201_CREATED)

    @extend_schema(
        responses={200: OpenApiTypes.OBJECT},
        description="Open / overdue totals for the dashboard, or for one client via ?client_id=.",
    )
    @action(detail=False, methods=["get"], url_path="summary")
    def summary(self, request):
        client_id = (request.query_params.get("client_id") or "").strip()
        if client_id:
            return Response(client_summary(client_id))
        return Response(dashboard_summary())
