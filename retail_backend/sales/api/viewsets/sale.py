# sales/api/viewsets/sale.py

"""
======================================================
PATH: sales/api/viewsets/sale.py
======================================================
SALE VIEWSET (STAFF)

Purpose:
- Sales history (list + retrieve) with basic filters.
- Checkout: POST /api/sales/sales/ (items + up-front payments + schedule).
- Ledger mutations on an open sale:
    POST /api/sales/sales/:id/add-items/
    GET  /api/sales/sales/:id/payments/
    POST /api/sales/sales/:id/payments/     (sweep payment)
    POST /api/sales/sales/:id/reschedule/
    POST /api/sales/sales/:id/cancel/
- Installment schedule: GET /api/sales/sales/:id/receivables/

Concurrency:
- Mutations accept an optional expected_version (from the sale payload).
  A stale version is answered with 409 STALE_VERSION.
======================================================
"""

from __future__ import annotations

from datetime import datetime

from django.db.models import Q
from drf_spectacular.utils import extend_schema
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from sales.api.errors import ledger_error_response
from sales.models import Sale
from sales.serializers import (
    AddItemsInputSerializer,
    CancelInputSerializer,
    CreateSaleInputSerializer,
    PaymentSerializer,
    ReceivableSerializer,
    RescheduleInputSerializer,
    SalePaymentInputSerializer,
    SaleSerializer,
)
from sales.services.exceptions import LedgerError
from sales.services.payment_allocator import register_sale_payment
from sales.services.sale_service import (
    add_items_to_sale,
    cancel_sale,
    create_sale,
    reschedule_sale,
)


def _parse_date(s: str):
    try:
        return datetime.strptime(s, "%Y-%m-%d").date()
    except ValueError:
        return None


class SaleViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    serializer_class = SaleSerializer
    permission_classes = [IsAuthenticated]

    # ======================================================
    # QUERYSET
    # ======================================================

    def get_queryset(self):
        qs = (
            Sale.objects.all()
            .select_related("user", "client")
            .prefetch_related("items", "items__product", "receivables", "payments")
            .order_by("-created_at")
        )

        params = self.request.query_params

        status_val = (params.get("status") or "").strip().upper()
        if status_val:
            qs = qs.filter(status=status_val)

        client_id = (params.get("client_id") or "").strip()
        if client_id:
            qs = qs.filter(client_id=client_id)

        q = (params.get("q") or "").strip()
        if q:
            qs = qs.filter(Q(invoice_no__icontains=q) | Q(client__name__icontains=q))

        date_from = _parse_date((params.get("date_from") or "").strip())
        if date_from:
            qs = qs.filter(created_at__date__gte=date_from)

        date_to = _parse_date((params.get("date_to") or "").strip())
        if date_to:
            qs = qs.filter(created_at__date__lte=date_to)

        return qs

    def _sale_payload(self, sale_id, http_status=status.HTTP_200_OK):
        sale = self.get_queryset().get(pk=sale_id)
        return Response(SaleSerializer(sale).data, status=http_status)

    # ======================================================
    # CHECKOUT
    # POST /api/sales/sales/
    # ======================================================

    @extend_schema(
        request=CreateSaleInputSerializer,
        responses={201: SaleSerializer},
        description=(
            "Create a sale. Up-front payments are recorded; any open balance "
            "becomes an installment schedule and requires a client."
        ),
    )
    def create(self, request, *args, **kwargs):
        ser = CreateSaleInputSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data

        try:
            sale = create_sale(
                user=request.user,
                items=data["items"],
                client_id=data.get("client_id"),
                discount_percent=data.get("discount_percent"),
                payments=data.get("payments") or [],
                installment_plan=data.get("installment_plan"),
                fixed_installment_amount=data.get("fixed_installment_amount"),
                payment_day=data.get("payment_day"),
                start_month=data.get("start_month"),
                start_year=data.get("start_year"),
                notes=data.get("notes") or "",
            )
        except LedgerError as exc:
            return ledger_error_response(exc)

        return self._sale_payload(sale.pk, http_status=status.HTTP_201_CREATED)

    # ======================================================
    # ADD ITEMS
    # POST /api/sales/sales/:id/add-items/
    # ======================================================

    @extend_schema(
        request=AddItemsInputSerializer,
        responses={200: SaleSerializer},
        description=(
            "Add items to an open sale and reshape its installments. "
            "mode: increase_installments | increase_value | "
            "increase_value_from_installment | recalculate."
        ),
    )
    @action(detail=True, methods=["post"], url_path="add-items")
    def add_items(self, request, pk=None):
        sale = self.get_object()
        ser = AddItemsInputSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data

        try:
            add_items_to_sale(
                sale_id=sale.pk,
                items=data["items"],
                mode=data["mode"],
                mode_params=ser.mode_params(),
                user=request.user,
                expected_version=data.get("expected_version"),
            )
        except LedgerError as exc:
            return ledger_error_response(exc)

        return self._sale_payload(sale.pk)

    # ======================================================
    # PAYMENTS
    # GET/POST /api/sales/sales/:id/payments/
    # ======================================================

    @extend_schema(
        request=SalePaymentInputSerializer,
        responses={200: PaymentSerializer(many=True), 201: SaleSerializer},
        description=(
            "GET lists payments. POST distributes an amount over the open "
            "installments, oldest first."
        ),
    )
    @action(detail=True, methods=["get", "post"], url_path="payments")
    def payments(self, request, pk=None):
        sale = self.get_object()

        if request.method == "GET":
            return Response(PaymentSerializer(sale.payments.all(), many=True).data)

        ser = SalePaymentInputSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data

        try:
            register_sale_payment(
                sale_id=sale.pk,
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

        return self._sale_payload(sale.pk, http_status=status.HTTP_201_CREATED)

    # ======================================================
    # RESCHEDULE
    # POST /api/sales/sales/:id/reschedule/
    # ======================================================

    @extend_schema(
        request=RescheduleInputSerializer,
        responses={200: SaleSerializer},
        description="Move the due dates of open installments (amounts unchanged).",
    )
    @action(detail=True, methods=["post"], url_path="reschedule")
    def reschedule(self, request, pk=None):
        sale = self.get_object()
        ser = RescheduleInputSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data

        try:
            reschedule_sale(
                sale_id=sale.pk,
                payment_day=data.get("payment_day"),
                start_month=data.get("start_month"),
                start_year=data.get("start_year"),
                expected_version=data.get("expected_version"),
            )
        except LedgerError as exc:
            return ledger_error_response(exc)

        return self._sale_payload(sale.pk)

    # ======================================================
    # CANCEL
    # POST /api/sales/sales/:id/cancel/
    # ======================================================

    @extend_schema(
        request=CancelInputSerializer,
        responses={200: SaleSerializer},
        description="Cancel a sale: open installments are cancelled and stock is restored.",
    )
    @action(detail=True, methods=["post"], url_path="cancel")
    def cancel(self, request, pk=None):
        sale = self.get_object()
        ser = CancelInputSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data

        try:
            cancel_sale(
                sale_id=sale.pk,
                user=request.user,
                reason=data.get("reason") or "",
                expected_version=data.get("expected_version"),
            )
        except LedgerError as exc:
            return ledger_error_response(exc)

        return self._sale_payload(sale.pk)

    # ======================================================
    # SCHEDULE
    # GET /api/sales/sales/:id/receivables/
    # ======================================================

    @extend_schema(responses={200: ReceivableSerializer(many=True)})
    @action(detail=True, methods=["get"], url_path="receivables")
    def receivables(self, request, pk=None):
        sale = self.get_object()
        rows = sale.receivables.select_related("sale", "sale__client").order_by("installment")
        return Response(ReceivableSerializer(rows, many=True).data)
