# sales/serializers/sale.py

from django.utils import timezone
from rest_framework import serializers

from sales.models import Payment, Receivable, Sale, SaleItem


class SaleItemSerializer(serializers.ModelSerializer):
    """
    Sale line item serializer (read-only).
    Designed for receipts + UI display.
    """

    product_name = serializers.SerializerMethodField()
    sku = serializers.SerializerMethodField()

    class Meta:
        model = SaleItem
        fields = [
            "id",
            "product",
            "product_name",
            "sku",
            "quantity",
            "unit_price",
            "total_price",
            "added_at",
        ]
        read_only_fields = fields

    def get_product_name(self, obj):
        p = getattr(obj, "product", None)
        return getattr(p, "name", None) or "Item"

    def get_sku(self, obj):
        p = getattr(obj, "product", None)
        return getattr(p, "sku", None)


class PaymentSerializer(serializers.ModelSerializer):
    class Meta:
        model = Payment
        fields = [
            "id",
            "sale",
            "method",
            "amount",
            "fee_percent",
            "fee_amount",
            "fee_absorber",
            "card_installments",
            "paid_at",
            "created_at",
        ]
        read_only_fields = fields


class ReceivableSerializer(serializers.ModelSerializer):
    remaining_amount = serializers.DecimalField(
        max_digits=12, decimal_places=2, read_only=True
    )
    is_overdue = serializers.SerializerMethodField()
    invoice_no = serializers.CharField(source="sale.invoice_no", read_only=True)
    client_name = serializers.SerializerMethodField()

    class Meta:
        model = Receivable
        fields = [
            "id",
            "sale",
            "invoice_no",
            "client_name",
            "installment",
            "amount",
            "paid_amount",
            "remaining_amount",
            "due_date",
            "status",
            "is_overdue",
            "paid_at",
        ]
        read_only_fields = fields

    def get_is_overdue(self, obj) -> bool:
        return obj.is_open and obj.due_date < timezone.localdate()

    def get_client_name(self, obj):
        client = getattr(obj.sale, "client", None)
        return getattr(client, "name", None)


class SaleSerializer(serializers.ModelSerializer):
    """
    CANONICAL SALE SERIALIZER

    - open_amount = total_amount - paid_amount
    - version must be echoed back as expected_version on mutations
    """

    client_name = serializers.SerializerMethodField()
    cashier = serializers.SerializerMethodField()
    open_amount = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    items = SaleItemSerializer(many=True, read_only=True)
    receivables = ReceivableSerializer(many=True, read_only=True)
    payments = PaymentSerializer(many=True, read_only=True)

    class Meta:
        model = Sale
        fields = [
            "id",
            "invoice_no",
            "client",
            "client_name",
            "cashier",
            "subtotal_amount",
            "discount_percent",
            "discount_amount",
            "total_amount",
            "total_fees",
            "net_total",
            "down_payment_amount",
            "paid_amount",
            "open_amount",
            "status",
            "installment_plan",
            "fixed_installment_amount",
            "payment_day",
            "version",
            "notes",
            "created_at",
            "completed_at",
            "cancelled_at",
            "items",
            "receivables",
            "payments",
        ]
        read_only_fields = fields

    def get_client_name(self, obj):
        client = getattr(obj, "client", None)
        return getattr(client, "name", None)

    def get_cashier(self, obj):
        user = getattr(obj, "user", None)
        return getattr(user, "username", None)
