# sales/admin.py

"""
Admin is read-only for ledger rows: every ledger change goes through the
services (locking + invariants), never through admin forms.
"""

from django.contrib import admin

from sales.models import Payment, Receivable, Sale, SaleItem


class ReadOnlyAdminMixin:
    def has_add_permission(self, request, obj=None):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


# ======================================================
# INLINES
# ======================================================


class SaleItemInline(ReadOnlyAdminMixin, admin.TabularInline):
    model = SaleItem
    extra = 0
    fields = ("product", "quantity", "unit_price", "total_price", "added_at")
    readonly_fields = fields


class ReceivableInline(ReadOnlyAdminMixin, admin.TabularInline):
    model = Receivable
    extra = 0
    fields = ("installment", "amount", "paid_amount", "due_date", "status", "paid_at")
    readonly_fields = fields


class PaymentInline(ReadOnlyAdminMixin, admin.TabularInline):
    model = Payment
    extra = 0
    fields = ("method", "amount", "fee_amount", "fee_absorber", "paid_at")
    readonly_fields = fields


# ======================================================
# SALE ADMIN
# ======================================================


@admin.register(Sale)
class SaleAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = (
        "invoice_no",
        "client",
        "status",
        "total_amount",
        "paid_amount",
        "installment_plan",
        "created_at",
    )
    search_fields = ("invoice_no", "client__name")
    list_filter = ("status", "created_at")
    inlines = [SaleItemInline, ReceivableInline, PaymentInline]


# ======================================================
# RECEIVABLE ADMIN
# ======================================================


@admin.register(Receivable)
class ReceivableAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ("sale", "installment", "amount", "paid_amount", "due_date", "status")
    search_fields = ("sale__invoice_no", "sale__client__name")
    list_filter = ("status", "due_date")
