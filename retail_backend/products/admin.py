# products/admin.py
"""
=====================================================
PATH: products/admin.py
=====================================================

Admin rules (audit-safe stock):

- Product catalog fields are editable.
- `stock` is entered once on create; afterwards it changes only through the
  stock service, which writes a StockMovement for every change.
- StockMovement rows are immutable and cannot be edited or deleted.
"""

from __future__ import annotations

from django.contrib import admin

from products.models import Product, StockMovement


class StockMovementInline(admin.TabularInline):
    model = StockMovement
    extra = 0
    can_delete = False
    fields = (
        "reason",
        "movement_type",
        "quantity",
        "previous_stock",
        "new_stock",
        "sale",
        "created_at",
    )
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("name", "sku", "sale_price", "cost_price", "stock", "is_active")
    search_fields = ("name", "sku")
    list_filter = ("is_active",)
    inlines = [StockMovementInline]

    def get_readonly_fields(self, request, obj=None):
        # Opening stock is set on create; afterwards only the stock service moves it.
        if obj is None:
            return ("created_at", "updated_at")
        return ("stock", "created_at", "updated_at")
