# products/apps.py

"""
PRODUCTS APP CONFIG

Catalog boundary for the ledger:
- Product prices (snapshotted into SaleItem)
- On-hand stock count + immutable StockMovement audit
"""

from django.apps import AppConfig


class ProductsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "products"
    verbose_name = "Products"
