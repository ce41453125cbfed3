# sales/apps.py

"""
SALES APP CONFIG

Installment ledger core:
- Sale / SaleItem / Receivable / Payment models
- Schedule, amendment and payment services
"""

from django.apps import AppConfig


class SalesConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "sales"
    verbose_name = "Sales & Installments"
