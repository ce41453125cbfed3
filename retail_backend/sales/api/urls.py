# sales/api/urls.py

"""
SALES API URLS (CANONICAL)

Provides:
- /api/sales/sales/                       list + checkout
- /api/sales/sales/<uuid>/                retrieve
- /api/sales/sales/<uuid>/add-items/      amendment
- /api/sales/sales/<uuid>/payments/       list + sweep payment
- /api/sales/sales/<uuid>/reschedule/
- /api/sales/sales/<uuid>/cancel/
- /api/sales/sales/<uuid>/receivables/
- /api/sales/receivables/                 filtered installments
- /api/sales/receivables/<uuid>/pay/
- /api/sales/receivables/summary/
"""

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from sales.api.viewsets.receivable import ReceivableViewSet
from sales.api.viewsets.sale import SaleViewSet

router = DefaultRouter()

router.register(r"receivables", ReceivableViewSet, basename="receivables")
router.register(r"sales", SaleViewSet, basename="sales")

urlpatterns = [
    path("", include(router.urls)),
]
