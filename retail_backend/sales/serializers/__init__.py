from .commands import (
    AddItemsInputSerializer,
    CancelInputSerializer,
    CreateSaleInputSerializer,
    RescheduleInputSerializer,
    SalePaymentInputSerializer,
)
from .sale import PaymentSerializer, ReceivableSerializer, SaleItemSerializer, SaleSerializer

__all__ = [
    "SaleSerializer",
    "SaleItemSerializer",
    "ReceivableSerializer",
    "PaymentSerializer",
    "CreateSaleInputSerializer",
    "AddItemsInputSerializer",
    "SalePaymentInputSerializer",
    "RescheduleInputSerializer",
    "CancelInputSerializer",
]
