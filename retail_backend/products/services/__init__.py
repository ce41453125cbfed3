from .stock import InsufficientStockError, deduct_stock, restore_stock_for_sale

__all__ = [
    "InsufficientStockError",
    "deduct_stock",
    "restore_stock_for_sale",
]
