from .inventory import Category, Supplier, Product, StockMovement
from .sales import Sale

__all__ = [
    'Category', 'Supplier',
    'Product', 'StockMovement',
    'Sale',
]
