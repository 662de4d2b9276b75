from .customers import Customer, CustomerTransaction
from .inventory import InventoryItem, InventoryTransaction
from .sales import Sale, SaleItem

__all__ = [
    'Customer', 'CustomerTransaction',
    'InventoryItem', 'InventoryTransaction',
    'Sale', 'SaleItem',
]
