from .auth import User, SessionToken
from .inventory import ProductCategory, Product, StockRecord, InventoryTransaction
from .customers import Customer
from .sales import Sale, SaleItem
from .purchasing import PurchaseOrder, PurchaseOrderItem
from .transfers import Transfer
from .requests import DeductionRequest

__all__ = [
    'User', 'SessionToken',
    'ProductCategory', 'Product', 'StockRecord', 'InventoryTransaction',
    'Customer',
    'Sale', 'SaleItem',
    'PurchaseOrder', 'PurchaseOrderItem',
    'Transfer',
    'DeductionRequest',
]
