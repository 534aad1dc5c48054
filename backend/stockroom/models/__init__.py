from .auth import User, user_locations
from .catalog import Location, Category, Brand, Supplier, Product, ProductAuditEntry
from .inventory import InventoryRecord, InventoryAuditEntry
from .adjustments import StockAdjustment
from .documents import StockTransfer, DocumentSequence
from .purchases import Purchase, PurchaseLine, PurchasePayment
from .sales import Sale, SaleLine, Income
from .notifications import Notification

__all__ = [
    'User', 'user_locations',
    'Location', 'Category', 'Brand', 'Supplier', 'Product', 'ProductAuditEntry',
    'InventoryRecord', 'InventoryAuditEntry',
    'StockAdjustment',
    'StockTransfer', 'DocumentSequence',
    'Purchase', 'PurchaseLine', 'PurchasePayment',
    'Sale', 'SaleLine', 'Income',
    'Notification',
]
