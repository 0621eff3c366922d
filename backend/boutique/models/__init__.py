from .catalog import Location, Category, Supplier, Product, ProductVariant
from .inventory import InventoryRecord, StockMovement, MOVEMENT_TYPES
from .customers import Customer
from .orders import (
    Order, OrderItem, Payment, DocumentSequence,
    ORDER_STATUS_COMPLETED, ORDER_STATUS_LAYAWAY, ORDER_STATUS_CANCELLED, ORDER_STATUS_REFUNDED,
    PAYMENT_STATUS_PENDING, PAYMENT_STATUS_PARTIAL, PAYMENT_STATUS_PAID, PAYMENT_STATUS_REFUNDED,
    RECOGNIZED_ORDER_STATUSES,
)
from .purchasing import PurchaseOrder, PurchaseOrderItem

__all__ = [
    'Location', 'Category', 'Supplier', 'Product', 'ProductVariant',
    'InventoryRecord', 'StockMovement', 'MOVEMENT_TYPES',
    'Customer',
    'Order', 'OrderItem', 'Payment', 'DocumentSequence',
    'PurchaseOrder', 'PurchaseOrderItem',
    'ORDER_STATUS_COMPLETED', 'ORDER_STATUS_LAYAWAY', 'ORDER_STATUS_CANCELLED', 'ORDER_STATUS_REFUNDED',
    'PAYMENT_STATUS_PENDING', 'PAYMENT_STATUS_PARTIAL', 'PAYMENT_STATUS_PAID', 'PAYMENT_STATUS_REFUNDED',
    'RECOGNIZED_ORDER_STATUSES',
]
