from .catalog import Product, ProductPrice, ProductVariant
from .orders import Order, OrderItem, OrderLog, CallLog
from .inventory import StockMovement
from .security import SecurityEvent, BlacklistEntry

__all__ = [
    'Product', 'ProductPrice', 'ProductVariant',
    'Order', 'OrderItem', 'OrderLog', 'CallLog',
    'StockMovement',
    'SecurityEvent', 'BlacklistEntry',
]
