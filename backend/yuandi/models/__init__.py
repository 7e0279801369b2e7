from .auth import User
from .inventory import Product, InventoryMovement
from .cashbook import CashbookEntry, ExchangeRate
from .orders import Order, OrderItem, Shipment, OrderSequence
from .system import SystemSetting, EventLog

__all__ = [
    'User',
    'Product', 'InventoryMovement',
    'CashbookEntry', 'ExchangeRate',
    'Order', 'OrderItem', 'Shipment', 'OrderSequence',
    'SystemSetting', 'EventLog',
]
