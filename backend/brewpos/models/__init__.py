from .catalog import Product, ProductVariant, StockLog
from .shifts import PosShift
from .orders import Order, OrderItem, OrderItemVariant, OrderStatusLog, OrderSequence
from .carts import CartItem, CartItemVariant

__all__ = [
    'Product', 'ProductVariant', 'StockLog',
    'PosShift',
    'Order', 'OrderItem', 'OrderItemVariant', 'OrderStatusLog', 'OrderSequence',
    'CartItem', 'CartItemVariant',
]
