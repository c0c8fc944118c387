from .accounts import User, AuthToken, GuestSession
from .catalog import Product, ProductVariant, Inventory, InventoryLog
from .commerce import CartItem, WishlistItem
from .orders import Order, OrderItem, OrderAddress
from .otp import OtpChallenge
from .security import SecurityEvent

__all__ = [
    'User', 'AuthToken', 'GuestSession',
    'Product', 'ProductVariant', 'Inventory', 'InventoryLog',
    'CartItem', 'WishlistItem',
    'Order', 'OrderItem', 'OrderAddress',
    'OtpChallenge',
    'SecurityEvent',
]
