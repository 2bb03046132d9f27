from .base import Base
from .banner import Banner
from .coupon_usage import CouponUsage
from .notification import Notification
from .order import Order, OrderItem
from .product import Product
from .setting import Setting
from .transaction import Transaction
from .user import User
from .wishlist import WishlistItem

__all__ = [
    "Base",
    "Banner",
    "CouponUsage",
    "Notification",
    "Order",
    "OrderItem",
    "Product",
    "Setting",
    "Transaction",
    "User",
    "WishlistItem",
]
