"""Database model type definitions."""

from src.models.cart import Cart, CartItem
from src.models.order import AppliedDiscount, Order, OrderDetail, OrderStatus
from src.models.payment import Payment, PaymentMethod, PaymentStatus
from src.models.voucher import DiscountType, Voucher

__all__ = [
    "AppliedDiscount",
    "Cart",
    "CartItem",
    "DiscountType",
    "Order",
    "OrderDetail",
    "OrderStatus",
    "Payment",
    "PaymentMethod",
    "PaymentStatus",
    "Voucher",
]
