"""Database models."""

from storefront.models.order import Order, OrderItem
from storefront.models.payment import Payment

__all__ = [
    # Order
    "Order",
    "OrderItem",
    # Payment
    "Payment",
]
