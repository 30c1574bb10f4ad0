"""Pydantic schemas for API validation."""

from storefront.schemas.order import (
    OrderCreate,
    OrderCreatedResponse,
    OrderDetailsResponse,
    OrderItemCreate,
    OrderItemResponse,
)
from storefront.schemas.payfast import CheckoutPayloadResponse, ITNAcknowledgement

__all__ = [
    # Order
    "OrderCreate",
    "OrderCreatedResponse",
    "OrderDetailsResponse",
    "OrderItemCreate",
    "OrderItemResponse",
    # Payfast
    "CheckoutPayloadResponse",
    "ITNAcknowledgement",
]
