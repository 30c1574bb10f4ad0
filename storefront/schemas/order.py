"""Order-related Pydantic schemas."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class OrderItemCreate(BaseModel):
    """Line item submitted at checkout."""

    product_name: str = Field(..., min_length=1, max_length=255)
    sku: str | None = Field(None, max_length=100)
    quantity: int = Field(1, ge=1)
    unit_price: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)


class OrderCreate(BaseModel):
    """Schema for placing an order."""

    email: EmailStr
    full_name: str = Field(..., min_length=1, max_length=200)
    phone: str | None = Field(None, max_length=30)
    currency: str = Field("ZAR", min_length=3, max_length=3)
    items: list[OrderItemCreate] = Field(..., min_length=1)
    shipping_cost: Decimal = Field(Decimal("0.00"), ge=0, decimal_places=2)
    discount_total: Decimal = Field(Decimal("0.00"), ge=0, decimal_places=2)


class OrderCreatedResponse(BaseModel):
    """Schema returned after placing an order."""

    order_id: UUID
    payment_id: UUID
    status: str
    total_amount: Decimal
    currency: str


class OrderItemResponse(BaseModel):
    """Schema for an order line item."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    product_name: str
    sku: str | None
    quantity: int
    price_at_purchase: Decimal


class OrderDetailsResponse(BaseModel):
    """Order details shown on the checkout success/cancel pages."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    reference: str
    status: str
    currency: str
    subtotal: Decimal
    shipping_cost: Decimal
    discount_total: Decimal
    total_amount: Decimal
    payment_status: str | None = None
    created_at: datetime | None = None
    items: list[OrderItemResponse]
