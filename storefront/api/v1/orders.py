"""Order endpoints."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.deps import get_db
from storefront.core.exceptions import NotFoundError
from storefront.schemas.order import OrderCreate, OrderCreatedResponse, OrderDetailsResponse
from storefront.services.notification_service import notification_service
from storefront.services.order_service import order_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=OrderCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    data: OrderCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> OrderCreatedResponse:
    """Place a pending order awaiting Payfast payment."""
    order = await order_service.create_order(db, data)
    await db.commit()
    logger.info(f"Order {order.id} placed for {order.currency} {order.total_amount}")

    # Best-effort; the order stands either way
    try:
        await notification_service.send_order_confirmation(order)
    except Exception as e:
        logger.error(f"Order confirmation for {order.id} failed: {e}")

    return OrderCreatedResponse(
        order_id=order.id,
        payment_id=order.payment.id,
        status=order.status,
        total_amount=order.total_amount,
        currency=order.currency,
    )


@router.get("/{order_id}", response_model=OrderDetailsResponse)
async def get_order(
    order_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> OrderDetailsResponse:
    """Get order details for the checkout result pages."""
    order = await order_service.get_order(db, order_id)
    if not order:
        raise NotFoundError("Order", order_id)

    response = OrderDetailsResponse.model_validate(order)
    response.payment_status = order.payment.status if order.payment else None
    return response
