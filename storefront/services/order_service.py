"""Order and payment record store.

Reads and guarded writes over ``orders`` and ``payments``. The ITN pipeline
never owns these records; it only goes through the operations here.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.attributes import set_committed_value

from storefront.domain.order_state import assert_order_transition, is_terminal_order_state
from storefront.domain.payment_state import can_transition_payment
from storefront.models.order import Order, OrderItem
from storefront.models.payment import Payment
from storefront.schemas.order import OrderCreate

TWO_PLACES = Decimal("0.01")


def parse_order_id(order_id: str | UUID) -> UUID | None:
    """Parse an order id, ``None`` if it is not a UUID."""
    if isinstance(order_id, UUID):
        return order_id
    try:
        return UUID(str(order_id).strip())
    except ValueError:
        return None


@dataclass
class StatusUpdate:
    """Result of applying a verified gateway status to an order."""

    applied: bool
    previous_order_status: str
    order_status: str
    payment_status: str

    @property
    def newly_paid(self) -> bool:
        return self.applied and self.previous_order_status != "paid" and self.order_status == "paid"


class OrderService:
    """Service for order and payment persistence."""

    async def create_order(self, db: AsyncSession, data: OrderCreate) -> Order:
        """Place a pending order with an initiated Payfast payment.

        Args:
            db: Database session
            data: Checkout details

        Returns:
            Order: Created order with items and payment loaded
        """
        subtotal = sum(
            (item.unit_price * item.quantity for item in data.items), Decimal("0.00")
        ).quantize(TWO_PLACES)
        total = max(subtotal + data.shipping_cost - data.discount_total, Decimal("0.00"))

        order = Order(
            status="pending",
            currency=data.currency.upper(),
            subtotal=subtotal,
            shipping_cost=data.shipping_cost,
            discount_total=data.discount_total,
            total_amount=total.quantize(TWO_PLACES),
            customer_email=str(data.email),
            contact_name=data.full_name.strip(),
            contact_phone=data.phone,
            items=[
                OrderItem(
                    product_name=item.product_name,
                    sku=item.sku,
                    quantity=item.quantity,
                    price_at_purchase=item.unit_price,
                )
                for item in data.items
            ],
            payment=Payment(method="payfast", status="initiated"),
        )
        db.add(order)
        await db.flush()
        return order

    async def get_order(self, db: AsyncSession, order_id: str | UUID) -> Order | None:
        """Get an order with its items and payment."""
        oid = parse_order_id(order_id)
        if oid is None:
            return None

        result = await db.execute(
            select(Order)
            .where(Order.id == oid)
            .options(selectinload(Order.items), selectinload(Order.payment))
        )
        return result.scalar_one_or_none()

    async def apply_gateway_status(
        self,
        db: AsyncSession,
        order_id: UUID,
        order_status: str,
        payment_status: str,
        transaction_id: str | None,
        audit: dict[str, Any],
    ) -> StatusUpdate | None:
        """Apply a verified gateway status under a per-order guard.

        The order row is locked and the status write is conditional on the
        order still being in the state that was read, so concurrent or
        replayed deliveries produce at most one transition. A terminal order
        is left untouched.

        Returns:
            StatusUpdate, or None if the order or its payment is gone
        """
        result = await db.execute(
            select(Order)
            .where(Order.id == order_id)
            .options(selectinload(Order.payment))
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        order = result.scalar_one_or_none()
        if order is None or order.payment is None:
            return None

        payment = order.payment
        previous = order.status

        if is_terminal_order_state(previous):
            return StatusUpdate(
                applied=False,
                previous_order_status=previous,
                order_status=previous,
                payment_status=payment.status,
            )

        assert_order_transition(previous, order_status)

        if order_status != previous:
            cas = await db.execute(
                update(Order)
                .where(Order.id == order.id, Order.status == previous)
                .values(status=order_status)
                .execution_options(synchronize_session=False)
            )
            if cas.rowcount != 1:
                return StatusUpdate(
                    applied=False,
                    previous_order_status=previous,
                    order_status=previous,
                    payment_status=payment.status,
                )
            set_committed_value(order, "status", order_status)

        if can_transition_payment(payment.status, payment_status):
            payment.status = payment_status
        if transaction_id:
            payment.transaction_id = transaction_id
        if payment.status == "completed" and payment.paid_at is None:
            payment.paid_at = datetime.now(UTC)
        payment.meta = audit

        await db.flush()
        return StatusUpdate(
            applied=True,
            previous_order_status=previous,
            order_status=order.status,
            payment_status=payment.status,
        )


# Singleton instance
order_service = OrderService()
