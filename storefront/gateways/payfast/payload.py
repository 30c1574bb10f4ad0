"""Payfast checkout payload construction."""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.exceptions import (
    InvalidOrderStateError,
    OrderNotFoundError,
    PaymentRecordMissingError,
)
from storefront.gateways.payfast.config import PayfastConfig
from storefront.gateways.payfast.signature import SIGNATURE_FIELD, sign
from storefront.models.order import Order
from storefront.services.order_service import order_service

logger = logging.getLogger(__name__)

CheckoutPayload = list[tuple[str, str]]

TWO_PLACES = Decimal("0.01")


def format_amount(amount: Decimal | str | int | float) -> str:
    """Format an amount with exactly two decimals, independent of locale."""
    return str(Decimal(str(amount)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP))


def split_contact_name(contact_name: str | None) -> tuple[str | None, str | None]:
    """Split a contact name into Payfast's first/last name fields."""
    parts = (contact_name or "").split()
    if not parts:
        return None, None
    return parts[0], " ".join(parts[1:]) or None


def build_checkout_payload(order: Order, config: PayfastConfig) -> CheckoutPayload:
    """Build the ordered, signed field list for the Payfast process page.

    Field order is part of the Payfast contract and is also the order the
    signature is computed over: merchant credentials, callback URLs,
    customer details, payment details, then ``signature`` last.

    Raises:
        InvalidOrderStateError: Order is not pending
        PaymentRecordMissingError: Order has no payment record
    """
    order_id = str(order.id)
    if order.status != "pending":
        raise InvalidOrderStateError(order_id, order.status)
    if order.payment is None:
        raise PaymentRecordMissingError(order_id)

    fields: CheckoutPayload = [
        ("merchant_id", config.merchant_id),
        ("merchant_key", config.merchant_key),
        ("return_url", config.return_url(order_id)),
        ("cancel_url", config.cancel_url(order_id)),
        ("notify_url", config.notify_url),
    ]

    # Customer details
    name_first, name_last = split_contact_name(order.contact_name)
    if name_first:
        fields.append(("name_first", name_first))
    if name_last:
        fields.append(("name_last", name_last))
    if order.customer_email:
        fields.append(("email_address", order.customer_email))
    if order.contact_phone:
        fields.append(("cell_number", order.contact_phone))

    # Payment details
    reference = f"ORDER-{order.reference}"
    fields.append(("m_payment_id", order_id))
    fields.append(("amount", format_amount(order.total_amount)))
    fields.append(("item_name", reference))
    fields.append(("item_description", f"Order {reference} - {order.customer_email}"))
    fields.append(("custom_str1", order_id))

    fields.append((SIGNATURE_FIELD, sign(fields, config.passphrase)))
    return fields


class PayloadBuilder:
    """Builds checkout payloads for stored orders."""

    def __init__(self, config: PayfastConfig) -> None:
        self.config = config

    async def build(self, db: AsyncSession, order_id: str) -> CheckoutPayload:
        """Load an order and build its checkout payload.

        Args:
            db: Database session
            order_id: Order identifier

        Returns:
            Ordered (name, value) pairs ending with ``signature``

        Raises:
            PayloadBuildError: Order missing, not pending, or without payment
        """
        order = await order_service.get_order(db, order_id)
        if order is None:
            raise OrderNotFoundError(str(order_id))

        try:
            payload = build_checkout_payload(order, self.config)
        except (InvalidOrderStateError, PaymentRecordMissingError) as e:
            logger.warning(f"Checkout payload for order {order_id} refused: {e.reason}")
            raise

        logger.info(f"Built Payfast checkout payload for order {order_id} ({len(payload)} fields)")
        return payload
