"""Payfast ITN reconciliation.

Turns a raw ITN delivery into at most one order/payment transition. Payfast
retries until it gets a 200, so nothing here raises: every outcome, including
failures, is logged and reported back as a ``ReconciliationOutcome``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Protocol
from urllib.parse import parse_qsl

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront.gateways.payfast.config import PayfastConfig
from storefront.gateways.payfast.status import map_order_status, map_payment_status
from storefront.gateways.payfast.verify import NotificationVerifier
from storefront.models.order import Order
from storefront.services.order_service import order_service, parse_order_id

logger = logging.getLogger(__name__)

DEFAULT_NOTIFY_TIMEOUT = 10.0
DEFAULT_REQUEST_TIMEOUT = 20.0


class PaymentNotifier(Protocol):
    async def send_payment_confirmation(self, order: Order, transaction_id: str | None) -> bool:
        ...


@dataclass
class ReconciliationOutcome:
    """What a single ITN delivery did."""

    IGNORED = "ignored"
    REJECTED = "rejected"
    DUPLICATE = "duplicate"
    APPLIED = "applied"
    ERROR = "error"

    status: str
    order_id: str | None = None
    reason: str | None = None
    order_status: str | None = None
    payment_status: str | None = None
    notified: bool = False


class ReconciliationHandler:
    """Verifies ITN deliveries and applies them to the order store."""

    def __init__(
        self,
        config: PayfastConfig,
        verifier: NotificationVerifier,
        notifier: PaymentNotifier,
        session_factory: async_sessionmaker[AsyncSession],
        notify_timeout: float = DEFAULT_NOTIFY_TIMEOUT,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ) -> None:
        self.config = config
        self.verifier = verifier
        self.notifier = notifier
        self.session_factory = session_factory
        self.notify_timeout = notify_timeout
        self.request_timeout = request_timeout

    async def handle(self, raw_body: bytes, client_ip: str) -> ReconciliationOutcome:
        """Process one ITN delivery.

        Args:
            raw_body: Form-encoded request body, as received
            client_ip: Caller's address

        Returns:
            ReconciliationOutcome: never raises
        """
        try:
            outcome, confirmation = await asyncio.wait_for(
                self._process(raw_body, client_ip), timeout=self.request_timeout
            )
        except TimeoutError:
            logger.error(f"ITN from {client_ip} not processed within {self.request_timeout}s")
            return ReconciliationOutcome(ReconciliationOutcome.ERROR, reason="timeout")
        except Exception as e:
            logger.exception(f"ITN from {client_ip} failed: {e}")
            return ReconciliationOutcome(ReconciliationOutcome.ERROR, reason=type(e).__name__)

        # The transition is committed by now; the email has its own budget
        if confirmation is not None:
            outcome.notified = await self._send_confirmation(*confirmation)
        return outcome

    async def _process(
        self, raw_body: bytes, client_ip: str
    ) -> tuple[ReconciliationOutcome, tuple[Order, str | None] | None]:
        pairs = parse_qsl(raw_body.decode("utf-8", errors="replace"), keep_blank_values=True)
        fields = dict(pairs)

        raw_order_id = (fields.get("m_payment_id") or "").strip()
        order_id = parse_order_id(raw_order_id) if raw_order_id else None
        if order_id is None:
            logger.warning(f"ITN from {client_ip} ignored: no usable m_payment_id")
            outcome = ReconciliationOutcome(ReconciliationOutcome.IGNORED, reason="missing_order_id")
            return outcome, None

        async with self.session_factory() as db:
            order = await order_service.get_order(db, order_id)
            if order is None or order.payment is None:
                logger.warning(f"ITN for unknown order {order_id} ignored")
                return ReconciliationOutcome(
                    ReconciliationOutcome.IGNORED, order_id=str(order_id), reason="unknown_order"
                ), None

            result = await self.verifier.validate(pairs, client_ip, order.total_amount)
            if not result.valid:
                reason = result.reason.value if result.reason else "invalid"
                logger.warning(f"ITN for order {order_id} rejected: {reason}")
                return ReconciliationOutcome(
                    ReconciliationOutcome.REJECTED, order_id=str(order_id), reason=reason
                ), None

            notification = result.notification
            gateway_status = notification.payment_status
            transaction_id = notification.pf_payment_id

            update = await order_service.apply_gateway_status(
                db,
                order.id,
                order_status=map_order_status(gateway_status),
                payment_status=map_payment_status(gateway_status),
                transaction_id=transaction_id,
                audit=self._audit(pairs, client_ip),
            )
            if update is None:
                await db.rollback()
                logger.warning(f"Order {order_id} disappeared during ITN processing")
                return ReconciliationOutcome(
                    ReconciliationOutcome.IGNORED, order_id=str(order_id), reason="unknown_order"
                ), None
            if not update.applied:
                await db.rollback()
                logger.info(
                    f"Duplicate ITN for order {order_id} ({gateway_status}); "
                    f"order already {update.order_status}"
                )
                return ReconciliationOutcome(
                    ReconciliationOutcome.DUPLICATE,
                    order_id=str(order_id),
                    order_status=update.order_status,
                    payment_status=update.payment_status,
                ), None

            await db.commit()

        logger.info(
            f"ITN applied to order {order_id}: {gateway_status} -> "
            f"order {update.order_status}, payment {update.payment_status}"
        )

        outcome = ReconciliationOutcome(
            ReconciliationOutcome.APPLIED,
            order_id=str(order_id),
            order_status=update.order_status,
            payment_status=update.payment_status,
        )
        return outcome, (order, transaction_id) if update.newly_paid else None

    async def _send_confirmation(self, order: Order, transaction_id: str | None) -> bool:
        try:
            sent = await asyncio.wait_for(
                self.notifier.send_payment_confirmation(order, transaction_id),
                timeout=self.notify_timeout,
            )
        except TimeoutError:
            logger.warning(
                f"Payment confirmation for order {order.id} timed out after {self.notify_timeout}s"
            )
            return False
        except Exception as e:
            logger.error(f"Payment confirmation for order {order.id} failed: {e}")
            return False

        if not sent:
            logger.warning(f"Payment confirmation for order {order.id} was not sent")
        return bool(sent)

    @staticmethod
    def _audit(pairs: list[tuple[str, str]], client_ip: str) -> dict[str, Any]:
        return {
            "itn": dict(pairs),
            "source_ip": client_ip,
            "verified_at": datetime.now(UTC).isoformat(),
        }
