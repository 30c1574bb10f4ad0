"""Tests for ITN reconciliation against the order store."""

import asyncio
import uuid

import pytest
from conftest import PAYFAST_IP, UNTRUSTED_IP, FakeNotifier, itn_body, itn_pairs

from storefront.gateways.payfast.verify import NotificationVerifier
from storefront.services.order_service import order_service
from storefront.services.reconciliation_service import ReconciliationHandler, ReconciliationOutcome


@pytest.fixture
def reload(session_factory):
    async def _reload(order):
        async with session_factory() as session:
            return await order_service.get_order(session, order.id)

    return _reload


def handler_with(handler: ReconciliationHandler, **changes) -> ReconciliationHandler:
    values = {
        "config": handler.config,
        "verifier": handler.verifier,
        "notifier": handler.notifier,
        "session_factory": handler.session_factory,
        "notify_timeout": handler.notify_timeout,
        "request_timeout": handler.request_timeout,
    }
    values.update(changes)
    return ReconciliationHandler(**values)


class TestCompletedPayment:
    async def test_paid_order_end_to_end(self, handler, notifier, make_order, reload):
        order = await make_order(total="149.50")

        outcome = await handler.handle(itn_body(itn_pairs(str(order.id))), PAYFAST_IP)

        assert outcome.status == ReconciliationOutcome.APPLIED
        assert outcome.order_status == "paid"
        assert outcome.payment_status == "completed"
        assert outcome.notified

        stored = await reload(order)
        assert stored.status == "paid"
        assert stored.payment.status == "completed"
        assert stored.payment.transaction_id == "1089250"
        assert stored.payment.paid_at is not None
        assert stored.payment.meta["itn"]["amount_gross"] == "149.50"
        assert stored.payment.meta["itn"]["custom_str2"] == ""
        assert stored.payment.meta["source_ip"] == PAYFAST_IP
        assert "verified_at" in stored.payment.meta
        assert notifier.sent == [(str(order.id), "1089250")]

    async def test_amount_mismatch_changes_nothing(self, handler, notifier, make_order, reload):
        order = await make_order(total="149.50")
        body = itn_body(itn_pairs(str(order.id), amount_gross="200.00"))

        outcome = await handler.handle(body, PAYFAST_IP)

        assert outcome.status == ReconciliationOutcome.REJECTED
        assert outcome.reason == "amount_mismatch"

        stored = await reload(order)
        assert stored.status == "pending"
        assert stored.payment.status == "initiated"
        assert stored.payment.transaction_id is None
        assert stored.payment.meta is None
        assert notifier.sent == []

    async def test_untrusted_origin_changes_nothing(self, handler, notifier, make_order, reload):
        order = await make_order()

        outcome = await handler.handle(itn_body(itn_pairs(str(order.id))), UNTRUSTED_IP)

        assert outcome.status == ReconciliationOutcome.REJECTED
        assert outcome.reason == "untrusted_origin"
        assert (await reload(order)).status == "pending"
        assert notifier.sent == []


class TestReplays:
    async def test_replay_is_a_no_op(self, handler, notifier, make_order, reload):
        order = await make_order()
        body = itn_body(itn_pairs(str(order.id)))

        first = await handler.handle(body, PAYFAST_IP)
        paid_at = (await reload(order)).payment.paid_at
        second = await handler.handle(body, PAYFAST_IP)

        assert first.status == ReconciliationOutcome.APPLIED
        assert second.status == ReconciliationOutcome.DUPLICATE
        assert second.order_status == "paid"
        assert (await reload(order)).payment.paid_at == paid_at
        assert len(notifier.sent) == 1

    async def test_paid_order_ignores_later_cancellation(self, handler, make_order, reload):
        order = await make_order()
        await handler.handle(itn_body(itn_pairs(str(order.id))), PAYFAST_IP)

        outcome = await handler.handle(
            itn_body(itn_pairs(str(order.id), payment_status="CANCELLED")), PAYFAST_IP
        )

        assert outcome.status == ReconciliationOutcome.DUPLICATE
        stored = await reload(order)
        assert stored.status == "paid"
        assert stored.payment.status == "completed"

    async def test_cancelled_order_ignores_later_completion(
        self, handler, notifier, make_order, reload
    ):
        order = await make_order()
        cancelled = await handler.handle(
            itn_body(itn_pairs(str(order.id), payment_status="CANCELLED")), PAYFAST_IP
        )

        outcome = await handler.handle(itn_body(itn_pairs(str(order.id))), PAYFAST_IP)

        assert cancelled.status == ReconciliationOutcome.APPLIED
        assert outcome.status == ReconciliationOutcome.DUPLICATE
        stored = await reload(order)
        assert stored.status == "cancelled"
        assert stored.payment.status == "failed"
        assert notifier.sent == []

    async def test_concurrent_deliveries_pay_once(self, handler, notifier, make_order, reload):
        order = await make_order()
        body = itn_body(itn_pairs(str(order.id)))

        outcomes = await asyncio.gather(*(handler.handle(body, PAYFAST_IP) for _ in range(5)))

        statuses = [outcome.status for outcome in outcomes]
        assert statuses.count(ReconciliationOutcome.APPLIED) == 1
        assert set(statuses) <= {
            ReconciliationOutcome.APPLIED,
            ReconciliationOutcome.DUPLICATE,
            ReconciliationOutcome.ERROR,
        }
        assert (await reload(order)).status == "paid"
        assert len(notifier.sent) == 1


class TestOtherStatuses:
    async def test_failed_payment_keeps_order_pending(self, handler, notifier, make_order, reload):
        order = await make_order()

        outcome = await handler.handle(
            itn_body(itn_pairs(str(order.id), payment_status="FAILED")), PAYFAST_IP
        )

        assert outcome.status == ReconciliationOutcome.APPLIED
        stored = await reload(order)
        assert stored.status == "pending"
        assert stored.payment.status == "failed"
        assert stored.payment.paid_at is None
        assert notifier.sent == []

    async def test_retry_after_failure_completes(self, handler, notifier, make_order, reload):
        order = await make_order()
        await handler.handle(
            itn_body(itn_pairs(str(order.id), payment_status="FAILED", pf_payment_id="1")),
            PAYFAST_IP,
        )

        outcome = await handler.handle(
            itn_body(itn_pairs(str(order.id), pf_payment_id="2")), PAYFAST_IP
        )

        assert outcome.status == ReconciliationOutcome.APPLIED
        stored = await reload(order)
        assert stored.status == "paid"
        assert stored.payment.status == "completed"
        assert stored.payment.transaction_id == "2"
        assert notifier.sent == [(str(order.id), "2")]

    async def test_unrecognised_status_leaves_order_pending(self, handler, make_order, reload):
        order = await make_order()

        outcome = await handler.handle(
            itn_body(itn_pairs(str(order.id), payment_status="PENDING")), PAYFAST_IP
        )

        assert outcome.status == ReconciliationOutcome.APPLIED
        stored = await reload(order)
        assert stored.status == "pending"
        assert stored.payment.status == "initiated"


class TestIgnored:
    async def test_missing_order_id(self, handler):
        pairs = [(k, v) for k, v in itn_pairs("") if k != "m_payment_id"]

        outcome = await handler.handle(itn_body(pairs), PAYFAST_IP)

        assert outcome.status == ReconciliationOutcome.IGNORED

    async def test_malformed_order_id(self, handler):
        outcome = await handler.handle(itn_body(itn_pairs("ORDER-42")), PAYFAST_IP)

        assert outcome.status == ReconciliationOutcome.IGNORED

    async def test_unknown_order(self, handler):
        outcome = await handler.handle(itn_body(itn_pairs(str(uuid.uuid4()))), PAYFAST_IP)

        assert outcome.status == ReconciliationOutcome.IGNORED
        assert outcome.reason == "unknown_order"

    async def test_order_without_payment(self, handler, make_order):
        order = await make_order(payment_status=None)

        outcome = await handler.handle(itn_body(itn_pairs(str(order.id))), PAYFAST_IP)

        assert outcome.status == ReconciliationOutcome.IGNORED

    async def test_empty_body(self, handler):
        outcome = await handler.handle(b"", PAYFAST_IP)

        assert outcome.status == ReconciliationOutcome.IGNORED


class TestFailureContainment:
    async def test_email_failure_keeps_payment(self, handler, make_order, reload):
        handler = handler_with(handler, notifier=FakeNotifier(fail=True))
        order = await make_order()

        outcome = await handler.handle(itn_body(itn_pairs(str(order.id))), PAYFAST_IP)

        assert outcome.status == ReconciliationOutcome.APPLIED
        assert not outcome.notified
        assert (await reload(order)).status == "paid"

    async def test_slow_email_is_abandoned(self, handler, make_order, reload):
        notifier = FakeNotifier(delay=2.0)
        handler = handler_with(handler, notifier=notifier, notify_timeout=0.1)
        order = await make_order()

        outcome = await handler.handle(itn_body(itn_pairs(str(order.id))), PAYFAST_IP)

        assert outcome.status == ReconciliationOutcome.APPLIED
        assert not outcome.notified
        assert notifier.sent == []
        assert (await reload(order)).status == "paid"

    async def test_request_timeout(self, handler, payfast_config, make_order, reload):
        async def slow_resolver(hostname):
            await asyncio.sleep(5)
            return set()

        verifier = NotificationVerifier(payfast_config, resolver=slow_resolver, dns_timeout=5)
        handler = handler_with(handler, verifier=verifier, request_timeout=0.1)
        order = await make_order()

        outcome = await handler.handle(itn_body(itn_pairs(str(order.id))), UNTRUSTED_IP)

        assert outcome.status == ReconciliationOutcome.ERROR
        assert outcome.reason == "timeout"
        assert (await reload(order)).status == "pending"

    async def test_email_is_outside_request_budget(
        self, handler, payfast_config, make_order, reload
    ):
        async def slow_resolver(hostname):
            await asyncio.sleep(0.3)
            return {UNTRUSTED_IP}

        verifier = NotificationVerifier(payfast_config, resolver=slow_resolver, dns_timeout=1)
        notifier = FakeNotifier(delay=0.4)
        handler = handler_with(
            handler, verifier=verifier, notifier=notifier, request_timeout=0.5, notify_timeout=1.0
        )
        order = await make_order()

        outcome = await handler.handle(itn_body(itn_pairs(str(order.id))), UNTRUSTED_IP)

        assert outcome.status == ReconciliationOutcome.APPLIED
        assert outcome.notified
        assert len(notifier.sent) == 1
        assert (await reload(order)).status == "paid"

    async def test_unexpected_error_is_contained(self, handler, make_order, monkeypatch):
        async def explode(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(handler.verifier, "validate", explode)
        order = await make_order()

        outcome = await handler.handle(itn_body(itn_pairs(str(order.id))), PAYFAST_IP)

        assert outcome.status == ReconciliationOutcome.ERROR
        assert outcome.reason == "RuntimeError"
