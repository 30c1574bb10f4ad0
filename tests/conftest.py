"""Pytest configuration and fixtures."""

import os

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["SENDGRID_API_KEY"] = ""
os.environ["ENVIRONMENT"] = "development"

import asyncio
from collections.abc import AsyncGenerator
from decimal import Decimal
from urllib.parse import urlencode

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

import storefront.models  # noqa: F401
from storefront.database import Base
from storefront.gateways.payfast.config import PayfastConfig
from storefront.gateways.payfast.signature import sign
from storefront.gateways.payfast.verify import NotificationVerifier
from storefront.models.order import Order, OrderItem
from storefront.models.payment import Payment
from storefront.services.reconciliation_service import ReconciliationHandler

MERCHANT_ID = "10000100"
MERCHANT_KEY = "46f0cd694581a"
PASSPHRASE = "jt7NOE43FZPn"
PAYFAST_IP = "197.97.145.145"
UNTRUSTED_IP = "203.0.113.9"


class FakeNotifier:
    """Records payment confirmations instead of emailing."""

    def __init__(self, fail: bool = False, delay: float = 0.0) -> None:
        self.fail = fail
        self.delay = delay
        self.sent: list[tuple[str, str | None]] = []

    async def send_payment_confirmation(self, order: Order, transaction_id: str | None) -> bool:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError("mail server unavailable")
        self.sent.append((str(order.id), transaction_id))
        return True


async def no_dns(hostname: str) -> set[str]:
    return set()


def itn_pairs(
    order_id: str,
    amount_gross: str = "149.50",
    payment_status: str = "COMPLETE",
    passphrase: str | None = PASSPHRASE,
    merchant_id: str = MERCHANT_ID,
    pf_payment_id: str = "1089250",
) -> list[tuple[str, str]]:
    """A signed ITN as Payfast would send it."""
    pairs = [
        ("m_payment_id", order_id),
        ("pf_payment_id", pf_payment_id),
        ("payment_status", payment_status),
        ("item_name", "ORDER-1A2B3C4D"),
        ("item_description", "Order ORDER-1A2B3C4D - thandi@example.com"),
        ("amount_gross", amount_gross),
        ("amount_fee", "-3.44"),
        ("amount_net", "146.06"),
        ("custom_str1", order_id),
        ("custom_str2", ""),
        ("custom_int1", ""),
        ("name_first", "Thandi"),
        ("name_last", "Mokoena"),
        ("email_address", "thandi@example.com"),
        ("merchant_id", merchant_id),
    ]
    pairs.append(("signature", sign(pairs, passphrase, exclude_shared_secret=True)))
    return pairs


def itn_body(pairs: list[tuple[str, str]]) -> bytes:
    return urlencode(pairs).encode()


@pytest.fixture
def payfast_config() -> PayfastConfig:
    return PayfastConfig(
        merchant_id=MERCHANT_ID,
        merchant_key=MERCHANT_KEY,
        passphrase=PASSPHRASE,
        app_url="https://shop.example.com",
    )


@pytest.fixture
def verifier(payfast_config: PayfastConfig) -> NotificationVerifier:
    return NotificationVerifier(payfast_config, resolver=no_dns, dns_timeout=0.5)


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """File-backed SQLite so concurrent sessions see each other's commits."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'storefront.db'}", poolclass=NullPool
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def handler(payfast_config, verifier, notifier, session_factory) -> ReconciliationHandler:
    return ReconciliationHandler(
        config=payfast_config,
        verifier=verifier,
        notifier=notifier,
        session_factory=session_factory,
        notify_timeout=0.5,
        request_timeout=5.0,
    )


@pytest.fixture
def make_order(session_factory):
    """Factory persisting an order with a single line item."""

    async def _make_order(
        total: str = "149.50",
        status: str = "pending",
        payment_status: str | None = "initiated",
        contact_name: str | None = "Thandi Mokoena",
        contact_phone: str | None = "0821234567",
    ) -> Order:
        amount = Decimal(total)
        order = Order(
            status=status,
            currency="ZAR",
            subtotal=amount,
            shipping_cost=Decimal("0.00"),
            discount_total=Decimal("0.00"),
            total_amount=amount,
            customer_email="thandi@example.com",
            contact_name=contact_name,
            contact_phone=contact_phone,
            items=[OrderItem(product_name="Rooibos Gift Box", quantity=1, price_at_purchase=amount)],
        )
        if payment_status is not None:
            order.payment = Payment(method="payfast", status=payment_status)
        async with session_factory() as session:
            session.add(order)
            await session.commit()
        return order

    return _make_order
