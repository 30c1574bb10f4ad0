"""API dependencies for the checkout and ITN endpoints."""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from storefront.config import settings
from storefront.database import async_session_maker, get_db
from storefront.gateways.payfast.config import PayfastConfig
from storefront.gateways.payfast.payload import PayloadBuilder
from storefront.gateways.payfast.verify import NotificationVerifier
from storefront.services.notification_service import notification_service
from storefront.services.reconciliation_service import ReconciliationHandler

__all__ = [
    "get_db",
    "get_payfast_config",
    "get_payload_builder",
    "get_notification_verifier",
    "get_reconciliation_handler",
]


@lru_cache
def get_payfast_config() -> PayfastConfig:
    """Payfast configuration built once from settings."""
    return PayfastConfig.from_settings(settings)


def get_payload_builder(
    config: Annotated[PayfastConfig, Depends(get_payfast_config)],
) -> PayloadBuilder:
    return PayloadBuilder(config)


def get_notification_verifier(
    config: Annotated[PayfastConfig, Depends(get_payfast_config)],
) -> NotificationVerifier:
    return NotificationVerifier(config, dns_timeout=settings.payfast_dns_timeout_seconds)


def get_reconciliation_handler(
    config: Annotated[PayfastConfig, Depends(get_payfast_config)],
    verifier: Annotated[NotificationVerifier, Depends(get_notification_verifier)],
) -> ReconciliationHandler:
    return ReconciliationHandler(
        config=config,
        verifier=verifier,
        notifier=notification_service,
        session_factory=async_session_maker,
        notify_timeout=settings.email_timeout_seconds,
        request_timeout=settings.payfast_itn_timeout_seconds,
    )
