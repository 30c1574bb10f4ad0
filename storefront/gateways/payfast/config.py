"""Payfast merchant credentials and endpoints.

Built once from application settings and passed explicitly to the payload
builder and the ITN verifier, so both can run against fixture credentials.
"""

from __future__ import annotations

from dataclasses import dataclass

from storefront.config import Settings

PROCESS_URLS = {
    "production": "https://www.payfast.co.za/eng/process",
    "sandbox": "https://sandbox.payfast.co.za/eng/process",
}

VALIDATE_URLS = {
    "production": "https://www.payfast.co.za/eng/query/validate",
    "sandbox": "https://sandbox.payfast.co.za/eng/query/validate",
}

# Published Payfast outbound ranges
TRUSTED_NETWORKS: tuple[str, ...] = (
    "197.97.145.144/28",
    "41.74.179.192/27",
    "102.216.36.0/28",
    "144.126.193.139/32",
)

# Payfast rotates addresses behind these names, so they are resolved per ITN
TRUSTED_HOSTNAMES: tuple[str, ...] = (
    "www.payfast.co.za",
    "sandbox.payfast.co.za",
    "w1w.payfast.co.za",
    "w2w.payfast.co.za",
)

NOTIFY_PATH = "/api/v1/payfast/notify"
RETURN_PATH = "/checkout-success"
CANCEL_PATH = "/checkout-cancel"


@dataclass(frozen=True)
class PayfastConfig:
    """Payfast merchant configuration."""

    merchant_id: str
    merchant_key: str
    passphrase: str | None = None
    is_production: bool = False
    app_url: str = "http://localhost:3000"
    remote_validation: bool = False
    trusted_networks: tuple[str, ...] = TRUSTED_NETWORKS
    trusted_hostnames: tuple[str, ...] = TRUSTED_HOSTNAMES

    @classmethod
    def from_settings(cls, settings: Settings) -> "PayfastConfig":
        return cls(
            merchant_id=settings.payfast_merchant_id.strip(),
            merchant_key=settings.payfast_merchant_key.strip(),
            passphrase=settings.payfast_passphrase or None,
            is_production=settings.payfast_environment == "production",
            app_url=settings.app_url,
            remote_validation=settings.payfast_remote_validation,
        )

    @property
    def mode(self) -> str:
        return "production" if self.is_production else "sandbox"

    @property
    def process_url(self) -> str:
        return PROCESS_URLS[self.mode]

    @property
    def validate_url(self) -> str:
        return VALIDATE_URLS[self.mode]

    @property
    def base_url(self) -> str:
        return self.app_url.rstrip("/")

    @property
    def notify_url(self) -> str:
        return f"{self.base_url}{NOTIFY_PATH}"

    def return_url(self, order_id: str) -> str:
        return f"{self.base_url}{RETURN_PATH}?order_id={order_id}"

    def cancel_url(self, order_id: str) -> str:
        return f"{self.base_url}{CANCEL_PATH}?order_id={order_id}"
