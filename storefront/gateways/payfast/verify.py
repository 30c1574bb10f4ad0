"""Payfast ITN (Instant Transaction Notification) verification.

Anyone can POST to the notify URL, so nothing in a notification is trusted
until every check here has passed:

1. a signature is present
2. the signature matches the fields as transmitted (ITN mode)
   (then order id, payment status and merchant id must be present)
3. the merchant id is ours
4. the request came from a Payfast address
5. the gross amount matches the order total

Checks run in that order and stop at the first failure, each with its own
``RejectionReason``.
"""

from __future__ import annotations

import asyncio
import ipaddress
import logging
import socket
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from urllib.parse import urlencode

import httpx
from pydantic import BaseModel, ConfigDict

from storefront.gateways.payfast.config import PayfastConfig
from storefront.gateways.payfast.signature import SIGNATURE_FIELD, verify

logger = logging.getLogger(__name__)

ITNPairs = Sequence[tuple[str, str]]
Resolver = Callable[[str], Awaitable[set[str]]]

TWO_PLACES = Decimal("0.01")
AMOUNT_TOLERANCE = Decimal("0.01")
DEFAULT_DNS_TIMEOUT = 3.0
REMOTE_VALIDATION_TIMEOUT = 5.0

REQUIRED_FIELDS: tuple[str, ...] = ("m_payment_id", "payment_status", "merchant_id")


class RejectionReason(str, Enum):
    """Why a notification was not trusted."""

    MISSING_SIGNATURE = "missing_signature"
    BAD_SIGNATURE = "bad_signature"
    MERCHANT_MISMATCH = "merchant_mismatch"
    UNTRUSTED_ORIGIN = "untrusted_origin"
    MISSING_FIELD = "missing_field"
    AMOUNT_MISMATCH = "amount_mismatch"
    REMOTE_REJECTED = "remote_rejected"


class ITNNotification(BaseModel):
    """Typed view over a notification's fields.

    Unrecognised fields are kept in ``model_extra``.
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    m_payment_id: str | None = None
    pf_payment_id: str | None = None
    payment_status: str | None = None
    item_name: str | None = None
    item_description: str | None = None
    amount_gross: str | None = None
    amount_fee: str | None = None
    amount_net: str | None = None
    custom_str1: str | None = None
    name_first: str | None = None
    name_last: str | None = None
    email_address: str | None = None
    merchant_id: str | None = None
    signature: str | None = None

    @classmethod
    def from_pairs(cls, pairs: ITNPairs) -> "ITNNotification":
        return cls.model_validate({key: value for key, value in pairs})


@dataclass
class VerificationResult:
    """Outcome of ITN verification."""

    valid: bool
    notification: ITNNotification | None = None
    reason: RejectionReason | None = None
    detail: str | None = None
    expected_amount: Decimal | None = None
    received_amount: Decimal | None = None

    @classmethod
    def accept(cls, notification: ITNNotification) -> "VerificationResult":
        return cls(valid=True, notification=notification)

    @classmethod
    def reject(
        cls,
        reason: RejectionReason,
        detail: str | None = None,
        **amounts: Decimal | None,
    ) -> "VerificationResult":
        return cls(valid=False, reason=reason, detail=detail, **amounts)


def round_amount(value: Decimal | str | int | float) -> Decimal:
    return Decimal(str(value)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def parse_amount(raw: str | None) -> Decimal | None:
    """Parse a gateway amount string, ``None`` when absent or malformed."""
    if raw is None or not raw.strip():
        return None
    try:
        value = Decimal(raw.strip())
    except InvalidOperation:
        return None
    if not value.is_finite():
        return None
    return round_amount(value)


async def resolve_ipv4(hostname: str) -> set[str]:
    """Resolve a hostname's IPv4 addresses on the event loop's resolver."""
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(hostname, None, family=socket.AF_INET, type=socket.SOCK_STREAM)
    return {info[4][0] for info in infos}


class NotificationVerifier:
    """Decides whether an inbound ITN can be trusted."""

    def __init__(
        self,
        config: PayfastConfig,
        resolver: Resolver | None = None,
        dns_timeout: float = DEFAULT_DNS_TIMEOUT,
        http_client: httpx.AsyncClient | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        self.config = config
        self.dns_timeout = dns_timeout
        self._resolver = resolver or resolve_ipv4
        self._http_client = http_client
        self._log = log or logger
        self._networks = tuple(ipaddress.ip_network(net) for net in config.trusted_networks)

    async def validate(
        self,
        pairs: ITNPairs,
        source_ip: str,
        expected_amount: Decimal | str,
    ) -> VerificationResult:
        """Run every trust check against a notification.

        Args:
            pairs: Notification fields in transmission order
            source_ip: Caller's network address
            expected_amount: Order total the payment must cover

        Returns:
            VerificationResult: accepted notification or rejection reason
        """
        notification = ITNNotification.from_pairs(pairs)

        # 1. Signature present
        if not notification.signature:
            return self._reject(RejectionReason.MISSING_SIGNATURE)

        # 2. Signature over the fields as transmitted, minus signature itself
        unsigned = [(key, value) for key, value in pairs if key != SIGNATURE_FIELD]
        if not verify(unsigned, notification.signature, self.config.passphrase):
            return self._reject(RejectionReason.BAD_SIGNATURE)

        # Order id, status and merchant present
        missing = [
            name for name in REQUIRED_FIELDS if not (getattr(notification, name) or "").strip()
        ]
        if missing:
            return self._reject(RejectionReason.MISSING_FIELD, ", ".join(missing))

        # 3. Merchant identity
        if notification.merchant_id.strip() != self.config.merchant_id:
            return self._reject(
                RejectionReason.MERCHANT_MISMATCH,
                f"merchant_id {notification.merchant_id!r}",
            )

        # 4. Source address
        if not await self.is_trusted_source(source_ip):
            return self._reject(RejectionReason.UNTRUSTED_ORIGIN, f"source {source_ip}")

        # 5. Amount
        received = parse_amount(notification.amount_gross)
        if received is None:
            return self._reject(
                RejectionReason.MISSING_FIELD,
                f"amount_gross {notification.amount_gross!r} is not a number",
            )
        expected = round_amount(expected_amount)
        if abs(expected - received) > AMOUNT_TOLERANCE:
            return self._reject(
                RejectionReason.AMOUNT_MISMATCH,
                f"expected {expected}, received {received}",
                expected_amount=expected,
                received_amount=received,
            )

        if self.config.remote_validation and not await self.confirm_with_gateway(unsigned):
            return self._reject(RejectionReason.REMOTE_REJECTED)

        return VerificationResult.accept(notification)

    async def is_trusted_source(self, source_ip: str) -> bool:
        """Check the caller against Payfast's published and resolved addresses."""
        try:
            address = ipaddress.ip_address(source_ip.strip())
        except ValueError:
            self._log.warning(f"ITN source address is not an IP: {source_ip!r}")
            return False

        if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped:
            address = address.ipv4_mapped

        if any(address in network for network in self._networks):
            return True

        if not self.config.is_production and address.is_loopback:
            return True

        resolved = await self._resolve_trusted_hosts()
        return str(address) in resolved

    async def _resolve_trusted_hosts(self) -> set[str]:
        """Resolve every trusted hostname concurrently; failures resolve to nothing."""

        async def lookup(hostname: str) -> set[str]:
            try:
                return await asyncio.wait_for(self._resolver(hostname), timeout=self.dns_timeout)
            except TimeoutError:
                self._log.warning(f"DNS lookup for {hostname} timed out after {self.dns_timeout}s")
            except OSError as e:
                self._log.warning(f"DNS lookup for {hostname} failed: {e}")
            return set()

        results = await asyncio.gather(
            *(lookup(hostname) for hostname in self.config.trusted_hostnames)
        )
        return set().union(*results)

    async def confirm_with_gateway(self, unsigned: ITNPairs) -> bool:
        """Ask Payfast to confirm the notification it sent."""
        body = urlencode(list(unsigned))
        headers = {"Content-Type": "application/x-www-form-urlencoded"}
        try:
            if self._http_client is not None:
                response = await self._http_client.post(
                    self.config.validate_url, content=body, headers=headers
                )
            else:
                async with httpx.AsyncClient(timeout=REMOTE_VALIDATION_TIMEOUT) as client:
                    response = await client.post(
                        self.config.validate_url, content=body, headers=headers
                    )
            response.raise_for_status()
        except httpx.HTTPError as e:
            self._log.warning(f"Payfast server confirmation failed: {e}")
            return False
        return response.text.strip() == "VALID"

    def _reject(
        self,
        reason: RejectionReason,
        detail: str | None = None,
        **amounts: Decimal | None,
    ) -> VerificationResult:
        self._log.warning(
            f"ITN rejected: {reason.value}" + (f" ({detail})" if detail else "")
        )
        return VerificationResult.reject(reason, detail, **amounts)
