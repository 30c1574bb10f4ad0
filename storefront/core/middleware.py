"""Custom middleware for the application."""

import ipaddress
import logging
import time
from collections.abc import Sequence

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from storefront.config import settings

logger = logging.getLogger(__name__)

SLOW_REQUEST_SECONDS = 1.0


def _in_networks(address: str, networks: Sequence[str]) -> bool:
    try:
        ip = ipaddress.ip_address(address.strip())
    except ValueError:
        return False
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped:
        ip = ip.ipv4_mapped
    for network in networks:
        try:
            if ip in ipaddress.ip_network(network, strict=False):
                return True
        except ValueError:
            logger.warning(f"Ignoring malformed trusted proxy network: {network!r}")
    return False


def get_client_ip(request: Request, trusted_proxies: Sequence[str] | None = None) -> str:
    """Extract client IP from request.

    Proxy headers are only honoured when the socket peer is a trusted proxy.
    The client is then the right-most ``X-Forwarded-For`` hop that is not
    itself a trusted proxy, falling back to ``X-Real-IP``.

    Args:
        request: Incoming request
        trusted_proxies: Proxy CIDRs; defaults to ``settings.trusted_proxies``

    Returns:
        str: Client address, or "unknown" without a socket peer
    """
    if trusted_proxies is None:
        trusted_proxies = settings.trusted_proxies

    peer = request.client.host if request.client else None
    if peer is None:
        return "unknown"
    if not _in_networks(peer, trusted_proxies):
        return peer

    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        hops = [hop.strip() for hop in forwarded.split(",") if hop.strip()]
        for hop in reversed(hops):
            if not _in_networks(hop, trusted_proxies):
                return hop
        if hops:
            return hops[0]

    real_ip = request.headers.get("X-Real-IP")
    if real_ip and real_ip.strip():
        return real_ip.strip()

    return peer


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for logging requests and response times."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        """Log request details and timing.

        Args:
            request: Incoming request
            call_next: Next middleware/route handler

        Returns:
            Response: Route response
        """
        start_time = time.time()

        request_id = request.headers.get("X-Request-ID") or str(time.time_ns())
        request.state.request_id = request_id

        response = await call_next(request)

        duration = time.time() - start_time

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{duration:.3f}s"

        if duration > SLOW_REQUEST_SECONDS:
            logger.warning(
                f"Slow request: {request.method} {request.url.path} took {duration:.3f}s "
                f"(request_id={request_id})"
            )

        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Middleware to add security headers to responses."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        """Add security headers to response."""
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        if not settings.debug:
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )

        return response
