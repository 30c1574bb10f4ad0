"""Customer email notifications.

Sends transactional email through SendGrid. Callers treat every send as
best-effort: a failed email never undoes the order or payment change that
triggered it.
"""

import html
import logging
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

import httpx

from storefront.config import settings
from storefront.models.order import Order

logger = logging.getLogger(__name__)

SENDGRID_SEND_URL = "https://api.sendgrid.com/v3/mail/send"


class NotificationService:
    """Service for sending customer emails."""

    def __init__(self, api_key: str | None = None, timeout: float | None = None) -> None:
        """Initialize notification service."""
        self.api_key = api_key if api_key is not None else settings.sendgrid_api_key
        self.timeout = timeout or settings.email_timeout_seconds
        self._http_client: httpx.AsyncClient | None = None

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Lazy-load HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    # ==================== EMAIL (SENDGRID) ====================

    async def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: str | None = None,
    ) -> bool:
        """Send an email via SendGrid.

        Args:
            to_email: Recipient email
            subject: Email subject
            html_content: HTML body
            text_content: Plain text body

        Returns:
            bool: True if SendGrid accepted the message
        """
        if not self.api_key:
            logger.info(f"SendGrid not configured; skipping email '{subject}' to {to_email}")
            return False

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        payload: dict[str, Any] = {
            "personalizations": [{"to": [{"email": to_email}]}],
            "from": {
                "email": settings.email_from_address,
                "name": settings.email_from_name,
            },
            "subject": subject,
            "content": [{"type": "text/html", "value": html_content}],
        }
        if text_content:
            payload["content"].insert(0, {"type": "text/plain", "value": text_content})

        try:
            response = await self.http_client.post(SENDGRID_SEND_URL, headers=headers, json=payload)
        except httpx.HTTPError as e:
            logger.error(f"Email '{subject}' to {to_email} failed: {e}")
            return False

        if response.status_code not in (200, 202):
            logger.error(
                f"SendGrid rejected email '{subject}' to {to_email}: HTTP {response.status_code}"
            )
            return False
        return True

    # ==================== ORDER EMAILS ====================

    async def send_payment_confirmation(self, order: Order, transaction_id: str | None) -> bool:
        """Tell the customer their payment went through."""
        name = order.contact_name or "Customer"
        amount = _format_money(order.total_amount, order.currency)
        rows = [
            ("Order Number", f"#{order.reference}"),
            ("Transaction ID", transaction_id or "-"),
            ("Amount Paid", amount),
            ("Payment Method", "Payfast"),
        ]
        body = (
            f"Hi {name}, thank you! Your payment has been successfully processed. "
            "Your order is confirmed and will be prepared for shipment."
        )
        return await self.send_email(
            to_email=order.customer_email,
            subject=f"Payment confirmed for order #{order.reference}",
            html_content=self._generate_email_html("Payment Confirmed!", body, rows),
            text_content=f"{body}\n" + "\n".join(f"{label}: {value}" for label, value in rows),
        )

    async def send_order_confirmation(self, order: Order) -> bool:
        """Acknowledge a newly placed order while payment is pending."""
        name = order.contact_name or "Customer"
        rows = [("Order Number", f"#{order.reference}")]
        rows += [
            (f"{item.quantity} x {item.product_name}", _format_money(item.price_at_purchase, order.currency))
            for item in order.items
        ]
        rows += [
            ("Shipping", _format_money(order.shipping_cost, order.currency)),
            ("Total", _format_money(order.total_amount, order.currency)),
            ("Payment", "Payment Pending"),
        ]
        body = f"Hi {name}, we've received your order and will confirm once payment is complete."
        return await self.send_email(
            to_email=order.customer_email,
            subject=f"Order #{order.reference} received",
            html_content=self._generate_email_html("Order Received", body, rows),
        )

    def _generate_email_html(self, title: str, body: str, rows: list[tuple[str, str]]) -> str:
        """Generate simple HTML email content."""
        rows_html = "".join(
            f'<tr><td style="padding: 4px 12px 4px 0;"><strong>{html.escape(label)}</strong></td>'
            f"<td>{html.escape(value)}</td></tr>"
            for label, value in rows
        )
        return f"""
        <!DOCTYPE html>
        <html>
        <head><meta charset="utf-8"></head>
        <body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
                     max-width: 600px; margin: 0 auto; padding: 20px; color: #333;">
            <div style="background-color: #f9fafb; border-radius: 8px; padding: 24px;">
                <h1 style="color: #111827; font-size: 24px; margin-bottom: 16px;">{html.escape(title)}</h1>
                <p style="color: #4b5563; font-size: 16px; line-height: 1.6;">{html.escape(body)}</p>
                <table>{rows_html}</table>
            </div>
            <p style="color: #9ca3af; font-size: 12px; margin-top: 24px; text-align: center;">
                &copy; {datetime.now(UTC).year} {html.escape(settings.email_from_name)}. All rights reserved.
            </p>
        </body>
        </html>
        """


def _format_money(amount: Decimal, currency: str) -> str:
    return f"{currency} {Decimal(amount):.2f}"


# Singleton instance
notification_service = NotificationService()
