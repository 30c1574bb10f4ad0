"""Payfast payment_status to internal status mapping."""

PAYMENT_STATUS_MAP = {
    "COMPLETE": "completed",
    "CANCELLED": "failed",
    "FAILED": "failed",
}

# FAILED leaves the order pending so the buyer can retry checkout
ORDER_STATUS_MAP = {
    "COMPLETE": "paid",
    "CANCELLED": "cancelled",
}

DEFAULT_PAYMENT_STATUS = "initiated"
DEFAULT_ORDER_STATUS = "pending"


def _normalise(payfast_status: str | None) -> str:
    return (payfast_status or "").strip().upper()


def map_payment_status(payfast_status: str | None) -> str:
    """Map a Payfast status to ``initiated | completed | failed``."""
    return PAYMENT_STATUS_MAP.get(_normalise(payfast_status), DEFAULT_PAYMENT_STATUS)


def map_order_status(payfast_status: str | None) -> str:
    """Map a Payfast status to ``pending | paid | cancelled``."""
    return ORDER_STATUS_MAP.get(_normalise(payfast_status), DEFAULT_ORDER_STATUS)
