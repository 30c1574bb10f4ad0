"""Order state machine.

States:
- pending: Order placed, awaiting payment confirmation
- paid: Payfast confirmed the payment
- cancelled: Payfast reported the payment as cancelled
"""

from storefront.core.exceptions import ValidationError

ORDER_TRANSITIONS = {
    "pending": {"pending", "paid", "cancelled"},
    "paid": set(),
    "cancelled": set(),
}

TERMINAL_ORDER_STATES = frozenset(
    state for state, allowed in ORDER_TRANSITIONS.items() if not allowed
)


def is_terminal_order_state(status: str) -> bool:
    return status in TERMINAL_ORDER_STATES


def can_transition_order(current: str, target: str) -> bool:
    return target in ORDER_TRANSITIONS.get(current, set())


def assert_order_transition(current: str, target: str) -> None:
    """Validate order state transition.

    Args:
        current: Current order status
        target: Target order status

    Raises:
        ValidationError: If transition is not allowed
    """
    if not can_transition_order(current, target):
        raise ValidationError(
            f"Invalid order transition: {current} → {target}"
        )
