"""Payment state machine."""

PAYMENT_TRANSITIONS = {
    "initiated": {"initiated", "completed", "failed"},
    # A failed attempt leaves the order pending, so a later payment may still complete
    "failed": {"failed", "completed"},
    "completed": set(),
}


def can_transition_payment(current: str, target: str) -> bool:
    return target in PAYMENT_TRANSITIONS.get(current, set())

