"""Return reconciliation state machine.

An order walks PENDING -> VERIFYING -> one terminal state per return hit.
Nothing is persisted here; the table only guards the order of steps.
"""

PENDING = "PENDING"
VERIFYING = "VERIFYING"
FULFILLED = "FULFILLED"
PAYMENT_REJECTED = "PAYMENT_REJECTED"
GATEWAY_UNAVAILABLE = "GATEWAY_UNAVAILABLE"
ORDER_MISSING = "ORDER_MISSING"

ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    PENDING: {VERIFYING},
    VERIFYING: {FULFILLED, PAYMENT_REJECTED, GATEWAY_UNAVAILABLE, ORDER_MISSING},
    FULFILLED: set(),
    PAYMENT_REJECTED: set(),
    GATEWAY_UNAVAILABLE: set(),
    ORDER_MISSING: set(),
}

TERMINAL_STATES = frozenset(state for state, targets in ALLOWED_TRANSITIONS.items() if not targets)


class InvalidTransitionError(ValueError):
    pass


def validate_transition(current: str, new: str) -> None:
    """Raise when a transition is not allowed by the state machine."""

    if new not in ALLOWED_TRANSITIONS.get(current, set()):
        raise InvalidTransitionError(f"Invalid transition: {current} -> {new}")
