"""Order state machine: one pending state, three terminal ones."""

PENDING = "PENDING"
PAID = "PAID"
CANCELLED = "CANCELLED"
EXPIRED = "EXPIRED"

ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    PENDING: {PAID, CANCELLED, EXPIRED},
    PAID: set(),
    CANCELLED: set(),
    EXPIRED: set(),
}

TERMINAL_STATES = frozenset(state for state, targets in ALLOWED_TRANSITIONS.items() if not targets)


class InvalidTransitionError(ValueError):
    """Raised for a move the order state machine does not allow."""


def validate_transition(current: str, new: str) -> None:
    """Raise when a transition is not allowed by the state machine."""

    if new not in ALLOWED_TRANSITIONS.get(current, set()):
        raise InvalidTransitionError(f"Invalid transition: {current} -> {new}")


def is_terminal(state: str) -> bool:
    return state in TERMINAL_STATES
