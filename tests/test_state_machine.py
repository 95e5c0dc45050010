"""Unit tests for order state-machine guardrails."""

import pytest

from roompay.common.state_machine import (
    CANCELLED,
    EXPIRED,
    PAID,
    PENDING,
    InvalidTransitionError,
    is_terminal,
    validate_transition,
)


@pytest.mark.parametrize("target", [PAID, CANCELLED, EXPIRED])
def test_pending_can_reach_every_terminal_state(target):
    validate_transition(PENDING, target)


@pytest.mark.parametrize("terminal", [PAID, CANCELLED, EXPIRED])
def test_terminal_states_are_final(terminal):
    """A finished order must never move again, not even to another terminal."""

    assert is_terminal(terminal)
    for target in (PENDING, PAID, CANCELLED, EXPIRED):
        with pytest.raises(InvalidTransitionError):
            validate_transition(terminal, target)


def test_invalid_transition_is_a_value_error():
    with pytest.raises(ValueError):
        validate_transition(PENDING, PENDING)
    assert not is_terminal(PENDING)
