# tests/unit/test_order_status.py
import pytest

from order_intake.domain.order_status import (
    INITIAL_STATUS,
    TERMINAL_STATUSES,
    OrderStatus,
    can_transition,
    parse_status,
)

P, S, D, C = OrderStatus.PENDING, OrderStatus.SHIPPED, OrderStatus.DELIVERED, OrderStatus.CANCELLED


@pytest.mark.parametrize(
    "cur, target, ok",
    [
        (P, S, True),
        (P, C, True),
        (S, D, True),
        (S, C, True),
        (P, D, False),
        (S, P, False),
        (D, C, False),
        (D, S, False),
        (C, P, False),
        (C, S, False),
        (P, P, False),
    ],
)
def test_transition_table(cur, target, ok):
    assert can_transition(cur, target) is ok


def test_initial_and_terminal():
    assert INITIAL_STATUS is P
    assert TERMINAL_STATUSES == {D, C}


@pytest.mark.parametrize("raw, expected", [("pending", P), (" SHIPPED ", S), ("Cancelled", C), ("lost", None), (3, None)])
def test_parse_status(raw, expected):
    assert parse_status(raw) is expected
