"""Tests for the order status graph (stock_kernel/domain/order_lifecycle.py)."""

import pytest

from stock_kernel.domain.order_lifecycle import (
    ALLOWED_TRANSITIONS,
    INITIAL_STATUS,
    STOCK_HOLDING_STATUSES,
    TERMINAL_STATUSES,
    OrderEffect,
    OrderStatus,
    can_transition,
    check_transition,
    effect_of,
    is_terminal,
    parse_status,
)
from stock_kernel.exceptions import (
    InvalidTransitionError,
    OrderAlreadyTerminalError,
    ValidationError,
)


class TestStatusGraph:

    def test_initial_status_is_pending(self):
        assert INITIAL_STATUS is OrderStatus.PENDING

    def test_every_status_has_an_entry(self):
        assert set(ALLOWED_TRANSITIONS) == set(OrderStatus)

    def test_terminal_statuses_have_no_outgoing_edges(self):
        for status in TERMINAL_STATUSES:
            assert ALLOWED_TRANSITIONS[status] == frozenset()

    def test_terminal_and_holding_partition_the_statuses(self):
        assert TERMINAL_STATUSES | STOCK_HOLDING_STATUSES == set(OrderStatus)
        assert not TERMINAL_STATUSES & STOCK_HOLDING_STATUSES

    @pytest.mark.parametrize(
        "current,target",
        [
            (OrderStatus.PENDING, OrderStatus.CONFIRMED),
            (OrderStatus.CONFIRMED, OrderStatus.PREPARING),
            (OrderStatus.PREPARING, OrderStatus.READY),
            (OrderStatus.READY, OrderStatus.PICKED_UP),
            (OrderStatus.IN_DELIVERY, OrderStatus.DELIVERED),
        ],
    )
    def test_forward_edges(self, current, target):
        assert can_transition(current, target)

    @pytest.mark.parametrize(
        "current",
        [
            OrderStatus.PENDING,
            OrderStatus.CONFIRMED,
            OrderStatus.PREPARING,
            OrderStatus.READY,
        ],
    )
    def test_cancellable_before_dispatch(self, current):
        assert can_transition(current, OrderStatus.CANCELLED)

    def test_in_delivery_cannot_be_cancelled(self):
        assert not can_transition(OrderStatus.IN_DELIVERY, OrderStatus.CANCELLED)

    def test_no_skipping_steps(self):
        assert not can_transition(OrderStatus.PENDING, OrderStatus.READY)
        assert not can_transition(OrderStatus.PENDING, OrderStatus.PICKED_UP)
        assert not can_transition(OrderStatus.CONFIRMED, OrderStatus.PICKED_UP)

    def test_no_backwards_edges(self):
        assert not can_transition(OrderStatus.READY, OrderStatus.PREPARING)
        assert not can_transition(OrderStatus.CONFIRMED, OrderStatus.PENDING)

    def test_is_terminal(self):
        assert is_terminal(OrderStatus.CANCELLED)
        assert is_terminal(OrderStatus.PICKED_UP)
        assert is_terminal(OrderStatus.DELIVERED)
        assert not is_terminal(OrderStatus.READY)


class TestEffects:

    def test_cancel_releases(self):
        assert effect_of(OrderStatus.READY, OrderStatus.CANCELLED) is OrderEffect.RELEASE

    def test_pickup_and_delivery_commit_the_sale(self):
        assert effect_of(OrderStatus.READY, OrderStatus.PICKED_UP) is OrderEffect.COMMIT_SALE
        assert (
            effect_of(OrderStatus.IN_DELIVERY, OrderStatus.DELIVERED)
            is OrderEffect.COMMIT_SALE
        )

    def test_intermediate_steps_have_no_effect(self):
        assert effect_of(OrderStatus.PENDING, OrderStatus.CONFIRMED) is OrderEffect.NONE
        assert effect_of(OrderStatus.PREPARING, OrderStatus.READY) is OrderEffect.NONE


class TestCheckTransition:

    def test_allowed_edge_returns_effect(self):
        effect = check_transition("o-1", OrderStatus.PENDING, OrderStatus.CANCELLED)
        assert effect is OrderEffect.RELEASE

    def test_terminal_source_raises_already_terminal(self):
        with pytest.raises(OrderAlreadyTerminalError) as exc_info:
            check_transition("o-1", OrderStatus.CANCELLED, OrderStatus.CONFIRMED)
        err = exc_info.value
        assert err.code == "ORDER_ALREADY_TERMINAL"
        assert err.current_status == "CANCELLED"
        assert err.attempted_status == "CONFIRMED"

    def test_cancelling_a_picked_up_order_is_terminal_error(self):
        with pytest.raises(OrderAlreadyTerminalError):
            check_transition("o-1", OrderStatus.PICKED_UP, OrderStatus.CANCELLED)

    def test_off_graph_edge_raises_invalid_transition(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            check_transition("o-1", OrderStatus.PENDING, OrderStatus.PICKED_UP)
        assert not isinstance(exc_info.value, OrderAlreadyTerminalError)
        assert exc_info.value.code == "INVALID_TRANSITION"

    def test_self_transition_is_not_allowed(self):
        with pytest.raises(InvalidTransitionError):
            check_transition("o-1", OrderStatus.CONFIRMED, OrderStatus.CONFIRMED)


class TestParseStatus:

    def test_accepts_enum_and_case_insensitive_string(self):
        assert parse_status(OrderStatus.READY) is OrderStatus.READY
        assert parse_status("ready") is OrderStatus.READY

    def test_unknown_status_is_validation_error(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_status("SHIPPED")
        assert exc_info.value.field == "status"
