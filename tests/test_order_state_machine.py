"""
Tests for OrderStateMachine - validated transitions and audit trail.
"""

import pytest

from fundrouter.core.methods import Method
from fundrouter.core.models import Order, OrderStatus
from fundrouter.execution.order_state_machine import OrderStateMachine, VALID_TRANSITIONS


@pytest.fixture
def events():
    return []


@pytest.fixture
def sm(events):
    return OrderStateMachine(log_event=lambda event, **kw: events.append((event, kw)))


def new_order() -> Order:
    return Order(amount=200.0, method=Method.USDT)


class TestTransitions:
    def test_happy_path_redirect_confirm(self, sm):
        order = new_order()
        for status in (
            OrderStatus.MATCHING,
            OrderStatus.ATTEMPTING,
            OrderStatus.ATTEMPTING,
            OrderStatus.REDIRECTED,
            OrderStatus.CONFIRMED,
            OrderStatus.IDLE,
        ):
            assert sm.transition(order, status) is True
        assert order.status is OrderStatus.IDLE
        assert len(order.transitions) == 6
        assert order.transitions[0].from_status is OrderStatus.IDLE
        assert order.transitions[-1].to_status is OrderStatus.IDLE

    def test_invalid_transition_blocked(self, sm, events):
        order = new_order()
        assert sm.transition(order, OrderStatus.CONFIRMED) is False
        assert order.status is OrderStatus.IDLE
        assert order.transitions == []
        assert sm.get_stats()["invalid_transitions_blocked"] == 1
        assert events[-1][0] == "order_invalid_transition"

    def test_failed_only_returns_to_idle(self, sm):
        order = new_order()
        sm.transition(order, OrderStatus.MATCHING)
        sm.transition(order, OrderStatus.FAILED)
        assert sm.transition(order, OrderStatus.ATTEMPTING) is False
        assert sm.transition(order, OrderStatus.MATCHING) is False
        assert sm.reset(order) is True
        assert order.status is OrderStatus.IDLE

    def test_every_state_can_reach_idle_except_idle(self):
        for status, targets in VALID_TRANSITIONS.items():
            if status is OrderStatus.IDLE:
                assert OrderStatus.IDLE not in targets
            else:
                assert OrderStatus.IDLE in targets

    def test_reset_on_idle_is_noop(self, sm):
        order = new_order()
        assert sm.reset(order) is False
        assert order.transitions == []

    def test_metadata_and_reason_recorded(self, sm):
        order = new_order()
        sm.transition(order, OrderStatus.MATCHING, reason="match_started", metadata={"k": 1})
        t = order.transitions[0]
        assert t.reason == "match_started"
        assert t.metadata == {"k": 1}
        assert t.timestamp_ms > 0


class TestCallbacksAndStats:
    def test_on_state_change_called(self):
        seen = []
        sm = OrderStateMachine(
            log_event=lambda *a, **k: None,
            on_state_change=lambda order, old, new: seen.append((old, new)),
        )
        order = new_order()
        sm.transition(order, OrderStatus.MATCHING)
        assert seen == [(OrderStatus.IDLE, OrderStatus.MATCHING)]

    def test_callback_error_is_logged_not_raised(self, events):
        def boom(order, old, new):
            raise RuntimeError("host blew up")

        sm = OrderStateMachine(log_event=lambda e, **k: events.append((e, k)), on_state_change=boom)
        order = new_order()
        assert sm.transition(order, OrderStatus.MATCHING) is True
        assert any(e == "order_state_callback_error" for e, _ in events)

    def test_stats_counters(self, sm):
        order = new_order()
        sm.transition(order, OrderStatus.MATCHING)
        sm.transition(order, OrderStatus.ATTEMPTING)
        sm.transition(order, OrderStatus.REDIRECTED)
        sm.transition(order, OrderStatus.REDIRECTED)
        sm.transition(order, OrderStatus.CONFIRMED)
        stats = sm.get_stats()
        assert stats["total_matches"] == 1
        assert stats["total_redirected"] == 1
        assert stats["total_confirmed"] == 1
        assert sm.is_terminal(order) is True
