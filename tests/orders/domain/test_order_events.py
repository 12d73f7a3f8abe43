"""Domain events raised by the Order aggregate."""

import pytest

from orders.errors import InvalidTransition
from orders.order.events import (
    OrderCancelled,
    OrderDelivered,
    OrderRefunded,
    OrderShipped,
    OrderStatusChanged,
)
from orders.order.order import OrderStatus


def _types(order):
    return [type(e) for e in order._events]


class TestStatusEvents:
    def test_confirm_raises_status_changed(self, new_order):
        order = new_order()
        order._events.clear()
        order.transition_to(OrderStatus.CONFIRMED, actor_id="admin-1")
        assert _types(order) == [OrderStatusChanged]
        event = order._events[0]
        assert event.previous_status == "pending"
        assert event.new_status == "confirmed"
        assert event.actor_id == "admin-1"

    def test_ship_and_deliver(self, new_order):
        order = new_order()
        order.transition_to(OrderStatus.CONFIRMED)
        order.transition_to(OrderStatus.PROCESSING)
        order._events.clear()
        order.transition_to(OrderStatus.SHIPPED, carrier="dtdc", tracking_number="TRK123")
        order.transition_to(OrderStatus.DELIVERED)
        assert _types(order) == [OrderShipped, OrderStatusChanged, OrderDelivered, OrderStatusChanged]
        assert order._events[0].tracking_number == "TRK123"

    def test_cancel(self, new_order):
        order = new_order()
        order._events.clear()
        order.transition_to(OrderStatus.CANCELLED, reason="Customer request")
        assert _types(order) == [OrderCancelled, OrderStatusChanged]
        assert order._events[0].reason == "Customer request"

    def test_refund_carries_amount_paid(self, new_order):
        order = new_order()
        attempt = order.open_payment_attempt("rzp_1")
        order.update_payment_attempt(str(attempt.id), "captured")
        order._events.clear()
        order.transition_to(OrderStatus.REFUNDED)
        assert _types(order) == [OrderRefunded, OrderStatusChanged]
        assert order._events[0].amount == 61459.0

    def test_rejected_transition_raises_nothing(self, new_order):
        order = new_order()
        order._events.clear()
        with pytest.raises(InvalidTransition):
            order.transition_to(OrderStatus.DELIVERED)
        assert order._events == []

    def test_events_are_versioned(self):
        assert OrderStatusChanged.__version__ == "v1"
