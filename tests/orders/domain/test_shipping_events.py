"""Carrier milestones on shipped orders."""

import pytest
from protean.exceptions import ValidationError

from orders.errors import InvalidInput
from orders.order.order import OrderStatus


@pytest.fixture()
def shipped_order(new_order):
    order = new_order()
    order.transition_to(OrderStatus.CONFIRMED)
    order.transition_to(OrderStatus.PROCESSING)
    order.transition_to(OrderStatus.SHIPPED, carrier="BlueDart", tracking_number="BD-1001")
    return order


class TestAddShippingEvent:
    def test_event_appended_after_shipped_entry(self, shipped_order):
        event = shipped_order.add_shipping_event(
            "in_transit", description="Left origin hub", location="Mumbai", metadata={"hub": "BOM-2"}
        )
        assert event.sequence == 2
        assert event.location == "Mumbai"
        assert event.metadata == {"hub": "BOM-2"}
        assert [e.label for e in shipped_order.shipping_history()] == ["shipped", "in_transit"]

    def test_status_unchanged(self, shipped_order):
        shipped_order.add_shipping_event("out_for_delivery")
        assert shipped_order.status == OrderStatus.SHIPPED.value

    def test_no_timeline_entry(self, shipped_order):
        before = len(shipped_order.timeline_entries())
        shipped_order.add_shipping_event("in_transit")
        assert len(shipped_order.timeline_entries()) == before

    def test_allowed_after_delivery(self, shipped_order):
        shipped_order.transition_to(OrderStatus.DELIVERED)
        event = shipped_order.add_shipping_event("proof_of_delivery", metadata={"signed_by": "Asha"})
        assert event.label == "proof_of_delivery"

    @pytest.mark.parametrize("status", [OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.PROCESSING])
    def test_rejected_before_shipment(self, new_order, status):
        order = new_order()
        if status != OrderStatus.PENDING:
            order.transition_to(OrderStatus.CONFIRMED)
        if status == OrderStatus.PROCESSING:
            order.transition_to(OrderStatus.PROCESSING)
        with pytest.raises(ValidationError) as exc:
            order.add_shipping_event("in_transit")
        assert "status" in exc.value.messages
        assert order.shipping_history() == []

    def test_empty_label_rejected(self, shipped_order):
        with pytest.raises(InvalidInput):
            shipped_order.add_shipping_event("  ")
        assert len(shipped_order.shipping_history()) == 1


class TestSingleShipment:
    def test_shipment_survives_delivery(self, shipped_order):
        shipped_order.transition_to(OrderStatus.DELIVERED)
        assert shipped_order.shipping_method.tracking_number == "BD-1001"
        assert shipped_order.shipping_method.carrier == "BlueDart"
        assert len(shipped_order.shipping_history()) == 1
