"""Carrier shipping events — command and handler.

Shipping events arrive independently of status changes (typically from a
carrier webhook) and never move the order through the state machine.
"""

import json

from protean import handle
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from orders.domain import orders
from orders.order.order import Order


@orders.command(part_of="Order")
class AddShippingEvent:
    order_id = Identifier(required=True)
    label = String(max_length=100)
    description = Text()
    location = String(max_length=200)
    event_metadata = Text()  # JSON object


@orders.command_handler(part_of=Order)
class ShippingEventHandler:
    @handle(AddShippingEvent)
    def add_shipping_event(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get_order(command.order_id)
        metadata = json.loads(command.event_metadata) if command.event_metadata else None
        event = order.add_shipping_event(
            label=command.label,
            description=command.description,
            location=command.location,
            metadata=metadata,
        )
        repo.add(order)
        return str(event.id)
