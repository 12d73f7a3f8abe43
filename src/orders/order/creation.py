"""Order placement — command and handler."""

import json

from protean import handle
from protean.fields import Boolean, Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from orders.domain import orders
from orders.order.order import Order


def _loads(value, default=None):
    if value is None:
        return default
    return json.loads(value) if isinstance(value, str) else value


@orders.command(part_of="Order")
class PlaceOrder:
    """Create a pending order from a checkout snapshot."""

    customer_id = Identifier(required=True)
    items = Text(required=True)  # JSON list of item dicts
    shipping_address = Text(required=True)  # JSON address dict
    shipping_method = Text(required=True)  # JSON {name, cost, delivery_days}
    pricing = Text()  # JSON overrides: subtotal, discount, shipping, tax, currency
    payment_method = String(max_length=50, default="razorpay")
    source = String(max_length=20, default="web")
    fraud_score = Integer(default=0)
    risk_flags = Text()  # JSON list
    send_notifications = Boolean(default=True)


@orders.command_handler(part_of=Order)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        order = Order.place(
            customer_id=command.customer_id,
            items_data=_loads(command.items, []),
            shipping_address=_loads(command.shipping_address, {}),
            shipping_method=_loads(command.shipping_method, {}),
            pricing=_loads(command.pricing),
            payment_method=command.payment_method,
            source=command.source,
            fraud_score=command.fraud_score,
            risk_flags=_loads(command.risk_flags),
            send_notifications=command.send_notifications,
        )
        current_domain.repository_for(Order).add(order)
        return str(order.id)
