"""Order domain events — immutable facts about order lifecycle changes.

Events are past tense and versioned. They are raised by the Order aggregate
and persisted with it; notification dispatch is driven separately by the
application layer once a change has been committed.
"""

from protean.fields import DateTime, Float, Identifier, String, Text

from orders.domain import orders


@orders.event(part_of="Order")
class OrderPlaced:
    """A customer placed an order."""

    __version__ = "v1"

    order_id = Identifier(required=True)
    order_number = String(required=True)
    customer_id = Identifier(required=True)
    items = Text(required=True)  # JSON list of item snapshots
    grand_total = Float(required=True)
    currency = String(required=True)
    placed_at = DateTime(required=True)


@orders.event(part_of="Order")
class OrderStatusChanged:
    """The order moved from one lifecycle status to another."""

    __version__ = "v1"

    order_id = Identifier(required=True)
    order_number = String(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    actor_id = String()
    changed_at = DateTime(required=True)


@orders.event(part_of="Order")
class OrderShipped:
    """The order was handed to a carrier."""

    __version__ = "v1"

    order_id = Identifier(required=True)
    carrier = String(required=True)
    tracking_number = String(required=True)
    shipped_at = DateTime(required=True)


@orders.event(part_of="Order")
class OrderDelivered:
    __version__ = "v1"

    order_id = Identifier(required=True)
    delivered_at = DateTime(required=True)


@orders.event(part_of="Order")
class OrderCancelled:
    __version__ = "v1"

    order_id = Identifier(required=True)
    reason = Text(required=True)
    cancelled_at = DateTime(required=True)


@orders.event(part_of="Order")
class OrderRefunded:
    __version__ = "v1"

    order_id = Identifier(required=True)
    amount = Float(required=True)
    refunded_at = DateTime(required=True)


@orders.event(part_of="Order")
class PaymentCaptured:
    """A gateway attempt was captured and the order confirmed."""

    __version__ = "v1"

    order_id = Identifier(required=True)
    attempt_id = Identifier(required=True)
    gateway_payment_id = String()
    amount = Float(required=True)
    captured_at = DateTime(required=True)


@orders.event(part_of="Order")
class PaymentFailed:
    __version__ = "v1"

    order_id = Identifier(required=True)
    attempt_id = Identifier(required=True)
    reason = Text()
    failed_at = DateTime(required=True)


@orders.event(part_of="Order")
class AutoInvoiceGenerated:
    """The system-generated invoice was rendered and attached."""

    __version__ = "v1"

    order_id = Identifier(required=True)
    invoice_number = String(required=True)
    generated_at = DateTime(required=True)


@orders.event(part_of="Order")
class AdminInvoiceUploaded:
    """An operator attached (or replaced) the admin invoice."""

    __version__ = "v1"

    order_id = Identifier(required=True)
    invoice_number = String(required=True)
    uploaded_by = String(required=True)
    replaced_invoice_number = String()
    uploaded_at = DateTime(required=True)


@orders.event(part_of="Order")
class AdminInvoiceDeleted:
    __version__ = "v1"

    order_id = Identifier(required=True)
    invoice_number = String(required=True)
    deleted_at = DateTime(required=True)
