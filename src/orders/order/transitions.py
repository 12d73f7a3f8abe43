"""Order status transitions — command and handler."""

from protean import handle
from protean.fields import Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from orders.domain import orders
from orders.order.order import Order


@orders.command(part_of="Order")
class RequestTransition:
    """Move an order to a new status, subject to the state machine."""

    order_id = Identifier(required=True)
    target_status = String(required=True, max_length=20)
    carrier = String(max_length=100)
    tracking_number = String(max_length=255)
    reason = Text()
    notes = Text()
    actor_id = String(max_length=255)
    expected_revision = Integer()


@orders.command_handler(part_of=Order)
class TransitionHandler:
    @handle(RequestTransition)
    def request_transition(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get_order(command.order_id)
        order.ensure_revision(command.expected_revision)
        entry = order.transition_to(
            command.target_status,
            carrier=command.carrier,
            tracking_number=command.tracking_number,
            reason=command.reason,
            notes=command.notes,
            actor_id=command.actor_id,
        )
        repo.add(order)
        return entry.metadata
