"""Payment attempt ledger — commands and handler.

Only the results of gateway round-trips are recorded here; talking to the
gateway itself happens elsewhere.
"""

from protean import handle
from protean.fields import Float, Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from orders.domain import orders
from orders.order.order import Order


@orders.command(part_of="Order")
class OpenPaymentAttempt:
    """Start a new gateway attempt (initial checkout or a retry)."""

    order_id = Identifier(required=True)
    gateway_order_id = String(max_length=255)
    amount = Float()
    actor_id = String(max_length=255)


@orders.command(part_of="Order")
class UpdatePaymentAttempt:
    """Apply a gateway outcome (attempted, captured, failed) to an attempt."""

    order_id = Identifier(required=True)
    attempt_id = Identifier(required=True)
    status = String(required=True, max_length=20)
    gateway_payment_id = String(max_length=255)
    gateway_method = String(max_length=20)
    error_reason = Text()
    actor_id = String(max_length=255)
    expected_revision = Integer()


@orders.command_handler(part_of=Order)
class PaymentAttemptHandler:
    @handle(OpenPaymentAttempt)
    def open_payment_attempt(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get_order(command.order_id)
        attempt = order.open_payment_attempt(
            gateway_order_id=command.gateway_order_id,
            amount=command.amount,
            actor_id=command.actor_id,
        )
        repo.add(order)
        return str(attempt.id)

    @handle(UpdatePaymentAttempt)
    def update_payment_attempt(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get_order(command.order_id)
        order.ensure_revision(command.expected_revision)
        changed = order.update_payment_attempt(
            attempt_id=command.attempt_id,
            status=command.status,
            gateway_payment_id=command.gateway_payment_id,
            gateway_method=command.gateway_method,
            error_reason=command.error_reason,
            actor_id=command.actor_id,
        )
        if changed:
            repo.add(order)
        return changed
