"""Order lifecycle service — the single entry point for order mutations.

Each operation takes the order's lock, processes one command (which loads,
validates and persists the aggregate in a unit of work), reads back the
committed state and releases the lock. Post-commit hooks (notifications,
auto invoicing on capture) run only after that, outside the lock.
"""

import json
from datetime import datetime
from enum import Enum

import structlog
from protean.utils.globals import current_domain

from orders.config import get_settings
from orders.errors import AlreadyExists, Conflict, InvalidInput
from orders.invoice.registry import InvoiceRegistry
from orders.notifications.dispatch import NotificationDispatcher
from orders.order.creation import PlaceOrder
from orders.order.hooks import PostCommitHooks
from orders.order.locking import OrderLocks, get_order_locks
from orders.order.notes import AddAdminNote
from orders.order.order import Order, OrderStatus, PaymentStatus
from orders.order.payment import OpenPaymentAttempt, UpdatePaymentAttempt
from orders.order.repository import as_utc
from orders.order.shipping import AddShippingEvent
from orders.order.transitions import RequestTransition
from orders.order.views import (
    attempt_view,
    note_view,
    order_page,
    order_snapshot,
    shipping_event_view,
    tracking_view,
)
from orders.utils.logging import bind_order_context, clear_context

logger = structlog.get_logger(__name__)


def _check_choice(field: str, value: str | None, choices: type[Enum]) -> None:
    if value is not None and value not in {choice.value for choice in choices}:
        raise InvalidInput(field, f"Unknown {field}: {value}")


class AutoInvoiceOnCapture:
    """Post-commit hook: generate the system invoice once payment is captured."""

    def __init__(self, registry: InvoiceRegistry):
        self.registry = registry

    def __call__(self, order_id: str, change: dict) -> None:
        if change.get("type") != "payment_captured" or not get_settings().auto_invoice_on_capture:
            return
        try:
            self.registry.generate_auto(order_id, actor_id="system")
        except (AlreadyExists, Conflict) as e:
            logger.info("Auto invoice already handled", order_id=order_id, reason=e.message)


class OrderLifecycle:
    def __init__(
        self,
        locks: OrderLocks | None = None,
        hooks: PostCommitHooks | None = None,
        registry: InvoiceRegistry | None = None,
    ):
        self.locks = locks or get_order_locks()
        self.registry = registry or InvoiceRegistry(locks=self.locks)
        if hooks is None:
            hooks = PostCommitHooks([NotificationDispatcher(), AutoInvoiceOnCapture(self.registry)])
        self.hooks = hooks

    def _repo(self):
        return current_domain.repository_for(Order)

    def _mutate(self, order_id: str, command) -> tuple[object, Order]:
        """Process ``command`` under the order lock and return (result, committed order)."""
        bind_order_context(order_id)
        try:
            with self.locks.hold(order_id):
                result = current_domain.process(command, asynchronous=False)
                order = self._repo().get_order(order_id)
        finally:
            clear_context()
        return result, order

    def _wants_notification(self, order: Order, send_notification: bool | None) -> bool:
        return order.send_notifications if send_notification is None else send_notification

    # -------------------------------------------------------------------
    # Creation and reads
    # -------------------------------------------------------------------
    def place_order(
        self,
        customer_id: str,
        items: list[dict],
        shipping_address: dict,
        shipping_method: dict,
        pricing: dict | None = None,
        payment_method: str = "razorpay",
        source: str = "web",
        fraud_score: int = 0,
        risk_flags: list[str] | None = None,
        send_notifications: bool = True,
    ) -> dict:
        order_id = current_domain.process(
            PlaceOrder(
                customer_id=customer_id,
                items=json.dumps(items),
                shipping_address=json.dumps(shipping_address),
                shipping_method=json.dumps(shipping_method),
                pricing=json.dumps(pricing) if pricing else None,
                payment_method=payment_method,
                source=source,
                fraud_score=fraud_score,
                risk_flags=json.dumps(risk_flags or []),
                send_notifications=send_notifications,
            ),
            asynchronous=False,
        )
        order = self._repo().get_order(order_id)
        logger.info("Order placed", order_id=order_id, order_number=order.order_number)
        self.hooks.run(
            order_id,
            {
                "type": "order_placed",
                "order_number": order.order_number,
                "customer_id": str(order.customer_id),
                "notify": order.send_notifications,
            },
        )
        return {"order_id": order_id, "order_number": order.order_number}

    def get_snapshot(self, order_id: str) -> dict:
        return order_snapshot(self._repo().get_order(order_id))

    def track(self, order_number: str) -> dict:
        return tracking_view(self._repo().find_by_order_number(order_number))

    def customer_orders(
        self,
        customer_id: str,
        status: str | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> dict:
        """A customer's own orders, newest first."""
        _check_choice("status", status, OrderStatus)
        results = self._repo().list_orders(customer_id=customer_id, status=status, page=page, limit=limit)
        return order_page(results, page, limit)

    def search_orders(
        self,
        status: str | None = None,
        payment_status: str | None = None,
        placed_from: datetime | None = None,
        placed_to: datetime | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> dict:
        """Back-office listing across all customers."""
        _check_choice("status", status, OrderStatus)
        _check_choice("payment_status", payment_status, PaymentStatus)
        if placed_from and placed_to and as_utc(placed_from) > as_utc(placed_to):
            raise InvalidInput("placed_from", "Start of the date range is after its end")
        results = self._repo().list_orders(
            status=status,
            payment_status=payment_status,
            placed_from=placed_from,
            placed_to=placed_to,
            page=page,
            limit=limit,
        )
        return order_page(results, page, limit)

    # -------------------------------------------------------------------
    # State machine
    # -------------------------------------------------------------------
    def request_transition(
        self,
        order_id: str,
        target_status: str,
        carrier: str | None = None,
        tracking_number: str | None = None,
        reason: str | None = None,
        notes: str | None = None,
        send_notification: bool | None = None,
        actor_id: str | None = None,
        expected_revision: int | None = None,
    ) -> dict:
        """Apply a status change and return the committed snapshot."""
        metadata, order = self._mutate(
            order_id,
            RequestTransition(
                order_id=order_id,
                target_status=target_status,
                carrier=carrier,
                tracking_number=tracking_number,
                reason=reason,
                notes=notes,
                actor_id=actor_id,
                expected_revision=expected_revision,
            ),
        )
        logger.info(
            "Order status changed",
            order_id=order_id,
            previous_status=metadata["previous_status"],
            new_status=metadata["new_status"],
            actor_id=actor_id,
        )
        change = {
            "type": "order_status_changed",
            "order_number": order.order_number,
            "customer_id": str(order.customer_id),
            **{key: value for key, value in metadata.items() if key != "notes"},
            "notify": self._wants_notification(order, send_notification),
        }
        self.hooks.run(order_id, change)
        return order_snapshot(order)

    # -------------------------------------------------------------------
    # Notes and shipping events
    # -------------------------------------------------------------------
    def add_admin_note(
        self,
        order_id: str,
        text: str,
        author_id: str | None = None,
        expected_revision: int | None = None,
    ) -> dict:
        note_id, order = self._mutate(
            order_id,
            AddAdminNote(
                order_id=order_id,
                text=text,
                author_id=author_id,
                expected_revision=expected_revision,
            ),
        )
        note = next(n for n in order.notes() if str(n.id) == note_id)
        return note_view(note)

    def add_shipping_event(
        self,
        order_id: str,
        label: str,
        description: str | None = None,
        location: str | None = None,
        metadata: dict | None = None,
    ) -> dict:
        event_id, order = self._mutate(
            order_id,
            AddShippingEvent(
                order_id=order_id,
                label=label,
                description=description,
                location=location,
                event_metadata=json.dumps(metadata) if metadata else None,
            ),
        )
        event = next(e for e in order.shipping_history() if str(e.id) == event_id)
        logger.info("Shipping event recorded", order_id=order_id, label=event.label)
        return shipping_event_view(event)

    # -------------------------------------------------------------------
    # Payment attempts
    # -------------------------------------------------------------------
    def open_payment_attempt(
        self,
        order_id: str,
        gateway_order_id: str,
        amount: float | None = None,
        actor_id: str | None = None,
    ) -> dict:
        attempt_id, order = self._mutate(
            order_id,
            OpenPaymentAttempt(
                order_id=order_id,
                gateway_order_id=gateway_order_id,
                amount=amount,
                actor_id=actor_id,
            ),
        )
        return attempt_view(order.find_attempt(attempt_id))

    def update_payment_attempt(
        self,
        order_id: str,
        attempt_id: str,
        status: str,
        gateway_payment_id: str | None = None,
        gateway_method: str | None = None,
        error_reason: str | None = None,
        send_notification: bool | None = None,
        actor_id: str | None = None,
        expected_revision: int | None = None,
    ) -> dict:
        changed, order = self._mutate(
            order_id,
            UpdatePaymentAttempt(
                order_id=order_id,
                attempt_id=attempt_id,
                status=status,
                gateway_payment_id=gateway_payment_id,
                gateway_method=gateway_method,
                error_reason=error_reason,
                actor_id=actor_id,
                expected_revision=expected_revision,
            ),
        )
        if changed and status == PaymentStatus.CAPTURED.value:
            logger.info("Payment captured", order_id=order_id, attempt_id=attempt_id)
            self.hooks.run(
                order_id,
                {
                    "type": "payment_captured",
                    "order_number": order.order_number,
                    "customer_id": str(order.customer_id),
                    "previous_status": OrderStatus.PENDING.value,
                    "new_status": OrderStatus.CONFIRMED.value,
                    "notify": self._wants_notification(order, send_notification),
                },
            )
            # The auto invoice hook may have changed the order
            order = self._repo().get_order(order_id)
        elif changed and status == PaymentStatus.FAILED.value:
            logger.warning("Payment failed", order_id=order_id, attempt_id=attempt_id, reason=error_reason)
        return order_snapshot(order)


_lifecycle_instance: OrderLifecycle | None = None


def get_lifecycle() -> OrderLifecycle:
    """Return the process-wide lifecycle service (singleton)."""
    global _lifecycle_instance
    if _lifecycle_instance is None:
        _lifecycle_instance = OrderLifecycle()
    return _lifecycle_instance


def set_lifecycle(lifecycle: OrderLifecycle) -> None:
    global _lifecycle_instance
    _lifecycle_instance = lifecycle


def reset_lifecycle():
    """Reset the lifecycle singleton (useful for testing)."""
    global _lifecycle_instance
    _lifecycle_instance = None
