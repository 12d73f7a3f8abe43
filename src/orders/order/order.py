"""Order aggregate (CQRS) — the core of the orders domain.

The Order owns its lifecycle status, an append-only audit timeline, admin
notes, carrier shipping events, the payment attempt ledger and two invoice
slots. Every mutation happens through a method on the aggregate so that the
status change and its timeline entry are persisted together.

State Machine:
    PENDING → CONFIRMED → PROCESSING → SHIPPED → DELIVERED
    PROCESSING → DELIVERED (no separate carrier handoff)
    {CONFIRMED, PROCESSING, SHIPPED} → REFUNDED
    CANCELLABLE_STATUSES → CANCELLED
    DELIVERED, CANCELLED, REFUNDED are terminal.

Invoice slots:
    ``auto_invoice`` is filled once by the system renderer and never replaced.
    ``admin_invoice`` is uploaded by an operator and may be replaced or removed.
    The two never substitute for one another.
"""

import json
import secrets
import string
from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4

from protean.exceptions import ValidationError
from protean.fields import (
    Boolean,
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    Text,
    ValueObject,
)

from orders.config import get_settings
from orders.domain import orders
from orders.errors import AlreadyExists, Conflict, InvalidInput, InvalidTransition, NotFound
from orders.order.events import (
    AdminInvoiceDeleted,
    AdminInvoiceUploaded,
    AutoInvoiceGenerated,
    OrderCancelled,
    OrderDelivered,
    OrderPlaced,
    OrderRefunded,
    OrderShipped,
    OrderStatusChanged,
    PaymentCaptured,
    PaymentFailed,
)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentStatus(Enum):
    CREATED = "created"
    ATTEMPTED = "attempted"
    CAPTURED = "captured"
    FAILED = "failed"


class GatewayMethod(Enum):
    CARD = "card"
    UPI = "upi"
    NETBANKING = "netbanking"
    WALLET = "wallet"


class OrderSource(Enum):
    WEB = "web"
    MOBILE = "mobile"
    UNKNOWN = "unknown"


class RiskFlag(Enum):
    HIGH_VALUE = "high_value"
    NEW_CUSTOMER = "new_customer"
    MULTIPLE_ATTEMPTS = "multiple_attempts"
    SUSPICIOUS_LOCATION = "suspicious_location"


class TimelineEventKind(Enum):
    ORDER_CREATED = "order_created"
    PAYMENT_ATTEMPT_CREATED = "payment_attempt_created"
    PAYMENT_ATTEMPTED = "payment_attempted"
    PAYMENT_CAPTURED = "payment_captured"
    PAYMENT_FAILED = "payment_failed"
    STATUS_UPDATED = "status_updated"
    ORDER_SHIPPED = "order_shipped"
    ORDER_DELIVERED = "order_delivered"
    ORDER_CANCELLED = "order_cancelled"
    ADMIN_NOTE_ADDED = "admin_note_added"
    REFUND_PROCESSED = "refund_processed"
    AUTO_INVOICE_GENERATED = "auto_invoice_generated"
    ADMIN_INVOICE_UPLOADED = "admin_invoice_uploaded"
    ADMIN_INVOICE_DELETED = "admin_invoice_deleted"


class InvoiceKind(Enum):
    AUTO_GENERATED = "auto_generated"
    ADMIN_UPLOADED = "admin_uploaded"


# State machine transition map. Cancellation is governed separately by
# ``cancellable_statuses()`` so that the shipped exception stays configurable.
_VALID_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED},
    OrderStatus.CONFIRMED: {OrderStatus.PROCESSING, OrderStatus.REFUNDED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.DELIVERED, OrderStatus.REFUNDED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED, OrderStatus.REFUNDED},
    OrderStatus.DELIVERED: set(),  # terminal
    OrderStatus.CANCELLED: set(),  # terminal
    OrderStatus.REFUNDED: set(),  # terminal
}

TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.REFUNDED})

CANCELLABLE_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.PROCESSING})


def cancellable_statuses() -> frozenset:
    """Statuses an order may be cancelled from under the current settings."""
    if get_settings().allow_cancel_after_shipment:
        return CANCELLABLE_STATUSES | {OrderStatus.SHIPPED}
    return CANCELLABLE_STATUSES


def allowed_targets(current: OrderStatus) -> set[OrderStatus]:
    targets = set(_VALID_TRANSITIONS.get(current, set()))
    if current in cancellable_statuses():
        targets.add(OrderStatus.CANCELLED)
    return targets


def generate_order_number(now: datetime | None = None) -> str:
    """``ORD-YYYYMMDD-XXXXX`` with a random upper-case alphanumeric suffix."""
    now = now or datetime.now(UTC)
    alphabet = string.ascii_uppercase + string.digits
    suffix = "".join(secrets.choice(alphabet) for _ in range(5))
    return f"ORD-{now.strftime('%Y%m%d')}-{suffix}"


def auto_invoice_number_for(order_number: str) -> str:
    """System invoice numbers mirror the order number: ORD-… becomes INV-…."""
    return "INV-" + order_number.removeprefix("ORD-")


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@orders.value_object(part_of="Order")
class ShippingAddress:
    """Delivery address captured at checkout. Never changes afterwards."""

    full_name = String(max_length=150)
    phone = String(max_length=30)
    street = String(required=True, max_length=255)
    city = String(required=True, max_length=100)
    state = String(max_length=100)
    postal_code = String(required=True, max_length=20)
    country = String(required=True, max_length=100)


@orders.value_object(part_of="Order")
class OrderPricing:
    """Financial summary locked at checkout.

    ``amount_paid`` and ``amount_due`` are the only values that move, and only
    when a payment attempt is captured.
    """

    subtotal = Float(default=0.0)
    discount = Float(default=0.0)
    shipping = Float(default=0.0)
    tax = Float(default=0.0)
    total = Float(default=0.0)
    currency = String(max_length=3, default="INR")
    amount_paid = Float(default=0.0)
    amount_due = Float(default=0.0)


@orders.value_object(part_of="Order")
class ShippingMethod:
    """Chosen delivery option; carrier and tracking are set once, on shipment."""

    name = String(required=True, max_length=100)
    cost = Float(default=0.0)
    delivery_days = Integer(default=0)
    carrier = String(max_length=100)
    tracking_number = String(max_length=255)


@orders.value_object(part_of="Order")
class AutoInvoice:
    """Reference to the system-rendered invoice document."""

    invoice_number = String(required=True, max_length=50)
    generated_at = DateTime(required=True)
    blob_ref = String(required=True, max_length=500)
    file_size = Integer(default=0)
    version = Integer(default=1)


@orders.value_object(part_of="Order")
class AdminInvoice:
    """Reference to an operator-uploaded invoice document."""

    invoice_number = String(required=True, max_length=100)
    uploaded_at = DateTime(required=True)
    uploaded_by = String(max_length=255)
    notes = Text()
    original_file_name = String(max_length=255)
    blob_ref = String(required=True, max_length=500)
    file_size = Integer(default=0)
    mime_type = String(max_length=100, default="application/pdf")


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@orders.entity(part_of="Order")
class OrderItem:
    """Line item snapshot taken at checkout."""

    product_id = Identifier()
    sku = String(required=True, max_length=100)
    name = String(required=True, max_length=255)
    quantity = Integer(required=True, min_value=1)
    unit_price = Float(required=True, min_value=0.0)
    discounted_price = Float(min_value=0.0)
    total = Float(default=0.0)
    tax_rate = Float(default=0.0)
    tax_amount = Float(default=0.0)
    returnable = Boolean(default=True)
    return_window_days = Integer(default=7)


@orders.entity(part_of="Order")
class TimelineEvent:
    """One entry in the order's audit trail. Never edited once appended."""

    kind = String(required=True, max_length=50, choices=TimelineEventKind)
    message = Text(required=True)
    occurred_at = DateTime(required=True)
    actor_id = String(max_length=255)
    event_metadata = Text()  # JSON object
    sequence = Integer(required=True, min_value=1)

    @property
    def metadata(self) -> dict:
        return json.loads(self.event_metadata) if self.event_metadata else {}


@orders.entity(part_of="Order")
class AdminNote:
    text = Text(required=True)
    author_id = String(max_length=255)
    added_at = DateTime(required=True)
    sequence = Integer(required=True, min_value=1)


@orders.entity(part_of="Order")
class ShippingEvent:
    """A carrier milestone (picked up, in transit, out for delivery...)."""

    label = String(required=True, max_length=100)
    description = Text()
    location = String(max_length=200)
    occurred_at = DateTime(required=True)
    event_metadata = Text()  # JSON object
    sequence = Integer(required=True, min_value=1)

    @property
    def metadata(self) -> dict:
        return json.loads(self.event_metadata) if self.event_metadata else {}


@orders.entity(part_of="Order")
class PaymentAttempt:
    """Outcome of one round-trip with the payment gateway."""

    attempt_number = Integer(required=True, min_value=1)
    gateway_order_id = String(required=True, max_length=255)
    gateway_payment_id = String(max_length=255)
    amount = Float(required=True, min_value=0.0)
    currency = String(max_length=3, default="INR")
    status = String(
        max_length=20,
        choices=PaymentStatus,
        default=PaymentStatus.CREATED.value,
    )
    gateway_method = String(max_length=20, choices=GatewayMethod)
    error_reason = Text()
    created_at = DateTime(required=True)
    captured_at = DateTime()


# ---------------------------------------------------------------------------
# Aggregate Root (CQRS)
# ---------------------------------------------------------------------------
@orders.aggregate
class Order:
    order_number = String(required=True, max_length=30)
    customer_id = Identifier(required=True)
    source = String(max_length=20, choices=OrderSource, default=OrderSource.WEB.value)
    status = String(
        max_length=20,
        choices=OrderStatus,
        default=OrderStatus.PENDING.value,
    )
    items = HasMany(OrderItem)
    shipping_address = ValueObject(ShippingAddress)
    pricing = ValueObject(OrderPricing)
    shipping_method = ValueObject(ShippingMethod)

    payment_method = String(max_length=50, default="razorpay")
    payment_status = String(
        max_length=20,
        choices=PaymentStatus,
        default=PaymentStatus.CREATED.value,
    )
    payment_attempts = HasMany(PaymentAttempt)
    payment_attempt_count = Integer(default=0)
    retry_allowed = Boolean(default=True)

    fraud_score = Integer(default=0, min_value=0, max_value=100)
    risk_flags = Text()  # JSON list of RiskFlag values

    timeline_events = HasMany(TimelineEvent)
    admin_notes = HasMany(AdminNote)
    shipping_events = HasMany(ShippingEvent)

    auto_invoice = ValueObject(AutoInvoice)
    admin_invoice = ValueObject(AdminInvoice)
    auto_invoice_reservation = String(max_length=64)

    delivered_at = DateTime()
    cancelled_at = DateTime()
    cancellation_reason = Text()
    send_notifications = Boolean(default=True)
    revision = Integer(default=0)
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def place(
        cls,
        customer_id: str,
        items_data: list[dict],
        shipping_address: dict,
        shipping_method: dict,
        pricing: dict | None = None,
        payment_method: str = "razorpay",
        source: str = OrderSource.WEB.value,
        fraud_score: int = 0,
        risk_flags: list[str] | None = None,
        send_notifications: bool = True,
    ):
        """Create a new pending order from a checkout snapshot."""
        if not items_data:
            raise InvalidInput("items", "An order needs at least one item")

        flags = sorted(set(risk_flags or []))
        unknown = [flag for flag in flags if flag not in {f.value for f in RiskFlag}]
        if unknown:
            raise InvalidInput("risk_flags", f"Unknown risk flag(s): {', '.join(unknown)}")

        now = datetime.now(UTC)
        items = [OrderItem(**_item_snapshot(item_data)) for item_data in items_data]
        method = ShippingMethod(
            name=shipping_method.get("name"),
            cost=shipping_method.get("cost", 0.0),
            delivery_days=shipping_method.get("delivery_days", 0),
        )
        order_pricing = _price(items, method, pricing or {})

        order = cls(
            order_number=generate_order_number(now),
            customer_id=customer_id,
            source=source,
            status=OrderStatus.PENDING.value,
            shipping_address=ShippingAddress(**shipping_address),
            shipping_method=method,
            pricing=order_pricing,
            payment_method=payment_method,
            payment_status=PaymentStatus.CREATED.value,
            fraud_score=fraud_score,
            risk_flags=json.dumps(flags),
            send_notifications=send_notifications,
            revision=1,
            created_at=now,
            updated_at=now,
        )
        for item in items:
            order.add_items(item)

        order.record_event(
            TimelineEventKind.ORDER_CREATED,
            "Order was created",
            actor_id=str(customer_id),
            metadata={"order_number": order.order_number, "total": order_pricing.total},
        )
        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                order_number=order.order_number,
                customer_id=str(customer_id),
                items=json.dumps([_item_snapshot(item_data) for item_data in items_data]),
                grand_total=order_pricing.total,
                currency=order_pricing.currency,
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Read helpers
    # -------------------------------------------------------------------
    @property
    def current_status(self) -> OrderStatus:
        return OrderStatus(self.status)

    @property
    def flags(self) -> list[str]:
        return json.loads(self.risk_flags) if self.risk_flags else []

    def timeline_entries(self) -> list[TimelineEvent]:
        """Timeline in insertion order."""
        return sorted(self.timeline_events or [], key=lambda e: e.sequence)

    def notes(self) -> list[AdminNote]:
        return sorted(self.admin_notes or [], key=lambda n: n.sequence)

    def shipping_history(self) -> list[ShippingEvent]:
        return sorted(self.shipping_events or [], key=lambda e: e.sequence)

    def attempts(self) -> list[PaymentAttempt]:
        return sorted(self.payment_attempts or [], key=lambda a: a.attempt_number)

    def find_attempt(self, attempt_id: str) -> PaymentAttempt:
        attempt = next((a for a in (self.payment_attempts or []) if str(a.id) == str(attempt_id)), None)
        if attempt is None:
            raise NotFound(f"Payment attempt {attempt_id} not found", order_id=str(self.id))
        return attempt

    def invoice_for(self, kind: InvoiceKind | str):
        """The live reference in the given slot, or None."""
        kind = InvoiceKind(kind)
        return self.auto_invoice if kind is InvoiceKind.AUTO_GENERATED else self.admin_invoice

    def auto_invoice_number(self) -> str:
        return auto_invoice_number_for(self.order_number)

    def ensure_revision(self, expected_revision: int | None) -> None:
        """Reject a change made against a stale view of the order."""
        if expected_revision is not None and expected_revision != self.revision:
            raise Conflict(
                "Order was modified by another request; reload and retry",
                order_id=str(self.id),
                expected_revision=expected_revision,
                revision=self.revision,
            )

    # -------------------------------------------------------------------
    # Timeline
    # -------------------------------------------------------------------
    def record_event(
        self,
        kind: TimelineEventKind,
        message: str,
        actor_id: str | None = None,
        metadata: dict | None = None,
    ) -> TimelineEvent:
        """Append an entry to the audit trail. This is the only way in."""
        entry = TimelineEvent(
            kind=kind.value,
            message=message,
            occurred_at=datetime.now(UTC),
            actor_id=actor_id,
            event_metadata=json.dumps(metadata or {}, default=str),
            sequence=len(self.timeline_events or []) + 1,
        )
        self.add_timeline_events(entry)
        return entry

    def _touch(self, now: datetime | None = None) -> None:
        self.revision = (self.revision or 0) + 1
        self.updated_at = now or datetime.now(UTC)

    # -------------------------------------------------------------------
    # Admin notes
    # -------------------------------------------------------------------
    def _append_admin_note(self, text: str, author_id: str | None, now: datetime) -> AdminNote:
        note = AdminNote(
            text=text,
            author_id=author_id,
            added_at=now,
            sequence=len(self.admin_notes or []) + 1,
        )
        self.add_admin_notes(note)
        return note

    def add_admin_note(self, text: str, author_id: str | None = None) -> AdminNote:
        """Attach an internal note and log it on the timeline."""
        text = (text or "").strip()
        if not text:
            raise InvalidInput("note", "Note text cannot be empty")

        now = datetime.now(UTC)
        note = self._append_admin_note(text, author_id, now)
        self.record_event(
            TimelineEventKind.ADMIN_NOTE_ADDED,
            "Admin note added",
            actor_id=author_id,
            metadata={"note": text},
        )
        self._touch(now)
        return note

    # -------------------------------------------------------------------
    # Shipping
    # -------------------------------------------------------------------
    def _assign_shipment(self, carrier: str, tracking_number: str) -> None:
        # Only reached from transition_to(SHIPPED), after the single-shipment guard
        current = self.shipping_method
        self.shipping_method = ShippingMethod(
            name=current.name if current else "standard",
            cost=current.cost if current else 0.0,
            delivery_days=current.delivery_days if current else 0,
            carrier=carrier,
            tracking_number=tracking_number,
        )

    def _append_shipping_event(
        self,
        label: str,
        description: str | None,
        location: str | None,
        metadata: dict | None,
        now: datetime,
    ) -> ShippingEvent:
        event = ShippingEvent(
            label=label,
            description=description,
            location=location,
            occurred_at=now,
            event_metadata=json.dumps(metadata or {}, default=str),
            sequence=len(self.shipping_events or []) + 1,
        )
        self.add_shipping_events(event)
        return event

    def add_shipping_event(
        self,
        label: str,
        description: str | None = None,
        location: str | None = None,
        metadata: dict | None = None,
    ) -> ShippingEvent:
        """Record a carrier milestone. Never changes the order status."""
        if self.current_status not in (OrderStatus.SHIPPED, OrderStatus.DELIVERED):
            raise ValidationError({"status": ["Shipping events can only be added after shipment"]})
        label = (label or "").strip()
        if not label:
            raise InvalidInput("label", "Shipping event label cannot be empty")

        now = datetime.now(UTC)
        event = self._append_shipping_event(label, description, location, metadata, now)
        self._touch(now)
        return event

    # -------------------------------------------------------------------
    # State machine
    # -------------------------------------------------------------------
    def _assert_can_transition(self, target: OrderStatus) -> None:
        current = self.current_status
        if current in TERMINAL_STATUSES:
            raise InvalidTransition(
                current.value,
                target.value,
                f"Order is {current.value}; no further status changes are allowed",
            )
        if target == current:
            raise InvalidTransition(current.value, target.value, f"Order is already {current.value}")
        if target == OrderStatus.CANCELLED and current not in cancellable_statuses():
            raise InvalidTransition(
                current.value,
                target.value,
                f"Order cannot be cancelled once it is {current.value}",
            )
        if target == OrderStatus.DELIVERED and current not in (OrderStatus.PROCESSING, OrderStatus.SHIPPED):
            raise InvalidTransition(
                current.value,
                target.value,
                "Order cannot be delivered before it is processing or shipped",
            )
        if target not in allowed_targets(current):
            raise InvalidTransition(
                current.value,
                target.value,
                f"Cannot transition from {current.value} to {target.value}",
            )

    def transition_to(
        self,
        target_status: OrderStatus | str,
        carrier: str | None = None,
        tracking_number: str | None = None,
        reason: str | None = None,
        notes: str | None = None,
        actor_id: str | None = None,
    ) -> TimelineEvent:
        """Move the order to ``target_status``.

        All guards run before anything is written, so a rejected request
        leaves the order exactly as it was. An accepted request appends
        exactly one timeline entry.
        """
        try:
            target = OrderStatus(target_status)
        except ValueError:
            raise InvalidTransition(
                self.status,
                str(target_status),
                f"Unknown status: {target_status}",
            ) from None

        self._assert_can_transition(target)

        current = self.current_status
        carrier = (carrier or "").strip()
        tracking_number = (tracking_number or "").strip()
        reason = (reason or "").strip()
        notes = (notes or "").strip()

        if target == OrderStatus.SHIPPED:
            if not carrier or not tracking_number:
                raise InvalidTransition(
                    current.value,
                    target.value,
                    "Carrier and tracking number are required to ship an order",
                )
            if self.shipping_method and self.shipping_method.tracking_number:
                raise InvalidTransition(current.value, target.value, "Order already has a shipment")
        if target == OrderStatus.CANCELLED and not reason:
            raise InvalidTransition(current.value, target.value, "A cancellation reason is required")
        if target == OrderStatus.REFUNDED and self.payment_status != PaymentStatus.CAPTURED.value:
            raise InvalidTransition(
                current.value,
                target.value,
                "Only orders with a captured payment can be refunded",
            )

        now = datetime.now(UTC)
        metadata = {"previous_status": current.value, "new_status": target.value}
        self.status = target.value

        if target == OrderStatus.SHIPPED:
            self._assign_shipment(carrier, tracking_number)
            self._append_shipping_event(
                "shipped",
                f"Shipped via {carrier}",
                None,
                {"carrier": carrier, "tracking_number": tracking_number},
                now,
            )
            metadata.update(carrier=carrier, tracking_number=tracking_number)
            kind = TimelineEventKind.ORDER_SHIPPED
            message = f"Order shipped via {carrier} (tracking {tracking_number})"
            self.raise_(
                OrderShipped(
                    order_id=str(self.id),
                    carrier=carrier,
                    tracking_number=tracking_number,
                    shipped_at=now,
                )
            )
        elif target == OrderStatus.DELIVERED:
            if self.delivered_at is None:
                self.delivered_at = now
            kind = TimelineEventKind.ORDER_DELIVERED
            message = "Order delivered"
            self.raise_(OrderDelivered(order_id=str(self.id), delivered_at=self.delivered_at))
        elif target == OrderStatus.CANCELLED:
            self.cancelled_at = now
            self.cancellation_reason = reason
            # An in-flight auto invoice must not land on a cancelled order
            self.auto_invoice_reservation = None
            metadata["reason"] = reason
            kind = TimelineEventKind.ORDER_CANCELLED
            message = f"Order cancelled: {reason}"
            self.raise_(OrderCancelled(order_id=str(self.id), reason=reason, cancelled_at=now))
        elif target == OrderStatus.REFUNDED:
            amount = self.pricing.amount_paid if self.pricing else 0.0
            metadata["amount"] = amount
            kind = TimelineEventKind.REFUND_PROCESSED
            message = "Refund processed"
            self.raise_(OrderRefunded(order_id=str(self.id), amount=amount, refunded_at=now))
        else:
            kind = TimelineEventKind.STATUS_UPDATED
            message = f"Order status updated to {target.value}"

        if notes:
            metadata["notes"] = notes
            self._append_admin_note(notes, actor_id, now)

        entry = self.record_event(kind, message, actor_id=actor_id, metadata=metadata)
        self.raise_(
            OrderStatusChanged(
                order_id=str(self.id),
                order_number=self.order_number,
                previous_status=current.value,
                new_status=target.value,
                actor_id=actor_id,
                changed_at=now,
            )
        )
        self._touch(now)
        return entry

    # -------------------------------------------------------------------
    # Payment attempt ledger
    # -------------------------------------------------------------------
    def open_payment_attempt(
        self,
        gateway_order_id: str,
        amount: float | None = None,
        actor_id: str | None = None,
    ) -> PaymentAttempt:
        """Start a new gateway round-trip for this order."""
        gateway_order_id = (gateway_order_id or "").strip()
        if not gateway_order_id:
            raise InvalidInput("gateway_order_id", "Gateway order id is required")
        if self.payment_status == PaymentStatus.CAPTURED.value:
            raise ValidationError({"payment": ["Payment has already been captured"]})
        if self.current_status != OrderStatus.PENDING:
            raise ValidationError({"payment": [f"Cannot take payment for a {self.status} order"]})
        if not self.retry_allowed:
            raise ValidationError({"payment": ["No further payment attempts are allowed"]})

        now = datetime.now(UTC)
        count = (self.payment_attempt_count or 0) + 1
        attempt = PaymentAttempt(
            attempt_number=count,
            gateway_order_id=gateway_order_id,
            amount=amount if amount is not None else self.pricing.total,
            currency=self.pricing.currency,
            status=PaymentStatus.CREATED.value,
            created_at=now,
        )
        self.add_payment_attempts(attempt)
        self.payment_status = PaymentStatus.CREATED.value
        self.payment_attempt_count = count
        if count >= get_settings().max_payment_attempts:
            self.retry_allowed = False

        self.record_event(
            TimelineEventKind.PAYMENT_ATTEMPT_CREATED,
            "New payment attempt created",
            actor_id=actor_id,
            metadata={
                "attempt_id": str(attempt.id),
                "gateway_order_id": gateway_order_id,
                "amount": attempt.amount,
                "total_attempts": count,
            },
        )
        self._touch(now)
        return attempt

    def update_payment_attempt(
        self,
        attempt_id: str,
        status: PaymentStatus | str,
        gateway_payment_id: str | None = None,
        gateway_method: str | None = None,
        error_reason: str | None = None,
        actor_id: str | None = None,
    ) -> bool:
        """Apply a gateway outcome to an attempt.

        Returns False when nothing changed (a repeated capture).
        """
        attempt = self.find_attempt(attempt_id)
        try:
            new_status = PaymentStatus(status)
        except ValueError:
            raise InvalidInput("status", f"Unknown payment status: {status}") from None
        if new_status == PaymentStatus.CREATED:
            raise InvalidInput("status", "An attempt cannot be moved back to created")
        if gateway_method is not None:
            try:
                gateway_method = GatewayMethod(gateway_method).value
            except ValueError:
                raise InvalidInput("gateway_method", f"Unknown gateway method: {gateway_method}") from None

        if attempt.status == PaymentStatus.CAPTURED.value:
            if new_status == PaymentStatus.CAPTURED:
                return False
            raise ValidationError({"payment": ["A captured attempt cannot change status"]})

        if new_status == PaymentStatus.CAPTURED:
            if self.payment_status == PaymentStatus.CAPTURED.value:
                raise ValidationError({"payment": ["Payment has already been captured"]})
            if self.current_status != OrderStatus.PENDING:
                raise InvalidTransition(
                    self.status,
                    OrderStatus.CONFIRMED.value,
                    f"Cannot capture payment for a {self.status} order",
                )

        now = datetime.now(UTC)
        attempt.status = new_status.value
        if gateway_payment_id:
            attempt.gateway_payment_id = gateway_payment_id
        if gateway_method:
            attempt.gateway_method = gateway_method
        if error_reason:
            attempt.error_reason = error_reason
        self.payment_status = new_status.value

        metadata = {
            "attempt_id": str(attempt.id),
            "gateway_payment_id": gateway_payment_id,
            "gateway_method": gateway_method,
        }
        if new_status == PaymentStatus.ATTEMPTED:
            self.record_event(
                TimelineEventKind.PAYMENT_ATTEMPTED,
                "Payment attempted",
                actor_id=actor_id,
                metadata=metadata,
            )
        elif new_status == PaymentStatus.FAILED:
            metadata["error_reason"] = error_reason
            self.record_event(
                TimelineEventKind.PAYMENT_FAILED,
                "Payment failed",
                actor_id=actor_id,
                metadata=metadata,
            )
            self.raise_(
                PaymentFailed(
                    order_id=str(self.id),
                    attempt_id=str(attempt.id),
                    reason=error_reason,
                    failed_at=now,
                )
            )
        else:
            attempt.captured_at = now
            previous = self.current_status
            self.status = OrderStatus.CONFIRMED.value
            self.retry_allowed = False
            self.pricing = OrderPricing(
                subtotal=self.pricing.subtotal,
                discount=self.pricing.discount,
                shipping=self.pricing.shipping,
                tax=self.pricing.tax,
                total=self.pricing.total,
                currency=self.pricing.currency,
                amount_paid=self.pricing.total,
                amount_due=0.0,
            )
            metadata.update(
                previous_status=previous.value,
                new_status=OrderStatus.CONFIRMED.value,
                amount=attempt.amount,
            )
            self.record_event(
                TimelineEventKind.PAYMENT_CAPTURED,
                "Payment captured; order confirmed",
                actor_id=actor_id,
                metadata=metadata,
            )
            self.raise_(
                PaymentCaptured(
                    order_id=str(self.id),
                    attempt_id=str(attempt.id),
                    gateway_payment_id=gateway_payment_id,
                    amount=attempt.amount,
                    captured_at=now,
                )
            )
            self.raise_(
                OrderStatusChanged(
                    order_id=str(self.id),
                    order_number=self.order_number,
                    previous_status=previous.value,
                    new_status=OrderStatus.CONFIRMED.value,
                    actor_id=actor_id,
                    changed_at=now,
                )
            )

        self._touch(now)
        return True

    # -------------------------------------------------------------------
    # Invoice slots
    # -------------------------------------------------------------------
    def reserve_auto_invoice(self) -> str:
        """Claim the auto-generated slot for an in-flight render."""
        if self.auto_invoice is not None:
            raise AlreadyExists(
                "An auto-generated invoice already exists for this order",
                order_id=str(self.id),
                invoice_number=self.auto_invoice.invoice_number,
            )
        if self.auto_invoice_reservation:
            raise Conflict("Invoice generation is already in progress", order_id=str(self.id))
        if self.current_status == OrderStatus.CANCELLED:
            raise ValidationError({"status": ["Cannot generate an invoice for a cancelled order"]})

        token = uuid4().hex
        self.auto_invoice_reservation = token
        self._touch()
        return token

    def release_auto_invoice(self, token: str) -> bool:
        """Drop a reservation if it is still ours."""
        if self.auto_invoice_reservation != token:
            return False
        self.auto_invoice_reservation = None
        self._touch()
        return True

    def attach_auto_invoice(
        self,
        token: str,
        blob_ref: str,
        file_size: int,
        actor_id: str | None = None,
    ) -> AutoInvoice:
        """Fill the auto slot with a rendered document, if the reservation still holds."""
        if self.auto_invoice_reservation != token:
            raise Conflict(
                "Invoice reservation was invalidated before the document was stored",
                order_id=str(self.id),
            )
        if self.auto_invoice is not None:
            raise AlreadyExists("An auto-generated invoice already exists for this order", order_id=str(self.id))

        now = datetime.now(UTC)
        invoice_number = self.auto_invoice_number()
        self.auto_invoice = AutoInvoice(
            invoice_number=invoice_number,
            generated_at=now,
            blob_ref=blob_ref,
            file_size=file_size,
            version=1,
        )
        self.auto_invoice_reservation = None
        self.record_event(
            TimelineEventKind.AUTO_INVOICE_GENERATED,
            f"Invoice {invoice_number} generated",
            actor_id=actor_id,
            metadata={"invoice_number": invoice_number},
        )
        self.raise_(
            AutoInvoiceGenerated(
                order_id=str(self.id),
                invoice_number=invoice_number,
                generated_at=now,
            )
        )
        self._touch(now)
        return self.auto_invoice

    def attach_admin_invoice(
        self,
        invoice_number: str,
        blob_ref: str,
        uploaded_by: str,
        file_size: int,
        mime_type: str = "application/pdf",
        notes: str | None = None,
        original_file_name: str | None = None,
    ) -> AdminInvoice | None:
        """Set or replace the admin slot. Returns the reference it displaced."""
        invoice_number = (invoice_number or "").strip()
        if not invoice_number:
            raise InvalidInput("invoice_number", "Invoice number is required")

        now = datetime.now(UTC)
        previous = self.admin_invoice
        self.admin_invoice = AdminInvoice(
            invoice_number=invoice_number,
            uploaded_at=now,
            uploaded_by=uploaded_by,
            notes=notes,
            original_file_name=original_file_name,
            blob_ref=blob_ref,
            file_size=file_size,
            mime_type=mime_type,
        )
        metadata = {"invoice_number": invoice_number, "file_name": original_file_name}
        if previous is not None:
            metadata["replaced_invoice_number"] = previous.invoice_number
        self.record_event(
            TimelineEventKind.ADMIN_INVOICE_UPLOADED,
            f"Admin invoice {invoice_number} uploaded",
            actor_id=uploaded_by,
            metadata=metadata,
        )
        self.raise_(
            AdminInvoiceUploaded(
                order_id=str(self.id),
                invoice_number=invoice_number,
                uploaded_by=uploaded_by,
                replaced_invoice_number=previous.invoice_number if previous else None,
                uploaded_at=now,
            )
        )
        self._touch(now)
        return previous

    def detach_admin_invoice(self, actor_id: str | None = None) -> AdminInvoice:
        """Empty the admin slot. The auto slot is never touched here."""
        previous = self.admin_invoice
        if previous is None:
            raise NotFound("No admin-uploaded invoice on this order", order_id=str(self.id))

        now = datetime.now(UTC)
        self.admin_invoice = None
        self.record_event(
            TimelineEventKind.ADMIN_INVOICE_DELETED,
            f"Admin invoice {previous.invoice_number} deleted",
            actor_id=actor_id,
            metadata={"invoice_number": previous.invoice_number},
        )
        self.raise_(
            AdminInvoiceDeleted(
                order_id=str(self.id),
                invoice_number=previous.invoice_number,
                deleted_at=now,
            )
        )
        self._touch(now)
        return previous


# ---------------------------------------------------------------------------
# Creation helpers
# ---------------------------------------------------------------------------
_ITEM_FIELDS = (
    "product_id",
    "sku",
    "name",
    "quantity",
    "unit_price",
    "discounted_price",
    "tax_rate",
    "returnable",
    "return_window_days",
)


def _item_snapshot(item_data: dict) -> dict:
    """Normalise a checkout line into the fields an OrderItem stores."""
    snapshot = {key: item_data[key] for key in _ITEM_FIELDS if item_data.get(key) is not None}
    quantity = snapshot.get("quantity", 0)
    unit_price = snapshot.get("unit_price", 0.0)
    price = snapshot.setdefault("discounted_price", unit_price)
    snapshot["total"] = round(price * quantity, 2)
    snapshot["tax_amount"] = round(snapshot["total"] * snapshot.get("tax_rate", 0.0) / 100, 2)
    return snapshot


def _price(items: list[OrderItem], shipping_method: ShippingMethod, overrides: dict) -> OrderPricing:
    subtotal = overrides.get("subtotal", round(sum(item.total for item in items), 2))
    discount = overrides.get("discount", 0.0)
    shipping = overrides.get("shipping", shipping_method.cost or 0.0)
    tax = overrides.get("tax", round(sum(item.tax_amount for item in items), 2))
    total = round(subtotal - discount + shipping + tax, 2)
    if total < 0:
        raise InvalidInput("pricing", "Order total cannot be negative")
    return OrderPricing(
        subtotal=subtotal,
        discount=discount,
        shipping=shipping,
        tax=tax,
        total=total,
        currency=overrides.get("currency", "INR"),
        amount_paid=0.0,
        amount_due=total,
    )
