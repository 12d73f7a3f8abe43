"""Repository for the Order aggregate."""

from datetime import UTC, datetime

from protean.exceptions import ObjectNotFoundError

from orders.domain import orders
from orders.errors import NotFound
from orders.order.order import Order


def as_utc(value: datetime) -> datetime:
    # Naive bounds are taken as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


@orders.repository(part_of=Order)
class OrderRepository:
    """Adds typed lookups on top of the standard CRUD operations."""

    def get_order(self, order_id: str) -> Order:
        try:
            return self.get(order_id)
        except ObjectNotFoundError:
            raise NotFound(f"Order {order_id} not found", order_id=order_id) from None

    def find_by_order_number(self, order_number: str) -> Order:
        try:
            return self._dao.find_by(order_number=order_number)
        except ObjectNotFoundError:
            raise NotFound(f"Order {order_number} not found", order_number=order_number) from None

    def list_orders(
        self,
        customer_id: str | None = None,
        status: str | None = None,
        payment_status: str | None = None,
        placed_from: datetime | None = None,
        placed_to: datetime | None = None,
        page: int = 1,
        limit: int = 10,
    ):
        """One page of orders, newest first. Returns a Protean ``ResultSet``."""
        filters = {}
        if customer_id:
            filters["customer_id"] = customer_id
        if status:
            filters["status"] = status
        if payment_status:
            filters["payment_status"] = payment_status
        if placed_from:
            filters["created_at__gte"] = as_utc(placed_from)
        if placed_to:
            filters["created_at__lte"] = as_utc(placed_to)

        return (
            self._dao.query.filter(**filters)
            .order_by("-created_at")
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
