import pytest
from protean.integrations.pytest import DomainFixture
from protean.utils.globals import current_domain

from orders.config import reset_settings
from orders.notifications import reset_notification_sender, set_notification_sender
from orders.notifications.fake_adapter import FakeNotificationSender
from orders.order.lifecycle import OrderLifecycle, reset_lifecycle, set_lifecycle
from orders.order.locking import OrderLocks, reset_order_locks
from orders.order.order import Order
from orders.rendering import reset_renderer, set_renderer
from orders.rendering.fake_adapter import FakeRenderer
from orders.storage import reset_blob_store, set_blob_store
from orders.storage.memory import InMemoryBlobStore


@pytest.fixture(scope="session")
def orders_bed():
    from orders.domain import orders

    bed = DomainFixture(orders)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(orders_bed):
    with orders_bed.domain_context():
        yield

        for _, provider in current_domain.providers.items():
            provider._data_reset()
        current_domain.event_store.store._data_reset()


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------
@pytest.fixture(autouse=True)
def _settings():
    reset_settings()
    yield
    reset_settings()


@pytest.fixture(autouse=True)
def renderer():
    fake = FakeRenderer()
    set_renderer(fake)
    yield fake
    reset_renderer()


@pytest.fixture(autouse=True)
def blob_store():
    store = InMemoryBlobStore()
    set_blob_store(store)
    yield store
    reset_blob_store()


@pytest.fixture(autouse=True)
def sender():
    fake = FakeNotificationSender()
    set_notification_sender(fake)
    yield fake
    reset_notification_sender()


@pytest.fixture(autouse=True)
def lifecycle():
    service = OrderLifecycle(locks=OrderLocks())
    set_lifecycle(service)
    yield service
    reset_lifecycle()
    reset_order_locks()


# ---------------------------------------------------------------------------
# Order data
# ---------------------------------------------------------------------------
@pytest.fixture()
def order_data():
    return {
        "customer_id": "cust-001",
        "items": [
            {
                "sku": "CPU-7800X3D",
                "name": "Ryzen 7 7800X3D",
                "quantity": 1,
                "unit_price": 36000.0,
                "discounted_price": 34000.0,
                "tax_rate": 18.0,
            },
            {
                "sku": "RAM-32-DDR5",
                "name": "32GB DDR5 Kit",
                "quantity": 2,
                "unit_price": 9000.0,
                "tax_rate": 18.0,
            },
        ],
        "shipping_address": {
            "full_name": "Asha Rao",
            "phone": "+91-9000000000",
            "street": "12 MG Road",
            "city": "Bengaluru",
            "state": "KA",
            "postal_code": "560001",
            "country": "IN",
        },
        "shipping_method": {"name": "standard", "cost": 99.0, "delivery_days": 5},
    }


@pytest.fixture()
def new_order(order_data):
    """Factory for unsaved Order aggregates."""

    def _make(**overrides) -> Order:
        data = {**order_data, **overrides}
        return Order.place(
            customer_id=data["customer_id"],
            items_data=data["items"],
            shipping_address=data["shipping_address"],
            shipping_method=data["shipping_method"],
            pricing=data.get("pricing"),
            risk_flags=data.get("risk_flags"),
            fraud_score=data.get("fraud_score", 0),
            send_notifications=data.get("send_notifications", True),
        )

    return _make


@pytest.fixture()
def placed_order(lifecycle, order_data):
    """A persisted pending order; returns its ID."""
    return lifecycle.place_order(**order_data)["order_id"]
