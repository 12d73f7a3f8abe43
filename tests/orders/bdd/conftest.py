"""Shared BDD fixtures and step definitions for the Orders domain."""

import pytest
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain
from pytest_bdd import given, parsers, then

from orders.errors import InvalidTransition
from orders.order.order import Order

PDF = b"%PDF-1.4\n1 0 obj\n<< /Type /Catalog >>\nendobj\ntrailer\n<< /Root 1 0 R >>\n%%EOF\n"

_PATH_TO = {
    "pending": [],
    "confirmed": ["confirmed"],
    "processing": ["confirmed", "processing"],
}


@pytest.fixture()
def error():
    """Container for captured errors."""
    return {"exc": None}


def _load(order_id) -> Order:
    return current_domain.repository_for(Order).get_order(order_id)


@pytest.fixture()
def load_order():
    return _load


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given("a pending order", target_fixture="order_id")
def pending_order(lifecycle, order_data):
    return lifecycle.place_order(**order_data)["order_id"]


@given(parsers.cfparse('an order in "{status}"'), target_fixture="order_id")
def order_in_status(lifecycle, order_data, status):
    order_id = lifecycle.place_order(**order_data)["order_id"]
    for step in _PATH_TO[status]:
        lifecycle.request_transition(order_id, step)
    return order_id


@given(parsers.cfparse('a pending order with an admin invoice "{number}"'), target_fixture="order_id")
def order_with_admin_invoice(lifecycle, order_data, number):
    order_id = lifecycle.place_order(**order_data)["order_id"]
    lifecycle.registry.upload_admin(order_id, content=PDF, invoice_number=number, uploader_id="admin-bdd")
    return order_id


@given("the system invoice has been generated")
def system_invoice_generated(lifecycle, order_id):
    lifecycle.registry.generate_auto(order_id)


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the order status is "{status}"'))
def order_status_is(order_id, status):
    assert _load(order_id).status == status


@then("the change is rejected as an invalid transition")
def rejected_as_invalid_transition(error):
    assert isinstance(error["exc"], InvalidTransition)
    assert isinstance(error["exc"], ValidationError)


@then(parsers.cfparse('the order lists {count:d} "{kind}" invoice'))
def order_lists_invoices(lifecycle, order_id, count, kind):
    invoices = lifecycle.registry.list_invoices(order_id)
    assert len([i for i in invoices if i["kind"] == kind]) == count
