import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from protean.integrations.fastapi import register_exception_handlers

from orders.api.errors import register_orders_exception_handlers
from orders.api.routes import order_router


@pytest.fixture()
def api():
    app = FastAPI()
    app.include_router(order_router)
    register_exception_handlers(app)
    register_orders_exception_handlers(app)
    return app


@pytest.fixture()
def client(api):
    return TestClient(api)


@pytest.fixture()
def place_payload(order_data):
    return {**order_data, "payment_method": "razorpay", "source": "web"}


@pytest.fixture()
def order_id(client, place_payload):
    response = client.post("/orders", json=place_payload)
    assert response.status_code == 201
    return response.json()["order_id"]
