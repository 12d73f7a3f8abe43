"""Integration tests for the order lifecycle endpoints via TestClient."""

from datetime import UTC, datetime, timedelta

import pytest


def _status(client, order_id, status, **extra):
    return client.put(f"/orders/{order_id}/status", json={"status": status, **extra})


def _ship(client, order_id):
    _status(client, order_id, "confirmed")
    _status(client, order_id, "processing")
    response = _status(client, order_id, "shipped", carrier="BlueDart", tracking_number="BD-900")
    assert response.status_code == 200
    return response


class TestPlaceOrderAPI:
    def test_place_returns_201(self, client, place_payload):
        response = client.post("/orders", json=place_payload)
        assert response.status_code == 201
        body = response.json()
        assert body["order_id"]
        assert body["order_number"].startswith("ORD-")

    def test_empty_items_rejected(self, client, place_payload):
        response = client.post("/orders", json={**place_payload, "items": []})
        assert response.status_code == 422

    def test_unknown_risk_flag_rejected(self, client, place_payload):
        response = client.post("/orders", json={**place_payload, "risk_flags": ["vip"]})
        assert response.status_code == 400

    def test_snapshot(self, client, order_id):
        response = client.get(f"/orders/{order_id}")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "pending"
        assert body["pricing"]["total"] == 61459.0
        assert body["timeline"][0]["kind"] == "order_created"
        assert body["invoices"] == []
        assert body["payment"]["attempts"] == []

    def test_unknown_order_returns_404(self, client):
        response = client.get("/orders/does-not-exist")
        assert response.status_code == 404
        assert "not found" in response.json()["error"]


class TestStatusAPI:
    def test_confirm(self, client, order_id):
        response = _status(client, order_id, "confirmed", actor_id="admin-1")
        assert response.status_code == 200
        assert response.json()["status"] == "confirmed"
        assert response.json()["revision"] == 2

    def test_invalid_transition_returns_400(self, client, order_id):
        response = _status(client, order_id, "delivered")
        assert response.status_code == 400
        assert client.get(f"/orders/{order_id}").json()["status"] == "pending"

    def test_ship_requires_tracking(self, client, order_id):
        _status(client, order_id, "confirmed")
        _status(client, order_id, "processing")
        response = _status(client, order_id, "shipped", carrier="BlueDart")
        assert response.status_code == 400

    def test_cancel_requires_reason(self, client, order_id):
        assert _status(client, order_id, "cancelled").status_code == 400
        response = _status(client, order_id, "cancelled", reason="Changed mind")
        assert response.status_code == 200
        assert response.json()["cancellation_reason"] == "Changed mind"

    def test_stale_revision_returns_409(self, client, order_id):
        client.post(f"/orders/{order_id}/notes", json={"note": "Checked"})
        response = _status(client, order_id, "confirmed", expected_revision=1)
        assert response.status_code == 409

    def test_unknown_order_returns_404(self, client):
        assert _status(client, "does-not-exist", "confirmed").status_code == 404

    def test_terminal_order_returns_400(self, client, order_id):
        _status(client, order_id, "cancelled", reason="Duplicate")
        assert _status(client, order_id, "confirmed").status_code == 400


class TestNotesAPI:
    def test_add_note(self, client, order_id):
        response = client.post(f"/orders/{order_id}/notes", json={"note": "VIP customer", "author_id": "admin-1"})
        assert response.status_code == 201
        body = response.json()
        assert body["text"] == "VIP customer"
        assert body["sequence"] == 1

    def test_empty_note_returns_400(self, client, order_id):
        response = client.post(f"/orders/{order_id}/notes", json={"note": "  "})
        assert response.status_code == 400


class TestShippingEventsAPI:
    def test_add_event_and_track(self, client, order_id):
        _ship(client, order_id)
        response = client.post(
            f"/orders/{order_id}/shipping-events",
            json={"label": "out_for_delivery", "location": "Bengaluru", "metadata": {"agent": "R. Kumar"}},
        )
        assert response.status_code == 201
        assert response.json()["sequence"] == 2

        order_number = client.get(f"/orders/{order_id}").json()["order_number"]
        tracking = client.get(f"/orders/track/{order_number}")
        assert tracking.status_code == 200
        body = tracking.json()
        assert body["status"] == "shipped"
        assert body["shipping_method"]["carrier"] == "BlueDart"
        assert [e["label"] for e in body["shipping_events"]] == ["shipped", "out_for_delivery"]

    def test_event_before_shipment_returns_400(self, client, order_id):
        response = client.post(f"/orders/{order_id}/shipping-events", json={"label": "in_transit"})
        assert response.status_code == 400

    def test_track_unknown_number_returns_404(self, client):
        assert client.get("/orders/track/ORD-19990101-ZZZZZ").status_code == 404


class TestPaymentAttemptsAPI:
    def test_open_and_capture(self, client, order_id):
        response = client.post(f"/orders/{order_id}/payments/attempts", json={"gateway_order_id": "rzp_order_1"})
        assert response.status_code == 201
        attempt = response.json()
        assert attempt["attempt_number"] == 1

        response = client.put(
            f"/orders/{order_id}/payments/attempts/{attempt['attempt_id']}",
            json={"status": "captured", "gateway_payment_id": "pay_1", "gateway_method": "upi"},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "confirmed"
        assert body["payment"]["status"] == "captured"
        assert body["payment"]["attempts"][0]["gateway_method"] == "upi"
        assert [i["kind"] for i in body["invoices"]] == ["auto_generated"]

    def test_failed_attempt(self, client, order_id):
        attempt = client.post(
            f"/orders/{order_id}/payments/attempts", json={"gateway_order_id": "rzp_order_1"}
        ).json()
        response = client.put(
            f"/orders/{order_id}/payments/attempts/{attempt['attempt_id']}",
            json={"status": "failed", "error_reason": "Bank declined"},
        )
        assert response.status_code == 200
        assert response.json()["status"] == "pending"
        assert response.json()["payment"]["retry_allowed"] is True

    def test_unknown_attempt_returns_404(self, client, order_id):
        response = client.put(f"/orders/{order_id}/payments/attempts/nope", json={"status": "captured"})
        assert response.status_code == 404

    def test_bad_status_returns_400(self, client, order_id):
        attempt = client.post(
            f"/orders/{order_id}/payments/attempts", json={"gateway_order_id": "rzp_order_1"}
        ).json()
        response = client.put(
            f"/orders/{order_id}/payments/attempts/{attempt['attempt_id']}", json={"status": "teleported"}
        )
        assert response.status_code == 400


class TestOrderListingsAPI:
    def test_customer_orders(self, client, place_payload):
        first = client.post("/orders", json=place_payload).json()
        client.post("/orders", json={**place_payload, "customer_id": "cust-002"})
        second = client.post("/orders", json=place_payload).json()

        response = client.get("/orders", params={"customer_id": "cust-001"})
        assert response.status_code == 200
        body = response.json()
        assert [o["order_number"] for o in body["orders"]] == [second["order_number"], first["order_number"]]
        assert body["total"] == 2
        assert body["page"] == 1

    def test_customer_id_required(self, client):
        assert client.get("/orders").status_code == 422

    def test_customer_orders_paginated(self, client, place_payload):
        for _ in range(3):
            client.post("/orders", json=place_payload)
        body = client.get("/orders", params={"customer_id": "cust-001", "page": 2, "limit": 2}).json()
        assert len(body["orders"]) == 1
        assert body["total_pages"] == 2

    @pytest.mark.parametrize("params", [{"page": 0}, {"limit": 0}, {"limit": 101}])
    def test_bad_paging_returns_422(self, client, params):
        assert client.get("/orders", params={"customer_id": "cust-001", **params}).status_code == 422

    def test_unknown_status_returns_400(self, client):
        response = client.get("/orders", params={"customer_id": "cust-001", "status": "lost"})
        assert response.status_code == 400

    def test_admin_listing_filters(self, client, place_payload, order_id):
        client.post("/orders", json={**place_payload, "customer_id": "cust-002"})
        _status(client, order_id, "confirmed")

        everything = client.get("/orders/admin").json()
        confirmed = client.get("/orders/admin", params={"status": "confirmed"}).json()
        assert everything["total"] == 2
        assert [o["order_id"] for o in confirmed["orders"]] == [order_id]

    def test_admin_listing_date_range(self, client, order_id):
        now = datetime.now(UTC)
        window = {
            "placed_from": (now - timedelta(hours=1)).isoformat(),
            "placed_to": (now + timedelta(hours=1)).isoformat(),
        }
        assert client.get("/orders/admin", params=window).json()["total"] == 1
        later = {"placed_from": (now + timedelta(hours=1)).isoformat()}
        assert client.get("/orders/admin", params=later).json()["total"] == 0

    def test_admin_inverted_range_returns_400(self, client):
        now = datetime.now(UTC)
        params = {"placed_from": now.isoformat(), "placed_to": (now - timedelta(days=1)).isoformat()}
        assert client.get("/orders/admin", params=params).status_code == 400
