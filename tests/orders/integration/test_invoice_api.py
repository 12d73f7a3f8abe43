"""Integration tests for the invoice endpoints via TestClient."""

import pytest

from orders.config import reset_settings

PDF = b"%PDF-1.4\n1 0 obj\n<< /Type /Catalog >>\nendobj\ntrailer\n<< /Root 1 0 R >>\n%%EOF\n"


def _upload(client, order_id, content=PDF, content_type="application/pdf", number="ADM-2026-001"):
    return client.post(
        f"/orders/{order_id}/invoice/upload",
        files={"file": ("corrected.pdf", content, content_type)},
        data={"invoice_number": number, "uploader_id": "admin-9", "notes": "GSTIN fixed"},
    )


class TestGenerateAPI:
    def test_generate_returns_201(self, client, order_id):
        response = client.post(f"/orders/{order_id}/invoice/generate", json={"actor_id": "admin-1"})
        assert response.status_code == 201
        assert response.json()["kind"] == "auto_generated"
        assert response.json()["invoice_number"].startswith("INV-")

    def test_generate_without_body(self, client, order_id):
        assert client.post(f"/orders/{order_id}/invoice/generate").status_code == 201

    def test_second_generate_returns_409(self, client, order_id):
        client.post(f"/orders/{order_id}/invoice/generate")
        response = client.post(f"/orders/{order_id}/invoice/generate")
        assert response.status_code == 409

    def test_render_failure_returns_502(self, client, order_id, renderer):
        renderer.configure(should_succeed=False, failure_reason="wkhtml crashed")
        response = client.post(f"/orders/{order_id}/invoice/generate")
        assert response.status_code == 502
        assert "wkhtml" not in response.json()["error"]

    def test_storage_failure_returns_503(self, client, order_id, blob_store):
        blob_store.configure(should_succeed=False)
        response = client.post(f"/orders/{order_id}/invoice/generate")
        assert response.status_code == 503

    def test_render_timeout_returns_504(self, client, order_id, renderer, monkeypatch):
        monkeypatch.setenv("ORDERS_RENDER_TIMEOUT_SECONDS", "0.05")
        reset_settings()
        renderer.configure(delay_seconds=0.5)
        response = client.post(f"/orders/{order_id}/invoice/generate")
        assert response.status_code == 504

    def test_unknown_order_returns_404(self, client):
        assert client.post("/orders/does-not-exist/invoice/generate").status_code == 404

    def test_caller_deadline_applies(self, client, order_id, renderer):
        renderer.configure(delay_seconds=0.5)
        response = client.post(f"/orders/{order_id}/invoice/generate", json={"deadline_seconds": 0.05})
        assert response.status_code == 504
        assert client.get(f"/orders/{order_id}").json()["invoice_generation_in_progress"] is False

    @pytest.mark.parametrize("deadline", [0, -1, 301])
    def test_out_of_range_deadline_returns_422(self, client, order_id, deadline):
        response = client.post(f"/orders/{order_id}/invoice/generate", json={"deadline_seconds": deadline})
        assert response.status_code == 422


class TestUploadAPI:
    def test_upload(self, client, order_id):
        response = _upload(client, order_id)
        assert response.status_code == 200
        body = response.json()
        assert body["kind"] == "admin_uploaded"
        assert body["invoice_number"] == "ADM-2026-001"
        assert body["original_file_name"] == "corrected.pdf"

    @pytest.mark.parametrize(
        "content, content_type",
        [(PDF, "image/jpeg"), (b"", "application/pdf"), (b"PK\x03\x04zip", "application/pdf")],
    )
    def test_invalid_file_returns_400(self, client, order_id, content, content_type):
        response = _upload(client, order_id, content=content, content_type=content_type)
        assert response.status_code == 400
        assert client.get(f"/orders/{order_id}/invoices").json()["invoices"] == []

    def test_oversized_upload_returns_400(self, client, order_id, monkeypatch):
        monkeypatch.setenv("ORDERS_INVOICE_MAX_BYTES", "64")
        reset_settings()
        response = _upload(client, order_id, content=PDF + b"0" * 64)
        assert response.status_code == 400
        assert client.get(f"/orders/{order_id}/invoices").json()["invoices"] == []

    def test_upload_at_the_limit(self, client, order_id, monkeypatch):
        monkeypatch.setenv("ORDERS_INVOICE_MAX_BYTES", str(len(PDF)))
        reset_settings()
        assert _upload(client, order_id).status_code == 200

    def test_missing_invoice_number_returns_422(self, client, order_id):
        response = client.post(
            f"/orders/{order_id}/invoice/upload",
            files={"file": ("a.pdf", PDF, "application/pdf")},
            data={"uploader_id": "admin-9"},
        )
        assert response.status_code == 422

    def test_storage_failure_returns_503(self, client, order_id, blob_store):
        _upload(client, order_id, number="ADM-1")
        blob_store.configure(should_succeed=False)
        assert _upload(client, order_id, number="ADM-2").status_code == 503
        invoices = client.get(f"/orders/{order_id}/invoices").json()["invoices"]
        assert invoices[0]["invoice_number"] == "ADM-1"


class TestListAndDeleteAPI:
    def test_list_both_slots(self, client, order_id):
        client.post(f"/orders/{order_id}/invoice/generate")
        _upload(client, order_id)
        response = client.get(f"/orders/{order_id}/invoices")
        assert response.status_code == 200
        body = response.json()
        assert body["has_auto_generated"] is True
        assert body["has_admin_uploaded"] is True
        assert [i["kind"] for i in body["invoices"]] == ["auto_generated", "admin_uploaded"]

    def test_delete_admin_keeps_auto(self, client, order_id):
        client.post(f"/orders/{order_id}/invoice/generate")
        _upload(client, order_id)
        response = client.delete(f"/orders/{order_id}/invoice/admin", params={"actor_id": "admin-9"})
        assert response.status_code == 200
        assert response.json() == {"kind": "admin_uploaded", "invoice_number": "ADM-2026-001"}
        body = client.get(f"/orders/{order_id}/invoices").json()
        assert body["has_auto_generated"] is True
        assert body["has_admin_uploaded"] is False

    def test_delete_empty_slot_returns_404(self, client, order_id):
        assert client.delete(f"/orders/{order_id}/invoice/admin").status_code == 404


class TestDownloadAPI:
    def test_download_auto(self, client, order_id):
        client.post(f"/orders/{order_id}/invoice/generate")
        order_number = client.get(f"/orders/{order_id}").json()["order_number"]
        response = client.get(f"/orders/{order_id}/invoice/auto_generated")
        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert f'filename="invoice-{order_number}.pdf"' in response.headers["content-disposition"]
        assert response.headers["x-invoice-kind"] == "auto_generated"
        assert response.content.startswith(b"%PDF-")

    def test_download_admin(self, client, order_id):
        _upload(client, order_id)
        order_number = client.get(f"/orders/{order_id}").json()["order_number"]
        response = client.get(f"/orders/{order_id}/invoice/admin_uploaded")
        assert response.status_code == 200
        assert f'filename="admin-invoice-{order_number}.pdf"' in response.headers["content-disposition"]
        assert response.headers["x-invoice-number"] == "ADM-2026-001"
        assert response.content == PDF

    def test_empty_slot_returns_404(self, client, order_id):
        _upload(client, order_id)
        assert client.get(f"/orders/{order_id}/invoice/auto_generated").status_code == 404

    def test_unknown_kind_returns_400(self, client, order_id):
        assert client.get(f"/orders/{order_id}/invoice/proforma").status_code == 400
