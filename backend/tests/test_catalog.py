"""
Catalogue and notification tests.

Verifies:
- Product create/update validation, unique SKU/barcode, audit trail
- Location, supplier, category and brand master data
- Low-stock notifications are throttled and can be marked read
- Alert email is only attempted when a mail server is configured
"""

import pytest

from conftest import stock
from stockroom.extensions import db
from stockroom.models import Notification
from stockroom.services import email_service
from stockroom.services.email_service import EmailService


class TestProducts:
    def test_create_and_audit(self, client, manager_headers):
        resp = client.post(
            "/api/products",
            json={"name": "Sprocket", "sku": "SPR-001", "price_cents": 450},
            headers=manager_headers,
        )
        assert resp.status_code == 201
        product_id = resp.get_json()["id"]

        resp = client.put(f"/api/products/{product_id}", json={"price_cents": 500}, headers=manager_headers)
        assert resp.status_code == 200
        assert resp.get_json()["price_cents"] == 500

        resp = client.get(f"/api/products/{product_id}?include_audit=true", headers=manager_headers)
        audit = resp.get_json()["audit_log"]
        assert [entry["action"] for entry in audit] == ["created", "updated"]
        assert audit[1]["changes"] == {"price_cents": [450, 500]}

    def test_duplicate_sku_conflicts(self, client, manager_headers, product):
        resp = client.post("/api/products", json={"name": "Copy", "sku": "WID-001"}, headers=manager_headers)
        assert resp.status_code == 409

        resp = client.post("/api/products", json={"name": "Copy", "barcode": "0001112223334"}, headers=manager_headers)
        assert resp.status_code == 409

    @pytest.mark.parametrize(
        "payload",
        [
            {},
            {"name": ""},
            {"name": "Thing", "price_cents": -1},
            {"name": "Thing", "price_cents": "1.5"},
            {"name": "Thing", "stock": 10},
        ],
    )
    def test_invalid_payloads(self, client, manager_headers, payload):
        assert client.post("/api/products", json=payload, headers=manager_headers).status_code == 400

    def test_unknown_category(self, client, manager_headers):
        resp = client.post("/api/products", json={"name": "Thing", "category_id": 99}, headers=manager_headers)
        assert resp.status_code == 404

    def test_deactivate_hides_from_list(self, client, manager_headers, product, other_product):
        resp = client.delete(f"/api/products/{product.id}", headers=manager_headers)
        assert resp.status_code == 200
        assert resp.get_json()["is_active"] is False

        names = [p["name"] for p in client.get("/api/products", headers=manager_headers).get_json()["data"]]
        assert names == ["Gadget"]

        resp = client.get("/api/products?include_inactive=true", headers=manager_headers)
        assert resp.get_json()["pagination"]["total"] == 2

    def test_search(self, client, staff_headers, product, other_product):
        resp = client.get("/api/products?search=wid", headers=staff_headers)
        assert [p["sku"] for p in resp.get_json()["data"]] == ["WID-001"]


class TestMasterData:
    def test_location_lifecycle(self, client, admin_headers):
        resp = client.post("/api/locations", json={"name": "Outlet", "type": "Store"}, headers=admin_headers)
        assert resp.status_code == 201
        location_id = resp.get_json()["id"]

        resp = client.put(f"/api/locations/{location_id}", json={"address": "9 Mill Lane"}, headers=admin_headers)
        assert resp.get_json()["address"] == "9 Mill Lane"

        resp = client.post("/api/locations", json={"name": "Outlet", "type": "Store"}, headers=admin_headers)
        assert resp.status_code == 409

        resp = client.post("/api/locations", json={"name": "Kiosk", "type": "Van"}, headers=admin_headers)
        assert resp.status_code == 400

    def test_supplier_code_unique(self, client, manager_headers, supplier):
        resp = client.post("/api/suppliers", json={"name": "Other", "code": "ACME"}, headers=manager_headers)
        assert resp.status_code == 409

        resp = client.post("/api/suppliers", json={"name": "No Code", "code": ""}, headers=manager_headers)
        assert resp.status_code == 201
        assert resp.get_json()["code"] is None

        names = [s["name"] for s in client.get("/api/suppliers?search=acme", headers=manager_headers).get_json()]
        assert names == ["Acme Supply"]

    @pytest.mark.parametrize("path", ["/api/categories", "/api/brands"])
    def test_lookups(self, client, manager_headers, staff_headers, path):
        assert client.post(path, json={"name": "Tools"}, headers=manager_headers).status_code == 201
        assert client.post(path, json={"name": "Tools"}, headers=manager_headers).status_code == 409
        assert client.post(path, json={"name": "Garden"}, headers=staff_headers).status_code == 403

        names = [row["name"] for row in client.get(path, headers=staff_headers).get_json()]
        assert names == ["Tools"]


class TestNotifications:
    def test_low_stock_notifies_once(self, client, admin_headers, manager_headers, store, product, events):
        stock(client, admin_headers, store.id, product.id, 3)
        stock(client, admin_headers, store.id, product.id, 1, adjustment_type="Damage")

        assert db.session.query(Notification).count() == 1
        assert "lowStock" in [event for event, _, _ in events]

        resp = client.get("/api/notifications?unread=true", headers=manager_headers)
        body = resp.get_json()
        assert body["pagination"]["total"] == 1
        assert "Widget" in body["data"][0]["message"]

    def test_well_stocked_does_not_notify(self, client, admin_headers, store, product):
        stock(client, admin_headers, store.id, product.id, 50)
        assert db.session.query(Notification).count() == 0

    def test_no_mail_server_skips_smtp(self, app, client, admin_headers, store, product, monkeypatch):
        sent = []
        monkeypatch.setattr(email_service.mail, "send", sent.append)

        stock(client, admin_headers, store.id, product.id, 1)

        assert not EmailService.is_configured()
        assert db.session.query(Notification).count() == 1
        assert sent == []

    def test_mail_server_enables_alerts(self, app, client, admin_headers, store, product, monkeypatch):
        sent = []
        monkeypatch.setattr(email_service.mail, "send", sent.append)
        monkeypatch.setitem(app.config, "MAIL_SERVER", "smtp.stockroom.test")

        stock(client, admin_headers, store.id, product.id, 1)

        assert len(sent) == 1
        assert sent[0].subject == "Low stock: Widget at Main Store"

    def test_mark_read(self, client, admin_headers, manager_headers, store, branch, product):
        stock(client, admin_headers, store.id, product.id, 1)
        stock(client, admin_headers, branch.id, product.id, 1)
        first = client.get("/api/notifications", headers=manager_headers).get_json()["data"][0]

        resp = client.patch(f"/api/notifications/{first['id']}/read", headers=manager_headers)
        assert resp.status_code == 200
        assert resp.get_json()["is_read"] is True

        resp = client.patch("/api/notifications/read-all", headers=manager_headers)
        assert resp.get_json() == {"updated": 1}

        resp = client.get("/api/notifications?unread=true", headers=manager_headers)
        assert resp.get_json()["pagination"]["total"] == 0

        assert client.patch("/api/notifications/999/read", headers=manager_headers).status_code == 404
