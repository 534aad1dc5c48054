"""
Purchase order tests.

Verifies:
- Derived totals in cents and PO numbering
- Receiving credits the warehouse once, with a purchase_received entry per line
- Pre-receive problems are reported together
- Payments move amount_paid / amount_due / payment_status
"""

import re

import pytest

from conftest import audit_entries_at, quantity_at, stock
from stockroom.services import purchase_service


def _purchase(client, headers, supplier, warehouse, items, **extra):
    payload = {
        "supplier_id": supplier.id,
        "items": items,
        **extra,
    }
    if warehouse is not None:
        payload["warehouse_id"] = warehouse.id
    return client.post("/api/purchases", json=payload, headers=headers)


class TestCreate:
    def test_totals_and_number(self, client, manager_headers, supplier, warehouse, product, other_product):
        resp = _purchase(
            client,
            manager_headers,
            supplier,
            warehouse,
            [
                {"product_id": product.id, "quantity": 25, "unit_cost": 7},
                {"product_id": other_product.id, "quantity": 2, "unit_cost": "12.50", "discount": 1, "tax_rate": 10},
            ],
            shipping_cost=5,
            amount_paid=20,
        )

        assert resp.status_code == 201
        body = resp.get_json()
        assert re.fullmatch(r"PO\d{6}0001", body["purchase_number"])
        assert body["status"] == "pending"
        # 25 * 700 + (2 * 1250 - 100) = 19900; tax 10% of 2400 = 240
        assert body["subtotal_cents"] == 19900
        assert body["line_tax_cents"] == 240
        assert body["grand_total_cents"] == 19900 + 240 + 500
        assert body["amount_paid_cents"] == 2000
        assert body["amount_due_cents"] == body["grand_total_cents"] - 2000
        assert body["payment_status"] == "partial"
        assert len(body["lines"]) == 2

    def test_numbers_increment(self, client, manager_headers, supplier, warehouse, product):
        items = [{"product_id": product.id, "quantity": 1, "unit_cost": 1}]
        first = _purchase(client, manager_headers, supplier, warehouse, items).get_json()["purchase_number"]
        second = _purchase(client, manager_headers, supplier, warehouse, items).get_json()["purchase_number"]

        assert first[:8] == second[:8]
        assert int(second[-4:]) == int(first[-4:]) + 1

    @pytest.mark.parametrize(
        "items",
        [
            [],
            [{"product_id": 1, "quantity": 0, "unit_cost": 1}],
            [{"product_id": 1, "quantity": 1, "unit_cost": -1}],
            [{"product_id": 1, "quantity": 1, "unit_cost": 1, "tax_rate": 101}],
            [{"product_id": 1, "quantity": 1}],
        ],
    )
    def test_invalid_items(self, client, manager_headers, supplier, warehouse, product, items):
        resp = _purchase(client, manager_headers, supplier, warehouse, items)
        assert resp.status_code == 400

    def test_unknown_references(self, client, manager_headers, supplier, warehouse, product):
        resp = client.post(
            "/api/purchases",
            json={"supplier_id": 999, "items": [{"product_id": product.id, "quantity": 1, "unit_cost": 1}]},
            headers=manager_headers,
        )
        assert resp.status_code == 404

        resp = _purchase(client, manager_headers, supplier, warehouse, [{"product_id": 999, "quantity": 1, "unit_cost": 1}])
        assert resp.status_code == 404

    def test_overpaid_refused(self, client, manager_headers, supplier, warehouse, product):
        resp = _purchase(
            client,
            manager_headers,
            supplier,
            warehouse,
            [{"product_id": product.id, "quantity": 1, "unit_cost": 10}],
            amount_paid=11,
        )
        assert resp.status_code == 400

    def test_staff_cannot_purchase(self, client, staff_headers, supplier, warehouse, product):
        resp = _purchase(client, staff_headers, supplier, warehouse, [{"product_id": product.id, "quantity": 1, "unit_cost": 1}])
        assert resp.status_code == 403


class TestReceive:
    def test_receive_credits_warehouse_once(
        self, client, manager_headers, admin_headers, supplier, warehouse, product, events
    ):
        stock(client, admin_headers, warehouse.id, product.id, 4)
        purchase = _purchase(
            client, manager_headers, supplier, warehouse,
            [{"product_id": product.id, "quantity": 25, "unit_cost": 7}],
        ).get_json()

        resp = client.post(f"/api/purchases/{purchase['id']}/receive", headers=manager_headers)

        assert resp.status_code == 200
        body = resp.get_json()["purchase"]
        assert body["status"] == "received"
        assert body["received_date"] is not None
        assert quantity_at(product.id, warehouse.id) == 29

        received = [e for e in audit_entries_at(product.id, warehouse.id) if e.action == "purchase_received"]
        assert len(received) == 1
        assert received[0].delta == 25
        assert received[0].purchase_id == purchase["id"]
        assert received[0].note == f"Received from PO#{purchase['purchase_number']} - Supplier: Acme Supply"
        assert "purchaseReceived" in [event for event, _, _ in events]

        again = client.post(f"/api/purchases/{purchase['id']}/receive", headers=manager_headers)
        assert again.status_code == 400
        assert quantity_at(product.id, warehouse.id) == 29
        assert len(audit_entries_at(product.id, warehouse.id)) == 2

    def test_receive_creates_missing_record(self, client, manager_headers, supplier, warehouse, product, other_product):
        purchase = _purchase(
            client, manager_headers, supplier, warehouse,
            [
                {"product_id": product.id, "quantity": 3, "unit_cost": 1},
                {"product_id": other_product.id, "quantity": 4, "unit_cost": 1},
            ],
        ).get_json()

        resp = client.post(f"/api/purchases/{purchase['id']}/receive", headers=manager_headers)

        assert resp.status_code == 200
        assert quantity_at(product.id, warehouse.id) == 3
        assert quantity_at(other_product.id, warehouse.id) == 4

    def test_receive_without_warehouse_refused(self, client, manager_headers, supplier, product):
        purchase = _purchase(
            client, manager_headers, supplier, None,
            [{"product_id": product.id, "quantity": 3, "unit_cost": 1}],
        ).get_json()

        resp = client.post(f"/api/purchases/{purchase['id']}/receive", headers=manager_headers)

        assert resp.status_code == 400
        assert "Purchase order has no warehouse to receive into" in resp.get_json()["details"]["errors"]
        assert client.get(f"/api/purchases/{purchase['id']}", headers=manager_headers).get_json()["status"] == "pending"

    def test_cancelled_cannot_be_received(self, client, manager_headers, supplier, warehouse, product):
        purchase = _purchase(
            client, manager_headers, supplier, warehouse,
            [{"product_id": product.id, "quantity": 3, "unit_cost": 1}],
        ).get_json()
        resp = client.put(f"/api/purchases/{purchase['id']}", json={"status": "cancelled"}, headers=manager_headers)
        assert resp.status_code == 200

        resp = client.post(f"/api/purchases/{purchase['id']}/receive", headers=manager_headers)

        assert resp.status_code == 400
        assert quantity_at(product.id, warehouse.id) is None

    def test_unknown_purchase(self, client, manager_headers):
        assert client.post("/api/purchases/999/receive", headers=manager_headers).status_code == 404


class TestUpdate:
    def test_replace_lines_recomputes_totals(self, client, manager_headers, supplier, warehouse, product):
        purchase = _purchase(
            client, manager_headers, supplier, warehouse,
            [{"product_id": product.id, "quantity": 1, "unit_cost": 1}],
        ).get_json()

        resp = client.put(
            f"/api/purchases/{purchase['id']}",
            json={"items": [{"product_id": product.id, "quantity": 10, "unit_cost_cents": 250}], "status": "ordered"},
            headers=manager_headers,
        )

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["status"] == "ordered"
        assert body["subtotal_cents"] == 2500
        assert len(body["lines"]) == 1

    def test_status_received_refused(self, client, manager_headers, supplier, warehouse, product):
        purchase = _purchase(
            client, manager_headers, supplier, warehouse,
            [{"product_id": product.id, "quantity": 1, "unit_cost": 1}],
        ).get_json()

        resp = client.put(f"/api/purchases/{purchase['id']}", json={"status": "received"}, headers=manager_headers)

        assert resp.status_code == 400
        assert quantity_at(product.id, warehouse.id) is None

    def test_received_purchase_is_locked(self, client, manager_headers, supplier, warehouse, product):
        purchase = _purchase(
            client, manager_headers, supplier, warehouse,
            [{"product_id": product.id, "quantity": 1, "unit_cost": 1}],
        ).get_json()
        client.post(f"/api/purchases/{purchase['id']}/receive", headers=manager_headers)

        resp = client.put(f"/api/purchases/{purchase['id']}", json={"notes": "late edit"}, headers=manager_headers)
        assert resp.status_code == 400


class TestPayments:
    def test_partial_then_full(self, client, manager_headers, supplier, warehouse, product):
        purchase = _purchase(
            client, manager_headers, supplier, warehouse,
            [{"product_id": product.id, "quantity": 10, "unit_cost": 10}],
        ).get_json()

        resp = client.post(f"/api/purchases/{purchase['id']}/payment", json={"amount": 40}, headers=manager_headers)
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["amount_paid_cents"] == 4000
        assert body["amount_due_cents"] == 6000
        assert body["payment_status"] == "partial"

        resp = client.post(
            f"/api/purchases/{purchase['id']}/payment",
            json={"amount_cents": 6000, "payment_method": "bank_transfer"},
            headers=manager_headers,
        )
        body = resp.get_json()
        assert body["payment_status"] == "paid"
        assert body["amount_due_cents"] == 0
        assert len(body["payments"]) == 2

    @pytest.mark.parametrize("amount", [0, -5, 101])
    def test_invalid_amounts(self, client, manager_headers, supplier, warehouse, product, amount):
        purchase = _purchase(
            client, manager_headers, supplier, warehouse,
            [{"product_id": product.id, "quantity": 10, "unit_cost": 10}],
        ).get_json()

        resp = client.post(f"/api/purchases/{purchase['id']}/payment", json={"amount": amount}, headers=manager_headers)

        assert resp.status_code == 400
        detail = client.get(f"/api/purchases/{purchase['id']}", headers=manager_headers).get_json()
        assert detail["amount_paid_cents"] == 0


class TestDeleteAndStats:
    def test_soft_delete_is_admin_only(self, client, manager_headers, admin_headers, supplier, warehouse, product):
        purchase = _purchase(
            client, manager_headers, supplier, warehouse,
            [{"product_id": product.id, "quantity": 1, "unit_cost": 1}],
        ).get_json()

        assert client.delete(f"/api/purchases/{purchase['id']}", headers=manager_headers).status_code == 403
        assert client.delete(f"/api/purchases/{purchase['id']}", headers=admin_headers).status_code == 200
        assert client.get(f"/api/purchases/{purchase['id']}", headers=admin_headers).status_code == 404

    def test_received_purchase_cannot_be_deleted(self, client, manager_headers, admin_headers, supplier, warehouse, product):
        purchase = _purchase(
            client, manager_headers, supplier, warehouse,
            [{"product_id": product.id, "quantity": 1, "unit_cost": 1}],
        ).get_json()
        client.post(f"/api/purchases/{purchase['id']}/receive", headers=manager_headers)

        assert client.delete(f"/api/purchases/{purchase['id']}", headers=admin_headers).status_code == 400

    def test_stats(self, client, manager_headers, supplier, warehouse, product):
        items = [{"product_id": product.id, "quantity": 1, "unit_cost": 10}]
        first = _purchase(client, manager_headers, supplier, warehouse, items).get_json()
        _purchase(client, manager_headers, supplier, warehouse, items)
        client.post(f"/api/purchases/{first['id']}/receive", headers=manager_headers)

        resp = client.get("/api/purchases/stats", headers=manager_headers)

        assert resp.status_code == 200
        stats = resp.get_json()
        assert stats["total_purchases"] == 2
        assert stats["received_purchases"] == 1
        assert stats["pending_purchases"] == 1
        assert stats["total_value_cents"] == 2000


class TestPaymentStatus:
    @pytest.mark.parametrize(
        "paid,total,expected",
        [(0, 100, "unpaid"), (50, 100, "partial"), (100, 100, "paid"), (0, 0, "unpaid")],
    )
    def test_payment_status_for(self, paid, total, expected):
        assert purchase_service.payment_status_for(paid, total) == expected
