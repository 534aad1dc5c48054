"""
Stock adjustment engine tests.

Verifies:
- Sign rules per adjustment type
- Batches commit all items or none
- Missing inventory records are only created by Initial Stock
- Adjustments are append-only (limited PUT, DELETE refused)
"""

import pytest

from conftest import audit_entries_at, quantity_at, stock
from stockroom.errors import ValidationError
from stockroom.extensions import db
from stockroom.models import StockAdjustment
from stockroom.services import adjustment_service
from stockroom.services.adjustment_service import DELETE_REFUSED_MESSAGE


class TestSignRules:
    @pytest.mark.parametrize(
        "adjustment_type,quantity,expected",
        [
            ("Addition", 4, 4),
            ("Correction", 4, 4),
            ("Return", 4, 4),
            ("Transfer In", 4, 4),
            ("Initial Stock", 4, 4),
            ("Subtraction", 4, -4),
            ("Correction Down", 4, -4),
            ("Damage", 4, -4),
            ("Theft", 4, -4),
            ("Transfer Out", 4, -4),
            ("Obsolete", 4, -4),
            ("Other", -4, -4),
            ("Other", 4, 4),
            ("Cycle Count Adj", -2, -2),
        ],
    )
    def test_signed_delta(self, adjustment_type, quantity, expected):
        assert adjustment_service.signed_delta_for(adjustment_type, quantity) == expected

    @pytest.mark.parametrize(
        "adjustment_type,quantity",
        [
            ("Addition", 0),
            ("Other", 0),
            ("Damage", -3),
            ("Addition", 1.5),
            ("Addition", True),
            ("Shrinkage", 3),
        ],
    )
    def test_rejected(self, adjustment_type, quantity):
        with pytest.raises(ValidationError):
            adjustment_service.signed_delta_for(adjustment_type, quantity)


class TestCreateBatch:
    def test_initial_stock_creates_record(self, client, admin_headers, store, product, events):
        resp = stock(client, admin_headers, store.id, product.id, 50)

        assert resp.status_code == 201
        data = resp.get_json()["data"]
        assert data[0]["adjustment_number"] == "ADJ-00001"
        assert data[0]["previous_quantity"] == 0
        assert data[0]["new_quantity"] == 50
        assert quantity_at(product.id, store.id) == 50

        entries = audit_entries_at(product.id, store.id)
        assert len(entries) == 1
        assert entries[0].action == "initial_stock"
        assert entries[0].adjustment_id == data[0]["id"]

        names = [event for event, _, _ in events]
        assert "adjustmentsCreated" in names
        assert ("inventoryAdjusted", f"location_{store.id}") in [(e, room) for e, _, room in events]
        assert ("inventoryUpdate", "products") in [(e, room) for e, _, room in events]

    def test_numbers_are_sequential(self, client, admin_headers, store, product, other_product):
        stock(client, admin_headers, store.id, product.id, 10)
        resp = client.post(
            "/api/stock-adjustments",
            json={
                "location_id": store.id,
                "reference_number": "BATCH-7",
                "adjustments": [
                    {"product_id": product.id, "adjustment_type": "Addition", "quantity": 2},
                    {"product_id": other_product.id, "adjustment_type": "Initial Stock", "quantity": 8},
                ],
            },
            headers=admin_headers,
        )

        assert resp.status_code == 201
        data = resp.get_json()["data"]
        assert [adj["adjustment_number"] for adj in data] == ["ADJ-00002", "ADJ-00003"]
        assert all(adj["reference_number"] == "BATCH-7" for adj in data)

    def test_missing_record_refused(self, client, admin_headers, store, product):
        resp = stock(client, admin_headers, store.id, product.id, 3, adjustment_type="Addition")

        assert resp.status_code == 404
        assert quantity_at(product.id, store.id) is None
        assert db.session.query(StockAdjustment).count() == 0

    def test_negative_stock_refused(self, client, admin_headers, store, product):
        stock(client, admin_headers, store.id, product.id, 5)

        resp = stock(client, admin_headers, store.id, product.id, 6, adjustment_type="Damage")

        assert resp.status_code == 400
        assert quantity_at(product.id, store.id) == 5
        assert db.session.query(StockAdjustment).count() == 1

    def test_batch_is_atomic(self, client, admin_headers, store, product, other_product):
        stock(client, admin_headers, store.id, product.id, 10)
        stock(client, admin_headers, store.id, other_product.id, 1)

        resp = client.post(
            "/api/stock-adjustments",
            json={
                "location_id": store.id,
                "adjustments": [
                    {"product_id": product.id, "adjustment_type": "Addition", "quantity": 5},
                    {"product_id": other_product.id, "adjustment_type": "Theft", "quantity": 2},
                ],
            },
            headers=admin_headers,
        )

        assert resp.status_code == 400
        assert quantity_at(product.id, store.id) == 10
        assert quantity_at(other_product.id, store.id) == 1
        assert len(audit_entries_at(product.id, store.id)) == 1
        assert db.session.query(StockAdjustment).count() == 2

    def test_subtraction_then_addition_restores(self, client, admin_headers, store, product):
        stock(client, admin_headers, store.id, product.id, 20)
        stock(client, admin_headers, store.id, product.id, 7, adjustment_type="Subtraction")
        stock(client, admin_headers, store.id, product.id, 7, adjustment_type="Addition")

        assert quantity_at(product.id, store.id) == 20
        assert [e.delta for e in audit_entries_at(product.id, store.id)] == [20, -7, 7]

    def test_caller_signed_other(self, client, admin_headers, store, product):
        stock(client, admin_headers, store.id, product.id, 20)
        resp = stock(client, admin_headers, store.id, product.id, -3, adjustment_type="Other")

        assert resp.status_code == 201
        adj = resp.get_json()["data"][0]
        assert adj["quantity_adjusted"] == 3
        assert adj["new_quantity"] - adj["previous_quantity"] == -3
        assert quantity_at(product.id, store.id) == 17

    @pytest.mark.parametrize(
        "adjustments",
        [
            [],
            None,
            [{"product_id": 1, "adjustment_type": "Addition", "quantity": 0}],
            [{"product_id": 1, "adjustment_type": "Nope", "quantity": 1}],
            [{"product_id": "abc", "adjustment_type": "Addition", "quantity": 1}],
        ],
    )
    def test_invalid_batches(self, client, admin_headers, store, product, adjustments):
        resp = client.post(
            "/api/stock-adjustments",
            json={"location_id": store.id, "adjustments": adjustments},
            headers=admin_headers,
        )
        assert resp.status_code == 400

    def test_unknown_product(self, client, admin_headers, store):
        resp = stock(client, admin_headers, store.id, 9999, 1)
        assert resp.status_code == 404

    def test_location_access_required(self, client, staff_headers, admin_headers, branch, product):
        resp = stock(client, staff_headers, branch.id, product.id, 5)

        assert resp.status_code == 403
        assert quantity_at(product.id, branch.id) is None


class TestAppendOnly:
    def test_update_reason_and_reference(self, client, admin_headers, store, product, events):
        adj_id = stock(client, admin_headers, store.id, product.id, 5).get_json()["data"][0]["id"]

        resp = client.put(
            f"/api/stock-adjustments/{adj_id}",
            json={"reason": "Opening count", "reference_number": "REF-1"},
            headers=admin_headers,
        )

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["reason"] == "Opening count"
        assert body["reference_number"] == "REF-1"
        assert body["new_quantity"] == 5
        assert "adjustmentUpdated" in [event for event, _, _ in events]

    def test_update_other_fields_refused(self, client, admin_headers, store, product):
        adj_id = stock(client, admin_headers, store.id, product.id, 5).get_json()["data"][0]["id"]

        resp = client.put(
            f"/api/stock-adjustments/{adj_id}",
            json={"quantity_adjusted": 500},
            headers=admin_headers,
        )

        assert resp.status_code == 400
        assert db.session.get(StockAdjustment, adj_id).quantity_adjusted == 5

    def test_delete_always_refused(self, client, admin_headers, store, product):
        adj_id = stock(client, admin_headers, store.id, product.id, 5).get_json()["data"][0]["id"]

        resp = client.delete(f"/api/stock-adjustments/{adj_id}", headers=admin_headers)

        assert resp.status_code == 403
        assert resp.get_json()["error"] == DELETE_REFUSED_MESSAGE
        assert db.session.query(StockAdjustment).count() == 1


class TestListing:
    def test_filters_and_pagination(self, client, admin_headers, store, branch, product, other_product):
        stock(client, admin_headers, store.id, product.id, 5)
        stock(client, admin_headers, store.id, other_product.id, 5)
        stock(client, admin_headers, branch.id, product.id, 5)

        resp = client.get(f"/api/stock-adjustments?location_id={store.id}&limit=1", headers=admin_headers)
        body = resp.get_json()
        assert resp.status_code == 200
        assert body["pagination"] == {"total": 2, "page": 1, "pages": 2, "limit": 1}

        resp = client.get(f"/api/stock-adjustments?product_id={product.id}", headers=admin_headers)
        assert resp.get_json()["pagination"]["total"] == 2

        resp = client.get("/api/stock-adjustments?search=ADJ-00003", headers=admin_headers)
        assert [adj["adjustment_number"] for adj in resp.get_json()["data"]] == ["ADJ-00003"]

    def test_non_admin_sees_own_locations(self, client, admin_headers, staff_headers, store, branch, product):
        stock(client, admin_headers, store.id, product.id, 5)
        stock(client, admin_headers, branch.id, product.id, 5)

        resp = client.get("/api/stock-adjustments", headers=staff_headers)

        assert resp.status_code == 200
        assert {adj["location_id"] for adj in resp.get_json()["data"]} == {store.id}

    def test_bad_date_filter(self, client, admin_headers):
        resp = client.get("/api/stock-adjustments?start_date=yesterday", headers=admin_headers)
        assert resp.status_code == 400


class TestLegacyAdjust:
    def test_signed_adjustment(self, client, admin_headers, store, product):
        stock(client, admin_headers, store.id, product.id, 10)
        record_id = audit_entries_at(product.id, store.id)[0].inventory_id

        resp = client.patch(
            f"/api/inventory/{record_id}/adjust",
            json={"adjustment": -4, "note": "broken in storage"},
            headers=admin_headers,
        )

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["inventory"]["quantity"] == 6
        assert body["adjustment"]["adjustment_type"] == "Subtraction"
        assert body["adjustment"]["reason"] == "broken in storage"

    def test_zero_adjustment_refused(self, client, admin_headers, store, product):
        stock(client, admin_headers, store.id, product.id, 10)
        record_id = audit_entries_at(product.id, store.id)[0].inventory_id

        resp = client.patch(f"/api/inventory/{record_id}/adjust", json={"adjustment": 0}, headers=admin_headers)

        assert resp.status_code == 400
        assert quantity_at(product.id, store.id) == 10

    def test_staff_refused(self, client, admin_headers, staff_headers, store, product):
        stock(client, admin_headers, store.id, product.id, 50)
        record_id = audit_entries_at(product.id, store.id)[0].inventory_id

        resp = client.patch(f"/api/inventory/{record_id}/adjust", json={"adjustment": -40}, headers=staff_headers)

        assert resp.status_code == 403
        assert quantity_at(product.id, store.id) == 50
