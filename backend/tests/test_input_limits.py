"""
Out-of-range and wrongly typed input.

Verifies:
- Oversized numbers and amounts are refused with 400 before reaching the database
- Free-text fields must be strings
- Nothing is booked when a request is refused
"""

from decimal import Decimal

import pytest

from conftest import quantity_at, stock
from stockroom.errors import ValidationError
from stockroom.extensions import db
from stockroom.models import Purchase, Sale, StockAdjustment, StockTransfer
from stockroom.validation import MAX_QUANTITY, parse_cents, parse_int, parse_text, round_cents


class TestParsers:
    def test_round_cents_out_of_range(self):
        with pytest.raises(ValidationError):
            round_cents(Decimal("1e30"))

    @pytest.mark.parametrize("value", ["1e30", 1e30, "1e40", "-1e13"])
    def test_huge_decimal_amounts(self, value):
        with pytest.raises(ValidationError):
            parse_cents({"price": value}, "price", minimum=None)

    def test_huge_cent_amounts(self):
        with pytest.raises(ValidationError):
            parse_cents({"price_cents": 10**20}, "price")

    @pytest.mark.parametrize("value", [10**20, -(10**20), "99999999999"])
    def test_int_outside_column_range(self, value):
        with pytest.raises(ValidationError):
            parse_int(value, "location_id")

    def test_int_maximum(self):
        assert parse_int(5, "limit", maximum=5) == 5
        with pytest.raises(ValidationError):
            parse_int(6, "limit", maximum=5)

    @pytest.mark.parametrize("value", [{"x": 1}, ["a"], 12, True])
    def test_text_must_be_string(self, value):
        with pytest.raises(ValidationError):
            parse_text(value, "reason")

    def test_text_normalised(self):
        assert parse_text(None, "reason") is None
        assert parse_text("   ", "reason") is None
        assert parse_text("  broken  ", "reason") == "broken"
        with pytest.raises(ValidationError):
            parse_text("x" * 5, "code", max_length=4)


class TestStockAdjustments:
    def test_huge_initial_stock(self, client, admin_headers, store, product):
        resp = stock(client, admin_headers, store.id, product.id, 10**20)

        assert resp.status_code == 400
        assert db.session.query(StockAdjustment).count() == 0

    def test_quantity_above_cap(self, client, admin_headers, store, product):
        resp = stock(client, admin_headers, store.id, product.id, MAX_QUANTITY + 1)
        assert resp.status_code == 400

    def test_running_total_capped(self, client, admin_headers, store, product):
        assert stock(client, admin_headers, store.id, product.id, MAX_QUANTITY).status_code == 201

        resp = stock(client, admin_headers, store.id, product.id, 1, adjustment_type="Addition")

        assert resp.status_code == 400
        assert quantity_at(product.id, store.id) == MAX_QUANTITY
        assert db.session.query(StockAdjustment).count() == 1

    @pytest.mark.parametrize(
        "field,value",
        [
            ("reason", {"x": 1}),
            ("reference_number", ["REF-1"]),
            ("reference_number", "R" * 129),
            ("adjustment_type", ["Addition"]),
            ("product_id", 10**20),
        ],
    )
    def test_bad_item_fields(self, client, admin_headers, store, product, field, value):
        item = {"product_id": product.id, "adjustment_type": "Initial Stock", "quantity": 5, field: value}

        resp = client.post(
            "/api/stock-adjustments",
            json={"location_id": store.id, "adjustments": [item]},
            headers=admin_headers,
        )

        assert resp.status_code == 400
        assert quantity_at(product.id, store.id) is None

    def test_bad_batch_note(self, client, admin_headers, store, product):
        resp = client.post(
            "/api/stock-adjustments",
            json={
                "location_id": store.id,
                "note": {"text": "count"},
                "adjustments": [{"product_id": product.id, "adjustment_type": "Initial Stock", "quantity": 5}],
            },
            headers=admin_headers,
        )
        assert resp.status_code == 400

    def test_bad_edit_value(self, client, admin_headers, store, product):
        adjustment_id = stock(client, admin_headers, store.id, product.id, 5).get_json()["data"][0]["id"]

        resp = client.put(
            f"/api/stock-adjustments/{adjustment_id}",
            json={"reason": {"x": 1}},
            headers=admin_headers,
        )

        assert resp.status_code == 400

    def test_huge_legacy_adjustment(self, client, admin_headers, store, product):
        stock(client, admin_headers, store.id, product.id, 10)
        record_id = client.get(
            f"/api/inventory?location_id={store.id}", headers=admin_headers
        ).get_json()["data"][0]["id"]

        resp = client.patch(f"/api/inventory/{record_id}/adjust", json={"adjustment": 10**20}, headers=admin_headers)

        assert resp.status_code == 400
        assert quantity_at(product.id, store.id) == 10

    def test_huge_location_id(self, client, admin_headers):
        resp = client.post(
            "/api/stock-adjustments",
            json={"location_id": 10**20, "adjustments": []},
            headers=admin_headers,
        )
        assert resp.status_code == 400


class TestTransfers:
    @pytest.mark.parametrize("quantity", [10**20, MAX_QUANTITY + 1])
    def test_huge_quantity(self, client, admin_headers, store, branch, product, quantity):
        resp = client.post(
            "/api/transfers",
            json={
                "product_id": product.id,
                "quantity": quantity,
                "from_location_id": store.id,
                "to_location_id": branch.id,
            },
            headers=admin_headers,
        )

        assert resp.status_code == 400
        assert db.session.query(StockTransfer).count() == 0

    def test_notes_must_be_text(self, client, admin_headers, store, branch, product):
        resp = client.post(
            "/api/transfers",
            json={
                "product_id": product.id,
                "quantity": 1,
                "from_location_id": store.id,
                "to_location_id": branch.id,
                "notes": {"text": "restock"},
            },
            headers=admin_headers,
        )
        assert resp.status_code == 400

    def test_cancel_reason_must_be_text(self, client, admin_headers, store, branch, product):
        transfer = client.post(
            "/api/transfers",
            json={"product_id": product.id, "quantity": 1, "from_location_id": store.id, "to_location_id": branch.id},
            headers=admin_headers,
        ).get_json()

        resp = client.patch(f"/api/transfers/{transfer['id']}/cancel", json={"reason": ["oops"]}, headers=admin_headers)

        assert resp.status_code == 400
        assert db.session.get(StockTransfer, transfer["id"]).status == "Pending"


class TestDocuments:
    @pytest.mark.parametrize(
        "item",
        [
            {"quantity": 1, "price": "1e30"},
            {"quantity": 1, "price": 1e30},
            {"quantity": 1, "price_cents": 10**20},
            {"quantity": 10**20, "price": 10},
            {"quantity": MAX_QUANTITY + 1, "price": 10},
        ],
    )
    def test_sale_out_of_range(self, client, admin_headers, store, product, item):
        stock(client, admin_headers, store.id, product.id, 5)

        resp = client.post(
            "/api/pos",
            json={"location_id": store.id, "items": [{"product_id": product.id, **item}]},
            headers=admin_headers,
        )

        assert resp.status_code == 400
        assert db.session.query(Sale).count() == 0

    def test_sale_customer_fields_must_be_text(self, client, admin_headers, store, product):
        stock(client, admin_headers, store.id, product.id, 5)

        resp = client.post(
            "/api/pos",
            json={
                "location_id": store.id,
                "items": [{"product_id": product.id, "quantity": 1, "price": 10}],
                "customer": {"name": {"first": "Ann"}},
            },
            headers=admin_headers,
        )

        assert resp.status_code == 400
        assert quantity_at(product.id, store.id) == 5

    @pytest.mark.parametrize(
        "item,extra",
        [
            ({"quantity": 1, "unit_cost": "1e40"}, {}),
            ({"quantity": 1, "unit_cost_cents": 10**20}, {}),
            ({"quantity": MAX_QUANTITY, "unit_cost": "9999999.99"}, {}),
            ({"quantity": 1, "unit_cost": 7}, {"shipping_cost": "1e30"}),
            ({"quantity": 1, "unit_cost": 7}, {"notes": {"text": "rush"}}),
            ({"quantity": 1, "unit_cost": 7}, {"reference_number": 12345}),
        ],
    )
    def test_purchase_out_of_range(self, client, admin_headers, supplier, warehouse, product, item, extra):
        resp = client.post(
            "/api/purchases",
            json={
                "supplier_id": supplier.id,
                "warehouse_id": warehouse.id,
                "items": [{"product_id": product.id, **item}],
                **extra,
            },
            headers=admin_headers,
        )

        assert resp.status_code == 400
        assert db.session.query(Purchase).count() == 0

    def test_payment_method_must_be_text(self, client, admin_headers, supplier, warehouse, product):
        purchase = client.post(
            "/api/purchases",
            json={
                "supplier_id": supplier.id,
                "warehouse_id": warehouse.id,
                "items": [{"product_id": product.id, "quantity": 1, "unit_cost": 7}],
            },
            headers=admin_headers,
        ).get_json()

        resp = client.post(
            f"/api/purchases/{purchase['id']}/payment",
            json={"amount": 1, "payment_method": {"card": "visa"}},
            headers=admin_headers,
        )

        assert resp.status_code == 400

    def test_product_price_out_of_range(self, client, manager_headers):
        resp = client.post(
            "/api/products",
            json={"name": "Thing", "price_cents": 10**20},
            headers=manager_headers,
        )
        assert resp.status_code == 400
