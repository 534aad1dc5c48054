"""
Inventory record keeper tests.

Verifies:
- apply_delta keeps quantity, delta sum and audit tail in agreement
- Negative results and zero deltas are refused without side effects
- One record per (product, location)
- create_record books a starting quantity as initial_stock
"""

import pytest

from conftest import audit_entries_at, quantity_at
from stockroom.errors import ConflictError, NegativeStockError, ValidationError
from stockroom.extensions import db
from stockroom.models import InventoryRecord
from stockroom.services import inventory_service
from stockroom.services.concurrency import run_in_transaction


def _apply(record, delta, action="adjustment", **kwargs):
    return run_in_transaction(lambda: inventory_service.apply_delta(record, delta, action, **kwargs))


class TestUpsert:
    def test_creates_record_with_zero_quantity(self, db_session, product, store, admin_user):
        record = run_in_transaction(
            lambda: inventory_service.upsert_on_introduction(product.id, store.id, admin_user.id)
        )

        assert record.quantity == 0
        assert record.min_stock == 5
        assert record.notify_at == 5
        assert inventory_service.current_quantity(product.id, store.id) == 0

    def test_returns_existing_record(self, db_session, product, store, admin_user):
        first = run_in_transaction(
            lambda: inventory_service.upsert_on_introduction(product.id, store.id, admin_user.id)
        )
        second = run_in_transaction(
            lambda: inventory_service.upsert_on_introduction(product.id, store.id, admin_user.id)
        )

        assert first.id == second.id
        assert db.session.query(InventoryRecord).count() == 1

    def test_current_quantity_is_none_without_record(self, db_session, product, store):
        assert inventory_service.current_quantity(product.id, store.id) is None


class TestApplyDelta:
    def test_positive_then_negative_delta(self, db_session, product, store, admin_user):
        record = inventory_service.create_record(
            product_id=product.id, location_id=store.id, actor_id=admin_user.id,
        )

        _apply(record, 10, note="delivery", actor_id=admin_user.id)
        record, entry = _apply(record, -4, actor_id=admin_user.id)

        assert record.quantity == 6
        assert entry.delta == -4
        assert entry.new_quantity == 6
        assert entry.sequence == 2
        entries = audit_entries_at(product.id, store.id)
        assert [e.delta for e in entries] == [10, -4]
        assert sum(e.delta for e in entries) == record.quantity

    def test_negative_result_refused(self, db_session, product, store, admin_user):
        record = inventory_service.create_record(
            product_id=product.id, location_id=store.id, actor_id=admin_user.id, quantity=3,
        )

        with pytest.raises(NegativeStockError) as exc:
            _apply(record, -5)

        assert exc.value.details["available"] == 3
        assert quantity_at(product.id, store.id) == 3
        assert len(audit_entries_at(product.id, store.id)) == 1

    def test_zero_delta_refused(self, db_session, product, store, admin_user):
        record = inventory_service.create_record(
            product_id=product.id, location_id=store.id, actor_id=admin_user.id,
        )
        with pytest.raises(ValidationError):
            _apply(record, 0)

    def test_unknown_action_refused(self, db_session, product, store, admin_user):
        record = inventory_service.create_record(
            product_id=product.id, location_id=store.id, actor_id=admin_user.id,
        )
        with pytest.raises(ValidationError):
            _apply(record, 1, action="magic")

    def test_back_reference_is_recorded(self, db_session, product, store, admin_user):
        record = inventory_service.create_record(
            product_id=product.id, location_id=store.id, actor_id=admin_user.id,
        )
        _, entry = _apply(record, 2, action="transfer_in", related={"transfer_id": None})
        assert entry.transfer_id is None

        with pytest.raises(ValidationError):
            _apply(record, 2, related={"order_id": 1})


class TestCreateRecord:
    def test_starting_quantity_is_booked(self, db_session, product, store, admin_user):
        record = inventory_service.create_record(
            product_id=product.id,
            location_id=store.id,
            actor_id=admin_user.id,
            quantity=12,
            min_stock=3,
        )

        assert record.quantity == 12
        assert record.notify_at == 3
        entries = audit_entries_at(product.id, store.id)
        assert len(entries) == 1
        assert entries[0].action == "initial_stock"
        assert entries[0].new_quantity == 12

    def test_duplicate_refused(self, db_session, product, store, admin_user):
        inventory_service.create_record(product_id=product.id, location_id=store.id, actor_id=admin_user.id)

        with pytest.raises(ConflictError):
            inventory_service.create_record(product_id=product.id, location_id=store.id, actor_id=admin_user.id)

        assert db.session.query(InventoryRecord).count() == 1

    def test_negative_starting_quantity_refused(self, db_session, product, store, admin_user):
        with pytest.raises(ValidationError):
            inventory_service.create_record(
                product_id=product.id, location_id=store.id, actor_id=admin_user.id, quantity=-1,
            )


class TestVerify:
    def test_consistent_records_pass(self, db_session, product, other_product, store, admin_user):
        record = inventory_service.create_record(
            product_id=product.id, location_id=store.id, actor_id=admin_user.id, quantity=5,
        )
        _apply(record, -2)
        inventory_service.create_record(
            product_id=other_product.id, location_id=store.id, actor_id=admin_user.id,
        )

        results = inventory_service.verify_all()

        assert len(results) == 2
        assert all(result["ok"] for result in results)

    def test_tampered_quantity_is_reported(self, db_session, product, store, admin_user):
        record = inventory_service.create_record(
            product_id=product.id, location_id=store.id, actor_id=admin_user.id, quantity=5,
        )
        db.session.execute(
            InventoryRecord.__table__.update().where(InventoryRecord.id == record.id).values(quantity=9)
        )
        db.session.commit()
        db.session.expire_all()

        result = inventory_service.verify_record(db.session.get(InventoryRecord, record.id))

        assert result["ok"] is False
        assert len(result["problems"]) == 2


class TestListing:
    def test_location_scope_and_low_stock(self, db_session, product, other_product, store, branch, admin_user):
        inventory_service.create_record(
            product_id=product.id, location_id=store.id, actor_id=admin_user.id, quantity=50,
        )
        inventory_service.create_record(
            product_id=other_product.id, location_id=store.id, actor_id=admin_user.id, quantity=2,
        )
        inventory_service.create_record(
            product_id=product.id, location_id=branch.id, actor_id=admin_user.id, quantity=1,
        )

        scoped = inventory_service.list_records(location_ids={store.id})
        assert scoped["pagination"]["total"] == 2

        low = inventory_service.list_records(low_stock=True)
        assert {row["location_id"] for row in low["data"]} == {store.id, branch.id}
        assert len(low["data"]) == 2

        assert inventory_service.list_records(location_ids=set())["data"] == []

        found = inventory_service.list_records(search="gad")
        assert [row["product_id"] for row in found["data"]] == [other_product.id]
