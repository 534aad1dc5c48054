"""
Pytest fixtures for stockroom backend tests.

Provides a fresh in-memory database per test, users for every role with
bearer headers, two stores and a warehouse, a product and a supplier.
"""

import pytest

from stockroom import create_app
from stockroom.config import TestConfig
from stockroom.extensions import db
from stockroom.models import InventoryAuditEntry, InventoryRecord, Location, Product, Supplier
from stockroom.services import auth_service, events_service


PASSWORD = "Passw0rd!"


@pytest.fixture(scope='function')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    yield db.session
    db.session.rollback()


@pytest.fixture(scope='function')
def store(db_session):
    """Store L1."""
    location = Location(name="Main Store", type="Store", address="1 High Street")
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture(scope='function')
def branch(db_session):
    """Store L2."""
    location = Location(name="Branch Store", type="Store")
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture(scope='function')
def warehouse(db_session):
    location = Location(name="Central Warehouse", type="Warehouse")
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture(scope='function')
def admin_user(db_session):
    return auth_service.create_user(
        username="admin",
        email="admin@stockroom.test",
        password=PASSWORD,
        role="admin",
    )


@pytest.fixture(scope='function')
def manager_user(db_session, store, branch):
    """Manager linked to both stores."""
    return auth_service.create_user(
        username="manager",
        email="manager@stockroom.test",
        password=PASSWORD,
        role="manager",
        location_ids=[store.id, branch.id],
    )


@pytest.fixture(scope='function')
def staff_user(db_session, store):
    """Staff linked to the main store only."""
    return auth_service.create_user(
        username="staff",
        email="staff@stockroom.test",
        password=PASSWORD,
        role="staff",
        location_ids=[store.id],
    )


@pytest.fixture(scope='function')
def branch_staff_user(db_session, branch):
    """Staff linked to the branch only."""
    return auth_service.create_user(
        username="branchstaff",
        email="branchstaff@stockroom.test",
        password=PASSWORD,
        role="staff",
        location_ids=[branch.id],
    )


@pytest.fixture(scope='function')
def store_manager_user(db_session, store):
    """Manager linked to the main store only."""
    return auth_service.create_user(
        username="storemanager",
        email="storemanager@stockroom.test",
        password=PASSWORD,
        role="manager",
        location_ids=[store.id],
    )


@pytest.fixture(scope='function')
def branch_manager_user(db_session, branch):
    """Manager linked to the branch only."""
    return auth_service.create_user(
        username="branchmanager",
        email="branchmanager@stockroom.test",
        password=PASSWORD,
        role="manager",
        location_ids=[branch.id],
    )


def auth_headers(user) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {auth_service.issue_token(user)}'}


@pytest.fixture(scope='function')
def admin_headers(admin_user):
    return auth_headers(admin_user)


@pytest.fixture(scope='function')
def manager_headers(manager_user):
    return auth_headers(manager_user)


@pytest.fixture(scope='function')
def staff_headers(staff_user):
    return auth_headers(staff_user)


@pytest.fixture(scope='function')
def branch_staff_headers(branch_staff_user):
    return auth_headers(branch_staff_user)


@pytest.fixture(scope='function')
def store_manager_headers(store_manager_user):
    return auth_headers(store_manager_user)


@pytest.fixture(scope='function')
def branch_manager_headers(branch_manager_user):
    return auth_headers(branch_manager_user)


@pytest.fixture(scope='function')
def product(db_session):
    """Product P1."""
    product = Product(name="Widget", sku="WID-001", barcode="0001112223334", price_cents=1000)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def other_product(db_session):
    product = Product(name="Gadget", sku="GAD-001", price_cents=2500)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def supplier(db_session):
    supplier = Supplier(name="Acme Supply", code="ACME", email="orders@acme.test")
    db_session.add(supplier)
    db_session.commit()
    return supplier


@pytest.fixture(scope='function')
def events():
    """Collect (event, payload, room) tuples published during the test."""
    received = []
    unsubscribe = events_service.subscribe(lambda event, payload, room: received.append((event, payload, room)))
    yield received
    unsubscribe()


def quantity_at(product_id: int, location_id: int):
    """Current quantity straight from the database (None when no record)."""
    return (
        db.session.query(InventoryRecord.quantity)
        .filter_by(product_id=product_id, location_id=location_id)
        .scalar()
    )


def audit_entries_at(product_id: int, location_id: int) -> list:
    return (
        db.session.query(InventoryAuditEntry)
        .join(InventoryRecord, InventoryAuditEntry.inventory_id == InventoryRecord.id)
        .filter(InventoryRecord.product_id == product_id, InventoryRecord.location_id == location_id)
        .order_by(InventoryAuditEntry.sequence.asc())
        .all()
    )


def stock(client, headers, location_id: int, product_id: int, quantity: int, adjustment_type: str = "Initial Stock"):
    """Book one adjustment through the API and return the response."""
    return client.post(
        "/api/stock-adjustments",
        json={
            "location_id": location_id,
            "adjustments": [
                {"product_id": product_id, "adjustment_type": adjustment_type, "quantity": quantity},
            ],
        },
        headers=headers,
    )
