# Overview: Inventory record keeper; the only code path that changes a stock quantity.

"""
Stock ledger invariants (authoritative)

Inventory model:
- Stock lives only in InventoryRecord, one row per (product, location).
- Every quantity change goes through apply_delta, which appends an
  InventoryAuditEntry in the same transaction as the quantity write.
- quantity == SUM(delta) over the record's audit entries.
- The entry with the highest sequence has new_quantity == quantity.
- quantity is never negative (checked here and by a DB constraint).

Audit:
- Entries are append-only; nothing updates or deletes them.
- Entries are ordered per record by sequence (last_sequence + 1).

Concurrency:
- apply_delta re-reads the record with SELECT ... FOR UPDATE before
  computing the new quantity. On SQLite, version_id_col turns a lost update
  into StaleDataError, which run_in_transaction retries.
- Callers own the transaction; nothing in this module commits except the
  route-facing create_record.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError as SAIntegrityError

from ..errors import ConflictError, NegativeStockError, NotFoundError, ValidationError
from ..extensions import db
from ..models import InventoryAuditEntry, InventoryRecord, Location, Product
from ..models.inventory import ACTION_INITIAL_STOCK, AUDIT_ACTIONS, DEFAULT_MIN_STOCK
from ..pagination import paginate
from ..validation import MAX_QUANTITY
from .concurrency import lock_for_update, run_in_transaction


logger = logging.getLogger(__name__)

RELATED_KEYS = ("sale_id", "transfer_id", "adjustment_id", "purchase_id")


def get_product(product_id: int, *, require_active: bool = False, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise NotFoundError(f"Product {product_id} not found")
    if require_active and not product.is_active:
        raise ValidationError(f"Product {product.name} is inactive")
    return product


def get_location(location_id: int, *, require_active: bool = False) -> Location:
    location = db.session.get(Location, location_id)
    if location is None:
        raise NotFoundError(f"Location {location_id} not found")
    if require_active and not location.is_active:
        raise ValidationError(f"Location {location.name} is inactive")
    return location


def find_record(product_id: int, location_id: int, *, lock: bool = False) -> InventoryRecord | None:
    query = db.session.query(InventoryRecord).filter_by(product_id=product_id, location_id=location_id)
    if lock:
        query = lock_for_update(query).populate_existing()
    return query.first()


def current_quantity(product_id: int, location_id: int) -> int | None:
    """Quantity at (product, location), or None when no record exists."""
    return (
        db.session.query(InventoryRecord.quantity)
        .filter_by(product_id=product_id, location_id=location_id)
        .scalar()
    )


def _validate_threshold(value, field: str) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f"{field} must be a non-negative integer")
    return value


def upsert_on_introduction(
    product_id: int,
    location_id: int,
    actor_id: int | None,
    *,
    min_stock: int | None = None,
    notify_at: int | None = None,
) -> InventoryRecord:
    """
    Return the record for (product, location), creating it with quantity 0.

    The insert runs in a savepoint so a concurrent first insert (unique
    violation on product_id + location_id) only discards the savepoint; the
    winner's row is then read back.
    """
    record = find_record(product_id, location_id)
    if record is not None:
        return record

    min_stock = _validate_threshold(min_stock, "min_stock")
    notify_at = _validate_threshold(notify_at, "notify_at")
    if min_stock is None:
        min_stock = DEFAULT_MIN_STOCK
    if notify_at is None:
        notify_at = min_stock

    try:
        with db.session.begin_nested():
            record = InventoryRecord(
                product_id=product_id,
                location_id=location_id,
                quantity=0,
                min_stock=min_stock,
                notify_at=notify_at,
                last_sequence=0,
                created_by_user_id=actor_id,
            )
            db.session.add(record)
        logger.info("Inventory record created: product=%s location=%s", product_id, location_id)
        return record
    except SAIntegrityError:
        record = find_record(product_id, location_id)
        if record is None:
            raise
        return record


def apply_delta(
    record: InventoryRecord,
    signed_delta: int,
    action: str,
    *,
    note: str | None = None,
    related: dict | None = None,
    actor_id: int | None = None,
) -> tuple[InventoryRecord, InventoryAuditEntry]:
    """
    Apply one signed quantity change and append its audit entry.

    Args:
        record: Target record (re-read under lock here; callers may pass a
            stale instance)
        signed_delta: Non-zero integer change
        action: One of the audit action tags
        note: Free-text note stored on the entry
        related: Back-references, any of sale_id, transfer_id,
            adjustment_id, purchase_id
        actor_id: User performing the change

    Returns:
        (record, entry) with the record holding the new quantity.

    Raises:
        ValidationError: Zero/non-integer delta, unknown action or back-reference
        NegativeStockError: The change would leave quantity below zero
    """
    if isinstance(signed_delta, bool) or not isinstance(signed_delta, int):
        raise ValidationError("delta must be an integer")
    if signed_delta == 0:
        raise ValidationError("delta must be non-zero")
    if action not in AUDIT_ACTIONS:
        raise ValidationError(f"Unknown inventory action: {action}")

    related = related or {}
    unknown = set(related) - set(RELATED_KEYS)
    if unknown:
        raise ValidationError(f"Unknown back-reference(s): {', '.join(sorted(unknown))}")

    if record.id is None:
        db.session.flush()

    locked = (
        lock_for_update(db.session.query(InventoryRecord).filter_by(id=record.id))
        .populate_existing()
        .one()
    )

    previous = locked.quantity
    new_quantity = previous + signed_delta
    if new_quantity < 0:
        product_name = locked.product.name if locked.product else locked.product_id
        location_name = locked.location.name if locked.location else locked.location_id
        raise NegativeStockError(
            f"Insufficient stock for {product_name} at {location_name}: "
            f"available {previous}, change {signed_delta}",
            {
                "inventory_id": locked.id,
                "product_id": locked.product_id,
                "location_id": locked.location_id,
                "available": previous,
                "delta": signed_delta,
            },
        )

    if new_quantity > MAX_QUANTITY:
        raise ValidationError(
            f"Quantity at a location cannot exceed {MAX_QUANTITY}",
            {"inventory_id": locked.id, "available": previous, "delta": signed_delta},
        )
    locked.quantity = new_quantity
    locked.last_sequence = (locked.last_sequence or 0) + 1

    entry = InventoryAuditEntry(
        record=locked,
        sequence=locked.last_sequence,
        user_id=actor_id,
        action=action,
        delta=signed_delta,
        new_quantity=new_quantity,
        note=note,
        **{key: related.get(key) for key in RELATED_KEYS},
    )
    db.session.add(entry)
    db.session.flush()

    return locked, entry


def list_records(
    *,
    location_id: int | None = None,
    product_id: int | None = None,
    search: str | None = None,
    low_stock: bool = False,
    location_ids: set[int] | None = None,
    page: int | None = None,
    limit: int | None = None,
) -> dict:
    """
    Paginated inventory listing.

    location_ids restricts the result to those locations (None means no
    restriction, i.e. admin). Asking for a location outside location_ids is
    the caller's job to refuse; here it just yields nothing.
    """
    query = db.session.query(InventoryRecord).join(Product, InventoryRecord.product_id == Product.id)

    if location_ids is not None:
        if not location_ids:
            query = query.filter(db.false())
        else:
            query = query.filter(InventoryRecord.location_id.in_(location_ids))
    if location_id is not None:
        query = query.filter(InventoryRecord.location_id == location_id)
    if product_id is not None:
        query = query.filter(InventoryRecord.product_id == product_id)
    if low_stock:
        query = query.filter(InventoryRecord.quantity <= InventoryRecord.notify_at)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(Product.name.ilike(pattern), Product.sku.ilike(pattern)))

    query = query.order_by(InventoryRecord.location_id.asc(), Product.name.asc(), InventoryRecord.id.asc())
    return paginate(query, page=page, limit=limit)


def get_record(record_id: int) -> InventoryRecord:
    record = db.session.get(InventoryRecord, record_id)
    if record is None:
        raise NotFoundError(f"Inventory record {record_id} not found")
    return record


def list_audit_entries(record_id: int) -> list[InventoryAuditEntry]:
    get_record(record_id)
    return (
        db.session.query(InventoryAuditEntry)
        .filter_by(inventory_id=record_id)
        .order_by(InventoryAuditEntry.sequence.asc())
        .all()
    )


def create_record(
    *,
    product_id: int,
    location_id: int,
    actor_id: int,
    quantity: int = 0,
    min_stock: int | None = None,
    notify_at: int | None = None,
) -> InventoryRecord:
    """
    Add a product to a location's inventory.

    A positive starting quantity is booked as an initial_stock audit entry,
    so the log still sums to the quantity. Committed here.

    Raises:
        NotFoundError: Product or location missing
        ValidationError: Inactive product/location, negative quantity
        ConflictError: A record already exists for (product, location)
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or not 0 <= quantity <= MAX_QUANTITY:
        raise ValidationError(f"quantity must be a whole number between 0 and {MAX_QUANTITY}")

    def _op():
        product = get_product(product_id, require_active=True)
        location = get_location(location_id, require_active=True)

        if find_record(product_id, location_id) is not None:
            raise ConflictError(
                f"Inventory record already exists for {product.name} at {location.name}. "
                "Use an adjustment instead."
            )

        record = upsert_on_introduction(
            product_id,
            location_id,
            actor_id,
            min_stock=min_stock,
            notify_at=notify_at,
        )
        if quantity > 0:
            record, _ = apply_delta(
                record,
                quantity,
                ACTION_INITIAL_STOCK,
                note="Product added to location inventory",
                actor_id=actor_id,
            )
        return record

    record = run_in_transaction(_op)
    logger.info(
        "Inventory record %s added: product=%s location=%s qty=%s",
        record.id, product_id, location_id, quantity,
    )
    return record


def verify_record(record: InventoryRecord) -> dict:
    """
    Check a record against its audit log.

    Returns {"inventory_id", "ok", "problems": [...]}; never raises for a
    broken record so the CLI can report every failure in one pass.
    """
    problems = []

    if record.quantity < 0:
        problems.append(f"quantity {record.quantity} is negative")

    delta_sum = (
        db.session.query(func.coalesce(func.sum(InventoryAuditEntry.delta), 0))
        .filter(InventoryAuditEntry.inventory_id == record.id)
        .scalar()
    )
    if int(delta_sum) != record.quantity:
        problems.append(f"sum of deltas {delta_sum} != quantity {record.quantity}")

    tail = (
        db.session.query(InventoryAuditEntry)
        .filter_by(inventory_id=record.id)
        .order_by(InventoryAuditEntry.sequence.desc())
        .first()
    )
    if tail is None:
        if record.quantity != 0:
            problems.append(f"no audit entries but quantity is {record.quantity}")
    elif tail.new_quantity != record.quantity:
        problems.append(f"last entry new_quantity {tail.new_quantity} != quantity {record.quantity}")

    return {"inventory_id": record.id, "ok": not problems, "problems": problems}


def verify_all() -> list[dict]:
    return [
        verify_record(record)
        for record in db.session.query(InventoryRecord).order_by(InventoryRecord.id.asc()).all()
    ]
