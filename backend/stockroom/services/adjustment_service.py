# Overview: Stock adjustment engine; typed, user-initiated quantity changes booked in batches.

"""
Stock adjustments.

A batch targets one location and books every item in a single transaction:
either all adjustments (and their audit entries) commit, or none do.

Sign rules:
- additive types add quantity
- subtractive types remove quantity
- caller-signed types (Other, Cycle Count Adj) take the sign of the
  submitted quantity; quantity_adjusted stores its absolute value

Adjustments are append-only: reason and reference_number are the only
editable fields, and deletion is refused outright.
"""

from __future__ import annotations

import logging

from sqlalchemy import or_

from ..errors import InventoryMissingError, NegativeStockError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Product, StockAdjustment
from ..models.adjustments import (
    ADDITIVE_TYPES,
    ADJ_ADDITION,
    ADJ_INITIAL_STOCK,
    ADJ_SUBTRACTION,
    ADJUSTMENT_TYPES,
    CALLER_SIGNED_TYPES,
    SUBTRACTIVE_TYPES,
)
from ..models.inventory import ACTION_ADJUSTMENT, ACTION_INITIAL_STOCK
from ..pagination import paginate
from ..time_utils import parse_datetime_param, utcnow
from ..validation import MAX_QUANTITY, parse_int, parse_text
from . import events_service, inventory_service, notification_service
from .concurrency import run_in_transaction
from .sequence_service import next_adjustment_number


logger = logging.getLogger(__name__)

EDITABLE_FIELDS = frozenset({"reason", "reference_number"})
AUDIT_NOTE_MAX = 200
REFERENCE_MAX = 128

DELETE_REFUSED_MESSAGE = (
    "Deleting historical stock adjustments is disabled for audit integrity. "
    "Please create a correcting adjustment instead."
)


def signed_delta_for(adjustment_type: str, quantity) -> int:
    """
    Derive the signed change for an adjustment type.

    Raises:
        ValidationError: Unknown type, non-integer or zero quantity, or a
            negative quantity for a type that carries its own sign
    """
    if not isinstance(adjustment_type, str) or adjustment_type not in ADJUSTMENT_TYPES:
        raise ValidationError(
            f"Invalid adjustment_type: {adjustment_type}. "
            f"Must be one of: {', '.join(sorted(ADJUSTMENT_TYPES))}"
        )
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("quantity must be an integer")
    if quantity == 0:
        raise ValidationError("quantity cannot be zero")
    if abs(quantity) > MAX_QUANTITY:
        raise ValidationError(f"quantity cannot exceed {MAX_QUANTITY}")

    if adjustment_type in CALLER_SIGNED_TYPES:
        return quantity
    if quantity < 0:
        raise ValidationError(f"quantity must be positive for {adjustment_type}")
    if adjustment_type in ADDITIVE_TYPES:
        return quantity
    if adjustment_type in SUBTRACTIVE_TYPES:
        return -quantity
    raise ValidationError(f"Unsupported adjustment_type: {adjustment_type}")


def _audit_note(adjustment_type: str, reason: str | None, reference_number: str | None) -> str:
    note = f"{adjustment_type}: {reason or 'No reason specified'}"
    if reference_number:
        note += f" (Ref: {reference_number})"
    return note[:AUDIT_NOTE_MAX]


def _normalize_item(raw, index: int) -> dict:
    if not isinstance(raw, dict):
        raise ValidationError(f"adjustments[{index}] must be an object")

    product_id = raw.get("product_id")
    if isinstance(product_id, bool) or not isinstance(product_id, int):
        raise ValidationError(f"adjustments[{index}].product_id must be an integer")
    product_id = parse_int(product_id, f"adjustments[{index}].product_id")

    adjustment_type = raw.get("adjustment_type")
    if not adjustment_type:
        raise ValidationError(f"adjustments[{index}].adjustment_type is required")

    try:
        delta = signed_delta_for(adjustment_type, raw.get("quantity"))
    except ValidationError as exc:
        raise ValidationError(f"adjustments[{index}]: {exc.message}")

    return {
        "product_id": product_id,
        "adjustment_type": adjustment_type,
        "delta": delta,
        "reason": parse_text(raw.get("reason"), f"adjustments[{index}].reason"),
        "reference_number": parse_text(
            raw.get("reference_number"), f"adjustments[{index}].reference_number", max_length=REFERENCE_MAX
        ),
    }


def create_batch(
    *,
    location_id: int,
    adjustments: list,
    actor_id: int,
    metadata: dict | None = None,
) -> list[StockAdjustment]:
    """
    Book a batch of adjustments at one location atomically.

    Args:
        location_id: Location every item applies to
        adjustments: Items of {product_id, adjustment_type, quantity,
            reason?, reference_number?}
        actor_id: User making the adjustments
        metadata: Optional {note, reference_number, adjustment_date} shared
            by the batch; item-level reference_number wins

    Returns:
        The created StockAdjustment rows, in submission order.

    Raises:
        ValidationError: Empty batch, bad item, bad type or quantity
        NotFoundError: Location or product missing
        InventoryMissingError: No record at (product, location) and the type
            is not Initial Stock
        NegativeStockError: An item would take stock below zero
    """
    if not isinstance(adjustments, list) or not adjustments:
        raise ValidationError("adjustments must be a non-empty list")

    metadata = metadata or {}
    items = [_normalize_item(raw, index) for index, raw in enumerate(adjustments)]
    batch_note = parse_text(metadata.get("note"), "note")
    batch_reference = parse_text(metadata.get("reference_number"), "reference_number", max_length=REFERENCE_MAX)
    adjustment_date = parse_datetime_param(metadata.get("adjustment_date"), "adjustment_date")

    def _op():
        location = inventory_service.get_location(location_id)
        created = []

        for item in items:
            product = inventory_service.get_product(item["product_id"])

            record = inventory_service.find_record(product.id, location.id, lock=True)
            if record is None:
                if item["adjustment_type"] != ADJ_INITIAL_STOCK:
                    raise InventoryMissingError(
                        f"Inventory record not found for {product.name} at {location.name}. "
                        "Cannot adjust stock.",
                        {"product_id": product.id, "location_id": location.id},
                    )
                record = inventory_service.upsert_on_introduction(product.id, location.id, actor_id)
                db.session.flush()

            previous = record.quantity
            delta = item["delta"]
            if previous + delta < 0:
                raise NegativeStockError(
                    f"Adjustment results in negative stock ({previous + delta}) for {product.name} "
                    f"at {location.name}. Current: {previous}, adjusting by: {delta}",
                    {"product_id": product.id, "location_id": location.id, "available": previous, "delta": delta},
                )

            reference_number = item["reference_number"] or batch_reference
            adjustment = StockAdjustment(
                adjustment_number=next_adjustment_number(),
                product_id=product.id,
                location_id=location.id,
                inventory_id=record.id,
                adjustment_type=item["adjustment_type"],
                quantity_adjusted=abs(delta),
                quantity_delta=delta,
                previous_quantity=previous,
                new_quantity=previous + delta,
                reason=item["reason"],
                reference_number=reference_number,
                batch_note=batch_note,
                adjusted_by_user_id=actor_id,
                adjustment_date=adjustment_date or utcnow(),
            )
            db.session.add(adjustment)
            db.session.flush()

            action = ACTION_INITIAL_STOCK if item["adjustment_type"] == ADJ_INITIAL_STOCK else ACTION_ADJUSTMENT
            inventory_service.apply_delta(
                record,
                delta,
                action,
                note=_audit_note(item["adjustment_type"], item["reason"], reference_number),
                related={"adjustment_id": adjustment.id},
                actor_id=actor_id,
            )
            created.append(adjustment)

        return created

    created = run_in_transaction(_op)

    logger.info(
        "Stock adjustments committed at location %s: %s",
        location_id, ", ".join(adj.adjustment_number for adj in created),
    )

    events_service.publish(
        events_service.ADJUSTMENTS_CREATED,
        [adj.to_dict() for adj in created],
        room=events_service.ROOM_STOCK_ADJUSTMENTS,
    )
    records = _unique_records(created)
    events_service.publish_inventory_changes(records, reason="adjustment")
    notification_service.check_low_stock([record.id for record in records])

    return created


def _unique_records(adjustments: list[StockAdjustment]) -> list:
    seen = {}
    for adj in adjustments:
        if adj.inventory_id not in seen:
            seen[adj.inventory_id] = inventory_service.get_record(adj.inventory_id)
    return list(seen.values())


def get_adjustment(adjustment_id: int) -> StockAdjustment:
    adjustment = db.session.get(StockAdjustment, adjustment_id)
    if adjustment is None:
        raise NotFoundError("Stock adjustment record not found")
    return adjustment


def update_adjustment(adjustment_id: int, payload: dict) -> StockAdjustment:
    """
    Edit reason and/or reference_number of an adjustment.

    Any other key in payload is refused; quantity, type, actor and dates
    are immutable.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")

    forbidden = set(payload) - EDITABLE_FIELDS
    if forbidden:
        raise ValidationError(
            "Only reason and reference_number can be edited on a stock adjustment",
            {"fields": sorted(forbidden)},
        )
    values = {
        field: parse_text(payload[field], field, max_length=REFERENCE_MAX if field == "reference_number" else None)
        for field in EDITABLE_FIELDS
        if field in payload
    }

    def _op():
        adjustment = get_adjustment(adjustment_id)
        changed = False
        for field, value in values.items():
            if getattr(adjustment, field) != value:
                setattr(adjustment, field, value)
                changed = True
        return adjustment, changed

    adjustment, changed = run_in_transaction(_op)

    if changed:
        logger.info("Stock adjustment %s updated", adjustment.adjustment_number)
        events_service.publish(
            events_service.ADJUSTMENT_UPDATED,
            adjustment.to_dict(),
            room=events_service.ROOM_STOCK_ADJUSTMENTS,
        )
    return adjustment


def list_adjustments(
    *,
    product_id: int | None = None,
    location_id: int | None = None,
    user_id: int | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
    reference_number: str | None = None,
    search: str | None = None,
    location_ids: set[int] | None = None,
    page: int | None = None,
    limit: int | None = None,
) -> dict:
    """
    Paginated adjustment history, newest first.

    end_date given as a bare date includes that whole day. location_ids
    restricts results for non-admin callers (None means unrestricted).
    """
    start = parse_datetime_param(start_date, "start_date")
    end = parse_datetime_param(end_date, "end_date", end_of_day=True)

    query = db.session.query(StockAdjustment).join(Product, StockAdjustment.product_id == Product.id)

    if location_ids is not None:
        if not location_ids:
            query = query.filter(db.false())
        else:
            query = query.filter(StockAdjustment.location_id.in_(location_ids))
    if location_id is not None:
        query = query.filter(StockAdjustment.location_id == location_id)
    if product_id is not None:
        query = query.filter(StockAdjustment.product_id == product_id)
    if user_id is not None:
        query = query.filter(StockAdjustment.adjusted_by_user_id == user_id)
    if start is not None:
        query = query.filter(StockAdjustment.adjustment_date >= start)
    if end is not None:
        query = query.filter(StockAdjustment.adjustment_date <= end)
    if reference_number:
        query = query.filter(StockAdjustment.reference_number.ilike(f"%{reference_number}%"))
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(
            Product.name.ilike(pattern),
            Product.sku.ilike(pattern),
            StockAdjustment.reference_number.ilike(pattern),
            StockAdjustment.reason.ilike(pattern),
            StockAdjustment.adjustment_number.ilike(pattern),
        ))

    query = query.order_by(
        StockAdjustment.adjustment_date.desc(),
        StockAdjustment.created_at.desc(),
        StockAdjustment.id.desc(),
    )
    return paginate(query, page=page, limit=limit)


def adjust_record(record_id: int, adjustment, note: str | None, actor_id: int) -> StockAdjustment:
    """
    Single-record signed adjustment kept for older clients.

    A positive value books an Addition, a negative one a Subtraction.
    """
    if isinstance(adjustment, bool) or not isinstance(adjustment, int):
        raise ValidationError("adjustment must be a non-zero integer")
    if adjustment == 0:
        raise ValidationError("adjustment must be a non-zero integer")

    record = inventory_service.get_record(record_id)
    created = create_batch(
        location_id=record.location_id,
        adjustments=[{
            "product_id": record.product_id,
            "adjustment_type": ADJ_ADDITION if adjustment > 0 else ADJ_SUBTRACTION,
            "quantity": abs(adjustment),
            "reason": note,
        }],
        actor_id=actor_id,
    )
    return created[0]
