# backend/stockroom/services/purchase_service.py
"""
Purchase orders and the receiving pipeline.

WHY: Receiving is how purchased stock enters the ledger. Each line of a
received purchase becomes one purchase_received audit entry at the
purchase's warehouse; the purchase is the document of record, so no stock
adjustment is created.

LIFECYCLE:
- pending / ordered: header and lines editable
- received: terminal for editing; receiving twice is refused
- cancelled: cannot be received
Payments are recorded independently of receiving.

Money is integer cents; line tax and totals round half-up to the cent.
"""
from __future__ import annotations

import logging
from datetime import timedelta
from decimal import Decimal

from sqlalchemy import func, or_

from ..errors import IllegalTransitionError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Location, Product, Purchase, PurchaseLine, PurchasePayment, Supplier
from ..models.inventory import ACTION_PURCHASE_RECEIVED
from ..models.purchases import (
    PAYMENT_STATUS_PAID,
    PAYMENT_STATUS_PARTIAL,
    PAYMENT_STATUS_UNPAID,
    PURCHASE_STATUS_CANCELLED,
    PURCHASE_STATUS_ORDERED,
    PURCHASE_STATUS_PENDING,
    PURCHASE_STATUS_RECEIVED,
    PURCHASE_STATUSES,
)
from ..pagination import paginate
from ..time_utils import parse_datetime_param, utcnow
from ..validation import (
    HUNDRED,
    MAX_AMOUNT_CENTS,
    parse_cents,
    parse_int,
    parse_percent,
    parse_quantity,
    parse_text,
    round_cents,
)
from . import events_service, inventory_service, notification_service
from .concurrency import lock_for_update, run_in_transaction
from .sequence_service import next_purchase_number


logger = logging.getLogger(__name__)

EDITABLE_STATUSES = (PURCHASE_STATUS_PENDING, PURCHASE_STATUS_ORDERED)
SETTABLE_STATUSES = (PURCHASE_STATUS_PENDING, PURCHASE_STATUS_ORDERED, PURCHASE_STATUS_CANCELLED)

HEADER_FIELDS = frozenset({
    "supplier_id", "warehouse_id", "purchase_date", "due_date", "reference_number",
    "status", "notes", "items",
    "order_tax", "order_tax_cents",
    "discount_amount", "discount_amount_cents",
    "shipping_cost", "shipping_cost_cents",
    "amount_paid", "amount_paid_cents",
})


def payment_status_for(amount_paid_cents: int, grand_total_cents: int) -> str:
    if grand_total_cents > 0 and amount_paid_cents >= grand_total_cents:
        return PAYMENT_STATUS_PAID
    if amount_paid_cents > 0:
        return PAYMENT_STATUS_PARTIAL
    return PAYMENT_STATUS_UNPAID


def _parse_lines(items) -> list[dict]:
    if not isinstance(items, list) or not items:
        raise ValidationError("Supplier and at least one item are required")

    lines = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(f"items[{index}] must be an object")
        product_id = parse_int(item.get("product_id"), f"items[{index}].product_id")
        quantity = parse_quantity(item.get("quantity"), f"items[{index}].quantity")
        unit_cost = parse_cents(item, "unit_cost", required=True)
        discount = parse_cents(item, "discount")
        tax_rate = parse_percent(item.get("tax_rate"), f"items[{index}].tax_rate")

        base = unit_cost * quantity - discount
        if base < 0:
            raise ValidationError(f"items[{index}].discount cannot exceed the line amount")
        tax_amount = round_cents(Decimal(base) * tax_rate / HUNDRED)
        if base + tax_amount > MAX_AMOUNT_CENTS:
            raise ValidationError(f"items[{index}] total is too large")

        lines.append({
            "product_id": product_id,
            "quantity": quantity,
            "unit_cost_cents": unit_cost,
            "discount_cents": discount,
            "tax_rate": tax_rate,
            "tax_amount_cents": tax_amount,
            "line_total_cents": base + tax_amount,
            "base_cents": base,
        })
    return lines


def _apply_totals(purchase: Purchase, lines: list[dict]) -> None:
    purchase.subtotal_cents = sum(line["base_cents"] for line in lines)
    purchase.line_tax_cents = sum(line["tax_amount_cents"] for line in lines)
    purchase.grand_total_cents = (
        purchase.subtotal_cents
        + purchase.line_tax_cents
        + purchase.order_tax_cents
        + purchase.shipping_cost_cents
        - purchase.discount_amount_cents
    )
    if purchase.grand_total_cents < 0:
        raise ValidationError("discount_amount cannot exceed the order total")
    if purchase.grand_total_cents > MAX_AMOUNT_CENTS:
        raise ValidationError("grand_total is too large")
    if purchase.amount_paid_cents > purchase.grand_total_cents:
        raise ValidationError("amount_paid cannot exceed grand_total")
    purchase.amount_due_cents = purchase.grand_total_cents - purchase.amount_paid_cents
    purchase.payment_status = payment_status_for(purchase.amount_paid_cents, purchase.grand_total_cents)


def _lines_from_rows(purchase: Purchase) -> list[dict]:
    return [
        {
            "base_cents": line.unit_cost_cents * line.quantity - line.discount_cents,
            "tax_amount_cents": line.tax_amount_cents,
        }
        for line in purchase.lines
    ]


def _check_references(supplier_id, warehouse_id, lines) -> None:
    if db.session.get(Supplier, supplier_id) is None:
        raise NotFoundError("Supplier not found")
    if warehouse_id is not None and db.session.get(Location, warehouse_id) is None:
        raise NotFoundError("Warehouse location not found")
    product_ids = {line["product_id"] for line in lines}
    found = {pid for (pid,) in db.session.query(Product.id).filter(Product.id.in_(product_ids)).all()}
    missing = sorted(product_ids - found)
    if missing:
        raise NotFoundError("One or more products not found", {"product_ids": missing})


def _replace_lines(purchase: Purchase, lines: list[dict]) -> None:
    purchase.lines.clear()
    for line in lines:
        purchase.lines.append(PurchaseLine(
            product_id=line["product_id"],
            quantity=line["quantity"],
            unit_cost_cents=line["unit_cost_cents"],
            discount_cents=line["discount_cents"],
            tax_rate=line["tax_rate"],
            tax_amount_cents=line["tax_amount_cents"],
            line_total_cents=line["line_total_cents"],
        ))


def create_purchase(payload: dict, actor_id: int) -> Purchase:
    """
    Create a purchase order with derived totals.

    Raises:
        ValidationError: Bad fields, no items, amount_paid above the total
        NotFoundError: Supplier, warehouse or a product missing
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    supplier_id = parse_int(payload.get("supplier_id"), "supplier_id")
    warehouse_id = parse_int(payload.get("warehouse_id"), "warehouse_id", required=False)
    lines = _parse_lines(payload.get("items"))

    status = payload.get("status") or PURCHASE_STATUS_PENDING
    if status not in EDITABLE_STATUSES:
        raise ValidationError("status must be pending or ordered on creation")

    purchase_date = parse_datetime_param(payload.get("purchase_date"), "purchase_date")
    due_date = parse_datetime_param(payload.get("due_date"), "due_date")

    order_tax = parse_cents(payload, "order_tax")
    discount_amount = parse_cents(payload, "discount_amount")
    shipping_cost = parse_cents(payload, "shipping_cost")
    amount_paid = parse_cents(payload, "amount_paid")
    reference_number = parse_text(payload.get("reference_number"), "reference_number", max_length=128)
    notes = parse_text(payload.get("notes"), "notes")

    def _op():
        _check_references(supplier_id, warehouse_id, lines)

        purchase_at = purchase_date or utcnow()
        purchase = Purchase(
            purchase_number=next_purchase_number(purchase_at),
            supplier_id=supplier_id,
            warehouse_id=warehouse_id,
            purchase_date=purchase_at,
            due_date=due_date,
            reference_number=reference_number,
            status=status,
            notes=notes,
            order_tax_cents=order_tax,
            discount_amount_cents=discount_amount,
            shipping_cost_cents=shipping_cost,
            amount_paid_cents=amount_paid,
            created_by_user_id=actor_id,
            is_active=True,
        )
        _replace_lines(purchase, lines)
        _apply_totals(purchase, lines)
        db.session.add(purchase)
        db.session.flush()
        return purchase

    purchase = run_in_transaction(_op)
    logger.info("Purchase %s created (total=%s cents)", purchase.purchase_number, purchase.grand_total_cents)
    return purchase


def get_purchase(purchase_id: int, *, include_inactive: bool = False) -> Purchase:
    purchase = db.session.get(Purchase, purchase_id)
    if purchase is None or (not include_inactive and not purchase.is_active):
        raise NotFoundError("Purchase not found")
    return purchase


def _locked_purchase(purchase_id: int) -> Purchase | None:
    return (
        lock_for_update(db.session.query(Purchase).filter_by(id=purchase_id))
        .populate_existing()
        .first()
    )


def update_purchase(purchase_id: int, payload: dict) -> Purchase:
    """
    Edit a purchase that has not been received or cancelled.

    Sending items replaces every line. Setting status to received is
    refused; use receive().
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    unknown = set(payload) - HEADER_FIELDS
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")

    status = payload.get("status")
    if status is not None:
        if status == PURCHASE_STATUS_RECEIVED:
            raise IllegalTransitionError("Use the receive endpoint to mark a purchase received")
        if status not in SETTABLE_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(SETTABLE_STATUSES)}")

    lines = _parse_lines(payload["items"]) if "items" in payload else None
    text_fields = {
        "reference_number": parse_text(payload.get("reference_number"), "reference_number", max_length=128),
        "notes": parse_text(payload.get("notes"), "notes"),
    }

    def _op():
        purchase = _locked_purchase(purchase_id)
        if purchase is None or not purchase.is_active:
            raise NotFoundError("Purchase not found")
        if purchase.status not in EDITABLE_STATUSES:
            raise IllegalTransitionError(f"Cannot edit purchase with status: {purchase.status}")

        supplier_id = purchase.supplier_id
        if "supplier_id" in payload:
            supplier_id = parse_int(payload["supplier_id"], "supplier_id")
        warehouse_id = purchase.warehouse_id
        if "warehouse_id" in payload:
            warehouse_id = parse_int(payload["warehouse_id"], "warehouse_id", required=False)
        _check_references(supplier_id, warehouse_id, lines or [])

        purchase.supplier_id = supplier_id
        purchase.warehouse_id = warehouse_id
        if "purchase_date" in payload:
            purchase.purchase_date = parse_datetime_param(payload["purchase_date"], "purchase_date") or purchase.purchase_date
        if "due_date" in payload:
            purchase.due_date = parse_datetime_param(payload["due_date"], "due_date")
        for field, value in text_fields.items():
            if field in payload:
                setattr(purchase, field, value)
        for field in ("order_tax", "discount_amount", "shipping_cost", "amount_paid"):
            if field in payload or f"{field}_cents" in payload:
                setattr(purchase, f"{field}_cents", parse_cents(payload, field))

        if lines is not None:
            _replace_lines(purchase, lines)
            _apply_totals(purchase, lines)
        else:
            _apply_totals(purchase, _lines_from_rows(purchase))

        if status is not None:
            purchase.status = status
        return purchase

    purchase = run_in_transaction(_op)
    logger.info("Purchase %s updated", purchase.purchase_number)
    return purchase


def _receive_problems(purchase: Purchase) -> list[str]:
    """Everything that blocks receiving, reported together."""
    problems = []
    if purchase.supplier_id is None or db.session.get(Supplier, purchase.supplier_id) is None:
        problems.append("Invalid supplier reference in purchase order")
    if not purchase.lines:
        problems.append("Purchase order has no items to receive")
    else:
        missing = [
            line.product_id for line in purchase.lines
            if db.session.get(Product, line.product_id) is None
        ]
        if missing:
            problems.append(f"One or more products in the purchase order are invalid: {missing}")
    # Drafts may omit the warehouse, but receiving needs a location to credit
    if purchase.warehouse_id is None:
        problems.append("Purchase order has no warehouse to receive into")
    elif db.session.get(Location, purchase.warehouse_id) is None:
        problems.append("Invalid warehouse/location reference")
    return problems


def receive(purchase_id: int, actor_id: int) -> Purchase:
    """
    Credit every line into the warehouse and mark the purchase received.

    Raises:
        NotFoundError: Purchase missing or soft-deleted
        IllegalTransitionError: Already received, or cancelled
        ValidationError: Pre-check failed (details.errors lists every problem)
    """
    def _op():
        purchase = _locked_purchase(purchase_id)
        if purchase is None or not purchase.is_active:
            raise NotFoundError("Purchase not found or inactive")
        if purchase.status == PURCHASE_STATUS_RECEIVED:
            raise IllegalTransitionError(
                "Purchase order has already been received",
                {"purchase_number": purchase.purchase_number},
            )
        if purchase.status == PURCHASE_STATUS_CANCELLED:
            raise IllegalTransitionError("Cannot receive a cancelled purchase order")

        problems = _receive_problems(purchase)
        if problems:
            raise ValidationError("Purchase order cannot be received", {"errors": problems})

        supplier_name = purchase.supplier.name if purchase.supplier else "Unknown"
        note = f"Received from PO#{purchase.purchase_number} - Supplier: {supplier_name}"

        touched = {}
        for line in purchase.lines:
            record = inventory_service.upsert_on_introduction(line.product_id, purchase.warehouse_id, actor_id)
            record, _ = inventory_service.apply_delta(
                record,
                line.quantity,
                ACTION_PURCHASE_RECEIVED,
                note=note,
                related={"purchase_id": purchase.id},
                actor_id=actor_id,
            )
            touched[record.id] = record

        purchase.status = PURCHASE_STATUS_RECEIVED
        purchase.received_date = utcnow()
        purchase.received_by_user_id = actor_id
        return purchase, list(touched.values())

    purchase, records = run_in_transaction(_op)
    logger.info(
        "Purchase %s received into location %s (%d lines)",
        purchase.purchase_number, purchase.warehouse_id, len(purchase.lines),
    )
    events_service.publish(events_service.PURCHASE_RECEIVED, purchase.to_dict(), room=events_service.ROOM_PURCHASES)
    events_service.publish_inventory_changes(records, reason="purchase_received")
    notification_service.check_low_stock([record.id for record in records])
    return purchase


def record_payment(
    purchase_id: int,
    payload: dict,
    actor_id: int,
) -> Purchase:
    """
    Append a payment and refresh amount_paid / amount_due / payment_status.

    Raises:
        ValidationError: amount <= 0 or above the remaining balance
        NotFoundError: Purchase missing
        IllegalTransitionError: Purchase cancelled
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    amount = parse_cents(payload, "amount", required=True, minimum=None)
    if amount <= 0:
        raise ValidationError("Payment amount must be greater than 0")
    payment_date = parse_datetime_param(payload.get("payment_date"), "payment_date")
    payment_method = parse_text(payload.get("payment_method"), "payment_method", max_length=32)
    notes = parse_text(payload.get("notes"), "notes")

    def _op():
        purchase = _locked_purchase(purchase_id)
        if purchase is None or not purchase.is_active:
            raise NotFoundError("Purchase not found")
        if purchase.status == PURCHASE_STATUS_CANCELLED:
            raise IllegalTransitionError("Cannot record a payment on a cancelled purchase")

        remaining = purchase.grand_total_cents - purchase.amount_paid_cents
        if amount > remaining:
            raise ValidationError(
                f"Payment amount cannot exceed remaining balance of ${remaining / 100:.2f}",
                {"remaining_cents": remaining},
            )

        purchase.payments.append(PurchasePayment(
            amount_cents=amount,
            payment_method=payment_method,
            payment_date=payment_date or utcnow(),
            notes=notes,
            recorded_by_user_id=actor_id,
        ))
        purchase.amount_paid_cents += amount
        purchase.amount_due_cents = purchase.grand_total_cents - purchase.amount_paid_cents
        purchase.payment_status = payment_status_for(purchase.amount_paid_cents, purchase.grand_total_cents)
        return purchase

    purchase = run_in_transaction(_op)
    logger.info("Payment of %s cents recorded on purchase %s", amount, purchase.purchase_number)
    return purchase


def delete_purchase(purchase_id: int) -> Purchase:
    """Soft delete. Received purchases stay, since their stock is on the books."""
    def _op():
        purchase = _locked_purchase(purchase_id)
        if purchase is None:
            raise NotFoundError("Purchase not found")
        if not purchase.is_active:
            return purchase
        if purchase.status == PURCHASE_STATUS_RECEIVED:
            raise IllegalTransitionError("Received purchases cannot be deleted")
        purchase.is_active = False
        return purchase

    return run_in_transaction(_op)


def list_purchases(
    *,
    status: str | None = None,
    payment_status: str | None = None,
    supplier_id: int | None = None,
    warehouse_id: int | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
    search: str | None = None,
    page: int | None = None,
    limit: int | None = None,
) -> dict:
    if status is not None and status not in PURCHASE_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(PURCHASE_STATUSES)}")
    start = parse_datetime_param(start_date, "start_date")
    end = parse_datetime_param(end_date, "end_date", end_of_day=True)

    query = db.session.query(Purchase).filter(Purchase.is_active.is_(True))
    if status:
        query = query.filter(Purchase.status == status)
    if payment_status:
        query = query.filter(Purchase.payment_status == payment_status)
    if supplier_id is not None:
        query = query.filter(Purchase.supplier_id == supplier_id)
    if warehouse_id is not None:
        query = query.filter(Purchase.warehouse_id == warehouse_id)
    if start is not None:
        query = query.filter(Purchase.purchase_date >= start)
    if end is not None:
        query = query.filter(Purchase.purchase_date <= end)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(
            Purchase.purchase_number.ilike(pattern),
            Purchase.reference_number.ilike(pattern),
            Purchase.notes.ilike(pattern),
        ))

    query = query.order_by(Purchase.purchase_date.desc(), Purchase.id.desc())
    return paginate(query, page=page, limit=limit, serializer=lambda p: p.to_dict(include_lines=False))


def purchase_stats() -> dict:
    active = db.session.query(Purchase).filter(Purchase.is_active.is_(True))

    by_status = dict(
        active.with_entities(Purchase.status, func.count(Purchase.id)).group_by(Purchase.status).all()
    )
    by_payment_status = dict(
        active.with_entities(Purchase.payment_status, func.count(Purchase.id))
        .group_by(Purchase.payment_status)
        .all()
    )
    total_value = active.with_entities(func.coalesce(func.sum(Purchase.grand_total_cents), 0)).scalar()
    total_due = active.with_entities(func.coalesce(func.sum(Purchase.amount_due_cents), 0)).scalar()
    recent = active.filter(Purchase.purchase_date >= utcnow() - timedelta(days=30)).count()

    top_suppliers = (
        db.session.query(
            Supplier.id,
            Supplier.name,
            func.sum(Purchase.grand_total_cents).label("total_value"),
            func.count(Purchase.id).label("purchase_count"),
        )
        .join(Purchase, Purchase.supplier_id == Supplier.id)
        .filter(Purchase.is_active.is_(True))
        .group_by(Supplier.id, Supplier.name)
        .order_by(func.sum(Purchase.grand_total_cents).desc())
        .limit(5)
        .all()
    )

    return {
        "total_purchases": sum(by_status.values()),
        "pending_purchases": by_status.get(PURCHASE_STATUS_PENDING, 0),
        "received_purchases": by_status.get(PURCHASE_STATUS_RECEIVED, 0),
        "unpaid_purchases": by_payment_status.get(PAYMENT_STATUS_UNPAID, 0),
        "total_value_cents": int(total_value or 0),
        "total_due_cents": int(total_due or 0),
        "recent_purchases": recent,
        "status_distribution": by_status,
        "payment_status_distribution": by_payment_status,
        "top_suppliers": [
            {
                "supplier_id": row.id,
                "supplier_name": row.name,
                "total_value_cents": int(row.total_value or 0),
                "purchase_count": row.purchase_count,
            }
            for row in top_suppliers
        ],
    }
