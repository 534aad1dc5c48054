# Overview: POS sale commit; prices a sale, takes its stock and posts its income in one transaction.

"""
POS sales.

Pricing (captured at sale time, never recomputed):
- line_net = price * qty * (1 - line_discount/100)
- subtotal = sum(line_net)
- total = max(0, subtotal * (1 + tax/100 - discount/100))
All amounts are cents, rounded half-up.

Commit:
- Pre-validation checks every line (product, inventory at the sale's
  location, available quantity) and reports all failures together without
  touching state.
- A sale saved as completed, or later moved pending -> completed, writes one
  "sale" audit entry per line and exactly one Income row, in the same
  transaction as the sale itself. Any NegativeStockError rolls everything
  back.
- pending -> cancelled has no stock effect. completed and cancelled are
  terminal.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from decimal import Decimal

from sqlalchemy import func

from ..errors import IllegalTransitionError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Income, InventoryRecord, Product, Sale, SaleLine
from ..models.inventory import ACTION_SALE
from ..models.sales import (
    INCOME_SOURCE_POS,
    PAYMENT_METHODS,
    SALE_STATUS_CANCELLED,
    SALE_STATUS_COMPLETED,
    SALE_STATUS_PENDING,
    SALE_STATUSES,
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


logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    SALE_STATUS_PENDING: (SALE_STATUS_COMPLETED, SALE_STATUS_CANCELLED),
    SALE_STATUS_COMPLETED: (),
    SALE_STATUS_CANCELLED: (),
}


def compute_totals(lines: list[dict], tax_percent: Decimal, discount_percent: Decimal) -> dict:
    """
    Price a sale.

    lines carry price_cents, quantity and discount_percent. Returns
    {"line_totals": [...], "subtotal_cents", "total_cents"}.
    """
    nets = [
        Decimal(line["price_cents"]) * line["quantity"] * (1 - line["discount_percent"] / HUNDRED)
        for line in lines
    ]
    subtotal = sum(nets, Decimal("0"))
    total = subtotal * (1 + tax_percent / HUNDRED - discount_percent / HUNDRED)
    if total < 0:
        total = Decimal("0")
    return {
        "line_totals": [round_cents(net) for net in nets],
        "subtotal_cents": round_cents(subtotal),
        "total_cents": round_cents(total),
    }


def _parse_lines(items) -> list[dict]:
    if not isinstance(items, list) or not items:
        raise ValidationError("A sale needs at least one item")

    lines = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(f"items[{index}] must be an object")
        price = parse_cents(item, "price", required=True, minimum=None)
        if price < 1:
            raise ValidationError(f"items[{index}].price must be at least 0.01")
        lines.append({
            "product_id": parse_int(item.get("product_id"), f"items[{index}].product_id"),
            "quantity": parse_quantity(item.get("quantity"), f"items[{index}].quantity"),
            "price_cents": price,
            "discount_percent": parse_percent(item.get("discount"), f"items[{index}].discount"),
        })
    return lines


def validate_stock(location_id: int, lines: list[dict]) -> list[dict]:
    """
    Per-line problems for a sale at location_id; empty when the sale can go
    through. Quantities of repeated products are checked in aggregate.
    """
    errors = []
    needed = defaultdict(int)
    for line in lines:
        needed[line["product_id"]] += line["quantity"]

    for index, line in enumerate(lines):
        product = db.session.get(Product, line["product_id"])
        if product is None:
            errors.append({"index": index, "product_id": line["product_id"], "error": "Product not found"})
            continue
        available = inventory_service.current_quantity(product.id, location_id)
        if available is None:
            errors.append({
                "index": index,
                "product_id": product.id,
                "error": f"No inventory for {product.name} at this location",
            })
        elif available < needed[product.id]:
            errors.append({
                "index": index,
                "product_id": product.id,
                "error": f"Insufficient stock for {product.name}. Available: {available}, requested: {needed[product.id]}",
            })
    return errors


def _commit_effects(sale: Sale, actor_id: int) -> list[InventoryRecord]:
    """Take stock for every line and post the Income row. Caller owns the transaction."""
    touched = {}
    for line in sale.lines:
        record = inventory_service.find_record(line.product_id, sale.location_id, lock=True)
        if record is None:
            raise ValidationError(
                "Sale validation failed",
                {"errors": [{"product_id": line.product_id, "error": "No inventory at this location"}]},
            )
        record, _ = inventory_service.apply_delta(
            record,
            -line.quantity,
            ACTION_SALE,
            note=f"POS sale {sale.id}",
            related={"sale_id": sale.id},
            actor_id=actor_id,
        )
        touched[record.id] = record

    now = utcnow()
    db.session.add(Income(
        source=INCOME_SOURCE_POS,
        description=f"Revenue from POS Sale ID: {sale.id}",
        amount_cents=sale.total_cents,
        date=now,
        sale_id=sale.id,
        location_id=sale.location_id,
        created_by_user_id=actor_id,
    ))
    sale.status = SALE_STATUS_COMPLETED
    sale.completed_at = now
    db.session.flush()
    return list(touched.values())


def _publish_committed(sale: Sale, records: list[InventoryRecord]) -> None:
    payload = sale.to_dict()
    if sale.status == SALE_STATUS_COMPLETED:
        events_service.publish(events_service.SALE_COMPLETED, payload, room=events_service.location_room(sale.location_id))
        events_service.publish_inventory_changes(records, reason="sale")
        notification_service.check_low_stock([record.id for record in records])
    else:
        events_service.publish(events_service.SALE_CREATED, payload, room=events_service.location_room(sale.location_id))


def create_sale(payload: dict, actor_id: int) -> Sale:
    """
    Record a POS sale.

    Raises:
        ValidationError: Bad input, or pre-validation failed
            (details.errors lists every failing line)
        NotFoundError: Location missing
        NegativeStockError: Stock vanished between validation and commit
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    location_id = parse_int(payload.get("location_id"), "location_id")
    lines = _parse_lines(payload.get("items"))
    tax_percent = parse_percent(payload.get("tax"), "tax")
    discount_percent = parse_percent(payload.get("discount"), "discount")

    payment_method = payload.get("payment_method") or "cash"
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}")

    status = payload.get("status") or SALE_STATUS_PENDING
    if status not in (SALE_STATUS_PENDING, SALE_STATUS_COMPLETED):
        raise ValidationError("status must be pending or completed")

    customer = payload.get("customer") or {}
    if not isinstance(customer, dict):
        raise ValidationError("customer must be an object")
    customer_name = parse_text(customer.get("name"), "customer.name", max_length=255)
    customer_contact = parse_text(customer.get("contact"), "customer.contact", max_length=64)
    customer_email = parse_text(customer.get("email"), "customer.email", max_length=255)
    notes = parse_text(payload.get("notes"), "notes")

    inventory_service.get_location(location_id)
    errors = validate_stock(location_id, lines)
    if errors:
        raise ValidationError("Sale validation failed", {"errors": errors})

    totals = compute_totals(lines, tax_percent, discount_percent)
    if max(totals["subtotal_cents"], totals["total_cents"]) > MAX_AMOUNT_CENTS:
        raise ValidationError("Sale total is too large")

    def _op():
        sale = Sale(
            location_id=location_id,
            status=SALE_STATUS_PENDING,
            payment_method=payment_method,
            customer_name=customer_name,
            customer_contact=customer_contact,
            customer_email=customer_email,
            notes=notes,
            subtotal_cents=totals["subtotal_cents"],
            tax_percent=tax_percent,
            discount_percent=discount_percent,
            total_cents=totals["total_cents"],
            created_by_user_id=actor_id,
        )
        for line, line_total in zip(lines, totals["line_totals"]):
            sale.lines.append(SaleLine(
                product_id=line["product_id"],
                quantity=line["quantity"],
                price_cents=line["price_cents"],
                discount_percent=line["discount_percent"],
                line_total_cents=line_total,
            ))
        db.session.add(sale)
        db.session.flush()

        records = []
        if status == SALE_STATUS_COMPLETED:
            records = _commit_effects(sale, actor_id)
        return sale, records

    sale, records = run_in_transaction(_op)
    logger.info("Sale %s recorded at location %s: %s, total=%s cents", sale.id, location_id, sale.status, sale.total_cents)
    _publish_committed(sale, records)
    return sale


def update_status(sale_id: int, status: str, actor_id: int) -> Sale:
    """
    Move a pending sale to completed (taking stock, posting income) or cancelled.

    Raises:
        ValidationError: Unknown status
        IllegalTransitionError: Sale is not pending
    """
    if status not in SALE_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(SALE_STATUSES)}")

    def _op():
        sale = (
            lock_for_update(db.session.query(Sale).filter_by(id=sale_id))
            .populate_existing()
            .first()
        )
        if sale is None:
            raise NotFoundError("Sale not found")
        if status not in ALLOWED_TRANSITIONS[sale.status]:
            raise IllegalTransitionError(
                f"Cannot change sale status from {sale.status} to {status}",
                {"sale_id": sale.id, "status": sale.status},
            )

        records = []
        if status == SALE_STATUS_COMPLETED:
            records = _commit_effects(sale, actor_id)
        else:
            sale.status = SALE_STATUS_CANCELLED
            sale.cancelled_at = utcnow()
        return sale, records

    sale, records = run_in_transaction(_op)
    logger.info("Sale %s moved to %s", sale.id, sale.status)
    _publish_committed(sale, records)
    return sale


def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError("Sale not found")
    return sale


def _filtered(query, *, location_id, status, start_date, end_date, location_ids):
    start = parse_datetime_param(start_date, "start_date")
    end = parse_datetime_param(end_date, "end_date", end_of_day=True)

    if location_ids is not None:
        if not location_ids:
            query = query.filter(db.false())
        else:
            query = query.filter(Sale.location_id.in_(location_ids))
    if location_id is not None:
        query = query.filter(Sale.location_id == location_id)
    if status:
        query = query.filter(Sale.status == status)
    if start is not None:
        query = query.filter(Sale.created_at >= start)
    if end is not None:
        query = query.filter(Sale.created_at <= end)
    return query


def list_sales(
    *,
    location_id: int | None = None,
    status: str | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
    location_ids: set[int] | None = None,
    page: int | None = None,
    limit: int | None = None,
) -> dict:
    if status is not None and status not in SALE_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(SALE_STATUSES)}")
    query = _filtered(
        db.session.query(Sale),
        location_id=location_id,
        status=status,
        start_date=start_date,
        end_date=end_date,
        location_ids=location_ids,
    )
    query = query.order_by(Sale.created_at.desc(), Sale.id.desc())
    return paginate(query, page=page, limit=limit)


def sale_stats(
    *,
    location_id: int | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
    location_ids: set[int] | None = None,
) -> dict:
    """totalSales / totalTransactions / averageSale over completed sales."""
    query = _filtered(
        db.session.query(
            func.coalesce(func.sum(Sale.total_cents), 0),
            func.count(Sale.id),
        ),
        location_id=location_id,
        status=SALE_STATUS_COMPLETED,
        start_date=start_date,
        end_date=end_date,
        location_ids=location_ids,
    )
    total, count = query.one()
    total = int(total or 0)
    return {
        "total_sales_cents": total,
        "total_transactions": count,
        "average_sale_cents": round_cents(Decimal(total) / count) if count else 0,
    }
