# backend/stockroom/services/transfer_service.py
"""
Inter-location stock transfers.

WHY: Move one product between two locations with an accountable, two-step
handoff. Stock leaves the source when the transfer ships and arrives at the
destination when it is received; in between it is in transit and counted
at neither location.

LIFECYCLE:
1. Pending: created, no stock moved
2. Shipped: transfer_out entry at the source (requires FROM access)
3. Received: transfer_in entry at the destination (requires TO access)
4. Cancelled: from Pending (no stock effect) or from Shipped
   (transfer_out_reversed entry puts the stock back at the source)

Received and Cancelled are terminal.
"""
from __future__ import annotations

import logging
import uuid

from sqlalchemy import or_

from ..errors import AccessDeniedError, IllegalTransitionError, InsufficientStockError, NotFoundError, ValidationError
from ..extensions import db
from ..models import StockTransfer, User
from ..models.documents import (
    TRANSFER_STATUS_CANCELLED,
    TRANSFER_STATUS_PENDING,
    TRANSFER_STATUS_RECEIVED,
    TRANSFER_STATUS_SHIPPED,
    TRANSFER_STATUSES,
)
from ..models.inventory import ACTION_TRANSFER_IN, ACTION_TRANSFER_OUT, ACTION_TRANSFER_OUT_REVERSED
from ..pagination import paginate
from ..time_utils import utcnow
from ..validation import MAX_QUANTITY, parse_text
from . import auth_service, events_service, inventory_service, notification_service
from .concurrency import lock_for_update, run_in_transaction


logger = logging.getLogger(__name__)


def generate_transfer_id() -> str:
    return f"TR-{uuid.uuid4().hex[:8].upper()}"


def _locked_transfer(transfer_pk: int) -> StockTransfer:
    transfer = (
        lock_for_update(db.session.query(StockTransfer).filter_by(id=transfer_pk))
        .populate_existing()
        .first()
    )
    if transfer is None:
        raise NotFoundError("Stock transfer not found")
    return transfer


def _require_status(transfer: StockTransfer, action: str, *allowed: str) -> None:
    if transfer.status not in allowed:
        raise IllegalTransitionError(
            f"Cannot {action} transfer with status: {transfer.status}",
            {"transfer_id": transfer.transfer_id, "status": transfer.status},
        )


def _publish(event: str, transfer: StockTransfer) -> None:
    payload = transfer.to_dict()
    events_service.publish(event, payload, room=events_service.location_room(transfer.from_location_id))
    events_service.publish(event, payload, room=events_service.location_room(transfer.to_location_id))


def create_transfer(
    *,
    product_id: int,
    quantity,
    from_location_id: int,
    to_location_id: int,
    actor: User,
    notes: str | None = None,
) -> StockTransfer:
    """
    Create a Pending transfer. No stock moves until it ships.

    Raises:
        ValidationError: Same location, quantity < 1, inactive product or location
        AccessDeniedError: Actor has no access to the source location
        NotFoundError: Product or a location missing
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or not 1 <= quantity <= MAX_QUANTITY:
        raise ValidationError(f"Quantity must be a whole number between 1 and {MAX_QUANTITY}")
    notes = parse_text(notes, "notes")
    if from_location_id == to_location_id:
        raise ValidationError("Cannot transfer stock to the same location")
    if not auth_service.has_location_access(actor, from_location_id):
        raise AccessDeniedError("You do not have access to transfer stock FROM this location")

    def _op():
        inventory_service.get_product(product_id, require_active=True)
        inventory_service.get_location(from_location_id, require_active=True)
        inventory_service.get_location(to_location_id, require_active=True)

        transfer = StockTransfer(
            transfer_id=generate_transfer_id(),
            product_id=product_id,
            quantity=quantity,
            from_location_id=from_location_id,
            to_location_id=to_location_id,
            status=TRANSFER_STATUS_PENDING,
            notes=notes,
            requested_by_user_id=actor.id,
            requested_at=utcnow(),
        )
        db.session.add(transfer)
        db.session.flush()
        return transfer

    transfer = run_in_transaction(_op)
    logger.info(
        "Transfer %s created: product=%s qty=%s %s -> %s",
        transfer.transfer_id, product_id, quantity, from_location_id, to_location_id,
    )
    _publish(events_service.TRANSFER_CREATED, transfer)
    return transfer


def ship_transfer(transfer_pk: int, actor: User) -> StockTransfer:
    """
    Pending -> Shipped. Takes the quantity out of the source location.

    Raises:
        IllegalTransitionError: Not Pending
        AccessDeniedError: Actor has no access to the source location
        InsufficientStockError: Source cannot cover the quantity
    """
    def _op():
        transfer = _locked_transfer(transfer_pk)
        _require_status(transfer, "ship", TRANSFER_STATUS_PENDING)
        if not auth_service.has_location_access(actor, transfer.from_location_id):
            raise AccessDeniedError("You do not have access to ship transfers FROM this location")

        record = inventory_service.find_record(transfer.product_id, transfer.from_location_id, lock=True)
        available = record.quantity if record is not None else 0
        if record is None or available < transfer.quantity:
            raise InsufficientStockError(
                f"Insufficient stock to ship. Available: {available}",
                {"available": available, "requested": transfer.quantity},
            )

        record, _ = inventory_service.apply_delta(
            record,
            -transfer.quantity,
            ACTION_TRANSFER_OUT,
            note=f"Shipped on transfer {transfer.transfer_id}",
            related={"transfer_id": transfer.id},
            actor_id=actor.id,
        )

        transfer.status = TRANSFER_STATUS_SHIPPED
        transfer.shipped_by_user_id = actor.id
        transfer.shipped_at = utcnow()
        return transfer, record

    transfer, record = run_in_transaction(_op)
    logger.info("Transfer %s shipped by user %s", transfer.transfer_id, actor.id)
    _publish(events_service.TRANSFER_SHIPPED, transfer)
    events_service.publish_inventory_changes([record], reason="transfer_out")
    notification_service.check_low_stock([record.id])
    return transfer


def receive_transfer(transfer_pk: int, actor: User) -> StockTransfer:
    """
    Shipped -> Received. Credits the destination, creating its record if needed.

    Raises:
        IllegalTransitionError: Not Shipped
        AccessDeniedError: Actor has no access to the destination location
    """
    def _op():
        transfer = _locked_transfer(transfer_pk)
        _require_status(transfer, "receive", TRANSFER_STATUS_SHIPPED)
        if not auth_service.has_location_access(actor, transfer.to_location_id):
            raise AccessDeniedError("You do not have access to receive transfers AT this location")

        record = inventory_service.upsert_on_introduction(transfer.product_id, transfer.to_location_id, actor.id)
        record, _ = inventory_service.apply_delta(
            record,
            transfer.quantity,
            ACTION_TRANSFER_IN,
            note=f"Received on transfer {transfer.transfer_id}",
            related={"transfer_id": transfer.id},
            actor_id=actor.id,
        )

        transfer.status = TRANSFER_STATUS_RECEIVED
        transfer.received_by_user_id = actor.id
        transfer.received_at = utcnow()
        return transfer, record

    transfer, record = run_in_transaction(_op)
    logger.info("Transfer %s received by user %s", transfer.transfer_id, actor.id)
    _publish(events_service.TRANSFER_RECEIVED, transfer)
    events_service.publish_inventory_changes([record], reason="transfer_in")
    return transfer


def cancel_transfer(transfer_pk: int, actor: User, reason: str | None = None) -> StockTransfer:
    """
    Pending or Shipped -> Cancelled.

    Cancelling a shipped transfer books a transfer_out_reversed entry at the
    source so the stock comes back. Allowed for admins, anyone with access
    to either location, and the requester.
    """
    reason = parse_text(reason, "reason")

    def _op():
        transfer = _locked_transfer(transfer_pk)
        _require_status(transfer, "cancel", TRANSFER_STATUS_PENDING, TRANSFER_STATUS_SHIPPED)

        allowed = (
            auth_service.is_admin(actor)
            or auth_service.has_location_access(actor, transfer.from_location_id)
            or auth_service.has_location_access(actor, transfer.to_location_id)
            or transfer.requested_by_user_id == actor.id
        )
        if not allowed:
            raise AccessDeniedError("You do not have permission to cancel this transfer")

        record = None
        if transfer.status == TRANSFER_STATUS_SHIPPED:
            record = inventory_service.upsert_on_introduction(
                transfer.product_id, transfer.from_location_id, actor.id
            )
            record, _ = inventory_service.apply_delta(
                record,
                transfer.quantity,
                ACTION_TRANSFER_OUT_REVERSED,
                note=f"Transfer {transfer.transfer_id} cancelled after shipping",
                related={"transfer_id": transfer.id},
                actor_id=actor.id,
            )

        transfer.status = TRANSFER_STATUS_CANCELLED
        transfer.cancelled_by_user_id = actor.id
        transfer.cancelled_at = utcnow()
        transfer.cancellation_reason = reason
        return transfer, record

    transfer, record = run_in_transaction(_op)
    logger.info("Transfer %s cancelled by user %s", transfer.transfer_id, actor.id)
    _publish(events_service.TRANSFER_CANCELLED, transfer)
    if record is not None:
        events_service.publish_inventory_changes([record], reason="transfer_out_reversed")
    return transfer


def get_transfer(transfer_pk: int, actor: User | None = None) -> StockTransfer:
    transfer = db.session.get(StockTransfer, transfer_pk)
    if transfer is None:
        raise NotFoundError("Stock transfer not found")
    if actor is not None and not (
        auth_service.has_location_access(actor, transfer.from_location_id)
        or auth_service.has_location_access(actor, transfer.to_location_id)
    ):
        raise AccessDeniedError("You do not have access to view this transfer")
    return transfer


def list_transfers(
    *,
    status: str | None = None,
    product_id: int | None = None,
    from_location_id: int | None = None,
    to_location_id: int | None = None,
    location_ids: set[int] | None = None,
    page: int | None = None,
    limit: int | None = None,
) -> dict:
    """Transfers newest first; location_ids keeps those touching the caller's locations."""
    if status is not None and status not in TRANSFER_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(TRANSFER_STATUSES)}")

    query = db.session.query(StockTransfer)
    if location_ids is not None:
        if not location_ids:
            query = query.filter(db.false())
        else:
            query = query.filter(or_(
                StockTransfer.from_location_id.in_(location_ids),
                StockTransfer.to_location_id.in_(location_ids),
            ))
    if status:
        query = query.filter(StockTransfer.status == status)
    if product_id is not None:
        query = query.filter(StockTransfer.product_id == product_id)
    if from_location_id is not None:
        query = query.filter(StockTransfer.from_location_id == from_location_id)
    if to_location_id is not None:
        query = query.filter(StockTransfer.to_location_id == to_location_id)

    query = query.order_by(StockTransfer.requested_at.desc(), StockTransfer.id.desc())
    return paginate(query, page=page, limit=limit)
