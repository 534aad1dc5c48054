# Overview: Flask API routes for inter-location stock transfers.

# backend/stockroom/routes/transfers.py
"""
Stock transfer routes.

Pending -> Shipped -> Received, or Cancelled from Pending/Shipped. Writes
require manager or admin; location access for each transition is enforced
by transfer_service.
"""
from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_manager_or_admin
from ..services import transfer_service
from ..validation import parse_int
from . import json_body, location_scope, page_args


transfers_bp = Blueprint("transfers", __name__, url_prefix="/api/transfers")


@transfers_bp.post("")
@require_auth
@require_manager_or_admin
def create_transfer():
    """
    Create a transfer.

    Request body:
    {
        "product_id": int,
        "quantity": int,
        "from_location_id": int,
        "to_location_id": int,
        "notes": str (optional)
    }

    Returns:
        201: Transfer created (Pending)
        400: Invalid request
        403: No access to the source location
        404: Product or location missing
    """
    payload = json_body()
    transfer = transfer_service.create_transfer(
        product_id=parse_int(payload.get("product_id"), "product_id"),
        quantity=parse_int(payload.get("quantity"), "quantity"),
        from_location_id=parse_int(payload.get("from_location_id"), "from_location_id"),
        to_location_id=parse_int(payload.get("to_location_id"), "to_location_id"),
        actor=g.current_user,
        notes=payload.get("notes"),
    )
    return jsonify(transfer.to_dict()), 201


@transfers_bp.get("")
@require_auth
def list_transfers():
    result = transfer_service.list_transfers(
        status=request.args.get("status"),
        product_id=request.args.get("product_id", type=int),
        from_location_id=request.args.get("from_location_id", type=int),
        to_location_id=request.args.get("to_location_id", type=int),
        location_ids=location_scope(),
        **page_args(),
    )
    return jsonify(result), 200


@transfers_bp.get("/<int:transfer_id>")
@require_auth
def get_transfer(transfer_id: int):
    transfer = transfer_service.get_transfer(transfer_id, g.current_user)
    return jsonify(transfer.to_dict()), 200


@transfers_bp.patch("/<int:transfer_id>/ship")
@require_auth
@require_manager_or_admin
def ship_transfer(transfer_id: int):
    """Pending -> Shipped. Removes the quantity from the source location."""
    transfer = transfer_service.ship_transfer(transfer_id, g.current_user)
    return jsonify(transfer.to_dict()), 200


@transfers_bp.patch("/<int:transfer_id>/receive")
@require_auth
@require_manager_or_admin
def receive_transfer(transfer_id: int):
    """Shipped -> Received. Credits the destination location."""
    transfer = transfer_service.receive_transfer(transfer_id, g.current_user)
    return jsonify(transfer.to_dict()), 200


@transfers_bp.patch("/<int:transfer_id>/cancel")
@require_auth
@require_manager_or_admin
def cancel_transfer(transfer_id: int):
    """Pending/Shipped -> Cancelled. A shipped quantity goes back to the source."""
    payload = json_body()
    transfer = transfer_service.cancel_transfer(
        transfer_id,
        g.current_user,
        reason=payload.get("reason"),
    )
    return jsonify(transfer.to_dict()), 200
