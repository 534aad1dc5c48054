# Overview: Flask API routes for per-location inventory records and their audit logs.

# backend/stockroom/routes/inventory.py
"""
Inventory record routes.

SECURITY:
- Every route requires authentication
- Non-admins only see and touch records at their linked locations
- Creating records requires manager or admin
"""
from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_manager_or_admin
from ..services import adjustment_service, inventory_service
from ..validation import parse_int
from . import ensure_location_access, flag_arg, json_body, location_scope, page_args


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.post("")
@require_auth
@require_manager_or_admin
def create_inventory_record():
    """
    Add a product to a location.

    Request body:
    {
        "product_id": int,
        "location_id": int,
        "quantity": int (optional, default 0),
        "min_stock": int (optional),
        "notify_at": int (optional)
    }
    """
    payload = json_body()
    location_id = parse_int(payload.get("location_id"), "location_id")
    ensure_location_access(location_id, "You do not have access to add inventory at this location")

    record = inventory_service.create_record(
        product_id=parse_int(payload.get("product_id"), "product_id"),
        location_id=location_id,
        actor_id=g.current_user.id,
        quantity=parse_int(payload.get("quantity", 0), "quantity", minimum=0),
        min_stock=parse_int(payload.get("min_stock"), "min_stock", minimum=0, required=False),
        notify_at=parse_int(payload.get("notify_at"), "notify_at", minimum=0, required=False),
    )
    return jsonify(record.to_dict()), 201


@inventory_bp.get("")
@require_auth
def list_inventory():
    """
    Query params:
    - location_id, product_id: int (optional)
    - search: product name or SKU contains
    - low_stock: only records at or below their alert threshold
    - page, limit
    """
    location_id = request.args.get("location_id", type=int)
    if location_id is not None:
        ensure_location_access(location_id)

    result = inventory_service.list_records(
        location_id=location_id,
        product_id=request.args.get("product_id", type=int),
        search=request.args.get("search"),
        low_stock=flag_arg("low_stock"),
        location_ids=location_scope(),
        **page_args(),
    )
    return jsonify(result), 200


@inventory_bp.get("/<int:record_id>")
@require_auth
def get_inventory_record(record_id: int):
    record = inventory_service.get_record(record_id)
    ensure_location_access(record.location_id)
    return jsonify(record.to_dict(include_audit=flag_arg("include_audit"))), 200


@inventory_bp.get("/<int:record_id>/audit")
@require_auth
def get_inventory_audit(record_id: int):
    record = inventory_service.get_record(record_id)
    ensure_location_access(record.location_id)
    entries = inventory_service.list_audit_entries(record_id)
    return jsonify({
        "inventory": record.to_dict(),
        "audit_log": [entry.to_dict() for entry in entries],
    }), 200


@inventory_bp.patch("/<int:record_id>/adjust")
@require_auth
@require_manager_or_admin
def adjust_inventory_record(record_id: int):
    """
    Legacy single-record adjustment.

    Request body:
    {
        "adjustment": int (non-zero; positive adds, negative removes),
        "note": str (optional)
    }
    """
    payload = json_body()
    record = inventory_service.get_record(record_id)
    ensure_location_access(record.location_id)

    adjustment = adjustment_service.adjust_record(
        record_id,
        payload.get("adjustment"),
        payload.get("note"),
        g.current_user.id,
    )
    record = inventory_service.get_record(record_id)
    return jsonify({
        "inventory": record.to_dict(),
        "adjustment": adjustment.to_dict(),
    }), 200
