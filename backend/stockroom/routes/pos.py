# Overview: Flask API routes for POS sales; validates access and delegates to sales_service.

# backend/stockroom/routes/pos.py
"""
POS sale routes.

SECURITY: Every route requires authentication; sales are recorded, read and
moved through their statuses only at locations the caller can access.
"""
from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_manager_or_admin
from ..services import sales_service
from ..validation import parse_int
from . import ensure_location_access, json_body, location_scope, page_args


pos_bp = Blueprint("pos", __name__, url_prefix="/api/pos")


@pos_bp.get("/stats")
@require_auth
def sale_stats():
    """totalSales / totalTransactions / averageSale over completed sales."""
    location_id = request.args.get("location_id", type=int)
    if location_id is not None:
        ensure_location_access(location_id)

    stats = sales_service.sale_stats(
        location_id=location_id,
        start_date=request.args.get("start_date"),
        end_date=request.args.get("end_date"),
        location_ids=location_scope(),
    )
    return jsonify(stats), 200


@pos_bp.post("")
@require_auth
def create_sale():
    """
    Record a sale.

    Request body:
    {
        "location_id": int,
        "items": [{"product_id": int, "quantity": int, "price": number,
                   "discount": number (optional, percent)}],
        "tax": number (percent, optional),
        "discount": number (percent, optional),
        "payment_method": str (optional, default cash),
        "customer": {"name", "contact", "email"} (optional),
        "notes": str (optional),
        "status": "pending" | "completed" (optional, default pending)
    }

    Returns:
        201: Sale recorded
        400: Validation failed (details.errors lists every failing line)
        403: No access to the location
    """
    payload = json_body()
    location_id = parse_int(payload.get("location_id"), "location_id")
    ensure_location_access(location_id, "You do not have access to sell at this location")

    sale = sales_service.create_sale(payload, g.current_user.id)
    return jsonify(sale.to_dict()), 201


@pos_bp.get("")
@require_auth
def list_sales():
    location_id = request.args.get("location_id", type=int)
    if location_id is not None:
        ensure_location_access(location_id)

    result = sales_service.list_sales(
        location_id=location_id,
        status=request.args.get("status"),
        start_date=request.args.get("start_date"),
        end_date=request.args.get("end_date"),
        location_ids=location_scope(),
        **page_args(),
    )
    return jsonify(result), 200


@pos_bp.get("/<int:sale_id>")
@require_auth
def get_sale(sale_id: int):
    sale = sales_service.get_sale(sale_id)
    ensure_location_access(sale.location_id)
    return jsonify(sale.to_dict()), 200


@pos_bp.patch("/<int:sale_id>/status")
@require_auth
@require_manager_or_admin
def update_sale_status(sale_id: int):
    """
    Request body: {"status": "completed" | "cancelled"}
    """
    sale = sales_service.get_sale(sale_id)
    ensure_location_access(sale.location_id)

    payload = json_body()
    sale = sales_service.update_status(sale_id, payload.get("status"), g.current_user.id)
    return jsonify(sale.to_dict()), 200
