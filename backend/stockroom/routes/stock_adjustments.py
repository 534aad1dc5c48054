# Overview: Flask API routes for batched stock adjustments and their history.

# backend/stockroom/routes/stock_adjustments.py
"""
Stock adjustment routes.

Adjustments are append-only. PUT only edits reason/reference_number and
DELETE is always refused; mistakes are fixed with a correcting adjustment.
"""
from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth
from ..services import adjustment_service
from ..validation import parse_int
from . import ensure_location_access, json_body, location_scope, page_args


stock_adjustments_bp = Blueprint("stock_adjustments", __name__, url_prefix="/api/stock-adjustments")


@stock_adjustments_bp.post("")
@require_auth
def create_adjustments():
    """
    Book a batch of adjustments at one location.

    Request body:
    {
        "location_id": int,
        "adjustments": [
            {"product_id": int, "adjustment_type": str, "quantity": int,
             "reason": str (optional), "reference_number": str (optional)}
        ],
        "note": str (optional),
        "reference_number": str (optional),
        "adjustment_date": ISO-8601 (optional)
    }

    Returns:
        201: Adjustments created
        400: Validation or negative stock
        403: No access to the location
        404: Product, location or inventory record missing
    """
    payload = json_body()
    location_id = parse_int(payload.get("location_id"), "location_id")
    ensure_location_access(location_id, "You do not have access to adjust stock at this location")

    created = adjustment_service.create_batch(
        location_id=location_id,
        adjustments=payload.get("adjustments"),
        actor_id=g.current_user.id,
        metadata={
            "note": payload.get("note"),
            "reference_number": payload.get("reference_number"),
            "adjustment_date": payload.get("adjustment_date"),
        },
    )
    return jsonify({
        "message": f"{len(created)} stock adjustment(s) created",
        "data": [adj.to_dict() for adj in created],
    }), 201


@stock_adjustments_bp.get("")
@require_auth
def list_adjustments():
    """
    Query params: product_id, location_id, user_id, start_date, end_date,
    reference_number, search, page, limit.
    """
    location_id = request.args.get("location_id", type=int)
    if location_id is not None:
        ensure_location_access(location_id)

    result = adjustment_service.list_adjustments(
        product_id=request.args.get("product_id", type=int),
        location_id=location_id,
        user_id=request.args.get("user_id", type=int),
        start_date=request.args.get("start_date"),
        end_date=request.args.get("end_date"),
        reference_number=request.args.get("reference_number"),
        search=request.args.get("search"),
        location_ids=location_scope(),
        **page_args(),
    )
    return jsonify(result), 200


@stock_adjustments_bp.get("/<int:adjustment_id>")
@require_auth
def get_adjustment(adjustment_id: int):
    adjustment = adjustment_service.get_adjustment(adjustment_id)
    ensure_location_access(adjustment.location_id)
    return jsonify(adjustment.to_dict()), 200


@stock_adjustments_bp.put("/<int:adjustment_id>")
@require_auth
def update_adjustment(adjustment_id: int):
    """Only reason and reference_number may change."""
    adjustment = adjustment_service.get_adjustment(adjustment_id)
    ensure_location_access(adjustment.location_id)
    adjustment = adjustment_service.update_adjustment(adjustment_id, json_body())
    return jsonify(adjustment.to_dict()), 200


@stock_adjustments_bp.delete("/<int:adjustment_id>")
@require_auth
def delete_adjustment(adjustment_id: int):
    return jsonify({"error": adjustment_service.DELETE_REFUSED_MESSAGE}), 403
