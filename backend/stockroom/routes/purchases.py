# Overview: Flask API routes for purchase orders, receiving and supplier payments.

# backend/stockroom/routes/purchases.py
"""
Purchase order routes.

SECURITY:
- Purchasing is a manager/admin function
- Soft delete is admin only
"""
from flask import Blueprint, g, jsonify, request

from ..decorators import require_admin, require_auth, require_manager_or_admin
from ..services import purchase_service
from . import json_body, page_args


purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")


@purchases_bp.get("/stats")
@require_auth
@require_manager_or_admin
def purchase_stats():
    return jsonify(purchase_service.purchase_stats()), 200


@purchases_bp.post("")
@require_auth
@require_manager_or_admin
def create_purchase():
    """
    Create a purchase order.

    Request body:
    {
        "supplier_id": int,
        "warehouse_id": int (optional; required before receiving),
        "items": [{"product_id": int, "quantity": int, "unit_cost": number,
                   "discount": number (optional), "tax_rate": number (optional)}],
        "order_tax", "discount_amount", "shipping_cost", "amount_paid": number (optional),
        "purchase_date", "due_date": ISO-8601 (optional),
        "reference_number", "notes": str (optional),
        "status": "pending" | "ordered" (optional)
    }
    Money may also be sent as integer cents with a _cents suffix.
    """
    purchase = purchase_service.create_purchase(json_body(), g.current_user.id)
    return jsonify(purchase.to_dict()), 201


@purchases_bp.get("")
@require_auth
@require_manager_or_admin
def list_purchases():
    result = purchase_service.list_purchases(
        status=request.args.get("status"),
        payment_status=request.args.get("payment_status"),
        supplier_id=request.args.get("supplier_id", type=int),
        warehouse_id=request.args.get("warehouse_id", type=int),
        start_date=request.args.get("start_date"),
        end_date=request.args.get("end_date"),
        search=request.args.get("search"),
        **page_args(),
    )
    return jsonify(result), 200


@purchases_bp.get("/<int:purchase_id>")
@require_auth
@require_manager_or_admin
def get_purchase(purchase_id: int):
    return jsonify(purchase_service.get_purchase(purchase_id).to_dict()), 200


@purchases_bp.put("/<int:purchase_id>")
@require_auth
@require_manager_or_admin
def update_purchase(purchase_id: int):
    purchase = purchase_service.update_purchase(purchase_id, json_body())
    return jsonify(purchase.to_dict()), 200


@purchases_bp.delete("/<int:purchase_id>")
@require_auth
@require_admin
def delete_purchase(purchase_id: int):
    purchase_service.delete_purchase(purchase_id)
    return jsonify({"ok": True}), 200


@purchases_bp.post("/<int:purchase_id>/receive")
@require_auth
@require_manager_or_admin
def receive_purchase(purchase_id: int):
    """
    Receive every line into the purchase's warehouse.

    Returns:
        200: Received
        400: Already received, cancelled, or not receivable (details.errors)
        404: Purchase not found
    """
    purchase = purchase_service.receive(purchase_id, g.current_user.id)
    return jsonify({
        "message": "Purchase received and inventory updated successfully",
        "purchase": purchase.to_dict(),
    }), 200


@purchases_bp.post("/<int:purchase_id>/payment")
@require_auth
@require_manager_or_admin
def record_payment(purchase_id: int):
    """
    Request body:
    {
        "amount": number (or "amount_cents": int),
        "payment_method": str (optional),
        "payment_date": ISO-8601 (optional),
        "notes": str (optional)
    }
    """
    purchase = purchase_service.record_payment(purchase_id, json_body(), g.current_user.id)
    return jsonify(purchase.to_dict()), 200
