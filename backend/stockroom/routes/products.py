# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/stockroom/routes/products.py
"""
Product management routes.

SECURITY: All routes require authentication.
- Read operations are open to every role
- Write operations require manager or admin
"""
from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_manager_or_admin
from ..services import catalog_service
from . import flag_arg, json_body, page_args


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
def list_products():
    """
    List products with optional filters.

    Query params:
    - search: name, SKU or barcode contains
    - category_id, brand_id: int (optional)
    - include_inactive: bool
    - page, limit: pagination (default limit 10, max 100)
    """
    result = catalog_service.list_products(
        search=request.args.get("search"),
        category_id=request.args.get("category_id", type=int),
        brand_id=request.args.get("brand_id", type=int),
        include_inactive=flag_arg("include_inactive"),
        **page_args(),
    )
    return jsonify(result), 200


@products_bp.post("")
@require_auth
@require_manager_or_admin
def create_product():
    product = catalog_service.create_product(json_body(), g.current_user.id)
    return jsonify(product.to_dict()), 201


@products_bp.get("/<int:product_id>")
@require_auth
def get_product(product_id: int):
    product = catalog_service.get_product(product_id)
    return jsonify(product.to_dict(include_audit=flag_arg("include_audit"))), 200


@products_bp.put("/<int:product_id>")
@require_auth
@require_manager_or_admin
def update_product(product_id: int):
    product = catalog_service.update_product(product_id, json_body(), g.current_user.id)
    return jsonify(product.to_dict()), 200


@products_bp.delete("/<int:product_id>")
@require_auth
@require_manager_or_admin
def deactivate_product(product_id: int):
    """Products are deactivated; inventory history keeps referencing them."""
    product = catalog_service.deactivate_product(product_id, g.current_user.id)
    return jsonify(product.to_dict()), 200
