# Overview: Flask API routes for suppliers.

from flask import Blueprint, jsonify, request

from ..decorators import require_auth, require_manager_or_admin
from ..services import catalog_service
from . import flag_arg, json_body


suppliers_bp = Blueprint("suppliers", __name__, url_prefix="/api/suppliers")


@suppliers_bp.get("")
@require_auth
def list_suppliers():
    suppliers = catalog_service.list_suppliers(
        search=request.args.get("search"),
        include_inactive=flag_arg("include_inactive"),
    )
    return jsonify([supplier.to_dict() for supplier in suppliers]), 200


@suppliers_bp.post("")
@require_auth
@require_manager_or_admin
def create_supplier():
    supplier = catalog_service.create_supplier(json_body())
    return jsonify(supplier.to_dict()), 201


@suppliers_bp.get("/<int:supplier_id>")
@require_auth
def get_supplier(supplier_id: int):
    return jsonify(catalog_service.get_supplier(supplier_id).to_dict()), 200


@suppliers_bp.put("/<int:supplier_id>")
@require_auth
@require_manager_or_admin
def update_supplier(supplier_id: int):
    supplier = catalog_service.update_supplier(supplier_id, json_body())
    return jsonify(supplier.to_dict()), 200
