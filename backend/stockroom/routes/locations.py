# Overview: Flask API routes for stores and warehouses.

from flask import Blueprint, jsonify

from ..decorators import require_admin, require_auth
from ..services import catalog_service
from . import ensure_location_access, flag_arg, json_body, location_scope


locations_bp = Blueprint("locations", __name__, url_prefix="/api/locations")


@locations_bp.get("")
@require_auth
def list_locations():
    """Locations the caller is linked to (all of them for admins)."""
    locations = catalog_service.list_locations(
        location_ids=location_scope(),
        include_inactive=flag_arg("include_inactive"),
    )
    return jsonify([location.to_dict() for location in locations]), 200


@locations_bp.post("")
@require_auth
@require_admin
def create_location():
    location = catalog_service.create_location(json_body())
    return jsonify(location.to_dict()), 201


@locations_bp.get("/<int:location_id>")
@require_auth
def get_location(location_id: int):
    location = catalog_service.get_location(location_id)
    ensure_location_access(location.id)
    return jsonify(location.to_dict()), 200


@locations_bp.put("/<int:location_id>")
@require_auth
@require_admin
def update_location(location_id: int):
    location = catalog_service.update_location(location_id, json_body())
    return jsonify(location.to_dict()), 200
