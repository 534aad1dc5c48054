# Overview: Flask API routes for the category and brand lookups.

from flask import Blueprint, jsonify

from ..decorators import require_auth, require_manager_or_admin
from ..models import Brand, Category
from ..services import catalog_service
from . import json_body


categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")
brands_bp = Blueprint("brands", __name__, url_prefix="/api/brands")


@categories_bp.get("")
@require_auth
def list_categories():
    return jsonify([c.to_dict() for c in catalog_service.list_lookup(Category)]), 200


@categories_bp.post("")
@require_auth
@require_manager_or_admin
def create_category():
    category = catalog_service.create_lookup(Category, json_body())
    return jsonify(category.to_dict()), 201


@brands_bp.get("")
@require_auth
def list_brands():
    return jsonify([b.to_dict() for b in catalog_service.list_lookup(Brand)]), 200


@brands_bp.post("")
@require_auth
@require_manager_or_admin
def create_brand():
    brand = catalog_service.create_lookup(Brand, json_body())
    return jsonify(brand.to_dict()), 201
