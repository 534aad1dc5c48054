# backend/stockroom/services/catalog_service.py
"""
Catalogue master data: products, locations, suppliers, categories, brands.

Payloads go through validate_payload (column metadata plus a writable-field
allowlist) before they reach these functions. Unique keys (product SKU and
barcode, supplier code, location/category/brand names) are checked up front
so callers get a ConflictError instead of a database error.

Products and locations are deactivated, never deleted; inventory history
keeps pointing at them.
"""
from __future__ import annotations

import json
import logging

from sqlalchemy import or_

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Brand, Category, Location, Product, ProductAuditEntry, Supplier
from ..models.catalog import LOCATION_TYPES
from ..pagination import paginate
from ..validation import ModelValidationPolicy, enforce_rules_product, validate_payload
from .concurrency import run_in_transaction


logger = logging.getLogger(__name__)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "sku", "barcode", "description", "category_id", "brand_id", "price_cents", "is_active"},
    required_on_create={"name"},
)
LOCATION_POLICY = ModelValidationPolicy(
    writable_fields={"name", "type", "address", "is_active"},
    required_on_create={"name", "type"},
)
SUPPLIER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "code", "contact_name", "email", "phone", "address", "is_active"},
    required_on_create={"name"},
)
LOOKUP_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "is_active"},
    required_on_create={"name"},
)


def _ensure_unique(model, field: str, value, *, exclude_id: int | None = None, label: str | None = None) -> None:
    if value is None:
        return
    query = db.session.query(model.id).filter(getattr(model, field) == value)
    if exclude_id is not None:
        query = query.filter(model.id != exclude_id)
    if query.first() is not None:
        raise ConflictError(f"{label or field} already exists: {value}", {"field": field})


def _get_or_404(model, pk: int, label: str):
    obj = db.session.get(model, pk)
    if obj is None:
        raise NotFoundError(f"{label} not found")
    return obj


# ---------------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------------

def _check_product_refs(patch: dict) -> None:
    if patch.get("category_id") is not None:
        _get_or_404(Category, patch["category_id"], "Category")
    if patch.get("brand_id") is not None:
        _get_or_404(Brand, patch["brand_id"], "Brand")


def _audit_product(product: Product, action: str, actor_id: int | None, changes: dict | None = None) -> None:
    db.session.add(ProductAuditEntry(
        product_id=product.id,
        user_id=actor_id,
        action=action,
        changes=json.dumps(changes, default=str) if changes else None,
    ))


def list_products(
    *,
    search: str | None = None,
    category_id: int | None = None,
    brand_id: int | None = None,
    include_inactive: bool = False,
    page: int | None = None,
    limit: int | None = None,
) -> dict:
    query = db.session.query(Product)
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(
            Product.name.ilike(pattern),
            Product.sku.ilike(pattern),
            Product.barcode.ilike(pattern),
        ))
    if category_id is not None:
        query = query.filter(Product.category_id == category_id)
    if brand_id is not None:
        query = query.filter(Product.brand_id == brand_id)
    query = query.order_by(Product.name.asc(), Product.id.asc())
    return paginate(query, page=page, limit=limit)


def get_product(product_id: int) -> Product:
    return _get_or_404(Product, product_id, "Product")


def create_product(payload: dict, actor_id: int | None) -> Product:
    """
    Create a product definition.

    Raises:
        ValidationError: Bad payload or price out of range
        ConflictError: SKU or barcode already used
        NotFoundError: Unknown category or brand
    """
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    enforce_rules_product(patch)

    def _op():
        _ensure_unique(Product, "sku", patch.get("sku"), label="SKU")
        _ensure_unique(Product, "barcode", patch.get("barcode"), label="Barcode")
        _check_product_refs(patch)

        product = Product(created_by_user_id=actor_id, **patch)
        db.session.add(product)
        db.session.flush()
        _audit_product(product, "created", actor_id)
        return product

    product = run_in_transaction(_op)
    logger.info("Product %s created (sku=%s)", product.id, product.sku)
    return product


def update_product(product_id: int, payload: dict, actor_id: int | None) -> Product:
    """Apply a partial update; records changed fields as [old, new] pairs."""
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
    enforce_rules_product(patch)

    def _op():
        product = get_product(product_id)
        if "sku" in patch:
            _ensure_unique(Product, "sku", patch["sku"], exclude_id=product.id, label="SKU")
        if "barcode" in patch:
            _ensure_unique(Product, "barcode", patch["barcode"], exclude_id=product.id, label="Barcode")
        _check_product_refs(patch)

        changes = {}
        for key, value in patch.items():
            old = getattr(product, key)
            if old != value:
                changes[key] = [old, value]
                setattr(product, key, value)
        if changes:
            _audit_product(product, "updated", actor_id, changes)
        return product

    return run_in_transaction(_op)


def deactivate_product(product_id: int, actor_id: int | None) -> Product:
    def _op():
        product = get_product(product_id)
        if product.is_active:
            product.is_active = False
            _audit_product(product, "deactivated", actor_id)
        return product

    product = run_in_transaction(_op)
    logger.info("Product %s deactivated", product.id)
    return product


# ---------------------------------------------------------------------------
# Locations
# ---------------------------------------------------------------------------

def _check_location_type(patch: dict) -> None:
    if "type" in patch and patch["type"] not in LOCATION_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(LOCATION_TYPES)}")


def list_locations(*, location_ids: set[int] | None = None, include_inactive: bool = False) -> list[Location]:
    query = db.session.query(Location)
    if location_ids is not None:
        if not location_ids:
            return []
        query = query.filter(Location.id.in_(location_ids))
    if not include_inactive:
        query = query.filter(Location.is_active.is_(True))
    return query.order_by(Location.name.asc()).all()


def get_location(location_id: int) -> Location:
    return _get_or_404(Location, location_id, "Location")


def create_location(payload: dict) -> Location:
    patch = validate_payload(model=Location, payload=payload, policy=LOCATION_POLICY, partial=False)
    _check_location_type(patch)

    def _op():
        _ensure_unique(Location, "name", patch["name"], label="Location name")
        location = Location(**patch)
        db.session.add(location)
        db.session.flush()
        return location

    return run_in_transaction(_op)


def update_location(location_id: int, payload: dict) -> Location:
    patch = validate_payload(model=Location, payload=payload, policy=LOCATION_POLICY, partial=True)
    _check_location_type(patch)

    def _op():
        location = get_location(location_id)
        if "name" in patch:
            _ensure_unique(Location, "name", patch["name"], exclude_id=location.id, label="Location name")
        for key, value in patch.items():
            setattr(location, key, value)
        return location

    return run_in_transaction(_op)


# ---------------------------------------------------------------------------
# Suppliers
# ---------------------------------------------------------------------------

def list_suppliers(*, search: str | None = None, include_inactive: bool = False) -> list[Supplier]:
    query = db.session.query(Supplier)
    if not include_inactive:
        query = query.filter(Supplier.is_active.is_(True))
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(Supplier.name.ilike(pattern), Supplier.code.ilike(pattern)))
    return query.order_by(Supplier.name.asc()).all()


def get_supplier(supplier_id: int) -> Supplier:
    return _get_or_404(Supplier, supplier_id, "Supplier")


def create_supplier(payload: dict) -> Supplier:
    patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=False)
    if patch.get("code") == "":
        patch["code"] = None

    def _op():
        _ensure_unique(Supplier, "code", patch.get("code"), label="Supplier code")
        supplier = Supplier(**patch)
        db.session.add(supplier)
        db.session.flush()
        return supplier

    return run_in_transaction(_op)


def update_supplier(supplier_id: int, payload: dict) -> Supplier:
    patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=True)
    if patch.get("code") == "":
        patch["code"] = None

    def _op():
        supplier = get_supplier(supplier_id)
        if "code" in patch:
            _ensure_unique(Supplier, "code", patch["code"], exclude_id=supplier.id, label="Supplier code")
        for key, value in patch.items():
            setattr(supplier, key, value)
        return supplier

    return run_in_transaction(_op)


# ---------------------------------------------------------------------------
# Categories and brands
# ---------------------------------------------------------------------------

def list_lookup(model) -> list:
    return (
        db.session.query(model)
        .filter(model.is_active.is_(True))
        .order_by(model.name.asc())
        .all()
    )


def create_lookup(model, payload: dict):
    """Create a Category or Brand; names are unique."""
    patch = validate_payload(model=model, payload=payload, policy=LOOKUP_POLICY, partial=False)

    def _op():
        _ensure_unique(model, "name", patch["name"], label=f"{model.__name__} name")
        obj = model(**patch)
        db.session.add(obj)
        db.session.flush()
        return obj

    return run_in_transaction(_op)
