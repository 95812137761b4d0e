# Overview: Flask API routes for catalog operations; parses input and returns JSON responses.

# backend/stockroom/routes/products.py
"""
Catalog routes.

SECURITY:
- Read operations are public
- Write operations require the admin role

Stock cannot be edited here; use POST /transactions. Initial stock may be
set when a product is created.
"""
from flask import Blueprint, request, g
from ..extensions import db
from ..models import Product
from ..services import products_service
from ..services.audit_service import AuditTrail
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    ValidationError,
    ConflictError,
)
from ..errors import ProductNotFound
from ..decorators import require_auth, require_role

PRODUCT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "stock", "price", "category", "description", "image"},
    required_on_create={"name"},
)

PRODUCT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "price", "category", "description", "image"},
)

products_bp = Blueprint("products", __name__, url_prefix="/products")


def _audit(action: str, details: dict) -> None:
    AuditTrail(db.session).append(g.current_user.username, action, details)


@products_bp.get("")
def list_products():
    """List all products ordered by id."""
    return products_service.list_products(), 200


@products_bp.get("/<int:product_id>")
def get_product(product_id: int):
    try:
        return products_service.get_product(product_id).to_dict(), 200
    except ProductNotFound as e:
        return {"error": e.message}, 404


@products_bp.post("")
@require_auth
@require_role("admin")
def create_product_route():
    """
    Create a new product.

    Requires the admin role.
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_CREATE_POLICY, partial=False)
        enforce_rules_product(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    created = products_service.create_product(patch=patch)
    _audit("add_product", {"id": created.id, "name": created.name})

    return created.to_dict(), 201


@products_bp.put("/<int:product_id>")
@require_auth
@require_role("admin")
def update_product_route(product_id: int):
    """
    Update catalog fields of a product.

    Requires the admin role. Sending "stock" is rejected.
    """
    payload = request.get_json(silent=True) or {}

    if "stock" in payload:
        return {"error": "stock can only be changed by recording a stock movement"}, 400

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_UPDATE_POLICY, partial=True)
        enforce_rules_product(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        updated = products_service.update_product(product_id, patch=patch)
    except ProductNotFound as e:
        return {"error": e.message}, 404

    _audit("update_product", {"id": product_id, **patch})
    return updated.to_dict(), 200


@products_bp.delete("/<int:product_id>")
@require_auth
@require_role("admin")
def delete_product_route(product_id: int):
    """
    Delete a product.

    Requires the admin role. Products with recorded movements cannot be deleted.
    """
    try:
        products_service.delete_product(product_id)
    except ProductNotFound as e:
        return {"error": e.message}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409

    _audit("delete_product", {"id": product_id})
    return {"id": product_id}, 200
