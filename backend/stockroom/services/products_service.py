# backend/stockroom/services/products_service.py
"""
Catalog Service

Catalog CRUD for everything except stock levels. Stock is written only by
the stock ledger; create may set an initial count, update never touches it.
"""
from __future__ import annotations
from sqlalchemy.exc import IntegrityError
from ..extensions import db
from ..errors import ConflictError, ProductNotFound
from ..models import Product, StockMovement

PRODUCT_MUTABLE_FIELDS = {"name", "price", "category", "description", "image"}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def list_products() -> list[dict]:
    products = db.session.query(Product).order_by(Product.id.asc()).all()
    return [p.to_dict() for p in products]


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise ProductNotFound()
    return product


def create_product(*, patch: dict) -> Product:
    """Create product using a validated patch dict."""
    product = Product(stock=patch.get("stock") or 0)
    apply_product_patch(product, patch)
    if product.price is None:
        product.price = 0

    db.session.add(product)
    db.session.commit()
    return product


def update_product(product_id: int, *, patch: dict) -> Product:
    product = get_product(product_id)
    apply_product_patch(product, patch)
    db.session.commit()
    return product


def delete_product(product_id: int) -> int:
    """
    Delete a product that has no recorded movements.

    WHY: movements are immutable history; deleting their product would
    orphan or cascade them.
    """
    product = get_product(product_id)

    has_movements = db.session.query(StockMovement.id).filter_by(product_id=product.id).first()
    if has_movements:
        raise ConflictError("Product has recorded stock movements and cannot be deleted")

    db.session.delete(product)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Product has recorded stock movements and cannot be deleted")
    return product_id
