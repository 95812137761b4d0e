from __future__ import annotations

from ..extensions import db
from stockroom.time_utils import to_utc_z, utcnow

MOVEMENT_KINDS = ("in", "out")


class Product(db.Model):
    """
    Catalog entry with its current stock count.

    WHY stock is a stored column: the stock ledger adjusts it in the same
    transaction that inserts the movement row, so the two never disagree.
    Catalog edits never write stock; only the stock ledger does.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        db.Index("ix_products_category", "category"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    stock = db.Column(db.Integer, nullable=False, default=0)
    price = db.Column(db.Numeric(12, 2, asdecimal=False), nullable=False, default=0)
    category = db.Column(db.String(120), nullable=True)
    description = db.Column(db.Text, nullable=True)

    # Reference only (URL or storage key); files are stored elsewhere
    image = db.Column(db.String(1024), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} stock={self.stock}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "stock": self.stock,
            "price": self.price,
            "category": self.category,
            "description": self.description,
            "image": self.image,
            "created_at": to_utc_z(self.created_at),
        }


class StockMovement(db.Model):
    """
    One inbound or outbound adjustment of a product's stock.

    IMMUTABLE: Created only by the stock ledger, never updated or deleted.
    Every row corresponds to exactly one stock delta on its product.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.CheckConstraint("type IN ('in', 'out')", name="ck_transactions_type"),
        db.CheckConstraint("quantity > 0", name="ck_transactions_quantity_positive"),
        db.Index("ix_transactions_product_timestamp", "product_id", "timestamp"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(
        db.Integer,
        db.ForeignKey("products.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    type = db.Column(db.String(8), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    note = db.Column(db.Text, nullable=True)
    operator = db.Column(db.String(64), nullable=True)

    product = db.relationship("Product", backref=db.backref("movements", lazy=True))

    @property
    def delta(self) -> int:
        return self.quantity if self.type == "in" else -self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "type": self.type,
            "quantity": self.quantity,
            "timestamp": to_utc_z(self.timestamp),
            "note": self.note,
            "operator": self.operator,
        }
