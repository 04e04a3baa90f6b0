from __future__ import annotations

from ..extensions import db
from shopkeep.time_utils import to_utc_z

MOVEMENT_REASONS = ("sale", "purchase", "adjust", "damage")


class Product(db.Model):
    """
    Product master data with the live stock snapshot.

    QUANTITY INVARIANT:
    quantity always equals the new_quantity of the product's latest
    StockMovement (and the sum of all movement changes). It is only ever
    written by inventory_service.record_movement, never by a product patch.

    Money is stored in cents (frontend may only format for display).
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_products_sku"),
        db.UniqueConstraint("barcode", name="uq_products_barcode"),
        db.Index("ix_products_name", "name"),
        db.Index("ix_products_category", "category"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(64), nullable=False)
    barcode = db.Column(db.String(64), nullable=True)

    price_cents = db.Column(db.Integer, nullable=False, default=0)
    cost_price_cents = db.Column(db.Integer, nullable=False, default=0)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    min_stock = db.Column(db.Integer, nullable=False, default=5)

    # Optional wholesale tier: applies when a wholesale sale line reaches wholesale_min
    wholesale_price_cents = db.Column(db.Integer, nullable=True)
    wholesale_min = db.Column(db.Integer, nullable=False, default=10)

    category = db.Column(db.String(64), nullable=True)

    # 'pcs', 'btl', 'crt', 'kg', 'L'
    unit = db.Column(db.String(16), nullable=False, default="pcs")
    pieces_per_unit = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    movements = db.relationship(
        "StockMovement",
        backref="product",
        lazy=True,
        cascade="all, delete-orphan",
    )
    price_history = db.relationship(
        "PriceHistory",
        backref="product",
        lazy=True,
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r}>"

    @property
    def is_low_stock(self) -> bool:
        return self.quantity <= self.min_stock

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "sku": self.sku,
            "barcode": self.barcode,
            "price_cents": self.price_cents,
            "cost_price_cents": self.cost_price_cents,
            "quantity": self.quantity,
            "min_stock": self.min_stock,
            "wholesale_price_cents": self.wholesale_price_cents,
            "wholesale_min": self.wholesale_min,
            "category": self.category,
            "unit": self.unit,
            "pieces_per_unit": self.pieces_per_unit,
            "is_low_stock": self.is_low_stock,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """Append-only stock ledger entry. Rows are never updated or deleted on their own."""
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.CheckConstraint("change != 0", name="ck_stock_movements_change_nonzero"),
        db.Index("ix_stock_movements_product_created", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(
        db.Integer,
        db.ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
    )

    # + for add, - for remove
    change = db.Column(db.Integer, nullable=False)
    # Stock after change
    new_quantity = db.Column(db.Integer, nullable=False)

    reason = db.Column(db.String(16), nullable=False)
    # Receipt number or purchase ref
    reference = db.Column(db.String(255), nullable=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "change": self.change,
            "new_quantity": self.new_quantity,
            "reason": self.reason,
            "reference": self.reference,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
        }


class PriceHistory(db.Model):
    """Append-only record of selling-price changes."""
    __tablename__ = "price_history"
    __table_args__ = (
        db.Index("ix_price_history_product_created", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(
        db.Integer,
        db.ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
    )

    old_price_cents = db.Column(db.Integer, nullable=True)
    new_price_cents = db.Column(db.Integer, nullable=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "old_price_cents": self.old_price_cents,
            "new_price_cents": self.new_price_cents,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
        }
