from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z


PRICE_TIERS = ("original_price", "wholesale_price", "retail_price", "website_price")


class Product(db.Model):
    """
    Product master data.

    STOCK DESIGN DECISION:
    Product.stock is the CANONICAL count of sellable units. Customers, bills and
    parcels never write it directly; they hand signed deltas to the stock ledger
    (services/stock_service.py), which applies them with a guarded UPDATE so the
    value can never drop below zero.

    Every change is mirrored by a StockMovement row for history.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("model", name="uq_products_model"),
        db.CheckConstraint("stock >= 0", name="ck_products_stock_nonnegative"),
        db.Index("ix_products_category_name", "category", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    model = db.Column(db.String(128), nullable=False)
    category = db.Column(db.String(128), nullable=False)

    # Price tiers in cents; bills pick one per line
    original_price_cents = db.Column(db.Integer, nullable=False, default=0)
    wholesale_price_cents = db.Column(db.Integer, nullable=True)
    retail_price_cents = db.Column(db.Integer, nullable=True)
    website_price_cents = db.Column(db.Integer, nullable=True)

    stock = db.Column(db.Integer, nullable=False, default=0)
    low_stock_alert = db.Column(db.Integer, nullable=False, default=10)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} model={self.model!r} name={self.name!r} stock={self.stock}>"

    def price_for_tier(self, tier: str) -> int | None:
        """Price in cents for a tier name; missing tiers fall back to the original price."""
        if tier not in PRICE_TIERS:
            return None
        value = getattr(self, f"{tier}_cents")
        if value is None:
            return self.original_price_cents
        return value

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "model": self.model,
            "category": self.category,
            "original_price_cents": self.original_price_cents,
            "wholesale_price_cents": self.wholesale_price_cents,
            "retail_price_cents": self.retail_price_cents,
            "website_price_cents": self.website_price_cents,
            "stock": self.stock,
            "low_stock_alert": self.low_stock_alert,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Append-only history of stock changes.

    One row per applied delta, written in the same transaction as the guarded
    UPDATE on products.stock. Compensating deltas are recorded too
    (reason='compensation') so a rolled-back plan stays visible when the
    caller commits anyway.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_product_created", "product_id", "created_at"),
        db.Index("ix_stock_movements_source", "source_type", "source_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)

    quantity_delta = db.Column(db.Integer, nullable=False)
    stock_after = db.Column(db.Integer, nullable=False)

    reason = db.Column(db.String(32), nullable=False)
    source_type = db.Column(db.String(32), nullable=True)
    source_id = db.Column(db.Integer, nullable=True)
    note = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("stock_movements", lazy=True, cascade="all, delete-orphan"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity_delta": self.quantity_delta,
            "stock_after": self.stock_after,
            "type": "stock_in" if self.quantity_delta > 0 else "stock_out",
            "reason": self.reason,
            "source_type": self.source_type,
            "source_id": self.source_id,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
        }
