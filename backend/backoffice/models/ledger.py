from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z


SALE_SOURCES = ("customer", "bill", "manual")


class Sale(db.Model):
    """
    Commissionable transaction record (audit trail).

    SOURCES:
    - source_type='bill': one row per bill line, source_id = bill id
    - source_type='customer': commission accrued for a customer's products,
      source_id = customer id, is_customer_commission_sale = True
    - source_type='manual': entered directly through the sales API

    Rows are never edited. When the commissionable attributes of their source
    change, the source's rows are deleted and recreated.

    LEGACY ROWS:
    Rows written before correlation existed have source_type/source_id NULL and
    may have is_customer_commission_sale NULL. Customer reversal matches them
    on (seller, customer, product, unit price) instead.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_source", "source_type", "source_id"),
        db.Index("ix_sales_seller_customer", "seller_id", "customer_id"),
        db.Index("ix_sales_customer_product_created", "customer_id", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("sellers.id"), nullable=False, index=True)
    # Not a foreign key: bill snapshots may name customers that were never stored
    customer_id = db.Column(db.Integer, nullable=True, index=True)

    product_name = db.Column(db.String(255), nullable=True)
    seller_name = db.Column(db.String(255), nullable=True)
    customer_name = db.Column(db.String(255), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    commission_cents = db.Column(db.Integer, nullable=False, default=0)

    is_customer_commission_sale = db.Column(db.Boolean, nullable=True)
    source_type = db.Column(db.String(16), nullable=True)
    source_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    product = db.relationship("Product")
    seller = db.relationship("Seller")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "seller_id": self.seller_id,
            "customer_id": self.customer_id,
            "product_name": self.product_name,
            "seller_name": self.seller_name,
            "customer_name": self.customer_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_cents": self.total_cents,
            "commission_cents": self.commission_cents,
            "is_customer_commission_sale": self.is_customer_commission_sale,
            "source_type": self.source_type,
            "source_id": self.source_id,
            "created_at": to_utc_z(self.created_at),
        }


class Return(db.Model):
    """
    Returned goods. Append-only: creating one puts the units back in stock,
    and there is no reversal path.
    """
    __tablename__ = "returns"
    __table_args__ = (
        db.Index("ix_returns_tracking_id", "tracking_id"),
        db.CheckConstraint("quantity >= 1", name="ck_returns_quantity"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False, default=0)
    customer_name = db.Column(db.String(255), nullable=True)
    tracking_id = db.Column(db.String(64), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product": {
                "name": self.product.name,
                "model": self.product.model,
                "category": self.product.category,
            } if self.product else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "customer_name": self.customer_name,
            "tracking_id": self.tracking_id,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
