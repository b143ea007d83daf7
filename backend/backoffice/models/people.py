from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from backoffice.time_utils import to_utc_z


CUSTOMER_TYPES = ("online", "offline")


class Seller(db.Model):
    """
    Sales staff earning a flat commission per unit sold.

    COMMISSION FIELDS:
    - commission_rate_cents: currency earned per unit
    - commission_cents: running balance (reset by payroll, never below zero)
    - total_commission_cents: lifetime earnings
    - total_cents: basic salary + running commission, recomputed on every flush

    Only services/commission_service.py moves the two commission balances.
    """
    __tablename__ = "sellers"
    __table_args__ = (
        db.Index("ix_sellers_total_commission", "total_commission_cents"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=True)

    basic_salary_cents = db.Column(db.Integer, nullable=False, default=0)
    commission_rate_cents = db.Column(db.Integer, nullable=False, default=0)
    commission_cents = db.Column(db.Integer, nullable=False, default=0)
    total_commission_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    password_hash = db.Column(db.String(255), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def recompute_total(self) -> None:
        self.total_cents = int(self.basic_salary_cents or 0) + int(self.commission_cents or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "basic_salary_cents": self.basic_salary_cents,
            "commission_rate_cents": self.commission_rate_cents,
            "commission_cents": self.commission_cents,
            "total_commission_cents": self.total_commission_cents,
            "total_cents": self.total_cents,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


@event.listens_for(Seller, "before_insert")
@event.listens_for(Seller, "before_update")
def _seller_recompute_total(mapper, connection, target: Seller) -> None:
    target.recompute_total()


class Customer(db.Model):
    """
    Customer record with the products they took.

    PRODUCT LINES:
    New writes always go to CustomerProduct rows (customer.products).
    Older rows may only carry the legacy singular fields:
    - product: free-text product name/model
    - legacy_product_id: a single product reference, quantity 1
    product_lines() adapts those into the list form at read time.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_type_seller", "type", "seller_id"),
        db.Index("ix_customers_created", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    type = db.Column(db.String(16), nullable=False, index=True)
    phone = db.Column(db.String(32), nullable=True)
    address = db.Column(db.String(500), nullable=True)
    custom_date = db.Column(db.DateTime(timezone=True), nullable=True)

    seller_id = db.Column(db.Integer, db.ForeignKey("sellers.id"), nullable=True, index=True)

    # Unit price used as the commission base
    price_cents = db.Column(db.Integer, nullable=True)

    # Legacy singular product fields (read-only for new code)
    product = db.Column(db.String(255), nullable=True)
    legacy_product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    seller = db.relationship("Seller", backref=db.backref("customers", lazy=True))
    legacy_product = db.relationship("Product", foreign_keys=[legacy_product_id])
    products = db.relationship(
        "CustomerProduct",
        back_populates="customer",
        cascade="all, delete-orphan",
        order_by="CustomerProduct.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def product_lines(self) -> list[dict]:
        if self.products:
            return [line.to_dict() for line in self.products]
        if self.legacy_product_id is not None:
            legacy = self.legacy_product
            return [{
                "product_id": self.legacy_product_id,
                "name": legacy.name if legacy else self.product,
                "model": legacy.model if legacy else None,
                "quantity": 1,
            }]
        return []

    def quantities(self) -> dict[int, int]:
        totals: dict[int, int] = {}
        for line in self.product_lines():
            pid = line["product_id"]
            totals[pid] = totals.get(pid, 0) + int(line["quantity"])
        return totals

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "phone": self.phone,
            "address": self.address,
            "custom_date": to_utc_z(self.custom_date) if self.custom_date else None,
            "seller_id": self.seller_id,
            "seller_name": self.seller.name if self.seller else None,
            "price_cents": self.price_cents,
            "product": self.product,
            "products_info": self.product_lines(),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class CustomerProduct(db.Model):
    __tablename__ = "customer_products"
    __table_args__ = (
        db.UniqueConstraint("customer_id", "product_id", name="uq_customer_products_customer_product"),
        db.CheckConstraint("quantity >= 1", name="ck_customer_products_quantity"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    # Denormalized for display; refreshed from the live product on customer edits
    name = db.Column(db.String(255), nullable=True)
    model = db.Column(db.String(128), nullable=True)
    quantity = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", back_populates="products")

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "model": self.model,
            "quantity": self.quantity,
        }
