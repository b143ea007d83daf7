from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z


PARCEL_STATUSES = ("processing", "delivered", "return")
PAYMENT_STATUSES = ("paid", "unpaid")


class Parcel(db.Model):
    """
    Courier parcel carrying one or more products.

    STOCK:
    A parcel holds its products' units from creation until it moves to
    status='return'. stock_released records that the units went back to
    stock, so repeating the return transition never restores twice and
    deleting a returned parcel restores nothing.
    """
    __tablename__ = "parcels"
    __table_args__ = (
        db.UniqueConstraint("tracking_number", name="uq_parcels_tracking_number"),
        db.Index("ix_parcels_status_payment", "status", "payment_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tracking_number = db.Column(db.String(64), nullable=False)
    customer_name = db.Column(db.String(255), nullable=False)
    address = db.Column(db.String(500), nullable=False)

    status = db.Column(db.String(16), nullable=False, default="processing", index=True)
    payment_status = db.Column(db.String(16), nullable=False, default="unpaid")
    cod_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    parcel_date = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    stock_released = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship(
        "ParcelItem",
        back_populates="parcel",
        cascade="all, delete-orphan",
        order_by="ParcelItem.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def quantities(self) -> dict[int, int]:
        totals: dict[int, int] = {}
        for item in self.items:
            totals[item.product_id] = totals.get(item.product_id, 0) + item.quantity
        return totals

    def held_quantities(self) -> dict[int, int]:
        """Units currently taken out of stock by this parcel."""
        if self.stock_released:
            return {}
        return self.quantities()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tracking_number": self.tracking_number,
            "customer_name": self.customer_name,
            "address": self.address,
            "status": self.status,
            "payment_status": self.payment_status,
            "cod_amount_cents": self.cod_amount_cents,
            "parcel_date": to_utc_z(self.parcel_date) if self.parcel_date else None,
            "notes": self.notes,
            "products": [item.to_dict() for item in self.items],
            "stock_released": self.stock_released,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ParcelItem(db.Model):
    __tablename__ = "parcel_items"
    __table_args__ = (
        db.UniqueConstraint("parcel_id", "product_id", name="uq_parcel_items_parcel_product"),
        db.CheckConstraint("quantity >= 1", name="ck_parcel_items_quantity"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    parcel_id = db.Column(db.Integer, db.ForeignKey("parcels.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False, default=1)

    parcel = db.relationship("Parcel", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "name": self.product.name if self.product else None,
            "model": self.product.model if self.product else None,
            "category": self.product.category if self.product else None,
            "quantity": self.quantity,
        }
