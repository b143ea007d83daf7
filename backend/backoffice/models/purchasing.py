from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z


class PurchaseBatch(db.Model):
    """
    Goods bought from a supplier in one delivery.

    STOCK:
    Creating a batch adds every line's quantity to stock (reason='purchase').
    Batches are append-only; there is no edit or delete path, so the stock
    they added is never taken back through them.
    """
    __tablename__ = "purchase_batches"
    __table_args__ = (
        db.Index("ix_purchase_batches_purchase_date", "purchase_date", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    # Supplier's reference, free text and optional
    batch_number = db.Column(db.String(64), nullable=True)
    supplier_name = db.Column(db.String(255), nullable=False)
    purchase_date = db.Column(db.DateTime(timezone=True), nullable=False)
    notes = db.Column(db.Text, nullable=True)
    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    items = db.relationship(
        "PurchaseBatchItem",
        back_populates="batch",
        cascade="all, delete-orphan",
        order_by="PurchaseBatchItem.id",
    )

    def quantities(self) -> dict[int, int]:
        totals: dict[int, int] = {}
        for item in self.items:
            totals[item.product_id] = totals.get(item.product_id, 0) + item.quantity
        return totals

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "batch_number": self.batch_number,
            "supplier_name": self.supplier_name,
            "purchase_date": to_utc_z(self.purchase_date),
            "notes": self.notes,
            "items": [item.to_dict() for item in self.items],
            "total_amount_cents": self.total_amount_cents,
            "created_at": to_utc_z(self.created_at),
        }


class PurchaseBatchItem(db.Model):
    __tablename__ = "purchase_batch_items"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_purchase_batch_items_quantity"),
        db.CheckConstraint("unit_price_cents >= 0", name="ck_purchase_batch_items_unit_price"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    batch_id = db.Column(db.Integer, db.ForeignKey("purchase_batches.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False, default=0)

    batch = db.relationship("PurchaseBatch", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "name": self.product.name if self.product else None,
            "model": self.product.model if self.product else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_cents": self.quantity * self.unit_price_cents,
        }
