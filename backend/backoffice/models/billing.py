from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z


BILL_STATUSES = ("pending", "completed", "cancelled")
DISCOUNT_TYPES = ("percentage", "fixed")
PAYMENT_METHODS = ("cash", "card", "bank_transfer", "other")
INCOME_TYPES = ("cash", "in_account")


class Bill(db.Model):
    """
    Customer invoice.

    CUSTOMER SNAPSHOT:
    customer_snapshot is copied at creation time (id, name, type, phone,
    address) and is not a live reference. customer_ref_id mirrors the
    snapshot id so history lookups can filter on a plain column.

    BALANCE:
    remaining_amount_cents carries the customer's running balance:
        max(0, previous_remaining + total - amount_paid)
    so the latest bill of a customer holds what they still owe overall.

    STOCK:
    Creating a bill consumes stock for every line. Edits apply only the per-product
    delta. Cancelling a completed bill gives the stock back. stock_held records
    whether the lines' units are currently out of stock, so a bill restores
    them at most once.
    """
    __tablename__ = "bills"
    __table_args__ = (
        db.UniqueConstraint("bill_number", name="uq_bills_bill_number"),
        db.Index("ix_bills_customer_created", "customer_ref_id", "created_at"),
        db.Index("ix_bills_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number (e.g., "EM-0007")
    bill_number = db.Column(db.String(32), nullable=False)

    seller_id = db.Column(db.Integer, db.ForeignKey("sellers.id"), nullable=False, index=True)

    customer_snapshot = db.Column(db.JSON, nullable=True)
    customer_ref_id = db.Column(db.Integer, nullable=True, index=True)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    discount = db.Column(db.Integer, nullable=False, default=0)
    discount_type = db.Column(db.String(16), nullable=False, default="percentage")
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    previous_remaining_cents = db.Column(db.Integer, nullable=False, default=0)
    amount_paid_cents = db.Column(db.Integer, nullable=False, default=0)
    remaining_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    payment_method = db.Column(db.String(16), nullable=False, default="cash")
    status = db.Column(db.String(16), nullable=False, default="completed", index=True)
    notes = db.Column(db.Text, nullable=True)

    stock_held = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    seller = db.relationship("Seller", backref=db.backref("bills", lazy=True))
    items = db.relationship(
        "BillItem",
        back_populates="bill",
        cascade="all, delete-orphan",
        order_by="BillItem.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def quantities(self) -> dict[int, int]:
        totals: dict[int, int] = {}
        for item in self.items:
            totals[item.product_id] = totals.get(item.product_id, 0) + item.quantity
        return totals

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "bill_number": self.bill_number,
            "seller_id": self.seller_id,
            "seller_name": self.seller.name if self.seller else None,
            "customer": self.customer_snapshot,
            "items": [item.to_dict() for item in self.items],
            "subtotal_cents": self.subtotal_cents,
            "discount": self.discount,
            "discount_type": self.discount_type,
            "total_cents": self.total_cents,
            "previous_remaining_cents": self.previous_remaining_cents,
            "amount_paid_cents": self.amount_paid_cents,
            "remaining_amount_cents": self.remaining_amount_cents,
            "payment_method": self.payment_method,
            "status": self.status,
            "stock_held": self.stock_held,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class BillItem(db.Model):
    __tablename__ = "bill_items"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_bill_items_quantity"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    bill_id = db.Column(db.Integer, db.ForeignKey("bills.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    model = db.Column(db.String(128), nullable=False)
    category = db.Column(db.String(128), nullable=False)

    selected_price_type = db.Column(db.String(32), nullable=False)
    selected_price_cents = db.Column(db.Integer, nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    total_amount_cents = db.Column(db.Integer, nullable=False)

    bill = db.relationship("Bill", back_populates="items")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "name": self.name,
            "model": self.model,
            "category": self.category,
            "selected_price_type": self.selected_price_type,
            "selected_price_cents": self.selected_price_cents,
            "quantity": self.quantity,
            "total_amount_cents": self.total_amount_cents,
        }


class Income(db.Model):
    """
    Money received (or expected) from a customer.

    Billing writes one row per bill (expected = bill total, amount = paid at
    creation) and one per later payment (expected = 0, amount = payment).
    """
    __tablename__ = "incomes"
    __table_args__ = (
        db.Index("ix_incomes_date", "date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.String(16), nullable=False, default="cash")
    expected_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    amount_cents = db.Column(db.Integer, nullable=False, default=0)
    from_name = db.Column(db.String(255), nullable=False)
    bill_id = db.Column(db.Integer, db.ForeignKey("bills.id", ondelete="SET NULL"), nullable=True, index=True)
    note = db.Column(db.String(255), nullable=True)
    date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "expected_amount_cents": self.expected_amount_cents,
            "amount_cents": self.amount_cents,
            "from": self.from_name,
            "bill_id": self.bill_id,
            "note": self.note,
            "date": to_utc_z(self.date),
            "created_at": to_utc_z(self.created_at),
        }


class DocumentSequence(db.Model):
    """
    Atomic document sequences.

    WHY: "last number + 1" read from the newest bill races under concurrent
    inserts. The counter row is bumped with a single UPDATE instead.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("document_type", name="uq_doc_sequences_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(32), nullable=False, index=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_type": self.document_type,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
