# Overview: Service-layer operations for returned goods; encapsulates business logic and database work.

from __future__ import annotations

from sqlalchemy import or_

from ..extensions import db
from ..models import Product, Return
from ..validation import ValidationError, require_positive_int, coerce_cents
from . import stock_service
from .concurrency import run_with_retry


def create_return(
    *,
    product_id,
    quantity,
    unit_price_cents,
    tracking_id,
    notes: str | None = None,
    customer_name: str | None = None,
) -> Return:
    """
    Put returned units back in stock and record the return.

    The increment is unconditional (no upper bound). Returns cannot be
    deleted, so there is no reversal path.
    """
    quantity = require_positive_int(quantity, "quantity")
    unit_price = coerce_cents(unit_price_cents, "unit_price_cents")
    if product_id in (None, ""):
        raise ValidationError("product_id is required")
    if not tracking_id or not str(tracking_id).strip():
        raise ValidationError("tracking_id is required")

    def _op():
        product = stock_service.get_product(product_id)

        record = Return(
            product_id=product.id,
            quantity=quantity,
            unit_price_cents=unit_price,
            customer_name=(customer_name or "").strip() or None,
            tracking_id=str(tracking_id).strip(),
            notes=notes,
        )
        db.session.add(record)
        db.session.flush()

        stock_service.adjust_stock(
            product.id,
            quantity,
            reason="return",
            source_type="return",
            source_id=record.id,
        )

        db.session.commit()
        return record

    return run_with_retry(_op)


def list_returns(search: str | None = None) -> list[Return]:
    """Newest first; search matches tracking id, product name or model."""
    q = Return.query
    if search:
        pattern = f"%{search.strip()}%"
        q = q.outerjoin(Product, Return.product_id == Product.id).filter(or_(
            Return.tracking_id.ilike(pattern),
            Product.name.ilike(pattern),
            Product.model.ilike(pattern),
        ))
    return q.order_by(Return.created_at.desc(), Return.id.desc()).all()
