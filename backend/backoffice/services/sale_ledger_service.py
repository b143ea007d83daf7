# Overview: Service-layer operations for the sale ledger; encapsulates business logic and database work.

"""
Sale Record Store

WHY: Sale rows are the audit trail behind seller commission. Bills, customers
and the manual sales endpoint write them; customer edits/deletes and bill edits
remove them again through reverse_sales().

DESIGN:
- The store validates nothing beyond required fields. Callers own the
  create/reverse pairing.
- Rows are never updated. A changed source is reversed and re-recorded.
- Reversal looks rows up by correlation (source_type, source_id). Legacy rows
  without correlation are matched on their attributes instead
  (see find_customer_commission_sales).
"""

from __future__ import annotations

from typing import Iterable

from flask import current_app
from sqlalchemy import and_, or_

from ..extensions import db
from ..models import Sale, Customer
from ..validation import ValidationError, NotFoundError, require_positive_int, coerce_cents
from . import commission_service, stock_service
from .concurrency import run_with_retry
from .side_effects import OperationResult, run_side_effect


REQUIRED_FIELDS = ("seller_id", "quantity")


# =============================================================================
# LEDGER PRIMITIVES
# =============================================================================

def insert_sales(records: Iterable[dict]) -> list[Sale]:
    """Append sale rows; does not commit."""
    sales = []
    for record in records:
        missing = [f for f in REQUIRED_FIELDS if record.get(f) is None]
        if missing:
            raise ValidationError(f"Sale record missing: {', '.join(missing)}")
        sale = Sale(**record)
        db.session.add(sale)
        sales.append(sale)
    db.session.flush()
    return sales


def sales_for_source(source_type: str, source_id: int) -> list[Sale]:
    return (
        Sale.query.filter_by(source_type=source_type, source_id=source_id)
        .order_by(Sale.id)
        .all()
    )


def find_customer_commission_sales(
    *,
    customer_id: int,
    seller_id: int | None,
    product_ids: Iterable[int],
    unit_price_cents: int | None,
    product_names: Iterable[str] = (),
) -> list[Sale]:
    """
    Commission rows that belong to a customer's product association.

    - Correlated rows: source_type='customer' and source_id=customer_id.
    - Legacy rows (no source): same seller, same customer, product in the
      customer's product set, is_customer_commission_sale true or NULL, and
      unit price equal to the customer's recorded price. The price guard keeps
      manual sales to the same customer out of the match.
    - Legacy free-text rows (product_id NULL) match on product_name instead
      when product_names is given.
    """
    correlated = and_(Sale.source_type == "customer", Sale.source_id == customer_id)

    ids = sorted(set(product_ids))
    clauses = [correlated]
    if seller_id is not None and ids:
        clauses.append(and_(
            Sale.source_type.is_(None),
            Sale.seller_id == seller_id,
            Sale.customer_id == customer_id,
            Sale.product_id.in_(ids),
            or_(Sale.is_customer_commission_sale.is_(True), Sale.is_customer_commission_sale.is_(None)),
            Sale.unit_price_cents == int(unit_price_cents or 0),
        ))

    names = sorted({n for n in product_names if n})
    if seller_id is not None and names:
        clauses.append(and_(
            Sale.source_type.is_(None),
            Sale.seller_id == seller_id,
            Sale.customer_id == customer_id,
            Sale.product_id.is_(None),
            Sale.product_name.in_(names),
        ))

    return Sale.query.filter(or_(*clauses)).order_by(Sale.id).all()


def delete_sales(sales: Iterable[Sale]) -> int:
    count = 0
    for sale in sales:
        db.session.delete(sale)
        count += 1
    db.session.flush()
    return count


def reverse_sales(sales: list[Sale]) -> int:
    """
    Take back the commission carried by the given rows and delete them.

    Commission is reversed per seller from the rows' own commission_cents (not
    recomputed from today's rate). Returns the total reversed.
    """
    per_seller: dict[int, int] = {}
    for sale in sales:
        per_seller[sale.seller_id] = per_seller.get(sale.seller_id, 0) + int(sale.commission_cents or 0)

    for seller_id, amount in sorted(per_seller.items()):
        try:
            commission_service.adjust_seller_commission(seller_id, -amount)
        except NotFoundError:
            current_app.logger.warning("Seller %s missing while reversing %d cents of commission", seller_id, amount)

    delete_sales(sales)
    return sum(per_seller.values())


# =============================================================================
# READS
# =============================================================================

def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError("Sale not found")
    return sale


def list_sales(
    *,
    seller_id: int | None = None,
    customer_id: int | None = None,
    limit: int = 500,
) -> list[Sale]:
    q = Sale.query
    if seller_id is not None:
        q = q.filter(Sale.seller_id == seller_id)
    if customer_id is not None:
        q = q.filter(Sale.customer_id == customer_id)
    return q.order_by(Sale.created_at.desc(), Sale.id.desc()).limit(limit).all()


# =============================================================================
# MANUAL SALES
# =============================================================================

def create_sale(
    *,
    product_id,
    seller_id,
    customer_id,
    quantity,
    unit_price_cents=None,
) -> OperationResult:
    """
    Record a manual sale: takes stock and accrues the seller's commission.

    Billing creates sale rows on its own; this path is for sales entered
    outside a bill.
    """
    quantity = require_positive_int(quantity, "quantity")
    if product_id in (None, "") or seller_id in (None, "") or customer_id in (None, ""):
        raise ValidationError("product_id, seller_id and customer_id are required")

    def _op():
        product = stock_service.get_product(product_id)
        seller = commission_service.get_seller(seller_id)
        customer = db.session.get(Customer, customer_id)
        if customer is None:
            raise NotFoundError("Customer not found")

        unit_price = coerce_cents(unit_price_cents, "unit_price_cents", default=product.original_price_cents)

        stock_service.adjust_stock(product.id, -quantity, reason="sale", source_type="manual")

        result = OperationResult(value=None)
        commission = commission_service.commission_for(seller, quantity)
        sale = insert_sales([{
            "product_id": product.id,
            "seller_id": seller.id,
            "customer_id": customer.id,
            "product_name": product.name,
            "seller_name": seller.name,
            "customer_name": customer.name,
            "quantity": quantity,
            "unit_price_cents": unit_price,
            "total_cents": unit_price * quantity,
            "commission_cents": commission,
            "is_customer_commission_sale": False,
            "source_type": "manual",
        }])[0]
        sale.source_id = sale.id
        run_side_effect(
            result,
            "seller_commission",
            lambda: commission_service.adjust_seller_commission(seller.id, commission),
        )

        db.session.commit()
        result.value = sale
        return result

    return run_with_retry(_op)


def delete_sale(sale_id: int) -> None:
    """Remove a sale record only; stock and commission are left as they are."""
    def _op():
        sale = get_sale(sale_id)
        db.session.delete(sale)
        db.session.commit()

    return run_with_retry(_op)
