# Overview: Service-layer operations for supplier purchase batches; encapsulates business logic and database work.

"""
Purchase Batches

WHY: Goods arrive from suppliers in deliveries of several products at once.
A batch records what was bought and at what cost, and is the multi-product
stock-in path (add_stock in product_service covers a single product).

DESIGN:
- Every line is checked (product exists, quantity > 0, unit price >= 0)
  before the first write; a bad line rejects the whole batch.
- The batch row and its stock increments share one transaction.
- Stock goes up through the stock ledger with reason='purchase' and
  source_type='purchase_batch', so the delivery shows up in stock history.
"""

from __future__ import annotations

from ..extensions import db
from ..models import PurchaseBatch, PurchaseBatchItem
from ..validation import (
    ValidationError,
    NotFoundError,
    coerce_int,
    coerce_cents,
    require_positive_int,
)
from backoffice.time_utils import parse_date_range, parse_iso_datetime, utcnow
from . import stock_service
from .concurrency import fetch_row, run_with_retry


DEFAULT_LIST_LIMIT = 50
MAX_LIST_LIMIT = 200


def _parse_lines(items) -> list[dict]:
    if not isinstance(items, list) or not items:
        raise ValidationError("At least one item is required")

    lines = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(f"items[{index}] must be an object")
        raw_id = item.get("product_id")
        if raw_id in (None, ""):
            raise ValidationError("Each item must have a product_id")
        lines.append({
            "product_id": coerce_int(raw_id, f"items[{index}].product_id"),
            "quantity": require_positive_int(item.get("quantity"), f"items[{index}].quantity"),
            "unit_price_cents": coerce_cents(
                item.get("unit_price_cents"),
                f"items[{index}].unit_price_cents",
                default=0,
            ),
        })
    return lines


def _purchase_date(value):
    if value in (None, ""):
        return utcnow()
    try:
        parsed = parse_iso_datetime(str(value))
    except ValueError:
        parsed = None
    if parsed is None:
        raise ValidationError("purchase_date must be an ISO-8601 date")
    return parsed


def create_purchase_batch(payload: dict) -> PurchaseBatch:
    """
    Record a supplier delivery and add its quantities to stock.

    Request shape:
        supplier_name (required), batch_number, purchase_date, notes,
        items: [{product_id, quantity, unit_price_cents}, ...]

    Lines for the same product are kept as sent; stock is increased by their
    summed quantity.

    Raises:
        ValidationError: missing supplier, no items, bad line, unknown product
    """
    payload = payload or {}
    supplier_name = str(payload.get("supplier_name") or "").strip()
    if not supplier_name:
        raise ValidationError("Supplier name is required")
    lines = _parse_lines(payload.get("items"))
    purchase_date = _purchase_date(payload.get("purchase_date"))
    batch_number = str(payload.get("batch_number") or "").strip() or None
    notes = str(payload.get("notes") or "").strip() or None

    def _op():
        try:
            stock_service.load_products(line["product_id"] for line in lines)
        except NotFoundError:
            raise ValidationError("One or more products were not found")

        batch = PurchaseBatch(
            batch_number=batch_number,
            supplier_name=supplier_name,
            purchase_date=purchase_date,
            notes=notes,
            total_amount_cents=sum(line["quantity"] * line["unit_price_cents"] for line in lines),
            items=[PurchaseBatchItem(**line) for line in lines],
        )
        db.session.add(batch)
        db.session.flush()

        stock_service.apply_stock_plan(
            stock_service.restore_plan(batch.quantities()),
            reason="purchase",
            source_type="purchase_batch",
            source_id=batch.id,
        )

        db.session.commit()
        return batch

    return run_with_retry(_op)


def get_purchase_batch(batch_id: int) -> PurchaseBatch:
    return fetch_row(PurchaseBatch, batch_id, label="Purchase batch")


def list_purchase_batches(
    *,
    limit=None,
    start_date: str | None = None,
    end_date: str | None = None,
) -> list[PurchaseBatch]:
    """Newest purchase date first, optionally bounded by purchase date."""
    limit = DEFAULT_LIST_LIMIT if limit in (None, "") else coerce_int(limit, "limit")
    if limit <= 0:
        raise ValidationError("limit must be a positive number")
    limit = min(limit, MAX_LIST_LIMIT)

    try:
        start, end = parse_date_range(start_date, end_date)
    except ValueError:
        raise ValidationError("start_date/end_date must be ISO-8601 dates")

    q = PurchaseBatch.query
    if start is not None:
        q = q.filter(PurchaseBatch.purchase_date >= start)
    if end is not None:
        q = q.filter(PurchaseBatch.purchase_date < end)
    return (
        q.order_by(PurchaseBatch.purchase_date.desc(), PurchaseBatch.created_at.desc(), PurchaseBatch.id.desc())
        .limit(limit)
        .all()
    )
