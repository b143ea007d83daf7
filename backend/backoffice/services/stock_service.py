# Overview: Service-layer operations for product stock; encapsulates business logic and database work.

# backend/backoffice/services/stock_service.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping

from flask import current_app
from sqlalchemy import update

from ..extensions import db
from ..models import Product, StockMovement
from ..validation import ValidationError, NotFoundError, coerce_int
"""
Stock Ledger Invariants (authoritative)

- products.stock is the only count of available units and is never negative.
- Every change goes through adjust_stock(): a single guarded UPDATE
      UPDATE products SET stock = stock + :delta
      WHERE id = :id AND stock + :delta >= 0
  which is atomic per row. Pre-validation (validate_stock_plan) is advisory;
  the guarded UPDATE is what actually prevents overselling.
- Callers hand in signed deltas and must reverse the deltas they applied
  earlier before applying new ones (see diff_quantities()).

Stock plans:
- A plan is a list of StockChange(product_id, quantity): quantity > 0 consumes
  units, quantity < 0 gives units back.
- Consuming changes are applied first. If one fails, the consuming changes
  already applied by the same call are inverted (reason='compensation') and
  InsufficientStockError is raised. Restoring changes are applied only after
  every consuming change succeeded.
- Plans run inside the caller's session transaction. The compensation keeps
  stock right even if a caller commits after catching the error; a crash
  between steps on an engine without transactions is not covered.
"""


class InsufficientStockError(ValidationError):
    """Raised when a product does not have enough units for a change."""


@dataclass(frozen=True)
class StockChange:
    product_id: int
    quantity: int  # > 0 consumes stock, < 0 restores it

    @property
    def consumes(self) -> bool:
        return self.quantity > 0


# =============================================================================
# PLAN BUILDING
# =============================================================================

def normalize_product_lines(lines, *, field: str = "products_info") -> dict[int, int]:
    """
    Collapse incoming product lines into {product_id: quantity}.

    Accepts [{"product_id": 1, "quantity": 2}, ...]. Repeated product ids are
    summed. Quantity defaults to 1 when omitted and must be a positive integer.
    """
    if lines is None:
        return {}
    if not isinstance(lines, list):
        raise ValidationError(f"{field} must be a list")

    quantities: dict[int, int] = {}
    for index, line in enumerate(lines):
        if not isinstance(line, dict):
            raise ValidationError(f"{field}[{index}] must be an object")
        raw_id = line.get("product_id")
        if raw_id in (None, ""):
            raise ValidationError(f"{field}[{index}].product_id is required")
        product_id = coerce_int(raw_id, f"{field}[{index}].product_id")

        raw_qty = line.get("quantity", 1)
        quantity = coerce_int(raw_qty, f"{field}[{index}].quantity")
        if quantity <= 0:
            raise ValidationError(f"{field}[{index}].quantity must be a positive number")

        quantities[product_id] = quantities.get(product_id, 0) + quantity
    return quantities


def consumption_plan(quantities: Mapping[int, int]) -> list[StockChange]:
    """Plan that takes every quantity out of stock."""
    return [StockChange(pid, qty) for pid, qty in sorted(quantities.items()) if qty]


def restore_plan(quantities: Mapping[int, int]) -> list[StockChange]:
    """Plan that gives every quantity back."""
    return [StockChange(pid, -qty) for pid, qty in sorted(quantities.items()) if qty]


def diff_quantities(old: Mapping[int, int], new: Mapping[int, int]) -> list[StockChange]:
    """
    Net plan for moving from the old product set to the new one.

    Per product: new - old. Unchanged sets produce an empty plan.
    """
    changes = []
    for product_id in sorted(set(old) | set(new)):
        delta = int(new.get(product_id, 0)) - int(old.get(product_id, 0))
        if delta:
            changes.append(StockChange(product_id, delta))
    return changes


def _merge(changes: Iterable[StockChange]) -> list[StockChange]:
    merged: dict[int, int] = {}
    for change in changes:
        merged[change.product_id] = merged.get(change.product_id, 0) + change.quantity
    return [StockChange(pid, qty) for pid, qty in sorted(merged.items()) if qty]


# =============================================================================
# READS / VALIDATION
# =============================================================================

def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found")
    return product


def load_products(product_ids: Iterable[int]) -> dict[int, Product]:
    """Resolve ids to products; any missing id raises NotFoundError."""
    ids = sorted(set(product_ids))
    if not ids:
        return {}
    products = {p.id: p for p in db.session.query(Product).filter(Product.id.in_(ids)).all()}
    missing = [pid for pid in ids if pid not in products]
    if missing:
        raise NotFoundError(f"Product {missing[0]} not found")
    return products


def validate_stock_plan(changes: Iterable[StockChange]) -> dict[int, Product]:
    """
    Read-only check that every consuming change fits in current stock.

    For edits pass the net plan from diff_quantities(): stock >= new - old is
    the same test as (stock + old) >= new.

    Reports every failing product at once in details["items"].
    """
    plan = _merge(changes)
    products = load_products(change.product_id for change in plan)

    insufficient = []
    for change in plan:
        if not change.consumes:
            continue
        product = products[change.product_id]
        available = int(product.stock or 0)
        requested = change.quantity
        if available < requested:
            insufficient.append({
                "product_id": product.id,
                "name": product.name,
                "model": product.model,
                "available": available,
                "requested": requested,
            })

    if insufficient:
        first = insufficient[0]
        raise InsufficientStockError(
            f"Insufficient stock for {first['name']}-{first['model']}. "
            f"Available: {first['available']}, Requested: {first['requested']}",
            details={"items": insufficient},
        )
    return products


# =============================================================================
# WRITES
# =============================================================================

def adjust_stock(
    product_id: int,
    delta: int,
    *,
    reason: str,
    source_type: str | None = None,
    source_id: int | None = None,
    note: str | None = None,
) -> Product:
    """
    Apply stock += delta only if the result stays >= 0.

    Raises NotFoundError for a missing product and InsufficientStockError when
    the guard rejects the change; stock is left untouched in both cases.
    """
    if delta == 0:
        return get_product(product_id)

    stmt = (
        update(Product)
        .where(Product.id == product_id, Product.stock + delta >= 0)
        .values(stock=Product.stock + delta)
        .execution_options(synchronize_session="fetch")
    )
    result = db.session.execute(stmt)

    if not result.rowcount:
        product = get_product(product_id)
        raise InsufficientStockError(
            f"Insufficient stock for {product.name}-{product.model}. "
            f"Available: {product.stock}, Requested: {-delta}",
            details={"items": [{
                "product_id": product.id,
                "name": product.name,
                "model": product.model,
                "available": product.stock,
                "requested": -delta,
            }]},
        )

    product = get_product(product_id)
    db.session.add(StockMovement(
        product_id=product_id,
        quantity_delta=delta,
        stock_after=product.stock,
        reason=reason,
        source_type=source_type,
        source_id=source_id,
        note=note,
    ))
    db.session.flush()
    return product


def apply_stock_plan(
    changes: Iterable[StockChange],
    *,
    reason: str,
    source_type: str | None = None,
    source_id: int | None = None,
) -> list[StockChange]:
    """
    Apply a stock plan all-or-nothing (see module invariants).

    Returns the merged changes that were applied.
    """
    plan = _merge(changes)
    consuming = [c for c in plan if c.consumes]
    restoring = [c for c in plan if not c.consumes]

    applied: list[StockChange] = []
    try:
        for change in consuming:
            adjust_stock(
                change.product_id,
                -change.quantity,
                reason=reason,
                source_type=source_type,
                source_id=source_id,
            )
            applied.append(change)
    except (InsufficientStockError, NotFoundError):
        if applied:
            current_app.logger.info(
                "Stock plan failed for %s %s; compensating %d applied change(s)",
                source_type, source_id, len(applied),
            )
        for change in reversed(applied):
            adjust_stock(
                change.product_id,
                change.quantity,
                reason="compensation",
                source_type=source_type,
                source_id=source_id,
            )
        raise

    for change in restoring:
        adjust_stock(
            change.product_id,
            -change.quantity,
            reason=reason,
            source_type=source_type,
            source_id=source_id,
        )
        applied.append(change)

    return applied


def list_movements(product_id: int, *, limit: int = 200) -> list[StockMovement]:
    get_product(product_id)
    return (
        StockMovement.query.filter_by(product_id=product_id)
        .order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        .limit(limit)
        .all()
    )
