# Overview: Service-layer operations for courier parcels; encapsulates business logic and database work.

# backend/backoffice/services/parcel_service.py

from __future__ import annotations

from ..extensions import db
from ..models import Parcel, ParcelItem
from ..models.parcels import PARCEL_STATUSES, PAYMENT_STATUSES
from ..validation import (
    ValidationError,
    ModelValidationPolicy,
    validate_payload,
    enforce_money,
    enforce_choice,
)
from . import stock_service
from .concurrency import fetch_row, run_with_retry
"""
Parcel Stock Rules

A parcel holds its products' units while it is out with the courier.

    held = {} if status == 'return' else quantities

Every write computes the held set before and after the change and applies
diff_quantities(old_held, new_held) as one stock plan. That single rule covers:
- create: consumes everything (nothing when created directly as 'return')
- product edits: only the per-product delta, validated first
- entering 'return': restores the held units exactly once
  (stock_released guards repeats)
- leaving 'return': consumes the units again, validated like a create
- delete: restores whatever is still held
"""


PARCEL_POLICY = ModelValidationPolicy(
    writable_fields={
        "tracking_number", "customer_name", "address", "status",
        "payment_status", "cod_amount_cents", "parcel_date", "notes",
    },
    required_on_create={"tracking_number", "customer_name", "address"},
    ignored_fields={"products", "product_id", "quantity"},
)


class DuplicateTrackingNumberError(ValidationError):
    """Raised when another parcel already uses the tracking number."""


def _requested_quantities(payload: dict) -> dict[int, int] | None:
    if "products" in payload:
        return stock_service.normalize_product_lines(payload.get("products") or [], field="products")
    if payload.get("product_id") not in (None, ""):
        line = {"product_id": payload.get("product_id"), "quantity": payload.get("quantity", 1)}
        return stock_service.normalize_product_lines([line], field="product")
    return None


def _validate_scalars(payload: dict, *, partial: bool) -> dict:
    patch = validate_payload(model=Parcel, payload=payload, policy=PARCEL_POLICY, partial=partial)
    enforce_choice(patch, "status", PARCEL_STATUSES)
    enforce_choice(patch, "payment_status", PAYMENT_STATUSES)
    enforce_money(patch, ["cod_amount_cents"])
    return patch


def _ensure_unique_tracking(tracking_number: str, *, exclude_id: int | None = None) -> None:
    q = Parcel.query.filter(Parcel.tracking_number == tracking_number)
    if exclude_id is not None:
        q = q.filter(Parcel.id != exclude_id)
    if q.first() is not None:
        raise DuplicateTrackingNumberError("A parcel with this tracking number already exists")


def _held(status: str, quantities: dict[int, int]) -> dict[int, int]:
    return {} if status == "return" else dict(quantities)


def _write_items(parcel: Parcel, quantities: dict[int, int]) -> None:
    existing = {item.product_id: item for item in parcel.items}
    for product_id, item in list(existing.items()):
        if product_id not in quantities:
            parcel.items.remove(item)
    for product_id, quantity in sorted(quantities.items()):
        item = existing.get(product_id)
        if item is None:
            parcel.items.append(ParcelItem(product_id=product_id, quantity=quantity))
        else:
            item.quantity = quantity


def _get_parcel(parcel_id: int, *, lock: bool = False) -> Parcel:
    return fetch_row(Parcel, parcel_id, lock=lock)


def _transition(parcel: Parcel, patch: dict, new_quantities: dict[int, int] | None) -> None:
    """Apply a patch plus the stock plan it implies. Does not commit."""
    old_held = parcel.held_quantities()
    new_status = patch.get("status") or parcel.status
    quantities = parcel.quantities() if new_quantities is None else new_quantities
    new_held = _held(new_status, quantities)

    if new_quantities is not None:
        stock_service.load_products(new_quantities)
    plan = stock_service.diff_quantities(old_held, new_held)
    stock_service.validate_stock_plan(plan)

    entering_return = new_status == "return" and parcel.status != "return"
    stock_service.apply_stock_plan(
        plan,
        reason="parcel_return" if entering_return else "parcel",
        source_type="parcel",
        source_id=parcel.id,
    )

    if new_quantities is not None:
        _write_items(parcel, new_quantities)
    for key, value in patch.items():
        setattr(parcel, key, value)
    parcel.stock_released = new_status == "return"
    db.session.flush()


# =============================================================================
# WRITES
# =============================================================================

def create_parcel(payload: dict) -> Parcel:
    """
    Create a parcel and take its products out of stock.

    Raises ValidationError for missing fields or products and for a duplicate
    tracking number, InsufficientStockError when any line does not fit, and
    NotFoundError for an unknown product. No stock moves on failure.
    """
    payload = payload or {}
    patch = _validate_scalars(payload, partial=False)
    quantities = _requested_quantities(payload)
    if not quantities:
        raise ValidationError("At least one product is required")

    def _op():
        _ensure_unique_tracking(patch["tracking_number"])

        status = patch.get("status") or "processing"
        held = _held(status, quantities)
        stock_service.load_products(quantities)
        stock_service.validate_stock_plan(stock_service.consumption_plan(held))

        parcel = Parcel(**patch)
        parcel.status = status
        parcel.stock_released = status == "return"
        _write_items(parcel, quantities)
        db.session.add(parcel)
        db.session.flush()

        stock_service.apply_stock_plan(
            stock_service.consumption_plan(held),
            reason="parcel",
            source_type="parcel",
            source_id=parcel.id,
        )

        db.session.commit()
        return parcel

    return run_with_retry(_op)


def update_parcel(parcel_id: int, payload: dict) -> Parcel:
    payload = payload or {}
    patch = _validate_scalars(payload, partial=True)
    new_quantities = _requested_quantities(payload)
    if new_quantities is not None and not new_quantities:
        raise ValidationError("At least one product is required")

    def _op():
        parcel = _get_parcel(parcel_id, lock=True)
        if "tracking_number" in patch:
            _ensure_unique_tracking(patch["tracking_number"], exclude_id=parcel.id)

        _transition(parcel, patch, new_quantities)

        db.session.commit()
        return parcel

    return run_with_retry(_op)


def update_parcel_status(parcel_id: int, status: str | None = None, payment_status: str | None = None) -> Parcel:
    """Status-only update with the same stock rules as update_parcel."""
    if not status and not payment_status:
        raise ValidationError("status or payment_status is required")
    patch = {}
    if status:
        patch["status"] = status
    if payment_status:
        patch["payment_status"] = payment_status
    enforce_choice(patch, "status", PARCEL_STATUSES)
    enforce_choice(patch, "payment_status", PAYMENT_STATUSES)

    def _op():
        parcel = _get_parcel(parcel_id, lock=True)
        _transition(parcel, patch, None)
        db.session.commit()
        return parcel

    return run_with_retry(_op)


def delete_parcel(parcel_id: int) -> None:
    """Restore the units the parcel still holds, then delete it."""
    def _op():
        parcel = _get_parcel(parcel_id, lock=True)
        stock_service.apply_stock_plan(
            stock_service.restore_plan(parcel.held_quantities()),
            reason="parcel_delete",
            source_type="parcel",
            source_id=parcel.id,
        )
        db.session.delete(parcel)
        db.session.commit()

    return run_with_retry(_op)


# =============================================================================
# READS
# =============================================================================

def get_parcel(parcel_id: int) -> Parcel:
    return _get_parcel(parcel_id)


def list_parcels(
    *,
    tracking: str | None = None,
    status: str | None = None,
    payment_status: str | None = None,
) -> list[Parcel]:
    q = Parcel.query
    if tracking:
        q = q.filter(Parcel.tracking_number.ilike(f"%{tracking.strip()}%"))
    if status:
        q = q.filter(Parcel.status == status)
    if payment_status:
        q = q.filter(Parcel.payment_status == payment_status)
    return q.order_by(Parcel.created_at.desc(), Parcel.id.desc()).all()
