# Overview: Service-layer operations for customers; encapsulates business logic and database work.

"""
Customer Entity Manager

WHY: A customer record doubles as a sale. The products listed on a customer
are taken out of stock, and the referring seller earns commission on them.

DESIGN:
- Stock: signed deltas through the stock ledger. Create consumes the full
  product set, update applies new - old, delete restores what is held.
- Commission: never adjusted incrementally. Any change to a commissionable
  attribute (products, seller, price) reverses the customer's commission Sale
  rows and re-accrues for the new state.
- Commission and Sale rows are best effort (savepoint + OperationResult);
  the customer row and its stock changes are not.

LEGACY DATA:
- legacy_product_id: treated as a held line with quantity 1 (Customer.product_lines).
- product (free text): resolved against product model, then name, for
  commission purposes only. Free-text customers never took stock.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Customer, CustomerProduct, Product, Seller
from ..models.people import CUSTOMER_TYPES
from ..validation import (
    ValidationError,
    ModelValidationPolicy,
    validate_payload,
    enforce_money,
    enforce_choice,
)
from . import commission_service, sale_ledger_service, stock_service
from .concurrency import fetch_row, run_with_retry
from .side_effects import OperationResult, run_side_effect


CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "type", "phone", "address", "custom_date", "seller_id", "price_cents"},
    required_on_create={"name", "type"},
    ignored_fields={"products_info", "product_id", "quantity"},
)

COMMISSIONABLE_FIELDS = ("products_info", "product_id", "seller_id", "price_cents")


# =============================================================================
# PRODUCT LINES
# =============================================================================

def requested_quantities(payload: dict) -> dict[int, int] | None:
    """
    Product set named by a request, or None when the request does not touch it.

    products_info wins; the legacy singular form (product_id + quantity) is
    accepted as a one-line list.
    """
    if "products_info" in payload:
        return stock_service.normalize_product_lines(payload.get("products_info") or [])
    if "product_id" in payload:
        if payload.get("product_id") in (None, ""):
            return {}
        line = {"product_id": payload.get("product_id"), "quantity": payload.get("quantity", 1)}
        return stock_service.normalize_product_lines([line], field="product")
    return None


def resolve_legacy_product(text: str | None) -> Product | None:
    """Match a free-text product against model first, then name (case-insensitive)."""
    if not text or not text.strip():
        return None
    needle = text.strip().lower()
    product = Product.query.filter(func.lower(Product.model) == needle).order_by(Product.id).first()
    if product is None:
        product = Product.query.filter(func.lower(Product.name) == needle).order_by(Product.id).first()
    return product


def commission_lines(customer: Customer) -> list[dict]:
    """Product lines commission is computed on, including resolved free text."""
    lines = customer.product_lines()
    if lines:
        return lines
    product = resolve_legacy_product(customer.product)
    if product is None:
        return []
    return [{"product_id": product.id, "name": product.name, "model": product.model, "quantity": 1}]


def _write_lines(customer: Customer, quantities: dict[int, int], products: dict[int, Product]) -> None:
    """
    Make customer.products match quantities, updating rows in place.

    Existing rows are kept (not replaced) so the unique (customer, product)
    constraint never sees a transient duplicate.
    """
    existing = {line.product_id: line for line in customer.products}
    for product_id, line in list(existing.items()):
        if product_id not in quantities:
            customer.products.remove(line)

    for product_id, quantity in sorted(quantities.items()):
        product = products[product_id]
        line = existing.get(product_id)
        if line is None:
            customer.products.append(CustomerProduct(
                product_id=product_id,
                name=product.name,
                model=product.model,
                quantity=quantity,
            ))
        else:
            line.quantity = quantity
            line.name = product.name
            line.model = product.model

    # The list form is authoritative from now on
    customer.legacy_product_id = None
    customer.product = None


def _refresh_line_names(customer: Customer) -> None:
    for line in customer.products:
        product = db.session.get(Product, line.product_id)
        if product is not None:
            line.name = product.name
            line.model = product.model


# =============================================================================
# COMMISSION
# =============================================================================

def _accrue_commission(customer: Customer) -> int:
    """Commission + one Sale row per product line for the customer's current state."""
    if customer.seller_id is None:
        return 0
    lines = commission_lines(customer)
    if not lines:
        return 0

    seller = commission_service.get_seller(customer.seller_id)
    unit_price = int(customer.price_cents or 0)

    records = []
    for line in lines:
        records.append({
            "product_id": line["product_id"],
            "seller_id": seller.id,
            "customer_id": customer.id,
            "product_name": line.get("name"),
            "seller_name": seller.name,
            "customer_name": customer.name,
            "quantity": line["quantity"],
            "unit_price_cents": unit_price,
            "total_cents": unit_price * line["quantity"],
            "commission_cents": commission_service.commission_for(seller, line["quantity"]),
            "is_customer_commission_sale": True,
            "source_type": "customer",
            "source_id": customer.id,
        })
    sale_ledger_service.insert_sales(records)

    amount = sum(r["commission_cents"] for r in records)
    commission_service.adjust_seller_commission(seller.id, amount)
    return amount


def _reverse_commission(
    customer_id: int,
    *,
    seller_id: int | None,
    price_cents: int | None,
    product_ids,
    product_names=(),
) -> int:
    product_ids = list(product_ids)
    sales = sale_ledger_service.find_customer_commission_sales(
        customer_id=customer_id,
        seller_id=seller_id,
        product_ids=product_ids,
        unit_price_cents=price_cents,
        product_names=product_names,
    )
    if not sales:
        if seller_id is not None and product_ids:
            current_app.logger.warning(
                "No commission records matched customer %s (seller %s); nothing reversed",
                customer_id, seller_id,
            )
        return 0
    return sale_ledger_service.reverse_sales(sales)


# =============================================================================
# CRUD
# =============================================================================

def _validate_scalars(payload: dict, *, partial: bool) -> dict:
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=partial)
    enforce_choice(patch, "type", CUSTOMER_TYPES)
    enforce_money(patch, ["price_cents"])
    return patch


def _get_customer(customer_id: int, *, lock: bool = False) -> Customer:
    return fetch_row(Customer, customer_id, lock=lock)


def create_customer(payload: dict) -> OperationResult:
    """
    Create a customer, take its products out of stock and credit the seller.

    Every line is checked against stock before anything is written; the
    customer row is flushed in the same transaction as the stock plan.
    """
    payload = payload or {}
    patch = _validate_scalars(payload, partial=False)
    quantities = requested_quantities(payload) or {}

    def _op():
        if patch.get("seller_id") is not None:
            commission_service.get_seller(patch["seller_id"])

        products = stock_service.validate_stock_plan(stock_service.consumption_plan(quantities))

        customer = Customer(**patch)
        db.session.add(customer)
        _write_lines(customer, quantities, products)
        db.session.flush()

        stock_service.apply_stock_plan(
            stock_service.consumption_plan(quantities),
            reason="customer",
            source_type="customer",
            source_id=customer.id,
        )

        result = OperationResult(value=customer)
        run_side_effect(result, "seller_commission", lambda: _accrue_commission(customer))

        db.session.commit()
        return result

    return run_with_retry(_op)


def update_customer(customer_id: int, payload: dict) -> OperationResult:
    """
    Apply scalar changes and, when products_info is sent, the stock delta.

    If products, seller or price are part of the request, prior commission is
    reversed and re-accrued for the new state. Otherwise product line
    names/models are refreshed from the live products.
    """
    payload = payload or {}
    patch = _validate_scalars(payload, partial=True)
    new_quantities = requested_quantities(payload)

    def _op():
        customer = _get_customer(customer_id, lock=True)

        old_quantities = customer.quantities()
        old_seller_id = customer.seller_id
        old_price = customer.price_cents
        old_product_ids = [line["product_id"] for line in commission_lines(customer)]
        old_product_text = customer.product

        if patch.get("seller_id") is not None:
            commission_service.get_seller(patch["seller_id"])

        if new_quantities is not None:
            plan = stock_service.diff_quantities(old_quantities, new_quantities)
            stock_service.validate_stock_plan(plan)
            products = stock_service.load_products(new_quantities)
            stock_service.apply_stock_plan(
                plan,
                reason="customer",
                source_type="customer",
                source_id=customer.id,
            )
            _write_lines(customer, new_quantities, products)
        else:
            _refresh_line_names(customer)

        for key, value in patch.items():
            setattr(customer, key, value)
        db.session.flush()

        result = OperationResult(value=customer)
        if any(field in payload for field in COMMISSIONABLE_FIELDS):
            def _reapply():
                _reverse_commission(
                    customer.id,
                    seller_id=old_seller_id,
                    price_cents=old_price,
                    product_ids=old_product_ids,
                    product_names=[old_product_text] if old_product_text else (),
                )
                return _accrue_commission(customer)

            run_side_effect(result, "seller_commission", _reapply)

        db.session.commit()
        return result

    return run_with_retry(_op)


def delete_customer(customer_id: int) -> OperationResult:
    """Give the customer's products back to stock, reverse commission, delete."""
    def _op():
        customer = _get_customer(customer_id, lock=True)

        stock_service.apply_stock_plan(
            stock_service.restore_plan(customer.quantities()),
            reason="customer_delete",
            source_type="customer",
            source_id=customer.id,
        )

        result = OperationResult(value=None)
        seller_id = customer.seller_id
        price = customer.price_cents
        product_ids = [line["product_id"] for line in commission_lines(customer)]
        product_names = [customer.product] if customer.product else ()
        run_side_effect(result, "seller_commission", lambda: _reverse_commission(
            customer_id,
            seller_id=seller_id,
            price_cents=price,
            product_ids=product_ids,
            product_names=product_names,
        ))

        db.session.delete(customer)
        db.session.commit()
        return result

    return run_with_retry(_op)


def get_customer_with_purchases(customer_id: int) -> dict:
    customer = _get_customer(customer_id)
    purchases = sale_ledger_service.list_sales(customer_id=customer.id)
    return {
        "customer": customer.to_dict(),
        "purchases": [sale.to_dict() for sale in purchases],
    }


def list_customers(
    *,
    customer_type: str | None = None,
    seller_id: int | None = None,
    search: str | None = None,
) -> list[Customer]:
    q = Customer.query
    if customer_type:
        if customer_type not in CUSTOMER_TYPES:
            raise ValidationError(f"type must be one of: {', '.join(CUSTOMER_TYPES)}")
        q = q.filter(Customer.type == customer_type)
    if seller_id is not None:
        q = q.filter(Customer.seller_id == seller_id)
    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(Customer.name.ilike(pattern) | Customer.phone.ilike(pattern))
    return q.order_by(Customer.created_at.desc(), Customer.id.desc()).all()


# =============================================================================
# BACKFILL / PREVIEW
# =============================================================================

def _scan_online_customers() -> tuple[int, int, list[tuple[Customer, Seller, list[dict]]]]:
    """
    Online customers with a seller and resolvable products but no commission
    Sale rows yet. Returns (processed, skipped, candidates).
    """
    customers = (
        Customer.query
        .filter(Customer.type == "online", Customer.seller_id.isnot(None))
        .order_by(Customer.id)
        .all()
    )

    processed = 0
    skipped = 0
    candidates = []
    for customer in customers:
        processed += 1

        lines = commission_lines(customer)
        seller = db.session.get(Seller, customer.seller_id)
        if not lines or seller is None:
            skipped += 1
            continue

        existing = sale_ledger_service.find_customer_commission_sales(
            customer_id=customer.id,
            seller_id=seller.id,
            product_ids=[line["product_id"] for line in lines],
            unit_price_cents=customer.price_cents,
            product_names=[customer.product] if customer.product else (),
        )
        if existing:
            skipped += 1
            continue

        candidates.append((customer, seller, lines))
    return processed, skipped, candidates


def _summarize(candidates) -> tuple[int, list[dict]]:
    total = 0
    per_seller: dict[int, dict] = {}
    for customer, seller, lines in candidates:
        commission = sum(commission_service.commission_for(seller, line["quantity"]) for line in lines)
        total += commission
        entry = per_seller.setdefault(seller.id, {
            "seller_id": seller.id,
            "seller_name": seller.name,
            "customers": 0,
            "commission_cents": 0,
        })
        entry["customers"] += 1
        entry["commission_cents"] += commission
    return total, [per_seller[k] for k in sorted(per_seller)]


def preview_online_customer_commissions() -> dict:
    """What backfill_online_customer_commissions would do. No writes."""
    processed, skipped, candidates = _scan_online_customers()
    total, per_seller = _summarize(candidates)
    return {
        "processed": processed,
        "would_create": len(candidates),
        "skipped": skipped,
        "total_commission_cents": total,
        "per_seller": per_seller,
    }


def backfill_online_customer_commissions() -> dict:
    """
    Create the missing commission accrual + Sale rows for online customers.

    Idempotent: customers that already have matching rows are skipped, so a
    second run creates nothing.
    """
    def _op():
        processed, skipped, candidates = _scan_online_customers()
        total, per_seller = _summarize(candidates)

        for customer, _seller, _lines in candidates:
            _accrue_commission(customer)

        db.session.commit()
        current_app.logger.info(
            "Commission backfill: processed=%d created=%d skipped=%d total_cents=%d",
            processed, len(candidates), skipped, total,
        )
        return {
            "processed": processed,
            "created": len(candidates),
            "skipped": skipped,
            "total_commission_cents": total,
            "per_seller": per_seller,
        }

    return run_with_retry(_op)
