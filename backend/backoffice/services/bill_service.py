# Overview: Service-layer operations for bills (invoices); encapsulates business logic and database work.

"""
Bill Manager

WHY: A bill is the main way stock leaves the shop. Creating one touches four
ledgers: product stock, income, seller commission and sale records.

DESIGN:
- Validate everything (seller, products, stock) before the first write.
- The bill row and the stock plan share one transaction; if either fails the
  whole operation rolls back.
- Income and commission/sale records are secondary accounting. They run in
  savepoints; a failure is logged and returned on OperationResult.degraded
  while the bill itself is still committed.
- Bill numbers come from the atomic document counter (EM-0001, EM-0002, ...).

BALANCE FORMULA (create and update):
    remaining = max(0, previous_remaining + total - amount_paid)
previous_remaining defaults to the customer's latest open bill balance on
create and to the stored value on update.
"""

from __future__ import annotations

from sqlalchemy import func, or_

from ..extensions import db
from ..models import Bill, BillItem, Sale
from ..models.billing import DISCOUNT_TYPES, PAYMENT_METHODS, BILL_STATUSES
from ..models.catalog import PRICE_TIERS
from ..validation import (
    ValidationError,
    NotFoundError,
    coerce_int,
    coerce_cents,
    require_positive_int,
)
from backoffice.time_utils import parse_date_range
from . import commission_service, document_service, income_service, sale_ledger_service, stock_service
from .concurrency import fetch_row, run_with_retry
from .listing import paginate
from .side_effects import OperationResult, run_side_effect


# =============================================================================
# INPUT NORMALIZATION
# =============================================================================

def _embedded_customer(customer) -> dict | None:
    """Denormalized customer snapshot stored on the bill."""
    if not customer:
        return None
    if not isinstance(customer, dict):
        raise ValidationError("customer must be an object")

    raw_id = customer.get("id", customer.get("customer_id"))
    return {
        "id": coerce_int(raw_id, "customer.id") if raw_id not in (None, "") else None,
        "name": (customer.get("name") or "").strip() or None,
        "type": customer.get("type"),
        "phone": customer.get("phone"),
        "address": customer.get("address"),
    }


def _resolve_items(items) -> tuple[list[dict], dict[int, int]]:
    """
    Turn request items into bill lines.

    Missing products are a 400 here (bad input), not a 404. The unit price is
    the one sent by the client, else the product's price for the chosen tier.
    """
    if not isinstance(items, list) or not items:
        raise ValidationError("At least one bill item is required")

    parsed = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(f"items[{index}] must be an object")
        raw_id = item.get("product_id")
        if raw_id in (None, ""):
            raise ValidationError(f"items[{index}].product_id is required")
        product_id = coerce_int(raw_id, f"items[{index}].product_id")
        quantity = require_positive_int(item.get("quantity"), f"items[{index}].quantity")
        tier = item.get("selected_price_type") or "original_price"
        if tier not in PRICE_TIERS:
            raise ValidationError(f"items[{index}].selected_price_type must be one of: {', '.join(PRICE_TIERS)}")
        parsed.append((index, product_id, quantity, tier, item.get("selected_price_cents")))

    try:
        products = stock_service.load_products(p[1] for p in parsed)
    except NotFoundError as exc:
        raise ValidationError(str(exc))

    lines = []
    quantities: dict[int, int] = {}
    for index, product_id, quantity, tier, raw_price in parsed:
        product = products[product_id]
        price = coerce_cents(
            raw_price,
            f"items[{index}].selected_price_cents",
            default=product.price_for_tier(tier) or 0,
        )
        lines.append({
            "product_id": product.id,
            "name": product.name,
            "model": product.model,
            "category": product.category,
            "selected_price_type": tier,
            "selected_price_cents": price,
            "quantity": quantity,
            "total_amount_cents": price * quantity,
        })
        quantities[product.id] = quantities.get(product.id, 0) + quantity
    return lines, quantities


def compute_totals(lines: list[dict], discount, discount_type: str) -> tuple[int, int, int]:
    """
    Returns (subtotal, discount, total) in cents.

    percentage: discount is a whole percent (0-100) of the subtotal, half-up.
    fixed: discount is cents, capped at the subtotal.
    """
    if discount_type not in DISCOUNT_TYPES:
        raise ValidationError(f"discount_type must be one of: {', '.join(DISCOUNT_TYPES)}")
    discount = coerce_cents(discount, "discount", default=0)

    subtotal = sum(line["total_amount_cents"] for line in lines)
    if discount_type == "percentage":
        if discount > 100:
            raise ValidationError("discount percentage cannot exceed 100")
        discount_cents = (subtotal * discount + 50) // 100
    else:
        discount_cents = min(discount, subtotal)

    return subtotal, discount, max(0, subtotal - discount_cents)


def remaining_balance(previous_remaining: int, total: int, amount_paid: int) -> int:
    return max(0, int(previous_remaining) + int(total) - int(amount_paid))


def _latest_open_balance(customer_ref_id: int | None) -> int:
    if customer_ref_id is None:
        return 0
    q = Bill.query.filter(Bill.customer_ref_id == customer_ref_id, Bill.status != "cancelled")
    latest = q.order_by(Bill.created_at.desc(), Bill.id.desc()).first()
    return latest.remaining_amount_cents if latest else 0


def _income_source(bill: Bill) -> str | None:
    """Income is logged against the customer name; anonymous bills log none."""
    snapshot = bill.customer_snapshot or {}
    return snapshot.get("name")


def _line_signature(lines) -> list[tuple[int, int, int]]:
    return sorted(
        (line["product_id"], line["quantity"], line["selected_price_cents"]) for line in lines
    )


def _get_bill(bill_id: int, *, lock: bool = False) -> Bill:
    return fetch_row(Bill, bill_id, lock=lock)


# =============================================================================
# COMMISSION / SALE RECORDS
# =============================================================================

def _record_bill_commission(bill: Bill) -> int:
    """One Sale row per line plus commission for the bill's total quantity."""
    seller = commission_service.get_seller(bill.seller_id)
    snapshot = bill.customer_snapshot or {}

    records = []
    for item in bill.items:
        records.append({
            "product_id": item.product_id,
            "seller_id": seller.id,
            "customer_id": snapshot.get("id"),
            "product_name": item.name,
            "seller_name": seller.name,
            "customer_name": snapshot.get("name"),
            "quantity": item.quantity,
            "unit_price_cents": item.selected_price_cents,
            "total_cents": item.total_amount_cents,
            "commission_cents": commission_service.commission_for(seller, item.quantity),
            "is_customer_commission_sale": False,
            "source_type": "bill",
            "source_id": bill.id,
        })
    sale_ledger_service.insert_sales(records)

    total_quantity = sum(item.quantity for item in bill.items)
    return commission_service.accrue(seller, total_quantity)


def _rerecord_bill_commission(bill: Bill) -> int:
    sale_ledger_service.reverse_sales(sale_ledger_service.sales_for_source("bill", bill.id))
    return _record_bill_commission(bill)


# =============================================================================
# CREATE / UPDATE
# =============================================================================

def create_bill(
    *,
    seller_id,
    items,
    customer=None,
    discount=0,
    discount_type: str = "percentage",
    amount_paid_cents=0,
    previous_remaining_cents=None,
    payment_method: str = "cash",
    notes: str | None = None,
) -> OperationResult:
    """
    Create a bill, take its stock and record income and commission.

    Raises:
        ValidationError: missing seller id, bad items, unknown products
        InsufficientStockError: a line asks for more than is in stock
        NotFoundError: seller does not exist
    """
    if seller_id in (None, ""):
        raise ValidationError("Seller is required for billing")
    seller_id = coerce_int(seller_id, "seller_id")
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}")
    amount_paid = coerce_cents(amount_paid_cents, "amount_paid_cents", default=0)

    def _op():
        commission_service.get_seller(seller_id)
        snapshot = _embedded_customer(customer)
        lines, quantities = _resolve_items(items)

        # Read-then-check; the guarded UPDATE in apply_stock_plan is the real safety net
        stock_service.validate_stock_plan(stock_service.consumption_plan(quantities))

        subtotal, discount_value, total = compute_totals(lines, discount, discount_type)
        customer_ref_id = snapshot.get("id") if snapshot else None
        previous_remaining = coerce_cents(
            previous_remaining_cents,
            "previous_remaining_cents",
            default=_latest_open_balance(customer_ref_id),
        )

        bill = Bill(
            bill_number=document_service.next_bill_number(),
            seller_id=seller_id,
            customer_snapshot=snapshot,
            customer_ref_id=customer_ref_id,
            subtotal_cents=subtotal,
            discount=discount_value,
            discount_type=discount_type,
            total_cents=total,
            previous_remaining_cents=previous_remaining,
            amount_paid_cents=amount_paid,
            remaining_amount_cents=remaining_balance(previous_remaining, total, amount_paid),
            payment_method=payment_method,
            status="completed",
            notes=notes,
            items=[BillItem(**line) for line in lines],
        )
        db.session.add(bill)
        db.session.flush()

        stock_service.apply_stock_plan(
            stock_service.consumption_plan(quantities),
            reason="bill",
            source_type="bill",
            source_id=bill.id,
        )

        result = OperationResult(value=bill)
        if _income_source(bill):
            run_side_effect(result, "income", lambda: income_service.record_income(
                from_name=_income_source(bill),
                expected_amount_cents=total,
                amount_cents=amount_paid,
                bill_id=bill.id,
            ))
        run_side_effect(result, "seller_commission", lambda: _record_bill_commission(bill))

        db.session.commit()
        return result

    return run_with_retry(_op)


def update_bill(bill_id: int, data: dict) -> OperationResult:
    """
    Edit a bill's items, pricing and payment fields.

    Only the per-product net quantity change touches stock. The check is
    against effective stock (current stock + what this bill already holds).
    Commission and sale rows are re-recorded only when the lines changed.
    Omitted discount fields keep their stored values.
    """
    data = data or {}

    def _op():
        bill = _get_bill(bill_id, lock=True)
        if bill.status == "cancelled":
            raise ValidationError("Cancelled bills cannot be edited")

        old_quantities = bill.quantities()
        old_signature = _line_signature(item.to_dict() for item in bill.items)

        lines, new_quantities = _resolve_items(data.get("items"))
        plan = stock_service.diff_quantities(old_quantities, new_quantities)
        try:
            stock_service.validate_stock_plan(plan)
        except NotFoundError as exc:
            raise ValidationError(str(exc))

        discount_type = data.get("discount_type") or bill.discount_type
        payment_method = data.get("payment_method") or bill.payment_method
        if payment_method not in PAYMENT_METHODS:
            raise ValidationError(f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}")
        discount = data["discount"] if "discount" in data else bill.discount
        subtotal, discount_value, total = compute_totals(lines, discount, discount_type)
        amount_paid = coerce_cents(data.get("amount_paid_cents"), "amount_paid_cents", default=bill.amount_paid_cents)
        previous_remaining = coerce_cents(
            data.get("previous_remaining_cents"),
            "previous_remaining_cents",
            default=bill.previous_remaining_cents,
        )

        stock_service.apply_stock_plan(plan, reason="bill_update", source_type="bill", source_id=bill.id)

        if "customer" in data:
            snapshot = _embedded_customer(data.get("customer"))
            bill.customer_snapshot = snapshot
            bill.customer_ref_id = snapshot.get("id") if snapshot else None

        bill.items = [BillItem(**line) for line in lines]
        bill.subtotal_cents = subtotal
        bill.discount = discount_value
        bill.discount_type = discount_type
        bill.total_cents = total
        bill.previous_remaining_cents = previous_remaining
        bill.amount_paid_cents = amount_paid
        bill.remaining_amount_cents = remaining_balance(previous_remaining, total, amount_paid)
        bill.payment_method = payment_method
        if "notes" in data:
            bill.notes = data.get("notes")
        db.session.flush()

        result = OperationResult(value=bill)
        if _line_signature(lines) != old_signature:
            run_side_effect(result, "seller_commission", lambda: _rerecord_bill_commission(bill))

        db.session.commit()
        return result

    return run_with_retry(_op)


# =============================================================================
# PAYMENTS / STATUS
# =============================================================================

def add_bill_payment(bill_id: int, amount_cents, note: str | None = None) -> OperationResult:
    """Record a later payment: amount_paid up, remaining down (floored at 0), income logged."""
    try:
        paid_now = coerce_int(amount_cents, "amount_cents") if amount_cents not in (None, "") else 0
    except ValidationError:
        paid_now = 0
    if paid_now <= 0:
        raise ValidationError("Payment amount must be greater than 0")

    def _op():
        bill = _get_bill(bill_id, lock=True)

        bill.amount_paid_cents = int(bill.amount_paid_cents or 0) + paid_now
        bill.remaining_amount_cents = max(0, int(bill.remaining_amount_cents or 0) - paid_now)
        db.session.flush()

        result = OperationResult(value=bill)
        if _income_source(bill):
            run_side_effect(result, "income", lambda: income_service.record_income(
                from_name=_income_source(bill),
                expected_amount_cents=0,
                amount_cents=paid_now,
                bill_id=bill.id,
                note=note,
            ))

        db.session.commit()
        return result

    return run_with_retry(_op)


def cancel_bill(bill_id: int) -> Bill:
    """
    Cancel a bill.

    Stock comes back only when the bill was 'completed' and still holds its
    units. A 'pending' bill is cancelled without touching stock, and
    cancelling twice is a no-op.
    """
    def _op():
        bill = _get_bill(bill_id, lock=True)

        if bill.status == "completed" and bill.stock_held:
            stock_service.apply_stock_plan(
                stock_service.restore_plan(bill.quantities()),
                reason="bill_cancel",
                source_type="bill",
                source_id=bill.id,
            )
            bill.stock_held = False

        bill.status = "cancelled"
        db.session.commit()
        return bill

    return run_with_retry(_op)


def update_bill_status(bill_id: int, status: str) -> Bill:
    """
    Set the status field only; no stock or commission side effects.

    'cancelled' is final (400 on any other target status).
    """
    if status not in BILL_STATUSES:
        raise ValidationError("Invalid status")

    def _op():
        bill = _get_bill(bill_id, lock=True)
        if bill.status == "cancelled" and status != "cancelled":
            raise ValidationError("Cancelled bills cannot change status")
        bill.status = status
        db.session.commit()
        return bill

    return run_with_retry(_op)


# =============================================================================
# READS
# =============================================================================

def get_bill(bill_id: int) -> Bill:
    return _get_bill(bill_id)


def list_bills(
    *,
    page: int | None = None,
    per_page: int | None = None,
    status: str | None = None,
    customer_id: int | None = None,
    search: str | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
) -> dict:
    q = Bill.query
    if status:
        q = q.filter(Bill.status == status)
    if customer_id is not None:
        q = q.filter(Bill.customer_ref_id == customer_id)
    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(or_(
            Bill.bill_number.ilike(pattern),
            Bill.customer_snapshot["name"].as_string().ilike(pattern),
        ))
    try:
        start, end = parse_date_range(start_date, end_date)
    except ValueError:
        raise ValidationError("start_date/end_date must be ISO-8601 dates")
    if start is not None:
        q = q.filter(Bill.created_at >= start)
    if end is not None:
        q = q.filter(Bill.created_at < end)

    q = q.order_by(Bill.created_at.desc(), Bill.id.desc())
    return paginate(q, page=page, per_page=per_page)


def get_customer_history(customer_id: int, *, page: int | None = None, per_page: int | None = None) -> dict:
    """
    Bills for a customer plus totals. The latest bill's remaining amount is the
    customer's current outstanding balance.
    """
    base = Bill.query.filter(Bill.customer_ref_id == customer_id)

    stats = db.session.query(
        func.count(Bill.id),
        func.coalesce(func.sum(Bill.total_cents), 0),
        func.coalesce(func.avg(Bill.total_cents), 0),
        func.coalesce(func.sum(Bill.amount_paid_cents), 0),
    ).filter(Bill.customer_ref_id == customer_id).one()

    latest = base.order_by(Bill.created_at.desc(), Bill.id.desc()).first()

    listing = paginate(base.order_by(Bill.created_at.desc(), Bill.id.desc()), page=page, per_page=per_page)
    listing["stats"] = {
        "total_purchases": int(stats[0] or 0),
        "total_amount_cents": int(stats[1] or 0),
        "average_order_value_cents": int(round(float(stats[2] or 0))),
        "total_paid_cents": int(stats[3] or 0),
        "total_remaining_cents": latest.remaining_amount_cents if latest else 0,
    }
    return listing


def get_last_product_price(customer_id: int, product_id: int) -> dict:
    """The unit price this customer last paid for a product, from the sale ledger."""
    sale = (
        Sale.query.filter_by(customer_id=customer_id, product_id=product_id)
        .order_by(Sale.created_at.desc(), Sale.id.desc())
        .first()
    )
    if sale is None:
        return {"found": False}
    return {
        "found": True,
        "unit_price_cents": sale.unit_price_cents,
        "date": sale.to_dict()["created_at"],
    }
