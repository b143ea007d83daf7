# Overview: Flask API routes for bills operations; parses input and returns JSON responses.

# backend/backoffice/routes/bills.py
"""
Bill (invoice) routes.

WHY: Bills are how stock leaves the shop and how customers build up a
running balance.

DESIGN:
- POST creates a completed bill: stock consumed, income logged, seller
  commission and sale records written
- PUT edits items and pricing; stock moves by the per-product delta only
- DELETE cancels (stock restored when the bill was completed); bills are
  never hard-deleted
- Income/commission failures come back under "warnings"
"""
from flask import Blueprint, request, jsonify

from ..services import bill_service
from ..validation import ValidationError, NotFoundError
from .responses import error_body, internal_error, result_body


bills_bp = Blueprint("bills", __name__, url_prefix="/api/bills")


# =============================================================================
# LISTING
# =============================================================================

@bills_bp.get("")
def list_bills():
    """
    Query params:
    - page, per_page (default 20, max 100)
    - status: pending | completed | cancelled
    - customer_id: int
    - search: bill number or customer name
    - start_date, end_date: ISO-8601
    """
    try:
        result = bill_service.list_bills(
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
            status=request.args.get("status"),
            customer_id=request.args.get("customer_id", type=int),
            search=request.args.get("search"),
            start_date=request.args.get("start_date"),
            end_date=request.args.get("end_date"),
        )
        return jsonify(result)
    except ValidationError as e:
        return jsonify(error_body(e)), 400
    except Exception as e:
        return internal_error(e, "Failed to list bills")


@bills_bp.get("/customer/<int:customer_id>/history")
def customer_history(customer_id: int):
    try:
        result = bill_service.get_customer_history(
            customer_id,
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify(result)
    except Exception as e:
        return internal_error(e, "Failed to load customer bill history")


@bills_bp.get("/customer/<int:customer_id>/last-price")
def customer_last_price(customer_id: int):
    product_id = request.args.get("product_id", type=int)
    if product_id is None:
        return jsonify({"error": "product_id is required"}), 400
    try:
        return jsonify(bill_service.get_last_product_price(customer_id, product_id))
    except Exception as e:
        return internal_error(e, "Failed to load last product price")


# =============================================================================
# BILL LIFECYCLE
# =============================================================================

@bills_bp.post("")
def create_bill_route():
    """
    Request body:
    {
        "seller_id": 1,
        "customer": {"id": 7, "name": "Ayesha", "phone": "..."},  (optional)
        "items": [
            {"product_id": 1, "quantity": 3, "selected_price_type": "retail_price"},
            {"product_id": 2, "quantity": 1, "selected_price_cents": 12500}
        ],
        "discount": 10,  (optional)
        "discount_type": "percentage" | "fixed",  (optional)
        "amount_paid_cents": 5000,  (optional)
        "previous_remaining_cents": 0,  (optional)
        "payment_method": "cash",  (optional)
        "notes": "..."  (optional)
    }

    Returns:
        201: Bill created (with "warnings" when a side effect failed)
        400: Invalid input, unknown product or insufficient stock
        404: Seller not found
    """
    data = request.get_json(silent=True) or {}
    try:
        result = bill_service.create_bill(
            seller_id=data.get("seller_id"),
            items=data.get("items"),
            customer=data.get("customer"),
            discount=data.get("discount", 0),
            discount_type=data.get("discount_type") or "percentage",
            amount_paid_cents=data.get("amount_paid_cents", 0),
            previous_remaining_cents=data.get("previous_remaining_cents"),
            payment_method=data.get("payment_method") or "cash",
            notes=data.get("notes"),
        )
        return jsonify(result_body(result, result.value.to_dict())), 201
    except ValidationError as e:
        return jsonify(error_body(e)), 400
    except NotFoundError as e:
        return jsonify(error_body(e)), 404
    except Exception as e:
        return internal_error(e, "Failed to create bill")


@bills_bp.get("/<int:bill_id>")
def get_bill_route(bill_id: int):
    try:
        return jsonify(bill_service.get_bill(bill_id).to_dict())
    except NotFoundError as e:
        return jsonify(error_body(e)), 404


@bills_bp.put("/<int:bill_id>")
def update_bill_route(bill_id: int):
    data = request.get_json(silent=True) or {}
    try:
        result = bill_service.update_bill(bill_id, data)
        return jsonify(result_body(result, result.value.to_dict()))
    except ValidationError as e:
        return jsonify(error_body(e)), 400
    except NotFoundError as e:
        return jsonify(error_body(e)), 404
    except Exception as e:
        return internal_error(e, "Failed to update bill")


@bills_bp.delete("/<int:bill_id>")
def cancel_bill_route(bill_id: int):
    try:
        bill = bill_service.cancel_bill(bill_id)
        return jsonify({"message": "Bill cancelled", "bill": bill.to_dict()})
    except NotFoundError as e:
        return jsonify(error_body(e)), 404
    except Exception as e:
        return internal_error(e, "Failed to cancel bill")


@bills_bp.patch("/<int:bill_id>/status")
def update_status_route(bill_id: int):
    data = request.get_json(silent=True) or {}
    try:
        bill = bill_service.update_bill_status(bill_id, data.get("status"))
        return jsonify(bill.to_dict())
    except ValidationError as e:
        return jsonify(error_body(e)), 400
    except NotFoundError as e:
        return jsonify(error_body(e)), 404
    except Exception as e:
        return internal_error(e, "Failed to update bill status")


@bills_bp.post("/<int:bill_id>/payments")
def add_payment_route(bill_id: int):
    """
    Request body:
    {
        "amount_cents": 5000,
        "note": "Second installment"  (optional)
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        result = bill_service.add_bill_payment(bill_id, data.get("amount_cents"), data.get("note"))
        return jsonify(result_body(result, result.value.to_dict()))
    except ValidationError as e:
        return jsonify(error_body(e)), 400
    except NotFoundError as e:
        return jsonify(error_body(e)), 404
    except Exception as e:
        return internal_error(e, "Failed to add bill payment")
