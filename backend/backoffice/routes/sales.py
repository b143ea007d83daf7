# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/backoffice/routes/sales.py
from flask import Blueprint, request, jsonify

from ..services import sale_ledger_service
from ..validation import ValidationError, NotFoundError
from .responses import error_body, internal_error, result_body


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.get("")
def list_sales():
    """
    Query params:
    - seller_id, customer_id: int
    - limit: max rows (default 500)
    """
    limit = request.args.get("limit", default=500, type=int)
    try:
        sales = sale_ledger_service.list_sales(
            seller_id=request.args.get("seller_id", type=int),
            customer_id=request.args.get("customer_id", type=int),
            limit=max(1, min(limit, 5000)),
        )
        return jsonify([s.to_dict() for s in sales])
    except Exception as e:
        return internal_error(e, "Failed to list sales")


@sales_bp.post("")
def create_sale_route():
    """
    Manual sale outside a bill: takes stock and credits the seller.

    Request body:
    {
        "product_id": 1,
        "seller_id": 2,
        "customer_id": 3,
        "quantity": 1,
        "unit_price_cents": 12500  (optional, defaults to the original price)
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        result = sale_ledger_service.create_sale(
            product_id=data.get("product_id"),
            seller_id=data.get("seller_id"),
            customer_id=data.get("customer_id"),
            quantity=data.get("quantity"),
            unit_price_cents=data.get("unit_price_cents"),
        )
        return jsonify(result_body(result, result.value.to_dict())), 201
    except ValidationError as e:
        return jsonify(error_body(e)), 400
    except NotFoundError as e:
        return jsonify(error_body(e)), 404
    except Exception as e:
        return internal_error(e, "Failed to create sale")


@sales_bp.get("/<int:sale_id>")
def get_sale_route(sale_id: int):
    try:
        return jsonify(sale_ledger_service.get_sale(sale_id).to_dict())
    except NotFoundError as e:
        return jsonify(error_body(e)), 404


@sales_bp.delete("/<int:sale_id>")
def delete_sale_route(sale_id: int):
    """Removes the record only; stock and commission stay as they are."""
    try:
        sale_ledger_service.delete_sale(sale_id)
        return jsonify({"message": "Sale deleted"})
    except NotFoundError as e:
        return jsonify(error_body(e)), 404
    except Exception as e:
        return internal_error(e, "Failed to delete sale")
