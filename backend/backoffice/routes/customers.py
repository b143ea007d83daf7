# Overview: Flask API routes for customers operations; parses input and returns JSON responses.

# backend/backoffice/routes/customers.py
"""
Customer routes.

Creating, editing and deleting customers moves stock and seller commission.
Commission failures do not fail the request; they come back under "warnings".
"""
from flask import Blueprint, request, jsonify

from ..services import customer_service
from ..validation import ValidationError, NotFoundError
from .responses import error_body, internal_error, result_body


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
def list_customers():
    """
    Query params:
    - type: online | offline
    - seller_id: int
    - search: matches name or phone
    """
    try:
        customers = customer_service.list_customers(
            customer_type=request.args.get("type"),
            seller_id=request.args.get("seller_id", type=int),
            search=request.args.get("search"),
        )
        return jsonify([c.to_dict() for c in customers])
    except ValidationError as e:
        return jsonify(error_body(e)), 400
    except Exception as e:
        return internal_error(e, "Failed to list customers")


@customers_bp.post("")
def create_customer_route():
    """
    Request body:
    {
        "name": "Ayesha",
        "type": "online",
        "seller_id": 3,  (optional)
        "price_cents": 150000,  (optional, commission base)
        "products_info": [{"product_id": 1, "quantity": 2}]
    }
    """
    payload = request.get_json(silent=True) or {}
    try:
        result = customer_service.create_customer(payload)
        return jsonify(result_body(result, result.value.to_dict())), 201
    except ValidationError as e:
        return jsonify(error_body(e)), 400
    except NotFoundError as e:
        return jsonify(error_body(e)), 404
    except Exception as e:
        return internal_error(e, "Failed to create customer")


@customers_bp.get("/commissions/preview")
def preview_commissions():
    try:
        return jsonify(customer_service.preview_online_customer_commissions())
    except Exception as e:
        return internal_error(e, "Failed to preview online customer commissions")


@customers_bp.post("/commissions/backfill")
def backfill_commissions():
    try:
        summary = customer_service.backfill_online_customer_commissions()
        summary["message"] = "Backfill completed"
        return jsonify(summary)
    except Exception as e:
        return internal_error(e, "Failed to backfill online customer commissions")


@customers_bp.get("/<int:customer_id>")
def get_customer_route(customer_id: int):
    """Customer plus purchase history (sale records)."""
    try:
        return jsonify(customer_service.get_customer_with_purchases(customer_id))
    except NotFoundError as e:
        return jsonify(error_body(e)), 404


@customers_bp.put("/<int:customer_id>")
def update_customer_route(customer_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        result = customer_service.update_customer(customer_id, payload)
        return jsonify(result_body(result, result.value.to_dict()))
    except ValidationError as e:
        return jsonify(error_body(e)), 400
    except NotFoundError as e:
        return jsonify(error_body(e)), 404
    except Exception as e:
        return internal_error(e, "Failed to update customer")


@customers_bp.delete("/<int:customer_id>")
def delete_customer_route(customer_id: int):
    try:
        result = customer_service.delete_customer(customer_id)
        return jsonify(result_body(result, {"message": "Customer deleted"}))
    except NotFoundError as e:
        return jsonify(error_body(e)), 404
    except Exception as e:
        return internal_error(e, "Failed to delete customer")
