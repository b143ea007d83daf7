# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/backoffice/routes/products.py
"""
Product catalog routes.

Stock is never written through PUT; it moves through POST /<id>/stock and the
bill/customer/parcel/return managers. Every change is visible in
GET /<id>/stock-history.
"""
from flask import Blueprint, request, jsonify

from ..services import product_service
from ..validation import ValidationError, ConflictError, NotFoundError
from .responses import error_body, internal_error


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
def list_products():
    """
    Query params:
    - search: matches name or model
    - category: exact category
    """
    try:
        products = product_service.list_products(
            search=request.args.get("search"),
            category=request.args.get("category"),
        )
        return jsonify([p.to_dict() for p in products])
    except Exception as e:
        return internal_error(e, "Failed to list products")


@products_bp.get("/low-stock")
def list_low_stock():
    try:
        return jsonify([p.to_dict() for p in product_service.list_low_stock()])
    except Exception as e:
        return internal_error(e, "Failed to list low stock products")


@products_bp.post("")
def create_product_route():
    """
    Create a product. An initial "stock" value is recorded as an 'initial'
    stock movement.
    """
    payload = request.get_json(silent=True) or {}
    try:
        product = product_service.create_product(payload)
        return jsonify(product.to_dict()), 201
    except ValidationError as e:
        return jsonify(error_body(e)), 400
    except ConflictError as e:
        return jsonify(error_body(e)), 409
    except Exception as e:
        return internal_error(e, "Failed to create product")


@products_bp.get("/<int:product_id>")
def get_product_route(product_id: int):
    try:
        return jsonify(product_service.get_product(product_id).to_dict())
    except NotFoundError as e:
        return jsonify(error_body(e)), 404


@products_bp.put("/<int:product_id>")
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        product = product_service.update_product(product_id, payload)
        return jsonify(product.to_dict())
    except ValidationError as e:
        return jsonify(error_body(e)), 400
    except NotFoundError as e:
        return jsonify(error_body(e)), 404
    except ConflictError as e:
        return jsonify(error_body(e)), 409
    except Exception as e:
        return internal_error(e, "Failed to update product")


@products_bp.delete("/<int:product_id>")
def delete_product_route(product_id: int):
    try:
        product_service.delete_product(product_id)
        return jsonify({"message": "Product deleted"})
    except NotFoundError as e:
        return jsonify(error_body(e)), 404
    except ConflictError as e:
        return jsonify(error_body(e)), 409
    except Exception as e:
        return internal_error(e, "Failed to delete product")


@products_bp.post("/<int:product_id>/stock")
def add_stock_route(product_id: int):
    """
    Request body:
    {
        "quantity": 5,
        "reason": "Supplier delivery",  (optional)
        "notes": "PO 1182"  (optional)
    }
    """
    payload = request.get_json(silent=True) or {}
    try:
        result = product_service.add_stock(
            product_id,
            payload.get("quantity"),
            reason=payload.get("reason"),
            note=payload.get("notes"),
        )
        result["message"] = "Stock added successfully"
        return jsonify(result)
    except ValidationError as e:
        return jsonify(error_body(e)), 400
    except NotFoundError as e:
        return jsonify(error_body(e)), 404
    except Exception as e:
        return internal_error(e, "Failed to add stock")


@products_bp.get("/<int:product_id>/stock-history")
def stock_history_route(product_id: int):
    limit = request.args.get("limit", default=200, type=int)
    try:
        return jsonify(product_service.stock_history(product_id, limit=max(1, min(limit, 1000))))
    except NotFoundError as e:
        return jsonify(error_body(e)), 404
