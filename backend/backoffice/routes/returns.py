# Overview: Flask API routes for returns operations; parses input and returns JSON responses.

# backend/backoffice/routes/returns.py
"""
Returned goods.

A return always succeeds once validated: the units go straight back into
stock. There is no update or delete route.
"""
from flask import Blueprint, request, jsonify

from ..services import return_service
from ..validation import ValidationError, NotFoundError
from .responses import error_body, internal_error


returns_bp = Blueprint("returns", __name__, url_prefix="/api/returns")


@returns_bp.post("")
def create_return_route():
    """
    Request body:
    {
        "product_id": 1,
        "quantity": 2,
        "unit_price_cents": 12500,
        "tracking_id": "LCS-99812",
        "customer_name": "Bilal",  (optional)
        "notes": "Damaged box"  (optional)
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        record = return_service.create_return(
            product_id=data.get("product_id"),
            quantity=data.get("quantity"),
            unit_price_cents=data.get("unit_price_cents"),
            tracking_id=data.get("tracking_id"),
            notes=data.get("notes"),
            customer_name=data.get("customer_name"),
        )
        return jsonify(record.to_dict()), 201
    except ValidationError as e:
        return jsonify(error_body(e)), 400
    except NotFoundError as e:
        return jsonify(error_body(e)), 404
    except Exception as e:
        return internal_error(e, "Failed to create return")


@returns_bp.get("")
def list_returns():
    try:
        records = return_service.list_returns(search=request.args.get("search"))
        return jsonify([r.to_dict() for r in records])
    except Exception as e:
        return internal_error(e, "Failed to load returns")
