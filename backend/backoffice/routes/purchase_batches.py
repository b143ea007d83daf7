# Overview: Flask API routes for supplier purchase batches; parses input and returns JSON responses.

# backend/backoffice/routes/purchase_batches.py
from flask import Blueprint, request, jsonify

from ..services import purchase_batch_service
from ..validation import ValidationError, NotFoundError
from .responses import error_body, internal_error


purchase_batches_bp = Blueprint("purchase_batches", __name__, url_prefix="/api/purchase-batches")


@purchase_batches_bp.get("")
def list_purchase_batches():
    """
    Query params:
    - limit: max rows (default 50, capped at 200)
    - start_date / end_date: purchase date bounds (ISO-8601)
    """
    try:
        batches = purchase_batch_service.list_purchase_batches(
            limit=request.args.get("limit"),
            start_date=request.args.get("start_date"),
            end_date=request.args.get("end_date"),
        )
        return jsonify([b.to_dict() for b in batches])
    except ValidationError as e:
        return jsonify(error_body(e)), 400
    except Exception as e:
        return internal_error(e, "Failed to fetch purchase batches")


@purchase_batches_bp.post("")
def create_purchase_batch_route():
    """
    Request body:
    {
        "supplier_name": "Karachi Traders",
        "batch_number": "KT-0412",  (optional)
        "purchase_date": "2024-06-11",  (optional, defaults to now)
        "notes": "...",  (optional)
        "items": [{"product_id": 1, "quantity": 20, "unit_price_cents": 9000}]
    }
    """
    payload = request.get_json(silent=True) or {}
    try:
        batch = purchase_batch_service.create_purchase_batch(payload)
        return jsonify(batch.to_dict()), 201
    except ValidationError as e:
        return jsonify(error_body(e)), 400
    except Exception as e:
        return internal_error(e, "Failed to create purchase batch")


@purchase_batches_bp.get("/<int:batch_id>")
def get_purchase_batch_route(batch_id: int):
    try:
        batch = purchase_batch_service.get_purchase_batch(batch_id)
        return jsonify(batch.to_dict())
    except NotFoundError as e:
        return jsonify(error_body(e)), 404
    except Exception as e:
        return internal_error(e, "Failed to fetch purchase batch")
