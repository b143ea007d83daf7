# Overview: Flask API routes for parcels operations; parses input and returns JSON responses.

# backend/backoffice/routes/parcels.py
from flask import Blueprint, request, jsonify

from ..services import parcel_service
from ..validation import ValidationError, NotFoundError
from .responses import error_body, internal_error


parcels_bp = Blueprint("parcels", __name__, url_prefix="/api/parcels")


@parcels_bp.get("")
def list_parcels():
    """
    Query params:
    - tracking: partial tracking number match
    - status: processing | delivered | return
    - payment_status: paid | unpaid
    """
    try:
        parcels = parcel_service.list_parcels(
            tracking=request.args.get("tracking"),
            status=request.args.get("status"),
            payment_status=request.args.get("payment_status"),
        )
        return jsonify([p.to_dict() for p in parcels])
    except Exception as e:
        return internal_error(e, "Failed to fetch parcels")


@parcels_bp.post("")
def create_parcel_route():
    """
    Request body:
    {
        "tracking_number": "LCS-99812",
        "customer_name": "Bilal",
        "address": "...",
        "products": [{"product_id": 1, "quantity": 2}],
        "status": "processing",  (optional)
        "payment_status": "unpaid",  (optional)
        "cod_amount_cents": 250000  (optional)
    }
    """
    payload = request.get_json(silent=True) or {}
    try:
        parcel = parcel_service.create_parcel(payload)
        return jsonify(parcel.to_dict()), 201
    except ValidationError as e:
        return jsonify(error_body(e)), 400
    except NotFoundError as e:
        return jsonify(error_body(e)), 404
    except Exception as e:
        return internal_error(e, "Failed to create parcel")


@parcels_bp.get("/<int:parcel_id>")
def get_parcel_route(parcel_id: int):
    try:
        return jsonify(parcel_service.get_parcel(parcel_id).to_dict())
    except NotFoundError as e:
        return jsonify(error_body(e)), 404


@parcels_bp.put("/<int:parcel_id>")
def update_parcel_route(parcel_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        return jsonify(parcel_service.update_parcel(parcel_id, payload).to_dict())
    except ValidationError as e:
        return jsonify(error_body(e)), 400
    except NotFoundError as e:
        return jsonify(error_body(e)), 404
    except Exception as e:
        return internal_error(e, "Failed to update parcel")


@parcels_bp.patch("/<int:parcel_id>/status")
def update_parcel_status_route(parcel_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        parcel = parcel_service.update_parcel_status(
            parcel_id,
            status=payload.get("status"),
            payment_status=payload.get("payment_status"),
        )
        return jsonify(parcel.to_dict())
    except ValidationError as e:
        return jsonify(error_body(e)), 400
    except NotFoundError as e:
        return jsonify(error_body(e)), 404
    except Exception as e:
        return internal_error(e, "Failed to update parcel status")


@parcels_bp.delete("/<int:parcel_id>")
def delete_parcel_route(parcel_id: int):
    try:
        parcel_service.delete_parcel(parcel_id)
        return jsonify({"message": "Parcel deleted"})
    except NotFoundError as e:
        return jsonify(error_body(e)), 404
    except Exception as e:
        return internal_error(e, "Failed to delete parcel")
