# Overview: Flask API routes for sellers operations; parses input and returns JSON responses.

# backend/backoffice/routes/sellers.py
from flask import Blueprint, request, jsonify

from ..services import seller_service
from ..validation import ValidationError, ConflictError, NotFoundError
from .responses import error_body, internal_error


sellers_bp = Blueprint("sellers", __name__, url_prefix="/api/sellers")


@sellers_bp.get("")
def list_sellers():
    """Sellers ordered by lifetime commission, highest first."""
    try:
        return jsonify([s.to_dict() for s in seller_service.list_sellers()])
    except Exception as e:
        return internal_error(e, "Failed to list sellers")


@sellers_bp.get("/leaderboard")
def leaderboard():
    try:
        return jsonify([s.to_dict() for s in seller_service.leaderboard()])
    except Exception as e:
        return internal_error(e, "Failed to load seller leaderboard")


@sellers_bp.post("")
def create_seller_route():
    """
    Create a seller. The response carries a one-time temporary password; only
    its bcrypt hash is stored.
    """
    payload = request.get_json(silent=True) or {}
    try:
        seller, temporary_password = seller_service.create_seller(payload)
        return jsonify({
            "seller": seller.to_dict(),
            "temporary_password": temporary_password,
            "message": "Seller created",
        }), 201
    except ValidationError as e:
        return jsonify(error_body(e)), 400
    except Exception as e:
        return internal_error(e, "Failed to create seller")


@sellers_bp.get("/<int:seller_id>")
def get_seller_route(seller_id: int):
    try:
        return jsonify(seller_service.get_seller_with_sales(seller_id))
    except NotFoundError as e:
        return jsonify(error_body(e)), 404


@sellers_bp.put("/<int:seller_id>")
def update_seller_route(seller_id: int):
    """Editable fields only; earned commission cannot be set here."""
    payload = request.get_json(silent=True) or {}
    try:
        return jsonify(seller_service.update_seller(seller_id, payload).to_dict())
    except ValidationError as e:
        return jsonify(error_body(e)), 400
    except NotFoundError as e:
        return jsonify(error_body(e)), 404
    except Exception as e:
        return internal_error(e, "Failed to update seller")


@sellers_bp.delete("/<int:seller_id>")
def delete_seller_route(seller_id: int):
    try:
        seller_service.delete_seller(seller_id)
        return jsonify({"message": "Seller deleted"})
    except NotFoundError as e:
        return jsonify(error_body(e)), 404
    except ConflictError as e:
        return jsonify(error_body(e)), 409
    except Exception as e:
        return internal_error(e, "Failed to delete seller")
