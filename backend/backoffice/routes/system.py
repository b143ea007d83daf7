# backend/backoffice/routes/system.py
"""
Health endpoint.

Reports database reachability plus the ledger counts operators look at first
when stock looks wrong: products, products at/below their low-stock alert,
and the current bill counter.
"""

import time

from flask import Blueprint, current_app, jsonify

from ..extensions import db
from ..models import DocumentSequence, Product
from backoffice.time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """Run the ledger count queries; any database error marks the check unhealthy."""
    started = time.perf_counter()
    try:
        products = db.session.query(Product).count()
        low_stock = (
            db.session.query(Product)
            .filter(Product.stock <= Product.low_stock_alert)
            .count()
        )
        bill_counter = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(document_type="BILL")
            .scalar()
        )
        status = {
            "status": "healthy",
            "details": {
                "products": products,
                "low_stock_products": low_stock,
                "next_bill_number": bill_counter or 1,
            },
        }
    except Exception:
        current_app.logger.exception("Database health check failed")
        db.session.rollback()
        status = {"status": "unhealthy", "error": "Database error"}

    status["latency_ms"] = round((time.perf_counter() - started) * 1000, 2)
    return status


@system_bp.get("/health")
def health():
    """200 when the database answers, 503 otherwise."""
    database = check_database_health()
    code = 200 if database["status"] == "healthy" else 503
    return jsonify({
        "status": database["status"],
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database},
    }), code
