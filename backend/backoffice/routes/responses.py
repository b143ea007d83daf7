# Overview: Shared JSON error and success bodies for the API routes.

from __future__ import annotations

from flask import current_app, jsonify

from ..services.side_effects import OperationResult


def error_body(exc: Exception) -> dict:
    body = {"error": str(exc)}
    details = getattr(exc, "details", None)
    if details:
        body["details"] = details
    return body


def internal_error(exc: Exception, message: str):
    """Log an unexpected failure and build the 500 response."""
    current_app.logger.exception(message)
    if current_app.config.get("EXPOSE_INTERNAL_ERRORS"):
        return jsonify({"error": str(exc) or message}), 500
    return jsonify({"error": "Internal server error"}), 500


def result_body(result: OperationResult, payload: dict) -> dict:
    """Attach degraded side effects to a success body."""
    if result.degraded:
        payload["warnings"] = result.warnings()
    return payload
