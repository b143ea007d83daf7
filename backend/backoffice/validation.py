# Overview: Domain error types and request payload validation shared by every service.

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable

from sqlalchemy import Boolean, DateTime, Integer, String, Text

from backoffice.time_utils import parse_iso_datetime


# Largest money amount accepted from clients: 9,999,999.99
MAX_AMOUNT_CENTS = 999_999_999


class ValidationError(ValueError):
    """Bad input (400). details carries structured context, e.g. failing stock lines."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class ConflictError(ValueError):
    """State conflict (409): duplicate product model, deleting a referenced row."""


class NotFoundError(LookupError):
    """Missing entity (404)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Which payload keys a model accepts.

    - writable_fields: scalar columns clients may set
    - required_on_create: must be present and non-blank on create
    - ignored_fields: keys the service reads itself (product lines, stock)
    """
    writable_fields: frozenset[str] | set[str]
    required_on_create: frozenset[str] | set[str] = frozenset()
    ignored_fields: frozenset[str] | set[str] = frozenset()


# =============================================================================
# SCALAR COERCION
# =============================================================================

def coerce_int(value: Any, field: str) -> int:
    """
    Whole numbers only. Integral floats (2.0) pass; bools, decimals and
    scientific notation ("1e3") do not.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if value.is_integer():
            return int(value)
        raise ValidationError(f"{field} must be an integer, not a decimal")
    if isinstance(value, str):
        text = value.strip()
        if "e" in text.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if "." in text:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(text)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    raise ValidationError(f"{field} must be an integer")


def require_positive_int(value: Any, field: str) -> int:
    if value in (None, ""):
        raise ValidationError(f"{field} is required")
    number = coerce_int(value, field)
    if number <= 0:
        raise ValidationError(f"{field} must be a positive number")
    return number


def coerce_cents(value: Any, field: str, *, default: int | None = None) -> int:
    """Money in cents; a missing value takes default, or is an error without one."""
    if value in (None, ""):
        if default is None:
            raise ValidationError(f"{field} is required")
        return default
    amount = coerce_int(value, field)
    _check_money_range(field, amount)
    return amount


def _check_money_range(field: str, amount: int) -> None:
    if amount < 0:
        raise ValidationError(f"{field} must be >= 0")
    if amount > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} cannot exceed {MAX_AMOUNT_CENTS}")


def _clean_column_value(column, value: Any) -> Any:
    """Coerce one JSON value to what the column stores."""
    key = column.key
    kind = column.type

    if isinstance(kind, Integer):
        return coerce_int(value, key)

    if isinstance(kind, Boolean):
        if not isinstance(value, bool):
            raise ValidationError(f"{key} must be true or false")
        return value

    if isinstance(kind, DateTime):
        if isinstance(value, datetime):
            return value
        if not isinstance(value, str):
            raise ValidationError(f"{key} must be an ISO-8601 datetime")
        try:
            parsed = parse_iso_datetime(value)
        except ValueError:
            parsed = None
        if parsed is None:
            raise ValidationError(f"{key} must be an ISO-8601 datetime")
        return parsed

    if isinstance(kind, (String, Text)):
        text = str(value).strip()
        if not column.nullable and not text:
            raise ValidationError(f"{key} cannot be blank")
        if isinstance(kind, String) and kind.length and len(text) > kind.length:
            raise ValidationError(f"{key} exceeds max length {kind.length}")
        return text

    return value


# =============================================================================
# PAYLOADS
# =============================================================================

def validate_payload(*, model, payload: dict, policy: ModelValidationPolicy, partial: bool) -> dict:
    """
    Clean a JSON body into a column patch for model.

    Keys outside writable_fields that are not ignored raise ValidationError
    (e.g. "commission_cents" on a seller). partial=True validates only the
    keys present (PUT/PATCH); partial=False also enforces required_on_create.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(f for f in policy.required_on_create if payload.get(f) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    columns = {c.key: c for c in model.__mapper__.columns}
    patch: dict = {}
    for key, raw in payload.items():
        if key in policy.ignored_fields:
            continue
        if key not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {key}")
        column = columns.get(key)
        if column is None:
            raise ValidationError(f"Unknown field: {key}")

        if raw is None:
            if not column.nullable:
                raise ValidationError(f"{key} cannot be null")
            patch[key] = None
        else:
            patch[key] = _clean_column_value(column, raw)
    return patch


def enforce_money(patch: dict, fields: Iterable[str]) -> None:
    """Range-check the *_cents fields present in a cleaned patch."""
    for name in fields:
        if patch.get(name) is not None:
            _check_money_range(name, patch[name])


def enforce_choice(patch: dict, field: str, choices: Iterable[str]) -> None:
    if patch.get(field) is not None and patch[field] not in choices:
        raise ValidationError(f"{field} must be one of: {', '.join(sorted(choices))}")
