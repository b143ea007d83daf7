# Overview: Service-layer operations for sellers; encapsulates business logic and database work.

"""
Seller records.

Earned commission (commission_cents, total_commission_cents) is not editable
here; only commission_service moves it. Sellers get a generated temporary
password on create, stored as a bcrypt hash and returned once.
"""

from __future__ import annotations

import secrets

import bcrypt

from ..extensions import db
from ..models import Bill, Customer, Sale, Seller
from ..validation import ConflictError, ModelValidationPolicy, validate_payload, enforce_money
from . import sale_ledger_service
from .commission_service import get_seller
from .concurrency import run_with_retry


SELLER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "phone", "basic_salary_cents", "commission_rate_cents", "is_active"},
    required_on_create={"name"},
)

LEADERBOARD_SIZE = 10


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=12)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def _validate(payload: dict, *, partial: bool) -> dict:
    patch = validate_payload(model=Seller, payload=payload or {}, policy=SELLER_POLICY, partial=partial)
    enforce_money(patch, ["basic_salary_cents", "commission_rate_cents"])
    return patch


def create_seller(payload: dict) -> tuple[Seller, str]:
    """Returns (seller, temporary_password)."""
    patch = _validate(payload, partial=False)

    def _op():
        temporary_password = secrets.token_urlsafe(12)
        seller = Seller(**patch)
        seller.commission_cents = 0
        seller.total_commission_cents = 0
        seller.password_hash = hash_password(temporary_password)
        db.session.add(seller)
        db.session.commit()
        return seller, temporary_password

    return run_with_retry(_op)


def update_seller(seller_id: int, payload: dict) -> Seller:
    patch = _validate(payload, partial=True)

    def _op():
        seller = get_seller(seller_id, lock=True)
        for key, value in patch.items():
            setattr(seller, key, value)
        db.session.commit()
        return seller

    return run_with_retry(_op)


def delete_seller(seller_id: int) -> None:
    def _op():
        seller = get_seller(seller_id, lock=True)
        referenced = (
            Sale.query.filter_by(seller_id=seller.id).first() is not None
            or Bill.query.filter_by(seller_id=seller.id).first() is not None
            or Customer.query.filter_by(seller_id=seller.id).first() is not None
        )
        if referenced:
            raise ConflictError("Seller has sales, bills or customers and cannot be deleted")
        db.session.delete(seller)
        db.session.commit()

    return run_with_retry(_op)


def list_sellers() -> list[Seller]:
    return Seller.query.order_by(Seller.total_commission_cents.desc(), Seller.id.asc()).all()


def leaderboard() -> list[Seller]:
    return (
        Seller.query
        .order_by(Seller.total_commission_cents.desc(), Seller.id.asc())
        .limit(LEADERBOARD_SIZE)
        .all()
    )


def get_seller_with_sales(seller_id: int) -> dict:
    seller = get_seller(seller_id)
    sales = sale_ledger_service.list_sales(seller_id=seller.id)
    return {
        "seller": seller.to_dict(),
        "sales": [sale.to_dict() for sale in sales],
    }
