# Overview: Service-layer operations for the product catalog; encapsulates business logic and database work.

"""
Product Catalog

Plain CRUD around the stock ledger:
- stock is not writable through update_product; it only moves through
  stock_service (initial stock on create, add_stock, and the managers).
- model is unique (409 on duplicates).
- A product referenced by bills, customers, parcels, sales, returns or
  purchase batches cannot be deleted (409); its stock history goes with it
  otherwise.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..models import (
    BillItem,
    Customer,
    CustomerProduct,
    ParcelItem,
    PurchaseBatchItem,
    Product,
    Return,
    Sale,
)
from ..validation import (
    ValidationError,
    ConflictError,
    ModelValidationPolicy,
    validate_payload,
    enforce_money,
    coerce_int,
    require_positive_int,
)
from . import stock_service
from .concurrency import run_with_retry


PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "model", "category",
        "original_price_cents", "wholesale_price_cents", "retail_price_cents", "website_price_cents",
        "low_stock_alert",
    },
    required_on_create={"name", "model", "category"},
    ignored_fields={"stock"},
)

PRICE_FIELDS = ["original_price_cents", "wholesale_price_cents", "retail_price_cents", "website_price_cents"]


def _validate(payload: dict, *, partial: bool) -> dict:
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=partial)
    enforce_money(patch, PRICE_FIELDS)
    if patch.get("low_stock_alert") is not None and patch["low_stock_alert"] < 0:
        raise ValidationError("low_stock_alert must be >= 0")
    return patch


def _ensure_unique_model(model: str, *, exclude_id: int | None = None) -> None:
    q = Product.query.filter(Product.model == model)
    if exclude_id is not None:
        q = q.filter(Product.id != exclude_id)
    if q.first() is not None:
        raise ConflictError("A product with this model already exists")


def create_product(payload: dict) -> Product:
    payload = payload or {}
    patch = _validate(payload, partial=False)
    initial_stock = payload.get("stock")
    initial_stock = 0 if initial_stock in (None, "") else coerce_int(initial_stock, "stock")
    if initial_stock < 0:
        raise ValidationError("stock must be >= 0")

    def _op():
        _ensure_unique_model(patch["model"])

        product = Product(**patch)
        product.stock = 0
        if product.low_stock_alert is None:
            product.low_stock_alert = current_app.config.get("LOW_STOCK_DEFAULT", 10)
        db.session.add(product)
        db.session.flush()

        if initial_stock:
            stock_service.adjust_stock(
                product.id,
                initial_stock,
                reason="initial",
                note="Product created with initial stock",
            )

        db.session.commit()
        return product

    return run_with_retry(_op)


def update_product(product_id: int, payload: dict) -> Product:
    payload = payload or {}
    if "stock" in payload:
        raise ValidationError("stock cannot be edited directly; use the add stock endpoint")
    patch = _validate(payload, partial=True)

    def _op():
        product = stock_service.get_product(product_id)
        if "model" in patch:
            _ensure_unique_model(patch["model"], exclude_id=product.id)
        for key, value in patch.items():
            setattr(product, key, value)
        db.session.commit()
        return product

    return run_with_retry(_op)


def _is_referenced(product_id: int) -> bool:
    checks = (
        BillItem.query.filter_by(product_id=product_id),
        CustomerProduct.query.filter_by(product_id=product_id),
        Customer.query.filter_by(legacy_product_id=product_id),
        ParcelItem.query.filter_by(product_id=product_id),
        Sale.query.filter_by(product_id=product_id),
        Return.query.filter_by(product_id=product_id),
        PurchaseBatchItem.query.filter_by(product_id=product_id),
    )
    return any(q.first() is not None for q in checks)


def delete_product(product_id: int) -> None:
    def _op():
        product = stock_service.get_product(product_id)
        if _is_referenced(product.id):
            raise ConflictError("Product is referenced by bills, customers, parcels, sales, returns or purchase batches")
        db.session.delete(product)
        db.session.commit()

    return run_with_retry(_op)


def add_stock(product_id: int, quantity, *, reason: str | None = None, note: str | None = None) -> dict:
    """Receive units into stock. Returns the product and before/after counts."""
    quantity = require_positive_int(quantity, "quantity")

    def _op():
        product = stock_service.get_product(product_id)
        previous = product.stock
        product = stock_service.adjust_stock(
            product.id,
            quantity,
            reason=reason or "restock",
            note=note,
        )
        db.session.commit()
        return {
            "product": product.to_dict(),
            "previous_stock": previous,
            "new_stock": product.stock,
            "quantity_added": quantity,
        }

    return run_with_retry(_op)


def get_product(product_id: int) -> Product:
    return stock_service.get_product(product_id)


def list_products(*, search: str | None = None, category: str | None = None) -> list[Product]:
    q = Product.query
    if category:
        q = q.filter(Product.category == category)
    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(or_(Product.name.ilike(pattern), Product.model.ilike(pattern)))
    return q.order_by(Product.created_at.desc(), Product.id.desc()).all()


def list_low_stock() -> list[Product]:
    """Products at or below their own alert threshold."""
    return (
        Product.query
        .filter(Product.stock <= Product.low_stock_alert)
        .order_by(Product.stock.asc(), Product.id.asc())
        .all()
    )


def stock_history(product_id: int, *, limit: int = 200) -> list[dict]:
    return [m.to_dict() for m in stock_service.list_movements(product_id, limit=limit)]
