# Overview: Service-layer operations for seller commission; encapsulates business logic and database work.

from __future__ import annotations

from ..extensions import db
from ..models import Seller
from .concurrency import fetch_row


def get_seller(seller_id: int, *, lock: bool = False) -> Seller:
    return fetch_row(Seller, seller_id, lock=lock, label=f"Seller {seller_id}")


def commission_for(seller: Seller, quantity: int) -> int:
    """Commission in cents for selling `quantity` units."""
    return int(seller.commission_rate_cents or 0) * int(quantity)


def adjust_seller_commission(seller_id: int, delta_cents: int) -> Seller:
    """
    Move a seller's running and lifetime commission by delta_cents.

    Both balances are floored at 0, so reversing more than was accrued (e.g.
    after a payroll reset of the running balance) stops at zero instead of
    going negative. total_cents is recomputed by the Seller flush listener.

    Does not commit; runs inside the caller's transaction.
    """
    seller = get_seller(seller_id, lock=True)
    if delta_cents:
        seller.commission_cents = max(0, int(seller.commission_cents or 0) + delta_cents)
        seller.total_commission_cents = max(0, int(seller.total_commission_cents or 0) + delta_cents)
        seller.recompute_total()
        db.session.flush()
    return seller


def accrue(seller: Seller, quantity: int) -> int:
    """Add commission for `quantity` units and return the amount added."""
    amount = commission_for(seller, quantity)
    adjust_seller_commission(seller.id, amount)
    return amount
