# Overview: Service-layer operations for income entries; encapsulates business logic and database work.

from __future__ import annotations

from ..extensions import db
from ..models import Income
from ..models.billing import INCOME_TYPES
from ..validation import ValidationError
from backoffice.time_utils import utcnow


def record_income(
    *,
    from_name: str,
    expected_amount_cents: int,
    amount_cents: int,
    bill_id: int | None = None,
    income_type: str = "cash",
    note: str | None = None,
) -> Income:
    """Append an income row; does not commit."""
    if income_type not in INCOME_TYPES:
        raise ValidationError(f"Invalid income type: {income_type}")
    if not from_name or not str(from_name).strip():
        raise ValidationError("Income source name is required")
    if expected_amount_cents < 0 or amount_cents < 0:
        raise ValidationError("Income amounts must be >= 0")

    income = Income(
        type=income_type,
        expected_amount_cents=expected_amount_cents,
        amount_cents=amount_cents,
        from_name=str(from_name).strip(),
        bill_id=bill_id,
        note=note,
        date=utcnow(),
    )
    db.session.add(income)
    db.session.flush()
    return income
