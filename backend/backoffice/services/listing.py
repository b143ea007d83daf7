# Overview: Shared list/pagination shape for service read operations.

from __future__ import annotations


def paginate(base_query, *, page: int | None = None, per_page: int | None = None) -> dict:
    """
    Run a list query with optional pagination.

    page=None returns everything. Otherwise per_page defaults to 20 (max 100).
    """
    if page is None:
        rows = base_query.all()
        return {
            "items": [row.to_dict() for row in rows],
            "count": len(rows),
        }

    per_page = min(per_page or 20, 100)  # Default 20, max 100
    page = max(page, 1)  # Ensure page >= 1

    total = base_query.order_by(None).count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    rows = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [row.to_dict() for row in rows],
        "count": len(rows),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }
