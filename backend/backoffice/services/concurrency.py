# Overview: Transaction helpers shared by every service operation (row locks, retry, rollback).

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..validation import NotFoundError


RETRYABLE_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """
    SELECT ... FOR UPDATE on the rows a write is about to change.

    NOTE: SQLite ignores FOR UPDATE; there the single writer lock and the
    version_id columns (StaleDataError) serialize concurrent edits instead.
    """
    return query.with_for_update()


def fetch_row(model, row_id, *, lock: bool = False, label: str | None = None):
    """Load one row by id (optionally locked) or raise NotFoundError."""
    query = db.session.query(model).filter_by(id=row_id)
    if lock:
        query = lock_for_update(query)
    row = query.first()
    if row is None:
        raise NotFoundError(f"{label or model.__name__} not found")
    return row


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run one service operation as one transaction.

    Lock and version conflicts (RETRYABLE_ERRORS) roll back and run func
    again with exponential backoff. Any other error rolls back and
    propagates, so stock deltas applied before the failure never reach a
    later commit.
    """
    for attempt in range(attempts):
        try:
            return func()
        except RETRYABLE_ERRORS:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise


def commit_with_retry(*, attempts: int = 3, backoff_base: float = 0.1):
    """Commit pending work (CLI commands) under the same retry rules."""
    def _op():
        db.session.commit()
    return run_with_retry(_op, attempts=attempts, backoff_base=backoff_base)
