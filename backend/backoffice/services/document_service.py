# Overview: Service-layer operations for document numbering; encapsulates business logic and database work.

from __future__ import annotations

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def _allocate(document_type: str) -> int:
    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.document_type == document_type)
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(document_type=document_type)
            .scalar()
        )
        return current - 1

    # First number for this type: create the counter row inside a savepoint so a
    # concurrent creator only costs us a retry of the UPDATE.
    nested = db.session.begin_nested()
    try:
        db.session.add(DocumentSequence(document_type=document_type, next_number=2))
        nested.commit()
        return 1
    except IntegrityError:
        nested.rollback()
        result = db.session.execute(stmt)
        if not result.rowcount:
            raise DocumentSequenceError(f"could not allocate a {document_type} number")
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(document_type=document_type)
            .scalar()
        )
        return current - 1


def next_document_number(
    *,
    document_type: str,
    prefix: str,
    pad: int = 4,
) -> str:
    """
    Atomically allocate the next document number for a type (e.g. "EM-0001").

    Runs inside the caller's transaction; a rolled-back bill gives its number back.
    """
    if not document_type:
        raise DocumentSequenceError("document_type is required")
    if not prefix:
        raise DocumentSequenceError("prefix is required")

    number = _allocate(document_type)
    return f"{prefix}-{number:0{pad}d}"


def next_bill_number() -> str:
    return next_document_number(
        document_type="BILL",
        prefix=current_app.config.get("BILL_NUMBER_PREFIX", "EM"),
        pad=current_app.config.get("BILL_NUMBER_PAD", 4),
    )


def seed_sequence(document_type: str, last_number: int) -> DocumentSequence:
    """
    Start a sequence after numbers issued elsewhere (e.g. bills imported with
    their original numbers). Never moves an existing counter backwards.
    """
    seq = db.session.query(DocumentSequence).filter_by(document_type=document_type).first()
    if seq is None:
        seq = DocumentSequence(document_type=document_type, next_number=last_number + 1)
        db.session.add(seq)
    elif seq.next_number <= last_number:
        seq.next_number = last_number + 1
    db.session.flush()
    return seq
