# Overview: Sequence numbers for purchases, POS transactions, and returns.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import DocumentSequence


PURCHASE = ("PURCHASE", "PUR")
POS_TRANSACTION = ("POS_TRANSACTION", "POS")
POS_RETURN = ("POS_RETURN", "RET")

ALL_DOCUMENTS = (PURCHASE, POS_TRANSACTION, POS_RETURN)


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def next_document_number(document: tuple[str, str], *, pad: int = 6) -> str:
    """
    Allocate the next number for a document type inside the caller's unit.

    The UPDATE ... SET next_number = next_number + 1 takes the row lock, so two
    concurrent units can never be handed the same number. Does not commit.
    """
    document_type, prefix = document
    if not document_type:
        raise DocumentSequenceError("document_type is required")

    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.document_type == document_type)
        .values(next_number=DocumentSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        db.session.flush()
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(document_type=document_type)
            .scalar()
        )
        next_num = current - 1
    else:
        db.session.add(DocumentSequence(document_type=document_type, next_number=2))
        try:
            db.session.flush()
        except IntegrityError as exc:
            # Another unit created the row first; the caller's retry loop reruns us.
            raise StaleDataError(f"document sequence {document_type} created concurrently") from exc
        next_num = 1

    return f"{prefix}-{next_num:0{pad}d}"


def ensure_sequences() -> int:
    """Create missing sequence rows up front. Idempotent; returns rows created."""
    created = 0
    for document_type, _prefix in ALL_DOCUMENTS:
        exists = db.session.query(DocumentSequence.id).filter_by(document_type=document_type).first()
        if exists is None:
            db.session.add(DocumentSequence(document_type=document_type, next_number=1))
            created += 1
    db.session.flush()
    return created
