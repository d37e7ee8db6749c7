# Overview: Append-only journal writes and reads for stock movements.

"""
Journal invariants (authoritative)

- Rows are only ever INSERTed. No UPDATE, no DELETE.
- quantity is always positive; direction carries the sign.
- total_value_cents defaults to quantity * unit_price_cents.
- Every entry names the business document that caused it
  (reference_type + reference_id + reference_number).
"""

from __future__ import annotations

from datetime import datetime

from ..extensions import db
from ..models import JournalEntry
from ..models.journal import DIRECTIONS, REFERENCE_TYPES
from ..time_utils import utcnow
from .errors import ValidationError


def append_journal_entry(
    *,
    item_id: int,
    direction: str,
    quantity: int,
    unit_price_cents: int,
    reference_type: str,
    reference_id: int | None = None,
    reference_number: str | None = None,
    total_value_cents: int | None = None,
    movement_date: datetime | None = None,
    counterparty_name: str | None = None,
    notes: str | None = None,
    expiry_date: datetime | None = None,
    shelf_location: str | None = None,
    created_by: str | None = None,
) -> JournalEntry:
    """Add one movement to the current unit. Flushes, never commits."""
    if direction not in DIRECTIONS:
        raise ValidationError(f"invalid direction {direction!r}")
    if reference_type not in REFERENCE_TYPES:
        raise ValidationError(f"invalid reference_type {reference_type!r}")
    if quantity is None or quantity <= 0:
        raise ValidationError("journal quantity must be positive")

    entry = JournalEntry(
        item_id=item_id,
        direction=direction,
        quantity=quantity,
        unit_price_cents=unit_price_cents or 0,
        total_value_cents=(
            total_value_cents if total_value_cents is not None else quantity * (unit_price_cents or 0)
        ),
        movement_date=movement_date or utcnow(),
        counterparty_name=counterparty_name,
        reference_type=reference_type,
        reference_id=reference_id,
        reference_number=reference_number,
        notes=notes[:500] if notes else None,
        expiry_date=expiry_date,
        shelf_location=shelf_location,
        created_by=created_by,
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def list_entries_for_item(item_id: int, *, limit: int | None = None) -> list[JournalEntry]:
    q = JournalEntry.query.filter_by(item_id=item_id).order_by(
        JournalEntry.movement_date.desc(),
        JournalEntry.id.desc(),
    )
    if limit:
        q = q.limit(limit)
    return q.all()


def entries_for_reference(reference_type: str, reference_id: int) -> list[JournalEntry]:
    return (
        JournalEntry.query.filter_by(reference_type=reference_type, reference_id=reference_id)
        .order_by(JournalEntry.id.asc())
        .all()
    )


def list_entries(
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 200,
    offset: int = 0,
) -> list[JournalEntry]:
    q = JournalEntry.query
    if start is not None:
        q = q.filter(JournalEntry.movement_date >= start)
    if end is not None:
        q = q.filter(JournalEntry.movement_date <= end)
    return (
        q.order_by(JournalEntry.movement_date.desc(), JournalEntry.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
