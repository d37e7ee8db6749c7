from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


DIRECTION_STOCK_IN = "stock_in"
DIRECTION_STOCK_OUT = "stock_out"
DIRECTIONS = (DIRECTION_STOCK_IN, DIRECTION_STOCK_OUT)

REFERENCE_TYPES = ("purchase", "sale", "return", "cancellation", "void", "adjustment")


class JournalEntry(db.Model):
    """
    One stock movement. Append-only.

    Rows are never updated or deleted; a correction is a new entry in the
    opposite direction referencing the same document.
    """
    __tablename__ = "journal_entries"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_journal_quantity_positive"),
        db.Index("ix_journal_item_date", "item_id", "movement_date"),
        db.Index("ix_journal_reference", "reference_type", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)

    direction = db.Column(db.String(16), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False, default=0)
    total_value_cents = db.Column(db.Integer, nullable=False, default=0)

    movement_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    counterparty_name = db.Column(db.String(255), nullable=True)

    reference_type = db.Column(db.String(32), nullable=False)
    reference_id = db.Column(db.Integer, nullable=True)
    reference_number = db.Column(db.String(64), nullable=True, index=True)
    notes = db.Column(db.String(500), nullable=True)

    expiry_date = db.Column(db.DateTime(timezone=True), nullable=True)
    shelf_location = db.Column(db.String(64), nullable=True)

    created_by = db.Column(db.String(128), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    item = db.relationship("Item", backref=db.backref("journal_entries", lazy="dynamic"))

    @property
    def signed_quantity(self) -> int:
        return self.quantity if self.direction == DIRECTION_STOCK_IN else -self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "direction": self.direction,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_value_cents": self.total_value_cents,
            "movement_date": to_utc_z(self.movement_date),
            "counterparty_name": self.counterparty_name,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "reference_number": self.reference_number,
            "notes": self.notes,
            "expiry_date": to_utc_z(self.expiry_date) if self.expiry_date else None,
            "shelf_location": self.shelf_location,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }
