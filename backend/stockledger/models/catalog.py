from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Category(db.Model):
    """Catalog grouping for items. Owned by catalog management."""
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False, unique=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "created_at": to_utc_z(self.created_at),
        }


class Item(db.Model):
    """
    Stocked product.

    STOCK FIELDS ARE DENORMALIZED:
    - current_quantity mirrors SUM(+stock_in, -stock_out) over journal_entries
    - stock_in_quantity / stock_in_cost_cents mirror the lifetime stock_in totals
    - average_unit_cost_cents = stock_in_cost_cents / stock_in_quantity (half-up)

    Only the transaction orchestrator and reconciliation write these fields.
    Everything else reads them as a fast path and must tolerate drift.

    CONCURRENCY:
    version_id is an optimistic lock. A sale that read a stale quantity fails
    its UPDATE with StaleDataError and is retried against fresh state.
    """
    __tablename__ = "items"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_items_sku"),
        db.UniqueConstraint("barcode", name="uq_items_barcode"),
        db.Index("ix_items_name", "name"),
        db.Index("ix_items_archived", "is_archived"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(64), nullable=True)
    barcode = db.Column(db.String(64), nullable=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)
    unit = db.Column(db.String(32), nullable=False, default="pcs")

    current_quantity = db.Column(db.Integer, nullable=False, default=0)
    average_unit_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    stock_in_quantity = db.Column(db.Integer, nullable=False, default=0)
    stock_in_cost_cents = db.Column(db.Integer, nullable=False, default=0)

    # Last-known prices
    purchase_rate_cents = db.Column(db.Integer, nullable=True)
    sale_rate_cents = db.Column(db.Integer, nullable=True)

    low_stock_threshold = db.Column(db.Integer, nullable=True)
    is_archived = db.Column(db.Boolean, nullable=False, default=False)

    created_by = db.Column(db.String(128), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    version_id = db.Column(db.Integer, nullable=False, default=1)

    category = db.relationship("Category", backref=db.backref("items", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Item id={self.id} name={self.name!r} qty={self.current_quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "sku": self.sku,
            "barcode": self.barcode,
            "category_id": self.category_id,
            "unit": self.unit,
            "current_quantity": self.current_quantity,
            "average_unit_cost_cents": self.average_unit_cost_cents,
            "purchase_rate_cents": self.purchase_rate_cents,
            "sale_rate_cents": self.sale_rate_cents,
            "low_stock_threshold": self.low_stock_threshold,
            "is_archived": self.is_archived,
            "version_id": self.version_id,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
