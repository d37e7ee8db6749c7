from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


PAYMENT_STATUS_UNPAID = "unpaid"
PAYMENT_STATUS_PARTIAL = "partial"
PAYMENT_STATUS_PAID = "paid"
PAYMENT_STATUSES = (PAYMENT_STATUS_UNPAID, PAYMENT_STATUS_PARTIAL, PAYMENT_STATUS_PAID)


class Purchase(db.Model):
    """
    Vendor-sourced stock-in document.

    upfront_paid_cents is what was paid when the purchase was recorded and
    never changes; it is what the vendor ledger uses. paid_amount_cents and
    pending_amount_cents move as later vendor payments are allocated.
    """
    __tablename__ = "purchases"
    __table_args__ = (
        db.UniqueConstraint("purchase_number", name="uq_purchases_number"),
        db.UniqueConstraint("client_ref", name="uq_purchases_client_ref"),
        db.Index("ix_purchases_vendor_date", "vendor_id", "purchase_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_number = db.Column(db.String(64), nullable=False)
    # Idempotency key supplied by offline replays
    client_ref = db.Column(db.String(64), nullable=True)
    bill_number = db.Column(db.String(64), nullable=True)

    vendor_id = db.Column(db.Integer, db.ForeignKey("vendors.id"), nullable=False, index=True)
    vendor_name = db.Column(db.String(255), nullable=False)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    payment_status = db.Column(db.String(16), nullable=False, default=PAYMENT_STATUS_UNPAID, index=True)
    upfront_paid_cents = db.Column(db.Integer, nullable=False, default=0)
    paid_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    pending_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    purchase_date = db.Column(db.DateTime(timezone=True), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.String(128), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    vendor = db.relationship("Vendor", backref=db.backref("purchases", lazy="dynamic"))
    lines = db.relationship(
        "PurchaseLine",
        backref="purchase",
        lazy=True,
        order_by="PurchaseLine.id",
        cascade="all, delete-orphan",
    )

    @property
    def is_overpaid(self) -> bool:
        return self.pending_amount_cents < 0

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "purchase_number": self.purchase_number,
            "client_ref": self.client_ref,
            "bill_number": self.bill_number,
            "vendor_id": self.vendor_id,
            "vendor_name": self.vendor_name,
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
            "payment_status": self.payment_status,
            "upfront_paid_cents": self.upfront_paid_cents,
            "paid_amount_cents": self.paid_amount_cents,
            "pending_amount_cents": self.pending_amount_cents,
            "is_overpaid": self.is_overpaid,
            "purchase_date": to_utc_z(self.purchase_date),
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class PurchaseLine(db.Model):
    __tablename__ = "purchase_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    purchase_rate_cents = db.Column(db.Integer, nullable=False)
    sale_rate_cents = db.Column(db.Integer, nullable=True)
    line_total_cents = db.Column(db.Integer, nullable=False)

    expiry_date = db.Column(db.DateTime(timezone=True), nullable=True)
    shelf_location = db.Column(db.String(64), nullable=True)
    barcode = db.Column(db.String(64), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_id": self.purchase_id,
            "item_id": self.item_id,
            "quantity": self.quantity,
            "purchase_rate_cents": self.purchase_rate_cents,
            "sale_rate_cents": self.sale_rate_cents,
            "line_total_cents": self.line_total_cents,
            "expiry_date": to_utc_z(self.expiry_date) if self.expiry_date else None,
            "shelf_location": self.shelf_location,
            "barcode": self.barcode,
        }
