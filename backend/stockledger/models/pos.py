from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


TX_STATUS_COMPLETED = "completed"
TX_STATUS_CANCELLED = "cancelled"
TX_STATUS_RETURNED = "returned"
TX_STATUS_VOIDED = "voided"
TERMINAL_TX_STATUSES = (TX_STATUS_CANCELLED, TX_STATUS_RETURNED, TX_STATUS_VOIDED)

PAYMENT_METHOD_CREDIT = "credit"
SALE_PAYMENT_METHODS = ("cash", "card", "digital", PAYMENT_METHOD_CREDIT)
REFUND_METHODS = ("cash", "store_credit")


class BillType(db.Model):
    """
    Kind of bill rung up at the POS.

    The flags are copied onto each POS transaction when it is created so a
    later change to the bill type never rewrites history.
    """
    __tablename__ = "bill_types"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(32), nullable=False, unique=True)
    name = db.Column(db.String(128), nullable=False)
    description = db.Column(db.String(255), nullable=True)
    affects_inventory = db.Column(db.Boolean, nullable=False, default=True)
    affects_accounting = db.Column(db.Boolean, nullable=False, default=True)
    is_default = db.Column(db.Boolean, nullable=False, default=False)
    active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "affects_inventory": self.affects_inventory,
            "affects_accounting": self.affects_accounting,
            "is_default": self.is_default,
            "active": self.active,
        }


class POSTransaction(db.Model):
    """
    A completed sale.

    LIFECYCLE: completed -> cancelled | returned | voided (all terminal).
    The row is never deleted; reversals are new journal entries.
    """
    __tablename__ = "pos_transactions"
    __table_args__ = (
        db.UniqueConstraint("transaction_number", name="uq_pos_transactions_number"),
        db.UniqueConstraint("client_ref", name="uq_pos_transactions_client_ref"),
        db.Index("ix_pos_transactions_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_number = db.Column(db.String(64), nullable=False)
    client_ref = db.Column(db.String(64), nullable=True)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    payment_method = db.Column(db.String(16), nullable=False, default="cash")
    amount_tendered_cents = db.Column(db.Integer, nullable=False, default=0)
    change_cents = db.Column(db.Integer, nullable=False, default=0)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    customer_name = db.Column(db.String(255), nullable=True)

    bill_type = db.Column(db.String(32), nullable=False, default="regular")
    affects_inventory = db.Column(db.Boolean, nullable=False, default=True)
    affects_accounting = db.Column(db.Boolean, nullable=False, default=True)
    is_credit_sale = db.Column(db.Boolean, nullable=False, default=False)

    status = db.Column(db.String(16), nullable=False, default=TX_STATUS_COMPLETED, index=True)
    cancellation_reason = db.Column(db.String(255), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    void_reason = db.Column(db.String(255), nullable=True)
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    voided_by = db.Column(db.String(128), nullable=True)

    notes = db.Column(db.Text, nullable=True)
    cashier_id = db.Column(db.String(128), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("pos_transactions", lazy="dynamic"))
    lines = db.relationship(
        "POSTransactionLine",
        backref="pos_transaction",
        lazy=True,
        order_by="POSTransactionLine.id",
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "transaction_number": self.transaction_number,
            "client_ref": self.client_ref,
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
            "payment_method": self.payment_method,
            "amount_tendered_cents": self.amount_tendered_cents,
            "change_cents": self.change_cents,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "bill_type": self.bill_type,
            "affects_inventory": self.affects_inventory,
            "affects_accounting": self.affects_accounting,
            "is_credit_sale": self.is_credit_sale,
            "status": self.status,
            "cancellation_reason": self.cancellation_reason,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "void_reason": self.void_reason,
            "voided_at": to_utc_z(self.voided_at) if self.voided_at else None,
            "voided_by": self.voided_by,
            "notes": self.notes,
            "cashier_id": self.cashier_id,
            "created_at": to_utc_z(self.created_at),
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class POSTransactionLine(db.Model):
    __tablename__ = "pos_transaction_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    pos_transaction_id = db.Column(db.Integer, db.ForeignKey("pos_transactions.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)
    item_name = db.Column(db.String(255), nullable=False)
    barcode = db.Column(db.String(64), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "pos_transaction_id": self.pos_transaction_id,
            "item_id": self.item_id,
            "item_name": self.item_name,
            "barcode": self.barcode,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }


class POSReturn(db.Model):
    """Partial or full reversal of a POS transaction's lines. Immutable."""
    __tablename__ = "pos_returns"
    __table_args__ = (
        db.UniqueConstraint("return_number", name="uq_pos_returns_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    return_number = db.Column(db.String(64), nullable=False)
    original_transaction_id = db.Column(
        db.Integer, db.ForeignKey("pos_transactions.id"), nullable=False, index=True
    )
    original_transaction_number = db.Column(db.String(64), nullable=False)

    total_refund_cents = db.Column(db.Integer, nullable=False, default=0)
    refund_method = db.Column(db.String(16), nullable=False, default="cash")
    reason = db.Column(db.String(255), nullable=True)

    created_by = db.Column(db.String(128), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    original_transaction = db.relationship(
        "POSTransaction", backref=db.backref("returns", lazy=True, order_by="POSReturn.id")
    )
    lines = db.relationship(
        "POSReturnLine",
        backref="pos_return",
        lazy=True,
        order_by="POSReturnLine.id",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "return_number": self.return_number,
            "original_transaction_id": self.original_transaction_id,
            "original_transaction_number": self.original_transaction_number,
            "total_refund_cents": self.total_refund_cents,
            "refund_method": self.refund_method,
            "reason": self.reason,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "lines": [line.to_dict() for line in self.lines],
        }


class POSReturnLine(db.Model):
    __tablename__ = "pos_return_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    pos_return_id = db.Column(db.Integer, db.ForeignKey("pos_returns.id"), nullable=False, index=True)
    original_line_id = db.Column(
        db.Integer, db.ForeignKey("pos_transaction_lines.id"), nullable=False, index=True
    )
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    refund_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "pos_return_id": self.pos_return_id,
            "original_line_id": self.original_line_id,
            "item_id": self.item_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "refund_cents": self.refund_cents,
        }
