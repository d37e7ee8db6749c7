from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


CUSTOMER_ENTRY_PAYMENT = "payment"
CUSTOMER_ENTRY_CHARGE = "charge"
CUSTOMER_ENTRY_TYPES = (CUSTOMER_ENTRY_PAYMENT, CUSTOMER_ENTRY_CHARGE)

VENDOR_PAYMENT_METHODS = ("cash", "bank_transfer", "cheque")
CUSTOMER_PAYMENT_METHODS = ("cash", "bank_transfer", "digital", "card", "store_credit", "sale", "reversal")


class Vendor(db.Model):
    """
    Supplier counterparty.

    outstanding_balance_cents is what the business owes the vendor. It is a
    denormalized copy of: SUM(purchase.total - purchase.upfront_paid) - SUM(vendor_payments.amount).
    """
    __tablename__ = "vendors"
    __table_args__ = (
        db.Index("ix_vendors_active", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, unique=True)
    company = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(64), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.Text, nullable=True)
    tax_number = db.Column(db.String(64), nullable=True)

    outstanding_balance_cents = db.Column(db.Integer, nullable=False, default=0)
    total_purchases_cents = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_by = db.Column(db.String(128), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Vendor id={self.id} name={self.name!r} balance={self.outstanding_balance_cents}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "company": self.company,
            "phone": self.phone,
            "email": self.email,
            "address": self.address,
            "tax_number": self.tax_number,
            "outstanding_balance_cents": self.outstanding_balance_cents,
            "total_purchases_cents": self.total_purchases_cents,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class VendorPayment(db.Model):
    """Money paid to a vendor. Append-only; reduces the vendor balance."""
    __tablename__ = "vendor_payments"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_vendor_payments_amount_positive"),
        db.UniqueConstraint("client_ref", name="uq_vendor_payments_client_ref"),
        db.Index("ix_vendor_payments_vendor_date", "vendor_id", "payment_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    vendor_id = db.Column(db.Integer, db.ForeignKey("vendors.id"), nullable=False, index=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=True)
    client_ref = db.Column(db.String(64), nullable=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(32), nullable=False, default="cash")
    reference_number = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    payment_date = db.Column(db.DateTime(timezone=True), nullable=False)

    created_by = db.Column(db.String(128), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    vendor = db.relationship("Vendor", backref=db.backref("payments", lazy="dynamic"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "vendor_id": self.vendor_id,
            "purchase_id": self.purchase_id,
            "amount_cents": self.amount_cents,
            "payment_method": self.payment_method,
            "reference_number": self.reference_number,
            "notes": self.notes,
            "payment_date": to_utc_z(self.payment_date),
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }


class Customer(db.Model):
    """
    Customer counterparty.

    outstanding_balance_cents is what the customer owes the business (credit
    sales, "udhaar"). Denormalized copy of SUM(charges) - SUM(payments).
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.UniqueConstraint("phone", name="uq_customers_phone"),
        db.Index("ix_customers_active", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(64), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.Text, nullable=True)

    outstanding_balance_cents = db.Column(db.Integer, nullable=False, default=0)
    total_purchases_cents = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_by = db.Column(db.String(128), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Customer id={self.id} name={self.name!r} balance={self.outstanding_balance_cents}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "address": self.address,
            "outstanding_balance_cents": self.outstanding_balance_cents,
            "total_purchases_cents": self.total_purchases_cents,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class CustomerPayment(db.Model):
    """
    Customer ledger entry. Append-only.

    type='payment' reduces the balance, type='charge' increases it. Credit
    sales write a charge referencing the POS transaction.
    """
    __tablename__ = "customer_payments"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_customer_payments_amount_positive"),
        db.UniqueConstraint("client_ref", name="uq_customer_payments_client_ref"),
        db.Index("ix_customer_payments_customer_date", "customer_id", "payment_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    pos_transaction_id = db.Column(db.Integer, db.ForeignKey("pos_transactions.id"), nullable=True, index=True)
    client_ref = db.Column(db.String(64), nullable=True)

    type = db.Column(db.String(16), nullable=False, default=CUSTOMER_ENTRY_PAYMENT)
    amount_cents = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(32), nullable=False, default="cash")
    reference_number = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    payment_date = db.Column(db.DateTime(timezone=True), nullable=False)

    created_by = db.Column(db.String(128), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    customer = db.relationship("Customer", backref=db.backref("ledger_entries", lazy="dynamic"))

    @property
    def signed_amount_cents(self) -> int:
        return self.amount_cents if self.type == CUSTOMER_ENTRY_CHARGE else -self.amount_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "pos_transaction_id": self.pos_transaction_id,
            "type": self.type,
            "amount_cents": self.amount_cents,
            "payment_method": self.payment_method,
            "reference_number": self.reference_number,
            "notes": self.notes,
            "payment_date": to_utc_z(self.payment_date),
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }
