# Overview: Balance ledger for vendors and customers; computed and fast-path balances.

"""
Counterparty balance rules

Vendor (what we owe):
    SUM(purchase.total - purchase.upfront_paid) - SUM(vendor_payments.amount)
Customer (what they owe us):
    SUM(charge entries) - SUM(payment entries)

outstanding_balance_cents on the counterparty row is the denormalized copy.
Differences up to BALANCE_EPSILON_CENTS are tolerated; reconciliation
corrects anything larger.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from flask import current_app, has_app_context
from sqlalchemy import case, func

from ..extensions import db, read_cache
from ..models import Customer, CustomerPayment, Purchase, Vendor, VendorPayment
from ..models.counterparties import CUSTOMER_ENTRY_CHARGE
from .errors import CustomerNotFound, ValidationError, VendorNotFound

logger = logging.getLogger(__name__)

VENDOR = "vendor"
CUSTOMER = "customer"
COUNTERPARTY_KINDS = (VENDOR, CUSTOMER)

CACHE_KIND = "balance"


@dataclass(frozen=True)
class BalanceCheck:
    kind: str
    entity_id: int
    stored_cents: int
    computed_cents: int

    @property
    def drift_cents(self) -> int:
        return self.stored_cents - self.computed_cents

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "id": self.entity_id,
            "stored_cents": self.stored_cents,
            "computed_cents": self.computed_cents,
            "drift_cents": self.drift_cents,
        }


def epsilon_cents() -> int:
    if has_app_context():
        return int(current_app.config.get("BALANCE_EPSILON_CENTS", 100))
    return 100


def within_epsilon(stored_cents: int, computed_cents: int) -> bool:
    return abs(stored_cents - computed_cents) <= epsilon_cents()


def _model_for(kind: str):
    if kind == VENDOR:
        return Vendor, VendorNotFound
    if kind == CUSTOMER:
        return Customer, CustomerNotFound
    raise ValidationError(f"Unknown counterparty kind: {kind}", details={"kind": kind})


def get_counterparty(kind: str, entity_id: int):
    model, not_found = _model_for(kind)
    entity = db.session.get(model, entity_id)
    if entity is None:
        raise not_found(entity_id)
    return entity


# =============================================================================
# COMPUTED (AUTHORITATIVE)
# =============================================================================

def compute_vendor_balance(vendor_id: int) -> int:
    purchased = db.session.query(
        func.coalesce(func.sum(Purchase.total_cents - Purchase.upfront_paid_cents), 0)
    ).filter(Purchase.vendor_id == vendor_id).scalar()
    paid = db.session.query(
        func.coalesce(func.sum(VendorPayment.amount_cents), 0)
    ).filter(VendorPayment.vendor_id == vendor_id).scalar()
    return int(purchased or 0) - int(paid or 0)


def compute_customer_balance(customer_id: int) -> int:
    signed = case(
        (CustomerPayment.type == CUSTOMER_ENTRY_CHARGE, CustomerPayment.amount_cents),
        else_=-CustomerPayment.amount_cents,
    )
    total = db.session.query(func.coalesce(func.sum(signed), 0)).filter(
        CustomerPayment.customer_id == customer_id
    ).scalar()
    return int(total or 0)


def compute_balance(kind: str, entity_id: int) -> int:
    """Recompute a counterparty balance from its source records."""
    get_counterparty(kind, entity_id)
    if kind == VENDOR:
        return compute_vendor_balance(entity_id)
    return compute_customer_balance(entity_id)


def fast_path_balance(kind: str, entity_id: int) -> int:
    """Stored balance (cached). May drift from compute_balance()."""
    model, not_found = _model_for(kind)

    def _load():
        row = db.session.query(model.outstanding_balance_cents).filter(model.id == entity_id).first()
        return None if row is None else int(row[0])

    value = read_cache.get(CACHE_KIND, (kind, entity_id), _load)
    if value is None:
        raise not_found(entity_id)
    return value


def check_balance(kind: str, entity_id: int) -> BalanceCheck:
    entity = get_counterparty(kind, entity_id)
    return BalanceCheck(
        kind=kind,
        entity_id=entity_id,
        stored_cents=entity.outstanding_balance_cents,
        computed_cents=compute_balance(kind, entity_id),
    )


def invalidate(kind: str, *entity_ids: int) -> None:
    read_cache.invalidate(CACHE_KIND, *[(kind, entity_id) for entity_id in entity_ids])


# =============================================================================
# LEDGER LISTINGS
# =============================================================================

def vendor_ledger(vendor_id: int, *, limit: int | None = None) -> dict:
    """
    Purchases and payments for one vendor, newest first.

    When the full ledger was loaded the running total doubles as a drift
    check; a mismatch beyond epsilon triggers reconciliation of that vendor.
    """
    vendor = get_counterparty(VENDOR, vendor_id)

    purchases = (
        db.session.query(Purchase)
        .filter(Purchase.vendor_id == vendor_id)
        .order_by(Purchase.purchase_date.desc(), Purchase.id.desc())
        .all()
    )
    payments = (
        db.session.query(VendorPayment)
        .filter(VendorPayment.vendor_id == vendor_id)
        .order_by(VendorPayment.payment_date.desc(), VendorPayment.id.desc())
        .all()
    )

    entries = [
        {
            "type": "purchase",
            "date": purchase.purchase_date,
            "amount_cents": purchase.total_cents - purchase.upfront_paid_cents,
            "record": purchase.to_dict(include_lines=False),
        }
        for purchase in purchases
    ] + [
        {
            "type": "payment",
            "date": payment.payment_date,
            "amount_cents": -payment.amount_cents,
            "record": payment.to_dict(),
        }
        for payment in payments
    ]
    entries.sort(key=lambda entry: entry["date"], reverse=True)

    computed = sum(entry["amount_cents"] for entry in entries)
    balance = _opportunistic_check(VENDOR, vendor, computed)

    if limit is not None:
        entries = entries[:limit]
    for entry in entries:
        entry.pop("date")
    return {
        "vendor": vendor.to_dict(),
        "outstanding_balance_cents": balance,
        "entries": entries,
    }


def customer_ledger(customer_id: int, *, limit: int | None = None) -> dict:
    customer = get_counterparty(CUSTOMER, customer_id)
    rows = (
        db.session.query(CustomerPayment)
        .filter(CustomerPayment.customer_id == customer_id)
        .order_by(CustomerPayment.payment_date.desc(), CustomerPayment.id.desc())
        .all()
    )
    computed = sum(row.signed_amount_cents for row in rows)
    balance = _opportunistic_check(CUSTOMER, customer, computed)

    if limit is not None:
        rows = rows[:limit]
    return {
        "customer": customer.to_dict(),
        "outstanding_balance_cents": balance,
        "entries": [row.to_dict() for row in rows],
    }


def _opportunistic_check(kind: str, entity, computed_cents: int) -> int:
    """Return the balance to show; reconcile the counterparty if it drifted."""
    if within_epsilon(entity.outstanding_balance_cents, computed_cents):
        return entity.outstanding_balance_cents

    logger.warning(
        "%s %s balance drift: stored=%s computed=%s",
        kind, entity.id, entity.outstanding_balance_cents, computed_cents,
    )
    # Imported here: reconciliation builds on this module.
    from .reconciliation_service import reconcile_counterparty

    report = reconcile_counterparty(kind, entity.id)
    if report.corrected:
        return report.computed_cents
    return computed_cents
