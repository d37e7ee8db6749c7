# Overview: Service-layer operations for vendor payments and customer ledger transactions.

"""
Payment Service

VENDOR PAYMENT (one atomic unit):
- vendor_payments row (append-only)
- vendor.outstanding_balance -= amount
- allocation to open purchases: the targeted purchase first, then oldest
  first; paid/pending move by the allocated amount and payment_status only
  ever moves forward (unpaid -> partial -> paid)
- whatever is left after every open purchase is paid stays as vendor credit

CUSTOMER TRANSACTION (one atomic unit):
- customer_payments row; type payment reduces the balance, charge raises it
"""

from __future__ import annotations

import logging

from sqlalchemy import case, update

from ..extensions import db
from ..models import Customer, CustomerPayment, Purchase, Vendor, VendorPayment
from ..models.purchases import PAYMENT_STATUS_PAID, PAYMENT_STATUS_PARTIAL
from ..time_utils import utcnow
from . import balance_service
from .concurrency import begin_atomic, lock_for_update, run_with_retry
from .errors import CustomerNotFound, ValidationError, VendorNotFound
from .schemas import (
    CustomerTransactionRequest,
    VendorPaymentRequest,
    validate_customer_transaction,
    validate_vendor_payment,
)

logger = logging.getLogger(__name__)


def allocate_to_purchases(vendor_id: int, amount_cents: int, purchase_id: int | None = None) -> list[dict]:
    """
    Apply a vendor payment to open purchases. Does not commit.

    Each purchase is moved with an increment-style UPDATE, so the same code
    serves the atomic path and offline replays.
    Returns [{"purchase_id", "amount_cents"}] for what was allocated.
    """
    open_rows = lock_for_update(
        db.session.query(Purchase.id, Purchase.pending_amount_cents)
        .filter(Purchase.vendor_id == vendor_id, Purchase.pending_amount_cents > 0)
        .order_by(Purchase.purchase_date.asc(), Purchase.id.asc())
    ).all()

    if purchase_id is not None:
        target = db.session.query(Purchase.vendor_id).filter(Purchase.id == purchase_id).first()
        if target is None or target.vendor_id != vendor_id:
            raise ValidationError(
                f"Purchase {purchase_id} does not belong to vendor {vendor_id}",
                details={"purchase_id": purchase_id, "vendor_id": vendor_id},
            )
        open_rows.sort(key=lambda row: row.id != purchase_id)

    allocations = []
    remaining = amount_cents
    for row in open_rows:
        if remaining <= 0:
            break
        take = min(row.pending_amount_cents, remaining)
        db.session.execute(
            update(Purchase)
            .where(Purchase.id == row.id)
            .values(
                paid_amount_cents=Purchase.paid_amount_cents + take,
                pending_amount_cents=Purchase.pending_amount_cents - take,
                payment_status=case(
                    (Purchase.pending_amount_cents - take <= 0, PAYMENT_STATUS_PAID),
                    else_=PAYMENT_STATUS_PARTIAL,
                ),
            )
            .execution_options(synchronize_session="fetch")
        )
        allocations.append({"purchase_id": row.id, "amount_cents": take})
        remaining -= take

    if remaining > 0:
        logger.info("Vendor %s payment leaves %s unallocated as credit", vendor_id, remaining)
    return allocations


def find_vendor_payment_by_client_ref(client_ref: str | None) -> VendorPayment | None:
    if not client_ref:
        return None
    return db.session.query(VendorPayment).filter_by(client_ref=client_ref).first()


def find_customer_entry_by_client_ref(client_ref: str | None) -> CustomerPayment | None:
    if not client_ref:
        return None
    return db.session.query(CustomerPayment).filter_by(client_ref=client_ref).first()


def record_vendor_payment(request: VendorPaymentRequest) -> VendorPayment:
    """
    Pay a vendor atomically.

    Raises:
        ValidationError: non-positive amount, unknown method, foreign purchase
        VendorNotFound: vendor missing
    """
    validate_vendor_payment(request)

    def _op():
        begin_atomic()

        existing = find_vendor_payment_by_client_ref(request.client_ref)
        if existing is not None:
            db.session.rollback()
            return existing

        vendor = lock_for_update(db.session.query(Vendor).filter_by(id=request.vendor_id)).first()
        if vendor is None:
            raise VendorNotFound(request.vendor_id)

        payment = VendorPayment(
            vendor_id=vendor.id,
            purchase_id=request.purchase_id,
            client_ref=request.client_ref,
            amount_cents=request.amount_cents,
            payment_method=request.payment_method,
            reference_number=request.reference_number,
            notes=request.notes,
            payment_date=request.payment_date or utcnow(),
            created_by=request.created_by,
        )
        db.session.add(payment)
        vendor.outstanding_balance_cents -= request.amount_cents
        db.session.flush()

        allocate_to_purchases(vendor.id, request.amount_cents, request.purchase_id)

        db.session.commit()
        return payment

    payment = run_with_retry(_op)
    balance_service.invalidate(balance_service.VENDOR, request.vendor_id)
    return payment


def record_customer_transaction(request: CustomerTransactionRequest) -> CustomerPayment:
    """
    Post a payment or charge to a customer's ledger atomically.

    Raises:
        ValidationError: non-positive amount, unknown type or method
        CustomerNotFound: customer missing
    """
    validate_customer_transaction(request)

    def _op():
        begin_atomic()

        existing = find_customer_entry_by_client_ref(request.client_ref)
        if existing is not None:
            db.session.rollback()
            return existing

        customer = lock_for_update(db.session.query(Customer).filter_by(id=request.customer_id)).first()
        if customer is None:
            raise CustomerNotFound(request.customer_id)

        entry = CustomerPayment(
            customer_id=customer.id,
            client_ref=request.client_ref,
            type=request.type,
            amount_cents=request.amount_cents,
            payment_method=request.payment_method,
            reference_number=request.reference_number,
            notes=request.notes,
            payment_date=request.payment_date or utcnow(),
            created_by=request.created_by,
        )
        db.session.add(entry)
        customer.outstanding_balance_cents += entry.signed_amount_cents

        db.session.commit()
        return entry

    entry = run_with_retry(_op)
    balance_service.invalidate(balance_service.CUSTOMER, request.customer_id)
    return entry


def list_vendor_payments(vendor_id: int) -> list[VendorPayment]:
    return (
        db.session.query(VendorPayment)
        .filter(VendorPayment.vendor_id == vendor_id)
        .order_by(VendorPayment.payment_date.desc(), VendorPayment.id.desc())
        .all()
    )
