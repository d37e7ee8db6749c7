# Overview: Degraded (non-atomic) replay of queued events; increment-only, checkpointed per step.

"""
Fallback path

Used when an event was captured offline and is being drained. Each event is
split into ordered steps; every step is its own commit:

1. "record"   create the primary record(s): the document, its lines, its
              journal entries or ledger entry, and a vendor payment's
              allocation to open purchases. Idempotent on client_ref; returns
              False when the record already existed.
2. counters   one increment-style UPDATE per touched aggregate
              ("item:<id>", "vendor", "customer").

Counter steps never read a value in order to write it back (no stock
checks, no read-modify-write). Allocation reads pending amounts, so it
shares the record step's commit and is applied exactly once with it.
Sale prices are whatever the payload carries; an offline sale is only
accepted when every line was priced at capture time.

The caller records a checkpoint after each committed step so a retried
drain resumes at the step that failed. When the record step finds the
event already committed (an atomic commit whose acknowledgement was lost),
the counter steps are skipped. Aggregates may drift under this path; the
drain reconciles every touched entity afterwards.
"""

from __future__ import annotations

import logging
from typing import Callable

from ..extensions import db
from ..models import (
    Customer,
    CustomerPayment,
    Item,
    POSTransaction,
    POSTransactionLine,
    Purchase,
    PurchaseLine,
    Vendor,
    VendorPayment,
)
from ..models.counterparties import CUSTOMER_ENTRY_CHARGE
from ..models.journal import DIRECTION_STOCK_IN, DIRECTION_STOCK_OUT
from ..models.pos import PAYMENT_METHOD_CREDIT, TX_STATUS_COMPLETED
from ..time_utils import utcnow
from . import stock_service
from .catalog_service import resolve_bill_type
from .concurrency import increment_columns
from .document_service import POS_TRANSACTION, PURCHASE, next_document_number
from .errors import CustomerNotFound, ItemNotFound, ValidationError, VendorNotFound
from .journal_service import append_journal_entry
from .payment_service import allocate_to_purchases
from .schemas import (
    CustomerTransactionRequest,
    PurchaseRequest,
    SaleRequest,
    VendorPaymentRequest,
    resolve_payment,
    validate_customer_transaction,
    validate_purchase,
    validate_sale,
    validate_vendor_payment,
)

logger = logging.getLogger(__name__)

KIND_PURCHASE = "purchase"
KIND_SALE = "sale"
KIND_VENDOR_PAYMENT = "vendor_payment"
KIND_CUSTOMER_TRANSACTION = "customer_transaction"

REQUEST_TYPES = {
    KIND_PURCHASE: PurchaseRequest,
    KIND_SALE: SaleRequest,
    KIND_VENDOR_PAYMENT: VendorPaymentRequest,
    KIND_CUSTOMER_TRANSACTION: CustomerTransactionRequest,
}

VALIDATORS = {
    KIND_PURCHASE: validate_purchase,
    KIND_SALE: validate_sale,
    KIND_VENDOR_PAYMENT: validate_vendor_payment,
    KIND_CUSTOMER_TRANSACTION: validate_customer_transaction,
}

Step = tuple[str, Callable[[], bool | None]]


def request_from_payload(kind: str, payload: dict):
    try:
        request_type = REQUEST_TYPES[kind]
    except KeyError:
        raise ValidationError(f"Unknown offline event kind: {kind}", details={"kind": kind})
    return request_type.from_payload(payload)


def check_deferrable(kind: str, request) -> None:
    """
    Raise ValidationError for an event the replay could never apply.

    Runs the event's store-free rules, and requires a price on every sale
    line: the catalog price at drain time is not what the cashier quoted.
    """
    if kind not in VALIDATORS:
        raise ValidationError(f"Unknown offline event kind: {kind}", details={"kind": kind})
    VALIDATORS[kind](request)
    if kind == KIND_SALE:
        for index, line in enumerate(request.lines):
            if line.unit_price_cents is None:
                raise ValidationError(
                    "Offline sales need a unit price on every line",
                    details={"line": index, "item_id": line.item_id},
                )


def _require(model, entity_id: int, not_found):
    if db.session.query(model.id).filter(model.id == entity_id).first() is None:
        raise not_found(entity_id)


def _item_totals(lines) -> dict[int, int]:
    totals: dict[int, int] = {}
    for line in lines:
        totals[line.item_id] = totals.get(line.item_id, 0) + line.quantity
    return totals


# =============================================================================
# PURCHASE
# =============================================================================

def _purchase_steps(request: PurchaseRequest) -> list[Step]:
    total = request.total_cents
    paid, status = resolve_payment(total, request.paid_amount_cents, request.payment_status)

    def record():
        if db.session.query(Purchase.id).filter_by(client_ref=request.client_ref).first() is not None:
            return False
        vendor = db.session.get(Vendor, request.vendor_id)
        if vendor is None:
            raise VendorNotFound(request.vendor_id)
        for item_id in _item_totals(request.lines):
            _require(Item, item_id, ItemNotFound)

        purchase_number = next_document_number(PURCHASE)
        purchase = Purchase(
            purchase_number=purchase_number,
            client_ref=request.client_ref,
            bill_number=request.bill_number,
            vendor_id=vendor.id,
            vendor_name=vendor.name,
            subtotal_cents=request.subtotal_cents,
            tax_cents=request.tax_cents,
            discount_cents=request.discount_cents,
            total_cents=total,
            payment_status=status,
            upfront_paid_cents=paid,
            paid_amount_cents=paid,
            pending_amount_cents=total - paid,
            purchase_date=request.purchase_date or utcnow(),
            notes=request.notes,
            created_by=request.created_by,
        )
        db.session.add(purchase)
        db.session.flush()
        for line in request.lines:
            purchase.lines.append(PurchaseLine(
                item_id=line.item_id,
                quantity=line.quantity,
                purchase_rate_cents=line.purchase_rate_cents,
                sale_rate_cents=line.sale_rate_cents,
                line_total_cents=line.total_cents,
                expiry_date=line.expiry_date,
                shelf_location=line.shelf_location,
                barcode=line.barcode,
            ))
            append_journal_entry(
                item_id=line.item_id,
                direction=DIRECTION_STOCK_IN,
                quantity=line.quantity,
                unit_price_cents=line.purchase_rate_cents,
                total_value_cents=line.total_cents,
                reference_type="purchase",
                reference_id=purchase.id,
                reference_number=purchase_number,
                movement_date=purchase.purchase_date,
                counterparty_name=vendor.name,
                expiry_date=line.expiry_date,
                shelf_location=line.shelf_location,
                created_by=request.created_by,
            )
        return True

    steps: list[Step] = [("record", record)]

    per_item: dict[int, dict] = {}
    for line in request.lines:
        bucket = per_item.setdefault(line.item_id, {"quantity": 0, "cost": 0, "rate": None, "sale_rate": None})
        bucket["quantity"] += line.quantity
        bucket["cost"] += line.quantity * line.purchase_rate_cents
        bucket["rate"] = line.purchase_rate_cents
        if line.sale_rate_cents is not None:
            bucket["sale_rate"] = line.sale_rate_cents

    for item_id, bucket in per_item.items():
        def bump_item(item_id=item_id, bucket=bucket):
            stock_service.increment_stock(
                item_id,
                quantity_delta=bucket["quantity"],
                stock_in_quantity=bucket["quantity"],
                stock_in_cost_cents=bucket["cost"],
                purchase_rate_cents=bucket["rate"],
                sale_rate_cents=bucket["sale_rate"],
            )
        steps.append((f"item:{item_id}", bump_item))

    def bump_vendor():
        increment_columns(
            Vendor,
            request.vendor_id,
            outstanding_balance_cents=total - paid,
            total_purchases_cents=total,
        )

    steps.append(("vendor", bump_vendor))
    return steps


# =============================================================================
# SALE
# =============================================================================

def _sale_steps(request: SaleRequest) -> list[Step]:
    bill_type = resolve_bill_type(request.bill_type)
    is_credit = request.payment_method == PAYMENT_METHOD_CREDIT
    check_deferrable(KIND_SALE, request)

    total = request.quoted_total_cents
    subtotal = total - request.tax_cents + request.discount_cents
    posts_charge = is_credit and bill_type.affects_accounting and total > 0

    def record():
        if db.session.query(POSTransaction.id).filter_by(client_ref=request.client_ref).first() is not None:
            return False
        customer = None
        if request.customer_id is not None:
            customer = db.session.get(Customer, request.customer_id)
            if customer is None:
                raise CustomerNotFound(request.customer_id)
        names = {}
        for item_id in _item_totals(request.lines):
            item = db.session.get(Item, item_id)
            if item is None:
                raise ItemNotFound(item_id)
            names[item_id] = (item.name, item.barcode)

        tendered = request.amount_tendered_cents if request.amount_tendered_cents is not None else (0 if is_credit else total)
        transaction_number = next_document_number(POS_TRANSACTION)
        tx = POSTransaction(
            transaction_number=transaction_number,
            client_ref=request.client_ref,
            subtotal_cents=subtotal,
            tax_cents=request.tax_cents,
            discount_cents=request.discount_cents,
            total_cents=total,
            payment_method=request.payment_method,
            amount_tendered_cents=tendered,
            change_cents=max(0, tendered - total),
            customer_id=customer.id if customer else None,
            customer_name=customer.name if customer else None,
            bill_type=bill_type.code,
            affects_inventory=bill_type.affects_inventory,
            affects_accounting=bill_type.affects_accounting,
            is_credit_sale=is_credit,
            status=TX_STATUS_COMPLETED,
            notes=request.notes,
            cashier_id=request.cashier_id,
        )
        db.session.add(tx)
        db.session.flush()
        for line in request.lines:
            price = line.unit_price_cents
            name, barcode = names[line.item_id]
            tx.lines.append(POSTransactionLine(
                item_id=line.item_id,
                item_name=name,
                barcode=barcode,
                quantity=line.quantity,
                unit_price_cents=price,
                line_total_cents=line.quantity * price,
            ))
            if tx.affects_inventory:
                append_journal_entry(
                    item_id=line.item_id,
                    direction=DIRECTION_STOCK_OUT,
                    quantity=line.quantity,
                    unit_price_cents=price,
                    reference_type="sale",
                    reference_id=tx.id,
                    reference_number=transaction_number,
                    counterparty_name=tx.customer_name,
                    created_by=request.cashier_id,
                )
        if posts_charge:
            db.session.add(CustomerPayment(
                customer_id=customer.id,
                pos_transaction_id=tx.id,
                type=CUSTOMER_ENTRY_CHARGE,
                amount_cents=total,
                payment_method="sale",
                reference_number=transaction_number,
                notes=f"Credit sale {transaction_number}",
                payment_date=utcnow(),
                created_by=request.cashier_id,
            ))
        return True

    steps: list[Step] = [("record", record)]

    if bill_type.affects_inventory:
        for item_id, quantity in _item_totals(request.lines).items():
            def bump_item(item_id=item_id, quantity=quantity):
                stock_service.increment_stock(item_id, quantity_delta=-quantity)
            steps.append((f"item:{item_id}", bump_item))

    if request.customer_id is not None and bill_type.affects_accounting:
        def bump_customer():
            increment_columns(
                Customer,
                request.customer_id,
                outstanding_balance_cents=total if posts_charge else 0,
                total_purchases_cents=total,
            )
        steps.append(("customer", bump_customer))
    return steps


# =============================================================================
# PAYMENTS
# =============================================================================

def _vendor_payment_steps(request: VendorPaymentRequest) -> list[Step]:
    def record():
        if db.session.query(VendorPayment.id).filter_by(client_ref=request.client_ref).first() is not None:
            return False
        _require(Vendor, request.vendor_id, VendorNotFound)
        db.session.add(VendorPayment(
            vendor_id=request.vendor_id,
            purchase_id=request.purchase_id,
            client_ref=request.client_ref,
            amount_cents=request.amount_cents,
            payment_method=request.payment_method,
            reference_number=request.reference_number,
            notes=request.notes,
            payment_date=request.payment_date or utcnow(),
            created_by=request.created_by,
        ))
        db.session.flush()
        allocate_to_purchases(request.vendor_id, request.amount_cents, request.purchase_id)
        return True

    def bump_vendor():
        increment_columns(Vendor, request.vendor_id, outstanding_balance_cents=-request.amount_cents)

    return [("record", record), ("vendor", bump_vendor)]


def _customer_transaction_steps(request: CustomerTransactionRequest) -> list[Step]:
    signed = request.amount_cents if request.type == CUSTOMER_ENTRY_CHARGE else -request.amount_cents

    def record():
        if db.session.query(CustomerPayment.id).filter_by(client_ref=request.client_ref).first() is not None:
            return False
        _require(Customer, request.customer_id, CustomerNotFound)
        db.session.add(CustomerPayment(
            customer_id=request.customer_id,
            client_ref=request.client_ref,
            type=request.type,
            amount_cents=request.amount_cents,
            payment_method=request.payment_method,
            reference_number=request.reference_number,
            notes=request.notes,
            payment_date=request.payment_date or utcnow(),
            created_by=request.created_by,
        ))
        return True

    def bump_customer():
        increment_columns(Customer, request.customer_id, outstanding_balance_cents=signed)

    return [("record", record), ("customer", bump_customer)]


STEP_BUILDERS = {
    KIND_PURCHASE: _purchase_steps,
    KIND_SALE: _sale_steps,
    KIND_VENDOR_PAYMENT: _vendor_payment_steps,
    KIND_CUSTOMER_TRANSACTION: _customer_transaction_steps,
}


def build_steps(kind: str, request) -> list[Step]:
    if not getattr(request, "client_ref", None):
        raise ValidationError("Offline events need a client_ref", details={"kind": kind})
    logger.debug("Building fallback steps for %s %s", kind, request.client_ref)
    return STEP_BUILDERS[kind](request)


def touched_entities(kind: str, request) -> dict[str, set]:
    """Entities whose aggregates the event moves; reconciled after a drain."""
    touched = {"items": set(), "vendors": set(), "customers": set()}
    if kind in (KIND_PURCHASE, KIND_SALE):
        touched["items"].update(line.item_id for line in request.lines)
    if kind in (KIND_PURCHASE, KIND_VENDOR_PAYMENT):
        touched["vendors"].add(request.vendor_id)
    if kind in (KIND_SALE, KIND_CUSTOMER_TRANSACTION) and request.customer_id is not None:
        touched["customers"].add(request.customer_id)
    return touched
