# Overview: Service-layer operations for POS sales; atomic sale, cancel and void.

"""
Sales Service

SALE (one atomic unit):
- every cart item is read under the write lock before anything is written
- quantities of the same item on several cart lines are summed, then checked
- if the bill type affects inventory and any item would go below zero the
  whole sale is rejected with InsufficientStock and nothing is deducted
- credit sales (payment_method == credit) post a charge to the customer
  ledger when the bill type affects accounting
- rules that need no store read (credit needs a customer, tender covers a
  fully priced cart) run in schemas.validate_sale before the unit opens

CANCEL / VOID:
- only from completed; both are terminal
- one compensating stock_in per original line (when the sale moved stock)
- a credit sale's charge is offset by a payment entry with method "reversal"
"""

from __future__ import annotations

import logging

from sqlalchemy import func

from ..extensions import db
from ..models import Customer, CustomerPayment, Item, POSReturn, POSReturnLine, POSTransaction, POSTransactionLine
from ..models.counterparties import CUSTOMER_ENTRY_CHARGE, CUSTOMER_ENTRY_PAYMENT
from ..models.journal import DIRECTION_STOCK_IN, DIRECTION_STOCK_OUT
from ..models.pos import (
    PAYMENT_METHOD_CREDIT,
    TX_STATUS_CANCELLED,
    TX_STATUS_COMPLETED,
    TX_STATUS_VOIDED,
)
from ..time_utils import utcnow
from . import balance_service, stock_service
from .catalog_service import resolve_bill_type
from .concurrency import begin_atomic, lock_for_update, run_with_retry
from .document_service import POS_TRANSACTION, next_document_number
from .errors import (
    CustomerNotFound,
    InsufficientStock,
    TransactionNotCancellable,
    TransactionNotFound,
    ValidationError,
)
from .journal_service import append_journal_entry
from .purchase_service import load_items_for_update
from .schemas import SaleRequest, validate_sale

logger = logging.getLogger(__name__)


def find_by_client_ref(client_ref: str | None) -> POSTransaction | None:
    if not client_ref:
        return None
    return db.session.query(POSTransaction).filter_by(client_ref=client_ref).first()


def _check_stock(items: dict, wanted: dict[int, int]) -> None:
    for item_id, quantity in wanted.items():
        item = items[item_id]
        if item.current_quantity - quantity < 0:
            raise InsufficientStock(
                item_id,
                available=max(0, item.current_quantity),
                requested=quantity,
                item_name=item.name,
            )


def record_sale(request: SaleRequest) -> POSTransaction:
    """
    Ring up a sale atomically.

    Raises:
        ValidationError: empty cart, bad method, credit without customer, short tender
        ItemNotFound / ItemArchived / CustomerNotFound: missing references
        InsufficientStock: any item would go negative
    """
    validate_sale(request)

    def _op():
        begin_atomic()

        existing = find_by_client_ref(request.client_ref)
        if existing is not None:
            db.session.rollback()
            return existing

        bill_type = resolve_bill_type(request.bill_type)

        customer = None
        if request.customer_id is not None:
            customer = lock_for_update(db.session.query(Customer).filter_by(id=request.customer_id)).first()
            if customer is None:
                raise CustomerNotFound(request.customer_id)

        is_credit = request.payment_method == PAYMENT_METHOD_CREDIT

        items = load_items_for_update(line.item_id for line in request.lines)

        wanted: dict[int, int] = {}
        for line in request.lines:
            wanted[line.item_id] = wanted.get(line.item_id, 0) + line.quantity
        if bill_type.affects_inventory:
            _check_stock(items, wanted)

        priced = []
        for index, line in enumerate(request.lines):
            item = items[line.item_id]
            price = line.unit_price_cents if line.unit_price_cents is not None else item.sale_rate_cents
            if price is None:
                raise ValidationError(
                    f"No sale price for {item.name}",
                    details={"line": index, "item_id": item.id},
                )
            priced.append((line, item, price))

        subtotal = sum(line.quantity * price for line, _item, price in priced)
        total = subtotal + request.tax_cents - request.discount_cents
        if total < 0:
            raise ValidationError("Discount exceeds sale total", details={"total_cents": total})

        if is_credit:
            tendered = request.amount_tendered_cents or 0
        else:
            tendered = request.amount_tendered_cents if request.amount_tendered_cents is not None else total
            if tendered < total:
                raise ValidationError(
                    "Amount tendered is less than the total",
                    details={"total_cents": total, "amount_tendered_cents": tendered},
                )

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

        for line, item, price in priced:
            tx.lines.append(POSTransactionLine(
                item_id=item.id,
                item_name=item.name,
                barcode=item.barcode,
                quantity=line.quantity,
                unit_price_cents=price,
                line_total_cents=line.quantity * price,
            ))
            if tx.affects_inventory:
                append_journal_entry(
                    item_id=item.id,
                    direction=DIRECTION_STOCK_OUT,
                    quantity=line.quantity,
                    unit_price_cents=price,
                    reference_type="sale",
                    reference_id=tx.id,
                    reference_number=transaction_number,
                    counterparty_name=tx.customer_name,
                    created_by=request.cashier_id,
                )
                stock_service.apply_stock_out(item, line.quantity)

        if customer is not None and tx.affects_accounting:
            if is_credit and total > 0:
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
                customer.outstanding_balance_cents += total
            customer.total_purchases_cents += total

        db.session.commit()
        return tx

    tx = run_with_retry(_op)
    stock_service.invalidate(*[line.item_id for line in request.lines])
    if request.customer_id is not None:
        balance_service.invalidate(balance_service.CUSTOMER, request.customer_id)
    return tx


# =============================================================================
# REVERSALS
# =============================================================================

def returned_quantities(transaction_id: int) -> dict[int, int]:
    """{original line id: quantity already returned} across every return of a sale."""
    rows = (
        db.session.query(POSReturnLine.original_line_id, func.sum(POSReturnLine.quantity))
        .join(POSReturn, POSReturn.id == POSReturnLine.pos_return_id)
        .filter(POSReturn.original_transaction_id == transaction_id)
        .group_by(POSReturnLine.original_line_id)
        .all()
    )
    return {line_id: int(quantity or 0) for line_id, quantity in rows}


def refunded_cents(transaction_id: int) -> dict[str, int]:
    rows = (
        db.session.query(POSReturn.refund_method, func.sum(POSReturn.total_refund_cents))
        .filter(POSReturn.original_transaction_id == transaction_id)
        .group_by(POSReturn.refund_method)
        .all()
    )
    refunds = {"cash": 0, "store_credit": 0}
    for method, amount in rows:
        refunds[method] = int(amount or 0)
    refunds["total"] = sum(refunds.values())
    return refunds


def _reverse_sale(transaction_id: int, *, reference_type: str, reason: str | None, actor: str | None) -> POSTransaction:
    """Shared cancel/void unit. Caller sets the terminal status fields."""
    tx = lock_for_update(db.session.query(POSTransaction).filter_by(id=transaction_id)).first()
    if tx is None:
        raise TransactionNotFound(transaction_id)
    if tx.status != TX_STATUS_COMPLETED:
        raise TransactionNotCancellable(tx.id, tx.status)

    if tx.affects_inventory:
        items = {
            item.id: item
            for item in lock_for_update(
                db.session.query(Item).filter(
                    Item.id.in_({line.item_id for line in tx.lines})
                )
            ).all()
        }
        returned = returned_quantities(tx.id)
        for line in tx.lines:
            quantity = line.quantity - returned.get(line.id, 0)
            if quantity <= 0:
                continue
            append_journal_entry(
                item_id=line.item_id,
                direction=DIRECTION_STOCK_IN,
                quantity=quantity,
                unit_price_cents=line.unit_price_cents,
                reference_type=reference_type,
                reference_id=tx.id,
                reference_number=tx.transaction_number,
                counterparty_name=tx.customer_name,
                notes=reason,
                created_by=actor,
            )
            stock_service.apply_stock_in(items[line.item_id], quantity, line.unit_price_cents)

    if tx.customer_id is not None and tx.affects_accounting:
        customer = lock_for_update(db.session.query(Customer).filter_by(id=tx.customer_id)).first()
        if customer is not None:
            refunds = refunded_cents(tx.id)
            outstanding = tx.total_cents - refunds["store_credit"]
            if tx.is_credit_sale and outstanding > 0:
                db.session.add(CustomerPayment(
                    customer_id=customer.id,
                    pos_transaction_id=tx.id,
                    type=CUSTOMER_ENTRY_PAYMENT,
                    amount_cents=outstanding,
                    payment_method="reversal",
                    reference_number=tx.transaction_number,
                    notes=f"{reference_type.capitalize()} of {tx.transaction_number}",
                    payment_date=utcnow(),
                    created_by=actor,
                ))
                customer.outstanding_balance_cents -= outstanding
            customer.total_purchases_cents -= tx.total_cents - refunds["total"]

    return tx


def _finish_reversal(tx: POSTransaction) -> POSTransaction:
    stock_service.invalidate(*[line.item_id for line in tx.lines])
    if tx.customer_id is not None:
        balance_service.invalidate(balance_service.CUSTOMER, tx.customer_id)
    return tx


def cancel_sale(transaction_id: int, reason: str | None = None, *, cancelled_by: str | None = None) -> POSTransaction:
    """Cancel a completed sale, restocking every line."""
    def _op():
        begin_atomic()
        tx = _reverse_sale(transaction_id, reference_type="cancellation", reason=reason, actor=cancelled_by)
        tx.status = TX_STATUS_CANCELLED
        tx.cancellation_reason = reason
        tx.cancelled_at = utcnow()
        db.session.commit()
        return tx

    return _finish_reversal(run_with_retry(_op))


def void_sale(transaction_id: int, reason: str | None = None, *, voided_by: str | None = None) -> POSTransaction:
    """Void a completed sale. Same compensation as cancel; status voided."""
    if not reason:
        raise ValidationError("A reason is required to void a sale", details={"field": "reason"})

    def _op():
        begin_atomic()
        tx = _reverse_sale(transaction_id, reference_type="void", reason=reason, actor=voided_by)
        tx.status = TX_STATUS_VOIDED
        tx.void_reason = reason
        tx.voided_at = utcnow()
        tx.voided_by = voided_by
        db.session.commit()
        return tx

    return _finish_reversal(run_with_retry(_op))


def get_transaction(transaction_id: int) -> POSTransaction:
    tx = db.session.get(POSTransaction, transaction_id)
    if tx is None:
        raise TransactionNotFound(transaction_id)
    return tx


def list_transactions(*, status: str | None = None, customer_id: int | None = None, limit: int = 100, offset: int = 0) -> list[POSTransaction]:
    query = db.session.query(POSTransaction)
    if status:
        query = query.filter(POSTransaction.status == status)
    if customer_id is not None:
        query = query.filter(POSTransaction.customer_id == customer_id)
    return query.order_by(POSTransaction.created_at.desc(), POSTransaction.id.desc()).offset(offset).limit(limit).all()
