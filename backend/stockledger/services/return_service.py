# Overview: Service-layer operations for POS returns; restock and refund against a completed sale.

"""
Return Service

RULES:
- the sale must exist and be completed
- each returned item must be on the sale; several returns may be made, but
  the cumulative returned quantity per item never exceeds what was sold
- refund = quantity * original unit price (the price the customer paid)
- stock_in per returned line when the sale moved stock
- the sale becomes "returned" only once every line is fully returned
- a store_credit refund to a known customer posts a payment entry that
  reduces what the customer owes
"""

from __future__ import annotations

import logging

from ..extensions import db
from ..models import Customer, CustomerPayment, Item, POSReturn, POSReturnLine, POSTransaction
from ..models.counterparties import CUSTOMER_ENTRY_PAYMENT
from ..models.journal import DIRECTION_STOCK_IN
from ..models.pos import TX_STATUS_COMPLETED, TX_STATUS_RETURNED
from ..time_utils import utcnow
from . import balance_service, stock_service
from .concurrency import begin_atomic, lock_for_update, run_with_retry
from .document_service import POS_RETURN, next_document_number
from .errors import ReturnNotAllowed, TransactionNotFound
from .journal_service import append_journal_entry
from .sales_service import returned_quantities
from .schemas import ReturnRequest, validate_return

logger = logging.getLogger(__name__)


def _allocate_to_lines(tx: POSTransaction, item_id: int, quantity: int, returned: dict[int, int]) -> list[tuple]:
    """
    Spread a returned quantity over the sale's lines for that item.

    Returns [(line, quantity)]; raises ReturnNotAllowed if the item was not
    sold or more is returned than is still returnable.
    """
    lines = [line for line in tx.lines if line.item_id == item_id]
    if not lines:
        raise ReturnNotAllowed(
            f"Item {item_id} is not part of transaction {tx.transaction_number}",
            details={"item_id": item_id, "transaction_id": tx.id},
        )

    returnable = sum(line.quantity - returned.get(line.id, 0) for line in lines)
    if quantity > returnable:
        raise ReturnNotAllowed(
            f"Cannot return {quantity} of item {item_id}; only {returnable} returnable",
            details={"item_id": item_id, "requested": quantity, "returnable": returnable},
        )

    allocation = []
    remaining = quantity
    for line in lines:
        if remaining <= 0:
            break
        available = line.quantity - returned.get(line.id, 0)
        take = min(available, remaining)
        if take > 0:
            allocation.append((line, take))
            returned[line.id] = returned.get(line.id, 0) + take
            remaining -= take
    return allocation


def process_return(request: ReturnRequest) -> POSReturn:
    """
    Record a return against a completed sale atomically.

    Raises:
        ValidationError: empty return, bad quantity or refund method
        TransactionNotFound: sale missing
        ReturnNotAllowed: sale not completed, item not on sale, quantity too high
    """
    validate_return(request)

    def _op():
        begin_atomic()

        tx = lock_for_update(db.session.query(POSTransaction).filter_by(id=request.transaction_id)).first()
        if tx is None:
            raise TransactionNotFound(request.transaction_id)
        if tx.status != TX_STATUS_COMPLETED:
            raise ReturnNotAllowed(
                f"Cannot return items from a {tx.status} transaction",
                details={"transaction_id": tx.id, "status": tx.status},
            )

        returned = returned_quantities(tx.id)
        requested: dict[int, int] = {}
        for line in request.lines:
            requested[line.item_id] = requested.get(line.item_id, 0) + line.quantity

        allocations = []
        for item_id, quantity in requested.items():
            allocations.extend(_allocate_to_lines(tx, item_id, quantity, returned))

        items = {}
        if tx.affects_inventory:
            items = {
                item.id: item
                for item in lock_for_update(
                    db.session.query(Item).filter(Item.id.in_(set(requested)))
                ).all()
            }

        return_number = next_document_number(POS_RETURN)
        pos_return = POSReturn(
            return_number=return_number,
            original_transaction_id=tx.id,
            original_transaction_number=tx.transaction_number,
            refund_method=request.refund_method,
            reason=request.reason,
            created_by=request.created_by,
        )
        db.session.add(pos_return)
        db.session.flush()

        total_refund = 0
        for line, quantity in allocations:
            refund = quantity * line.unit_price_cents
            total_refund += refund
            pos_return.lines.append(POSReturnLine(
                original_line_id=line.id,
                item_id=line.item_id,
                quantity=quantity,
                unit_price_cents=line.unit_price_cents,
                refund_cents=refund,
            ))
            if tx.affects_inventory:
                append_journal_entry(
                    item_id=line.item_id,
                    direction=DIRECTION_STOCK_IN,
                    quantity=quantity,
                    unit_price_cents=line.unit_price_cents,
                    reference_type="return",
                    reference_id=pos_return.id,
                    reference_number=return_number,
                    counterparty_name=tx.customer_name,
                    notes=request.reason,
                    created_by=request.created_by,
                )
                stock_service.apply_stock_in(items[line.item_id], quantity, line.unit_price_cents)
        pos_return.total_refund_cents = total_refund

        if tx.customer_id is not None and tx.affects_accounting:
            customer = lock_for_update(db.session.query(Customer).filter_by(id=tx.customer_id)).first()
            if customer is not None:
                if request.refund_method == "store_credit" and total_refund > 0:
                    db.session.add(CustomerPayment(
                        customer_id=customer.id,
                        pos_transaction_id=tx.id,
                        type=CUSTOMER_ENTRY_PAYMENT,
                        amount_cents=total_refund,
                        payment_method="store_credit",
                        reference_number=return_number,
                        notes=f"Store credit for return {return_number}",
                        payment_date=utcnow(),
                        created_by=request.created_by,
                    ))
                    customer.outstanding_balance_cents -= total_refund
                customer.total_purchases_cents -= total_refund

        if all(returned.get(line.id, 0) >= line.quantity for line in tx.lines):
            tx.status = TX_STATUS_RETURNED

        db.session.commit()
        return pos_return

    pos_return = run_with_retry(_op)
    stock_service.invalidate(*[line.item_id for line in request.lines])
    tx = pos_return.original_transaction
    if tx.customer_id is not None:
        balance_service.invalidate(balance_service.CUSTOMER, tx.customer_id)
    logger.info(
        "Return %s against %s refunded %s via %s",
        pos_return.return_number, pos_return.original_transaction_number,
        pos_return.total_refund_cents, pos_return.refund_method,
    )
    return pos_return


def list_returns(transaction_id: int) -> list[POSReturn]:
    return (
        db.session.query(POSReturn)
        .filter(POSReturn.original_transaction_id == transaction_id)
        .order_by(POSReturn.id.asc())
        .all()
    )
