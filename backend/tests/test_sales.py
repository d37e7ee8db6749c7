"""
POS sales: stock deduction, oversell protection, credit sales, cancel and void.
"""

import pytest

from stockledger.models import CustomerPayment, JournalEntry, POSTransaction
from stockledger.services import orchestrator, sales_service, stock_service
from stockledger.services.errors import (
    InsufficientStock,
    TransactionNotCancellable,
    TransactionNotFound,
    ValidationError,
)
from stockledger.services.outcomes import Committed, Rejected
from stockledger.services.schemas import SaleLineInput, SaleRequest


def _sale(*lines, **kwargs):
    return SaleRequest(
        lines=[SaleLineInput(item_id=i.id, quantity=q) for i, q in lines],
        **kwargs,
    )


def test_sale_deducts_stock_and_journals(db_session, item, stock, fresh):
    stock(item, 10)

    tx = sales_service.record_sale(_sale((item, 3)))

    assert tx.transaction_number.startswith("POS-")
    assert tx.status == "completed"
    assert tx.total_cents == 4500  # default sale rate 15.00
    assert tx.change_cents == 0
    assert fresh['item'](item.id).current_quantity == 7

    outs = db_session.query(JournalEntry).filter_by(item_id=item.id, direction="stock_out").all()
    assert len(outs) == 1
    assert outs[0].quantity == 3
    assert outs[0].reference_type == "sale"


def test_oversell_is_rejected_and_nothing_moves(db_session, item, stock, fresh):
    stock(item, 2)

    outcome = orchestrator.record_sale(_sale((item, 1), (item, 2)))

    assert isinstance(outcome, Rejected)
    assert isinstance(outcome.error, InsufficientStock)
    assert outcome.error.details == {"item_id": item.id, "available": 2, "requested": 3}
    assert outcome.error.http_status == 409
    assert fresh['item'](item.id).current_quantity == 2
    assert db_session.query(POSTransaction).count() == 0


def test_oversell_on_one_item_leaves_other_items_untouched(db_session, make_item, stock, fresh):
    plenty = make_item("Plenty")
    scarce = make_item("Scarce")
    stock(plenty, 10)
    stock(scarce, 1)

    with pytest.raises(InsufficientStock):
        sales_service.record_sale(_sale((plenty, 4), (scarce, 2)))

    assert fresh['item'](plenty.id).current_quantity == 10
    assert fresh['item'](scarce.id).current_quantity == 1
    assert db_session.query(JournalEntry).filter_by(direction="stock_out").count() == 0


def test_quotation_does_not_touch_stock(db_session, item, stock, fresh):
    stock(item, 1)

    tx = sales_service.record_sale(_sale((item, 5), bill_type="quotation"))

    assert tx.affects_inventory is False
    assert fresh['item'](item.id).current_quantity == 1
    assert db_session.query(JournalEntry).filter_by(direction="stock_out").count() == 0


def test_unknown_bill_type_is_validation_error(db_session, item, stock):
    stock(item, 1)
    with pytest.raises(ValidationError):
        sales_service.record_sale(_sale((item, 1), bill_type="layaway"))


def test_short_tender_is_rejected(db_session, item, stock):
    stock(item, 5)
    with pytest.raises(ValidationError):
        sales_service.record_sale(_sale((item, 1), amount_tendered_cents=1000))


def test_change_is_computed(db_session, item, stock):
    stock(item, 5)
    tx = sales_service.record_sale(_sale((item, 1), amount_tendered_cents=2000))
    assert tx.change_cents == 500


def test_credit_sale_requires_customer(db_session, item, stock):
    stock(item, 5)
    with pytest.raises(ValidationError):
        sales_service.record_sale(_sale((item, 1), payment_method="credit"))


def test_credit_sale_charges_customer(db_session, item, customer, stock, fresh):
    stock(item, 5)

    tx = sales_service.record_sale(_sale((item, 2), payment_method="credit", customer_id=customer.id))

    refreshed = fresh['customer'](customer.id)
    assert refreshed.outstanding_balance_cents == 3000
    assert refreshed.total_purchases_cents == 3000
    charge = db_session.query(CustomerPayment).filter_by(pos_transaction_id=tx.id).one()
    assert charge.type == "charge"
    assert charge.amount_cents == 3000


def test_cancel_restores_stock(db_session, item, stock, fresh):
    stock(item, 10)
    tx = sales_service.record_sale(_sale((item, 4)))

    cancelled = sales_service.cancel_sale(tx.id, "customer changed mind")

    assert cancelled.status == "cancelled"
    assert cancelled.cancellation_reason == "customer changed mind"
    assert fresh['item'](item.id).current_quantity == 10
    assert stock_service.compute_from_journal(item.id).quantity == 10

    with pytest.raises(TransactionNotCancellable):
        sales_service.cancel_sale(tx.id)


def test_cancel_credit_sale_reverses_balance(db_session, item, customer, stock, fresh):
    stock(item, 10)
    tx = sales_service.record_sale(_sale((item, 2), payment_method="credit", customer_id=customer.id))

    sales_service.cancel_sale(tx.id)

    refreshed = fresh['customer'](customer.id)
    assert refreshed.outstanding_balance_cents == 0
    assert refreshed.total_purchases_cents == 0
    reversal = db_session.query(CustomerPayment).filter_by(payment_method="reversal").one()
    assert reversal.amount_cents == 3000


def test_void_requires_reason(db_session, item, stock):
    stock(item, 3)
    tx = sales_service.record_sale(_sale((item, 1)))

    with pytest.raises(ValidationError):
        sales_service.void_sale(tx.id, "")

    voided = sales_service.void_sale(tx.id, "rang up twice", voided_by="manager")
    assert voided.status == "voided"
    assert voided.voided_by == "manager"


def test_cancel_unknown_transaction(db_session):
    outcome = orchestrator.cancel_sale(123456)
    assert isinstance(outcome, Rejected)
    assert isinstance(outcome.error, TransactionNotFound)
    assert outcome.error.http_status == 404


def test_orchestrator_wraps_committed_sale(db_session, item, stock):
    stock(item, 3)
    outcome = orchestrator.record_sale(_sale((item, 1)))
    assert isinstance(outcome, Committed)
    assert outcome.ok
    assert outcome.value.total_cents == 1500


def test_explicit_price_overrides_sale_rate(db_session, item, stock):
    stock(item, 3)
    tx = sales_service.record_sale(SaleRequest(
        lines=[SaleLineInput(item_id=item.id, quantity=2, unit_price_cents=999)],
    ))
    assert tx.total_cents == 1998
