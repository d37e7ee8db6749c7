"""
Returns against completed sales, including partial and repeated returns.
"""

import pytest

from stockledger.models import CustomerPayment, JournalEntry
from stockledger.services import orchestrator, return_service, sales_service
from stockledger.services.errors import ReturnNotAllowed, TransactionNotCancellable
from stockledger.services.outcomes import Rejected
from stockledger.services.schemas import ReturnLineInput, ReturnRequest, SaleLineInput, SaleRequest


def _return(tx, item, quantity, **kwargs):
    return ReturnRequest(
        transaction_id=tx.id,
        lines=[ReturnLineInput(item_id=item.id, quantity=quantity)],
        **kwargs,
    )


@pytest.fixture
def sold(db_session, item, stock):
    stock(item, 10)
    return sales_service.record_sale(SaleRequest(lines=[SaleLineInput(item_id=item.id, quantity=4)]))


def test_partial_return_restocks_and_keeps_sale_completed(db_session, item, sold, fresh):
    pos_return = return_service.process_return(_return(sold, item, 1, reason="damaged box"))

    assert pos_return.return_number.startswith("RET-")
    assert pos_return.total_refund_cents == 1500
    assert fresh['item'](item.id).current_quantity == 7
    assert sales_service.get_transaction(sold.id).status == "completed"

    entry = db_session.query(JournalEntry).filter_by(reference_type="return").one()
    assert entry.direction == "stock_in"
    assert entry.unit_price_cents == 1500


def test_sale_becomes_returned_only_when_fully_returned(db_session, item, sold, fresh):
    return_service.process_return(_return(sold, item, 3))
    assert sales_service.get_transaction(sold.id).status == "completed"

    return_service.process_return(_return(sold, item, 1))
    assert sales_service.get_transaction(sold.id).status == "returned"
    assert fresh['item'](item.id).current_quantity == 10


def test_cannot_return_more_than_sold(db_session, item, sold):
    return_service.process_return(_return(sold, item, 3))

    outcome = orchestrator.process_return(_return(sold, item, 2))

    assert isinstance(outcome, Rejected)
    assert isinstance(outcome.error, ReturnNotAllowed)
    assert outcome.error.details["returnable"] == 1


def test_cannot_return_item_not_on_sale(db_session, make_item, sold):
    other = make_item("Not sold")
    with pytest.raises(ReturnNotAllowed):
        return_service.process_return(_return(sold, other, 1))


def test_cannot_return_from_cancelled_sale(db_session, item, sold):
    sales_service.cancel_sale(sold.id)
    with pytest.raises(ReturnNotAllowed):
        return_service.process_return(_return(sold, item, 1))


def test_cancel_after_partial_return_restocks_only_the_rest(db_session, item, sold, fresh):
    return_service.process_return(_return(sold, item, 1))

    sales_service.cancel_sale(sold.id)

    assert fresh['item'](item.id).current_quantity == 10


def test_fully_returned_sale_cannot_be_cancelled(db_session, item, sold):
    return_service.process_return(_return(sold, item, 4))
    with pytest.raises(TransactionNotCancellable):
        sales_service.cancel_sale(sold.id)


def test_store_credit_return_reduces_customer_balance(db_session, item, customer, stock, fresh):
    stock(item, 5)
    tx = sales_service.record_sale(SaleRequest(
        lines=[SaleLineInput(item_id=item.id, quantity=2)],
        payment_method="credit",
        customer_id=customer.id,
    ))

    return_service.process_return(_return(tx, item, 1, refund_method="store_credit"))

    refreshed = fresh['customer'](customer.id)
    assert refreshed.outstanding_balance_cents == 1500
    assert refreshed.total_purchases_cents == 1500
    credit = db_session.query(CustomerPayment).filter_by(payment_method="store_credit").one()
    assert credit.amount_cents == 1500

    # cancelling now reverses only what is still owed
    sales_service.cancel_sale(tx.id)
    refreshed = fresh['customer'](customer.id)
    assert refreshed.outstanding_balance_cents == 0
    assert refreshed.total_purchases_cents == 0


def test_list_returns(db_session, item, sold):
    return_service.process_return(_return(sold, item, 1))
    return_service.process_return(_return(sold, item, 1))
    assert [r.total_refund_cents for r in return_service.list_returns(sold.id)] == [1500, 1500]
