"""
Purchase recording: atomic stock-in, average cost and vendor balance.
"""

import pytest

from stockledger.models import JournalEntry, Purchase
from stockledger.services import orchestrator, purchase_service, stock_service
from stockledger.services.errors import ItemNotFound, ValidationError, VendorNotFound
from stockledger.services.outcomes import Committed, Rejected
from stockledger.services.schemas import PurchaseLineInput, PurchaseRequest, purchase_request_from_json


def _request(vendor, *lines, **kwargs):
    return PurchaseRequest(
        vendor_id=vendor.id,
        lines=[PurchaseLineInput(item_id=i.id, quantity=q, purchase_rate_cents=r) for i, q, r in lines],
        **kwargs,
    )


def test_basic_purchase_updates_stock_and_vendor(db_session, item, vendor, fresh):
    purchase = purchase_service.record_purchase(_request(vendor, (item, 10, 500)))

    assert purchase.purchase_number.startswith("PUR-")
    assert purchase.total_cents == 5000
    assert purchase.payment_status == "unpaid"
    assert purchase.pending_amount_cents == 5000

    refreshed = fresh['item'](item.id)
    assert refreshed.current_quantity == 10
    assert refreshed.average_unit_cost_cents == 500
    assert refreshed.purchase_rate_cents == 500

    assert fresh['vendor'](vendor.id).outstanding_balance_cents == 5000
    assert fresh['vendor'](vendor.id).total_purchases_cents == 5000

    entries = db_session.query(JournalEntry).filter_by(item_id=item.id).all()
    assert len(entries) == 1
    assert entries[0].direction == "stock_in"
    assert entries[0].reference_id == purchase.id


def test_lifetime_weighted_average(db_session, item, vendor, fresh):
    purchase_service.record_purchase(_request(vendor, (item, 10, 500)))
    purchase_service.record_purchase(_request(vendor, (item, 5, 800)))

    refreshed = fresh['item'](item.id)
    assert refreshed.current_quantity == 15
    # (10*500 + 5*800) / 15 = 600
    assert refreshed.average_unit_cost_cents == 600
    assert stock_service.compute_from_journal(item.id).average_unit_cost_cents == 600


def test_average_rounds_half_up():
    assert stock_service.weighted_average_cents(1001, 2) == 501
    assert stock_service.weighted_average_cents(1000, 3) == 333
    assert stock_service.weighted_average_cents(0, 0) == 0


@pytest.mark.parametrize(
    "total,paid,status,expected",
    [
        (1000, 0, None, (0, "unpaid")),
        (1000, 400, None, (400, "partial")),
        (1000, 1000, None, (1000, "paid")),
        (0, 0, None, (0, "paid")),
        (1000, 0, "paid", (1000, "paid")),
        (1000, 300, "partial", (300, "partial")),
        (1000, 1200, None, (1200, "paid")),
    ],
)
def test_resolve_payment(total, paid, status, expected):
    assert purchase_service.resolve_payment(total, paid, status) == expected


@pytest.mark.parametrize(
    "paid,status",
    [(300, "paid"), (300, "unpaid"), (0, "partial"), (1000, "partial")],
)
def test_resolve_payment_rejects_contradictions(paid, status):
    with pytest.raises(ValidationError):
        purchase_service.resolve_payment(1000, paid, status)


def test_partial_payment_only_pending_goes_to_vendor(db_session, item, vendor, fresh):
    purchase = purchase_service.record_purchase(
        _request(vendor, (item, 4, 250), paid_amount_cents=400)
    )
    assert purchase.payment_status == "partial"
    assert purchase.upfront_paid_cents == 400
    assert fresh['vendor'](vendor.id).outstanding_balance_cents == 600


def test_overpaid_purchase_is_flagged(db_session, item, vendor, fresh):
    purchase = purchase_service.record_purchase(
        _request(vendor, (item, 1, 1000), paid_amount_cents=1500)
    )
    assert purchase.is_overpaid
    assert purchase.pending_amount_cents == -500
    assert fresh['vendor'](vendor.id).outstanding_balance_cents == -500


def test_missing_item_aborts_whole_purchase(db_session, item, vendor, fresh):
    request = PurchaseRequest(
        vendor_id=vendor.id,
        lines=[
            PurchaseLineInput(item_id=item.id, quantity=3, purchase_rate_cents=100),
            PurchaseLineInput(item_id=99999, quantity=1, purchase_rate_cents=100),
        ],
    )
    with pytest.raises(ItemNotFound):
        purchase_service.record_purchase(request)

    assert db_session.query(Purchase).count() == 0
    assert db_session.query(JournalEntry).count() == 0
    assert fresh['item'](item.id).current_quantity == 0
    assert fresh['vendor'](vendor.id).outstanding_balance_cents == 0


def test_unknown_vendor_is_rejected_outcome(db_session, item):
    outcome = orchestrator.record_purchase(PurchaseRequest(
        vendor_id=424242,
        lines=[PurchaseLineInput(item_id=item.id, quantity=1, purchase_rate_cents=100)],
    ))
    assert isinstance(outcome, Rejected)
    assert isinstance(outcome.error, VendorNotFound)
    assert not outcome.retryable


def test_client_ref_makes_purchase_idempotent(db_session, item, vendor, fresh):
    first = orchestrator.record_purchase(_request(vendor, (item, 2, 100), client_ref="till-1-0001"))
    second = orchestrator.record_purchase(_request(vendor, (item, 2, 100), client_ref="till-1-0001"))
    # the replay holds no write lock once it returns
    assert not db_session().in_transaction()

    assert isinstance(first, Committed) and isinstance(second, Committed)
    assert first.value.id == second.value.id
    assert fresh['item'](item.id).current_quantity == 2


def test_json_aliases_are_normalized(db_session, item, vendor):
    request = purchase_request_from_json({
        "vendorId": vendor.id,
        "items": [{"itemId": item.id, "qty": "3", "rate": "12.50"}],
        "paid": 10,
    })
    assert request.lines[0].purchase_rate_cents == 1250
    assert request.lines[0].quantity == 3
    assert request.paid_amount_cents == 1000
    assert request.total_cents == 3750


def test_json_requires_lines(db_session, vendor):
    with pytest.raises(ValidationError):
        purchase_request_from_json({"vendor_id": vendor.id, "lines": []})
