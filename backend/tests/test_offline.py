"""
Offline capture and drain: deferral, checkpointed replay and post-drain reconciliation.
"""

import pytest
from sqlalchemy.exc import DisconnectionError, OperationalError

from stockledger.models import JournalEntry, OfflineEvent, Purchase, VendorPayment
from stockledger.services import (
    fallback_service,
    inventory_service,
    offline_queue,
    orchestrator,
    payment_service,
    purchase_service,
    return_service,
    sales_service,
    stock_service,
)
from stockledger.services.errors import DrainInProgress, StoreUnavailable, ValidationError
from stockledger.services.outcomes import Committed, DeferredOffline, Rejected
from stockledger.services.schemas import (
    PurchaseLineInput,
    PurchaseRequest,
    SaleLineInput,
    SaleRequest,
    VendorPaymentRequest,
)


ATOMIC_SERVICES = (purchase_service, sales_service, payment_service, return_service, inventory_service)


def _disconnect():
    raise DisconnectionError("connection refused")


def _dropped_connection():
    raise OperationalError("BEGIN IMMEDIATE", {}, Exception("server closed the connection"), connection_invalidated=True)


@pytest.fixture
def store_down(monkeypatch):
    """Every atomic unit fails to open because the shared store is unreachable."""
    for module in ATOMIC_SERVICES:
        monkeypatch.setattr(module, "begin_atomic", _disconnect)
    return monkeypatch


def _purchase(vendor, item, quantity=5, rate=300, **kwargs):
    return PurchaseRequest(
        vendor_id=vendor.id,
        lines=[PurchaseLineInput(item_id=item.id, quantity=quantity, purchase_rate_cents=rate)],
        **kwargs,
    )


def _priced_sale(item, quantity=1, price=1500, **kwargs):
    return SaleRequest(lines=[SaleLineInput(item_id=item.id, quantity=quantity, unit_price_cents=price)], **kwargs)


# ===== CAPTURE =====

def test_purchase_is_deferred_when_store_is_down(db_session, item, vendor, store_down):
    outcome = orchestrator.record_purchase(_purchase(vendor, item))

    assert isinstance(outcome, DeferredOffline)
    assert outcome.kind == "purchase"
    assert outcome.temp_id.startswith("OFFLINE-")

    event = db_session.query(OfflineEvent).filter_by(temp_id=outcome.temp_id).one()
    assert event.payload["client_ref"].startswith("REF-")
    assert event.attempts == 0
    assert offline_queue.pending_count() == 1
    assert db_session.query(Purchase).count() == 0


def test_dropped_connection_is_classified_as_unreachable(db_session, item, vendor, monkeypatch):
    monkeypatch.setattr(purchase_service, "begin_atomic", _dropped_connection)

    outcome = orchestrator.record_purchase(_purchase(vendor, item))

    assert isinstance(outcome, DeferredOffline)


def test_sale_is_deferred_only_when_allowed(db_session, item, store_down):
    request = _priced_sale(item)

    rejected = orchestrator.record_sale(request)
    assert isinstance(rejected, Rejected)
    assert rejected.retryable
    assert rejected.error.http_status == 503
    assert offline_queue.pending_count() == 0

    deferred = orchestrator.record_sale(request, allow_offline=True)
    assert isinstance(deferred, DeferredOffline)
    assert offline_queue.pending_count() == 1


def test_cancel_is_never_queued(db_session, store_down):
    outcome = orchestrator.cancel_sale(1)
    assert isinstance(outcome, Rejected)
    assert isinstance(outcome.error, StoreUnavailable)
    assert offline_queue.pending_count() == 0


@pytest.mark.parametrize(
    "payment_status,paid",
    [("unpaid", 1000), ("paid", 400), ("partial", 0)],
)
def test_contradictory_purchase_is_rejected_not_queued(db_session, item, vendor, store_down, payment_status, paid):
    outcome = orchestrator.record_purchase(
        _purchase(vendor, item, 5, 300, payment_status=payment_status, paid_amount_cents=paid)
    )

    assert isinstance(outcome, Rejected)
    assert isinstance(outcome.error, ValidationError)
    assert offline_queue.pending_count() == 0


def test_credit_sale_without_customer_is_rejected_not_queued(db_session, item, store_down):
    outcome = orchestrator.record_sale(_priced_sale(item, payment_method="credit"), allow_offline=True)

    assert isinstance(outcome, Rejected)
    assert outcome.error.message == "Credit sales require a customer"
    assert offline_queue.pending_count() == 0


def test_short_tender_is_rejected_not_queued(db_session, item, store_down):
    outcome = orchestrator.record_sale(_priced_sale(item, 2, 1500, amount_tendered_cents=2000), allow_offline=True)

    assert isinstance(outcome, Rejected)
    assert outcome.error.details == {"total_cents": 3000, "amount_tendered_cents": 2000}
    assert offline_queue.pending_count() == 0


def test_offline_sale_needs_captured_prices(db_session, item, store_down):
    outcome = orchestrator.record_sale(
        SaleRequest(lines=[SaleLineInput(item_id=item.id, quantity=1)]),
        allow_offline=True,
    )

    assert isinstance(outcome, Rejected)
    assert outcome.error.code == "validation_error"
    assert outcome.error.details == {"line": 0, "item_id": item.id}
    assert offline_queue.pending_count() == 0


def test_queued_sale_keeps_the_quoted_price(db_session, item, customer, stock, store_down, fresh):
    store_down.undo()
    stock(item, 5)
    for module in ATOMIC_SERVICES:
        store_down.setattr(module, "begin_atomic", _disconnect)

    orchestrator.record_sale(
        _priced_sale(item, 2, 1200, payment_method="credit", customer_id=customer.id),
        allow_offline=True,
    )
    store_down.undo()
    item.sale_rate_cents = 9900
    db_session.commit()

    assert offline_queue.drain().synced == 1
    assert fresh['customer'](customer.id).outstanding_balance_cents == 2400


# ===== DRAIN =====

def test_drain_replays_and_reconciles(db_session, item, vendor, store_down, fresh):
    orchestrator.record_purchase(_purchase(vendor, item, 5, 300))
    store_down.undo()

    result = offline_queue.drain()

    assert (result.synced, result.failed) == (1, 0)
    assert offline_queue.pending_count() == 0
    refreshed = fresh['item'](item.id)
    assert refreshed.current_quantity == 5
    assert refreshed.average_unit_cost_cents == 300
    assert fresh['vendor'](vendor.id).outstanding_balance_cents == 1500
    assert [r["corrected"] for r in result.reconciled["items"]] == [False]
    assert stock_service.compute_from_journal(item.id).quantity == 5


def test_failed_step_is_resumed_without_double_counting(db_session, item, vendor, store_down, fresh, monkeypatch):
    orchestrator.record_purchase(_purchase(vendor, item, 5, 300))
    store_down.undo()

    calls = {"n": 0}
    real_increment = fallback_service.increment_columns

    def flaky_increment(*args, **kwargs):
        calls["n"] += 1
        if calls["n"] == 1:
            raise StoreUnavailable("connection dropped")
        return real_increment(*args, **kwargs)

    monkeypatch.setattr(fallback_service, "increment_columns", flaky_increment)

    first = offline_queue.drain(reconcile=False)
    assert (first.synced, first.failed) == (0, 1)
    event = offline_queue.list_pending()[0]
    assert event.attempts == 1
    assert event.last_error == "connection dropped"
    assert event.applied_steps == ["record", f"item:{item.id}"]
    assert fresh['item'](item.id).current_quantity == 5
    assert fresh['vendor'](vendor.id).outstanding_balance_cents == 0

    second = offline_queue.drain(reconcile=False)
    assert (second.synced, second.failed) == (1, 0)
    assert fresh['item'](item.id).current_quantity == 5
    assert fresh['vendor'](vendor.id).outstanding_balance_cents == 1500
    assert db_session.query(Purchase).count() == 1
    assert db_session.query(JournalEntry).count() == 1


def test_vendor_payment_allocation_is_applied_once(db_session, item, vendor, fresh, monkeypatch):
    open_purchase = purchase_service.record_purchase(_purchase(vendor, item, 2, 500))
    monkeypatch.setattr(payment_service, "begin_atomic", _disconnect)
    orchestrator.record_vendor_payment(VendorPaymentRequest(vendor_id=vendor.id, amount_cents=400))
    monkeypatch.undo()

    calls = {"n": 0}
    real_increment = fallback_service.increment_columns

    def flaky_increment(*args, **kwargs):
        calls["n"] += 1
        if calls["n"] == 1:
            raise StoreUnavailable("connection dropped")
        return real_increment(*args, **kwargs)

    monkeypatch.setattr(fallback_service, "increment_columns", flaky_increment)

    assert offline_queue.drain(reconcile=False).failed == 1
    assert offline_queue.list_pending()[0].applied_steps == ["record"]
    assert offline_queue.drain(reconcile=False).synced == 1

    db_session.expire_all()
    purchase = db_session.get(Purchase, open_purchase.id)
    assert purchase.paid_amount_cents == 400
    assert purchase.pending_amount_cents == 600
    assert purchase.payment_status == "partial"
    assert fresh['vendor'](vendor.id).outstanding_balance_cents == 600


def test_lost_acknowledgement_is_not_recorded_twice(db_session, item, vendor, fresh, monkeypatch):
    real_record = purchase_service.record_purchase

    def commit_then_drop(request):
        real_record(request)
        raise StoreUnavailable("connection lost after commit")

    monkeypatch.setattr(purchase_service, "record_purchase", commit_then_drop)
    outcome = orchestrator.record_purchase(_purchase(vendor, item, 5, 300))
    monkeypatch.undo()
    assert isinstance(outcome, DeferredOffline)

    result = offline_queue.drain()

    assert result.synced == 1
    assert db_session.query(Purchase).count() == 1
    assert fresh['item'](item.id).current_quantity == 5
    assert fresh['vendor'](vendor.id).outstanding_balance_cents == 1500


def test_offline_oversell_is_surfaced_by_reconciliation(db_session, item, stock, store_down, fresh):
    store_down.undo()
    stock(item, 1)
    store_down.setattr(sales_service, "begin_atomic", _disconnect)
    orchestrator.record_sale(_priced_sale(item, 3), allow_offline=True)
    store_down.undo()

    result = offline_queue.drain()

    assert result.synced == 1
    assert fresh['item'](item.id).current_quantity == -2
    report = result.reconciled["items"][0]
    assert report["is_negative"] is True
    assert stock_service.fast_path_read(item.id).display_quantity == 0


def test_bad_event_does_not_block_the_queue(db_session, item, vendor, store_down, fresh):
    orchestrator.record_vendor_payment(VendorPaymentRequest(vendor_id=987654, amount_cents=100))
    orchestrator.record_purchase(_purchase(vendor, item, 2, 100))
    store_down.undo()

    result = offline_queue.drain()

    assert (result.synced, result.failed) == (1, 1)
    assert result.errors[0]["error"] == "Vendor 987654 not found"
    assert fresh['item'](item.id).current_quantity == 2
    assert offline_queue.pending_count() == 1
    assert db_session.query(VendorPayment).count() == 0


def test_only_one_drain_at_a_time(db_session, item, vendor, store_down, fresh):
    orchestrator.record_purchase(_purchase(vendor, item, 2, 100))
    store_down.undo()
    assert offline_queue.acquire_drain_lease("other-worker") is True

    with pytest.raises(DrainInProgress) as excinfo:
        offline_queue.drain()
    assert excinfo.value.details == {"holder": "other-worker"}
    assert offline_queue.pending_count() == 1
    assert fresh['item'](item.id).current_quantity == 0

    offline_queue.release_drain_lease("other-worker")
    assert offline_queue.drain().synced == 1
    assert offline_queue.current_drain_holder() is None


def test_expired_drain_lease_is_taken_over(db_session):
    assert offline_queue.acquire_drain_lease("crashed-worker", ttl_seconds=-1) is True
    assert offline_queue.acquire_drain_lease("next-worker") is True
    assert offline_queue.acquire_drain_lease("third-worker") is False
    assert offline_queue.current_drain_holder() == "next-worker"


def test_remove_and_clear(db_session, item, vendor, store_down):
    first = orchestrator.record_purchase(_purchase(vendor, item))
    orchestrator.record_purchase(_purchase(vendor, item))

    assert offline_queue.remove(first.temp_id) is True
    assert offline_queue.remove(first.temp_id) is False
    assert offline_queue.clear() == 1
    assert offline_queue.pending_count() == 0


def test_replayed_client_ref_is_committed_once(db_session, item, vendor, store_down):
    outcome = orchestrator.record_purchase(_purchase(vendor, item, 1, 100))
    client_ref = offline_queue.list_pending()[0].payload["client_ref"]
    store_down.undo()

    offline_queue.drain()
    again = orchestrator.record_purchase(_purchase(vendor, item, 1, 100, client_ref=client_ref))

    assert isinstance(again, Committed)
    assert db_session.query(Purchase).count() == 1
    assert outcome.temp_id != client_ref
