"""
Reconciliation of drifted stock and counterparty balances.
"""

from sqlalchemy import update

from stockledger.models import Customer, Item, Vendor
from stockledger.services import balance_service, purchase_service, reconciliation_service, stock_service
from stockledger.services.schemas import PurchaseLineInput, PurchaseRequest


def _drift_item(db_session, item_id, **values):
    db_session.execute(update(Item).where(Item.id == item_id).values(**values))
    db_session.commit()
    stock_service.invalidate(item_id)


def _drift_balance(db_session, model, entity_id, cents):
    db_session.execute(update(model).where(model.id == entity_id).values(outstanding_balance_cents=cents))
    db_session.commit()


def test_item_drift_is_corrected_exactly(db_session, item, stock, fresh):
    stock(item, 8, 250)
    _drift_item(db_session, item.id, current_quantity=3, average_unit_cost_cents=999)

    report = reconciliation_service.reconcile_item(item.id)

    assert report.corrected
    assert report.changes["current_quantity"] == (3, 8)
    assert report.changes["average_unit_cost_cents"] == (999, 250)
    refreshed = fresh['item'](item.id)
    assert refreshed.current_quantity == 8
    assert refreshed.average_unit_cost_cents == 250
    assert stock_service.fast_path_read(item.id).quantity == 8


def test_off_by_one_is_still_corrected(db_session, item, stock, fresh):
    stock(item, 8)
    _drift_item(db_session, item.id, current_quantity=9)

    assert reconciliation_service.reconcile_item(item.id).corrected
    assert fresh['item'](item.id).current_quantity == 8


def test_second_run_changes_nothing(db_session, make_item, stock):
    first, second = make_item("First"), make_item("Second")
    stock(first, 4)
    stock(second, 6)
    _drift_item(db_session, second.id, current_quantity=0)

    sweep = reconciliation_service.reconcile_all_items(batch_size=1)
    assert sweep.checked == 2
    assert sweep.corrected == 1

    again = reconciliation_service.reconcile_all_items()
    assert again.checked == 2
    assert again.corrected == 0


def test_counterparty_drift_within_epsilon_is_left_alone(db_session, customer, fresh):
    _drift_balance(db_session, Customer, customer.id, 75)

    report = reconciliation_service.reconcile_counterparty("customer", customer.id)

    assert not report.corrected
    assert report.computed_cents == 0
    assert fresh['customer'](customer.id).outstanding_balance_cents == 75


def test_counterparty_drift_beyond_epsilon_is_corrected(db_session, item, vendor, fresh):
    purchase_service.record_purchase(PurchaseRequest(
        vendor_id=vendor.id,
        lines=[PurchaseLineInput(item_id=item.id, quantity=2, purchase_rate_cents=1000)],
    ))
    _drift_balance(db_session, Vendor, vendor.id, 500)

    report = reconciliation_service.reconcile_counterparty("vendor", vendor.id)

    assert report.corrected
    assert (report.stored_cents, report.computed_cents) == (500, 2000)
    assert fresh['vendor'](vendor.id).outstanding_balance_cents == 2000
    assert not reconciliation_service.reconcile_counterparty("vendor", vendor.id).corrected


def test_missing_counterparty_is_reported_not_raised(db_session):
    report = reconciliation_service.reconcile_counterparty("vendor", 777)
    assert report.error == "vendor 777 not found"
    assert not report.corrected


def test_counterparty_sweep(db_session, vendor, customer):
    _drift_balance(db_session, Customer, customer.id, -4000)

    sweep = reconciliation_service.reconcile_all_counterparties()

    assert sweep.checked == 2
    assert sweep.corrected == 1
    assert sweep.corrections[0]["kind"] == "customer"


def test_ledger_view_reconciles_on_drift(db_session, customer, fresh):
    _drift_balance(db_session, Customer, customer.id, 2500)

    ledger = balance_service.customer_ledger(customer.id)

    assert ledger["outstanding_balance_cents"] == 0
    assert fresh['customer'](customer.id).outstanding_balance_cents == 0
