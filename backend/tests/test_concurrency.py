"""
Concurrent sales against one item on a file-backed database.
"""

import threading

import pytest

from stockledger import create_app
from stockledger.extensions import db, read_cache
from stockledger.models import Item
from stockledger.services import catalog_service, document_service, orchestrator, purchase_service, stock_service
from stockledger.services.errors import InsufficientStock
from stockledger.services.schemas import PurchaseLineInput, PurchaseRequest, SaleLineInput, SaleRequest


INITIAL_STOCK = 5
CASHIERS = 8


@pytest.fixture
def file_app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'ledger.sqlite3'}",
        'SQLALCHEMY_BINDS': {'offline': f"sqlite:///{tmp_path / 'offline.sqlite3'}"},
        'RETRY_ATTEMPTS': 10,
        'RETRY_BACKOFF_BASE': 0.01,
    })
    with app.app_context():
        db.create_all()
        catalog_service.seed_bill_types()
        document_service.ensure_sequences()
        db.session.commit()
    yield app
    with app.app_context():
        db.session.remove()
        for engine in db.engines.values():
            engine.dispose()
    read_cache.clear()


def test_parallel_sales_never_oversell(file_app):
    with file_app.app_context():
        vendor = catalog_service.create_vendor(name="Parallel Supply")
        item = catalog_service.create_item(name="Hot Item", sale_rate_cents=1000)
        purchase_service.record_purchase(PurchaseRequest(
            vendor_id=vendor.id,
            lines=[PurchaseLineInput(item_id=item.id, quantity=INITIAL_STOCK, purchase_rate_cents=400)],
            payment_status="paid",
        ))
        item_id = item.id

    results = []
    lock = threading.Lock()
    start = threading.Barrier(CASHIERS)

    def cashier():
        with file_app.app_context():
            start.wait()
            outcome = orchestrator.record_sale(SaleRequest(lines=[SaleLineInput(item_id=item_id, quantity=1)]))
            code = None if outcome.ok else outcome.error.code
            with lock:
                results.append((outcome.status, code))

    threads = [threading.Thread(target=cashier) for _ in range(CASHIERS)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)

    assert len(results) == CASHIERS
    committed = [r for r in results if r[0] == "committed"]
    rejected_codes = {code for status, code in results if status == "rejected"}
    assert 1 <= len(committed) <= INITIAL_STOCK
    assert rejected_codes <= {"insufficient_stock", "concurrency_conflict"}

    with file_app.app_context():
        quantity = db.session.get(Item, item_id).current_quantity
        assert quantity == INITIAL_STOCK - len(committed)
        assert quantity >= 0
        assert stock_service.compute_from_journal(item_id).quantity == quantity


def test_competing_sales_beyond_stock_admit_one(file_app):
    with file_app.app_context():
        vendor = catalog_service.create_vendor(name="Pair Supply")
        item = catalog_service.create_item(name="Last Units", sale_rate_cents=1000)
        purchase_service.record_purchase(PurchaseRequest(
            vendor_id=vendor.id,
            lines=[PurchaseLineInput(item_id=item.id, quantity=INITIAL_STOCK, purchase_rate_cents=400)],
            payment_status="paid",
        ))
        item_id = item.id

    results = []
    lock = threading.Lock()
    start = threading.Barrier(2)

    def cashier():
        with file_app.app_context():
            start.wait()
            outcome = orchestrator.record_sale(SaleRequest(lines=[SaleLineInput(item_id=item_id, quantity=3)]))
            with lock:
                results.append(outcome)

    threads = [threading.Thread(target=cashier) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)

    assert len(results) == 2
    committed = [o for o in results if o.status == "committed"]
    rejected = [o for o in results if o.status == "rejected"]
    assert len(committed) == 1
    assert len(rejected) == 1
    assert isinstance(rejected[0].error, InsufficientStock)
    assert rejected[0].error.details == {"item_id": item_id, "available": 2, "requested": 3}

    with file_app.app_context():
        assert db.session.get(Item, item_id).current_quantity == 2
        assert stock_service.compute_from_journal(item_id).quantity == 2
