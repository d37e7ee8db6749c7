"""
Pytest fixtures for stockledger backend tests.

Provides an in-memory application, per-test table cleanup, entity factories
and a helper that stocks items through a real purchase.
"""

import pytest

from stockledger import create_app
from stockledger.extensions import db, read_cache
from stockledger.models import Customer, Item, Vendor
from stockledger.services import catalog_service, document_service, purchase_service
from stockledger.services.schemas import PurchaseLineInput, PurchaseRequest


TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_BINDS': {'offline': 'sqlite:///:memory:'},
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'RETRY_BACKOFF_BASE': 0,
    'BALANCE_EPSILON_CENTS': 100,
}


def seed_reference_data():
    catalog_service.seed_bill_types()
    document_service.ensure_sequences()
    db.session.commit()


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TEST_CONFIG)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        for meta in db.metadatas.values():
            for table in reversed(meta.sorted_tables):
                db.session.execute(table.delete())
        db.session.commit()
        read_cache.clear()
        seed_reference_data()

        yield db.session

        # Cleanup after test
        db.session.rollback()
        read_cache.clear()


# ===== FACTORIES =====

@pytest.fixture
def make_item(db_session):
    counter = {'n': 0}

    def _make(name=None, *, sale_rate_cents=1000, purchase_rate_cents=None, **kwargs):
        counter['n'] += 1
        return catalog_service.create_item(
            name=name or f"Item {counter['n']}",
            sale_rate_cents=sale_rate_cents,
            purchase_rate_cents=purchase_rate_cents,
            **kwargs,
        )
    return _make


@pytest.fixture
def make_vendor(db_session):
    counter = {'n': 0}

    def _make(name=None, **kwargs):
        counter['n'] += 1
        return catalog_service.create_vendor(name=name or f"Vendor {counter['n']}", **kwargs)
    return _make


@pytest.fixture
def make_customer(db_session):
    counter = {'n': 0}

    def _make(name=None, **kwargs):
        counter['n'] += 1
        return catalog_service.create_customer(name=name or f"Customer {counter['n']}", **kwargs)
    return _make


@pytest.fixture
def item(make_item):
    return make_item("Widget", sale_rate_cents=1500)


@pytest.fixture
def vendor(make_vendor):
    return make_vendor("Acme Supply")


@pytest.fixture
def customer(make_customer):
    return make_customer("Jane Buyer", phone="555-0100")


@pytest.fixture
def stock(vendor):
    """Stock an item through a real, fully paid purchase."""
    def _stock(item, quantity, rate_cents=500, *, vendor_id=None):
        return purchase_service.record_purchase(PurchaseRequest(
            vendor_id=vendor_id or vendor.id,
            lines=[PurchaseLineInput(item_id=item.id, quantity=quantity, purchase_rate_cents=rate_cents)],
            payment_status="paid",
        ))
    return _stock


def reload(model, entity_id):
    """Fresh copy of a row, bypassing anything cached in the session."""
    db.session.expire_all()
    return db.session.get(model, entity_id)


@pytest.fixture
def fresh():
    return {
        'item': lambda item_id: reload(Item, item_id),
        'vendor': lambda vendor_id: reload(Vendor, vendor_id),
        'customer': lambda customer_id: reload(Customer, customer_id),
    }
