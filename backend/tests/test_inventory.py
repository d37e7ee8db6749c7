"""
Catalog items, manual adjustments and inventory reports.
"""

import pytest

from stockledger.services import catalog_service, inventory_service, orchestrator, sales_service, stock_service
from stockledger.services.errors import (
    DuplicateName,
    DuplicateSKU,
    InsufficientStock,
    ItemArchived,
    ValidationError,
)
from stockledger.services.outcomes import Committed, Rejected
from stockledger.services.schemas import AdjustmentRequest, SaleLineInput, SaleRequest


def _adjust(item, direction, quantity, **kwargs):
    kwargs.setdefault("reason", "cycle count")
    return AdjustmentRequest(item_id=item.id, direction=direction, quantity=quantity, **kwargs)


# ===== CATALOG =====

def test_new_item_starts_empty(db_session, make_item):
    item = make_item("Bolt", sku="B-1", category="Hardware")
    assert item.current_quantity == 0
    assert item.average_unit_cost_cents == 0
    assert item.unit == "pcs"
    assert item.category.name == "Hardware"


def test_duplicate_names_and_skus_are_rejected(db_session, make_item):
    make_item("Bolt", sku="B-1")
    with pytest.raises(DuplicateName):
        make_item("bolt")
    with pytest.raises(DuplicateSKU):
        make_item("Nut", sku="B-1")


def test_item_with_history_is_archived_not_deleted(db_session, item, stock, make_item):
    stock(item, 1)
    unused = make_item("Unused")

    assert catalog_service.delete_item(item.id)["mode"] == "archived"
    assert catalog_service.delete_item(unused.id)["mode"] == "deleted"
    assert [i.id for i in catalog_service.list_items()] == []
    assert [i.id for i in catalog_service.list_items(include_archived=True)] == [item.id]


# ===== ADJUSTMENTS =====

def test_adjustment_requires_reason(db_session, item):
    with pytest.raises(ValidationError):
        inventory_service.record_adjustment(_adjust(item, "stock_in", 3, reason=None))


def test_stock_in_adjustment_counts_toward_average(db_session, item, stock, fresh):
    stock(item, 10, 500)

    entry = inventory_service.record_adjustment(_adjust(item, "stock_in", 10, unit_price_cents=700))

    assert entry.reference_type == "adjustment"
    assert entry.notes == "cycle count"
    refreshed = fresh['item'](item.id)
    assert refreshed.current_quantity == 20
    assert refreshed.average_unit_cost_cents == 600


def test_stock_out_adjustment_cannot_go_negative(db_session, item, stock, fresh):
    stock(item, 2)

    outcome = orchestrator.record_adjustment(_adjust(item, "stock_out", 3, reason="shrinkage"))

    assert isinstance(outcome, Rejected)
    assert isinstance(outcome.error, InsufficientStock)
    assert fresh['item'](item.id).current_quantity == 2

    outcome = orchestrator.record_adjustment(_adjust(item, "stock_out", 2, reason="shrinkage"))
    assert isinstance(outcome, Committed)
    assert stock_service.compute_from_journal(item.id).quantity == 0


def test_archived_item_cannot_be_adjusted(db_session, item):
    catalog_service.archive_item(item.id)
    with pytest.raises(ItemArchived):
        inventory_service.record_adjustment(_adjust(item, "stock_in", 1))


@pytest.mark.parametrize("direction,quantity", [("sideways", 1), ("stock_in", 0)])
def test_invalid_adjustments(db_session, item, direction, quantity):
    with pytest.raises(ValidationError):
        inventory_service.record_adjustment(_adjust(item, direction, quantity))


# ===== REPORTS =====

def test_low_stock_uses_item_threshold_or_default(db_session, make_item, stock):
    low_default = make_item("Low default")
    plenty = make_item("Plenty", low_stock_threshold=5)
    picky = make_item("Picky", low_stock_threshold=60)
    make_item("Empty")
    stock(low_default, 2)
    stock(plenty, 50)
    stock(picky, 50)

    rows = inventory_service.low_stock_items()

    assert [r["name"] for r in rows] == ["Empty", "Low default", "Picky"]
    assert rows[0]["is_out_of_stock"] is True
    assert rows[1]["low_stock_threshold"] == 10


@pytest.fixture
def layered(db_session, item, stock):
    stock(item, 10, 500)
    stock(item, 10, 800)
    sales_service.record_sale(SaleRequest(lines=[SaleLineInput(item_id=item.id, quantity=15)]))
    return item


@pytest.mark.parametrize(
    "method,expected",
    [("average", 5 * 650), ("fifo", 5 * 800), ("lifo", 5 * 500)],
)
def test_valuation_methods(layered, method, expected):
    report = inventory_service.inventory_valuation(method)
    assert report["method"] == method
    assert report["rows"][0]["quantity_on_hand"] == 5
    assert report["total_value_cents"] == expected


def test_valuation_rejects_unknown_method(db_session):
    with pytest.raises(ValidationError):
        inventory_service.inventory_valuation("hifo")


def test_layered_value_spans_layers():
    layers = [(3, 100), (3, 200), (3, 300)]
    assert inventory_service.layered_value_cents(layers, 4, "fifo") == 3 * 300 + 200
    assert inventory_service.layered_value_cents(layers, 4, "lifo") == 3 * 100 + 200
    assert inventory_service.layered_value_cents(layers, 0, "fifo") == 0
