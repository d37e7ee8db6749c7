"""
Stock reads: journal oracle versus cached fast path.
"""

import pytest
from sqlalchemy import update

from stockledger.extensions import read_cache
from stockledger.models import Item
from stockledger.services import sales_service, stock_service
from stockledger.services.cache import ReadCache
from stockledger.services.errors import ItemNotFound
from stockledger.services.journal_service import append_journal_entry
from stockledger.services.schemas import SaleLineInput, SaleRequest


def test_fast_path_and_journal_agree_after_writes(db_session, item, stock):
    stock(item, 10, 400)
    sales_service.record_sale(SaleRequest(lines=[SaleLineInput(item_id=item.id, quantity=3)]))

    journal = stock_service.compute_from_journal(item.id)
    fast = stock_service.fast_path_read(item.id)

    assert journal.source == "journal"
    assert fast.source == "fast_path"
    assert journal.quantity == fast.quantity == 7
    assert journal.average_unit_cost_cents == fast.average_unit_cost_cents == 400


def test_fast_path_is_cached_until_invalidated(db_session, item, stock):
    stock(item, 5)
    assert stock_service.fast_path_read(item.id).quantity == 5

    # out-of-band write that nobody invalidates
    db_session.execute(update(Item).where(Item.id == item.id).values(current_quantity=99))
    db_session.commit()

    assert stock_service.fast_path_read(item.id).quantity == 5
    stock_service.invalidate(item.id)
    assert stock_service.fast_path_read(item.id).quantity == 99
    assert stock_service.compute_from_journal(item.id).quantity == 5


def test_writes_invalidate_the_cache(db_session, item, stock):
    stock(item, 5)
    assert stock_service.fast_path_read(item.id).quantity == 5

    sales_service.record_sale(SaleRequest(lines=[SaleLineInput(item_id=item.id, quantity=2)]))

    assert stock_service.fast_path_read(item.id).quantity == 3


def test_cache_counts_hits_and_misses(db_session, item):
    read_cache.clear()
    stock_service.fast_path_read(item.id)
    stock_service.fast_path_read(item.id)
    assert (read_cache.hits, read_cache.misses) == (1, 1)


def test_negative_journal_is_reported_not_hidden(db_session, item):
    append_journal_entry(
        item_id=item.id,
        direction="stock_out",
        quantity=4,
        unit_price_cents=0,
        reference_type="adjustment",
    )
    db_session.commit()

    level = stock_service.compute_from_journal(item.id)
    assert level.quantity == -4
    assert level.is_negative
    assert level.display_quantity == 0


def test_unknown_item(db_session):
    with pytest.raises(ItemNotFound):
        stock_service.compute_from_journal(31337)
    with pytest.raises(ItemNotFound):
        stock_service.fast_path_read(31337)


def test_increment_stock_recomputes_average_in_sql(db_session, item, stock, fresh):
    stock(item, 10, 500)

    stock_service.increment_stock(
        item.id, quantity_delta=10, stock_in_quantity=10, stock_in_cost_cents=10 * 701,
    )
    db_session.commit()

    refreshed = fresh['item'](item.id)
    assert refreshed.current_quantity == 20
    # (5000 + 7010) / 20 = 600.5 -> 601
    assert refreshed.average_unit_cost_cents == 601


# ===== READ CACHE =====

def test_invalidation_during_load_is_not_lost():
    cache = ReadCache()
    row = {"quantity": 10}

    def racing_load():
        value = row["quantity"]
        # a writer commits and invalidates while this read is in flight
        row["quantity"] = 7
        cache.invalidate("item_stock", 1)
        return value

    assert cache.get("item_stock", 1, racing_load) == 10
    assert cache.get("item_stock", 1, lambda: row["quantity"]) == 7
    assert cache.get("item_stock", 1, lambda: -1) == 7


def test_clear_during_load_is_not_lost():
    cache = ReadCache()

    def racing_load():
        cache.clear()
        return "stale"

    cache.get("balance", ("vendor", 1), racing_load)
    assert len(cache) == 0
    assert cache.get("balance", ("vendor", 1), lambda: "fresh") == "fresh"


def test_entries_expire_after_ttl():
    now = [100.0]
    cache = ReadCache(ttl_seconds=30, clock=lambda: now[0])
    cache.get("item_stock", 1, lambda: 5)

    now[0] += 29
    assert cache.get("item_stock", 1, lambda: 6) == 5
    now[0] += 2
    assert cache.get("item_stock", 1, lambda: 6) == 6
    assert (cache.hits, cache.misses) == (1, 2)


def test_ttl_is_opt_in(app):
    assert app.config["READ_CACHE_TTL_SECONDS"] == 0
    assert read_cache.ttl_seconds is None

    cache = ReadCache()
    cache.configure(ttl_seconds=5)
    assert cache.ttl_seconds == 5
    cache.configure(ttl_seconds=0)
    assert cache.ttl_seconds is None
