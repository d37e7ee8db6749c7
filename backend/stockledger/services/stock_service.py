# Overview: Stock aggregator; journal-derived and fast-path item stock figures.

"""
Stock aggregation rules

Quantity:
- current quantity = SUM(quantity) over stock_in - SUM(quantity) over stock_out
- the journal figure is the oracle; Item.current_quantity is its cached copy
- a negative journal sum is a data-integrity problem: it is reported
  (is_negative, warning log) and stored as-is by reconciliation; only the
  display_quantity is floored at zero

Average unit cost (lifetime weighted average, not FIFO/LIFO/moving average):
- average = SUM(stock_in quantity * unit price) / SUM(stock_in quantity)
- every stock_in counts, including return and cancellation restocks
- nearest-cent rounding (half-up)
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass

from sqlalchemy import case, func, update

from ..extensions import db, read_cache
from ..models import Item, JournalEntry
from ..models.journal import DIRECTION_STOCK_IN
from .errors import ItemNotFound

logger = logging.getLogger(__name__)

CACHE_KIND = "item_stock"


@dataclass(frozen=True)
class StockLevel:
    item_id: int
    quantity: int
    average_unit_cost_cents: int
    stock_in_quantity: int
    stock_in_cost_cents: int
    source: str

    @property
    def display_quantity(self) -> int:
        return max(0, self.quantity)

    @property
    def is_negative(self) -> bool:
        return self.quantity < 0

    def to_dict(self) -> dict:
        data = asdict(self)
        data["display_quantity"] = self.display_quantity
        data["is_negative"] = self.is_negative
        return data


def weighted_average_cents(total_cost_cents: int, total_units: int) -> int:
    if total_units <= 0:
        return 0
    # nearest-cent rounding (half-up)
    return (total_cost_cents + (total_units // 2)) // total_units


def compute_from_journal(item_id: int) -> StockLevel:
    """Authoritative stock for one item. O(entries for the item)."""
    if db.session.get(Item, item_id) is None:
        raise ItemNotFound(item_id)

    is_in = JournalEntry.direction == DIRECTION_STOCK_IN
    row = db.session.query(
        func.coalesce(
            func.sum(case((is_in, JournalEntry.quantity), else_=-JournalEntry.quantity)), 0
        ).label("quantity"),
        func.coalesce(func.sum(case((is_in, JournalEntry.quantity), else_=0)), 0).label("in_units"),
        func.coalesce(
            func.sum(case((is_in, JournalEntry.quantity * JournalEntry.unit_price_cents), else_=0)), 0
        ).label("in_cost"),
    ).filter(JournalEntry.item_id == item_id).one()

    level = StockLevel(
        item_id=item_id,
        quantity=int(row.quantity or 0),
        average_unit_cost_cents=weighted_average_cents(int(row.in_cost or 0), int(row.in_units or 0)),
        stock_in_quantity=int(row.in_units or 0),
        stock_in_cost_cents=int(row.in_cost or 0),
        source="journal",
    )
    if level.is_negative:
        logger.warning("Item %s journal sums to negative stock (%s)", item_id, level.quantity)
    return level


def fast_path_read(item_id: int) -> StockLevel:
    """Denormalized stock straight off the item row (cached). May drift."""
    def _load():
        item = db.session.get(Item, item_id)
        if item is None:
            return None
        return snapshot(item)

    level = read_cache.get(CACHE_KIND, item_id, _load)
    if level is None:
        raise ItemNotFound(item_id)
    return level


def snapshot(item: Item) -> StockLevel:
    return StockLevel(
        item_id=item.id,
        quantity=item.current_quantity,
        average_unit_cost_cents=item.average_unit_cost_cents,
        stock_in_quantity=item.stock_in_quantity,
        stock_in_cost_cents=item.stock_in_cost_cents,
        source="fast_path",
    )


# =============================================================================
# AGGREGATE UPDATES
# =============================================================================

def apply_stock_in(item: Item, quantity: int, unit_price_cents: int) -> None:
    """Atomic path: mutate a locked, freshly read item for a stock_in."""
    item.current_quantity += quantity
    item.stock_in_quantity += quantity
    item.stock_in_cost_cents += quantity * unit_price_cents
    item.average_unit_cost_cents = weighted_average_cents(item.stock_in_cost_cents, item.stock_in_quantity)


def apply_stock_out(item: Item, quantity: int) -> None:
    """Atomic path: mutate a locked, freshly read item for a stock_out."""
    item.current_quantity -= quantity


def increment_stock(
    item_id: int,
    *,
    quantity_delta: int,
    stock_in_quantity: int = 0,
    stock_in_cost_cents: int = 0,
    purchase_rate_cents: int | None = None,
    sale_rate_cents: int | None = None,
) -> int:
    """
    Degraded path: one increment-style UPDATE, no read, no stock check.

    The average is recomputed in SQL from the incremented totals so it never
    depends on a value read earlier by this process.
    """
    values = {"current_quantity": Item.current_quantity + quantity_delta}
    if stock_in_quantity:
        new_units = Item.stock_in_quantity + stock_in_quantity
        new_cost = Item.stock_in_cost_cents + stock_in_cost_cents
        values["stock_in_quantity"] = new_units
        values["stock_in_cost_cents"] = new_cost
        values["average_unit_cost_cents"] = case(
            (new_units > 0, (new_cost + new_units // 2) // new_units),
            else_=Item.average_unit_cost_cents,
        )
    if purchase_rate_cents is not None:
        values["purchase_rate_cents"] = purchase_rate_cents
    if sale_rate_cents is not None:
        values["sale_rate_cents"] = sale_rate_cents
    values["version_id"] = Item.version_id + 1

    result = db.session.execute(
        update(Item)
        .where(Item.id == item_id)
        .values(**values)
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount


def invalidate(*item_ids: int) -> None:
    read_cache.invalidate(CACHE_KIND, *item_ids)
