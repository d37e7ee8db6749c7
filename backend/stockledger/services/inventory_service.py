# Overview: Service-layer operations for inventory; manual adjustments and stock reports.

"""
Inventory Service

ADJUSTMENTS:
- a manual correction is one journal entry plus the matching aggregate update
- stock_out adjustments obey the same no-negative rule as sales
- stock_in adjustments carry a unit price and count towards the lifetime
  average cost like every other stock_in

REPORTS (read-only, never write aggregates):
- low stock: fast-path quantity at or below the item's threshold
  (DEFAULT_LOW_STOCK_THRESHOLD when the item has none)
- valuation: average (quantity * average cost), fifo or lifo cost layers
  rebuilt from the stock_in journal
"""

from __future__ import annotations

import logging

from flask import current_app

from ..extensions import db
from ..models import Item, JournalEntry
from ..models.journal import DIRECTION_STOCK_IN, DIRECTION_STOCK_OUT
from ..time_utils import to_utc_z, utcnow
from . import stock_service
from .concurrency import begin_atomic, lock_for_update, run_with_retry
from .errors import InsufficientStock, ItemArchived, ItemNotFound, ValidationError
from .journal_service import append_journal_entry
from .schemas import AdjustmentRequest, validate_adjustment

logger = logging.getLogger(__name__)

VALUATION_AVERAGE = "average"
VALUATION_FIFO = "fifo"
VALUATION_LIFO = "lifo"
VALUATION_METHODS = (VALUATION_AVERAGE, VALUATION_FIFO, VALUATION_LIFO)


def record_adjustment(request: AdjustmentRequest) -> JournalEntry:
    """
    Apply a manual stock correction atomically.

    Raises:
        ValidationError: bad direction/quantity, missing reason
        ItemNotFound / ItemArchived
        InsufficientStock: a stock_out would take the item below zero
    """
    validate_adjustment(request)

    def _op():
        begin_atomic()

        item = lock_for_update(db.session.query(Item).filter_by(id=request.item_id)).first()
        if item is None:
            raise ItemNotFound(request.item_id)
        if item.is_archived:
            raise ItemArchived(item.id)

        if request.direction == DIRECTION_STOCK_OUT and item.current_quantity - request.quantity < 0:
            raise InsufficientStock(
                item.id,
                available=max(0, item.current_quantity),
                requested=request.quantity,
                item_name=item.name,
            )

        entry = append_journal_entry(
            item_id=item.id,
            direction=request.direction,
            quantity=request.quantity,
            unit_price_cents=request.unit_price_cents,
            reference_type="adjustment",
            notes=request.reason,
            created_by=request.created_by,
        )
        if request.direction == DIRECTION_STOCK_IN:
            stock_service.apply_stock_in(item, request.quantity, request.unit_price_cents)
        else:
            stock_service.apply_stock_out(item, request.quantity)

        db.session.commit()
        return entry

    entry = run_with_retry(_op)
    stock_service.invalidate(request.item_id)
    logger.info(
        "Adjusted item %s: %s %s (%s)",
        request.item_id, request.direction, request.quantity, request.reason,
    )
    return entry


# =============================================================================
# REPORTS
# =============================================================================

def low_stock_items() -> list[dict]:
    default_threshold = current_app.config.get("DEFAULT_LOW_STOCK_THRESHOLD", 10)
    threshold = db.func.coalesce(Item.low_stock_threshold, default_threshold)
    items = (
        db.session.query(Item)
        .filter(Item.is_archived.is_(False), Item.current_quantity <= threshold)
        .order_by(Item.current_quantity.asc(), Item.name.asc())
        .all()
    )
    return [
        {
            "item_id": item.id,
            "name": item.name,
            "sku": item.sku,
            "current_quantity": item.current_quantity,
            "low_stock_threshold": (
                item.low_stock_threshold if item.low_stock_threshold is not None else default_threshold
            ),
            "is_out_of_stock": item.current_quantity <= 0,
        }
        for item in items
    ]


def _stock_in_layers(item_id: int) -> list[tuple[int, int]]:
    """[(quantity, unit_price_cents)] for every stock_in, oldest first."""
    rows = (
        db.session.query(JournalEntry.quantity, JournalEntry.unit_price_cents)
        .filter(JournalEntry.item_id == item_id, JournalEntry.direction == DIRECTION_STOCK_IN)
        .order_by(JournalEntry.movement_date.asc(), JournalEntry.id.asc())
        .all()
    )
    return [(int(qty), int(price or 0)) for qty, price in rows]


def layered_value_cents(layers: list[tuple[int, int]], quantity: int, method: str) -> int:
    """
    Cost of the units still on hand under FIFO or LIFO.

    FIFO sells the oldest units first, so what remains is the newest layers;
    LIFO is the reverse.
    """
    if quantity <= 0 or not layers:
        return 0
    ordered = list(reversed(layers)) if method == VALUATION_FIFO else list(layers)
    remaining = quantity
    value = 0
    for layer_qty, price in ordered:
        take = min(layer_qty, remaining)
        value += take * price
        remaining -= take
        if remaining <= 0:
            break
    if remaining > 0:
        # More on hand than ever came in (drifted aggregate): price the excess at the last layer
        value += remaining * ordered[-1][1]
    return value


def inventory_valuation(method: str = VALUATION_AVERAGE) -> dict:
    if method not in VALUATION_METHODS:
        raise ValidationError(
            f"method must be one of: {', '.join(VALUATION_METHODS)}",
            details={"method": method},
        )

    items = (
        db.session.query(Item)
        .filter(Item.is_archived.is_(False))
        .order_by(Item.name.asc(), Item.id.asc())
        .all()
    )

    rows = []
    total_value_cents = 0
    for item in items:
        quantity = max(0, item.current_quantity)
        if method == VALUATION_AVERAGE:
            value = quantity * item.average_unit_cost_cents
        else:
            value = layered_value_cents(_stock_in_layers(item.id), quantity, method)
        total_value_cents += value
        rows.append(
            {
                "item_id": item.id,
                "sku": item.sku,
                "name": item.name,
                "quantity_on_hand": quantity,
                "average_unit_cost_cents": item.average_unit_cost_cents,
                "inventory_value_cents": value,
            }
        )

    return {
        "method": method,
        "as_of": to_utc_z(utcnow()),
        "total_value_cents": total_value_cents,
        "rows": rows,
    }
