# Overview: Flask API routes for items; catalog, stock reads, journal, adjustments and reports.

"""
Item routes

Two stock reads are exposed on purpose:
- GET /api/items/<id>/stock          fast path (cached denormalized fields)
- GET /api/items/<id>/stock/journal  authoritative recompute from the journal

Writes to stock go through the orchestrator (adjustments) or through the
purchase/sale endpoints; nothing here edits quantities directly.
"""

from flask import Blueprint, current_app, jsonify, request

from ..services import catalog_service, inventory_service, journal_service, orchestrator, stock_service
from ..services.errors import LedgerError
from ..services.schemas import adjustment_request_from_json, item_fields_from_json
from .responses import actor, error_response, flag, outcome_response, paging


items_bp = Blueprint("items", __name__, url_prefix="/api/items")


@items_bp.get("")
def list_items_route():
    """
    Query parameters:
    - search: matches name, SKU or barcode
    - include_archived: default false
    - limit / offset
    """
    limit, offset = paging(default_limit=200)
    items = catalog_service.list_items(
        search=request.args.get("search"),
        include_archived=flag("include_archived"),
        limit=limit,
        offset=offset,
    )
    return jsonify({"items": [i.to_dict() for i in items], "limit": limit, "offset": offset})


@items_bp.post("")
def create_item_route():
    data = request.get_json(silent=True) or {}
    try:
        item = catalog_service.create_item(created_by=actor(), **item_fields_from_json(data))
        return jsonify({"item": item.to_dict()}), 201
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create item")
        return jsonify({"error": "Internal server error"}), 500


@items_bp.get("/<int:item_id>")
def get_item_route(item_id: int):
    try:
        return jsonify({"item": catalog_service.get_item(item_id).to_dict()})
    except LedgerError as e:
        return error_response(e)


@items_bp.delete("/<int:item_id>")
def delete_item_route(item_id: int):
    """Delete an unused item; items with journal history are archived instead."""
    try:
        return jsonify(catalog_service.delete_item(item_id))
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete item")
        return jsonify({"error": "Internal server error"}), 500


@items_bp.post("/<int:item_id>/archive")
def archive_item_route(item_id: int):
    try:
        return jsonify({"item": catalog_service.archive_item(item_id).to_dict()})
    except LedgerError as e:
        return error_response(e)


# ===== STOCK =====

@items_bp.get("/<int:item_id>/stock")
def item_stock_route(item_id: int):
    try:
        return jsonify(stock_service.fast_path_read(item_id).to_dict())
    except LedgerError as e:
        return error_response(e)


@items_bp.get("/<int:item_id>/stock/journal")
def item_stock_from_journal_route(item_id: int):
    try:
        return jsonify(stock_service.compute_from_journal(item_id).to_dict())
    except LedgerError as e:
        return error_response(e)


@items_bp.get("/<int:item_id>/journal")
def item_journal_route(item_id: int):
    try:
        catalog_service.get_item(item_id)
    except LedgerError as e:
        return error_response(e)
    limit = request.args.get("limit", type=int)
    entries = journal_service.list_entries_for_item(item_id, limit=limit)
    return jsonify({"item_id": item_id, "entries": [e.to_dict() for e in entries]})


@items_bp.post("/<int:item_id>/adjustments")
def adjust_item_route(item_id: int):
    """
    Request body:
    {
        "direction": "stock_in" | "stock_out",
        "quantity": 5,
        "unit_price": 12.50,   // stock_in only; or unit_price_cents
        "reason": "damaged"    // required
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        adjustment = adjustment_request_from_json(item_id, data, created_by=actor())
    except LedgerError as e:
        return error_response(e)
    return outcome_response(orchestrator.record_adjustment(adjustment), "entry")


# ===== REPORTS =====

@items_bp.get("/low-stock")
def low_stock_route():
    return jsonify({"items": inventory_service.low_stock_items()})


@items_bp.get("/valuation")
def valuation_route():
    try:
        return jsonify(inventory_service.inventory_valuation(request.args.get("method", "average").lower()))
    except LedgerError as e:
        return error_response(e)
