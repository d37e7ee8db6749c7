# Overview: Flask API routes for purchases; parses input and returns JSON responses.

from flask import Blueprint, jsonify, request

from ..services import orchestrator, purchase_service
from ..services.errors import LedgerError
from ..services.schemas import purchase_request_from_json
from .responses import actor, error_response, outcome_response, paging


purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")


@purchases_bp.get("")
def list_purchases_route():
    limit, offset = paging()
    purchases = purchase_service.list_purchases(
        vendor_id=request.args.get("vendor_id", type=int),
        payment_status=request.args.get("payment_status"),
        limit=limit,
        offset=offset,
    )
    return jsonify({
        "items": [p.to_dict(include_lines=False) for p in purchases],
        "limit": limit,
        "offset": offset,
    })


@purchases_bp.get("/<int:purchase_id>")
def get_purchase_route(purchase_id: int):
    purchase = purchase_service.get_purchase(purchase_id)
    if purchase is None:
        return jsonify({"error": "Purchase not found", "code": "not_found", "details": {}}), 404
    return jsonify({"purchase": purchase.to_dict()})


@purchases_bp.post("")
def create_purchase_route():
    """
    Record a purchase from a vendor.

    Request body:
    {
        "vendor_id": 1,
        "lines": [{"item_id": 3, "quantity": 10, "purchase_rate": 5.00}],
        "payment_status": "paid" | "partial" | "unpaid",   // optional, derived when omitted
        "paid_amount": 20.00,
        "tax": 0, "discount": 0,
        "bill_number": "INV-77",
        "client_ref": "..."          // optional idempotency key
    }

    Returns 201 when committed, 202 when queued offline.
    """
    data = request.get_json(silent=True) or {}
    try:
        purchase_request = purchase_request_from_json(data, created_by=actor())
    except LedgerError as e:
        return error_response(e)
    return outcome_response(orchestrator.record_purchase(purchase_request), "purchase")
