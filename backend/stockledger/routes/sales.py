# Overview: Flask API routes for POS sales; create, cancel, void and returns.

"""
Sales routes

POST /api/sales accepts ?allow_offline=true (or "allow_offline": true in the
body) when the register is willing to sell without a stock check while the
shared store is down. Without it an unreachable store rejects the sale with
503 so the cashier can retry.
"""

from flask import Blueprint, jsonify, request

from ..services import orchestrator, return_service, sales_service
from ..services.errors import LedgerError
from ..services.schemas import return_request_from_json, sale_request_from_json
from .responses import actor, error_response, flag, outcome_response, paging


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.get("")
def list_sales_route():
    limit, offset = paging()
    transactions = sales_service.list_transactions(
        status=request.args.get("status"),
        customer_id=request.args.get("customer_id", type=int),
        limit=limit,
        offset=offset,
    )
    return jsonify({
        "items": [t.to_dict(include_lines=False) for t in transactions],
        "limit": limit,
        "offset": offset,
    })


@sales_bp.get("/<int:transaction_id>")
def get_sale_route(transaction_id: int):
    try:
        return jsonify({"sale": sales_service.get_transaction(transaction_id).to_dict()})
    except LedgerError as e:
        return error_response(e)


@sales_bp.post("")
def create_sale_route():
    data = request.get_json(silent=True) or {}
    try:
        sale_request = sale_request_from_json(data, cashier_id=actor())
    except LedgerError as e:
        return error_response(e)
    allow_offline = flag("allow_offline") or data.get("allow_offline") is True
    return outcome_response(orchestrator.record_sale(sale_request, allow_offline=allow_offline), "sale")


@sales_bp.post("/<int:transaction_id>/cancel")
def cancel_sale_route(transaction_id: int):
    data = request.get_json(silent=True) or {}
    outcome = orchestrator.cancel_sale(transaction_id, data.get("reason"), cancelled_by=actor())
    return outcome_response(outcome, "sale", status=200)


@sales_bp.post("/<int:transaction_id>/void")
def void_sale_route(transaction_id: int):
    """Void requires {"reason": "..."}."""
    data = request.get_json(silent=True) or {}
    outcome = orchestrator.void_sale(transaction_id, data.get("reason"), voided_by=actor())
    return outcome_response(outcome, "sale", status=200)


# ===== RETURNS =====

@sales_bp.get("/<int:transaction_id>/returns")
def list_returns_route(transaction_id: int):
    try:
        sales_service.get_transaction(transaction_id)
    except LedgerError as e:
        return error_response(e)
    returns = return_service.list_returns(transaction_id)
    return jsonify({"transaction_id": transaction_id, "returns": [r.to_dict() for r in returns]})


@sales_bp.post("/<int:transaction_id>/returns")
def create_return_route(transaction_id: int):
    """
    Request body:
    {
        "lines": [{"item_id": 3, "quantity": 1}],
        "refund_method": "cash" | "store_credit",
        "reason": "..."
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        return_request = return_request_from_json(transaction_id, data, created_by=actor())
    except LedgerError as e:
        return error_response(e)
    return outcome_response(orchestrator.process_return(return_request), "return")
