# Overview: Flask API routes for reconciliation sweeps and single-entity corrections.

from flask import Blueprint, current_app, jsonify, request

from ..services import reconciliation_service
from ..services.balance_service import COUNTERPARTY_KINDS
from ..services.errors import LedgerError
from .responses import error_response


reconciliation_bp = Blueprint("reconciliation", __name__, url_prefix="/api/reconciliation")


@reconciliation_bp.post("/run")
def run_reconciliation_route():
    """
    Run a full sweep.

    Request body (all optional):
    {"items": true, "counterparties": true, "batch_size": 500}
    """
    data = request.get_json(silent=True) or {}
    result = {}
    try:
        if data.get("items", True):
            result["items"] = reconciliation_service.reconcile_all_items(
                batch_size=data.get("batch_size"),
            ).to_dict()
        if data.get("counterparties", True):
            result["counterparties"] = reconciliation_service.reconcile_all_counterparties().to_dict()
        return jsonify(result)
    except Exception:
        current_app.logger.exception("Reconciliation sweep failed")
        return jsonify({"error": "Internal server error"}), 500


@reconciliation_bp.post("/items/<int:item_id>")
def reconcile_item_route(item_id: int):
    try:
        return jsonify(reconciliation_service.reconcile_item(item_id).to_dict())
    except LedgerError as e:
        return error_response(e)


@reconciliation_bp.post("/<kind>/<int:entity_id>")
def reconcile_counterparty_route(kind: str, entity_id: int):
    if kind not in COUNTERPARTY_KINDS:
        return jsonify({"error": f"Unknown counterparty kind: {kind}", "code": "validation_error", "details": {}}), 400
    report = reconciliation_service.reconcile_counterparty(kind, entity_id)
    status = 404 if report.error and report.error.endswith("not found") else 200
    return jsonify(report.to_dict()), status
