# Overview: Flask API routes for vendors and customers; payments, ledgers and guarded deletion.

"""
Vendor and customer routes

Balances shown here come from two places:
- the entity's outstanding_balance_cents (fast path, may drift)
- GET .../balance recomputes it from the ledger and reports the drift

DELETE only succeeds when the recomputed balance is within epsilon. A
counterparty with history is deactivated rather than removed.
"""

from flask import Blueprint, current_app, jsonify, request

from ..services import balance_service, catalog_service, orchestrator, payment_service
from ..services.errors import LedgerError
from ..services.schemas import (
    customer_transaction_request_from_json,
    vendor_payment_request_from_json,
)
from .responses import actor, error_response, flag, outcome_response


vendors_bp = Blueprint("vendors", __name__, url_prefix="/api/vendors")
customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


# ===== VENDORS =====

@vendors_bp.get("")
def list_vendors_route():
    vendors = catalog_service.list_vendors(include_inactive=flag("include_inactive"))
    return jsonify({"items": [v.to_dict() for v in vendors], "count": len(vendors)})


@vendors_bp.post("")
def create_vendor_route():
    data = request.get_json(silent=True) or {}
    try:
        vendor = catalog_service.create_vendor(
            name=data.get("name"),
            company=data.get("company"),
            phone=data.get("phone"),
            email=data.get("email"),
            address=data.get("address"),
            tax_number=data.get("tax_number"),
            created_by=actor(),
        )
        return jsonify({"vendor": vendor.to_dict()}), 201
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create vendor")
        return jsonify({"error": "Internal server error"}), 500


@vendors_bp.get("/<int:vendor_id>")
def get_vendor_route(vendor_id: int):
    try:
        return jsonify({"vendor": catalog_service.get_vendor(vendor_id).to_dict()})
    except LedgerError as e:
        return error_response(e)


@vendors_bp.delete("/<int:vendor_id>")
def delete_vendor_route(vendor_id: int):
    try:
        return jsonify(catalog_service.delete_vendor(vendor_id))
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete vendor")
        return jsonify({"error": "Internal server error"}), 500


@vendors_bp.get("/<int:vendor_id>/balance")
def vendor_balance_route(vendor_id: int):
    try:
        return jsonify(balance_service.check_balance(balance_service.VENDOR, vendor_id).to_dict())
    except LedgerError as e:
        return error_response(e)


@vendors_bp.get("/<int:vendor_id>/ledger")
def vendor_ledger_route(vendor_id: int):
    try:
        return jsonify(balance_service.vendor_ledger(vendor_id, limit=request.args.get("limit", type=int)))
    except LedgerError as e:
        return error_response(e)


@vendors_bp.get("/<int:vendor_id>/payments")
def list_vendor_payments_route(vendor_id: int):
    try:
        catalog_service.get_vendor(vendor_id)
    except LedgerError as e:
        return error_response(e)
    payments = payment_service.list_vendor_payments(vendor_id)
    return jsonify({"vendor_id": vendor_id, "payments": [p.to_dict() for p in payments]})


@vendors_bp.post("/<int:vendor_id>/payments")
def create_vendor_payment_route(vendor_id: int):
    """
    Request body:
    {
        "amount": 50.00,            // or amount_cents
        "payment_method": "cash",
        "purchase_id": 12,          // optional; settled first
        "reference_number": "...",
        "client_ref": "..."
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        payment_request = vendor_payment_request_from_json(vendor_id, data, created_by=actor())
    except LedgerError as e:
        return error_response(e)
    return outcome_response(orchestrator.record_vendor_payment(payment_request), "payment")


# ===== CUSTOMERS =====

@customers_bp.get("")
def list_customers_route():
    customers = catalog_service.list_customers(include_inactive=flag("include_inactive"))
    return jsonify({"items": [c.to_dict() for c in customers], "count": len(customers)})


@customers_bp.post("")
def create_customer_route():
    data = request.get_json(silent=True) or {}
    try:
        customer = catalog_service.create_customer(
            name=data.get("name"),
            phone=data.get("phone"),
            email=data.get("email"),
            address=data.get("address"),
            created_by=actor(),
        )
        return jsonify({"customer": customer.to_dict()}), 201
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("/<int:customer_id>")
def get_customer_route(customer_id: int):
    try:
        return jsonify({"customer": catalog_service.get_customer(customer_id).to_dict()})
    except LedgerError as e:
        return error_response(e)


@customers_bp.delete("/<int:customer_id>")
def delete_customer_route(customer_id: int):
    try:
        return jsonify(catalog_service.delete_customer(customer_id))
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("/<int:customer_id>/balance")
def customer_balance_route(customer_id: int):
    try:
        return jsonify(balance_service.check_balance(balance_service.CUSTOMER, customer_id).to_dict())
    except LedgerError as e:
        return error_response(e)


@customers_bp.get("/<int:customer_id>/ledger")
def customer_ledger_route(customer_id: int):
    try:
        return jsonify(balance_service.customer_ledger(customer_id, limit=request.args.get("limit", type=int)))
    except LedgerError as e:
        return error_response(e)


@customers_bp.post("/<int:customer_id>/transactions")
def create_customer_transaction_route(customer_id: int):
    """
    Request body:
    {
        "amount": 25.00,
        "type": "payment" | "charge",
        "payment_method": "cash",
        "client_ref": "..."
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        entry_request = customer_transaction_request_from_json(customer_id, data, created_by=actor())
    except LedgerError as e:
        return error_response(e)
    return outcome_response(orchestrator.record_customer_transaction(entry_request), "transaction")
