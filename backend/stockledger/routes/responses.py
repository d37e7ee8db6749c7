# Overview: Shared helpers turning orchestrator outcomes and ledger errors into JSON responses.

from flask import jsonify, request

from ..services.errors import LedgerError
from ..services.outcomes import Committed, DeferredOffline, Rejected


def error_response(error: LedgerError):
    return jsonify(error.to_dict()), error.http_status


def outcome_response(outcome, key: str, *, status: int = 201):
    """
    committed -> {key: value.to_dict()} with the given status
    deferred  -> 202 with the temp id the client can show as "pending"
    rejected  -> the error's own status with {"error", "code", "details"}
    """
    if isinstance(outcome, Committed):
        value = outcome.value
        body = value.to_dict() if hasattr(value, "to_dict") else value
        return jsonify({"status": outcome.status, key: body}), status
    if isinstance(outcome, DeferredOffline):
        return jsonify({
            "status": outcome.status,
            "temp_id": outcome.temp_id,
            "kind": outcome.kind,
        }), 202
    if isinstance(outcome, Rejected):
        return error_response(outcome.error)
    raise TypeError(f"Unknown outcome {outcome!r}")


def actor() -> str | None:
    """Free-form name of whoever made the request (no authentication here)."""
    return request.headers.get("X-Actor") or None


def paging(default_limit: int = 100, max_limit: int = 500) -> tuple[int, int]:
    limit = request.args.get("limit", default_limit, type=int)
    offset = request.args.get("offset", 0, type=int)

    # Clamp limit
    if limit < 1:
        limit = 1
    if limit > max_limit:
        limit = max_limit
    if offset < 0:
        offset = 0
    return limit, offset


def flag(name: str) -> bool:
    return request.args.get(name, "false").lower() == "true"
