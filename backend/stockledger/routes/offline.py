# Overview: Flask API routes for the offline queue; list, drain and remove pending events.

from flask import Blueprint, current_app, jsonify

from ..services import offline_queue
from ..services.errors import LedgerError
from .responses import error_response


offline_bp = Blueprint("offline", __name__, url_prefix="/api/offline")


@offline_bp.get("/events")
def list_offline_events_route():
    events = offline_queue.list_pending()
    return jsonify({"items": [e.to_dict() for e in events], "count": len(events)})


@offline_bp.post("/drain")
def drain_offline_route():
    """Replay queued events against the shared store, then reconcile what they touched. 409 while another drain runs."""
    try:
        return jsonify(offline_queue.drain().to_dict())
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Offline drain failed")
        return jsonify({"error": "Internal server error"}), 500


@offline_bp.delete("/events/<temp_id>")
def remove_offline_event_route(temp_id: str):
    if not offline_queue.remove(temp_id):
        return jsonify({"error": "Offline event not found", "code": "not_found", "details": {"temp_id": temp_id}}), 404
    return jsonify({"temp_id": temp_id, "removed": True})
