# backend/stockledger/routes/system.py
"""
System health endpoint.

Reports shared-store connectivity and how many events wait in the offline
queue, so a client can tell whether it is running degraded.
"""

import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy import text

from ..extensions import db
from ..services import offline_queue
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2)}
    except Exception:
        db.session.rollback()
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/health")
def health():
    database = check_database_health()
    try:
        pending = offline_queue.pending_count()
    except Exception:
        current_app.logger.exception("Offline queue health check failed")
        pending = None

    healthy = database["status"] == "healthy"
    return jsonify({
        "status": "healthy" if healthy else "degraded",
        "timestamp": to_utc_z(utcnow()),
        "database": database,
        "offline_pending": pending,
    }), 200 if healthy else 503
