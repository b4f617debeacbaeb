# backend/modaledger/routes/system.py
"""
System health, diagnostics and wipe endpoints.

/health reports database reachability with per-collection counts.
/api/system/diagnostics runs a write/read/delete probe and reports each
step, so an operator can tell which storage operation is failing.
"""

import time

from flask import Blueprint, current_app, jsonify, request

from ..decorators import json_errors
from ..services import backup_service, maintenance_service
from modaledger.time_utils import utcnow

system_bp = Blueprint("system", __name__)


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: database reachable
    - 503: database error
    """
    start_time = time.time()
    try:
        database_health = maintenance_service.check_database_health()
        http_status = 200
    except Exception:
        current_app.logger.exception("Database health check failed")
        database_health = {
            "status": "unhealthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "error": "Database error",
        }
        http_status = 503

    response = {
        "status": database_health["status"],
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {"database": database_health},
    }
    return response, http_status


@system_bp.post("/api/system/diagnostics")
def diagnostics():
    try:
        return jsonify(maintenance_service.run_diagnostics())
    except Exception as e:
        current_app.logger.exception("Diagnostics failed")
        return jsonify({
            "status": "failed",
            "steps": getattr(e, "diagnostic_steps", []),
            "error": "Storage error; check server logs",
        }), 503


@system_bp.post("/api/system/wipe")
@json_errors("wipe data")
def wipe_route():
    """Body: {"confirm_text": "DELETAR"}."""
    data = request.get_json(silent=True) or {}
    return jsonify(backup_service.wipe_all(data.get("confirm_text")))
