# backend/oficina/routes/system.py
"""
System health endpoint.

Reports database connectivity and whether each establishment's till is
open, for deployment checks and the front end's status bar.
"""

import time
from flask import Blueprint, current_app, jsonify
from ..extensions import db
from ..models import Establishment, CashSession
from oficina.time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        establishments = db.session.query(Establishment).count()
        open_sessions = db.session.query(CashSession).filter_by(status="OPEN").count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "establishments": establishments,
                "open_cash_sessions": open_sessions,
            },
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/api/health")
def health():
    database = check_database_health()
    healthy = database["status"] == "healthy"
    body = {
        "status": "ok" if healthy else "degraded",
        "time": to_utc_z(utcnow()),
        "checks": {"database": database},
    }
    return jsonify(body), 200 if healthy else 503
