# backend/fuelrecon/routes/system.py
"""
System health endpoint.

Reports database connectivity and the clock the engine is running on.
"""

import time
from flask import Blueprint, current_app, jsonify
from ..extensions import db
from ..models import Station
from ..time_utils import get_clock, to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        station_count = db.session.query(Station).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"stations": station_count},
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
    status_code = 200 if database["status"] == "healthy" else 503
    return jsonify({
        "status": database["status"],
        "now": to_utc_z(get_clock().now()),
        "checks": {"database": database},
    }), status_code
