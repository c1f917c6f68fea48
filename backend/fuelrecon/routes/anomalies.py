# Overview: Flask API routes for stored sales anomalies and their review.

# backend/fuelrecon/routes/anomalies.py
"""
Anomaly API Routes

DESIGN:
- Nozzle anomalies are written when a shift closes; here they are only listed and reviewed
- Daily anomalies are (re)checked on demand, one date or a date range at a time
- Reviewing is admin-only; pending lists are visible within the station scope
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor, require_admin, ensure_station_scope
from ..services import anomaly_service
from ..validation import ReconError


anomalies_bp = Blueprint("anomalies", __name__, url_prefix="/api/anomalies")


def _scoped_station_id():
    """Staff bound to a station only ever see that station."""
    station_id = request.args.get("station_id", type=int)
    if station_id is None and not g.actor.is_admin:
        station_id = g.actor.station_id
    return station_id


# =============================================================================
# NOZZLE
# =============================================================================

@anomalies_bp.get("/nozzle")
@require_actor
def pending_nozzle_route():
    station_id = _scoped_station_id()
    scope_error = ensure_station_scope(station_id)
    if scope_error:
        return scope_error
    rows = anomaly_service.pending_nozzle_anomalies(station_id)
    return jsonify({"anomalies": [r.to_dict() for r in rows]}), 200


@anomalies_bp.post("/nozzle/<int:anomaly_id>/review")
@require_actor
@require_admin
def review_nozzle_route(anomaly_id: int):
    try:
        row = anomaly_service.mark_nozzle_anomaly_reviewed(anomaly_id, actor=g.actor)
        return jsonify({"anomaly": row.to_dict()}), 200

    except ReconError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to review nozzle anomaly")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# DAILY
# =============================================================================

@anomalies_bp.get("/daily")
@require_actor
def pending_daily_route():
    station_id = _scoped_station_id()
    scope_error = ensure_station_scope(station_id)
    if scope_error:
        return scope_error
    rows = anomaly_service.pending_daily_anomalies(station_id)
    return jsonify({"anomalies": [r.to_dict() for r in rows]}), 200


@anomalies_bp.post("/daily/check")
@require_actor
def check_daily_route():
    """
    Recheck one date, or every date of a range.

    Request body:
    {
        "station_id": 1,
        "business_date": "2026-03-01"
    }
    or
    {
        "station_id": 1,
        "start": "2026-03-01",
        "end": "2026-03-31"
    }
    """
    try:
        data = request.get_json() or {}
        station_id = data.get("station_id")
        if not station_id:
            return jsonify({"error": "station_id required"}), 400

        scope_error = ensure_station_scope(station_id)
        if scope_error:
            return scope_error

        if data.get("start") or data.get("end"):
            result = anomaly_service.scan_daily_anomalies(station_id, data.get("start"), data.get("end"))
        else:
            result = anomaly_service.record_daily_anomaly(station_id, data.get("business_date"))
        return jsonify(result), 200

    except ReconError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to check daily anomalies")
        return jsonify({"error": "Internal server error"}), 500


@anomalies_bp.post("/daily/<int:anomaly_id>/review")
@require_actor
@require_admin
def review_daily_route(anomaly_id: int):
    """
    Request body:
    {
        "note": "pump 2 calibrated"
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        row = anomaly_service.mark_daily_anomaly_reviewed(anomaly_id, actor=g.actor, note=data.get("note"))
        return jsonify({"anomaly": row.to_dict()}), 200

    except ReconError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to review daily anomaly")
        return jsonify({"error": "Internal server error"}), 500
