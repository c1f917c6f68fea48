# Overview: Flask API routes for stations and station-days; parses input and returns JSON responses.

# backend/fuelrecon/routes/days.py
"""
Station-Day API Routes

DESIGN:
- One URL space per station: /api/stations/<station_id>/...
- Meter, gauge and price writes go through the engine services, which
  enforce the lock policy and write the audit trail
- Warnings (continuity, low gauge) are returned next to the data, never as errors

SECURITY:
- Identity comes from the gateway headers (require_actor)
- Staff bound to a station can only reach that station
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor, require_admin, ensure_station_scope
from ..services import (
    gauge_service,
    meter_service,
    reconciliation_service,
    station_service,
    stock_service,
)
from ..validation import ReconError


days_bp = Blueprint("days", __name__, url_prefix="/api/stations")


# =============================================================================
# STATIONS
# =============================================================================

@days_bp.get("")
@require_actor
def list_stations_route():
    stations = station_service.list_stations()
    if not g.actor.is_admin and g.actor.station_id:
        stations = [s for s in stations if s.id == g.actor.station_id]
    return jsonify({"stations": [s.to_dict() for s in stations]}), 200


@days_bp.post("")
@require_actor
@require_admin
def create_station_route():
    """
    Create a station.

    Request body:
    {
        "code": "ST-01",
        "name": "Highway 12",
        "station_type": "GAS",
        "max_shifts": 2
    }
    """
    try:
        data = request.get_json() or {}
        station = station_service.create_station(
            code=data.get("code"),
            name=data.get("name"),
            station_type=data.get("station_type", "FULL"),
            max_shifts=data.get("max_shifts", 1),
            nozzle_count=data.get("nozzle_count", 4),
            tank_count=data.get("tank_count", 3),
            tank_capacity_liters=data.get("tank_capacity_liters"),
        )
        return jsonify({"station": station.to_dict()}), 201

    except ReconError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create station")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# DAY SUMMARY & WRITES
# =============================================================================

@days_bp.get("/<int:station_id>/days/<business_date>")
@require_actor
def get_day_route(station_id: int, business_date: str):
    """Reconciled view of one station-day (status, totals, discrepancies)."""
    scope_error = ensure_station_scope(station_id)
    if scope_error:
        return scope_error

    try:
        report = reconciliation_service.reconcile_day(station_id, business_date)
        return jsonify(report), 200

    except ReconError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load station day")
        return jsonify({"error": "Internal server error"}), 500


@days_bp.put("/<int:station_id>/days/<business_date>/meters")
@require_actor
def save_meters_route(station_id: int, business_date: str):
    """
    Save start or end meter readings.

    Request body:
    {
        "reading_type": "start",
        "shift_number": 0,
        "readings": [{"nozzle": 1, "value": 1000.5, "photo": "blob://..."}],
        "reason": "..."   (required for an admin override of a lock)
    }
    """
    scope_error = ensure_station_scope(station_id)
    if scope_error:
        return scope_error

    try:
        data = request.get_json() or {}
        rows, warnings = meter_service.save_meter_readings(
            station_id,
            business_date,
            data.get("reading_type"),
            data.get("readings"),
            actor=g.actor,
            shift_number=data.get("shift_number", 0),
            reason=data.get("reason"),
        )
        return jsonify({"readings": [r.to_dict() for r in rows], "warnings": warnings}), 200

    except ReconError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to save meter readings")
        return jsonify({"error": "Internal server error"}), 500


@days_bp.get("/<int:station_id>/days/<business_date>/continuity")
@require_actor
def continuity_route(station_id: int, business_date: str):
    scope_error = ensure_station_scope(station_id)
    if scope_error:
        return scope_error

    try:
        warnings = meter_service.check_continuity(
            station_id,
            business_date,
            shift_number=request.args.get("shift_number", 0, type=int),
        )
        return jsonify({"warnings": warnings}), 200

    except ReconError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to check meter continuity")
        return jsonify({"error": "Internal server error"}), 500


@days_bp.put("/<int:station_id>/days/<business_date>/gauges")
@require_actor
def save_gauges_route(station_id: int, business_date: str):
    """
    Save start or end tank percentages (gas stations).

    Request body:
    {
        "reading_type": "end",
        "readings": [{"tank": 1, "percentage": 45.5}]
    }
    """
    scope_error = ensure_station_scope(station_id)
    if scope_error:
        return scope_error

    try:
        data = request.get_json() or {}
        rows, warnings = gauge_service.save_gauge_readings(
            station_id,
            business_date,
            data.get("reading_type"),
            data.get("readings"),
            actor=g.actor,
        )
        return jsonify({"readings": [r.to_dict() for r in rows], "warnings": warnings}), 200

    except ReconError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to save gauge readings")
        return jsonify({"error": "Internal server error"}), 500


@days_bp.put("/<int:station_id>/days/<business_date>/prices")
@require_actor
def update_prices_route(station_id: int, business_date: str):
    """
    Request body:
    {
        "prices": {"retail_price": 31.34, "gas_price": 18.5},
        "reason": "..."
    }
    """
    scope_error = ensure_station_scope(station_id)
    if scope_error:
        return scope_error

    try:
        data = request.get_json() or {}
        station_day = reconciliation_service.update_day_settings(
            station_id,
            business_date,
            data.get("prices"),
            actor=g.actor,
            reason=data.get("reason"),
        )
        return jsonify({"station_day": station_day.to_dict()}), 200

    except ReconError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update day prices")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# HISTORY & INVENTORY
# =============================================================================

@days_bp.get("/<int:station_id>/history")
@require_actor
def history_route(station_id: int):
    scope_error = ensure_station_scope(station_id)
    if scope_error:
        return scope_error

    try:
        history = reconciliation_service.station_history(
            station_id,
            request.args.get("start"),
            request.args.get("end"),
        )
        return jsonify({"days": history}), 200

    except ReconError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load station history")
        return jsonify({"error": "Internal server error"}), 500


@days_bp.get("/<int:station_id>/anomalies")
@require_actor
def anomalies_route(station_id: int):
    scope_error = ensure_station_scope(station_id)
    if scope_error:
        return scope_error

    try:
        anomalies = reconciliation_service.scan_anomalies(
            station_id,
            request.args.get("start"),
            request.args.get("end"),
        )
        return jsonify({"anomalies": anomalies}), 200

    except ReconError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to scan anomalies")
        return jsonify({"error": "Internal server error"}), 500


@days_bp.get("/<int:station_id>/monthly-balance")
@require_actor
def monthly_balance_route(station_id: int):
    scope_error = ensure_station_scope(station_id)
    if scope_error:
        return scope_error

    try:
        balance = stock_service.monthly_balance(
            station_id,
            request.args.get("year", type=int),
            request.args.get("month", type=int),
        )
        return jsonify(balance), 200

    except ReconError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to compute monthly balance")
        return jsonify({"error": "Internal server error"}), 500


@days_bp.get("/<int:station_id>/stock")
@require_actor
def stock_route(station_id: int):
    scope_error = ensure_station_scope(station_id)
    if scope_error:
        return scope_error

    try:
        station_service.get_station(station_id)
        level = stock_service.stock_level(station_id, request.args.get("as_of"))
        return jsonify(level.to_dict()), 200

    except ReconError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to compute stock level")
        return jsonify({"error": "Internal server error"}), 500


@days_bp.get("/<int:station_id>/supplies")
@require_actor
def list_supplies_route(station_id: int):
    scope_error = ensure_station_scope(station_id)
    if scope_error:
        return scope_error

    supplies = stock_service.list_supplies(station_id)
    return jsonify({"supplies": [s.to_dict() for s in supplies]}), 200


@days_bp.post("/<int:station_id>/supplies")
@require_actor
def record_supply_route(station_id: int):
    """
    Request body:
    {
        "business_date": "2026-03-01",
        "liters": 1500,            (or "kilograms": 810)
        "supplier": "...",
        "invoice_no": "...",
        "correction_of_id": null
    }
    """
    scope_error = ensure_station_scope(station_id)
    if scope_error:
        return scope_error

    try:
        data = request.get_json() or {}
        supply = stock_service.record_supply(
            station_id,
            data.get("business_date"),
            actor=g.actor,
            liters=data.get("liters"),
            kilograms=data.get("kilograms"),
            supplier=data.get("supplier"),
            invoice_no=data.get("invoice_no"),
            correction_of_id=data.get("correction_of_id"),
        )
        return jsonify({"supply": supply.to_dict()}), 201

    except ReconError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record supply")
        return jsonify({"error": "Internal server error"}), 500
