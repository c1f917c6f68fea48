# Overview: Flask API routes for shift lifecycle operations; parses input and returns JSON responses.

# backend/fuelrecon/routes/shifts.py
"""
Shift API Routes

DESIGN:
- Shift lifecycle: open -> close -> (admin) lock
- No reopen: a closed shift number stays closed for that day
- Close returns the shift reconciliation; flags are advisory, but a critical
  nozzle anomaly needs closing notes
- The cash-up is stored at close and can be recalculated by an admin
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor, require_admin, ensure_station_scope
from ..services import cash_reconciliation_service, shift_service
from ..validation import ReconError


shifts_bp = Blueprint("shifts", __name__, url_prefix="/api/shifts")


def _shift_scope_error(shift):
    return ensure_station_scope(shift.station_day.station_id)


@shifts_bp.post("")
@require_actor
def open_shift_route():
    """
    Open a shift.

    Request body:
    {
        "station_id": 1,
        "business_date": "2026-03-01",
        "shift_number": 1,
        "staff_name": "Somchai",
        "carry_forward": false,
        "reason": "..."
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

        shift, warnings = shift_service.open_shift(
            station_id,
            data.get("business_date"),
            data.get("shift_number"),
            actor=g.actor,
            staff_name=data.get("staff_name"),
            carry_forward=bool(data.get("carry_forward", False)),
            reason=data.get("reason"),
        )
        current_app.logger.info(
            "Shift %s opened: station %s %s by %s",
            shift.id, station_id, shift.station_day.business_date, g.actor.actor_id,
        )
        return jsonify({"shift": shift_service.shift_view(shift, role=g.actor.role), "warnings": warnings}), 201

    except ReconError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to open shift")
        return jsonify({"error": "Internal server error"}), 500


@shifts_bp.get("")
@require_actor
def list_shifts_route():
    station_id = request.args.get("station_id", type=int)
    if not station_id:
        return jsonify({"error": "station_id required"}), 400

    scope_error = ensure_station_scope(station_id)
    if scope_error:
        return scope_error

    try:
        shifts = shift_service.list_shifts(station_id, request.args.get("business_date"))
        return jsonify({"shifts": [shift_service.shift_view(s, role=g.actor.role) for s in shifts]}), 200

    except ReconError as e:
        return jsonify(e.to_dict()), e.status_code


@shifts_bp.get("/overdue")
@require_actor
@require_admin
def overdue_shifts_route():
    """CLOSED shifts past the lock window (admin alerting)."""
    shifts = shift_service.list_overdue_closed_shifts(station_id=request.args.get("station_id", type=int))
    return jsonify({"shifts": [s.to_dict() for s in shifts]}), 200


@shifts_bp.get("/<int:shift_id>")
@require_actor
def get_shift_route(shift_id: int):
    try:
        shift = shift_service.get_shift(shift_id)
        scope_error = _shift_scope_error(shift)
        if scope_error:
            return scope_error
        return jsonify({"shift": shift_service.shift_view(shift, role=g.actor.role)}), 200

    except ReconError as e:
        return jsonify(e.to_dict()), e.status_code


@shifts_bp.post("/<int:shift_id>/close")
@require_actor
def close_shift_route(shift_id: int):
    """
    Close a shift with its end meter readings.

    Request body:
    {
        "end_readings": [{"nozzle": 1, "value": 1500.25}],
        "notes": "...",
        "reason": "..."
    }
    """
    try:
        shift = shift_service.get_shift(shift_id)
        scope_error = _shift_scope_error(shift)
        if scope_error:
            return scope_error

        data = request.get_json() or {}
        shift, report = shift_service.close_shift(
            shift_id,
            data.get("end_readings"),
            actor=g.actor,
            notes=data.get("notes"),
            reason=data.get("reason"),
        )
        current_app.logger.info(
            "Shift %s closed by %s: %s liters, %s flag(s)",
            shift.id, g.actor.actor_id, report["meter_total_liters"], report["flagged_count"],
        )
        return jsonify({"shift": shift_service.shift_view(shift, role=g.actor.role), "reconciliation": report}), 200

    except ReconError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to close shift")
        return jsonify({"error": "Internal server error"}), 500


@shifts_bp.post("/<int:shift_id>/lock")
@require_actor
@require_admin
def lock_shift_route(shift_id: int):
    try:
        shift = shift_service.lock_shift(shift_id, actor=g.actor)
        current_app.logger.info("Shift %s locked by %s", shift.id, g.actor.actor_id)
        return jsonify({"shift": shift_service.shift_view(shift, role=g.actor.role)}), 200

    except ReconError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to lock shift")
        return jsonify({"error": "Internal server error"}), 500


@shifts_bp.get("/<int:shift_id>/cash-reconciliation")
@require_actor
def get_cash_reconciliation_route(shift_id: int):
    try:
        shift = shift_service.get_shift(shift_id)
        scope_error = _shift_scope_error(shift)
        if scope_error:
            return scope_error
        row = cash_reconciliation_service.get_shift_reconciliation(shift.id)
        return jsonify({"cash_reconciliation": row.to_dict()}), 200

    except ReconError as e:
        return jsonify(e.to_dict()), e.status_code


@shifts_bp.post("/<int:shift_id>/cash-reconciliation")
@require_actor
@require_admin
def recalculate_cash_reconciliation_route(shift_id: int):
    """Recompute after late sale or price edits."""
    try:
        shift = shift_service.get_shift(shift_id)
        row = cash_reconciliation_service.recalculate_shift_reconciliation(shift, actor=g.actor)
        return jsonify({"cash_reconciliation": row.to_dict()}), 200

    except ReconError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to recalculate cash reconciliation")
        return jsonify({"error": "Internal server error"}), 500
