# Overview: Flask API routes for reading the audit trail.

from flask import Blueprint, request, jsonify

from ..decorators import require_actor, ensure_station_scope
from ..services import audit_service
from ..validation import ReconError, require_business_date


audit_bp = Blueprint("audit", __name__, url_prefix="/api/audit")


@audit_bp.get("")
@require_actor
def list_audit_route():
    """
    Query params: station_id (required), business_date, entity_type,
    entity_id, post_close_only, limit.
    """
    station_id = request.args.get("station_id", type=int)
    if not station_id:
        return jsonify({"error": "station_id required"}), 400

    scope_error = ensure_station_scope(station_id)
    if scope_error:
        return scope_error

    try:
        business_date = request.args.get("business_date")
        entries = audit_service.audit_history(
            station_id=station_id,
            business_date=require_business_date(business_date) if business_date else None,
            entity_type=(request.args.get("entity_type") or "").upper() or None,
            entity_id=request.args.get("entity_id", type=int),
            post_close_only=request.args.get("post_close_only", "").lower() in ("1", "true", "yes"),
            limit=min(request.args.get("limit", 200, type=int), 1000),
        )
        return jsonify({"entries": [e.to_dict() for e in entries]}), 200

    except ReconError as e:
        return jsonify(e.to_dict()), e.status_code
