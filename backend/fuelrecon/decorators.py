# Overview: Request identity decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services.lock_service import Actor, ROLES


def _read_station_header():
    raw = request.headers.get("X-Station-Id")
    if raw is None or not raw.strip():
        return None
    try:
        return int(raw)
    except ValueError:
        return False


def require_actor(f):
    """
    Require the identity headers set by the gateway.

    Sets g.actor (Actor). Authentication itself happens upstream; this only
    reads what the gateway asserted:
    - X-Actor-Id (required)
    - X-Actor-Role: ADMIN or STAFF (required)
    - X-Actor-Name, X-Station-Id (optional)
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        actor_id = (request.headers.get("X-Actor-Id") or "").strip()
        role = (request.headers.get("X-Actor-Role") or "").strip().upper()

        if not actor_id or not role:
            return jsonify({"error": "Actor identity required"}), 401
        if role not in ROLES:
            return jsonify({"error": "Unknown actor role"}), 401

        station_id = _read_station_header()
        if station_id is False:
            return jsonify({"error": "Invalid X-Station-Id header"}), 400

        g.actor = Actor(
            actor_id=actor_id,
            name=(request.headers.get("X-Actor-Name") or "").strip() or None,
            role=role,
            station_id=station_id,
        )
        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    """Must be stacked under @require_actor."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not g.actor.is_admin:
            return jsonify({"error": "Administrator role required"}), 403
        return f(*args, **kwargs)

    return decorated_function


def ensure_station_scope(station_id: int | None):
    """Staff bound to a station may only touch that station."""
    if g.actor.is_admin:
        return None
    try:
        station_id = int(station_id) if station_id is not None else None
    except (TypeError, ValueError):
        return None
    if g.actor.station_id and station_id and g.actor.station_id != station_id:
        return jsonify({"error": "Station access denied"}), 403
    return None
