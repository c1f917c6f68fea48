# Overview: Flask API routes for the transaction journal; parses input and returns JSON responses.

# backend/fuelrecon/routes/transactions.py
"""
Transaction API Routes

DESIGN:
- amount is recomputed server-side; a supplied amount is only checked
- Edits and deletes follow the day lock policy; admin overrides need a reason
- Deletes are soft; deleted rows can still be listed with include_deleted
- Duplicate bill numbers come back as warnings, never as errors
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor, ensure_station_scope
from ..extensions import db
from ..models import Transaction
from ..services import transaction_service
from ..time_utils import parse_iso_datetime
from ..validation import ReconError, require_business_date


transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")

RECORD_FIELDS = (
    "liters",
    "price_per_liter",
    "payment_type",
    "amount",
    "business_date",
    "occurred_at",
    "shift_id",
    "license_plate",
    "owner_id",
    "nozzle_number",
    "product_type",
    "bill_book_no",
    "bill_no",
    "transfer_proof_ref",
    "reason",
)


def _filters_from_args() -> dict:
    filters = {}
    for key in ("business_date", "start_date", "end_date"):
        value = request.args.get(key)
        if value:
            filters[key] = require_business_date(value, key)
    for key in ("window_start", "window_end"):
        value = request.args.get(key)
        if value:
            filters[key] = parse_iso_datetime(value)
    shift_id = request.args.get("shift_id", type=int)
    if shift_id:
        filters["shift_id"] = shift_id
    return filters


def _transaction_scope_error(transaction_id: int):
    txn = db.session.query(Transaction).filter_by(id=transaction_id).first()
    if txn is None:
        return None
    return ensure_station_scope(txn.station_id)


@transactions_bp.post("")
@require_actor
def record_transaction_route():
    """
    Record a sale.

    Request body:
    {
        "station_id": 1,
        "liters": 12.5,
        "price_per_liter": 31.34,
        "payment_type": "CASH",
        "amount": 391.75,          (optional, checked against liters x price)
        "nozzle_number": 2,
        "bill_book_no": "12", "bill_no": "0345"
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

        txn, warnings = transaction_service.record_transaction(
            station_id,
            actor=g.actor,
            **{k: data.get(k) for k in RECORD_FIELDS},
        )
        return jsonify({"transaction": txn.to_dict(), "warnings": warnings}), 201

    except ReconError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record transaction")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.get("")
@require_actor
def list_transactions_route():
    station_id = request.args.get("station_id", type=int)
    if not station_id:
        return jsonify({"error": "station_id required"}), 400

    scope_error = ensure_station_scope(station_id)
    if scope_error:
        return scope_error

    try:
        filters = _filters_from_args()
        filters["include_deleted"] = request.args.get("include_deleted", "").lower() in ("1", "true", "yes")
        transactions = transaction_service.list_transactions(station_id, **filters)
        return jsonify({"transactions": [t.to_dict() for t in transactions]}), 200

    except ReconError as e:
        return jsonify(e.to_dict()), e.status_code
    except ValueError:
        return jsonify({"error": "Invalid window timestamp"}), 400


@transactions_bp.get("/summary")
@require_actor
def summary_route():
    """Totals by payment type, payment group and nozzle."""
    station_id = request.args.get("station_id", type=int)
    if not station_id:
        return jsonify({"error": "station_id required"}), 400

    scope_error = ensure_station_scope(station_id)
    if scope_error:
        return scope_error

    try:
        return jsonify(transaction_service.summarize_transactions(station_id, **_filters_from_args())), 200

    except ReconError as e:
        return jsonify(e.to_dict()), e.status_code
    except ValueError:
        return jsonify({"error": "Invalid window timestamp"}), 400


@transactions_bp.get("/bill-check")
@require_actor
def bill_check_route():
    station_id = request.args.get("station_id", type=int)
    if not station_id:
        return jsonify({"error": "station_id required"}), 400

    scope_error = ensure_station_scope(station_id)
    if scope_error:
        return scope_error

    matches = transaction_service.duplicate_bill_check(
        station_id,
        request.args.get("book_no"),
        request.args.get("bill_no"),
        exclude_id=request.args.get("exclude_id", type=int),
    )
    return jsonify({"duplicates": [t.to_dict() for t in matches]}), 200


@transactions_bp.patch("/<int:transaction_id>")
@require_actor
def update_transaction_route(transaction_id: int):
    """
    Request body:
    {
        "changes": {"liters": 20, "payment_type": "CREDIT"},
        "reason": "..."
    }
    """
    scope_error = _transaction_scope_error(transaction_id)
    if scope_error:
        return scope_error

    try:
        data = request.get_json() or {}
        txn, warnings = transaction_service.update_transaction(
            transaction_id,
            data.get("changes"),
            actor=g.actor,
            reason=data.get("reason"),
        )
        return jsonify({"transaction": txn.to_dict(), "warnings": warnings}), 200

    except ReconError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update transaction")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.delete("/<int:transaction_id>")
@require_actor
def delete_transaction_route(transaction_id: int):
    scope_error = _transaction_scope_error(transaction_id)
    if scope_error:
        return scope_error

    try:
        data = request.get_json(silent=True) or {}
        txn = transaction_service.delete_transaction(
            transaction_id,
            actor=g.actor,
            reason=data.get("reason") or request.args.get("reason"),
        )
        return jsonify({"transaction": txn.to_dict()}), 200

    except ReconError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete transaction")
        return jsonify({"error": "Internal server error"}), 500
