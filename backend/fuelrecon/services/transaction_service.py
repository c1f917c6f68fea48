# Overview: Transaction journal: record, edit and soft-delete sales; duplicate bill lookup; aggregation.

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from ..extensions import db
from ..models import PAYMENT_GROUPS, PAYMENT_TYPES, Shift, StationDay, Transaction
from ..time_utils import get_clock, parse_iso_datetime, station_date
from ..validation import (
    NotFoundError,
    ValidationError,
    clean_optional_str,
    decimal_to_str,
    quantize,
    require_business_date,
    require_int_in_range,
    require_positive,
    to_decimal,
)
from .audit_service import diff_fields, record_audit, snapshot
from .lock_service import require_modifiable
from .station_service import find_station_day, get_station

"""
Journal invariants

- amount == round(liters * price_per_liter, 0.01, HALF_UP), recomputed on every write.
- A caller-supplied amount is only checked, never stored as given.
- TRANSFER needs a proof reference unless an admin is backfilling.
- Deleted rows stay in the table and drop out of every sum.
- Recording a sale never touches meters or stock rows.
"""

EDITABLE_FIELDS = (
    "occurred_at",
    "license_plate",
    "owner_id",
    "payment_type",
    "nozzle_number",
    "product_type",
    "liters",
    "price_per_liter",
    "bill_book_no",
    "bill_no",
    "transfer_proof_ref",
)
AUDITED_FIELDS = EDITABLE_FIELDS + ("amount", "shift_id", "business_date")

ZERO = Decimal("0")


def compute_amount(liters, price_per_liter) -> Decimal:
    return quantize(Decimal(liters) * Decimal(price_per_liter))


def _parse_occurred_at(value) -> datetime:
    if value is None or value == "":
        return get_clock().now()
    if isinstance(value, datetime):
        return parse_iso_datetime(value.isoformat())
    try:
        return parse_iso_datetime(str(value))
    except ValueError:
        raise ValidationError("occurred_at must be an ISO-8601 datetime")


def _parse_payment_type(value) -> str:
    payment_type = (value or "").strip().upper() if isinstance(value, str) else ""
    if payment_type not in PAYMENT_TYPES:
        raise ValidationError(f"payment_type must be one of {', '.join(PAYMENT_TYPES)}", code="INVALID_PAYMENT_TYPE")
    return payment_type


def _check_amount(supplied, computed: Decimal) -> None:
    if supplied is None or supplied == "":
        return
    if quantize(to_decimal(supplied, "amount")) != computed:
        raise ValidationError(
            f"amount {supplied} does not match liters x price ({decimal_to_str(computed)})",
            code="AMOUNT_MISMATCH",
            details={"expected": decimal_to_str(computed)},
        )


def _check_transfer_proof(payment_type: str, proof_ref, actor) -> None:
    if payment_type == "TRANSFER" and not proof_ref and not actor.is_admin:
        raise ValidationError("Bank transfer sales require a transfer proof", code="TRANSFER_PROOF_REQUIRED")


def _station_shift(station_id: int, shift_id) -> Shift | None:
    if shift_id is None or shift_id == "":
        return None
    shift = db.session.query(Shift).filter_by(id=shift_id).first()
    if shift is None or shift.station_day.station_id != station_id:
        raise NotFoundError("Shift not found")
    return shift


def _resolve_business_date(business_date, occurred: datetime, shift: Shift | None) -> date:
    """
    A sale tied to a shift belongs to that shift's day. Otherwise the date
    given wins, then the station-local date of occurred_at.
    """
    if business_date:
        business_date = require_business_date(business_date)
        if shift is not None and business_date != shift.station_day.business_date:
            raise ValidationError(
                f"shift {shift.id} belongs to {shift.station_day.business_date.isoformat()}, not {business_date.isoformat()}",
                code="SHIFT_DATE_MISMATCH",
            )
        return business_date
    if shift is not None:
        return shift.station_day.business_date
    return station_date(occurred)


def _get_live_transaction(transaction_id: int) -> Transaction:
    txn = db.session.query(Transaction).filter_by(id=transaction_id).first()
    if txn is None or txn.is_deleted:
        raise NotFoundError("Transaction not found")
    return txn


# =============================================================================
# WRITES
# =============================================================================

def record_transaction(
    station_id: int,
    *,
    actor,
    liters,
    price_per_liter,
    payment_type: str,
    amount=None,
    business_date=None,
    occurred_at=None,
    shift_id: int | None = None,
    license_plate: str | None = None,
    owner_id: str | None = None,
    nozzle_number: int | None = None,
    product_type: str | None = None,
    bill_book_no: str | None = None,
    bill_no: str | None = None,
    transfer_proof_ref: str | None = None,
    reason: str | None = None,
):
    """
    Append one sale to the journal.

    Returns (transaction, duplicate-bill warnings).
    """
    station = get_station(station_id)
    occurred = _parse_occurred_at(occurred_at)
    shift = _station_shift(station.id, shift_id)
    business_date = _resolve_business_date(business_date, occurred, shift)

    liters = quantize(require_positive(liters, "liters"))
    price = quantize(require_positive(price_per_liter, "price_per_liter"))
    computed = compute_amount(liters, price)
    _check_amount(amount, computed)

    if nozzle_number is not None and nozzle_number != "":
        nozzle_number = require_int_in_range(nozzle_number, "nozzle_number", 1, station.nozzle_count)
    else:
        nozzle_number = None

    txn = Transaction(
        station_id=station.id,
        business_date=business_date,
        occurred_at=occurred,
        shift_id=shift.id if shift is not None else None,
        license_plate=clean_optional_str(license_plate, 32),
        owner_id=clean_optional_str(owner_id, 64),
        payment_type=_parse_payment_type(payment_type),
        nozzle_number=nozzle_number,
        product_type=clean_optional_str(product_type, 32),
        liters=liters,
        price_per_liter=price,
        amount=computed,
        bill_book_no=clean_optional_str(bill_book_no, 32),
        bill_no=clean_optional_str(bill_no, 32),
        transfer_proof_ref=clean_optional_str(transfer_proof_ref, 512),
        recorded_by=actor.actor_id,
        created_at=get_clock().now(),
        updated_at=get_clock().now(),
    )
    _check_transfer_proof(txn.payment_type, txn.transfer_proof_ref, actor)

    station_day = shift.station_day if shift is not None else find_station_day(station.id, business_date)
    decision = require_modifiable(station_day, actor=actor, reason=reason)

    warnings = duplicate_bill_warnings(station.id, txn.bill_book_no, txn.bill_no)

    db.session.add(txn)
    db.session.flush()
    record_audit(
        action="CREATE",
        entity_type="TRANSACTION",
        entity_id=txn.id,
        station_id=station.id,
        business_date=business_date,
        actor=actor,
        changes=diff_fields({}, {k: v for k, v in snapshot(txn, AUDITED_FIELDS).items() if v is not None}),
        is_post_close=decision.post_close,
        reason=reason,
    )
    db.session.commit()
    return txn, warnings


def update_transaction(transaction_id: int, changes: dict, *, actor, reason: str | None = None):
    """
    Edit a live transaction. amount is always recomputed; a supplied amount
    is only checked against the recomputation.

    Returns (transaction, duplicate-bill warnings).
    """
    if not isinstance(changes, dict) or not changes:
        raise ValidationError("No changes supplied")
    unknown = set(changes) - set(EDITABLE_FIELDS) - {"amount"}
    if unknown:
        raise ValidationError(f"Fields cannot be edited: {', '.join(sorted(unknown))}", code="FIELD_NOT_EDITABLE")

    txn = _get_live_transaction(transaction_id)
    station = get_station(txn.station_id)

    updates = {}
    for field, value in changes.items():
        if field == "amount":
            continue
        if field == "occurred_at":
            updates[field] = _parse_occurred_at(value)
        elif field == "payment_type":
            updates[field] = _parse_payment_type(value)
        elif field == "liters":
            updates[field] = quantize(require_positive(value, "liters"))
        elif field == "price_per_liter":
            updates[field] = quantize(require_positive(value, "price_per_liter"))
        elif field == "nozzle_number":
            updates[field] = None if value in (None, "") else require_int_in_range(value, "nozzle_number", 1, station.nozzle_count)
        elif field == "transfer_proof_ref":
            updates[field] = clean_optional_str(value, 512)
        else:
            updates[field] = clean_optional_str(value, 64 if field == "owner_id" else 32)

    liters = updates.get("liters", txn.liters)
    price = updates.get("price_per_liter", txn.price_per_liter)
    computed = compute_amount(liters, price)
    _check_amount(changes.get("amount"), computed)
    _check_transfer_proof(
        updates.get("payment_type", txn.payment_type),
        updates.get("transfer_proof_ref", txn.transfer_proof_ref),
        actor,
    )

    decision = require_modifiable(find_station_day(txn.station_id, txn.business_date), actor=actor, reason=reason)

    before = snapshot(txn, AUDITED_FIELDS)
    for field, value in updates.items():
        setattr(txn, field, value)
    txn.amount = computed

    diff = diff_fields(before, snapshot(txn, AUDITED_FIELDS))
    if not diff:
        db.session.rollback()
        return txn, []

    txn.updated_at = get_clock().now()
    record_audit(
        action="UPDATE",
        entity_type="TRANSACTION",
        entity_id=txn.id,
        station_id=txn.station_id,
        business_date=txn.business_date,
        actor=actor,
        changes=diff,
        is_post_close=decision.post_close,
        reason=reason,
    )
    db.session.commit()
    return txn, duplicate_bill_warnings(txn.station_id, txn.bill_book_no, txn.bill_no, exclude_id=txn.id)


def delete_transaction(transaction_id: int, *, actor, reason: str | None = None) -> Transaction:
    """Soft delete: the row is kept with deleted_at set and excluded from every sum."""
    txn = _get_live_transaction(transaction_id)
    decision = require_modifiable(find_station_day(txn.station_id, txn.business_date), actor=actor, reason=reason)

    now = get_clock().now()
    before = snapshot(txn, AUDITED_FIELDS)
    txn.deleted_at = now
    txn.deleted_by = actor.actor_id
    record_audit(
        action="DELETE",
        entity_type="TRANSACTION",
        entity_id=txn.id,
        station_id=txn.station_id,
        business_date=txn.business_date,
        actor=actor,
        changes=diff_fields({k: v for k, v in before.items() if v is not None}, {"deleted_at": now}),
        is_post_close=decision.post_close,
        reason=reason,
    )
    db.session.commit()
    return txn


# =============================================================================
# READS
# =============================================================================

def duplicate_bill_check(station_id: int, book_no, bill_no, *, exclude_id: int | None = None) -> list[Transaction]:
    """Live transactions of the station already carrying this (book, bill) pair."""
    book_no = clean_optional_str(book_no, 32)
    bill_no = clean_optional_str(bill_no, 32)
    if not book_no or not bill_no:
        return []
    query = db.session.query(Transaction).filter(
        Transaction.station_id == station_id,
        Transaction.bill_book_no == book_no,
        Transaction.bill_no == bill_no,
        Transaction.deleted_at.is_(None),
    )
    if exclude_id is not None:
        query = query.filter(Transaction.id != exclude_id)
    return query.order_by(Transaction.occurred_at).all()


def duplicate_bill_warnings(station_id: int, book_no, bill_no, *, exclude_id: int | None = None) -> list[str]:
    return [
        f"bill {book_no}/{bill_no} already recorded on {t.business_date.isoformat()} (transaction {t.id})"
        for t in duplicate_bill_check(station_id, book_no, bill_no, exclude_id=exclude_id)
    ]


def _filtered_query(
    station_id: int,
    *,
    business_date: date | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    window_start: datetime | None = None,
    window_end: datetime | None = None,
    shift_id: int | None = None,
    include_deleted: bool = False,
):
    query = db.session.query(Transaction).filter(Transaction.station_id == station_id)
    if not include_deleted:
        query = query.filter(Transaction.deleted_at.is_(None))
    if business_date is not None:
        query = query.filter(Transaction.business_date == business_date)
    if start_date is not None:
        query = query.filter(Transaction.business_date >= start_date)
    if end_date is not None:
        query = query.filter(Transaction.business_date <= end_date)
    if window_start is not None:
        query = query.filter(Transaction.occurred_at >= window_start)
    if window_end is not None:
        query = query.filter(Transaction.occurred_at < window_end)
    if shift_id is not None:
        query = query.filter(Transaction.shift_id == shift_id)
    return query


def list_transactions(station_id: int, **filters) -> list[Transaction]:
    return _filtered_query(station_id, **filters).order_by(Transaction.occurred_at, Transaction.id).all()


def _bucket() -> dict:
    return {"count": 0, "liters": ZERO, "amount": ZERO}


def _add(bucket: dict, txn: Transaction) -> None:
    bucket["count"] += 1
    bucket["liters"] += Decimal(txn.liters)
    bucket["amount"] += Decimal(txn.amount)


def _render(bucket: dict) -> dict:
    return {
        "count": bucket["count"],
        "liters": decimal_to_str(bucket["liters"]),
        "amount": decimal_to_str(bucket["amount"]),
    }


def aggregate(transactions) -> dict:
    """Totals by payment type, payment group (cash / credit / transfer) and nozzle."""
    total = _bucket()
    by_type = {t: _bucket() for t in PAYMENT_TYPES}
    by_group = {g: _bucket() for g in ("cash", "credit", "transfer")}
    by_nozzle: dict = {}

    for txn in transactions:
        _add(total, txn)
        _add(by_type[txn.payment_type], txn)
        _add(by_group[PAYMENT_GROUPS[txn.payment_type]], txn)
        if txn.nozzle_number is not None:
            _add(by_nozzle.setdefault(txn.nozzle_number, _bucket()), txn)

    return {"total": total, "by_payment_type": by_type, "by_payment_group": by_group, "by_nozzle": by_nozzle}


def summarize_transactions(station_id: int, **filters) -> dict:
    summary = aggregate(list_transactions(station_id, **filters))
    return {
        "total": _render(summary["total"]),
        "by_payment_type": {k: _render(v) for k, v in summary["by_payment_type"].items()},
        "by_payment_group": {k: _render(v) for k, v in summary["by_payment_group"].items()},
        "by_nozzle": {str(k): _render(v) for k, v in sorted(summary["by_nozzle"].items())},
    }


def transaction_totals(station_id: int, business_date: date) -> tuple[Decimal, Decimal]:
    """(liters, amount) of the live transactions of one station-day."""
    total = aggregate(list_transactions(station_id, business_date=business_date))["total"]
    return quantize(total["liters"]), quantize(total["amount"])


def shift_transactions(shift_id: int) -> list[Transaction]:
    shift = db.session.query(Shift).filter_by(id=shift_id).first()
    if shift is None:
        raise NotFoundError("Shift not found")
    station_day = db.session.get(StationDay, shift.station_day_id)
    return list_transactions(station_day.station_id, shift_id=shift.id)
