"""
Shift Lifecycle Service

WHY: A station-day is worked in up to three shifts. Each shift accumulates
meters and sales while OPEN, is reconciled and stamped when CLOSED, and then
ages into a read-only state for staff.

DESIGN PRINCIPLES:
- One row per (station-day, shift number); a closed number is never reopened
- Opening is a conditional insert; the unique constraint settles races
- Closing selects the row FOR UPDATE
- The 24-hour lock is derived from closed_at, never stored
- Discrepancies found at close are reported, not enforced
"""

from __future__ import annotations

from datetime import timedelta

from ..extensions import db
from ..models import MeterReading, Shift, StationDay
from ..time_utils import get_clock
from ..validation import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
    clean_optional_str,
    quantize,
    require_business_date,
    require_int_in_range,
)
from . import anomaly_service, cash_reconciliation_service
from .concurrency import insert_or_conflict, lock_for_update
from .lock_service import is_locked, lock_after_hours, require_modifiable
from .meter_service import (
    apply_meter_entries,
    check_continuity,
    meter_total,
    parse_reading_entries,
    prior_end_readings,
    validate_end_readings,
)
from .reconciliation_service import reconcile_shift
from .station_service import find_station_day, get_or_create_station_day, get_station


# =============================================================================
# READS
# =============================================================================

def get_shift(shift_id: int) -> Shift:
    shift = db.session.query(Shift).filter_by(id=shift_id).first()
    if not shift:
        raise NotFoundError("Shift not found")
    return shift


def list_shifts(station_id: int, business_date) -> list[Shift]:
    business_date = require_business_date(business_date)
    return (
        db.session.query(Shift)
        .join(StationDay, Shift.station_day_id == StationDay.id)
        .filter(StationDay.station_id == station_id, StationDay.business_date == business_date)
        .order_by(Shift.shift_number)
        .all()
    )


def shift_view(shift: Shift, *, role: str) -> dict:
    """Shift as seen by a given role, including the derived lock."""
    data = shift.to_dict()
    data["is_locked"] = is_locked(shift, get_clock().now(), role)
    return data


def list_overdue_closed_shifts(now=None, *, station_id: int | None = None) -> list[Shift]:
    """CLOSED shifts whose lock window has passed; staff can no longer touch these days."""
    now = now or get_clock().now()
    cutoff = now - timedelta(hours=lock_after_hours())
    query = db.session.query(Shift).filter(
        Shift.status == "CLOSED",
        Shift.closed_at.isnot(None),
        Shift.closed_at < cutoff,
    )
    if station_id is not None:
        query = query.join(StationDay, Shift.station_day_id == StationDay.id).filter(StationDay.station_id == station_id)
    return query.order_by(Shift.closed_at).all()


# =============================================================================
# TRANSITIONS
# =============================================================================

def open_shift(
    station_id: int,
    business_date,
    shift_number: int,
    *,
    actor,
    staff_name: str | None = None,
    carry_forward: bool = False,
    reason: str | None = None,
):
    """
    Open shift `shift_number` for the station-day.

    With carry_forward=True the nozzle start readings are seeded from the
    prior shift's end readings. Nothing is seeded otherwise. Opening is a
    mutation of the station-day and goes through the same lock gate as
    meter and sale writes.

    Returns (shift, continuity warnings).
    """
    station = get_station(station_id)
    business_date = require_business_date(business_date)
    shift_number = require_int_in_range(shift_number, "shift_number", 1, 3)
    if shift_number > station.max_shifts:
        raise ValidationError(
            f"Station is configured for {station.max_shifts} shift(s)",
            code="SHIFT_NUMBER_OUT_OF_RANGE",
        )

    station_day = find_station_day(station.id, business_date)
    if station_day is not None:
        existing = db.session.query(Shift).filter_by(
            station_day_id=station_day.id,
            shift_number=shift_number,
        ).first()
        if existing is not None:
            if existing.status == "OPEN":
                raise ConflictError(f"Shift {shift_number} is already open", code="SHIFT_ALREADY_OPEN")
            raise ConflictError(f"Shift {shift_number} is already closed", code="SHIFT_ALREADY_CLOSED")

    decision = require_modifiable(station_day, actor=actor, reason=reason)
    station_day = station_day or get_or_create_station_day(station.id, business_date)
    shift = Shift(
        station_day=station_day,
        shift_number=shift_number,
        status="OPEN",
        staff_name=clean_optional_str(staff_name, 128),
        opened_by=actor.actor_id,
        created_at=get_clock().now(),
    )
    insert_or_conflict(shift, code="SHIFT_ALREADY_OPEN", message=f"Shift {shift_number} was opened concurrently")

    if carry_forward:
        prior = prior_end_readings(station.id, business_date, shift_number=shift_number)
        entries = [
            {"nozzle": nozzle, "value": value, "photo": None}
            for nozzle, value in sorted(prior.items())
            if nozzle <= station.nozzle_count
        ]
        if entries:
            apply_meter_entries(
                station_day,
                shift_number=shift_number,
                reading_type="start",
                entries=entries,
                actor=actor,
                decision=decision,
                reason=reason,
            )

    db.session.commit()
    return shift, check_continuity(station.id, business_date, shift_number=shift_number)


def close_shift(shift_id: int, end_readings: list, *, actor, notes: str | None = None, reason: str | None = None):
    """
    Close an OPEN shift with its end meter readings.

    Discrepancy flags in the report are advisory. A nozzle whose sales are
    CRITICAL against its trailing average needs `notes`; without them the
    close is refused and nothing is written. Nozzle anomalies and the cash-up
    are stored with the close.

    Returns (shift, reconciliation report).
    """
    shift = lock_for_update(db.session.query(Shift).filter_by(id=shift_id)).first()
    if not shift:
        raise NotFoundError("Shift not found")
    if shift.status != "OPEN":
        raise ConflictError(f"Shift {shift.shift_number} is already closed", code="SHIFT_ALREADY_CLOSED")

    station_day = shift.station_day
    station = station_day.station
    entries = parse_reading_entries(station, end_readings)
    existing = {
        m.nozzle_number: m
        for m in station_day.meter_readings
        if m.shift_number == shift.shift_number
    }
    validate_end_readings(existing, entries)
    decision = require_modifiable(station_day, actor=actor, reason=reason)

    apply_meter_entries(
        station_day,
        shift_number=shift.shift_number,
        reading_type="end",
        entries=entries,
        actor=actor,
        decision=decision,
        reason=reason,
    )

    rows = db.session.query(MeterReading).filter_by(
        station_day_id=station_day.id,
        shift_number=shift.shift_number,
    ).all()
    findings = anomaly_service.check_shift_anomalies(shift)
    notes = clean_optional_str(notes, 2000)
    if anomaly_service.requires_note(findings) and not notes:
        db.session.rollback()
        raise ValidationError(
            "Critical sales anomaly found; a note is required to close the shift",
            code="ANOMALY_NOTE_REQUIRED",
            details={"anomalies": [f.to_dict() for f in findings]},
        )

    shift.total_liters_sold = quantize(meter_total(rows))
    shift.status = "CLOSED"
    shift.closed_at = get_clock().now()
    shift.closed_by = actor.actor_id
    if notes is not None:
        shift.notes = notes
    anomaly_service.save_nozzle_anomalies(shift, findings, note=notes)
    cash = cash_reconciliation_service.save_shift_reconciliation(shift, actor=actor)
    db.session.commit()

    report = reconcile_shift(shift)
    report["nozzle_anomalies"] = [f.to_dict() for f in findings]
    report["cash_reconciliation"] = cash.to_dict()
    return shift, report


def lock_shift(shift_id: int, *, actor) -> Shift:
    """Admin hard lock of a CLOSED shift, effective for staff immediately."""
    if not actor.is_admin:
        raise PermissionDeniedError("Only administrators can lock shifts")
    shift = lock_for_update(db.session.query(Shift).filter_by(id=shift_id)).first()
    if not shift:
        raise NotFoundError("Shift not found")
    if shift.status == "LOCKED":
        raise ConflictError("Shift is already locked", code="SHIFT_ALREADY_LOCKED")
    if shift.status != "CLOSED":
        raise ConflictError("Only closed shifts can be locked", code="SHIFT_NOT_CLOSED")

    shift.status = "LOCKED"
    shift.locked_at = get_clock().now()
    shift.locked_by = actor.actor_id
    db.session.commit()
    return shift
