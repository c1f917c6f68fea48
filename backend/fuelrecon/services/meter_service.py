# Overview: Nozzle meter ledger: start/end readings, dispensed volume and continuity checks.

from __future__ import annotations

from datetime import date
from decimal import Decimal

from ..extensions import db
from ..models import DAY_LEDGER, MeterReading, Shift, StationDay
from ..validation import (
    NotFoundError,
    ValidationError,
    clean_optional_str,
    decimal_to_str,
    require_business_date,
    require_int_in_range,
    require_non_negative,
)
from .audit_service import diff_fields, record_audit, snapshot
from .concurrency import insert_or_conflict
from .lock_service import require_modifiable
from .station_service import find_station_day, get_or_create_station_day, get_station

"""
Meter ledger rules

- Readings are cumulative pump counters; dispensed volume is end - start.
- end < start is METER_REGRESSION and is rejected, never clamped.
- Continuity mismatches (yesterday's end != today's start) are warnings only.
- shift_number 0 is the day-level ledger; 1..3 are shift meters.
"""

READING_TYPES = ("start", "end")
AUDITED_FIELDS = ("start_reading", "end_reading", "start_photo_ref", "end_photo_ref")

ZERO = Decimal("0")


# =============================================================================
# PURE CALCULATIONS
# =============================================================================

def reading_delta(reading) -> Decimal:
    """Dispensed liters for one nozzle; negative historical deltas floor at zero."""
    if reading.end_reading is None:
        return ZERO
    delta = Decimal(reading.end_reading) - Decimal(reading.start_reading or 0)
    return delta if delta > 0 else ZERO


def meter_total(readings) -> Decimal:
    return sum((reading_delta(r) for r in readings or []), ZERO)


def nozzle_deltas(readings) -> dict[int, Decimal]:
    """Per-nozzle dispensed volume, summed across shifts when several rows share a nozzle."""
    deltas: dict[int, Decimal] = {}
    for r in readings or []:
        if r.end_reading is None:
            continue
        deltas[r.nozzle_number] = deltas.get(r.nozzle_number, ZERO) + reading_delta(r)
    return deltas


def continuity_warnings(prior_ends: dict, current_starts: dict) -> list[str]:
    warnings = []
    for nozzle in sorted(current_starts):
        start = current_starts[nozzle]
        prior = prior_ends.get(nozzle)
        if prior is None or start is None:
            continue
        if prior == 0 or start == 0:
            continue
        if Decimal(prior) != Decimal(start):
            warnings.append(
                f"nozzle {nozzle}: previous end {decimal_to_str(prior)} ≠ today's start {decimal_to_str(start)}"
            )
    return warnings


# =============================================================================
# READS
# =============================================================================

def get_meter_readings(station_id: int, business_date: date, *, shift_number: int | None = DAY_LEDGER) -> list[MeterReading]:
    """Rows for one ledger (shift_number) or, with shift_number=None, every ledger of the day."""
    query = (
        db.session.query(MeterReading)
        .join(StationDay, MeterReading.station_day_id == StationDay.id)
        .filter(StationDay.station_id == station_id, StationDay.business_date == business_date)
    )
    if shift_number is not None:
        query = query.filter(MeterReading.shift_number == shift_number)
    return query.order_by(MeterReading.shift_number, MeterReading.nozzle_number).all()


def prior_end_readings(station_id: int, business_date: date, *, shift_number: int = DAY_LEDGER) -> dict[int, Decimal]:
    """
    End readings the given ledger should continue from.

    Shift N > 1 continues from shift N-1 of the same day. Everything else
    continues from the most recent earlier day that has end readings: its
    day-level ledger, or failing that its highest-numbered shift.
    """
    if shift_number and shift_number > 1:
        rows = get_meter_readings(station_id, business_date, shift_number=shift_number - 1)
        return {r.nozzle_number: r.end_reading for r in rows if r.end_reading is not None}

    previous_day = (
        db.session.query(StationDay)
        .join(MeterReading, MeterReading.station_day_id == StationDay.id)
        .filter(
            StationDay.station_id == station_id,
            StationDay.business_date < business_date,
            MeterReading.end_reading.isnot(None),
        )
        .order_by(StationDay.business_date.desc())
        .first()
    )
    if previous_day is None:
        return {}

    rows = [r for r in previous_day.meter_readings if r.end_reading is not None]
    day_level = [r for r in rows if r.shift_number == DAY_LEDGER]
    if not day_level:
        last_shift = max(r.shift_number for r in rows)
        day_level = [r for r in rows if r.shift_number == last_shift]
    return {r.nozzle_number: r.end_reading for r in day_level}


def check_continuity(station_id: int, business_date, *, shift_number: int = DAY_LEDGER) -> list[str]:
    business_date = require_business_date(business_date)
    current = get_meter_readings(station_id, business_date, shift_number=shift_number)
    if not current:
        return []
    prior = prior_end_readings(station_id, business_date, shift_number=shift_number)
    return continuity_warnings(prior, {r.nozzle_number: r.start_reading for r in current})


# =============================================================================
# WRITES
# =============================================================================

def parse_reading_entries(station, readings) -> list[dict]:
    if not isinstance(readings, list) or not readings:
        raise ValidationError("readings must be a non-empty list")

    parsed = []
    seen = set()
    for item in readings:
        if not isinstance(item, dict):
            raise ValidationError("each reading must be an object")
        nozzle = require_int_in_range(item.get("nozzle"), "nozzle", 1, station.nozzle_count)
        if nozzle in seen:
            raise ValidationError(f"nozzle {nozzle} appears more than once", code="DUPLICATE_NOZZLE")
        seen.add(nozzle)
        parsed.append({
            "nozzle": nozzle,
            "value": require_non_negative(item.get("value"), f"nozzle {nozzle} reading"),
            "photo": clean_optional_str(item.get("photo"), 512),
        })
    return parsed


def validate_end_readings(existing: dict, entries: list[dict]) -> None:
    """Every end value needs a start row and must not be below it."""
    for entry in entries:
        row = existing.get(entry["nozzle"])
        if row is None:
            raise ValidationError(
                f"nozzle {entry['nozzle']} has no start reading",
                code="MISSING_START_READING",
            )
        start = Decimal(row.start_reading or 0)
        if entry["value"] < start:
            raise ValidationError(
                f"nozzle {entry['nozzle']}: end reading {decimal_to_str(entry['value'])} "
                f"is below start reading {decimal_to_str(start)}",
                code="METER_REGRESSION",
                details={"nozzle": entry["nozzle"], "start": decimal_to_str(start), "end": decimal_to_str(entry["value"])},
            )


def validate_start_readings(existing: dict, entries: list[dict]) -> None:
    for entry in entries:
        row = existing.get(entry["nozzle"])
        if row is None or row.end_reading is None:
            continue
        if entry["value"] > Decimal(row.end_reading):
            raise ValidationError(
                f"nozzle {entry['nozzle']}: start reading {decimal_to_str(entry['value'])} "
                f"is above end reading {decimal_to_str(row.end_reading)}",
                code="METER_REGRESSION",
                details={"nozzle": entry["nozzle"], "start": decimal_to_str(entry["value"]), "end": decimal_to_str(row.end_reading)},
            )


def apply_meter_entries(station_day, *, shift_number: int, reading_type: str, entries: list[dict], actor, decision, reason=None) -> list[MeterReading]:
    """
    Write validated entries and journal them. Does not commit.

    New rows go through a conditional insert; a row created concurrently by
    another writer surfaces as CONFLICT.
    """
    existing = {
        r.nozzle_number: r
        for r in station_day.meter_readings
        if r.shift_number == shift_number
    }
    value_field = f"{reading_type}_reading"
    photo_field = f"{reading_type}_photo_ref"

    saved = []
    for entry in entries:
        row = existing.get(entry["nozzle"])
        if row is None:
            row = MeterReading(
                station_day=station_day,
                shift_number=shift_number,
                nozzle_number=entry["nozzle"],
                start_reading=ZERO,
            )
            setattr(row, value_field, entry["value"])
            if entry["photo"]:
                setattr(row, photo_field, entry["photo"])
            insert_or_conflict(
                row,
                code="METER_ROW_EXISTS",
                message=f"nozzle {entry['nozzle']} reading was saved concurrently; reload and retry",
            )
            action = "CREATE"
            changes = diff_fields({}, {f: v for f, v in snapshot(row, AUDITED_FIELDS).items() if v is not None})
        else:
            before = snapshot(row, AUDITED_FIELDS)
            setattr(row, value_field, entry["value"])
            if entry["photo"]:
                setattr(row, photo_field, entry["photo"])
            action = "UPDATE"
            changes = diff_fields(before, snapshot(row, AUDITED_FIELDS))

        if changes:
            record_audit(
                action=action,
                entity_type="METER",
                entity_id=row.id,
                station_id=station_day.station_id,
                business_date=station_day.business_date,
                actor=actor,
                changes=changes,
                is_post_close=decision.post_close,
                reason=reason,
            )
        saved.append(row)
    return saved


def save_meter_readings(
    station_id: int,
    business_date,
    reading_type: str,
    readings: list,
    *,
    actor,
    shift_number: int = DAY_LEDGER,
    reason: str | None = None,
):
    """
    Save start or end readings for several nozzles in one unit of work.

    Returns (rows, continuity warnings). Nothing is written unless every
    entry passes validation.
    """
    station = get_station(station_id)
    business_date = require_business_date(business_date)
    if reading_type not in READING_TYPES:
        raise ValidationError("reading_type must be 'start' or 'end'")
    shift_number = require_int_in_range(shift_number, "shift_number", 0, 3)
    entries = parse_reading_entries(station, readings)

    station_day = find_station_day(station.id, business_date)
    if shift_number != DAY_LEDGER:
        shift = None
        if station_day is not None:
            shift = db.session.query(Shift).filter_by(
                station_day_id=station_day.id,
                shift_number=shift_number,
            ).first()
        if shift is None:
            raise NotFoundError(f"Shift {shift_number} has not been opened for {business_date.isoformat()}")

    existing = {}
    if station_day is not None:
        existing = {r.nozzle_number: r for r in station_day.meter_readings if r.shift_number == shift_number}
    if reading_type == "end":
        validate_end_readings(existing, entries)
    else:
        validate_start_readings(existing, entries)

    decision = require_modifiable(station_day, actor=actor, reason=reason)

    station_day = station_day or get_or_create_station_day(station.id, business_date)
    rows = apply_meter_entries(
        station_day,
        shift_number=shift_number,
        reading_type=reading_type,
        entries=entries,
        actor=actor,
        decision=decision,
        reason=reason,
    )
    db.session.commit()

    warnings = check_continuity(station.id, business_date, shift_number=shift_number)
    return rows, warnings
