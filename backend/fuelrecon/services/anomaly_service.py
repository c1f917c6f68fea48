# Overview: Persisted sales anomalies: per-nozzle vs trailing average, and daily meter vs transaction gaps.

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from typing import Optional

from flask import current_app, has_app_context

from ..extensions import db
from ..models import DailyAnomaly, MeterReading, NozzleAnomaly, Shift, StationDay
from ..time_utils import get_clock
from ..validation import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    clean_optional_str,
    decimal_to_str,
    quantize,
    require_business_date,
    to_decimal,
)
from .concurrency import insert_or_conflict
from .day_state_service import select_summary_meters
from .meter_service import meter_total, reading_delta
from .reconciliation_service import validate_date_range
from .station_service import find_station_day, get_station
from .transaction_service import transaction_totals

"""
Anomaly rules

Nozzle (per shift, at close):
- average = mean dispensed liters of the nozzle over the CLOSED/LOCKED shifts
  of the lookback window, the closing shift excluded. No history, no check.
- pct = (sold - average) / average * 100
- WARNING when |pct| > warning percent, CRITICAL when |pct| >= critical percent.
- A CRITICAL nozzle needs a closing note; the close is refused without one.

Daily (per station-day, on demand):
- difference = transaction liters - meter liters
- WARNING at |difference| >= warning liters, CRITICAL at >= critical liters.
- Rechecking refreshes the stored row; a corrected day loses its row.

Both kinds stay pending until an admin marks them reviewed.
"""

PENDING_LIMIT = 50

HUNDRED = Decimal("100")
ZERO = Decimal("0")


@dataclass(frozen=True)
class AnomalyThresholds:
    nozzle_warning_percent: Decimal = Decimal("50")
    nozzle_critical_percent: Decimal = Decimal("100")
    nozzle_lookback_days: int = 7
    daily_warning_liters: Decimal = Decimal("10")
    daily_critical_liters: Decimal = Decimal("50")

    @classmethod
    def from_config(cls, config) -> "AnomalyThresholds":
        defaults = cls()
        return cls(
            nozzle_warning_percent=to_decimal(
                config.get("NOZZLE_ANOMALY_WARNING_PERCENT", defaults.nozzle_warning_percent),
                "NOZZLE_ANOMALY_WARNING_PERCENT",
            ),
            nozzle_critical_percent=to_decimal(
                config.get("NOZZLE_ANOMALY_CRITICAL_PERCENT", defaults.nozzle_critical_percent),
                "NOZZLE_ANOMALY_CRITICAL_PERCENT",
            ),
            nozzle_lookback_days=int(config.get("NOZZLE_ANOMALY_LOOKBACK_DAYS", defaults.nozzle_lookback_days)),
            daily_warning_liters=to_decimal(
                config.get("DAILY_ANOMALY_WARNING_LITERS", defaults.daily_warning_liters),
                "DAILY_ANOMALY_WARNING_LITERS",
            ),
            daily_critical_liters=to_decimal(
                config.get("DAILY_ANOMALY_CRITICAL_LITERS", defaults.daily_critical_liters),
                "DAILY_ANOMALY_CRITICAL_LITERS",
            ),
        )


def current_anomaly_thresholds() -> AnomalyThresholds:
    if has_app_context():
        return AnomalyThresholds.from_config(current_app.config)
    return AnomalyThresholds()


@dataclass(frozen=True)
class NozzleFinding:
    nozzle_number: int
    sold_liters: Decimal
    average_liters: Decimal
    percent_diff: Decimal
    severity: str

    @property
    def message(self) -> str:
        direction = "above" if self.percent_diff > 0 else "below"
        return f"nozzle {self.nozzle_number}: sales {abs(self.percent_diff):.0f}% {direction} average"

    def to_dict(self) -> dict:
        return {
            "nozzle_number": self.nozzle_number,
            "sold_liters": decimal_to_str(self.sold_liters),
            "average_liters": decimal_to_str(self.average_liters),
            "percent_diff": decimal_to_str(self.percent_diff),
            "severity": self.severity,
            "message": self.message,
        }


# =============================================================================
# CLASSIFICATION (pure)
# =============================================================================

def classify_nozzle_sales(sold, average, thresholds: AnomalyThresholds) -> Optional[tuple[Decimal, str]]:
    """(percent_diff, severity) when sold strays from average, else None."""
    sold, average = Decimal(sold), Decimal(average)
    if average == 0:
        return None
    pct = (sold - average) / average * HUNDRED
    if abs(pct) <= thresholds.nozzle_warning_percent:
        return None
    severity = "CRITICAL" if abs(pct) >= thresholds.nozzle_critical_percent else "WARNING"
    return quantize(pct), severity


def classify_daily_difference(difference, thresholds: AnomalyThresholds) -> Optional[str]:
    gap = abs(Decimal(difference))
    if gap >= thresholds.daily_critical_liters:
        return "CRITICAL"
    if gap >= thresholds.daily_warning_liters:
        return "WARNING"
    return None


# =============================================================================
# NOZZLE ANOMALIES
# =============================================================================

def average_sold_liters(station_id: int, nozzle_number: int, as_of, *, days: int, exclude_shift_id: int | None = None) -> Decimal:
    """Mean dispensed liters per closed shift of one nozzle over [as_of - days, as_of]."""
    query = (
        db.session.query(MeterReading)
        .join(StationDay, MeterReading.station_day_id == StationDay.id)
        .join(
            Shift,
            (Shift.station_day_id == MeterReading.station_day_id)
            & (Shift.shift_number == MeterReading.shift_number),
        )
        .filter(
            StationDay.station_id == station_id,
            StationDay.business_date >= as_of - timedelta(days=days),
            StationDay.business_date <= as_of,
            MeterReading.nozzle_number == nozzle_number,
            MeterReading.shift_number > 0,
            MeterReading.end_reading.isnot(None),
            Shift.status.in_(("CLOSED", "LOCKED")),
        )
    )
    if exclude_shift_id is not None:
        query = query.filter(Shift.id != exclude_shift_id)
    rows = query.all()
    if not rows:
        return ZERO
    return quantize(sum((reading_delta(r) for r in rows), ZERO) / len(rows))


def check_shift_anomalies(shift, thresholds: AnomalyThresholds | None = None) -> list[NozzleFinding]:
    """Nozzles of the shift whose sales stray from their trailing average."""
    thresholds = thresholds or current_anomaly_thresholds()
    station_day = shift.station_day
    findings = []
    rows = sorted(
        (m for m in station_day.meter_readings if m.shift_number == shift.shift_number),
        key=lambda m: m.nozzle_number,
    )
    for row in rows:
        sold = reading_delta(row)
        if sold <= 0:
            continue
        average = average_sold_liters(
            station_day.station_id,
            row.nozzle_number,
            station_day.business_date,
            days=thresholds.nozzle_lookback_days,
            exclude_shift_id=shift.id,
        )
        result = classify_nozzle_sales(sold, average, thresholds)
        if result is None:
            continue
        pct, severity = result
        findings.append(NozzleFinding(
            nozzle_number=row.nozzle_number,
            sold_liters=quantize(sold),
            average_liters=average,
            percent_diff=pct,
            severity=severity,
        ))
    return findings


def requires_note(findings) -> bool:
    return any(f.severity == "CRITICAL" for f in findings)


def save_nozzle_anomalies(shift, findings, *, note: str | None = None) -> list[NozzleAnomaly]:
    """Persist findings for the shift. Does not commit."""
    now = get_clock().now()
    rows = []
    for f in findings:
        row = NozzleAnomaly(
            shift_id=shift.id,
            nozzle_number=f.nozzle_number,
            sold_liters=f.sold_liters,
            average_liters=f.average_liters,
            percent_diff=f.percent_diff,
            severity=f.severity,
            note=clean_optional_str(note, 2000),
            created_at=now,
        )
        db.session.add(row)
        rows.append(row)
    return rows


def pending_nozzle_anomalies(station_id: int | None = None) -> list[NozzleAnomaly]:
    query = db.session.query(NozzleAnomaly).filter(NozzleAnomaly.reviewed_at.is_(None))
    if station_id is not None:
        query = (
            query.join(Shift, NozzleAnomaly.shift_id == Shift.id)
            .join(StationDay, Shift.station_day_id == StationDay.id)
            .filter(StationDay.station_id == station_id)
        )
    return query.order_by(NozzleAnomaly.created_at.desc(), NozzleAnomaly.id.desc()).limit(PENDING_LIMIT).all()


def mark_nozzle_anomaly_reviewed(anomaly_id: int, *, actor) -> NozzleAnomaly:
    row = db.session.query(NozzleAnomaly).filter_by(id=anomaly_id).first()
    if row is None:
        raise NotFoundError("Anomaly not found")
    _mark_reviewed(row, actor)
    db.session.commit()
    return row


# =============================================================================
# DAILY ANOMALIES
# =============================================================================

def check_daily_anomaly(station_id: int, business_date, thresholds: AnomalyThresholds | None = None) -> dict:
    """Meter vs transaction liters for one station-day; nothing is written."""
    thresholds = thresholds or current_anomaly_thresholds()
    business_date = require_business_date(business_date)
    station_day = find_station_day(station_id, business_date)
    meters = select_summary_meters(station_day.meter_readings) if station_day else []
    meter_liters = quantize(meter_total(meters))
    transaction_liters, _ = transaction_totals(station_id, business_date)
    difference = transaction_liters - meter_liters
    severity = classify_daily_difference(difference, thresholds)
    return {
        "business_date": business_date,
        "meter_liters": meter_liters,
        "transaction_liters": transaction_liters,
        "difference": difference,
        "severity": severity,
        "has_anomaly": severity is not None,
    }


def _render_check(result: dict) -> dict:
    return {
        "business_date": result["business_date"].isoformat(),
        "meter_liters": decimal_to_str(result["meter_liters"]),
        "transaction_liters": decimal_to_str(result["transaction_liters"]),
        "difference": decimal_to_str(result["difference"]),
        "severity": result["severity"],
        "has_anomaly": result["has_anomaly"],
    }


def record_daily_anomaly(station_id: int, business_date) -> dict:
    """
    Check one station-day and bring its stored anomaly in line.

    Returns the check plus what happened to the row: saved, deleted or neither.
    """
    station = get_station(station_id)
    result = check_daily_anomaly(station.id, business_date)
    existing = db.session.query(DailyAnomaly).filter_by(
        station_id=station.id,
        business_date=result["business_date"],
    ).first()
    now = get_clock().now()

    saved = deleted = False
    if not result["has_anomaly"]:
        if existing is not None:
            db.session.delete(existing)
            deleted = True
            current_app.logger.info(
                "Resolved daily anomaly removed: station %s %s", station.id, result["business_date"],
            )
    elif existing is not None:
        existing.meter_liters = result["meter_liters"]
        existing.transaction_liters = result["transaction_liters"]
        existing.difference = result["difference"]
        existing.severity = result["severity"]
        existing.updated_at = now
        saved = True
    else:
        insert_or_conflict(
            DailyAnomaly(
                station_id=station.id,
                business_date=result["business_date"],
                meter_liters=result["meter_liters"],
                transaction_liters=result["transaction_liters"],
                difference=result["difference"],
                severity=result["severity"],
                created_at=now,
                updated_at=now,
            ),
            code="DAILY_ANOMALY_EXISTS",
            message="Daily anomaly was recorded concurrently; retry",
        )
        saved = True

    db.session.commit()
    return {"check": _render_check(result), "saved": saved, "deleted": deleted}


def scan_daily_anomalies(station_id: int, start, end) -> dict:
    """Recheck every date in [start, end]; returns how many dates were scanned and flagged."""
    station = get_station(station_id)
    start, end = validate_date_range(start, end)
    scanned = found = 0
    day = start
    while day <= end:
        outcome = record_daily_anomaly(station.id, day)
        scanned += 1
        if outcome["check"]["has_anomaly"]:
            found += 1
            current_app.logger.info(
                "Daily anomaly: station %s %s diff=%sL (%s)",
                station.id, day, outcome["check"]["difference"], outcome["check"]["severity"],
            )
        day += timedelta(days=1)
    return {"scanned": scanned, "found": found}


def pending_daily_anomalies(station_id: int | None = None) -> list[DailyAnomaly]:
    query = db.session.query(DailyAnomaly).filter(DailyAnomaly.reviewed_at.is_(None))
    if station_id is not None:
        query = query.filter(DailyAnomaly.station_id == station_id)
    return query.order_by(DailyAnomaly.business_date.desc()).limit(PENDING_LIMIT).all()


def mark_daily_anomaly_reviewed(anomaly_id: int, *, actor, note: str | None = None) -> DailyAnomaly:
    row = db.session.query(DailyAnomaly).filter_by(id=anomaly_id).first()
    if row is None:
        raise NotFoundError("Anomaly not found")
    _mark_reviewed(row, actor)
    if note is not None:
        row.note = clean_optional_str(note, 2000)
    db.session.commit()
    return row


def _mark_reviewed(row, actor) -> None:
    if not actor.is_admin:
        raise PermissionDeniedError("Only administrators can review anomalies")
    if row.reviewed_at is not None:
        raise ConflictError("Anomaly is already reviewed", code="ANOMALY_ALREADY_REVIEWED")
    row.reviewed_at = get_clock().now()
    row.reviewed_by = actor.actor_id
