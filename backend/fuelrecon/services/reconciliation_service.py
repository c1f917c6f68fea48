# Overview: Reconciliation engine: discrepancy classification, day/shift reconciliation, history and settings.

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

from flask import current_app, has_app_context

from ..extensions import db
from ..models import DAY_LEDGER, StationDay
from ..validation import (
    ValidationError,
    decimal_to_str,
    quantize,
    require_business_date,
    require_positive,
    to_decimal,
)
from .audit_service import diff_fields, record_audit, snapshot
from .day_state_service import derive_status, select_summary_meters
from .gauge_service import gauge_estimate, gauge_stock, has_gauge_data, tank_capacity
from .lock_service import require_modifiable
from .meter_service import check_continuity, meter_total, nozzle_deltas
from .station_service import find_station_day, get_or_create_station_day, get_station
from .stock_service import stock_level
from .transaction_service import aggregate, list_transactions

"""
Discrepancy signals

All four comparisons are (computed - reference) and purely advisory: they are
reported next to the data and never block a save or a shift close.

- meter_vs_transaction:   meter total - transaction liters       flagged at |d| >= 1
- gauge_vs_meter:         gauge estimate - meter total (gas)     flagged at |d| >= 10
- gauge_stock_vs_stock:   gauge stock - calculated stock (gas)   flagged at |d| > 10
- revenue:                meter total x price - amount sum       flagged at |d| >= 10
"""

PRICE_FIELDS = ("retail_price", "wholesale_price", "special_price", "gas_price")
MAX_HISTORY_DAYS = 366

ZERO = Decimal("0")


@dataclass(frozen=True)
class DiscrepancyThresholds:
    meter_txn_liters: Decimal = Decimal("1")
    gauge_meter_liters: Decimal = Decimal("10")
    stock_liters: Decimal = Decimal("10")
    revenue_currency: Decimal = Decimal("10")

    @classmethod
    def from_config(cls, config) -> "DiscrepancyThresholds":
        defaults = cls()
        return cls(
            meter_txn_liters=to_decimal(config.get("RECON_METER_TXN_LITERS", defaults.meter_txn_liters), "RECON_METER_TXN_LITERS"),
            gauge_meter_liters=to_decimal(config.get("RECON_GAUGE_METER_LITERS", defaults.gauge_meter_liters), "RECON_GAUGE_METER_LITERS"),
            stock_liters=to_decimal(config.get("RECON_STOCK_LITERS", defaults.stock_liters), "RECON_STOCK_LITERS"),
            revenue_currency=to_decimal(config.get("RECON_REVENUE_CURRENCY", defaults.revenue_currency), "RECON_REVENUE_CURRENCY"),
        )


def current_thresholds() -> DiscrepancyThresholds:
    if has_app_context():
        return DiscrepancyThresholds.from_config(current_app.config)
    return DiscrepancyThresholds()


@dataclass(frozen=True)
class Discrepancy:
    kind: str
    computed: Decimal
    reference: Decimal
    threshold: Decimal
    flagged: bool

    @property
    def diff(self) -> Decimal:
        return self.computed - self.reference

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "computed": decimal_to_str(self.computed),
            "reference": decimal_to_str(self.reference),
            "diff": decimal_to_str(self.diff),
            "threshold": decimal_to_str(self.threshold),
            "flagged": self.flagged,
        }


# =============================================================================
# CLASSIFICATION (pure)
# =============================================================================

def meter_vs_transaction(meter_liters, transaction_liters, thresholds: DiscrepancyThresholds) -> Discrepancy:
    computed, reference = Decimal(meter_liters), Decimal(transaction_liters)
    return Discrepancy(
        kind="meter_vs_transaction",
        computed=computed,
        reference=reference,
        threshold=thresholds.meter_txn_liters,
        flagged=abs(computed - reference) >= thresholds.meter_txn_liters,
    )


def gauge_vs_meter(gauge_liters, meter_liters, thresholds: DiscrepancyThresholds) -> Discrepancy:
    computed, reference = Decimal(gauge_liters), Decimal(meter_liters)
    return Discrepancy(
        kind="gauge_vs_meter",
        computed=computed,
        reference=reference,
        threshold=thresholds.gauge_meter_liters,
        flagged=abs(computed - reference) >= thresholds.gauge_meter_liters,
    )


def gauge_stock_vs_stock(gauge_liters, calculated_liters, thresholds: DiscrepancyThresholds) -> Discrepancy:
    computed, reference = Decimal(gauge_liters), Decimal(calculated_liters)
    return Discrepancy(
        kind="gauge_stock_vs_stock",
        computed=computed,
        reference=reference,
        threshold=thresholds.stock_liters,
        flagged=abs(computed - reference) > thresholds.stock_liters,
    )


def revenue_discrepancy(meter_liters, price, transaction_amount, thresholds: DiscrepancyThresholds) -> Discrepancy:
    computed = quantize(Decimal(meter_liters) * Decimal(price))
    reference = Decimal(transaction_amount)
    return Discrepancy(
        kind="revenue",
        computed=computed,
        reference=reference,
        threshold=thresholds.revenue_currency,
        flagged=abs(computed - reference) >= thresholds.revenue_currency,
    )


def selling_price(station, station_day) -> Optional[Decimal]:
    """Gas stations reconcile revenue on the gas price, the others on retail."""
    if station_day is None:
        return None
    price = station_day.gas_price if station.is_gas else station_day.retail_price
    return None if price is None else Decimal(price)


# =============================================================================
# RECONCILIATION
# =============================================================================

def _compare(station, station_day, meters, transactions, *, thresholds, include_gauges: bool, as_of: date | None = None):
    meters_liters = meter_total(meters)
    totals = aggregate(transactions)["total"]
    discrepancies = [meter_vs_transaction(meters_liters, totals["liters"], thresholds)]

    gauge_info = None
    if include_gauges and station.is_gas and station_day is not None and has_gauge_data(station_day.gauge_readings):
        capacity = tank_capacity(station)
        readings = station_day.gauge_readings
        estimate = gauge_estimate(readings, capacity)
        on_hand = gauge_stock(readings, capacity)
        calculated = stock_level(station.id, as_of)
        if any(g.start_percentage is not None and g.end_percentage is not None for g in readings):
            discrepancies.append(gauge_vs_meter(estimate, meters_liters, thresholds))
        discrepancies.append(gauge_stock_vs_stock(on_hand, calculated.level, thresholds))
        gauge_info = {
            "tank_capacity_liters": decimal_to_str(capacity),
            "gauge_estimate_liters": decimal_to_str(estimate),
            "gauge_stock_liters": decimal_to_str(on_hand),
        }

    price = selling_price(station, station_day)
    if price is not None:
        discrepancies.append(revenue_discrepancy(meters_liters, price, totals["amount"], thresholds))

    return meters_liters, totals, discrepancies, gauge_info


def reconcile_day(station_id: int, business_date) -> dict:
    """Full picture of one station-day: status, volumes, money and every discrepancy signal."""
    station = get_station(station_id)
    business_date = require_business_date(business_date)
    thresholds = current_thresholds()
    station_day = find_station_day(station.id, business_date)

    all_meters = list(station_day.meter_readings) if station_day else []
    meters = select_summary_meters(all_meters)
    transactions = list_transactions(station.id, business_date=business_date)
    meters_liters, totals, discrepancies, gauge_info = _compare(
        station, station_day, meters, transactions,
        thresholds=thresholds, include_gauges=True, as_of=business_date,
    )

    ledger = DAY_LEDGER
    if meters and all(m.shift_number for m in meters):
        ledger = min(m.shift_number for m in meters)
    calculated = stock_level(station.id, business_date)

    return {
        "station": station.to_dict(),
        "business_date": business_date.isoformat(),
        "station_day": station_day.to_dict() if station_day else None,
        "status": derive_status(meters),
        "meters": [m.to_dict() for m in all_meters],
        "meter_total_liters": decimal_to_str(meters_liters),
        "nozzle_deltas": {str(k): decimal_to_str(v) for k, v in sorted(nozzle_deltas(meters).items())},
        "transactions": {
            "count": totals["count"],
            "liters": decimal_to_str(totals["liters"]),
            "amount": decimal_to_str(totals["amount"]),
        },
        "gauges": gauge_info,
        "stock": calculated.to_dict(),
        "discrepancies": [d.to_dict() for d in discrepancies],
        "flagged_count": sum(1 for d in discrepancies if d.flagged),
        "continuity_warnings": check_continuity(station.id, business_date, shift_number=ledger) if station_day else [],
        "shifts": [s.to_dict() for s in sorted(station_day.shifts, key=lambda s: s.shift_number)] if station_day else [],
    }


def reconcile_shift(shift) -> dict:
    """Meter vs transaction and revenue for one shift; gauges are a day-level concern."""
    station_day = shift.station_day
    station = station_day.station
    meters = [m for m in station_day.meter_readings if m.shift_number == shift.shift_number]
    transactions = list_transactions(station.id, shift_id=shift.id)
    meters_liters, totals, discrepancies, _ = _compare(
        station, station_day, meters, transactions,
        thresholds=current_thresholds(), include_gauges=False,
    )
    return {
        "shift_id": shift.id,
        "meter_total_liters": decimal_to_str(meters_liters),
        "transaction_liters": decimal_to_str(totals["liters"]),
        "transaction_amount": decimal_to_str(totals["amount"]),
        "discrepancies": [d.to_dict() for d in discrepancies],
        "flagged_count": sum(1 for d in discrepancies if d.flagged),
    }


def validate_date_range(start, end) -> tuple[date, date]:
    start = require_business_date(start, "start")
    end = require_business_date(end, "end")
    if end < start:
        raise ValidationError("end must not be before start")
    if (end - start) > timedelta(days=MAX_HISTORY_DAYS):
        raise ValidationError(f"range cannot exceed {MAX_HISTORY_DAYS} days")
    return start, end


def station_history(station_id: int, start, end) -> list[dict]:
    """One summary row per recorded station-day in [start, end]."""
    station = get_station(station_id)
    start, end = validate_date_range(start, end)
    days = (
        db.session.query(StationDay)
        .filter(
            StationDay.station_id == station.id,
            StationDay.business_date >= start,
            StationDay.business_date <= end,
        )
        .order_by(StationDay.business_date)
        .all()
    )
    history = []
    for day in days:
        report = reconcile_day(station.id, day.business_date)
        history.append({
            "business_date": report["business_date"],
            "status": report["status"],
            "meter_total_liters": report["meter_total_liters"],
            "transaction_liters": report["transactions"]["liters"],
            "transaction_amount": report["transactions"]["amount"],
            "flagged_count": report["flagged_count"],
            "stock_anomaly": station.is_gas and report["stock"]["is_anomaly"],
        })
    return history


def scan_anomalies(station_id: int, start, end) -> list[dict]:
    """Days in range with any flagged discrepancy, or a negative stock level at a gas station."""
    station = get_station(station_id)
    start, end = validate_date_range(start, end)
    anomalies = []
    for row in station_history(station.id, start, end):
        if not row["flagged_count"] and not row["stock_anomaly"]:
            continue
        report = reconcile_day(station.id, row["business_date"])
        anomalies.append({
            "business_date": row["business_date"],
            "flagged": [d for d in report["discrepancies"] if d["flagged"]],
            "stock": report["stock"] if station.is_gas else None,
            "continuity_warnings": report["continuity_warnings"],
        })
    return anomalies


# =============================================================================
# DAY SETTINGS
# =============================================================================

def update_day_settings(station_id: int, business_date, prices: dict, *, actor, reason: str | None = None) -> StationDay:
    """Set the day's prices; every changed price is journaled as a DAILY_RECORD update."""
    station = get_station(station_id)
    business_date = require_business_date(business_date)
    if not isinstance(prices, dict) or not prices:
        raise ValidationError("No prices supplied")
    unknown = set(prices) - set(PRICE_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown price fields: {', '.join(sorted(unknown))}")

    parsed = {}
    for field, value in prices.items():
        parsed[field] = None if value is None or value == "" else quantize(require_positive(value, field))

    station_day = find_station_day(station.id, business_date)
    decision = require_modifiable(station_day, actor=actor, reason=reason)
    station_day = station_day or get_or_create_station_day(station.id, business_date)

    before = snapshot(station_day, PRICE_FIELDS)
    for field, value in parsed.items():
        setattr(station_day, field, value)
    changes = diff_fields(before, snapshot(station_day, PRICE_FIELDS))

    if changes:
        db.session.flush()
        record_audit(
            action="UPDATE",
            entity_type="DAILY_RECORD",
            entity_id=station_day.id,
            station_id=station.id,
            business_date=business_date,
            actor=actor,
            changes=changes,
            is_post_close=decision.post_close,
            reason=reason,
        )
    db.session.commit()
    return station_day
