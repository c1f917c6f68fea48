# Overview: Tank gauge ledger for gas stations: fill percentages and their volume estimates.

from __future__ import annotations

from decimal import Decimal

from flask import current_app, has_app_context

from ..extensions import db
from ..models import GaugeReading
from ..validation import (
    ValidationError,
    clean_optional_str,
    decimal_to_str,
    require_business_date,
    require_int_in_range,
    require_percentage,
    to_decimal,
)
from .station_service import find_station_day, get_or_create_station_day, get_station

ZERO = Decimal("0")
DEFAULT_TANK_CAPACITY = Decimal("98")
DEFAULT_LOW_GAUGE_PERCENTAGE = Decimal("20")


def _config_decimal(key: str, default: Decimal) -> Decimal:
    if not has_app_context():
        return default
    return to_decimal(current_app.config.get(key, default), key)


def tank_capacity(station=None) -> Decimal:
    """Liters held by one tank at 100%; per-station override, else configuration."""
    if station is not None and station.tank_capacity_liters is not None:
        return Decimal(station.tank_capacity_liters)
    return _config_decimal("TANK_CAPACITY_LITERS", DEFAULT_TANK_CAPACITY)


def percentage_to_liters(percentage, capacity) -> Decimal:
    return Decimal(percentage) / Decimal(100) * Decimal(capacity)


def gauge_estimate(gauge_readings, capacity) -> Decimal:
    """Liters drawn from the tanks, counting only tanks with both a start and an end."""
    total = ZERO
    for g in gauge_readings or []:
        if g.start_percentage is None or g.end_percentage is None:
            continue
        total += percentage_to_liters(Decimal(g.start_percentage) - Decimal(g.end_percentage), capacity)
    return total


def gauge_stock(gauge_readings, capacity) -> Decimal:
    """Liters currently in the tanks by the latest reading of each tank."""
    total = ZERO
    for g in gauge_readings or []:
        latest = g.end_percentage if g.end_percentage is not None else g.start_percentage
        if latest is None:
            continue
        total += percentage_to_liters(latest, capacity)
    return total


def has_gauge_data(gauge_readings) -> bool:
    return any(g.start_percentage is not None or g.end_percentage is not None for g in gauge_readings or [])


def get_gauge_readings(station_id: int, business_date) -> list[GaugeReading]:
    station_day = find_station_day(station_id, require_business_date(business_date))
    if station_day is None:
        return []
    return sorted(station_day.gauge_readings, key=lambda g: g.tank_number)


def save_gauge_readings(station_id: int, business_date, reading_type: str, readings: list, *, actor):
    """
    Save start or end tank percentages.

    Returns (rows, warnings); readings under LOW_GAUGE_PERCENTAGE are reported
    as warnings, never rejected.
    """
    station = get_station(station_id)
    if not station.is_gas:
        raise ValidationError("Gauge readings are only kept for gas stations", code="NOT_GAS_STATION")
    business_date = require_business_date(business_date)
    if reading_type not in ("start", "end"):
        raise ValidationError("reading_type must be 'start' or 'end'")
    if not isinstance(readings, list) or not readings:
        raise ValidationError("readings must be a non-empty list")

    entries = []
    seen = set()
    for item in readings:
        if not isinstance(item, dict):
            raise ValidationError("each reading must be an object")
        tank = require_int_in_range(item.get("tank"), "tank", 1, station.tank_count)
        if tank in seen:
            raise ValidationError(f"tank {tank} appears more than once", code="DUPLICATE_TANK")
        seen.add(tank)
        entries.append((tank, require_percentage(item.get("percentage"), f"tank {tank} percentage"), clean_optional_str(item.get("photo"), 512)))

    low = _config_decimal("LOW_GAUGE_PERCENTAGE", DEFAULT_LOW_GAUGE_PERCENTAGE)
    station_day = get_or_create_station_day(station.id, business_date)
    existing = {g.tank_number: g for g in station_day.gauge_readings}

    saved = []
    warnings = []
    for tank, percentage, photo in entries:
        row = existing.get(tank)
        if row is None:
            row = GaugeReading(station_day=station_day, tank_number=tank)
            db.session.add(row)
        setattr(row, f"{reading_type}_percentage", percentage)
        if photo:
            setattr(row, f"{reading_type}_photo_ref", photo)
        if percentage < low:
            warnings.append(f"tank {tank}: gauge at {decimal_to_str(percentage)}% is below {decimal_to_str(low)}%")
        saved.append(row)

    db.session.commit()
    return saved, warnings
