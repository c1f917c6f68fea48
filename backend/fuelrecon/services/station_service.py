# Overview: Station registry and station-day get-or-create.

from __future__ import annotations

from datetime import date

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Station, StationDay, STATION_TYPES
from ..validation import (
    ConflictError,
    NotFoundError,
    ValidationError,
    clean_optional_str,
    require_int_in_range,
    require_positive,
)


def create_station(
    *,
    code: str,
    name: str,
    station_type: str = "FULL",
    max_shifts: int = 1,
    nozzle_count: int = 4,
    tank_count: int = 3,
    tank_capacity_liters=None,
) -> Station:
    code = clean_optional_str(code, 32)
    name = clean_optional_str(name, 128)
    if not code or not name:
        raise ValidationError("code and name are required")

    station_type = (station_type or "").upper()
    if station_type not in STATION_TYPES:
        raise ValidationError(f"station_type must be one of {', '.join(STATION_TYPES)}")

    max_shifts = require_int_in_range(max_shifts, "max_shifts", 1, 3)
    nozzle_count = require_int_in_range(nozzle_count, "nozzle_count", 1, 4)
    tank_count = require_int_in_range(tank_count, "tank_count", 1, 10)
    capacity = None
    if tank_capacity_liters is not None:
        capacity = require_positive(tank_capacity_liters, "tank_capacity_liters")

    if db.session.query(Station).filter_by(code=code).first():
        raise ConflictError(f"Station '{code}' already exists", code="STATION_EXISTS")

    station = Station(
        code=code,
        name=name,
        station_type=station_type,
        max_shifts=max_shifts,
        nozzle_count=nozzle_count,
        tank_count=tank_count,
        tank_capacity_liters=capacity,
        is_active=True,
    )
    db.session.add(station)
    db.session.commit()
    return station


def update_station_config(station_id: int, *, max_shifts: int | None = None) -> Station:
    """
    Change per-station configuration.

    Lowering max_shifts never touches stored shifts; it only bounds future opens.
    """
    station = get_station(station_id)
    if max_shifts is not None:
        station.max_shifts = require_int_in_range(max_shifts, "max_shifts", 1, 3)
    db.session.commit()
    return station


def list_stations(*, include_inactive: bool = False) -> list[Station]:
    query = db.session.query(Station)
    if not include_inactive:
        query = query.filter_by(is_active=True)
    return query.order_by(Station.code).all()


def get_station(station_id: int) -> Station:
    station = db.session.query(Station).filter_by(id=station_id).first()
    if not station:
        raise NotFoundError("Station not found")
    return station


def find_station_day(station_id: int, business_date: date) -> StationDay | None:
    return db.session.query(StationDay).filter_by(
        station_id=station_id,
        business_date=business_date,
    ).first()


def get_or_create_station_day(station_id: int, business_date: date) -> StationDay:
    """
    Station-days are created on the first write for a date.

    Two writers racing on the same date both end up with the same row:
    the loser of the unique-constraint race re-reads what the winner stored.
    """
    existing = find_station_day(station_id, business_date)
    if existing:
        return existing

    station_day = StationDay(station_id=station_id, business_date=business_date)
    db.session.add(station_day)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        existing = find_station_day(station_id, business_date)
        if existing is None:
            raise
        return existing
    return station_day
