# Overview: Stock ledger: gas supply intake, running stock level and monthly balance.

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from flask import current_app, has_app_context
from sqlalchemy import func

from ..extensions import db
from ..models import GasSupply, StationDay, Transaction
from ..time_utils import get_clock
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
from .gauge_service import gauge_stock, has_gauge_data, tank_capacity
from .station_service import get_station

"""
Stock invariants

- Supplies are credits, live (not soft-deleted) transaction liters are debits.
- The level is derived on read, never stored.
- A negative level is reported as an anomaly, never clamped to zero.
"""

DEFAULT_KG_TO_LITERS = Decimal("1.85")


@dataclass(frozen=True)
class StockLevel:
    station_id: int
    as_of: date
    supplied_liters: Decimal
    sold_liters: Decimal
    level: Decimal

    @property
    def is_anomaly(self) -> bool:
        return self.level < 0

    def to_dict(self) -> dict:
        return {
            "station_id": self.station_id,
            "as_of": self.as_of.isoformat(),
            "supplied_liters": decimal_to_str(self.supplied_liters),
            "sold_liters": decimal_to_str(self.sold_liters),
            "level": decimal_to_str(self.level),
            "is_anomaly": self.is_anomaly,
        }


def kg_to_liters_factor() -> Decimal:
    if not has_app_context():
        return DEFAULT_KG_TO_LITERS
    return to_decimal(current_app.config.get("KG_TO_LITERS", DEFAULT_KG_TO_LITERS), "KG_TO_LITERS")


def _sum(value) -> Decimal:
    return quantize(Decimal(str(value if value is not None else 0)))


# =============================================================================
# SUPPLIES
# =============================================================================

def record_supply(
    station_id: int,
    business_date,
    *,
    actor,
    liters=None,
    kilograms=None,
    supplier: str | None = None,
    invoice_no: str | None = None,
    correction_of_id: int | None = None,
) -> GasSupply:
    """
    Record a delivery (or a correction of an earlier delivery).

    When only kilograms are given, liters = kilograms * KG_TO_LITERS.
    Corrections are new rows and may carry negative liters.
    """
    station = get_station(station_id)
    business_date = require_business_date(business_date)

    kg = None
    if kilograms is not None and kilograms != "":
        kg = require_positive(kilograms, "kilograms")

    if correction_of_id is not None:
        original = db.session.query(GasSupply).filter_by(id=correction_of_id).first()
        if original is None or original.station_id != station.id:
            raise NotFoundError("Supply to correct not found")
        amount = to_decimal(liters, "liters")
        if amount == 0:
            raise ValidationError("correction liters cannot be zero")
    elif liters is None or liters == "":
        if kg is None:
            raise ValidationError("liters or kilograms is required")
        amount = kg * kg_to_liters_factor()
    else:
        amount = require_positive(liters, "liters")

    supply = GasSupply(
        station_id=station.id,
        business_date=business_date,
        liters_received=quantize(amount),
        kilograms_received=kg,
        supplier=clean_optional_str(supplier, 128),
        invoice_no=clean_optional_str(invoice_no, 64),
        correction_of_id=correction_of_id,
        recorded_by=actor.actor_id,
        created_at=get_clock().now(),
    )
    db.session.add(supply)
    db.session.commit()
    return supply


def list_supplies(station_id: int, *, start_date: date | None = None, end_date: date | None = None) -> list[GasSupply]:
    query = db.session.query(GasSupply).filter(GasSupply.station_id == station_id)
    if start_date is not None:
        query = query.filter(GasSupply.business_date >= start_date)
    if end_date is not None:
        query = query.filter(GasSupply.business_date <= end_date)
    return query.order_by(GasSupply.business_date, GasSupply.id).all()


def supplied_liters(station_id: int, *, start_date: date | None = None, end_date: date | None = None) -> Decimal:
    query = db.session.query(func.sum(GasSupply.liters_received)).filter(GasSupply.station_id == station_id)
    if start_date is not None:
        query = query.filter(GasSupply.business_date >= start_date)
    if end_date is not None:
        query = query.filter(GasSupply.business_date <= end_date)
    return _sum(query.scalar())


def sold_liters(station_id: int, *, start_date: date | None = None, end_date: date | None = None) -> Decimal:
    query = db.session.query(func.sum(Transaction.liters)).filter(
        Transaction.station_id == station_id,
        Transaction.deleted_at.is_(None),
    )
    if start_date is not None:
        query = query.filter(Transaction.business_date >= start_date)
    if end_date is not None:
        query = query.filter(Transaction.business_date <= end_date)
    return _sum(query.scalar())


# =============================================================================
# STOCK LEVEL
# =============================================================================

def stock_level(station_id: int, as_of_date) -> StockLevel:
    """Cumulative supplies minus cumulative sales, inclusive of as_of_date."""
    as_of = require_business_date(as_of_date, "as_of")
    supplied = supplied_liters(station_id, end_date=as_of)
    sold = sold_liters(station_id, end_date=as_of)
    return StockLevel(
        station_id=station_id,
        as_of=as_of,
        supplied_liters=supplied,
        sold_liters=sold,
        level=supplied - sold,
    )


def monthly_balance(station_id: int, year: int, month: int) -> dict:
    """
    Month-level stock balance for a gas station.

    opening: gauge stock at the start of the first gauged day of the month
    expected_closing: opening + supplies - sales
    variance: actual gauge closing - expected closing
    """
    station = get_station(station_id)
    month = require_int_in_range(month, "month", 1, 12)
    year = require_int_in_range(year, "year", 2000, 2100)
    first = date(year, month, 1)
    last = date(year, month, calendar.monthrange(year, month)[1])
    capacity = tank_capacity(station)

    days = (
        db.session.query(StationDay)
        .filter(
            StationDay.station_id == station.id,
            StationDay.business_date >= first,
            StationDay.business_date <= last,
        )
        .order_by(StationDay.business_date)
        .all()
    )
    gauged = [d for d in days if has_gauge_data(d.gauge_readings)]

    opening = None
    actual_closing = None
    if gauged:
        opening_rows = [g for g in gauged[0].gauge_readings if g.start_percentage is not None]
        opening = quantize(sum(
            (Decimal(g.start_percentage) / Decimal(100) * capacity for g in opening_rows),
            Decimal("0"),
        ))
        actual_closing = quantize(gauge_stock(gauged[-1].gauge_readings, capacity))

    supplies = supplied_liters(station.id, start_date=first, end_date=last)
    sales = sold_liters(station.id, start_date=first, end_date=last)
    expected = None if opening is None else opening + supplies - sales
    variance = None
    if expected is not None and actual_closing is not None:
        variance = actual_closing - expected

    return {
        "station_id": station.id,
        "year": year,
        "month": month,
        "opening_gauge_liters": decimal_to_str(opening),
        "supplied_liters": decimal_to_str(supplies),
        "sold_liters": decimal_to_str(sales),
        "expected_closing_liters": decimal_to_str(expected),
        "actual_closing_liters": decimal_to_str(actual_closing),
        "variance_liters": decimal_to_str(variance),
        "gauged_days": len(gauged),
    }
