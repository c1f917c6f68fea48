# Overview: Shift cash-up: meter value expected vs money received per payment group, banded GREEN/YELLOW/RED.

from __future__ import annotations

from decimal import Decimal

from flask import current_app, has_app_context

from ..extensions import db
from ..models import ShiftReconciliation
from ..time_utils import get_clock
from ..validation import NotFoundError, quantize, to_decimal
from .meter_service import meter_total
from .reconciliation_service import selling_price
from .transaction_service import aggregate, list_transactions

DEFAULT_GREEN_LIMIT = Decimal("200")
DEFAULT_YELLOW_LIMIT = Decimal("500")


def variance_limits() -> tuple[Decimal, Decimal]:
    if has_app_context():
        config = current_app.config
        return (
            to_decimal(config.get("CASH_VARIANCE_GREEN", DEFAULT_GREEN_LIMIT), "CASH_VARIANCE_GREEN"),
            to_decimal(config.get("CASH_VARIANCE_YELLOW", DEFAULT_YELLOW_LIMIT), "CASH_VARIANCE_YELLOW"),
        )
    return DEFAULT_GREEN_LIMIT, DEFAULT_YELLOW_LIMIT


def variance_status(variance, *, green=DEFAULT_GREEN_LIMIT, yellow=DEFAULT_YELLOW_LIMIT) -> str:
    """GREEN up to `green`, YELLOW up to `yellow`, RED beyond; both bounds inclusive."""
    gap = abs(Decimal(variance))
    if gap <= Decimal(green):
        return "GREEN"
    if gap <= Decimal(yellow):
        return "YELLOW"
    return "RED"


def calculate_for_shift(shift) -> dict:
    """
    Expected fuel value of the shift's meters at the day's selling price
    against the live sales tagged to the shift.

    Without a price the expected value is zero, so the variance is the full
    amount received.
    """
    station_day = shift.station_day
    station = station_day.station
    meters = [m for m in station_day.meter_readings if m.shift_number == shift.shift_number]
    price = selling_price(station, station_day)
    expected = quantize(meter_total(meters) * price) if price is not None else Decimal("0.00")

    groups = aggregate(list_transactions(station.id, shift_id=shift.id))["by_payment_group"]
    cash = quantize(groups["cash"]["amount"])
    credit = quantize(groups["credit"]["amount"])
    transfer = quantize(groups["transfer"]["amount"])
    received = cash + credit + transfer
    variance = received - expected

    green, yellow = variance_limits()
    return {
        "price_per_liter": price,
        "expected_fuel_amount": expected,
        "cash_received": cash,
        "credit_received": credit,
        "transfer_received": transfer,
        "total_received": received,
        "variance": variance,
        "variance_status": variance_status(variance, green=green, yellow=yellow),
    }


def save_shift_reconciliation(shift, *, actor=None) -> ShiftReconciliation:
    """Upsert the shift's cash-up row. Does not commit."""
    result = calculate_for_shift(shift)
    row = db.session.query(ShiftReconciliation).filter_by(shift_id=shift.id).first()
    if row is None:
        row = ShiftReconciliation(shift_id=shift.id)
        db.session.add(row)
    for field, value in result.items():
        setattr(row, field, value)
    row.calculated_at = get_clock().now()
    row.calculated_by = actor.actor_id if actor is not None else None
    return row


def get_shift_reconciliation(shift_id: int) -> ShiftReconciliation:
    row = db.session.query(ShiftReconciliation).filter_by(shift_id=shift_id).first()
    if row is None:
        raise NotFoundError("Shift has no cash reconciliation")
    return row


def recalculate_shift_reconciliation(shift, *, actor) -> ShiftReconciliation:
    """Refresh after late edits to the shift's sales or prices."""
    row = save_shift_reconciliation(shift, actor=actor)
    db.session.commit()
    if row.variance_status == "RED":
        current_app.logger.warning(
            "Shift %s cash variance %s (%s)", shift.id, row.variance, row.variance_status,
        )
    return row
