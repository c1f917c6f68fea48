# Overview: Derives a station-day's recording status from its meter readings.

from __future__ import annotations

from decimal import Decimal


STATUS_NOT_STARTED = "not_started"
STATUS_RECORDING = "recording"
STATUS_CLOSED = "closed"


def derive_status(meters) -> str:
    """
    Status of a day (or shift) from its meter readings.

    Order matters: a day with no positive start reading is not started even
    if stray end values exist. Recomputed on every read, never stored.
    """
    meters = list(meters or [])
    if not any((m.start_reading or Decimal("0")) > 0 for m in meters):
        return STATUS_NOT_STARTED
    if any(m.end_reading is not None and m.end_reading > 0 for m in meters):
        return STATUS_CLOSED
    return STATUS_RECORDING


def select_summary_meters(meters) -> list:
    """
    Readings that represent the whole day.

    Day-level rows (shift_number 0) win when present; otherwise the per-shift
    rows are used so single-ledger and shift-based stations read the same way.
    """
    meters = list(meters or [])
    day_level = [m for m in meters if not m.shift_number]
    return day_level if day_level else [m for m in meters if m.shift_number]


def day_status(station_day) -> str:
    if station_day is None:
        return STATUS_NOT_STARTED
    return derive_status(select_summary_meters(station_day.meter_readings))


def day_ledger_status(station_day) -> str:
    """Status from the day-level rows only; shift meters are ignored."""
    if station_day is None:
        return STATUS_NOT_STARTED
    return derive_status(m for m in station_day.meter_readings if not m.shift_number)
