from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from flask import current_app, has_app_context


DEFAULT_STATION_TIMEZONE = "Asia/Bangkok"


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class SystemClock:
    """Wall clock. Every 'now' in the engine goes through a clock object."""

    def now(self) -> datetime:
        return utcnow()


class FixedClock:
    """
    Clock pinned to a given instant; moved forward explicitly.

    Used to exercise the time-relative lock rules without real waits.
    """

    def __init__(self, at: datetime):
        self._at = _to_naive_utc(at)

    def now(self) -> datetime:
        return self._at

    def set(self, at: datetime) -> None:
        self._at = _to_naive_utc(at)

    def advance(self, **kwargs) -> datetime:
        self._at = self._at + timedelta(**kwargs)
        return self._at


_SYSTEM_CLOCK = SystemClock()


def get_clock():
    """Clock installed on the current app (app.extensions["clock"]), else the wall clock."""
    if has_app_context():
        clock = current_app.extensions.get("clock")
        if clock is not None:
            return clock
    return _SYSTEM_CLOCK


def _to_naive_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 datetime string and normalize to UTC-naive datetime.

    - None / "" -> None
    - "YYYY-MM-DDTHH:MM" (naive) is interpreted as UTC
    - "...Z" or "...+/-HH:MM" is converted to UTC and tzinfo is stripped
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    # Accept trailing Z
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    return _to_naive_utc(datetime.fromisoformat(s))


def station_timezone() -> ZoneInfo:
    if has_app_context():
        return ZoneInfo(current_app.config.get("STATION_TIMEZONE", DEFAULT_STATION_TIMEZONE))
    return ZoneInfo(DEFAULT_STATION_TIMEZONE)


def station_date(dt: datetime, tz: Optional[ZoneInfo] = None) -> date:
    """
    Business date of a UTC-naive instant in the station's local time.

    2026-03-01T22:30Z is 2026-03-02 05:30 in Bangkok, so it belongs to the
    2nd, not the 1st.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(tz or station_timezone()).date()


def parse_business_date(value) -> date:
    """Accept a date, a datetime or a 'YYYY-MM-DD' string."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).strip())


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")
