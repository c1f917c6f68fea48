# Overview: Lock derivation and mutation authorization for station-day records.

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from flask import current_app, has_app_context

from ..extensions import db
from ..models import Shift
from ..time_utils import get_clock
from ..validation import DayLockedError, ReasonRequiredError
from .day_state_service import STATUS_CLOSED, day_ledger_status, day_status

"""
Lock rules

- A CLOSED shift becomes read-only for staff once closed_at is more than
  LOCK_AFTER_HOURS in the past. This is derived on every request from the
  injected clock and never written back.
- A LOCKED shift (explicit admin lock) is read-only for staff immediately.
- Admins are never blocked, but acting past a lock is an override and must
  carry a reason.
- By default only shifts lock a day; a day closed through the day-level
  ledger alone stays editable and is merely marked post-close. With
  LOCK_CLOSED_DAYS set, such a day is read-only for staff at once.
"""

ROLE_ADMIN = "ADMIN"
ROLE_STAFF = "STAFF"
ROLES = (ROLE_ADMIN, ROLE_STAFF)

DEFAULT_LOCK_AFTER_HOURS = 24


@dataclass(frozen=True)
class Actor:
    """Identity asserted by the gateway for the current request."""
    actor_id: str
    name: Optional[str] = None
    role: str = ROLE_STAFF
    station_id: Optional[int] = None

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


@dataclass(frozen=True)
class LockDecision:
    permitted: bool
    post_close: bool
    override: bool

    def to_dict(self) -> dict:
        return {
            "permitted": self.permitted,
            "post_close": self.post_close,
            "override": self.override,
        }


def lock_after_hours() -> int:
    if has_app_context():
        return int(current_app.config.get("LOCK_AFTER_HOURS", DEFAULT_LOCK_AFTER_HOURS))
    return DEFAULT_LOCK_AFTER_HOURS


def lock_closed_days() -> bool:
    if has_app_context():
        return bool(current_app.config.get("LOCK_CLOSED_DAYS", False))
    return False


def is_past_lock_window(shift, now: datetime, *, hours: int | None = None) -> bool:
    """True when the shift is locked for everyone but admins, regardless of role."""
    if shift.status == "LOCKED":
        return True
    if shift.status != "CLOSED" or shift.closed_at is None:
        return False
    window = timedelta(hours=lock_after_hours() if hours is None else hours)
    return now - shift.closed_at > window


def is_locked(shift, now: datetime, role: str, *, hours: int | None = None) -> bool:
    if role == ROLE_ADMIN:
        return False
    return is_past_lock_window(shift, now, hours=hours)


def can_modify(
    station_day,
    shifts,
    actor_role: str,
    now: datetime,
    *,
    hours: int | None = None,
    closed_day_locks: bool = False,
) -> LockDecision:
    """
    Pure authorization decision for a mutation on a station-day.

    post_close: the day has a closed/locked shift or its meters say closed.
    override: permitted only because the actor is an admin.
    closed_day_locks: a day closed through its day-level meters counts as
    past the lock.
    """
    shifts = list(shifts or [])
    past_window = any(is_past_lock_window(s, now, hours=hours) for s in shifts)
    if closed_day_locks and day_ledger_status(station_day) == STATUS_CLOSED:
        past_window = True
    post_close = any(s.status in ("CLOSED", "LOCKED") for s in shifts) or day_status(station_day) == STATUS_CLOSED

    if past_window and actor_role != ROLE_ADMIN:
        return LockDecision(permitted=False, post_close=post_close, override=False)
    return LockDecision(permitted=True, post_close=post_close, override=past_window)


def shifts_for_day(station_day) -> list[Shift]:
    if station_day is None or station_day.id is None:
        return []
    return db.session.query(Shift).filter_by(station_day_id=station_day.id).all()


def evaluate_lock(station_day, *, actor: Actor, now: datetime | None = None) -> LockDecision:
    """Load the day's shifts and decide against the injected clock."""
    now = now or get_clock().now()
    return can_modify(station_day, shifts_for_day(station_day), actor.role, now, closed_day_locks=lock_closed_days())


def require_modifiable(station_day, *, actor: Actor, reason: str | None = None) -> LockDecision:
    """
    Gate for every mutation.

    Raises DayLockedError for non-admins past a lock and ReasonRequiredError
    for an admin override without a reason.
    """
    decision = evaluate_lock(station_day, actor=actor)
    if not decision.permitted:
        raise DayLockedError("Records for this day are locked; contact an administrator")
    if decision.override and not (reason or "").strip():
        raise ReasonRequiredError("A reason is required to modify locked records")
    if decision.override and has_app_context():
        current_app.logger.info(
            "Lock override by %s on station %s %s: %s",
            actor.actor_id, station_day.station_id, station_day.business_date, reason,
        )
    return decision
