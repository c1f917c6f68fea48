from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from ..validation import decimal_to_str


SHIFT_STATUSES = ("OPEN", "CLOSED", "LOCKED")


class Shift(db.Model):
    """
    Work period within a station-day.

    LIFECYCLE:
    - OPEN: meters and transactions accumulate
    - CLOSED: end meters recorded, total computed
    - LOCKED: stored only for an explicit admin lock

    The 24-hour auto-lock is never written here; it is derived per request
    from closed_at (see lock_service). A shift number is never reopened.
    """
    __tablename__ = "shifts"
    __table_args__ = (
        db.UniqueConstraint("station_day_id", "shift_number", name="uq_shifts_day_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    station_day_id = db.Column(db.Integer, db.ForeignKey("station_days.id"), nullable=False, index=True)
    shift_number = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="OPEN", index=True)
    staff_name = db.Column(db.String(128), nullable=True)
    opened_by = db.Column(db.String(64), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    closed_by = db.Column(db.String(64), nullable=True)
    total_liters_sold = db.Column(db.Numeric(14, 2), nullable=True)

    locked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    locked_by = db.Column(db.String(64), nullable=True)

    notes = db.Column(db.Text, nullable=True)

    station_day = db.relationship("StationDay", backref=db.backref("shifts", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "station_day_id": self.station_day_id,
            "shift_number": self.shift_number,
            "status": self.status,
            "staff_name": self.staff_name,
            "opened_by": self.opened_by,
            "created_at": to_utc_z(self.created_at),
            "closed_at": to_utc_z(self.closed_at),
            "closed_by": self.closed_by,
            "total_liters_sold": decimal_to_str(self.total_liters_sold),
            "locked_at": to_utc_z(self.locked_at),
            "locked_by": self.locked_by,
            "notes": self.notes,
        }
