from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from ..validation import decimal_to_str


# shift_number used for the day-level meter ledger
DAY_LEDGER = 0


class MeterReading(db.Model):
    """
    Start/end reading of one nozzle.

    shift_number 0 is the day-level ledger; 1..3 are the meters of that shift.
    The unique constraint makes the first save of a row a conditional insert.
    """
    __tablename__ = "meter_readings"
    __table_args__ = (
        db.UniqueConstraint(
            "station_day_id", "shift_number", "nozzle_number",
            name="uq_meter_readings_day_shift_nozzle",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    station_day_id = db.Column(db.Integer, db.ForeignKey("station_days.id"), nullable=False, index=True)
    shift_number = db.Column(db.Integer, nullable=False, default=DAY_LEDGER)
    nozzle_number = db.Column(db.Integer, nullable=False)

    start_reading = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    end_reading = db.Column(db.Numeric(14, 2), nullable=True)

    # Opaque blob-store references
    start_photo_ref = db.Column(db.String(512), nullable=True)
    end_photo_ref = db.Column(db.String(512), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    station_day = db.relationship("StationDay", backref=db.backref("meter_readings", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "station_day_id": self.station_day_id,
            "shift_number": self.shift_number,
            "nozzle_number": self.nozzle_number,
            "start_reading": decimal_to_str(self.start_reading),
            "end_reading": decimal_to_str(self.end_reading),
            "start_photo_ref": self.start_photo_ref,
            "end_photo_ref": self.end_photo_ref,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class GaugeReading(db.Model):
    """Tank fill percentage at the start and end of a gas station's day."""
    __tablename__ = "gauge_readings"
    __table_args__ = (
        db.UniqueConstraint("station_day_id", "tank_number", name="uq_gauge_readings_day_tank"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    station_day_id = db.Column(db.Integer, db.ForeignKey("station_days.id"), nullable=False, index=True)
    tank_number = db.Column(db.Integer, nullable=False)

    start_percentage = db.Column(db.Numeric(5, 2), nullable=True)
    end_percentage = db.Column(db.Numeric(5, 2), nullable=True)
    start_photo_ref = db.Column(db.String(512), nullable=True)
    end_photo_ref = db.Column(db.String(512), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    station_day = db.relationship("StationDay", backref=db.backref("gauge_readings", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "station_day_id": self.station_day_id,
            "tank_number": self.tank_number,
            "start_percentage": decimal_to_str(self.start_percentage),
            "end_percentage": decimal_to_str(self.end_percentage),
            "start_photo_ref": self.start_photo_ref,
            "end_photo_ref": self.end_photo_ref,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
