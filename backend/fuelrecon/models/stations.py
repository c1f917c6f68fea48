from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from ..validation import decimal_to_str


STATION_TYPES = ("FULL", "SIMPLE", "GAS")


class Station(db.Model):
    """
    A fuel station.

    FULL and SIMPLE stations sell liquid fuel from nozzles; GAS stations sell
    LPG and additionally keep tank gauge readings. `max_shifts` only governs
    future shift opens; shifts already stored keep their numbers.
    """
    __tablename__ = "stations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(32), nullable=False, unique=True, index=True)
    name = db.Column(db.String(128), nullable=False)
    station_type = db.Column(db.String(16), nullable=False, default="FULL")

    max_shifts = db.Column(db.Integer, nullable=False, default=1)
    nozzle_count = db.Column(db.Integer, nullable=False, default=4)
    tank_count = db.Column(db.Integer, nullable=False, default=3)
    # NULL -> TANK_CAPACITY_LITERS from config
    tank_capacity_liters = db.Column(db.Numeric(10, 2), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    @property
    def is_gas(self) -> bool:
        return self.station_type == "GAS"

    def __repr__(self) -> str:
        return f"<Station id={self.id} code={self.code!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "station_type": self.station_type,
            "max_shifts": self.max_shifts,
            "nozzle_count": self.nozzle_count,
            "tank_count": self.tank_count,
            "tank_capacity_liters": decimal_to_str(self.tank_capacity_liters),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class StationDay(db.Model):
    """
    Unit of record keyed by (station, business date).

    Holds the day's prices and owns its meter and gauge readings. There is no
    status column: day status is derived from the meter readings on every read.
    """
    __tablename__ = "station_days"
    __table_args__ = (
        db.UniqueConstraint("station_id", "business_date", name="uq_station_days_station_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    station_id = db.Column(db.Integer, db.ForeignKey("stations.id"), nullable=False, index=True)
    business_date = db.Column(db.Date, nullable=False, index=True)

    retail_price = db.Column(db.Numeric(10, 2), nullable=True)
    wholesale_price = db.Column(db.Numeric(10, 2), nullable=True)
    special_price = db.Column(db.Numeric(10, 2), nullable=True)
    gas_price = db.Column(db.Numeric(10, 2), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    station = db.relationship("Station", backref=db.backref("days", lazy=True))

    def __repr__(self) -> str:
        return f"<StationDay station_id={self.station_id} date={self.business_date}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "station_id": self.station_id,
            "business_date": self.business_date.isoformat(),
            "retail_price": decimal_to_str(self.retail_price),
            "wholesale_price": decimal_to_str(self.wholesale_price),
            "special_price": decimal_to_str(self.special_price),
            "gas_price": decimal_to_str(self.gas_price),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
