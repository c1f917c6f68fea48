from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from ..validation import decimal_to_str


ANOMALY_SEVERITIES = ("WARNING", "CRITICAL")
VARIANCE_STATUSES = ("GREEN", "YELLOW", "RED")


class NozzleAnomaly(db.Model):
    """
    A nozzle whose shift sales strayed from its trailing average.

    Written when the shift closes. CRITICAL rows carry the note the closing
    staff had to give. Stays pending until an admin marks it reviewed.
    """
    __tablename__ = "nozzle_anomalies"
    __table_args__ = (
        db.UniqueConstraint("shift_id", "nozzle_number", name="uq_nozzle_anomalies_shift_nozzle"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shift_id = db.Column(db.Integer, db.ForeignKey("shifts.id"), nullable=False, index=True)
    nozzle_number = db.Column(db.Integer, nullable=False)

    sold_liters = db.Column(db.Numeric(14, 2), nullable=False)
    average_liters = db.Column(db.Numeric(14, 2), nullable=False)
    percent_diff = db.Column(db.Numeric(10, 2), nullable=False)
    severity = db.Column(db.String(16), nullable=False)
    note = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)
    reviewed_by = db.Column(db.String(64), nullable=True)

    shift = db.relationship("Shift", backref=db.backref("nozzle_anomalies", lazy=True))

    @property
    def is_pending(self) -> bool:
        return self.reviewed_at is None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shift_id": self.shift_id,
            "nozzle_number": self.nozzle_number,
            "sold_liters": decimal_to_str(self.sold_liters),
            "average_liters": decimal_to_str(self.average_liters),
            "percent_diff": decimal_to_str(self.percent_diff),
            "severity": self.severity,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
            "reviewed_at": to_utc_z(self.reviewed_at),
            "reviewed_by": self.reviewed_by,
        }


class DailyAnomaly(db.Model):
    """
    Meter vs transaction liters gap of one station-day above the warning level.

    One row per (station, date); rechecking refreshes it and a day whose gap
    has been corrected loses its row.
    """
    __tablename__ = "daily_anomalies"
    __table_args__ = (
        db.UniqueConstraint("station_id", "business_date", name="uq_daily_anomalies_station_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    station_id = db.Column(db.Integer, db.ForeignKey("stations.id"), nullable=False, index=True)
    business_date = db.Column(db.Date, nullable=False)

    meter_liters = db.Column(db.Numeric(14, 2), nullable=False)
    transaction_liters = db.Column(db.Numeric(14, 2), nullable=False)
    # transaction liters - meter liters
    difference = db.Column(db.Numeric(14, 2), nullable=False)
    severity = db.Column(db.String(16), nullable=False)
    note = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False)
    reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)
    reviewed_by = db.Column(db.String(64), nullable=True)

    @property
    def is_pending(self) -> bool:
        return self.reviewed_at is None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "station_id": self.station_id,
            "business_date": self.business_date.isoformat() if self.business_date else None,
            "meter_liters": decimal_to_str(self.meter_liters),
            "transaction_liters": decimal_to_str(self.transaction_liters),
            "difference": decimal_to_str(self.difference),
            "severity": self.severity,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "reviewed_at": to_utc_z(self.reviewed_at),
            "reviewed_by": self.reviewed_by,
        }


class ShiftReconciliation(db.Model):
    """
    Cash-up of one shift: meter value expected vs money received by payment group.

    variance = total_received - total_expected; status bands are GREEN, YELLOW
    and RED on |variance|.
    """
    __tablename__ = "shift_reconciliations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    shift_id = db.Column(db.Integer, db.ForeignKey("shifts.id"), nullable=False, unique=True)

    price_per_liter = db.Column(db.Numeric(10, 2), nullable=True)
    expected_fuel_amount = db.Column(db.Numeric(14, 2), nullable=False)
    cash_received = db.Column(db.Numeric(14, 2), nullable=False)
    credit_received = db.Column(db.Numeric(14, 2), nullable=False)
    transfer_received = db.Column(db.Numeric(14, 2), nullable=False)
    total_received = db.Column(db.Numeric(14, 2), nullable=False)
    variance = db.Column(db.Numeric(14, 2), nullable=False)
    variance_status = db.Column(db.String(8), nullable=False)

    calculated_at = db.Column(db.DateTime(timezone=True), nullable=False)
    calculated_by = db.Column(db.String(64), nullable=True)

    shift = db.relationship("Shift", backref=db.backref("cash_reconciliation", uselist=False, lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shift_id": self.shift_id,
            "price_per_liter": decimal_to_str(self.price_per_liter),
            "expected_fuel_amount": decimal_to_str(self.expected_fuel_amount),
            "cash_received": decimal_to_str(self.cash_received),
            "credit_received": decimal_to_str(self.credit_received),
            "transfer_received": decimal_to_str(self.transfer_received),
            "total_received": decimal_to_str(self.total_received),
            "variance": decimal_to_str(self.variance),
            "variance_status": self.variance_status,
            "calculated_at": to_utc_z(self.calculated_at),
            "calculated_by": self.calculated_by,
        }
