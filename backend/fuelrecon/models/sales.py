from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from ..time_utils import to_utc_z
from ..validation import decimal_to_str


PAYMENT_TYPES = ("CASH", "CREDIT", "TRANSFER", "BOX_TRUCK", "OIL_TRUCK_SUPACHAI", "CREDIT_CARD")

# Reporting groups used for cash-up
PAYMENT_GROUPS = {
    "CASH": "cash",
    "CREDIT": "credit",
    "BOX_TRUCK": "credit",
    "OIL_TRUCK_SUPACHAI": "credit",
    "TRANSFER": "transfer",
    "CREDIT_CARD": "transfer",
}


class Transaction(db.Model):
    """
    One recorded fuel sale.

    amount is always liters * price_per_liter rounded to cents; it is computed
    at write time and never trusted from the caller. Deletes are soft: the row
    stays, deleted_at is set, and every aggregate skips it.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.Index("ix_transactions_station_date", "station_id", "business_date"),
        db.Index("ix_transactions_station_bill", "station_id", "bill_book_no", "bill_no"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    station_id = db.Column(db.Integer, db.ForeignKey("stations.id"), nullable=False, index=True)
    business_date = db.Column(db.Date, nullable=False)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    shift_id = db.Column(db.Integer, db.ForeignKey("shifts.id"), nullable=True, index=True)

    license_plate = db.Column(db.String(32), nullable=True)
    owner_id = db.Column(db.String(64), nullable=True)
    payment_type = db.Column(db.String(32), nullable=False)
    nozzle_number = db.Column(db.Integer, nullable=True)
    product_type = db.Column(db.String(32), nullable=True)

    liters = db.Column(db.Numeric(12, 2), nullable=False)
    price_per_liter = db.Column(db.Numeric(10, 2), nullable=False)
    amount = db.Column(db.Numeric(14, 2), nullable=False)

    bill_book_no = db.Column(db.String(32), nullable=True)
    bill_no = db.Column(db.String(32), nullable=True)
    transfer_proof_ref = db.Column(db.String(512), nullable=True)

    recorded_by = db.Column(db.String(64), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    deleted_by = db.Column(db.String(64), nullable=True)

    station = db.relationship("Station", backref=db.backref("transactions", lazy=True))
    shift = db.relationship("Shift", backref=db.backref("transactions", lazy=True))

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "station_id": self.station_id,
            "business_date": self.business_date.isoformat() if self.business_date else None,
            "occurred_at": to_utc_z(self.occurred_at),
            "shift_id": self.shift_id,
            "license_plate": self.license_plate,
            "owner_id": self.owner_id,
            "payment_type": self.payment_type,
            "nozzle_number": self.nozzle_number,
            "product_type": self.product_type,
            "liters": decimal_to_str(self.liters),
            "price_per_liter": decimal_to_str(self.price_per_liter),
            "amount": decimal_to_str(self.amount),
            "bill_book_no": self.bill_book_no,
            "bill_no": self.bill_no,
            "transfer_proof_ref": self.transfer_proof_ref,
            "recorded_by": self.recorded_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "deleted_at": to_utc_z(self.deleted_at),
            "deleted_by": self.deleted_by,
        }


class GasSupply(db.Model):
    """
    Incoming delivery, credited to the station's stock.

    IMMUTABLE: corrections are new rows pointing at the row they correct
    (correction_of_id) and may carry negative liters.
    """
    __tablename__ = "gas_supplies"
    __table_args__ = (
        db.Index("ix_gas_supplies_station_date", "station_id", "business_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    station_id = db.Column(db.Integer, db.ForeignKey("stations.id"), nullable=False, index=True)
    business_date = db.Column(db.Date, nullable=False)

    liters_received = db.Column(db.Numeric(12, 2), nullable=False)
    kilograms_received = db.Column(db.Numeric(12, 2), nullable=True)
    supplier = db.Column(db.String(128), nullable=True)
    invoice_no = db.Column(db.String(64), nullable=True)
    correction_of_id = db.Column(db.Integer, db.ForeignKey("gas_supplies.id"), nullable=True)

    recorded_by = db.Column(db.String(64), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    station = db.relationship("Station", backref=db.backref("supplies", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "station_id": self.station_id,
            "business_date": self.business_date.isoformat() if self.business_date else None,
            "liters_received": decimal_to_str(self.liters_received),
            "kilograms_received": decimal_to_str(self.kilograms_received),
            "supplier": self.supplier,
            "invoice_no": self.invoice_no,
            "correction_of_id": self.correction_of_id,
            "recorded_by": self.recorded_by,
            "created_at": to_utc_z(self.created_at),
        }


@event.listens_for(GasSupply, "before_update")
def _reject_supply_update(mapper, connection, target):
    raise ValueError("Gas supply rows are immutable; record a correction instead")


@event.listens_for(GasSupply, "before_delete")
def _reject_supply_delete(mapper, connection, target):
    raise ValueError("Gas supply rows are immutable; record a correction instead")
