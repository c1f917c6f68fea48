from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from ..time_utils import to_utc_z


AUDIT_ACTIONS = ("CREATE", "UPDATE", "DELETE")
AUDIT_ENTITY_TYPES = ("TRANSACTION", "METER", "DAILY_RECORD")


class AuditLogEntry(db.Model):
    """
    Immutable field-level change log.

    changes holds {field: {"before": x, "after": y}} with JSON-safe values.
    is_post_close records the lock derivation at the moment of the mutation.
    """
    __tablename__ = "audit_log"
    __table_args__ = (
        db.Index("ix_audit_log_station_date", "station_id", "business_date"),
        db.Index("ix_audit_log_entity", "entity_type", "entity_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    action = db.Column(db.String(16), nullable=False)
    entity_type = db.Column(db.String(32), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False)

    station_id = db.Column(db.Integer, db.ForeignKey("stations.id"), nullable=False)
    business_date = db.Column(db.Date, nullable=False)

    actor_id = db.Column(db.String(64), nullable=False)
    actor_name = db.Column(db.String(128), nullable=True)
    actor_role = db.Column(db.String(16), nullable=False)

    changes = db.Column(db.JSON, nullable=False, default=dict)
    is_post_close = db.Column(db.Boolean, nullable=False, default=False)
    reason = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "occurred_at": to_utc_z(self.occurred_at),
            "action": self.action,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "station_id": self.station_id,
            "business_date": self.business_date.isoformat() if self.business_date else None,
            "actor_id": self.actor_id,
            "actor_name": self.actor_name,
            "actor_role": self.actor_role,
            "changes": self.changes,
            "is_post_close": self.is_post_close,
            "reason": self.reason,
        }


@event.listens_for(AuditLogEntry, "before_update")
def _reject_audit_update(mapper, connection, target):
    raise ValueError("Audit log entries are append-only")


@event.listens_for(AuditLogEntry, "before_delete")
def _reject_audit_delete(mapper, connection, target):
    raise ValueError("Audit log entries are append-only")
