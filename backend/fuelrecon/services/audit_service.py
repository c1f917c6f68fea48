# Overview: Append-only field-level audit trail for meters, transactions and day settings.

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from ..extensions import db
from ..models import AUDIT_ACTIONS, AUDIT_ENTITY_TYPES, AuditLogEntry
from ..time_utils import get_clock, to_utc_z
from ..validation import decimal_to_str

"""
Audit invariants

- One entry per CREATE / UPDATE / DELETE, written in the same DB transaction
  as the change it records (the caller commits).
- changes only lists fields whose value actually changed.
- Entries are never updated or deleted (enforced on the model).
"""


def json_safe(value: Any) -> Any:
    if isinstance(value, Decimal):
        return decimal_to_str(value)
    if isinstance(value, datetime):
        return to_utc_z(value)
    if isinstance(value, date):
        return value.isoformat()
    return value


def diff_fields(before: dict, after: dict) -> dict:
    """{field: {"before": x, "after": y}} for every field that differs."""
    changes = {}
    for field in sorted(set(before) | set(after)):
        old = json_safe(before.get(field))
        new = json_safe(after.get(field))
        if old != new:
            changes[field] = {"before": old, "after": new}
    return changes


def snapshot(obj, fields) -> dict:
    return {f: getattr(obj, f) for f in fields}


def record_audit(
    *,
    action: str,
    entity_type: str,
    entity_id: int,
    station_id: int,
    business_date: date,
    actor,
    changes: dict,
    is_post_close: bool = False,
    reason: Optional[str] = None,
) -> AuditLogEntry:
    if action not in AUDIT_ACTIONS:
        raise ValueError(f"Unknown audit action: {action}")
    if entity_type not in AUDIT_ENTITY_TYPES:
        raise ValueError(f"Unknown audit entity type: {entity_type}")
    entry = AuditLogEntry(
        occurred_at=get_clock().now(),
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        station_id=station_id,
        business_date=business_date,
        actor_id=actor.actor_id,
        actor_name=actor.name,
        actor_role=actor.role,
        changes=changes,
        is_post_close=is_post_close,
        reason=(reason or "").strip() or None,
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def audit_history(
    *,
    station_id: int | None = None,
    business_date: date | None = None,
    entity_type: str | None = None,
    entity_id: int | None = None,
    post_close_only: bool = False,
    limit: int = 200,
) -> list[AuditLogEntry]:
    query = db.session.query(AuditLogEntry)
    if station_id is not None:
        query = query.filter(AuditLogEntry.station_id == station_id)
    if business_date is not None:
        query = query.filter(AuditLogEntry.business_date == business_date)
    if entity_type:
        query = query.filter(AuditLogEntry.entity_type == entity_type)
    if entity_id is not None:
        query = query.filter(AuditLogEntry.entity_id == entity_id)
    if post_close_only:
        query = query.filter(AuditLogEntry.is_post_close.is_(True))
    return query.order_by(AuditLogEntry.occurred_at.desc(), AuditLogEntry.id.desc()).limit(limit).all()
