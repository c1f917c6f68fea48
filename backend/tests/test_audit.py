"""
Audit trail: append-only entries and history queries.
"""

from datetime import date
from decimal import Decimal

import pytest

from fuelrecon.models import AuditLogEntry
from fuelrecon.services import audit_service, meter_service, transaction_service
from fuelrecon.services.audit_service import diff_fields, json_safe


DAY = date(2026, 3, 1)


def test_diff_fields_reports_only_changes():
    before = {"liters": Decimal("10"), "bill_no": "001", "license_plate": None}
    after = {"liters": Decimal("10.00"), "bill_no": "002", "license_plate": "AB-1"}
    assert diff_fields(before, after) == {
        "bill_no": {"before": "001", "after": "002"},
        "license_plate": {"before": None, "after": "AB-1"},
    }


def test_json_safe_renders_quantities_and_dates():
    assert json_safe(Decimal("1.5")) == "1.50"
    assert json_safe(DAY) == "2026-03-01"
    assert json_safe(7) == 7


class TestAppendOnly:

    def _entry(self, station, staff):
        transaction_service.record_transaction(
            station.id, actor=staff, liters=10, price_per_liter=30, payment_type="CASH", business_date=DAY,
        )
        return audit_service.audit_history(station_id=station.id)[0]

    def test_update_is_rejected(self, db_session, station, staff):
        entry = self._entry(station, staff)
        entry.reason = "rewritten"
        with pytest.raises(ValueError):
            db_session.flush()
        db_session.rollback()
        assert db_session.get(AuditLogEntry, entry.id).reason is None

    def test_delete_is_rejected(self, db_session, station, staff):
        entry = self._entry(station, staff)
        db_session.delete(entry)
        with pytest.raises(ValueError):
            db_session.flush()
        db_session.rollback()
        assert db_session.query(AuditLogEntry).count() == 1


class TestHistory:

    def test_filters(self, db_session, station, staff, clock):
        meter_service.save_meter_readings(station.id, DAY, "start", [{"nozzle": 1, "value": 100}], actor=staff)
        clock.advance(minutes=5)
        txn, _ = transaction_service.record_transaction(
            station.id, actor=staff, liters=10, price_per_liter=30, payment_type="CASH", business_date=DAY,
        )
        clock.advance(minutes=5)
        transaction_service.update_transaction(txn.id, {"liters": 12}, actor=staff)

        newest_first = audit_service.audit_history(station_id=station.id)
        assert [e.action for e in newest_first] == ["UPDATE", "CREATE", "CREATE"]
        assert [e.entity_type for e in newest_first] == ["TRANSACTION", "TRANSACTION", "METER"]

        only_txn = audit_service.audit_history(station_id=station.id, entity_type="TRANSACTION", entity_id=txn.id)
        assert len(only_txn) == 2

        assert audit_service.audit_history(station_id=station.id, business_date=date(2026, 3, 2)) == []
        assert audit_service.audit_history(station_id=station.id, post_close_only=True) == []
        assert len(audit_service.audit_history(station_id=station.id, limit=1)) == 1

    def test_actor_is_recorded(self, db_session, station, admin):
        transaction_service.record_transaction(
            station.id, actor=admin, liters=1, price_per_liter=30, payment_type="CASH", business_date=DAY,
        )
        entry = audit_service.audit_history(station_id=station.id)[0]
        assert (entry.actor_id, entry.actor_name, entry.actor_role) == ("admin-1", "Admin", "ADMIN")
        assert entry.to_dict()["changes"]["payment_type"] == {"before": None, "after": "CASH"}
