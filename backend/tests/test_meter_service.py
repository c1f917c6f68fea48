"""
Meter ledger: saving readings, regression rejection, continuity and audit.
"""

from datetime import date
from decimal import Decimal

import pytest

from fuelrecon.models import AuditLogEntry, MeterReading
from fuelrecon.services import meter_service
from fuelrecon.services.concurrency import insert_or_conflict
from fuelrecon.services.station_service import get_or_create_station_day
from fuelrecon.validation import ConflictError, NotFoundError, ValidationError


DAY = date(2026, 3, 1)
NEXT_DAY = date(2026, 3, 2)


def save(station, actor, reading_type, values, *, business_date=DAY, **kwargs):
    readings = [{"nozzle": n, "value": v} for n, v in values.items()]
    return meter_service.save_meter_readings(station.id, business_date, reading_type, readings, actor=actor, **kwargs)


class TestSaveMeterReadings:

    def test_start_then_end(self, db_session, station, staff):
        rows, warnings = save(station, staff, "start", {1: 1000, 2: 500})
        assert [r.nozzle_number for r in rows] == [1, 2]
        assert warnings == []

        rows, _ = save(station, staff, "end", {1: 1250.5, 2: 500})
        readings = meter_service.get_meter_readings(station.id, DAY)
        assert meter_service.meter_total(readings) == Decimal("250.50")

    def test_end_below_start_is_regression(self, db_session, station, staff):
        save(station, staff, "start", {1: 1000})
        with pytest.raises(ValidationError) as exc:
            save(station, staff, "end", {1: 999.99})
        assert exc.value.code == "METER_REGRESSION"

        row = meter_service.get_meter_readings(station.id, DAY)[0]
        assert row.end_reading is None

    def test_regression_in_one_nozzle_writes_nothing(self, db_session, station, staff):
        save(station, staff, "start", {1: 1000, 2: 2000})
        with pytest.raises(ValidationError):
            save(station, staff, "end", {1: 1100, 2: 1500})
        assert all(r.end_reading is None for r in meter_service.get_meter_readings(station.id, DAY))

    def test_start_above_existing_end_is_regression(self, db_session, station, staff):
        save(station, staff, "start", {1: 1000})
        save(station, staff, "end", {1: 1100})
        with pytest.raises(ValidationError) as exc:
            save(station, staff, "start", {1: 1200})
        assert exc.value.code == "METER_REGRESSION"

    def test_end_without_start_rejected(self, db_session, station, staff):
        with pytest.raises(ValidationError) as exc:
            save(station, staff, "end", {1: 1000})
        assert exc.value.code == "MISSING_START_READING"

    @pytest.mark.parametrize("nozzle", [0, 5])
    def test_nozzle_outside_station(self, db_session, station, staff, nozzle):
        with pytest.raises(ValidationError):
            save(station, staff, "start", {nozzle: 10})

    def test_negative_value_rejected(self, db_session, station, staff):
        with pytest.raises(ValidationError):
            save(station, staff, "start", {1: -1})

    def test_duplicate_nozzle_in_one_call(self, db_session, station, staff):
        readings = [{"nozzle": 1, "value": 10}, {"nozzle": 1, "value": 20}]
        with pytest.raises(ValidationError) as exc:
            meter_service.save_meter_readings(station.id, DAY, "start", readings, actor=staff)
        assert exc.value.code == "DUPLICATE_NOZZLE"

    def test_unknown_station(self, db_session, staff):
        with pytest.raises(NotFoundError):
            meter_service.save_meter_readings(999, DAY, "start", [{"nozzle": 1, "value": 1}], actor=staff)

    def test_shift_meters_need_an_open_shift(self, db_session, shift_station, staff):
        with pytest.raises(NotFoundError):
            save(shift_station, staff, "start", {1: 100}, shift_number=1)

    def test_photo_reference_is_kept(self, db_session, station, staff):
        rows, _ = meter_service.save_meter_readings(
            station.id, DAY, "start", [{"nozzle": 1, "value": 5, "photo": "blob://meters/1.jpg"}], actor=staff,
        )
        assert rows[0].start_photo_ref == "blob://meters/1.jpg"


class TestContinuity:

    def test_mismatch_against_previous_day(self, db_session, station, staff):
        save(station, staff, "start", {1: 1000, 2: 300})
        save(station, staff, "end", {1: 1500, 2: 400})

        _, warnings = save(station, staff, "start", {1: 1490, 2: 400}, business_date=NEXT_DAY)
        assert warnings == ["nozzle 1: previous end 1500.00 ≠ today's start 1490.00"]

    def test_warning_never_blocks_the_save(self, db_session, station, staff):
        save(station, staff, "start", {1: 1000})
        save(station, staff, "end", {1: 1500})
        save(station, staff, "start", {1: 1}, business_date=NEXT_DAY)
        row = meter_service.get_meter_readings(station.id, NEXT_DAY)[0]
        assert row.start_reading == Decimal("1")

    def test_skips_days_without_end_readings(self, db_session, station, staff):
        save(station, staff, "start", {1: 1000})
        save(station, staff, "end", {1: 1500})
        save(station, staff, "start", {1: 1500}, business_date=NEXT_DAY)

        warnings = meter_service.check_continuity(station.id, date(2026, 3, 3))
        assert warnings == []
        _, warnings = save(station, staff, "start", {1: 1600}, business_date=date(2026, 3, 3))
        assert warnings == ["nozzle 1: previous end 1500.00 ≠ today's start 1600.00"]

    def test_no_prior_day_no_warnings(self, db_session, station, staff):
        _, warnings = save(station, staff, "start", {1: 1000})
        assert warnings == []


class TestMeterAudit:

    def test_create_then_update_entries(self, db_session, station, staff):
        save(station, staff, "start", {1: 1000})
        save(station, staff, "end", {1: 1100})

        entries = db_session.query(AuditLogEntry).filter_by(entity_type="METER").order_by(AuditLogEntry.id).all()
        assert [e.action for e in entries] == ["CREATE", "UPDATE"]
        assert entries[0].changes["start_reading"] == {"before": None, "after": "1000.00"}
        assert entries[1].changes == {"end_reading": {"before": None, "after": "1100.00"}}
        assert entries[1].is_post_close is False
        assert entries[1].actor_id == staff.actor_id

    def test_unchanged_value_is_not_journaled(self, db_session, station, staff):
        save(station, staff, "start", {1: 1000})
        save(station, staff, "start", {1: 1000})
        assert db_session.query(AuditLogEntry).count() == 1


class TestConditionalInsert:

    def test_duplicate_row_is_conflict_not_overwrite(self, db_session, station, staff):
        save(station, staff, "start", {1: 1000})
        station_day = get_or_create_station_day(station.id, DAY)

        duplicate = MeterReading(
            station_day_id=station_day.id,
            shift_number=0,
            nozzle_number=1,
            start_reading=Decimal("5"),
        )
        with pytest.raises(ConflictError) as exc:
            insert_or_conflict(duplicate, code="METER_ROW_EXISTS", message="exists")
        assert exc.value.code == "METER_ROW_EXISTS"

        row = meter_service.get_meter_readings(station.id, DAY)[0]
        assert row.start_reading == Decimal("1000")
