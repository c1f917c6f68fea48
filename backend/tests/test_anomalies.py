"""
Sales anomalies (per nozzle and per day) and the shift cash-up.
"""

from datetime import date
from decimal import Decimal

import pytest

from fuelrecon.models import DailyAnomaly, MeterReading, NozzleAnomaly, Shift, ShiftReconciliation
from fuelrecon.services import (
    anomaly_service,
    cash_reconciliation_service,
    meter_service,
    reconciliation_service,
    shift_service,
    transaction_service,
)
from fuelrecon.services.anomaly_service import AnomalyThresholds, classify_daily_difference, classify_nozzle_sales
from fuelrecon.services.cash_reconciliation_service import variance_status
from fuelrecon.validation import ConflictError, PermissionDeniedError, ValidationError


DAY = date(2026, 3, 1)
THRESHOLDS = AnomalyThresholds()


def worked_shift(station, actor, business_date, start, end, notes=None):
    shift, _ = shift_service.open_shift(station.id, business_date, 1, actor=actor)
    meter_service.save_meter_readings(
        station.id, business_date, "start", [{"nozzle": 1, "value": start}], actor=actor, shift_number=1,
    )
    return shift_service.close_shift(shift.id, [{"nozzle": 1, "value": end}], actor=actor, notes=notes)


def two_days_of_history(station, actor):
    """Nozzle 1 sold 100 L on each of the two days before DAY."""
    worked_shift(station, actor, date(2026, 2, 27), 1000, 1100)
    worked_shift(station, actor, date(2026, 2, 28), 1100, 1200)


# =============================================================================
# PURE CLASSIFICATION
# =============================================================================


class TestClassification:

    @pytest.mark.parametrize("sold,average,expected", [
        ("150", "100", None),
        ("151", "100", (Decimal("51.00"), "WARNING")),
        ("40", "100", (Decimal("-60.00"), "WARNING")),
        ("199.99", "100", (Decimal("99.99"), "WARNING")),
        ("200", "100", (Decimal("100.00"), "CRITICAL")),
        ("5", "0", None),
    ])
    def test_nozzle_sales(self, sold, average, expected):
        assert classify_nozzle_sales(Decimal(sold), Decimal(average), THRESHOLDS) == expected

    @pytest.mark.parametrize("difference,expected", [
        ("9.99", None),
        ("-10", "WARNING"),
        ("49.99", "WARNING"),
        ("-50", "CRITICAL"),
    ])
    def test_daily_difference(self, difference, expected):
        assert classify_daily_difference(Decimal(difference), THRESHOLDS) == expected

    @pytest.mark.parametrize("variance,expected", [
        ("0", "GREEN"),
        ("-200", "GREEN"),
        ("200.01", "YELLOW"),
        ("500", "YELLOW"),
        ("-500.01", "RED"),
    ])
    def test_cash_variance_bands(self, variance, expected):
        assert variance_status(Decimal(variance)) == expected

    def test_thresholds_from_config(self):
        thresholds = AnomalyThresholds.from_config({
            "NOZZLE_ANOMALY_WARNING_PERCENT": "30",
            "NOZZLE_ANOMALY_LOOKBACK_DAYS": "14",
            "DAILY_ANOMALY_CRITICAL_LITERS": "25",
        })
        assert thresholds.nozzle_warning_percent == Decimal("30")
        assert thresholds.nozzle_critical_percent == Decimal("100")
        assert thresholds.nozzle_lookback_days == 14
        assert thresholds.daily_critical_liters == Decimal("25")


# =============================================================================
# NOZZLE ANOMALIES
# =============================================================================


class TestNozzleAnomalies:

    def test_first_shift_has_nothing_to_compare(self, db_session, shift_station, staff):
        _, report = worked_shift(shift_station, staff, DAY, 1000, 5000)
        assert report["nozzle_anomalies"] == []
        assert db_session.query(NozzleAnomaly).count() == 0

    def test_average_ignores_open_and_old_shifts(self, db_session, shift_station, staff):
        worked_shift(shift_station, staff, date(2026, 2, 20), 500, 900)
        two_days_of_history(shift_station, staff)
        shift_service.open_shift(shift_station.id, DAY, 1, actor=staff)
        meter_service.save_meter_readings(
            shift_station.id, DAY, "start", [{"nozzle": 1, "value": 1200}], actor=staff, shift_number=1,
        )

        average = anomaly_service.average_sold_liters(shift_station.id, 1, DAY, days=7)
        assert average == Decimal("100.00")

    def test_warning_is_stored_without_blocking(self, db_session, shift_station, staff):
        two_days_of_history(shift_station, staff)
        shift, report = worked_shift(shift_station, staff, DAY, 1200, 1370)

        assert shift.status == "CLOSED"
        assert report["nozzle_anomalies"] == [{
            "nozzle_number": 1,
            "sold_liters": "170.00",
            "average_liters": "100.00",
            "percent_diff": "70.00",
            "severity": "WARNING",
            "message": "nozzle 1: sales 70% above average",
        }]
        stored = db_session.query(NozzleAnomaly).one()
        assert stored.shift_id == shift.id
        assert stored.is_pending

    def test_critical_needs_a_note(self, db_session, shift_station, staff):
        two_days_of_history(shift_station, staff)
        shift, _ = shift_service.open_shift(shift_station.id, DAY, 1, actor=staff)
        meter_service.save_meter_readings(
            shift_station.id, DAY, "start", [{"nozzle": 1, "value": 1200}], actor=staff, shift_number=1,
        )

        with pytest.raises(ValidationError) as exc:
            shift_service.close_shift(shift.id, [{"nozzle": 1, "value": 1450}], actor=staff)
        assert exc.value.code == "ANOMALY_NOTE_REQUIRED"
        assert exc.value.details["anomalies"][0]["severity"] == "CRITICAL"
        assert exc.value.details["anomalies"][0]["percent_diff"] == "150.00"

        assert db_session.get(Shift, shift.id).status == "OPEN"
        row = db_session.query(MeterReading).filter_by(station_day_id=shift.station_day_id, shift_number=1).one()
        assert row.end_reading is None

        closed, report = shift_service.close_shift(
            shift.id, [{"nozzle": 1, "value": 1450}], actor=staff, notes="fleet refuelled twice",
        )
        assert closed.status == "CLOSED"
        stored = db_session.query(NozzleAnomaly).one()
        assert stored.severity == "CRITICAL"
        assert stored.note == "fleet refuelled twice"

    def test_review(self, db_session, shift_station, staff, admin):
        two_days_of_history(shift_station, staff)
        worked_shift(shift_station, staff, DAY, 1200, 1370)
        anomaly = anomaly_service.pending_nozzle_anomalies(shift_station.id)[0]

        with pytest.raises(PermissionDeniedError):
            anomaly_service.mark_nozzle_anomaly_reviewed(anomaly.id, actor=staff)

        reviewed = anomaly_service.mark_nozzle_anomaly_reviewed(anomaly.id, actor=admin)
        assert reviewed.reviewed_by == admin.actor_id
        assert anomaly_service.pending_nozzle_anomalies(shift_station.id) == []

        with pytest.raises(ConflictError) as exc:
            anomaly_service.mark_nozzle_anomaly_reviewed(anomaly.id, actor=admin)
        assert exc.value.code == "ANOMALY_ALREADY_REVIEWED"


# =============================================================================
# DAILY ANOMALIES
# =============================================================================


def day_meters(station, actor, start, end, business_date=DAY):
    meter_service.save_meter_readings(station.id, business_date, "start", [{"nozzle": 1, "value": start}], actor=actor)
    meter_service.save_meter_readings(station.id, business_date, "end", [{"nozzle": 1, "value": end}], actor=actor)


def sell(station, actor, liters, business_date=DAY):
    transaction_service.record_transaction(
        station.id, actor=actor, liters=liters, price_per_liter=30, payment_type="CASH", business_date=business_date,
    )


class TestDailyAnomalies:

    def test_gap_is_stored_then_cleared_when_corrected(self, db_session, station, staff):
        day_meters(station, staff, 1000, 1100)
        sell(station, staff, 85)

        outcome = anomaly_service.record_daily_anomaly(station.id, DAY)
        assert outcome["saved"] is True
        assert outcome["check"]["difference"] == "-15.00"
        assert outcome["check"]["severity"] == "WARNING"
        stored = db_session.query(DailyAnomaly).one()
        assert (stored.meter_liters, stored.transaction_liters) == (Decimal("100"), Decimal("85"))

        sell(station, staff, 10)
        outcome = anomaly_service.record_daily_anomaly(station.id, DAY)
        assert outcome["deleted"] is True
        assert db_session.query(DailyAnomaly).count() == 0

    def test_recheck_updates_the_same_row(self, db_session, station, staff):
        day_meters(station, staff, 1000, 1100)
        sell(station, staff, 80)
        anomaly_service.record_daily_anomaly(station.id, DAY)

        transaction_service.delete_transaction(
            transaction_service.list_transactions(station.id)[0].id, actor=staff,
        )
        anomaly_service.record_daily_anomaly(station.id, DAY)
        stored = db_session.query(DailyAnomaly).one()
        assert stored.severity == "CRITICAL"
        assert stored.difference == Decimal("-100")

    def test_scan_range_and_review(self, db_session, station, staff, admin):
        day_meters(station, staff, 1000, 1100)
        result = anomaly_service.scan_daily_anomalies(station.id, "2026-03-01", "2026-03-03")
        assert result == {"scanned": 3, "found": 1}

        pending = anomaly_service.pending_daily_anomalies(station.id)
        assert [a.business_date for a in pending] == [DAY]

        reviewed = anomaly_service.mark_daily_anomaly_reviewed(pending[0].id, actor=admin, note="bills found")
        assert reviewed.note == "bills found"
        assert anomaly_service.pending_daily_anomalies(station.id) == []

    def test_scan_rejects_reversed_range(self, db_session, station):
        with pytest.raises(ValidationError):
            anomaly_service.scan_daily_anomalies(station.id, "2026-03-05", "2026-03-01")


# =============================================================================
# CASH RECONCILIATION
# =============================================================================


class TestCashReconciliation:

    def _priced_shift(self, station, actor):
        reconciliation_service.update_day_settings(station.id, DAY, {"retail_price": 30}, actor=actor)
        shift, _ = shift_service.open_shift(station.id, DAY, 1, actor=actor)
        meter_service.save_meter_readings(
            station.id, DAY, "start", [{"nozzle": 1, "value": 1000}], actor=actor, shift_number=1,
        )
        for liters, payment_type in ((20, "CASH"), (10, "CREDIT"), (5, "CREDIT_CARD")):
            transaction_service.record_transaction(
                station.id, actor=actor, liters=liters, price_per_liter=30,
                payment_type=payment_type, shift_id=shift.id,
            )
        return shift

    def test_close_stores_the_cash_up(self, db_session, shift_station, staff):
        shift = self._priced_shift(shift_station, staff)
        _, report = shift_service.close_shift(shift.id, [{"nozzle": 1, "value": 1040}], actor=staff)

        cash = report["cash_reconciliation"]
        assert cash["expected_fuel_amount"] == "1200.00"
        assert (cash["cash_received"], cash["credit_received"], cash["transfer_received"]) == ("600.00", "300.00", "150.00")
        assert cash["total_received"] == "1050.00"
        assert cash["variance"] == "-150.00"
        assert cash["variance_status"] == "GREEN"
        assert db_session.query(ShiftReconciliation).filter_by(shift_id=shift.id).count() == 1

    def test_recalculation_after_late_sale(self, db_session, shift_station, staff, admin):
        shift = self._priced_shift(shift_station, staff)
        shift_service.close_shift(shift.id, [{"nozzle": 1, "value": 1040}], actor=staff)
        transaction_service.record_transaction(
            shift_station.id, actor=staff, liters=25, price_per_liter=30, payment_type="CASH", shift_id=shift.id,
        )

        row = cash_reconciliation_service.recalculate_shift_reconciliation(shift, actor=admin)
        assert row.total_received == Decimal("1800")
        assert row.variance == Decimal("600")
        assert row.variance_status == "RED"
        assert row.calculated_by == admin.actor_id
        assert db_session.query(ShiftReconciliation).count() == 1

    def test_without_price_everything_received_is_variance(self, db_session, shift_station, staff):
        _, report = worked_shift(shift_station, staff, DAY, 1000, 1010)
        cash = report["cash_reconciliation"]
        assert cash["price_per_liter"] is None
        assert cash["expected_fuel_amount"] == "0.00"
        assert cash["variance_status"] == "GREEN"


# =============================================================================
# ROUTES
# =============================================================================


class TestAnomalyRoutes:

    def test_close_route_reports_missing_note(self, client, shift_station, staff, staff_headers):
        two_days_of_history(shift_station, staff)
        shift, _ = shift_service.open_shift(shift_station.id, DAY, 1, actor=staff)
        meter_service.save_meter_readings(
            shift_station.id, DAY, "start", [{"nozzle": 1, "value": 1200}], actor=staff, shift_number=1,
        )

        response = client.post(
            f"/api/shifts/{shift.id}/close",
            json={"end_readings": [{"nozzle": 1, "value": 1450}]},
            headers=staff_headers,
        )
        assert response.status_code == 400
        assert response.get_json()["code"] == "ANOMALY_NOTE_REQUIRED"

        response = client.post(
            f"/api/shifts/{shift.id}/close",
            json={"end_readings": [{"nozzle": 1, "value": 1450}], "notes": "fleet day"},
            headers=staff_headers,
        )
        assert response.status_code == 200

        response = client.get(f"/api/shifts/{shift.id}/cash-reconciliation", headers=staff_headers)
        assert response.status_code == 200
        assert response.get_json()["cash_reconciliation"]["shift_id"] == shift.id

    def test_pending_and_review(self, client, shift_station, staff, staff_headers, admin_headers):
        two_days_of_history(shift_station, staff)
        worked_shift(shift_station, staff, DAY, 1200, 1370)

        response = client.get(f"/api/anomalies/nozzle?station_id={shift_station.id}", headers=staff_headers)
        assert response.status_code == 200
        anomaly_id = response.get_json()["anomalies"][0]["id"]

        assert client.post(f"/api/anomalies/nozzle/{anomaly_id}/review", headers=staff_headers).status_code == 403
        response = client.post(f"/api/anomalies/nozzle/{anomaly_id}/review", headers=admin_headers)
        assert response.status_code == 200
        assert response.get_json()["anomaly"]["reviewed_by"] == "admin-1"

    def test_daily_check_route(self, client, station, staff, staff_headers):
        day_meters(station, staff, 1000, 1100)
        response = client.post(
            "/api/anomalies/daily/check",
            json={"station_id": station.id, "business_date": "2026-03-01"},
            headers=staff_headers,
        )
        assert response.status_code == 200
        assert response.get_json()["check"]["severity"] == "CRITICAL"

        response = client.get(f"/api/anomalies/daily?station_id={station.id}", headers=staff_headers)
        assert [a["business_date"] for a in response.get_json()["anomalies"]] == ["2026-03-01"]
