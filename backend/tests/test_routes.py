"""
HTTP adapter and CLI: identity headers, station scope, status codes for the
engine's typed errors.
"""

from datetime import date

from fuelrecon.services import meter_service, shift_service, transaction_service
from fuelrecon.services.lock_service import Actor


DAY = date(2026, 3, 1)


def sale_body(station, **overrides):
    body = {
        "station_id": station.id,
        "business_date": "2026-03-01",
        "liters": 12.5,
        "price_per_liter": 31.34,
        "payment_type": "CASH",
    }
    body.update(overrides)
    return body


class TestIdentity:

    def test_missing_headers_is_401(self, client, station):
        response = client.get("/api/stations")
        assert response.status_code == 401

    def test_unknown_role_is_401(self, client, station):
        response = client.get("/api/stations", headers={"X-Actor-Id": "x", "X-Actor-Role": "OWNER"})
        assert response.status_code == 401

    def test_bad_station_header_is_400(self, client, station):
        headers = {"X-Actor-Id": "x", "X-Actor-Role": "STAFF", "X-Station-Id": "abc"}
        assert client.get("/api/stations", headers=headers).status_code == 400

    def test_staff_cannot_reach_another_station(self, client, station, shift_station, headers_for):
        headers = headers_for(Actor(actor_id="staff-9", role="STAFF", station_id=station.id))
        response = client.get(f"/api/stations/{shift_station.id}/days/2026-03-01", headers=headers)
        assert response.status_code == 403

        response = client.post("/api/transactions", json=sale_body(shift_station), headers=headers)
        assert response.status_code == 403

    def test_staff_station_list_is_scoped(self, client, station, shift_station, headers_for):
        headers = headers_for(Actor(actor_id="staff-9", role="STAFF", station_id=station.id))
        stations = client.get("/api/stations", headers=headers).get_json()["stations"]
        assert [s["id"] for s in stations] == [station.id]

    def test_station_creation_is_admin_only(self, client, db_session, staff_headers, admin_headers):
        body = {"code": "ST-09", "name": "New", "station_type": "GAS"}
        assert client.post("/api/stations", json=body, headers=staff_headers).status_code == 403

        response = client.post("/api/stations", json=body, headers=admin_headers)
        assert response.status_code == 201
        assert response.get_json()["station"]["station_type"] == "GAS"

        response = client.post("/api/stations", json=body, headers=admin_headers)
        assert response.status_code == 409
        assert response.get_json()["code"] == "STATION_EXISTS"


class TestHealth:

    def test_health(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        data = response.get_json()
        assert data["status"] == "healthy"
        assert data["now"] == "2026-03-01T06:00:00Z"


class TestTransactionRoutes:

    def test_record_returns_201(self, client, station, staff_headers):
        response = client.post("/api/transactions", json=sale_body(station, amount=391.75), headers=staff_headers)
        assert response.status_code == 201
        data = response.get_json()
        assert data["transaction"]["amount"] == "391.75"
        assert data["transaction"]["recorded_by"] == "staff-1"
        assert data["warnings"] == []

    def test_amount_mismatch_is_400(self, client, station, staff_headers):
        response = client.post("/api/transactions", json=sale_body(station, amount=400), headers=staff_headers)
        assert response.status_code == 400
        body = response.get_json()
        assert body["category"] == "VALIDATION"
        assert body["code"] == "AMOUNT_MISMATCH"

    def test_duplicate_bill_is_a_warning(self, client, station, staff_headers):
        body = sale_body(station, bill_book_no="7", bill_no="0345")
        client.post("/api/transactions", json=body, headers=staff_headers)
        response = client.post("/api/transactions", json=body, headers=staff_headers)
        assert response.status_code == 201
        assert len(response.get_json()["warnings"]) == 1

        check = client.get(
            f"/api/transactions/bill-check?station_id={station.id}&book_no=7&bill_no=0345",
            headers=staff_headers,
        )
        assert len(check.get_json()["duplicates"]) == 2

    def test_summary(self, client, station, staff_headers):
        client.post("/api/transactions", json=sale_body(station, payment_type="CREDIT"), headers=staff_headers)
        response = client.get(f"/api/transactions/summary?station_id={station.id}&business_date=2026-03-01", headers=staff_headers)
        assert response.status_code == 200
        assert response.get_json()["by_payment_group"]["credit"]["amount"] == "391.75"

    def test_patch_and_delete(self, client, station, staff_headers):
        txn_id = client.post("/api/transactions", json=sale_body(station), headers=staff_headers).get_json()["transaction"]["id"]

        response = client.patch(f"/api/transactions/{txn_id}", json={"changes": {"liters": 10}}, headers=staff_headers)
        assert response.status_code == 200
        assert response.get_json()["transaction"]["amount"] == "313.40"

        response = client.delete(f"/api/transactions/{txn_id}", json={"reason": "void"}, headers=staff_headers)
        assert response.status_code == 200
        assert response.get_json()["transaction"]["deleted_by"] == "staff-1"

        listed = client.get(f"/api/transactions?station_id={station.id}", headers=staff_headers).get_json()
        assert listed["transactions"] == []
        listed = client.get(f"/api/transactions?station_id={station.id}&include_deleted=true", headers=staff_headers).get_json()
        assert [t["id"] for t in listed["transactions"]] == [txn_id]

    def test_locked_day_is_423_and_override_needs_reason(self, client, shift_station, staff, staff_headers, admin_headers, clock):
        shift, _ = shift_service.open_shift(shift_station.id, DAY, 1, actor=staff)
        meter_service.save_meter_readings(
            shift_station.id, DAY, "start", [{"nozzle": 1, "value": 100}], actor=staff, shift_number=1,
        )
        txn, _ = transaction_service.record_transaction(
            shift_station.id, actor=staff, liters=10, price_per_liter=30, payment_type="CASH", business_date=DAY,
        )
        shift_service.close_shift(shift.id, [{"nozzle": 1, "value": 110}], actor=staff)
        clock.advance(hours=25)

        response = client.patch(f"/api/transactions/{txn.id}", json={"changes": {"liters": 11}}, headers=staff_headers)
        assert response.status_code == 423
        assert response.get_json()["code"] == "DAY_LOCKED"

        response = client.patch(f"/api/transactions/{txn.id}", json={"changes": {"liters": 11}}, headers=admin_headers)
        assert response.status_code == 422
        assert response.get_json()["category"] == "REASON_REQUIRED"

        response = client.patch(
            f"/api/transactions/{txn.id}",
            json={"changes": {"liters": 11}, "reason": "late correction"},
            headers=admin_headers,
        )
        assert response.status_code == 200

        audit = client.get(
            f"/api/audit?station_id={shift_station.id}&post_close_only=true&entity_type=transaction",
            headers=admin_headers,
        ).get_json()["entries"]
        assert [(e["action"], e["reason"]) for e in audit] == [("UPDATE", "late correction")]

    def test_unknown_transaction_is_404(self, client, station, staff_headers):
        response = client.patch("/api/transactions/999", json={"changes": {"liters": 1}}, headers=staff_headers)
        assert response.status_code == 404


class TestDayRoutes:

    def test_meters_then_summary(self, client, station, staff_headers):
        url = f"/api/stations/{station.id}/days/2026-03-01"
        response = client.put(
            f"{url}/meters",
            json={"reading_type": "start", "readings": [{"nozzle": 1, "value": 1000}]},
            headers=staff_headers,
        )
        assert response.status_code == 200

        response = client.put(
            f"{url}/meters",
            json={"reading_type": "end", "readings": [{"nozzle": 1, "value": 900}]},
            headers=staff_headers,
        )
        assert response.status_code == 400
        assert response.get_json()["code"] == "METER_REGRESSION"

        client.put(f"{url}/meters", json={"reading_type": "end", "readings": [{"nozzle": 1, "value": 1100}]}, headers=staff_headers)
        report = client.get(url, headers=staff_headers).get_json()
        assert report["status"] == "closed"
        assert report["meter_total_liters"] == "100.00"
        assert report["discrepancies"][0]["flagged"] is True

    def test_prices_and_gauges(self, client, gas_station, staff_headers):
        url = f"/api/stations/{gas_station.id}/days/2026-03-01"
        response = client.put(f"{url}/prices", json={"prices": {"gas_price": "19.50"}}, headers=staff_headers)
        assert response.status_code == 200
        assert response.get_json()["station_day"]["gas_price"] == "19.50"

        response = client.put(
            f"{url}/gauges",
            json={"reading_type": "start", "readings": [{"tank": 1, "percentage": 10}]},
            headers=staff_headers,
        )
        assert response.status_code == 200
        assert len(response.get_json()["warnings"]) == 1

    def test_supplies_and_stock(self, client, gas_station, staff_headers):
        base = f"/api/stations/{gas_station.id}"
        response = client.post(f"{base}/supplies", json={"business_date": "2026-03-01", "kilograms": 100}, headers=staff_headers)
        assert response.status_code == 201
        assert response.get_json()["supply"]["liters_received"] == "185.00"

        stock = client.get(f"{base}/stock?as_of=2026-03-01", headers=staff_headers).get_json()
        assert stock["level"] == "185.00"
        assert stock["is_anomaly"] is False

        balance = client.get(f"{base}/monthly-balance?year=2026&month=3", headers=staff_headers).get_json()
        assert balance["supplied_liters"] == "185.00"


class TestShiftRoutes:

    def test_open_close_lock(self, client, shift_station, staff_headers, admin_headers):
        response = client.post(
            "/api/shifts",
            json={"station_id": shift_station.id, "business_date": "2026-03-01", "shift_number": 1},
            headers=staff_headers,
        )
        assert response.status_code == 201
        shift_id = response.get_json()["shift"]["id"]

        response = client.post(
            "/api/shifts",
            json={"station_id": shift_station.id, "business_date": "2026-03-01", "shift_number": 1},
            headers=staff_headers,
        )
        assert response.status_code == 409
        assert response.get_json()["code"] == "SHIFT_ALREADY_OPEN"

        client.put(
            f"/api/stations/{shift_station.id}/days/2026-03-01/meters",
            json={"reading_type": "start", "shift_number": 1, "readings": [{"nozzle": 1, "value": 500}]},
            headers=staff_headers,
        )
        response = client.post(
            f"/api/shifts/{shift_id}/close",
            json={"end_readings": [{"nozzle": 1, "value": 540}]},
            headers=staff_headers,
        )
        assert response.status_code == 200
        data = response.get_json()
        assert data["shift"]["status"] == "CLOSED"
        assert data["reconciliation"]["meter_total_liters"] == "40.00"

        assert client.post(f"/api/shifts/{shift_id}/lock", headers=staff_headers).status_code == 403
        response = client.post(f"/api/shifts/{shift_id}/lock", headers=admin_headers)
        assert response.status_code == 200
        assert response.get_json()["shift"]["status"] == "LOCKED"

    def test_overdue_is_admin_only(self, client, shift_station, staff_headers, admin_headers):
        assert client.get("/api/shifts/overdue", headers=staff_headers).status_code == 403
        response = client.get("/api/shifts/overdue", headers=admin_headers)
        assert response.status_code == 200
        assert response.get_json()["shifts"] == []


class TestCli:

    def test_stations_create_and_list(self, app, db_session):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["stations", "create", "--code", "CLI-1", "--name", "Cli Station", "--type", "GAS"])
        assert result.exit_code == 0
        assert "Created station CLI-1" in result.output

        result = runner.invoke(args=["stations", "create", "--code", "CLI-1", "--name", "Again"])
        assert result.exit_code != 0

        result = runner.invoke(args=["stations", "list"])
        assert "CLI-1" in result.output

    def test_recon_scan(self, app, station, staff):
        meter_service.save_meter_readings(station.id, DAY, "start", [{"nozzle": 1, "value": 1000}], actor=staff)
        meter_service.save_meter_readings(station.id, DAY, "end", [{"nozzle": 1, "value": 1500}], actor=staff)

        runner = app.test_cli_runner()
        result = runner.invoke(args=["recon", "scan", "--station-id", str(station.id), "--start", "2026-03-01", "--end", "2026-03-31"])
        assert result.exit_code == 0
        assert "2026-03-01:" in result.output
        assert "meter_vs_transaction" in result.output

    def test_shifts_overdue(self, app, shift_station, staff, clock):
        shift, _ = shift_service.open_shift(shift_station.id, DAY, 1, actor=staff)
        meter_service.save_meter_readings(
            shift_station.id, DAY, "start", [{"nozzle": 1, "value": 100}], actor=staff, shift_number=1,
        )
        shift_service.close_shift(shift.id, [{"nozzle": 1, "value": 120}], actor=staff)

        runner = app.test_cli_runner()
        assert "No overdue shifts." in runner.invoke(args=["shifts", "overdue"]).output

        clock.advance(hours=30)
        result = runner.invoke(args=["shifts", "overdue"])
        assert f"shift {shift.id:>5}" in result.output

    def test_recon_daily_scan_and_pending(self, app, station, staff):
        runner = app.test_cli_runner()
        assert "No pending anomalies." in runner.invoke(args=["recon", "pending"]).output

        meter_service.save_meter_readings(station.id, DAY, "start", [{"nozzle": 1, "value": 1000}], actor=staff)
        meter_service.save_meter_readings(station.id, DAY, "end", [{"nozzle": 1, "value": 1100}], actor=staff)

        result = runner.invoke(args=[
            "recon", "daily-scan", "--station-id", str(station.id), "--start", "2026-03-01", "--end", "2026-03-03",
        ])
        assert result.exit_code == 0
        assert "Scanned 3 day(s), 1 anomalous." in result.output

        result = runner.invoke(args=["recon", "pending", "--station-id", str(station.id)])
        assert "date=2026-03-01" in result.output
        assert "CRITICAL" in result.output

    def test_recon_daily_scan_rejects_reversed_range(self, app, station):
        result = app.test_cli_runner().invoke(args=[
            "recon", "daily-scan", "--station-id", str(station.id), "--start", "2026-03-05", "--end", "2026-03-01",
        ])
        assert result.exit_code != 0
