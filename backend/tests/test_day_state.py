"""
Day status derivation and dispensed-volume arithmetic.

These are pure functions over reading objects, so plain namespaces stand in
for model rows.
"""

from decimal import Decimal
from types import SimpleNamespace

import pytest

from fuelrecon.services.day_state_service import derive_status, select_summary_meters
from fuelrecon.services.meter_service import continuity_warnings, meter_total, nozzle_deltas


def reading(start, end=None, nozzle=1, shift_number=0):
    return SimpleNamespace(
        nozzle_number=nozzle,
        shift_number=shift_number,
        start_reading=None if start is None else Decimal(str(start)),
        end_reading=None if end is None else Decimal(str(end)),
    )


# =============================================================================
# derive_status
# =============================================================================


class TestDeriveStatus:

    def test_no_readings_is_not_started(self):
        assert derive_status([]) == "not_started"

    def test_zero_starts_are_not_started(self):
        assert derive_status([reading(0), reading(0, nozzle=2)]) == "not_started"

    def test_positive_start_without_end_is_recording(self):
        assert derive_status([reading(1000), reading(0, nozzle=2)]) == "recording"

    def test_any_positive_end_is_closed(self):
        meters = [reading(1000, 1200), reading(500, nozzle=2)]
        assert derive_status(meters) == "closed"

    def test_not_started_wins_over_stray_end_values(self):
        # Rule order: the start check comes first
        assert derive_status([reading(0, 50)]) == "not_started"

    def test_zero_end_does_not_close(self):
        assert derive_status([reading(1000, 0)]) == "recording"

    def test_pure_and_repeatable(self):
        meters = [reading(1000, 1100), reading(200, nozzle=2)]
        snapshot = [(m.start_reading, m.end_reading) for m in meters]
        assert derive_status(meters) == derive_status(meters) == "closed"
        assert [(m.start_reading, m.end_reading) for m in meters] == snapshot


class TestSummaryMeters:

    def test_day_level_rows_win(self):
        day = reading(100, 150, shift_number=0)
        shift = reading(100, 120, shift_number=1)
        assert select_summary_meters([day, shift]) == [day]

    def test_falls_back_to_shift_rows(self):
        s1 = reading(100, 120, shift_number=1)
        s2 = reading(120, 150, shift_number=2)
        assert select_summary_meters([s1, s2]) == [s1, s2]


# =============================================================================
# meter_total
# =============================================================================


class TestMeterTotal:

    def test_sums_deltas(self):
        meters = [reading(1000, 1200.5, nozzle=1), reading(50, 100, nozzle=2)]
        assert meter_total(meters) == Decimal("250.5")

    def test_ignores_rows_without_end(self):
        assert meter_total([reading(1000, 1100), reading(500, nozzle=2)]) == Decimal("100")

    def test_negative_delta_floors_at_zero(self):
        # A historical regression on nozzle 2 must not cancel nozzle 1
        meters = [reading(1000, 1100, nozzle=1), reading(500, 400, nozzle=2)]
        assert meter_total(meters) == Decimal("100")

    @pytest.mark.parametrize("extra_end", ["1100", "1100.01", "1500", "99999"])
    def test_raising_an_end_never_lowers_the_total(self, extra_end):
        base = [reading(1000, 1100), reading(200, 250, nozzle=2)]
        raised = [reading(1000, extra_end), reading(200, 250, nozzle=2)]
        assert meter_total(raised) >= meter_total(base)

    def test_nozzle_deltas_sum_across_shifts(self):
        meters = [
            reading(100, 150, nozzle=1, shift_number=1),
            reading(150, 180, nozzle=1, shift_number=2),
            reading(10, 15, nozzle=2, shift_number=1),
        ]
        assert nozzle_deltas(meters) == {1: Decimal("80"), 2: Decimal("5")}


class TestContinuityWarnings:

    def test_mismatch_produces_warning(self):
        warnings = continuity_warnings({1: Decimal("1500")}, {1: Decimal("1490")})
        assert warnings == ["nozzle 1: previous end 1500.00 ≠ today's start 1490.00"]

    def test_equal_values_are_silent(self):
        assert continuity_warnings({1: Decimal("1500")}, {1: Decimal("1500.00")}) == []

    def test_zero_or_missing_values_are_silent(self):
        assert continuity_warnings({1: Decimal("0"), 3: Decimal("10")}, {1: Decimal("5"), 2: Decimal("7"), 3: Decimal("0")}) == []
