"""
ZIMMR Backend — Time Calculation Unit Tests
============================================

What:  Tests for the pure duration, earnings and validation helpers.

What we test:
    ✅ Minute rounding (half-up) and net duration after breaks
    ✅ Billable amount rounding to cents
    ✅ Duration formatting
    ✅ Entry and break validation (errors vs. warnings)
    ✅ Half-open overlap semantics
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

from zimmr.services.time_tracking import (
    calculate_billable_amount,
    calculate_duration_minutes,
    calculate_net_duration,
    effective_end,
    format_duration,
    periods_overlap,
    validate_break,
    validate_time_entry,
)

T0 = datetime(2024, 3, 4, 8, 0, tzinfo=timezone.utc)


class TestDurations:

    def test_whole_minutes(self):
        assert calculate_duration_minutes(T0, T0 + timedelta(hours=2, minutes=30)) == 150

    def test_rounds_half_up(self):
        assert calculate_duration_minutes(T0, T0 + timedelta(seconds=90)) == 2
        assert calculate_duration_minutes(T0, T0 + timedelta(seconds=89)) == 1

    def test_missing_bound_is_zero(self):
        assert calculate_duration_minutes(T0, None) == 0
        assert calculate_duration_minutes(None, T0) == 0

    def test_naive_datetimes_are_utc(self):
        naive = T0.replace(tzinfo=None)
        assert calculate_duration_minutes(naive, T0 + timedelta(minutes=10)) == 10

    def test_net_duration_deducts_finished_breaks(self):
        breaks = [
            (T0 + timedelta(hours=2), T0 + timedelta(hours=2, minutes=30)),
            (T0 + timedelta(hours=3), None),  # still running
        ]
        assert calculate_net_duration(T0, T0 + timedelta(hours=8), breaks) == 450

    def test_net_duration_never_negative(self):
        breaks = [(T0 - timedelta(hours=1), T0 + timedelta(hours=2))]
        assert calculate_net_duration(T0, T0 + timedelta(hours=1), breaks) == 0


class TestBillableAmount:

    def test_hours_times_rate(self):
        assert calculate_billable_amount(90, Decimal("40.00")) == Decimal("60.00")

    def test_rounds_to_cents(self):
        # 25 min at 55.00/h = 22.9166...
        assert calculate_billable_amount(25, Decimal("55.00")) == Decimal("22.92")

    def test_missing_rate_or_minutes(self):
        assert calculate_billable_amount(60, None) == Decimal("0.00")
        assert calculate_billable_amount(0, Decimal("50")) == Decimal("0.00")
        assert calculate_billable_amount(None, Decimal("50")) == Decimal("0.00")


class TestFormatDuration:

    def test_hours_and_minutes(self):
        assert format_duration(150) == "2h 30m"

    def test_minutes_only(self):
        assert format_duration(45) == "45m"

    def test_full_hours(self):
        assert format_duration(120) == "2h"

    def test_empty(self):
        assert format_duration(None) == "-"
        assert format_duration(0) == "-"
        assert format_duration(-5) == "-"


class TestValidateTimeEntry:

    def test_valid_entry(self):
        result = validate_time_entry(T0, T0 + timedelta(hours=1), now=T0 + timedelta(days=1))
        assert result.is_valid
        assert result.warnings == []

    def test_start_required(self):
        result = validate_time_entry(None, T0)
        assert result.errors == ["Start time is required"]

    def test_end_before_start(self):
        result = validate_time_entry(T0, T0 - timedelta(minutes=1))
        assert "End time must be after start time" in result.errors

    def test_end_equal_start(self):
        assert not validate_time_entry(T0, T0).is_valid

    def test_future_end_is_a_warning(self):
        result = validate_time_entry(T0, T0 + timedelta(hours=1), now=T0)
        assert result.is_valid
        assert "End time is in the future" in result.warnings

    def test_long_entry_is_a_warning(self):
        result = validate_time_entry(T0, T0 + timedelta(hours=25), now=T0 + timedelta(days=2))
        assert result.is_valid
        assert any("longer than 24 hours" in w for w in result.warnings)

    def test_negative_values(self):
        result = validate_time_entry(T0, None, duration_minutes=-1, hourly_rate=Decimal("-5"))
        assert "Duration cannot be negative" in result.errors
        assert "Hourly rate cannot be negative" in result.errors

    def test_open_entry_is_valid(self):
        assert validate_time_entry(T0, None).is_valid


class TestValidateBreak:

    def setup_method(self):
        self.entry_start = T0
        self.entry_end = T0 + timedelta(hours=8)

    def test_valid_break(self):
        result = validate_break(
            T0 + timedelta(hours=4), T0 + timedelta(hours=4, minutes=30),
            self.entry_start, self.entry_end,
        )
        assert result.is_valid

    def test_break_before_entry(self):
        result = validate_break(
            T0 - timedelta(minutes=10), T0 + timedelta(minutes=10),
            self.entry_start, self.entry_end,
        )
        assert "Break must start within the time entry" in result.errors

    def test_break_after_entry_end(self):
        result = validate_break(
            T0 + timedelta(hours=7, minutes=50), T0 + timedelta(hours=8, minutes=10),
            self.entry_start, self.entry_end,
        )
        assert "Break must end within the time entry" in result.errors

    def test_break_end_before_start(self):
        result = validate_break(
            T0 + timedelta(hours=2), T0 + timedelta(hours=1),
            self.entry_start, self.entry_end,
        )
        assert "Break end time must be after break start time" in result.errors

    def test_running_entry_accepts_open_break(self):
        assert validate_break(T0 + timedelta(hours=1), None, T0, None).is_valid


class TestOverlap:

    def test_overlapping(self):
        assert periods_overlap(T0, T0 + timedelta(hours=2), T0 + timedelta(hours=1), T0 + timedelta(hours=3))

    def test_back_to_back_do_not_overlap(self):
        assert not periods_overlap(T0, T0 + timedelta(hours=1), T0 + timedelta(hours=1), T0 + timedelta(hours=2))

    def test_contained(self):
        assert periods_overlap(T0, T0 + timedelta(hours=4), T0 + timedelta(hours=1), T0 + timedelta(hours=2))

    def test_effective_end_uses_duration(self):
        assert effective_end(T0, None, 90) == T0 + timedelta(minutes=90)
        assert effective_end(T0, T0 + timedelta(hours=1), 90) == T0 + timedelta(hours=1)
