"""
Tests for the pricing engine (rental_kernel.domain.pricing).

Validates:
- parse_date / validate_date_range: strict YYYY-MM-DD, end >= start
- calculate_date_difference: inclusive end date, clamped month stepping
- calculate_rental_cost / breakdown: day, week and month units
"""

from datetime import date, datetime

import pytest

from rental_kernel.domain.dtos import DurationUnit, PriceSnapshot
from rental_kernel.domain.pricing import (
    add_months,
    calculate_date_difference,
    calculate_rental_cost,
    calculate_rental_cost_breakdown,
    days_in_month,
    parse_date,
    validate_date_range,
)
from rental_kernel.exceptions import DateRangeError, InvalidDateError, InvalidInputError

DAY = PriceSnapshot(DurationUnit.DAY, 1000, 4500, 13500)
WEEK = PriceSnapshot(DurationUnit.WEEK, 1000, 4500, 13500)
MONTH = PriceSnapshot(DurationUnit.MONTH, 1000, 4500, 13500)


# =============================================================================
# Date parsing
# =============================================================================


class TestParseDate:

    def test_iso_string(self):
        assert parse_date("2024-02-29") == date(2024, 2, 29)

    def test_date_passthrough(self):
        d = date(2024, 1, 15)
        assert parse_date(d) is d

    def test_datetime_truncated(self):
        assert parse_date(datetime(2024, 1, 15, 23, 59)) == date(2024, 1, 15)

    @pytest.mark.parametrize("value", ["2024/01/15", "15-01-2024", "2024-1-5", "", "tomorrow"])
    def test_wrong_format_rejected(self, value):
        with pytest.raises(InvalidDateError):
            parse_date(value)

    def test_impossible_date_rejected(self):
        with pytest.raises(InvalidDateError) as exc_info:
            parse_date("2023-02-29")
        assert exc_info.value.code == "INVALID_DATE"

    def test_invalid_date_is_invalid_input(self):
        with pytest.raises(InvalidInputError):
            parse_date(20240115)

    def test_end_before_start_rejected(self):
        with pytest.raises(DateRangeError):
            validate_date_range("2024-01-20", "2024-01-19")

    def test_same_day_range_allowed(self):
        assert validate_date_range("2024-01-20", "2024-01-20") == (date(2024, 1, 20), date(2024, 1, 20))


# =============================================================================
# Calendar helpers
# =============================================================================


class TestCalendar:

    @pytest.mark.parametrize(
        "year, month, expected",
        [(2024, 2, 29), (2023, 2, 28), (1900, 2, 28), (2000, 2, 29), (2024, 4, 30), (2024, 12, 31)],
    )
    def test_days_in_month(self, year, month, expected):
        assert days_in_month(year, month) == expected

    def test_add_months_clamps_day(self):
        assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
        assert add_months(date(2023, 1, 31), 1) == date(2023, 2, 28)

    def test_add_months_crosses_year(self):
        assert add_months(date(2023, 11, 15), 3) == date(2024, 2, 15)


# =============================================================================
# Date difference
# =============================================================================


class TestDateDifference:

    @pytest.mark.parametrize(
        "start, end, months, days",
        [
            ("2024-01-15", "2024-01-15", 0, 1),
            ("2024-01-15", "2024-01-20", 0, 6),
            ("2024-01-25", "2024-02-05", 0, 12),
            ("2024-01-15", "2024-03-14", 2, 0),
            ("2024-01-15", "2024-04-20", 3, 6),
            ("2023-11-15", "2024-02-10", 2, 27),
            ("2023-12-15", "2024-03-10", 2, 25),
        ],
    )
    def test_known_intervals(self, start, end, months, days):
        diff = calculate_date_difference(start, end)
        assert (diff.months, diff.days) == (months, days)

    def test_end_of_month_start_never_negative(self):
        """Jan 31 to Mar 1 steps through a clamped Feb 29."""
        diff = calculate_date_difference("2024-01-31", "2024-03-01")
        assert diff.months == 1
        assert diff.days == 2

    def test_month_end_start_counts_clamped_month(self):
        """Jan 31 to Feb 29 is one clamped month plus the closing day."""
        diff = calculate_date_difference("2024-01-31", "2024-02-29")
        assert (diff.months, diff.days) == (1, 1)
        assert calculate_rental_cost("2024-01-31", "2024-02-29", DAY) == 14500


# =============================================================================
# Cost
# =============================================================================


class TestDayUnit:

    @pytest.mark.parametrize(
        "start, end, expected",
        [
            ("2024-01-15", "2024-01-15", 1000),
            ("2024-01-15", "2024-01-20", 6000),
            ("2024-01-15", "2024-01-21", 4500),
            ("2024-01-15", "2024-01-25", 8500),
            ("2023-12-15", "2024-03-10", 44500),
            ("2023-12-15", "2024-03-20", 46500),
        ],
    )
    def test_cost(self, start, end, expected):
        assert calculate_rental_cost(start, end, DAY) == expected

    def test_breakdown_itemizes_months_weeks_days(self):
        breakdown = calculate_rental_cost_breakdown("2023-12-15", "2024-03-10", DAY)
        assert (breakdown.months, breakdown.weeks, breakdown.days) == (2, 3, 4)
        assert breakdown.months_cost == 27000
        assert breakdown.weeks_cost == 13500
        assert breakdown.days_cost == 4000
        assert breakdown.total_cost == 44500


class TestWeekUnit:

    @pytest.mark.parametrize(
        "start, end, expected",
        [
            ("2024-01-15", "2024-01-28", 9000),
            ("2024-01-15", "2024-01-24", 9000),
            ("2024-01-15", "2024-01-15", 4500),
            ("2024-01-15", "2024-03-24", 36000),
        ],
    )
    def test_partial_weeks_round_up(self, start, end, expected):
        assert calculate_rental_cost(start, end, WEEK) == expected


class TestMonthUnit:

    @pytest.mark.parametrize(
        "start, end, expected",
        [
            ("2024-01-15", "2024-01-15", 13500),
            ("2024-01-15", "2024-03-14", 27000),
            ("2024-01-15", "2024-03-19", 40500),
            ("2024-01-15", "2024-03-20", 40500),
            ("2023-12-15", "2024-03-20", 54000),
        ],
    )
    def test_partial_months_round_up(self, start, end, expected):
        assert calculate_rental_cost(start, end, MONTH) == expected

    def test_minimum_one_month(self):
        breakdown = calculate_rental_cost_breakdown("2024-02-01", "2024-02-03", MONTH)
        assert breakdown.months == 1
        assert breakdown.weeks == 0
        assert breakdown.days == 0


class TestSnapshot:

    def test_unknown_unit_treated_as_day(self):
        snapshot = PriceSnapshot(DurationUnit.coerce("fortnight"), 1000, 4500, 13500)
        assert calculate_rental_cost("2024-01-15", "2024-01-25", snapshot) == 8500

    def test_negative_price_rejected(self):
        with pytest.raises(ValueError):
            PriceSnapshot(DurationUnit.DAY, -1, 0, 0)

    def test_free_tool_costs_nothing(self):
        snapshot = PriceSnapshot(DurationUnit.DAY, 0, 0, 0)
        assert calculate_rental_cost("2024-01-01", "2024-06-30", snapshot) == 0
