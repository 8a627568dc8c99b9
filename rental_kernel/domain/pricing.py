"""
rental_kernel.domain.pricing -- Calendar arithmetic and tiered rental cost.

Responsibility:
    Decompose a rental's date range into whole calendar months plus
    remainder days, then price it from a PriceSnapshot using the snapshot's
    duration unit (day / week / month).

Architecture position:
    Kernel > Domain -- pure calculation layer, zero I/O.
    Consumed by RentalLifecycleService at creation, on date-change
    proposals and on owner counter-proposals.

Invariants enforced:
    - Inclusive end date: ``[start, end]`` is charged, so a same-day rental
      is 1 day.  Every caller passes committed or proposed dates as-is.
    - Months are counted by stepping whole months forward from ``start``
      (day clamped to the target month's length), never by subtracting
      day-of-month fields, so the remainder is never negative.
    - ``calculate_rental_cost`` is defined as the breakdown's total; the two
      cannot disagree.
    - Money is integer cents.

Failure modes:
    - InvalidDateError for malformed dates.
    - DateRangeError when end < start.

Usage:
    snapshot = PriceSnapshot(DurationUnit.DAY, 1000, 4500, 13500)
    calculate_rental_cost("2024-01-15", "2024-01-25", snapshot)   # 8500
"""

from __future__ import annotations

import calendar
import re
from datetime import date, datetime, timedelta

from rental_kernel.domain.dtos import (
    CostBreakdown,
    DateDifference,
    DurationUnit,
    PriceSnapshot,
)
from rental_kernel.exceptions import DateRangeError, InvalidDateError

DATE_FORMAT = "%Y-%m-%d"
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

DAYS_PER_WEEK = 7


def parse_date(value: date | str) -> date:
    """
    Parse a calendar date.

    Accepts a ``date`` (a ``datetime`` is truncated to its date) or a
    ``YYYY-MM-DD`` string.

    Raises:
        InvalidDateError: for anything else.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not _DATE_RE.match(text):
            raise InvalidDateError(value)
        try:
            return date.fromisoformat(text)
        except ValueError as exc:
            raise InvalidDateError(value, reason=str(exc)) from exc
    raise InvalidDateError(repr(value), reason=f"unsupported type {type(value).__name__}")


def format_date(value: date) -> str:
    return value.strftime(DATE_FORMAT)


def days_in_month(year: int, month: int) -> int:
    """Number of days in the month (leap-year aware)."""
    return calendar.monthrange(year, month)[1]


def add_months(start: date, months: int) -> date:
    """Step ``months`` whole months from ``start``, clamping the day to the month length."""
    index = start.month - 1 + months
    year = start.year + index // 12
    month = index % 12 + 1
    return date(year, month, min(start.day, days_in_month(year, month)))


def validate_date_range(start: date | str, end: date | str) -> tuple[date, date]:
    """Parse both ends and reject ``end < start``."""
    start_d = parse_date(start)
    end_d = parse_date(end)
    if end_d < start_d:
        raise DateRangeError(format_date(start_d), format_date(end_d))
    return start_d, end_d


def calculate_date_difference(start: date | str, end: date | str) -> DateDifference:
    """
    Split the inclusive interval ``[start, end]`` into months and days.

    Examples:
        2024-01-15 .. 2024-01-15  -> 0 months, 1 day
        2024-01-15 .. 2024-03-14  -> 2 months, 0 days
        2024-01-15 .. 2024-04-20  -> 3 months, 6 days
    """
    start_d, end_d = validate_date_range(start, end)
    exclusive_end = end_d + timedelta(days=1)

    months = 0
    while add_months(start_d, months + 1) <= exclusive_end:
        months += 1

    days = (exclusive_end - add_months(start_d, months)).days
    return DateDifference(months=months, days=days)


def calculate_rental_cost_breakdown(
    start: date | str,
    end: date | str,
    snapshot: PriceSnapshot,
) -> CostBreakdown:
    """
    Itemize the cost of renting ``[start, end]`` under ``snapshot``.

    day:   months x monthly + (rem // 7) x weekly + (rem % 7) x daily
    week:  months x monthly + ceil(rem / 7) x weekly
    month: months rounded up when rem > 0, minimum one month, x monthly
    """
    diff = calculate_date_difference(start, end)
    unit = DurationUnit.coerce(snapshot.duration_unit)

    if unit is DurationUnit.MONTH:
        months = diff.months + (1 if diff.days > 0 else 0)
        months = max(months, 1)
        weeks = 0
        days = 0
    elif unit is DurationUnit.WEEK:
        months = diff.months
        weeks = -(-diff.days // DAYS_PER_WEEK)
        days = 0
    else:
        months = diff.months
        weeks, days = divmod(diff.days, DAYS_PER_WEEK)

    months_cost = months * snapshot.monthly_price_cents
    weeks_cost = weeks * snapshot.weekly_price_cents
    days_cost = days * snapshot.daily_price_cents

    return CostBreakdown(
        duration_unit=unit,
        months=months,
        weeks=weeks,
        days=days,
        months_cost=months_cost,
        weeks_cost=weeks_cost,
        days_cost=days_cost,
        total_cost=months_cost + weeks_cost + days_cost,
    )


def calculate_rental_cost(
    start: date | str,
    end: date | str,
    snapshot: PriceSnapshot,
) -> int:
    """Total cost in cents of renting ``[start, end]`` under ``snapshot``."""
    return calculate_rental_cost_breakdown(start, end, snapshot).total_cost
