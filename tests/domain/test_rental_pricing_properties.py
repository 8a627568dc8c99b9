"""
Property tests for the pricing engine.

Invariants:
- months/days reconstruct the inclusive interval exactly.
- Cost never decreases as the end date moves later, for price schedules in
  which a longer tier never undercuts the shorter tiers it replaces.
- calculate_rental_cost equals the breakdown's itemized sum.
"""

from datetime import date, timedelta

from hypothesis import given, settings
from hypothesis import strategies as st
from hypothesis.strategies import composite

from rental_kernel.domain.dtos import DurationUnit, PriceSnapshot
from rental_kernel.domain.pricing import (
    add_months,
    calculate_date_difference,
    calculate_rental_cost,
    calculate_rental_cost_breakdown,
)

start_dates = st.dates(min_value=date(2000, 1, 1), max_value=date(2030, 12, 31))
spans = st.integers(min_value=0, max_value=800)


@composite
def consistent_snapshots(draw):
    """Price schedules where each tier is worth at least what it replaces.

    A week must cost at least six days and a month at least the longest
    remainder it can absorb (30 days: five partial weeks, or four weeks and
    two days).
    """
    unit = draw(st.sampled_from(list(DurationUnit)))
    daily = draw(st.integers(min_value=0, max_value=10_000))
    weekly = 6 * daily + draw(st.integers(min_value=0, max_value=10_000))
    monthly = max(5 * weekly, 4 * weekly + 2 * daily) + draw(st.integers(min_value=0, max_value=50_000))
    return PriceSnapshot(unit, daily, weekly, monthly)


@given(start=start_dates, span=spans)
def test_difference_reconstructs_interval(start, span):
    end = start + timedelta(days=span)
    diff = calculate_date_difference(start, end)

    assert diff.days >= 0
    assert add_months(start, diff.months) + timedelta(days=diff.days) == end + timedelta(days=1)


@given(start=start_dates, span=spans)
def test_remainder_is_shorter_than_next_month(start, span):
    end = start + timedelta(days=span)
    diff = calculate_date_difference(start, end)

    assert add_months(start, diff.months + 1) > end + timedelta(days=1)


@settings(max_examples=200)
@given(snapshot=consistent_snapshots(), start=start_dates, span=spans)
def test_cost_monotone_in_end_date(snapshot, start, span):
    end = start + timedelta(days=span)
    later = end + timedelta(days=1)

    assert calculate_rental_cost(start, later, snapshot) >= calculate_rental_cost(start, end, snapshot)


@given(snapshot=consistent_snapshots(), start=start_dates, span=spans)
def test_total_is_itemized_sum(snapshot, start, span):
    end = start + timedelta(days=span)
    breakdown = calculate_rental_cost_breakdown(start, end, snapshot)

    assert breakdown.total_cost == breakdown.months_cost + breakdown.weeks_cost + breakdown.days_cost
    assert calculate_rental_cost(start, end, snapshot) == breakdown.total_cost
    assert breakdown.total_cost >= 0
