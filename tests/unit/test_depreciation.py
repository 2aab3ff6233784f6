"""Unit tests for the straight-line depreciation helpers in asset_service."""

from datetime import date

from procureflow.services.asset_service import compute_straight_line, months_between


def test_months_between_counts_calendar_months():
    assert months_between(date(2025, 1, 15), date(2025, 4, 1)) == 3
    assert months_between(date(2024, 11, 1), date(2025, 2, 1)) == 3
    assert months_between(date(2025, 5, 1), date(2025, 5, 31)) == 0


def test_months_between_never_negative():
    assert months_between(date(2026, 1, 1), date(2025, 1, 1)) == 0


def test_straight_line_midway():
    figures = compute_straight_line(
        acquisition_value=120_000,
        residual_value=0,
        useful_life_months=12,
        acquisition_date=date(2025, 1, 1),
        as_of=date(2025, 7, 1),
    )
    assert figures.monthly == 10_000
    assert figures.months_elapsed == 6
    assert figures.accumulated == 60_000
    assert figures.book_value == 60_000


def test_straight_line_stops_at_residual_value():
    figures = compute_straight_line(
        acquisition_value=100_000,
        residual_value=10_000,
        useful_life_months=10,
        acquisition_date=date(2020, 1, 1),
        as_of=date(2026, 1, 1),
    )
    assert figures.accumulated == 90_000
    assert figures.book_value == 10_000


def test_residual_above_cost_depreciates_nothing():
    figures = compute_straight_line(
        acquisition_value=5_000,
        residual_value=8_000,
        useful_life_months=24,
        acquisition_date=date(2025, 1, 1),
        as_of=date(2026, 1, 1),
    )
    assert figures.monthly == 0
    assert figures.book_value == 5_000
