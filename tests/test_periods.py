"""Tests for src.aggregate.periods -- period parsing, ordering and trends."""

from datetime import date

import pytest

from src.aggregate.periods import (
    calculate_trend,
    parse_period_date,
    period_sort_key,
    sort_periods,
)


class TestParsePeriodDate:

    @pytest.mark.parametrize("label,expected", [
        ("Q1 2024", date(2024, 1, 1)),
        ("Q4-2023", date(2023, 10, 1)),
        ("2024-Q3", date(2024, 7, 1)),
        ("2024Q2", date(2024, 4, 1)),
        ("2024M02", date(2024, 2, 1)),
        ("202412", date(2024, 12, 1)),
        ("2024-01-31", date(2024, 1, 31)),
        ("03/31/2024", date(2024, 3, 31)),
    ])
    def test_formats(self, label, expected):
        assert parse_period_date(label) == expected

    @pytest.mark.parametrize("label", ["Budget", "", None, "202413"])
    def test_unparseable(self, label):
        assert parse_period_date(label) is None


class TestSortPeriods:

    def test_chronological_then_lexical(self):
        periods = ["Q3 2024", "Q1 2024", "Q2 2023", "Budget", "Q1 2024", "Actual"]
        assert sort_periods(periods) == ["Q2 2023", "Q1 2024", "Q3 2024", "Actual", "Budget"]

    def test_mixed_formats_order_by_date(self):
        assert sort_periods(["2024-Q2", "Q1 2024"]) == ["Q1 2024", "2024-Q2"]

    def test_sort_key_marks_unparseable(self):
        assert period_sort_key("Budget")[0] == 1
        assert period_sort_key("Q1 2024") == (0, "2024-01-01", "Q1 2024")


class TestCalculateTrend:

    def test_orders_by_date(self):
        assert calculate_trend([("Q2 2024", 150.0), ("Q1 2024", 100.0)]) == pytest.approx(50.0)

    def test_input_order_when_not_dates(self):
        assert calculate_trend([("a", 100.0), ("b", 120.0)]) == pytest.approx(20.0)

    def test_negative_base_uses_magnitude(self):
        assert calculate_trend([("a", -100.0), ("b", -50.0)]) == pytest.approx(50.0)

    def test_single_period_is_none(self):
        assert calculate_trend([("Q1 2024", 100.0)]) is None

    def test_both_zero(self):
        assert calculate_trend([("Q1 2024", 0.0), ("Q2 2024", 0.00001)]) == 0.0

    def test_zero_base_is_none(self):
        assert calculate_trend([("Q1 2024", 0.0), ("Q2 2024", 5.0)]) is None
