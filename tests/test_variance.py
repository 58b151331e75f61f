from decimal import Decimal

import pytest

from quotemaster.comparison import baseline_from_variance, calculate_variance
from quotemaster.comparison.variance import TREND_DOWN, TREND_STABLE, TREND_UP, trend_for


def test_increase_is_positive():
    variance = calculate_variance(110, 100)
    assert variance.difference == Decimal("10")
    assert variance.percentage == Decimal("10")
    assert variance.trend == TREND_UP


def test_decrease_is_negative():
    variance = calculate_variance(Decimal("95000"), Decimal("100000"))
    assert variance.percentage == Decimal("-5")
    assert variance.trend == TREND_DOWN
    assert variance.to_dict()["percentage"] == "-5.00"


@pytest.mark.parametrize("baseline", [None, 0, Decimal("0")])
def test_missing_or_zero_baseline(baseline):
    assert calculate_variance(100, baseline) is None


def test_missing_current():
    assert calculate_variance(None, 100) is None


def test_baseline_recovered_from_percentage():
    variance = calculate_variance(Decimal("123.45"), Decimal("98.76"))
    recovered = baseline_from_variance(variance.current, variance.percentage)
    assert abs(recovered - Decimal("98.76")) < Decimal("0.0001")


def test_baseline_from_minus_hundred_percent():
    assert baseline_from_variance(0, -100) is None


def test_trend_band():
    assert trend_for(Decimal("0.5")) == TREND_STABLE
    assert trend_for(Decimal("-0.5")) == TREND_STABLE
    assert trend_for(Decimal("0.51")) == TREND_UP
    assert trend_for(None) == TREND_STABLE
