"""
Variance between a current value and a baseline.

Sign convention: positive = increase (worse), negative = decrease (better).
A zero or missing baseline yields None, never a division by zero.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

HUNDRED = Decimal("100")

# Percentage band treated as "no change" when labelling a trend.
TREND_THRESHOLD = Decimal("0.5")

TREND_UP = "up"
TREND_DOWN = "down"
TREND_STABLE = "stable"


@dataclass(frozen=True)
class Variance:
    baseline: Decimal
    current: Decimal
    difference: Decimal
    percentage: Decimal

    @property
    def trend(self) -> str:
        return trend_for(self.percentage)

    def to_dict(self) -> dict:
        return {
            "baseline": str(self.baseline),
            "current": str(self.current),
            "difference": str(self.difference),
            "percentage": str(round(self.percentage, 2)),
            "trend": self.trend,
        }


def calculate_variance(current, baseline) -> Optional[Variance]:
    if current is None or baseline is None:
        return None
    current = Decimal(str(current))
    baseline = Decimal(str(baseline))
    if baseline == 0:
        return None
    difference = current - baseline
    return Variance(
        baseline=baseline,
        current=current,
        difference=difference,
        percentage=difference / baseline * HUNDRED,
    )


def baseline_from_variance(current, percentage) -> Optional[Decimal]:
    """Inverse of calculate_variance: recover the baseline from current + percentage."""
    if current is None or percentage is None:
        return None
    factor = 1 + Decimal(str(percentage)) / HUNDRED
    if factor == 0:
        return None
    return Decimal(str(current)) / factor


def trend_for(percentage: Optional[Decimal]) -> str:
    if percentage is None:
        return TREND_STABLE
    if percentage > TREND_THRESHOLD:
        return TREND_UP
    if percentage < -TREND_THRESHOLD:
        return TREND_DOWN
    return TREND_STABLE
