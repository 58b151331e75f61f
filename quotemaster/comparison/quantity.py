"""
Comparison quantity resolution.

Order (first positive value wins):
1) kitchen demand for the team + product + period
2) product base quantity
3) quantity written on the quote line itself
4) 1, so cost rollups never multiply by zero
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional

ONE = Decimal("1")


class QuantitySource(str, Enum):
    KITCHEN_DEMAND = "kitchen_demand"
    BASE_QUANTITY = "base_quantity"
    QUOTE_LINE = "quote_line"
    DEFAULT = "default"


@dataclass(frozen=True)
class ResolvedQuantity:
    quantity: Decimal
    source: QuantitySource

    def to_dict(self) -> dict:
        return {"quantity": str(self.quantity), "source": self.source.value}


def _positive(value) -> Optional[Decimal]:
    if value is None:
        return None
    value = Decimal(str(value))
    return value if value > 0 else None


def resolve_quantity(
    demand_quantity=None,
    base_quantity=None,
    line_quantities: Iterable = (),
) -> ResolvedQuantity:
    """
    Resolve the comparison quantity for one product.

    `line_quantities` must already be in a deterministic order (the matrix
    passes them in supplier-code order); the first positive one is used.
    """
    demand = _positive(demand_quantity)
    if demand is not None:
        return ResolvedQuantity(demand, QuantitySource.KITCHEN_DEMAND)

    base = _positive(base_quantity)
    if base is not None:
        return ResolvedQuantity(base, QuantitySource.BASE_QUANTITY)

    for value in line_quantities:
        line = _positive(value)
        if line is not None:
            return ResolvedQuantity(line, QuantitySource.QUOTE_LINE)

    return ResolvedQuantity(ONE, QuantitySource.DEFAULT)
