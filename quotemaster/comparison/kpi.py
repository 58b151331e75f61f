"""
Summary figures for a comparison matrix.

Aggregate variances are cost-weighted: sum(current cost) vs sum(baseline cost)
over the rows that have that baseline. A baseline with no eligible row is
reported as None ("no data"), not as zero.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from .matrix import ComparisonMatrix, MatrixRow
from .variance import Variance, calculate_variance


@dataclass(frozen=True)
class MatrixKpi:
    total_current_value: Decimal
    total_current_value_with_vat: Decimal
    product_count: int
    supplier_count: int
    products_with_previous: int
    variance_vs_base: Optional[Variance]
    variance_vs_previous: Optional[Variance]
    variance_vs_demand: Optional[Variance]

    def to_dict(self) -> dict:
        return {
            "total_current_value": str(self.total_current_value),
            "total_current_value_with_vat": str(self.total_current_value_with_vat),
            "product_count": self.product_count,
            "supplier_count": self.supplier_count,
            "products_with_previous": self.products_with_previous,
            "variance_vs_base": self.variance_vs_base.to_dict() if self.variance_vs_base else None,
            "variance_vs_previous": self.variance_vs_previous.to_dict() if self.variance_vs_previous else None,
            "variance_vs_demand": self.variance_vs_demand.to_dict() if self.variance_vs_demand else None,
        }


def _weighted(rows: List[MatrixRow], attr: str, use_row_quantity: bool = True) -> Optional[Variance]:
    current_total = Decimal("0")
    baseline_total = Decimal("0")
    eligible = 0
    for row in rows:
        variance = getattr(row, attr)
        if variance is None:
            continue
        eligible += 1
        if use_row_quantity:
            qty = row.quantity.quantity
            current_total += variance.current * qty
            baseline_total += variance.baseline * qty
        else:
            # Demand variance is already expressed as a cost
            current_total += variance.current
            baseline_total += variance.baseline
    if eligible == 0:
        return None
    return calculate_variance(current_total, baseline_total)


def summarize(matrix: ComparisonMatrix) -> MatrixKpi:
    rows = list(matrix.rows)

    total = Decimal("0")
    total_with_vat = Decimal("0")
    for row in rows:
        cell = row.best_cell
        if cell is None:
            continue
        total += row.current_cost
        total_with_vat += cell.price.total_with_vat * row.quantity.quantity

    return MatrixKpi(
        total_current_value=total,
        total_current_value_with_vat=total_with_vat,
        product_count=len(rows),
        supplier_count=len(matrix.suppliers),
        products_with_previous=sum(1 for row in rows if row.previous_approved_price is not None),
        variance_vs_base=_weighted(rows, "variance_vs_base"),
        variance_vs_previous=_weighted(rows, "variance_vs_previous"),
        variance_vs_demand=_weighted(rows, "variance_vs_demand", use_row_quantity=False),
    )


# ---------------------------------------------------------------------
# Supplier performance overview (category > supplier)
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class SupplierPerformance:
    supplier_id: int
    supplier_code: str
    product_count: int
    total_base_value: Decimal
    total_initial_value: Decimal
    total_current_value: Decimal
    total_previous_value: Optional[Decimal]
    quotation_status: Optional[str]

    @property
    def variance_vs_base(self) -> Optional[Variance]:
        return calculate_variance(self.total_current_value, self.total_base_value)

    @property
    def variance_vs_previous(self) -> Optional[Variance]:
        return calculate_variance(self.total_current_value, self.total_previous_value)

    @property
    def variance_vs_initial(self) -> Optional[Variance]:
        return calculate_variance(self.total_current_value, self.total_initial_value)

    def to_dict(self) -> dict:
        return {
            "supplier_id": self.supplier_id,
            "supplier_code": self.supplier_code,
            "product_count": self.product_count,
            "quotation_status": self.quotation_status,
            "total_base_value": str(self.total_base_value),
            "total_initial_value": str(self.total_initial_value),
            "total_current_value": str(self.total_current_value),
            "total_previous_value": None if self.total_previous_value is None else str(self.total_previous_value),
            "variance_vs_base": _v(self.variance_vs_base),
            "variance_vs_previous": _v(self.variance_vs_previous),
            "variance_vs_initial": _v(self.variance_vs_initial),
        }


def _v(variance: Optional[Variance]):
    return variance.to_dict() if variance else None


def supplier_overview(matrix: ComparisonMatrix) -> List[Tuple[str, List[SupplierPerformance]]]:
    """
    Per category, per supplier totals valued at the product base quantity
    (falling back to the resolved comparison quantity).
    """
    buckets: Dict[str, Dict[int, dict]] = {}
    codes = {s.supplier_id: s.code for s in matrix.suppliers}

    for row in matrix.rows:
        qty = row.base_quantity if row.base_quantity else row.quantity.quantity
        for cell in row.cells:
            if not cell.has_price:
                continue
            agg = buckets.setdefault(row.category, {}).setdefault(
                cell.supplier_id,
                {
                    "product_count": 0,
                    "base": Decimal("0"),
                    "initial": Decimal("0"),
                    "current": Decimal("0"),
                    "previous": None,
                    "status": cell.quotation_status,
                },
            )
            agg["product_count"] += 1
            agg["base"] += (row.base_price or Decimal("0")) * qty
            agg["initial"] += (cell.initial_price or Decimal("0")) * qty
            agg["current"] += cell.price.unit_price * qty
            if cell.previous_price:
                agg["previous"] = (agg["previous"] or Decimal("0")) + cell.previous_price * qty

    overview = []
    for category in sorted(buckets, key=lambda c: (c or "").lower()):
        performances = [
            SupplierPerformance(
                supplier_id=supplier_id,
                supplier_code=codes.get(supplier_id, ""),
                product_count=agg["product_count"],
                total_base_value=agg["base"],
                total_initial_value=agg["initial"],
                total_current_value=agg["current"],
                total_previous_value=agg["previous"],
                quotation_status=agg["status"],
            )
            for supplier_id, agg in buckets[category].items()
        ]
        performances.sort(key=lambda p: (p.supplier_code.lower(), p.supplier_id))
        overview.append((category, performances))
    return overview
