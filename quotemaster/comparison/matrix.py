"""
Product x supplier comparison matrix.

The builder is a pure fold over QuoteLine views: no database access, no
mutable maps escaping the function. Services load the lines, demands and
previous approved prices and hand them in.

Ordering:
- suppliers by code (case-insensitive), then id
- rows by product code (case-insensitive), then id

Best price: the lowest VAT-inclusive unit total among cells with a price.
Ties go to the lowest supplier code, so the result never depends on load order.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from decimal import Decimal, ROUND_HALF_UP
from itertools import groupby
from typing import Dict, Iterable, Mapping, Optional, Tuple

from .pricing import ResolvedPrice, resolve_price
from .quantity import QuantitySource, ResolvedQuantity, resolve_quantity
from .variance import Variance, calculate_variance


@dataclass(frozen=True)
class QuoteLine:
    """Flat read-only view of one QuoteItem joined with its product, supplier and quotation."""

    item_id: int
    quotation_id: int
    quotation_status: str
    product_id: int
    product_code: str
    product_name: str
    supplier_id: int
    supplier_code: str
    supplier_name: str
    initial_price: Optional[Decimal] = None
    negotiated_price: Optional[Decimal] = None
    approved_price: Optional[Decimal] = None
    vat_percentage: Decimal = Decimal("0")
    quantity: Optional[Decimal] = None
    unit: str = ""
    category: str = ""
    specification: Optional[str] = None
    base_price: Optional[Decimal] = None
    base_quantity: Optional[Decimal] = None
    supplier_contact: Optional[str] = None


@dataclass(frozen=True)
class PriceCell:
    supplier_id: int
    supplier_code: str
    price: ResolvedPrice
    item_id: Optional[int] = None
    quotation_id: Optional[int] = None
    quotation_status: Optional[str] = None
    initial_price: Optional[Decimal] = None
    negotiated_price: Optional[Decimal] = None
    approved_price: Optional[Decimal] = None
    line_quantity: Optional[Decimal] = None
    is_best: bool = False
    previous_price: Optional[Decimal] = None
    variance_vs_previous: Optional[Variance] = None

    @property
    def quoted(self) -> bool:
        """True when the supplier submitted a line for this product."""
        return self.item_id is not None

    @property
    def has_price(self) -> bool:
        return self.price.has_price

    def to_dict(self) -> dict:
        data = {
            "supplier_id": self.supplier_id,
            "supplier_code": self.supplier_code,
            "item_id": self.item_id,
            "quotation_id": self.quotation_id,
            "quotation_status": self.quotation_status,
            "quoted": self.quoted,
            "has_price": self.has_price,
            "is_best": self.is_best,
            "initial_price": _str(self.initial_price),
            "negotiated_price": _str(self.negotiated_price),
            "approved_price": _str(self.approved_price),
            "line_quantity": _str(self.line_quantity),
            "previous_price": _str(self.previous_price),
            "variance_vs_previous": self.variance_vs_previous.to_dict() if self.variance_vs_previous else None,
        }
        data.update(self.price.to_dict())
        return data


@dataclass(frozen=True)
class MatrixRow:
    product_id: int
    product_code: str
    product_name: str
    unit: str
    category: str
    specification: Optional[str]
    base_price: Optional[Decimal]
    base_quantity: Optional[Decimal]
    quantity: ResolvedQuantity
    cells: Tuple[PriceCell, ...]
    best_supplier_id: Optional[int] = None
    min_initial_price: Optional[Decimal] = None
    previous_approved_price: Optional[Decimal] = None
    variance_vs_base: Optional[Variance] = None
    variance_vs_previous: Optional[Variance] = None
    variance_vs_demand: Optional[Variance] = None

    @property
    def best_cell(self) -> Optional[PriceCell]:
        for cell in self.cells:
            if cell.is_best:
                return cell
        return None

    @property
    def best_price(self) -> Optional[Decimal]:
        """VAT-inclusive unit total of the best cell."""
        cell = self.best_cell
        return cell.price.total_with_vat if cell else None

    @property
    def best_unit_price(self) -> Optional[Decimal]:
        cell = self.best_cell
        return cell.price.unit_price if cell else None

    @property
    def current_cost(self) -> Optional[Decimal]:
        unit_price = self.best_unit_price
        return None if unit_price is None else unit_price * self.quantity.quantity

    def cell_for(self, supplier_id: int) -> Optional[PriceCell]:
        for cell in self.cells:
            if cell.supplier_id == supplier_id:
                return cell
        return None

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "product_code": self.product_code,
            "product_name": self.product_name,
            "unit": self.unit,
            "category": self.category,
            "specification": self.specification,
            "base_price": _str(self.base_price),
            "base_quantity": _str(self.base_quantity),
            "quantity": self.quantity.to_dict(),
            "best_supplier_id": self.best_supplier_id,
            "best_price": _str(self.best_price),
            "current_cost": _str(self.current_cost),
            "min_initial_price": _str(self.min_initial_price),
            "previous_approved_price": _str(self.previous_approved_price),
            "variance_vs_base": self.variance_vs_base.to_dict() if self.variance_vs_base else None,
            "variance_vs_previous": self.variance_vs_previous.to_dict() if self.variance_vs_previous else None,
            "variance_vs_demand": self.variance_vs_demand.to_dict() if self.variance_vs_demand else None,
            "cells": [cell.to_dict() for cell in self.cells],
        }


@dataclass(frozen=True)
class SupplierColumn:
    supplier_id: int
    code: str
    name: str
    contact: Optional[str]
    quoted_products: int
    total_products: int
    coverage_percentage: Decimal

    def to_dict(self) -> dict:
        return {
            "supplier_id": self.supplier_id,
            "code": self.code,
            "name": self.name,
            "contact": self.contact,
            "quoted_products": self.quoted_products,
            "total_products": self.total_products,
            "coverage_percentage": str(self.coverage_percentage),
        }


@dataclass(frozen=True)
class ComparisonMatrix:
    rows: Tuple[MatrixRow, ...] = ()
    suppliers: Tuple[SupplierColumn, ...] = ()
    period: Optional[str] = None
    region: Optional[str] = None
    categories: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_empty(self) -> bool:
        return not self.rows

    def to_dict(self) -> dict:
        return {
            "period": self.period,
            "region": self.region,
            "categories": list(self.categories),
            "suppliers": [s.to_dict() for s in self.suppliers],
            "rows": [r.to_dict() for r in self.rows],
        }


def _str(value) -> Optional[str]:
    return None if value is None else str(value)


def coverage_percentage(quoted: int, total: int) -> Decimal:
    if total <= 0:
        return Decimal("0.00")
    return (Decimal(quoted) * 100 / Decimal(total)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _supplier_key(line: QuoteLine):
    return (line.supplier_code.lower(), line.supplier_id)


def _product_key(line: QuoteLine):
    return (line.product_code.lower(), line.product_id)


def _best_key(cell: PriceCell):
    return (cell.price.total_with_vat, cell.supplier_code.lower(), cell.supplier_id)


def _build_row(
    lines: Tuple[QuoteLine, ...],
    roster: Tuple[QuoteLine, ...],
    demand_quantity,
    previous_prices: Mapping,
) -> MatrixRow:
    first = lines[0]

    # One line per supplier; lines arrive in supplier order, first one wins
    by_supplier: Dict[int, QuoteLine] = {}
    for line in lines:
        by_supplier.setdefault(line.supplier_id, line)

    quantity = resolve_quantity(
        demand_quantity=demand_quantity,
        base_quantity=first.base_quantity,
        line_quantities=[line.quantity for line in by_supplier.values()],
    )

    cells = []
    for supplier in roster:
        line = by_supplier.get(supplier.supplier_id)
        if line is None:
            cells.append(
                PriceCell(
                    supplier_id=supplier.supplier_id,
                    supplier_code=supplier.supplier_code,
                    price=resolve_price(),
                )
            )
            continue

        price = resolve_price(
            initial=line.initial_price,
            negotiated=line.negotiated_price,
            approved=line.approved_price,
            vat_percentage=line.vat_percentage,
        )
        previous = previous_prices.get((line.product_id, line.supplier_id))
        cells.append(
            PriceCell(
                supplier_id=line.supplier_id,
                supplier_code=line.supplier_code,
                price=price,
                item_id=line.item_id,
                quotation_id=line.quotation_id,
                quotation_status=line.quotation_status,
                initial_price=line.initial_price,
                negotiated_price=line.negotiated_price,
                approved_price=line.approved_price,
                line_quantity=line.quantity,
                previous_price=previous,
                variance_vs_previous=calculate_variance(price.unit_price, previous) if price.has_price else None,
            )
        )

    priced = [cell for cell in cells if cell.has_price]
    best = min(priced, key=_best_key) if priced else None
    if best is not None:
        cells = [
            replace(cell, is_best=True) if cell is best else cell
            for cell in cells
        ]

    initial_prices = [line.initial_price for line in by_supplier.values() if line.initial_price is not None]
    min_initial = min(initial_prices) if initial_prices else None

    best_unit = best.price.unit_price if best else None
    previous_best = best.previous_price if best else None

    variance_vs_demand = None
    if (
        best_unit is not None
        and quantity.source == QuantitySource.KITCHEN_DEMAND
        and first.base_price is not None
        and first.base_quantity is not None
        and quantity.quantity != first.base_quantity
    ):
        variance_vs_demand = calculate_variance(
            best_unit * quantity.quantity,
            first.base_price * first.base_quantity,
        )

    return MatrixRow(
        product_id=first.product_id,
        product_code=first.product_code,
        product_name=first.product_name,
        unit=first.unit,
        category=first.category,
        specification=first.specification,
        base_price=first.base_price,
        base_quantity=first.base_quantity,
        quantity=quantity,
        cells=tuple(cells),
        best_supplier_id=best.supplier_id if best else None,
        min_initial_price=min_initial,
        previous_approved_price=previous_best,
        variance_vs_base=calculate_variance(best_unit, min_initial),
        variance_vs_previous=calculate_variance(best_unit, previous_best),
        variance_vs_demand=variance_vs_demand,
    )


def build_matrix(
    lines: Iterable[QuoteLine],
    demands: Optional[Mapping[int, Decimal]] = None,
    previous_prices: Optional[Mapping[Tuple[int, int], Decimal]] = None,
    period: Optional[str] = None,
    region: Optional[str] = None,
    categories: Iterable[str] = (),
) -> ComparisonMatrix:
    """
    Build the comparison matrix.

    demands: product_id -> kitchen demand quantity (team-scoped requests only)
    previous_prices: (product_id, supplier_id) -> previous period approved unit price
    """
    demands = demands or {}
    previous_prices = previous_prices or {}

    ordered = sorted(lines, key=lambda line: (_product_key(line), _supplier_key(line), line.item_id))

    roster_by_id: Dict[int, QuoteLine] = {}
    for line in sorted(ordered, key=_supplier_key):
        roster_by_id.setdefault(line.supplier_id, line)
    roster = tuple(roster_by_id.values())

    rows = tuple(
        _build_row(tuple(group), roster, demands.get(product_id), previous_prices)
        for (_, product_id), group in groupby(ordered, key=_product_key)
    )

    total = len(rows)
    suppliers = []
    for supplier in roster:
        quoted = sum(1 for row in rows if row.cell_for(supplier.supplier_id).has_price)
        suppliers.append(
            SupplierColumn(
                supplier_id=supplier.supplier_id,
                code=supplier.supplier_code,
                name=supplier.supplier_name,
                contact=supplier.supplier_contact,
                quoted_products=quoted,
                total_products=total,
                coverage_percentage=coverage_percentage(quoted, total),
            )
        )

    return ComparisonMatrix(
        rows=rows,
        suppliers=tuple(suppliers),
        period=period,
        region=region,
        categories=tuple(categories),
    )
