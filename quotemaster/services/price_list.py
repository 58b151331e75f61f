"""
Team-scoped approved price lists.

A team sees only:
- approved quotations
- in the team's region
- from suppliers holding an ACTIVE service scope for the team
- items with an approved price above zero
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional

from sqlalchemy import func

from ..comparison import ComparisonMatrix, build_matrix
from ..comparison.pricing import total_with_vat
from ..errors import NotFoundError
from ..extensions import db
from ..models import STATUS_APPROVED, Product, Quotation, QuoteItem, ServiceScope, to_decimal
from ..security import Actor
from ..utils import parse_period
from .queries import (
    active_scope_supplier_ids,
    get_team_or_404,
    load_demands,
    load_quote_lines,
    require_team_region,
)

logger = logging.getLogger(__name__)

TWO_PLACES = Decimal("0.01")


@dataclass
class PriceListSummary:
    total_products: int = 0
    quoted_products: int = 0
    missing_products: int = 0
    total_suppliers: int = 0
    average_coverage: Decimal = Decimal("0")

    def to_dict(self) -> dict:
        return {
            "total_products": self.total_products,
            "quoted_products": self.quoted_products,
            "missing_products": self.missing_products,
            "total_suppliers": self.total_suppliers,
            "average_coverage": str(self.average_coverage),
        }


@dataclass
class PriceList:
    team_id: int
    team_name: str
    region: str
    period: str
    matrix: ComparisonMatrix = field(default_factory=ComparisonMatrix)
    summary: PriceListSummary = field(default_factory=PriceListSummary)

    def to_dict(self) -> dict:
        data = self.matrix.to_dict()
        data.update(
            {
                "team_id": self.team_id,
                "team_name": self.team_name,
                "region": self.region,
                "period": self.period,
                "summary": self.summary.to_dict(),
            }
        )
        return data


def _summarize(matrix: ComparisonMatrix) -> PriceListSummary:
    quoted = sum(1 for row in matrix.rows if row.best_cell is not None)
    suppliers = len(matrix.suppliers)
    average = Decimal("0")
    if suppliers:
        average = (sum(s.coverage_percentage for s in matrix.suppliers) / suppliers).quantize(
            TWO_PLACES, rounding=ROUND_HALF_UP
        )
    return PriceListSummary(
        total_products=len(matrix.rows),
        quoted_products=quoted,
        missing_products=len(matrix.rows) - quoted,
        total_suppliers=suppliers,
        average_coverage=average,
    )


def get_price_list_matrix(actor: Actor, team_id: int, period: str) -> PriceList:
    """Approved price list for one team and period."""
    period = parse_period(period)
    team = get_team_or_404(team_id)
    region = require_team_region(team)

    supplier_ids = active_scope_supplier_ids(team.id)
    if not supplier_ids:
        logger.warning("Team %s has no active supplier scopes; returning empty price list", team.id)
        return PriceList(team_id=team.id, team_name=team.name, region=region, period=period)

    lines = [
        line
        for line in load_quote_lines(
            period,
            region=region,
            statuses=[STATUS_APPROVED],
            supplier_ids=supplier_ids,
        )
        if line.approved_price is not None and line.approved_price > 0
    ]

    matrix = build_matrix(
        lines,
        demands=load_demands(team.id, period),
        period=period,
        region=region,
    )
    summary = _summarize(matrix)
    logger.info(
        "Price list for team %s period %s: %d products, %d suppliers (requested by %s)",
        team.id, period, summary.total_products, summary.total_suppliers, actor.username,
    )
    return PriceList(
        team_id=team.id,
        team_name=team.name,
        region=region,
        period=period,
        matrix=matrix,
        summary=summary,
    )


def get_available_periods_for_team(actor: Actor, team_id: int) -> List[dict]:
    """Periods with approved quotations usable by the team, newest first."""
    team = get_team_or_404(team_id)
    region = require_team_region(team)

    rows = (
        db.session.query(
            Quotation.period,
            func.count(func.distinct(Quotation.id)),
            func.count(func.distinct(Quotation.supplier_id)),
            func.count(func.distinct(QuoteItem.product_id)),
            func.max(Quotation.updated_at),
        )
        .join(QuoteItem, QuoteItem.quotation_id == Quotation.id)
        .join(
            ServiceScope,
            (ServiceScope.supplier_id == Quotation.supplier_id)
            & (ServiceScope.team_id == team.id)
            & (ServiceScope.is_active.is_(True)),
        )
        .filter(Quotation.status == STATUS_APPROVED)
        .filter(Quotation.region == region)
        .group_by(Quotation.period)
        .order_by(Quotation.period.desc())
        .all()
    )
    return [
        {
            "period": period,
            "approved_quotations": quotations,
            "available_suppliers": suppliers,
            "total_products": products,
            "last_updated": last_updated.isoformat() if last_updated else None,
        }
        for period, quotations, suppliers, products, last_updated in rows
    ]


def get_product_price_comparison(actor: Actor, team_id: int, product_id: int, period: str) -> dict:
    """Approved prices of one product across the team's suppliers, with the price range."""
    period = parse_period(period)
    product = db.session.get(Product, product_id)
    if product is None or product.deleted_at is not None:
        raise NotFoundError(f"Product {product_id} not found", product_id=product_id)

    price_list = get_price_list_matrix(actor, team_id, period)
    row = next((r for r in price_list.matrix.rows if r.product_id == product.id), None)

    offers = []
    if row is not None:
        for cell in row.cells:
            if not cell.has_price:
                continue
            offers.append(
                {
                    "supplier_id": cell.supplier_id,
                    "supplier_code": cell.supplier_code,
                    "approved_price": str(cell.price.unit_price),
                    "vat_percentage": str(cell.price.vat_percentage),
                    "total_with_vat": str(total_with_vat(cell.price.unit_price, cell.price.vat_percentage)),
                    "is_best": cell.is_best,
                }
            )

    price_range = None
    if row is not None and offers:
        totals = [to_decimal(o["total_with_vat"]) for o in offers]
        low, high = min(totals), max(totals)
        price_range = {
            "min": str(low),
            "max": str(high),
            "difference": str(high - low),
            "percentage_difference": str(
                ((high - low) / low * 100).quantize(TWO_PLACES, rounding=ROUND_HALF_UP) if low else Decimal("0")
            ),
        }

    return {
        "product": {
            "id": product.id,
            "code": product.code,
            "name": product.name,
            "specification": product.specification,
            "unit": product.unit,
            "category": product.category,
        },
        "suppliers": offers,
        "best_price": str(row.best_price) if row is not None and row.best_price is not None else None,
        "price_range": price_range,
    }
