"""
Database-backed comparison operations.

Two modes:
- approval: only approved quotations (what will be / was signed off)
- working:  every non-cancelled quotation (what is on the negotiating table)

When a team is given, the region comes from the team, the supplier set is cut
down to the team's active service scopes and kitchen demand quantities apply.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import func

from ..comparison import (
    ComparisonMatrix,
    MatrixKpi,
    MatrixSortKey,
    build_matrix,
    sort_rows,
    summarize,
    supplier_overview,
)
from ..errors import ValidationError
from ..extensions import db
from ..models import (
    QUOTATION_STATUSES,
    STATUS_APPROVED,
    STATUS_CANCELLED,
    STATUS_PENDING,
    Product,
    Quotation,
    QuoteItem,
)
from ..security import Actor, require_manage
from ..spreadsheets import build_comparison_workbook, build_target_price_archive, build_target_price_workbook
from ..utils import parse_period
from .queries import (
    active_scope_supplier_ids,
    get_team_or_404,
    load_demands,
    load_previous_prices,
    load_quote_lines,
    require_team_region,
)
from .workflow import BatchOutcome, batch_negotiate

logger = logging.getLogger(__name__)

MODE_APPROVAL = "approval"
MODE_WORKING = "working"
MODES = (MODE_APPROVAL, MODE_WORKING)

OPEN_STATUSES = tuple(s for s in QUOTATION_STATUSES if s != STATUS_CANCELLED)


@dataclass
class ComparisonReport:
    matrix: ComparisonMatrix
    kpi: MatrixKpi
    mode: str
    team_id: Optional[int] = None

    def to_dict(self) -> dict:
        data = self.matrix.to_dict()
        data["mode"] = self.mode
        data["team_id"] = self.team_id
        data["kpi"] = self.kpi.to_dict()
        data["overview"] = [
            {"category": category, "suppliers": [p.to_dict() for p in performances]}
            for category, performances in supplier_overview(self.matrix)
        ]
        return data


def _statuses_for(mode: str) -> Tuple[str, ...]:
    if mode not in MODES:
        raise ValidationError(f"Unknown comparison mode '{mode}' (allowed: {', '.join(MODES)})", field="mode")
    return (STATUS_APPROVED,) if mode == MODE_APPROVAL else OPEN_STATUSES


def get_comparison_matrix(
    actor: Actor,
    period: str,
    region: Optional[str] = None,
    categories: Iterable[str] = (),
    *,
    mode: str = MODE_WORKING,
    team_id: Optional[int] = None,
) -> ComparisonMatrix:
    """Build the product x supplier matrix for a period + region (or team)."""
    period = parse_period(period)
    statuses = _statuses_for(mode)
    categories = tuple(c for c in categories if c)

    supplier_ids = None
    demands = {}
    if team_id is not None:
        team = get_team_or_404(team_id)
        region = require_team_region(team)
        supplier_ids = active_scope_supplier_ids(team.id)
        demands = load_demands(team.id, period)
    elif not (region or "").strip():
        raise ValidationError("Region is required", field="region")

    lines = load_quote_lines(
        period,
        region=region,
        statuses=statuses,
        categories=categories,
        supplier_ids=supplier_ids,
    )
    previous = load_previous_prices(period, region, [line.product_id for line in lines])

    matrix = build_matrix(
        lines,
        demands=demands,
        previous_prices=previous,
        period=period,
        region=region,
        categories=categories,
    )
    if matrix.is_empty:
        logger.info("No quote lines for %s / %s (%s mode, requested by %s)", period, region, mode, actor.username)
    return matrix


def get_comparison_report(
    actor: Actor,
    period: str,
    region: Optional[str] = None,
    categories: Iterable[str] = (),
    *,
    mode: str = MODE_WORKING,
    team_id: Optional[int] = None,
    sort: Optional[MatrixSortKey] = None,
    descending: bool = False,
) -> ComparisonReport:
    matrix = get_comparison_matrix(actor, period, region, categories, mode=mode, team_id=team_id)
    if sort is not None:
        matrix = ComparisonMatrix(
            rows=tuple(sort_rows(matrix.rows, sort, descending)),
            suppliers=matrix.suppliers,
            period=matrix.period,
            region=matrix.region,
            categories=matrix.categories,
        )
    return ComparisonReport(matrix=matrix, kpi=summarize(matrix), mode=mode, team_id=team_id)


# ----------------------------------------------------------------------
# Summary & cascading filters
# ----------------------------------------------------------------------
def get_quotation_summary(actor: Actor, period: str, region: Optional[str] = None) -> dict:
    period = parse_period(period)
    query = db.session.query(Quotation.status, func.count(Quotation.id)).filter(Quotation.period == period)
    if region:
        query = query.filter(Quotation.region == region)
    counts = dict(query.group_by(Quotation.status).all())

    supplier_query = db.session.query(func.count(func.distinct(Quotation.supplier_id))).filter(
        Quotation.period == period
    )
    if region:
        supplier_query = supplier_query.filter(Quotation.region == region)

    summary = {f"{status}_quotations": counts.get(status, 0) for status in QUOTATION_STATUSES}
    summary["total_quotations"] = sum(counts.values())
    summary["suppliers"] = supplier_query.scalar() or 0
    return summary


def get_available_periods(actor: Actor) -> List[str]:
    rows = db.session.query(Quotation.period).distinct().order_by(Quotation.period.desc()).all()
    return [period for (period,) in rows]


def get_regions_for_period(actor: Actor, period: str) -> List[str]:
    if not period:
        return []
    period = parse_period(period)
    rows = (
        db.session.query(Quotation.region)
        .filter(Quotation.period == period)
        .filter(Quotation.status != STATUS_CANCELLED)
        .distinct()
        .order_by(Quotation.region.asc())
        .all()
    )
    return [region for (region,) in rows if region]


def get_categories_for_period_and_region(actor: Actor, period: str, region: str) -> List[str]:
    if not period or not region:
        return []
    period = parse_period(period)
    rows = (
        db.session.query(Product.category)
        .join(QuoteItem, QuoteItem.product_id == Product.id)
        .join(Quotation, QuoteItem.quotation_id == Quotation.id)
        .filter(Quotation.period == period)
        .filter(Quotation.region == region)
        .filter(Quotation.status != STATUS_CANCELLED)
        .filter(Product.deleted_at.is_(None))
        .distinct()
        .order_by(Product.category.asc())
        .all()
    )
    return [category for (category,) in rows if category]


# ----------------------------------------------------------------------
# Exports
# ----------------------------------------------------------------------
def export_comparison_workbook(
    actor: Actor,
    period: str,
    region: Optional[str] = None,
    categories: Iterable[str] = (),
    *,
    mode: str = MODE_WORKING,
    team_id: Optional[int] = None,
) -> bytes:
    matrix = get_comparison_matrix(actor, period, region, categories, mode=mode, team_id=team_id)
    return build_comparison_workbook(matrix)


def export_target_price_workbook(actor: Actor, period: str, region: str, categories: Iterable[str] = ()) -> bytes:
    matrix = get_comparison_matrix(actor, period, region, categories, mode=MODE_WORKING)
    if matrix.is_empty:
        raise ValidationError("No products to export for the selected filters")
    return build_target_price_workbook(matrix)


def negotiate_and_export_target_prices(
    actor: Actor,
    period: str,
    region: str,
    categories: Iterable[str] = (),
) -> Tuple[BatchOutcome, bytes]:
    """
    Move every pending quotation in the view to negotiation, then return the
    per-supplier target price archive built from the refreshed matrix.
    """
    require_manage(actor)
    matrix = get_comparison_matrix(actor, period, region, categories, mode=MODE_WORKING)
    if not matrix.suppliers:
        raise ValidationError("No suppliers to negotiate with for the selected filters")

    pending_ids = sorted(
        {
            cell.quotation_id
            for row in matrix.rows
            for cell in row.cells
            if cell.quotation_id is not None and cell.quotation_status == STATUS_PENDING
        }
    )
    outcome = batch_negotiate(actor, pending_ids)

    matrix = get_comparison_matrix(actor, period, region, categories, mode=MODE_WORKING)
    return outcome, build_target_price_archive(matrix)
