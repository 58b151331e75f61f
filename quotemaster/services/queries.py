"""
Read helpers that turn stored rows into the plain views the comparison engine folds over.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from ..comparison import QuoteLine
from ..errors import NotFoundError, UnknownReferenceError
from ..extensions import db
from ..models import (
    PRICE_TYPE_APPROVED,
    RECORD_ACTIVE,
    KitchenDemand,
    PriceHistory,
    Product,
    Quotation,
    QuoteItem,
    ServiceScope,
    Supplier,
    Team,
    to_decimal,
)


def load_quote_lines(
    period: str,
    region: Optional[str] = None,
    statuses: Iterable[str] = (),
    categories: Iterable[str] = (),
    supplier_ids: Optional[Iterable[int]] = None,
) -> List[QuoteLine]:
    """Quote items for a period joined with product/supplier/quotation, skipping soft-deleted masters."""
    query = (
        db.session.query(QuoteItem, Quotation, Product, Supplier)
        .join(Quotation, QuoteItem.quotation_id == Quotation.id)
        .join(Product, QuoteItem.product_id == Product.id)
        .join(Supplier, Quotation.supplier_id == Supplier.id)
        .filter(Quotation.period == period)
        .filter(Product.deleted_at.is_(None))
        .filter(Supplier.deleted_at.is_(None))
    )

    if region:
        query = query.filter(Quotation.region == region)

    statuses = list(statuses)
    if statuses:
        query = query.filter(Quotation.status.in_(statuses))

    categories = [c for c in categories if c]
    if categories:
        query = query.filter(Product.category.in_(categories))

    if supplier_ids is not None:
        supplier_ids = list(supplier_ids)
        if not supplier_ids:
            return []
        query = query.filter(Supplier.id.in_(supplier_ids))

    lines = []
    for item, quotation, product, supplier in query.all():
        lines.append(
            QuoteLine(
                item_id=item.id,
                quotation_id=quotation.id,
                quotation_status=quotation.status,
                product_id=product.id,
                product_code=product.code,
                product_name=product.name,
                supplier_id=supplier.id,
                supplier_code=supplier.code,
                supplier_name=supplier.name,
                initial_price=to_decimal(item.initial_price),
                negotiated_price=to_decimal(item.negotiated_price),
                approved_price=to_decimal(item.approved_price),
                vat_percentage=to_decimal(item.vat_percentage) or Decimal("0"),
                quantity=to_decimal(item.quantity),
                unit=product.unit,
                category=product.category,
                specification=product.specification,
                base_price=to_decimal(product.base_price),
                base_quantity=to_decimal(product.base_quantity),
                supplier_contact=supplier.contact_person,
            )
        )
    return lines


def load_previous_prices(
    period: str,
    region: Optional[str],
    product_ids: Iterable[int],
) -> Dict[Tuple[int, int], Decimal]:
    """
    Latest approved price strictly before `period` for every (product, supplier)
    pair in the same region.
    """
    product_ids = list(set(product_ids))
    if not product_ids:
        return {}

    query = (
        PriceHistory.query
        .filter(PriceHistory.period < period)
        .filter(PriceHistory.price_type == PRICE_TYPE_APPROVED)
        .filter(PriceHistory.product_id.in_(product_ids))
    )
    if region:
        query = query.filter(PriceHistory.region == region)

    rows = query.order_by(
        PriceHistory.period.desc(),
        PriceHistory.recorded_at.desc(),
        PriceHistory.id.desc(),
    ).all()

    previous: Dict[Tuple[int, int], Decimal] = {}
    for row in rows:
        previous.setdefault((row.product_id, row.supplier_id), to_decimal(row.price))
    return previous


def load_demands(team_id: int, period: str) -> Dict[int, Decimal]:
    rows = KitchenDemand.query.filter_by(team_id=team_id, period=period, status=RECORD_ACTIVE).all()
    return {row.product_id: to_decimal(row.quantity) for row in rows}


def get_team_or_404(team_id: int) -> Team:
    team = db.session.get(Team, team_id)
    if team is None or team.deleted_at is not None:
        raise NotFoundError(f"Team {team_id} not found", team_id=team_id)
    return team


def require_team_region(team: Team) -> str:
    if not (team.region or "").strip():
        raise UnknownReferenceError(f"Team '{team.name}' has no region configured", team_id=team.id)
    return team.region


def active_scope_supplier_ids(team_id: int) -> List[int]:
    """Suppliers with an active service scope for the team (soft-deleted suppliers excluded)."""
    rows = (
        db.session.query(ServiceScope.supplier_id)
        .join(Supplier, ServiceScope.supplier_id == Supplier.id)
        .filter(ServiceScope.team_id == team_id)
        .filter(ServiceScope.is_active.is_(True))
        .filter(Supplier.deleted_at.is_(None))
        .order_by(ServiceScope.supplier_id.asc())
        .all()
    )
    return [supplier_id for (supplier_id,) in rows]


def get_quotation_or_404(quotation_id: int) -> Quotation:
    quotation = db.session.get(Quotation, quotation_id)
    if quotation is None:
        raise NotFoundError(f"Quotation {quotation_id} not found", quotation_id=quotation_id)
    return quotation


def get_quote_item_or_404(item_id: int) -> QuoteItem:
    item = db.session.get(QuoteItem, item_id)
    if item is None:
        raise NotFoundError(f"Quote item {item_id} not found", item_id=item_id)
    return item
