"""
Master data: products, suppliers, teams, service scopes and kitchen demands.

Product and supplier codes are unique among non-deleted rows, compared
case-insensitively. Deleting a product or supplier only stamps deleted_at;
quote items and price history that reference it are kept.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func

from ..audit import log_action, serialize_model
from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import (
    RECORD_ACTIVE,
    RECORD_INACTIVE,
    TEAM_KITCHEN,
    TEAM_OFFICE,
    KitchenDemand,
    Product,
    ServiceScope,
    Supplier,
    Team,
    money,
)
from ..security import Actor, require_manage
from ..utils import normalize_code, parse_decimal, parse_period

logger = logging.getLogger(__name__)


# ----------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------
def _clean(value: Any) -> Optional[str]:
    s = (str(value) if value is not None else "").strip()
    return s or None


def _require(data: Dict[str, Any], name: str) -> str:
    value = _clean(data.get(name))
    if not value:
        raise ValidationError(f"{name} is required", field=name)
    return value


def _optional_amount(data: Dict[str, Any], name: str, positive: bool = False):
    raw = data.get(name)
    if raw is None or raw == "":
        return None
    value = parse_decimal(raw)
    if value is None:
        raise ValidationError(f"Invalid {name}", field=name)
    if value < 0 or (positive and value == 0):
        raise ValidationError(f"{name} must be {'positive' if positive else 'non-negative'}", field=name)
    return money(value)


def _status(data: Dict[str, Any], default: str = RECORD_ACTIVE) -> str:
    status = _clean(data.get("status")) or default
    if status not in (RECORD_ACTIVE, RECORD_INACTIVE):
        raise ValidationError(f"Invalid status '{status}'", field="status")
    return status


def _ensure_code_free(model, code: str, exclude_id: Optional[int] = None) -> None:
    query = model.query.filter(func.lower(model.code) == normalize_code(code)).filter(model.deleted_at.is_(None))
    if exclude_id is not None:
        query = query.filter(model.id != exclude_id)
    existing = query.first()
    if existing is not None:
        raise ConflictError(
            f"{model.__name__} code '{code}' is already used",
            field="code",
            existing_id=existing.id,
        )


def _live_or_404(model, entity_id: int):
    entity = db.session.get(model, entity_id)
    if entity is None or entity.deleted_at is not None:
        raise NotFoundError(f"{model.__name__} {entity_id} not found", entity_id=entity_id)
    return entity


def _save(actor: Actor, entity, action: str, before=None):
    try:
        db.session.add(entity)
        db.session.flush()
        log_action(actor, entity, action, before=before, after=serialize_model(entity))
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return entity


# ----------------------------------------------------------------------
# Products
# ----------------------------------------------------------------------
def list_products(category: Optional[str] = None, include_deleted: bool = False) -> List[Product]:
    query = Product.query
    if not include_deleted:
        query = query.filter(Product.deleted_at.is_(None))
    if category:
        query = query.filter(Product.category == category)
    return query.order_by(Product.code.asc()).all()


def create_product(actor: Actor, data: Dict[str, Any]) -> Product:
    require_manage(actor)
    code = _require(data, "code")
    product = Product(
        code=code,
        name=_require(data, "name"),
        specification=_clean(data.get("specification")),
        unit=_require(data, "unit"),
        category=_require(data, "category"),
        base_price=_optional_amount(data, "base_price"),
        base_quantity=_optional_amount(data, "base_quantity", positive=True),
        status=_status(data),
    )
    _ensure_code_free(Product, code)
    _save(actor, product, "CREATE")
    logger.info("Product %s created by %s", product.code, actor.username)
    return product


def update_product(actor: Actor, product_id: int, data: Dict[str, Any]) -> Product:
    require_manage(actor)
    product = _live_or_404(Product, product_id)
    before = serialize_model(product)

    changes: Dict[str, Any] = {}
    if "code" in data:
        changes["code"] = _require(data, "code")
        _ensure_code_free(Product, changes["code"], exclude_id=product.id)
    for name in ("name", "unit", "category"):
        if name in data:
            changes[name] = _require(data, name)
    if "specification" in data:
        changes["specification"] = _clean(data.get("specification"))
    if "base_price" in data:
        changes["base_price"] = _optional_amount(data, "base_price")
    if "base_quantity" in data:
        changes["base_quantity"] = _optional_amount(data, "base_quantity", positive=True)
    if "status" in data:
        changes["status"] = _status(data)

    for name, value in changes.items():
        setattr(product, name, value)

    return _save(actor, product, "UPDATE", before=before)


def delete_product(actor: Actor, product_id: int) -> Product:
    require_manage(actor)
    product = _live_or_404(Product, product_id)
    before = serialize_model(product)
    product.deleted_at = datetime.utcnow()
    product.status = RECORD_INACTIVE
    return _save(actor, product, "DELETE", before=before)


# ----------------------------------------------------------------------
# Suppliers
# ----------------------------------------------------------------------
def list_suppliers(include_deleted: bool = False) -> List[Supplier]:
    query = Supplier.query
    if not include_deleted:
        query = query.filter(Supplier.deleted_at.is_(None))
    return query.order_by(Supplier.code.asc()).all()


def create_supplier(actor: Actor, data: Dict[str, Any]) -> Supplier:
    require_manage(actor)
    code = _require(data, "code")
    supplier = Supplier(
        code=code,
        name=_require(data, "name"),
        tax_id=_clean(data.get("tax_id")),
        address=_clean(data.get("address")),
        contact_person=_clean(data.get("contact_person")),
        phone=_clean(data.get("phone")),
        email=_clean(data.get("email")),
        status=_status(data),
    )
    _ensure_code_free(Supplier, code)
    _save(actor, supplier, "CREATE")
    logger.info("Supplier %s created by %s", supplier.code, actor.username)
    return supplier


def update_supplier(actor: Actor, supplier_id: int, data: Dict[str, Any]) -> Supplier:
    require_manage(actor)
    supplier = _live_or_404(Supplier, supplier_id)
    before = serialize_model(supplier)

    changes: Dict[str, Any] = {}
    if "code" in data:
        changes["code"] = _require(data, "code")
        _ensure_code_free(Supplier, changes["code"], exclude_id=supplier.id)
    if "name" in data:
        changes["name"] = _require(data, "name")
    for name in ("tax_id", "address", "contact_person", "phone", "email"):
        if name in data:
            changes[name] = _clean(data.get(name))
    if "status" in data:
        changes["status"] = _status(data)

    for name, value in changes.items():
        setattr(supplier, name, value)

    return _save(actor, supplier, "UPDATE", before=before)


def delete_supplier(actor: Actor, supplier_id: int) -> Supplier:
    require_manage(actor)
    supplier = _live_or_404(Supplier, supplier_id)
    before = serialize_model(supplier)
    supplier.deleted_at = datetime.utcnow()
    supplier.status = RECORD_INACTIVE
    return _save(actor, supplier, "DELETE", before=before)


# ----------------------------------------------------------------------
# Teams & scopes
# ----------------------------------------------------------------------
def list_teams(team_type: Optional[str] = None) -> List[Team]:
    query = Team.query.filter(Team.deleted_at.is_(None))
    if team_type:
        query = query.filter(Team.team_type == team_type)
    return query.order_by(Team.name.asc()).all()


def _team_type(data: Dict[str, Any]) -> str:
    team_type = (_clean(data.get("team_type")) or TEAM_OFFICE).upper()
    if team_type not in (TEAM_KITCHEN, TEAM_OFFICE):
        raise ValidationError(f"Invalid team type '{team_type}'", field="team_type")
    return team_type


def create_team(actor: Actor, data: Dict[str, Any]) -> Team:
    require_manage(actor)
    team = Team(
        name=_require(data, "name"),
        team_code=_clean(data.get("team_code")),
        region=_clean(data.get("region")),
        address=_clean(data.get("address")),
        team_type=_team_type(data),
        status=_status(data),
    )
    return _save(actor, team, "CREATE")


def update_team(actor: Actor, team_id: int, data: Dict[str, Any]) -> Team:
    require_manage(actor)
    team = _live_or_404(Team, team_id)
    before = serialize_model(team)
    changes: Dict[str, Any] = {}
    if "name" in data:
        changes["name"] = _require(data, "name")
    for name in ("team_code", "region", "address"):
        if name in data:
            changes[name] = _clean(data.get(name))
    if "team_type" in data:
        changes["team_type"] = _team_type(data)
    if "status" in data:
        changes["status"] = _status(data)

    for name, value in changes.items():
        setattr(team, name, value)
    return _save(actor, team, "UPDATE", before=before)


def set_service_scope(actor: Actor, supplier_id: int, team_id: int, is_active: bool = True) -> ServiceScope:
    """Create or toggle the supplier <-> team scope. Never deletes the row."""
    require_manage(actor)
    _live_or_404(Supplier, supplier_id)
    _live_or_404(Team, team_id)

    scope = ServiceScope.query.filter_by(supplier_id=supplier_id, team_id=team_id).first()
    if scope is None:
        scope = ServiceScope(supplier_id=supplier_id, team_id=team_id, is_active=bool(is_active))
        return _save(actor, scope, "CREATE")

    before = serialize_model(scope)
    scope.is_active = bool(is_active)
    return _save(actor, scope, "UPDATE", before=before)


def upsert_kitchen_demand(
    actor: Actor,
    team_id: int,
    product_id: int,
    period: str,
    quantity,
    unit: Optional[str] = None,
    notes: Optional[str] = None,
) -> KitchenDemand:
    require_manage(actor)
    period = parse_period(period)
    team = _live_or_404(Team, team_id)
    product = _live_or_404(Product, product_id)

    value = parse_decimal(quantity)
    if value is None or value <= 0:
        raise ValidationError("Demand quantity must be positive", field="quantity")

    demand = KitchenDemand.query.filter_by(team_id=team.id, product_id=product.id, period=period).first()
    before = serialize_model(demand) if demand is not None else None
    if demand is None:
        demand = KitchenDemand(team_id=team.id, product_id=product.id, period=period, created_by=actor.user_id)

    demand.quantity = value
    demand.unit = _clean(unit) or product.unit
    demand.notes = _clean(notes)
    demand.status = RECORD_ACTIVE
    return _save(actor, demand, "UPDATE" if before else "CREATE", before=before)
