"""
Master data routes: products, suppliers, teams, service scopes, kitchen demands.

Reads are open to any logged-in user. Writes need the manage capability;
the services check it again on the Actor they receive.
"""

from flask import Blueprint, jsonify, request
from flask_login import login_required

from ...audit import serialize_model
from ...errors import ValidationError
from ...models import KitchenDemand, ServiceScope
from ...security import current_actor, manage_required
from ...services import catalog
from ...utils import parse_bool, parse_optional_int, parse_period, request_payload


catalog_bp = Blueprint("catalog", __name__, url_prefix="/catalog")


def _required_int(data: dict, name: str) -> int:
    value = parse_optional_int(data.get(name))
    if value is None:
        raise ValidationError(f"{name} is required", field=name)
    return value


# ----------------------------------------------------------------------
# Products
# ----------------------------------------------------------------------
@catalog_bp.route("/products", methods=["GET"])
@login_required
def products_list():
    products = catalog.list_products(
        category=request.args.get("category") or None,
        include_deleted=parse_bool(request.args.get("include_deleted")),
    )
    return jsonify([serialize_model(p) for p in products])


@catalog_bp.route("/products", methods=["POST"])
@login_required
@manage_required
def product_create():
    product = catalog.create_product(current_actor(), request_payload())
    return jsonify(serialize_model(product)), 201


@catalog_bp.route("/products/<int:product_id>", methods=["PATCH"])
@login_required
@manage_required
def product_update(product_id: int):
    product = catalog.update_product(current_actor(), product_id, request_payload())
    return jsonify(serialize_model(product))


@catalog_bp.route("/products/<int:product_id>", methods=["DELETE"])
@login_required
@manage_required
def product_delete(product_id: int):
    product = catalog.delete_product(current_actor(), product_id)
    return jsonify(serialize_model(product))


# ----------------------------------------------------------------------
# Suppliers
# ----------------------------------------------------------------------
@catalog_bp.route("/suppliers", methods=["GET"])
@login_required
def suppliers_list():
    suppliers = catalog.list_suppliers(include_deleted=parse_bool(request.args.get("include_deleted")))
    return jsonify([serialize_model(s) for s in suppliers])


@catalog_bp.route("/suppliers", methods=["POST"])
@login_required
@manage_required
def supplier_create():
    supplier = catalog.create_supplier(current_actor(), request_payload())
    return jsonify(serialize_model(supplier)), 201


@catalog_bp.route("/suppliers/<int:supplier_id>", methods=["PATCH"])
@login_required
@manage_required
def supplier_update(supplier_id: int):
    supplier = catalog.update_supplier(current_actor(), supplier_id, request_payload())
    return jsonify(serialize_model(supplier))


@catalog_bp.route("/suppliers/<int:supplier_id>", methods=["DELETE"])
@login_required
@manage_required
def supplier_delete(supplier_id: int):
    supplier = catalog.delete_supplier(current_actor(), supplier_id)
    return jsonify(serialize_model(supplier))


# ----------------------------------------------------------------------
# Teams, scopes, demands
# ----------------------------------------------------------------------
@catalog_bp.route("/teams", methods=["GET"])
@login_required
def teams_list():
    teams = catalog.list_teams(team_type=request.args.get("team_type") or None)
    return jsonify([serialize_model(t) for t in teams])


@catalog_bp.route("/teams", methods=["POST"])
@login_required
@manage_required
def team_create():
    team = catalog.create_team(current_actor(), request_payload())
    return jsonify(serialize_model(team)), 201


@catalog_bp.route("/teams/<int:team_id>", methods=["PATCH"])
@login_required
@manage_required
def team_update(team_id: int):
    team = catalog.update_team(current_actor(), team_id, request_payload())
    return jsonify(serialize_model(team))


@catalog_bp.route("/teams/<int:team_id>/scopes", methods=["GET"])
@login_required
def team_scopes(team_id: int):
    scopes = ServiceScope.query.filter_by(team_id=team_id).order_by(ServiceScope.supplier_id.asc()).all()
    return jsonify([serialize_model(s) for s in scopes])


@catalog_bp.route("/scopes", methods=["PUT"])
@login_required
@manage_required
def scope_set():
    data = request_payload()
    scope = catalog.set_service_scope(
        current_actor(),
        supplier_id=_required_int(data, "supplier_id"),
        team_id=_required_int(data, "team_id"),
        is_active=parse_bool(data.get("is_active"), default=True),
    )
    return jsonify(serialize_model(scope))


@catalog_bp.route("/teams/<int:team_id>/demands", methods=["GET"])
@login_required
def team_demands(team_id: int):
    period = parse_period(request.args.get("period"))
    demands = (
        KitchenDemand.query.filter_by(team_id=team_id, period=period)
        .order_by(KitchenDemand.product_id.asc())
        .all()
    )
    return jsonify([serialize_model(d) for d in demands])


@catalog_bp.route("/teams/<int:team_id>/demands", methods=["PUT"])
@login_required
@manage_required
def team_demand_upsert(team_id: int):
    data = request_payload()
    demand = catalog.upsert_kitchen_demand(
        current_actor(),
        team_id=team_id,
        product_id=_required_int(data, "product_id"),
        period=data.get("period"),
        quantity=data.get("quantity"),
        unit=data.get("unit"),
        notes=data.get("notes"),
    )
    return jsonify(serialize_model(demand))
