"""
Team price list routes (approved prices only, read-only).
"""

from flask import Blueprint, jsonify, request
from flask_login import login_required

from ...security import current_actor
from ...services import price_list


price_lists_bp = Blueprint("price_lists", __name__, url_prefix="/price-lists")


@price_lists_bp.route("/teams/<int:team_id>", methods=["GET"])
@login_required
def team_price_list(team_id: int):
    result = price_list.get_price_list_matrix(current_actor(), team_id, request.args.get("period"))
    return jsonify(result.to_dict())


@price_lists_bp.route("/teams/<int:team_id>/periods", methods=["GET"])
@login_required
def team_periods(team_id: int):
    return jsonify(price_list.get_available_periods_for_team(current_actor(), team_id))


@price_lists_bp.route("/teams/<int:team_id>/products/<int:product_id>", methods=["GET"])
@login_required
def team_product_comparison(team_id: int, product_id: int):
    return jsonify(
        price_list.get_product_price_comparison(current_actor(), team_id, product_id, request.args.get("period"))
    )
