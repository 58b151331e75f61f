"""
Comparison routes: matrix, KPI, cascading filters and spreadsheet exports.

Query parameters shared by the matrix endpoints:
    period (required), region, category (repeatable), team_id,
    mode=working|approval, sort=<key>, desc=1
"""

import io
import logging

from flask import Blueprint, jsonify, request, send_file
from flask_login import login_required

from ...comparison import parse_sort_key
from ...security import current_actor, manage_required
from ...services import comparison
from ...spreadsheets import XLSX_MIMETYPE, target_price_filename
from ...utils import parse_bool, parse_optional_int, parse_period, request_payload


logger = logging.getLogger(__name__)

comparison_bp = Blueprint("comparison", __name__, url_prefix="/comparison")


def _filters(source) -> dict:
    categories = source.getlist("category") if hasattr(source, "getlist") else source.get("categories") or []
    return {
        "period": parse_period(source.get("period")),
        "region": (source.get("region") or "").strip() or None,
        "categories": [c for c in categories if c],
    }


def _xlsx(content: bytes, filename: str):
    return send_file(io.BytesIO(content), mimetype=XLSX_MIMETYPE, as_attachment=True, download_name=filename)


@comparison_bp.route("/matrix", methods=["GET"])
@login_required
def matrix():
    filters = _filters(request.args)
    sort = request.args.get("sort")
    report = comparison.get_comparison_report(
        current_actor(),
        filters["period"],
        filters["region"],
        filters["categories"],
        mode=request.args.get("mode") or comparison.MODE_WORKING,
        team_id=parse_optional_int(request.args.get("team_id")),
        sort=parse_sort_key(sort) if sort else None,
        descending=parse_bool(request.args.get("desc")),
    )
    return jsonify(report.to_dict())


@comparison_bp.route("/summary", methods=["GET"])
@login_required
def summary():
    period = parse_period(request.args.get("period"))
    return jsonify(comparison.get_quotation_summary(current_actor(), period, request.args.get("region") or None))


@comparison_bp.route("/periods", methods=["GET"])
@login_required
def periods():
    return jsonify(comparison.get_available_periods(current_actor()))


@comparison_bp.route("/regions", methods=["GET"])
@login_required
def regions():
    return jsonify(comparison.get_regions_for_period(current_actor(), request.args.get("period")))


@comparison_bp.route("/categories", methods=["GET"])
@login_required
def categories():
    return jsonify(
        comparison.get_categories_for_period_and_region(
            current_actor(),
            request.args.get("period"),
            request.args.get("region"),
        )
    )


# ----------------------------------------------------------------------
# Exports
# ----------------------------------------------------------------------
@comparison_bp.route("/export", methods=["GET"])
@login_required
def export_matrix():
    filters = _filters(request.args)
    mode = request.args.get("mode") or comparison.MODE_WORKING
    content = comparison.export_comparison_workbook(
        current_actor(),
        filters["period"],
        filters["region"],
        filters["categories"],
        mode=mode,
        team_id=parse_optional_int(request.args.get("team_id")),
    )
    filename = f"so-sanh-gia_{filters['period']}_{filters['region'] or 'team'}_{mode}.xlsx"
    return _xlsx(content, filename)


@comparison_bp.route("/target-prices", methods=["GET"])
@login_required
def export_target_prices():
    filters = _filters(request.args)
    content = comparison.export_target_price_workbook(
        current_actor(), filters["period"], filters["region"], filters["categories"]
    )
    return _xlsx(content, target_price_filename(filters["period"], filters["region"], "ALL"))


@comparison_bp.route("/negotiate-and-export", methods=["POST"])
@login_required
@manage_required
def negotiate_and_export():
    """Move pending quotations to negotiation and download the per-supplier target price archive."""
    filters = _filters(request_payload())
    outcome, archive = comparison.negotiate_and_export_target_prices(
        current_actor(), filters["period"], filters["region"], filters["categories"]
    )
    logger.info(
        "Negotiate-and-export %s / %s: %d moved to negotiation",
        filters["period"], filters["region"], len(outcome.succeeded),
    )
    response = send_file(
        io.BytesIO(archive),
        mimetype="application/zip",
        as_attachment=True,
        download_name=f"gia-muc-tieu_{filters['period']}_{filters['region']}.zip",
    )
    response.headers["X-Negotiated-Quotations"] = ",".join(str(i) for i in outcome.succeeded)
    return response
