"""
Quotation routes.

- list / detail
- status transitions (negotiate / approve / cancel) with an optional
  expected_version guard
- per-item negotiated and staged approved prices
- batch negotiate / approve
- import template download and bulk import of supplier workbooks
  (multipart upload, field "files")

Audit:
- every mutation is logged by the service it calls
"""

import io
import logging

from flask import Blueprint, jsonify, request, send_file
from flask_login import login_required

from ...audit import serialize_model
from ...errors import ValidationError
from ...models import Quotation
from ...security import current_actor, manage_required
from ...services import importer, workflow
from ...services.queries import get_quotation_or_404
from ...spreadsheets import XLSX_MIMETYPE
from ...utils import parse_bool, parse_optional_int, parse_period, request_payload


logger = logging.getLogger(__name__)

quotations_bp = Blueprint("quotations", __name__, url_prefix="/quotations")


def quotation_to_dict(quotation: Quotation, with_items: bool = False) -> dict:
    data = serialize_model(quotation)
    data["supplier_code"] = quotation.supplier.code if quotation.supplier else None
    data["supplier_name"] = quotation.supplier.name if quotation.supplier else None
    data["item_count"] = len(quotation.items)
    if with_items:
        items = []
        for item in quotation.items:
            row = serialize_model(item)
            row["product_code"] = item.product.code if item.product else None
            row["product_name"] = item.product.name if item.product else None
            items.append(row)
        data["items"] = items
    return data


def _ids(data: dict) -> list:
    raw = data.get("quotation_ids")
    if not isinstance(raw, list) or not raw:
        raise ValidationError("quotation_ids must be a non-empty list", field="quotation_ids")
    ids = [parse_optional_int(v) for v in raw]
    if any(v is None for v in ids):
        raise ValidationError("quotation_ids must contain integers", field="quotation_ids")
    return ids


# ----------------------------------------------------------------------
# Read
# ----------------------------------------------------------------------
@quotations_bp.route("", methods=["GET"])
@login_required
def list_quotations():
    query = Quotation.query
    if request.args.get("period"):
        query = query.filter(Quotation.period == parse_period(request.args["period"]))
    if request.args.get("region"):
        query = query.filter(Quotation.region == request.args["region"])
    if request.args.get("status"):
        query = query.filter(Quotation.status == request.args["status"])
    supplier_id = parse_optional_int(request.args.get("supplier_id"))
    if supplier_id is not None:
        query = query.filter(Quotation.supplier_id == supplier_id)

    quotations = query.order_by(Quotation.period.desc(), Quotation.code.asc()).all()
    return jsonify([quotation_to_dict(q) for q in quotations])


@quotations_bp.route("/<int:quotation_id>", methods=["GET"])
@login_required
def quotation_detail(quotation_id: int):
    return jsonify(quotation_to_dict(get_quotation_or_404(quotation_id), with_items=True))


# ----------------------------------------------------------------------
# Status transitions
# ----------------------------------------------------------------------
@quotations_bp.route("/<int:quotation_id>/transition", methods=["POST"])
@login_required
@manage_required
def quotation_transition(quotation_id: int):
    data = request_payload()
    target = str(data.get("status") or "").strip()
    if not target:
        raise ValidationError("status is required", field="status")

    approved_prices = data.get("approved_prices")
    if approved_prices is not None and not isinstance(approved_prices, dict):
        raise ValidationError("approved_prices must be an object of item id -> price", field="approved_prices")

    quotation = workflow.transition_quotation(
        current_actor(),
        quotation_id,
        target,
        approved_prices=approved_prices,
        expected_version=parse_optional_int(data.get("expected_version")),
        fill_missing=parse_bool(data.get("fill_missing")),
    )
    return jsonify(quotation_to_dict(quotation, with_items=True))


@quotations_bp.route("/items/<int:item_id>/negotiated-price", methods=["PUT"])
@login_required
@manage_required
def item_negotiated_price(item_id: int):
    data = request_payload()
    item = workflow.set_negotiated_price(
        current_actor(),
        item_id,
        data.get("price"),
        expected_version=parse_optional_int(data.get("expected_version")),
    )
    return jsonify(serialize_model(item))


@quotations_bp.route("/items/<int:item_id>/approved-price", methods=["PUT"])
@login_required
@manage_required
def item_approved_price(item_id: int):
    data = request_payload()
    item = workflow.stage_approved_price(current_actor(), item_id, data.get("price"))
    return jsonify(serialize_model(item))


@quotations_bp.route("/batch/negotiate", methods=["POST"])
@login_required
@manage_required
def batch_negotiate():
    outcome = workflow.batch_negotiate(current_actor(), _ids(request_payload()))
    return jsonify(outcome.to_dict())


@quotations_bp.route("/batch/approve", methods=["POST"])
@login_required
@manage_required
def batch_approve():
    data = request_payload()
    outcome = workflow.batch_approve(
        current_actor(),
        _ids(data),
        fill_missing=parse_bool(data.get("fill_missing"), default=True),
    )
    return jsonify(outcome.to_dict())


# ----------------------------------------------------------------------
# Import
# ----------------------------------------------------------------------
@quotations_bp.route("/template", methods=["GET"])
@login_required
def import_template():
    """Blank import workbook for ?period=&region=&supplier_code=[&category=]."""
    content = importer.build_import_template(
        current_actor(),
        request.args.get("period"),
        request.args.get("region"),
        request.args.get("supplier_code"),
        category=request.args.get("category") or None,
    )
    return send_file(
        io.BytesIO(content),
        mimetype=XLSX_MIMETYPE,
        as_attachment=True,
        download_name=f"mau-bao-gia_{request.args.get('supplier_code')}.xlsx",
    )


@quotations_bp.route("/import", methods=["POST"])
@login_required
@manage_required
def import_files():
    """
    multipart/form-data:
        period, region, overwrite (optional), files (1..MAX_IMPORT_FILES workbooks)
    """
    uploads = [f for f in request.files.getlist("files") if f and f.filename]
    sources = [(f.filename, f.read()) for f in uploads]

    result = importer.import_quotations(
        current_actor(),
        sources,
        period=request.form.get("period"),
        region=request.form.get("region"),
        overwrite=parse_bool(request.form.get("overwrite")),
    )
    logger.debug("Import request with %d files finished", len(sources))
    status = 200 if result.processed_files else 400
    return jsonify(result.to_dict()), status
