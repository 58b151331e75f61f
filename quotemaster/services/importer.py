"""
quotemaster/services/importer.py

Bulk quotation import.

Each file is validated and reconciled on its own, inside its own transaction.
The batch is NOT transactional: a failure in one file leaves the files already
committed in place, and the remaining files are still processed. Partial batch
success is expected and reported through ImportResult.

Per-file validation order (first failure aborts the file):
1) header period/region match the batch target
2) no duplicate product codes within the file
3) supplier code resolves to a live supplier
4) every product code resolves to a live product (all missing codes reported together)
5) existing quotation for (supplier, period, region) requires overwrite=True
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional, Tuple, Union

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..audit import log_action, serialize_model
from ..errors import (
    ConflictError,
    ImmutablePriceError,
    QuoteMasterError,
    UnknownReferenceError,
    ValidationError,
)
from ..extensions import db
from ..models import STATUS_APPROVED, STATUS_PENDING, Product, Quotation, QuoteItem, Supplier
from ..security import Actor, require_manage
from ..spreadsheets import ParsedQuotation, QuotationHeader, build_quotation_workbook, parse_quotation_workbook
from ..utils import normalize_code, parse_period

logger = logging.getLogger(__name__)

ImportSource = Tuple[str, Union[bytes, ParsedQuotation]]


@dataclass
class FileOutcome:
    filename: str
    status: str = "failed"
    quotation_id: Optional[int] = None
    items: int = 0
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "filename": self.filename,
            "status": self.status,
            "quotation_id": self.quotation_id,
            "items": self.items,
            "errors": self.errors,
            "warnings": self.warnings,
        }


@dataclass
class ImportResult:
    total_files: int = 0
    processed_files: int = 0
    total_quotations: int = 0
    created_quotations: int = 0
    updated_quotations: int = 0
    total_items: int = 0
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    files: List[FileOutcome] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.processed_files > 0 and not self.errors

    def add_error(self, message: str) -> None:
        if message not in self.errors:
            self.errors.append(message)

    def add_warning(self, message: str) -> None:
        if message not in self.warnings:
            self.warnings.append(message)

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "total_files": self.total_files,
            "processed_files": self.processed_files,
            "total_quotations": self.total_quotations,
            "created_quotations": self.created_quotations,
            "updated_quotations": self.updated_quotations,
            "total_items": self.total_items,
            "errors": self.errors,
            "warnings": self.warnings,
            "files": [f.to_dict() for f in self.files],
        }


def _find_supplier(code: str) -> Supplier:
    supplier = (
        Supplier.query
        .filter(func.lower(Supplier.code) == normalize_code(code))
        .filter(Supplier.deleted_at.is_(None))
        .first()
    )
    if supplier is None:
        raise UnknownReferenceError(f"Supplier with code {code} not found", supplier_code=code)
    return supplier


def _find_products(codes: List[str]) -> dict:
    wanted = {normalize_code(c) for c in codes}
    found = (
        Product.query
        .filter(func.lower(Product.code).in_(wanted))
        .filter(Product.deleted_at.is_(None))
        .all()
    )
    by_code = {normalize_code(p.code): p for p in found}
    missing = [c for c in codes if normalize_code(c) not in by_code]
    if missing:
        raise UnknownReferenceError(
            f"Products not found for codes: {', '.join(missing)}",
            product_codes=missing,
        )
    return by_code


def _check_duplicates(parsed: ParsedQuotation) -> None:
    seen = set()
    duplicates = []
    for item in parsed.items:
        key = normalize_code(item.product_code)
        if key in seen and item.product_code not in duplicates:
            duplicates.append(item.product_code)
        seen.add(key)
    if duplicates:
        raise ValidationError(
            f"Duplicate product codes in file: {', '.join(duplicates)}",
            field="product_code",
            product_codes=duplicates,
        )


def reconcile_quotation(
    actor: Actor,
    parsed: ParsedQuotation,
    period: str,
    region: str,
    overwrite: bool = False,
) -> Tuple[Quotation, bool, int]:
    """
    Create or overwrite one quotation from a parsed file, in one transaction.

    Returns (quotation, created, item_count).
    """
    require_manage(actor)
    header = parsed.header

    if header.period != period:
        raise ValidationError(
            f"Period in file ({header.period}) does not match the selected period ({period})",
            field="period",
        )
    if header.region != region:
        raise ValidationError(
            f"Region in file ({header.region}) does not match the selected region ({region})",
            field="region",
        )
    if not parsed.items:
        raise ValidationError("File has no product rows", field="items")

    _check_duplicates(parsed)
    supplier = _find_supplier(header.supplier_code)
    products = _find_products([item.product_code for item in parsed.items])

    existing = Quotation.query.filter_by(supplier_id=supplier.id, period=period, region=region).first()
    if existing is not None and not overwrite:
        raise ConflictError(
            f"Quotation {existing.code} already exists for supplier {supplier.code} "
            f"in period {period} / {region}; enable overwrite to replace it",
            quotation_id=existing.id,
            quotation_code=existing.code,
        )
    if existing is not None and existing.status == STATUS_APPROVED:
        raise ImmutablePriceError(
            f"Quotation {existing.code} is approved; its prices cannot be overwritten",
            quotation_id=existing.id,
        )

    currency = current_app.config.get("DEFAULT_CURRENCY", "VND")
    now = datetime.utcnow()

    try:
        if existing is not None:
            quotation = existing
            before = serialize_model(quotation)
            quotation.items.clear()
            db.session.flush()

            quotation.quote_date = header.quote_date
            quotation.update_date = now
            created = False
        else:
            before = None
            first_product = products[normalize_code(parsed.items[0].product_code)]
            quotation = Quotation(
                code=Quotation.build_code(supplier.code, period, region),
                period=period,
                region=region,
                category=first_product.category,
                supplier_id=supplier.id,
                status=STATUS_PENDING,
                quote_date=header.quote_date,
                created_by=actor.user_id,
            )
            db.session.add(quotation)
            created = True

        for item in parsed.items:
            quotation.items.append(
                QuoteItem(
                    product_id=products[normalize_code(item.product_code)].id,
                    quantity=item.quantity,
                    initial_price=item.initial_price,
                    vat_percentage=item.vat_percentage,
                    currency=currency,
                    notes=item.notes,
                )
            )
        db.session.flush()

        log_action(
            actor,
            quotation,
            "IMPORT" if created else "OVERWRITE",
            before=before,
            after=serialize_model(quotation),
        )
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(
            f"Quotation for supplier {supplier.code} in period {period} / {region} was created concurrently",
            supplier_code=supplier.code,
        )
    except Exception:
        db.session.rollback()
        raise

    return quotation, created, len(parsed.items)


def import_quotations(
    actor: Actor,
    sources: Iterable[ImportSource],
    period: str,
    region: str,
    overwrite: bool = False,
) -> ImportResult:
    """
    Import a batch of quotation files for one period + region.

    sources: (filename, workbook bytes or an already parsed quotation)
    """
    require_manage(actor)
    period = parse_period(period)
    region = (region or "").strip()
    if not region:
        raise ValidationError("Region is required", field="region")

    sources = list(sources)
    max_files = current_app.config.get("MAX_IMPORT_FILES", 20)
    if len(sources) > max_files:
        raise ValidationError(f"At most {max_files} files can be imported at once", field="files")

    result = ImportResult(total_files=len(sources))
    if not sources:
        result.add_error("No files selected")
        return result

    for filename, source in sources:
        outcome = FileOutcome(filename=filename)
        result.files.append(outcome)

        if isinstance(source, ParsedQuotation):
            parsed = source
            warnings = []
        else:
            parse_result = parse_quotation_workbook(source)
            warnings = [w.message for w in parse_result.warnings]
            if not parse_result.success:
                outcome.errors = [e.message for e in parse_result.errors]
                outcome.warnings = warnings
                result.add_error(f"File {filename}: {', '.join(outcome.errors)}")
                continue
            parsed = parse_result.data

        try:
            quotation, created, count = reconcile_quotation(actor, parsed, period, region, overwrite)
        except QuoteMasterError as exc:
            outcome.errors = [exc.message]
            result.add_error(f"File {filename}: {exc.message}")
            logger.warning("Import of %s failed: %s", filename, exc.message)
            continue

        outcome.status = "created" if created else "updated"
        outcome.quotation_id = quotation.id
        outcome.items = count
        outcome.warnings = warnings

        result.processed_files += 1
        result.total_quotations += 1
        result.total_items += count
        if created:
            result.created_quotations += 1
        else:
            result.updated_quotations += 1
        if warnings:
            result.add_warning(f"File {filename}: {', '.join(dict.fromkeys(warnings))}")

    logger.info(
        "Imported %d/%d files for %s / %s (%d created, %d updated, %d items) by %s",
        result.processed_files, result.total_files, period, region,
        result.created_quotations, result.updated_quotations, result.total_items, actor.username,
    )
    return result


def build_import_template(
    actor: Actor,
    period: str,
    region: str,
    supplier_code: str,
    category: Optional[str] = None,
) -> bytes:
    """
    Pre-filled import workbook for one supplier: header block plus one row per
    live product, quantity defaulted to the product base quantity, price left blank.
    """
    period = parse_period(period)
    region = (region or "").strip()
    if not region:
        raise ValidationError("Region is required", field="region")
    supplier = _find_supplier(supplier_code)

    query = Product.query.filter(Product.deleted_at.is_(None))
    if category:
        query = query.filter(Product.category == category)
    products = query.order_by(Product.category.asc(), Product.code.asc()).all()

    header = QuotationHeader(period=period, region=region, supplier_code=supplier.code, supplier_name=supplier.name)
    rows = [
        {
            "product_code": p.code,
            "product_name": p.name,
            "specification": p.specification,
            "unit": p.unit,
            "quantity": p.base_quantity,
        }
        for p in products
    ]
    logger.debug(
        "Import template for %s / %s / %s: %d products (requested by %s)",
        supplier.code, period, region, len(rows), actor.username,
    )
    return build_quotation_workbook(header, rows)
