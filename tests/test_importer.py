from datetime import datetime
from decimal import Decimal
from io import BytesIO

import pytest
from openpyxl import load_workbook

from quotemaster.errors import ConflictError, ImmutablePriceError, UnknownReferenceError, ValidationError
from quotemaster.models import STATUS_APPROVED, STATUS_NEGOTIATION, STATUS_PENDING, AuditLog, Quotation, QuoteItem
from quotemaster.services import catalog
from quotemaster.services.importer import build_import_template, import_quotations, reconcile_quotation
from quotemaster.spreadsheets import (
    ITEMS_SHEET,
    ParsedItem,
    ParsedQuotation,
    QuotationHeader,
    build_quotation_workbook,
    parse_quotation_workbook,
)

PERIOD = "2024-01-01"


def workbook(supplier_code="S1", period=PERIOD, region="HCM", items=None):
    header = QuotationHeader(
        period=period,
        region=region,
        supplier_code=supplier_code,
        supplier_name=f"Supplier {supplier_code}",
        quote_date=datetime(2024, 1, 2),
    )
    if items is None:
        items = [
            {"product_code": "P1", "product_name": "Rau", "unit": "kg", "quantity": 10,
             "initial_price": 12000, "vat_percentage": 5},
            {"product_code": "p2", "product_name": "Thịt", "unit": "kg", "quantity": 3,
             "initial_price": 125000, "vat_percentage": 8},
        ]
    return build_quotation_workbook(header, items)


def parsed(supplier_code="S1", codes=("P1",), period=PERIOD, region="HCM"):
    header = QuotationHeader(period=period, region=region, supplier_code=supplier_code, supplier_name="x")
    items = [
        ParsedItem(
            row=i + 2,
            product_code=code,
            product_name=code,
            unit="kg",
            quantity=Decimal("1"),
            initial_price=Decimal("100"),
            vat_percentage=Decimal("0"),
        )
        for i, code in enumerate(codes)
    ]
    return ParsedQuotation(header=header, items=items)


@pytest.fixture
def catalog_rows(factory):
    return {
        "s1": factory.supplier("S1"),
        "s2": factory.supplier("S2"),
        "p1": factory.product("P1", category="Rau củ"),
        "p2": factory.product("P2", category="Thịt"),
    }


def test_import_creates_pending_quotation(manager, catalog_rows):
    result = import_quotations(manager, [("s1.xlsx", workbook())], PERIOD, "HCM")

    assert result.success
    assert result.created_quotations == 1
    assert result.total_items == 2

    quotation = Quotation.query.one()
    assert quotation.status == STATUS_PENDING
    assert quotation.code == "Q-S1-2024-01-01-HCM"
    assert quotation.category == "Rau củ"
    assert quotation.quote_date == datetime(2024, 1, 2)
    assert [i.initial_price for i in quotation.items] == [Decimal("12000"), Decimal("125000")]
    assert {i.currency for i in quotation.items} == {"VND"}
    assert AuditLog.query.filter_by(action="IMPORT").count() == 1


def test_period_mismatch_rejects_file(manager, catalog_rows):
    result = import_quotations(manager, [("feb.xlsx", workbook(period="2024-02-01"))], PERIOD, "HCM")

    assert not result.success
    assert result.processed_files == 0
    assert "Period" in result.errors[0]
    assert result.errors[0].startswith("File feb.xlsx: ")
    assert Quotation.query.count() == 0


def test_region_mismatch(manager, catalog_rows):
    with pytest.raises(ValidationError) as exc:
        reconcile_quotation(manager, parsed(region="HN"), PERIOD, "HCM")
    assert exc.value.field == "region"


def test_missing_products_are_listed_together(manager, catalog_rows):
    with pytest.raises(UnknownReferenceError) as exc:
        reconcile_quotation(manager, parsed(codes=("P1", "X9", "Y7")), PERIOD, "HCM")
    assert exc.value.details["product_codes"] == ["X9", "Y7"]
    assert Quotation.query.count() == 0


def test_unknown_supplier(manager, catalog_rows):
    with pytest.raises(UnknownReferenceError):
        reconcile_quotation(manager, parsed(supplier_code="NOPE"), PERIOD, "HCM")


def test_duplicate_codes_in_file(manager, catalog_rows):
    with pytest.raises(ValidationError):
        reconcile_quotation(manager, parsed(codes=("P1", "p1")), PERIOD, "HCM")


def test_existing_quotation_needs_overwrite(manager, catalog_rows):
    reconcile_quotation(manager, parsed(codes=("P1",)), PERIOD, "HCM")
    with pytest.raises(ConflictError):
        reconcile_quotation(manager, parsed(codes=("P2",)), PERIOD, "HCM")


def test_overwrite_replaces_items_and_keeps_status(db, manager, catalog_rows):
    quotation, created, _ = reconcile_quotation(manager, parsed(codes=("P1", "P2")), PERIOD, "HCM")
    assert created
    quotation.status = STATUS_NEGOTIATION
    db.session.commit()

    quotation, created, count = reconcile_quotation(manager, parsed(codes=("P2",)), PERIOD, "HCM", overwrite=True)

    assert not created
    assert count == 1
    assert quotation.status == STATUS_NEGOTIATION
    assert QuoteItem.query.count() == 1
    assert quotation.items[0].product_id == catalog_rows["p2"].id
    assert AuditLog.query.filter_by(action="OVERWRITE").count() == 1


def test_approved_quotation_cannot_be_overwritten(db, manager, catalog_rows):
    quotation, _, _ = reconcile_quotation(manager, parsed(), PERIOD, "HCM")
    quotation.status = STATUS_APPROVED
    db.session.commit()

    with pytest.raises(ImmutablePriceError):
        reconcile_quotation(manager, parsed(), PERIOD, "HCM", overwrite=True)


def test_partial_batch_success(manager, catalog_rows):
    result = import_quotations(
        manager,
        [
            ("good.xlsx", workbook("S1")),
            ("bad.xlsx", workbook("S2", items=[{"product_code": "ZZ", "product_name": "?", "unit": "kg",
                                                "quantity": 1, "initial_price": 1, "vat_percentage": 0}])),
            ("broken.xlsx", b"not a workbook"),
        ],
        PERIOD,
        "HCM",
    )

    assert result.total_files == 3
    assert result.processed_files == 1
    assert not result.success
    assert len(result.errors) == 2
    assert [f.status for f in result.files] == ["created", "failed", "failed"]
    assert Quotation.query.count() == 1


def test_missing_vat_becomes_warning(manager, catalog_rows):
    items = [{"product_code": "P1", "product_name": "Rau", "unit": "kg", "quantity": 2, "initial_price": 100}]
    result = import_quotations(manager, [("novat.xlsx", workbook(items=items))], PERIOD, "HCM")

    assert result.success
    assert result.warnings and "VAT" in result.warnings[0]
    assert QuoteItem.query.one().vat_percentage == Decimal("0")


def test_infinite_price_is_not_imported(manager, catalog_rows):
    items = [{"product_code": "P1", "product_name": "Rau", "unit": "kg", "quantity": 2, "initial_price": "Infinity",
              "vat_percentage": 0}]
    result = import_quotations(manager, [("inf.xlsx", workbook(items=items))], PERIOD, "HCM")

    assert not result.success
    assert result.processed_files == 0
    assert "initial_price" in result.errors[0]
    assert Quotation.query.count() == 0


def test_no_files(manager):
    result = import_quotations(manager, [], PERIOD, "HCM")
    assert result.errors == ["No files selected"]
    assert not result.success


def test_too_many_files(app, manager):
    app.config["MAX_IMPORT_FILES"] = 1
    with pytest.raises(ValidationError):
        import_quotations(manager, [("a", b""), ("b", b"")], PERIOD, "HCM")


def test_viewer_cannot_import(viewer, catalog_rows):
    from quotemaster.errors import PermissionDeniedError

    with pytest.raises(PermissionDeniedError):
        import_quotations(viewer, [("s1.xlsx", workbook())], PERIOD, "HCM")


def test_import_template_lists_live_products(manager, factory, catalog_rows):
    factory.product("P3", category="Rau củ", base_quantity=Decimal("20"))
    gone = factory.product("P4", category="Thịt")
    catalog.delete_product(manager, gone.id)

    content = build_import_template(manager, PERIOD, "HCM", "s1", category="Rau củ")
    rows = list(load_workbook(BytesIO(content))[ITEMS_SHEET].iter_rows(min_row=2, values_only=True))
    assert [(row[0], row[4]) for row in rows] == [("P1", None), ("P3", 20)]

    # Prices are still blank, so the untouched template does not import
    result = parse_quotation_workbook(content)
    assert result.data is None
    assert {e.field for e in result.errors} == {"quantity", "initial_price"}
    assert result.errors[0].row == 2


def test_import_template_unknown_supplier(manager, catalog_rows):
    with pytest.raises(UnknownReferenceError):
        build_import_template(manager, PERIOD, "HCM", "NOPE")
