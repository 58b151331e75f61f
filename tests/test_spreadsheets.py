import io
import zipfile
from decimal import Decimal

from openpyxl import Workbook, load_workbook

from quotemaster.comparison import QuoteLine, build_matrix
from quotemaster.spreadsheets import (
    INFO_SHEET,
    ITEMS_SHEET,
    QuotationHeader,
    build_quotation_workbook,
    build_target_price_archive,
    parse_quotation_workbook,
)

HEADER = QuotationHeader(period="2024-01-01", region="HCM", supplier_code="S1", supplier_name="An Phát")


def _item(**overrides):
    item = {"product_code": "P1", "product_name": "Rau", "unit": "kg", "quantity": 10,
            "initial_price": 12000, "vat_percentage": 5}
    item.update(overrides)
    return item


def test_parse_valid_workbook():
    result = parse_quotation_workbook(build_quotation_workbook(HEADER, [_item(), _item(product_code="P2")]))

    assert result.success
    assert result.data.header.supplier_code == "S1"
    assert result.data.header.period == "2024-01-01"
    first = result.data.items[0]
    assert first.row == 2
    assert first.quantity == Decimal("10")
    assert first.initial_price == Decimal("12000")
    assert first.vat_percentage == Decimal("5")
    assert result.data.items[1].row == 3


def test_row_errors_carry_excel_row_numbers():
    content = build_quotation_workbook(
        HEADER,
        [
            _item(),
            _item(product_code="P2", quantity=0),
            _item(product_code="P3", initial_price="abc"),
            _item(product_code="P4", vat_percentage=150),
        ],
    )
    result = parse_quotation_workbook(content)

    assert not result.success
    assert result.data is None
    assert [(e.row, e.field) for e in result.errors] == [
        (3, "quantity"),
        (4, "initial_price"),
        (5, "vat_percentage"),
    ]


def test_missing_vat_is_a_warning():
    result = parse_quotation_workbook(build_quotation_workbook(HEADER, [_item(vat_percentage=None)]))
    assert result.success
    assert result.data.items[0].vat_defaulted
    assert result.data.items[0].vat_percentage == Decimal("0")
    assert [(w.row, w.field) for w in result.warnings] == [(2, "vat_percentage")]


def test_missing_required_value():
    result = parse_quotation_workbook(build_quotation_workbook(HEADER, [_item(unit=None)]))
    assert [(e.row, e.field) for e in result.errors] == [(2, "unit")]


def test_missing_sheet():
    wb = Workbook()
    wb.active.title = INFO_SHEET
    buffer = io.BytesIO()
    wb.save(buffer)

    result = parse_quotation_workbook(buffer.getvalue())
    assert not result.success
    assert ITEMS_SHEET in result.errors[0].message


def test_missing_header_fields():
    wb = Workbook()
    info = wb.active
    info.title = INFO_SHEET
    info.append(["Kỳ báo giá", "2024-01-01"])
    items = wb.create_sheet(ITEMS_SHEET)
    items.append(["Mã sản phẩm"])
    buffer = io.BytesIO()
    wb.save(buffer)

    result = parse_quotation_workbook(buffer.getvalue())
    assert not result.success
    assert "region" in result.errors[0].message


def test_garbage_bytes_do_not_raise():
    result = parse_quotation_workbook(b"\x00\x01 definitely not xlsx")
    assert not result.success
    assert result.errors[0].message.startswith("Cannot read workbook")


def test_target_price_archive_uses_own_price():
    def line(item_id, supplier_id, code, price):
        return QuoteLine(
            item_id=item_id, quotation_id=supplier_id, quotation_status="pending",
            product_id=1, product_code="P1", product_name="Rau",
            supplier_id=supplier_id, supplier_code=code, supplier_name=code,
            initial_price=Decimal(price),
        )

    matrix = build_matrix([line(1, 1, "S1", "100"), line(2, 2, "S2", "90")], period="2024-01-01", region="HCM")
    archive = zipfile.ZipFile(io.BytesIO(build_target_price_archive(matrix)))

    ws = load_workbook(io.BytesIO(archive.read("2024-01-01_HCM_S1.xlsx"))).active
    assert ws.cell(row=2, column=1).value == "P1"
    assert ws.cell(row=2, column=5).value == 100


def test_non_finite_numbers_are_row_errors():
    content = build_quotation_workbook(
        HEADER,
        [
            _item(quantity="NaN"),
            _item(product_code="P2", initial_price="Infinity"),
            _item(product_code="P3", vat_percentage="sNaN"),
        ],
    )
    result = parse_quotation_workbook(content)

    assert not result.success
    assert [(e.row, e.field) for e in result.errors] == [
        (2, "quantity"),
        (3, "initial_price"),
        (4, "vat_percentage"),
    ]
