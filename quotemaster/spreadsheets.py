"""
Quotation spreadsheet codec (openpyxl).

Import workbook layout:
- Sheet "Thông tin báo giá": label in column A, value in column B
  (Kỳ báo giá, Khu vực, Mã NCC, Tên NCC, optional Ngày báo giá)
- Sheet "Danh sách sản phẩm": header row, then one row per product

Exports:
- comparison workbook: supplier roster sheet, then one sheet per category
  with a merged 3-column block per supplier (unit price / VAT / total with VAT)
- target price workbook: one sheet, every product with its best price
- target price archive: zip with one workbook per supplier
"""

from __future__ import annotations

import re
import zipfile
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from io import BytesIO
from typing import Any, Dict, List, Optional

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from .comparison import ComparisonMatrix
from .errors import ValidationError
from .utils import parse_decimal, parse_period

INFO_SHEET = "Thông tin báo giá"
ITEMS_SHEET = "Danh sách sản phẩm"

INFO_LABELS = {
    "Kỳ báo giá": "period",
    "Khu vực": "region",
    "Mã NCC": "supplier_code",
    "Tên NCC": "supplier_name",
    "Ngày báo giá": "quote_date",
}
REQUIRED_INFO = ("period", "region", "supplier_code", "supplier_name")

ITEM_COLUMNS = {
    "Mã sản phẩm": "product_code",
    "Tên sản phẩm": "product_name",
    "Quy cách": "specification",
    "Đơn vị tính": "unit",
    "Số lượng": "quantity",
    "Đơn giá": "initial_price",
    "VAT (%)": "vat_percentage",
    "Ghi chú": "notes",
}
REQUIRED_COLUMNS = ("product_code", "product_name", "unit", "quantity", "initial_price")
NUMERIC_COLUMNS = ("quantity", "initial_price", "vat_percentage")

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

ROSTER_SHEET = "Nhà cung cấp"
PRODUCT_HEADERS = ["Mã sản phẩm", "Tên sản phẩm", "Quy cách", "Đơn vị"]
SUPPLIER_SUBHEADERS = ["Đơn giá", "VAT (%)", "Thành tiền (có VAT)"]

# Color definitions
HEADER_FILL = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
HEADER_FONT = Font(color="FFFFFF", bold=True, size=10)
SUBHEADER_FILL = PatternFill(start_color="D9E2F3", end_color="D9E2F3", fill_type="solid")
BEST_FILL = PatternFill(start_color="C6EFCE", end_color="C6EFCE", fill_type="solid")
BEST_FONT = Font(color="006100", bold=True)
THIN_BORDER = Border(
    left=Side(style='thin'),
    right=Side(style='thin'),
    top=Side(style='thin'),
    bottom=Side(style='thin')
)


# ---------------------------------------------------------------------
# Import
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class Issue:
    message: str
    field: Optional[str] = None
    row: Optional[int] = None


@dataclass(frozen=True)
class QuotationHeader:
    period: str
    region: str
    supplier_code: str
    supplier_name: str
    quote_date: Optional[datetime] = None


@dataclass(frozen=True)
class ParsedItem:
    row: int
    product_code: str
    product_name: str
    unit: str
    quantity: Decimal
    initial_price: Decimal
    vat_percentage: Decimal
    vat_defaulted: bool = False
    specification: Optional[str] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class ParsedQuotation:
    header: QuotationHeader
    items: List[ParsedItem]


@dataclass
class ParseResult:
    data: Optional[ParsedQuotation] = None
    errors: List[Issue] = field(default_factory=list)
    warnings: List[Issue] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.data is not None and not self.errors


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _parse_quote_date(value: Any) -> Optional[datetime]:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    s = _text(value)
    for fmt in ("%Y-%m-%d", "%d/%m/%Y"):
        try:
            return datetime.strptime(s, fmt)
        except ValueError:
            continue
    raise ValidationError(f"Invalid quote date '{s}'", field="quote_date")


def _parse_header(sheet) -> QuotationHeader:
    raw: Dict[str, Any] = {}
    for row in sheet.iter_rows(min_row=1, max_col=2, values_only=True):
        if not row or row[0] is None:
            continue
        label = _text(row[0]).replace(":", "").strip()
        value = row[1] if len(row) > 1 else None
        if label in INFO_LABELS and value not in (None, ""):
            raw[INFO_LABELS[label]] = value

    missing = [name for name in REQUIRED_INFO if not _text(raw.get(name))]
    if missing:
        raise ValidationError(
            f'Missing required fields in sheet "{INFO_SHEET}": {", ".join(missing)}',
            field=",".join(missing),
        )

    return QuotationHeader(
        period=parse_period(raw["period"]),
        region=_text(raw["region"]),
        supplier_code=_text(raw["supplier_code"]),
        supplier_name=_text(raw["supplier_name"]),
        quote_date=_parse_quote_date(raw.get("quote_date")),
    )


def _column_indexes(headers) -> Dict[str, int]:
    indexes: Dict[str, int] = {}
    for label, name in ITEM_COLUMNS.items():
        for idx, header in enumerate(headers):
            if label.lower() in _text(header).lower():
                indexes[name] = idx
                break
    return indexes


def _parse_items(sheet, result: ParseResult) -> List[ParsedItem]:
    rows = list(sheet.iter_rows(min_row=1, values_only=True))
    if len(rows) < 2:
        result.errors.append(Issue(f'Sheet "{ITEMS_SHEET}" has no data'))
        return []

    indexes = _column_indexes(rows[0])
    missing = [name for name in REQUIRED_COLUMNS if name not in indexes]
    if missing:
        result.errors.append(
            Issue(
                f'Missing required columns in sheet "{ITEMS_SHEET}": {", ".join(missing)}',
                field=",".join(missing),
            )
        )
        return []

    items: List[ParsedItem] = []
    for i, row in enumerate(rows[1:], start=1):
        row_number = i + 1
        if not row or all(cell in (None, "") for cell in row):
            continue

        values: Dict[str, Any] = {}
        invalid = set()
        for name, idx in indexes.items():
            cell = row[idx] if idx < len(row) else None
            if cell in (None, ""):
                continue
            if name in NUMERIC_COLUMNS:
                number = parse_decimal(cell)
                if number is None:
                    result.errors.append(Issue(f"Invalid number at row {row_number}, column {name}", name, row_number))
                    invalid.add(name)
                    continue
                values[name] = number
            else:
                values[name] = _text(cell)

        row_ok = not invalid
        for name in REQUIRED_COLUMNS:
            if name not in values and name not in invalid:
                result.errors.append(Issue(f"Missing {name} at row {row_number}", name, row_number))
                row_ok = False

        if "quantity" in values and values["quantity"] <= 0:
            result.errors.append(Issue(f"Quantity must be positive at row {row_number}", "quantity", row_number))
            row_ok = False
        if "initial_price" in values and values["initial_price"] < 0:
            result.errors.append(Issue(f"Price must not be negative at row {row_number}", "initial_price", row_number))
            row_ok = False

        vat_defaulted = "vat_percentage" not in values and "vat_percentage" not in invalid
        if vat_defaulted:
            values["vat_percentage"] = Decimal("0")
            result.warnings.append(Issue(f"No VAT at row {row_number}, defaulting to 0%", "vat_percentage", row_number))
        elif "vat_percentage" in values and not (0 <= values["vat_percentage"] <= 100):
            result.errors.append(Issue(f"VAT must be between 0 and 100 at row {row_number}", "vat_percentage", row_number))
            row_ok = False

        if not row_ok:
            continue

        items.append(
            ParsedItem(
                row=row_number,
                product_code=values["product_code"],
                product_name=values["product_name"],
                unit=values["unit"],
                quantity=values["quantity"],
                initial_price=values["initial_price"],
                vat_percentage=values["vat_percentage"],
                vat_defaulted=vat_defaulted,
                specification=values.get("specification") or None,
                notes=values.get("notes") or None,
            )
        )

    if not items and not result.errors:
        result.errors.append(Issue(f'Sheet "{ITEMS_SHEET}" has no valid product rows'))
    return items


def parse_quotation_workbook(content: bytes) -> ParseResult:
    """Parse an uploaded quotation workbook. Never raises for bad content; see result.errors."""
    result = ParseResult()
    try:
        wb = load_workbook(BytesIO(content), read_only=True, data_only=True)
    except Exception as exc:
        result.errors.append(Issue(f"Cannot read workbook: {exc}"))
        return result

    try:
        missing = [name for name in (INFO_SHEET, ITEMS_SHEET) if name not in wb.sheetnames]
        if missing:
            result.errors.append(Issue(f"Missing required sheets: {', '.join(missing)}"))
            return result

        try:
            header = _parse_header(wb[INFO_SHEET])
        except ValidationError as exc:
            result.errors.append(Issue(exc.message, exc.field))
            return result

        items = _parse_items(wb[ITEMS_SHEET], result)
        if not result.errors:
            result.data = ParsedQuotation(header=header, items=items)
        return result
    finally:
        wb.close()


def build_quotation_workbook(header: QuotationHeader, items: List[dict]) -> bytes:
    """Write a workbook in the import layout; missing item values stay blank."""
    wb = Workbook()
    info = wb.active
    info.title = INFO_SHEET
    info.append(["Kỳ báo giá", header.period])
    info.append(["Khu vực", header.region])
    info.append(["Mã NCC", header.supplier_code])
    info.append(["Tên NCC", header.supplier_name])
    if header.quote_date:
        info.append(["Ngày báo giá", header.quote_date.strftime("%Y-%m-%d")])

    sheet = wb.create_sheet(ITEMS_SHEET)
    labels = list(ITEM_COLUMNS)
    sheet.append(labels)
    for item in items:
        sheet.append([_cell_value(item.get(ITEM_COLUMNS[label])) for label in labels])

    return _to_bytes(wb)


# ---------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------
def _cell_value(value):
    if isinstance(value, Decimal):
        return float(value)
    return value


def _to_bytes(wb: Workbook) -> bytes:
    buffer = BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def _sheet_title(name: str, used: set) -> str:
    title = re.sub(r"[\[\]\*\?/\\:]", "-", name or "Khác")[:31] or "Khác"
    base, n = title, 2
    while title in used:
        suffix = f" ({n})"
        title = base[: 31 - len(suffix)] + suffix
        n += 1
    used.add(title)
    return title


def _style_header(cell) -> None:
    cell.font = HEADER_FONT
    cell.fill = HEADER_FILL
    cell.alignment = Alignment(horizontal='center', vertical='center', wrap_text=True)
    cell.border = THIN_BORDER


def build_comparison_workbook(matrix: ComparisonMatrix) -> bytes:
    wb = Workbook()
    roster = wb.active
    roster.title = ROSTER_SHEET
    used_titles = {ROSTER_SHEET}

    for col, label in enumerate(["Mã NCC", "Tên NCC", "Liên hệ", "Số SP đã báo giá", "Tỷ lệ báo giá (%)"], 1):
        _style_header(roster.cell(row=1, column=col, value=label))
    for r, supplier in enumerate(matrix.suppliers, 2):
        values = [
            supplier.code,
            supplier.name,
            supplier.contact or "",
            supplier.quoted_products,
            float(supplier.coverage_percentage),
        ]
        for col, value in enumerate(values, 1):
            roster.cell(row=r, column=col, value=value).border = THIN_BORDER
    for col, width in enumerate([14, 36, 24, 18, 18], 1):
        roster.column_dimensions[get_column_letter(col)].width = width

    categories: Dict[str, list] = {}
    for row in matrix.rows:
        categories.setdefault(row.category or "", []).append(row)

    for category in sorted(categories, key=str.lower):
        ws = wb.create_sheet(_sheet_title(category, used_titles))

        for col, label in enumerate(PRODUCT_HEADERS, 1):
            ws.merge_cells(start_row=1, start_column=col, end_row=2, end_column=col)
            _style_header(ws.cell(row=1, column=col, value=label))

        for s_idx, supplier in enumerate(matrix.suppliers):
            start = len(PRODUCT_HEADERS) + 1 + s_idx * 3
            ws.merge_cells(start_row=1, start_column=start, end_row=1, end_column=start + 2)
            _style_header(ws.cell(row=1, column=start, value=supplier.name))
            for offset, label in enumerate(SUPPLIER_SUBHEADERS):
                cell = ws.cell(row=2, column=start + offset, value=label)
                cell.font = Font(bold=True, size=10)
                cell.fill = SUBHEADER_FILL
                cell.alignment = Alignment(horizontal='center')
                cell.border = THIN_BORDER

        for r, row in enumerate(categories[category], 3):
            for col, value in enumerate([row.product_code, row.product_name, row.specification or "", row.unit], 1):
                ws.cell(row=r, column=col, value=value).border = THIN_BORDER

            for s_idx, supplier in enumerate(matrix.suppliers):
                start = len(PRODUCT_HEADERS) + 1 + s_idx * 3
                cell = row.cell_for(supplier.supplier_id)
                if cell is not None and cell.has_price:
                    values = [
                        float(cell.price.unit_price),
                        float(cell.price.vat_percentage),
                        float(cell.price.total_with_vat),
                    ]
                else:
                    values = ["-", "", ""]
                for offset, value in enumerate(values):
                    target = ws.cell(row=r, column=start + offset, value=value)
                    target.border = THIN_BORDER
                    if offset != 1 and isinstance(value, float):
                        target.number_format = '#,##0'
                    if cell is not None and cell.is_best:
                        target.fill = BEST_FILL
                        target.font = BEST_FONT

        ws.column_dimensions['A'].width = 14
        ws.column_dimensions['B'].width = 36
        ws.column_dimensions['C'].width = 20
        ws.column_dimensions['D'].width = 10
        for col in range(len(PRODUCT_HEADERS) + 1, len(PRODUCT_HEADERS) + 1 + 3 * len(matrix.suppliers)):
            ws.column_dimensions[get_column_letter(col)].width = 14
        ws.freeze_panes = "E3"

    return _to_bytes(wb)


TARGET_HEADERS = ["Mã sản phẩm", "Tên sản phẩm", "Quy cách", "Đơn vị", "Giá mục tiêu"]


def _target_sheet(ws, entries) -> None:
    for col, label in enumerate(TARGET_HEADERS, 1):
        _style_header(ws.cell(row=1, column=col, value=label))
    for r, (row, target) in enumerate(entries, 2):
        values = [row.product_code, row.product_name, row.specification or "", row.unit, float(target)]
        for col, value in enumerate(values, 1):
            cell = ws.cell(row=r, column=col, value=value)
            cell.border = THIN_BORDER
        ws.cell(row=r, column=5).number_format = '#,##0'
    for col, width in enumerate([14, 36, 20, 10, 16], 1):
        ws.column_dimensions[get_column_letter(col)].width = width


def build_target_price_workbook(matrix: ComparisonMatrix) -> bytes:
    """Every product with a best price, target = best unit price."""
    wb = Workbook()
    ws = wb.active
    ws.title = "Target Prices"
    _target_sheet(ws, [(row, row.best_unit_price) for row in matrix.rows if row.best_unit_price is not None])
    return _to_bytes(wb)


def target_price_filename(period: str, region: str, supplier_code: str) -> str:
    return f"{period}_{region}_{supplier_code}.xlsx"


def build_target_price_archive(matrix: ComparisonMatrix) -> bytes:
    """
    Zip with one workbook per supplier listing the products it quoted.

    Target price: the supplier's own current price, else the best price of the row.
    """
    buffer = BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
        for supplier in matrix.suppliers:
            entries = []
            for row in matrix.rows:
                cell = row.cell_for(supplier.supplier_id)
                if cell is None or not cell.quoted:
                    continue
                target = cell.price.unit_price if cell.has_price else row.best_unit_price
                if target is None:
                    continue
                entries.append((row, target))
            if not entries:
                continue

            wb = Workbook()
            ws = wb.active
            ws.title = "Target Prices"
            _target_sheet(ws, entries)
            archive.writestr(
                target_price_filename(matrix.period or "", matrix.region or "", supplier.code),
                _to_bytes(wb),
            )
    return buffer.getvalue()
