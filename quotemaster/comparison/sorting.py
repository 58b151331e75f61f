"""
Row ordering for the comparison matrix.

Only the keys in MatrixSortKey are accepted; anything else is rejected at the
boundary. Rows whose sort value is missing always go last, whatever the direction.
"""

from __future__ import annotations

from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional

from ..errors import ValidationError
from .matrix import MatrixRow


class MatrixSortKey(str, Enum):
    PRODUCT_CODE = "product_code"
    PRODUCT_NAME = "product_name"
    CATEGORY = "category"
    BEST_PRICE = "best_price"
    QUANTITY = "quantity"
    VARIANCE_VS_BASE = "variance_vs_base"
    VARIANCE_VS_PREVIOUS = "variance_vs_previous"


def _pct(attr: str) -> Callable[[MatrixRow], Optional[object]]:
    def getter(row: MatrixRow):
        variance = getattr(row, attr)
        return None if variance is None else variance.percentage
    return getter


SORT_KEYS: Dict[MatrixSortKey, Callable[[MatrixRow], Optional[object]]] = {
    MatrixSortKey.PRODUCT_CODE: lambda row: row.product_code.lower(),
    MatrixSortKey.PRODUCT_NAME: lambda row: row.product_name.lower(),
    MatrixSortKey.CATEGORY: lambda row: (row.category or "").lower(),
    MatrixSortKey.BEST_PRICE: lambda row: row.best_price,
    MatrixSortKey.QUANTITY: lambda row: row.quantity.quantity,
    MatrixSortKey.VARIANCE_VS_BASE: _pct("variance_vs_base"),
    MatrixSortKey.VARIANCE_VS_PREVIOUS: _pct("variance_vs_previous"),
}


def parse_sort_key(value) -> MatrixSortKey:
    if isinstance(value, MatrixSortKey):
        return value
    try:
        return MatrixSortKey(str(value or "").strip().lower())
    except ValueError:
        allowed = ", ".join(key.value for key in MatrixSortKey)
        raise ValidationError(f"Unknown sort key '{value}' (allowed: {allowed})", field="sort")


def sort_rows(rows: Iterable[MatrixRow], key: MatrixSortKey, descending: bool = False) -> List[MatrixRow]:
    getter = SORT_KEYS[key]
    present = []
    missing = []
    for row in rows:
        (missing if getter(row) is None else present).append(row)

    # Product code breaks ties so equal values keep a stable, readable order
    present.sort(key=lambda row: row.product_code.lower())
    present.sort(key=getter, reverse=descending)
    missing.sort(key=lambda row: row.product_code.lower())
    return present + missing
