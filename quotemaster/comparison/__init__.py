"""
Pure comparison engine: quantity and price resolution, matrix assembly,
variance, KPI and row ordering. Nothing in this package touches the database.
"""

from .kpi import MatrixKpi, summarize, supplier_overview  # noqa: F401
from .matrix import ComparisonMatrix, MatrixRow, PriceCell, QuoteLine, SupplierColumn, build_matrix  # noqa: F401
from .pricing import ResolvedPrice, resolve_price, total_with_vat  # noqa: F401
from .quantity import QuantitySource, ResolvedQuantity, resolve_quantity  # noqa: F401
from .sorting import MatrixSortKey, parse_sort_key, sort_rows  # noqa: F401
from .variance import Variance, baseline_from_variance, calculate_variance  # noqa: F401
