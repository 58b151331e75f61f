from decimal import Decimal

from quotemaster.comparison import QuantitySource, QuoteLine, build_matrix, summarize
from quotemaster.comparison.matrix import coverage_percentage


def line(item_id, product_id, supplier_id, supplier_code, product_code="P1", **fields):
    values = dict(
        item_id=item_id,
        quotation_id=100 + supplier_id,
        quotation_status="pending",
        product_id=product_id,
        product_code=product_code,
        product_name=f"Product {product_code}",
        supplier_id=supplier_id,
        supplier_code=supplier_code,
        supplier_name=f"Supplier {supplier_code}",
        unit="kg",
        category="Rau củ",
    )
    values.update(fields)
    return QuoteLine(**values)


def test_best_price_uses_vat_inclusive_total():
    matrix = build_matrix(
        [
            line(1, 1, 1, "S1", initial_price=Decimal("100000")),
            line(2, 1, 2, "S2", initial_price=Decimal("110000"), approved_price=Decimal("95000"),
                 vat_percentage=Decimal("5")),
        ]
    )
    row = matrix.rows[0]
    s1 = row.cell_for(1)
    s2 = row.cell_for(2)

    assert s1.price.total_with_vat == Decimal("100000")
    assert s2.price.unit_price == Decimal("95000")
    assert s2.price.total_with_vat == Decimal("99750")
    assert row.best_supplier_id == 2
    assert row.best_price == Decimal("99750")
    assert s2.is_best and not s1.is_best


def test_vat_can_flip_the_winner():
    matrix = build_matrix(
        [
            line(1, 1, 1, "S1", initial_price=Decimal("100"), vat_percentage=Decimal("10")),
            line(2, 1, 2, "S2", initial_price=Decimal("105"), vat_percentage=Decimal("0")),
        ]
    )
    assert matrix.rows[0].best_supplier_id == 2


def test_tie_goes_to_lowest_supplier_code():
    lines = [
        line(1, 1, 7, "beta", initial_price=Decimal("50")),
        line(2, 1, 3, "ALPHA", initial_price=Decimal("50")),
    ]
    assert build_matrix(lines).rows[0].best_supplier_id == 3
    assert build_matrix(list(reversed(lines))).rows[0].best_supplier_id == 3


def test_exactly_one_best_cell_per_row():
    matrix = build_matrix(
        [
            line(1, 1, 1, "S1", initial_price=Decimal("10")),
            line(2, 1, 2, "S2", initial_price=Decimal("10")),
            line(3, 1, 3, "S3", initial_price=Decimal("10")),
        ]
    )
    assert sum(1 for cell in matrix.rows[0].cells if cell.is_best) == 1


def test_row_without_any_price_has_no_best():
    matrix = build_matrix([line(1, 1, 1, "S1")])
    row = matrix.rows[0]
    assert row.best_cell is None
    assert row.best_price is None
    assert matrix.suppliers[0].quoted_products == 0


def test_missing_cells_and_coverage():
    matrix = build_matrix(
        [
            line(1, 1, 1, "S1", initial_price=Decimal("10")),
            line(2, 1, 2, "S2", initial_price=Decimal("12")),
            line(3, 2, 1, "S1", product_code="P2", initial_price=Decimal("20")),
            line(4, 3, 1, "S1", product_code="P3", initial_price=Decimal("30")),
        ]
    )
    assert [r.product_code for r in matrix.rows] == ["P1", "P2", "P3"]
    assert [s.code for s in matrix.suppliers] == ["S1", "S2"]

    p2 = matrix.rows[1]
    assert not p2.cell_for(2).quoted
    assert p2.cell_for(2).price.unit_price is None

    s1, s2 = matrix.suppliers
    assert s1.coverage_percentage == Decimal("100.00")
    assert s2.quoted_products == 1
    assert s2.coverage_percentage == Decimal("33.33")


def test_coverage_of_empty_matrix_is_zero():
    assert coverage_percentage(0, 0) == Decimal("0")


def test_base_quantity_beats_line_quantity():
    matrix = build_matrix(
        [line(1, 1, 1, "S1", initial_price=Decimal("10"), quantity=Decimal("7"), base_quantity=Decimal("20"))]
    )
    quantity = matrix.rows[0].quantity
    assert quantity.quantity == Decimal("20")
    assert quantity.source == QuantitySource.BASE_QUANTITY


def test_demand_quantity_and_demand_variance():
    matrix = build_matrix(
        [
            line(1, 1, 1, "S1", initial_price=Decimal("10"), base_price=Decimal("8"),
                 base_quantity=Decimal("20")),
        ],
        demands={1: Decimal("30")},
    )
    row = matrix.rows[0]
    assert row.quantity.source == QuantitySource.KITCHEN_DEMAND
    assert row.quantity.quantity == Decimal("30")
    # 10 x 30 against 8 x 20
    assert row.variance_vs_demand.current == Decimal("300")
    assert row.variance_vs_demand.baseline == Decimal("160")


def test_demand_equal_to_base_quantity_has_no_demand_variance():
    matrix = build_matrix(
        [line(1, 1, 1, "S1", initial_price=Decimal("10"), base_price=Decimal("8"), base_quantity=Decimal("20"))],
        demands={1: Decimal("20")},
    )
    assert matrix.rows[0].variance_vs_demand is None


def test_variance_against_min_initial_and_previous():
    matrix = build_matrix(
        [
            line(1, 1, 1, "S1", initial_price=Decimal("100"), negotiated_price=Decimal("90")),
            line(2, 1, 2, "S2", initial_price=Decimal("95")),
        ],
        previous_prices={(1, 1): Decimal("80")},
    )
    row = matrix.rows[0]
    assert row.best_supplier_id == 1
    assert row.min_initial_price == Decimal("95")
    assert row.variance_vs_base.current == Decimal("90")
    assert row.variance_vs_base.baseline == Decimal("95")
    assert row.previous_approved_price == Decimal("80")
    assert row.variance_vs_previous.percentage == Decimal("12.5")
    assert row.cell_for(2).previous_price is None


def test_build_matrix_is_pure():
    lines = [
        line(1, 1, 1, "S1", initial_price=Decimal("10")),
        line(2, 1, 2, "S2", initial_price=Decimal("9")),
    ]
    assert build_matrix(lines) == build_matrix(lines)


def test_kpi_is_cost_weighted():
    matrix = build_matrix(
        [
            line(1, 1, 1, "S1", initial_price=Decimal("10"), base_quantity=Decimal("2")),
            line(2, 2, 1, "S1", product_code="P2", initial_price=Decimal("100"), vat_percentage=Decimal("10"),
                 base_quantity=Decimal("1")),
        ],
        previous_prices={(1, 1): Decimal("5"), (2, 1): Decimal("100")},
    )
    kpi = summarize(matrix)
    assert kpi.total_current_value == Decimal("120")
    assert kpi.total_current_value_with_vat == Decimal("130")
    assert kpi.products_with_previous == 2
    # (10*2 + 100*1) against (5*2 + 100*1)
    assert kpi.variance_vs_previous.current == Decimal("120")
    assert kpi.variance_vs_previous.baseline == Decimal("110")
    assert kpi.variance_vs_demand is None


def test_kpi_without_baselines_reports_none():
    kpi = summarize(build_matrix([line(1, 1, 1, "S1", initial_price=Decimal("10"))]))
    assert kpi.variance_vs_previous is None
    assert kpi.to_dict()["variance_vs_previous"] is None
    assert kpi.variance_vs_base.percentage == Decimal("0")
