from decimal import Decimal

from quotemaster.comparison import QuantitySource, resolve_quantity


def test_kitchen_demand_has_priority():
    resolved = resolve_quantity(demand_quantity=12, base_quantity=20, line_quantities=[7])
    assert resolved.quantity == Decimal("12")
    assert resolved.source == QuantitySource.KITCHEN_DEMAND


def test_base_quantity_beats_quote_line():
    resolved = resolve_quantity(demand_quantity=None, base_quantity=20, line_quantities=[7])
    assert resolved.quantity == Decimal("20")
    assert resolved.source == QuantitySource.BASE_QUANTITY
    assert resolved.to_dict() == {"quantity": "20", "source": "base_quantity"}


def test_first_positive_line_quantity():
    resolved = resolve_quantity(line_quantities=[None, 0, 5, 9])
    assert resolved.quantity == Decimal("5")
    assert resolved.source == QuantitySource.QUOTE_LINE


def test_non_positive_values_are_skipped():
    resolved = resolve_quantity(demand_quantity=0, base_quantity=-3, line_quantities=[0])
    assert resolved.quantity == Decimal("1")
    assert resolved.source == QuantitySource.DEFAULT
