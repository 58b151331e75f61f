from decimal import Decimal

from quotemaster.comparison import resolve_price, total_with_vat
from quotemaster.comparison.pricing import PRICE_APPROVED, PRICE_INITIAL, PRICE_NEGOTIATED


def test_approved_wins_over_negotiated_and_initial():
    price = resolve_price(initial=100, negotiated=90, approved=85, vat_percentage=10)
    assert price.unit_price == Decimal("85")
    assert price.source == PRICE_APPROVED
    assert price.total_with_vat == Decimal("93.5")


def test_negotiated_used_when_not_approved():
    price = resolve_price(initial=100, negotiated=90)
    assert price.unit_price == Decimal("90")
    assert price.source == PRICE_NEGOTIATED


def test_initial_is_last_resort():
    price = resolve_price(initial=100000)
    assert price.unit_price == Decimal("100000")
    assert price.source == PRICE_INITIAL
    assert price.total_with_vat == Decimal("100000")


def test_zero_is_a_defined_price():
    price = resolve_price(initial=100, approved=0, vat_percentage=5)
    assert price.has_price
    assert price.unit_price == Decimal("0")
    assert price.source == PRICE_APPROVED
    assert price.total_with_vat == Decimal("0")


def test_no_price_at_all():
    price = resolve_price(vat_percentage=8)
    assert not price.has_price
    assert price.total_with_vat is None
    assert price.vat_amount is None
    assert price.to_dict()["unit_price"] is None


def test_total_is_recomputed_from_unit_price():
    assert total_with_vat(Decimal("95000"), Decimal("5")) == Decimal("99750")
    price = resolve_price(approved=Decimal("95000"), vat_percentage=Decimal("5"))
    assert price.vat_amount == Decimal("4750")
