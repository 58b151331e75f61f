from decimal import Decimal

import pytest

from quotemaster.errors import UnknownReferenceError
from quotemaster.models import STATUS_APPROVED, STATUS_NEGOTIATION
from quotemaster.services import catalog
from quotemaster.services.price_list import (
    get_available_periods_for_team,
    get_price_list_matrix,
    get_product_price_comparison,
)

PERIOD = "2024-01-01"


@pytest.fixture
def setup(factory):
    team = factory.team(region="HCM")
    rice = factory.product("GAO", category="Gạo", base_quantity=Decimal("8"))
    pork = factory.product("THIT", category="Thịt")
    s1 = factory.supplier("S1")
    s2 = factory.supplier("S2")
    s3 = factory.supplier("S3")
    factory.scope(s1, team)
    factory.scope(s2, team)
    factory.scope(s3, team, is_active=False)

    factory.quotation(
        s1,
        status=STATUS_APPROVED,
        items=[
            (rice, {"approved_price": Decimal("550000"), "vat_percentage": Decimal("5")}),
            (pork, {"approved_price": Decimal("0")}),
        ],
    )
    factory.quotation(
        s2,
        status=STATUS_APPROVED,
        items=[(rice, {"approved_price": Decimal("540000"), "vat_percentage": Decimal("8")})],
    )
    # Out of scope and not yet approved: both must stay invisible
    factory.quotation(s3, status=STATUS_APPROVED, items=[(rice, {"approved_price": Decimal("1")})])
    other = factory.supplier("S4")
    factory.scope(other, team)
    factory.quotation(other, status=STATUS_NEGOTIATION, items=[(rice, {"initial_price": Decimal("2")})])
    factory.quotation(s1, region="HN", status=STATUS_APPROVED, items=[(rice, {"approved_price": Decimal("3")})])
    return team, rice, pork, s1, s2


def test_price_list_only_shows_scoped_approved_prices(manager, setup):
    team, rice, pork, s1, s2 = setup
    result = get_price_list_matrix(manager, team.id, PERIOD)

    assert [s.code for s in result.matrix.suppliers] == ["S1", "S2"]
    assert [r.product_code for r in result.matrix.rows] == ["GAO"]

    row = result.matrix.rows[0]
    # 550000 * 1.05 = 577500 vs 540000 * 1.08 = 583200
    assert row.best_supplier_id == s1.id
    assert row.best_price == Decimal("577500")

    assert result.summary.total_products == 1
    assert result.summary.quoted_products == 1
    assert result.summary.missing_products == 0
    assert result.summary.total_suppliers == 2
    assert result.summary.average_coverage == Decimal("100.00")


def test_kitchen_demand_drives_quantity(manager, factory, setup):
    team, rice, *_ = setup
    factory.demand(team, rice, PERIOD, "12")
    row = get_price_list_matrix(manager, team.id, PERIOD).matrix.rows[0]
    assert row.quantity.quantity == Decimal("12")
    assert row.quantity.source.value == "kitchen_demand"


def test_team_without_active_scopes_gets_empty_list(manager, factory):
    team = factory.team(name="Bếp trống")
    result = get_price_list_matrix(manager, team.id, PERIOD)
    assert result.matrix.rows == ()
    assert result.summary.total_suppliers == 0
    assert result.summary.total_products == 0


def test_deactivated_scope_disappears(manager, setup):
    team, rice, pork, s1, s2 = setup
    catalog.set_service_scope(manager, s2.id, team.id, is_active=False)
    result = get_price_list_matrix(manager, team.id, PERIOD)
    assert [s.code for s in result.matrix.suppliers] == ["S1"]


def test_team_without_region(manager, factory):
    team = factory.team(region=None)
    with pytest.raises(UnknownReferenceError):
        get_price_list_matrix(manager, team.id, PERIOD)


def test_available_periods(manager, factory, setup):
    team, rice, pork, s1, s2 = setup
    factory.quotation(s2, period="2024-02-01", status=STATUS_APPROVED, items=[(rice, {"approved_price": Decimal("5")})])

    periods = get_available_periods_for_team(manager, team.id)
    assert [p["period"] for p in periods] == ["2024-02-01", "2024-01-01"]
    assert periods[1]["available_suppliers"] == 2


def test_product_price_comparison(manager, setup):
    team, rice, pork, s1, s2 = setup
    result = get_product_price_comparison(manager, team.id, rice.id, PERIOD)

    assert [o["supplier_code"] for o in result["suppliers"]] == ["S1", "S2"]
    assert Decimal(result["price_range"]["difference"]) == Decimal("5700")
    assert result["price_range"]["percentage_difference"] == "0.99"


def test_product_without_prices(manager, setup):
    team, rice, pork, *_ = setup
    result = get_product_price_comparison(manager, team.id, pork.id, PERIOD)
    assert result["suppliers"] == []
    assert result["price_range"] is None
