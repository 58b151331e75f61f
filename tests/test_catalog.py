from decimal import Decimal

import pytest

from quotemaster.errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from quotemaster.models import RECORD_INACTIVE, AuditLog, KitchenDemand
from quotemaster.services import catalog


def product_data(code="RAU-01", **extra):
    data = {"code": code, "name": "Rau muống", "unit": "bó", "category": "Rau củ"}
    data.update(extra)
    return data


def test_create_product_and_audit(manager):
    product = catalog.create_product(manager, product_data(base_price="12000,5"))
    assert product.id is not None
    assert product.base_price == Decimal("12000.50")
    entry = AuditLog.query.filter_by(entity_type="Product").one()
    assert entry.action == "CREATE"
    assert entry.username_snapshot == "manager"


def test_product_code_is_case_insensitive_unique(manager):
    catalog.create_product(manager, product_data("RAU-01"))
    with pytest.raises(ConflictError):
        catalog.create_product(manager, product_data("rau-01"))


def test_soft_delete_frees_the_code(manager):
    first = catalog.create_product(manager, product_data())
    deleted = catalog.delete_product(manager, first.id)
    assert deleted.deleted_at is not None
    assert deleted.status == RECORD_INACTIVE

    second = catalog.create_product(manager, product_data())
    assert second.id != first.id
    assert [p.id for p in catalog.list_products()] == [second.id]
    assert len(catalog.list_products(include_deleted=True)) == 2


def test_deleted_product_cannot_be_updated(manager):
    product = catalog.create_product(manager, product_data())
    catalog.delete_product(manager, product.id)
    with pytest.raises(NotFoundError):
        catalog.update_product(manager, product.id, {"name": "x"})


def test_update_validates_before_writing(manager):
    product = catalog.create_product(manager, product_data())
    with pytest.raises(ValidationError):
        catalog.update_product(manager, product.id, {"name": "Mới", "base_quantity": "0"})
    assert product.name == "Rau muống"


def test_required_fields(manager):
    with pytest.raises(ValidationError) as exc:
        catalog.create_product(manager, {"code": "X", "name": "", "unit": "kg", "category": "c"})
    assert exc.value.field == "name"


def test_viewer_cannot_create(viewer):
    with pytest.raises(PermissionDeniedError):
        catalog.create_product(viewer, product_data())


def test_supplier_lifecycle(manager):
    supplier = catalog.create_supplier(manager, {"code": "NCC-A", "name": "An Phát", "phone": " 0901 "})
    assert supplier.phone == "0901"
    with pytest.raises(ConflictError):
        catalog.create_supplier(manager, {"code": "ncc-a", "name": "Other"})

    catalog.update_supplier(manager, supplier.id, {"contact_person": "Chị Lan"})
    assert supplier.contact_person == "Chị Lan"

    catalog.delete_supplier(manager, supplier.id)
    assert catalog.list_suppliers() == []


def test_team_type_is_validated(manager):
    with pytest.raises(ValidationError):
        catalog.create_team(manager, {"name": "Bếp", "team_type": "GARAGE"})
    team = catalog.create_team(manager, {"name": "Bếp", "team_type": "kitchen", "region": "HCM"})
    assert team.is_kitchen


def test_scope_toggle_keeps_single_row(manager, factory):
    supplier = factory.supplier("S1")
    team = factory.team()
    first = catalog.set_service_scope(manager, supplier.id, team.id)
    second = catalog.set_service_scope(manager, supplier.id, team.id, is_active=False)
    assert first.id == second.id
    assert second.is_active is False


def test_kitchen_demand_upsert(manager, factory):
    team = factory.team()
    product = factory.product("P1", unit="kg")
    catalog.upsert_kitchen_demand(manager, team.id, product.id, "2024-01-01", "12")
    demand = catalog.upsert_kitchen_demand(manager, team.id, product.id, "2024-01-01", "15", notes="Tết")

    assert KitchenDemand.query.count() == 1
    assert demand.quantity == Decimal("15")
    assert demand.unit == "kg"
    assert demand.notes == "Tết"


@pytest.mark.parametrize("quantity", ["0", "-1", "abc"])
def test_kitchen_demand_must_be_positive(manager, factory, quantity):
    team = factory.team()
    product = factory.product("P1")
    with pytest.raises(ValidationError):
        catalog.upsert_kitchen_demand(manager, team.id, product.id, "2024-01-01", quantity)


def test_bad_period(manager, factory):
    team = factory.team()
    product = factory.product("P1")
    with pytest.raises(ValidationError):
        catalog.upsert_kitchen_demand(manager, team.id, product.id, "2024-13-01", "1")
