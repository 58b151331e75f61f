"""
quotemaster/seed.py

Seed a small demo catalog: products, suppliers, one kitchen team with
service scopes, and a kitchen demand.

Rules:
- Safe to run multiple times (idempotent): rows are matched by code / team_code.
- Quotations are not seeded; they come in through the spreadsheet import.
"""

from __future__ import annotations

from decimal import Decimal

from .extensions import db
from .models import TEAM_KITCHEN, KitchenDemand, Product, ServiceScope, Supplier, Team


DEFAULT_PRODUCTS = [
    ("RAU-001", "Rau muống", "Bó 500g", "bó", "Rau củ", Decimal("12000"), Decimal("50")),
    ("RAU-002", "Cải thảo", "Loại 1", "kg", "Rau củ", Decimal("18000"), Decimal("40")),
    ("THIT-001", "Thịt heo nạc vai", "Tươi, không đông lạnh", "kg", "Thịt", Decimal("125000"), Decimal("30")),
    ("THIT-002", "Thịt bò thăn", "Tươi", "kg", "Thịt", Decimal("280000"), Decimal("10")),
    ("GAO-001", "Gạo ST25", "Bao 25kg", "bao", "Gạo", Decimal("550000"), Decimal("8")),
]

DEFAULT_SUPPLIERS = [
    ("NCC-A", "Công ty Thực phẩm An Phát", "0301234567", "Nguyễn Văn A", "0901000001"),
    ("NCC-B", "Công ty Nông sản Bình Minh", "0307654321", "Trần Thị B", "0901000002"),
    ("NCC-C", "HTX Rau sạch Củ Chi", "0309998887", "Lê Văn C", "0901000003"),
]

DEFAULT_TEAM = {
    "team_code": "BEP-HCM-01",
    "name": "Bếp trung tâm HCM",
    "region": "HCM",
    "team_type": TEAM_KITCHEN,
}

DEFAULT_DEMAND_PERIOD = "2024-01-01"


def _seed_products() -> dict:
    by_code = {}
    for code, name, spec, unit, category, base_price, base_quantity in DEFAULT_PRODUCTS:
        product = Product.query.filter_by(code=code, deleted_at=None).first()
        if not product:
            product = Product(
                code=code,
                name=name,
                specification=spec,
                unit=unit,
                category=category,
                base_price=base_price,
                base_quantity=base_quantity,
            )
            db.session.add(product)
        by_code[code] = product
    return by_code


def _seed_suppliers() -> list:
    suppliers = []
    for code, name, tax_id, contact, phone in DEFAULT_SUPPLIERS:
        supplier = Supplier.query.filter_by(code=code, deleted_at=None).first()
        if not supplier:
            supplier = Supplier(code=code, name=name, tax_id=tax_id, contact_person=contact, phone=phone)
            db.session.add(supplier)
        suppliers.append(supplier)
    return suppliers


def seed_demo_data() -> None:
    """Insert demo master data if missing."""
    products = _seed_products()
    suppliers = _seed_suppliers()

    team = Team.query.filter_by(team_code=DEFAULT_TEAM["team_code"]).first()
    if not team:
        team = Team(**DEFAULT_TEAM)
        db.session.add(team)

    db.session.flush()

    # Last supplier stays out of the team scope
    for supplier in suppliers[:-1]:
        scope = ServiceScope.query.filter_by(supplier_id=supplier.id, team_id=team.id).first()
        if not scope:
            db.session.add(ServiceScope(supplier_id=supplier.id, team_id=team.id, is_active=True))

    rice = products["GAO-001"]
    demand = KitchenDemand.query.filter_by(team_id=team.id, product_id=rice.id, period=DEFAULT_DEMAND_PERIOD).first()
    if not demand:
        db.session.add(
            KitchenDemand(
                team_id=team.id,
                product_id=rice.id,
                period=DEFAULT_DEMAND_PERIOD,
                quantity=Decimal("12"),
                unit=rice.unit,
            )
        )

    db.session.commit()
