from datetime import datetime
from decimal import Decimal

import pytest

from quotemaster import create_app
from quotemaster.extensions import db as _db
from quotemaster.models import (
    STATUS_PENDING,
    KitchenDemand,
    Product,
    Quotation,
    QuoteItem,
    ServiceScope,
    Supplier,
    Team,
    User,
)
from quotemaster.security import Actor


@pytest.fixture
def app():
    app = create_app("config.TestConfig")
    with app.app_context():
        _db.create_all()
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def db(app):
    return _db


@pytest.fixture
def manager(app):
    return Actor(user_id=None, username="manager", can_manage=True)


@pytest.fixture
def viewer(app):
    return Actor(user_id=None, username="viewer", can_manage=False)


class Factory:
    """Small helpers that insert rows directly, bypassing the services."""

    def __init__(self, db):
        self.db = db

    def product(self, code, name=None, category="Rau củ", unit="kg", base_price=None, base_quantity=None):
        product = Product(
            code=code,
            name=name or f"Product {code}",
            unit=unit,
            category=category,
            base_price=base_price,
            base_quantity=base_quantity,
        )
        self.db.session.add(product)
        self.db.session.commit()
        return product

    def supplier(self, code, name=None):
        supplier = Supplier(code=code, name=name or f"Supplier {code}")
        self.db.session.add(supplier)
        self.db.session.commit()
        return supplier

    def team(self, name="Bếp 1", region="HCM", team_type="KITCHEN", team_code=None):
        team = Team(name=name, region=region, team_type=team_type, team_code=team_code)
        self.db.session.add(team)
        self.db.session.commit()
        return team

    def scope(self, supplier, team, is_active=True):
        scope = ServiceScope(supplier_id=supplier.id, team_id=team.id, is_active=is_active)
        self.db.session.add(scope)
        self.db.session.commit()
        return scope

    def demand(self, team, product, period, quantity):
        demand = KitchenDemand(
            team_id=team.id, product_id=product.id, period=period, quantity=Decimal(quantity), unit=product.unit
        )
        self.db.session.add(demand)
        self.db.session.commit()
        return demand

    def quotation(self, supplier, period="2024-01-01", region="HCM", status=STATUS_PENDING, items=()):
        """
        items: iterable of (product, dict of QuoteItem fields)
        """
        quotation = Quotation(
            code=Quotation.build_code(supplier.code, period, region),
            period=period,
            region=region,
            supplier_id=supplier.id,
            status=status,
            quote_date=datetime(2024, 1, 1),
        )
        for product, fields in items:
            values = {"quantity": Decimal("1"), "vat_percentage": Decimal("0")}
            values.update(fields)
            quotation.items.append(QuoteItem(product_id=product.id, **values))
        self.db.session.add(quotation)
        self.db.session.commit()
        return quotation

    def user(self, username, password="secret", can_manage=False, is_admin=False):
        user = User(username=username, full_name=username, can_manage_quotations=can_manage, is_admin=is_admin)
        user.set_password(password)
        self.db.session.add(user)
        self.db.session.commit()
        return user


@pytest.fixture
def factory(db):
    return Factory(db)


@pytest.fixture
def client(app):
    return app.test_client()


def login(client, username, password="secret"):
    return client.post("/auth/login", json={"username": username, "password": password})


@pytest.fixture
def manager_client(client, factory):
    factory.user("boss", can_manage=True)
    assert login(client, "boss").status_code == 200
    return client


@pytest.fixture
def viewer_client(client, factory):
    factory.user("guest")
    assert login(client, "guest").status_code == 200
    return client
