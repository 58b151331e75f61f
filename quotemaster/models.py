"""
QuoteMaster – Domain Models

Master data:
- Product, Supplier (case-insensitive unique codes among non-deleted rows, soft delete)
- Team (kitchen or office), ServiceScope (supplier <-> team, toggled via is_active)
- KitchenDemand (team-specific quantity override per product and period)

Quotation domain:
- Quotation (one per supplier + period + region, optimistic version counter)
- QuoteItem (initial / negotiated / approved price columns; effective price is derived)
- PriceHistory (append-only ledger written by the approval transition)

Access & audit:
- User (source of the manage capability)
- AuditLog

IMPORTANT:
- VAT-inclusive totals are never stored; they are recomputed from the resolved unit price.
- PriceHistory rows can never be updated or deleted through the ORM.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

from flask_login import UserMixin
from sqlalchemy import event, func, text
from werkzeug.security import generate_password_hash, check_password_hash

from .errors import ImmutableRecordError
from .extensions import db


# ---------------------------------------------------------------------
# Status vocabularies
# ---------------------------------------------------------------------
STATUS_PENDING = "pending"
STATUS_NEGOTIATION = "negotiation"
STATUS_APPROVED = "approved"
STATUS_CANCELLED = "cancelled"

QUOTATION_STATUSES = (STATUS_PENDING, STATUS_NEGOTIATION, STATUS_APPROVED, STATUS_CANCELLED)

PRICE_TYPE_APPROVED = "approved"

RECORD_ACTIVE = "active"
RECORD_INACTIVE = "inactive"

TEAM_KITCHEN = "KITCHEN"
TEAM_OFFICE = "OFFICE"


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------
def to_decimal(value) -> Decimal | None:
    """Convert Numeric/None to Decimal (None stays None)."""
    if value is None:
        return None
    return Decimal(str(value))


def money(x: Decimal) -> Decimal:
    return x.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


# ---------------------------------------------------------------------
# Master data
# ---------------------------------------------------------------------
class Product(db.Model):
    """Catalog product. Soft-deletable; never hard-removed while referenced."""

    __tablename__ = "products"

    id = db.Column(db.Integer, primary_key=True)

    code = db.Column(db.String(50), nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False)
    specification = db.Column(db.Text, nullable=True)
    unit = db.Column(db.String(50), nullable=False)
    category = db.Column(db.String(100), nullable=False, index=True)

    # Static reference price ("giá cơ sở") and default comparison quantity
    base_price = db.Column(db.Numeric(12, 2), nullable=True)
    base_quantity = db.Column(db.Numeric(10, 2), nullable=True)

    status = db.Column(db.String(20), nullable=False, default=RECORD_ACTIVE, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    deleted_at = db.Column(db.DateTime, nullable=True, index=True)

    __table_args__ = (
        db.Index(
            "uq_products_code_live",
            func.lower(code),
            unique=True,
            sqlite_where=text("deleted_at IS NULL"),
            postgresql_where=text("deleted_at IS NULL"),
        ),
    )

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def __repr__(self):
        return f"<Product {self.code} - {self.name}>"


class Supplier(db.Model):
    """Supplier master data. Soft-deletable."""

    __tablename__ = "suppliers"

    id = db.Column(db.Integer, primary_key=True)

    code = db.Column(db.String(20), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)

    tax_id = db.Column(db.String(50))
    address = db.Column(db.Text)
    contact_person = db.Column(db.String(255))
    phone = db.Column(db.String(20))
    email = db.Column(db.String(255))

    status = db.Column(db.String(20), nullable=False, default=RECORD_ACTIVE, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    deleted_at = db.Column(db.DateTime, nullable=True, index=True)

    scopes = db.relationship("ServiceScope", back_populates="supplier", lazy=True)

    __table_args__ = (
        db.Index(
            "uq_suppliers_code_live",
            func.lower(code),
            unique=True,
            sqlite_where=text("deleted_at IS NULL"),
            postgresql_where=text("deleted_at IS NULL"),
        ),
    )

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def __repr__(self):
        return f"<Supplier {self.code} - {self.name}>"


class Team(db.Model):
    """Organizational team. Kitchens are teams with team_type = KITCHEN."""

    __tablename__ = "teams"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(100), nullable=False)
    team_code = db.Column(db.String(50), nullable=True, unique=True)
    region = db.Column(db.String(50), nullable=True, index=True)
    address = db.Column(db.Text, nullable=True)
    team_type = db.Column(db.String(20), nullable=False, default=TEAM_OFFICE, index=True)

    status = db.Column(db.String(20), nullable=False, default=RECORD_ACTIVE)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    deleted_at = db.Column(db.DateTime, nullable=True)

    scopes = db.relationship("ServiceScope", back_populates="team", lazy=True)

    @property
    def is_kitchen(self) -> bool:
        return self.team_type == TEAM_KITCHEN

    def __repr__(self):
        return f"<Team {self.name} ({self.region or '-'})>"


class ServiceScope(db.Model):
    """
    Supplier <-> Team relation.

    Deactivating a scope removes the supplier from future price lists for the team
    without touching quotations or price history.
    """

    __tablename__ = "supplier_service_scopes"

    id = db.Column(db.Integer, primary_key=True)

    supplier_id = db.Column(
        db.Integer,
        db.ForeignKey("suppliers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    team_id = db.Column(
        db.Integer,
        db.ForeignKey("teams.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    is_active = db.Column(db.Boolean, default=True, nullable=False, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    supplier = db.relationship("Supplier", back_populates="scopes")
    team = db.relationship("Team", back_populates="scopes")

    __table_args__ = (db.UniqueConstraint("supplier_id", "team_id", name="uq_scope_supplier_team"),)


class KitchenDemand(db.Model):
    """Team-specific comparison quantity for a product in a period."""

    __tablename__ = "kitchen_period_demands"

    id = db.Column(db.Integer, primary_key=True)

    team_id = db.Column(
        db.Integer,
        db.ForeignKey("teams.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id = db.Column(
        db.Integer,
        db.ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    period = db.Column(db.String(10), nullable=False, index=True)
    quantity = db.Column(db.Numeric(10, 2), nullable=False)
    unit = db.Column(db.String(50), nullable=False)
    notes = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(20), nullable=False, default=RECORD_ACTIVE)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    team = db.relationship("Team")
    product = db.relationship("Product")

    __table_args__ = (
        db.UniqueConstraint("team_id", "product_id", "period", name="uq_demand_team_product_period"),
        db.CheckConstraint("quantity > 0", name="ck_demand_positive_quantity"),
    )


# ---------------------------------------------------------------------
# Quotation domain
# ---------------------------------------------------------------------
class Quotation(db.Model):
    """
    All line items one supplier submitted for one period + region.

    `version` is SQLAlchemy's optimistic lock counter: every UPDATE checks the
    version it loaded, so two concurrent approvals cannot both succeed.
    """

    __tablename__ = "quotations"

    id = db.Column(db.Integer, primary_key=True)

    code = db.Column(db.String(100), nullable=False, unique=True)
    period = db.Column(db.String(10), nullable=False, index=True)
    region = db.Column(db.String(50), nullable=False, index=True)
    category = db.Column(db.String(100), nullable=True)

    supplier_id = db.Column(
        db.Integer,
        db.ForeignKey("suppliers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    status = db.Column(db.String(20), nullable=False, default=STATUS_PENDING, index=True)

    quote_date = db.Column(db.DateTime, nullable=True)
    update_date = db.Column(db.DateTime, nullable=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    version = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    supplier = db.relationship("Supplier")

    items = db.relationship(
        "QuoteItem",
        back_populates="quotation",
        cascade="all, delete-orphan",
        order_by="QuoteItem.id",
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        db.UniqueConstraint("supplier_id", "period", "region", name="uq_quotation_supplier_period_region"),
        db.CheckConstraint(
            "status IN ('pending', 'negotiation', 'approved', 'cancelled')",
            name="ck_quotation_status",
        ),
    )

    @staticmethod
    def build_code(supplier_code: str, period: str, region: str) -> str:
        return f"Q-{supplier_code}-{period}-{region}"

    def __repr__(self):
        return f"<Quotation {self.code} [{self.status}]>"


class QuoteItem(db.Model):
    __tablename__ = "quote_items"

    id = db.Column(db.Integer, primary_key=True)

    quotation_id = db.Column(
        db.Integer,
        db.ForeignKey("quotations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id = db.Column(
        db.Integer,
        db.ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    quantity = db.Column(db.Numeric(12, 2), nullable=True)

    initial_price = db.Column(db.Numeric(12, 2), nullable=True)
    negotiated_price = db.Column(db.Numeric(12, 2), nullable=True)
    approved_price = db.Column(db.Numeric(12, 2), nullable=True)

    vat_percentage = db.Column(db.Numeric(5, 2), nullable=False, default=Decimal("0"))
    currency = db.Column(db.String(3), nullable=False, default="VND")

    negotiation_rounds = db.Column(db.Integer, nullable=False, default=0)
    last_negotiated_at = db.Column(db.DateTime, nullable=True)
    approved_at = db.Column(db.DateTime, nullable=True)
    approved_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    quotation = db.relationship("Quotation", back_populates="items")
    product = db.relationship("Product")

    __table_args__ = (
        db.UniqueConstraint("quotation_id", "product_id", name="uq_quote_item_product"),
        db.CheckConstraint("quantity IS NULL OR quantity > 0", name="ck_quote_item_positive_quantity"),
        db.CheckConstraint(
            "(initial_price IS NULL OR initial_price >= 0)"
            " AND (negotiated_price IS NULL OR negotiated_price >= 0)"
            " AND (approved_price IS NULL OR approved_price >= 0)",
            name="ck_quote_item_non_negative_prices",
        ),
        db.CheckConstraint("vat_percentage >= 0 AND vat_percentage <= 100", name="ck_quote_item_vat"),
    )


class PriceHistory(db.Model):
    """Append-only ledger of approved prices."""

    __tablename__ = "price_history"

    id = db.Column(db.Integer, primary_key=True)

    product_id = db.Column(
        db.Integer,
        db.ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    supplier_id = db.Column(
        db.Integer,
        db.ForeignKey("suppliers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    quotation_id = db.Column(
        db.Integer,
        db.ForeignKey("quotations.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    period = db.Column(db.String(10), nullable=False, index=True)
    region = db.Column(db.String(50), nullable=True, index=True)
    price = db.Column(db.Numeric(12, 2), nullable=False)
    price_type = db.Column(db.String(20), nullable=False, default=PRICE_TYPE_APPROVED)

    recorded_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

    __table_args__ = (
        db.CheckConstraint("price >= 0", name="ck_price_history_non_negative"),
        db.CheckConstraint(
            "price_type IN ('initial', 'negotiated', 'approved')",
            name="ck_price_history_type",
        ),
    )


@event.listens_for(PriceHistory, "before_update")
def _price_history_no_update(mapper, connection, target):
    raise ImmutableRecordError("Price history rows are append-only", price_history_id=target.id)


@event.listens_for(PriceHistory, "before_delete")
def _price_history_no_delete(mapper, connection, target):
    raise ImmutableRecordError("Price history rows are append-only", price_history_id=target.id)


# ---------------------------------------------------------------------
# Access & audit
# ---------------------------------------------------------------------
class User(UserMixin, db.Model):
    """System login user. `can_manage()` is the single capability the core consumes."""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    username = db.Column(db.String(80), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    full_name = db.Column(db.String(120), nullable=True)

    is_admin = db.Column(db.Boolean, default=False, nullable=False, index=True)
    can_manage_quotations = db.Column(db.Boolean, default=False, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def set_password(self, password: str):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    def can_manage(self):
        return bool(self.is_admin or self.can_manage_quotations)

    def __repr__(self):
        return f"<User {self.username}>"


class AuditLog(db.Model):
    """Who did what to which entity, with before/after snapshots."""

    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    username_snapshot = db.Column(db.String(150), nullable=True)

    entity_type = db.Column(db.String(50), nullable=False, index=True)
    entity_id = db.Column(db.Integer, nullable=False, index=True)

    action = db.Column(db.String(20), nullable=False, index=True)

    before_data = db.Column(db.Text, nullable=True)
    after_data = db.Column(db.Text, nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
