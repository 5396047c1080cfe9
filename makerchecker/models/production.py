"""
Production models: the live, currently-approved snapshot per entity type.

These tables hold only the current generation. Each migration run deletes
every row of a type and re-inserts the approved staging rows of one sheet;
history lives in the staging tables, not here.
"""

from datetime import datetime, timezone

from makerchecker.models import db
from makerchecker.models.staging import _json_value


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProductionRowMixin:
    """Approval metadata carried over from the promoted staging row."""

    id = db.Column(db.Integer, primary_key=True)
    sheet_id = db.Column(db.String(32), nullable=False, index=True, comment="Sheet the row was promoted from")
    status = db.Column(db.String(20), nullable=True)
    approved_by = db.Column(db.String(100), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    edited_by = db.Column(db.String(100), nullable=True)
    edited_at = db.Column(db.DateTime(timezone=True), nullable=True)
    comments = db.Column(db.String(1000), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    def to_dict(self) -> dict:
        return {c.name: _json_value(getattr(self, c.name)) for c in self.__table__.columns}


class Product(ProductionRowMixin, db.Model):
    __tablename__ = "products"

    product_name = db.Column(db.String(200), nullable=False)
    rate = db.Column(db.Float, nullable=False)
    api = db.Column(db.String(200), nullable=False)
    effective_date = db.Column(db.Date, nullable=False)


class Plan(ProductionRowMixin, db.Model):
    __tablename__ = "plans"

    plan_name = db.Column(db.String(200), nullable=False)
    plan_type = db.Column(db.String(100), nullable=False)
    premium = db.Column(db.Float, nullable=False)
    coverage_amount = db.Column(db.Integer, nullable=False)
    effective_date = db.Column(db.Date, nullable=False)


class Item(ProductionRowMixin, db.Model):
    __tablename__ = "items"

    item_name = db.Column(db.String(200), nullable=False)
    item_category = db.Column(db.String(100), nullable=False)
    price = db.Column(db.Float, nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    effective_date = db.Column(db.Date, nullable=False)
