"""
Staging models: rows awaiting checker approval, one table per entity type.

A staging row belongs to exactly one sheet and is never moved across sheets;
a resubmission always creates new rows under a new sheet. Business columns
are immutable after insert. Only the approval columns change, and only via
the approval service.

Rows are never deleted: every sheet generation stays queryable as the audit
trail behind the production tables.
"""

from datetime import date, datetime, timezone

from sqlalchemy.orm import declared_attr

from makerchecker.models import db

# ── Constants ─────────────────────────────────────────────────────────────────

ROW_STATUS_PENDING = "PENDING"
ROW_STATUS_APPROVED = "APPROVED"
ROW_STATUS_REJECTED = "REJECTED"

VALID_ROW_STATUSES = frozenset({ROW_STATUS_PENDING, ROW_STATUS_APPROVED, ROW_STATUS_REJECTED})

# Columns that carry approval state across resubmissions
APPROVAL_FIELDS = ("approved", "approved_by", "approved_at", "status")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _json_value(value):
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


class StagingRowMixin:
    """Approval and audit columns shared by every staging table."""

    id = db.Column(db.Integer, primary_key=True)

    @declared_attr
    def sheet_id(cls):
        return db.Column(
            db.String(32),
            db.ForeignKey("sheets.sheet_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        )

    status = db.Column(db.String(20), nullable=False, default=ROW_STATUS_PENDING)
    approved = db.Column(db.Boolean, nullable=False, default=False)
    approved_by = db.Column(db.String(100), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by = db.Column(db.String(100), nullable=True, comment="Submitter who first introduced this logical row")
    edited_by = db.Column(db.String(100), nullable=True, comment="Submitter of the generation this row belongs to")
    edited_at = db.Column(db.DateTime(timezone=True), nullable=True)
    comments = db.Column(db.String(1000), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    @property
    def is_approved(self) -> bool:
        return bool(self.approved) and self.status == ROW_STATUS_APPROVED

    def mark_approved(self, approver: str, when: datetime) -> None:
        self.approved = True
        self.status = ROW_STATUS_APPROVED
        self.approved_by = approver
        self.approved_at = when

    def clear_approval(self) -> None:
        self.approved = False
        self.status = ROW_STATUS_PENDING
        self.approved_by = None
        self.approved_at = None

    def copy_approval_from(self, other: "StagingRowMixin") -> None:
        for field in APPROVAL_FIELDS:
            setattr(self, field, getattr(other, field))

    def to_dict(self) -> dict:
        return {c.name: _json_value(getattr(self, c.name)) for c in self.__table__.columns}


class ProductStaging(StagingRowMixin, db.Model):
    __tablename__ = "product_staging"

    product_name = db.Column(db.String(200), nullable=False)
    rate = db.Column(db.Float, nullable=False)
    api = db.Column(db.String(200), nullable=False, comment="API name/identifier")
    effective_date = db.Column(db.Date, nullable=False)

    def __repr__(self) -> str:
        return f"<ProductStaging #{self.id} {self.product_name!r} sheet={self.sheet_id} {self.status}>"


class PlanStaging(StagingRowMixin, db.Model):
    __tablename__ = "plan_staging"

    plan_name = db.Column(db.String(200), nullable=False)
    plan_type = db.Column(db.String(100), nullable=False)
    premium = db.Column(db.Float, nullable=False)
    coverage_amount = db.Column(db.Integer, nullable=False)
    effective_date = db.Column(db.Date, nullable=False)

    def __repr__(self) -> str:
        return f"<PlanStaging #{self.id} {self.plan_name!r} sheet={self.sheet_id} {self.status}>"


class ItemStaging(StagingRowMixin, db.Model):
    __tablename__ = "item_staging"

    item_name = db.Column(db.String(200), nullable=False)
    item_category = db.Column(db.String(100), nullable=False)
    price = db.Column(db.Float, nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    effective_date = db.Column(db.Date, nullable=False)

    def __repr__(self) -> str:
        return f"<ItemStaging #{self.id} {self.item_name!r} sheet={self.sheet_id} {self.status}>"
