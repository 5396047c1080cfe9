"""
Sheet model: versioned grouping of staging rows.

One sheet is created per maker submission for a (process instance, entity
type) pair. Sheets are never deleted: every resubmission appends a new
generation with version + 1, and the highest version is the current sheet.

Only the approval columns (status, approved_by, approved_at, comments) are
mutated after creation.
"""

import uuid
from datetime import datetime, timezone

from makerchecker.models import db

# ── Constants ─────────────────────────────────────────────────────────────────

SHEET_STATUS_PENDING = "PENDING"
SHEET_STATUS_APPROVED = "APPROVED"

VALID_SHEET_STATUSES = frozenset({SHEET_STATUS_PENDING, SHEET_STATUS_APPROVED})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_sheet_id() -> str:
    """Return a fresh public sheet identifier, e.g. ``SHEET-1A2B3C4D``."""
    return "SHEET-" + uuid.uuid4().hex[:8].upper()


class Sheet(db.Model):
    """
    Versioned, immutable grouping of staging rows.

    Business rules:
    - sheet_id is globally unique and generated, never supplied by callers.
    - version is monotonic per (process_instance_id, entity_type); the unique
      constraint below turns a concurrent double-create into an IntegrityError.
    - status moves PENDING -> APPROVED only; re-approval is idempotent.
    """

    __tablename__ = "sheets"

    id = db.Column(db.Integer, primary_key=True)
    sheet_id = db.Column(db.String(32), nullable=False, unique=True, default=generate_sheet_id)

    entity_type = db.Column(
        db.String(20),
        nullable=False,
        comment="product | plan | item",
    )
    process_instance_id = db.Column(
        db.String(64),
        nullable=False,
        comment="Opaque correlation key issued by the workflow orchestrator",
    )
    version = db.Column(db.Integer, nullable=False, default=1)

    status = db.Column(
        db.String(20),
        nullable=False,
        default=SHEET_STATUS_PENDING,
        comment="PENDING | APPROVED",
    )
    created_by = db.Column(db.String(100), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    approved_by = db.Column(db.String(100), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    comments = db.Column(db.Text, nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        db.UniqueConstraint(
            "process_instance_id", "entity_type", "version",
            name="uq_sheet_process_type_version",
        ),
        db.Index("ix_sheet_process_type", "process_instance_id", "entity_type"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sheet_id": self.sheet_id,
            "entity_type": self.entity_type,
            "process_instance_id": self.process_instance_id,
            "version": self.version,
            "status": self.status,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "approved_by": self.approved_by,
            "approved_at": self.approved_at.isoformat() if self.approved_at else None,
            "comments": self.comments,
        }

    def __repr__(self) -> str:
        return f"<Sheet {self.sheet_id} {self.entity_type} v{self.version} {self.status}>"
