"""maker_checker_staging_tables

Creates the maker-checker tables:
  - sheets: versioned sheet generations
  - product_staging / plan_staging / item_staging: rows awaiting approval
  - products / plans / items: production snapshots

Tables created conditionally (IF NOT EXISTS semantics) to support idempotent
execution against databases that already received these tables via
db.create_all() in a development environment.

Revision ID: 5e1f0c2a9b47
Revises:
Create Date: 2026-10-18 09:12:41.207715
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = '5e1f0c2a9b47'
down_revision = None
branch_labels = None
depends_on = None


# Business columns per entity type: (name, type)
_BUSINESS_COLUMNS = {
    "product": [
        ("product_name", sa.String(length=200)),
        ("rate", sa.Float()),
        ("api", sa.String(length=200)),
        ("effective_date", sa.Date()),
    ],
    "plan": [
        ("plan_name", sa.String(length=200)),
        ("plan_type", sa.String(length=100)),
        ("premium", sa.Float()),
        ("coverage_amount", sa.Integer()),
        ("effective_date", sa.Date()),
    ],
    "item": [
        ("item_name", sa.String(length=200)),
        ("item_category", sa.String(length=100)),
        ("price", sa.Float()),
        ("quantity", sa.Integer()),
        ("effective_date", sa.Date()),
    ],
}

_PRODUCTION_TABLES = {"product": "products", "plan": "plans", "item": "items"}


def _business(entity_type):
    return [sa.Column(name, col_type, nullable=False) for name, col_type in _BUSINESS_COLUMNS[entity_type]]


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing = set(inspector.get_table_names())

    # ── Sheet ─────────────────────────────────────────────────────────────
    if "sheets" not in existing:
        op.create_table(
            "sheets",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("sheet_id", sa.String(length=32), nullable=False),
            sa.Column("entity_type", sa.String(length=20), nullable=False, comment="product | plan | item"),
            sa.Column(
                "process_instance_id", sa.String(length=64), nullable=False,
                comment="Opaque correlation key issued by the workflow orchestrator",
            ),
            sa.Column("version", sa.Integer(), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, comment="PENDING | APPROVED"),
            sa.Column("created_by", sa.String(length=100), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("approved_by", sa.String(length=100), nullable=True),
            sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("comments", sa.Text(), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("sheet_id"),
            sa.UniqueConstraint(
                "process_instance_id", "entity_type", "version",
                name="uq_sheet_process_type_version",
            ),
        )
        op.create_index("ix_sheet_process_type", "sheets", ["process_instance_id", "entity_type"])

    # ── Staging tables ────────────────────────────────────────────────────
    for entity_type in _BUSINESS_COLUMNS:
        table = f"{entity_type}_staging"
        if table in existing:
            continue
        op.create_table(
            table,
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("sheet_id", sa.String(length=32), nullable=False),
            *_business(entity_type),
            sa.Column("status", sa.String(length=20), nullable=False),
            sa.Column("approved", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("approved_by", sa.String(length=100), nullable=True),
            sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column(
                "created_by", sa.String(length=100), nullable=True,
                comment="Submitter who first introduced this logical row",
            ),
            sa.Column(
                "edited_by", sa.String(length=100), nullable=True,
                comment="Submitter of the generation this row belongs to",
            ),
            sa.Column("edited_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("comments", sa.String(length=1000), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["sheet_id"], ["sheets.sheet_id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(f"ix_{table}_sheet_id", table, ["sheet_id"])

    # ── Production tables ─────────────────────────────────────────────────
    for entity_type, table in _PRODUCTION_TABLES.items():
        if table in existing:
            continue
        op.create_table(
            table,
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column(
                "sheet_id", sa.String(length=32), nullable=False,
                comment="Sheet the row was promoted from",
            ),
            *_business(entity_type),
            sa.Column("status", sa.String(length=20), nullable=True),
            sa.Column("approved_by", sa.String(length=100), nullable=True),
            sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("edited_by", sa.String(length=100), nullable=True),
            sa.Column("edited_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("comments", sa.String(length=1000), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(f"ix_{table}_sheet_id", table, ["sheet_id"])


def downgrade():
    for table in _PRODUCTION_TABLES.values():
        op.drop_index(f"ix_{table}_sheet_id", table_name=table)
        op.drop_table(table)
    for entity_type in reversed(list(_BUSINESS_COLUMNS)):
        table = f"{entity_type}_staging"
        op.drop_index(f"ix_{table}_sheet_id", table_name=table)
        op.drop_table(table)
    op.drop_index("ix_sheet_process_type", table_name="sheets")
    op.drop_table("sheets")
