"""Tests for makerchecker.services.migration_service (Migration Engine).

Coverage
--------
    - migrate_type replaces the production table with exactly the approved rows
    - REJECTED / unapproved rows are never promoted
    - staging rows survive migration
    - Scenario B: a missing sheet fails before any production write
    - migrate_all commits every type or none
"""

from datetime import date
from unittest.mock import patch

import pytest
from sqlalchemy import func, select

from makerchecker.core.exceptions import NotFoundError, ValidationError
from makerchecker.models import db
from makerchecker.models.production import Item, Plan, Product
from makerchecker.models.staging import ProductStaging
from makerchecker.services import approval_service, migration_service, staging_service
from makerchecker.services.entity_types import EntityType
from makerchecker.services.resubmission_service import submit_rows

_RECORDS = {
    "product": lambda n: {"productName": n, "rate": 1.1, "api": "quote", "effectiveDate": "2024-01-01"},
    "plan": lambda n: {"planName": n, "planType": "family", "premium": 50, "coverageAmount": 10000,
                       "effectiveDate": "2024-01-01"},
    "item": lambda n: {"itemName": n, "itemCategory": "hw", "price": 3, "quantity": 1, "effectiveDate": "2024-01-01"},
}


def _stage(entity_type, *names, pid="P1", approve=()):
    sheet = submit_rows(pid, entity_type, "alice", [_RECORDS[entity_type](n) for n in names])
    strategy_rows = staging_service.get_rows(sheet.sheet_id)
    for row in strategy_rows:
        if row.to_dict()[f"{entity_type}_name"] in approve:
            approval_service.approve_row(entity_type, row.id, "carol")
    return sheet.sheet_id


def _seed_stale_product(name="Stale"):
    db.session.add(Product(
        sheet_id="SHEET-OLD00000", product_name=name, rate=0.5, api="legacy",
        effective_date=date(2020, 1, 1), status="APPROVED",
    ))
    db.session.commit()


def _count(model):
    return db.session.execute(select(func.count()).select_from(model)).scalar_one()


class TestMigrateType:
    def test_production_holds_exactly_the_approved_rows(self):
        _seed_stale_product()
        sheet_id = _stage("product", "A", "B", "C", approve=("A", "C"))

        result = migration_service.migrate_type(sheet_id)

        assert result == {"sheet_id": sheet_id, "entity_type": "product", "migrated": 2}
        products = staging_service.get_production_rows("product")
        assert sorted(p.product_name for p in products) == ["A", "C"]
        assert all(p.sheet_id == sheet_id for p in products)
        assert all(p.approved_by == "carol" and p.status == "APPROVED" for p in products)
        assert all(p.edited_by == "alice" for p in products)

    def test_staging_rows_are_kept(self):
        sheet_id = _stage("product", "A", "B", approve=("A",))
        migration_service.migrate_type(sheet_id)
        assert len(staging_service.get_rows(sheet_id)) == 2

    def test_approved_flag_without_approved_status_is_skipped(self):
        sheet_id = _stage("product", "A", "B", approve=("A", "B"))
        row = db.session.execute(
            select(ProductStaging).where(ProductStaging.product_name == "B")
        ).scalar_one()
        row.status = "REJECTED"
        db.session.commit()

        assert migration_service.migrate_type(sheet_id)["migrated"] == 1

    def test_sheet_without_approvals_empties_production(self):
        _seed_stale_product()
        sheet_id = _stage("product", "A")
        assert migration_service.migrate_type(sheet_id)["migrated"] == 0
        assert _count(Product) == 0

    def test_rerun_is_idempotent(self):
        sheet_id = _stage("product", "A", approve=("A",))
        migration_service.migrate_type(sheet_id)
        migration_service.migrate_type(sheet_id)
        assert _count(Product) == 1

    def test_unknown_sheet(self):
        with pytest.raises(NotFoundError):
            migration_service.migrate_type("SHEET-DEADBEEF")


class TestMigrateAll:
    def test_promotes_every_type_from_current_sheets(self):
        _stage("product", "A", approve=("A",))
        latest_product = _stage("product", "A", "B", approve=("B",))
        _stage("plan", "Gold", "Silver", approve=("Gold", "Silver"))
        _stage("item", "Bolt")

        result = migration_service.migrate_all_staging_to_actual("P1")

        counts = {m["entity_type"]: m["migrated"] for m in result["migrations"]}
        assert counts == {"product": 2, "plan": 2, "item": 0}
        assert result["migrations"][0]["sheet_id"] == latest_product
        assert _count(Product) == 2
        assert _count(Plan) == 2
        assert _count(Item) == 0

    def test_scenario_b_missing_sheet_touches_nothing(self):
        _seed_stale_product()
        _stage("product", "A", approve=("A",))
        _stage("plan", "Gold", approve=("Gold",))

        with pytest.raises(NotFoundError):
            migration_service.migrate_all_staging_to_actual("P1")

        assert [p.product_name for p in staging_service.get_production_rows("product")] == ["Stale"]
        assert _count(Plan) == 0

    def test_failure_in_later_type_rolls_back_earlier_types(self):
        _seed_stale_product()
        _stage("product", "A", approve=("A",))
        _stage("plan", "Gold", approve=("Gold",))
        _stage("item", "Bolt", approve=("Bolt",))

        real_replace = migration_service._replace_production

        def failing_on_items(strategy, sheet_id):
            if strategy.entity_type is EntityType.ITEM:
                raise RuntimeError("disk full")
            return real_replace(strategy, sheet_id)

        with patch.object(migration_service, "_replace_production", side_effect=failing_on_items):
            with pytest.raises(RuntimeError):
                migration_service.migrate_all_staging_to_actual("P1")

        assert [p.product_name for p in staging_service.get_production_rows("product")] == ["Stale"]
        assert _count(Plan) == 0

    def test_other_processes_are_not_used(self):
        for entity_type, name in (("product", "A"), ("plan", "Gold"), ("item", "Bolt")):
            _stage(entity_type, name, pid="P2", approve=(name,))
        with pytest.raises(NotFoundError):
            migration_service.migrate_all_staging_to_actual("P1")

    def test_blank_process_id(self):
        with pytest.raises(ValidationError):
            migration_service.migrate_all_staging_to_actual("")
