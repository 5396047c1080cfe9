"""Unit tests for makerchecker.services.entity_types.

Coverage
--------
    - EntityType wire-name parsing
    - payload coercion (snake_case / camelCase, type checks, error details)
    - business equality ignores approval and audit columns
    - projection to the production shape
    - start-up schema validation and drift detection
"""

import dataclasses
from datetime import date, datetime, timezone

import pytest

from makerchecker.core.exceptions import ValidationError
from makerchecker.models.production import Plan, Product
from makerchecker.services import entity_types
from makerchecker.services.entity_types import (
    BusinessField,
    EntityType,
    all_strategies,
    get_strategy,
    validate_against_schema,
)


def _product_payload(**overrides):
    payload = {"productName": "Term Life", "rate": 1.25, "api": "quote-v2", "effectiveDate": "2024-01-01"}
    payload.update(overrides)
    return payload


class TestEntityTypeParse:
    @pytest.mark.parametrize("raw", ["product", "PRODUCT", " Product ", "products", EntityType.PRODUCT])
    def test_accepts_wire_names(self, raw):
        assert EntityType.parse(raw) is EntityType.PRODUCT

    def test_plural(self):
        assert EntityType.ITEM.plural == "items"

    @pytest.mark.parametrize("raw", ["", None, "policy", "s"])
    def test_rejects_unknown(self, raw):
        with pytest.raises(ValidationError) as exc:
            EntityType.parse(raw)
        assert "entity_type" in exc.value.details

    def test_strategy_order_is_product_plan_item(self):
        assert [s.entity_type for s in all_strategies()] == [EntityType.PRODUCT, EntityType.PLAN, EntityType.ITEM]


class TestBuildStagingRow:
    def test_camel_case_payload_is_coerced(self):
        row = get_strategy("product").build_staging_row(_product_payload(rate="1.25"))
        assert row.product_name == "Term Life"
        assert row.rate == 1.25
        assert row.effective_date == date(2024, 1, 1)

    def test_snake_case_payload(self):
        payload = {
            "plan_name": "Gold", "plan_type": "family", "premium": 99,
            "coverage_amount": "250000", "effective_date": "01.02.2024",
        }
        row = get_strategy("plan").build_staging_row(payload)
        assert row.premium == 99.0
        assert row.coverage_amount == 250000
        assert row.effective_date == date(2024, 2, 1)

    def test_comments_are_kept(self):
        row = get_strategy("product").build_staging_row(_product_payload(comments="new rate"))
        assert row.comments == "new rate"

    def test_missing_field_names_row_and_field(self):
        payload = _product_payload()
        del payload["api"]
        with pytest.raises(ValidationError) as exc:
            get_strategy("product").build_staging_row(payload, index=3)
        assert exc.value.details["row"] == 3
        assert "api" in exc.value.details["fields"]

    def test_bad_date_is_rejected(self):
        with pytest.raises(ValidationError) as exc:
            get_strategy("product").build_staging_row(_product_payload(effectiveDate="next week"))
        assert "effective_date" in exc.value.details["fields"]

    def test_bool_is_not_a_number(self):
        with pytest.raises(ValidationError):
            get_strategy("product").build_staging_row(_product_payload(rate=True))

    def test_fractional_quantity_is_rejected(self):
        payload = {"itemName": "Bolt", "itemCategory": "hw", "price": 0.1, "quantity": 2.5, "effectiveDate": "2024-01-01"}
        with pytest.raises(ValidationError) as exc:
            get_strategy("item").build_staging_row(payload)
        assert "quantity" in exc.value.details["fields"]

    @pytest.mark.parametrize("raw", ["NaN", "inf", "-inf", float("nan"), float("inf")])
    def test_non_finite_number_is_rejected(self, raw):
        with pytest.raises(ValidationError) as exc:
            get_strategy("product").build_staging_row(_product_payload(rate=raw))
        assert exc.value.details["fields"]["rate"] == "expected a finite number"

    def test_string_longer_than_column_is_rejected(self):
        with pytest.raises(ValidationError) as exc:
            get_strategy("product").build_staging_row(_product_payload(productName="x" * 201))
        assert "product_name" in exc.value.details["fields"]

    def test_string_at_column_width_is_accepted(self):
        row = get_strategy("product").build_staging_row(_product_payload(productName="x" * 200))
        assert len(row.product_name) == 200

    def test_comments_longer_than_column_are_rejected(self):
        with pytest.raises(ValidationError) as exc:
            get_strategy("product").build_staging_row(_product_payload(comments="c" * 1001))
        assert "comments" in exc.value.details["fields"]

    def test_null_snake_case_key_falls_back_to_alias(self):
        row = get_strategy("product").build_staging_row(_product_payload(product_name=None, productName="A"))
        assert row.product_name == "A"

    def test_non_mapping_row(self):
        with pytest.raises(ValidationError):
            get_strategy("item").build_staging_row(["Bolt"], index=0)


class TestCompare:
    def test_approval_columns_are_ignored(self):
        strategy = get_strategy("product")
        existing = strategy.build_staging_row(_product_payload())
        existing.mark_approved("carol", datetime.now(timezone.utc))
        existing.created_by = "alice"
        incoming = strategy.build_staging_row(_product_payload())
        assert strategy.compare(existing, incoming)

    def test_any_business_change_breaks_equality(self):
        strategy = get_strategy("product")
        existing = strategy.build_staging_row(_product_payload())
        assert not strategy.compare(existing, strategy.build_staging_row(_product_payload(rate=1.26)))
        assert not strategy.compare(existing, strategy.build_staging_row(_product_payload(effectiveDate="2024-01-02")))

    def test_string_and_number_spellings_compare_equal_after_coercion(self):
        strategy = get_strategy("product")
        assert strategy.compare(
            strategy.build_staging_row(_product_payload(rate=2)),
            strategy.build_staging_row(_product_payload(rate="2.0")),
        )


def test_project_to_production_carries_approval_metadata():
    strategy = get_strategy("product")
    row = strategy.build_staging_row(_product_payload())
    row.sheet_id = "SHEET-0000ABCD"
    row.mark_approved("carol", datetime(2024, 3, 1, tzinfo=timezone.utc))
    row.edited_by = "alice"

    prod = strategy.project_to_production(row)
    assert isinstance(prod, Product)
    assert prod.product_name == "Term Life"
    assert prod.sheet_id == "SHEET-0000ABCD"
    assert prod.status == "APPROVED"
    assert prod.approved_by == "carol"
    assert prod.edited_by == "alice"


def test_business_field_alias():
    assert BusinessField("coverage_amount", int).alias == "coverageAmount"
    assert BusinessField("api", str).alias == "api"


class TestSchemaValidation:
    def test_declared_fields_match_tables(self):
        validate_against_schema()

    def test_field_missing_from_tables_fails(self, monkeypatch):
        strategy = get_strategy("plan")
        drifted = dataclasses.replace(strategy, fields=strategy.fields + (BusinessField("deductible", float),))
        monkeypatch.setitem(entity_types._STRATEGIES, EntityType.PLAN, drifted)
        with pytest.raises(RuntimeError, match="deductible"):
            validate_against_schema()

    def test_undeclared_business_column_fails(self, monkeypatch):
        strategy = get_strategy("plan")
        drifted = dataclasses.replace(strategy, fields=strategy.fields[:-1])
        monkeypatch.setitem(entity_types._STRATEGIES, EntityType.PLAN, drifted)
        with pytest.raises(RuntimeError, match="effective_date"):
            validate_against_schema()

    def test_production_model_is_checked(self, monkeypatch):
        strategy = get_strategy("product")
        drifted = dataclasses.replace(strategy, production_model=Plan)
        monkeypatch.setitem(entity_types._STRATEGIES, EntityType.PRODUCT, drifted)
        with pytest.raises(RuntimeError, match="production"):
            validate_against_schema()
