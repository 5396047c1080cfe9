"""
Entity-type strategy table.

The three record families (product, plan, item) behave identically apart
from their business columns. Everything type-specific is declared here once:

    EntityType  ->  EntityStrategy(fields, staging_model, production_model)

Callers resolve the strategy once per operation (``get_strategy``) and then
use ``compare`` / ``build_staging_row`` / ``project_to_production`` without
any further type checks.

The significant-field lists are validated against the ORM schema at start-up
(``validate_against_schema``) so they cannot drift from the tables.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date
from enum import Enum

from makerchecker.core.exceptions import ValidationError
from makerchecker.models.production import Item, Plan, Product
from makerchecker.models.staging import ItemStaging, PlanStaging, ProductStaging
from makerchecker.utils.helpers import parse_date_input

logger = logging.getLogger(__name__)

# Staging columns that are approval/audit metadata, never business data
STAGING_META_COLUMNS = frozenset({
    "id", "sheet_id", "status", "approved", "approved_by", "approved_at",
    "created_by", "edited_by", "edited_at", "comments", "created_at",
})

# Approval metadata copied onto a production row when it is promoted
PROMOTED_META_COLUMNS = (
    "sheet_id", "status", "approved_by", "approved_at",
    "edited_by", "edited_at", "comments",
)


class EntityType(str, Enum):
    PRODUCT = "product"
    PLAN = "plan"
    ITEM = "item"

    @property
    def plural(self) -> str:
        return f"{self.value}s"

    @classmethod
    def parse(cls, value) -> "EntityType":
        """Resolve a wire name (``product``, ``Plans``, ...) to an EntityType."""
        if isinstance(value, cls):
            return value
        raw = (str(value) if value is not None else "").strip().lower()
        if raw.endswith("s") and raw[:-1] in {t.value for t in cls}:
            raw = raw[:-1]
        try:
            return cls(raw)
        except ValueError:
            raise ValidationError(
                f"Invalid entity_type '{value}'. "
                f"Must be one of: {', '.join(sorted(t.value for t in cls))}",
                details={"entity_type": value},
            ) from None


# ── Field coercion ────────────────────────────────────────────────────────────


def _to_str(value):
    if isinstance(value, str):
        return value
    raise ValueError("expected a string")


def _to_float(value):
    if isinstance(value, bool):
        raise ValueError("expected a number")
    number = float(value)
    if not math.isfinite(number):
        raise ValueError("expected a finite number")
    return number


def _to_int(value):
    if isinstance(value, bool):
        raise ValueError("expected an integer")
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError("expected an integer")
        return int(value)
    return int(value)


def _to_date(value) -> date:
    return parse_date_input(value)


_COERCERS = {
    str: _to_str,
    float: _to_float,
    int: _to_int,
    date: _to_date,
}


@dataclass(frozen=True)
class BusinessField:
    """One significant column: snake_case attribute, camelCase wire alias, type."""

    name: str
    type: type

    @property
    def alias(self) -> str:
        head, *rest = self.name.split("_")
        return head + "".join(part.title() for part in rest)

    def read(self, payload: dict, max_length: int | None = None):
        """Return the coerced value from ``payload`` (either spelling).

        ``max_length`` bounds string values to the column width.
        """
        raw = payload.get(self.name)
        if raw is None:
            raw = payload.get(self.alias)
        if raw is None or raw == "":
            raise ValueError("is required")
        value = _COERCERS[self.type](raw)
        if max_length is not None and isinstance(value, str) and len(value) > max_length:
            raise ValueError(f"longer than {max_length} characters")
        return value


@dataclass(frozen=True)
class EntityStrategy:
    entity_type: EntityType
    fields: tuple[BusinessField, ...]
    staging_model: type
    production_model: type

    @property
    def field_names(self) -> tuple[str, ...]:
        return tuple(f.name for f in self.fields)

    @property
    def label_field(self) -> str:
        return self.fields[0].name

    def label(self, row) -> str:
        return str(getattr(row, self.label_field, None))

    def column_length(self, name: str) -> int | None:
        """Declared width of a staging string column, None when unbounded."""
        return getattr(self.staging_model.__table__.c[name].type, "length", None)

    def compare(self, existing, incoming) -> bool:
        """True when both rows are business-equal (approval/audit columns ignored)."""
        return all(getattr(existing, name) == getattr(incoming, name) for name in self.field_names)

    def build_staging_row(self, payload: dict, index: int = 0):
        """Coerce one inbound record into a transient staging row.

        Raises:
            ValidationError: when the record is not a mapping or a business
                field is missing or cannot be coerced.
        """
        if not isinstance(payload, dict):
            raise ValidationError(
                f"{self.entity_type.value} row {index} must be an object",
                details={"row": index},
            )
        values = {}
        errors = {}
        for field in self.fields:
            try:
                values[field.name] = field.read(payload, self.column_length(field.name))
            except (TypeError, ValueError) as exc:
                errors[field.name] = str(exc)
        comments = payload.get("comments")
        comments_length = self.column_length("comments")
        if comments and len(str(comments)) > comments_length:
            errors["comments"] = f"longer than {comments_length} characters"
        if errors:
            raise ValidationError(
                f"{self.entity_type.value} row {index} has invalid fields: {', '.join(sorted(errors))}",
                details={"row": index, "fields": errors},
            )
        row = self.staging_model(**values)
        if comments:
            row.comments = str(comments)
        return row

    def project_to_production(self, row):
        """Build the production-row shape of an approved staging row."""
        values = {name: getattr(row, name) for name in self.field_names}
        values.update({name: getattr(row, name) for name in PROMOTED_META_COLUMNS})
        return self.production_model(**values)


_STRATEGIES: dict[EntityType, EntityStrategy] = {
    EntityType.PRODUCT: EntityStrategy(
        entity_type=EntityType.PRODUCT,
        fields=(
            BusinessField("product_name", str),
            BusinessField("rate", float),
            BusinessField("api", str),
            BusinessField("effective_date", date),
        ),
        staging_model=ProductStaging,
        production_model=Product,
    ),
    EntityType.PLAN: EntityStrategy(
        entity_type=EntityType.PLAN,
        fields=(
            BusinessField("plan_name", str),
            BusinessField("plan_type", str),
            BusinessField("premium", float),
            BusinessField("coverage_amount", int),
            BusinessField("effective_date", date),
        ),
        staging_model=PlanStaging,
        production_model=Plan,
    ),
    EntityType.ITEM: EntityStrategy(
        entity_type=EntityType.ITEM,
        fields=(
            BusinessField("item_name", str),
            BusinessField("item_category", str),
            BusinessField("price", float),
            BusinessField("quantity", int),
            BusinessField("effective_date", date),
        ),
        staging_model=ItemStaging,
        production_model=Item,
    ),
}


def get_strategy(entity_type) -> EntityStrategy:
    """Return the strategy for an EntityType or wire name."""
    return _STRATEGIES[EntityType.parse(entity_type)]


def all_strategies() -> list[EntityStrategy]:
    """Strategies in migration order (product, plan, item)."""
    return [_STRATEGIES[t] for t in EntityType]


def validate_against_schema() -> None:
    """Fail fast when a significant-field list no longer matches the tables.

    Every staging column that is not approval/audit metadata must be declared
    as a business field, and every business field must exist on both the
    staging and production tables.

    Raises:
        RuntimeError: listing every mismatch found.
    """
    problems = []
    for strategy in all_strategies():
        declared = set(strategy.field_names)
        staging_cols = {c.name for c in strategy.staging_model.__table__.columns}
        production_cols = {c.name for c in strategy.production_model.__table__.columns}

        undeclared = staging_cols - STAGING_META_COLUMNS - declared
        if undeclared:
            problems.append(f"{strategy.entity_type.value}: undeclared business columns {sorted(undeclared)}")
        missing_staging = declared - staging_cols
        if missing_staging:
            problems.append(f"{strategy.entity_type.value}: fields missing from staging {sorted(missing_staging)}")
        missing_production = (declared | set(PROMOTED_META_COLUMNS)) - production_cols
        if missing_production:
            problems.append(f"{strategy.entity_type.value}: fields missing from production {sorted(missing_production)}")

    if problems:
        raise RuntimeError("Entity schema drift: " + "; ".join(problems))
    logger.debug("Entity strategies validated against schema (%d types)", len(_STRATEGIES))
