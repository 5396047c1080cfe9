"""
Staging Store: read access to per-type staging and production tables.

Staging rows are written by the resubmission processor and mutated only by
the approval service; this module owns the shared queries plus the two
page-level aggregates the maker and checker screens load:

    get_approval_data(pid, type)  current sheet + its rows (checker view)
    get_maker_data(pid, type)     current rows if a sheet exists, else the
                                  live production rows (maker's first edit)
"""

from __future__ import annotations

import logging

from sqlalchemy import select

from makerchecker.core.exceptions import NotFoundError
from makerchecker.models import db
from makerchecker.services import sheet_service
from makerchecker.services.entity_types import EntityStrategy, get_strategy
from makerchecker.utils.helpers import require_text

logger = logging.getLogger(__name__)


def rows_for_sheet(strategy: EntityStrategy, sheet_id: str) -> list:
    """Staging rows of ``sheet_id`` for one type, in insertion order."""
    model = strategy.staging_model
    return list(
        db.session.execute(
            select(model).where(model.sheet_id == sheet_id).order_by(model.id)
        ).scalars().all()
    )


def get_rows(sheet_id: str) -> list:
    """Return the staging rows of a sheet (type resolved from the sheet).

    Raises:
        NotFoundError: unknown sheet.
    """
    sheet = sheet_service.get_by_sheet_id(sheet_id)
    return rows_for_sheet(get_strategy(sheet.entity_type), sheet.sheet_id)


def get_row(entity_type, row_id: int):
    """Return one staging row by primary key.

    Raises:
        NotFoundError: no row with that id in the type's staging table.
    """
    strategy = get_strategy(entity_type)
    row = db.session.get(strategy.staging_model, row_id)
    if row is None:
        raise NotFoundError(resource=strategy.staging_model.__name__, resource_id=row_id)
    return row


def get_production_rows(entity_type) -> list:
    """Return the live production snapshot for one type."""
    model = get_strategy(entity_type).production_model
    return list(db.session.execute(select(model).order_by(model.id)).scalars().all())


def get_approval_data(process_instance_id: str, entity_type) -> dict:
    """Everything the checker page needs for the current sheet.

    Returns:
        {"sheet_id": str, "sheet": {...}, "<plural>": [row, ...]}

    Raises:
        NotFoundError: the maker has not submitted this type yet.
    """
    pid = require_text(process_instance_id, "process_instance_id")
    strategy = get_strategy(entity_type)

    sheet = sheet_service.find_latest(pid, strategy.entity_type)
    if sheet is None:
        raise NotFoundError(resource="Sheet", resource_id=f"{pid}/{strategy.entity_type.value}")

    rows = rows_for_sheet(strategy, sheet.sheet_id)
    logger.info(
        "Fetched %d %s for sheet %s", len(rows), strategy.entity_type.plural, sheet.sheet_id,
    )
    return {
        "sheet_id": sheet.sheet_id,
        "sheet": sheet.to_dict(),
        strategy.entity_type.plural: [r.to_dict() for r in rows],
    }


def get_maker_data(process_instance_id: str, entity_type) -> dict:
    """Data for the maker edit page.

    Resubmission: the current sheet's rows with their approval state.
    First edit: the production rows as the starting point.
    """
    pid = require_text(process_instance_id, "process_instance_id")
    strategy = get_strategy(entity_type)
    plural = strategy.entity_type.plural

    sheet = sheet_service.find_latest(pid, strategy.entity_type)
    if sheet is not None:
        rows = rows_for_sheet(strategy, sheet.sheet_id)
        logger.info("Loaded existing staging data for maker sheet=%s", sheet.sheet_id)
        return {
            "is_existing_sheet": True,
            "sheet_id": sheet.sheet_id,
            "sheet": sheet.to_dict(),
            plural: [r.to_dict() for r in rows],
        }

    rows = get_production_rows(strategy.entity_type)
    logger.info("Loaded %d production %s for maker (first edit)", len(rows), plural)
    return {
        "is_existing_sheet": False,
        "sheet_id": None,
        plural: [r.to_dict() for r in rows],
    }
