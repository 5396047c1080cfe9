"""
Migration Engine: promotes approved staging rows into the production tables.

Each production table is a full-replace snapshot: a migration deletes
every row of the type's production table and inserts the APPROVED rows of
one sheet.  Staging rows are never deleted; they remain the audit trail.

    migrate_type(sheet_id)                 one type, own transaction
    migrate_all_staging_to_actual(pid)     all three types, one transaction

``migrate_all_staging_to_actual`` resolves every type's current sheet
before touching anything, so a missing sheet fails with NotFoundError and
leaves production untouched.  The three replacements then share a single
commit: either every type is promoted or none is.
"""

from __future__ import annotations

import logging

from sqlalchemy import delete, select

from makerchecker.core.exceptions import NotFoundError
from makerchecker.models import db
from makerchecker.models.staging import ROW_STATUS_APPROVED
from makerchecker.services import sheet_service
from makerchecker.services.entity_types import EntityStrategy, all_strategies, get_strategy
from makerchecker.utils.helpers import require_text

logger = logging.getLogger(__name__)


def _approved_rows(strategy: EntityStrategy, sheet_id: str) -> list:
    model = strategy.staging_model
    return list(
        db.session.execute(
            select(model)
            .where(
                model.sheet_id == sheet_id,
                model.status == ROW_STATUS_APPROVED,
                model.approved.is_(True),
            )
            .order_by(model.id)
        ).scalars().all()
    )


def _replace_production(strategy: EntityStrategy, sheet_id: str) -> int:
    """Delete + insert for one type.  Flushes, never commits."""
    production = strategy.production_model
    deleted = db.session.execute(delete(production)).rowcount

    approved = _approved_rows(strategy, sheet_id)
    db.session.add_all([strategy.project_to_production(row) for row in approved])
    db.session.flush()

    logger.info(
        "Migrated %d approved %s from sheet %s (replaced %s rows)",
        len(approved), strategy.entity_type.plural, sheet_id, deleted,
        extra={"sheet_id": sheet_id, "entity_type": strategy.entity_type.value},
    )
    return len(approved)


def migrate_type(sheet_id: str) -> dict:
    """Replace one type's production table with the approved rows of ``sheet_id``.

    Returns:
        {"sheet_id", "entity_type", "migrated"}

    Raises:
        ValidationError: blank sheet_id.
        NotFoundError:   unknown sheet.
    """
    sheet = sheet_service.get_by_sheet_id(sheet_id)
    strategy = get_strategy(sheet.entity_type)
    try:
        migrated = _replace_production(strategy, sheet.sheet_id)
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.exception("Migration of sheet %s failed; production %s unchanged", sheet.sheet_id, strategy.entity_type.plural)
        raise
    return {"sheet_id": sheet.sheet_id, "entity_type": strategy.entity_type.value, "migrated": migrated}


def migrate_all_staging_to_actual(process_instance_id: str) -> dict:
    """Promote the current sheet of every entity type for a process.

    Returns:
        {"process_instance_id": pid, "migrations": [{"sheet_id", "entity_type", "migrated"}, ...]}

    Raises:
        ValidationError: blank process id.
        NotFoundError:   some entity type has no sheet for this process;
                         raised before any production table is touched.
    """
    pid = require_text(process_instance_id, "process_instance_id")

    plan = []
    for strategy in all_strategies():
        sheet = sheet_service.find_latest(pid, strategy.entity_type)
        if sheet is None:
            logger.warning(
                "Migration aborted: no %s sheet for process %s", strategy.entity_type.value, pid,
                extra={"process_instance_id": pid, "entity_type": strategy.entity_type.value},
            )
            raise NotFoundError(resource="Sheet", resource_id=f"{pid}/{strategy.entity_type.value}")
        plan.append((strategy, sheet.sheet_id))

    migrations = []
    try:
        for strategy, sid in plan:
            migrated = _replace_production(strategy, sid)
            migrations.append({"sheet_id": sid, "entity_type": strategy.entity_type.value, "migrated": migrated})
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.exception("Migration for process %s failed; all production tables rolled back", pid)
        raise

    logger.info(
        "Migrated process %s: %s", pid,
        ", ".join(f"{m['entity_type']}={m['migrated']}" for m in migrations),
        extra={"process_instance_id": pid},
    )
    return {"process_instance_id": pid, "migrations": migrations}
