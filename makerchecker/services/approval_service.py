"""
Approval Service: checker actions on staging rows and sheets.

    approve_row(type, row_id, approver)       one row
    approve_all_rows(sheet_id, approver)      every row of a sheet, one UPDATE
    are_all_rows_approved(sheet_id)           gate for the checker step
    approve_sheet_and_complete_task(...)      sheet approval + resume the
                                              orchestrator's checker task

Approving an already-approved row re-stamps approved_by/approved_at.

The checker-task call in approve_sheet_and_complete_task happens while the
sheet update is flushed but uncommitted, so the write lock is held for the
whole orchestrator round trip including retries.  That call uses
ORCHESTRATOR_APPROVAL_TIMEOUT (default 5 s) instead of the gateway default,
bounding the hold to about 20 s.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy import update

from makerchecker.integrations.orchestrator_gateway import get_gateway
from makerchecker.models import db
from makerchecker.models.sheet import Sheet
from makerchecker.models.staging import ROW_STATUS_APPROVED
from makerchecker.services import sheet_service
from makerchecker.services.entity_types import get_strategy
from makerchecker.services.staging_service import get_row, rows_for_sheet
from makerchecker.utils.helpers import require_text

logger = logging.getLogger(__name__)

APPROVE_DECISION = "APPROVE"
DEFAULT_APPROVAL_TIMEOUT = 5


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def approve_row(entity_type, row_id: int, approver: str):
    """Approve a single staging row.

    Raises:
        ValidationError: blank approver or unknown entity type.
        NotFoundError:   unknown row id.
    """
    username = require_text(approver, "approver")
    row = get_row(entity_type, row_id)

    row.mark_approved(username, _utcnow())
    db.session.commit()

    logger.info(
        "Approved %s row %s by %s", row.__tablename__, row.id, username,
        extra={"sheet_id": row.sheet_id},
    )
    return row


def approve_all_rows(sheet_id: str, approver: str) -> int:
    """Approve every row of a sheet in one bulk statement.

    A sheet that does not exist or has no rows is logged and left alone.

    Returns:
        Number of rows updated.

    Raises:
        ValidationError: blank sheet_id or approver.
    """
    sid = require_text(sheet_id, "sheet_id")
    username = require_text(approver, "approver")

    sheet = sheet_service.find_by_sheet_id(sid)
    if sheet is None:
        logger.warning("No rows found for sheet %s; nothing to approve", sid)
        return 0

    model = get_strategy(sheet.entity_type).staging_model
    try:
        result = db.session.execute(
            update(model)
            .where(model.sheet_id == sid)
            .values(
                approved=True,
                status=ROW_STATUS_APPROVED,
                approved_by=username,
                approved_at=_utcnow(),
            )
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    count = result.rowcount or 0
    if count == 0:
        logger.warning("No rows found for sheet %s; nothing to approve", sid)
    else:
        logger.info(
            "Approved all %d rows of sheet %s by %s", count, sid, username,
            extra={"sheet_id": sid, "entity_type": sheet.entity_type},
        )
    return count


def are_all_rows_approved(sheet_id: str) -> bool:
    """True only if the sheet has at least one row and every row is approved."""
    sid = require_text(sheet_id, "sheet_id")
    sheet = sheet_service.find_by_sheet_id(sid)
    if sheet is None:
        return False
    rows = rows_for_sheet(get_strategy(sheet.entity_type), sid)
    return bool(rows) and all(row.approved for row in rows)


def approve_sheet_and_complete_task(
    sheet_id: str,
    approved_by: str,
    comments: str | None = None,
    *,
    task_id: str | None = None,
    decision_key: str | None = None,
    gateway=None,
) -> Sheet:
    """Approve a sheet and resume the orchestrator's checker task.

    The sheet approval is flushed, the orchestrator is told
    ``{decision_key: "APPROVE"}``, and only then is the approval committed.
    If the orchestrator call fails the approval is rolled back, so the
    sheet never reads APPROVED while the process is still waiting.

    Args:
        gateway: OrchestratorGateway; defaults to the app's gateway.

    Raises:
        ValidationError:   blank sheet_id or approver.
        NotFoundError:     unknown sheet.
        OrchestratorError: the task could not be completed.
    """
    try:
        sheet = sheet_service.approve_sheet(sheet_id, approved_by, comments, commit=False)

        if task_id and decision_key:
            if gateway is None:
                gateway = get_gateway()
            gateway.complete_task(
                task_id, {decision_key: APPROVE_DECISION},
                timeout=current_app.config.get("ORCHESTRATOR_APPROVAL_TIMEOUT", DEFAULT_APPROVAL_TIMEOUT),
            )
            logger.info(
                "Completed checker task %s with %s=%s", task_id, decision_key, APPROVE_DECISION,
                extra={"sheet_id": sheet.sheet_id, "process_instance_id": sheet.process_instance_id},
            )
        else:
            logger.warning(
                "Sheet %s approved without completing a task (task_id=%r, decision_key=%r)",
                sheet.sheet_id, task_id, decision_key,
            )

        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return sheet
