"""
Sheet Registry: creates and resolves versioned sheets.

Design decisions:
    - Sheets are APPEND-ONLY generations.  The current sheet for a
      (process_instance_id, entity_type) pair is always the one with the
      highest version; ``find_latest`` is the single lookup used everywhere.
    - Creation is compare-and-swap: callers that diffed against a known
      generation pass ``expected_version`` and get a ConflictError if a newer
      generation appeared meanwhile.  The unique (process, type, version)
      constraint catches the remaining race at flush time.
    - ``commit=False`` lets the resubmission processor and the approval
      service fold sheet writes into their own transaction.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from makerchecker.core.exceptions import ConflictError, NotFoundError
from makerchecker.models import db
from makerchecker.models.sheet import (
    SHEET_STATUS_APPROVED,
    SHEET_STATUS_PENDING,
    Sheet,
    generate_sheet_id,
)
from makerchecker.services.entity_types import EntityType
from makerchecker.utils.helpers import require_text

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Public API ─────────────────────────────────────────────────────────────────


def create_sheet(
    process_instance_id: str,
    entity_type,
    created_by: str,
    *,
    expected_version: int | None = None,
    commit: bool = True,
) -> Sheet:
    """Create the next sheet generation for (process_instance_id, entity_type).

    The version is one greater than the current latest version, or 1 when
    the pair has no sheet yet.  Status starts at PENDING.

    Args:
        process_instance_id: Orchestrator correlation key.
        entity_type:         EntityType or wire name ("product", "plan", "item").
        created_by:          Submitter or checker opening the sheet.
        expected_version:    Version the caller based its work on (0 when it
                             saw no sheet).  Mismatch raises ConflictError.
        commit:              Commit immediately; False only flushes.

    Raises:
        ValidationError: blank identifiers or unknown entity type.
        ConflictError:   a concurrent generation was created.
    """
    pid = require_text(process_instance_id, "process_instance_id")
    etype = EntityType.parse(entity_type)
    creator = require_text(created_by, "created_by")

    latest = find_latest(pid, etype)
    current_version = latest.version if latest else 0
    next_version = current_version + 1

    if expected_version is not None and expected_version != current_version:
        raise ConflictError("Sheet", "version", f"{pid}/{etype.value}/v{current_version}")

    sheet = Sheet(
        sheet_id=generate_sheet_id(),
        entity_type=etype.value,
        process_instance_id=pid,
        version=next_version,
        status=SHEET_STATUS_PENDING,
        created_by=creator,
        created_at=_utcnow(),
    )
    db.session.add(sheet)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        logger.warning(
            "Sheet version race process=%s type=%s version=%d",
            pid, etype.value, next_version,
        )
        raise ConflictError("Sheet", "version", f"{pid}/{etype.value}/v{next_version}") from None

    if commit:
        db.session.commit()

    logger.info(
        "Created sheet %s for type=%s process=%s version=%d",
        sheet.sheet_id, etype.value, pid, next_version,
        extra={"process_instance_id": pid, "entity_type": etype.value, "sheet_id": sheet.sheet_id},
    )
    return sheet


def get_by_sheet_id(sheet_id: str) -> Sheet:
    """Return the sheet with public id ``sheet_id``.

    Raises:
        ValidationError: blank sheet_id.
        NotFoundError:   no such sheet.
    """
    sid = require_text(sheet_id, "sheet_id")
    sheet = find_by_sheet_id(sid)
    if sheet is None:
        raise NotFoundError(resource="Sheet", resource_id=sid)
    return sheet


def find_by_sheet_id(sheet_id: str) -> Sheet | None:
    """Like get_by_sheet_id but returns None instead of raising."""
    return db.session.execute(
        select(Sheet).where(Sheet.sheet_id == sheet_id)
    ).scalar_one_or_none()


def find_latest(process_instance_id: str, entity_type) -> Sheet | None:
    """Return the highest-version sheet for the pair, or None if none exists."""
    etype = EntityType.parse(entity_type)
    return db.session.execute(
        select(Sheet)
        .where(
            Sheet.process_instance_id == process_instance_id,
            Sheet.entity_type == etype.value,
        )
        .order_by(Sheet.version.desc())
        .limit(1)
    ).scalar_one_or_none()


def approve_sheet(
    sheet_id: str,
    approved_by: str,
    comments: str | None = None,
    *,
    commit: bool = True,
) -> Sheet:
    """Mark a sheet APPROVED.  Re-approving an approved sheet is allowed.

    Existing comments are kept when ``comments`` is None.

    Raises:
        ValidationError: blank sheet_id or approver.
        NotFoundError:   unknown sheet.
    """
    approver = require_text(approved_by, "approved_by")
    sheet = get_by_sheet_id(sheet_id)

    sheet.status = SHEET_STATUS_APPROVED
    sheet.approved_by = approver
    sheet.approved_at = _utcnow()
    if comments is not None:
        sheet.comments = comments

    if commit:
        db.session.commit()
    else:
        db.session.flush()

    logger.info(
        "Sheet approved: %s by %s", sheet.sheet_id, approver,
        extra={"sheet_id": sheet.sheet_id, "entity_type": sheet.entity_type},
    )
    return sheet


def list_sheets(
    process_instance_id: str | None = None,
    entity_type=None,
) -> list[Sheet]:
    """Return every sheet generation, optionally narrowed to a process/type.

    Ordered by process, entity type and version so each pair reads as its
    generation ledger (oldest first).
    """
    stmt = select(Sheet)
    if process_instance_id:
        stmt = stmt.where(Sheet.process_instance_id == process_instance_id)
    if entity_type:
        stmt = stmt.where(Sheet.entity_type == EntityType.parse(entity_type).value)
    stmt = stmt.order_by(Sheet.process_instance_id, Sheet.entity_type, Sheet.version)
    return list(db.session.execute(stmt).scalars().all())
