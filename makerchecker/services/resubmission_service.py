"""
Resubmission Processor: turns a maker "submit" into a new sheet generation.

Triggered by the orchestrator when a maker task completes.  Every
submission is a full replace of the row set for one entity type:

    1. Resolve the current sheet for (process, type).
    2. First submission: new sheet v1, every row PENDING.
    3. Resubmission: new sheet v(n+1); each incoming row that is
       business-equal to a prior row inherits that row's approval and
       created_by; every other row is PENDING and unapproved.
    4. Persist rows under the new sheet, return the new sheet id.

Rules:
    - Prior sheets and their rows are never touched.
    - Each prior row can pass its approval to at most one incoming row;
      incoming rows claim matches in submission order, prior rows are
      offered in id order.
    - Input is fully validated and coerced before any write; any failure
      rolls back the whole submission.
    - A blank submitter is recorded as DEFAULT_SUBMITTER (default "system").
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from flask import current_app

from makerchecker.core.exceptions import ValidationError
from makerchecker.models import db
from makerchecker.models.sheet import Sheet
from makerchecker.services import sheet_service
from makerchecker.services.entity_types import EntityStrategy, get_strategy
from makerchecker.services.staging_service import rows_for_sheet
from makerchecker.utils.helpers import require_text

logger = logging.getLogger(__name__)

SUBMIT_REASON = "submit"
MAKER_FORM_MARKER = "/maker/"
SHEET_ID_VARIABLE_SUFFIX = "-sheetId"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Orchestrator event ─────────────────────────────────────────────────────────


@dataclass
class TaskCompletedEvent:
    """A "task completed" notification from the workflow orchestrator."""

    process_instance_id: str | None
    form_key: str | None = None
    assignee: str | None = None
    task_id: str | None = None
    task_definition_key: str | None = None
    variables: dict = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict) -> "TaskCompletedEvent":
        """Build an event from a JSON body (camelCase or snake_case keys)."""

        def pick(snake: str, camel: str):
            value = payload.get(snake)
            return value if value is not None else payload.get(camel)

        variables = payload.get("variables") or {}
        if not isinstance(variables, dict):
            raise ValidationError("variables must be an object", details={"variables": type(variables).__name__})
        return cls(
            process_instance_id=pick("process_instance_id", "processInstanceId"),
            form_key=pick("form_key", "formKey"),
            assignee=pick("assignee", "assignee"),
            task_id=pick("task_id", "taskId"),
            task_definition_key=pick("task_definition_key", "taskDefinitionKey"),
            variables=variables,
        )

    @property
    def is_maker_task(self) -> bool:
        return bool(self.form_key) and MAKER_FORM_MARKER in self.form_key

    @property
    def reason(self) -> str | None:
        value = self.variables.get("reason")
        return str(value) if value is not None else None

    @property
    def is_submit(self) -> bool:
        return (self.reason or "").lower() == SUBMIT_REASON

    @property
    def sheet_id_variable(self) -> str:
        return f"{self.form_key}{SHEET_ID_VARIABLE_SUFFIX}"


def parse_rows(raw, plural: str) -> list:
    """Accept the row payload as a list or as its JSON serialisation."""
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError as exc:
            raise ValidationError(f"{plural} is not valid JSON", details={plural: str(exc)}) from exc
    if not isinstance(raw, list):
        raise ValidationError(f"{plural} must be a list", details={plural: type(raw).__name__})
    return raw


def process_maker_submission(entity_type, event: TaskCompletedEvent) -> dict:
    """Handle a maker task completion for one entity type.

    Non-maker tasks, reasons other than "submit" and events without a row
    variable are silent no-ops.

    Returns:
        Output variables for the orchestrator: ``{"<formKey>-sheetId": id}``,
        or ``{}`` when nothing was processed.

    Raises:
        ValidationError: blank process id, empty/invalid row payload.
        ConflictError:   a concurrent generation was created.
    """
    strategy = get_strategy(entity_type)
    plural = strategy.entity_type.plural

    if not event.is_maker_task:
        logger.info("Not a maker task (form_key=%s); skipping %s submission", event.form_key, plural)
        return {}
    if not event.is_submit:
        logger.info("Task completion reason is %r, not 'submit'; skipping %s submission", event.reason, plural)
        return {}

    raw = event.variables.get(plural)
    if raw is None:
        logger.info("No %s variable on task %s; skipping", plural, event.task_id)
        return {}

    records = parse_rows(raw, plural)
    sheet = submit_rows(event.process_instance_id, strategy.entity_type, event.assignee, records)
    return {event.sheet_id_variable: sheet.sheet_id}


# ── Core algorithm ─────────────────────────────────────────────────────────────


def submit_rows(
    process_instance_id: str,
    entity_type,
    submitter: str | None,
    records: list,
) -> Sheet:
    """Create a new sheet generation holding ``records``.

    Args:
        process_instance_id: Orchestrator correlation key.
        entity_type:         EntityType or wire name.
        submitter:           Maker identity; blank falls back to DEFAULT_SUBMITTER.
        records:             Non-empty list of business records (dicts).

    Returns:
        The newly created Sheet.
    """
    pid = require_text(process_instance_id, "process_instance_id")
    strategy = get_strategy(entity_type)
    plural = strategy.entity_type.plural

    if not records:
        raise ValidationError(f"{plural} list cannot be empty", details={plural: "empty"})

    submitter = (submitter or "").strip()
    if not submitter:
        submitter = current_app.config.get("DEFAULT_SUBMITTER", "system")
        logger.warning("Task assignee is blank, recording submitter as %r", submitter)

    incoming = [strategy.build_staging_row(record, index) for index, record in enumerate(records)]

    try:
        prior = sheet_service.find_latest(pid, strategy.entity_type)
        now = _utcnow()

        if prior is None:
            sheet = sheet_service.create_sheet(
                pid, strategy.entity_type, submitter, expected_version=0, commit=False,
            )
            for row in incoming:
                row.clear_approval()
                row.created_by = submitter
                _stamp(row, sheet.sheet_id, submitter, now)
            logger.info("First submission: %d new %s", len(incoming), plural)
        else:
            prior_rows = rows_for_sheet(strategy, prior.sheet_id)
            sheet = sheet_service.create_sheet(
                pid, strategy.entity_type, submitter, expected_version=prior.version, commit=False,
            )
            preserved = carry_forward_approvals(
                strategy, prior_rows, incoming, sheet.sheet_id, submitter, now,
            )
            logger.info(
                "Resubmission %s -> %s: %d %s, %d kept approval, %d pending review",
                prior.sheet_id, sheet.sheet_id, len(incoming), plural,
                preserved, len(incoming) - preserved,
            )

        db.session.add_all(incoming)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "Saved %d %s for sheet %s", len(incoming), plural, sheet.sheet_id,
        extra={"process_instance_id": pid, "entity_type": strategy.entity_type.value, "sheet_id": sheet.sheet_id},
    )
    return sheet


def carry_forward_approvals(
    strategy: EntityStrategy,
    prior_rows: list,
    incoming: list,
    sheet_id: str,
    submitter: str,
    now: datetime,
) -> int:
    """Decide approval for each incoming row against the prior generation.

    Mutates the incoming rows in place and returns how many kept approval
    state from a business-equal prior row.
    """
    claimed: set[int] = set()
    preserved = 0

    for row in incoming:
        match = _claim_match(strategy, prior_rows, row, claimed)
        if match is not None:
            row.copy_approval_from(match)
            row.created_by = match.created_by or submitter
            preserved += 1
            logger.debug("Preserved approval for unchanged %s: %s", strategy.entity_type.value, strategy.label(row))
        else:
            row.clear_approval()
            row.created_by = submitter
            logger.debug("Pending review for new or changed %s: %s", strategy.entity_type.value, strategy.label(row))
        _stamp(row, sheet_id, submitter, now)

    return preserved


def _claim_match(strategy: EntityStrategy, prior_rows: list, incoming, claimed: set[int]):
    for index, existing in enumerate(prior_rows):
        if index in claimed:
            continue
        if strategy.compare(existing, incoming):
            claimed.add(index)
            return existing
    return None


def _stamp(row, sheet_id: str, submitter: str, now: datetime) -> None:
    row.sheet_id = sheet_id
    row.edited_by = submitter
    row.edited_at = now
