"""Maker-checker staging blueprint.

Thin transport adapter over the service layer: the workflow orchestrator
posts task-completion events here and the maker/checker screens read and
approve staging data.  Services own all business logic and commits.

Endpoint groups:
  Orchestrator events   POST /api/v1/task-events/<entity_type>/maker-complete
                        POST /api/v1/task-events/migration-complete
  Sheets                GET/POST /api/v1/sheets
                        GET  /api/v1/sheets/<sheet_id>
                        POST /api/v1/sheets/<sheet_id>/approve
  Staging rows          GET  /api/v1/sheets/<sheet_id>/rows
                        GET  /api/v1/sheets/<sheet_id>/rows-approved
                        POST /api/v1/sheets/<sheet_id>/rows/approve-all
                        POST /api/v1/staging/<entity_type>/rows/<row_id>/approve
  Page data             GET  /api/v1/processes/<pid>/approval-data?entity_type=
                        GET  /api/v1/processes/<pid>/maker-data?entity_type=
  Migration             POST /api/v1/processes/<pid>/migrate
                        POST /api/v1/migrations/sheets/<sheet_id>
  Production            GET  /api/v1/production/<entity_type>

The acting user is taken from the JSON body, falling back to the X-User
header.  Authentication is handled outside this service.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request
from werkzeug.exceptions import HTTPException

from makerchecker.core.exceptions import ConflictError, NotFoundError, ValidationError
from makerchecker.integrations.orchestrator_gateway import OrchestratorError
from makerchecker.services import (
    approval_service,
    migration_service,
    resubmission_service,
    sheet_service,
    staging_service,
)
from makerchecker.services.entity_types import EntityType
from makerchecker.services.resubmission_service import TaskCompletedEvent
from makerchecker.utils.errors import E, api_error

logger = logging.getLogger(__name__)

staging_bp = Blueprint("staging", __name__, url_prefix="/api/v1")


# ── Helpers ───────────────────────────────────────────────────────────────────


def _body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _actor(data: dict, key: str) -> str | None:
    """Acting user from the body, else the X-User header."""
    return data.get(key) or request.headers.get("X-User") or None


def _entity_type_arg() -> EntityType:
    return EntityType.parse(request.args.get("entity_type"))


# ── Error handlers ────────────────────────────────────────────────────────────


@staging_bp.errorhandler(NotFoundError)
def _handle_not_found(error: NotFoundError):
    return api_error(E.NOT_FOUND, str(error))


@staging_bp.errorhandler(ValidationError)
def _handle_validation(error: ValidationError):
    return api_error(E.VALIDATION_INVALID, str(error), details=error.details)


@staging_bp.errorhandler(ConflictError)
def _handle_conflict(error: ConflictError):
    return api_error(E.CONFLICT_STATE, str(error), details={"resource": error.resource, "field": error.field})


@staging_bp.errorhandler(OrchestratorError)
def _handle_orchestrator(error: OrchestratorError):
    logger.error("Orchestrator call failed endpoint=%s: %s", request.endpoint, error)
    return api_error(E.UPSTREAM, f"Orchestrator call failed: {error}", details={"status_code": error.status_code})


@staging_bp.errorhandler(HTTPException)
def _handle_http(error: HTTPException):
    return error


@staging_bp.errorhandler(Exception)
def _handle_unexpected(error: Exception):
    logger.exception("Unexpected error in staging endpoint=%s", request.endpoint)
    return api_error(E.INTERNAL, "Internal server error")


# ═════════════════════════════════════════════════════════════════════════════
# Orchestrator task events
# ═════════════════════════════════════════════════════════════════════════════


@staging_bp.route("/task-events/<entity_type>/maker-complete", methods=["POST"])
def maker_task_completed(entity_type):
    """Maker task completed: stage the submitted rows under a new sheet.

    Body: { processInstanceId, taskId?, formKey, assignee?, variables: { reason, <plural>: [...] } }
    Returns: { "variables": {"<formKey>-sheetId": "SHEET-..."} } (empty when skipped).
    """
    event = TaskCompletedEvent.from_payload(_body())
    output = resubmission_service.process_maker_submission(entity_type, event)
    return jsonify({"variables": output}), 201 if output else 200


@staging_bp.route("/task-events/migration-complete", methods=["POST"])
def migration_task_completed():
    """Migration task completed: promote every entity type of the process."""
    event = TaskCompletedEvent.from_payload(_body())
    if not (event.process_instance_id or "").strip():
        raise ValidationError(
            "process_instance_id is required for migration",
            details={"process_instance_id": "blank"},
        )
    result = migration_service.migrate_all_staging_to_actual(event.process_instance_id)
    return jsonify(result), 200


# ═════════════════════════════════════════════════════════════════════════════
# Sheets
# ═════════════════════════════════════════════════════════════════════════════


@staging_bp.route("/sheets", methods=["GET"])
def list_sheets():
    """List sheet generations. Query: process_instance_id?, entity_type?"""
    sheets = sheet_service.list_sheets(
        process_instance_id=request.args.get("process_instance_id"),
        entity_type=request.args.get("entity_type"),
    )
    return jsonify([s.to_dict() for s in sheets]), 200


@staging_bp.route("/sheets", methods=["POST"])
def create_sheet():
    """Open a new sheet generation.

    Body: { process_instance_id, entity_type, created_by, expected_version? }
    """
    data = _body()
    expected = data.get("expected_version")
    if expected is not None and (isinstance(expected, bool) or not isinstance(expected, int)):
        raise ValidationError("expected_version must be an integer", details={"expected_version": expected})

    sheet = sheet_service.create_sheet(
        data.get("process_instance_id") or data.get("processInstanceId"),
        data.get("entity_type") or data.get("entityType"),
        _actor(data, "created_by"),
        expected_version=expected,
    )
    return jsonify(sheet.to_dict()), 201


@staging_bp.route("/sheets/<sheet_id>", methods=["GET"])
def get_sheet(sheet_id):
    return jsonify(sheet_service.get_by_sheet_id(sheet_id).to_dict()), 200


@staging_bp.route("/sheets/<sheet_id>/approve", methods=["POST"])
def approve_sheet(sheet_id):
    """Approve a sheet and, when task_id + decision_key are given, resume the checker task.

    Body: { approved_by, comments?, task_id?, decision_key? }
    """
    data = _body()
    sheet = approval_service.approve_sheet_and_complete_task(
        sheet_id,
        _actor(data, "approved_by"),
        data.get("comments"),
        task_id=data.get("task_id") or data.get("taskId"),
        decision_key=data.get("decision_key") or data.get("decisionKey"),
    )
    return jsonify(sheet.to_dict()), 200


# ═════════════════════════════════════════════════════════════════════════════
# Staging rows
# ═════════════════════════════════════════════════════════════════════════════


@staging_bp.route("/sheets/<sheet_id>/rows", methods=["GET"])
def get_sheet_rows(sheet_id):
    sheet = sheet_service.get_by_sheet_id(sheet_id)
    rows = staging_service.get_rows(sheet.sheet_id)
    return jsonify({
        "sheet_id": sheet.sheet_id,
        "entity_type": sheet.entity_type,
        "rows": [r.to_dict() for r in rows],
    }), 200


@staging_bp.route("/sheets/<sheet_id>/rows-approved", methods=["GET"])
def check_rows_approved(sheet_id):
    return jsonify({
        "sheet_id": sheet_id,
        "all_approved": approval_service.are_all_rows_approved(sheet_id),
    }), 200


@staging_bp.route("/sheets/<sheet_id>/rows/approve-all", methods=["POST"])
def approve_all_rows(sheet_id):
    """Approve every row of a sheet. Body: { approver }"""
    data = _body()
    count = approval_service.approve_all_rows(sheet_id, _actor(data, "approver"))
    return jsonify({"sheet_id": sheet_id, "approved": count}), 200


@staging_bp.route("/staging/<entity_type>/rows/<int:row_id>/approve", methods=["POST"])
def approve_row(entity_type, row_id):
    """Approve one staging row. Body: { approver }"""
    data = _body()
    row = approval_service.approve_row(entity_type, row_id, _actor(data, "approver"))
    return jsonify(row.to_dict()), 200


# ═════════════════════════════════════════════════════════════════════════════
# Page data
# ═════════════════════════════════════════════════════════════════════════════


@staging_bp.route("/processes/<process_instance_id>/approval-data", methods=["GET"])
def approval_data(process_instance_id):
    return jsonify(staging_service.get_approval_data(process_instance_id, _entity_type_arg())), 200


@staging_bp.route("/processes/<process_instance_id>/maker-data", methods=["GET"])
def maker_data(process_instance_id):
    return jsonify(staging_service.get_maker_data(process_instance_id, _entity_type_arg())), 200


# ═════════════════════════════════════════════════════════════════════════════
# Migration
# ═════════════════════════════════════════════════════════════════════════════


@staging_bp.route("/processes/<process_instance_id>/migrate", methods=["POST"])
def migrate_process(process_instance_id):
    """Promote the current sheet of every entity type for a process."""
    return jsonify(migration_service.migrate_all_staging_to_actual(process_instance_id)), 200


@staging_bp.route("/migrations/sheets/<sheet_id>", methods=["POST"])
def migrate_sheet(sheet_id):
    """Replace one type's production table with a sheet's approved rows."""
    return jsonify(migration_service.migrate_type(sheet_id)), 200


# ═════════════════════════════════════════════════════════════════════════════
# Production
# ═════════════════════════════════════════════════════════════════════════════


@staging_bp.route("/production/<entity_type>", methods=["GET"])
def production_rows(entity_type):
    etype = EntityType.parse(entity_type)
    rows = staging_service.get_production_rows(etype)
    return jsonify({"entity_type": etype.value, etype.plural: [r.to_dict() for r in rows]}), 200
