"""Formatter output for scoped maker-checker log records."""

import json
import logging

from makerchecker.middleware.logging_config import JSONFormatter, ReadableFormatter


def _record(**extra):
    record = logging.LogRecord("makerchecker.services.migration_service", logging.INFO, __file__, 1,
                               "Migrated %d rows", (3,), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_flattens_scope_and_request_fields():
    out = json.loads(JSONFormatter().format(_record(
        process_instance_id="P1", entity_type="product", sheet_id="SHEET-1", request_id="abc", duration_ms=12.5,
    )))
    assert out["message"] == "Migrated 3 rows"
    assert out["level"] == "INFO"
    assert out["process_instance_id"] == "P1"
    assert out["entity_type"] == "product"
    assert out["sheet_id"] == "SHEET-1"
    assert out["request_id"] == "abc"
    assert out["duration_ms"] == 12.5


def test_json_formatter_omits_absent_and_blank_fields():
    out = json.loads(JSONFormatter().format(_record(request_id="")))
    assert "request_id" not in out
    assert "sheet_id" not in out


def test_readable_formatter_appends_scope():
    line = ReadableFormatter().format(_record(process_instance_id="P1", sheet_id="SHEET-1"))
    assert line.endswith("Migrated 3 rows [process_instance_id=P1 sheet_id=SHEET-1]")


def test_readable_formatter_without_scope_is_just_the_message():
    assert ReadableFormatter().format(_record()).endswith("makerchecker.services.migration_service: Migrated 3 rows")
