"""
Structured logging configuration.

Services tag records with the maker-checker scope they act on
(``process_instance_id``, ``entity_type``, ``sheet_id``); the request timer
adds ``request_id``, ``status`` and ``duration_ms``.

- Development / testing: one readable line, scope appended in brackets
- Production: one JSON object per record
- Log level: LOG_LEVEL env variable
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

SCOPE_FIELDS = ("process_instance_id", "entity_type", "sheet_id")
REQUEST_FIELDS = ("request_id", "status", "duration_ms")


def _present(record: logging.LogRecord, names) -> dict:
    return {name: getattr(record, name) for name in names if getattr(record, name, None) not in (None, "")}


class JSONFormatter(logging.Formatter):
    """One JSON object per record, scope and request fields flattened in."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(_present(record, SCOPE_FIELDS + REQUEST_FIELDS))
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """``HH:MM:SS LEVEL logger: message [pid=.. sheet_id=..]``"""

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = f"{ts} {record.levelname:<8} {record.name}: {record.getMessage()}"
        scope = _present(record, SCOPE_FIELDS)
        if scope:
            line += " [" + " ".join(f"{k}={v}" for k, v in scope.items()) + "]"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """Install a single stderr handler on the root logger.

    JSON when neither DEBUG nor TESTING is set, readable otherwise.
    """
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    level_name = os.getenv("LOG_LEVEL", "INFO" if is_prod else "DEBUG")
    level = getattr(logging, level_name.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if is_prod else ReadableFormatter())
    handler.setLevel(level)

    # Cleared first so repeated app creation in tests does not duplicate output
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for noisy in ("urllib3", "werkzeug", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    app.logger.setLevel(level)
    if not is_testing:
        app.logger.info("Logging configured: level=%s format=%s", level_name, "JSON" if is_prod else "readable")
