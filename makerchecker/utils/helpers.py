"""Shared input helpers used by services and the blueprint.

parse_date_input:  date coercion for effective-date business fields
require_text:      blank-identifier guard raising ValidationError
"""
import logging
from datetime import date, datetime

from makerchecker.core.exceptions import ValidationError

logger = logging.getLogger(__name__)


def parse_date_input(value):
    """Parse a date string, raising ValueError on bad input.

    Supports: YYYY-MM-DD, YYYY-MM-DDTHH:MM:SS, DD.MM.YYYY, date/datetime objects.
    Returns None for empty input so callers decide whether a date is required.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    value = str(value)
    try:
        return date.fromisoformat(value)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(value).date()
    except ValueError:
        pass
    try:
        return datetime.strptime(value, "%d.%m.%Y").date()
    except ValueError as exc:
        raise ValueError(
            "Invalid date format. Use YYYY-MM-DD or DD.MM.YYYY."
        ) from exc


def require_text(value, field: str) -> str:
    """Return ``value`` stripped, or raise ValidationError when blank/missing."""
    text = str(value).strip() if value is not None else ""
    if not text:
        raise ValidationError(f"{field} is required", details={field: "blank"})
    return text
