"""
Service-wide exception hierarchy.

Every service raises these types; the blueprint registers one handler per
type and maps it to a consistent HTTP status and error code.

Usage:
    from makerchecker.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Sheet", resource_id="SHEET-1A2B3C4D")
    raise ValidationError("products list cannot be empty", details={"products": "empty"})
"""


class NotFoundError(Exception):
    """Raised when a requested sheet, staging row or per-type sheet does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Sheet", "ProductStaging").
        resource_id: The key that was looked up.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input fails validation before any mutation happens.

    Covers blank identifiers, an empty incoming row list, a blank approver
    and business fields that cannot be coerced to their declared type.

    Maps to HTTP 422 in the blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when a write would violate a uniqueness or version invariant.

    The resubmission processor raises it when another sheet generation was
    created for the same (process, entity type) between the diff and the
    insert. Maps to HTTP 409.

    Args:
        resource: Model name.
        field: The unique field that would be duplicated.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)
