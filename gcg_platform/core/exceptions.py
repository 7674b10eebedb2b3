"""
Platform-wide exception hierarchy.

Every service raises one of these types so the application factory can
register a single set of error handlers and map them to consistent HTTP
status codes.

Usage:
    from gcg_platform.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Assessment", resource_id=assessment_id)
    raise ValidationError("title is required", details={"title": "required"})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Assessment", "Aoi").
        resource_id: The id that was looked up. Included in logs, not in HTTP response.
    """

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input fails business-rule validation in the service layer.

    Covers missing/malformed required fields and illegal state transitions.
    Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown. Keys are field names.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class InvalidReferenceError(ValidationError):
    """Raised when a referenced id does not exist in the expected scope.

    Example: a Response keyed by a factor id that is not part of the
    assessment, or a PIC assignment naming an unknown target. Maps to 422.
    """

    def __init__(self, resource: str, resource_id: str | None = None,
                 scope: str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"Invalid {resource} reference"
        if resource_id is not None:
            msg += f" id={resource_id}"
        if scope:
            msg += f" in {scope}"
        super().__init__(msg, details={"reference": resource})


class ConflictError(Exception):
    """Raised when an operation would violate a uniqueness rule.

    Maps to HTTP 409.

    Args:
        resource: Model name.
        field: The unique field (or field tuple) that would be duplicated.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class PermissionDenied(Exception):
    """Raised when an access predicate fails.

    The message never reveals whether the resource exists: a missing
    assessment and a forbidden one produce the same text. Maps to HTTP 403.
    """

    def __init__(self, resource: str, action: str = "access") -> None:
        self.resource = resource
        self.action = action
        super().__init__(f"Not allowed to {action} {resource}")


class TransientIOError(Exception):
    """Raised by best-effort side effects (notification delivery).

    Callers catch and log it; it is never propagated out of a primary
    operation.
    """
