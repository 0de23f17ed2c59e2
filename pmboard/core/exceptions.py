"""
Project-wide exception hierarchy.

Services raise these; blueprints register handlers against them once and
get consistent HTTP status codes everywhere.

Usage:
    from pmboard.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Project", resource_id=12)
    raise ValidationError("User is not assigned to this project")
"""


class NotFoundError(Exception):
    """Raised when a requested record does not exist.

    Maps to HTTP 404. No mutation is attempted once this is raised.

    Args:
        resource: Human-readable record name (e.g. "Project", "User").
        resource_id: The key that was looked up (rowIndex, email, ...).
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" {resource_id!r}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input fails business-rule validation in the service layer.

    Distinct from HTTP 400 (malformed input, caught in the blueprint): the
    payload was well-formed but the requested change is not allowed.

    Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)
