"""
Application-wide exception hierarchy.

Services raise these types; blueprints register handlers against them once
and get consistent HTTP status codes everywhere.

Usage:
    from pdca.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Project", resource_id=42)
    raise ValidationError("action text is required", details={"action": "empty"})
"""


class NotFoundError(Exception):
    """Raised when a requested entity does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Project", "Action").
        resource_id: The id that was looked up. Included in logs and message.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input violates a business rule before any write happens.

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown. Keys are field names.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class PermissionDenied(Exception):
    """Raised when the caller's role or ownership does not allow the operation.

    Maps to HTTP 403.
    """

    def __init__(self, user_id: str | None, operation: str) -> None:
        self.user_id = user_id
        self.operation = operation
        super().__init__(f"User {user_id!r} is not allowed to {operation}")


class StoreError(Exception):
    """Raised when the entity store rejects a read or write.

    No automatic retry happens; callers re-derive state from the next
    snapshot. Maps to HTTP 500.

    Args:
        operation: Store operation name (e.g. "create_action").
        completed: For multi-step operations, how many steps succeeded
                   before the failure (e.g. actions deleted in a cascade).
    """

    def __init__(self, operation: str, message: str | None = None, completed: int | None = None) -> None:
        self.operation = operation
        self.completed = completed
        msg = f"Store operation '{operation}' failed"
        if message:
            msg += f": {message}"
        if completed is not None:
            msg += f" (after {completed} completed step(s))"
        super().__init__(msg)
