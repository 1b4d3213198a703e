"""
Platform-wide exception hierarchy.

Every service raises one of these types. Blueprints register handlers
against them once (see ``governance.utils.errors.register_error_handlers``)
and get consistent HTTP status codes and error tags everywhere.

Each exception carries a stable ``code`` tag that is sent to callers
alongside a human-readable message. Internal store detail is never part
of the message.

Usage:
    from governance.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Project", resource_id=42)
    raise ValidationError("task_category is required", details={"task_category": "required"})
"""


class GovernanceError(Exception):
    """Base class for all domain errors raised by the service layer."""

    code = "ERR_INTERNAL"
    status = 500


class NotFoundError(GovernanceError):
    """Raised when a requested resource does not exist within the given scope.

    Security note: Used for BOTH genuinely missing records AND cross-team
    access attempts. A 403 would confirm the resource exists; a 404 does not.

    Args:
        resource: Human-readable entity name (e.g. "Evidence", "Hook").
        resource_id: The PK that was looked up. Included in logs, not in HTTP response.
        team_id: Optional: the scope that was enforced. For debug logging only.
    """

    code = "ERR_NOT_FOUND"
    status = 404

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        team_id: int | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.team_id = team_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)

    @property
    def public_message(self) -> str:
        return f"{self.resource} not found"


class ValidationError(GovernanceError):
    """Raised when input is missing, malformed, or violates a business rule.

    Never retried. Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    code = "ERR_VALIDATION"
    status = 422

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(GovernanceError):
    """Raised when an operation would violate a unique constraint.

    Idempotent operations catch this internally and return the existing row;
    non-idempotent creations surface it. Maps to HTTP 409.

    Args:
        resource: Entity name.
        field: The unique field (or field tuple) that would be duplicated.
        value: The conflicting value.
    """

    code = "ERR_CONFLICT"
    status = 409

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class AuthorizationError(GovernanceError):
    """Raised when a role or scope predicate fails for the caller.

    Maps to HTTP 403. The caller is told the operation was refused; the
    result set is never silently narrowed instead.
    """

    code = "ERR_FORBIDDEN"
    status = 403

    def __init__(self, message: str = "Insufficient permissions", required: list[str] | None = None) -> None:
        self.required = required or []
        super().__init__(message)


class UpstreamUnavailableError(GovernanceError):
    """Raised when a backing store cannot be reached or answers with a server error.

    Maps to HTTP 503. The core never retries; the calling boundary may.

    Args:
        store: Which store failed ("graph", "relational").
        detail: Internal detail for logs only.
    """

    code = "ERR_UPSTREAM_UNAVAILABLE"
    status = 503

    def __init__(self, store: str, detail: str | None = None) -> None:
        self.store = store
        self.detail = detail
        super().__init__(f"The {store} store is currently unavailable")
