"""Standardised API error responses.

Usage
-----
    from governance.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Project not found")
    return api_error(E.VALIDATION, "task_category is required", details={"task_category": "required"})

Service exceptions are rendered by ``register_error_handlers`` so blueprints
only need to call services and return their results.
"""

from __future__ import annotations

import logging

from flask import jsonify
from werkzeug.exceptions import HTTPException

from governance.core.exceptions import (
    AuthorizationError,
    ConflictError,
    GovernanceError,
    NotFoundError,
    UpstreamUnavailableError,
    ValidationError,
)

logger = logging.getLogger(__name__)


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants (ERR_ prefix)."""

    # Validation – HTTP 422 (400 for malformed requests)
    VALIDATION = ValidationError.code
    BAD_REQUEST = "ERR_BAD_REQUEST"

    # Authentication / permissions
    UNAUTHORIZED = "ERR_UNAUTHORIZED"
    FORBIDDEN = AuthorizationError.code

    # Not-found – HTTP 404
    NOT_FOUND = NotFoundError.code

    # Conflict / duplicate – HTTP 409
    CONFLICT = ConflictError.code

    # Backing store – HTTP 503
    UPSTREAM_UNAVAILABLE = UpstreamUnavailableError.code

    # Rate limiting – HTTP 429
    RATE_LIMITED = "ERR_RATE_LIMITED"

    # Server – HTTP 500
    INTERNAL = GovernanceError.code


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION: 422,
    E.BAD_REQUEST: 400,
    E.UNAUTHORIZED: 401,
    E.FORBIDDEN: 403,
    E.NOT_FOUND: 404,
    E.CONFLICT: 409,
    E.RATE_LIMITED: 429,
    E.UPSTREAM_UNAVAILABLE: 503,
    E.INTERNAL: 500,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for developers / UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload (field-level validation errors etc.).

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """
    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status


def register_error_handlers(app):
    """Map the service exception hierarchy and HTTP errors onto api_error."""

    @app.errorhandler(ValidationError)
    def _validation(exc: ValidationError):
        return api_error(E.VALIDATION, str(exc), details=exc.details)

    @app.errorhandler(NotFoundError)
    def _not_found(exc: NotFoundError):
        logger.debug("Not found: %s (team_id=%s)", exc, exc.team_id)
        return api_error(E.NOT_FOUND, exc.public_message)

    @app.errorhandler(ConflictError)
    def _conflict(exc: ConflictError):
        return api_error(E.CONFLICT, str(exc), details={"field": exc.field})

    @app.errorhandler(AuthorizationError)
    def _forbidden(exc: AuthorizationError):
        details = {"required_roles": exc.required} if exc.required else None
        return api_error(E.FORBIDDEN, str(exc), details=details)

    @app.errorhandler(UpstreamUnavailableError)
    def _upstream(exc: UpstreamUnavailableError):
        logger.error("Upstream %s unavailable: %s", exc.store, exc.detail)
        return api_error(E.UPSTREAM_UNAVAILABLE, str(exc))

    @app.errorhandler(GovernanceError)
    def _governance(exc: GovernanceError):
        logger.error("Unhandled governance error: %s", exc, exc_info=True)
        return api_error(exc.code, "Internal server error", status=exc.status)

    @app.errorhandler(HTTPException)
    def _http(exc: HTTPException):
        if exc.code == 429:
            return api_error(E.RATE_LIMITED, "Too many requests", details={"retry_after": exc.description})
        if exc.code == 404:
            return api_error(E.NOT_FOUND, "Not found")
        if exc.code == 401:
            return api_error(E.UNAUTHORIZED, exc.description or "Authentication required")
        return api_error(E.BAD_REQUEST, exc.description or exc.name, status=exc.code)

    @app.errorhandler(Exception)
    def _unexpected(exc: Exception):
        logger.error("Unexpected error: %s", exc, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error")
