"""
Authentication decorator for API routes.

Builds the caller's ScopeContext from the verified JWT subject and stores it
on ``g.scope`` for the duration of the request. Team and role come from the
user row, never from token claims.

Usage:
    @bp.route("/evidence", methods=["POST"])
    @require_auth
    def submit_evidence_route():
        ctx = current_scope()
        ...
"""

import functools
import logging

from flask import g

from governance.core.exceptions import AuthorizationError, NotFoundError
from governance.core.scope import ScopeContext
from governance.services.identity_service import load_scope_context
from governance.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def require_auth(f):
    """Refuse with 401 unless the request carries a valid token for a known user.

    A user row whose stored role is not recognised is refused with 403.
    """

    @functools.wraps(f)
    def decorated(*args, **kwargs):
        user_id = getattr(g, "jwt_user_id", None)
        if user_id is None:
            return api_error(E.UNAUTHORIZED, "Authentication required")
        try:
            g.scope = load_scope_context(user_id)
        except NotFoundError:
            logger.warning("Token subject %s has no user row", user_id)
            return api_error(E.UNAUTHORIZED, "Authentication required")
        except AuthorizationError as exc:
            return api_error(E.FORBIDDEN, str(exc))
        return f(*args, **kwargs)

    return decorated


def current_scope() -> ScopeContext:
    """Return the ScopeContext set by require_auth."""
    return g.scope
