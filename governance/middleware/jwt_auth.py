"""
JWT Auth Middleware: parses the bearer token and sets g.jwt_*.

The middleware never rejects a request on its own. It only records who the
caller is; blueprints that require authentication check g.jwt_user_id and
refuse with 401 when it is missing.

    Authorization: Bearer <token>  →  g.jwt_user_id, g.jwt_team_id, g.jwt_role
"""

import logging

import jwt as pyjwt
from flask import g, request

from governance.services.jwt_service import decode_access_token

logger = logging.getLogger(__name__)

# Paths that skip JWT parsing entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/health",
    "/api/v1/evidence/legacy",
)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.jwt_user_id = None
        g.jwt_team_id = None
        g.jwt_role = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return

        token = auth_header[7:]  # Strip "Bearer "

        try:
            payload = decode_access_token(token)
        except pyjwt.ExpiredSignatureError:
            logger.info("Expired bearer token on %s", path)
            return
        except pyjwt.InvalidTokenError as exc:
            logger.warning("Invalid bearer token on %s: %s", path, exc)
            return

        g.jwt_user_id = payload.get("sub")
        g.jwt_team_id = payload.get("team_id")
        g.jwt_role = payload.get("role")
