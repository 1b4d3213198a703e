"""
JWT Service: access token generation and verification.

Tokens are issued by the identity provider; this module only needs to mint
tokens for tests and local tooling, and to verify incoming bearer tokens.

Access token:  60 minutes (configurable via JWT_ACCESS_EXPIRES)
Algorithm:     HS256

Token payload:
{
    "sub": "<user_id>",
    "team_id": <team_id>,
    "role": "developer",
    "type": "access",
    "iat": <issued_at>,
    "exp": <expires_at>,
    "jti": <unique_id>
}

team_id and role in the token are informational only; the user row is
authoritative when the ScopeContext is built.
"""

import uuid
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app

DEFAULT_ACCESS_EXPIRES = 3600
ALGORITHM = "HS256"


def _get_secret():
    """Get the JWT secret key from app config."""
    return current_app.config.get("JWT_SECRET_KEY") or current_app.config["SECRET_KEY"]


def _get_access_expires():
    return current_app.config.get("JWT_ACCESS_EXPIRES", DEFAULT_ACCESS_EXPIRES)


def generate_access_token(user_id: int, team_id: int | None = None, role: str | None = None) -> str:
    """Generate a signed access token for user_id."""
    now = datetime.now(timezone.utc)
    payload = {
        # PyJWT requires a string subject
        "sub": str(user_id),
        "type": "access",
        "iat": now,
        "exp": now + timedelta(seconds=_get_access_expires()),
        "jti": str(uuid.uuid4()),
    }
    if team_id is not None:
        payload["team_id"] = team_id
    if role is not None:
        payload["role"] = role
    return jwt.encode(payload, _get_secret(), algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict:
    """
    Decode and verify an access token.

    Returns the payload dict on success.
    Raises jwt.exceptions on failure (ExpiredSignatureError, InvalidTokenError, etc.)
    """
    payload = jwt.decode(token, _get_secret(), algorithms=[ALGORITHM])
    if payload.get("type") != "access":
        raise jwt.InvalidTokenError(f"Expected access token, got {payload.get('type')}")
    return payload
