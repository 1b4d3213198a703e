"""Identity service: teams, users and the caller ScopeContext.

Credentials are never handled here: password_hash is stored as an opaque
value produced by the identity provider, and token verification lives in
the HTTP middleware.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import or_, select

from governance.core.exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError
from governance.core.scope import Role, ScopeContext, require_role
from governance.models import db
from governance.models.identity import Team, User
from governance.utils.helpers import clean_str, commit_or_raise

logger = logging.getLogger(__name__)


def create_team(data: dict) -> Team:
    """Create a team.

    Args:
        data: {"name": str (required), "organization": str | None, "settings": dict}
    """
    name = clean_str(data.get("name"), 255, "name")
    if not name:
        raise ValidationError("name is required", details={"name": "required"})
    settings = data.get("settings") or {}
    if not isinstance(settings, dict):
        raise ValidationError("settings must be an object", details={"settings": "not an object"})

    team = Team(
        name=name,
        organization=clean_str(data.get("organization"), 255, "organization"),
        settings=settings,
    )
    db.session.add(team)
    commit_or_raise("Team", "name", name)
    logger.info("Team created", extra={"team_id": team.id, "event_type": "team_created"})
    return team


def create_user(data: dict) -> User:
    """Register a user.

    Business rules:
        - username and email are required and globally unique.
        - email must be syntactically valid (no deliverability check).
        - role defaults to developer.
        - team_id, if given, must reference an existing team.

    Raises:
        ValidationError: Missing/invalid fields.
        ConflictError: Username or email already registered.
        NotFoundError: team_id does not exist.
    """
    username = clean_str(data.get("username"), 255, "username")
    if not username:
        raise ValidationError("username is required", details={"username": "required"})

    raw_email = clean_str(data.get("email"))
    if not raw_email:
        raise ValidationError("email is required", details={"email": "required"})
    try:
        email = validate_email(raw_email, check_deliverability=False).normalized
    except EmailNotValidError as exc:
        raise ValidationError("email is invalid", details={"email": str(exc)})

    role = Role.parse(data.get("role") or Role.DEVELOPER, "role")

    team_id = data.get("team_id")
    if team_id is not None and db.session.get(Team, team_id) is None:
        raise NotFoundError(resource="Team", resource_id=team_id)

    existing = db.session.execute(
        select(User).where(or_(User.username == username, User.email == email))
    ).scalars().first()
    if existing:
        field, value = ("username", username) if existing.username == username else ("email", email)
        raise ConflictError("User", field, value)

    user = User(
        username=username,
        email=email,
        password_hash=data.get("password_hash"),
        full_name=clean_str(data.get("full_name"), 255, "full_name"),
        role=role.value,
        team_id=team_id,
    )
    db.session.add(user)
    commit_or_raise("User", "username", username)
    logger.info(
        "User registered",
        extra={"user_id": user.id, "team_id": team_id, "event_type": "user_registered"},
    )
    return user


def change_role(ctx: ScopeContext, user_id: int, role) -> User:
    """Change a user's role. Admin only; admins manage users of their own team."""
    require_role(ctx, Role.ADMIN)
    new_role = Role.parse(role, "role")

    user = db.session.get(User, user_id)
    if user is None or user.team_id != ctx.team_id:
        raise NotFoundError(resource="User", resource_id=user_id)

    user.role = new_role.value
    commit_or_raise("User", "id", user_id)
    logger.info(
        "User role changed to %s", new_role.value,
        extra={"user_id": user_id, "team_id": ctx.team_id, "event_type": "role_changed"},
    )
    return user


def get_user_by_username(username) -> User:
    """Look a user up by login name; NotFoundError when unknown."""
    name = clean_str(username, 255, "username")
    user = None
    if name:
        user = db.session.execute(select(User).where(User.username == name)).scalar_one_or_none()
    if user is None:
        raise NotFoundError(resource="User", resource_id=username)
    return user


def record_login(user_id: int) -> User:
    """Stamp last_login after the identity provider accepted the credentials."""
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError(resource="User", resource_id=user_id)
    user.last_login = datetime.now(timezone.utc)
    commit_or_raise("User", "id", user_id)
    return user


def load_scope_context(user_id) -> ScopeContext:
    """Build the ScopeContext for a verified user id.

    Team and role are always read from the user row, never from token claims.
    """
    try:
        pk = int(user_id)
    except (TypeError, ValueError):
        raise NotFoundError(resource="User", resource_id=user_id)
    user = db.session.get(User, pk)
    if user is None:
        raise NotFoundError(resource="User", resource_id=user_id)
    try:
        return ScopeContext.for_user(user)
    except ValidationError:
        logger.error("User %s has unrecognised role %r", user.id, user.role)
        raise AuthorizationError("Account role is not recognised")


def get_user_profile(ctx: ScopeContext) -> dict:
    """Return the caller's own profile including team name and organization."""
    user = db.session.get(User, ctx.user_id)
    if user is None:
        raise NotFoundError(resource="User", resource_id=ctx.user_id)
    return user.to_dict()
