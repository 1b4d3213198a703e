"""
Caller identity and closed vocabularies.

ScopeContext is the authenticated caller's identity, built once at the
boundary (HTTP layer, CLI, tests) and passed explicitly to every service
call. Services never read identity from request globals.

The stored schema keeps role/visibility/scope/type as plain strings; the
enums below are the only way values enter the service layer, so an
unrecognised literal fails fast with ValidationError.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from governance.core.exceptions import AuthorizationError, ValidationError


class _ParseableEnum(str, Enum):
    """str-valued Enum with strict decoding."""

    @classmethod
    def parse(cls, value, field: str | None = None):
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except (ValueError, TypeError):
            allowed = ", ".join(m.value for m in cls)
            name = field or cls.__name__.lower()
            raise ValidationError(
                f"{name} must be one of: {allowed}",
                details={name: f"unrecognised value {value!r}"},
            )

    @classmethod
    def values(cls) -> list[str]:
        return [m.value for m in cls]


class Role(_ParseableEnum):
    ADMIN = "admin"
    LEAD = "lead"
    DEVELOPER = "developer"


class Visibility(_ParseableEnum):
    PRIVATE = "private"
    TEAM = "team"
    ORGANIZATION = "organization"
    PUBLIC = "public"

    @classmethod
    def narrowing(cls, value) -> "Visibility":
        """Decode a *requested* read level; unknown values fail closed to TEAM."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except (ValueError, TypeError):
            return cls.TEAM


class HookType(_ParseableEnum):
    PRE_COMPLETION = "pre-completion"
    USER_PROMPT_SUBMIT = "user-prompt-submit"
    CUSTOM = "custom"


class HookScope(_ParseableEnum):
    GLOBAL = "global"
    TEAM = "team"
    PROJECT = "project"


class EnvironmentType(_ParseableEnum):
    LOCAL = "local"
    SHARED = "shared"
    PRODUCTION = "production"


class KnowledgeType(_ParseableEnum):
    STANDARD = "standard"
    REQUIREMENT = "requirement"
    PATTERN = "pattern"
    ARCHITECTURE = "architecture"

    @property
    def collection(self) -> str:
        """Graph-store collection holding documents of this type."""
        return _KNOWLEDGE_COLLECTIONS[self]


class LinkScope(_ParseableEnum):
    GLOBAL = "global"
    PROJECT = "project"
    ENVIRONMENT = "environment"


class RepoProvider(_ParseableEnum):
    GITHUB = "github"
    GITLAB = "gitlab"
    BITBUCKET = "bitbucket"
    OTHER = "other"


class ServerStatus(_ParseableEnum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    ERROR = "error"
    UNKNOWN = "unknown"


class ExecutionStatus(_ParseableEnum):
    SUCCESS = "success"
    ERROR = "error"


_KNOWLEDGE_COLLECTIONS = {
    KnowledgeType.STANDARD: "coding_standards",
    KnowledgeType.REQUIREMENT: "requirements",
    KnowledgeType.PATTERN: "knowledge_patterns",
    KnowledgeType.ARCHITECTURE: "architecture_patterns",
}


@dataclass(frozen=True)
class ScopeContext:
    """Authenticated caller identity consumed by every service."""

    user_id: int
    team_id: int | None
    role: Role = Role.DEVELOPER

    def __post_init__(self):
        # Normalise plain strings so equality and role checks are reliable.
        if not isinstance(self.role, Role):
            object.__setattr__(self, "role", Role.parse(self.role, "role"))

    @classmethod
    def for_user(cls, user) -> "ScopeContext":
        """Build a context from a User row (team and role are read from the row)."""
        return cls(user_id=user.id, team_id=user.team_id, role=Role.parse(user.role, "role"))

    def to_dict(self) -> dict:
        return {"user_id": self.user_id, "team_id": self.team_id, "role": self.role.value}


def role_allows(required_roles: Iterable, actual_role) -> bool:
    """Return True if actual_role is one of required_roles.

    Unknown role strings never match.
    """
    try:
        actual = Role(actual_role.value if isinstance(actual_role, Role) else str(actual_role))
    except ValueError:
        return False
    allowed = {r.value if isinstance(r, Role) else str(r) for r in required_roles}
    return actual.value in allowed


def require_role(ctx: ScopeContext, *roles) -> None:
    """Raise AuthorizationError unless ctx.role is one of roles."""
    if not role_allows(roles, ctx.role):
        raise AuthorizationError(
            "Insufficient permissions",
            required=[r.value if isinstance(r, Role) else str(r) for r in roles],
        )
