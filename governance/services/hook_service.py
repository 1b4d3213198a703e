"""
Hook configuration registry.

Hooks are versioned per (name, team): publishing a script inserts a new row
with version = max(existing) + 1 and leaves earlier versions untouched.
Two narrower operations change a row in place without bumping the version:

    update_in_place   correct script_content and/or enabled
    set_enabled       flip the enabled flag only

test_hook runs a script through a SandboxExecutor and appends a
HookTestResult; it never changes the hook itself.

Verification rules are the team's per-category evidence requirements,
read by hook clients.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select

from governance.core.exceptions import NotFoundError, ValidationError
from governance.core.scope import HookScope, HookType, Role, ScopeContext, require_role
from governance.integrations.sandbox import SandboxExecutor, get_sandbox
from governance.models import db
from governance.models.hooks import HookConfiguration, HookTestResult, VerificationRule
from governance.services.project_service import get_project
from governance.utils.helpers import clean_str, commit_or_raise, parse_int

logger = logging.getLogger(__name__)

DEFAULT_TEST_RESULT_LIMIT = 20


def _parse_bool(value, field: str) -> bool:
    if isinstance(value, bool):
        return value
    raise ValidationError(f"{field} must be true or false", details={field: "not a boolean"})


def _team_hooks(ctx: ScopeContext):
    if ctx.team_id is None:
        return select(HookConfiguration).where(HookConfiguration.id.is_(None))
    return select(HookConfiguration).where(HookConfiguration.team_id == ctx.team_id)


def _require_team(ctx: ScopeContext) -> int:
    if ctx.team_id is None:
        raise ValidationError("A team is required for this operation", details={"team_id": "required"})
    return ctx.team_id


# ── Reads ────────────────────────────────────────────────────────────────


def list_hooks(
    ctx: ScopeContext,
    project_id=None,
    hook_type=None,
    latest_only: bool = False,
) -> list[HookConfiguration]:
    """Hooks of the caller's team ordered by name, newest version first.

    Args:
        project_id: only hooks bound to this project.
        hook_type: only hooks of this type (strictly parsed).
        latest_only: keep only the highest version of each name.
    """
    stmt = _team_hooks(ctx)
    if project_id is not None:
        stmt = stmt.where(HookConfiguration.project_id == parse_int(project_id, "project_id"))
    if hook_type:
        stmt = stmt.where(HookConfiguration.hook_type == HookType.parse(hook_type, "hook_type").value)
    if latest_only:
        latest = (
            select(HookConfiguration.name, func.max(HookConfiguration.version).label("version"))
            .where(HookConfiguration.team_id == ctx.team_id)
            .group_by(HookConfiguration.name)
            .subquery()
        )
        stmt = stmt.join(
            latest,
            (HookConfiguration.name == latest.c.name) & (HookConfiguration.version == latest.c.version),
        )
    stmt = stmt.order_by(HookConfiguration.name.asc(), HookConfiguration.version.desc())
    return list(db.session.execute(stmt).scalars())


def get_hook(ctx: ScopeContext, hook_id) -> HookConfiguration:
    """Fetch a hook of the caller's team; NotFoundError otherwise."""
    try:
        pk = int(hook_id)
    except (TypeError, ValueError):
        raise NotFoundError(resource="Hook", resource_id=hook_id)
    hook = db.session.execute(
        _team_hooks(ctx).where(HookConfiguration.id == pk)
    ).scalar_one_or_none()
    if hook is None:
        raise NotFoundError(resource="Hook", resource_id=hook_id, team_id=ctx.team_id)
    return hook


def version_history(ctx: ScopeContext, name: str) -> list[HookConfiguration]:
    """All versions of a hook name within the caller's team, newest first."""
    name = clean_str(name)
    versions = list(
        db.session.execute(
            _team_hooks(ctx)
            .where(HookConfiguration.name == name)
            .order_by(HookConfiguration.version.desc())
        ).scalars()
    )
    if not versions:
        raise NotFoundError(resource="Hook", resource_id=name, team_id=ctx.team_id)
    return versions


# ── Writes ───────────────────────────────────────────────────────────────


def publish_new_version(ctx: ScopeContext, data: dict) -> HookConfiguration:
    """Insert the next version of a hook for the caller's team.

    Scope rules:
        - scope defaults to "project" when project_id is given, else "team".
        - scope "project" requires a project_id owned by the team.
        - scopes "team" and "global" must not carry a project_id.

    Raises:
        ValidationError: Missing fields, bad hook_type/scope combination.
        NotFoundError: project_id outside the caller's team.
        ConflictError: A concurrent publish took the same version number.
    """
    team_id = _require_team(ctx)

    name = clean_str(data.get("name"), 255, "name")
    script_content = data.get("script_content")
    missing = {}
    if not name:
        missing["name"] = "required"
    if not data.get("hook_type"):
        missing["hook_type"] = "required"
    if not isinstance(script_content, str) or not script_content.strip():
        missing["script_content"] = "required"
    if missing:
        raise ValidationError("Missing required fields: " + ", ".join(sorted(missing)), details=missing)

    hook_type = HookType.parse(data["hook_type"], "hook_type")
    project_id = data.get("project_id")
    scope = HookScope.parse(
        data.get("scope") or (HookScope.PROJECT if project_id is not None else HookScope.TEAM),
        "scope",
    )
    if scope is HookScope.PROJECT:
        if project_id is None:
            raise ValidationError(
                "project scope requires project_id", details={"project_id": "required"}
            )
        project_id = get_project(ctx, project_id).id
    elif project_id is not None:
        raise ValidationError(
            f"{scope.value} scope must not reference a project",
            details={"project_id": f"not allowed for scope {scope.value}"},
        )

    enabled = _parse_bool(data["enabled"], "enabled") if "enabled" in data else True

    current = db.session.execute(
        select(func.max(HookConfiguration.version)).where(
            HookConfiguration.name == name, HookConfiguration.team_id == team_id
        )
    ).scalar()
    version = (current or 0) + 1

    hook = HookConfiguration(
        name=name,
        category=clean_str(data.get("category"), 50, "category"),
        description=clean_str(data.get("description")),
        hook_type=hook_type.value,
        script_content=script_content,
        enabled=enabled,
        team_id=team_id,
        project_id=project_id,
        scope=scope.value,
        version=version,
        created_by=ctx.user_id,
    )
    db.session.add(hook)
    commit_or_raise("Hook", "version", f"{name} v{version}")

    logger.info(
        "Hook %s published as version %d", name, version,
        extra={
            "team_id": team_id,
            "project_id": project_id,
            "user_id": ctx.user_id,
            "event_type": "hook_version_published",
        },
    )
    return hook


def update_in_place(ctx: ScopeContext, hook_id, data: dict) -> HookConfiguration:
    """Correct script_content and/or enabled on the same row; version unchanged."""
    hook = get_hook(ctx, hook_id)

    if "script_content" not in data and "enabled" not in data:
        raise ValidationError(
            "Nothing to update: provide script_content or enabled",
            details={"script_content": "missing", "enabled": "missing"},
        )
    if "script_content" in data:
        script_content = data["script_content"]
        if not isinstance(script_content, str) or not script_content.strip():
            raise ValidationError(
                "script_content must be a non-empty string", details={"script_content": "required"}
            )
        hook.script_content = script_content
    if "enabled" in data:
        hook.enabled = _parse_bool(data["enabled"], "enabled")

    commit_or_raise("Hook", "id", hook.id)
    logger.info(
        "Hook %s v%d updated in place", hook.name, hook.version,
        extra={"team_id": hook.team_id, "user_id": ctx.user_id, "event_type": "hook_updated"},
    )
    return hook


def set_enabled(ctx: ScopeContext, hook_id, enabled) -> HookConfiguration:
    """Enable or disable one hook row."""
    hook = get_hook(ctx, hook_id)
    hook.enabled = _parse_bool(enabled, "enabled")
    commit_or_raise("Hook", "id", hook.id)
    logger.info(
        "Hook %s v%d %s", hook.name, hook.version, "enabled" if hook.enabled else "disabled",
        extra={"team_id": hook.team_id, "user_id": ctx.user_id, "event_type": "hook_toggled"},
    )
    return hook


# ── Dry runs ─────────────────────────────────────────────────────────────


def test_hook(
    ctx: ScopeContext,
    hook_id,
    test_input: dict | None = None,
    sandbox: SandboxExecutor | None = None,
) -> HookTestResult:
    """Dry-run a hook and record the outcome.

    passed is True when the script's exit code equals
    test_input["expected_exit_code"] (default 0).
    Admin and lead only; runs in the configured sandbox unless one is passed.
    """
    require_role(ctx, Role.ADMIN, Role.LEAD)
    hook = get_hook(ctx, hook_id)
    test_input = test_input if test_input is not None else {}
    if not isinstance(test_input, dict):
        raise ValidationError("test_input must be an object", details={"test_input": "not an object"})
    expected = parse_int(test_input.get("expected_exit_code"), "expected_exit_code", default=0)

    executor = sandbox or get_sandbox()
    outcome = executor.run(hook.script_content, test_input)

    result = HookTestResult(
        hook_id=hook.id,
        user_id=ctx.user_id,
        test_input=test_input,
        test_output=outcome.to_dict(),
        exit_code=outcome.exit_code,
        passed=outcome.exit_code == expected,
        execution_time_ms=outcome.duration_ms,
    )
    db.session.add(result)
    commit_or_raise("HookTestResult", "hook_id", hook.id)

    logger.info(
        "Hook %s v%d test exit_code=%s passed=%s", hook.name, hook.version,
        outcome.exit_code, result.passed,
        extra={"team_id": hook.team_id, "user_id": ctx.user_id, "event_type": "hook_tested"},
    )
    return result


def list_test_results(ctx: ScopeContext, hook_id, limit=DEFAULT_TEST_RESULT_LIMIT) -> list[HookTestResult]:
    """Most recent dry runs of one hook."""
    hook = get_hook(ctx, hook_id)
    limit = parse_int(limit, "limit", default=DEFAULT_TEST_RESULT_LIMIT, minimum=1, maximum=100)
    return list(
        db.session.execute(
            select(HookTestResult)
            .where(HookTestResult.hook_id == hook.id)
            .order_by(HookTestResult.created_at.desc(), HookTestResult.id.desc())
            .limit(limit)
        ).scalars()
    )


# ── Verification rules ───────────────────────────────────────────────────


def list_rules(ctx: ScopeContext, category: str) -> list[VerificationRule]:
    """Enabled rules of the caller's team for one category, highest priority first."""
    category = clean_str(category, 100, "category")
    if not category:
        raise ValidationError("category is required", details={"category": "required"})
    if ctx.team_id is None:
        return []
    return list(
        db.session.execute(
            select(VerificationRule)
            .where(
                VerificationRule.team_id == ctx.team_id,
                VerificationRule.category == category,
                VerificationRule.enabled.is_(True),
            )
            .order_by(VerificationRule.priority.desc(), VerificationRule.id.asc())
        ).scalars()
    )


def _rule_config(value):
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValidationError("rule_config must be an object", details={"rule_config": "not an object"})
    return value


def create_rule(ctx: ScopeContext, data: dict) -> VerificationRule:
    """Add a verification rule to the caller's team. Admin or lead only."""
    require_role(ctx, Role.ADMIN, Role.LEAD)
    team_id = _require_team(ctx)

    missing = {
        key: "required"
        for key in ("category", "rule_name", "rule_type")
        if not clean_str(data.get(key))
    }
    if missing:
        raise ValidationError("Missing required fields: " + ", ".join(sorted(missing)), details=missing)

    rule = VerificationRule(
        team_id=team_id,
        category=clean_str(data["category"], 100, "category"),
        rule_name=clean_str(data["rule_name"], 255, "rule_name"),
        rule_type=clean_str(data["rule_type"], 100, "rule_type"),
        priority=parse_int(data.get("priority"), "priority", default=100, minimum=0),
        enabled=_parse_bool(data["enabled"], "enabled") if "enabled" in data else True,
        rule_config=_rule_config(data.get("rule_config")),
    )
    db.session.add(rule)
    commit_or_raise("VerificationRule", "rule_name", rule.rule_name)
    logger.info(
        "Verification rule %s created for %s", rule.rule_name, rule.category,
        extra={"team_id": team_id, "user_id": ctx.user_id, "event_type": "rule_created"},
    )
    return rule


def update_rule(ctx: ScopeContext, rule_id, data: dict) -> VerificationRule:
    """Change enabled, priority or rule_config of a team rule. Admin or lead only."""
    require_role(ctx, Role.ADMIN, Role.LEAD)
    try:
        pk = int(rule_id)
    except (TypeError, ValueError):
        raise NotFoundError(resource="VerificationRule", resource_id=rule_id)
    rule = db.session.get(VerificationRule, pk)
    if rule is None or rule.team_id != ctx.team_id:
        raise NotFoundError(resource="VerificationRule", resource_id=rule_id, team_id=ctx.team_id)

    if "enabled" in data:
        rule.enabled = _parse_bool(data["enabled"], "enabled")
    if "priority" in data:
        rule.priority = parse_int(data["priority"], "priority", default=rule.priority, minimum=0)
    if "rule_config" in data:
        rule.rule_config = _rule_config(data["rule_config"])

    commit_or_raise("VerificationRule", "id", rule.id)
    return rule


DEFAULT_RULES = (
    {
        "category": "web", "rule_name": "Puppeteer Mandatory", "rule_type": "tool_requirement",
        "priority": 100,
        "rule_config": {
            "required_tool": "puppeteer",
            "error_message": "Web UI must be tested with Puppeteer, not curl/HTTP",
        },
    },
    {
        "category": "web", "rule_name": "Screenshot Required", "rule_type": "evidence_requirement",
        "priority": 90,
        "rule_config": {"evidence_type": "screenshot", "file_extension": ".png", "must_show_path": True},
    },
    {
        "category": "web", "rule_name": "Quality Rating", "rule_type": "evidence_requirement",
        "priority": 80,
        "rule_config": {"evidence_type": "rating", "format": "X/10", "min_rating": 1, "max_rating": 10},
    },
    {
        "category": "api", "rule_name": "Response Data Required", "rule_type": "evidence_requirement",
        "priority": 100,
        "rule_config": {"evidence_type": "response_data", "not_just_status": True, "must_show_json": True},
    },
    {
        "category": "infrastructure", "rule_name": "Service Status Required",
        "rule_type": "evidence_requirement", "priority": 100,
        "rule_config": {
            "evidence_type": "service_status",
            "acceptable_commands": ["docker ps", "systemctl status", "kubectl get"],
        },
    },
)


def seed_default_rules(team_id: int) -> int:
    """Insert the default rule catalogue for a team. Existing (category, rule_name) pairs are skipped.

    Returns:
        Number of rules inserted.
    """
    existing = {
        (category, name)
        for category, name in db.session.execute(
            select(VerificationRule.category, VerificationRule.rule_name)
            .where(VerificationRule.team_id == team_id)
        )
    }
    added = 0
    for rule in DEFAULT_RULES:
        if (rule["category"], rule["rule_name"]) in existing:
            continue
        db.session.add(VerificationRule(team_id=team_id, enabled=True, **rule))
        added += 1
    commit_or_raise("VerificationRule", "team_id", team_id)
    return added
