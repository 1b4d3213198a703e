"""Project and environment service with strict team ownership checks.

Uniqueness rules:
  - (repo_url, team_id): a repository is registered once per team; other
    teams may register the same repository.
  - (project_id, name, user_id): a user owns at most one local environment
    of a given name per project; shared/production environments have no
    owner and are unique by (project_id, name).

Both are checked up front for a friendly error and backed by database
constraints; a violation that slips through a race surfaces as ConflictError.
"""

from __future__ import annotations

import logging

from sqlalchemy import delete, func, select, update

from governance.core.exceptions import ConflictError, NotFoundError, ValidationError
from governance.core.scope import EnvironmentType, RepoProvider, Role, ScopeContext, require_role
from governance.models import db
from governance.models.evidence import Evidence
from governance.models.hooks import HookConfiguration
from governance.models.identity import Team
from governance.models.knowledge import KnowledgeLink
from governance.models.project import Environment, Project
from governance.utils.helpers import clean_str, commit_or_raise

logger = logging.getLogger(__name__)


def _team_projects(ctx: ScopeContext):
    # Projects have no per-user owner; the team predicate is the only scope.
    if ctx.team_id is None:
        return select(Project).where(Project.id.is_(None))
    return select(Project).where(Project.team_id == ctx.team_id)


def get_project(ctx: ScopeContext, project_id) -> Project:
    """Fetch a project of the caller's team; NotFoundError otherwise."""
    try:
        pk = int(project_id)
    except (TypeError, ValueError):
        raise NotFoundError(resource="Project", resource_id=project_id)
    project = db.session.execute(
        _team_projects(ctx).where(Project.id == pk)
    ).scalar_one_or_none()
    if project is None:
        raise NotFoundError(resource="Project", resource_id=project_id, team_id=ctx.team_id)
    return project


def list_projects(ctx: ScopeContext) -> list[Project]:
    """List the caller team's projects, newest first."""
    return list(
        db.session.execute(
            _team_projects(ctx).order_by(Project.created_at.desc(), Project.id.desc())
        ).scalars()
    )


def create_project(ctx: ScopeContext, data: dict) -> Project:
    """Register a repository as a project of the caller's team.

    Raises:
        ValidationError: name missing, invalid repo_provider, caller has no team.
        ConflictError: repo_url already registered for this team.
    """
    if ctx.team_id is None:
        raise ValidationError("A team is required to create projects", details={"team_id": "required"})

    name = clean_str(data.get("name"), 255, "name")
    if not name:
        raise ValidationError("name is required", details={"name": "required"})

    repo_url = clean_str(data.get("repo_url"), 500, "repo_url")
    provider = data.get("repo_provider")
    repo_provider = RepoProvider.parse(provider, "repo_provider").value if provider else None

    settings = data.get("settings") or {}
    if not isinstance(settings, dict):
        raise ValidationError("settings must be an object", details={"settings": "not an object"})

    if repo_url:
        duplicate = db.session.execute(
            select(Project.id).where(Project.repo_url == repo_url, Project.team_id == ctx.team_id)
        ).first()
        if duplicate:
            raise ConflictError("Project", "repo_url", repo_url)

    project = Project(
        name=name,
        description=clean_str(data.get("description")),
        repo_url=repo_url,
        repo_provider=repo_provider,
        team_id=ctx.team_id,
        default_branch=clean_str(data.get("default_branch"), 100, "default_branch") or "main",
        settings=settings,
    )
    db.session.add(project)
    commit_or_raise("Project", "repo_url", repo_url)

    logger.info(
        "Project created",
        extra={"team_id": ctx.team_id, "project_id": project.id, "event_type": "project_created"},
    )
    return project


def delete_project(ctx: ScopeContext, project_id) -> None:
    """Remove a project. Admin or lead only.

    Evidence keeps existing with project/environment tags cleared; hooks
    keep their rows with project_id cleared; environments and knowledge
    links are removed with the project.
    """
    require_role(ctx, Role.ADMIN, Role.LEAD)
    project = get_project(ctx, project_id)
    pid = project.id

    db.session.execute(
        update(Evidence)
        .where(Evidence.project_id == pid)
        .values(project_id=None, environment_id=None)
        .execution_options(synchronize_session=False)
    )
    db.session.execute(
        update(HookConfiguration)
        .where(HookConfiguration.project_id == pid)
        .values(project_id=None)
        .execution_options(synchronize_session=False)
    )
    db.session.execute(
        delete(KnowledgeLink).where(KnowledgeLink.project_id == pid)
        .execution_options(synchronize_session=False)
    )
    db.session.execute(
        delete(Environment).where(Environment.project_id == pid)
        .execution_options(synchronize_session=False)
    )
    db.session.execute(
        delete(Project).where(Project.id == pid).execution_options(synchronize_session=False)
    )
    commit_or_raise("Project", "id", pid)
    db.session.expire_all()

    logger.info(
        "Project deleted",
        extra={"team_id": ctx.team_id, "project_id": pid, "event_type": "project_deleted"},
    )


def project_summary(ctx: ScopeContext, project_id) -> dict:
    """Counts of evidence, environments and knowledge links for one project."""
    project = get_project(ctx, project_id)
    pid = project.id

    evidence_count, last_evidence_at = db.session.execute(
        select(func.count(Evidence.id), func.max(Evidence.created_at)).where(Evidence.project_id == pid)
    ).one()
    environment_count = db.session.execute(
        select(func.count(Environment.id)).where(Environment.project_id == pid)
    ).scalar_one()
    link_count = db.session.execute(
        select(func.count(KnowledgeLink.id)).where(KnowledgeLink.project_id == pid)
    ).scalar_one()
    team = db.session.get(Team, project.team_id)

    summary = project.to_dict()
    summary.update({
        "team_name": team.name if team else None,
        "evidence_count": int(evidence_count or 0),
        "environment_count": int(environment_count or 0),
        "knowledge_link_count": int(link_count or 0),
        "last_evidence_at": last_evidence_at.isoformat() if last_evidence_at else None,
    })
    return summary


# ── Environments ─────────────────────────────────────────────────────────


def list_environments(ctx: ScopeContext, project_id) -> list[Environment]:
    """Shared/production environments of the project plus the caller's own local ones."""
    project = get_project(ctx, project_id)
    stmt = (
        select(Environment)
        .where(Environment.project_id == project.id)
        .where((Environment.user_id.is_(None)) | (Environment.user_id == ctx.user_id))
        .order_by(Environment.type, Environment.name, Environment.id)
    )
    return list(db.session.execute(stmt).scalars())


def create_environment(ctx: ScopeContext, project_id, data: dict) -> Environment:
    """Create an environment under a project of the caller's team.

    ``local`` environments are owned by the caller (user_id = ctx.user_id);
    ``shared`` and ``production`` environments have no owner.

    Raises:
        ValidationError: name missing or type invalid.
        ConflictError: Same name already exists for this project/owner.
    """
    project = get_project(ctx, project_id)

    name = clean_str(data.get("name"), 100, "name")
    if not name:
        raise ValidationError("name is required", details={"name": "required"})
    env_type = EnvironmentType.parse(data.get("type"), "type")
    owner_id = ctx.user_id if env_type is EnvironmentType.LOCAL else None

    owner_clause = Environment.user_id.is_(None) if owner_id is None else Environment.user_id == owner_id
    duplicate = db.session.execute(
        select(Environment.id).where(
            Environment.project_id == project.id, Environment.name == name, owner_clause
        )
    ).first()
    if duplicate:
        raise ConflictError("Environment", "name", name)

    settings = data.get("settings") or {}
    if not isinstance(settings, dict):
        raise ValidationError("settings must be an object", details={"settings": "not an object"})

    env = Environment(
        project_id=project.id,
        name=name,
        type=env_type.value,
        hostname=clean_str(data.get("hostname"), 255, "hostname"),
        user_id=owner_id,
        settings=settings,
    )
    db.session.add(env)
    commit_or_raise("Environment", "name", name)

    logger.info(
        "Environment created",
        extra={"project_id": project.id, "user_id": owner_id, "event_type": "environment_created"},
    )
    return env


def get_environment_for_project(project: Project, environment_id) -> Environment:
    """Fetch an environment that belongs to project; NotFoundError otherwise."""
    try:
        pk = int(environment_id)
    except (TypeError, ValueError):
        raise NotFoundError(resource="Environment", resource_id=environment_id)
    env = db.session.execute(
        select(Environment).where(Environment.id == pk, Environment.project_id == project.id)
    ).scalar_one_or_none()
    if env is None:
        raise NotFoundError(resource="Environment", resource_id=environment_id)
    return env
