"""
Evidence service: append-only ledger of verification events.

Two write paths share one table:

    submit_evidence         authenticated; identity stamped from ScopeContext
    submit_legacy_evidence  unauthenticated hook clients; free-text identifiers
                            kept as opaque reporter refs, rows are public

Reads always go through the visibility composer:

    search_evidence         filtered, paginated listing
    get_evidence_context    one row plus joined user/team/project/environment names
    list_evidence_for_task  all visible rows for one task id
    compliance_metrics      per-category pass/block aggregates

There is no update or delete operation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import case, func, select

from governance.core.exceptions import NotFoundError, ValidationError
from governance.core.scope import ScopeContext, Visibility
from governance.models import db
from governance.models.evidence import Evidence
from governance.models.identity import Team, User
from governance.models.project import Environment, Project
from governance.services.project_service import get_environment_for_project, get_project
from governance.services.query_composer import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    Page,
    ScopedQueryComposer,
    paginate,
)
from governance.utils.helpers import clean_str, commit_or_raise, parse_datetime, parse_int

logger = logging.getLogger(__name__)

_composer = ScopedQueryComposer(
    Evidence,
    user_column=Evidence.user_id,
    team_column=Evidence.team_id,
    visibility_column=Evidence.visibility,
)

EVIDENCE_ORDER = (Evidence.created_at.desc(), Evidence.id.asc())

PASSED = "passed"
BLOCKED = "blocked"


def _required_fields(data: dict) -> tuple[str, str, object]:
    missing = {}
    task_category = clean_str(data.get("task_category"), 50, "task_category")
    evidence_type = clean_str(data.get("evidence_type"), 100, "evidence_type")
    evidence_data = data.get("evidence_data")
    if not task_category:
        missing["task_category"] = "required"
    if not evidence_type:
        missing["evidence_type"] = "required"
    if evidence_data is None:
        missing["evidence_data"] = "required"
    if missing:
        raise ValidationError(
            "Missing required fields: " + ", ".join(sorted(missing)), details=missing
        )
    return task_category, evidence_type, evidence_data


def _reference_fields(data: dict) -> dict:
    return {
        "task_id": clean_str(data.get("task_id"), 255, "task_id"),
        "prompt_text": data.get("prompt_text"),
        "completion_text": data.get("completion_text"),
        "conversation_id": clean_str(data.get("conversation_id"), 255, "conversation_id"),
        "knowledge_pattern_id": clean_str(data.get("knowledge_pattern_id"), 255, "knowledge_pattern_id"),
        "coding_standard_id": clean_str(data.get("coding_standard_id"), 255, "coding_standard_id"),
        "requirement_id": clean_str(data.get("requirement_id"), 255, "requirement_id"),
        "repo_branch": clean_str(data.get("repo_branch"), 255, "repo_branch"),
        "git_remote": clean_str(data.get("git_remote"), 500, "git_remote"),
    }


def _commit_sha(value):
    sha = clean_str(value)
    if sha is not None and len(sha) > 40:
        raise ValidationError(
            "commit_sha must be at most 40 characters", details={"commit_sha": "too long"}
        )
    return sha


# ── Writes ───────────────────────────────────────────────────────────────


def submit_evidence(ctx: ScopeContext, data: dict) -> dict:
    """Record one verification event for the caller.

    user_id/team_id always come from ctx; any identity fields in data are
    ignored. project_id must be a project of the caller's team and
    environment_id must belong to that project.

    Raises:
        ValidationError: Required field missing, bad visibility, bad commit_sha.
        NotFoundError: project or environment outside the caller's team.
    """
    task_category, evidence_type, evidence_data = _required_fields(data)
    visibility = Visibility.parse(data.get("visibility") or Visibility.TEAM, "visibility")
    commit_sha = _commit_sha(data.get("commit_sha"))

    project_id = environment_id = None
    if data.get("project_id") is not None:
        project = get_project(ctx, data["project_id"])
        project_id = project.id
        if data.get("environment_id") is not None:
            environment_id = get_environment_for_project(project, data["environment_id"]).id
    elif data.get("environment_id") is not None:
        raise ValidationError(
            "environment_id requires project_id", details={"environment_id": "project_id missing"}
        )

    evidence = Evidence(
        user_id=ctx.user_id,
        team_id=ctx.team_id,
        task_category=task_category,
        evidence_type=evidence_type,
        evidence_data=evidence_data,
        project_id=project_id,
        environment_id=environment_id,
        commit_sha=commit_sha,
        visibility=visibility.value,
        **_reference_fields(data),
    )
    db.session.add(evidence)
    commit_or_raise("Evidence", "id")

    logger.info(
        "Evidence recorded category=%s type=%s", task_category, evidence_type,
        extra={
            "user_id": ctx.user_id,
            "team_id": ctx.team_id,
            "project_id": project_id,
            "event_type": "evidence_submitted",
        },
    )
    return evidence.to_dict()


def submit_legacy_evidence(data: dict) -> dict:
    """Record evidence from an unauthenticated hook client.

    The caller's user_id/project_id are free text and are kept only as
    reporter refs; no foreign keys are set and the row is public.
    """
    task_category, evidence_type, evidence_data = _required_fields(data)
    metadata = data.get("metadata")
    if metadata is not None and not isinstance(metadata, dict):
        raise ValidationError("metadata must be an object", details={"metadata": "not an object"})

    evidence = Evidence(
        task_category=task_category,
        evidence_type=evidence_type,
        evidence_data=evidence_data,
        commit_sha=_commit_sha(data.get("commit_sha")),
        visibility=Visibility.PUBLIC.value,
        reporter_user_ref=clean_str(data.get("user_id"), 255, "user_id"),
        reporter_project_ref=clean_str(data.get("project_id"), 255, "project_id"),
        meta=metadata or {},
        **_reference_fields(data),
    )
    db.session.add(evidence)
    commit_or_raise("Evidence", "id")

    logger.warning(
        "Legacy evidence recorded without authentication category=%s", task_category,
        extra={"event_type": "evidence_submitted_legacy"},
    )
    return evidence.to_dict()


# ── Reads ────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class EvidenceFilter:
    """Search criteria for search_evidence. All fields narrow the result."""

    category: str | None = None
    evidence_type: str | None = None
    user_id: int | None = None
    project_id: int | None = None
    environment_id: int | None = None
    commit_sha: str | None = None
    from_date: object = None
    to_date: object = None
    visibility: str = Visibility.TEAM.value
    limit: int = DEFAULT_PAGE_SIZE
    offset: int = 0

    @classmethod
    def from_args(cls, args) -> "EvidenceFilter":
        """Build a filter from query-string style arguments.

        limit is clamped to the page maximum; limit < 1 or offset < 0 raise
        ValidationError. Unknown visibility values are kept and narrowed to
        team by the composer.
        """
        args = args or {}
        return cls(
            category=clean_str(args.get("category")),
            evidence_type=clean_str(args.get("evidence_type")),
            user_id=parse_int(args.get("user_id"), "user_id"),
            project_id=parse_int(args.get("project_id"), "project_id"),
            environment_id=parse_int(args.get("environment_id"), "environment_id"),
            commit_sha=clean_str(args.get("commit_sha")),
            from_date=parse_datetime(args.get("from_date"), "from_date"),
            to_date=parse_datetime(args.get("to_date"), "to_date", end_of_day=True),
            visibility=clean_str(args.get("visibility")) or Visibility.TEAM.value,
            limit=parse_int(
                args.get("limit"), "limit",
                default=DEFAULT_PAGE_SIZE, minimum=1, maximum=MAX_PAGE_SIZE,
            ),
            offset=parse_int(args.get("offset"), "offset", default=0, minimum=0),
        )

    def clauses(self) -> list:
        clauses = []
        if self.category:
            clauses.append(Evidence.task_category == self.category)
        if self.evidence_type:
            clauses.append(Evidence.evidence_type == self.evidence_type)
        if self.user_id is not None:
            clauses.append(Evidence.user_id == self.user_id)
        if self.project_id is not None:
            clauses.append(Evidence.project_id == self.project_id)
        if self.environment_id is not None:
            clauses.append(Evidence.environment_id == self.environment_id)
        if self.commit_sha:
            clauses.append(Evidence.commit_sha == self.commit_sha)
        if self.from_date is not None:
            clauses.append(Evidence.created_at >= self.from_date)
        if self.to_date is not None:
            clauses.append(Evidence.created_at <= self.to_date)
        return clauses


def search_evidence(ctx: ScopeContext, evidence_filter: EvidenceFilter | None = None) -> Page:
    """Visible evidence matching evidence_filter, newest first."""
    evidence_filter = evidence_filter or EvidenceFilter()
    stmt = _composer.compose(ctx, evidence_filter.visibility, *evidence_filter.clauses())
    page = paginate(
        stmt, EVIDENCE_ORDER, limit=evidence_filter.limit, offset=evidence_filter.offset
    )
    logger.debug(
        "Evidence search returned %d of %d", len(page.items), page.total,
        extra={"user_id": ctx.user_id, "team_id": ctx.team_id},
    )
    return page


def get_evidence_context(ctx: ScopeContext, evidence_id) -> dict:
    """One evidence row of the caller's team with its joined context."""
    try:
        pk = int(evidence_id)
    except (TypeError, ValueError):
        raise NotFoundError(resource="Evidence", resource_id=evidence_id)

    stmt = (
        select(
            Evidence,
            User.username,
            User.full_name,
            Team.name,
            Project.name,
            Project.repo_url,
            Environment.name,
            Environment.type,
        )
        .outerjoin(User, Evidence.user_id == User.id)
        .outerjoin(Team, Evidence.team_id == Team.id)
        .outerjoin(Project, Evidence.project_id == Project.id)
        .outerjoin(Environment, Evidence.environment_id == Environment.id)
        .where(_composer.scope_predicate(ctx, Visibility.TEAM))
        .where(Evidence.id == pk)
    )
    row = db.session.execute(stmt).first()
    if row is None:
        raise NotFoundError(resource="Evidence", resource_id=evidence_id, team_id=ctx.team_id)

    evidence, username, full_name, team_name, project_name, repo_url, env_name, env_type = row
    result = evidence.to_dict()
    result.update({
        "username": username,
        "full_name": full_name,
        "team_name": team_name,
        "project_name": project_name,
        "repo_url": repo_url,
        "environment_name": env_name,
        "environment_type": env_type,
    })
    return result


def list_evidence_for_task(ctx: ScopeContext, task_id: str) -> list[Evidence]:
    """All team-visible evidence recorded for task_id, newest first."""
    task_id = clean_str(task_id)
    if not task_id:
        raise ValidationError("task_id is required", details={"task_id": "required"})
    stmt = _composer.compose(ctx, Visibility.TEAM, Evidence.task_id == task_id)
    return list(db.session.execute(stmt.order_by(*EVIDENCE_ORDER)).scalars())


# ── Metrics ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class MetricsFilter:
    project_id: int | None = None
    from_date: object = None
    to_date: object = None
    visibility: str = Visibility.TEAM.value

    @classmethod
    def from_args(cls, args) -> "MetricsFilter":
        args = args or {}
        return cls(
            project_id=parse_int(args.get("project_id"), "project_id"),
            from_date=parse_datetime(args.get("from_date"), "from_date"),
            to_date=parse_datetime(args.get("to_date"), "to_date", end_of_day=True),
            visibility=clean_str(args.get("visibility")) or Visibility.TEAM.value,
        )


def compliance_metrics(ctx: ScopeContext, metrics_filter: MetricsFilter | None = None) -> list[dict]:
    """Per-category verification totals and pass rate.

    pass_rate = passed / total_verifications, where passed and blocked count
    rows whose evidence_type is exactly "passed" / "blocked".
    """
    metrics_filter = metrics_filter or MetricsFilter()
    filters = []
    if metrics_filter.project_id is not None:
        filters.append(Evidence.project_id == metrics_filter.project_id)
    if metrics_filter.from_date is not None:
        filters.append(Evidence.created_at >= metrics_filter.from_date)
    if metrics_filter.to_date is not None:
        filters.append(Evidence.created_at <= metrics_filter.to_date)

    total = func.count(Evidence.id).label("total_verifications")
    stmt = (
        select(
            Evidence.task_category,
            total,
            func.count(func.distinct(Evidence.user_id)).label("unique_users"),
            func.sum(case((Evidence.evidence_type == PASSED, 1), else_=0)).label("passed"),
            func.sum(case((Evidence.evidence_type == BLOCKED, 1), else_=0)).label("blocked"),
        )
        .where(_composer.scope_predicate(ctx, metrics_filter.visibility))
        .where(*filters)
        .group_by(Evidence.task_category)
        .order_by(total.desc(), Evidence.task_category)
    )

    results = []
    for row in db.session.execute(stmt):
        count = int(row.total_verifications or 0)
        passed = int(row.passed or 0)
        results.append({
            "task_category": row.task_category,
            "total_verifications": count,
            "unique_users": int(row.unique_users or 0),
            "passed": passed,
            "blocked": int(row.blocked or 0),
            "pass_rate": round(passed / count, 4) if count else 0.0,
        })
    return results
