"""
Visibility-scoped query composer.

Every read over owned rows (evidence, hooks, projects) starts here. The
composer applies exactly one ownership predicate for the requested
visibility level, then appends caller filters, which can only narrow the
result set further:

    private       → rows owned by ctx.user_id within ctx's current team
    team          → rows of ctx.team_id (default)
    organization  → rows of any team sharing ctx's team organization
    public        → no ownership restriction

Unknown levels fail closed to ``team``. Rows that are themselves marked
``private`` are only ever returned to their owner.

A caller without a team only sees their own team-less rows at the private,
team and organization levels.

Usage:
    composer = ScopedQueryComposer(Evidence, user_column=Evidence.user_id,
                                   team_column=Evidence.team_id,
                                   visibility_column=Evidence.visibility)
    stmt = composer.compose(ctx, "organization", Evidence.task_category == "web")
    page = paginate(stmt, [Evidence.created_at.desc(), Evidence.id.asc()], limit=50, offset=0)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy import and_, func, or_, select, true

from governance.core.scope import ScopeContext, Visibility
from governance.models import db
from governance.models.identity import Team

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 100


@dataclass
class Page:
    """One page of a scoped listing plus the unpaginated total."""

    items: list = field(default_factory=list)
    total: int = 0
    limit: int = DEFAULT_PAGE_SIZE
    offset: int = 0

    def to_dict(self, serializer=None) -> dict:
        serialize = serializer or (lambda row: row.to_dict())
        return {
            "items": [serialize(row) for row in self.items],
            "total": self.total,
            "limit": self.limit,
            "offset": self.offset,
        }


def organization_team_ids(ctx: ScopeContext):
    """Subquery of team ids that share ctx's team organization.

    Returns None when ctx has no team or its team has no organization;
    callers then fall back to the team predicate.
    """
    if ctx.team_id is None:
        return None
    organization = db.session.execute(
        select(Team.organization).where(Team.id == ctx.team_id)
    ).scalar_one_or_none()
    if not organization:
        return None
    return select(Team.id).where(Team.organization == organization)


class ScopedQueryComposer:
    """Build visibility-narrowed SELECTs for one owned model."""

    def __init__(self, model, *, user_column, team_column, visibility_column=None):
        self.model = model
        self.user_column = user_column
        self.team_column = team_column
        self.visibility_column = visibility_column

    # ── Predicates ───────────────────────────────────────────────────────

    def _team_clause(self, ctx: ScopeContext):
        if ctx.team_id is None:
            return and_(self.user_column == ctx.user_id, self.team_column.is_(None))
        return self.team_column == ctx.team_id

    def scope_predicate(self, ctx: ScopeContext, visibility=None):
        """Return the single ownership predicate for the requested level."""
        level = Visibility.narrowing(visibility if visibility is not None else Visibility.TEAM)

        if level is Visibility.PRIVATE:
            clause = and_(self.user_column == ctx.user_id, self._team_clause(ctx))
        elif level is Visibility.ORGANIZATION:
            org_teams = organization_team_ids(ctx)
            if org_teams is None:
                clause = self._team_clause(ctx)
            else:
                clause = self.team_column.in_(org_teams)
        elif level is Visibility.PUBLIC:
            clause = true()
        else:
            clause = self._team_clause(ctx)

        if self.visibility_column is not None:
            clause = and_(
                clause,
                or_(
                    self.visibility_column != Visibility.PRIVATE.value,
                    self.user_column == ctx.user_id,
                ),
            )
        return clause

    def compose(self, ctx: ScopeContext, visibility=None, *filters):
        """SELECT model rows visible to ctx, narrowed by extra filters."""
        stmt = select(self.model).where(self.scope_predicate(ctx, visibility))
        for clause in filters:
            if clause is not None:
                stmt = stmt.where(clause)
        return stmt

    def get_one(self, ctx: ScopeContext, pk, visibility=None):
        """Return the row with primary key pk if visible to ctx, else None."""
        stmt = self.compose(ctx, visibility, self.model.id == pk)
        return db.session.execute(stmt).scalar_one_or_none()


def paginate(stmt, order_by, *, limit: int = DEFAULT_PAGE_SIZE, offset: int = 0) -> Page:
    """Execute stmt as a page; total is counted under the same filters."""
    total = db.session.execute(
        select(func.count()).select_from(stmt.order_by(None).subquery())
    ).scalar_one()
    rows = db.session.execute(
        stmt.order_by(*order_by).limit(limit).offset(offset)
    ).scalars().all()
    return Page(items=list(rows), total=int(total), limit=limit, offset=offset)
