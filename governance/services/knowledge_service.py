"""
Knowledge bridge: project links into the graph store.

The relational store owns links (project_knowledge_links); the graph store
owns document content. The two never share a transaction, so:

  - links are written without checking the document exists
  - a link whose document is gone resolves as "orphaned", never an error
  - publish_knowledge writes the document first and the link second; if the
    link step fails the document is left unlinked and can be linked later

Graph access goes through GraphGateway. Every function that touches the
graph store takes an optional ``gateway`` so tests can pass a fake.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from flask import current_app
from sqlalchemy import select

from governance.core.exceptions import (
    ConflictError,
    NotFoundError,
    UpstreamUnavailableError,
    ValidationError,
)
from governance.core.scope import KnowledgeType, LinkScope, Role, ScopeContext, require_role
from governance.integrations.graph_gateway import GraphGateway, get_graph_gateway
from governance.models import db
from governance.models.knowledge import KnowledgeLink
from governance.models.project import Project
from governance.services.project_service import get_project
from governance.utils.helpers import clean_str, commit_or_raise, parse_int

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_COLLECTIONS = ("knowledge_patterns", "agent_guidance", "learning_instructions")
PATTERNS_COLLECTION = "knowledge_patterns"
GUIDANCE_COLLECTION = "agent_guidance"
GRAPH_MCP_COLLECTION = "mcp_servers"

DEFAULT_TRAVERSAL_DEPTH = 2
MAX_TRAVERSAL_DEPTH = 5
_VERTEX_ID = re.compile(r"^[A-Za-z0-9_\-]+/[^/\s]+$")

STATUS_OK = "ok"
STATUS_ORPHANED = "orphaned"
STATUS_UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class ResolvedKnowledge:
    """A link plus the outcome of fetching its document."""

    link: KnowledgeLink
    status: str
    document: dict | None = None

    def to_dict(self) -> dict:
        data = self.link.to_dict()
        data["status"] = self.status
        data["document"] = self.document
        return data


def _find_link(project_id: int, knowledge_type: KnowledgeType, knowledge_id: str):
    return db.session.execute(
        select(KnowledgeLink).where(
            KnowledgeLink.project_id == project_id,
            KnowledgeLink.knowledge_type == knowledge_type.value,
            KnowledgeLink.knowledge_id == knowledge_id,
        )
    ).scalar_one_or_none()


# ── Links ────────────────────────────────────────────────────────────────


def link_knowledge(
    ctx: ScopeContext,
    project_id,
    knowledge_type,
    knowledge_id,
    scope=LinkScope.PROJECT,
) -> KnowledgeLink:
    """Link a graph document to a project. Idempotent.

    Linking the same (project, type, key) again returns the existing row,
    including when a concurrent request inserted it first.
    """
    project = get_project(ctx, project_id)
    ktype = KnowledgeType.parse(knowledge_type, "knowledge_type")
    key = clean_str(knowledge_id, 255, "knowledge_id")
    if not key:
        raise ValidationError("knowledge_id is required", details={"knowledge_id": "required"})
    link_scope = LinkScope.parse(scope or LinkScope.PROJECT, "scope")

    existing = _find_link(project.id, ktype, key)
    if existing is not None:
        return existing

    link = KnowledgeLink(
        project_id=project.id,
        knowledge_type=ktype.value,
        knowledge_id=key,
        scope=link_scope.value,
        created_by=ctx.user_id,
    )
    db.session.add(link)
    try:
        commit_or_raise("KnowledgeLink", "knowledge_id", key)
    except ConflictError:
        existing = _find_link(project.id, ktype, key)
        if existing is None:
            raise
        return existing

    logger.info(
        "Knowledge %s/%s linked", ktype.value, key,
        extra={"project_id": project.id, "user_id": ctx.user_id, "event_type": "knowledge_linked"},
    )
    return link


def unlink_knowledge(ctx: ScopeContext, link_id) -> None:
    """Remove a link row. The graph document is left alone."""
    try:
        pk = int(link_id)
    except (TypeError, ValueError):
        raise NotFoundError(resource="KnowledgeLink", resource_id=link_id)
    link = db.session.execute(
        select(KnowledgeLink)
        .join(Project, KnowledgeLink.project_id == Project.id)
        .where(KnowledgeLink.id == pk, Project.team_id == ctx.team_id)
    ).scalar_one_or_none()
    if link is None:
        raise NotFoundError(resource="KnowledgeLink", resource_id=link_id, team_id=ctx.team_id)
    project_id = link.project_id
    db.session.delete(link)
    commit_or_raise("KnowledgeLink", "id", pk)
    logger.info(
        "Knowledge link %s removed", pk,
        extra={"project_id": project_id, "user_id": ctx.user_id, "event_type": "knowledge_unlinked"},
    )


def resolve_link(link: KnowledgeLink, gateway: GraphGateway) -> ResolvedKnowledge:
    """Fetch a link's document. Missing documents, outages and rejected reads are statuses, not errors."""
    collection = KnowledgeType.parse(link.knowledge_type, "knowledge_type").collection
    try:
        document = gateway.get_document(collection, link.knowledge_id)
    except (UpstreamUnavailableError, ValidationError):
        return ResolvedKnowledge(link=link, status=STATUS_UNAVAILABLE)
    if document is None:
        logger.info(
            "Knowledge link %s points at missing document %s/%s",
            link.id, collection, link.knowledge_id,
            extra={"project_id": link.project_id},
        )
        return ResolvedKnowledge(link=link, status=STATUS_ORPHANED)
    return ResolvedKnowledge(link=link, status=STATUS_OK, document=document)


def list_project_knowledge(
    ctx: ScopeContext,
    project_id,
    knowledge_type=None,
    resolve: bool = False,
    gateway: GraphGateway | None = None,
) -> list[dict]:
    """Links of one project, optionally resolved against the graph store."""
    project = get_project(ctx, project_id)
    stmt = select(KnowledgeLink).where(KnowledgeLink.project_id == project.id)
    if knowledge_type:
        ktype = KnowledgeType.parse(knowledge_type, "knowledge_type")
        stmt = stmt.where(KnowledgeLink.knowledge_type == ktype.value)
    links = db.session.execute(
        stmt.order_by(KnowledgeLink.created_at.desc(), KnowledgeLink.id.desc())
    ).scalars().all()

    if not resolve:
        return [link.to_dict() for link in links]

    gateway = gateway or get_graph_gateway()
    return [resolve_link(link, gateway).to_dict() for link in links]


def publish_knowledge(
    ctx: ScopeContext,
    project_id,
    knowledge_type,
    document: dict,
    scope=LinkScope.PROJECT,
    gateway: GraphGateway | None = None,
) -> dict:
    """Store a new document in the graph store and link it to a project.

    The document is written first. If linking fails afterwards the error
    propagates and the document stays in the graph store unlinked.
    """
    project = get_project(ctx, project_id)
    ktype = KnowledgeType.parse(knowledge_type, "knowledge_type")
    if not isinstance(document, dict) or not document:
        raise ValidationError("document must be a non-empty object", details={"document": "required"})

    gateway = gateway or get_graph_gateway()
    stored = gateway.insert_document(ktype.collection, document)
    key = stored.get("_key")
    if not key:
        raise UpstreamUnavailableError("graph", detail="insert response carried no _key")

    try:
        link = link_knowledge(ctx, project.id, ktype, key, scope)
    except Exception:
        logger.error(
            "Document %s/%s stored but not linked", ktype.collection, key,
            extra={"project_id": project.id, "event_type": "knowledge_link_failed"},
        )
        raise
    return {"document": stored, "link": link.to_dict()}


# ── Graph queries ────────────────────────────────────────────────────────


def search_knowledge(
    ctx: ScopeContext,
    query: str,
    collections=None,
    gateway: GraphGateway | None = None,
) -> dict:
    """Search several collections; a failing collection degrades to an empty result.

    Returns:
        {collection: {"items": [...], "available": bool}} in request order.
    """
    text = clean_str(query)
    if not text:
        raise ValidationError("Search query required", details={"query": "required"})
    if collections is None:
        collections = DEFAULT_SEARCH_COLLECTIONS
    if not isinstance(collections, (list, tuple)) or not all(isinstance(c, str) and c for c in collections):
        raise ValidationError(
            "collections must be a list of collection names", details={"collections": "invalid"}
        )

    gateway = gateway or get_graph_gateway()
    results = {}
    for collection in collections:
        try:
            items = gateway.search_collection(collection, text)
            results[collection] = {"items": items, "available": True}
        except (UpstreamUnavailableError, ValidationError) as exc:
            logger.warning(
                "Knowledge search in %s failed: %s", collection, exc,
                extra={"user_id": ctx.user_id, "team_id": ctx.team_id},
            )
            results[collection] = {"items": [], "available": False}
    return results


def execute_raw_query(
    ctx: ScopeContext,
    aql: str,
    bind_vars: dict | None = None,
    gateway: GraphGateway | None = None,
) -> list:
    """Run caller-supplied AQL. Admin or lead only."""
    require_role(ctx, Role.ADMIN, Role.LEAD)
    if not isinstance(aql, str) or not aql.strip():
        raise ValidationError("AQL query required", details={"aql": "required"})
    if bind_vars is not None and not isinstance(bind_vars, dict):
        raise ValidationError("bind_vars must be an object", details={"bind_vars": "not an object"})

    gateway = gateway or get_graph_gateway()
    results = gateway.execute(aql, bind_vars or {})
    logger.info(
        "Raw graph query returned %d rows", len(results),
        extra={"user_id": ctx.user_id, "team_id": ctx.team_id, "event_type": "raw_graph_query"},
    )
    return results


def list_patterns(
    ctx: ScopeContext,
    search: str | None = None,
    limit=50,
    offset=0,
    gateway: GraphGateway | None = None,
) -> list:
    """Browse knowledge patterns, optionally filtered by name or description."""
    limit = parse_int(limit, "limit", default=50, minimum=1, maximum=100)
    offset = parse_int(offset, "offset", default=0, minimum=0)
    gateway = gateway or get_graph_gateway()
    return gateway.list_collection(
        PATTERNS_COLLECTION, search=clean_str(search), limit=limit, offset=offset
    )


def list_guidance(ctx: ScopeContext, limit=100, offset=0, gateway: GraphGateway | None = None) -> list:
    """Agent guidance documents, unfiltered."""
    limit = parse_int(limit, "limit", default=100, minimum=1, maximum=100)
    offset = parse_int(offset, "offset", default=0, minimum=0)
    gateway = gateway or get_graph_gateway()
    return gateway.list_collection(GUIDANCE_COLLECTION, limit=limit, offset=offset)


def list_graph_mcp_servers(
    ctx: ScopeContext,
    limit=100,
    offset=0,
    gateway: GraphGateway | None = None,
) -> list:
    """MCP server documents as recorded in the knowledge graph (not the registry)."""
    limit = parse_int(limit, "limit", default=100, minimum=1, maximum=100)
    offset = parse_int(offset, "offset", default=0, minimum=0)
    gateway = gateway or get_graph_gateway()
    return gateway.list_collection(GRAPH_MCP_COLLECTION, limit=limit, offset=offset)


def traverse_graph(
    ctx: ScopeContext,
    node_id,
    depth=DEFAULT_TRAVERSAL_DEPTH,
    gateway: GraphGateway | None = None,
) -> list:
    """Vertices and edges within ``depth`` hops of node_id, breadth first.

    node_id is a full vertex id ("collection/key"); depth is clamped to
    MAX_TRAVERSAL_DEPTH.
    """
    node = clean_str(node_id, 511, "node_id")
    if not node or not _VERTEX_ID.match(node):
        raise ValidationError(
            "node_id must look like collection/key", details={"node_id": "invalid vertex id"}
        )
    depth = parse_int(
        depth, "depth", default=DEFAULT_TRAVERSAL_DEPTH, minimum=1, maximum=MAX_TRAVERSAL_DEPTH
    )
    gateway = gateway or get_graph_gateway()
    graph = current_app.config.get("GRAPH_STORE_GRAPH", "knowledge_graph")
    return gateway.traverse(node, graph, depth)
