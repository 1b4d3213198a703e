"""
Knowledge graph API.

Blueprint: knowledge_bp
Prefix: /api/v1/knowledge

Endpoints:
    GET   /patterns     -- Browse knowledge patterns (?search=&limit=&offset=)
    POST  /search       -- Search several collections; failing ones come back empty
    POST  /query        -- Raw AQL (admin, lead)
    GET   /guidance     -- Agent guidance documents (?limit=&offset=)
    GET   /mcp-servers  -- MCP server documents from the graph
    GET   /graph/<id>   -- Neighbourhood of a vertex "collection/key" (?depth=, max 5)
"""

import logging

from flask import Blueprint, jsonify, request

from governance.blueprints import json_body
from governance.middleware.auth_required import current_scope, require_auth
from governance.services import knowledge_service

logger = logging.getLogger(__name__)

knowledge_bp = Blueprint("knowledge", __name__, url_prefix="/api/v1/knowledge")


@knowledge_bp.route("/patterns", methods=["GET"])
@require_auth
def list_patterns():
    patterns = knowledge_service.list_patterns(
        current_scope(),
        search=request.args.get("search"),
        limit=request.args.get("limit"),
        offset=request.args.get("offset"),
    )
    return jsonify({"patterns": patterns, "count": len(patterns)}), 200


@knowledge_bp.route("/search", methods=["POST"])
@require_auth
def search():
    data = json_body()
    query = data.get("query")
    results = knowledge_service.search_knowledge(
        current_scope(), query, data.get("collections")
    )
    return jsonify({"results": results, "query": query}), 200


@knowledge_bp.route("/query", methods=["POST"])
@require_auth
def raw_query():
    """Run caller-supplied AQL against the graph store."""
    data = json_body()
    results = knowledge_service.execute_raw_query(
        current_scope(), data.get("aql"), data.get("bind_vars", data.get("bindVars"))
    )
    return jsonify({"results": results, "count": len(results)}), 200


@knowledge_bp.route("/guidance", methods=["GET"])
@require_auth
def list_guidance():
    guidance = knowledge_service.list_guidance(
        current_scope(), limit=request.args.get("limit"), offset=request.args.get("offset")
    )
    return jsonify({"guidance": guidance, "count": len(guidance)}), 200


@knowledge_bp.route("/mcp-servers", methods=["GET"])
@require_auth
def list_graph_mcp_servers():
    servers = knowledge_service.list_graph_mcp_servers(
        current_scope(), limit=request.args.get("limit"), offset=request.args.get("offset")
    )
    return jsonify({"servers": servers, "count": len(servers)}), 200


@knowledge_bp.route("/graph/<path:node_id>", methods=["GET"])
@require_auth
def traverse(node_id):
    graph = knowledge_service.traverse_graph(current_scope(), node_id, request.args.get("depth"))
    return jsonify({"graph": graph, "count": len(graph)}), 200
