"""
Projects, environments and project knowledge links.

Blueprint: projects_bp
Prefix: /api/v1

Endpoints:
    GET/POST   /projects                               -- List / register team projects
    GET/DELETE /projects/<pid>                         -- Summary / remove (admin, lead)
    GET/POST   /projects/<pid>/environments            -- Shared + own local envs / create
    GET/POST   /projects/<pid>/knowledge               -- Links (?resolve=true) / link a document
    POST       /projects/<pid>/knowledge/publish       -- Store a new document and link it
    DELETE     /knowledge-links/<lid>                  -- Remove a link
"""

import logging

from flask import Blueprint, jsonify, request

from governance.blueprints import flag_arg, json_body
from governance.middleware.auth_required import current_scope, require_auth
from governance.services import knowledge_service, project_service

logger = logging.getLogger(__name__)

projects_bp = Blueprint("projects", __name__, url_prefix="/api/v1")


@projects_bp.route("/projects", methods=["GET"])
@require_auth
def list_projects_route():
    projects = project_service.list_projects(current_scope())
    return jsonify({"projects": [p.to_dict() for p in projects], "count": len(projects)}), 200


@projects_bp.route("/projects", methods=["POST"])
@require_auth
def create_project_route():
    project = project_service.create_project(current_scope(), json_body())
    return jsonify({"project": project.to_dict()}), 201


@projects_bp.route("/projects/<int:project_id>", methods=["GET"])
@require_auth
def project_summary_route(project_id):
    summary = project_service.project_summary(current_scope(), project_id)
    return jsonify({"project": summary}), 200


@projects_bp.route("/projects/<int:project_id>", methods=["DELETE"])
@require_auth
def delete_project_route(project_id):
    project_service.delete_project(current_scope(), project_id)
    return jsonify({"success": True}), 200


# ── Environments ─────────────────────────────────────────────────────────


@projects_bp.route("/projects/<int:project_id>/environments", methods=["GET"])
@require_auth
def list_environments_route(project_id):
    envs = project_service.list_environments(current_scope(), project_id)
    return jsonify({"environments": [e.to_dict() for e in envs], "count": len(envs)}), 200


@projects_bp.route("/projects/<int:project_id>/environments", methods=["POST"])
@require_auth
def create_environment_route(project_id):
    env = project_service.create_environment(current_scope(), project_id, json_body())
    return jsonify({"environment": env.to_dict()}), 201


# ── Knowledge links ──────────────────────────────────────────────────────


@projects_bp.route("/projects/<int:project_id>/knowledge", methods=["GET"])
@require_auth
def list_project_knowledge_route(project_id):
    """Links of a project; with ?resolve=true each carries its document and status."""
    links = knowledge_service.list_project_knowledge(
        current_scope(),
        project_id,
        knowledge_type=request.args.get("knowledge_type") or None,
        resolve=flag_arg("resolve"),
    )
    return jsonify({"knowledge": links, "count": len(links)}), 200


@projects_bp.route("/projects/<int:project_id>/knowledge", methods=["POST"])
@require_auth
def link_knowledge_route(project_id):
    data = json_body()
    link = knowledge_service.link_knowledge(
        current_scope(),
        project_id,
        data.get("knowledge_type"),
        data.get("knowledge_id"),
        data.get("scope"),
    )
    return jsonify({"link": link.to_dict()}), 201


@projects_bp.route("/projects/<int:project_id>/knowledge/publish", methods=["POST"])
@require_auth
def publish_knowledge_route(project_id):
    data = json_body()
    result = knowledge_service.publish_knowledge(
        current_scope(),
        project_id,
        data.get("knowledge_type"),
        data.get("document"),
        data.get("scope"),
    )
    return jsonify(result), 201


@projects_bp.route("/knowledge-links/<int:link_id>", methods=["DELETE"])
@require_auth
def unlink_knowledge_route(link_id):
    knowledge_service.unlink_knowledge(current_scope(), link_id)
    return jsonify({"success": True}), 200
