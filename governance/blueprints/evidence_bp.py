"""
Evidence ledger API.

Blueprint: evidence_bp
Prefix: /api/v1

Endpoints:
    POST  /evidence                    -- Submit evidence (authenticated)
    POST  /evidence/legacy             -- Submit evidence without a token (legacy hook clients)
    GET   /evidence/search             -- Filtered, paginated search
    GET   /evidence/<id>/context       -- One record with user/team/project/environment names
    GET   /evidence/task/<task_id>     -- All records for one task
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from governance.blueprints import json_body
from governance.middleware.auth_required import current_scope, require_auth
from governance.services import evidence_service
from governance.utils.errors import E, api_error

logger = logging.getLogger(__name__)

evidence_bp = Blueprint("evidence", __name__, url_prefix="/api/v1")


@evidence_bp.route("/evidence", methods=["POST"])
@require_auth
def submit_evidence_route():
    """Record a verification event for the authenticated caller."""
    evidence = evidence_service.submit_evidence(current_scope(), json_body())
    return jsonify({"success": True, "evidence": evidence}), 201


@evidence_bp.route("/evidence/legacy", methods=["POST"])
def submit_legacy_evidence_route():
    """Record evidence from a hook client that sends no token."""
    if not current_app.config.get("LEGACY_EVIDENCE_ENABLED", False):
        return api_error(E.NOT_FOUND, "Not found")
    evidence = evidence_service.submit_legacy_evidence(json_body())
    return jsonify({"success": True, "evidence": evidence}), 201


@evidence_bp.route("/evidence/search", methods=["GET"])
@require_auth
def search_evidence_route():
    evidence_filter = evidence_service.EvidenceFilter.from_args(request.args)
    page = evidence_service.search_evidence(current_scope(), evidence_filter)
    body = page.to_dict()
    return jsonify({
        "evidence": body["items"],
        "total": body["total"],
        "limit": body["limit"],
        "offset": body["offset"],
    }), 200


@evidence_bp.route("/evidence/<int:evidence_id>/context", methods=["GET"])
@require_auth
def evidence_context_route(evidence_id):
    context = evidence_service.get_evidence_context(current_scope(), evidence_id)
    return jsonify({"evidence": context}), 200


@evidence_bp.route("/evidence/task/<task_id>", methods=["GET"])
@require_auth
def evidence_for_task_route(task_id):
    rows = evidence_service.list_evidence_for_task(current_scope(), task_id)
    return jsonify({"evidence": [r.to_dict() for r in rows], "count": len(rows)}), 200
