"""
Hook configuration registry API.

Blueprint: hooks_bp
Prefix: /api/v1

Endpoints:
    GET/POST  /hooks                        -- List team hooks / publish a new version
    GET/PUT   /hooks/<id>                   -- Detail / in-place correction
    POST      /hooks/<id>/enabled           -- Enable or disable
    GET       /hooks/history/<name>         -- All versions of one hook name
    POST      /hooks/<id>/test              -- Dry run in the sandbox
    GET       /hooks/<id>/test-results      -- Recent dry runs
    GET       /rules/<category>             -- Enabled verification rules for a category
    POST      /rules                        -- Create a rule (admin, lead)
    PUT       /rules/<id>                   -- Update a rule (admin, lead)
"""

import logging

from flask import Blueprint, jsonify, request

from governance.blueprints import flag_arg, json_body
from governance.middleware.auth_required import current_scope, require_auth
from governance.services import hook_service

logger = logging.getLogger(__name__)

hooks_bp = Blueprint("hooks", __name__, url_prefix="/api/v1")


@hooks_bp.route("/hooks", methods=["GET"])
@require_auth
def list_hooks_route():
    hooks = hook_service.list_hooks(
        current_scope(),
        project_id=request.args.get("project_id") or None,
        hook_type=request.args.get("hook_type") or None,
        latest_only=flag_arg("latest_only"),
    )
    return jsonify({"hooks": [h.to_dict() for h in hooks], "count": len(hooks)}), 200


@hooks_bp.route("/hooks", methods=["POST"])
@require_auth
def publish_hook_route():
    """Publish a hook script as the next version of its name."""
    hook = hook_service.publish_new_version(current_scope(), json_body())
    return jsonify({"hook": hook.to_dict()}), 201


@hooks_bp.route("/hooks/<int:hook_id>", methods=["GET"])
@require_auth
def get_hook_route(hook_id):
    hook = hook_service.get_hook(current_scope(), hook_id)
    return jsonify({"hook": hook.to_dict()}), 200


@hooks_bp.route("/hooks/<int:hook_id>", methods=["PUT"])
@require_auth
def update_hook_route(hook_id):
    """Correct script_content and/or enabled without creating a new version."""
    hook = hook_service.update_in_place(current_scope(), hook_id, json_body())
    return jsonify({"hook": hook.to_dict()}), 200


@hooks_bp.route("/hooks/<int:hook_id>/enabled", methods=["POST"])
@require_auth
def set_hook_enabled_route(hook_id):
    data = json_body()
    hook = hook_service.set_enabled(current_scope(), hook_id, data.get("enabled"))
    return jsonify({"hook": hook.to_dict()}), 200


@hooks_bp.route("/hooks/history/<path:name>", methods=["GET"])
@require_auth
def hook_history_route(name):
    versions = hook_service.version_history(current_scope(), name)
    return jsonify({"name": name, "versions": [h.to_dict() for h in versions]}), 200


@hooks_bp.route("/hooks/<int:hook_id>/test", methods=["POST"])
@require_auth
def test_hook_route(hook_id):
    data = json_body()
    result = hook_service.test_hook(current_scope(), hook_id, data.get("test_input", {}))
    return jsonify({"result": result.to_dict()}), 201


@hooks_bp.route("/hooks/<int:hook_id>/test-results", methods=["GET"])
@require_auth
def hook_test_results_route(hook_id):
    results = hook_service.list_test_results(
        current_scope(), hook_id, limit=request.args.get("limit")
    )
    return jsonify({"results": [r.to_dict() for r in results], "count": len(results)}), 200


# ── Verification rules ───────────────────────────────────────────────────


@hooks_bp.route("/rules/<category>", methods=["GET"])
@require_auth
def list_rules_route(category):
    rules = hook_service.list_rules(current_scope(), category)
    return jsonify({"category": category, "rules": [r.to_dict() for r in rules]}), 200


@hooks_bp.route("/rules", methods=["POST"])
@require_auth
def create_rule_route():
    rule = hook_service.create_rule(current_scope(), json_body())
    return jsonify({"rule": rule.to_dict()}), 201


@hooks_bp.route("/rules/<int:rule_id>", methods=["PUT"])
@require_auth
def update_rule_route(rule_id):
    rule = hook_service.update_rule(current_scope(), rule_id, json_body())
    return jsonify({"rule": rule.to_dict()}), 200
