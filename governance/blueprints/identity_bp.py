"""
Caller identity API.

Blueprint: identity_bp
Prefix: /api/v1

Endpoints:
    GET  /me                    -- Caller profile with team name and organization
    PUT  /users/<uid>/role      -- Change a team member's role (admin)
"""

from flask import Blueprint, jsonify

from governance.blueprints import json_body
from governance.middleware.auth_required import current_scope, require_auth
from governance.services import identity_service

identity_bp = Blueprint("identity", __name__, url_prefix="/api/v1")


@identity_bp.route("/me", methods=["GET"])
@require_auth
def me_route():
    ctx = current_scope()
    return jsonify({"user": identity_service.get_user_profile(ctx), "scope": ctx.to_dict()}), 200


@identity_bp.route("/users/<int:user_id>/role", methods=["PUT"])
@require_auth
def change_role_route(user_id):
    user = identity_service.change_role(current_scope(), user_id, json_body().get("role"))
    return jsonify({"user": user.to_dict()}), 200
