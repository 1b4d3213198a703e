"""
Compliance metrics API.

Blueprint: metrics_bp
Prefix: /api/v1/metrics

Endpoints:
    GET /compliance   -- Per-category totals and pass rate
                         (?project_id=&from_date=&to_date=&visibility=)
"""

from flask import Blueprint, jsonify, request

from governance.middleware.auth_required import current_scope, require_auth
from governance.services import evidence_service

metrics_bp = Blueprint("metrics", __name__, url_prefix="/api/v1/metrics")


@metrics_bp.route("/compliance", methods=["GET"])
@require_auth
def compliance():
    metrics_filter = evidence_service.MetricsFilter.from_args(request.args)
    metrics = evidence_service.compliance_metrics(current_scope(), metrics_filter)
    return jsonify({"metrics": metrics}), 200
