"""
Health check blueprint.

Endpoints:
    GET /api/v1/health        -- simple 200 for load balancers
    GET /api/v1/health/live   -- dependency status (relational store, graph store)
"""

import logging
import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError

from governance.integrations.graph_gateway import get_graph_gateway
from governance.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")


@health_bp.route("", methods=["GET"])
def ready():
    """Readiness check: always 200 if the app is running."""
    return jsonify({"status": "ok", "app": "Governance Central"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Detailed liveness check.

    The relational store is required; the graph store is reported but a
    graph outage only degrades knowledge features, so it never fails the check.
    """
    checks = {}
    overall = True

    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
        checks["database"] = {"status": "ok", "latency_ms": round(db_ms, 1)}
    except SQLAlchemyError as exc:
        db.session.rollback()
        checks["database"] = {"status": "error"}
        overall = False
        logger.error("Health check: database failed: %s", exc)

    t0 = time.perf_counter()
    graph_ok = get_graph_gateway().ping()
    graph_ms = (time.perf_counter() - t0) * 1000
    checks["graph"] = (
        {"status": "ok", "latency_ms": round(graph_ms, 1)} if graph_ok else {"status": "disconnected"}
    )

    checks["app"] = {
        "name": "Governance Central",
        "debug": current_app.debug,
        "testing": current_app.testing,
    }

    status_code = 200 if overall else 503
    return jsonify({
        "status": "healthy" if overall else "degraded",
        "checks": checks,
    }), status_code
