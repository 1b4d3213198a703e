"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in governance/__init__.py with no default
limits; this module applies limits per route category.

Usage:
    from governance.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

from flask import g, request as flask_request

logger = logging.getLogger(__name__)

RAW_QUERY_LIMIT = "10/minute"
WRITE_LIMIT = "60/minute"
READ_LIMIT = "200/minute"
EVIDENCE_LIMIT = "300/minute"


def rate_limit_key():
    """Limit by authenticated user when known, else by remote IP."""
    user_id = getattr(g, "jwt_user_id", None)
    if user_id:
        return f"user:{user_id}"
    return flask_request.remote_addr or "unknown"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits:
        - Raw graph queries:   10/minute  (arbitrary AQL against the graph store)
        - Evidence / MCP:      300/minute (hook clients and agents report in bursts)
        - Hooks / projects:    60/minute
        - Knowledge / metrics: 200/minute
        - Health check:        exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING") or not app.config.get("RATELIMIT_ENABLED", True):
        app.logger.info("Rate limiter disabled")
        return

    raw_query_view = app.view_functions.get("knowledge.raw_query")
    if raw_query_view is not None:
        app.view_functions["knowledge.raw_query"] = limiter.limit(RAW_QUERY_LIMIT)(raw_query_view)

    for bp_name in ("evidence", "mcp"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(EVIDENCE_LIMIT)(bp)

    for bp_name in ("hooks", "projects"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(WRITE_LIMIT)(bp)

    for bp_name in ("knowledge", "metrics"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(READ_LIMIT)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured: raw query: %s, evidence: %s, write: %s, read: %s",
        RAW_QUERY_LIMIT, EVIDENCE_LIMIT, WRITE_LIMIT, READ_LIMIT,
    )
