"""
MCP server registry and monitoring.

The server catalogue is shared by every team; only admins and leads add
servers or report their health. Connections and tool executions are
stamped with the caller's user and team and read back team-scoped:

    team member      sees rows of their team
    no team          sees only their own team-less rows
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import and_, case, func, select

from governance.core.exceptions import NotFoundError, ValidationError
from governance.core.scope import ExecutionStatus, Role, ScopeContext, ServerStatus, require_role
from governance.models import db
from governance.models.mcp import McpConnection, McpServer, McpToolExecution
from governance.utils.helpers import clean_str, commit_or_raise, parse_int

logger = logging.getLogger(__name__)

CONNECTED = "connected"
DISCONNECTED = "disconnected"


def _team_rows(model, ctx: ScopeContext):
    if ctx.team_id is None:
        return and_(model.team_id.is_(None), model.user_id == ctx.user_id)
    return model.team_id == ctx.team_id


def _object(value, field: str) -> dict:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValidationError(f"{field} must be an object", details={field: "not an object"})
    return value


def _string_list(value, field: str) -> list:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValidationError(f"{field} must be a list of strings", details={field: "invalid"})
    return value


# ── Servers ──────────────────────────────────────────────────────────────


def list_servers(ctx: ScopeContext, status=None) -> list[McpServer]:
    """Registered servers ordered by name, optionally filtered by status."""
    stmt = select(McpServer).order_by(McpServer.name)
    if status:
        stmt = stmt.where(McpServer.status == ServerStatus.parse(status, "status").value)
    return list(db.session.execute(stmt).scalars())


def get_server(ctx: ScopeContext, server_id) -> McpServer:
    try:
        pk = int(server_id)
    except (TypeError, ValueError):
        raise NotFoundError(resource="McpServer", resource_id=server_id)
    server = db.session.get(McpServer, pk)
    if server is None:
        raise NotFoundError(resource="McpServer", resource_id=server_id)
    return server


def register_server(ctx: ScopeContext, data: dict) -> McpServer:
    """Add a server to the catalogue. Admin or lead only; names are unique."""
    require_role(ctx, Role.ADMIN, Role.LEAD)
    name = clean_str(data.get("name"), 255, "name")
    if not name:
        raise ValidationError("name is required", details={"name": "required"})

    env = _object(data.get("env"), "env")
    if not all(isinstance(v, str) for v in env.values()):
        raise ValidationError("env values must be strings", details={"env": "invalid"})

    server = McpServer(
        name=name,
        command=clean_str(data.get("command"), 500, "command"),
        args=_string_list(data.get("args"), "args"),
        env=env,
        status=ServerStatus.parse(data.get("status") or ServerStatus.UNKNOWN, "status").value,
        tools_discovered=_string_list(data.get("tools_discovered"), "tools_discovered"),
        meta=_object(data.get("metadata"), "metadata"),
    )
    db.session.add(server)
    commit_or_raise("McpServer", "name", name)
    logger.info(
        "MCP server %s registered", name,
        extra={"user_id": ctx.user_id, "team_id": ctx.team_id, "event_type": "mcp_server_registered"},
    )
    return server


def record_heartbeat(ctx: ScopeContext, server_id, data: dict | None = None) -> McpServer:
    """Stamp last_heartbeat and update status (default active) and discovered tools."""
    require_role(ctx, Role.ADMIN, Role.LEAD)
    server = get_server(ctx, server_id)
    data = data or {}
    server.status = ServerStatus.parse(data.get("status") or ServerStatus.ACTIVE, "status").value
    if "tools_discovered" in data:
        server.tools_discovered = _string_list(data["tools_discovered"], "tools_discovered")
    server.last_heartbeat = datetime.now(timezone.utc)
    commit_or_raise("McpServer", "id", server.id)
    logger.debug("MCP server %s heartbeat status=%s", server.name, server.status)
    return server


def server_stats(ctx: ScopeContext, server_id) -> dict:
    """Execution totals for one server, counted over the caller's team."""
    server = get_server(ctx, server_id)
    row = db.session.execute(
        select(
            func.count(McpToolExecution.id).label("total"),
            func.count(func.distinct(McpToolExecution.user_id)).label("unique_users"),
            func.avg(McpToolExecution.execution_time_ms).label("avg_ms"),
            func.sum(case((McpToolExecution.status == ExecutionStatus.SUCCESS.value, 1), else_=0)).label("ok"),
            func.sum(case((McpToolExecution.status == ExecutionStatus.ERROR.value, 1), else_=0)).label("failed"),
        ).where(McpToolExecution.server_id == server.id, _team_rows(McpToolExecution, ctx))
    ).one()
    return {
        "server_id": server.id,
        "total_executions": int(row.total or 0),
        "unique_users": int(row.unique_users or 0),
        "avg_execution_time": round(float(row.avg_ms), 2) if row.avg_ms is not None else None,
        "successful": int(row.ok or 0),
        "failed": int(row.failed or 0),
    }


# ── Connections ──────────────────────────────────────────────────────────


def list_active_connections(ctx: ScopeContext, server_id=None) -> list[McpConnection]:
    """Open connections of the caller's team, newest first."""
    stmt = select(McpConnection).where(
        McpConnection.status == CONNECTED, _team_rows(McpConnection, ctx)
    )
    if server_id not in (None, ""):
        stmt = stmt.where(McpConnection.server_id == get_server(ctx, server_id).id)
    stmt = stmt.order_by(McpConnection.connected_at.desc(), McpConnection.id.desc())
    return list(db.session.execute(stmt).scalars())


def open_connection(ctx: ScopeContext, data: dict) -> McpConnection:
    """Record that the caller connected to a server."""
    server = get_server(ctx, data.get("server_id"))
    connection = McpConnection(
        server_id=server.id,
        user_id=ctx.user_id,
        team_id=ctx.team_id,
        connection_id=clean_str(data.get("connection_id"), 255, "connection_id"),
        status=CONNECTED,
        meta=_object(data.get("metadata"), "metadata"),
    )
    db.session.add(connection)
    commit_or_raise("McpConnection", "server_id", server.id)
    logger.info(
        "MCP connection to %s opened", server.name,
        extra={"user_id": ctx.user_id, "team_id": ctx.team_id, "event_type": "mcp_connected"},
    )
    return connection


def close_connection(ctx: ScopeContext, connection_id) -> McpConnection:
    """Mark a connection disconnected. Owner, or admin/lead of the same team."""
    try:
        pk = int(connection_id)
    except (TypeError, ValueError):
        raise NotFoundError(resource="McpConnection", resource_id=connection_id)
    connection = db.session.execute(
        select(McpConnection).where(McpConnection.id == pk, _team_rows(McpConnection, ctx))
    ).scalar_one_or_none()
    if connection is None:
        raise NotFoundError(resource="McpConnection", resource_id=connection_id, team_id=ctx.team_id)
    if connection.user_id != ctx.user_id:
        require_role(ctx, Role.ADMIN, Role.LEAD)

    if connection.status != DISCONNECTED:
        connection.status = DISCONNECTED
        connection.disconnected_at = datetime.now(timezone.utc)
        commit_or_raise("McpConnection", "id", pk)
    return connection


# ── Tool executions ──────────────────────────────────────────────────────


def record_tool_execution(ctx: ScopeContext, data: dict) -> McpToolExecution:
    """Append one tool call to the audit log.

    status defaults to "error" when error_message is given, else "success".
    """
    server = get_server(ctx, data.get("server_id"))
    tool_name = clean_str(data.get("tool_name"), 255, "tool_name")
    if not tool_name:
        raise ValidationError("tool_name is required", details={"tool_name": "required"})

    error_message = clean_str(data.get("error_message"))
    default_status = ExecutionStatus.ERROR if error_message else ExecutionStatus.SUCCESS
    execution = McpToolExecution(
        server_id=server.id,
        user_id=ctx.user_id,
        team_id=ctx.team_id,
        tool_name=tool_name,
        input_params=data.get("input_params"),
        output_result=data.get("output_result"),
        execution_time_ms=parse_int(data.get("execution_time_ms"), "execution_time_ms", minimum=0),
        status=ExecutionStatus.parse(data.get("status") or default_status, "status").value,
        error_message=error_message,
    )
    db.session.add(execution)
    commit_or_raise("McpToolExecution", "tool_name", tool_name)
    logger.debug(
        "MCP tool %s on %s status=%s", tool_name, server.name, execution.status,
        extra={"user_id": ctx.user_id, "team_id": ctx.team_id, "event_type": "mcp_tool_executed"},
    )
    return execution
