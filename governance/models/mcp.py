"""
MCP server registry models.

McpServer is the shared catalogue of tool servers agents may connect to.
McpConnection tracks one user's session against a server; McpToolExecution
is the append-only audit of tool calls made through those servers.

Connections and executions carry the caller's team_id so reads can be
scoped to the team without joining through users.
"""

from datetime import datetime, timezone

from governance.models import db


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


class McpServer(db.Model):
    __tablename__ = "mcp_servers"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), unique=True, nullable=False)
    command = db.Column(db.String(500), nullable=True)
    args = db.Column(db.JSON, nullable=True)
    env = db.Column(db.JSON, nullable=True)
    status = db.Column(
        db.String(50), nullable=False, default="unknown",
        comment="active | inactive | error | unknown",
    )
    last_heartbeat = db.Column(db.DateTime(timezone=True), nullable=True)
    tools_discovered = db.Column(db.JSON, nullable=True)
    meta = db.Column("metadata", db.JSON, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def to_dict(self):
        # env values may hold credentials; only the variable names leave the service
        return {
            "id": self.id,
            "name": self.name,
            "command": self.command,
            "args": self.args or [],
            "env_keys": sorted((self.env or {}).keys()),
            "status": self.status,
            "last_heartbeat": _iso(self.last_heartbeat),
            "tools_discovered": self.tools_discovered or [],
            "metadata": self.meta or {},
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self) -> str:
        return f"<McpServer {self.id}: {self.name} [{self.status}]>"


class McpConnection(db.Model):
    __tablename__ = "mcp_connections"

    id = db.Column(db.Integer, primary_key=True)
    server_id = db.Column(
        db.Integer, db.ForeignKey("mcp_servers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    team_id = db.Column(
        db.Integer, db.ForeignKey("teams.id", ondelete="SET NULL"), nullable=True, index=True
    )
    connection_id = db.Column(db.String(255), nullable=True)
    status = db.Column(db.String(50), nullable=False, default="connected", index=True)
    connected_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    disconnected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    meta = db.Column("metadata", db.JSON, nullable=True)

    server = db.relationship("McpServer")
    user = db.relationship("User")

    def to_dict(self):
        return {
            "id": self.id,
            "server_id": self.server_id,
            "server_name": self.server.name if self.server else None,
            "user_id": self.user_id,
            "username": self.user.username if self.user else None,
            "full_name": self.user.full_name if self.user else None,
            "team_id": self.team_id,
            "connection_id": self.connection_id,
            "status": self.status,
            "connected_at": _iso(self.connected_at),
            "disconnected_at": _iso(self.disconnected_at),
            "metadata": self.meta or {},
        }


class McpToolExecution(db.Model):
    __tablename__ = "mcp_tool_executions"

    id = db.Column(db.Integer, primary_key=True)
    server_id = db.Column(
        db.Integer, db.ForeignKey("mcp_servers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    team_id = db.Column(
        db.Integer, db.ForeignKey("teams.id", ondelete="SET NULL"), nullable=True, index=True
    )
    tool_name = db.Column(db.String(255), nullable=False)
    input_params = db.Column(db.JSON, nullable=True)
    output_result = db.Column(db.JSON, nullable=True)
    execution_time_ms = db.Column(db.Integer, nullable=True)
    status = db.Column(db.String(50), nullable=False, comment="success | error")
    error_message = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow, index=True)

    def to_dict(self):
        return {
            "id": self.id,
            "server_id": self.server_id,
            "user_id": self.user_id,
            "team_id": self.team_id,
            "tool_name": self.tool_name,
            "input_params": self.input_params,
            "output_result": self.output_result,
            "execution_time_ms": self.execution_time_ms,
            "status": self.status,
            "error_message": self.error_message,
            "created_at": _iso(self.created_at),
        }
