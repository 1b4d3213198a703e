"""Tests for the MCP server registry, connections and tool execution audit."""

import pytest

from governance.core.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from governance.models import db
from governance.models.mcp import McpToolExecution
from governance.services import mcp_service


@pytest.fixture()
def team(make_team):
    return make_team()


@pytest.fixture()
def lead(team, make_user, ctx_for):
    return ctx_for(make_user(team, role="lead"))


@pytest.fixture()
def dev(team, make_user, ctx_for):
    return ctx_for(make_user(team))


@pytest.fixture()
def server(lead):
    return mcp_service.register_server(lead, {
        "name": "filesystem",
        "command": "npx",
        "args": ["-y", "@modelcontextprotocol/server-filesystem"],
        "env": {"API_TOKEN": "hunter2"},
    })


class TestServers:
    def test_register_defaults_and_hides_env_values(self, server):
        data = server.to_dict()
        assert data["status"] == "unknown"
        assert data["env_keys"] == ["API_TOKEN"]
        assert "hunter2" not in str(data)

    def test_developer_cannot_register(self, dev):
        with pytest.raises(AuthorizationError):
            mcp_service.register_server(dev, {"name": "git"})

    def test_duplicate_name_conflicts(self, lead, server):
        with pytest.raises(ConflictError):
            mcp_service.register_server(lead, {"name": "filesystem"})

    @pytest.mark.parametrize("body", [
        {"name": " "},
        {"name": "x", "args": "npx -y"},
        {"name": "x", "env": {"PORT": 8080}},
        {"name": "x", "status": "sleeping"},
    ])
    def test_register_validation(self, lead, body):
        with pytest.raises(ValidationError):
            mcp_service.register_server(lead, body)

    def test_list_ordered_by_name_and_filtered(self, lead, server):
        mcp_service.register_server(lead, {"name": "browser", "status": "active"})
        assert [s.name for s in mcp_service.list_servers(lead)] == ["browser", "filesystem"]
        assert [s.name for s in mcp_service.list_servers(lead, status="active")] == ["browser"]

    def test_heartbeat_sets_status_and_tools(self, lead, server):
        updated = mcp_service.record_heartbeat(lead, server.id, {"tools_discovered": ["read_file"]})
        assert updated.status == "active"
        assert updated.last_heartbeat is not None
        assert updated.tools_discovered == ["read_file"]

    def test_unknown_server_not_found(self, dev):
        with pytest.raises(NotFoundError):
            mcp_service.get_server(dev, 999)


class TestConnections:
    def test_open_list_close(self, dev, server):
        conn = mcp_service.open_connection(dev, {"server_id": server.id, "connection_id": "sess-1"})
        listed = mcp_service.list_active_connections(dev)
        assert [c.id for c in listed] == [conn.id]
        assert listed[0].to_dict()["server_name"] == "filesystem"

        closed = mcp_service.close_connection(dev, conn.id)
        assert closed.status == "disconnected"
        assert closed.disconnected_at is not None
        assert mcp_service.list_active_connections(dev) == []

    def test_other_team_cannot_see_or_close(self, dev, server, make_team, make_user, ctx_for):
        conn = mcp_service.open_connection(dev, {"server_id": server.id})
        outsider = ctx_for(make_user(make_team(), role="admin"))
        assert mcp_service.list_active_connections(outsider) == []
        with pytest.raises(NotFoundError):
            mcp_service.close_connection(outsider, conn.id)

    def test_teammate_needs_lead_to_close(self, dev, lead, server, team, make_user, ctx_for):
        conn = mcp_service.open_connection(dev, {"server_id": server.id})
        with pytest.raises(AuthorizationError):
            mcp_service.close_connection(ctx_for(make_user(team)), conn.id)
        assert mcp_service.close_connection(lead, conn.id).status == "disconnected"


class TestToolExecutions:
    def test_status_defaults_from_error_message(self, dev, server):
        ok = mcp_service.record_tool_execution(dev, {"server_id": server.id, "tool_name": "read_file"})
        failed = mcp_service.record_tool_execution(
            dev, {"server_id": server.id, "tool_name": "write_file", "error_message": "EACCES"}
        )
        assert (ok.status, failed.status) == ("success", "error")
        assert ok.user_id == dev.user_id and ok.team_id == dev.team_id

    def test_tool_name_required(self, dev, server):
        with pytest.raises(ValidationError):
            mcp_service.record_tool_execution(dev, {"server_id": server.id})
        assert db.session.query(McpToolExecution).count() == 0

    def test_stats_count_only_callers_team(self, dev, lead, server, make_team, make_user, ctx_for):
        for ms, status in ((100, "success"), (300, "success"), (200, "error")):
            mcp_service.record_tool_execution(
                dev, {"server_id": server.id, "tool_name": "t", "execution_time_ms": ms, "status": status}
            )
        mcp_service.record_tool_execution(lead, {"server_id": server.id, "tool_name": "t"})
        outsider = ctx_for(make_user(make_team()))
        mcp_service.record_tool_execution(outsider, {"server_id": server.id, "tool_name": "t"})

        stats = mcp_service.server_stats(dev, server.id)
        assert stats == {
            "server_id": server.id,
            "total_executions": 4,
            "unique_users": 2,
            "avg_execution_time": 200.0,
            "successful": 3,
            "failed": 1,
        }
        assert mcp_service.server_stats(outsider, server.id)["total_executions"] == 1
