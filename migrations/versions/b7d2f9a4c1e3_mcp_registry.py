"""mcp_registry

Add the MCP server registry: mcp_servers, mcp_connections,
mcp_tool_executions.

Revision ID: b7d2f9a4c1e3
Revises: a1c0e5d2b7f4
Create Date: 2026-10-18 14:30:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "b7d2f9a4c1e3"
down_revision = "a1c0e5d2b7f4"
branch_labels = None
depends_on = None


def _ts(name, nullable=True):
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "mcp_servers" not in existing_tables:
        op.create_table(
            "mcp_servers",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("command", sa.String(length=500), nullable=True),
            sa.Column("args", sa.JSON(), nullable=True),
            sa.Column("env", sa.JSON(), nullable=True),
            sa.Column("status", sa.String(length=50), nullable=False, server_default="unknown"),
            _ts("last_heartbeat"),
            sa.Column("tools_discovered", sa.JSON(), nullable=True),
            sa.Column("metadata", sa.JSON(), nullable=True),
            _ts("created_at"),
            _ts("updated_at"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("name"),
        )

    if "mcp_connections" not in existing_tables:
        op.create_table(
            "mcp_connections",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("server_id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("team_id", sa.Integer(), nullable=True),
            sa.Column("connection_id", sa.String(length=255), nullable=True),
            sa.Column("status", sa.String(length=50), nullable=False, server_default="connected"),
            _ts("connected_at"),
            _ts("disconnected_at"),
            sa.Column("metadata", sa.JSON(), nullable=True),
            sa.ForeignKeyConstraint(["server_id"], ["mcp_servers.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["team_id"], ["teams.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        for column in ("server_id", "user_id", "team_id", "status"):
            op.create_index(f"ix_mcp_connections_{column}", "mcp_connections", [column])

    if "mcp_tool_executions" not in existing_tables:
        op.create_table(
            "mcp_tool_executions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("server_id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=True),
            sa.Column("team_id", sa.Integer(), nullable=True),
            sa.Column("tool_name", sa.String(length=255), nullable=False),
            sa.Column("input_params", sa.JSON(), nullable=True),
            sa.Column("output_result", sa.JSON(), nullable=True),
            sa.Column("execution_time_ms", sa.Integer(), nullable=True),
            sa.Column("status", sa.String(length=50), nullable=False),
            sa.Column("error_message", sa.Text(), nullable=True),
            _ts("created_at"),
            sa.ForeignKeyConstraint(["server_id"], ["mcp_servers.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["team_id"], ["teams.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        for column in ("server_id", "user_id", "team_id", "created_at"):
            op.create_index(f"ix_mcp_tool_executions_{column}", "mcp_tool_executions", [column])


def downgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    for table in ("mcp_tool_executions", "mcp_connections", "mcp_servers"):
        if table in existing_tables:
            op.drop_table(table)
