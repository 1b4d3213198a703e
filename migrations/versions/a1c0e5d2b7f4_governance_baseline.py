"""governance_baseline

Create the relational schema: teams, users, projects, environments,
evidence, hook_configurations, hook_test_results, verification_rules,
project_knowledge_links.

Revision ID: a1c0e5d2b7f4
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "a1c0e5d2b7f4"
down_revision = None
branch_labels = None
depends_on = None


def _ts(name, nullable=True):
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "teams" not in existing_tables:
        op.create_table(
            "teams",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("organization", sa.String(length=255), nullable=True),
            sa.Column("settings", sa.JSON(), nullable=True),
            _ts("created_at"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_teams_organization", "teams", ["organization"])

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("username", sa.String(length=255), nullable=False),
            sa.Column("email", sa.String(length=255), nullable=False),
            sa.Column("password_hash", sa.String(length=255), nullable=True),
            sa.Column("full_name", sa.String(length=255), nullable=True),
            sa.Column("role", sa.String(length=50), nullable=False, server_default="developer"),
            sa.Column("team_id", sa.Integer(), nullable=True),
            _ts("created_at"),
            _ts("last_login"),
            sa.ForeignKeyConstraint(["team_id"], ["teams.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("username"),
            sa.UniqueConstraint("email"),
        )
        op.create_index("ix_users_team_id", "users", ["team_id"])

    if "projects" not in existing_tables:
        op.create_table(
            "projects",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("repo_url", sa.String(length=500), nullable=True),
            sa.Column("repo_provider", sa.String(length=50), nullable=True),
            sa.Column("team_id", sa.Integer(), nullable=False),
            sa.Column("default_branch", sa.String(length=100), nullable=False, server_default="main"),
            sa.Column("settings", sa.JSON(), nullable=True),
            _ts("created_at", nullable=False),
            _ts("updated_at", nullable=False),
            sa.ForeignKeyConstraint(["team_id"], ["teams.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("repo_url", "team_id", name="uq_projects_repo_team"),
        )
        op.create_index("ix_projects_team_id", "projects", ["team_id"])
        op.create_index("ix_projects_repo_url", "projects", ["repo_url"])

    if "environments" not in existing_tables:
        op.create_table(
            "environments",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=100), nullable=False),
            sa.Column("type", sa.String(length=50), nullable=False),
            sa.Column("hostname", sa.String(length=255), nullable=True),
            sa.Column("user_id", sa.Integer(), nullable=True),
            sa.Column("settings", sa.JSON(), nullable=True),
            _ts("created_at"),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("project_id", "name", "user_id", name="uq_environments_project_name_user"),
        )
        op.create_index("ix_environments_project_id", "environments", ["project_id"])
        op.create_index("ix_environments_hostname", "environments", ["hostname"])
        op.create_index("ix_environments_user_id", "environments", ["user_id"])
        op.create_index(
            "uq_environments_project_name_shared",
            "environments",
            ["project_id", "name"],
            unique=True,
            postgresql_where=sa.text("user_id IS NULL"),
            sqlite_where=sa.text("user_id IS NULL"),
        )

    if "evidence" not in existing_tables:
        op.create_table(
            "evidence",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("task_id", sa.String(length=255), nullable=True),
            sa.Column("user_id", sa.Integer(), nullable=True),
            sa.Column("team_id", sa.Integer(), nullable=True),
            sa.Column("task_category", sa.String(length=50), nullable=False),
            sa.Column("evidence_type", sa.String(length=100), nullable=False),
            sa.Column("evidence_data", sa.JSON(), nullable=False),
            sa.Column("prompt_text", sa.Text(), nullable=True),
            sa.Column("completion_text", sa.Text(), nullable=True),
            sa.Column("conversation_id", sa.String(length=255), nullable=True),
            sa.Column("knowledge_pattern_id", sa.String(length=255), nullable=True),
            sa.Column("coding_standard_id", sa.String(length=255), nullable=True),
            sa.Column("requirement_id", sa.String(length=255), nullable=True),
            sa.Column("project_id", sa.Integer(), nullable=True),
            sa.Column("environment_id", sa.Integer(), nullable=True),
            sa.Column("repo_branch", sa.String(length=255), nullable=True),
            sa.Column("commit_sha", sa.String(length=40), nullable=True),
            sa.Column("git_remote", sa.String(length=500), nullable=True),
            sa.Column("visibility", sa.String(length=20), nullable=False, server_default="team"),
            sa.Column("reporter_user_ref", sa.String(length=255), nullable=True),
            sa.Column("reporter_project_ref", sa.String(length=255), nullable=True),
            sa.Column("metadata", sa.JSON(), nullable=True),
            _ts("created_at", nullable=False),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["team_id"], ["teams.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["environment_id"], ["environments.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        for column in (
            "task_id", "user_id", "team_id", "task_category", "conversation_id",
            "project_id", "environment_id", "repo_branch", "commit_sha",
            "reporter_project_ref", "created_at",
        ):
            op.create_index(f"ix_evidence_{column}", "evidence", [column])

    if "hook_configurations" not in existing_tables:
        op.create_table(
            "hook_configurations",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("category", sa.String(length=50), nullable=True),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("hook_type", sa.String(length=50), nullable=False),
            sa.Column("script_content", sa.Text(), nullable=False),
            sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("team_id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=True),
            sa.Column("scope", sa.String(length=50), nullable=False, server_default="team"),
            sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("created_by", sa.Integer(), nullable=True),
            _ts("created_at"),
            _ts("updated_at"),
            sa.ForeignKeyConstraint(["team_id"], ["teams.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["created_by"], ["users.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("name", "team_id", "version", name="uq_hooks_name_team_version"),
        )
        op.create_index("ix_hook_configurations_team_id", "hook_configurations", ["team_id"])
        op.create_index("ix_hook_configurations_project_id", "hook_configurations", ["project_id"])
        op.create_index("ix_hooks_type", "hook_configurations", ["hook_type"])
        op.create_index("ix_hooks_scope", "hook_configurations", ["scope"])

    if "hook_test_results" not in existing_tables:
        op.create_table(
            "hook_test_results",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("hook_id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=True),
            sa.Column("test_input", sa.JSON(), nullable=True),
            sa.Column("test_output", sa.JSON(), nullable=True),
            sa.Column("exit_code", sa.Integer(), nullable=True),
            sa.Column("passed", sa.Boolean(), nullable=True),
            sa.Column("execution_time_ms", sa.Integer(), nullable=True),
            _ts("created_at"),
            sa.ForeignKeyConstraint(["hook_id"], ["hook_configurations.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_hook_test_results_hook_id", "hook_test_results", ["hook_id"])

    if "verification_rules" not in existing_tables:
        op.create_table(
            "verification_rules",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("team_id", sa.Integer(), nullable=False),
            sa.Column("category", sa.String(length=100), nullable=False),
            sa.Column("rule_name", sa.String(length=255), nullable=False),
            sa.Column("rule_type", sa.String(length=100), nullable=False),
            sa.Column("priority", sa.Integer(), nullable=False, server_default="100"),
            sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("rule_config", sa.JSON(), nullable=False),
            _ts("created_at"),
            _ts("updated_at"),
            sa.ForeignKeyConstraint(["team_id"], ["teams.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_verification_rules_team_id", "verification_rules", ["team_id"])
        op.create_index("ix_verification_rules_category", "verification_rules", ["category"])

    if "project_knowledge_links" not in existing_tables:
        op.create_table(
            "project_knowledge_links",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("knowledge_type", sa.String(length=50), nullable=False),
            sa.Column("knowledge_id", sa.String(length=255), nullable=False),
            sa.Column("scope", sa.String(length=50), nullable=False, server_default="project"),
            sa.Column("created_by", sa.Integer(), nullable=True),
            _ts("created_at"),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint(
                "project_id", "knowledge_type", "knowledge_id",
                name="uq_knowledge_links_project_type_key",
            ),
        )
        op.create_index("ix_project_knowledge_links_project_id", "project_knowledge_links", ["project_id"])
        op.create_index(
            "ix_project_knowledge_links_knowledge_type", "project_knowledge_links", ["knowledge_type"]
        )


def downgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    for table in (
        "project_knowledge_links",
        "verification_rules",
        "hook_test_results",
        "hook_configurations",
        "evidence",
        "environments",
        "projects",
        "users",
        "teams",
    ):
        if table in existing_tables:
            op.drop_table(table)
