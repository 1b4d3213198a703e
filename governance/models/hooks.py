"""
Hook configuration models.

HookConfiguration rows are versioned per (name, team_id): publishing a new
script body inserts a row with the next version number; earlier versions
stay untouched. HookTestResult is an append-only audit of dry runs.

VerificationRule is the team's catalogue of per-category evidence
requirements that hook clients enforce.
"""

from datetime import datetime, timezone

from governance.models import db


def _utcnow():
    return datetime.now(timezone.utc)


class HookConfiguration(db.Model):
    __tablename__ = "hook_configurations"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(50), nullable=True)
    description = db.Column(db.Text, nullable=True)
    hook_type = db.Column(
        db.String(50), nullable=False,
        comment="pre-completion | user-prompt-submit | custom",
    )
    script_content = db.Column(db.Text, nullable=False)
    enabled = db.Column(db.Boolean, nullable=False, default=True)
    team_id = db.Column(
        db.Integer, db.ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True
    )
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="SET NULL"), nullable=True, index=True
    )
    scope = db.Column(db.String(50), nullable=False, default="team", comment="global | team | project")
    version = db.Column(db.Integer, nullable=False, default=1)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    author = db.relationship("User", foreign_keys=[created_by])
    test_results = db.relationship(
        "HookTestResult", backref="hook", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    __table_args__ = (
        db.UniqueConstraint("name", "team_id", "version", name="uq_hooks_name_team_version"),
        db.Index("ix_hooks_type", "hook_type"),
        db.Index("ix_hooks_scope", "scope"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "description": self.description,
            "hook_type": self.hook_type,
            "script_content": self.script_content,
            "enabled": self.enabled,
            "team_id": self.team_id,
            "project_id": self.project_id,
            "scope": self.scope,
            "version": self.version,
            "created_by": self.created_by,
            "created_by_name": self.author.username if self.author else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return f"<HookConfiguration {self.id}: {self.name} v{self.version}>"


class HookTestResult(db.Model):
    __tablename__ = "hook_test_results"

    id = db.Column(db.Integer, primary_key=True)
    hook_id = db.Column(
        db.Integer, db.ForeignKey("hook_configurations.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    test_input = db.Column(db.JSON)
    test_output = db.Column(db.JSON)
    exit_code = db.Column(db.Integer)
    passed = db.Column(db.Boolean)
    execution_time_ms = db.Column(db.Integer)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "hook_id": self.hook_id,
            "user_id": self.user_id,
            "test_input": self.test_input,
            "test_output": self.test_output,
            "exit_code": self.exit_code,
            "passed": self.passed,
            "execution_time_ms": self.execution_time_ms,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class VerificationRule(db.Model):
    __tablename__ = "verification_rules"

    id = db.Column(db.Integer, primary_key=True)
    team_id = db.Column(
        db.Integer, db.ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True
    )
    category = db.Column(db.String(100), nullable=False, index=True)
    rule_name = db.Column(db.String(255), nullable=False)
    rule_type = db.Column(db.String(100), nullable=False)  # tool_requirement, evidence_requirement
    priority = db.Column(db.Integer, nullable=False, default=100)
    enabled = db.Column(db.Boolean, nullable=False, default=True)
    rule_config = db.Column(db.JSON, nullable=False, default=dict)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "team_id": self.team_id,
            "category": self.category,
            "rule_name": self.rule_name,
            "rule_type": self.rule_type,
            "priority": self.priority,
            "enabled": self.enabled,
            "rule_config": self.rule_config or {},
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
