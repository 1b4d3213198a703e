"""
Evidence ledger model.

One row per verification event reported by a hook client. Rows are never
updated or deleted by the application: corrections are new rows. The only
permitted change is the database-level SET NULL of project/environment
tags when a project is removed, which bypasses the ORM guard below.

Authenticated submissions carry user_id/team_id foreign keys. The legacy
unauthenticated path writes into the same table with those columns NULL and
the caller's free-text identifiers kept in reporter_user_ref /
reporter_project_ref.
"""

from datetime import datetime, timezone

from sqlalchemy import event

from governance.core.exceptions import ValidationError
from governance.models import db


def _utcnow():
    return datetime.now(timezone.utc)


class Evidence(db.Model):
    __tablename__ = "evidence"

    id = db.Column(db.Integer, primary_key=True)
    task_id = db.Column(db.String(255), nullable=True, index=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    team_id = db.Column(
        db.Integer, db.ForeignKey("teams.id", ondelete="SET NULL"), nullable=True, index=True
    )
    task_category = db.Column(db.String(50), nullable=False, index=True)
    evidence_type = db.Column(db.String(100), nullable=False)
    evidence_data = db.Column(db.JSON, nullable=False)

    # Conversation context
    prompt_text = db.Column(db.Text, nullable=True)
    completion_text = db.Column(db.Text, nullable=True)
    conversation_id = db.Column(db.String(255), nullable=True, index=True)

    # Graph-store document keys (opaque, not verified)
    knowledge_pattern_id = db.Column(db.String(255), nullable=True)
    coding_standard_id = db.Column(db.String(255), nullable=True)
    requirement_id = db.Column(db.String(255), nullable=True)

    # Project context
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="SET NULL"), nullable=True, index=True
    )
    environment_id = db.Column(
        db.Integer, db.ForeignKey("environments.id", ondelete="SET NULL"), nullable=True, index=True
    )
    repo_branch = db.Column(db.String(255), nullable=True, index=True)
    commit_sha = db.Column(db.String(40), nullable=True, index=True)
    git_remote = db.Column(db.String(500), nullable=True)

    visibility = db.Column(
        db.String(20), nullable=False, default="team",
        comment="private | team | organization | public",
    )

    # Legacy unauthenticated path
    reporter_user_ref = db.Column(db.String(255), nullable=True)
    reporter_project_ref = db.Column(db.String(255), nullable=True, index=True)
    meta = db.Column("metadata", db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow, index=True)

    user = db.relationship("User", foreign_keys=[user_id])
    team = db.relationship("Team", foreign_keys=[team_id])
    project = db.relationship("Project", foreign_keys=[project_id])
    environment = db.relationship("Environment", foreign_keys=[environment_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "task_id": self.task_id,
            "user_id": self.user_id,
            "team_id": self.team_id,
            "task_category": self.task_category,
            "evidence_type": self.evidence_type,
            "evidence_data": self.evidence_data,
            "prompt_text": self.prompt_text,
            "completion_text": self.completion_text,
            "conversation_id": self.conversation_id,
            "knowledge_pattern_id": self.knowledge_pattern_id,
            "coding_standard_id": self.coding_standard_id,
            "requirement_id": self.requirement_id,
            "project_id": self.project_id,
            "environment_id": self.environment_id,
            "repo_branch": self.repo_branch,
            "commit_sha": self.commit_sha,
            "git_remote": self.git_remote,
            "visibility": self.visibility,
            "reporter_user_ref": self.reporter_user_ref,
            "reporter_project_ref": self.reporter_project_ref,
            "metadata": self.meta,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self) -> str:
        return f"<Evidence {self.id}: {self.task_category}/{self.evidence_type}>"


@event.listens_for(Evidence, "before_update")
def _reject_evidence_update(mapper, connection, target):
    raise ValidationError("Evidence records are immutable; submit a new record instead")
