"""Project and environment models.

A project is a repository registered under a team; environments are the
deployment contexts a project's evidence is produced in.
"""

from datetime import datetime, timezone

from governance.models import db


def _utcnow():
    return datetime.now(timezone.utc)


class Project(db.Model):
    """Repository identity owned by a team."""

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    repo_url = db.Column(db.String(500), nullable=True, index=True)
    repo_provider = db.Column(
        db.String(50), nullable=True,
        comment="github | gitlab | bitbucket | other",
    )
    team_id = db.Column(
        db.Integer, db.ForeignKey("teams.id"), nullable=False, index=True
    )
    default_branch = db.Column(db.String(100), nullable=False, default="main")
    settings = db.Column(db.JSON, default=dict)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    environments = db.relationship(
        "Environment", backref="project", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    __table_args__ = (
        db.UniqueConstraint("repo_url", "team_id", name="uq_projects_repo_team"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "repo_url": self.repo_url,
            "repo_provider": self.repo_provider,
            "team_id": self.team_id,
            "default_branch": self.default_branch,
            "settings": self.settings or {},
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return f"<Project {self.id}: {self.name}>"


class Environment(db.Model):
    """Deployment context of a project; ``local`` environments are user-owned."""

    __tablename__ = "environments"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = db.Column(db.String(100), nullable=False)
    type = db.Column(db.String(50), nullable=False, comment="local | shared | production")
    hostname = db.Column(db.String(255), nullable=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    settings = db.Column(db.JSON, default=dict)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    owner = db.relationship("User", foreign_keys=[user_id])

    __table_args__ = (
        db.UniqueConstraint("project_id", "name", "user_id", name="uq_environments_project_name_user"),
        # NULLs never collide in the constraint above; shared/production
        # environments are unique by (project_id, name) alone.
        db.Index(
            "uq_environments_project_name_shared",
            "project_id",
            "name",
            unique=True,
            postgresql_where=db.text("user_id IS NULL"),
            sqlite_where=db.text("user_id IS NULL"),
        ),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "name": self.name,
            "type": self.type,
            "hostname": self.hostname,
            "user_id": self.user_id,
            "username": self.owner.username if self.owner else None,
            "settings": self.settings or {},
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self) -> str:
        return f"<Environment {self.id}: {self.name} ({self.type})>"
