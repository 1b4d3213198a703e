"""
Identity models: teams and users.

A user belongs to at most one team. Deleting a team orphans its users
(team_id SET NULL); nothing cascades.
"""

from datetime import datetime, timezone

from governance.models import db


def _utcnow():
    return datetime.now(timezone.utc)


class Team(db.Model):
    __tablename__ = "teams"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    organization = db.Column(db.String(255), nullable=True, index=True)
    settings = db.Column(db.JSON, default=dict)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    users = db.relationship("User", back_populates="team", lazy="dynamic")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "organization": self.organization,
            "settings": self.settings or {},
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self) -> str:
        return f"<Team {self.id}: {self.name}>"


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(255), unique=True, nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=True)
    full_name = db.Column(db.String(255))
    role = db.Column(
        db.String(50), nullable=False, default="developer",
        comment="admin | lead | developer",
    )
    team_id = db.Column(
        db.Integer, db.ForeignKey("teams.id", ondelete="SET NULL"), nullable=True, index=True
    )
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    last_login = db.Column(db.DateTime(timezone=True), nullable=True)

    team = db.relationship("Team", back_populates="users")

    def to_dict(self):
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "full_name": self.full_name,
            "role": self.role,
            "team_id": self.team_id,
            "team_name": self.team.name if self.team else None,
            "organization": self.team.organization if self.team else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "last_login": self.last_login.isoformat() if self.last_login else None,
        }

    def __repr__(self) -> str:
        return f"<User {self.id}: {self.username}>"
