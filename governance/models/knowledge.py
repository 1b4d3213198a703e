"""Project ↔ graph-store knowledge links.

The graph store owns document content; this table owns linkage and scope.
knowledge_id is an opaque document key in the graph store and is never
checked at write time, so a link may outlive its document.
"""

from datetime import datetime, timezone

from governance.models import db


def _utcnow():
    return datetime.now(timezone.utc)


class KnowledgeLink(db.Model):
    __tablename__ = "project_knowledge_links"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    knowledge_type = db.Column(
        db.String(50), nullable=False, index=True,
        comment="standard | requirement | pattern | architecture",
    )
    knowledge_id = db.Column(db.String(255), nullable=False)
    scope = db.Column(db.String(50), nullable=False, default="project", comment="global | project | environment")
    created_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        db.UniqueConstraint(
            "project_id", "knowledge_type", "knowledge_id",
            name="uq_knowledge_links_project_type_key",
        ),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "knowledge_type": self.knowledge_type,
            "knowledge_id": self.knowledge_id,
            "scope": self.scope,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self) -> str:
        return f"<KnowledgeLink {self.id}: {self.knowledge_type}/{self.knowledge_id}>"
