"""
RPAS Compliance Platform
Collaboration domain models.

Models:
    - Activity: immutable, append-only log of what happened to an entity.
    - Comment:  discussion entries attached to any entity.

Both are polymorphic on (entity_type, entity_id). The SFOC activity log is
the set of Activity rows with ``entity_type == "sfoc_application"``.
"""

from rpas_compliance.models import db
from rpas_compliance.models.base import iso, new_id, utcnow

# ── Constants ────────────────────────────────────────────────────────────────

ACTIVITY_TYPES = {
    "created": {"label": "Created", "verb": "created"},
    "updated": {"label": "Updated", "verb": "updated"},
    "status_change": {"label": "Status Change", "verb": "changed status of"},
    "assigned": {"label": "Assigned", "verb": "assigned"},
    "commented": {"label": "Commented", "verb": "commented on"},
    "uploaded": {"label": "Uploaded", "verb": "uploaded a file to"},
    "completed": {"label": "Completed", "verb": "completed"},
    "deleted": {"label": "Deleted", "verb": "deleted"},
}

COMMENT_TYPES = {
    "comment": {"label": "Comment", "color": "blue"},
    "note": {"label": "Note", "color": "yellow"},
    "question": {"label": "Question", "color": "purple"},
    "action": {"label": "Action Item", "color": "green"},
    "issue": {"label": "Issue", "color": "red"},
}


class Activity(db.Model):
    """
    One row per event. ``details`` carries the event payload, e.g.
    ``{"from": "draft", "to": "documents_pending"}`` for status changes.
    """

    __tablename__ = "activities"
    __table_args__ = (
        db.Index("idx_activity_entity", "entity_type", "entity_id"),
        db.Index("idx_activity_ts", "created_at"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    organization_id = db.Column(
        db.Integer,
        db.ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    entity_type = db.Column(db.String(40), nullable=False)
    entity_id = db.Column(db.String(36), nullable=False)
    type = db.Column(db.String(30), nullable=False, comment="see ACTIVITY_TYPES")
    actor_id = db.Column(db.String(150), nullable=True)
    actor_name = db.Column(db.String(150), default="System")
    description = db.Column(db.Text, default="")
    details = db.Column("metadata", db.JSON, default=dict)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "type": self.type,
            "actor_id": self.actor_id,
            "actor_name": self.actor_name,
            "description": self.description,
            "metadata": self.details or {},
            "created_at": iso(self.created_at),
        }

    def __repr__(self):
        return f"<Activity {self.type} on {self.entity_type}/{self.entity_id}>"


class Comment(db.Model):
    """
    Content is immutable once posted; only the resolved and pinned flags
    change afterwards.
    """

    __tablename__ = "comments"
    __table_args__ = (
        db.Index("idx_comment_entity", "entity_type", "entity_id"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    organization_id = db.Column(
        db.Integer,
        db.ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    entity_type = db.Column(db.String(40), nullable=False)
    entity_id = db.Column(db.String(36), nullable=False)
    type = db.Column(db.String(20), nullable=False, default="comment")
    content = db.Column(db.Text, nullable=False)
    author_id = db.Column(db.String(150), nullable=True)
    author_name = db.Column(db.String(150), default="")
    author_email = db.Column(db.String(200), default="")
    mentions = db.Column(db.JSON, default=list)
    attachments = db.Column(db.JSON, default=list)
    parent_id = db.Column(
        db.String(36), db.ForeignKey("comments.id", ondelete="CASCADE"), nullable=True,
    )
    is_resolved = db.Column(db.Boolean, default=False, nullable=False)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    resolved_by = db.Column(db.String(150), nullable=True)
    is_pinned = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "type": self.type,
            "content": self.content,
            "author_id": self.author_id,
            "author_name": self.author_name,
            "author_email": self.author_email,
            "mentions": self.mentions or [],
            "attachments": self.attachments or [],
            "parent_id": self.parent_id,
            "is_resolved": self.is_resolved,
            "resolved_at": iso(self.resolved_at),
            "resolved_by": self.resolved_by,
            "is_pinned": self.is_pinned,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }


# ── Convenience writer ───────────────────────────────────────────────────────


def log_activity(
    *,
    entity_type: str,
    entity_id: str,
    type: str,
    organization_id: int | None = None,
    actor_id: str | None = None,
    actor_name: str | None = None,
    description: str = "",
    details: dict | None = None,
) -> Activity:
    """
    Append a single activity row.  Uses ``flush`` so callers keep
    transaction control.
    """
    if type not in ACTIVITY_TYPES:
        raise ValueError(f"Unknown activity type: {type}")
    entry = Activity(
        organization_id=organization_id,
        entity_type=entity_type,
        entity_id=str(entity_id),
        type=type,
        actor_id=actor_id,
        actor_name=actor_name or "System",
        description=description,
        details=details or {},
    )
    db.session.add(entry)
    db.session.flush()
    return entry
