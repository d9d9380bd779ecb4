"""
Comments and activity feed.

Comments attach to any (entity_type, entity_id). Posting one logs a
``commented`` activity against the same entity. Content never changes
after posting; only the resolved and pinned flags toggle.
"""

import logging

from sqlalchemy import select

from rpas_compliance.core.exceptions import ValidationError
from rpas_compliance.models import db
from rpas_compliance.models.base import utcnow
from rpas_compliance.models.collaboration import COMMENT_TYPES, Activity, Comment, log_activity
from rpas_compliance.services.helpers.scoped_queries import get_scoped

logger = logging.getLogger(__name__)


def _require_entity(entity_type: str | None, entity_id: str | None) -> None:
    missing = {k: "missing" for k, v in (("entity_type", entity_type), ("entity_id", entity_id)) if not v}
    if missing:
        raise ValidationError("entity_type and entity_id are required", details=missing)


# ═════════════════════════════════════════════════════════════════════════════
# Comments
# ═════════════════════════════════════════════════════════════════════════════


def create_comment(organization_id: int, data: dict, *, user: str | None = None) -> Comment:
    entity_type = data.get("entity_type")
    entity_id = data.get("entity_id")
    _require_entity(entity_type, entity_id)
    content = (data.get("content") or "").strip()
    if not content:
        raise ValidationError("content is required", details={"content": "missing"})
    comment_type = data.get("type") or "comment"
    if comment_type not in COMMENT_TYPES:
        raise ValidationError(f"Unknown comment type: {comment_type}", details={"type": comment_type})
    parent_id = data.get("parent_id")
    if parent_id:
        get_scoped(Comment, parent_id, organization_id=organization_id)

    comment = Comment(
        organization_id=organization_id,
        entity_type=entity_type,
        entity_id=str(entity_id),
        type=comment_type,
        content=content,
        author_id=data.get("author_id") or user,
        author_name=data.get("author_name") or user or "",
        author_email=data.get("author_email") or "",
        mentions=list(data.get("mentions") or []),
        attachments=list(data.get("attachments") or []),
        parent_id=parent_id,
    )
    try:
        db.session.add(comment)
        db.session.flush()
        log_activity(
            entity_type=entity_type,
            entity_id=entity_id,
            organization_id=organization_id,
            type="commented",
            actor_id=comment.author_id,
            actor_name=comment.author_name,
            description=content[:100] + ("..." if len(content) > 100 else ""),
            details={"comment_id": comment.id, "comment_type": comment_type},
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return comment


def list_comments(organization_id: int, entity_type: str, entity_id: str,
                  *, resolved: bool | None = None) -> list[Comment]:
    """Pinned first, then oldest first."""
    _require_entity(entity_type, entity_id)
    stmt = select(Comment).where(
        Comment.organization_id == organization_id,
        Comment.entity_type == entity_type,
        Comment.entity_id == str(entity_id),
    )
    if resolved is not None:
        stmt = stmt.where(Comment.is_resolved.is_(resolved))
    stmt = stmt.order_by(Comment.is_pinned.desc(), Comment.created_at)
    return list(db.session.scalars(stmt))


def get_comment(organization_id: int, comment_id: str) -> Comment:
    return get_scoped(Comment, comment_id, organization_id=organization_id)


def toggle_resolved(organization_id: int, comment_id: str, *, user: str | None = None) -> Comment:
    comment = get_comment(organization_id, comment_id)
    comment.is_resolved = not comment.is_resolved
    comment.resolved_at = utcnow() if comment.is_resolved else None
    comment.resolved_by = user if comment.is_resolved else None
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return comment


def toggle_pinned(organization_id: int, comment_id: str) -> Comment:
    comment = get_comment(organization_id, comment_id)
    comment.is_pinned = not comment.is_pinned
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return comment


def delete_comment(organization_id: int, comment_id: str) -> None:
    comment = get_comment(organization_id, comment_id)
    try:
        db.session.delete(comment)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


# ═════════════════════════════════════════════════════════════════════════════
# Activity feed
# ═════════════════════════════════════════════════════════════════════════════


def record_activity(organization_id: int, data: dict, *, user: str | None = None) -> Activity:
    _require_entity(data.get("entity_type"), data.get("entity_id"))
    try:
        entry = log_activity(
            entity_type=data["entity_type"],
            entity_id=data["entity_id"],
            organization_id=organization_id,
            type=data.get("type") or "updated",
            actor_id=data.get("actor_id") or user,
            actor_name=data.get("actor_name") or user,
            description=data.get("description") or "",
            details=data.get("metadata") or {},
        )
        db.session.commit()
    except ValueError as exc:
        db.session.rollback()
        raise ValidationError(str(exc), details={"type": data.get("type")}) from exc
    except Exception:
        db.session.rollback()
        raise
    return entry


def list_entity_activity(organization_id: int, entity_type: str, entity_id: str,
                         *, limit: int = 50) -> list[Activity]:
    stmt = (
        select(Activity)
        .where(
            Activity.organization_id == organization_id,
            Activity.entity_type == entity_type,
            Activity.entity_id == str(entity_id),
        )
        .order_by(Activity.created_at.desc())
        .limit(limit)
    )
    return list(db.session.scalars(stmt))


def list_organization_activity(organization_id: int, *, limit: int = 50,
                               entity_type: str | None = None) -> list[Activity]:
    stmt = select(Activity).where(Activity.organization_id == organization_id)
    if entity_type:
        stmt = stmt.where(Activity.entity_type == entity_type)
    stmt = stmt.order_by(Activity.created_at.desc()).limit(limit)
    return list(db.session.scalars(stmt))
