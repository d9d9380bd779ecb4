"""
OrganizationModel: abstract base class for organization-scoped models.

Every operator-owned table inherits from OrganizationModel instead of
db.Model directly. This adds:
  - organization_id FK column with index
  - query_for_organization(organization_id) classmethod
  - created_by / created_at / updated_by / updated_at audit columns
"""

import uuid
from datetime import datetime, timezone

from rpas_compliance.models import db


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def iso(value):
    """ISO-8601 text for a date/datetime column, None passthrough."""
    return value.isoformat() if value else None


class AuditMixin:
    """Who/when stamps carried by every persisted entity."""

    created_by = db.Column(db.String(150), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)
    updated_by = db.Column(db.String(150), nullable=True)
    updated_at = db.Column(
        db.DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False,
    )

    def audit_dict(self) -> dict:
        return {
            "created_by": self.created_by,
            "created_at": iso(self.created_at),
            "updated_by": self.updated_by,
            "updated_at": iso(self.updated_at),
        }


class OrganizationModel(AuditMixin, db.Model):
    """Abstract base for organization-scoped tables."""
    __abstract__ = True

    organization_id = db.Column(
        db.Integer,
        db.ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    @classmethod
    def query_for_organization(cls, organization_id):
        """Return a query filtered by organization_id."""
        return cls.query.filter_by(organization_id=organization_id)
