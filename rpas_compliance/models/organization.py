"""
RPAS Compliance Platform
Organization model: the operator account that owns every scoped record.
"""

from rpas_compliance.models import db
from rpas_compliance.models.base import iso, utcnow


class Organization(db.Model):
    __tablename__ = "organizations"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(100), unique=True, nullable=False, index=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    settings = db.Column(db.JSON, default=dict)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "is_active": self.is_active,
            "settings": self.settings or {},
            "created_at": iso(self.created_at),
        }

    def __repr__(self):
        return f"<Organization {self.id}: {self.slug}>"
