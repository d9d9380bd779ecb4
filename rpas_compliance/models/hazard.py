"""
RPAS Compliance Platform
Formal Hazard Assessment (FHA) domain models.

Models:
    - MasterHazard:         platform-level FHA template, content-versioned
    - MasterHazardVersion:  immutable snapshot written on every content change
    - FormalHazard:         organization-owned FHA, optionally adopted from a master

Derived fields:
    risk_score          = likelihood * severity
    residual_risk_score = residual_likelihood * residual_severity
Both are recomputed by mapper events on every insert and update, so a
value supplied by a client is always overwritten.

Lifecycle states:
    MasterHazard:  draft → published → archived → published
    FormalHazard:  active | under_review | archived (free-form)
"""

from sqlalchemy import event

from rpas_compliance.models import db
from rpas_compliance.models.base import AuditMixin, OrganizationModel, iso, new_id, utcnow
from rpas_compliance.services.risk import optional_risk_score, risk_level, risk_score
from rpas_compliance.services.versioning import CONTENT_FIELDS
from rpas_compliance.services.workflow import StatusDef, build_registry

# ── Constants ────────────────────────────────────────────────────────────────

HAZARD_CATEGORIES = {
    "flight_ops": {"name": "Flight Operations", "color": "blue"},
    "equipment": {"name": "Equipment & Maintenance", "color": "purple"},
    "environmental": {"name": "Environmental", "color": "orange"},
    "site_hazards": {"name": "Site Hazards", "color": "red"},
    "emergency": {"name": "Emergency Response", "color": "amber"},
    "personnel": {"name": "Personnel Safety", "color": "green"},
    "specialized": {"name": "Specialized Operations", "color": "indigo"},
}

FORMAL_HAZARD_STATUSES = {"active", "under_review", "archived"}

FORMAL_HAZARD_SOURCES = {"default", "uploaded", "created", "field_triggered"}

MASTER_HAZARD_STATUSES = build_registry("master_hazard", [
    StatusDef("draft", "Draft", "gray", "Being authored; invisible to organizations",
              ("published", "archived")),
    StatusDef("published", "Published", "green", "Available for adoption",
              ("archived",)),
    StatusDef("archived", "Archived", "gray", "Withdrawn from adoption",
              ("published",)),
])


class _RiskFieldsMixin:
    """Columns and helpers shared by master and organization hazards."""

    fha_number = db.Column(db.String(30), nullable=False)
    title = db.Column(db.String(300), nullable=False)
    category = db.Column(db.String(30), nullable=False, default="flight_ops")
    description = db.Column(db.Text, default="")
    consequences = db.Column(db.Text, default="")

    likelihood = db.Column(db.Integer, nullable=False, default=3)
    severity = db.Column(db.Integer, nullable=False, default=3)
    risk_score = db.Column(db.Integer, nullable=False, comment="Derived: likelihood * severity")

    control_measures = db.Column(db.JSON, default=list, comment="Ordered by hierarchy of controls")

    residual_likelihood = db.Column(db.Integer, nullable=True)
    residual_severity = db.Column(db.Integer, nullable=True)
    residual_risk_score = db.Column(db.Integer, nullable=True,
                                    comment="Derived: residual_likelihood * residual_severity")

    def recompute_scores(self) -> None:
        self.risk_score = risk_score(self.likelihood, self.severity)
        self.residual_risk_score = optional_risk_score(
            self.residual_likelihood, self.residual_severity,
        )

    def _risk_dict(self) -> dict:
        return {
            "fha_number": self.fha_number,
            "title": self.title,
            "category": self.category,
            "description": self.description,
            "consequences": self.consequences,
            "likelihood": self.likelihood,
            "severity": self.severity,
            "risk_score": self.risk_score,
            "risk_level": risk_level(self.risk_score) if self.risk_score else None,
            "control_measures": self.control_measures or [],
            "residual_likelihood": self.residual_likelihood,
            "residual_severity": self.residual_severity,
            "residual_risk_score": self.residual_risk_score,
            "residual_risk_level": (
                risk_level(self.residual_risk_score) if self.residual_risk_score else None
            ),
        }


# ═════════════════════════════════════════════════════════════════════════════
# 1. MasterHazard
# ═════════════════════════════════════════════════════════════════════════════


class MasterHazard(_RiskFieldsMixin, AuditMixin, db.Model):
    """
    Platform-managed FHA template. ``version`` moves only when a content
    field changes; ``row_version`` is the optimistic-concurrency token.
    """

    __tablename__ = "master_formal_hazards"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    version = db.Column(db.Integer, nullable=False, default=1)
    status = db.Column(db.String(20), nullable=False, default="draft")
    hazard_metadata = db.Column(
        "metadata", db.JSON, default=dict,
        comment="keywords | regulatory_refs | applicable_operations",
    )
    published_at = db.Column(db.DateTime(timezone=True), nullable=True)
    published_by = db.Column(db.String(150), nullable=True)
    row_version = db.Column(db.Integer, nullable=False)

    __table_args__ = (
        db.UniqueConstraint("fha_number", name="uq_master_fha_number"),
    )
    __mapper_args__ = {"version_id_col": row_version}

    versions = db.relationship(
        "MasterHazardVersion", backref="hazard", lazy="dynamic",
        cascade="all, delete-orphan", order_by="MasterHazardVersion.version.desc()",
    )

    def content_values(self) -> dict:
        """Current values of the versioned content fields."""
        values = {f: getattr(self, f) for f in CONTENT_FIELDS if f != "metadata"}
        values["metadata"] = self.hazard_metadata or {}
        return values

    def snapshot_content(self) -> dict:
        return {
            "fha_number": self.fha_number,
            "title": self.title,
            "category": self.category,
            "description": self.description,
            "consequences": self.consequences,
            "likelihood": self.likelihood,
            "severity": self.severity,
            "risk_score": self.risk_score,
            "control_measures": list(self.control_measures or []),
            "residual_likelihood": self.residual_likelihood,
            "residual_severity": self.residual_severity,
            "residual_risk_score": self.residual_risk_score,
            "metadata": dict(self.hazard_metadata or {}),
        }

    def to_dict(self):
        return {
            "id": self.id,
            **self._risk_dict(),
            "version": self.version,
            "status": self.status,
            "metadata": self.hazard_metadata or {},
            "published_at": iso(self.published_at),
            "published_by": self.published_by,
            "row_version": self.row_version,
            **self.audit_dict(),
        }

    def __repr__(self):
        return f"<MasterHazard {self.fha_number} v{self.version} [{self.status}]>"


class MasterHazardVersion(db.Model):
    """Immutable; never updated after insert."""

    __tablename__ = "master_fha_versions"
    __table_args__ = (
        db.UniqueConstraint("hazard_id", "version", name="uq_master_fha_version"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    hazard_id = db.Column(
        db.String(36), db.ForeignKey("master_formal_hazards.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    version = db.Column(db.Integer, nullable=False)
    content = db.Column(db.JSON, nullable=False)
    change_notes = db.Column(db.Text, default="")
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    created_by = db.Column(db.String(150), nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "hazard_id": self.hazard_id,
            "version": self.version,
            "content": self.content,
            "change_notes": self.change_notes,
            "created_at": iso(self.created_at),
            "created_by": self.created_by,
        }


# ═════════════════════════════════════════════════════════════════════════════
# 2. FormalHazard (organization-owned)
# ═════════════════════════════════════════════════════════════════════════════


class FormalHazard(_RiskFieldsMixin, OrganizationModel):
    __tablename__ = "formal_hazards"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    status = db.Column(db.String(20), nullable=False, default="active")
    source = db.Column(db.String(20), nullable=False, default="created")

    # Master tracking (source == "default")
    source_id = db.Column(db.String(36), nullable=True, index=True)
    source_version = db.Column(db.Integer, nullable=True)
    is_customized = db.Column(db.Boolean, default=False, nullable=False)

    # Review tracking
    review_date = db.Column(db.DateTime(timezone=True), nullable=True)
    last_reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_reviewed_by = db.Column(db.String(150), nullable=True)

    keywords = db.Column(db.JSON, default=list)
    regulatory_refs = db.Column(db.JSON, default=list)
    attachments = db.Column(db.JSON, default=list)
    linked_field_forms = db.Column(db.JSON, default=list)

    __table_args__ = (
        db.UniqueConstraint("organization_id", "fha_number", name="uq_formal_hazard_number"),
        db.Index("ix_formal_hazards_org_category", "organization_id", "category"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            **self._risk_dict(),
            "status": self.status,
            "source": self.source,
            "source_id": self.source_id,
            "source_version": self.source_version,
            "is_customized": self.is_customized,
            "review_date": iso(self.review_date),
            "last_reviewed_at": iso(self.last_reviewed_at),
            "last_reviewed_by": self.last_reviewed_by,
            "keywords": self.keywords or [],
            "regulatory_refs": self.regulatory_refs or [],
            "attachments": self.attachments or [],
            "linked_field_forms": self.linked_field_forms or [],
            **self.audit_dict(),
        }

    def __repr__(self):
        return f"<FormalHazard {self.fha_number}: {self.title}>"


# ── Derived-score enforcement ────────────────────────────────────────────────


def _recompute_scores(mapper, connection, target) -> None:  # noqa: ARG001
    target.recompute_scores()


for _model in (MasterHazard, FormalHazard):
    event.listen(_model, "before_insert", _recompute_scores)
    event.listen(_model, "before_update", _recompute_scores)
