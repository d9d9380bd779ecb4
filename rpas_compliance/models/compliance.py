"""
RPAS Compliance Platform
Compliance matrix domain models.

Models:
    - ComplianceTemplate:     platform-managed requirement matrix (SFOC, COR, SORA, ...)
    - ComplianceApplication:  an organization's answers to one template
    - RegistryDocument:       organization document catalog referenced by responses

Architecture:
    ComplianceTemplate ──1:N──▶ ComplianceApplication ◀──N:1── Organization
    Organization ──1:N──▶ RegistryDocument

``responses`` is a JSON object keyed by requirement id; ``status_history``
is an append-only JSON list. Both are rewritten under the application's
optimistic ``row_version``.
"""

from rpas_compliance.models import db
from rpas_compliance.models.base import AuditMixin, OrganizationModel, iso, new_id
from rpas_compliance.services.workflow import StatusDef, build_registry

# ── Constants ────────────────────────────────────────────────────────────────

TEMPLATE_CATEGORIES = {
    "sfoc": {
        "name": "SFOC Applications",
        "description": "Special Flight Operations Certificate compliance matrices",
        "regulatory_body": "Transport Canada",
    },
    "cor": {
        "name": "COR Certification",
        "description": "Certificate of Recognition safety compliance",
        "regulatory_body": "Alberta OH&S",
    },
    "sora": {
        "name": "SORA Assessment",
        "description": "Specific Operations Risk Assessment documentation",
        "regulatory_body": "JARUS/Transport Canada",
    },
    "general": {
        "name": "General Compliance",
        "description": "Other regulatory compliance checklists",
        "regulatory_body": "Various",
    },
}

RESPONSE_TYPES = {
    "text": "Text Response",
    "document-reference": "Document Reference",
    "checkbox": "Checkbox",
    "select": "Single Select",
    "multi-select": "Multi Select",
}

RESPONSE_STATUSES = ("empty", "partial", "complete", "needs-attention")

TEMPLATE_STATUSES = {"draft", "active", "deprecated"}

REGISTRY_SOURCE_TYPES = {"policy", "project", "uploaded", "external"}

REGISTRY_DOCUMENT_STATUSES = {"current", "draft", "superseded", "archived"}

COMPLIANCE_STATUSES = build_registry("compliance_application", [
    StatusDef("draft", "Draft", "gray", "Initial creation, not yet started",
              ("in-progress",)),
    StatusDef("in-progress", "In Progress", "blue", "Actively being filled out",
              ("ready-for-review", "draft")),
    StatusDef("ready-for-review", "Ready for Review", "amber",
              "Completed, awaiting internal review",
              ("in-progress", "submitted")),
    StatusDef("submitted", "Submitted", "purple", "Submitted to regulatory body",
              ("approved", "rejected")),
    StatusDef("approved", "Approved", "green", "Application approved"),
    StatusDef("rejected", "Rejected", "red", "Application rejected, needs revision",
              ("in-progress",)),
])

DEFAULT_EXPORT_FORMAT = {
    "type": "matrix",
    "columns": ["requirement", "response", "document_ref"],
    "include_guidance": False,
}


def empty_response() -> dict:
    return {
        "response": "",
        "document_refs": [],
        "status": "empty",
        "last_updated": None,
        "updated_by": None,
        "ai_assisted": False,
        "ai_draft_accepted": False,
        "review_notes": "",
        "flagged": False,
        "flag_reason": None,
    }


# ═════════════════════════════════════════════════════════════════════════════
# 1. ComplianceTemplate
# ═════════════════════════════════════════════════════════════════════════════


class ComplianceTemplate(AuditMixin, db.Model):
    """Platform catalog; not organization-scoped."""

    __tablename__ = "compliance_templates"

    id = db.Column(db.String(64), primary_key=True, default=new_id)
    name = db.Column(db.String(300), nullable=False)
    short_name = db.Column(db.String(100), default="")
    description = db.Column(db.Text, default="")
    category = db.Column(db.String(20), nullable=False, default="general")
    regulatory_body = db.Column(db.String(200), default="")
    regulation = db.Column(db.String(300), default="")
    version = db.Column(db.String(20), default="1.0")
    effective_date = db.Column(db.Date, nullable=True)
    categories = db.Column(db.JSON, default=list, comment="[{id, name, order}]")
    requirements = db.Column(
        db.JSON, default=list,
        comment="[{id, category, text, short_text, response_type, guidance, validation_rules}]",
    )
    export_format = db.Column(db.JSON, default=lambda: dict(DEFAULT_EXPORT_FORMAT))
    related_templates = db.Column(db.JSON, default=list)
    status = db.Column(db.String(20), nullable=False, default="draft")
    is_public = db.Column(db.Boolean, nullable=False, default=False)

    applications = db.relationship("ComplianceApplication", backref="template", lazy="dynamic")

    def requirement_map(self) -> dict:
        return {req["id"]: req for req in (self.requirements or [])}

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "short_name": self.short_name,
            "description": self.description,
            "category": self.category,
            "regulatory_body": self.regulatory_body,
            "regulation": self.regulation,
            "version": self.version,
            "effective_date": iso(self.effective_date),
            "categories": self.categories or [],
            "requirements": self.requirements or [],
            "requirement_count": len(self.requirements or []),
            "export_format": self.export_format or {},
            "related_templates": self.related_templates or [],
            "status": self.status,
            "is_public": self.is_public,
            **self.audit_dict(),
        }

    def __repr__(self):
        return f"<ComplianceTemplate {self.id}: {self.short_name or self.name}>"


# ═════════════════════════════════════════════════════════════════════════════
# 2. ComplianceApplication
# ═════════════════════════════════════════════════════════════════════════════


class ComplianceApplication(OrganizationModel):
    __tablename__ = "compliance_applications"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    template_id = db.Column(
        db.String(64), db.ForeignKey("compliance_templates.id", ondelete="RESTRICT"),
        nullable=False, index=True,
    )
    template_name = db.Column(db.String(300), default="")
    template_version = db.Column(db.String(20), default="")

    name = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")
    project_id = db.Column(db.String(64), nullable=True, index=True)
    project_name = db.Column(db.String(300), default="")

    status = db.Column(db.String(30), nullable=False, default="draft")
    status_history = db.Column(db.JSON, default=list)
    responses = db.Column(db.JSON, default=dict)
    progress = db.Column(db.JSON, default=dict)
    uploaded_files = db.Column(db.JSON, default=list)
    gap_analysis = db.Column(db.JSON, nullable=True)
    submission = db.Column(db.JSON, default=dict)

    row_version = db.Column(db.Integer, nullable=False)

    __table_args__ = (
        db.Index("ix_compliance_applications_org_status", "organization_id", "status"),
    )
    __mapper_args__ = {"version_id_col": row_version}

    def to_dict(self, include_responses=True):
        result = {
            "id": self.id,
            "organization_id": self.organization_id,
            "template_id": self.template_id,
            "template_name": self.template_name,
            "template_version": self.template_version,
            "name": self.name,
            "description": self.description,
            "project_id": self.project_id,
            "project_name": self.project_name,
            "status": self.status,
            "status_history": self.status_history or [],
            "progress": self.progress or {},
            "uploaded_files": self.uploaded_files or [],
            "gap_analysis": self.gap_analysis,
            "submission": self.submission or {},
            "row_version": self.row_version,
            **self.audit_dict(),
        }
        if include_responses:
            result["responses"] = self.responses or {}
        return result

    def __repr__(self):
        return f"<ComplianceApplication {self.id}: {self.name} [{self.status}]>"


# ═════════════════════════════════════════════════════════════════════════════
# 3. RegistryDocument
# ═════════════════════════════════════════════════════════════════════════════


class RegistryDocument(OrganizationModel):
    __tablename__ = "document_registry"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    source_type = db.Column(db.String(20), nullable=False, comment="policy | project | uploaded | external")
    source_id = db.Column(db.String(64), nullable=True)
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")
    category = db.Column(db.String(50), default="general")
    version = db.Column(db.String(20), default="1.0")
    effective_date = db.Column(db.Date, nullable=True)
    page_count = db.Column(db.Integer, nullable=True)
    relevant_regulations = db.Column(db.JSON, default=list)
    relevant_requirements = db.Column(db.JSON, default=list)
    keywords = db.Column(db.JSON, default=list)
    status = db.Column(db.String(20), nullable=False, default="current")
    last_reviewed = db.Column(db.Date, nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "source_type": self.source_type,
            "source_id": self.source_id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "version": self.version,
            "effective_date": iso(self.effective_date),
            "page_count": self.page_count,
            "relevant_regulations": self.relevant_regulations or [],
            "relevant_requirements": self.relevant_requirements or [],
            "keywords": self.keywords or [],
            "status": self.status,
            "last_reviewed": iso(self.last_reviewed),
            **self.audit_dict(),
        }
