"""
RPAS Compliance Platform
SFOC (Special Flight Operations Certificate) domain models.

Models:
    - SFOCApplication:    one Transport Canada SFOC-RPAS application
    - SFOCDocument:       checklist item, one per catalog requirement
    - SFOCCommunication:  correspondence log with Transport Canada

Architecture:
    Organization ──1:N──▶ SFOCApplication ──1:N──▶ SFOCDocument
                                          ──1:N──▶ SFOCCommunication
                                          ──1:N──▶ Activity (entity_type="sfoc_application")

Lifecycle states:
    SFOCApplication: draft → documents_pending ⇄ sora_in_progress → review_ready
                     → submitted → under_review ⇄ additional_info_requested
                     → approved → expired  |  rejected → draft  |  cancelled
    SFOCDocument:    not_started → in_progress → uploaded → under_review
                     → approved | rejected   (not_applicable when not required)
"""

from rpas_compliance.models import db
from rpas_compliance.models.base import OrganizationModel, iso, new_id
from rpas_compliance.services.checklist import RequirementTemplate, percent_complete
from rpas_compliance.services.expiry import days_until_expiry
from rpas_compliance.services.workflow import StatusDef, build_registry

# ── Status registries ────────────────────────────────────────────────────────

SFOC_STATUSES = build_registry("sfoc_application", [
    StatusDef("draft", "Draft", "gray", "Application being prepared",
              ("documents_pending", "sora_in_progress", "cancelled")),
    StatusDef("documents_pending", "Documents Pending", "yellow",
              "Collecting required documentation",
              ("sora_in_progress", "review_ready", "draft", "cancelled")),
    StatusDef("sora_in_progress", "SORA In Progress", "blue",
              "Completing Specific Operational Risk Assessment",
              ("documents_pending", "review_ready", "cancelled")),
    StatusDef("review_ready", "Ready for Review", "purple",
              "Internal review before submission",
              ("submitted", "documents_pending", "sora_in_progress", "cancelled")),
    StatusDef("submitted", "Submitted to TC", "blue",
              "Application submitted to Transport Canada",
              ("under_review", "additional_info_requested", "approved", "rejected", "cancelled")),
    StatusDef("under_review", "Under TC Review", "indigo",
              "Transport Canada reviewing application",
              ("additional_info_requested", "approved", "rejected")),
    StatusDef("additional_info_requested", "Additional Info Requested", "orange",
              "TC has requested additional information",
              ("under_review", "submitted", "cancelled")),
    StatusDef("approved", "Approved", "green", "SFOC approved by Transport Canada",
              ("expired",)),
    StatusDef("rejected", "Rejected", "red", "Application rejected - see TC comments",
              ("draft",)),
    StatusDef("expired", "Expired", "gray", "SFOC validity period has ended"),
    StatusDef("cancelled", "Cancelled", "gray", "Application cancelled by operator"),
])

DOCUMENT_STATUSES = build_registry("sfoc_document", [
    StatusDef("not_started", "Not Started", "gray",
              allowed_next=("in_progress", "uploaded", "not_applicable")),
    StatusDef("in_progress", "In Progress", "yellow",
              allowed_next=("uploaded", "not_started", "not_applicable")),
    StatusDef("uploaded", "Uploaded", "blue",
              allowed_next=("under_review", "approved", "rejected", "in_progress")),
    StatusDef("under_review", "Under Review", "purple",
              allowed_next=("approved", "rejected")),
    StatusDef("approved", "Approved", "green", allowed_next=("under_review",)),
    StatusDef("rejected", "Needs Revision", "red", allowed_next=("in_progress", "uploaded")),
    StatusDef("not_applicable", "N/A", "gray", allowed_next=("not_started",)),
])

# Statuses that count as "in flight with Transport Canada"
PENDING_STATUSES = frozenset({"submitted", "under_review", "additional_info_requested"})

# ── Reference tables ─────────────────────────────────────────────────────────

SFOC_COMPLEXITY = {
    "medium": {
        "label": "Medium Complexity",
        "description": "RPAS >150kg, altitude >400ft, foreign operators, multiple RPAS",
        "processing_days": 60,
        "fee": 500,
        "car_reference": "CAR 903.02(3)",
    },
    "high": {
        "label": "High Complexity",
        "description": "Extended BVLOS, aerodrome environment, hazardous payloads, piloted drones",
        "processing_days": 60,
        "fee": 2000,
        "car_reference": "CAR 903.02(4)",
    },
}

SFOC_APPLICATION_TYPES = {
    "new": {"label": "New Application", "description": "First-time SFOC application"},
    "renewal": {"label": "Renewal", "description": "Renewing an existing SFOC before expiry"},
    "amendment": {"label": "Amendment", "description": "Modifying conditions of an existing SFOC"},
}

SFOC_OPERATION_TRIGGERS = {
    "large_rpas": {"label": "Large RPAS (>150kg)", "car_reference": "CAR 903.01(a)", "complexity": "medium"},
    "altitude_above_400": {"label": "Altitude >400ft AGL", "car_reference": "CAR 903.01(b)", "complexity": "medium"},
    "multiple_rpas_vlos": {"label": "Multiple RPAS VLOS (>5)", "car_reference": "CAR 903.01(c)", "complexity": "medium"},
    "multiple_rpas_bvlos": {"label": "Multiple RPAS BVLOS (>1)", "car_reference": "CAR 903.01(d)", "complexity": "medium"},
    "foreign_operator": {"label": "Foreign Pilot/Operator", "car_reference": "CAR 903.01(e)", "complexity": "medium"},
    "international": {"label": "International Operations", "car_reference": "CAR 903.01(f)", "complexity": "medium"},
    "extended_bvlos": {"label": "Extended BVLOS", "car_reference": "CAR 903.01(g)", "complexity": "high"},
    "bvlos_aerodrome": {"label": "BVLOS in Aerodrome Environment", "car_reference": "CAR 903.01(h)", "complexity": "high"},
    "medium_adverse_weather": {"label": "Medium RPAS Adverse Weather", "car_reference": "CAR 903.01(i)", "complexity": "high"},
    "hazardous_payload": {"label": "Hazardous/Dangerous Payload", "car_reference": "CAR 903.01(j)", "complexity": "high"},
    "piloted_drone": {"label": "Piloted Drone", "car_reference": "CAR 903.01(k)", "complexity": "high"},
    "advertised_event": {"label": "Advertised Event", "car_reference": "CAR 903.01(l)", "complexity": "medium"},
}

TRIGGER_COMPLEXITY = {key: value["complexity"] for key, value in SFOC_OPERATION_TRIGGERS.items()}

DOCUMENT_CATEGORIES = {
    "administrative": {"label": "Administrative", "order": 1},
    "operational": {"label": "Operational", "order": 2},
    "risk": {"label": "Risk Assessment", "order": 3},
    "equipment": {"label": "Equipment", "order": 4},
    "crew": {"label": "Crew", "order": 5},
}

COMMUNICATION_TYPES = {
    "submission": "Initial Submission",
    "info_request": "Information Request",
    "info_response": "Information Response",
    "clarification": "Clarification",
    "approval": "Approval Letter",
    "rejection": "Rejection Notice",
    "amendment": "Amendment Request",
    "renewal": "Renewal Request",
}

COMMUNICATION_DIRECTIONS = ("outbound", "inbound")

# Based on the TC Medium/High Complexity Compliance Checklist
SFOC_DOCUMENT_REQUIREMENTS = (
    RequirementTemplate("application_form", "administrative", "SFOC Application Form (26-0835E)",
                        "Completed Application for Special Flight Operations Certificate RPAS"),
    RequirementTemplate("fee_payment", "administrative", "Fee Payment Confirmation",
                        "Proof of SFOC application fee payment"),
    RequirementTemplate("conops", "operational", "Concept of Operations (ConOps)",
                        "Operational purpose, crew, RPAS system, procedures, and environment"),
    RequirementTemplate("sora_assessment", "risk", "SORA Assessment (AC 903-001)",
                        "Specific Operational Risk Assessment per Advisory Circular 903-001"),
    RequirementTemplate("safety_plan", "risk", "Safety Plan",
                        "Hazard identification and risk mitigation measures"),
    RequirementTemplate("emergency_response_plan", "risk", "Emergency Response Plan",
                        "Emergency contingency and response procedures"),
    RequirementTemplate("registration_certificate", "equipment", "RPA Certificate of Registration",
                        "Certificate showing manufacturer, model, and registration number"),
    RequirementTemplate("manufacturer_declaration", "equipment", "Manufacturer Performance Declaration",
                        "RPAS manufacturer performance declaration accepted by TC "
                        "(required for >150kg or BVLOS)",
                        required="conditional",
                        required_for=("large_rpas", "extended_bvlos", "bvlos_aerodrome")),
    RequirementTemplate("technical_specifications", "equipment", "Technical Specifications",
                        "Performance specifications and limitations"),
    RequirementTemplate("maintenance_instructions", "equipment", "Maintenance Instructions",
                        "Manufacturer maintenance instructions and schedule"),
    RequirementTemplate("parachute_documentation", "equipment", "Parachute System Documentation",
                        "Parachute system safety information and deployment altitude",
                        required="conditional", required_if="parachute_equipped"),
    RequirementTemplate("pilot_certificate", "crew", "Pilot Certificate - Advanced Operations",
                        "Valid drone pilot certificate for advanced operations"),
    RequirementTemplate("sail_qualification", "crew", "SAIL Level Qualification",
                        "Confirmation of qualification for the determined SAIL level"),
    RequirementTemplate("training_records", "crew", "Training Records",
                        "Crew training documentation and recency"),
    RequirementTemplate("medical_fitness", "crew", "Medical Fitness Assessment",
                        "Medical fitness assessment by licensed physician",
                        required="conditional", required_for=("high",)),
    RequirementTemplate("site_survey", "operational", "Site Survey",
                        "Site survey documentation or procedure for evaluating multiple sites"),
    RequirementTemplate("operations_manual", "operational", "RPAS Operations Manual",
                        "Company and RPAS operation manuals"),
    RequirementTemplate("maintenance_manual", "operational", "Maintenance Control Manual",
                        "Maintenance policies, procedures, and tracking"),
    RequirementTemplate("separation_procedures", "operational", "Separation & Collision Avoidance",
                        "Procedures for separation and collision avoidance"),
    RequirementTemplate("insurance_proof", "operational", "Liability Insurance",
                        "Proof of liability insurance (minimum $100K, typically $1M+ for commercial)"),
)


def _status_check(name, registry):
    allowed = ",".join(f"'{key}'" for key in registry)
    return db.CheckConstraint(f"status IN ({allowed})", name=name)


# ═════════════════════════════════════════════════════════════════════════════
# 1. SFOCApplication
# ═════════════════════════════════════════════════════════════════════════════


class SFOCApplication(OrganizationModel):
    __tablename__ = "sfoc_applications"

    id = db.Column(db.String(36), primary_key=True, default=new_id)

    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    application_type = db.Column(db.String(20), nullable=False, default="new",
                                 comment="new | renewal | amendment")
    complexity_level = db.Column(db.String(10), nullable=False, default="medium",
                                 comment="Derived from operation_triggers")
    status = db.Column(db.String(30), nullable=False, default="draft")

    # Operation details
    operation_triggers = db.Column(db.JSON, default=list)
    operation_description = db.Column(db.Text, default="")
    operational_area = db.Column(db.String(300), default="")
    proposed_start_date = db.Column(db.Date, nullable=True)
    proposed_end_date = db.Column(db.Date, nullable=True)
    options = db.Column(db.JSON, default=dict, comment="Creation flags, e.g. parachute_equipped")

    # Linked references (external modules, stored by id only)
    aircraft_id = db.Column(db.String(64), nullable=True)
    aircraft_details = db.Column(db.JSON, nullable=True)
    manufacturer_declaration_id = db.Column(db.String(64), nullable=True)
    sora_assessment_id = db.Column(db.String(64), nullable=True)
    project_id = db.Column(db.String(64), nullable=True)
    sora_summary = db.Column(db.JSON, default=dict,
                             comment="sail_level | final_grc | residual_arc | oso_compliance_percentage")

    # Transport Canada correspondence
    tc_reference_number = db.Column(db.String(100), nullable=True)
    submission_date = db.Column(db.DateTime(timezone=True), nullable=True)
    tc_response_date = db.Column(db.DateTime(timezone=True), nullable=True)
    tc_comments = db.Column(db.Text, nullable=True)

    # Approved SFOC
    sfoc_number = db.Column(db.String(100), nullable=True)
    approved_start_date = db.Column(db.Date, nullable=True)
    approved_end_date = db.Column(db.Date, nullable=True)
    conditions = db.Column(db.JSON, default=list)

    applicant_info = db.Column(db.JSON, default=dict)
    previous_sfoc_id = db.Column(db.String(36), nullable=True)
    previous_sfoc_number = db.Column(db.String(100), nullable=True)

    last_activity_at = db.Column(db.DateTime(timezone=True), nullable=True)
    row_version = db.Column(db.Integer, nullable=False)

    __table_args__ = (
        _status_check("ck_sfoc_application_status", SFOC_STATUSES),
        db.Index("ix_sfoc_applications_org_status", "organization_id", "status"),
    )
    __mapper_args__ = {"version_id_col": row_version}

    # ── Relationships ────────────────────────────────────────────────────
    documents = db.relationship(
        "SFOCDocument", backref="application", lazy="select",
        cascade="all, delete-orphan", order_by="SFOCDocument.sort_order",
    )
    communications = db.relationship(
        "SFOCCommunication", backref="application", lazy="select",
        cascade="all, delete-orphan", order_by="SFOCCommunication.date.desc()",
    )

    def completion_percentage(self) -> int:
        return percent_complete(self.documents)

    def to_dict(self, include_documents=False):
        result = {
            "id": self.id,
            "organization_id": self.organization_id,
            "name": self.name,
            "description": self.description,
            "application_type": self.application_type,
            "complexity_level": self.complexity_level,
            "status": self.status,
            "status_label": SFOC_STATUSES.get(self.status).label if self.status in SFOC_STATUSES else None,
            "operation_triggers": self.operation_triggers or [],
            "operation_description": self.operation_description,
            "operational_area": self.operational_area,
            "proposed_start_date": iso(self.proposed_start_date),
            "proposed_end_date": iso(self.proposed_end_date),
            "options": self.options or {},
            "aircraft_id": self.aircraft_id,
            "aircraft_details": self.aircraft_details,
            "manufacturer_declaration_id": self.manufacturer_declaration_id,
            "sora_assessment_id": self.sora_assessment_id,
            "project_id": self.project_id,
            "sora_summary": self.sora_summary or {},
            "tc_reference_number": self.tc_reference_number,
            "submission_date": iso(self.submission_date),
            "tc_response_date": iso(self.tc_response_date),
            "tc_comments": self.tc_comments,
            "sfoc_number": self.sfoc_number,
            "approved_start_date": iso(self.approved_start_date),
            "approved_end_date": iso(self.approved_end_date),
            "days_until_expiry": days_until_expiry(self.approved_end_date),
            "conditions": self.conditions or [],
            "applicant_info": self.applicant_info or {},
            "previous_sfoc_id": self.previous_sfoc_id,
            "previous_sfoc_number": self.previous_sfoc_number,
            "last_activity_at": iso(self.last_activity_at),
            "row_version": self.row_version,
            "completion_percentage": self.completion_percentage(),
            **self.audit_dict(),
        }
        if include_documents:
            result["documents"] = [d.to_dict() for d in self.documents]
        return result

    def __repr__(self):
        return f"<SFOCApplication {self.id}: {self.name} [{self.status}]>"


# ═════════════════════════════════════════════════════════════════════════════
# 2. SFOCDocument (checklist item)
# ═════════════════════════════════════════════════════════════════════════════


class SFOCDocument(OrganizationModel):
    """Created in bulk with its application; deleted only with it."""

    __tablename__ = "sfoc_documents"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    application_id = db.Column(
        db.String(36), db.ForeignKey("sfoc_applications.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    requirement_id = db.Column(db.String(60), nullable=False)
    category = db.Column(db.String(30), nullable=False)
    label = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    is_required = db.Column(db.Boolean, nullable=False, default=True)
    status = db.Column(db.String(20), nullable=False, default="not_started")
    sort_order = db.Column(db.Integer, default=0)

    # File metadata (storage itself is external)
    file_url = db.Column(db.String(1000), nullable=True)
    file_name = db.Column(db.String(300), nullable=True)
    file_size = db.Column(db.Integer, nullable=True)
    mime_type = db.Column(db.String(100), nullable=True)
    uploaded_at = db.Column(db.DateTime(timezone=True), nullable=True)
    uploaded_by = db.Column(db.String(150), nullable=True)
    review_notes = db.Column(db.Text, default="")

    __table_args__ = (
        _status_check("ck_sfoc_document_status", DOCUMENT_STATUSES),
        db.UniqueConstraint("application_id", "requirement_id", name="uq_sfoc_document_requirement"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "application_id": self.application_id,
            "requirement_id": self.requirement_id,
            "category": self.category,
            "label": self.label,
            "description": self.description,
            "is_required": self.is_required,
            "status": self.status,
            "status_label": DOCUMENT_STATUSES.get(self.status).label if self.status in DOCUMENT_STATUSES else None,
            "file_url": self.file_url,
            "file_name": self.file_name,
            "file_size": self.file_size,
            "mime_type": self.mime_type,
            "uploaded_at": iso(self.uploaded_at),
            "uploaded_by": self.uploaded_by,
            "review_notes": self.review_notes,
            **self.audit_dict(),
        }


# ═════════════════════════════════════════════════════════════════════════════
# 3. SFOCCommunication
# ═════════════════════════════════════════════════════════════════════════════


class SFOCCommunication(OrganizationModel):
    __tablename__ = "sfoc_communications"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    application_id = db.Column(
        db.String(36), db.ForeignKey("sfoc_applications.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    type = db.Column(db.String(30), nullable=False, comment="see COMMUNICATION_TYPES")
    subject = db.Column(db.String(300), default="")
    content = db.Column(db.Text, default="")
    direction = db.Column(db.String(10), nullable=False, default="outbound")
    attachments = db.Column(db.JSON, default=list)
    tc_reference_number = db.Column(db.String(100), nullable=True)
    sent_by = db.Column(db.String(150), nullable=True)
    received_from = db.Column(db.String(150), nullable=True)
    date = db.Column(db.DateTime(timezone=True), nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "application_id": self.application_id,
            "type": self.type,
            "type_label": COMMUNICATION_TYPES.get(self.type),
            "subject": self.subject,
            "content": self.content,
            "direction": self.direction,
            "attachments": self.attachments or [],
            "tc_reference_number": self.tc_reference_number,
            "sent_by": self.sent_by,
            "received_from": self.received_from,
            "date": iso(self.date),
            **self.audit_dict(),
        }
