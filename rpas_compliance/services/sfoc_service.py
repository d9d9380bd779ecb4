"""
SFOC Service Layer.

Business logic for:
    - Application lifecycle:  create (checklist materialised atomically),
                              update, status transitions, delete
    - Linking:                SORA summary, manufacturer declaration
    - Document checklist:     list, status updates, file upload, progress
    - Communications log:     Transport Canada correspondence
    - Activity log:           per-application audit trail
    - Statistics:             dashboard counts by status / complexity / expiry

Every read-modify-write goes through ``run_optimistic`` so two reviewers
moving the same application cannot silently overwrite each other.
"""

import logging

from flask import current_app, has_app_context
from sqlalchemy import delete, select

from rpas_compliance.core.exceptions import ValidationError
from rpas_compliance.middleware.logging_config import entity_extra
from rpas_compliance.models import db
from rpas_compliance.models.base import utcnow
from rpas_compliance.models.collaboration import Activity, log_activity
from rpas_compliance.models.sfoc import (
    COMMUNICATION_DIRECTIONS,
    COMMUNICATION_TYPES,
    DOCUMENT_CATEGORIES,
    DOCUMENT_STATUSES,
    PENDING_STATUSES,
    SFOC_APPLICATION_TYPES,
    SFOC_COMPLEXITY,
    SFOC_DOCUMENT_REQUIREMENTS,
    SFOC_OPERATION_TRIGGERS,
    SFOC_STATUSES,
    TRIGGER_COMPLEXITY,
    SFOCApplication,
    SFOCCommunication,
    SFOCDocument,
)
from rpas_compliance.services.checklist import checklist_summary, determine_complexity, resolve_requirements
from rpas_compliance.services.expiry import is_expired, is_expiring_soon
from rpas_compliance.services.helpers.scoped_queries import get_scoped
from rpas_compliance.services.transactions import run_optimistic
from rpas_compliance.services.workflow import available_transitions, enforce_transition
from rpas_compliance.utils.helpers import parse_date, parse_datetime

logger = logging.getLogger(__name__)

ENTITY_TYPE = "sfoc_application"

_TEXT_FIELDS = (
    "name", "description", "operation_description", "operational_area",
    "aircraft_id", "manufacturer_declaration_id", "sora_assessment_id", "project_id",
    "tc_reference_number", "tc_comments", "sfoc_number",
    "previous_sfoc_id", "previous_sfoc_number",
)
_DATE_FIELDS = ("proposed_start_date", "proposed_end_date", "approved_start_date", "approved_end_date")
_JSON_FIELDS = ("aircraft_details", "conditions", "applicant_info", "options")

_APPLICANT_KEYS = ("name", "organization", "email", "phone", "address")

# Extra fields a status change may carry (TC reference, approval details, ...)
_STATUS_SIDE_FIELDS = (
    "tc_reference_number", "tc_comments", "sfoc_number",
    "approved_start_date", "approved_end_date", "conditions",
)

_DOCUMENT_EDITABLE = ("review_notes", "description")


def _warning_days() -> int:
    if has_app_context():
        return int(current_app.config.get("SFOC_EXPIRY_WARNING_DAYS", 60))
    return 60


def _apply_fields(application: SFOCApplication, data: dict, fields) -> None:
    for field in fields:
        if field not in data:
            continue
        value = data[field]
        if field in _DATE_FIELDS:
            value = parse_date(value)
        setattr(application, field, value)


# ═════════════════════════════════════════════════════════════════════════════
# Applications
# ═════════════════════════════════════════════════════════════════════════════


def create_application(organization_id: int, data: dict, *, user: str | None = None) -> SFOCApplication:
    """
    Create an application and its full document checklist in one commit.

    ``data["options"]`` carries boolean creation flags consulted by
    conditional requirements (e.g. ``parachute_equipped``).
    """
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("name is required", details={"name": "missing"})

    application_type = data.get("application_type") or "new"
    if application_type not in SFOC_APPLICATION_TYPES:
        raise ValidationError(f"Unknown application_type: {application_type}",
                              details={"application_type": application_type})

    triggers = list(dict.fromkeys(data.get("operation_triggers") or []))
    complexity = determine_complexity(triggers, TRIGGER_COMPLEXITY)
    options = dict(data.get("options") or {})

    applicant = data.get("applicant_info") or {}
    application = SFOCApplication(
        organization_id=organization_id,
        name=name,
        description=data.get("description") or "",
        application_type=application_type,
        complexity_level=complexity,
        status="draft",
        operation_triggers=triggers,
        operation_description=data.get("operation_description") or "",
        operational_area=data.get("operational_area") or "",
        proposed_start_date=parse_date(data.get("proposed_start_date")),
        proposed_end_date=parse_date(data.get("proposed_end_date")),
        options=options,
        aircraft_id=data.get("aircraft_id"),
        aircraft_details=data.get("aircraft_details"),
        manufacturer_declaration_id=data.get("manufacturer_declaration_id"),
        sora_assessment_id=data.get("sora_assessment_id"),
        project_id=data.get("project_id"),
        sora_summary={
            "sail_level": None,
            "final_grc": None,
            "residual_arc": None,
            "oso_compliance_percentage": None,
        },
        conditions=[],
        applicant_info={key: applicant.get(key) or "" for key in _APPLICANT_KEYS},
        previous_sfoc_id=data.get("previous_sfoc_id"),
        previous_sfoc_number=data.get("previous_sfoc_number"),
        created_by=user,
        updated_by=user,
        last_activity_at=utcnow(),
    )

    items = resolve_requirements(SFOC_DOCUMENT_REQUIREMENTS, triggers, complexity, options)
    for order, item in enumerate(items):
        application.documents.append(SFOCDocument(
            organization_id=organization_id,
            sort_order=order,
            created_by=user,
            updated_by=user,
            **item,
        ))

    try:
        db.session.add(application)
        db.session.flush()
        log_activity(
            entity_type=ENTITY_TYPE,
            entity_id=application.id,
            organization_id=organization_id,
            type="created",
            actor_id=user,
            actor_name=user,
            description=f"Created SFOC application '{name}'",
            details={"complexity_level": complexity, "document_count": len(items)},
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("SFOC application %s created (organization=%s, complexity=%s, items=%d)",
                application.id, organization_id, complexity, len(items),
                extra=entity_extra(organization_id=organization_id, application_id=application.id))
    return application


def get_application(organization_id: int, application_id: str) -> SFOCApplication:
    return get_scoped(SFOCApplication, application_id, organization_id=organization_id)


def list_applications(organization_id: int, *, status: str | None = None, limit: int = 100) -> list[SFOCApplication]:
    """Organization's applications, newest first."""
    stmt = select(SFOCApplication).where(SFOCApplication.organization_id == organization_id)
    if status:
        stmt = stmt.where(SFOCApplication.status == status)
    stmt = stmt.order_by(SFOCApplication.created_at.desc()).limit(limit)
    return list(db.session.scalars(stmt))


def update_application(organization_id: int, application_id: str, data: dict,
                       *, user: str | None = None) -> SFOCApplication:
    """
    Update editable fields. ``status`` is refused here; use change_status.
    Changing ``operation_triggers`` re-derives ``complexity_level`` but does
    not rebuild the checklist.
    """
    if "status" in data:
        raise ValidationError("status cannot be set directly; use the status endpoint",
                              details={"status": data["status"]})

    def work():
        application = get_application(organization_id, application_id)
        _apply_fields(application, data, _TEXT_FIELDS + _DATE_FIELDS + _JSON_FIELDS)
        if "application_type" in data:
            if data["application_type"] not in SFOC_APPLICATION_TYPES:
                raise ValidationError(f"Unknown application_type: {data['application_type']}")
            application.application_type = data["application_type"]
        if "operation_triggers" in data:
            triggers = list(dict.fromkeys(data["operation_triggers"] or []))
            application.complexity_level = determine_complexity(triggers, TRIGGER_COMPLEXITY)
            application.operation_triggers = triggers
        application.updated_by = user
        application.last_activity_at = utcnow()
        return application

    return run_optimistic(work, resource="SFOCApplication", resource_id=application_id)


def change_status(organization_id: int, application_id: str, new_status: str, *,
                  user: str | None = None, updates: dict | None = None,
                  notes: str = "") -> SFOCApplication:
    """
    Validated status transition.

    Side effects: ``submitted`` stamps ``submission_date``; ``approved`` and
    ``rejected`` stamp ``tc_response_date``. One ``status_change`` activity
    is logged per transition.
    """
    updates = updates or {}

    def work():
        application = get_application(organization_id, application_id)
        old_status = application.status
        enforce_transition(old_status, new_status, SFOC_STATUSES)

        application.status = new_status
        _apply_fields(application, updates, _STATUS_SIDE_FIELDS)
        now = utcnow()
        if new_status == "submitted":
            application.submission_date = parse_datetime(updates.get("submission_date")) or now
        elif new_status in ("approved", "rejected"):
            application.tc_response_date = parse_datetime(updates.get("tc_response_date")) or now
        application.updated_by = user
        application.last_activity_at = now

        log_activity(
            entity_type=ENTITY_TYPE,
            entity_id=application.id,
            organization_id=organization_id,
            type="status_change",
            actor_id=user,
            actor_name=user,
            description=notes or (
                f"Status changed from {SFOC_STATUSES.get(old_status).label} "
                f"to {SFOC_STATUSES.get(new_status).label}"
            ),
            details={"from": old_status, "to": new_status},
        )
        return application

    application = run_optimistic(work, resource="SFOCApplication", resource_id=application_id)
    logger.info("SFOC application %s -> %s (organization=%s)", application_id, new_status, organization_id,
                extra=entity_extra(organization_id=organization_id, application_id=application_id,
                                   to_status=new_status))
    return application


def link_sora(organization_id: int, application_id: str, sora_assessment_id: str,
              sora_summary: dict | None, *, user: str | None = None) -> SFOCApplication:
    """Attach a SORA assessment. SAIL/GRC/ARC values are stored as given."""
    summary = sora_summary or {}

    def work():
        application = get_application(organization_id, application_id)
        application.sora_assessment_id = sora_assessment_id
        application.sora_summary = {
            "sail_level": summary.get("sail_level"),
            "final_grc": summary.get("final_grc"),
            "residual_arc": summary.get("residual_arc"),
            "oso_compliance_percentage": summary.get("oso_compliance_percentage"),
        }
        application.updated_by = user
        application.last_activity_at = utcnow()
        return application

    return run_optimistic(work, resource="SFOCApplication", resource_id=application_id)


def link_manufacturer_declaration(organization_id: int, application_id: str, declaration_id: str,
                                  *, user: str | None = None) -> SFOCApplication:
    def work():
        application = get_application(organization_id, application_id)
        application.manufacturer_declaration_id = declaration_id
        application.updated_by = user
        application.last_activity_at = utcnow()
        return application

    return run_optimistic(work, resource="SFOCApplication", resource_id=application_id)


def delete_application(organization_id: int, application_id: str) -> None:
    """Delete the application with its checklist, communications and activity log."""
    application = get_application(organization_id, application_id)
    try:
        db.session.execute(
            delete(Activity).where(
                Activity.entity_type == ENTITY_TYPE,
                Activity.entity_id == application.id,
            )
        )
        db.session.delete(application)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info("SFOC application %s deleted (organization=%s)", application_id, organization_id,
                extra=entity_extra(organization_id=organization_id, application_id=application_id))


# ═════════════════════════════════════════════════════════════════════════════
# Document checklist
# ═════════════════════════════════════════════════════════════════════════════


def list_documents(organization_id: int, application_id: str) -> list[SFOCDocument]:
    application = get_application(organization_id, application_id)
    stmt = (
        select(SFOCDocument)
        .where(SFOCDocument.application_id == application.id)
        .order_by(SFOCDocument.category, SFOCDocument.sort_order)
    )
    return list(db.session.scalars(stmt))


def _touch(application: SFOCApplication, user: str | None) -> None:
    application.last_activity_at = utcnow()
    application.updated_by = user


def update_document(organization_id: int, application_id: str, document_id: str, data: dict,
                    *, user: str | None = None) -> SFOCDocument:
    """
    Update a checklist item. A ``status`` change must follow the checklist
    registry; the parent's ``last_activity_at`` is refreshed.
    """

    def work():
        application = get_application(organization_id, application_id)
        item = get_scoped(SFOCDocument, document_id, application_id=application.id)
        new_status = data.get("status")
        if new_status and new_status != item.status:
            enforce_transition(item.status, new_status, DOCUMENT_STATUSES)
            item.status = new_status
        for field in _DOCUMENT_EDITABLE:
            if field in data:
                setattr(item, field, data[field] or "")
        item.updated_by = user
        _touch(application, user)
        return item

    return run_optimistic(work, resource="SFOCDocument", resource_id=document_id)


def upload_document_file(organization_id: int, application_id: str, document_id: str,
                         file_data: dict, *, user: str | None = None) -> SFOCDocument:
    """Record an uploaded file: status becomes ``uploaded`` with file metadata."""
    if not file_data.get("file_url"):
        raise ValidationError("file_url is required", details={"file_url": "missing"})

    def work():
        application = get_application(organization_id, application_id)
        item = get_scoped(SFOCDocument, document_id, application_id=application.id)
        if item.status != "uploaded":
            enforce_transition(item.status, "uploaded", DOCUMENT_STATUSES)
        item.status = "uploaded"
        item.file_url = file_data["file_url"]
        item.file_name = file_data.get("file_name")
        item.file_size = file_data.get("file_size")
        item.mime_type = file_data.get("mime_type")
        item.uploaded_at = utcnow()
        item.uploaded_by = user
        item.updated_by = user
        _touch(application, user)
        log_activity(
            entity_type=ENTITY_TYPE,
            entity_id=application.id,
            organization_id=organization_id,
            type="uploaded",
            actor_id=user,
            actor_name=user,
            description=f"Uploaded {item.file_name or 'file'} for {item.label}",
            details={"requirement_id": item.requirement_id},
        )
        return item

    return run_optimistic(work, resource="SFOCDocument", resource_id=document_id)


def checklist_progress(organization_id: int, application_id: str) -> dict:
    return checklist_summary(list_documents(organization_id, application_id))


# ═════════════════════════════════════════════════════════════════════════════
# Communications & activity
# ═════════════════════════════════════════════════════════════════════════════


def add_communication(organization_id: int, application_id: str, data: dict,
                      *, user: str | None = None) -> SFOCCommunication:
    comm_type = data.get("type")
    if comm_type not in COMMUNICATION_TYPES:
        raise ValidationError(f"Unknown communication type: {comm_type}", details={"type": comm_type})
    direction = data.get("direction") or "outbound"
    if direction not in COMMUNICATION_DIRECTIONS:
        raise ValidationError(f"direction must be one of {', '.join(COMMUNICATION_DIRECTIONS)}")

    def work():
        application = get_application(organization_id, application_id)
        communication = SFOCCommunication(
            organization_id=organization_id,
            application_id=application.id,
            type=comm_type,
            subject=data.get("subject") or "",
            content=data.get("content") or "",
            direction=direction,
            attachments=data.get("attachments") or [],
            tc_reference_number=data.get("tc_reference_number"),
            sent_by=data.get("sent_by"),
            received_from=data.get("received_from"),
            date=parse_datetime(data.get("date")) or utcnow(),
            created_by=user,
            updated_by=user,
        )
        db.session.add(communication)
        _touch(application, user)
        return communication

    return run_optimistic(work, resource="SFOCApplication", resource_id=application_id)


def list_communications(organization_id: int, application_id: str) -> list[SFOCCommunication]:
    application = get_application(organization_id, application_id)
    stmt = (
        select(SFOCCommunication)
        .where(SFOCCommunication.application_id == application.id)
        .order_by(SFOCCommunication.date.desc())
    )
    return list(db.session.scalars(stmt))


def add_activity(organization_id: int, application_id: str, data: dict,
                 *, user: str | None = None) -> Activity:
    application = get_application(organization_id, application_id)
    try:
        entry = log_activity(
            entity_type=ENTITY_TYPE,
            entity_id=application.id,
            organization_id=organization_id,
            type=data.get("type") or "updated",
            actor_id=data.get("user_id") or user,
            actor_name=data.get("user_name") or user,
            description=data.get("description") or "",
            details=data.get("details") or {},
        )
        db.session.commit()
    except ValueError as exc:
        db.session.rollback()
        raise ValidationError(str(exc), details={"type": data.get("type")}) from exc
    except Exception:
        db.session.rollback()
        raise
    return entry


def list_activity(organization_id: int, application_id: str, limit: int = 50) -> list[Activity]:
    application = get_application(organization_id, application_id)
    stmt = (
        select(Activity)
        .where(Activity.entity_type == ENTITY_TYPE, Activity.entity_id == application.id)
        .order_by(Activity.created_at.desc())
        .limit(limit)
    )
    return list(db.session.scalars(stmt))


# ═════════════════════════════════════════════════════════════════════════════
# Statistics & reference data
# ═════════════════════════════════════════════════════════════════════════════


def get_stats(organization_id: int) -> dict:
    """Dashboard counts. Expiry is judged on ``approved_end_date``."""
    applications = list(db.session.scalars(
        select(SFOCApplication).where(SFOCApplication.organization_id == organization_id)
    ))
    warning_days = _warning_days()
    stats = {
        "total": len(applications),
        "by_status": {},
        "by_complexity": {key: 0 for key in SFOC_COMPLEXITY},
        "active": 0,
        "expiring_soon": 0,
        "expired": 0,
        "pending": 0,
    }
    for application in applications:
        stats["by_status"][application.status] = stats["by_status"].get(application.status, 0) + 1
        if application.complexity_level in stats["by_complexity"]:
            stats["by_complexity"][application.complexity_level] += 1

        if application.status == "approved":
            if is_expired(application.approved_end_date):
                stats["expired"] += 1
            else:
                stats["active"] += 1
                if is_expiring_soon(application.approved_end_date, warning_days=warning_days):
                    stats["expiring_soon"] += 1

        if application.status in PENDING_STATUSES:
            stats["pending"] += 1
    return stats


def transitions_for(organization_id: int, application_id: str) -> dict:
    application = get_application(organization_id, application_id)
    return {
        "status": application.status,
        "available": available_transitions(application.status, SFOC_STATUSES),
    }


def reference_data() -> dict:
    return {
        "statuses": SFOC_STATUSES.to_list(),
        "document_statuses": DOCUMENT_STATUSES.to_list(),
        "complexity": SFOC_COMPLEXITY,
        "application_types": SFOC_APPLICATION_TYPES,
        "operation_triggers": SFOC_OPERATION_TRIGGERS,
        "document_categories": DOCUMENT_CATEGORIES,
        "communication_types": COMMUNICATION_TYPES,
        "document_requirements": [r.to_dict() for r in SFOC_DOCUMENT_REQUIREMENTS],
    }
