"""
Compliance Matrix Service Layer.

Business logic for:
    - Templates:          list, get, create, update, delete, seed defaults
    - Applications:       create from template, list, get, update, delete
    - Responses:          per-requirement read-modify-write with derived status
    - Status workflow:    validated transitions appended to status_history
    - Progress:           totals per response status and per category
    - Gap analysis:       incomplete responses, missing documentation,
                          suggested actions
    - Document registry:  list, register, update

Response status rules:
    no text and no documents          → empty
    flagged by a reviewer             → needs-attention
    text present and, for document-reference requirements, at least
    one document                      → complete
    anything else                     → partial
"""

import logging

from sqlalchemy import func, select

from rpas_compliance.core.exceptions import ConflictError, NotFoundError, ValidationError
from rpas_compliance.middleware.logging_config import entity_extra
from rpas_compliance.models import db
from rpas_compliance.models.base import utcnow
from rpas_compliance.models.compliance import (
    COMPLIANCE_STATUSES,
    DEFAULT_EXPORT_FORMAT,
    REGISTRY_DOCUMENT_STATUSES,
    REGISTRY_SOURCE_TYPES,
    RESPONSE_TYPES,
    TEMPLATE_CATEGORIES,
    TEMPLATE_STATUSES,
    ComplianceApplication,
    ComplianceTemplate,
    RegistryDocument,
    empty_response,
)
from rpas_compliance.services.checklist import round_half_up
from rpas_compliance.services.helpers.scoped_queries import get_scoped
from rpas_compliance.services.transactions import run_optimistic
from rpas_compliance.services.workflow import available_transitions, enforce_transition
from rpas_compliance.utils.helpers import parse_date

logger = logging.getLogger(__name__)

_TEMPLATE_FIELDS = (
    "name", "short_name", "description", "regulatory_body", "regulation",
    "version", "categories", "requirements", "export_format", "related_templates",
    "is_public",
)

_APPLICATION_FIELDS = ("name", "description", "project_id", "project_name", "uploaded_files")

_RESPONSE_FIELDS = (
    "response", "document_refs", "ai_assisted", "ai_draft_accepted",
    "review_notes", "flagged", "flag_reason",
)

_REGISTRY_FIELDS = (
    "source_id", "title", "description", "category", "version", "page_count",
    "relevant_regulations", "relevant_requirements", "keywords",
)


# ═════════════════════════════════════════════════════════════════════════════
# Pure calculations
# ═════════════════════════════════════════════════════════════════════════════


def derive_response_status(response: dict, requirement: dict | None = None) -> str:
    text = (response.get("response") or "").strip()
    documents = response.get("document_refs") or []
    if not text and not documents:
        return "empty"
    if response.get("flagged"):
        return "needs-attention"
    needs_document = (requirement or {}).get("response_type") == "document-reference"
    if text and (not needs_document or documents):
        return "complete"
    return "partial"


def calculate_progress(requirements: list[dict], responses: dict) -> dict:
    """
    Counts per response status, overall and per requirement category.

    Within a category ``needs-attention`` counts as empty. A template
    without requirements is 100 percent complete.
    """
    progress = {
        "total": len(requirements),
        "complete": 0,
        "partial": 0,
        "empty": 0,
        "needs_attention": 0,
        "percent_complete": 100,
        "by_category": {},
    }
    for requirement in requirements:
        status = (responses.get(requirement["id"]) or {}).get("status") or "empty"
        bucket = progress["by_category"].setdefault(
            requirement.get("category") or "uncategorized",
            {"total": 0, "complete": 0, "partial": 0, "empty": 0},
        )
        bucket["total"] += 1
        if status == "complete":
            progress["complete"] += 1
            bucket["complete"] += 1
        elif status == "partial":
            progress["partial"] += 1
            bucket["partial"] += 1
        elif status == "needs-attention":
            progress["needs_attention"] += 1
            bucket["empty"] += 1
        else:
            progress["empty"] += 1
            bucket["empty"] += 1

    if requirements:
        progress["percent_complete"] = round_half_up(100 * progress["complete"] / len(requirements))
    return progress


def _short_label(requirement: dict) -> str:
    return requirement.get("short_text") or (requirement.get("text") or "")[:50]


def build_gap_analysis(requirements: list[dict], responses: dict) -> dict:
    incomplete = []
    missing_documentation = []
    suggested_actions = []
    for requirement in requirements:
        response = responses.get(requirement["id"]) or empty_response()
        status = response.get("status") or "empty"
        if status != "complete":
            incomplete.append({
                "requirement_id": requirement["id"],
                "short_text": _short_label(requirement),
                "category": requirement.get("category"),
                "status": status,
                "required": requirement.get("required", True),
            })
        if requirement.get("response_type") == "document-reference" and not response.get("document_refs"):
            missing_documentation.append({
                "requirement_id": requirement["id"],
                "short_text": _short_label(requirement),
            })
        if status == "complete":
            continue
        for rule in requirement.get("validation_rules") or []:
            if rule.get("type") == "requires_document" and not response.get("document_refs"):
                suggested_actions.append({
                    "type": "add-document",
                    "title": f"Add documentation for: {_short_label(requirement)}",
                    "related_requirements": [requirement["id"]],
                    "doc_types": list(rule.get("doc_types") or []),
                })
    return {
        "incomplete_responses": incomplete,
        "missing_documentation": missing_documentation,
        "outdated_policies": [],
        "suggested_actions": suggested_actions,
        "last_run": utcnow().isoformat(),
    }


# ═════════════════════════════════════════════════════════════════════════════
# Templates
# ═════════════════════════════════════════════════════════════════════════════


def _validate_requirements(requirements) -> None:
    seen = set()
    for index, requirement in enumerate(requirements or []):
        req_id = requirement.get("id")
        if not req_id:
            raise ValidationError(f"requirements[{index}] has no id", details={"index": index})
        if req_id in seen:
            raise ValidationError(f"Duplicate requirement id: {req_id}", details={"id": req_id})
        seen.add(req_id)
        response_type = requirement.get("response_type") or "text"
        if response_type not in RESPONSE_TYPES:
            raise ValidationError(f"Unknown response_type: {response_type}",
                                  details={"id": req_id, "response_type": response_type})


def list_templates(*, category: str | None = None, status: str | None = None,
                   public_only: bool = False) -> list[ComplianceTemplate]:
    stmt = select(ComplianceTemplate)
    if category:
        stmt = stmt.where(ComplianceTemplate.category == category)
    if status:
        stmt = stmt.where(ComplianceTemplate.status == status)
    if public_only:
        stmt = stmt.where(ComplianceTemplate.is_public.is_(True))
    return list(db.session.scalars(stmt.order_by(ComplianceTemplate.name)))


def get_template(template_id: str) -> ComplianceTemplate:
    template = db.session.get(ComplianceTemplate, template_id)
    if template is None:
        raise NotFoundError(resource="ComplianceTemplate", resource_id=template_id)
    return template


def create_template(data: dict, *, user: str | None = None) -> ComplianceTemplate:
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("name is required", details={"name": "missing"})
    category = data.get("category") or "general"
    if category not in TEMPLATE_CATEGORIES:
        raise ValidationError(f"Unknown template category: {category}", details={"category": category})
    status = data.get("status") or "draft"
    if status not in TEMPLATE_STATUSES:
        raise ValidationError(f"Unknown template status: {status}", details={"status": status})
    _validate_requirements(data.get("requirements"))

    template = ComplianceTemplate(
        name=name,
        short_name=data.get("short_name") or "",
        description=data.get("description") or "",
        category=category,
        regulatory_body=data.get("regulatory_body") or TEMPLATE_CATEGORIES[category]["regulatory_body"],
        regulation=data.get("regulation") or "",
        version=data.get("version") or "1.0",
        effective_date=parse_date(data.get("effective_date")),
        categories=list(data.get("categories") or []),
        requirements=list(data.get("requirements") or []),
        export_format=data.get("export_format") or dict(DEFAULT_EXPORT_FORMAT),
        related_templates=list(data.get("related_templates") or []),
        status=status,
        is_public=bool(data.get("is_public", False)),
        created_by=user,
        updated_by=user,
    )
    if data.get("id"):
        template.id = data["id"]
        if db.session.get(ComplianceTemplate, template.id) is not None:
            raise ConflictError("ComplianceTemplate", "id", template.id)

    try:
        db.session.add(template)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info("Compliance template %s created (%d requirements)", template.id, len(template.requirements),
                extra=entity_extra(template_id=template.id))
    return template


def update_template(template_id: str, data: dict, *, user: str | None = None) -> ComplianceTemplate:
    template = get_template(template_id)
    if "category" in data and data["category"] not in TEMPLATE_CATEGORIES:
        raise ValidationError(f"Unknown template category: {data['category']}")
    if "status" in data and data["status"] not in TEMPLATE_STATUSES:
        raise ValidationError(f"Unknown template status: {data['status']}")
    if "requirements" in data:
        _validate_requirements(data["requirements"])

    for field in _TEMPLATE_FIELDS + ("category", "status"):
        if field in data:
            setattr(template, field, data[field])
    if "effective_date" in data:
        template.effective_date = parse_date(data["effective_date"])
    template.updated_by = user
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return template


def delete_template(template_id: str) -> None:
    """Refused while any application still references the template."""
    template = get_template(template_id)
    in_use = db.session.scalar(
        select(func.count(ComplianceApplication.id)).where(ComplianceApplication.template_id == template.id)
    )
    if in_use:
        raise ValidationError(
            f"Template is used by {in_use} application(s) and cannot be deleted",
            details={"applications": in_use},
        )
    try:
        db.session.delete(template)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info("Compliance template %s deleted", template_id, extra=entity_extra(template_id=template_id))


def seed_default_templates(templates: list[dict], *, user: str | None = None) -> dict:
    """Insert shipped templates; ids that already exist are skipped."""
    results = {"created": 0, "skipped": 0}
    for entry in templates:
        if db.session.get(ComplianceTemplate, entry["id"]) is not None:
            results["skipped"] += 1
            continue
        create_template(entry, user=user)
        results["created"] += 1
    logger.info("Seeded compliance templates: %(created)d created, %(skipped)d skipped", results)
    return results


# ═════════════════════════════════════════════════════════════════════════════
# Applications
# ═════════════════════════════════════════════════════════════════════════════


def create_application(organization_id: int, template_id: str, data: dict | None = None,
                       *, user: str | None = None) -> ComplianceApplication:
    """
    Start an application from a template: one empty response per
    requirement, initial progress and a seeded status history.
    """
    data = data or {}
    template = get_template(template_id)
    requirements = template.requirements or []
    responses = {req["id"]: empty_response() for req in requirements}
    now = utcnow()

    application = ComplianceApplication(
        organization_id=organization_id,
        template_id=template.id,
        template_name=template.name,
        template_version=template.version,
        name=(data.get("name") or "").strip()
        or f"{template.short_name or template.name} - {now.date().isoformat()}",
        description=data.get("description") or "",
        project_id=data.get("project_id"),
        project_name=data.get("project_name") or "",
        status="draft",
        status_history=[{
            "status": "draft",
            "timestamp": now.isoformat(),
            "user_id": user,
            "notes": "Application created",
        }],
        responses=responses,
        progress=calculate_progress(requirements, responses),
        uploaded_files=[],
        gap_analysis=None,
        submission={
            "submitted_at": None,
            "submitted_by": None,
            "submitted_to": None,
            "reference_number": None,
            "response_received_at": None,
            "outcome": None,
        },
        created_by=user,
        updated_by=user,
    )
    try:
        db.session.add(application)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info("Compliance application %s created from %s (organization=%s)",
                application.id, template.id, organization_id,
                extra=entity_extra(organization_id=organization_id, application_id=application.id,
                                   template_id=template.id))
    return application


def get_application(organization_id: int, application_id: str) -> ComplianceApplication:
    return get_scoped(ComplianceApplication, application_id, organization_id=organization_id)


def list_applications(organization_id: int, *, status: str | None = None,
                      template_id: str | None = None,
                      project_id: str | None = None) -> list[ComplianceApplication]:
    """Organization's applications, most recently updated first."""
    stmt = select(ComplianceApplication).where(ComplianceApplication.organization_id == organization_id)
    if status:
        stmt = stmt.where(ComplianceApplication.status == status)
    if template_id:
        stmt = stmt.where(ComplianceApplication.template_id == template_id)
    if project_id:
        stmt = stmt.where(ComplianceApplication.project_id == project_id)
    return list(db.session.scalars(stmt.order_by(ComplianceApplication.updated_at.desc())))


def update_application(organization_id: int, application_id: str, data: dict,
                       *, user: str | None = None) -> ComplianceApplication:
    """Edit descriptive fields. Status and responses have dedicated operations."""

    def work():
        application = get_application(organization_id, application_id)
        if data.get("status", application.status) != application.status:
            raise ValidationError("status cannot be set directly; use the status endpoint",
                                  details={"status": data["status"]})
        for field in _APPLICATION_FIELDS:
            if field in data:
                setattr(application, field, data[field])
        application.updated_by = user
        return application

    return run_optimistic(work, resource="ComplianceApplication", resource_id=application_id)


def delete_application(organization_id: int, application_id: str) -> None:
    application = get_application(organization_id, application_id)
    try:
        db.session.delete(application)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info("Compliance application %s deleted (organization=%s)", application_id, organization_id,
                extra=entity_extra(organization_id=organization_id, application_id=application_id))


def update_response(organization_id: int, application_id: str, requirement_id: str, data: dict,
                    *, user: str | None = None) -> ComplianceApplication:
    """
    Merge ``data`` into one requirement's response, re-derive its status
    and recompute progress, as one optimistic transaction.
    """

    def work():
        application = get_application(organization_id, application_id)
        requirement = application.template.requirement_map().get(requirement_id)
        if requirement is None:
            raise NotFoundError(resource="Requirement", resource_id=requirement_id)

        responses = dict(application.responses or {})
        response = {**empty_response(), **(responses.get(requirement_id) or {})}
        for field in _RESPONSE_FIELDS:
            if field in data:
                response[field] = data[field]
        if not response.get("flagged"):
            response["flag_reason"] = None
        response["status"] = derive_response_status(response, requirement)
        response["last_updated"] = utcnow().isoformat()
        response["updated_by"] = user
        responses[requirement_id] = response

        application.responses = responses
        application.progress = calculate_progress(application.template.requirements or [], responses)
        application.updated_by = user
        return application

    return run_optimistic(work, resource="ComplianceApplication", resource_id=application_id)


def change_status(organization_id: int, application_id: str, new_status: str, *,
                  user: str | None = None, notes: str = "",
                  submission: dict | None = None) -> ComplianceApplication:
    """
    Validated transition, appended to ``status_history``. ``submitted``
    records who submitted and where; ``approved``/``rejected`` record the
    regulator's outcome.
    """
    submission = submission or {}

    def work():
        application = get_application(organization_id, application_id)
        enforce_transition(application.status, new_status, COMPLIANCE_STATUSES)
        now = utcnow().isoformat()

        record = dict(application.submission or {})
        if new_status == "submitted":
            record.update({
                "submitted_at": now,
                "submitted_by": user,
                "submitted_to": submission.get("submitted_to") or application.template.regulatory_body,
                "reference_number": submission.get("reference_number"),
            })
        elif new_status in ("approved", "rejected"):
            record.update({"response_received_at": now, "outcome": new_status})
            if submission.get("reference_number"):
                record["reference_number"] = submission["reference_number"]
        application.submission = record

        application.status = new_status
        application.status_history = [
            *(application.status_history or []),
            {"status": new_status, "timestamp": now, "user_id": user, "notes": notes},
        ]
        application.updated_by = user
        return application

    application = run_optimistic(work, resource="ComplianceApplication", resource_id=application_id)
    logger.info("Compliance application %s -> %s (organization=%s)", application_id, new_status, organization_id,
                extra=entity_extra(organization_id=organization_id, application_id=application_id,
                                   to_status=new_status))
    return application


def run_gap_analysis(organization_id: int, application_id: str,
                     *, user: str | None = None) -> dict:
    """Compute and store the gap analysis; returns it."""

    def work():
        application = get_application(organization_id, application_id)
        analysis = build_gap_analysis(application.template.requirements or [], application.responses or {})
        application.gap_analysis = analysis
        application.updated_by = user
        return analysis

    return run_optimistic(work, resource="ComplianceApplication", resource_id=application_id)


def transitions_for(organization_id: int, application_id: str) -> dict:
    application = get_application(organization_id, application_id)
    return {
        "status": application.status,
        "available": available_transitions(application.status, COMPLIANCE_STATUSES),
    }


# ═════════════════════════════════════════════════════════════════════════════
# Document registry
# ═════════════════════════════════════════════════════════════════════════════


def list_registry(organization_id: int, *, source_type: str | None = None,
                  status: str | None = None) -> list[RegistryDocument]:
    stmt = select(RegistryDocument).where(RegistryDocument.organization_id == organization_id)
    if source_type:
        stmt = stmt.where(RegistryDocument.source_type == source_type)
    if status:
        stmt = stmt.where(RegistryDocument.status == status)
    return list(db.session.scalars(stmt.order_by(RegistryDocument.title)))


def register_document(organization_id: int, data: dict, *, user: str | None = None) -> RegistryDocument:
    title = (data.get("title") or "").strip()
    if not title:
        raise ValidationError("title is required", details={"title": "missing"})
    source_type = data.get("source_type") or "uploaded"
    if source_type not in REGISTRY_SOURCE_TYPES:
        raise ValidationError(f"Unknown source_type: {source_type}", details={"source_type": source_type})
    status = data.get("status") or "current"
    if status not in REGISTRY_DOCUMENT_STATUSES:
        raise ValidationError(f"Unknown registry status: {status}", details={"status": status})

    document = RegistryDocument(
        organization_id=organization_id,
        source_type=source_type,
        source_id=data.get("source_id"),
        title=title,
        description=data.get("description") or "",
        category=data.get("category") or "general",
        version=data.get("version") or "1.0",
        effective_date=parse_date(data.get("effective_date")),
        page_count=data.get("page_count"),
        relevant_regulations=list(data.get("relevant_regulations") or []),
        relevant_requirements=list(data.get("relevant_requirements") or []),
        keywords=list(data.get("keywords") or []),
        status=status,
        last_reviewed=parse_date(data.get("last_reviewed")),
        created_by=user,
        updated_by=user,
    )
    try:
        db.session.add(document)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return document


def update_registry_document(organization_id: int, document_id: str, data: dict,
                             *, user: str | None = None) -> RegistryDocument:
    document = get_scoped(RegistryDocument, document_id, organization_id=organization_id)
    if "source_type" in data:
        if data["source_type"] not in REGISTRY_SOURCE_TYPES:
            raise ValidationError(f"Unknown source_type: {data['source_type']}")
        document.source_type = data["source_type"]
    if "status" in data:
        if data["status"] not in REGISTRY_DOCUMENT_STATUSES:
            raise ValidationError(f"Unknown registry status: {data['status']}")
        document.status = data["status"]
    for field in _REGISTRY_FIELDS:
        if field in data:
            setattr(document, field, data[field])
    for field in ("effective_date", "last_reviewed"):
        if field in data:
            setattr(document, field, parse_date(data[field]))
    document.updated_by = user
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return document


def reference_data() -> dict:
    return {
        "statuses": COMPLIANCE_STATUSES.to_list(),
        "template_categories": TEMPLATE_CATEGORIES,
        "response_types": RESPONSE_TYPES,
        "registry_source_types": sorted(REGISTRY_SOURCE_TYPES),
        "registry_statuses": sorted(REGISTRY_DOCUMENT_STATUSES),
    }
