"""
Organization FHA Service Layer.

Business logic for:
    - Library CRUD:    create (FHA-YYYY-NNNN numbering), get, list/filter,
                       update, delete
    - Queries:         by risk level, free-text search, needing review
    - Review cycle:    mark reviewed (next review defaults to one year out)
    - Master adoption: adopt a published master, re-sync an adopted copy
    - Attachments:     files and linked field forms
    - Statistics:      counts by status / risk level / category / source

Scores are never taken from the payload; mapper events recompute them.
"""

import logging
import re
from datetime import timedelta

from sqlalchemy import or_, select

from rpas_compliance.core.exceptions import ConflictError, ValidationError
from rpas_compliance.middleware.logging_config import entity_extra
from rpas_compliance.models import db
from rpas_compliance.models.base import new_id, utcnow
from rpas_compliance.models.hazard import (
    FORMAL_HAZARD_SOURCES,
    FORMAL_HAZARD_STATUSES,
    HAZARD_CATEGORIES,
    FormalHazard,
)
from rpas_compliance.services import master_hazard_service
from rpas_compliance.services.expiry import as_utc
from rpas_compliance.services.helpers.scoped_queries import get_scoped
from rpas_compliance.services.risk import RISK_LEVEL_RANGES, risk_level_key
from rpas_compliance.services.transactions import run_optimistic
from rpas_compliance.utils.helpers import parse_datetime

logger = logging.getLogger(__name__)

REVIEW_INTERVAL_DAYS = 365
STALE_WITHOUT_REVIEW_DAYS = 30

_NUMBER_PATTERN = re.compile(r"^FHA-(\d{4})-(\d+)$")

_EDITABLE_FIELDS = (
    "title", "category", "description", "consequences",
    "likelihood", "severity", "control_measures",
    "residual_likelihood", "residual_severity",
    "keywords", "regulatory_refs", "status",
)

# Fields whose change marks a default-sourced hazard as customized
_CONTENT_FIELDS = frozenset(_EDITABLE_FIELDS) - {"status"}


def _check(value, allowed, field):
    if value not in allowed:
        raise ValidationError(f"Unknown {field}: {value}", details={field: value})


def next_fha_number(organization_id: int, year: int | None = None) -> str:
    """Highest ``FHA-<year>-NNNN`` in the organization plus one, zero-padded."""
    year = year or utcnow().year
    prefix = f"FHA-{year}-"
    numbers = db.session.scalars(
        select(FormalHazard.fha_number).where(
            FormalHazard.organization_id == organization_id,
            FormalHazard.fha_number.like(f"{prefix}%"),
        )
    )
    highest = 0
    for number in numbers:
        match = _NUMBER_PATTERN.match(number)
        if match:
            highest = max(highest, int(match.group(2)))
    return f"{prefix}{highest + 1:04d}"


def _number_taken(organization_id: int, fha_number: str) -> bool:
    stmt = select(FormalHazard.id).where(
        FormalHazard.organization_id == organization_id,
        FormalHazard.fha_number == fha_number,
    )
    return db.session.scalar(stmt) is not None


# ═════════════════════════════════════════════════════════════════════════════
# CRUD
# ═════════════════════════════════════════════════════════════════════════════


def create_hazard(organization_id: int, data: dict, *, user: str | None = None) -> FormalHazard:
    """
    Create an organization FHA. ``fha_number`` is generated when missing;
    residual likelihood/severity default to the initial values.
    """
    title = (data.get("title") or "").strip()
    if not title:
        raise ValidationError("title is required", details={"title": "missing"})

    category = data.get("category") or "flight_ops"
    _check(category, HAZARD_CATEGORIES, "category")
    status = data.get("status") or "active"
    _check(status, FORMAL_HAZARD_STATUSES, "status")
    source = data.get("source") or "created"
    _check(source, FORMAL_HAZARD_SOURCES, "source")

    fha_number = (data.get("fha_number") or "").strip() or next_fha_number(organization_id)
    if _number_taken(organization_id, fha_number):
        raise ConflictError("FormalHazard", "fha_number", fha_number)

    # Defaults only fill gaps; out-of-range values fail in recompute_scores
    likelihood = data.get("likelihood")
    if likelihood is None:
        likelihood = 3
    severity = data.get("severity")
    if severity is None:
        severity = 3
    residual_likelihood = data.get("residual_likelihood")
    residual_severity = data.get("residual_severity")
    hazard = FormalHazard(
        organization_id=organization_id,
        fha_number=fha_number,
        title=title,
        category=category,
        description=data.get("description") or "",
        consequences=data.get("consequences") or "",
        likelihood=likelihood,
        severity=severity,
        control_measures=list(data.get("control_measures") or []),
        residual_likelihood=likelihood if residual_likelihood is None else residual_likelihood,
        residual_severity=severity if residual_severity is None else residual_severity,
        status=status,
        source=source,
        source_id=data.get("source_id"),
        source_version=data.get("source_version"),
        is_customized=bool(data.get("is_customized", False)),
        review_date=parse_datetime(data.get("review_date")),
        keywords=list(data.get("keywords") or []),
        regulatory_refs=list(data.get("regulatory_refs") or []),
        attachments=[],
        linked_field_forms=[],
        created_by=user,
        updated_by=user,
    )
    hazard.recompute_scores()

    try:
        db.session.add(hazard)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info("FHA %s created (organization=%s, source=%s)", fha_number, organization_id, source,
                extra=entity_extra(organization_id=organization_id, hazard_id=hazard.id, fha_number=fha_number))
    return hazard


def get_hazard(organization_id: int, hazard_id: str) -> FormalHazard:
    return get_scoped(FormalHazard, hazard_id, organization_id=organization_id)


def list_hazards(organization_id: int, *, category: str | None = None, status: str | None = None,
                 source: str | None = None, min_risk_score: int | None = None) -> list[FormalHazard]:
    """Organization FHAs, newest first."""
    stmt = select(FormalHazard).where(FormalHazard.organization_id == organization_id)
    if category:
        stmt = stmt.where(FormalHazard.category == category)
    if status:
        stmt = stmt.where(FormalHazard.status == status)
    if source:
        stmt = stmt.where(FormalHazard.source == source)
    if min_risk_score is not None:
        stmt = stmt.where(FormalHazard.risk_score >= min_risk_score)
    stmt = stmt.order_by(FormalHazard.created_at.desc())
    return list(db.session.scalars(stmt))


def update_hazard(organization_id: int, hazard_id: str, data: dict,
                  *, user: str | None = None) -> FormalHazard:
    """
    Update editable fields. Editing content of a hazard adopted from a
    master flags it ``is_customized``.
    """
    if "category" in data:
        _check(data["category"], HAZARD_CATEGORIES, "category")
    if "status" in data:
        _check(data["status"], FORMAL_HAZARD_STATUSES, "status")

    def work():
        hazard = get_hazard(organization_id, hazard_id)
        if data.get("fha_number", hazard.fha_number) != hazard.fha_number:
            raise ValidationError("fha_number is immutable", details={"fha_number": data["fha_number"]})
        content_changed = False
        for field in _EDITABLE_FIELDS:
            if field in data and data[field] != getattr(hazard, field):
                setattr(hazard, field, data[field])
                content_changed = content_changed or field in _CONTENT_FIELDS
        if "review_date" in data:
            hazard.review_date = parse_datetime(data["review_date"])
        if content_changed and hazard.source == "default":
            hazard.is_customized = True
        hazard.recompute_scores()
        hazard.updated_by = user
        hazard.updated_at = utcnow()
        return hazard

    return run_optimistic(work, resource="FormalHazard", resource_id=hazard_id)


def delete_hazard(organization_id: int, hazard_id: str) -> None:
    hazard = get_hazard(organization_id, hazard_id)
    try:
        db.session.delete(hazard)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info("FHA %s deleted (organization=%s)", hazard.fha_number, organization_id,
                extra=entity_extra(organization_id=organization_id, hazard_id=hazard_id))


# ═════════════════════════════════════════════════════════════════════════════
# Queries
# ═════════════════════════════════════════════════════════════════════════════


def list_by_risk_level(organization_id: int, level: str) -> list[FormalHazard]:
    if level not in RISK_LEVEL_RANGES:
        raise ValidationError(f"Unknown risk level: {level}",
                              details={"level": level, "allowed": list(RISK_LEVEL_RANGES)})
    low, high = RISK_LEVEL_RANGES[level]
    stmt = (
        select(FormalHazard)
        .where(
            FormalHazard.organization_id == organization_id,
            FormalHazard.risk_score >= low,
            FormalHazard.risk_score <= high,
        )
        .order_by(FormalHazard.risk_score.desc())
    )
    return list(db.session.scalars(stmt))


def search_hazards(organization_id: int, term: str) -> list[FormalHazard]:
    """
    Case-insensitive match on title, description, consequences and
    fha_number, plus exact-substring match on keywords.
    """
    term = (term or "").strip().lower()
    if not term:
        return list_hazards(organization_id)
    pattern = f"%{term}%"
    stmt = select(FormalHazard).where(
        FormalHazard.organization_id == organization_id,
        or_(
            FormalHazard.title.ilike(pattern),
            FormalHazard.description.ilike(pattern),
            FormalHazard.consequences.ilike(pattern),
            FormalHazard.fha_number.ilike(pattern),
        ),
    )
    matched = {h.id: h for h in db.session.scalars(stmt)}
    # keywords live in a JSON list; filter those in Python
    for hazard in list_hazards(organization_id):
        if hazard.id not in matched and any(term in (k or "").lower() for k in hazard.keywords or []):
            matched[hazard.id] = hazard
    return sorted(matched.values(), key=lambda h: h.fha_number)


def _needs_review(hazard: FormalHazard, now) -> bool:
    review_date = as_utc(hazard.review_date)
    if review_date is not None:
        return review_date <= now
    created_at = as_utc(hazard.created_at)
    return created_at is not None and now - created_at > timedelta(days=STALE_WITHOUT_REVIEW_DAYS)


def list_needing_review(organization_id: int) -> list[FormalHazard]:
    """Hazards whose review date has arrived, soonest first."""
    now = utcnow()
    due = [
        h for h in list_hazards(organization_id)
        if h.review_date is not None and as_utc(h.review_date) <= now
    ]
    return sorted(due, key=lambda h: as_utc(h.review_date))


def mark_reviewed(organization_id: int, hazard_id: str, *, next_review_date=None,
                  user: str | None = None) -> FormalHazard:
    def work():
        hazard = get_hazard(organization_id, hazard_id)
        now = utcnow()
        hazard.last_reviewed_at = now
        hazard.last_reviewed_by = user
        hazard.review_date = parse_datetime(next_review_date) or now + timedelta(days=REVIEW_INTERVAL_DAYS)
        hazard.status = "active"
        hazard.updated_by = user
        return hazard

    return run_optimistic(work, resource="FormalHazard", resource_id=hazard_id)


def get_stats(organization_id: int) -> dict:
    hazards = list_hazards(organization_id)
    now = utcnow()
    stats = {
        "total": len(hazards),
        "by_status": {key: 0 for key in ("active", "under_review", "archived")},
        "by_risk_level": {key: 0 for key in reversed(list(RISK_LEVEL_RANGES))},
        "by_category": {},
        "by_source": {key: 0 for key in ("default", "uploaded", "created", "field_triggered")},
        "needs_review": 0,
    }
    for hazard in hazards:
        if hazard.status in stats["by_status"]:
            stats["by_status"][hazard.status] += 1
        level = risk_level_key(hazard.risk_score)
        if level:
            stats["by_risk_level"][level] += 1
        category = hazard.category or "uncategorized"
        stats["by_category"][category] = stats["by_category"].get(category, 0) + 1
        if hazard.source in stats["by_source"]:
            stats["by_source"][hazard.source] += 1
        if _needs_review(hazard, now):
            stats["needs_review"] += 1
    return stats


# ═════════════════════════════════════════════════════════════════════════════
# Master adoption
# ═════════════════════════════════════════════════════════════════════════════


def adopt_from_master(organization_id: int, master_id: str, *, user: str | None = None) -> FormalHazard:
    """Copy a published master into the organization's library."""
    payload = master_hazard_service.adoption_payload(master_id)
    hazard = create_hazard(organization_id, payload, user=user)
    logger.info("Master %s v%s adopted as %s (organization=%s)",
                payload["fha_number"], payload["source_version"], hazard.id, organization_id,
                extra=entity_extra(organization_id=organization_id, hazard_id=hazard.id,
                                   fha_number=hazard.fha_number))
    return hazard


def sync_from_master(organization_id: int, hazard_id: str, *, user: str | None = None) -> FormalHazard:
    """
    Overwrite an adopted hazard's content with its master's current
    published version. Local customizations are discarded.
    """

    def work():
        hazard = get_hazard(organization_id, hazard_id)
        if hazard.source != "default" or not hazard.source_id:
            raise ValidationError("Only hazards adopted from a master can be synced",
                                  details={"source": hazard.source})
        payload = master_hazard_service.adoption_payload(hazard.source_id)
        for field in _CONTENT_FIELDS:
            if field in payload:
                setattr(hazard, field, payload[field])
        hazard.source_version = payload["source_version"]
        hazard.is_customized = False
        hazard.recompute_scores()
        hazard.updated_by = user
        hazard.updated_at = utcnow()
        return hazard

    return run_optimistic(work, resource="FormalHazard", resource_id=hazard_id)


# ═════════════════════════════════════════════════════════════════════════════
# Attachments & linked forms
# ═════════════════════════════════════════════════════════════════════════════


def add_attachment(organization_id: int, hazard_id: str, attachment: dict,
                   *, user: str | None = None) -> dict:
    if not attachment.get("url"):
        raise ValidationError("url is required", details={"url": "missing"})
    entry = {
        "id": new_id(),
        "name": attachment.get("name") or "",
        "url": attachment["url"],
        "type": attachment.get("type") or "",
        "uploaded_at": utcnow().isoformat(),
        "uploaded_by": user,
    }

    def work():
        hazard = get_hazard(organization_id, hazard_id)
        hazard.attachments = [*(hazard.attachments or []), entry]
        hazard.updated_by = user
        return entry

    return run_optimistic(work, resource="FormalHazard", resource_id=hazard_id)


def remove_attachment(organization_id: int, hazard_id: str, attachment_id: str,
                      *, user: str | None = None) -> FormalHazard:
    def work():
        hazard = get_hazard(organization_id, hazard_id)
        hazard.attachments = [a for a in hazard.attachments or [] if a.get("id") != attachment_id]
        hazard.updated_by = user
        return hazard

    return run_optimistic(work, resource="FormalHazard", resource_id=hazard_id)


def link_field_form(organization_id: int, hazard_id: str, form_id: str,
                    *, user: str | None = None) -> FormalHazard:
    if not form_id:
        raise ValidationError("form_id is required", details={"form_id": "missing"})

    def work():
        hazard = get_hazard(organization_id, hazard_id)
        linked = list(hazard.linked_field_forms or [])
        if form_id not in linked:
            hazard.linked_field_forms = [*linked, form_id]
        hazard.updated_by = user
        return hazard

    return run_optimistic(work, resource="FormalHazard", resource_id=hazard_id)


def reference_data() -> dict:
    return {
        "categories": HAZARD_CATEGORIES,
        "statuses": sorted(FORMAL_HAZARD_STATUSES),
        "sources": sorted(FORMAL_HAZARD_SOURCES),
        "risk_levels": {key: list(bounds) for key, bounds in RISK_LEVEL_RANGES.items()},
    }
