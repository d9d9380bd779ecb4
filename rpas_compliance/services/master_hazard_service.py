"""
Master FHA Service Layer.

Master hazards are the platform's authoritative FHA templates. Organizations
adopt published masters into their own library (see hazard_service) and
are told when a master has moved past the version they adopted.

Versioning rule:
    - creation writes the version-1 snapshot ("Initial creation")
    - an update that changes a content field bumps ``version`` by exactly 1
      and writes one snapshot of the post-update record
    - any other update (status, category, ...) leaves ``version`` alone
"""

import logging

from sqlalchemy import delete, select

from rpas_compliance.core.exceptions import (
    ConcurrentUpdateError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from rpas_compliance.middleware.logging_config import entity_extra
from rpas_compliance.models import db
from rpas_compliance.models.base import utcnow
from rpas_compliance.models.hazard import (
    HAZARD_CATEGORIES,
    MASTER_HAZARD_STATUSES,
    FormalHazard,
    MasterHazard,
    MasterHazardVersion,
)
from rpas_compliance.services.risk import RISK_LEVEL_RANGES, risk_level_key
from rpas_compliance.services.transactions import run_optimistic
from rpas_compliance.services.versioning import changed_content_fields
from rpas_compliance.services.workflow import enforce_transition

logger = logging.getLogger(__name__)

METADATA_KEYS = ("keywords", "regulatory_refs", "applicable_operations")

_EDITABLE_FIELDS = (
    "title", "category", "description", "consequences",
    "likelihood", "severity", "control_measures",
    "residual_likelihood", "residual_severity",
)


def _metadata_from(data: dict, base: dict | None = None) -> dict | None:
    """
    Metadata may arrive nested (``metadata``) or flattened at top level
    (``keywords``, ``regulatory_refs``, ``applicable_operations``).
    Returns None when the payload touches neither form.
    """
    if "metadata" not in data and not any(key in data for key in METADATA_KEYS):
        return None
    merged = dict(base or {})
    merged.update(data.get("metadata") or {})
    for key in METADATA_KEYS:
        if key in data:
            merged[key] = data[key]
    return merged


def _check_category(category: str) -> None:
    if category not in HAZARD_CATEGORIES:
        raise ValidationError(f"Unknown hazard category: {category}", details={"category": category})


def _write_snapshot(hazard: MasterHazard, change_notes: str, user: str | None) -> MasterHazardVersion:
    snapshot = MasterHazardVersion(
        hazard_id=hazard.id,
        version=hazard.version,
        content=hazard.snapshot_content(),
        change_notes=change_notes,
        created_by=user,
    )
    db.session.add(snapshot)
    return snapshot


# ═════════════════════════════════════════════════════════════════════════════
# Queries
# ═════════════════════════════════════════════════════════════════════════════


def list_master_hazards(*, status: str | None = None, category: str | None = None) -> list[MasterHazard]:
    stmt = select(MasterHazard)
    if status:
        stmt = stmt.where(MasterHazard.status == status)
    if category:
        stmt = stmt.where(MasterHazard.category == category)
    return list(db.session.scalars(stmt.order_by(MasterHazard.fha_number)))


def list_published() -> list[MasterHazard]:
    return list_master_hazards(status="published")


def get_master_hazard(hazard_id: str) -> MasterHazard:
    hazard = db.session.get(MasterHazard, hazard_id)
    if hazard is None:
        raise NotFoundError(resource="MasterHazard", resource_id=hazard_id)
    return hazard


def get_by_number(fha_number: str) -> MasterHazard | None:
    return db.session.execute(
        select(MasterHazard).where(MasterHazard.fha_number == fha_number)
    ).scalar_one_or_none()


# ═════════════════════════════════════════════════════════════════════════════
# Lifecycle
# ═════════════════════════════════════════════════════════════════════════════


def create_master_hazard(data: dict, *, user: str | None = None) -> MasterHazard:
    """
    Create a master FHA at version 1. ``risk_score`` and
    ``residual_risk_score`` in the payload are ignored. Residual values
    default to the initial likelihood/severity.
    """
    fha_number = (data.get("fha_number") or "").strip()
    title = (data.get("title") or "").strip()
    if not fha_number or not title:
        raise ValidationError("fha_number and title are required",
                              details={k: "missing" for k in ("fha_number", "title") if not data.get(k)})
    if get_by_number(fha_number) is not None:
        raise ConflictError("MasterHazard", "fha_number", fha_number)

    category = data.get("category") or "flight_ops"
    _check_category(category)
    status = data.get("status") or "draft"
    if status not in MASTER_HAZARD_STATUSES:
        raise ValidationError(f"Unknown master_hazard status: {status}", details={"status": status})

    # Defaults only fill gaps; out-of-range values fail in recompute_scores
    likelihood = data.get("likelihood")
    if likelihood is None:
        likelihood = 3
    severity = data.get("severity")
    if severity is None:
        severity = 3
    residual_likelihood = data.get("residual_likelihood")
    residual_severity = data.get("residual_severity")
    hazard = MasterHazard(
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
        version=1,
        status=status,
        hazard_metadata=_metadata_from(data) or {key: [] for key in METADATA_KEYS},
        created_by=user,
        updated_by=user,
    )
    if status == "published":
        hazard.published_at = utcnow()
        hazard.published_by = user
    hazard.recompute_scores()

    db.session.add(hazard)
    try:
        db.session.flush()
        _write_snapshot(hazard, "Initial creation", user)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info("Master hazard %s created (%s)", fha_number, status,
                extra=entity_extra(hazard_id=hazard.id, fha_number=fha_number, to_status=status))
    return hazard


def update_master_hazard(hazard_id: str, data: dict, *, change_notes: str = "",
                         user: str | None = None) -> MasterHazard:
    """Apply an update; bump the version only when content changed."""

    def work():
        hazard = get_master_hazard(hazard_id)
        if data.get("status", hazard.status) != hazard.status:
            raise ValidationError("status cannot be set directly; use publish or archive",
                                  details={"status": data["status"]})
        if data.get("fha_number", hazard.fha_number) != hazard.fha_number:
            raise ValidationError("fha_number is immutable", details={"fha_number": data["fha_number"]})
        updates = {field: data[field] for field in _EDITABLE_FIELDS if field in data}
        metadata = _metadata_from(data, hazard.hazard_metadata)
        if metadata is not None:
            updates["metadata"] = metadata
        if "category" in updates:
            _check_category(updates["category"])

        changed = changed_content_fields(hazard.content_values(), updates)

        for field, value in updates.items():
            if field == "metadata":
                hazard.hazard_metadata = value
            else:
                setattr(hazard, field, value)
        hazard.recompute_scores()
        hazard.updated_by = user
        # onupdate only fires when a column changed; stamp explicitly
        hazard.updated_at = utcnow()

        if changed:
            hazard.version += 1
            _write_snapshot(hazard, change_notes or "Content updated", user)
            logger.info("Master hazard %s -> v%d (%s)", hazard.fha_number, hazard.version,
                        ", ".join(changed),
                        extra=entity_extra(hazard_id=hazard.id, fha_number=hazard.fha_number))
        return hazard

    return run_optimistic(work, resource="MasterHazard", resource_id=hazard_id)


def _move(hazard_id: str, new_status: str, user: str | None) -> MasterHazard:
    def work():
        hazard = get_master_hazard(hazard_id)
        enforce_transition(hazard.status, new_status, MASTER_HAZARD_STATUSES)
        hazard.status = new_status
        if new_status == "published":
            hazard.published_at = utcnow()
            hazard.published_by = user
        hazard.updated_by = user
        return hazard

    return run_optimistic(work, resource="MasterHazard", resource_id=hazard_id)


def publish_master_hazard(hazard_id: str, *, user: str | None = None) -> MasterHazard:
    return _move(hazard_id, "published", user)


def archive_master_hazard(hazard_id: str, *, user: str | None = None) -> MasterHazard:
    return _move(hazard_id, "archived", user)


def delete_master_hazard(hazard_id: str) -> None:
    """Only never-published masters may be deleted; published ones are archived."""
    hazard = get_master_hazard(hazard_id)
    if hazard.status == "published" or hazard.published_at is not None:
        raise ValidationError("Cannot delete a published master FHA. Archive it instead.",
                              details={"status": hazard.status})
    try:
        db.session.execute(delete(MasterHazardVersion).where(MasterHazardVersion.hazard_id == hazard.id))
        db.session.delete(hazard)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info("Master hazard %s deleted", hazard.fha_number,
                extra=entity_extra(hazard_id=hazard_id, fha_number=hazard.fha_number))


# ═════════════════════════════════════════════════════════════════════════════
# Versions
# ═════════════════════════════════════════════════════════════════════════════


def list_versions(hazard_id: str) -> list[MasterHazardVersion]:
    hazard = get_master_hazard(hazard_id)
    return list(hazard.versions)


def get_version(hazard_id: str, version: int) -> MasterHazardVersion:
    snapshot = db.session.execute(
        select(MasterHazardVersion).where(
            MasterHazardVersion.hazard_id == hazard_id,
            MasterHazardVersion.version == version,
        )
    ).scalar_one_or_none()
    if snapshot is None:
        raise NotFoundError(resource="MasterHazardVersion", resource_id=f"{hazard_id}@v{version}")
    return snapshot


# ═════════════════════════════════════════════════════════════════════════════
# Organization integration
# ═════════════════════════════════════════════════════════════════════════════


def check_for_updates(organization_id: int) -> list[dict]:
    """
    Organization FHAs whose published master has moved past the adopted
    version. Matching is by ``source_id``, falling back to ``fha_number``.
    """
    masters = list_published()
    by_id = {m.id: m for m in masters}
    by_number = {m.fha_number: m for m in masters}

    hazards = db.session.scalars(
        select(FormalHazard).where(FormalHazard.organization_id == organization_id)
    )
    updates = []
    for hazard in hazards:
        master = by_id.get(hazard.source_id) if hazard.source_id else by_number.get(hazard.fha_number)
        if master is None:
            continue
        adopted = hazard.source_version or 0
        if master.version > adopted:
            updates.append({
                "hazard_id": hazard.id,
                "fha_number": hazard.fha_number,
                "title": hazard.title,
                "current_source_version": adopted,
                "master_id": master.id,
                "master_version": master.version,
                "master_title": master.title,
                "is_customized": bool(hazard.is_customized),
            })
    return updates


def adoption_payload(hazard_id: str) -> dict:
    """Field values for a new organization FHA copied from a published master."""
    master = get_master_hazard(hazard_id)
    if master.status != "published":
        raise ValidationError("Only published master FHAs can be adopted",
                              details={"status": master.status})
    metadata = master.hazard_metadata or {}
    return {
        "fha_number": master.fha_number,
        "title": master.title,
        "category": master.category,
        "description": master.description,
        "consequences": master.consequences,
        "likelihood": master.likelihood,
        "severity": master.severity,
        "control_measures": list(master.control_measures or []),
        "residual_likelihood": master.residual_likelihood,
        "residual_severity": master.residual_severity,
        "keywords": list(metadata.get("keywords") or []),
        "regulatory_refs": list(metadata.get("regulatory_refs") or []),
        "source_id": master.id,
        "source_version": master.version,
        "is_customized": False,
        "status": "active",
        "source": "default",
    }


# ═════════════════════════════════════════════════════════════════════════════
# Stats & bulk operations
# ═════════════════════════════════════════════════════════════════════════════


def get_stats() -> dict:
    hazards = list_master_hazards()
    stats = {
        "total": len(hazards),
        "by_status": {key: 0 for key in MASTER_HAZARD_STATUSES},
        "by_category": {},
        "by_risk_level": {key: 0 for key in reversed(list(RISK_LEVEL_RANGES))},
    }
    for hazard in hazards:
        if hazard.status in stats["by_status"]:
            stats["by_status"][hazard.status] += 1
        category = hazard.category or "uncategorized"
        stats["by_category"][category] = stats["by_category"].get(category, 0) + 1
        level = risk_level_key(hazard.risk_score)
        if level:
            stats["by_risk_level"][level] += 1
    return stats


def seed_master_hazards(entries: list[dict], *, user: str | None = None) -> dict:
    """
    Create masters from seed data, published. Existing fha_numbers are
    skipped; a bad entry is reported and does not stop the rest.
    """
    results = {"created": 0, "skipped": 0, "errors": []}
    for entry in entries:
        if get_by_number(entry["fha_number"]) is not None:
            results["skipped"] += 1
            continue
        try:
            create_master_hazard({**entry, "status": "published"}, user=user)
            results["created"] += 1
        except (ValidationError, ConflictError) as exc:
            results["errors"].append({"fha_number": entry.get("fha_number"), "error": str(exc)})
    logger.info("Seeded master hazards: %(created)d created, %(skipped)d skipped", results)
    return results


def publish_all_drafts(*, user: str | None = None) -> dict:
    published = 0
    errors = []
    for hazard in list_master_hazards(status="draft"):
        try:
            publish_master_hazard(hazard.id, user=user)
            published += 1
        except (InvalidTransitionError, ConcurrentUpdateError) as exc:
            logger.warning("Could not publish master hazard %s: %s", hazard.fha_number, exc)
            errors.append({"fha_number": hazard.fha_number, "error": str(exc)})
    return {"published": published, "errors": errors}
