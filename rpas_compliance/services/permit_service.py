"""
Permit Service Layer.

Business logic for:
    - CRUD:          create, get, list, update, delete
    - Status:        derived from expiry on every write; suspend/reinstate
    - Conditions:    append conditions and privileges
    - Dashboards:    metrics and upcoming expiry events

Status is never taken from the payload; ``suspended`` is the only state a
user sets by hand.
"""

import logging
from datetime import timedelta

from flask import current_app, has_app_context
from sqlalchemy import select

from rpas_compliance.core.exceptions import ValidationError
from rpas_compliance.middleware.logging_config import entity_extra
from rpas_compliance.models import db
from rpas_compliance.models.base import new_id, utcnow
from rpas_compliance.models.permit import PERMIT_STATUSES, PERMIT_TYPES, Permit
from rpas_compliance.services.expiry import days_until_expiry, permit_status
from rpas_compliance.services.helpers.scoped_queries import get_scoped
from rpas_compliance.services.transactions import run_optimistic
from rpas_compliance.utils.helpers import parse_date

logger = logging.getLogger(__name__)

_TEXT_FIELDS = ("name", "permit_number", "issuing_authority", "geographic_area", "notes")
_DATE_FIELDS = ("issue_date", "effective_date", "expiry_date")
_JSON_FIELDS = (
    "privileges", "conditions", "operation_types",
    "aircraft_registrations", "documents", "renewal_info",
)


def _warning_days() -> int:
    if has_app_context():
        return int(current_app.config.get("PERMIT_EXPIRY_WARNING_DAYS", 30))
    return 30


def _refresh_status(permit: Permit) -> None:
    permit.status = permit_status(permit.expiry_date, permit.status, warning_days=_warning_days())


def _apply(permit: Permit, data: dict) -> None:
    if "type" in data:
        if data["type"] not in PERMIT_TYPES:
            raise ValidationError(f"Unknown permit type: {data['type']}", details={"type": data["type"]})
        permit.type = data["type"]
    for field in _TEXT_FIELDS:
        if field in data:
            setattr(permit, field, data[field] or "")
    for field in _DATE_FIELDS:
        if field in data:
            setattr(permit, field, parse_date(data[field]))
    for field in _JSON_FIELDS:
        if field in data:
            setattr(permit, field, data[field])


def create_permit(organization_id: int, data: dict, *, user: str | None = None) -> Permit:
    if not (data.get("name") or "").strip():
        raise ValidationError("name is required", details={"name": "missing"})
    permit = Permit(
        organization_id=organization_id,
        type="other",
        status="active",
        privileges=[],
        conditions=[],
        operation_types=[],
        aircraft_registrations=[],
        documents=[],
        renewal_info={},
        created_by=user,
        updated_by=user,
    )
    _apply(permit, data)
    _refresh_status(permit)
    try:
        db.session.add(permit)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info("Permit %s created (organization=%s, status=%s)", permit.id, organization_id, permit.status,
                extra=entity_extra(organization_id=organization_id, permit_id=permit.id, to_status=permit.status))
    return permit


def get_permit(organization_id: int, permit_id: str) -> Permit:
    return get_scoped(Permit, permit_id, organization_id=organization_id)


def list_permits(organization_id: int, *, type: str | None = None,
                 status: str | None = None) -> list[Permit]:
    """Soonest expiry first; permits without an expiry sort last."""
    stmt = select(Permit).where(Permit.organization_id == organization_id)
    if type:
        stmt = stmt.where(Permit.type == type)
    if status:
        stmt = stmt.where(Permit.status == status)
    stmt = stmt.order_by(Permit.expiry_date.is_(None), Permit.expiry_date, Permit.name)
    return list(db.session.scalars(stmt))


def update_permit(organization_id: int, permit_id: str, data: dict,
                  *, user: str | None = None) -> Permit:
    if "status" in data:
        raise ValidationError("status is derived from expiry_date; use suspend or reinstate",
                              details={"status": data["status"]})
    permit = get_permit(organization_id, permit_id)
    _apply(permit, data)
    _refresh_status(permit)
    permit.updated_by = user
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return permit


def delete_permit(organization_id: int, permit_id: str) -> None:
    permit = get_permit(organization_id, permit_id)
    try:
        db.session.delete(permit)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info("Permit %s deleted (organization=%s)", permit_id, organization_id,
                extra=entity_extra(organization_id=organization_id, permit_id=permit_id))


def suspend_permit(organization_id: int, permit_id: str, *, reason: str = "",
                   user: str | None = None) -> Permit:
    permit = get_permit(organization_id, permit_id)
    permit.status = "suspended"
    if reason:
        permit.notes = f"{permit.notes}\n[Suspended] {reason}".strip()
    permit.updated_by = user
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return permit


def reinstate_permit(organization_id: int, permit_id: str, *, user: str | None = None) -> Permit:
    """Lift a suspension; the status falls back to whatever expiry dictates."""
    permit = get_permit(organization_id, permit_id)
    permit.status = permit_status(permit.expiry_date, None, warning_days=_warning_days())
    permit.updated_by = user
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return permit


# ═════════════════════════════════════════════════════════════════════════════
# Conditions & privileges
# ═════════════════════════════════════════════════════════════════════════════


def add_condition(organization_id: int, permit_id: str, data: dict,
                  *, user: str | None = None) -> Permit:
    description = (data.get("description") or "").strip()
    if not description:
        raise ValidationError("description is required", details={"description": "missing"})
    condition = {
        "id": new_id(),
        "description": description,
        "category": data.get("category") or "general",
        "is_restriction": bool(data.get("is_restriction", False)),
    }

    def work():
        permit = get_permit(organization_id, permit_id)
        permit.conditions = [*(permit.conditions or []), condition]
        permit.updated_by = user
        return permit

    return run_optimistic(work, resource="Permit", resource_id=permit_id)


def add_privilege(organization_id: int, permit_id: str, data: dict,
                  *, user: str | None = None) -> Permit:
    description = (data.get("description") or "").strip()
    if not description:
        raise ValidationError("description is required", details={"description": "missing"})
    privilege = {
        "id": new_id(),
        "description": description,
        "operation_type": data.get("operation_type"),
        "limits": data.get("limits") or "",
    }

    def work():
        permit = get_permit(organization_id, permit_id)
        permit.privileges = [*(permit.privileges or []), privilege]
        permit.updated_by = user
        return permit

    return run_optimistic(work, resource="Permit", resource_id=permit_id)


# ═════════════════════════════════════════════════════════════════════════════
# Dashboards
# ═════════════════════════════════════════════════════════════════════════════


def refresh_statuses(organization_id: int) -> int:
    """Re-derive every permit's status; returns how many changed."""
    changed = 0
    for permit in list_permits(organization_id):
        before = permit.status
        _refresh_status(permit)
        if permit.status != before:
            changed += 1
    if changed:
        try:
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
    return changed


def get_metrics(organization_id: int) -> dict:
    permits = list_permits(organization_id)
    metrics = {
        "total": len(permits),
        "by_status": {key: 0 for key in PERMIT_STATUSES},
        "by_type": {key: 0 for key in PERMIT_TYPES},
        "next_expiry": None,
    }
    warning_days = _warning_days()
    for permit in permits:
        status = permit_status(permit.expiry_date, permit.status, warning_days=warning_days)
        metrics["by_status"][status] += 1
        if permit.type in metrics["by_type"]:
            metrics["by_type"][permit.type] += 1
        days = days_until_expiry(permit.expiry_date)
        if days is not None and days > 0 and status != "suspended":
            current = metrics["next_expiry"]
            if current is None or days < current["days_until_expiry"]:
                metrics["next_expiry"] = {
                    "permit_id": permit.id,
                    "name": permit.name,
                    "expiry_date": permit.expiry_date.isoformat(),
                    "days_until_expiry": days,
                }
    return metrics


def upcoming_expiry_events(organization_id: int, *, days: int = 90) -> list[dict]:
    """Calendar entries for permits expiring within ``days`` (not yet expired)."""
    horizon = (utcnow() + timedelta(days=days)).date()
    today = utcnow().date()
    stmt = (
        select(Permit)
        .where(
            Permit.organization_id == organization_id,
            Permit.expiry_date.is_not(None),
            Permit.expiry_date >= today,
            Permit.expiry_date <= horizon,
            Permit.status != "suspended",
        )
        .order_by(Permit.expiry_date)
    )
    return [
        {
            "id": f"permit-expiry-{permit.id}",
            "permit_id": permit.id,
            "title": f"{permit.name} expires",
            "date": permit.expiry_date.isoformat(),
            "type": "permit_expiry",
            "permit_type": permit.type,
            "days_until_expiry": days_until_expiry(permit.expiry_date),
        }
        for permit in db.session.scalars(stmt)
    ]


def reference_data() -> dict:
    return {"types": PERMIT_TYPES, "statuses": PERMIT_STATUSES}
