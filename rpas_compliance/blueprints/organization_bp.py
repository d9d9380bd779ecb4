"""
RPAS Compliance Platform
Organization blueprint: the operator accounts every scoped record belongs to.

Endpoints:
    GET    /api/v1/organizations
    POST   /api/v1/organizations
    GET    /api/v1/organizations/<id>
    PUT    /api/v1/organizations/<id>
"""

import logging
import re

from flask import Blueprint, jsonify, request

from rpas_compliance.core.exceptions import ConflictError, NotFoundError
from rpas_compliance.models import db
from rpas_compliance.models.organization import Organization

logger = logging.getLogger(__name__)

organization_bp = Blueprint("organizations", __name__, url_prefix="/api/v1/organizations")


def _slugify(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")


def _get_or_404(org_id: int) -> Organization:
    org = db.session.get(Organization, org_id)
    if org is None:
        raise NotFoundError(resource="Organization", resource_id=org_id)
    return org


@organization_bp.route("", methods=["GET"])
def list_organizations():
    orgs = Organization.query.order_by(Organization.name).all()
    return jsonify({"items": [o.to_dict() for o in orgs], "total": len(orgs)})


@organization_bp.route("", methods=["POST"])
def create_organization():
    data = request.get_json(silent=True) or {}
    name = (data.get("name") or "").strip()
    if not name:
        return jsonify({"error": "name is required"}), 400
    slug = _slugify(data.get("slug") or name)
    if Organization.query.filter_by(slug=slug).first():
        raise ConflictError("Organization", "slug", slug)

    org = Organization(name=name, slug=slug, settings=data.get("settings") or {})
    db.session.add(org)
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info("Organization %s created (%s)", org.id, slug)
    return jsonify(org.to_dict()), 201


@organization_bp.route("/<int:org_id>", methods=["GET"])
def get_organization(org_id):
    return jsonify(_get_or_404(org_id).to_dict())


@organization_bp.route("/<int:org_id>", methods=["PUT"])
def update_organization(org_id):
    org = _get_or_404(org_id)
    data = request.get_json(silent=True) or {}
    if "name" in data and (data["name"] or "").strip():
        org.name = data["name"].strip()
    if "is_active" in data:
        org.is_active = bool(data["is_active"])
    if "settings" in data:
        org.settings = data["settings"] or {}
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return jsonify(org.to_dict())
