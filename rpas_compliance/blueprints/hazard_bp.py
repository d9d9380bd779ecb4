"""
RPAS Compliance Platform
Formal Hazard Assessment blueprints.

Endpoints summary:
    MASTER   /api/v1/master-hazards                         GET, POST
             /api/v1/master-hazards/<id>                    GET, PUT, DELETE
             /api/v1/master-hazards/<id>/publish            POST
             /api/v1/master-hazards/<id>/archive            POST
             /api/v1/master-hazards/<id>/versions           GET
             /api/v1/master-hazards/<id>/versions/<n>       GET
             /api/v1/master-hazards/stats                   GET
             /api/v1/master-hazards/seed                    POST
             /api/v1/master-hazards/publish-all             POST

    ORG FHA  /api/v1/hazards                                GET, POST
             /api/v1/hazards/<id>                           GET, PUT, DELETE
             /api/v1/hazards/<id>/review                    POST
             /api/v1/hazards/<id>/sync                      POST
             /api/v1/hazards/<id>/attachments               POST
             /api/v1/hazards/<id>/attachments/<aid>         DELETE
             /api/v1/hazards/<id>/field-forms               POST
             /api/v1/hazards/adopt                          POST
             /api/v1/hazards/updates                        GET
             /api/v1/hazards/risk-level/<level>             GET
             /api/v1/hazards/search                         GET
             /api/v1/hazards/needing-review                 GET
             /api/v1/hazards/stats                          GET
             /api/v1/hazards/reference                      GET
"""

import logging

from flask import Blueprint, jsonify, request

from rpas_compliance.seed_data.master_hazards import DEFAULT_MASTER_HAZARDS
from rpas_compliance.services import hazard_service, master_hazard_service
from rpas_compliance.utils.helpers import actor, organization_required

logger = logging.getLogger(__name__)

master_hazard_bp = Blueprint("master_hazards", __name__, url_prefix="/api/v1/master-hazards")
hazard_bp = Blueprint("hazards", __name__, url_prefix="/api/v1/hazards")


def _body() -> dict:
    return request.get_json(silent=True) or {}


# ═══════════════════════════════════════════════════════════════════════════
#  MASTER HAZARDS (platform catalog)
# ═══════════════════════════════════════════════════════════════════════════

@master_hazard_bp.route("", methods=["GET"])
def list_master_hazards():
    hazards = master_hazard_service.list_master_hazards(
        status=request.args.get("status"), category=request.args.get("category"),
    )
    return jsonify({"items": [h.to_dict() for h in hazards], "total": len(hazards)})


@master_hazard_bp.route("", methods=["POST"])
def create_master_hazard():
    hazard = master_hazard_service.create_master_hazard(_body(), user=actor())
    return jsonify(hazard.to_dict()), 201


@master_hazard_bp.route("/stats", methods=["GET"])
def master_stats():
    return jsonify(master_hazard_service.get_stats())


@master_hazard_bp.route("/seed", methods=["POST"])
def seed_master_hazards():
    return jsonify(master_hazard_service.seed_master_hazards(DEFAULT_MASTER_HAZARDS, user=actor()))


@master_hazard_bp.route("/publish-all", methods=["POST"])
def publish_all():
    return jsonify(master_hazard_service.publish_all_drafts(user=actor()))


@master_hazard_bp.route("/<hazard_id>", methods=["GET"])
def get_master_hazard(hazard_id):
    return jsonify(master_hazard_service.get_master_hazard(hazard_id).to_dict())


@master_hazard_bp.route("/<hazard_id>", methods=["PUT"])
def update_master_hazard(hazard_id):
    data = _body()
    hazard = master_hazard_service.update_master_hazard(
        hazard_id, data, change_notes=data.pop("change_notes", "") or "", user=actor(),
    )
    return jsonify(hazard.to_dict())


@master_hazard_bp.route("/<hazard_id>", methods=["DELETE"])
def delete_master_hazard(hazard_id):
    master_hazard_service.delete_master_hazard(hazard_id)
    return jsonify({"message": "Master hazard deleted"})


@master_hazard_bp.route("/<hazard_id>/publish", methods=["POST"])
def publish_master_hazard(hazard_id):
    return jsonify(master_hazard_service.publish_master_hazard(hazard_id, user=actor()).to_dict())


@master_hazard_bp.route("/<hazard_id>/archive", methods=["POST"])
def archive_master_hazard(hazard_id):
    return jsonify(master_hazard_service.archive_master_hazard(hazard_id, user=actor()).to_dict())


@master_hazard_bp.route("/<hazard_id>/versions", methods=["GET"])
def list_versions(hazard_id):
    versions = master_hazard_service.list_versions(hazard_id)
    return jsonify({"items": [v.to_dict() for v in versions], "total": len(versions)})


@master_hazard_bp.route("/<hazard_id>/versions/<int:version>", methods=["GET"])
def get_version(hazard_id, version):
    return jsonify(master_hazard_service.get_version(hazard_id, version).to_dict())


# ═══════════════════════════════════════════════════════════════════════════
#  ORGANIZATION FHAs
# ═══════════════════════════════════════════════════════════════════════════

@hazard_bp.route("", methods=["GET"])
def list_hazards():
    oid, err = organization_required()
    if err:
        return err
    hazards = hazard_service.list_hazards(
        oid,
        category=request.args.get("category"),
        status=request.args.get("status"),
        source=request.args.get("source"),
        min_risk_score=request.args.get("min_risk_score", type=int),
    )
    return jsonify({"items": [h.to_dict() for h in hazards], "total": len(hazards)})


@hazard_bp.route("", methods=["POST"])
def create_hazard():
    oid, err = organization_required()
    if err:
        return err
    data = {k: v for k, v in _body().items() if k != "organization_id"}
    hazard = hazard_service.create_hazard(oid, data, user=actor())
    return jsonify(hazard.to_dict()), 201


@hazard_bp.route("/adopt", methods=["POST"])
def adopt_from_master():
    oid, err = organization_required()
    if err:
        return err
    master_id = _body().get("master_id")
    if not master_id:
        return jsonify({"error": "master_id is required"}), 400
    hazard = hazard_service.adopt_from_master(oid, master_id, user=actor())
    return jsonify(hazard.to_dict()), 201


@hazard_bp.route("/updates", methods=["GET"])
def check_for_updates():
    oid, err = organization_required()
    if err:
        return err
    updates = master_hazard_service.check_for_updates(oid)
    return jsonify({"items": updates, "total": len(updates)})


@hazard_bp.route("/risk-level/<level>", methods=["GET"])
def list_by_risk_level(level):
    oid, err = organization_required()
    if err:
        return err
    hazards = hazard_service.list_by_risk_level(oid, level)
    return jsonify({"items": [h.to_dict() for h in hazards], "total": len(hazards)})


@hazard_bp.route("/search", methods=["GET"])
def search_hazards():
    oid, err = organization_required()
    if err:
        return err
    hazards = hazard_service.search_hazards(oid, request.args.get("q", ""))
    return jsonify({"items": [h.to_dict() for h in hazards], "total": len(hazards)})


@hazard_bp.route("/needing-review", methods=["GET"])
def needing_review():
    oid, err = organization_required()
    if err:
        return err
    hazards = hazard_service.list_needing_review(oid)
    return jsonify({"items": [h.to_dict() for h in hazards], "total": len(hazards)})


@hazard_bp.route("/stats", methods=["GET"])
def hazard_stats():
    oid, err = organization_required()
    if err:
        return err
    return jsonify(hazard_service.get_stats(oid))


@hazard_bp.route("/reference", methods=["GET"])
def reference():
    return jsonify(hazard_service.reference_data())


@hazard_bp.route("/<hazard_id>", methods=["GET"])
def get_hazard(hazard_id):
    oid, err = organization_required()
    if err:
        return err
    return jsonify(hazard_service.get_hazard(oid, hazard_id).to_dict())


@hazard_bp.route("/<hazard_id>", methods=["PUT"])
def update_hazard(hazard_id):
    oid, err = organization_required()
    if err:
        return err
    hazard = hazard_service.update_hazard(oid, hazard_id, _body(), user=actor())
    return jsonify(hazard.to_dict())


@hazard_bp.route("/<hazard_id>", methods=["DELETE"])
def delete_hazard(hazard_id):
    oid, err = organization_required()
    if err:
        return err
    hazard_service.delete_hazard(oid, hazard_id)
    return jsonify({"message": "Hazard deleted"})


@hazard_bp.route("/<hazard_id>/review", methods=["POST"])
def mark_reviewed(hazard_id):
    oid, err = organization_required()
    if err:
        return err
    hazard = hazard_service.mark_reviewed(
        oid, hazard_id, next_review_date=_body().get("next_review_date"), user=actor(),
    )
    return jsonify(hazard.to_dict())


@hazard_bp.route("/<hazard_id>/sync", methods=["POST"])
def sync_from_master(hazard_id):
    oid, err = organization_required()
    if err:
        return err
    return jsonify(hazard_service.sync_from_master(oid, hazard_id, user=actor()).to_dict())


@hazard_bp.route("/<hazard_id>/attachments", methods=["POST"])
def add_attachment(hazard_id):
    oid, err = organization_required()
    if err:
        return err
    attachment = hazard_service.add_attachment(oid, hazard_id, _body(), user=actor())
    return jsonify(attachment), 201


@hazard_bp.route("/<hazard_id>/attachments/<attachment_id>", methods=["DELETE"])
def remove_attachment(hazard_id, attachment_id):
    oid, err = organization_required()
    if err:
        return err
    hazard = hazard_service.remove_attachment(oid, hazard_id, attachment_id, user=actor())
    return jsonify(hazard.to_dict())


@hazard_bp.route("/<hazard_id>/field-forms", methods=["POST"])
def link_field_form(hazard_id):
    oid, err = organization_required()
    if err:
        return err
    hazard = hazard_service.link_field_form(oid, hazard_id, _body().get("form_id"), user=actor())
    return jsonify(hazard.to_dict())
