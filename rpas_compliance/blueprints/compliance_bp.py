"""
RPAS Compliance Platform
Compliance matrix blueprint: templates, applications and the document registry.

Endpoints summary:
    TEMPLATE     /api/v1/compliance/templates                         GET, POST
                 /api/v1/compliance/templates/<tid>                   GET, PUT, DELETE

    APPLICATION  /api/v1/compliance/applications                      GET, POST
                 /api/v1/compliance/applications/<id>                 GET, PUT, DELETE
                 /api/v1/compliance/applications/<id>/responses/<rid> PUT
                 /api/v1/compliance/applications/<id>/status          PATCH, GET (available)
                 /api/v1/compliance/applications/<id>/gap-analysis    POST

    REGISTRY     /api/v1/compliance/registry                          GET, POST
                 /api/v1/compliance/registry/<did>                    PUT

    REFERENCE    /api/v1/compliance/reference                         GET

Templates are platform-wide; everything else requires organization_id.
"""

import logging

from flask import Blueprint, jsonify, request

from rpas_compliance.services import compliance_service
from rpas_compliance.utils.helpers import actor, organization_required

logger = logging.getLogger(__name__)

compliance_bp = Blueprint("compliance", __name__, url_prefix="/api/v1/compliance")


def _body() -> dict:
    return request.get_json(silent=True) or {}


# ═══════════════════════════════════════════════════════════════════════════
#  TEMPLATES
# ═══════════════════════════════════════════════════════════════════════════

@compliance_bp.route("/templates", methods=["GET"])
def list_templates():
    templates = compliance_service.list_templates(
        category=request.args.get("category"),
        status=request.args.get("status"),
        public_only=request.args.get("public", "").lower() in ("1", "true"),
    )
    return jsonify({"items": [t.to_dict() for t in templates], "total": len(templates)})


@compliance_bp.route("/templates", methods=["POST"])
def create_template():
    template = compliance_service.create_template(_body(), user=actor())
    return jsonify(template.to_dict()), 201


@compliance_bp.route("/templates/<template_id>", methods=["GET"])
def get_template(template_id):
    return jsonify(compliance_service.get_template(template_id).to_dict())


@compliance_bp.route("/templates/<template_id>", methods=["PUT"])
def update_template(template_id):
    template = compliance_service.update_template(template_id, _body(), user=actor())
    return jsonify(template.to_dict())


@compliance_bp.route("/templates/<template_id>", methods=["DELETE"])
def delete_template(template_id):
    compliance_service.delete_template(template_id)
    return jsonify({"message": "Template deleted"})


# ═══════════════════════════════════════════════════════════════════════════
#  APPLICATIONS
# ═══════════════════════════════════════════════════════════════════════════

@compliance_bp.route("/applications", methods=["GET"])
def list_applications():
    oid, err = organization_required()
    if err:
        return err
    apps = compliance_service.list_applications(
        oid,
        status=request.args.get("status"),
        template_id=request.args.get("template_id"),
        project_id=request.args.get("project_id"),
    )
    return jsonify({"items": [a.to_dict(include_responses=False) for a in apps], "total": len(apps)})


@compliance_bp.route("/applications", methods=["POST"])
def create_application():
    oid, err = organization_required()
    if err:
        return err
    data = _body()
    if not data.get("template_id"):
        return jsonify({"error": "template_id is required"}), 400
    application = compliance_service.create_application(oid, data["template_id"], data, user=actor())
    return jsonify(application.to_dict()), 201


@compliance_bp.route("/applications/<app_id>", methods=["GET"])
def get_application(app_id):
    oid, err = organization_required()
    if err:
        return err
    return jsonify(compliance_service.get_application(oid, app_id).to_dict())


@compliance_bp.route("/applications/<app_id>", methods=["PUT"])
def update_application(app_id):
    oid, err = organization_required()
    if err:
        return err
    application = compliance_service.update_application(oid, app_id, _body(), user=actor())
    return jsonify(application.to_dict())


@compliance_bp.route("/applications/<app_id>", methods=["DELETE"])
def delete_application(app_id):
    oid, err = organization_required()
    if err:
        return err
    compliance_service.delete_application(oid, app_id)
    return jsonify({"message": "Compliance application deleted"})


@compliance_bp.route("/applications/<app_id>/responses/<requirement_id>", methods=["PUT"])
def update_response(app_id, requirement_id):
    oid, err = organization_required()
    if err:
        return err
    application = compliance_service.update_response(oid, app_id, requirement_id, _body(), user=actor())
    return jsonify({
        "requirement_id": requirement_id,
        "response": application.responses[requirement_id],
        "progress": application.progress,
    })


@compliance_bp.route("/applications/<app_id>/status", methods=["PATCH"])
def change_status(app_id):
    oid, err = organization_required()
    if err:
        return err
    data = _body()
    if not data.get("status"):
        return jsonify({"error": "status is required"}), 400
    application = compliance_service.change_status(
        oid, app_id, data["status"],
        user=actor(),
        notes=data.get("notes") or "",
        submission=data.get("submission") or {},
    )
    return jsonify(application.to_dict(include_responses=False))


@compliance_bp.route("/applications/<app_id>/status", methods=["GET"])
def available_transitions(app_id):
    oid, err = organization_required()
    if err:
        return err
    return jsonify(compliance_service.transitions_for(oid, app_id))


@compliance_bp.route("/applications/<app_id>/gap-analysis", methods=["POST"])
def gap_analysis(app_id):
    oid, err = organization_required()
    if err:
        return err
    return jsonify(compliance_service.run_gap_analysis(oid, app_id, user=actor()))


# ═══════════════════════════════════════════════════════════════════════════
#  DOCUMENT REGISTRY
# ═══════════════════════════════════════════════════════════════════════════

@compliance_bp.route("/registry", methods=["GET"])
def list_registry():
    oid, err = organization_required()
    if err:
        return err
    docs = compliance_service.list_registry(
        oid, source_type=request.args.get("source_type"), status=request.args.get("status"),
    )
    return jsonify({"items": [d.to_dict() for d in docs], "total": len(docs)})


@compliance_bp.route("/registry", methods=["POST"])
def register_document():
    oid, err = organization_required()
    if err:
        return err
    document = compliance_service.register_document(oid, _body(), user=actor())
    return jsonify(document.to_dict()), 201


@compliance_bp.route("/registry/<doc_id>", methods=["PUT"])
def update_registry_document(doc_id):
    oid, err = organization_required()
    if err:
        return err
    document = compliance_service.update_registry_document(oid, doc_id, _body(), user=actor())
    return jsonify(document.to_dict())


@compliance_bp.route("/reference", methods=["GET"])
def reference():
    return jsonify(compliance_service.reference_data())
